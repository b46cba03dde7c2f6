import asyncio
from prometheus_client import Counter, start_http_server
import logging
from . import config, models

logger = logging.getLogger(__name__)

FEED_RELOADS = Counter('board_feed_reloads_total', 'Full reloads of the post list applied to a feed store')
STALE_LOADS = Counter('board_stale_loads_total', 'Post list responses discarded because a newer one was applied')
CHANGE_EVENTS = Counter('board_change_events_total', 'Change events received by feed subscriptions', ['event'])


def init_metrics(port: int = None):
    """Initialize Prometheus metrics server"""
    port = port or config.METRICS_PORT
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')


async def db_startup(max_retries: int = 3, retry_delay: float = 3):
    """Create the posts table, retrying while the database comes up"""
    for attempt in range(max_retries):
        try:
            logger.info(f"Attempting to initialize database (attempt {attempt + 1}/{max_retries})")
            await models.init_db()
            logger.info("Database ready")
            return True
        except Exception as e:
            logger.warning(f'Database startup attempt {attempt + 1} failed: {e}')
            if attempt < max_retries - 1:
                logger.info(f"Retrying database connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to initialize database after all retries")
    return False


async def shutdown_connections():
    """Gracefully shutdown all connections"""
    logger.info("Shutting down connections...")
    try:
        await models.engine.dispose()
        logger.info("Database engine disposed")
    except Exception as e:
        logger.error(f"Error disposing database engine: {e}")
