from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from .routes import router
from .backend import LocalBackend, get_backend
from .core import db_startup, init_metrics, shutdown_connections
from .realtime import feed
from . import config
import logging
import time
from pythonjsonlogger import jsonlogger

# json lines on the 'board' logger; module loggers propagate to it
logger = logging.getLogger('board')
handler = logging.StreamHandler()
handler.setFormatter(jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s'))
logger.addHandler(handler)
logger.setLevel(config.LOG_LEVEL)

app = FastAPI(title="Mini Board API", version="0.1.0")

# the board page is served from anywhere; posting is anonymous
app.add_middleware(CORSMiddleware, allow_origins=['*'], allow_methods=['*'], allow_headers=['*'])

app.include_router(router, prefix="/api")


@app.get('/healthz')
async def healthz():
    backend = getattr(app.state, 'backend', None)
    return {
        'status': 'ok',
        'backend': type(backend).__name__ if backend is not None else None,
        'subscribers': feed.subscriber_count,
    }


@app.middleware('http')
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info({
        'msg': 'request',
        'method': request.method,
        'path': request.url.path,
        'status': response.status_code,
        'ms': round((time.perf_counter() - started) * 1000, 1),
    })
    return response


async def start_backend():
    """Build the configured backend; the local one needs its table first"""
    backend = get_backend()
    if isinstance(backend, LocalBackend) and not await db_startup():
        # reads fail with BackendError until the database comes up
        logger.error({'msg': 'posts_table_unavailable'})
    logger.info({'msg': 'backend_ready', 'backend': type(backend).__name__, 'variant': config.FEED_VARIANT})
    return backend


@app.on_event("startup")
async def startup():
    app.state.backend = await start_backend()
    init_metrics()


@app.on_event("shutdown")
async def shutdown():
    backend, app.state.backend = getattr(app.state, 'backend', None), None
    close = getattr(backend, 'close', None)
    if close is not None:
        await close()
    await shutdown_connections()
