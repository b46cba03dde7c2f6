from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool
from .. import config


def make_engine(url: str):
    if url.startswith('postgresql://') and not url.startswith('postgresql+asyncpg://'):
        url = url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    kwargs = {}
    if url.startswith('sqlite'):
        # aiosqlite connections are tied to the loop that opened them
        kwargs['poolclass'] = NullPool
    return create_async_engine(url, future=True, echo=False, **kwargs)


engine = make_engine(config.DATABASE_URL)
AsyncSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
Base = declarative_base()


def bind(url: str):
    """Point the session factory at another database"""
    global engine
    engine = make_engine(url)
    AsyncSessionLocal.configure(bind=engine)
    return engine


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Import models to register tables
from .posts import Post  # noqa: F401,E402
