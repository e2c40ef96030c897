# bookwise/db/session.py

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.orm import DeclarativeBase
from bookwise.core.config import settings


def make_engine(url: str) -> AsyncEngine:
    kwargs = {}
    if url.startswith("sqlite"):
        # allow concurrent writers to wait on the file lock instead of failing
        kwargs["connect_args"] = {"timeout": 15}
    else:
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        expire_on_commit=False,  # keep objects usable after commit
        class_=AsyncSession,
    )


# 1) Engine: one per app
engine = make_engine(settings.async_db_uri)

# 2) Session factory: creates short-lived sessions per unit of work
AsyncSessionLocal = make_session_factory(engine)

# 3) Declarative Base: all models inherit from this
class Base(DeclarativeBase):
    pass
