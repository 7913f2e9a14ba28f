import uuid

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def generate_uuid() -> str:
    return str(uuid.uuid4())


def make_engine(database_url: str) -> Engine:
    """Create an engine usable from worker threads.

    In-memory SQLite gets a single shared connection, otherwise every thread
    would see its own empty database.
    """
    connect_args = {}
    kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, connect_args=connect_args, **kwargs)
