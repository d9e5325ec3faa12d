from typing import Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from mili_llama.sql_orm.connection.base import Base
from mili_llama.utils.logging_config import get_workflow_logger

logger = get_workflow_logger()

engine: Optional[Engine] = None
SessionFactory: Optional[scoped_session] = None


def build_pg_url(user: str, password: str, host: str, port: int, database: str) -> str:
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}"


def get_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        return create_engine(url)
    return create_engine(url, pool_size=20, max_overflow=0)


def initialize_global_engine(url: str) -> Engine:
    """Initialize the global engine and session factory and create missing tables"""
    global engine, SessionFactory
    safe_url = url.split("@")[-1] if "@" in url else url
    logger.info(f"Initializing SQLAlchemy engine for {safe_url}")
    engine = get_engine(url)
    SessionFactory = scoped_session(sessionmaker(bind=engine, expire_on_commit=False))
    Base.metadata.create_all(engine)
    return engine


def dispose_global_engine() -> None:
    global engine, SessionFactory
    if SessionFactory is not None:
        SessionFactory.remove()
    if engine is not None:
        engine.dispose()
    engine = None
    SessionFactory = None


def get_session() -> Session:
    """Get a session safely, ensuring SessionFactory is initialized"""
    if SessionFactory is None:
        raise RuntimeError("SessionFactory not initialized. Call initialize_global_engine() first.")
    return SessionFactory()
