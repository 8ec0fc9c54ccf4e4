"""
Database Connection Management

SQLAlchemy 2.0 engine used to publish the star schema. The pipeline is
batch-shaped and single-threaded, so a plain synchronous engine is enough.
"""

from typing import Optional

import structlog
from sqlalchemy import Engine, create_engine, text

from salesdwh.config import Settings, get_settings
from .models import Base

logger = structlog.get_logger(__name__)

# Global engine
_engine: Optional[Engine] = None


def init_database(settings: Optional[Settings] = None, url: Optional[str] = None) -> Engine:
    """
    Initialize the database engine and create the star tables.

    Args:
        settings: Settings to read the connection from
        url: Explicit SQLAlchemy URL, overriding settings

    Returns:
        Engine: The initialized database engine
    """
    global _engine

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    settings = settings or get_settings()
    engine = create_engine(
        url or settings.database.sync_url,
        echo=settings.database.echo,
        pool_pre_ping=True,
    )

    # Verify connection
    try:
        with engine.begin() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(engine)
        logger.info("Database connection established", dialect=engine.dialect.name)
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        engine.dispose()
        raise

    _engine = engine
    return _engine


def close_database() -> None:
    """Dispose of the engine and its pooled connections"""
    global _engine

    if _engine is not None:
        _engine.dispose()
        _engine = None
        logger.info("Database connection pool closed")
