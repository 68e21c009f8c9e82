import logging
import time

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from reelsmith.models.base import Base

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Job updates arrive from worker threads
        connect_args["check_same_thread"] = False
    return create_engine(
        database_url,
        echo=echo,
        future=True,
        pool_pre_ping=True,
        connect_args=connect_args,
    )


def create_session_maker(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, class_=Session, expire_on_commit=False)


def init_db(engine: Engine, max_retries: int = 5, retry_delay: float = 2.0) -> None:
    """Create tables, retrying with exponential backoff on connection failures."""
    for attempt in range(max_retries):
        try:
            Base.metadata.create_all(engine)
            return
        except Exception as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"DB connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                    f"Retrying in {retry_delay} seconds..."
                )
                time.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts")
                raise
