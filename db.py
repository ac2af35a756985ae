import os
from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from billing.exceptions import ConfigurationError
from models import Base


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ConfigurationError("DATABASE_URL environment variable is required.")
    return create_engine(database_url, echo=False)


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=get_engine())


def SessionLocal() -> Session:
    """
    Open a new session on the configured database
    """
    return get_session_factory()()


def create_tables(engine: Optional[Engine] = None) -> None:
    """
    Create all billing tables
    """
    Base.metadata.create_all(bind=engine or get_engine())
