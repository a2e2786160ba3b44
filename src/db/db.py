from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from db.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(db_file: str | Path, echo: bool = False) -> Engine:
    path = Path(db_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{path}", echo=echo)


def init_db(db_file: str | Path, reset: bool = False, echo: bool = False) -> Session:
    path = Path(db_file)
    if reset and path.exists():
        logger.info("Removing existing database %s", path)
        path.unlink()

    engine = create_db_engine(path, echo=echo)
    Base.metadata.create_all(engine)
    return sessionmaker(engine)()
