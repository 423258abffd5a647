from __future__ import annotations

import logging

from sqlalchemy.engine import Engine

from core.database import ENGINE
from models import Base


logger = logging.getLogger(__name__)


def bootstrap_schema(engine: Engine | None = None) -> None:
    """Create the seating tables (and the external read-only ones) if missing.

    Uses CREATE ... IF NOT EXISTS semantics, so it is safe to run on every
    startup; it never alters existing tables.
    """

    engine = engine or ENGINE
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Schema bootstrap complete (%s tables)", len(Base.metadata.tables))
