from __future__ import annotations

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base


Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
JSON_DOC = JSON().with_variant(JSONB(), "postgresql")
