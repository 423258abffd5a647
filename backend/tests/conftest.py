from __future__ import annotations

import os

# Settings are read at import time, so the test environment must be in place first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from core.bootstrap import bootstrap_schema
from core.database import ENGINE, SessionLocal
from core.security import create_access_token
from models import Base, Exam, Examinee, ExamRegistration
from services import hall_registry


@pytest.fixture(scope="session", autouse=True)
def _schema():
    bootstrap_schema(ENGINE)
    yield
    Base.metadata.drop_all(bind=ENGINE)


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with ENGINE.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app():
    from main import app as fastapi_app

    return fastapi_app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def admin_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def auth_headers(admin_id) -> dict[str, str]:
    token = create_access_token(user_id=str(admin_id), username="exam-office", role="ADMIN")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_exam(db):
    def _make(title: str = "Mid-term Mathematics") -> Exam:
        exam = Exam(title=title)
        db.add(exam)
        db.commit()
        return exam

    return _make


@pytest.fixture
def make_hall(db):
    def _make(name: str = "Main Hall", rows: int = 10, columns: int = 10, **extra):
        return hall_registry.create_hall(db, {"name": name, "rows": rows, "columns": columns, **extra})

    return _make


@pytest.fixture
def register_students(db):
    """Register `counts[class_level]` new active examinees for the exam."""

    def _register(exam: Exam, counts: dict[str | None, int], *, prefix: str = "REG") -> list[Examinee]:
        created: list[Examinee] = []
        n = db.execute(select(func.count(Examinee.id))).scalar_one()
        for class_level, count in counts.items():
            for _ in range(count):
                n += 1
                examinee = Examinee(
                    registration_number=f"{prefix}{n:05d}",
                    full_name=f"Student {n}",
                    class_level=class_level,
                )
                db.add(examinee)
                db.flush()
                db.add(ExamRegistration(exam_id=exam.id, student_id=examinee.id))
                created.append(examinee)
        db.commit()
        return created

    return _register
