# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from essay_grader.api.v1.dependencies import get_rate_limiter_dep
from essay_grader.core.security import create_access_token, create_refresh_token, hash_password
from essay_grader.core.settings import settings
from essay_grader.db.session import Base
from essay_grader.db.session import get_db as app_get_session
from essay_grader.main import app as fastapi_app
from essay_grader.models import Essay, EssayStatus, Role, SchoolClass, Task, User
from essay_grader.services.rate_limiter import RateLimiter

TEST_DB_URL = "sqlite://"
TEST_PASSWORD = "correct-horse"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture()
def rate_limiter() -> RateLimiter:
    return RateLimiter()


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI, db_session: Session, rate_limiter: RateLimiter
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_rate_limiter_dep] = lambda: rate_limiter
    try:
        yield
    finally:
        app.dependency_overrides.pop(app_get_session, None)
        app.dependency_overrides.pop(get_rate_limiter_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory persisting users with a known password."""

    def _make_user(
        email: str,
        role: str = Role.SUBMITTER.value,
        *,
        class_id: str | None = None,
        full_name: str = "Test User",
        password: str = TEST_PASSWORD,
    ) -> User:
        user = User(
            email=email,
            password_hash=hash_password(password),
            full_name=full_name,
            role=role,
            class_id=class_id,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def corrector(make_user: Callable[..., User]) -> User:
    return make_user("corrector@example.com", Role.CORRECTOR.value, full_name="Carla Corrector")


@pytest.fixture()
def other_corrector(make_user: Callable[..., User]) -> User:
    return make_user("other.corrector@example.com", Role.CORRECTOR.value)


@pytest.fixture()
def school_class(db_session: Session, corrector: User) -> SchoolClass:
    school_class = SchoolClass(name="3rd year A", corrector_id=corrector.id)
    db_session.add(school_class)
    db_session.commit()
    db_session.refresh(school_class)
    return school_class


@pytest.fixture()
def submitter(make_user: Callable[..., User], school_class: SchoolClass) -> User:
    return make_user(
        "submitter@example.com", class_id=school_class.id, full_name="Sam Submitter"
    )


@pytest.fixture()
def other_submitter(make_user: Callable[..., User], school_class: SchoolClass) -> User:
    return make_user("other.submitter@example.com", class_id=school_class.id)


@pytest.fixture()
def task(db_session: Session, corrector: User, school_class: SchoolClass) -> Task:
    task = Task(title="Argumentative essay", corrector_id=corrector.id)
    task.classes.append(school_class)
    db_session.add(task)
    db_session.commit()
    db_session.refresh(task)
    return task


@pytest.fixture()
def make_essay(db_session: Session, task: Task, submitter: User) -> Callable[..., Essay]:
    def _make_essay(status: str = EssayStatus.PENDING.value, **fields: Any) -> Essay:
        essay = Essay(
            task_id=task.id,
            submitter_id=fields.pop("submitter_id", submitter.id),
            file_ref=fields.pop("file_ref", "uploads/essay.pdf"),
            file_kind=fields.pop("file_kind", "application/pdf"),
            status=status,
            **fields,
        )
        db_session.add(essay)
        db_session.commit()
        db_session.refresh(essay)
        return essay

    return _make_essay


@pytest.fixture()
def essay(make_essay: Callable[..., Essay]) -> Essay:
    return make_essay()


@pytest.fixture()
def login_as(client: TestClient) -> Callable[[User], TestClient]:
    """Attach credential cookies for ``user`` to the test client."""

    def _login_as(user: User) -> TestClient:
        client.cookies.set(
            settings.access_cookie_name,
            create_access_token(user.id, role=user.role, email=user.email),
        )
        client.cookies.set(settings.refresh_cookie_name, create_refresh_token(user.id))
        return client

    return _login_as


@pytest.fixture()
def password() -> str:
    """Plain-text password of every user created by ``make_user``."""
    return TEST_PASSWORD
