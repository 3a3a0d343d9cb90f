from __future__ import annotations

import datetime as dt
import itertools
import os
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Optional, Sequence

_DEFAULT_DATA_DIR = Path(tempfile.mkdtemp(prefix="fieldpunch-tests-"))
os.environ.setdefault("FP_SQLITE_PATH", str(_DEFAULT_DATA_DIR / "fieldpunch.db"))
os.environ.setdefault("FP_EXPORT_DIR", str(_DEFAULT_DATA_DIR / "exports"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from fieldpunch import models, services
from fieldpunch.database import build_engine, get_db
from fieldpunch.main import app


@pytest.fixture(scope="function")
def engine(tmp_path: Path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture(scope="function")
def session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(session_factory: sessionmaker) -> Generator[TestClient, None, None]:
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


_usernames = itertools.count(1)


@pytest.fixture()
def make_user(session: Session) -> Callable[..., models.User]:
    def factory(role: str = "technician", username: Optional[str] = None) -> models.User:
        user = models.User(username=username or f"user{next(_usernames)}", role=role)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return factory


@pytest.fixture()
def advisor(make_user) -> models.User:
    return make_user("technical_advisor")


@pytest.fixture()
def technician(make_user) -> models.User:
    return make_user("technician")


@pytest.fixture()
def make_work_order(session: Session, advisor: models.User) -> Callable[..., models.WorkOrder]:
    def factory(
        assignee: Optional[models.User] = None,
        budgets: Sequence[float] = (2.0,),
        title: str = "Replace brake pads",
    ) -> models.WorkOrder:
        tasks = [{"title": f"Task {index + 1}", "budgeted_hours": hours} for index, hours in enumerate(budgets)]
        return services.create_work_order(
            session,
            advisor,
            title,
            tasks,
            assigned_to_id=assignee.id if assignee else None,
        )

    return factory


def auth(user: models.User) -> Dict[str, str]:
    return {"X-User-Id": str(user.id)}


@pytest.fixture()
def sample_day() -> dt.date:
    return dt.date(2024, 3, 4)
