from __future__ import annotations

import pytest

from propdesk.auth import resolve_principal
from propdesk.db import Base, SessionLocal, engine
from propdesk.models import User
import propdesk.domain.audit  # noqa: F401  (registers the append-only guards)


@pytest.fixture(autouse=True)
def _fresh_registry():
    # every test starts from an empty in-memory registry
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def admin(db):
    u = User(name="Ada Admin", email="ada@propdesk.local", role="platform_owner", status="active")
    db.add(u)
    db.commit()
    return resolve_principal(db, f"user:{u.id}")
