"""
Soft Delete Test Configuration

Provides pytest fixtures for an in-memory SQLite database, a model registry
and a fake model that records the calls it receives.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from soft_delete_hook.hook import SoftDeleteHook
from soft_delete_hook.models import Orm


class FakeModel:
    """Model handle that records every operation it receives"""

    def __init__(self, identity="user", primary_key="id", attributes=None, archive_model_identity=None):
        self.identity = identity
        self.primary_key = primary_key
        self.attributes = attributes if attributes is not None else {"id": {"type": "number"}}
        self.archive_model_identity = archive_model_identity
        self.calls = []

    def _call(self, name, *args):
        self.calls.append((name,) + args)
        return {"operation": name, "args": args}

    def find(self, criteria=None):
        return self._call("find", criteria)

    def find_one(self, criteria=None):
        return self._call("find_one", criteria)

    def update(self, criteria, values):
        return self._call("update", criteria, values)

    def update_one(self, criteria, values):
        return self._call("update_one", criteria, values)

    def destroy(self, criteria):
        return self._call("destroy", criteria)

    def destroy_one(self, criteria):
        return self._call("destroy_one", criteria)

    def create(self, values):
        return self._call("create", values)

    def count(self, criteria=None):
        return self._call("count", criteria)


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def make_fake_model():
    return FakeModel


@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database shared by every connection of a test"""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def orm(db_engine):
    """
    Registry with a regular model, a model archiving into `archive`,
    the archive model itself and a junction model. Not loaded nor synced.
    """
    orm = Orm(engine=db_engine)
    orm.define(
        "user",
        {
            "name": {"type": "string", "required": True},
            "email": {"type": "string"},
            "age": {"type": "number"},
            "active": {"type": "boolean", "defaults_to": True},
        },
    )
    orm.define(
        "pet",
        {
            "name": {"type": "string", "required": True},
            "species": {"type": "string", "defaults_to": "cat"},
        },
        archive_model_identity="archive",
    )
    orm.define(
        "archive",
        {
            "from_model": {"type": "string"},
            "original_record": {"type": "json"},
        },
    )
    orm.define(
        "user_pets__pet_owners",
        {
            "user_pets": {"type": "number"},
            "pet_owners": {"type": "number"},
        },
    )
    return orm


@pytest.fixture(scope="function")
def soft_orm(orm):
    """Registry after the soft delete hook ran and the tables were created"""
    orm.load()
    SoftDeleteHook().configure_models(orm.models)
    orm.sync()
    return orm
