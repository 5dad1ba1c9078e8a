import pytest

from camara_crawler.config import parse_cfg
from camara_crawler.sink import UpsertSink, default_entities

from fakes import FakeDatabase


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def sink(db):
    return UpsertSink(db, default_entities({}))


@pytest.fixture
def cfg():
    return parse_cfg({"db": {"uri_env": "MONGO_URI", "database_env": "MONGO_DB"}})
