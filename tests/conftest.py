import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from parsnip import Config, Model
from parsnip.store.sql import SqlStore

from tests import CountingStore, bind_config


@pytest.fixture
def sql_store():
    engine = create_engine('sqlite://', poolclass=StaticPool, connect_args={'check_same_thread': False})
    return SqlStore(engine)


@pytest.fixture
def store(sql_store):
    return CountingStore(sql_store)


@pytest.fixture(autouse=True)
def config(request, store):
    config = Config(store=store)
    bind_config(Model, config, request)
    return config
