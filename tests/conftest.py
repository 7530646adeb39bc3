import os

# Settings are read at import time, give them values that never touch a real server
os.environ.setdefault("DATABASE_CONNECTION_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "signalrtc-test")
os.environ.setdefault("SIGNAL_STORE_TRANSACTIONS", "false")
os.environ.setdefault("JANUS_URL", "http://janus.test/janus")

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

from core.signal_store import SignalStore
from services.signal_relay_service import SignalRelayService


@pytest.fixture
def mongo_db():
  return AsyncMongoMockClient()["signalrtc-test"]


@pytest_asyncio.fixture
async def signal_store(mongo_db):
  store = SignalStore(mongo_db, "webrtc_signals", use_transactions=False)
  await store.ensure_indexes()
  return store


@pytest.fixture
def signal_service(signal_store):
  return SignalRelayService(signal_store)
