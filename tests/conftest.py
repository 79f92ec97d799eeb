"""
Shared fixtures for the finance ledger test suite
"""

import pytest
from datetime import date

from finance_ledger.config import LedgerConfig
from finance_ledger.engine import LedgerEngine
from finance_ledger.storage import InMemoryStorage, SQLiteStorage


USER_ID = "user-1"
OTHER_USER_ID = "user-2"

# Fixed reference date so backfill counts do not depend on the calendar
TODAY = date(2024, 6, 15)


@pytest.fixture
def ledger_config():
    return LedgerConfig(database_url="memory://", enable_audit_logging=True)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Every engine-level test runs against both local backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(":memory:")
    yield backend
    backend.close()


@pytest.fixture
def engine(storage, ledger_config):
    return LedgerEngine(storage=storage, config=ledger_config)


@pytest.fixture
def memory_engine(ledger_config):
    return LedgerEngine(storage=InMemoryStorage(), config=ledger_config)
