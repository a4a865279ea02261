"""
Fixtures for SQLite-backed integration tests.
"""
import pytest

from litemodel.connection import set_database
from tests.fixtures.models import Account


@pytest.fixture
def default_db(sqlite_db):
    """Install the SQLite database as the process default for the test."""
    previous = set_database(sqlite_db)
    yield sqlite_db
    set_database(previous)


@pytest.fixture
def saved_accounts(sqlite_db):
    """Three saved accounts, in insert order."""
    accounts = [
        Account(name='alice', balance=12.5),
        Account(name='bob', balance=0.25, active=False),
        Account(name='carol', balance=99.99),
    ]
    for account in accounts:
        account.save(db=sqlite_db)
    return accounts
