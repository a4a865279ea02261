"""
Persistence operations against an in-memory SQLite database.
"""
import datetime
import logging

import numpy as np
import pytest
import sqlalchemy as sa

import litemodel
from litemodel import Database, MissingIdentifierError, ModelContractError
from litemodel import NotInitializedError, ValidationError, operations
from tests.fixtures.models import Account, Invoice


def _count(db, table, where='1=1'):
    with db.get_engine().connect() as cn:
        return cn.execute(sa.text(f'SELECT COUNT(*) FROM {table} WHERE {where}')).scalar()


def test_save_inserts_and_sets_id(sqlite_db, account):
    """Insert sets the generated id and both timestamps"""
    ident = account.save(db=sqlite_db)

    assert ident == 1
    assert account.id == 1
    assert account.created_at is not None
    assert account.updated_at == account.created_at
    assert account.deleted_at is None
    assert _count(sqlite_db, 'account') == 1


def test_inserted_row_values(sqlite_db, account):
    """Stored values carry the normalized forms"""
    account.balance = 3.14159
    account.save(db=sqlite_db)

    row = operations.find_by_column(sqlite_db, 'account', {'id': account.id})
    assert row['account.name'] == 'alice'
    assert row['account.balance'] == 3.14
    assert row['account.active'] == 1
    assert row['account.created_at'] == account.created_at.strftime('%Y-%m-%d %H:%M:%S')
    assert row['account.deleted_at'] is None


def test_ids_increase(saved_accounts):
    assert [a.id for a in saved_accounts] == [1, 2, 3]


def test_second_save_updates(sqlite_db, account):
    """Saving a model with an id routes to update"""
    account.save(db=sqlite_db)
    created = account.created_at
    account.name = 'alicia'

    assert account.save(db=sqlite_db) == 1
    assert _count(sqlite_db, 'account') == 1
    assert account.created_at is created
    assert account.updated_at >= created

    found = Account.find(db=sqlite_db, id=1)
    assert found.name == 'alicia'


def test_update_returns_rowcount(sqlite_db, saved_accounts):
    bob = saved_accounts[1]
    bob.balance = 5.0
    assert bob.update(db=sqlite_db) == 1

    ghost = Account(id=99, name='ghost')
    assert ghost.update(db=sqlite_db) == 0


def test_update_without_id_runs_nothing(registry):
    """A zero id fails before any connection is needed"""
    db = Database(registry=registry)
    with pytest.raises(MissingIdentifierError, match='id is null'):
        operations.update(db, Account(name='nobody'))


def test_save_requires_initialized_database(registry, account):
    with pytest.raises(NotInitializedError):
        operations.save(Database(registry=registry), account)


def test_find_no_match(sqlite_db, saved_accounts):
    """No match is None for a single find and empty for find all"""
    assert operations.find_by_column(sqlite_db, Account, {'name': 'zed'}) is None
    assert operations.find_all_by_column(sqlite_db, Account, {'name': 'zed'}) == []
    assert Account.find(db=sqlite_db, name='zed') is None
    assert Account.find_all(db=sqlite_db, name='zed') == []


def test_find_all_order_and_filter(sqlite_db, saved_accounts):
    active = Account.find_all(db=sqlite_db, active=1)
    assert [a.name for a in active] == ['alice', 'carol']

    everyone = Account.find_all(db=sqlite_db)
    assert [a.id for a in everyone] == [1, 2, 3]


def test_find_null_criterion(sqlite_db, saved_accounts):
    """A None criterion matches NULL columns"""
    assert len(Account.find_all(db=sqlite_db, deleted_at=None)) == 3


def test_find_materializes_model(sqlite_db, saved_accounts):
    """Rows come back as typed model instances"""
    bob = Account.find(db=sqlite_db, name='bob')

    assert isinstance(bob, Account)
    assert bob.id == saved_accounts[1].id
    assert bob.balance == 0.25
    assert bob.active is False
    assert bob.note == ''
    expected = saved_accounts[1].created_at.replace(microsecond=0, tzinfo=None)
    assert bob.created_at.replace(tzinfo=None) == expected


def test_find_rejects_bad_column(sqlite_db, saved_accounts):
    with pytest.raises(ValidationError):
        Account.find(db=sqlite_db, **{'name; --': 'x'})


def test_find_unregistered_table(sqlite_db):
    with pytest.raises(ModelContractError, match='No model registered'):
        operations.find_by_column(sqlite_db, 'account', {'id': 1})


def test_soft_delete_hides_row(sqlite_db, saved_accounts):
    """Soft-deleted rows stay in the table but are never found"""
    alice = saved_accounts[0]
    assert alice.soft_delete(db=sqlite_db) == 1

    assert alice.deleted_at is not None
    assert Account.find(db=sqlite_db, name='alice') is None
    assert [a.name for a in Account.find_all(db=sqlite_db)] == ['bob', 'carol']
    assert _count(sqlite_db, 'account') == 3
    assert _count(sqlite_db, 'account', 'deleted_at IS NOT NULL') == 1


def test_hard_delete_removes_row(sqlite_db, saved_accounts):
    bob = saved_accounts[1]
    assert operations.delete(sqlite_db, 'account', bob.id) == 1
    assert _count(sqlite_db, 'account') == 2
    assert saved_accounts[2].delete(db=sqlite_db) == 1
    assert _count(sqlite_db, 'account') == 1


def test_delete_requires_id(sqlite_db, account):
    with pytest.raises(MissingIdentifierError):
        account.delete(db=sqlite_db)


def test_caller_transaction_rollback(sqlite_db, account):
    """Writes in a caller transaction vanish when it rolls back"""
    with pytest.raises(RuntimeError):
        with sqlite_db.begin() as tx:
            account.save(tx=tx, db=sqlite_db)
            assert account.id == 1
            raise RuntimeError('abort')

    assert _count(sqlite_db, 'account') == 0


def test_caller_transaction_commit(sqlite_db):
    """Several writes share one caller transaction"""
    owner = Account(name='owner')
    with sqlite_db.begin() as tx:
        owner.save(tx=tx, db=sqlite_db)
        Invoice(account_id=owner.id, amount=np.float32(10.5)).save(tx=tx, db=sqlite_db)
        assert operations.find_by_column(sqlite_db, Invoice, {'account_id': owner.id}, tx=tx)

    assert _count(sqlite_db, 'account') == 1
    assert _count(sqlite_db, 'invoice') == 1


def test_row_scan(sqlite_db, saved_accounts):
    """row_scan yields one mapped row per call, then None"""
    fields = sqlite_db.registry.qualified_fields('account')
    names = []
    with sqlite_db.get_engine().connect() as cn:
        result = cn.execute(sa.text(f'SELECT {fields} FROM account ORDER BY id'))
        while True:
            model = litemodel.row_scan(result, lambda row: Account.from_row(row, db=sqlite_db))
            if model is None:
                break
            names.append(model.name)
    assert names == ['alice', 'bob', 'carol']


def test_join_with_qualified_fields(sqlite_db, saved_accounts):
    """A join over a dotted path materializes both models from one row"""
    carol = saved_accounts[2]
    invoice = Invoice(account_id=carol.id, amount=np.float32(19.999))
    invoice.save(db=sqlite_db)

    fields = sqlite_db.registry.qualified_fields('invoice', 'invoice.owner.account')
    sql = (f'SELECT {fields} FROM invoice '
           'JOIN account ON account.id = invoice.account_id '
           'WHERE invoice.id = :id')
    with sqlite_db.get_engine().connect() as cn:
        row = cn.execute(sa.text(sql), {'id': invoice.id}).mappings().one()

    found = Invoice.from_row(row, db=sqlite_db)
    owner = Account.from_row(row, prefix='owner.account', db=sqlite_db)
    assert found.id == invoice.id
    assert found.amount == pytest.approx(20.0)
    assert owner.id == carol.id
    assert owner.name == 'carol'


def test_update_debug_logs_statement(sqlite_db, saved_accounts, caplog):
    """Debug updates log the statement with its values inlined"""
    bob = saved_accounts[1]
    bob.name = 'bo"b'

    with caplog.at_level(logging.INFO, logger='litemodel.operations'):
        litemodel.update_debug(bob, db=sqlite_db)

    assert 'UPDATE account SET name="bo\\"b"' in caplog.text
    assert 'WHERE id=2' in caplog.text
    assert Account.find(db=sqlite_db, id=2).name == 'bo"b'


def test_facade_uses_default_database(default_db, account):
    """Module functions and model methods fall back to the default database"""
    litemodel.save(account)
    row = litemodel.find_by_column(Account, {'name': 'alice'})
    assert row['account.id'] == account.id

    account.balance = 1.0
    litemodel.update(account)
    assert Account.find(id=account.id).balance == 1.0

    litemodel.soft_delete(account)
    assert litemodel.find_all_by_column(Account, {}) == []
    assert litemodel.delete('account', account.id) == 1


def test_timestamps_round_trip_as_utc(sqlite_db):
    """Aware timestamps are stored in UTC"""
    eastern = datetime.timezone(datetime.timedelta(hours=-4))
    account = Account(name='tz')
    account.save(db=sqlite_db)
    account.deleted_at = None
    account.created_at = datetime.datetime(2019, 10, 10, 5, 0, 0, tzinfo=eastern)
    account.update(db=sqlite_db)

    row = operations.find_by_column(sqlite_db, Account, {'id': account.id})
    assert row['account.created_at'] == '2019-10-10 09:00:00'


if __name__ == '__main__':
    __import__('pytest').main([__file__])
