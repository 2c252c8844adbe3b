"""
Remote synchronizer tests against the SQL document store.

Verifies:
- Single document add / merge update / delete
- Seeding writes a consistent starter set
- Restore replaces the namespace atomically (legacy backups migrated, invoice amounts recomputed)
- Namespaces are isolated per user
- Store failures surface as RemoteSyncError and roll back
"""

import pytest
from sqlalchemy.exc import OperationalError

from app import db
from app.models import COLLECTIONS, UserDocument
from app.services.document_store import SQLDocumentStore, WriteOperation
from app.services.errors import BackupFormatError, RemoteSyncError, UnknownCollectionError
from app.services.sync_service import SyncService

USER = 'user-sync-1'


@pytest.fixture
def sync(db_session, sequential_ids):
    return SyncService(SQLDocumentStore(), id_generator=sequential_ids)


class TestSingleDocumentWrites:

    def test_add_and_fetch(self, sync):
        created = sync.add_document(USER, 'customers', {'name': 'علی', 'phone': '0912'})

        assert created['id'] == 'cust-000000001'
        assert sync.fetch_collection(USER, 'customers') == [
            {'id': 'cust-000000001', 'name': 'علی', 'phone': '0912'}
        ]
        stored = UserDocument.query.filter_by(user_id=USER, doc_id='cust-000000001').one()
        assert 'id' not in stored.data

    def test_add_with_given_id(self, sync):
        sync.add_document(USER, 'units', {'name': 'عدد'}, doc_id='unit-fixed0001')
        assert sync.get_document(USER, 'units', 'unit-fixed0001') == {'id': 'unit-fixed0001', 'name': 'عدد'}

    def test_update_merges(self, sync):
        sync.add_document(USER, 'products', {'name': 'F47', 'price': 100}, doc_id='prod-1')
        sync.update_document(USER, 'products', 'prod-1', {'price': 120})
        assert sync.get_document(USER, 'products', 'prod-1') == {'id': 'prod-1', 'name': 'F47', 'price': 120}

    def test_update_missing_document_creates_it(self, sync):
        sync.update_document(USER, 'products', 'prod-new', {'price': 5})
        assert sync.get_document(USER, 'products', 'prod-new') == {'id': 'prod-new', 'price': 5}

    def test_delete(self, sync):
        sync.add_document(USER, 'customers', {'name': 'علی'}, doc_id='cust-1')
        sync.delete_document(USER, 'customers', 'cust-1')
        assert sync.get_document(USER, 'customers', 'cust-1') is None
        # Deleting twice is harmless
        sync.delete_document(USER, 'customers', 'cust-1')

    def test_order_follows_insertion(self, sync):
        for name in ('a', 'b', 'c'):
            sync.add_document(USER, 'units', {'name': name})
        assert [u['name'] for u in sync.fetch_collection(USER, 'units')] == ['a', 'b', 'c']

    def test_unknown_collection(self, sync):
        with pytest.raises(UnknownCollectionError):
            sync.fetch_collection(USER, 'suppliers')

    def test_namespaces_are_isolated(self, sync):
        sync.add_document(USER, 'customers', {'name': 'علی'})
        assert sync.fetch_collection('someone-else', 'customers') == []


class TestSeed:

    def test_seed_defaults(self, sync):
        assert sync.has_data(USER) is False
        data = sync.seed_defaults(USER)

        assert sync.has_data(USER) is True
        remote = sync.fetch_all(USER)
        for name in COLLECTIONS:
            assert len(remote[name]) == len(data[name])

        store_id = data['stores'][0]['id']
        category_ids = {c['id'] for c in data['categories']}
        assert len(data['stores']) == 1
        assert len(data['categories']) == 3
        assert len(data['products']) == 3
        assert len(data['customers']) == 1
        assert len(data['units']) == 6
        assert data['invoices'] == []
        for category in data['categories']:
            assert category['storeId'] == store_id
            assert category.get('parentId') in category_ids | {None}
        for product in data['products']:
            assert product['storeId'] == store_id
            assert product['subCategoryId'] in category_ids


class TestRestore:

    def test_restore_replaces_everything(self, sync):
        sync.add_document(USER, 'customers', {'name': 'قدیمی'}, doc_id='cust-old')
        sync.add_document(USER, 'units', {'name': 'عدد'}, doc_id='unit-keep')

        backup = {
            'customers': [{'id': 'cust-new', 'name': 'جدید'}],
            'units': [{'id': 'unit-keep', 'name': 'عدد (جدید)'}],
            'products': [{'name': 'بدون شناسه', 'price': 10}],
        }
        restored = sync.restore_from_backup(USER, backup)

        remote = sync.fetch_all(USER)
        assert remote['customers'] == [{'id': 'cust-new', 'name': 'جدید'}]
        assert remote['units'] == [{'id': 'unit-keep', 'name': 'عدد (جدید)'}]
        assert remote['products'][0]['id'] == restored['products'][0]['id'] == 'prod-000000001'
        assert remote['stores'] == []

    def test_restore_migrates_legacy_backup(self, sync):
        backup = {
            'categories': [{'id': 'cate-root00001', 'name': 'کناف', 'storeName': 'دکوربند'}],
            'products': [{'id': 'prod-1', 'name': 'F47', 'subCategoryId': 'cate-root00001'}],
        }
        sync.restore_from_backup(USER, backup)

        remote = sync.fetch_all(USER)
        assert remote['stores'] == [{'id': 'store-root00001', 'name': 'دکوربند', 'address': '', 'phone': ''}]
        assert remote['products'][0]['storeId'] == 'store-root00001'

    def test_restore_recalculates_invoice_amounts(self, sync):
        backup = {'invoices': [{
            'id': 'invo-1',
            'items': [{'productId': 'prod-1', 'quantity': 2, 'unitPrice': 10, 'totalPrice': 999}],
            'subtotal': 999,
            'total': 5,
        }]}

        restored = sync.restore_from_backup(USER, backup)

        invoice = sync.fetch_collection(USER, 'invoices')[0]
        assert invoice['items'][0]['totalPrice'] == 20
        assert invoice['subtotal'] == 20
        assert invoice['total'] == 20
        assert restored['invoices'] == [invoice]

    def test_invalid_backup_writes_nothing(self, sync):
        sync.add_document(USER, 'customers', {'name': 'علی'}, doc_id='cust-1')
        with pytest.raises(BackupFormatError):
            sync.restore_from_backup(USER, '{"customers": "nope"}')
        assert sync.fetch_collection(USER, 'customers') == [{'id': 'cust-1', 'name': 'علی'}]

    def test_delete_all_user_data(self, sync):
        sync.seed_defaults(USER)
        sync.add_document('someone-else', 'units', {'name': 'عدد'})

        deleted = sync.delete_all_user_data(USER)

        assert deleted == 14
        assert sync.has_data(USER) is False
        assert len(sync.fetch_collection('someone-else', 'units')) == 1

    def test_export_backup(self, sync):
        sync.add_document(USER, 'units', {'name': 'عدد'})
        backup = sync.export_backup(USER)
        assert set(backup) == set(COLLECTIONS) | {'backupDate'}
        assert backup['units'][0]['name'] == 'عدد'


class TestFailures:

    def test_failed_batch_is_rolled_back(self, sync, monkeypatch):
        sync.add_document(USER, 'customers', {'name': 'علی'}, doc_id='cust-1')

        original_flush = db.session.flush
        calls = {'count': 0}

        def flaky_flush(*args, **kwargs):
            calls['count'] += 1
            if calls['count'] == 2:
                raise OperationalError('INSERT', {}, Exception('disk I/O error'))
            return original_flush(*args, **kwargs)

        monkeypatch.setattr(db.session, 'flush', flaky_flush)

        operations = [
            WriteOperation.set('units', 'unit-1', {'name': 'عدد'}),
            WriteOperation.set('units', 'unit-2', {'name': 'بسته'}),
        ]
        with pytest.raises(RemoteSyncError) as exc_info:
            sync.store.commit(USER, operations)

        monkeypatch.undo()
        assert exc_info.value.details == {'operation': 'set', 'collection': 'units', 'docId': 'unit-2'}
        assert sync.fetch_collection(USER, 'units') == []
        assert len(sync.fetch_collection(USER, 'customers')) == 1
