"""
Data context tests: local-first mutations and reconciliation with the remote store.

Verifies:
- Mutations apply locally and are pushed in order
- A remote failure never reverts local state; the queue keeps the failed operation
- flush() resumes once the store is back
- hydrate() waits for an empty queue, then mirrors the remote state
- seed() and restore() reset the queue and the local copy
- Category and store references resolved against the local copy
- One snapshot slot per user, even under concurrent access
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from app.models import COLLECTIONS
from app.services.data_context import DataServices, PENDING_KEY, sort_invoices_newest_first
from app.services.errors import BackupFormatError, RemoteSyncError
from app.services.local_slot import MemorySlot

from conftest import MemoryDocumentStore

USER = 'user-ctx-1'


@pytest.fixture
def services(memory_store, sequential_ids):
    return DataServices(memory_store, lambda user_id: MemorySlot(), id_generator=sequential_ids)


@pytest.fixture
def context(services):
    return services.context_for(USER)


def remote(store: MemoryDocumentStore, collection):
    return store.list_documents(USER, collection)


class TestMutations:

    def test_add_pushes_to_remote(self, context, memory_store):
        result = context.add('customers', {'name': 'علی'})

        assert result.found
        assert result.sync.ok and result.sync.pushed == 1 and result.sync.pending == 0
        assert remote(memory_store, 'customers') == [result.record]

    def test_update_pushes_only_changed_fields(self, context, memory_store):
        record = context.add('products', {'name': 'F47', 'price': 100}).record
        context.update('products', record['id'], {'price': 120})

        last_commit = memory_store.commits[-1]
        assert last_commit[0].kind.value == 'merge'
        assert last_commit[0].data == {'price': 120}
        assert remote(memory_store, 'products') == [{'id': record['id'], 'name': 'F47', 'price': 120}]

    def test_invoice_update_pushes_derived_amounts(self, context, memory_store):
        invoice = context.add('invoices', {
            'customerId': 'cust-1',
            'date': '2024-05-01T10:00:00Z',
            'items': [{'productId': 'prod-1', 'quantity': 2, 'unitPrice': 100}],
        }).record

        context.update('invoices', invoice['id'], {'discount': 50})

        pushed = memory_store.commits[-1][0].data
        assert pushed['discount'] == 50
        assert pushed['subtotal'] == 200
        assert pushed['total'] == 150

    def test_update_unknown_record(self, context, memory_store):
        result = context.update('customers', 'cust-missing', {'name': 'x'})
        assert not result.found
        assert result.sync is None
        assert memory_store.commits == []

    def test_remove(self, context, memory_store):
        record = context.add('units', {'name': 'عدد'}).record
        result = context.remove('units', record['id'])

        assert result.found and result.record == record
        assert remote(memory_store, 'units') == []
        assert not context.remove('units', record['id']).found


class TestRemoteFailures:

    def test_failure_keeps_local_state_and_queue(self, context, memory_store):
        memory_store.fail_on.add('set')

        result = context.add('customers', {'name': 'علی'})

        assert not result.sync.ok
        assert result.sync.pending == 1
        assert result.sync.error == 'store offline'
        assert context.list('customers') == [result.record]
        assert [op.kind for op in context.pending_operations()] == ['add']
        assert remote(memory_store, 'customers') == []

    def test_flush_stops_at_first_failure(self, context, memory_store):
        memory_store.fail_on.add('set')
        first = context.add('customers', {'name': 'علی'}).record
        context.update('customers', first['id'], {'phone': '0912'})
        context.add('customers', {'name': 'مریم'})

        result = context.flush()

        assert result.pushed == 0
        assert result.pending == 3
        assert [op.kind for op in context.pending_operations()] == ['add', 'update', 'add']

    def test_flush_resumes_in_order(self, context, memory_store):
        memory_store.fail_on.add('set')
        first = context.add('customers', {'name': 'علی'}).record
        context.update('customers', first['id'], {'phone': '0912'})
        memory_store.fail_on.clear()

        result = context.flush()

        assert result.ok and result.pushed == 2 and result.pending == 0
        assert remote(memory_store, 'customers') == [{'id': first['id'], 'name': 'علی', 'phone': '0912'}]
        assert context.pending_operations() == []

    def test_partial_flush(self, context, memory_store):
        memory_store.fail_on.add('commit')
        context.add('customers', {'name': 'علی'})
        context.add('units', {'name': 'عدد'})
        assert len(context.pending_operations()) == 2

        memory_store.fail_on = {'merge'}
        record = context.list('customers')[0]
        result = context.update('customers', record['id'], {'phone': '0912'})

        assert result.sync.pushed == 2
        assert result.sync.pending == 1
        assert [op.kind for op in context.pending_operations()] == ['update']

    def test_queue_survives_a_new_context(self, services, memory_store):
        memory_store.fail_on.add('set')
        services.context_for(USER).add('customers', {'name': 'علی'})

        reopened = services.context_for(USER)
        assert len(reopened.pending_operations()) == 1
        assert reopened.list('customers')[0]['name'] == 'علی'

    def test_corrupt_queue_is_ignored(self, services, context):
        services.slot_for(USER).write(PENDING_KEY, 'not json')
        assert context.pending_operations() == []

    def test_manual_flush_mode(self, memory_store, sequential_ids):
        services = DataServices(memory_store, lambda user_id: MemorySlot(), auto_flush=False,
                                id_generator=sequential_ids)
        context = services.context_for(USER)

        result = context.add('customers', {'name': 'علی'})

        assert result.sync.pending == 1
        assert remote(memory_store, 'customers') == []
        assert context.flush().pushed == 1
        assert len(remote(memory_store, 'customers')) == 1


class TestHydrate:

    def test_hydrate_mirrors_remote(self, context, memory_store):
        memory_store.documents[USER] = {
            'customers': {'cust-1': {'name': 'علی'}},
            'invoices': {
                'invo-old': {'date': '2024-01-01T00:00:00Z'},
                'invo-new': {'date': '2024-06-01T00:00:00Z'},
            },
        }

        result = context.hydrate()

        assert result.ok
        assert context.list('customers') == [{'id': 'cust-1', 'name': 'علی'}]
        assert [i['id'] for i in context.list('invoices')] == ['invo-new', 'invo-old']

    def test_hydrate_recalculates_invoice_amounts(self, context, memory_store):
        memory_store.documents[USER] = {
            'invoices': {
                'invo-1': {
                    'items': [{'quantity': 3, 'unitPrice': 5, 'totalPrice': 1}],
                    'discount': 5,
                    'total': 1000,
                },
            },
        }

        context.hydrate()

        invoice = context.get('invoices', 'invo-1')
        assert invoice['items'][0]['totalPrice'] == 15
        assert invoice['subtotal'] == 15
        assert invoice['total'] == 10

    def test_hydrate_deferred_while_operations_pending(self, context, memory_store):
        memory_store.fail_on.add('set')
        local = context.add('customers', {'name': 'محلی'}).record

        result = context.hydrate()

        assert result.pending == 1
        assert context.list('customers') == [local]

    def test_hydrate_read_failure_keeps_local_state(self, context, memory_store):
        record = context.add('units', {'name': 'عدد'}).record
        memory_store.fail_on.add('list')

        with pytest.raises(RemoteSyncError):
            context.hydrate()
        assert context.list('units') == [record]

    def test_ensure_hydrated_only_once(self, context, memory_store):
        memory_store.documents[USER] = {'units': {'unit-1': {'name': 'عدد'}}}
        context.ensure_hydrated()
        assert context.list('units') == [{'id': 'unit-1', 'name': 'عدد'}]

        memory_store.documents[USER] = {}
        assert context.ensure_hydrated() is None
        assert len(context.list('units')) == 1


class TestSeedAndRestore:

    def test_seed_installs_starter_data(self, context, memory_store):
        assert context.seed() is True
        assert len(context.list('units')) == 6
        assert len(remote(memory_store, 'stores')) == 1
        assert context.seed() is False

    def test_restore_replaces_local_and_remote(self, context, memory_store):
        memory_store.fail_on.add('set')
        context.add('customers', {'name': 'قدیمی'})
        memory_store.fail_on.clear()

        counts = context.restore({
            'customers': [{'id': 'cust-1', 'name': 'علی'}],
            'invoices': [
                {'id': 'invo-1', 'date': '2024-01-01T00:00:00Z'},
                {'id': 'invo-2', 'date': '2024-03-01T00:00:00Z'},
            ],
        })

        assert counts == {'stores': 0, 'categories': 0, 'products': 0, 'customers': 1, 'invoices': 2, 'units': 0}
        assert context.pending_operations() == []
        assert context.list('customers') == [{'id': 'cust-1', 'name': 'علی'}]
        assert [i['id'] for i in context.list('invoices')] == ['invo-2', 'invo-1']
        assert remote(memory_store, 'customers') == [{'id': 'cust-1', 'name': 'علی'}]

    def test_invalid_restore_changes_nothing(self, context):
        record = context.add('customers', {'name': 'علی'}).record
        with pytest.raises(BackupFormatError):
            context.restore('not json')
        assert context.list('customers') == [record]

    def test_rejected_restore_changes_nothing(self, context, memory_store):
        record = context.add('customers', {'name': 'علی'}).record
        memory_store.fail_on.add('commit')

        with pytest.raises(RemoteSyncError):
            context.restore({'customers': []})
        assert context.list('customers') == [record]
        assert remote(memory_store, 'customers') == [record]

    def test_export_backup(self, context):
        context.add('units', {'name': 'عدد'})
        backup = context.export_backup()
        assert set(backup) == set(COLLECTIONS) | {'backupDate'}


class TestOverdueStatus:

    def test_refresh_overdue_status(self, context, memory_store):
        late = context.add('invoices', {
            'customerId': 'cust-1', 'date': '2024-01-01T00:00:00Z', 'dueDate': '2024-01-15T00:00:00Z',
            'status': 'Pending', 'items': [],
        }).record
        context.add('invoices', {
            'customerId': 'cust-1', 'date': '2024-01-01T00:00:00Z', 'dueDate': '2024-12-01T00:00:00Z',
            'status': 'Pending', 'items': [],
        })
        context.add('invoices', {
            'customerId': 'cust-1', 'date': '2024-01-01T00:00:00Z', 'dueDate': '2024-01-02T00:00:00Z',
            'status': 'Paid', 'items': [],
        })

        updated = context.refresh_overdue_status(now=datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert [i['id'] for i in updated] == [late['id']]
        assert context.get('invoices', late['id'])['status'] == 'Overdue'
        assert memory_store.get_document(USER, 'invoices', late['id'])['status'] == 'Overdue'


class TestReferenceErrors:

    def test_unknown_references(self, context):
        errors = context.reference_errors('products', {'subCategoryId': 'cate-nope', 'storeId': 'stor-nope'})
        assert set(errors) == {'subCategoryId', 'storeId'}

    def test_known_and_empty_references(self, context):
        store = context.add('stores', {'name': 'دکوربند'}).record
        category = context.add('categories', {'name': 'کناف', 'storeId': store['id']}).record

        assert context.reference_errors('products', {'subCategoryId': category['id'], 'categoryId': ''}) == {}
        assert context.reference_errors('customers', {'storeId': 'stor-nope'}) == {}

    def test_category_own_parent(self, context):
        category = context.add('categories', {'name': 'کناف'}).record
        errors = context.reference_errors('categories', {'parentId': category['id']}, category['id'])
        assert set(errors) == {'parentId'}


class TestSlots:

    def test_concurrent_users_share_one_slot(self, memory_store):
        created = []

        def slow_factory(user_id):
            time.sleep(0.01)
            slot = MemorySlot()
            created.append(slot)
            return slot

        services = DataServices(memory_store, slow_factory)
        with ThreadPoolExecutor(max_workers=8) as pool:
            slots = list(pool.map(lambda _: services.slot_for(USER), range(16)))

        assert len(created) == 1
        assert all(slot is created[0] for slot in slots)


def test_sort_invoices_newest_first_puts_undated_last():
    invoices = [{'id': 'a'}, {'id': 'b', 'date': '2024-01-01T00:00:00Z'}, {'id': 'c', 'date': 'garbage'}]
    assert [i['id'] for i in sort_invoices_newest_first(invoices)][0] == 'b'
