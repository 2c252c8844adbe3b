"""
Firestore document store tests, against an in-memory stand-in for the client.

Verifies:
- Operations of a lot go through a single WriteBatch
- Merge updates only replace the given top-level fields
- A lot above the Firestore batch limit is refused before anything is written
"""

import pytest

from app.services.document_store import WriteOperation
from app.services.errors import RemoteSyncError
from app.services.firestore_store import FirestoreDocumentStore, MAX_BATCH_WRITES


class FakeReference:

    def __init__(self, path):
        self.path = path

    def collection(self, name):
        return FakeReference(f"{self.path}/{name}")

    def document(self, name):
        return FakeReference(f"{self.path}/{name}")


class FakeBatch:

    def __init__(self):
        self.writes = []
        self.committed = False

    def set(self, ref, data, merge=False):
        self.writes.append(('set', ref.path, data, merge))

    def delete(self, ref):
        self.writes.append(('delete', ref.path))

    def commit(self):
        self.committed = True


class FakeClient:

    def __init__(self):
        self.batches = []

    def collection(self, name):
        return FakeReference(name)

    def batch(self):
        batch = FakeBatch()
        self.batches.append(batch)
        return batch


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def store(client):
    return FirestoreDocumentStore(client=client)


class TestCommit:

    def test_single_batch(self, store, client):
        store.commit('user-1', [
            WriteOperation.set('units', 'unit-1', {'name': 'عدد'}),
            WriteOperation.delete('units', 'unit-2'),
        ])

        assert len(client.batches) == 1
        batch = client.batches[0]
        assert batch.committed
        assert batch.writes == [
            ('set', 'users/user-1/units/unit-1', {'name': 'عدد'}, False),
            ('delete', 'users/user-1/units/unit-2'),
        ]

    def test_merge_lists_given_fields(self, store, client):
        store.commit('user-1', [WriteOperation.merge('products', 'prod-1', {'price': 120})])

        assert client.batches[0].writes == [('set', 'users/user-1/products/prod-1', {'price': 120}, ['price'])]

    def test_batch_limit_accepted(self, store, client):
        operations = [WriteOperation.set('units', f'unit-{i}', {'name': str(i)}) for i in range(MAX_BATCH_WRITES)]
        store.commit('user-1', operations)
        assert len(client.batches[0].writes) == MAX_BATCH_WRITES

    def test_oversized_lot_refused(self, store, client):
        operations = [WriteOperation.set('units', f'unit-{i}', {'name': str(i)})
                      for i in range(MAX_BATCH_WRITES + 1)]

        with pytest.raises(RemoteSyncError) as excinfo:
            store.commit('user-1', operations)

        assert excinfo.value.operation == 'commit'
        assert str(MAX_BATCH_WRITES + 1) in str(excinfo.value)
        assert client.batches == []
