"""Service to mirror user collections against the remote document store.

Handles:
- Collection reads (one collection, every collection, one document)
- Starter data seeding for new users
- Backup restore (legacy migration, then wipe and rewrite in a single batch)
- Single document writes (add, merge update, delete)
- Full namespace deletion and backup export
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from app.models import COLLECTIONS, CollectionName
from app.services.default_data import build_default_data
from app.services.document_store import DocumentStore, WriteOperation
from app.services.ids import generate_id
from app.services.invoice_service import InvoiceService
from app.services.local_store import check_collection
from app.services.migration_service import migrate_backup

logger = logging.getLogger(__name__)


class SyncService:
    """Remote synchronizer for the six collections of a user namespace.

    Every failure of the underlying store surfaces as RemoteSyncError.
    """

    def __init__(self, store: DocumentStore, id_generator: Callable[[str], str] = generate_id):
        self.store = store
        self.id_generator = id_generator

    def _commit(self, user_id: str, operations: List[WriteOperation], label: str) -> None:
        self.store.commit(user_id, operations)
        logger.info(f"Remote {label} committed for {user_id} ({len(operations)} writes)")

    # ==================== Reads ====================

    def fetch_collection(self, user_id: str, collection_name: str) -> List[dict]:
        """Fetch every document of a collection.

        Args:
            user_id (str): Namespace owner.
            collection_name (str): One of the six collections.

        Returns:
            list: Documents, each carrying its 'id' key.
        """
        check_collection(collection_name)
        return self.store.list_documents(user_id, collection_name)

    def fetch_all(self, user_id: str) -> Dict[str, List[dict]]:
        return {name: self.store.list_documents(user_id, name) for name in COLLECTIONS}

    def get_document(self, user_id: str, collection_name: str, doc_id: str) -> Optional[dict]:
        check_collection(collection_name)
        return self.store.get_document(user_id, collection_name, doc_id)

    def has_data(self, user_id: str) -> bool:
        """A namespace is considered initialized once it holds at least one store."""
        return bool(self.store.list_documents(user_id, CollectionName.STORES.value))

    def export_backup(self, user_id: str) -> Dict[str, Any]:
        backup = self.fetch_all(user_id)
        backup['backupDate'] = datetime.now(timezone.utc).isoformat()
        return backup

    # ==================== Bulk writes ====================

    def seed_defaults(self, user_id: str) -> Dict[str, List[dict]]:
        """Write the starter set into the namespace in a single batch.

        Returns:
            dict: The starter collections as written.
        """
        data = build_default_data(self.id_generator)
        operations = [
            WriteOperation.set(name, record['id'], record)
            for name in COLLECTIONS
            for record in data[name]
        ]
        self._commit(user_id, operations, 'seed')
        return data

    def restore_from_backup(self, user_id: str, raw: Any) -> Dict[str, List[dict]]:
        """Replace the whole namespace with the content of a backup.

        The backup is migrated first (legacy shape accepted). Existing documents
        are deleted and the backup documents written in one atomic batch: on
        failure the namespace keeps its previous content.

        Args:
            user_id (str): Namespace owner.
            raw: Backup payload (dict, JSON text or bytes).

        Returns:
            dict: The normalized collections as written (missing ids generated).

        Raises:
            BackupFormatError: Invalid payload, nothing is written.
            RemoteSyncError: Batch rejected, nothing is written.
        """
        normalized = migrate_backup(raw)

        operations = []
        incoming_ids = {}
        for name in COLLECTIONS:
            records = []
            for record in normalized[name]:
                if not record.get('id'):
                    record = {'id': self.id_generator(name), **record}
                # derived amounts recomputed from the line items
                if name == CollectionName.INVOICES.value:
                    record = InvoiceService.recalculate(record)
                records.append(record)
                operations.append(WriteOperation.set(name, record['id'], record))
            normalized[name] = records
            incoming_ids[name] = {r['id'] for r in records}

        # Documents about to be overwritten need no delete of their own
        for name in COLLECTIONS:
            for document in self.store.list_documents(user_id, name):
                if document['id'] not in incoming_ids[name]:
                    operations.append(WriteOperation.delete(name, document['id']))

        self._commit(user_id, operations, 'restore')
        return normalized

    def delete_all_user_data(self, user_id: str) -> int:
        """Delete every document of the namespace in a single batch.

        Returns:
            int: Number of deleted documents.
        """
        operations = [
            WriteOperation.delete(name, document['id'])
            for name in COLLECTIONS
            for document in self.store.list_documents(user_id, name)
        ]
        self._commit(user_id, operations, 'wipe')
        return len(operations)

    # ==================== Single document writes ====================

    def add_document(self, user_id: str, collection_name: str, data: Dict[str, Any],
                     doc_id: Optional[str] = None) -> dict:
        """Create a document, with a generated id unless one is given."""
        check_collection(collection_name)
        doc_id = doc_id or data.get('id') or self.id_generator(collection_name)
        self._commit(user_id, [WriteOperation.set(collection_name, doc_id, data)], 'add')
        return {'id': doc_id, **{k: v for k, v in data.items() if k != 'id'}}

    def update_document(self, user_id: str, collection_name: str, doc_id: str,
                        changes: Dict[str, Any]) -> None:
        """Merge the given fields into the document (created if missing)."""
        check_collection(collection_name)
        self._commit(user_id, [WriteOperation.merge(collection_name, doc_id, changes)], 'update')

    def delete_document(self, user_id: str, collection_name: str, doc_id: str) -> None:
        check_collection(collection_name)
        self._commit(user_id, [WriteOperation.delete(collection_name, doc_id)], 'delete')
