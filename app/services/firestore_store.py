"""
Stockage distant Cloud Firestore
Chemin des documents: users/{uid}/{collection}/{docId}
"""

import logging
from typing import List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as google_exceptions

from app.models import WriteKind
from app.services.document_store import DocumentStore, WriteOperation
from app.services.errors import RemoteSyncError

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'
# Limite Firestore du nombre d'écritures par WriteBatch
MAX_BATCH_WRITES = 500


class FirestoreDocumentStore(DocumentStore):
    """
    Stockage Firestore: un WriteBatch par lot

    Un lot reste atomique, il est donc limité à MAX_BATCH_WRITES écritures
    (une restauration dépassant la limite est refusée sans rien écrire).

    Args:
        app: Application firebase_admin (voir get_firebase_app)
        client: Client Firestore déjà construit (remplace app)
    """

    def __init__(self, app=None, client=None):
        self.client = client or firestore.client(app)

    def _collection(self, user_id: str, collection: str):
        return self.client.collection(USERS_COLLECTION).document(user_id).collection(collection)

    def list_documents(self, user_id: str, collection: str) -> List[dict]:
        try:
            snapshots = self._collection(user_id, collection).stream()
            return [{'id': snap.id, **(snap.to_dict() or {})} for snap in snapshots]
        except google_exceptions.GoogleAPIError as e:
            raise RemoteSyncError(f"Lecture Firestore impossible: {e}", operation='list',
                                  collection=collection) from e

    def get_document(self, user_id: str, collection: str, doc_id: str) -> Optional[dict]:
        try:
            snap = self._collection(user_id, collection).document(doc_id).get()
        except google_exceptions.GoogleAPIError as e:
            raise RemoteSyncError(f"Lecture Firestore impossible: {e}", operation='get',
                                  collection=collection, doc_id=doc_id) from e
        if not snap.exists:
            return None
        return {'id': snap.id, **(snap.to_dict() or {})}

    def commit(self, user_id: str, operations: List[WriteOperation]) -> None:
        if not operations:
            return
        if len(operations) > MAX_BATCH_WRITES:
            logger.error(f"Lot Firestore refusé pour {user_id}: {len(operations)} écritures")
            raise RemoteSyncError(
                f"Lot de {len(operations)} écritures refusé: Firestore accepte au plus "
                f"{MAX_BATCH_WRITES} écritures par lot atomique",
                operation='commit',
            )
        batch = self.client.batch()
        for op in operations:
            ref = self._collection(user_id, op.collection).document(op.doc_id)
            if op.kind is WriteKind.DELETE:
                batch.delete(ref)
            elif op.kind is WriteKind.MERGE:
                # Fusion superficielle: seuls les champs de premier niveau fournis sont remplacés
                batch.set(ref, op.data, merge=list(op.data.keys()) or True)
            else:
                batch.set(ref, op.data)
        try:
            batch.commit()
        except google_exceptions.GoogleAPIError as e:
            logger.error(f"Lot Firestore annulé pour {user_id} ({len(operations)} écritures): {e}")
            raise RemoteSyncError(f"Écriture Firestore impossible: {e}", operation='commit') from e
