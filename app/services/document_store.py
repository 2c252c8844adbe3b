"""
Stockage distant des documents - Interface et implémentation SQL
================================================================

Chaque utilisateur possède six collections de documents, équivalent de
users/{uid}/{collection}/{docId}. Les écritures sont regroupées en lots
appliqués de façon atomique (tout ou rien).

Implémentations:
- SQLDocumentStore: table user_documents via Flask-SQLAlchemy (défaut)
- FirestoreDocumentStore: Cloud Firestore via firebase_admin (firestore_store.py)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.models import UserDocument, WriteKind
from app.services.errors import RemoteSyncError

logger = logging.getLogger(__name__)


@dataclass
class WriteOperation:
    """Une écriture d'un lot"""
    kind: WriteKind
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def set(cls, collection: str, doc_id: str, data: Dict[str, Any]) -> 'WriteOperation':
        return cls(WriteKind.SET, collection, doc_id, strip_id(data))

    @classmethod
    def merge(cls, collection: str, doc_id: str, data: Dict[str, Any]) -> 'WriteOperation':
        return cls(WriteKind.MERGE, collection, doc_id, strip_id(data))

    @classmethod
    def delete(cls, collection: str, doc_id: str) -> 'WriteOperation':
        return cls(WriteKind.DELETE, collection, doc_id)


def strip_id(data: Dict[str, Any]) -> Dict[str, Any]:
    """Le contenu stocké ne répète pas l'id du document"""
    return {k: v for k, v in (data or {}).items() if k != 'id'}


class DocumentStore(ABC):
    """Interface du stockage distant"""

    @abstractmethod
    def list_documents(self, user_id: str, collection: str) -> List[dict]:
        """Documents de la collection, chacun avec sa clé 'id'"""
        pass

    @abstractmethod
    def get_document(self, user_id: str, collection: str, doc_id: str) -> Optional[dict]:
        pass

    @abstractmethod
    def commit(self, user_id: str, operations: List[WriteOperation]) -> None:
        """
        Applique le lot de façon atomique

        Raises:
            RemoteSyncError: aucune écriture du lot n'est appliquée
        """
        pass


class SQLDocumentStore(DocumentStore):
    """Stockage relationnel: une ligne par document"""

    def list_documents(self, user_id: str, collection: str) -> List[dict]:
        try:
            rows = UserDocument.query.filter_by(
                user_id=user_id, collection=collection
            ).order_by(UserDocument.id).all()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise RemoteSyncError(f"Lecture impossible: {e}", operation='list', collection=collection) from e
        return [row.to_dict() for row in rows]

    def get_document(self, user_id: str, collection: str, doc_id: str) -> Optional[dict]:
        try:
            row = UserDocument.query.filter_by(
                user_id=user_id, collection=collection, doc_id=doc_id
            ).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise RemoteSyncError(f"Lecture impossible: {e}", operation='get',
                                  collection=collection, doc_id=doc_id) from e
        return row.to_dict() if row else None

    def commit(self, user_id: str, operations: List[WriteOperation]) -> None:
        current: Optional[WriteOperation] = None
        try:
            for current in operations:
                row = UserDocument.query.filter_by(
                    user_id=user_id, collection=current.collection, doc_id=current.doc_id
                ).first()

                if current.kind is WriteKind.DELETE:
                    if row is not None:
                        db.session.delete(row)
                        # Libère la clé unique avant une éventuelle réinsertion du même doc
                        db.session.flush()
                elif row is None:
                    db.session.add(UserDocument(
                        user_id=user_id,
                        collection=current.collection,
                        doc_id=current.doc_id,
                        data=dict(current.data),
                    ))
                    db.session.flush()
                elif current.kind is WriteKind.MERGE:
                    row.data = {**(row.data or {}), **current.data}
                else:
                    row.data = dict(current.data)

            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Lot d'écritures annulé pour {user_id}: {e}")
            raise RemoteSyncError(
                f"Écriture impossible: {e}",
                operation=current.kind.value if current else 'commit',
                collection=current.collection if current else None,
                doc_id=current.doc_id if current else None,
            ) from e
