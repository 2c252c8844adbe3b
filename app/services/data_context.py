"""
Contexte données - Réconciliation copie locale / stockage distant
=================================================================

Politique: cohérence à terme, sans retour arrière.
- Chaque mutation est appliquée localement d'abord, puis ajoutée à une file
  d'écritures en attente, persistée dans le même emplacement que les collections.
- flush() pousse la file dans l'ordre; le premier échec arrête le flush et laisse
  l'opération fautive et les suivantes en attente. Le résultat est retourné à
  l'appelant, qui peut notifier l'utilisateur sans bloquer.
- L'état local n'est jamais annulé à cause d'un échec distant.
- hydrate() pousse d'abord la file et ne remplace l'état local par l'état distant
  que lorsque plus rien n'est en attente.

DataServices construit un DataContext par utilisateur; il est attaché à
l'application Flask (app.extensions['data_services']).
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from app.models import COLLECTIONS, CollectionName, InvoiceStatus
from app.services.document_store import DocumentStore
from app.services.errors import RemoteSyncError
from app.services.ids import generate_id
from app.services.invoice_service import InvoiceService, parse_datetime
from app.services.local_slot import FileSlot, MemorySlot, SnapshotSlot, slot_directory_for
from app.services.local_store import LocalCollectionStore
from app.services.sync_service import SyncService

logger = logging.getLogger(__name__)

PENDING_KEY = '_pending'
INVOICE_DERIVED_FIELDS = ('items', 'subtotal', 'total')

# Champs de référence: collection -> {champ: collection visée}
REFERENCE_FIELDS = {
    CollectionName.CATEGORIES.value: {
        'storeId': CollectionName.STORES.value,
        'parentId': CollectionName.CATEGORIES.value,
    },
    CollectionName.PRODUCTS.value: {
        'subCategoryId': CollectionName.CATEGORIES.value,
        'categoryId': CollectionName.CATEGORIES.value,
        'storeId': CollectionName.STORES.value,
    },
}
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def sort_invoices_newest_first(invoices: List[dict]) -> List[dict]:
    return sorted(invoices, key=lambda i: parse_datetime(i.get('date')) or _EPOCH, reverse=True)


@dataclass
class PendingOperation:
    """Écriture locale pas encore confirmée par le stockage distant"""
    kind: str                 # add | update | delete
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    queued_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PendingOperation':
        return cls(
            kind=data['kind'],
            collection=data['collection'],
            doc_id=data['doc_id'],
            data=data.get('data') or {},
            queued_at=data.get('queued_at') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class FlushResult:
    """Résultat d'une poussée de la file"""
    pushed: int = 0
    pending: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {'pushed': self.pushed, 'pending': self.pending, 'error': self.error}


@dataclass
class MutationResult:
    """Résultat d'une mutation locale et de sa synchronisation"""
    record: Optional[dict]
    sync: Optional[FlushResult] = None

    @property
    def found(self) -> bool:
        return self.record is not None


class DataContext:
    """
    Point d'entrée des données d'un utilisateur

    Usage:
        ctx = services.context_for(uid)
        result = ctx.add('customers', {'name': 'Ali'})
        if not result.sync.ok:
            notify(result.sync.error)
    """

    def __init__(self, user_id: str, local: LocalCollectionStore, sync_service: SyncService,
                 auto_flush: bool = True):
        self.user_id = user_id
        self.local = local
        self.sync = sync_service
        self.auto_flush = auto_flush

    # ==================== File d'attente ====================

    def _read_queue(self) -> List[PendingOperation]:
        try:
            text = self.local.slot.read(PENDING_KEY)
        except OSError as e:
            logger.warning(f"File d'attente illisible pour {self.user_id}: {e}")
            return []
        if not text:
            return []
        try:
            return [PendingOperation.from_dict(item) for item in json.loads(text)]
        except (ValueError, TypeError, KeyError) as e:
            logger.warning(f"File d'attente invalide pour {self.user_id}, ignorée: {e}")
            return []

    def _write_queue(self, queue: List[PendingOperation]) -> None:
        try:
            self.local.slot.write(PENDING_KEY, json.dumps([op.to_dict() for op in queue], ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"File d'attente non persistée pour {self.user_id}: {e}")

    def pending_operations(self) -> List[PendingOperation]:
        return self._read_queue()

    def _enqueue(self, operation: PendingOperation) -> Optional[FlushResult]:
        queue = self._read_queue()
        queue.append(operation)
        self._write_queue(queue)
        if self.auto_flush:
            return self.flush()
        return FlushResult(pending=len(queue))

    def _push(self, op: PendingOperation) -> None:
        if op.kind == 'add':
            self.sync.add_document(self.user_id, op.collection, op.data, doc_id=op.doc_id)
        elif op.kind == 'update':
            self.sync.update_document(self.user_id, op.collection, op.doc_id, op.data)
        elif op.kind == 'delete':
            self.sync.delete_document(self.user_id, op.collection, op.doc_id)
        else:
            logger.error(f"Opération en attente inconnue ignorée: {op.kind}")

    def flush(self) -> FlushResult:
        """
        Pousse les écritures en attente dans l'ordre

        Returns:
            FlushResult: nombre poussé, nombre restant, message du premier échec
        """
        queue = self._read_queue()
        pushed = 0
        while queue:
            op = queue[0]
            try:
                self._push(op)
            except RemoteSyncError as e:
                logger.warning(
                    f"Synchronisation interrompue pour {self.user_id} "
                    f"({op.kind} {op.collection}/{op.doc_id}): {e.message}"
                )
                return FlushResult(pushed=pushed, pending=len(queue), error=e.message)
            queue.pop(0)
            pushed += 1
            self._write_queue(queue)

        if pushed:
            logger.info(f"{pushed} écriture(s) synchronisée(s) pour {self.user_id}")
        return FlushResult(pushed=pushed, pending=0)

    # ==================== Lecture ====================

    def list(self, collection: str) -> List[dict]:
        return self.local.list(collection)

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        return self.local.get(collection, record_id)

    def snapshot(self) -> Dict[str, List[dict]]:
        return self.local.snapshot()

    def reference_errors(self, collection: str, data: Dict[str, Any], record_id: Optional[str] = None) -> Dict[str, str]:
        """
        Références absentes de la copie locale (catégorie, magasin)

        Seuls les champs fournis et non vides sont vérifiés. Une catégorie ne peut
        pas être sa propre parente.

        Returns:
            dict des erreurs par champ (vide si toutes les références existent)
        """
        errors = {}
        for key, target in REFERENCE_FIELDS.get(collection, {}).items():
            value = data.get(key)
            if not value:
                continue
            if key == 'parentId' and value == record_id:
                errors[key] = 'Une catégorie ne peut pas être sa propre parente'
            elif self.local.get(target, value) is None:
                errors[key] = f"Référence introuvable dans {target}: {value}"
        return errors

    def export_backup(self) -> Dict[str, Any]:
        """Sauvegarde de l'état local (format normalisé + date)"""
        backup = self.local.snapshot()
        backup['backupDate'] = datetime.now(timezone.utc).isoformat()
        return backup

    # ==================== Mutations ====================

    def add(self, collection: str, data: Dict[str, Any]) -> MutationResult:
        record = self.local.add(collection, data)
        sync = self._enqueue(PendingOperation('add', collection, record['id'], record))
        return MutationResult(record, sync)

    def update(self, collection: str, record_id: str, changes: Dict[str, Any]) -> MutationResult:
        record = self.local.update(collection, record_id, changes)
        if record is None:
            return MutationResult(None)
        pushed_fields = {k: v for k, v in changes.items() if k != 'id'}
        if collection == CollectionName.INVOICES.value:
            pushed_fields.update({k: record[k] for k in INVOICE_DERIVED_FIELDS if k in record})
        sync = self._enqueue(PendingOperation('update', collection, record_id, pushed_fields))
        return MutationResult(record, sync)

    def remove(self, collection: str, record_id: str) -> MutationResult:
        existing = self.local.get(collection, record_id)
        if not self.local.remove(collection, record_id):
            return MutationResult(None)
        sync = self._enqueue(PendingOperation('delete', collection, record_id))
        return MutationResult(existing, sync)

    def refresh_overdue_status(self, now: Optional[datetime] = None) -> List[dict]:
        """Passe en Overdue les factures en attente dont l'échéance est dépassée"""
        updated = []
        invoices = self.local.list(CollectionName.INVOICES.value)
        for invoice in InvoiceService.overdue_invoices(invoices, now):
            result = self.update(CollectionName.INVOICES.value, invoice['id'], {'status': InvoiceStatus.OVERDUE.value})
            if result.found:
                updated.append(result.record)
        return updated

    # ==================== Opérations globales ====================

    def hydrate(self) -> FlushResult:
        """
        Recharge l'état local depuis le stockage distant

        Les écritures en attente sont poussées d'abord; tant qu'il en reste,
        l'état local est conservé.

        Raises:
            RemoteSyncError: lecture distante impossible (état local conservé)
        """
        result = self.flush()
        if result.pending:
            logger.warning(f"Hydratation différée pour {self.user_id}: {result.pending} écriture(s) en attente")
            return result

        remote = self.sync.fetch_all(self.user_id)
        remote[CollectionName.INVOICES.value] = sort_invoices_newest_first(remote[CollectionName.INVOICES.value])
        self.local.replace_all(remote)
        return result

    def ensure_hydrated(self) -> Optional[FlushResult]:
        """Première ouverture: charge l'état distant si aucun snapshot local n'existe"""
        if any(self.local.slot.version(name) is not None for name in COLLECTIONS):
            return None
        return self.hydrate()

    def seed(self) -> bool:
        """
        Installe les données de démarrage si l'espace distant est vide

        Returns:
            bool: True si les données ont été installées
        """
        if self.sync.has_data(self.user_id):
            return False
        data = self.sync.seed_defaults(self.user_id)
        self._write_queue([])
        self.local.replace_all(data)
        logger.info(f"Données de démarrage installées pour {self.user_id}")
        return True

    def restore(self, raw: Any) -> Dict[str, int]:
        """
        Remplace toutes les données par le contenu d'une sauvegarde

        Les écritures en attente sont abandonnées: la sauvegarde fait foi.

        Returns:
            dict: nombre de documents restaurés par collection

        Raises:
            BackupFormatError: sauvegarde invalide (rien n'est modifié)
            RemoteSyncError: lot refusé (rien n'est modifié)
        """
        normalized = self.sync.restore_from_backup(self.user_id, raw)
        self._write_queue([])
        normalized[CollectionName.INVOICES.value] = sort_invoices_newest_first(
            normalized[CollectionName.INVOICES.value]
        )
        self.local.replace_all(normalized)
        counts = {name: len(normalized[name]) for name in COLLECTIONS}
        logger.info(f"Sauvegarde restaurée pour {self.user_id}: {counts}")
        return counts


class DataServices:
    """
    Conteneur des services données, construit une fois par application

    Args:
        document_store: Stockage distant
        slot_factory: user_id -> SnapshotSlot (appelé une fois par utilisateur)
        auto_flush: Pousser les écritures juste après chaque mutation
        id_generator: Générateur d'identifiants
    """

    def __init__(self, document_store: DocumentStore, slot_factory: Callable[[str], SnapshotSlot],
                 auto_flush: bool = True, id_generator: Callable[[str], str] = generate_id):
        self.document_store = document_store
        self.sync_service = SyncService(document_store, id_generator)
        self.slot_factory = slot_factory
        self.auto_flush = auto_flush
        self.id_generator = id_generator
        self._slots: Dict[str, SnapshotSlot] = {}
        self._slots_lock = threading.Lock()

    @classmethod
    def from_config(cls, config) -> 'DataServices':
        """Construit les services selon DOCUMENT_STORE et LOCAL_SLOT"""
        if config.get('DOCUMENT_STORE') == 'firestore':
            from app.services.firebase_app import get_firebase_app
            from app.services.firestore_store import FirestoreDocumentStore
            document_store = FirestoreDocumentStore(app=get_firebase_app(config))
        else:
            from app.services.document_store import SQLDocumentStore
            document_store = SQLDocumentStore()

        if config.get('LOCAL_SLOT') == 'file':
            base_dir = config.get('LOCAL_SLOT_DIR')
            slot_factory = lambda user_id: FileSlot(slot_directory_for(base_dir, user_id))
        else:
            slot_factory = lambda user_id: MemorySlot()

        logger.info(
            f"Services données: stockage {config.get('DOCUMENT_STORE', 'sql')}, "
            f"copie locale {config.get('LOCAL_SLOT', 'memory')}"
        )
        return cls(document_store, slot_factory, auto_flush=config.get('SYNC_AUTO_FLUSH', True))

    def slot_for(self, user_id: str) -> SnapshotSlot:
        with self._slots_lock:
            slot = self._slots.get(user_id)
            if slot is None:
                slot = self._slots[user_id] = self.slot_factory(user_id)
            return slot

    def context_for(self, user_id: str) -> DataContext:
        local = LocalCollectionStore(self.slot_for(user_id), id_generator=self.id_generator)
        return DataContext(user_id, local, self.sync_service, auto_flush=self.auto_flush)

    def shutdown(self) -> None:
        """Oublie les emplacements ouverts (fin de vie de l'application)"""
        with self._slots_lock:
            self._slots.clear()
