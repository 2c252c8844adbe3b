"""
Copie de travail locale - Collections d'un utilisateur
======================================================

Six collections (magasins, catégories, produits, clients, factures, unités) gardées
en mémoire et persistées après chaque mutation dans un emplacement de snapshot.

Les opérations locales n'échouent jamais visiblement: un snapshot illisible est
remplacé par la valeur initiale (avec un warning), un échec d'écriture est journalisé
et l'état en mémoire reste valable pour la session.

Plusieurs vues peuvent partager le même emplacement: avant chaque lecture, la vue
compare la version de l'emplacement à celle qu'elle a lue et recharge si besoin.
"""

import copy
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from app.models import COLLECTIONS, CollectionName
from app.services.errors import UnknownCollectionError
from app.services.ids import generate_id
from app.services.invoice_service import InvoiceService
from app.services.local_slot import SnapshotSlot

logger = logging.getLogger(__name__)


def check_collection(name: str) -> str:
    if name not in COLLECTIONS:
        raise UnknownCollectionError(name)
    return name


class LocalCollectionStore:
    """
    Vue locale des collections d'un utilisateur

    Usage:
        store = LocalCollectionStore(MemorySlot())
        product = store.add('products', {'name': 'سازه F47', 'price': 100000})
        store.update('products', product['id'], {'price': 110000})
        store.remove('products', product['id'])
    """

    def __init__(self, slot: SnapshotSlot, id_generator: Callable[[str], str] = generate_id,
                 initial: Optional[Dict[str, List[dict]]] = None):
        self.slot = slot
        self.id_generator = id_generator
        self.initial = initial or {}
        self._collections: Dict[str, List[dict]] = {}
        self._versions: Dict[str, Any] = {}

    # ==================== Chargement / persistance ====================

    def _initial_value(self, name: str) -> List[dict]:
        return copy.deepcopy(self.initial.get(name, []))

    def _load(self, name: str) -> None:
        version = self.slot.version(name)
        try:
            text = self.slot.read(name)
        except (OSError, ValueError) as e:
            logger.warning(f"Lecture du snapshot '{name}' impossible, valeur initiale utilisée: {e}")
            text = None

        records = self._initial_value(name)
        if text is not None:
            try:
                parsed = json.loads(text)
            except ValueError as e:
                logger.warning(f"Snapshot '{name}' illisible, valeur initiale utilisée: {e}")
            else:
                if isinstance(parsed, list) and all(isinstance(r, dict) for r in parsed):
                    records = parsed
                else:
                    logger.warning(f"Snapshot '{name}' invalide (liste d'objets attendue), valeur initiale utilisée")

        self._collections[name] = records
        self._versions[name] = version

    def _records(self, name: str) -> List[dict]:
        check_collection(name)
        if name not in self._collections or self.slot.version(name) != self._versions.get(name):
            self._load(name)
        return self._collections[name]

    def _persist(self, name: str) -> None:
        try:
            self.slot.write(name, json.dumps(self._collections[name], ensure_ascii=False))
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Écriture du snapshot '{name}' impossible: {e}")
            return
        self._versions[name] = self.slot.version(name)

    def _new_id(self, name: str, records: List[dict]) -> str:
        existing = {r.get('id') for r in records}
        new_id = self.id_generator(name)
        while new_id in existing:
            new_id = self.id_generator(name)
        return new_id

    @staticmethod
    def _prepare(name: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if name == CollectionName.INVOICES.value:
            return InvoiceService.recalculate(record)
        return record

    # ==================== Lecture ====================

    def list(self, name: str) -> List[dict]:
        """Copie de la collection dans l'ordre courant"""
        return copy.deepcopy(self._records(name))

    def get(self, name: str, record_id: str) -> Optional[dict]:
        for record in self._records(name):
            if record.get('id') == record_id:
                return copy.deepcopy(record)
        return None

    def snapshot(self) -> Dict[str, List[dict]]:
        """Les six collections (format des sauvegardes)"""
        return {name: self.list(name) for name in COLLECTIONS}

    def refresh(self) -> List[str]:
        """Recharge les collections modifiées par une autre vue; retourne leurs noms"""
        refreshed = []
        for name in COLLECTIONS:
            if name in self._collections and self.slot.version(name) != self._versions.get(name):
                self._load(name)
                refreshed.append(name)
        return refreshed

    # ==================== Mutations ====================

    def add(self, name: str, record: Dict[str, Any]) -> dict:
        """
        Ajoute un document en tête de collection (plus récent d'abord)

        Un identifiant neuf est toujours attribué, un éventuel 'id' fourni est ignoré.

        Returns:
            dict: Le document stocké, avec son id
        """
        records = self._records(name)
        data = {k: v for k, v in dict(record).items() if k != 'id'}
        stored = self._prepare(name, {'id': self._new_id(name, records), **data})
        records.insert(0, stored)
        self._persist(name)
        return copy.deepcopy(stored)

    def update(self, name: str, record_id: str, changes: Dict[str, Any]) -> Optional[dict]:
        """
        Fusionne les champs fournis dans le document

        Un id inconnu est ignoré sans erreur.

        Returns:
            dict: Le document mis à jour, ou None si l'id est inconnu
        """
        records = self._records(name)
        for index, record in enumerate(records):
            if record.get('id') == record_id:
                merged = {**record, **{k: v for k, v in dict(changes).items() if k != 'id'}}
                records[index] = self._prepare(name, merged)
                self._persist(name)
                return copy.deepcopy(records[index])
        logger.debug(f"Mise à jour ignorée: {name}/{record_id} introuvable")
        return None

    def remove(self, name: str, record_id: str) -> bool:
        """Supprime le document; retourne False si l'id est inconnu"""
        records = self._records(name)
        kept = [r for r in records if r.get('id') != record_id]
        if len(kept) == len(records):
            logger.debug(f"Suppression ignorée: {name}/{record_id} introuvable")
            return False
        self._collections[name] = kept
        self._persist(name)
        return True

    def replace(self, name: str, records: List[dict]) -> None:
        """Remplace toute la collection (hydratation, restauration); montants des factures recalculés"""
        check_collection(name)
        self._collections[name] = [self._prepare(name, r) for r in copy.deepcopy(list(records))]
        self._persist(name)

    def replace_all(self, collections: Dict[str, List[dict]]) -> None:
        for name in COLLECTIONS:
            self.replace(name, collections.get(name, []))
