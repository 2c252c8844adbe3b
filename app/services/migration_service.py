"""
Migration des sauvegardes - Ancien format vers format normalisé
===============================================================

Dans l'ancien format, les informations du magasin (nom, adresse, téléphone, logo)
étaient portées par des catégories. Le format actuel range les magasins dans leur
propre collection et les catégories/produits y font référence par storeId.

La transformation est pure et idempotente:
    migrate_backup(migrate_backup(x)) == migrate_backup(x)

Règles pour une catégorie ancien format:
- un magasin synthétique est créé (id: store-{suffixe de l'id de la catégorie});
- les références storeId des catégories et produits sont réécrites vers ce magasin;
- la catégorie est conservée (sans les champs magasin) si elle est parent d'une autre
  catégorie ou référencée par un produit, sinon elle est supprimée.
"""

import copy
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.models import COLLECTIONS, BackupShape, CollectionName
from app.services.errors import BackupFormatError

logger = logging.getLogger(__name__)

LEGACY_STORE_FIELDS = ('storeName', 'storeAddress', 'storePhone', 'storeLogoUrl')
# Champ logo des anciennes catégories-magasins
LEGACY_LOGO_FIELD = 'logoUrl'
SYNTHETIC_STORE_PREFIX = 'store'


@dataclass
class ParsedBackup:
    """Sauvegarde validée, avec sa forme détectée"""
    shape: BackupShape
    collections: Dict[str, List[dict]] = field(default_factory=dict)
    backup_date: Optional[str] = None


def is_legacy_category(category: Dict[str, Any]) -> bool:
    return any(key in category for key in LEGACY_STORE_FIELDS)


def parse_backup(raw: Any) -> ParsedBackup:
    """
    Valide une sauvegarde brute et détecte sa forme

    Args:
        raw: dict, ou texte/bytes JSON

    Returns:
        ParsedBackup (collections absentes -> listes vides, clés inconnues ignorées)

    Raises:
        BackupFormatError: JSON illisible, racine non-objet ou collection invalide
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise BackupFormatError('Sauvegarde illisible (encodage UTF-8 attendu)', {'encoding': str(e)}) from e
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise BackupFormatError('Sauvegarde illisible (JSON invalide)', {'json': str(e)}) from e

    if not isinstance(raw, dict):
        raise BackupFormatError('La sauvegarde doit être un objet JSON')

    collections = {}
    errors = {}
    for name in COLLECTIONS:
        value = raw.get(name)
        if value is None:
            collections[name] = []
        elif isinstance(value, list) and all(isinstance(r, dict) for r in value):
            collections[name] = copy.deepcopy(value)
        else:
            errors[name] = "Liste d'objets attendue"

    if errors:
        raise BackupFormatError('Collections invalides dans la sauvegarde', errors)

    legacy = any(is_legacy_category(c) for c in collections[CollectionName.CATEGORIES.value])
    return ParsedBackup(
        shape=BackupShape.LEGACY if legacy else BackupShape.NORMALIZED,
        collections=collections,
        backup_date=raw.get('backupDate'),
    )


def _synthetic_store_id(category: Dict[str, Any]) -> str:
    category_id = str(category.get('id') or '')
    suffix = category_id.split('-', 1)[1] if '-' in category_id else category_id
    if not suffix:
        digest = hashlib.sha1(json.dumps(category, sort_keys=True, ensure_ascii=False).encode('utf-8'))
        suffix = digest.hexdigest()[:9]
    return f"{SYNTHETIC_STORE_PREFIX}-{suffix}"


def _unique_store_id(category: Dict[str, Any], taken: set) -> str:
    """Id synthétique non encore attribué (suffixe dérivé de la catégorie en cas de collision)"""
    store_id = _synthetic_store_id(category)
    if store_id not in taken:
        return store_id
    seed = str(category.get('id') or json.dumps(category, sort_keys=True, ensure_ascii=False))
    digest = hashlib.sha1(seed.encode('utf-8')).hexdigest()
    candidate = f"{store_id}-{digest[:6]}"
    counter = 2
    while candidate in taken:
        candidate = f"{store_id}-{digest[:6]}-{counter}"
        counter += 1
    return candidate


def _legacy_store_keys(category: Dict[str, Any]) -> List[str]:
    """Anciennes clés pouvant désigner le magasin porté par cette catégorie"""
    keys = []
    for value in (category.get('storeId'), category.get('id'), category.get('storeName')):
        if value and value not in keys:
            keys.append(value)
    return keys


def _store_from_category(category: Dict[str, Any], store_id: str) -> Dict[str, Any]:
    store = {
        'id': store_id,
        'name': category.get('storeName') or category.get('name') or '',
        'address': category.get('storeAddress') or '',
        'phone': category.get('storePhone') or '',
    }
    logo_url = category.get('storeLogoUrl') or category.get(LEGACY_LOGO_FIELD)
    if logo_url:
        store['logoUrl'] = logo_url
    return store


def _referenced_category_ids(categories: List[dict], products: List[dict]) -> set:
    referenced = {c.get('parentId') for c in categories if c.get('parentId')}
    for product in products:
        for key in ('subCategoryId', 'categoryId'):
            if product.get(key):
                referenced.add(product[key])
    return referenced


def _migrate_legacy(collections: Dict[str, List[dict]]) -> Dict[str, List[dict]]:
    categories = collections[CollectionName.CATEGORIES.value]
    products = collections[CollectionName.PRODUCTS.value]
    stores = list(collections[CollectionName.STORES.value])
    store_ids = {s.get('id') for s in stores}
    existing_ids = set(store_ids)

    # ancienne clé (storeId / id de catégorie / nom) -> nouvel id de magasin
    key_map: Dict[str, str] = {}
    category_store: Dict[str, str] = {}
    created = 0

    for category in categories:
        if not is_legacy_category(category):
            continue
        old_keys = _legacy_store_keys(category)
        store_id = next((key_map[k] for k in old_keys if k in key_map), None)
        if store_id is None:
            # magasin déjà présent sous l'une des clés de la catégorie
            store_id = next((k for k in old_keys if k in existing_ids), None)
        if store_id is None:
            store_id = _unique_store_id(category, store_ids)
            stores.append(_store_from_category(category, store_id))
            store_ids.add(store_id)
            created += 1
        for key in old_keys:
            key_map.setdefault(key, store_id)
        if category.get('id'):
            category_store[category['id']] = store_id

    referenced = _referenced_category_ids(categories, products)

    migrated_categories = []
    dropped = 0
    for category in categories:
        if is_legacy_category(category):
            if category.get('id') not in referenced:
                dropped += 1
                continue
            store_id = category_store.get(category.get('id'))
            category = {k: v for k, v in category.items()
                        if k not in LEGACY_STORE_FIELDS and k != LEGACY_LOGO_FIELD}
            category['storeId'] = store_id
        elif category.get('storeId') in key_map:
            category = {**category, 'storeId': key_map[category['storeId']]}
        migrated_categories.append(category)

    migrated_products = []
    for product in products:
        store_id = product.get('storeId')
        if store_id in key_map:
            product = {**product, 'storeId': key_map[store_id]}
        elif not store_id:
            parent = product.get('subCategoryId') or product.get('categoryId')
            if parent in category_store:
                product = {**product, 'storeId': category_store[parent]}
        migrated_products.append(product)

    logger.info(
        f"Migration sauvegarde ancien format: {created} magasin(s) créé(s), "
        f"{dropped} catégorie(s)-magasin supprimée(s)"
    )

    result = dict(collections)
    result[CollectionName.STORES.value] = stores
    result[CollectionName.CATEGORIES.value] = migrated_categories
    result[CollectionName.PRODUCTS.value] = migrated_products
    return result


def normalize(parsed: ParsedBackup) -> Dict[str, List[dict]]:
    """Forme normalisée: exactement les six collections"""
    collections = {name: parsed.collections.get(name, []) for name in COLLECTIONS}
    if parsed.shape is BackupShape.LEGACY:
        return _migrate_legacy(collections)
    return collections


def migrate_backup(raw: Any) -> Dict[str, List[dict]]:
    """
    Convertit une sauvegarde (ancien ou nouveau format) en forme normalisée

    Args:
        raw: dict, ou texte/bytes JSON

    Returns:
        dict: {'stores', 'categories', 'products', 'customers', 'invoices', 'units'}

    Raises:
        BackupFormatError: sauvegarde invalide
    """
    return normalize(parse_backup(raw))
