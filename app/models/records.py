"""
Enregistrements métier - Magasins, catégories, produits, clients, factures, unités
=================================================================================

Les documents circulent dans l'application sous forme de dictionnaires à clés camelCase
(format des sauvegardes JSON et du stockage distant). Ces dataclasses servent à la
validation des saisies et à la construction des données de démarrage.

Les champs inconnus sont conservés dans `extra` et réémis tels quels par to_dict().
"""

from dataclasses import dataclass, field, fields
from numbers import Number
from typing import Any, ClassVar, Dict, List, Optional

from app.models.enums import CollectionName, InvoiceStatus


def to_camel(name: str) -> str:
    """sub_category_id -> subCategoryId"""
    head, *rest = name.split('_')
    return head + ''.join(part[:1].upper() + part[1:] for part in rest)


def is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


@dataclass
class Record:
    """Base commune: conversion dictionnaire <-> dataclass et validation"""

    REQUIRED: ClassVar[tuple] = ()
    NON_NEGATIVE: ClassVar[tuple] = ()

    id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def wire_keys(cls) -> Dict[str, str]:
        return {to_camel(f.name): f.name for f in fields(cls) if f.name != 'extra'}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {}
        extra = {}
        wire = cls.wire_keys()
        for key, value in (data or {}).items():
            if key in wire:
                known[wire[key]] = value
            else:
                extra[key] = value
        return cls(extra=extra, **known)

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        for f in fields(self):
            if f.name == 'extra':
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            result[to_camel(f.name)] = value
        result.update(self.extra)
        return result

    def validate(self, only: Optional[set] = None) -> Dict[str, str]:
        """
        Retourne les erreurs par champ (clé camelCase)

        Args:
            only: Limite la vérification à ces clés (mise à jour partielle)
        """
        errors = {}
        for name in self.REQUIRED:
            key = to_camel(name)
            if only is not None and key not in only:
                continue
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                errors[key] = 'Champ obligatoire'
        for name in self.NON_NEGATIVE:
            key = to_camel(name)
            if only is not None and key not in only:
                continue
            value = getattr(self, name)
            if value is None:
                continue
            if not is_number(value):
                errors[key] = 'Nombre attendu'
            elif value < 0:
                errors[key] = 'Doit être positif ou nul'
        return errors


@dataclass
class Store(Record):
    """Magasin: identité affichée sur les factures"""
    REQUIRED: ClassVar[tuple] = ('name',)

    name: str = ''
    address: str = ''
    phone: str = ''
    logo_url: Optional[str] = None
    description: Optional[str] = None
    bank_account_holder: Optional[str] = None
    bank_name: Optional[str] = None
    bank_account_number: Optional[str] = None
    bank_iban: Optional[str] = None
    bank_card_number: Optional[str] = None


@dataclass
class Category(Record):
    """Catégorie de produits, éventuellement sous-catégorie (parent_id)"""
    REQUIRED: ClassVar[tuple] = ('name',)

    name: str = ''
    store_id: Optional[str] = None
    parent_id: Optional[str] = None
    description: Optional[str] = None


@dataclass
class Product(Record):
    """Produit vendu par un magasin"""
    REQUIRED: ClassVar[tuple] = ('name',)
    NON_NEGATIVE: ClassVar[tuple] = ('price', 'sub_unit_quantity', 'sub_unit_price')

    name: str = ''
    description: str = ''
    price: float = 0
    image_url: Optional[str] = None
    store_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    category_id: Optional[str] = None
    unit: Optional[str] = None
    code: Optional[str] = None
    sub_unit: Optional[str] = None
    sub_unit_quantity: Optional[float] = None
    sub_unit_price: Optional[float] = None


@dataclass
class Customer(Record):
    REQUIRED: ClassVar[tuple] = ('name',)

    name: str = ''
    email: str = ''
    phone: str = ''
    address: str = ''
    purchase_history: str = ''
    avatar_url: Optional[str] = None


@dataclass
class Unit(Record):
    REQUIRED: ClassVar[tuple] = ('name',)
    NON_NEGATIVE: ClassVar[tuple] = ('default_quantity',)

    name: str = ''
    default_quantity: Optional[float] = None


@dataclass
class InvoiceItem:
    """Ligne de facture: copie figée du produit au moment de la vente"""
    product_id: str = ''
    product_name: str = ''
    quantity: float = 0
    unit_price: float = 0
    total_price: float = 0
    unit: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InvoiceItem':
        wire = {to_camel(f.name): f.name for f in fields(cls)}
        return cls(**{wire[k]: v for k, v in (data or {}).items() if k in wire})

    def to_dict(self) -> Dict[str, Any]:
        return {to_camel(f.name): getattr(self, f.name)
                for f in fields(self) if getattr(self, f.name) is not None}

    def validate(self) -> Dict[str, str]:
        errors = {}
        if not self.product_id:
            errors['productId'] = 'Champ obligatoire'
        if not is_number(self.quantity) or self.quantity <= 0:
            errors['quantity'] = 'Doit être strictement positif'
        if not is_number(self.unit_price) or self.unit_price < 0:
            errors['unitPrice'] = 'Doit être positif ou nul'
        return errors


@dataclass
class Invoice(Record):
    """Facture: les montants dérivés sont recalculés à chaque écriture"""
    REQUIRED: ClassVar[tuple] = ('customer_id', 'date')
    NON_NEGATIVE: ClassVar[tuple] = ('discount', 'tax')

    invoice_number: str = ''
    customer_id: str = ''
    customer_name: str = ''
    customer_email: str = ''
    date: str = ''
    due_date: Optional[str] = None
    status: str = InvoiceStatus.PENDING.value
    items: List[InvoiceItem] = field(default_factory=list)
    subtotal: float = 0
    discount: float = 0
    tax: float = 0
    total: float = 0
    description: Optional[str] = None
    store_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Invoice':
        invoice = super().from_dict(data)
        if isinstance(invoice.items, list):
            invoice.items = [InvoiceItem.from_dict(i) if isinstance(i, dict) else i for i in invoice.items]
        return invoice

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['items'] = [i.to_dict() if isinstance(i, InvoiceItem) else i for i in self.items]
        return result

    def validate(self, only: Optional[set] = None) -> Dict[str, str]:
        errors = super().validate(only)
        if only is None or 'status' in only:
            if self.status not in InvoiceStatus.values():
                errors['status'] = f"Statut invalide (attendu: {', '.join(InvoiceStatus.values())})"
        if only is None or 'items' in only:
            if not isinstance(self.items, list):
                errors['items'] = 'Liste attendue'
            else:
                for index, item in enumerate(self.items):
                    if not isinstance(item, InvoiceItem):
                        errors[f'items[{index}]'] = 'Objet attendu'
                        continue
                    for key, message in item.validate().items():
                        errors[f'items[{index}].{key}'] = message
        return errors


RECORD_TYPES = {
    CollectionName.STORES.value: Store,
    CollectionName.CATEGORIES.value: Category,
    CollectionName.PRODUCTS.value: Product,
    CollectionName.CUSTOMERS.value: Customer,
    CollectionName.INVOICES.value: Invoice,
    CollectionName.UNITS.value: Unit,
}


def validate_record(collection: str, data: Dict[str, Any], partial: bool = False) -> Dict[str, str]:
    """
    Valide un document avant écriture

    Args:
        collection: Nom de la collection
        data: Document (clés camelCase)
        partial: True pour une mise à jour (seuls les champs fournis sont vérifiés)

    Returns:
        dict des erreurs par champ (vide si valide)
    """
    if not isinstance(data, dict):
        return {'_': 'Objet JSON attendu'}
    record_type = RECORD_TYPES[collection]
    record = record_type.from_dict(data)
    return record.validate(only=set(data.keys()) if partial else None)
