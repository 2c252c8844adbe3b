"""
Modèles de l'application
Export centralisé des enums, enregistrements métier et modèles SQLAlchemy
"""

from app.models.enums import (
    CollectionName, InvoiceStatus, WriteKind, BackupShape, BrandType, COLLECTIONS
)
from app.models.records import (
    Record, Store, Category, Product, Customer, Unit, Invoice, InvoiceItem,
    RECORD_TYPES, validate_record
)
from app.models.document import UserDocument

__all__ = [
    # Enums
    'CollectionName',
    'InvoiceStatus',
    'WriteKind',
    'BackupShape',
    'BrandType',
    'COLLECTIONS',
    # Enregistrements
    'Record',
    'Store',
    'Category',
    'Product',
    'Customer',
    'Unit',
    'Invoice',
    'InvoiceItem',
    'RECORD_TYPES',
    'validate_record',
    # Models
    'UserDocument',
]
