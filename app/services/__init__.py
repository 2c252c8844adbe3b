"""
Services de l'application
Logique métier réutilisable
"""

from app.services.errors import (
    DataError, ValidationError, BackupFormatError, UnknownCollectionError, RemoteSyncError
)
from app.services.local_store import LocalCollectionStore
from app.services.sync_service import SyncService
from app.services.data_context import DataContext, DataServices
from app.services.invoice_service import InvoiceService
from app.services.report_service import ReportService
from app.services.generation_service import GenerationGateway

__all__ = [
    'DataError',
    'ValidationError',
    'BackupFormatError',
    'UnknownCollectionError',
    'RemoteSyncError',
    'LocalCollectionStore',
    'SyncService',
    'DataContext',
    'DataServices',
    'InvoiceService',
    'ReportService',
    'GenerationGateway'
]
