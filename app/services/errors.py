"""
Exceptions de la couche données
===============================

Chaque erreur porte un code stable repris tel quel dans l'enveloppe JSON
des réponses d'erreur: {'code', 'message', 'details'}.
"""


class DataError(Exception):
    """Erreur de base de la couche données"""
    code = 'DATA_ERROR'
    status_code = 400

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, 'details': self.details}


class ValidationError(DataError):
    """Document refusé avant toute écriture"""
    code = 'VALIDATION_ERROR'
    status_code = 400


class BackupFormatError(DataError):
    """Sauvegarde importée illisible ou de forme invalide"""
    code = 'BACKUP_FORMAT_ERROR'
    status_code = 400


class UnknownCollectionError(DataError):
    """Nom de collection hors des six collections connues"""
    code = 'NOT_FOUND'
    status_code = 404

    def __init__(self, collection: str):
        super().__init__(f"Collection inconnue: {collection}", {'collection': collection})
        self.collection = collection


class RemoteSyncError(DataError):
    """Échec d'une lecture ou écriture sur le stockage distant"""
    code = 'REMOTE_SYNC_ERROR'
    status_code = 502

    def __init__(self, message: str, operation: str = None, collection: str = None, doc_id: str = None):
        details = {k: v for k, v in (('operation', operation), ('collection', collection), ('docId', doc_id)) if v}
        super().__init__(message, details)
        self.operation = operation
        self.collection = collection
        self.doc_id = doc_id
