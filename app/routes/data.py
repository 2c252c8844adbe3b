"""
Routes données - Collections de l'utilisateur
=============================================

Lecture et mutation des six collections (copie locale d'abord, synchronisation
distante ensuite), hydratation, données de démarrage, sauvegarde et restauration.

Les mutations répondent toujours avec l'état local; un échec de synchronisation
est signalé dans 'sync' sans faire échouer la requête.
"""

import logging

from flask import Blueprint, Response, g, json, request

from app import limiter
from app.models import COLLECTIONS, validate_record
from app.services.errors import BackupFormatError, DataError, UnknownCollectionError
from app.utils.decorators import user_required
from app.utils.helpers import (
    api_response, data_error_response, error_response, get_data_context,
    get_json_body, sync_payload
)

data_bp = Blueprint('data', __name__)
logger = logging.getLogger(__name__)

restore_limit = limiter.limit("10 per hour", error_message="Trop de restaurations. Réessayez plus tard.")


def _check_collection(collection):
    if collection not in COLLECTIONS:
        raise UnknownCollectionError(collection)


def _with_warning(payload):
    warning = getattr(g, 'sync_warning', None)
    if warning:
        payload['syncWarning'] = warning
    return payload


@data_bp.errorhandler(DataError)
def handle_data_error(error):
    return data_error_response(error)


# ==================== LECTURE ====================

@data_bp.route('', methods=['GET'])
@user_required
def get_all_data():
    """Les six collections de l'utilisateur"""
    context = get_data_context()
    return api_response(True, data=_with_warning(context.snapshot()))


@data_bp.route('/<collection>', methods=['GET'])
@user_required
def list_documents(collection):
    _check_collection(collection)
    context = get_data_context()
    return api_response(True, data=_with_warning({collection: context.list(collection)}))


@data_bp.route('/<collection>/<doc_id>', methods=['GET'])
@user_required
def get_document(collection, doc_id):
    _check_collection(collection)
    record = get_data_context().get(collection, doc_id)
    if record is None:
        return error_response('NOT_FOUND', 'Document introuvable', 404, {'collection': collection, 'id': doc_id})
    return api_response(True, data=record)


# ==================== MUTATIONS ====================

@data_bp.route('/<collection>', methods=['POST'])
@user_required
def add_document(collection):
    _check_collection(collection)
    data = get_json_body()

    context = get_data_context()
    errors = validate_record(collection, data) or context.reference_errors(collection, data)
    if errors:
        return error_response('VALIDATION_ERROR', 'Document invalide', 400, errors)

    result = context.add(collection, data)
    return api_response(True, data={'record': result.record, 'sync': sync_payload(result.sync)},
                        message='Document créé', status_code=201)


@data_bp.route('/<collection>/<doc_id>', methods=['PUT', 'PATCH'])
@user_required
def update_document(collection, doc_id):
    """Fusion des champs fournis; un id inconnu est ignoré (updated: false)"""
    _check_collection(collection)
    data = get_json_body()

    context = get_data_context()
    errors = validate_record(collection, data, partial=True) or context.reference_errors(collection, data, doc_id)
    if errors:
        return error_response('VALIDATION_ERROR', 'Champs invalides', 400, errors)

    result = context.update(collection, doc_id, data)
    return api_response(True, data={
        'updated': result.found,
        'record': result.record,
        'sync': sync_payload(result.sync),
    })


@data_bp.route('/<collection>/<doc_id>', methods=['DELETE'])
@user_required
def delete_document(collection, doc_id):
    _check_collection(collection)
    result = get_data_context().remove(collection, doc_id)
    return api_response(True, data={'deleted': result.found, 'sync': sync_payload(result.sync)})


# ==================== SYNCHRONISATION ====================

@data_bp.route('/sync', methods=['POST'])
@user_required
def flush_pending():
    """Pousse les écritures en attente"""
    result = get_data_context().flush()
    return api_response(True, data={'sync': result.to_dict()})


@data_bp.route('/sync', methods=['GET'])
@user_required
def pending_status():
    pending = get_data_context().pending_operations()
    return api_response(True, data={'pending': [op.to_dict() for op in pending]})


@data_bp.route('/hydrate', methods=['POST'])
@user_required
def hydrate():
    """Recharge l'état local depuis le stockage distant"""
    context = get_data_context()
    result = context.hydrate()
    return api_response(True, data={'sync': result.to_dict(), 'hydrated': result.pending == 0})


@data_bp.route('/seed', methods=['POST'])
@user_required
def seed():
    """Installe les données de démarrage si l'espace est vide"""
    seeded = get_data_context().seed()
    return api_response(True, data={'seeded': seeded},
                        message='Données de démarrage installées' if seeded else 'Données déjà présentes')


# ==================== SAUVEGARDE / RESTAURATION ====================

@data_bp.route('/backup', methods=['GET'])
@user_required
def download_backup():
    """Sauvegarde JSON téléchargeable (format normalisé + backupDate)"""
    backup = get_data_context().export_backup()
    filename = f"backup-{backup['backupDate'][:10]}.json"
    return Response(
        json.dumps(backup, ensure_ascii=False, indent=2),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )


def _confirmed(value) -> bool:
    if isinstance(value, str):
        return value.lower() in ('true', '1', 'yes')
    return value is True


@data_bp.route('/restore', methods=['POST'])
@user_required
@restore_limit
def restore_backup():
    """
    Remplace toutes les données par une sauvegarde

    Accepte:
    - JSON: {"confirm": true, "backup": {...}}
    - multipart: fichier 'file' + champ 'confirm=true'
    """
    if 'file' in request.files:
        confirm = request.form.get('confirm')
        raw = request.files['file'].read()
    else:
        body = get_json_body()
        confirm = body.get('confirm')
        raw = body.get('backup')

    if not _confirmed(confirm):
        return error_response(
            'CONFIRMATION_REQUIRED',
            'La restauration remplace toutes les données: confirmation requise',
            400
        )
    if raw is None:
        raise BackupFormatError('Sauvegarde absente de la requête')

    counts = get_data_context().restore(raw)
    logger.info(f"Restauration effectuée pour {g.user_id}")
    return api_response(True, data={'restored': counts}, message='Sauvegarde restaurée')
