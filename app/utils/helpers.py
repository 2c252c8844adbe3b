"""
Fonctions utilitaires
Helpers réutilisables dans toutes les routes
"""

import logging

from flask import current_app, g, jsonify, request

from app.services.errors import DataError, RemoteSyncError

logger = logging.getLogger(__name__)


def api_response(success, data=None, message=None, error=None, status_code=200):
    """
    Crée une réponse API standardisée

    Args:
        success: Opération réussie ou non
        data: Données de la réponse (succès)
        message: Message de succès
        error: Détails de l'erreur {'code', 'message', 'details'} (échec)
        status_code: Code HTTP

    Returns:
        tuple: (response_json, status_code)
    """
    response = {'success': success}

    if success:
        if data is not None:
            response['data'] = data
        if message:
            response['message'] = message
    else:
        response['error'] = error or {'code': 'ERROR', 'message': 'Une erreur est survenue', 'details': {}}

    return jsonify(response), status_code


def error_response(code, message, status_code, details=None):
    return api_response(False, error={'code': code, 'message': message, 'details': details or {}},
                        status_code=status_code)


def data_error_response(error: DataError):
    """Réponse pour une DataError (code et statut portés par l'exception)"""
    return api_response(False, error=error.to_dict(), status_code=error.status_code)


def get_json_body():
    """Corps JSON de la requête, dict vide si absent ou invalide"""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def get_data_services():
    return current_app.extensions['data_services']


def get_generation_gateway():
    return current_app.extensions['generation_gateway']


def get_data_context():
    """
    Contexte données de l'utilisateur de la requête

    Charge l'état distant à la première ouverture (aucun snapshot local).
    Requiert g.user_id (décorateur user_required).
    """
    context = getattr(g, 'data_context', None)
    if context is None or context.user_id != g.user_id:
        context = get_data_services().context_for(g.user_id)
        try:
            context.ensure_hydrated()
        except RemoteSyncError as e:
            logger.warning(f"Chargement initial impossible pour {g.user_id}: {e.message}")
            g.sync_warning = e.to_dict()
        g.data_context = context
    return context


def sync_payload(result):
    """Statut de synchronisation joint aux réponses de mutation"""
    if result is None:
        return None
    return result.to_dict()
