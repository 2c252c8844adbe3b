"""
Routes d'authentification
=========================

Échange d'un jeton d'identité Firebase contre un cookie de session
(JWT signé, durée fixe, http-only), déconnexion et identité courante.
"""

import logging

from flask import Blueprint, g, jsonify
from flask_jwt_extended import set_access_cookies, unset_jwt_cookies

from app import limiter
from app.services.session_service import InvalidIdentityToken, SessionService
from app.utils.decorators import user_required
from app.utils.helpers import api_response, error_response, get_json_body

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)


# ==================== RATE LIMITING ====================

session_limit = limiter.limit("10 per minute", error_message="Trop de tentatives. Réessayez dans 1 minute.")


@auth_bp.route('/session', methods=['POST'])
@session_limit
def create_session():
    """
    Crée le cookie de session

    Body:
        idToken: jeton obtenu par le client après connexion Firebase
    """
    data = get_json_body()
    id_token = data.get('idToken')
    if not id_token:
        return error_response('BAD_REQUEST', 'idToken requis', 400)

    try:
        claims = SessionService.verify_identity_token(id_token)
    except InvalidIdentityToken:
        return error_response('UNAUTHORIZED', "Jeton d'identité invalide", 401)

    token = SessionService.create_session_token(claims)
    lifetime = SessionService.session_lifetime()

    response = jsonify({
        'success': True,
        'data': {'uid': claims['uid'], 'email': claims.get('email'), 'expiresIn': int(lifetime.total_seconds())}
    })
    set_access_cookies(response, token, max_age=int(lifetime.total_seconds()))

    logger.info(f"Session ouverte pour {claims['uid']}")
    return response


@auth_bp.route('/logout', methods=['POST'])
def logout():
    """Supprime le cookie de session"""
    response = jsonify({'success': True, 'message': 'Déconnexion réussie'})
    unset_jwt_cookies(response)
    return response


@auth_bp.route('/me', methods=['GET'])
@user_required
def get_current_user():
    return api_response(True, data={'uid': g.user_id, 'email': g.user_email})
