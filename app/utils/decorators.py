from functools import wraps
from flask import request, jsonify, g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request, get_jwt
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
import logging

logger = logging.getLogger(__name__)


def user_required(fn):
    """
    Décorateur qui vérifie:
    1. Cookie de session (ou header Authorization) valide
    2. Identité utilisateur présente dans le JWT

    Stocke user_id et email dans g pour accès facile
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        # Skip JWT verification for OPTIONS (CORS preflight)
        if request.method == 'OPTIONS':
            return fn(*args, **kwargs)

        try:
            verify_jwt_in_request()
        except (JWTExtendedException, PyJWTError) as e:
            logger.debug(f"Session refusée: {e}")
            return jsonify({
                'success': False,
                'error': {'code': 'UNAUTHORIZED', 'message': 'Session invalide ou expirée', 'details': {}}
            }), 401

        user_id = get_jwt_identity()
        if not user_id:
            return jsonify({
                'success': False,
                'error': {'code': 'UNAUTHORIZED', 'message': 'Identité absente du jeton', 'details': {}}
            }), 401

        g.user_id = user_id
        g.user_email = get_jwt().get('email')

        return fn(*args, **kwargs)

    return wrapper
