"""
Application Flask - Hesabgar Backend
API REST de gestion de boutique: données synchronisées, sauvegardes, exports
"""

from flask import Flask, request
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from config import config
import logging
import os

db = SQLAlchemy()
jwt = JWTManager()
migrate = Migrate()


def get_rate_limit_key():
    """
    Retourne la clé pour le rate limiting.
    - Clé partagée pour les requêtes OPTIONS (CORS preflight)
    - IP de l'utilisateur sinon
    """
    if request.method == 'OPTIONS':
        return 'preflight'

    ip = get_remote_address()
    if not ip:
        ip = request.headers.get('X-Forwarded-For', request.headers.get('X-Real-IP', '127.0.0.1'))
        if ',' in ip:
            ip = ip.split(',')[0].strip()

    return ip or '127.0.0.1'


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["2000 per day", "300 per hour"],
    storage_uri=os.environ.get('REDIS_URL', 'memory://')
)

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _error(code, message, status_code):
    return {'success': False, 'error': {'code': code, 'message': message, 'details': {}}}, status_code


def create_app(config_name='default'):
    """
    Factory function pour créer l'application Flask

    Args:
        config_name: Nom de la configuration (development, production, testing)

    Returns:
        Flask app configurée
    """
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logging.getLogger().setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    # Vérifications de sécurité en production
    if config_name == 'production':
        config[config_name].init_app(app)

    # Initialisation des extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # CORS - Utiliser les origines configurées (PAS de wildcard en prod!)
    cors_origins = app.config.get('CORS_ORIGINS', ['http://localhost:3000'])
    CORS(app, resources={
        r"/api/*": {
            "origins": cors_origins,
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": app.config.get('CORS_ALLOW_HEADERS', ["Content-Type", "Authorization"]),
            "expose_headers": app.config.get('CORS_EXPOSE_HEADERS', ["Content-Disposition"]),
            "supports_credentials": app.config.get('CORS_SUPPORTS_CREDENTIALS', True)
        }
    })

    # Services données et génération (un conteneur par application)
    from app.services.data_context import DataServices
    from app.services.generation_service import GenerationGateway
    app.extensions['data_services'] = DataServices.from_config(app.config)
    app.extensions['generation_gateway'] = GenerationGateway.from_config(app.config)

    # Headers de sécurité
    @app.after_request
    def add_security_headers(response):
        if config_name == 'production':
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'

        return response

    # ==================== BLUEPRINTS ====================

    # Session (cookie __session)
    from app.routes.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')

    # Collections, synchronisation, sauvegarde/restauration
    from app.routes.data import data_bp
    app.register_blueprint(data_bp, url_prefix='/api/data')

    # Factures (composition, numérotation, échéances)
    from app.routes.invoices import invoices_bp
    app.register_blueprint(invoices_bp, url_prefix='/api/invoices')

    # Exports CSV / Excel
    from app.routes.exports import exports_bp
    app.register_blueprint(exports_bp, url_prefix='/api/exports')

    # Rapports de ventes
    from app.routes.reports import reports_bp
    app.register_blueprint(reports_bp, url_prefix='/api/reports')

    # Génération assistée
    from app.routes.generation import generation_bp
    app.register_blueprint(generation_bp, url_prefix='/api/generation')

    # ==================== ERROR HANDLERS ====================

    @app.errorhandler(400)
    def bad_request(error):
        return _error('BAD_REQUEST', 'Requête invalide', 400)

    @app.errorhandler(401)
    def unauthorized(error):
        return _error('UNAUTHORIZED', 'Non autorisé', 401)

    @app.errorhandler(403)
    def forbidden(error):
        return _error('FORBIDDEN', 'Accès refusé', 403)

    @app.errorhandler(404)
    def not_found(error):
        return _error('NOT_FOUND', 'Ressource non trouvée', 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _error('METHOD_NOT_ALLOWED', 'Méthode non autorisée', 405)

    @app.errorhandler(413)
    def payload_too_large(error):
        return _error('PAYLOAD_TOO_LARGE', 'Fichier trop volumineux', 413)

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        return _error('RATE_LIMITED', 'Trop de requêtes. Réessayez plus tard.', 429)

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Erreur interne: {str(error)}")
        return _error('INTERNAL_ERROR', 'Erreur interne du serveur', 500)

    # ==================== HEALTH CHECK ====================

    @app.route('/api/health')
    def health_check():
        """Endpoint de vérification de santé"""
        return {
            'status': 'healthy',
            'version': '1.0.0',
            'documentStore': app.config.get('DOCUMENT_STORE', 'sql'),
            'generation': app.extensions['generation_gateway'].enabled,
        }

    # Créer les tables de la base de données (dev et tests)
    if os.environ.get('AUTO_CREATE_DB', 'false').lower() == 'true' or app.config.get('TESTING'):
        with app.app_context():
            db.create_all()

    logger.info(f"Application démarrée en mode {config_name}")

    return app
