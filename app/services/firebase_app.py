"""
Initialisation Firebase Admin
Partagée par la vérification des jetons d'identité et le stockage Firestore
"""

import json
import logging

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)


def get_firebase_app(config) -> firebase_admin.App:
    """
    Retourne l'application Firebase par défaut, initialisée au premier appel

    Args:
        config: Mapping de configuration Flask, clés utilisées:
        - FIREBASE_CREDENTIALS_PATH: Chemin vers le fichier JSON des credentials
        - FIREBASE_CREDENTIALS_JSON: Contenu JSON des credentials
        - FIREBASE_PROJECT_ID: ID du projet (optionnel si dans les credentials)
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    credentials_path = config.get('FIREBASE_CREDENTIALS_PATH')
    credentials_json = config.get('FIREBASE_CREDENTIALS_JSON')

    if credentials_path:
        cred = credentials.Certificate(credentials_path)
    elif credentials_json:
        cred_dict = json.loads(credentials_json) if isinstance(credentials_json, str) else credentials_json
        cred = credentials.Certificate(cred_dict)
    else:
        # Environnement Google Cloud: credentials par défaut
        cred = credentials.ApplicationDefault()

    options = {}
    if config.get('FIREBASE_PROJECT_ID'):
        options['projectId'] = config['FIREBASE_PROJECT_ID']

    app = firebase_admin.initialize_app(cred, options or None)
    logger.info(f"Firebase initialisé (projet: {app.project_id or 'depuis les credentials'})")
    return app
