"""
Génération d'identifiants de documents
Format: {préfixe}-{suffixe} (ex: prod-k3j9x0a2m)
"""

import re
import secrets
import string

ID_ALPHABET = string.digits + string.ascii_lowercase
ID_PREFIX_LENGTH = 4
ID_SUFFIX_LENGTH = 9
DEFAULT_PREFIX = 'doc'

ID_PATTERN = re.compile(r'^[a-z0-9]{1,%d}-[0-9a-z]{%d}$' % (ID_PREFIX_LENGTH, ID_SUFFIX_LENGTH))


def id_prefix(collection_name: str) -> str:
    """Les 4 premiers caractères alphanumériques du nom de collection"""
    cleaned = ''.join(c for c in (collection_name or '').lower() if c in ID_ALPHABET)
    return cleaned[:ID_PREFIX_LENGTH] or DEFAULT_PREFIX


def generate_id(collection_name: str) -> str:
    """
    Génère un identifiant aléatoire pour un nouveau document

    Args:
        collection_name: Nom de la collection (ex: products -> prod-xxxxxxxxx)

    Returns:
        str: Identifiant (unicité à vérifier par l'appelant)
    """
    suffix = ''.join(secrets.choice(ID_ALPHABET) for _ in range(ID_SUFFIX_LENGTH))
    return f"{id_prefix(collection_name)}-{suffix}"


def is_valid_id(value) -> bool:
    return isinstance(value, str) and bool(ID_PATTERN.match(value))
