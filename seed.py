#!/usr/bin/env python3
"""
Seed the document store for one user.

Writes, in a single batch:
  - the starter data set (store, categories, products, customer, units), or
  - the content of a backup file (legacy backups are migrated first)

Usage:
    python seed.py <uid>                 # starter data (skipped if data exists)
    python seed.py <uid> backup.json     # restore a backup (replaces everything)
    python seed.py <uid> --reset         # delete all documents of the user
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from dotenv import load_dotenv
load_dotenv()

from app import create_app, db
from app.models import COLLECTIONS
from app.services.errors import DataError


def _print_counts(data):
    for name in COLLECTIONS:
        print(f'  {name}: {len(data.get(name, []))}')


def seed(user_id, source=None):
    env = os.environ.get('FLASK_ENV', 'development')
    app = create_app(env)

    with app.app_context():
        db.create_all()
        print('✓ Tables créées / vérifiées')

        sync = app.extensions['data_services'].sync_service

        if source == '--reset':
            deleted = sync.delete_all_user_data(user_id)
            print(f'✓ {deleted} document(s) supprimé(s) pour {user_id}')
            return

        if source:
            with open(source, 'rb') as f:
                raw = f.read()
            data = sync.restore_from_backup(user_id, raw)
            print(f'✓ Sauvegarde restaurée pour {user_id} ({source})')
            _print_counts(data)
            return

        if sync.has_data(user_id):
            print(f'✓ Données déjà présentes pour {user_id}, rien à faire')
            return

        data = sync.seed_defaults(user_id)
        print(f'✓ Données de démarrage créées pour {user_id}')
        _print_counts(data)


if __name__ == '__main__':
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    try:
        seed(sys.argv[1], sys.argv[2] if len(sys.argv) > 2 else None)
    except DataError as e:
        print(f'✗ {e.message}')
        sys.exit(1)
