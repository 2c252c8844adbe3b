"""
Deploy migration script
=======================
Applies the Alembic migrations (`flask db upgrade`) before the server starts.
With the Firestore document store there is no SQL schema and nothing is done.
If the migration history cannot be applied, falls back to `db.create_all()`.
"""
import logging
import os

from alembic.util.exc import CommandError

logger = logging.getLogger('migrate_db')


def main():
    env = os.environ.setdefault('FLASK_ENV', 'production')

    from app import create_app, db
    app = create_app(env)

    if app.config.get('DOCUMENT_STORE') == 'firestore':
        logger.info("[MIGRATE] Firestore document store: no SQL schema to migrate.")
        return

    with app.app_context():
        from flask_migrate import upgrade
        try:
            upgrade(directory=os.path.join(os.path.dirname(os.path.abspath(__file__)), 'migrations'))
            logger.info("[MIGRATE] Flask-Migrate upgrade completed successfully.")
        except CommandError as e:
            logger.warning(f"[MIGRATE] Flask-Migrate upgrade failed ({e}), using db.create_all()...")
            db.create_all()
            logger.info("[MIGRATE] db.create_all() completed successfully.")


if __name__ == '__main__':
    main()
