"""
Apply database migrations without starting the web server.

Usage:
  python migrate.py

Uses Flask-Migrate (Alembic) against DATABASE_URL.
"""

import logging
import os
import sys


def main():
    # Schema comes from the migrations below, not from startup DDL.
    os.environ['RUN_STARTUP_DDL'] = '0'

    import school_admin
    from flask_migrate import upgrade

    try:
        print("Applying database migrations...")
        with school_admin.app.app_context():
            upgrade(directory='migrations')
        print("Migrations completed successfully.")
    except Exception as e:
        logging.exception("Migration failed")
        print(f"Migration failed: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
