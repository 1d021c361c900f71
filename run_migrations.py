#!/usr/bin/env python
"""
Alembic wrapper for the OrthoMonitor schema.

Usage:
    python run_migrations.py create "message"   # Autogenerate a revision from the models
    python run_migrations.py upgrade [rev]      # Apply migrations (default: head)
    python run_migrations.py downgrade [rev]    # Roll back (default: -1)
    python run_migrations.py stamp [rev]        # Mark a database as migrated (default: head)
    python run_migrations.py current            # Show the applied revision
    python run_migrations.py history            # List revisions
"""
import os
import sys
from alembic import command
from alembic.config import Config

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
VERSIONS_DIR = os.path.join(BASE_DIR, "migrations", "versions")

alembic_cfg = Config(os.path.join(BASE_DIR, "alembic.ini"))
alembic_cfg.set_main_option("script_location", os.path.join(BASE_DIR, "migrations"))


def create_migration(message: str):
    os.makedirs(VERSIONS_DIR, exist_ok=True)
    command.revision(alembic_cfg, message=message, autogenerate=True)
    print(f"Migration '{message}' created")
    print("   Run 'python run_migrations.py upgrade' to apply it")


def upgrade_migrations(revision: str = "head"):
    print(f"Upgrading database to: {revision}")
    command.upgrade(alembic_cfg, revision)
    print("Database upgraded")


def downgrade_migrations(revision: str = "-1"):
    print(f"Downgrading database to: {revision}")
    command.downgrade(alembic_cfg, revision)
    print("Database downgraded")


def stamp_revision(revision: str = "head"):
    command.stamp(alembic_cfg, revision)
    print(f"Database stamped at: {revision}")


def show_current():
    command.current(alembic_cfg, verbose=True)


def show_history():
    command.history(alembic_cfg)


ACTIONS = {
    "upgrade": (upgrade_migrations, "head"),
    "downgrade": (downgrade_migrations, "-1"),
    "stamp": (stamp_revision, "head"),
}


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    action = sys.argv[1].lower()

    try:
        if action == "create":
            if len(sys.argv) < 3:
                print("Error: Migration message required")
                print("   Usage: python run_migrations.py create 'message'")
                sys.exit(1)
            create_migration(sys.argv[2])
        elif action in ACTIONS:
            handler, default_revision = ACTIONS[action]
            handler(sys.argv[2] if len(sys.argv) > 2 else default_revision)
        elif action == "current":
            show_current()
        elif action == "history":
            show_history()
        else:
            print(f"Unknown action: {action}")
            print(__doc__)
            sys.exit(1)
    except Exception as e:
        print(f"Error running '{action}': {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
