#!/usr/bin/env python3
"""
Command-line backup utility: create, list and delete context backups.
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from context_keeper.api import ContextKeeper
from context_keeper.core.backup import BackupError, RestoreError


def _format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).isoformat(sep=" ", timespec="seconds")


def main():
    parser = argparse.ArgumentParser(
        description="Create and manage context backups",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s create                    # Snapshot every stored context
  %(prog)s list                      # Show backups, newest first
  %(prog)s delete backup-123.json    # Remove one backup file

Environment variables:
- DATA_DIR=./.context-keeper (backups live in DATA_DIR/backups)
- BACKUP_RETENTION_DAYS=30 (used by --cleanup)
        """
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    create_parser = subparsers.add_parser("create", help="Create a new backup")
    create_parser.add_argument(
        "--cleanup",
        action="store_true",
        help="Also delete backups older than the retention period"
    )

    list_parser = subparsers.add_parser("list", help="List existing backups")
    list_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show format version for each backup"
    )

    delete_parser = subparsers.add_parser("delete", help="Delete a backup")
    delete_parser.add_argument("backup_id", help="Backup filename, e.g. backup-1700000000000.json")

    args = parser.parse_args()

    keeper = ContextKeeper()

    try:
        if args.command == "create":
            backup_id = keeper.create_backup()
            print(f"Backup created successfully: {backup_id}")
            print(f"Contexts: {keeper.store.count()}")
            print(f"Location: {keeper.backups.backup_dir / backup_id}")
            if args.cleanup:
                removed = keeper.backups.cleanup_old_backups()
                print(f"Expired backups removed: {removed}")

        elif args.command == "list":
            backups = keeper.list_backups()
            if not backups:
                print("No backups found")
            for backup in backups:
                line = f"{backup.filename}  {_format_timestamp(backup.timestamp)}  {backup.context_count} contexts"
                if args.verbose:
                    line += f"  v{backup.version}"
                print(line)

        elif args.command == "delete":
            if keeper.delete_backup(args.backup_id):
                print(f"Backup deleted: {args.backup_id}")
            else:
                print(f"ERROR: Backup not found: {args.backup_id}")
                return 1

        return 0

    except (BackupError, RestoreError) as e:
        print(f"ERROR: Backup failed: {e}")
        return 1
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
