#!/usr/bin/env python3
"""
Command-line restore utility: replace the stored contexts with a backup.
"""

import argparse
import sys
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from context_keeper.api import ContextKeeper
from context_keeper.core.backup import RestoreError, VersionMismatchError
from context_keeper.core.store import StorageError


def main():
    parser = argparse.ArgumentParser(
        description="Restore contexts from a backup",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s backup-1700000000000.json            # Restore (asks for confirmation)
  %(prog)s backup-1700000000000.json --dry-run  # Validate without restoring
  %(prog)s backup-1700000000000.json --force    # Restore without prompting

The restore process:
1. Reads and validates the backup (format version must match)
2. Deletes every current context
3. Re-inserts the backup's contexts with their original ids

Environment variables:
- DATA_DIR=./.context-keeper
        """
    )

    parser.add_argument(
        "backup_id",
        help="Backup filename as shown by 'backup.py list'"
    )

    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Validate backup without performing restoration"
    )

    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Skip the confirmation prompt"
    )

    args = parser.parse_args()

    keeper = ContextKeeper()

    try:
        if args.dry_run:
            contexts = keeper.backups.restore_backup(args.backup_id)
            print("DRY RUN - Backup validation completed successfully")
            print(f"Contexts in backup: {len(contexts)}")
            print(f"Contexts currently stored: {keeper.store.count_on_disk()}")
            return 0

        if not args.force:
            print("WARNING: This will delete every stored context and replace it with the backup!")
            print(f"Target directory: {keeper.store.contexts_dir}")
            print()

            response = input("Are you sure you want to proceed? (type 'yes' to continue): ")
            if response.lower() != 'yes':
                print("Operation cancelled by user.")
                return 0

        restored = keeper.restore_backup(args.backup_id)
        print("Restore completed successfully")
        print(f"Contexts Restored: {restored}")
        return 0

    except VersionMismatchError as e:
        print(f"ERROR: Incompatible backup: {e}")
        return 1
    except RestoreError as e:
        print(f"ERROR: Restore failed: {e}")
        return 1
    except StorageError as e:
        print(f"ERROR: Store could not be rewritten: {e}")
        return 1
    except Exception as e:
        print(f"ERROR: Unexpected error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
