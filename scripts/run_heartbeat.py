#!/usr/bin/env python3
"""
Run the background jobs: automatic backups and session capture sweeps.
"""

import asyncio
import sys
from pathlib import Path

# Allow running from a source checkout
sys.path.insert(0, str(Path(__file__).parent.parent))

from context_keeper.api import ContextKeeper
from context_keeper.core.config import load_settings, validate_settings


async def run(keeper: ContextKeeper):
    keeper.start()
    status = keeper.get_status()
    print(f"🚀 Heartbeat started for {status['data_dir']}")
    print(f"📋 Registered tasks: {list(status['heartbeat']['tasks'].keys())}")
    print("💡 Press Ctrl+C to stop")

    try:
        await asyncio.Event().wait()
    finally:
        await keeper.stop()
        print("🏁 Heartbeat loop stopped")


def main():
    """Main entry point for heartbeat script."""
    settings = load_settings()
    issues = validate_settings(settings)
    if issues:
        for issue in issues:
            print(f"❌ {issue}")
        sys.exit(1)

    if not settings.backup_enabled and not (settings.capture_enabled and settings.capture_auto):
        print("❌ Nothing to run: BACKUP_ENABLED and CAPTURE_AUTO are both off")
        sys.exit(1)

    try:
        asyncio.run(run(ContextKeeper(settings)))
    except KeyboardInterrupt:
        print("\n👋 Shutting down gracefully...")
    except Exception as e:
        print(f"💥 Critical error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
