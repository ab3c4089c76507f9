"""
Backup Verification Script

Opens every archive in the backup directory and checks that it decodes.
Run from project root: python scripts/verify.py

Author: Khalil Bannouri
Version: 1.0.0
"""

import asyncio
import os
import sys
from datetime import datetime

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pandas as pd

from pastificio.core.config import get_settings
from pastificio.core.exceptions import BackupError
from pastificio.services.backup import Snapshot
from pastificio.state import ServiceState


async def verify_backups() -> bool:
    """Decode each archive and print a summary table."""
    settings = get_settings()
    state = ServiceState.from_settings(settings)

    print("=" * 60)
    print("BACKUP VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Directory: {state.codec.backup_dir}")
    print("=" * 60)

    if not state.codec.backup_dir.is_dir():
        print("\nBackup directory not found!")
        print("   Create a backup first: python scripts/simulate.py")
        return False

    backups = await state.store.list_backups()
    rows = []
    for archive in backups:
        row = {"filename": archive.filename, "size": archive.size, "status": "ok", "records": None}
        try:
            payload = await state.codec.restore_backup(archive.filename)
            if isinstance(payload, Snapshot):
                row["records"] = payload.record_count
            else:
                row["records"] = len(payload.changes)
        except BackupError as e:
            row["status"] = type(e).__name__
        rows.append(row)

    df = pd.DataFrame(rows, columns=["filename", "size", "status", "records"])

    print(f"\nSTATISTICS:")
    print(f"   Archives: {len(df)}")
    print(f"   Total size: {int(df['size'].sum()) if len(df) else 0} bytes")
    print(f"   Summary: {state.store.summarize(backups)}")

    broken = df[df["status"] != "ok"]
    if len(broken):
        print(f"\n{len(broken)} archive(s) failed to decode")
    else:
        print(f"\nAll archives decode")

    if len(df):
        print("\nARCHIVES:")
        print("-" * 60)
        print(df.to_string(index=False))

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE")
    print("=" * 60)

    return len(broken) == 0


if __name__ == "__main__":
    ok = asyncio.run(verify_backups())
    sys.exit(0 if ok else 1)
