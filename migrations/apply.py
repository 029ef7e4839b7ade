"""
Apply the message table migrations.

Usage:
    python migrations/apply.py

Requires SUPABASE_URL and SUPABASE_SERVICE_KEY in .env, and an `exec_sql`
RPC function in the database. Without it, run the SQL files by hand in the
Supabase SQL Editor.
"""
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from supabase import create_client

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

MIGRATIONS_DIR = Path(__file__).parent

MIGRATIONS = [
    "001_message_tables.sql",
]


def apply_migrations(client) -> list[str]:
    """Apply every migration in order. Returns the files that failed."""
    failed = []
    for migration_file in MIGRATIONS:
        path = MIGRATIONS_DIR / migration_file
        if not path.exists():
            print(f"[SKIP] {migration_file} not found")
            continue

        print(f"[APPLY] {migration_file}...")
        try:
            client.rpc("exec_sql", {"sql": path.read_text()}).execute()
            print(f"[OK] {migration_file}")
        except Exception as e:
            print(f"[ERROR] {migration_file}: {e}")
            failed.append(migration_file)
    return failed


if __name__ == "__main__":
    if not SUPABASE_URL or not SUPABASE_KEY:
        print("Error: SUPABASE_URL and SUPABASE_SERVICE_KEY are required in .env")
        sys.exit(1)

    print("=== Unified Inbox migrations ===")
    print(f"URL: {SUPABASE_URL}")
    print()

    failed = apply_migrations(create_client(SUPABASE_URL, SUPABASE_KEY))

    if failed:
        print()
        print("Run these manually in the Supabase SQL Editor:")
        for name in failed:
            print(f"  - migrations/{name}")
        sys.exit(1)
