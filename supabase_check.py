#!/usr/bin/env python3
"""
Verify that the Supabase project is configured for FitBuddy.
Run this script after applying supabase_schema.sql.
"""

import sys

from config import FRIEND_CODE_RPC, FRIENDS_TABLE, PROFILES_TABLE, SAMPLES_TABLE, load_settings
from supabase import Client, create_client


def check_supabase_config() -> bool:
    """Check credentials, the three tables and the friend-code lookup function."""
    print("Checking Supabase configuration...")
    print("=" * 50)

    settings = load_settings()
    if not settings.supabase_available:
        print("❌ SUPABASE_URL / SUPABASE_ANON_KEY not found")
        print("💡 Add them to .streamlit/secrets.toml or a .env file:")
        print("   SUPABASE_URL = 'your-project-url'")
        print("   SUPABASE_ANON_KEY = 'your-anon-key'")
        return False
    print("✅ Credentials found")

    try:
        supabase: Client = create_client(settings.supabase_url, settings.supabase_key)
        print("✅ Supabase client created successfully")
    except Exception as e:
        print(f"❌ Failed to create Supabase client: {e}")
        return False

    ok = True
    for table in (SAMPLES_TABLE, PROFILES_TABLE, FRIENDS_TABLE):
        try:
            supabase.table(table).select("*").limit(1).execute()
            print(f"✅ Table {table} reachable")
        except Exception as e:
            print(f"❌ Table {table} failed: {e}")
            ok = False

    try:
        supabase.rpc(FRIEND_CODE_RPC, {"p_code": "ZZZZZZ"}).execute()
        print(f"✅ Function {FRIEND_CODE_RPC} reachable")
    except Exception as e:
        print(f"❌ Function {FRIEND_CODE_RPC} failed: {e}")
        ok = False

    if not ok:
        print("💡 Make sure you've run the supabase_schema.sql script")
    return ok


if __name__ == "__main__":
    if check_supabase_config():
        print("\n✅ Configuration check completed successfully!")
    else:
        print("\n❌ Configuration check failed. Please fix the issues above.")
        sys.exit(1)
