"""
Database client configuration.
Uses Supabase (PostgreSQL) for the outbound email audit log.

The client is optional: without SUPABASE_URL / SUPABASE_SERVICE_KEY the
backend still sends email, it just doesn't record email_logs rows.
"""

import os
from typing import Optional

from supabase import create_client, Client
from dotenv import load_dotenv

load_dotenv()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")

# Admin client for service-level writes (bypasses RLS)
supabase_admin: Optional[Client] = (
    create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    if SUPABASE_URL and SUPABASE_SERVICE_KEY
    else None
)
