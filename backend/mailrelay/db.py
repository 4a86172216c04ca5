"""
Database client configuration.
Uses Supabase (PostgreSQL) for failed-webhook storage.

Supabase is optional: without SUPABASE_URL / SUPABASE_SERVICE_KEY the relay
still runs and failed deliveries are only logged.
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

load_dotenv()

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")


def _create_admin_client() -> Optional[Client]:
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        return None
    try:
        return create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    except Exception as e:
        logger.warning(f"Could not create Supabase admin client: {e}")
        return None


# Admin client for service-level operations (bypasses RLS)
supabase_admin: Optional[Client] = _create_admin_client()
