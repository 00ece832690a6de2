"""
Soft Delete Hook Configuration

Environment-driven settings for the model engine, the soft-delete hook and
the HTTP host.
"""

import os
from typing import Optional, Set


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


def _env_identities(name: str) -> Optional[Set[str]]:
    value = os.getenv(name)
    if value is None:
        return None
    return {identity.strip() for identity in value.split(",") if identity.strip()}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./soft_delete.db")

# When false the host runs without its ORM and the soft-delete hook stays inert
ORM_ENABLED = _env_flag("ORM_ENABLED", True)

# Unset = detect the archive model convention from the registered models
SOFT_DELETE_RESERVED_IDENTITIES = _env_identities("SOFT_DELETE_RESERVED_IDENTITIES")

MODEL_DEFINITIONS_PATH = os.getenv("MODEL_DEFINITIONS_PATH")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8013"))
