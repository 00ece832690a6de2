"""Transparent soft delete for mapping-criteria models"""

from .criteria import DELETED_AT, TRASHED, add_deleted_at_to_criteria
from .hook import SoftDeleteHook, is_eligible, resolve_archive_identities
from .lifecycle import ORM_LOADED, Lifecycle
from .models import Model, Orm, OrmModel, UsageError
from .soft_delete import SoftDeleteModel, configure_model, install_deleted_at, now_ms

__all__ = [
    "DELETED_AT",
    "ORM_LOADED",
    "TRASHED",
    "Lifecycle",
    "Model",
    "Orm",
    "OrmModel",
    "SoftDeleteHook",
    "SoftDeleteModel",
    "UsageError",
    "add_deleted_at_to_criteria",
    "configure_model",
    "install_deleted_at",
    "is_eligible",
    "now_ms",
    "resolve_archive_identities",
]
