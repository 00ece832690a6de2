"""
Soft Delete Hook

Registration pass that wraps every eligible model in a ``SoftDeleteModel``
once the ORM has finished loading models.
"""

import logging
from typing import Dict, Iterable, Optional, Set

from .lifecycle import ORM_LOADED
from .models import Model
from .soft_delete import configure_model

logger = logging.getLogger(__name__)

ARCHIVE_IDENTITY = "archive"

# Identities containing this are internal/junction models
INTERNAL_MARKER = "__"


def resolve_archive_identities(models: Dict[str, Model]) -> Set[str]:
    """The archive identity is reserved while some model archives into it"""
    in_use = any(
        getattr(model, "archive_model_identity", None) == ARCHIVE_IDENTITY for model in models.values()
    )
    return {ARCHIVE_IDENTITY} if in_use else set()


def is_eligible(identity: str, reserved_identities: Set[str]) -> bool:
    return identity not in reserved_identities and INTERNAL_MARKER not in identity


class SoftDeleteHook:
    """
    Installs soft-delete behavior on the models of an application

    ``reserved_identities`` overrides the archive model detection when the
    host resolved it itself. The pass is meant to run once per process;
    ``state`` moves from ``"uninitialized"`` to ``"initialized"``.
    """

    def __init__(self, reserved_identities: Optional[Iterable[str]] = None):
        self.reserved_identities = set(reserved_identities) if reserved_identities is not None else None
        self.state = "uninitialized"

    async def initialize(self, app) -> None:
        logger.info("Initializing hook (soft-delete)")

        if app.orm is None:
            logger.warning("ORM hook is disabled. Soft delete can't work without the ORM hook")
            self.state = "initialized"
            return

        await app.after(ORM_LOADED)
        self.configure_models(app.orm.models)

    def configure_models(self, models: Dict[str, Model]) -> None:
        """Replace every eligible entry of ``models`` with its soft-delete decorator"""
        if self.state == "initialized":
            logger.warning("Soft delete models were already configured, wrapping them again")

        reserved = self.reserved_identities
        if reserved is None:
            reserved = resolve_archive_identities(models)

        for identity in list(models):
            if not is_eligible(identity, reserved):
                logger.debug(f"Skipping soft delete for model `{identity}`")
                continue
            models[identity] = configure_model(models[identity])
            logger.info(f"Soft delete enabled for model `{identity}`")

        self.state = "initialized"
