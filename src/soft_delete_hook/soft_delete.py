"""
Soft Delete Model Decorator

Wraps a model handle so that destroy marks records with a ``deleted_at``
timestamp instead of removing them, and reads skip marked records.
"""

import time
from typing import Any, Callable, Dict, List, Optional

from .criteria import DELETED_AT, TRASHED, add_deleted_at_to_criteria
from .models import Model

DELETED_AT_ATTRIBUTE: Dict[str, Any] = {
    "type": "number",
    "allow_null": True,
    "required": False,
    "defaults_to": None,
}


def now_ms() -> int:
    """Current time in milliseconds since the epoch"""
    return time.time_ns() // 1_000_000


def install_deleted_at(model: Model) -> None:
    """Add the ``deleted_at`` attribute unless the model already defines one"""
    if DELETED_AT not in model.attributes:
        model.attributes[DELETED_AT] = dict(DELETED_AT_ATTRIBUTE)


class SoftDeleteModel:
    """
    Soft-delete decorator around a model handle

    Exposes the same operations as the wrapped model. Reads only see active
    records, ``destroy``/``destroy_one`` set ``deleted_at`` and ``restore``
    clears it. ``find_with_trashed``, ``force_destroy`` and
    ``force_destroy_one`` are the wrapped model's own operations. Anything
    else (``create``, ``count``, ``update``, ``identity``, ...) is delegated.
    """

    def __init__(self, model: Model, clock: Callable[[], Any] = now_ms):
        self.model = model
        self.clock = clock

        # Bound up front so the wrappers below never route through themselves
        self._find = model.find
        self._find_one = model.find_one
        self._update = model.update
        self._update_one = model.update_one

        self.find_with_trashed = model.find
        self.force_destroy = model.destroy
        self.force_destroy_one = model.destroy_one

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_") or name == "model":
            raise AttributeError(name)
        return getattr(self.model, name)

    def __repr__(self) -> str:
        return f"<SoftDeleteModel {self.model!r}>"

    def find(self, criteria: Any = None) -> List[Dict[str, Any]]:
        criteria = add_deleted_at_to_criteria(criteria, None, self.model.primary_key)
        return self._find(criteria)

    def find_one(self, criteria: Any = None) -> Optional[Dict[str, Any]]:
        criteria = add_deleted_at_to_criteria(criteria, None, self.model.primary_key)
        return self._find_one(criteria)

    def find_trashed(self, criteria: Any = None) -> List[Dict[str, Any]]:
        criteria = add_deleted_at_to_criteria(criteria, dict(TRASHED), self.model.primary_key)
        return self._find(criteria)

    def destroy(self, criteria: Any) -> List[Dict[str, Any]]:
        return self._update(criteria, {DELETED_AT: self.clock()})

    def destroy_one(self, criteria: Any) -> Optional[Dict[str, Any]]:
        return self._update_one(criteria, {DELETED_AT: self.clock()})

    def restore(self, criteria: Any) -> List[Dict[str, Any]]:
        return self._update(criteria, {DELETED_AT: None})

    def restore_one(self, criteria: Any) -> Optional[Dict[str, Any]]:
        return self._update_one(criteria, {DELETED_AT: None})


def configure_model(model: Model, clock: Callable[[], Any] = now_ms) -> SoftDeleteModel:
    """Install ``deleted_at`` on ``model`` and return its soft-delete decorator"""
    install_deleted_at(model)
    return SoftDeleteModel(model, clock=clock)
