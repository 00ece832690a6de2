"""
Application Lifecycle

Runs hooks concurrently during lift and lets them wait on each other through
named events (``await app.after("hook:orm:loaded")``).
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, Optional

from .models import Orm

logger = logging.getLogger(__name__)

ORM_LOADED = "hook:orm:loaded"
LIFTED = "lifted"


class OrmHook:
    """Loads the model registry and signals that models are ready"""

    async def initialize(self, app: "Lifecycle") -> None:
        app.orm.load()
        app.emit(ORM_LOADED)


class Lifecycle:
    def __init__(self, orm: Optional[Orm] = None, hooks: Iterable[Any] = ()):
        self.orm = orm
        self.hooks = list(hooks)
        self._events: Dict[str, asyncio.Event] = {}

    def _event(self, name: str) -> asyncio.Event:
        if name not in self._events:
            self._events[name] = asyncio.Event()
        return self._events[name]

    def has_emitted(self, name: str) -> bool:
        return name in self._events and self._events[name].is_set()

    def emit(self, name: str) -> None:
        logger.debug(f"Lifecycle event: {name}")
        self._event(name).set()

    async def after(self, name: str) -> None:
        """Wait until ``name`` has been emitted (returns at once if it already was)"""
        await self._event(name).wait()

    async def lift(self) -> None:
        """
        Initialize every hook, then create the tables

        Hooks run concurrently with ORM loading so that they can wait for
        ``hook:orm:loaded`` before touching models. Tables are synced only
        after all hooks finished, so attributes they add become columns.
        """
        hooks = list(self.hooks)
        if self.orm is not None:
            hooks.insert(0, OrmHook())

        tasks = [asyncio.ensure_future(hook.initialize(self)) for hook in hooks]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Hooks still waiting on events that will never come
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error("Application lift failed, pending hooks cancelled")
            raise

        if self.orm is not None:
            self.orm.sync()
        self.emit(LIFTED)
        logger.info("Application lifted")
