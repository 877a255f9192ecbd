# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
CallbackRegistry — one handler per event kind.

Handlers may be plain functions or coroutine functions; invoke() awaits
whatever comes back if it is awaitable.  A handler that raises (or whose
coroutine raises) is logged and treated as having returned None, so one
bad callback can never take down the watch loop.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

log = logging.getLogger(__name__)

Handler = Callable[[dict], Any]


class CallbackRegistry:

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout
        self._handlers: dict[str, Handler] = {}

    def register(self, kind: str, handler: Handler) -> None:
        """Bind *handler* to *kind*, replacing any previous handler."""
        if kind in self._handlers:
            log.debug("Replacing handler for %r", kind)
        self._handlers[kind] = handler

    def has(self, kind: str) -> bool:
        return kind in self._handlers

    __contains__ = has

    def __len__(self):
        return len(self._handlers)

    def kinds(self) -> list[str]:
        return list(self._handlers)

    async def invoke(self, kind: str, args: dict) -> Any:
        """Call the handler for *kind* with *args*. Never raises Exception."""
        handler = self._handlers.get(kind)
        if handler is None:
            return None

        try:
            result = handler(args)
            if inspect.isawaitable(result):
                if self.timeout is None:
                    return await result
                return await self._await_with_timeout(kind, result)
            return result
        except Exception:
            log.exception("Handler for %r failed", kind)
            return None

    async def _await_with_timeout(self, kind: str, awaitable) -> Any:
        """Await *awaitable* for at most self.timeout seconds.

        Only an expired deadline counts as a timeout; exceptions raised by
        the handler itself (TimeoutError included) propagate to invoke().
        """
        task = asyncio.ensure_future(awaitable)
        try:
            done, _ = await asyncio.wait({task}, timeout=self.timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            task.cancel()
            log.error("Handler for %r timed out after %ss", kind, self.timeout)
            return None
        return task.result()
