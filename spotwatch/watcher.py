# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SpotifyWatcher — collect callbacks and run the watch loop that fires them.

    watcher = SpotifyWatcher(client_id, client_secret)

    @watcher.on("listen")          # or watcher.on("listen", handler)
    async def scrobble(args):
        print(args["item"]["name"], "on", args["device"]["name"])

    asyncio.run(watcher.run())

Lifecycle: UNINITIALIZED → RUNNING (start) → STOPPED (stop / cancel).

Every handler gets a single dict: {"api": SpotifyClient, ...event fields}.
"start" fires once after auth, "tick" on every interval, "listen" once
per track per continuous playing session.

Ticks are strictly sequential: a tick's fetch and all of its handler
calls finish before the next interval wait begins, so `state` only ever
has one writer.
"""

import asyncio
import enum
import logging
import signal

from .differ import compute_tick, snapshot_from_response
from .events import START
from .lib.config import cfg
from .registry import CallbackRegistry
from .spotify.auth import REDIRECT_URI, SpotifyAuth
from .spotify.client import SpotifyClient

log = logging.getLogger(__name__)

DEFAULT_TICK = 0.5  # seconds
EVENT_KINDS = ("start", "tick", "listen")


class WatcherStatus(enum.Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    STOPPED = "stopped"


class SpotifyWatcher:

    def __init__(self, client_id=None, client_secret=None, *, tick=None,
                 auth=None, api=None, callback_timeout=None):
        if auth is None:
            if not client_id:
                raise ValueError("client_id is required when no auth provider is given")
            auth = SpotifyAuth(
                client_id, client_secret,
                redirect_uri=cfg("spotify", "redirect_uri", default=REDIRECT_URI))
        self.auth = auth
        self.api = api if api is not None else SpotifyClient(auth)

        if tick is None:
            tick = cfg("watcher", "tick", default=DEFAULT_TICK)
        self.tick_interval = tick or DEFAULT_TICK
        if callback_timeout is None:
            callback_timeout = cfg("watcher", "callback_timeout")

        self.callbacks = CallbackRegistry(timeout=callback_timeout)
        self.state = None
        self.status = WatcherStatus.UNINITIALIZED
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self.status is WatcherStatus.RUNNING

    def on(self, kind, handler=None):
        """Register *handler* for *kind*; last registration wins.

        Unknown kinds are accepted but never fire.  Without a handler,
        returns a decorator.
        """
        if handler is None:
            def decorator(fn):
                self.on(kind, fn)
                return fn
            return decorator
        if kind not in EVENT_KINDS:
            log.warning("Registered handler for unknown event %r — it will never fire", kind)
        self.callbacks.register(kind, handler)
        return handler

    def _args(self, event) -> dict:
        return {"api": self.api, **event.payload()}

    # ── Lifecycle ──

    async def start(self):
        """Authenticate, fire "start", and move to RUNNING.

        Auth failures propagate; the watcher then stays UNINITIALIZED.
        """
        if self.status is not WatcherStatus.UNINITIALIZED:
            raise RuntimeError(f"Watcher already {self.status.value}")

        await self.auth.ensure_valid_token()

        if self.callbacks.has("start"):
            await self.callbacks.invoke("start", self._args(START))

        self.status = WatcherStatus.RUNNING
        log.info("Watching Spotify every %ss (%s)",
                 self.tick_interval, ", ".join(self.callbacks.kinds()) or "no handlers")

    def stop(self):
        """Ask the loop to exit at its next interval wait."""
        if not self._stop_event.is_set():
            log.info("Stopping watcher")
        self._stop_event.set()

    async def watch(self):
        """start(), then tick until stop() is called or the task is cancelled."""
        await self.start()
        try:
            while not self._stop_event.is_set():
                if await self._wait_for_stop(self.tick_interval):
                    break

                events = await self.tick()

                for event in events:
                    await self.callbacks.invoke(event.kind, self._args(event))
        finally:
            self.status = WatcherStatus.STOPPED
            log.info("Watcher stopped")

    async def run(self):
        """Convenience entry-point: watch() with SIGINT/SIGTERM wired to stop()."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self.stop)
        try:
            await self.watch()
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            close = getattr(self.api, "close", None)
            if close is not None:
                await close()

    async def _wait_for_stop(self, timeout) -> bool:
        """Sleep up to *timeout* seconds. True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    # ── One tick ──

    async def tick(self):
        """Compute this tick's events and advance `state`. Does not dispatch."""
        events, self.state = await compute_tick(self.callbacks, self.state, self.current_state)
        return events

    async def current_state(self):
        """Fetch a PlaybackSnapshot, or None if the fetch failed."""
        response = await self.api.get_current_playback()
        return snapshot_from_response(response)
