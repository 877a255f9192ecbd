# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
spotwatch — poll Spotify playback and fire callbacks on start, tick and
listen (new track / playback started).
"""

from .events import ABSENT, ListenEvent, PlaybackSnapshot, StartEvent, TickEvent
from .registry import CallbackRegistry
from .spotify import AuthError, SpotifyAuth, SpotifyClient
from .watcher import SpotifyWatcher, WatcherStatus

__version__ = "0.3.0"

__all__ = [
    "ABSENT",
    "AuthError",
    "CallbackRegistry",
    "ListenEvent",
    "PlaybackSnapshot",
    "SpotifyAuth",
    "SpotifyClient",
    "SpotifyWatcher",
    "StartEvent",
    "TickEvent",
    "WatcherStatus",
]
