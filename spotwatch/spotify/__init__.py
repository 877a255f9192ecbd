# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Spotify collaborators — credential lifecycle and the Web API client.

  auth    — SpotifyAuth: grant via local redirect, refresh, persistence
  tokens  — atomic JSON credential store
  oauth   — authorize URL, code exchange, refresh (blocking urllib)
  client  — SpotifyClient: the `api` handle passed to callbacks
"""

from .auth import AuthError, SpotifyAuth
from .client import PlaybackResponse, SpotifyClient

__all__ = ["AuthError", "PlaybackResponse", "SpotifyAuth", "SpotifyClient"]
