# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Thin async Spotify Web API client.

This is the `api` handle handed to every callback.  It never stores a
token of its own: each request asks the SpotifyAuth it wraps for the
current access token, so refreshes are picked up transparently.
"""

import json
import logging
from typing import Any, NamedTuple

import aiohttp

log = logging.getLogger(__name__)

API_BASE = "https://api.spotify.com/v1"


class PlaybackResponse(NamedTuple):
    status: int
    body: Any


class SpotifyClient:
    """Authenticated GET access to the Spotify Web API."""

    def __init__(self, auth, *, session: aiohttp.ClientSession | None = None,
                 base_url: str = API_BASE, timeout: float = 10):
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def get(self, path: str, params: dict | None = None) -> PlaybackResponse:
        """GET *path* (relative to the API base). Retries once after a 401.

        Raises aiohttp.ClientError / asyncio.TimeoutError on transport
        failures; HTTP error statuses are returned, not raised.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        token = await self.auth.get_access_token()
        response = await self._request(url, token, params)
        if response.status == 401:
            log.info("Spotify returned 401 — refreshing token and retrying")
            token = await self.auth.refresh_access_token()
            response = await self._request(url, token, params)
        return response

    async def _request(self, url, token, params):
        session = self._get_session()
        async with session.get(
            url,
            params=params,
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.timeout,
        ) as resp:
            body = None
            if resp.status != 204:
                text = await resp.text()
                if text:
                    try:
                        body = json.loads(text)
                    except ValueError:
                        body = text
            return PlaybackResponse(resp.status, body)

    async def get_current_playback(self) -> PlaybackResponse:
        """Current playback state: 200 with a body, or 204 when nothing is active."""
        return await self.get("/me/player")
