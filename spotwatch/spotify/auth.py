# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Spotify token management — the ONE place for token grant and refresh.

SpotifyAuth owns the credential lifecycle:
  - load cached credentials from the token store
  - run the interactive grant (local redirect listener + browser) when
    there are none
  - refresh when the access token has expired, persisting rotated tokens

Consumers only ever call ensure_valid_token() (once, at startup) and
get_access_token() (per request).  There is no shared client singleton;
SpotifyClient holds a reference to this object instead.
"""

import asyncio
import json
import logging
import urllib.error
import urllib.parse
import webbrowser
from datetime import datetime, timedelta, timezone

from aiohttp import web

from . import oauth
from .tokens import default_store_path, delete_tokens, load_tokens, save_tokens

log = logging.getLogger(__name__)

REDIRECT_URI = "http://localhost:8888/callback"
SCOPES = (
    "user-read-playback-state",
    "user-read-currently-playing",
    "user-read-email",
    "user-read-private",
    "playlist-modify-private",
    "playlist-read-private",
)
EXPIRY_MARGIN = timedelta(seconds=60)

_CONNECTED_HTML = '''<!DOCTYPE html><html><head>
<meta charset="UTF-8"><title>spotwatch - Connected</title>
<style>
body{font-family:'Helvetica Neue',sans-serif;background:#000;color:#fff;padding:20px;text-align:center}
h1{font-size:24px;font-weight:300;margin:50px 0 20px;letter-spacing:1px}
</style></head><body>
<h1>Connected to Spotify</h1>
<p style="color:#999">You can close this page.</p>
</body></html>'''


class AuthError(RuntimeError):
    """Raised when no usable Spotify access token can be obtained."""


def _parse_expiry(value):
    """Parse a stored expires_at (ISO-8601, 'Z' suffix allowed). None if unusable."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SpotifyAuth:
    """Manages Spotify OAuth credentials with automatic refresh (async)."""

    def __init__(self, client_id, client_secret=None, *,
                 redirect_uri=REDIRECT_URI, scopes=SCOPES,
                 credentials_file=None, opener=webbrowser.open,
                 grant_timeout=None):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.credentials_file = credentials_file or default_store_path()
        self.grant_timeout = grant_timeout
        self._opener = opener
        self._creds = None
        self._access_token = None
        self._refresh_token = None
        self._expires_at = None
        self.revoked = False

    # ── State ──

    @property
    def credentials(self):
        """Copy of the current credential dict, or None."""
        return dict(self._creds) if self._creds else None

    def is_expired(self, now=None):
        if self._expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        return now >= self._expires_at - EXPIRY_MARGIN

    # ── Persistence ──

    def load(self):
        """Load cached credentials from disk. Returns the dict or None."""
        creds = load_tokens(self.credentials_file)
        if not creds:
            return None
        self._apply(creds)
        log.info("Spotify credentials loaded from %s", self.credentials_file)
        return creds

    def _apply(self, creds):
        self._creds = creds
        self._access_token = creds.get("access_token")
        self._refresh_token = creds.get("refresh_token") or self._refresh_token
        self._expires_at = _parse_expiry(creds.get("expires_at"))

    async def _set_tokens(self, data):
        """Merge a token endpoint response into the credentials and persist them."""
        creds = {**(self._creds or {}), **data}
        if not data.get("refresh_token") and self._refresh_token:
            creds["refresh_token"] = self._refresh_token
        expires_in = int(data.get("expires_in", 3600))
        creds["expires_at"] = (datetime.now(timezone.utc)
                               + timedelta(seconds=expires_in)).isoformat()
        creds.pop("updated_at", None)
        self._apply(creds)
        self.revoked = False

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, save_tokens, creds, self.credentials_file)
            log.info("Tokens saved to %s (expires in %ds)", self.credentials_file, expires_in)
        except OSError as e:
            log.warning("Could not save tokens to disk (%s) — using in-memory", e)

    def clear(self):
        """Forget credentials in memory and on disk (used on logout)."""
        self._creds = None
        self._access_token = None
        self._refresh_token = None
        self._expires_at = None
        self.revoked = False
        path = delete_tokens(self.credentials_file)
        if path:
            log.info("Deleted token file: %s", path)

    # ── Token access ──

    async def ensure_valid_token(self):
        """Return valid credentials, granting or refreshing as needed.

        Raises AuthError when neither the cache, a refresh, nor the
        interactive grant produces an access token.
        """
        creds = self.load()
        if not creds:
            await self.grant_access_token()
        elif self.is_expired():
            if self._refresh_token:
                await self.refresh_access_token()
            else:
                log.info("Cached token expired and no refresh token — re-authorizing")
                await self.grant_access_token()

        if not self._access_token:
            raise AuthError("No Spotify access token available")
        return self.credentials

    async def get_access_token(self):
        """Get a valid access token, refreshing if needed."""
        if not self._access_token:
            await self.ensure_valid_token()
        elif self.is_expired():
            await self.refresh_access_token()
        return self._access_token

    async def refresh_access_token(self):
        """Refresh the access token with the stored refresh token."""
        if not self._refresh_token:
            raise AuthError("No refresh token — re-authorization required")
        if self.revoked:
            raise AuthError("Refresh token revoked — re-authorization required")

        log.info("Refreshing access token")
        loop = asyncio.get_running_loop()
        try:
            result = await loop.run_in_executor(
                None, oauth.refresh_access_token,
                self.client_id, self._refresh_token, self.client_secret)
        except urllib.error.HTTPError as e:
            if e.code == 400:
                self._mark_revoked(e)
            raise AuthError(f"Token refresh failed ({e.code})") from e
        except urllib.error.URLError as e:
            raise AuthError(f"Token refresh failed: {e.reason}") from e

        if result.get("refresh_token") and result["refresh_token"] != self._refresh_token:
            log.info("Refresh token rotated")
        await self._set_tokens(result)
        return self._access_token

    def _mark_revoked(self, exc):
        """Flag that the refresh token has been revoked by Spotify."""
        try:
            body = json.loads(exc.read().decode())
            error = body.get('error', '')
        except Exception:
            error = ''
        if error == 'invalid_grant':
            self.revoked = True
            log.error("Spotify refresh token revoked — re-authentication required")
        else:
            log.warning("Token refresh failed (400): %s", error)

    # ── Interactive grant ──

    async def grant_access_token(self):
        """Run the authorization code flow through a local redirect listener.

        Starts an HTTP server on the redirect URI's host/port, opens the
        authorize URL in a browser and waits for Spotify to redirect back
        with a code.  The server is shut down once the code is exchanged.
        """
        verifier = oauth.generate_code_verifier()
        challenge = oauth.generate_code_challenge(verifier)
        state = oauth.generate_state()
        auth_url = oauth.build_auth_url(
            self.client_id, self.redirect_uri, challenge, self.scopes, state)

        redirect = urllib.parse.urlsplit(self.redirect_uri)
        host = redirect.hostname or "localhost"
        port = redirect.port or 80
        path = redirect.path or "/"

        loop = asyncio.get_running_loop()
        granted = loop.create_future()

        async def handle_callback(request):
            if request.query.get("state") != state:
                log.warning("OAuth callback with mismatched state — ignoring")
                return web.Response(text="State mismatch", status=400)

            error = request.query.get("error")
            if error:
                if not granted.done():
                    granted.set_exception(AuthError(f"Spotify authorization failed: {error}"))
                return web.Response(text=f"Spotify authorization failed: {error}", status=400)

            code = request.query.get("code", "")
            if not code:
                return web.Response(text="Missing authorization code", status=400)

            try:
                log.info("OAuth: exchanging authorization code")
                token_data = await loop.run_in_executor(
                    None, oauth.exchange_code, code, self.client_id,
                    verifier, self.redirect_uri, self.client_secret)
            except (urllib.error.URLError, ValueError) as e:
                log.error("OAuth: authorization code exchange failed: %s", e)
                if not granted.done():
                    granted.set_exception(AuthError(f"Code exchange failed: {e}"))
                return web.Response(text=f"Setup failed: {e}", status=500)

            if not granted.done():
                granted.set_result(token_data)
            return web.Response(text=_CONNECTED_HTML, content_type="text/html")

        app = web.Application()
        app.router.add_get(path, handle_callback)
        runner = web.AppRunner(app)
        await runner.setup()
        try:
            site = web.TCPSite(runner, host, port)
            await site.start()
            log.info("Waiting for Spotify authorization on %s", self.redirect_uri)
            log.info("If no browser opens, visit: %s", auth_url)
            if self._opener:
                self._opener(auth_url)
            token_data = await asyncio.wait_for(granted, self.grant_timeout)
        except asyncio.TimeoutError as e:
            raise AuthError("Timed out waiting for Spotify authorization") from e
        finally:
            await runner.cleanup()
            log.info("Authorization listener closed")

        if not token_data.get("access_token"):
            raise AuthError("No access token in authorization response")
        await self._set_tokens(token_data)
        return self.credentials
