"""Tests for SpotifyAuth: cached credentials, refresh, revocation, local grant."""

import asyncio
import io
import json
import socket
import urllib.error
import urllib.parse
from datetime import datetime, timedelta, timezone

import aiohttp
import pytest

from conftest import run
from spotwatch.spotify import auth as auth_mod
from spotwatch.spotify import oauth
from spotwatch.spotify.auth import AuthError, SpotifyAuth
from spotwatch.spotify.client import SpotifyClient
from spotwatch.spotify.tokens import load_tokens, save_tokens
from spotwatch.watcher import SpotifyWatcher


def iso(delta):
    return (datetime.now(timezone.utc) + delta).isoformat()


def free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def creds_path(tmp_path):
    return str(tmp_path / "cache" / "credentials.json")


def make_auth(creds_path, **kwargs):
    kwargs.setdefault("opener", None)
    return SpotifyAuth("client-abc", "secret-xyz", credentials_file=creds_path, **kwargs)


def test_valid_cached_token_is_used_without_network(creds_path, monkeypatch):
    save_tokens({"access_token": "cached", "refresh_token": "r1",
                 "expires_at": iso(timedelta(hours=1))}, creds_path)
    monkeypatch.setattr(oauth, "refresh_access_token",
                        lambda *a: pytest.fail("should not refresh"))
    auth = make_auth(creds_path)

    creds = run(auth.ensure_valid_token())

    assert creds["access_token"] == "cached"
    assert run(auth.get_access_token()) == "cached"


def test_expiry_written_with_z_suffix_is_understood(creds_path):
    expires = (datetime.now(timezone.utc) + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%S.000Z")
    save_tokens({"access_token": "a", "refresh_token": "r", "expires_at": expires}, creds_path)
    auth = make_auth(creds_path)
    auth.load()
    assert not auth.is_expired()


def test_expired_token_is_refreshed_and_persisted(creds_path, monkeypatch):
    save_tokens({"access_token": "old", "refresh_token": "r1",
                 "expires_at": iso(-timedelta(minutes=5))}, creds_path)
    calls = []

    def fake_refresh(client_id, refresh_token, client_secret):
        calls.append((client_id, refresh_token, client_secret))
        return {"access_token": "new", "expires_in": 3600, "token_type": "Bearer"}

    monkeypatch.setattr(oauth, "refresh_access_token", fake_refresh)
    auth = make_auth(creds_path)

    creds = run(auth.ensure_valid_token())

    assert calls == [("client-abc", "r1", "secret-xyz")]
    assert creds["access_token"] == "new"
    stored = load_tokens(creds_path)
    assert stored["access_token"] == "new"
    assert stored["refresh_token"] == "r1"
    assert datetime.fromisoformat(stored["expires_at"]) > datetime.now(timezone.utc)


def test_rotated_refresh_token_replaces_old_one(creds_path, monkeypatch):
    save_tokens({"access_token": "old", "refresh_token": "r1",
                 "expires_at": iso(-timedelta(minutes=5))}, creds_path)
    monkeypatch.setattr(oauth, "refresh_access_token",
                        lambda *a: {"access_token": "new", "refresh_token": "r2", "expires_in": 60})
    auth = make_auth(creds_path)
    run(auth.ensure_valid_token())
    assert load_tokens(creds_path)["refresh_token"] == "r2"


def test_revoked_refresh_token_raises_auth_error(creds_path, monkeypatch):
    save_tokens({"access_token": "old", "refresh_token": "dead",
                 "expires_at": iso(-timedelta(minutes=5))}, creds_path)

    def revoked(*args):
        raise urllib.error.HTTPError(
            oauth.TOKEN_URL, 400, "Bad Request", {},
            io.BytesIO(json.dumps({"error": "invalid_grant"}).encode()))

    monkeypatch.setattr(oauth, "refresh_access_token", revoked)
    auth = make_auth(creds_path)

    with pytest.raises(AuthError):
        run(auth.ensure_valid_token())
    assert auth.revoked


def _callback_url(auth_url, **overrides):
    query = urllib.parse.parse_qs(urllib.parse.urlsplit(auth_url).query)
    params = {"code": "auth-code", "state": query["state"][0], **overrides}
    return f"{query['redirect_uri'][0]}?{urllib.parse.urlencode(params)}"


def test_interactive_grant_via_local_redirect(creds_path, monkeypatch):
    redirect_uri = f"http://127.0.0.1:{free_port()}/callback"
    exchanged = []
    statuses = []

    def fake_exchange(code, client_id, verifier, redirect, secret):
        exchanged.append((code, client_id, redirect, secret))
        return {"access_token": "granted", "refresh_token": "r-new", "expires_in": 3600}

    monkeypatch.setattr(oauth, "exchange_code", fake_exchange)

    async def browser(auth_url):
        async with aiohttp.ClientSession() as session:
            bad = _callback_url(auth_url, state="forged")
            async with session.get(bad) as resp:
                statuses.append(resp.status)
            async with session.get(_callback_url(auth_url)) as resp:
                statuses.append(resp.status)

    async def scenario():
        tasks = []
        auth = make_auth(creds_path, redirect_uri=redirect_uri,
                         opener=lambda url: tasks.append(asyncio.create_task(browser(url))))
        creds = await auth.ensure_valid_token()
        await asyncio.gather(*tasks, return_exceptions=True)
        return creds

    creds = run(scenario())

    assert creds["access_token"] == "granted"
    assert exchanged == [("auth-code", "client-abc", redirect_uri, "secret-xyz")]
    assert statuses[0] == 400
    assert load_tokens(creds_path)["refresh_token"] == "r-new"


def test_denied_grant_raises(creds_path):
    redirect_uri = f"http://127.0.0.1:{free_port()}/callback"

    async def browser(auth_url):
        async with aiohttp.ClientSession() as session:
            async with session.get(_callback_url(auth_url, error="access_denied")) as resp:
                await resp.read()

    async def scenario():
        tasks = []
        auth = make_auth(creds_path, redirect_uri=redirect_uri,
                         opener=lambda url: tasks.append(asyncio.create_task(browser(url))))
        try:
            await auth.grant_access_token()
        finally:
            await asyncio.gather(*tasks, return_exceptions=True)

    with pytest.raises(AuthError, match="access_denied"):
        run(scenario())


def test_grant_timeout(creds_path):
    redirect_uri = f"http://127.0.0.1:{free_port()}/callback"
    auth = make_auth(creds_path, redirect_uri=redirect_uri, grant_timeout=0.05)
    with pytest.raises(AuthError, match="Timed out"):
        run(auth.ensure_valid_token())


def test_clear_removes_credentials(creds_path):
    save_tokens({"access_token": "a", "refresh_token": "r",
                 "expires_at": iso(timedelta(hours=1))}, creds_path)
    auth = make_auth(creds_path)
    auth.load()
    auth.clear()
    assert auth.credentials is None
    assert not auth.revoked
    assert load_tokens(creds_path) is None


def test_auth_url_carries_state_and_pkce():
    url = oauth.build_auth_url("cid", "http://localhost:8888/callback", "chal",
                               auth_mod.SCOPES, "st4te")
    query = urllib.parse.parse_qs(urllib.parse.urlsplit(url).query)
    assert query["state"] == ["st4te"]
    assert query["code_challenge_method"] == ["S256"]
    assert "user-read-playback-state" in query["scope"][0].split()


def test_revoked_token_is_not_refreshed_on_every_tick(creds_path, monkeypatch):
    save_tokens({"access_token": "old", "refresh_token": "dead",
                 "expires_at": iso(-timedelta(minutes=5))}, creds_path)
    attempts = []

    def revoked(*args):
        attempts.append(args)
        raise urllib.error.HTTPError(
            oauth.TOKEN_URL, 400, "Bad Request", {},
            io.BytesIO(json.dumps({"error": "invalid_grant"}).encode()))

    monkeypatch.setattr(oauth, "refresh_access_token", revoked)
    auth = make_auth(creds_path)
    auth.load()
    watcher = SpotifyWatcher(
        tick=0.01, auth=auth,
        api=SpotifyClient(auth, base_url="http://127.0.0.1:9/v1"))
    watcher.on("listen", lambda args: None)

    async def scenario():
        for _ in range(10):
            assert await watcher.tick() == []
        await watcher.api.close()

    run(scenario())

    assert auth.revoked
    assert len(attempts) == 1
    assert watcher.state is None


def test_revoked_flag_short_circuits_refresh(creds_path, monkeypatch):
    save_tokens({"access_token": "old", "refresh_token": "dead",
                 "expires_at": iso(-timedelta(minutes=5))}, creds_path)
    monkeypatch.setattr(oauth, "refresh_access_token",
                        lambda *a: pytest.fail("token endpoint called after revocation"))
    auth = make_auth(creds_path)
    auth.load()
    auth.revoked = True

    with pytest.raises(AuthError, match="revoked"):
        run(auth.get_access_token())
