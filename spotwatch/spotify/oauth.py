# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
OAuth helpers for the Spotify Authorization Code flow.

Always sends a PKCE code challenge.  When a client_secret is configured it
is sent as HTTP Basic auth on the token endpoint as well; without one the
flow is plain PKCE (client_id in the body).

Uses blocking urllib.request intentionally — callers wrap in run_in_executor().

Usage:
    verifier = generate_code_verifier()
    challenge = generate_code_challenge(verifier)
    url = build_auth_url(client_id, redirect_uri, challenge, scopes, state)
    # ... user completes auth flow ...
    tokens = exchange_code(code, client_id, verifier, redirect_uri)
    tokens = refresh_access_token(client_id, refresh_token)
"""

import base64
import hashlib
import json
import os
import secrets
import string
import urllib.parse
import urllib.request

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"
TOKEN_URL = "https://accounts.spotify.com/api/token"

_STATE_ALPHABET = string.ascii_letters + string.digits


def generate_code_verifier(length=128):
    """Generate a random code verifier string (43-128 chars, URL-safe)."""
    raw = os.urandom(length)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")[:length]


def generate_code_challenge(verifier):
    """Generate a code challenge from a verifier (S256 method)."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_state(length=16):
    """Random alphanumeric anti-CSRF value for the authorize request."""
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(length))


def build_auth_url(client_id, redirect_uri, code_challenge, scopes, state):
    """Build the Spotify authorization URL."""
    if not isinstance(scopes, str):
        scopes = " ".join(scopes)
    params = urllib.parse.urlencode({
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "scope": scopes,
        "state": state,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
    })
    return f"{AUTHORIZE_URL}?{params}"


def _token_request(body, client_id, client_secret=None, timeout=10):
    headers = {"Content-Type": "application/x-www-form-urlencoded"}
    if client_secret:
        basic = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode("ascii")
        headers["Authorization"] = f"Basic {basic}"
    else:
        body = {**body, "client_id": client_id}

    data = urllib.parse.urlencode(body).encode()
    req = urllib.request.Request(TOKEN_URL, data=data, headers=headers)

    with urllib.request.urlopen(req, timeout=timeout) as resp:
        return json.loads(resp.read().decode())


def exchange_code(code, client_id, code_verifier, redirect_uri, client_secret=None):
    """Exchange an authorization code for access + refresh tokens.

    Returns dict with 'access_token', 'refresh_token', 'expires_in', etc.
    Raises urllib.error.HTTPError on failure.
    """
    return _token_request({
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }, client_id, client_secret)


def refresh_access_token(client_id, refresh_token, client_secret=None):
    """Refresh an access token.

    Returns dict with 'access_token', optionally 'refresh_token' (rotated).
    Raises urllib.error.HTTPError on failure.
    """
    return _token_request({
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    }, client_id, client_secret)
