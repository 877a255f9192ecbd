# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Atomic credential storage for Spotify OAuth tokens.

Stores the token response (access_token, refresh_token, expires_at, ...) in
a JSON file.  Writes are atomic (temp file + rename) so a crash mid-write
never corrupts the file.

Storage location (first match wins):
  1. $SPOTWATCH_CREDENTIALS
  2. spotify.credentials_file in config.json
  3. ~/.cache/spotify/credentials.json
"""

import json
import os
import tempfile
from datetime import datetime, timezone

from ..lib.config import cfg

DEFAULT_PATH = "~/.cache/spotify/credentials.json"


def default_store_path():
    """Resolve the credential file path from env, config, or the default."""
    path = (os.environ.get("SPOTWATCH_CREDENTIALS")
            or cfg("spotify", "credentials_file")
            or DEFAULT_PATH)
    return os.path.expanduser(path)


def load_tokens(path=None):
    """Load credentials from disk. Returns dict or None if not usable."""
    path = path or default_store_path()
    try:
        with open(path) as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return None
    if isinstance(data, dict) and data.get("access_token"):
        return data
    return None


def save_tokens(data, path=None):
    """Atomically save credentials to disk. Returns the path written."""
    path = path or default_store_path()
    data = dict(data)
    data.setdefault("updated_at", datetime.now(timezone.utc).isoformat())

    # Atomic write: temp file in same directory, then rename
    d = os.path.dirname(path) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=4)
            f.write("\n")
        os.chmod(tmp, 0o600)
        os.replace(tmp, path)
    except Exception:
        # Clean up temp file on failure
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise

    return path


def delete_tokens(path=None):
    """Delete the credential file from disk. Returns the path deleted, or None."""
    path = path or default_store_path()
    if os.path.exists(path):
        os.unlink(path)
        return path
    return None
