# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Shared configuration loader for spotwatch.

Loads a single JSON config file.  Search order:
  1. $SPOTWATCH_CONFIG                  (explicit override)
  2. ~/.config/spotwatch/config.json    (per-user install)
  3. config.json                        (CWD — handy for local dev)

Secrets (SPOTIFY_CLIENT_ID, SPOTIFY_CLIENT_SECRET) may also come from
environment variables; the CLI checks those first.

Usage:
    from spotwatch.lib.config import cfg

    tick       = cfg("watcher", "tick", default=0.5)
    client_id  = cfg("spotify", "client_id", default="")
    spotify    = cfg("spotify")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None


def _search_paths() -> list[str]:
    paths = []
    override = os.environ.get("SPOTWATCH_CONFIG")
    if override:
        paths.append(override)
    paths.append(os.path.expanduser("~/.config/spotwatch/config.json"))
    paths.append("config.json")
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    spotify = config.get("spotify") or {}
    if spotify and not spotify.get("client_id"):
        logger.warning("Config %s: missing spotify.client_id — expecting SPOTIFY_CLIENT_ID", path)
    watcher = config.get("watcher") or {}
    tick = watcher.get("tick")
    if tick is not None and (not isinstance(tick, (int, float)) or tick <= 0):
        logger.warning("Config %s: watcher.tick must be a positive number of seconds, got %r", path, tick)
    timeout = watcher.get("callback_timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        logger.warning("Config %s: watcher.callback_timeout must be positive, got %r", path, timeout)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.debug("No config.json found — using empty config")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("spotify")                       → config["spotify"]
    cfg("spotify", "client_id")          → config["spotify"]["client_id"]
    cfg("watcher", "tick", default=0.5)  → config["watcher"]["tick"] or 0.5
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()
