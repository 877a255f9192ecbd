#!/usr/bin/env python3
# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
spotwatch daemon — log what you listen to on Spotify.

Credentials: --client-id/--client-secret, else SPOTIFY_CLIENT_ID /
SPOTIFY_CLIENT_SECRET, else spotify.client_id / spotify.client_secret in
config.json.  The first run opens a browser for authorization.

Usage:
    python3 -m spotwatch [--tick 0.5] [--verbose]
    python3 -m spotwatch --logout
"""

import argparse
import asyncio
import logging
import os
import sys

from .lib.config import cfg
from .lib.watchdog import watchdog_loop
from .spotify.auth import AuthError
from .watcher import SpotifyWatcher

log = logging.getLogger('spotwatch')


def describe_track(item):
    """'Artist, Artist — Title' for a track or episode dict."""
    name = item.get('name') or item.get('uri', '?')
    artists = ', '.join(a['name'] for a in item.get('artists') or [] if a.get('name'))
    if not artists:
        artists = (item.get('show') or {}).get('name', '')
    return f"{artists} — {name}" if artists else name


async def on_start(args):
    log.info("Connected to Spotify — waiting for playback")


async def on_listen(args):
    device = args.get('device') or {}
    log.info("Listening: %s (on %s)",
             describe_track(args['item']), device.get('name', 'unknown device'))


def build_parser():
    parser = argparse.ArgumentParser(prog='spotwatch', description='Log what you listen to on Spotify.')
    parser.add_argument('--client-id', default=None, help='Spotify app client ID')
    parser.add_argument('--client-secret', default=None, help='Spotify app client secret (optional with PKCE)')
    parser.add_argument('--tick', type=float, default=None, help='poll interval in seconds (default 0.5)')
    parser.add_argument('--logout', action='store_true', help='delete cached credentials and exit')
    parser.add_argument('-v', '--verbose', action='store_true', help='debug logging')
    return parser


async def _main(watcher):
    heartbeat = asyncio.create_task(watchdog_loop())
    try:
        await watcher.run()
    finally:
        heartbeat.cancel()
        try:
            await heartbeat
        except asyncio.CancelledError:
            pass


def main(argv=None):
    opts = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if opts.verbose else logging.INFO,
                        format='[%(levelname)s] %(message)s')

    client_id = (opts.client_id or os.environ.get('SPOTIFY_CLIENT_ID')
                 or cfg("spotify", "client_id", default=""))
    client_secret = (opts.client_secret or os.environ.get('SPOTIFY_CLIENT_SECRET')
                     or cfg("spotify", "client_secret"))
    if not client_id:
        log.error("No Spotify client ID — pass --client-id or set SPOTIFY_CLIENT_ID")
        return 2

    watcher = SpotifyWatcher(client_id, client_secret, tick=opts.tick)

    if opts.logout:
        watcher.auth.clear()
        log.info("Logged out")
        return 0

    watcher.on("start", on_start)
    watcher.on("listen", on_listen)

    try:
        asyncio.run(_main(watcher))
    except AuthError as e:
        log.error("Spotify authorization failed: %s", e)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
