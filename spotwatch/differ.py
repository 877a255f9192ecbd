# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
State differ — turns successive playback snapshots into events.

One pass per tick:
  1. "tick" registered   → TICK, unconditionally (no API call)
  2. "listen" registered → fetch a snapshot; on success decide whether a
     ListenEvent fires, then merge the snapshot over the previous state.
     A failed fetch contributes nothing and leaves the state untouched.

A kind with no handler is never computed, so a watcher that only
subscribes to "tick" never touches the network.
"""

import logging
from typing import Awaitable, Callable

from .events import ABSENT, TICK, Event, ListenEvent, PlaybackSnapshot

log = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable["PlaybackSnapshot | None"]]


def snapshot_from_response(response) -> PlaybackSnapshot | None:
    """Build a snapshot from a (status, body) playback response.

    204 means nothing is active: is_playing=False, item/device unobserved.
    Anything other than 200/204, or a 200 without a JSON object body, is a
    failed fetch (None).
    """
    status, body = response
    if status == 204:
        return PlaybackSnapshot(is_playing=False)
    if status != 200:
        log.warning("Playback fetch returned HTTP %s", status)
        return None
    if not isinstance(body, dict):
        log.warning("Playback fetch returned a non-object body")
        return None
    return PlaybackSnapshot(
        is_playing=body.get("is_playing") is True,
        item=body.get("item"),
        device=body.get("device"),
    )


def should_listen(previous: PlaybackSnapshot | None, new: PlaybackSnapshot) -> bool:
    """True if *new* starts a listen relative to *previous*."""
    # Can't listen if we're not playing.
    if not new.playing:
        return False

    # Nothing loaded, or nothing we can identify.
    if new.track_uri is None:
        return False

    # Just started, or resumed after not playing.
    if previous is None or not previous.playing:
        return True

    # Only trigger once per track.
    return new.track_uri != previous.track_uri


def merge_state(previous: PlaybackSnapshot | None,
                new: PlaybackSnapshot) -> PlaybackSnapshot:
    if previous is None:
        return new
    return previous.merged(new)


async def compute_tick(registry, previous: PlaybackSnapshot | None,
                       fetch: Fetch) -> tuple[list[Event], PlaybackSnapshot | None]:
    """Run one differ pass. Returns (events, next state)."""
    events: list[Event] = []

    if registry.has("tick"):
        events.append(TICK)

    if not registry.has("listen"):
        return events, previous

    try:
        new = await fetch()
    except Exception as e:
        log.warning("Playback fetch failed: %s", e)
        new = None

    if new is None:
        return events, previous

    if should_listen(previous, new):
        log.debug("Listen: %s", new.track_uri)
        device = None if new.device is ABSENT else new.device
        events.append(ListenEvent(item=new.item, device=device))

    return events, merge_state(previous, new)
