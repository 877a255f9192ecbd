# spotwatch
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Value types for the watch loop: playback snapshots and the events derived
from them.

A PlaybackSnapshot distinguishes a field that was not observed (ABSENT)
from one the API explicitly returned as null (None).  Merging a newer
snapshot over an older one only replaces observed fields, so a 204 "no
content" poll flips is_playing without forgetting the last item/device.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar


class _Absent:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "ABSENT"

    def __bool__(self):
        return False


ABSENT: Any = _Absent()


@dataclass(frozen=True)
class PlaybackSnapshot:
    is_playing: Any = ABSENT
    item: Any = ABSENT
    device: Any = ABSENT

    @property
    def playing(self) -> bool:
        return self.is_playing is True

    @property
    def track_uri(self) -> str | None:
        if isinstance(self.item, dict):
            uri = self.item.get("uri")
            if isinstance(uri, str):
                return uri
        return None

    def merged(self, newer: "PlaybackSnapshot") -> "PlaybackSnapshot":
        """Overlay *newer*'s observed fields on this snapshot."""
        values = {}
        for f in fields(self):
            value = getattr(newer, f.name)
            values[f.name] = getattr(self, f.name) if value is ABSENT else value
        return PlaybackSnapshot(**values)


@dataclass(frozen=True)
class TickEvent:
    kind: ClassVar[str] = "tick"

    def payload(self) -> dict:
        return {}


@dataclass(frozen=True)
class StartEvent:
    kind: ClassVar[str] = "start"

    def payload(self) -> dict:
        return {}


@dataclass(frozen=True)
class ListenEvent:
    kind: ClassVar[str] = "listen"
    item: dict
    device: Any = None

    def payload(self) -> dict:
        return {"item": self.item, "device": self.device}


Event = TickEvent | StartEvent | ListenEvent

TICK = TickEvent()
START = StartEvent()
