import asyncio

import pytest

from spotwatch.lib import config
from spotwatch.spotify.client import PlaybackResponse


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from any real config or credential file."""
    monkeypatch.setenv("SPOTWATCH_CONFIG", str(tmp_path / "no-config.json"))
    monkeypatch.setenv("SPOTWATCH_CREDENTIALS", str(tmp_path / "credentials.json"))
    monkeypatch.chdir(tmp_path)
    config._config = None
    yield
    config._config = None


def run(coro):
    """Run an async scenario from a sync test function."""
    return asyncio.run(asyncio.wait_for(coro, timeout=5))


def playing(uri, device="Kitchen"):
    return PlaybackResponse(200, {
        "is_playing": True,
        "item": {"uri": uri, "name": f"Track {uri}"},
        "device": {"name": device},
    })


def paused(uri, device="Kitchen"):
    return PlaybackResponse(200, {
        "is_playing": False,
        "item": {"uri": uri, "name": f"Track {uri}"},
        "device": {"name": device},
    })


NO_CONTENT = PlaybackResponse(204, None)


class FakeAuth:
    def __init__(self, error=None):
        self.error = error
        self.ensure_calls = 0
        self.refresh_calls = 0
        self.token = "token-1"

    async def ensure_valid_token(self):
        self.ensure_calls += 1
        if self.error:
            raise self.error
        return {"access_token": self.token}

    async def get_access_token(self):
        return self.token

    async def refresh_access_token(self):
        self.refresh_calls += 1
        self.token = f"token-{self.refresh_calls + 1}"
        return self.token


class FakeApi:
    """Serves queued playback responses; an Exception entry is raised."""

    def __init__(self, responses=()):
        self.responses = list(responses)
        self.calls = 0
        self.closed = False

    async def get_current_playback(self):
        self.calls += 1
        response = self.responses.pop(0) if self.responses else NO_CONTENT
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self):
        self.closed = True
