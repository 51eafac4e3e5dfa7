"""Shared test fixtures for the ShowStore controller."""

import pytest

from showstore.errors import NetworkError
from showstore.preferences import PreferenceStore
from showstore.status import PlayerStatus


def make_status(index, status="stop", show="00", time="00h00m00s"):
    return PlayerStatus(index=index, status=status, show=show, time=time)


class FakeDevice:
    """In-memory stand-in for ShowStoreDevice.

    ``statuses`` is what the next poll returns; set ``status_error`` or
    ``send_error`` to make the next calls fail.  A command with an
    ``asyncio.Event`` in ``gates`` blocks in ``send`` until the event is set.
    """

    def __init__(self, statuses=None, shows=None):
        self.statuses = list(statuses or [make_status(1)])
        self.shows = list(shows or [])
        self.sent = []
        self.status_calls = 0
        self.status_error = None
        self.send_error = None
        self.toc_error = None
        self.on_send = None
        self.gates = {}

    async def fetch_status(self):
        self.status_calls += 1
        if self.status_error is not None:
            raise self.status_error
        return list(self.statuses)

    async def fetch_toc(self):
        if self.toc_error is not None:
            raise self.toc_error
        return list(self.shows)

    async def send(self, command):
        self.sent.append(command)
        if self.on_send:
            self.on_send(command)
        gate = self.gates.get(command)
        if gate is not None:
            await gate.wait()
        if self.send_error is not None:
            raise self.send_error


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def prefs(tmp_path):
    return PreferenceStore(str(tmp_path / "preferences.json"))


@pytest.fixture
def network_error():
    return NetworkError("connection refused")
