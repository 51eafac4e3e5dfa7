"""Tests for the Player Control Session."""

import asyncio

import pytest

from conftest import FakeDevice, make_status
from showstore.controls import ACTIVE, DISABLED, ENABLED, IN_FLIGHT
from showstore.errors import NetworkError
from showstore.mode_guard import Confirm, Proceed
from showstore.preferences import MODE_KEY
from showstore.protocol import MULTI_HTP, MULTI_LTP, MULTI_PRIORITY, RECORDING, SINGLE
from showstore.session import Session
from showstore.status import Show

POLL = 0.02
SETTLE = 0.05
# Long enough for the settle delay plus a couple of poll cycles
WAIT = SETTLE + 5 * POLL


def make_session(device, prefs, mode=None):
    if mode is not None:
        prefs.set(MODE_KEY, mode)
    return Session(device, prefs, poll_interval=POLL, settle_delay=SETTLE,
                   blink_period=0.01)


def run(coro):
    return asyncio.run(coro)


# ------------------------------------------------------------------
# Startup
# ------------------------------------------------------------------

class TestStartup:
    def test_restores_mode_and_polls(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, MULTI_LTP)
            await session.start()
            assert session.mode == MULTI_LTP
            assert session.active_player_count == 4
            assert all(p.enabled for p in session.players.values())
            assert session.recorder.enabled is False
            await asyncio.sleep(3 * POLL)
            assert session.polling_active is True
            await session.stop()

        run(scenario())
        assert device.status_calls >= 1

    def test_no_mode_means_no_polling(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs)
            await session.start()
            await asyncio.sleep(3 * POLL)
            assert session.mode is None
            assert session.active_player_count == 0
            assert session.polling_active is False
            assert not any(p.enabled for p in session.panels())
            await session.stop()

        run(scenario())
        assert device.status_calls == 0

    def test_unknown_stored_mode_ignored(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, "9")
            await session.start()
            assert session.mode is None
            await session.stop()

        run(scenario())

    def test_loads_show_list(self, prefs):
        device = FakeDevice(shows=[Show("01", "Opening"), Show("02", "Finale")])

        async def scenario():
            session = make_session(device, prefs)
            await session.start()
            await session.stop()
            return session

        session = run(scenario())
        assert session.show_options() == [
            {"index": "00", "label": "No show"},
            {"index": "01", "label": "Opening"},
            {"index": "02", "label": "Finale"},
        ]

    def test_toc_failure_leaves_list_empty(self, device, prefs):
        device.toc_error = NetworkError("down")

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await session.stop()
            return session

        assert run(scenario()).shows == []

    def test_selection_outside_toc_resets(self, device, prefs):
        session = make_session(device, prefs)
        session.players[2].selected_show = "09"
        session.set_shows([Show("01", "Opening")])
        assert session.players[2].selected_show == "00"


# ------------------------------------------------------------------
# Controls
# ------------------------------------------------------------------

class TestControls:
    def test_play_end_to_end(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "stop", "00")],
                            shows=[Show("03", "Finale")])
        observed = {}

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            player = session.players[1]
            play = player.buttons["play"]
            assert play.state == DISABLED

            assert await session.select_show(1, "03") is True
            device.statuses = [make_status(1, "stop", "03")]
            await asyncio.sleep(WAIT)
            assert play.state == ENABLED

            def on_send(command):
                observed["state"] = play.state
                observed["polling"] = session.polling_active

            device.on_send = on_send
            assert await session.click(1, "play") is True
            assert play.state == IN_FLIGHT
            assert session.polling_active is False
            calls = device.status_calls
            await asyncio.sleep(SETTLE / 2)
            assert device.status_calls == calls

            device.statuses = [make_status(1, "play", "03")]
            await asyncio.sleep(WAIT)
            assert session.polling_active is True
            assert play.state == ACTIVE
            assert play.highlight is False
            await session.stop()

        run(scenario())
        assert device.sent[-2:] == ["1LD03", "1ST03"]
        assert observed == {"state": IN_FLIGHT, "polling": False}

    def test_reclick_while_inflight_not_sent_twice(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "stop", "03")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            release = asyncio.Event()

            async def slow_send(command):
                device.sent.append(command)
                await release.wait()

            device.send = slow_send
            first = asyncio.create_task(session.click(1, "play"))
            await asyncio.sleep(0)
            assert await session.click(1, "play") is False
            release.set()
            assert await first is True
            await session.stop()

        run(scenario())
        assert device.sent == ["1ST03"]

    def test_send_failure_reverts_and_resumes_polling(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "play", "03")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            stop = session.players[1].buttons["stop"]
            assert stop.state == ENABLED
            device.send_error = NetworkError("refused")
            assert await session.click(1, "stop") is False
            assert stop.state == ENABLED
            assert session.polling_active is True
            await session.stop()

        run(scenario())

    def test_failed_load_restores_selection(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "stop", "02")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            device.send_error = NetworkError("refused")
            assert await session.select_show(1, "05") is False
            assert session.players[1].selected_show == "02"
            await session.stop()

        run(scenario())

    def test_hold_toggles_to_continue(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "hold", "03")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            assert session.players[1].buttons["hold"].state == ACTIVE
            await session.click(1, "hold")
            await session.stop()

        run(scenario())
        assert device.sent == ["1CT"]

    def test_click_on_hidden_player_ignored(self, prefs):
        device = FakeDevice(statuses=[make_status(2, "stop", "03")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            assert await session.click(2, "play") is False
            assert await session.click(7, "play") is False
            await session.stop()

        run(scenario())
        assert device.sent == []

    def test_inflight_never_survives_a_pass(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "stop", "03")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            await session.click(1, "loop")
            await asyncio.sleep(WAIT)
            in_flight = [c for p in session.panels() for c in p.controls()
                         if c.state == IN_FLIGHT]
            await session.stop()
            return in_flight

        assert run(scenario()) == []

    def test_cancelled_send_reverts_and_resumes_polling(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "stop", "03")])

        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await asyncio.sleep(2 * POLL)
            play = session.players[1].buttons["play"]
            device.gates["1ST03"] = asyncio.Event()
            task = asyncio.create_task(session.click(1, "play"))
            await asyncio.sleep(POLL)
            assert play.state == IN_FLIGHT
            assert session.polling_active is False

            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            assert play.state == ENABLED
            assert session.polling_active is True

            del device.gates["1ST03"]
            assert await session.click(1, "play") is True
            await session.stop()

        run(scenario())
        assert device.sent == ["1ST03", "1ST03"]

    def test_overlapping_commands_resume_after_last(self, prefs):
        device = FakeDevice(statuses=[make_status(1, "stop", "03"),
                                      make_status(2, "stop", "03")])

        async def scenario():
            session = make_session(device, prefs, MULTI_HTP)
            await session.start()
            await asyncio.sleep(2 * POLL)
            device.gates["1ST03"] = asyncio.Event()
            device.gates["2LP03"] = asyncio.Event()
            first = asyncio.create_task(session.click(1, "play"))
            second = asyncio.create_task(session.click(2, "loop"))
            await asyncio.sleep(POLL)
            assert session.polling_active is False

            device.gates["1ST03"].set()
            assert await first is True
            calls = device.status_calls
            await asyncio.sleep(WAIT)
            assert session.polling_active is False
            assert device.status_calls == calls

            device.gates["2LP03"].set()
            assert await second is True
            assert session.polling_active is False
            await asyncio.sleep(WAIT)
            assert session.polling_active is True
            assert device.status_calls > calls
            await session.stop()

        run(scenario())
        assert sorted(device.sent) == ["1ST03", "2LP03"]

    def test_stop_during_mode_command_keeps_polling_off(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs)
            await session.start()
            device.gates["MS1"] = asyncio.Event()
            session.request_mode(MULTI_HTP)
            await asyncio.sleep(POLL)
            await session.stop()
            await asyncio.sleep(WAIT)
            return session.polling_active

        assert run(scenario()) is False
        assert device.status_calls == 0


# ------------------------------------------------------------------
# Mode changes
# ------------------------------------------------------------------

class TestModeChanges:
    def test_widening_proceeds(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            decision = await session.change_mode(MULTI_LTP)
            assert isinstance(decision, Proceed)
            assert session.mode == MULTI_LTP
            assert session.players[4].enabled is True
            await session.stop()

        run(scenario())
        assert prefs.get(MODE_KEY) == MULTI_LTP
        assert device.sent == ["MS2"]

    def test_within_multi_proceeds(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, MULTI_PRIORITY)
            await session.start()
            decision = await session.change_mode(MULTI_HTP)
            assert decision.requires_confirmation is False
            await session.stop()

        run(scenario())
        assert device.sent == ["MS1"]

    def test_narrowing_needs_confirmation(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, MULTI_HTP)
            await session.start()
            decision = await session.change_mode(SINGLE)
            assert isinstance(decision, Confirm)
            assert session.mode == MULTI_HTP
            assert session.mode_selector == SINGLE
            assert session.snapshot()["confirm"]["to"] == SINGLE
            assert device.sent == []

            assert await session.confirm_mode_change() is True
            assert session.mode == SINGLE
            assert session.pending_confirmation is None
            assert session.players[1].enabled is True
            assert not any(session.players[i].enabled for i in (2, 3, 4))
            await session.stop()

        run(scenario())
        assert prefs.get(MODE_KEY) == SINGLE
        assert device.sent == ["MS0"]

    def test_cancel_rolls_back_selector(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, MULTI_LTP)
            await session.start()
            await session.change_mode(RECORDING)
            assert session.cancel_mode_change() is True
            assert session.mode == MULTI_LTP
            assert session.mode_selector == MULTI_LTP
            assert session.cancel_mode_change() is False
            await session.stop()

        run(scenario())
        assert prefs.get(MODE_KEY) == MULTI_LTP
        assert device.sent == []

    def test_recording_sent_as_single(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, SINGLE)
            await session.start()
            await session.change_mode(RECORDING)
            assert session.mode == RECORDING
            assert session.recorder.enabled is True
            assert not any(p.enabled for p in session.players.values())
            await session.stop()

        run(scenario())
        assert device.sent == ["MS0"]
        assert prefs.get(MODE_KEY) == RECORDING

    def test_first_mode_starts_polling(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs)
            await session.start()
            await session.change_mode(SINGLE)
            await asyncio.sleep(WAIT)
            assert session.polling_active is True
            await session.stop()

        run(scenario())
        assert device.status_calls >= 1

    def test_same_mode_is_noop(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, MULTI_HTP)
            await session.start()
            decision = await session.change_mode(MULTI_HTP)
            assert decision.requires_confirmation is False
            await session.stop()

        run(scenario())
        assert device.sent == []

    def test_new_request_cancels_pending_confirmation(self, device, prefs):
        async def scenario():
            session = make_session(device, prefs, MULTI_HTP)
            await session.start()
            first = await session.change_mode(SINGLE)
            await session.change_mode(MULTI_LTP)
            assert first.resolved is True
            assert session.mode == MULTI_LTP
            await session.stop()

        run(scenario())
        assert device.sent == ["MS2"]

    def test_unknown_mode_rejected(self, device, prefs):
        session = make_session(device, prefs)
        with pytest.raises(ValueError):
            session.request_mode("7")

    def test_narrowing_disables_inflight_controls(self, prefs):
        device = FakeDevice(statuses=[make_status(i, "stop", "03") for i in range(1, 5)])

        async def scenario():
            session = make_session(device, prefs, MULTI_HTP)
            await session.start()
            await asyncio.sleep(2 * POLL)
            release = asyncio.Event()

            async def slow_send(command):
                device.sent.append(command)
                if command != "MS0":
                    await release.wait()

            device.send = slow_send
            click = asyncio.create_task(session.click(3, "play"))
            await asyncio.sleep(0)
            assert session.players[3].buttons["play"].state == IN_FLIGHT
            await session.change_mode(SINGLE)
            await session.confirm_mode_change()
            assert session.players[3].buttons["play"].state == DISABLED
            release.set()
            await click
            await session.stop()

        run(scenario())


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------

class TestNotifications:
    def test_listener_called_once_per_batch(self, prefs):
        device = FakeDevice(statuses=[make_status(i, "play", "03") for i in range(1, 5)])
        calls = []

        async def scenario():
            session = make_session(device, prefs, MULTI_HTP)
            session.subscribe(lambda s: calls.append(s.snapshot()))
            await session.start()
            calls.clear()
            session.apply_status(device.statuses)
            await asyncio.sleep(0)
            await session.stop()

        run(scenario())
        assert len(calls) == 1
        assert calls[0]["players"][3]["buttons"]["play"]["state"] == ACTIVE

    def test_snapshot_shape(self, device, prefs):
        session = make_session(device, prefs)
        snap = session.snapshot()
        assert snap["mode"] is None
        assert snap["polling"] is False
        assert len(snap["players"]) == 4
        assert snap["recorder"]["kind"] == "recorder"
        assert snap["confirm"] is None
