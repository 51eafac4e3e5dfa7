# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Player Control Session: the one place with top-level mutable state.

Owns the current mode, the four player panels plus the recorder panel, the
status poller and the in-flight command bookkeeping.  Everything the UI
shows is derived from ``snapshot()``; listeners registered with
``subscribe()`` are told (once per event-loop turn) whenever it changes.

Command flow:

    click ──> control inflight ──> poller stopped ──> GET /?<cmd>
        ok   ──> settle delay ──> poller restarted ──> next poll clears inflight
        fail ──> control reverted, poller restarted immediately
"""

import asyncio
import logging

from .controls import (
    BLINK_PERIOD, IN_FLIGHT, PLAYER_VERBS, RECORDER_VERBS, Blinker, PlayerPanel,
)
from .errors import ShowStoreError
from .mode_guard import ModeTransitionGuard, Proceed
from .poller import POLL_INTERVAL, StatusPoller
from .preferences import MODE_KEY
from .protocol import (
    MAX_PLAYERS, MODE_NAMES, MODES, NO_SHOW, RECORDING,
    active_player_count,
)
from .reconciler import reconcile

logger = logging.getLogger(__name__)

SETTLE_DELAY = 0.66  # seconds to wait after a command before polling again
NO_SHOW_LABEL = "No show"


class Session:
    def __init__(self, device, preferences, poll_interval: float = POLL_INTERVAL,
                 settle_delay: float = SETTLE_DELAY, blink_period: float = BLINK_PERIOD):
        self.device = device
        self.preferences = preferences
        self.settle_delay = settle_delay

        self.mode: str | None = None            # None until a mode is known
        self.mode_selector: str | None = None   # what the selector shows
        self.shows: list = []
        self.pending_confirmation = None

        self.players = {
            i: PlayerPanel(i, PLAYER_VERBS, "player", self._control_changed)
            for i in range(1, MAX_PLAYERS + 1)
        }
        # The recorder drives device player 1
        self.recorder = PlayerPanel(1, RECORDER_VERBS, "recorder", self._control_changed)

        self.poller = StatusPoller(device.fetch_status, self.apply_status, poll_interval)
        self.guard = ModeTransitionGuard(self._apply_mode, self._rollback_mode)
        self.blinker = Blinker(blink_period, on_tick=lambda control: self._notify())

        self._listeners = []
        self._notify_pending = False
        self._commands_in_flight = 0
        self._resume_handle: asyncio.TimerHandle | None = None
        self._mode_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._stopped = False

    # ── Derived state ──

    @property
    def active_player_count(self) -> int:
        return active_player_count(self.mode)

    @property
    def polling_active(self) -> bool:
        return self.poller.running

    def panels(self):
        yield from self.players.values()
        yield self.recorder

    def panel(self, player_id, recorder: bool = False) -> PlayerPanel | None:
        if recorder:
            return self.recorder if player_id in (None, 1, "1") else None
        try:
            return self.players.get(int(player_id))
        except (TypeError, ValueError):
            return None

    def show_options(self) -> list[dict]:
        options = [{"index": NO_SHOW, "label": NO_SHOW_LABEL}]
        options.extend({"index": s.index, "label": s.label} for s in self.shows)
        return options

    def snapshot(self) -> dict:
        return {
            "mode": self.mode,
            "mode_name": MODE_NAMES.get(self.mode),
            "mode_selector": self.mode_selector,
            "active_players": self.active_player_count,
            "polling": self.polling_active,
            "shows": self.show_options(),
            "players": [p.to_dict() for p in self.players.values()],
            "recorder": self.recorder.to_dict(),
            "confirm": self.pending_confirmation.prompt if self.pending_confirmation else None,
        }

    # ── Change notification ──

    def subscribe(self, callback):
        """Register ``callback(session)``; called after every batch of changes."""
        self._listeners.append(callback)

    def unsubscribe(self, callback):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self):
        if self._notify_pending:
            return
        self._notify_pending = True
        try:
            asyncio.get_running_loop().call_soon(self._flush_notify)
        except RuntimeError:
            self._flush_notify()

    def _flush_notify(self):
        self._notify_pending = False
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                logger.error("Session listener failed: %s", e)

    def _control_changed(self, control, old_state):
        if control.state == IN_FLIGHT:
            self.blinker.start(control)
        elif old_state == IN_FLIGHT:
            self.blinker.stop(control)
        self._notify()

    # ── Lifecycle ──

    async def start(self):
        """Restore the last mode, start polling if we have one, load the show list."""
        self._stopped = False
        stored = self.preferences.get(MODE_KEY)
        if stored in MODES:
            self.mode = self.mode_selector = stored
            self._update_visibility()
            self.poller.start()
            logger.info("Restored mode %s (%s)", stored, MODE_NAMES[stored])
        elif stored is not None:
            logger.warning("Ignoring unknown stored mode %r", stored)
        else:
            logger.info("No mode selected yet, waiting for the user")
        await self.load_shows()
        self._notify()

    async def stop(self):
        self._stopped = True
        self.poller.stop()
        self._cancel_resume()
        self.blinker.stop_all()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Session stopped")

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # ── Show list ──

    async def load_shows(self) -> bool:
        try:
            shows = await self.device.fetch_toc()
        except ShowStoreError as e:
            logger.error("Error fetching TOC: %s", e)
            return False
        self.set_shows(shows)
        return True

    def set_shows(self, shows):
        self.shows = list(shows)
        valid = {NO_SHOW} | {s.index for s in self.shows}
        for panel in self.panels():
            if panel.selected_show not in valid:
                panel.selected_show = NO_SHOW
        logger.info("Loaded %d shows", len(self.shows))
        self._notify()

    # ── Status ──

    def apply_status(self, statuses):
        """Poller callback: fold one snapshot into the panels."""
        reconcile(statuses, self.panels())
        self._notify()

    # ── Controls ──

    async def click(self, player_id, verb: str, recorder: bool = False) -> bool:
        panel = self.panel(player_id, recorder)
        if panel is None:
            logger.warning("Click for unknown player %s ignored", player_id)
            return False
        control = panel.buttons.get(verb)
        command = panel.click(verb)
        if command is None:
            return False
        return await self.send_command(command, control)

    async def select_show(self, player_id, show_id, recorder: bool = False) -> bool:
        panel = self.panel(player_id, recorder)
        if panel is None:
            logger.warning("Show selection for unknown player %s ignored", player_id)
            return False
        previous = panel.selected_show
        command = panel.select_show(show_id)
        if command is None:
            return False
        ok = await self.send_command(command, panel.selector)
        if not ok:
            panel.selected_show = previous
        return ok

    async def send_command(self, command: str, control=None) -> bool:
        """Send *command* with polling suspended around it."""
        self._commands_in_flight += 1
        self._cancel_resume()
        self.poller.stop()
        self._notify()
        sent = False
        try:
            await self.device.send(command)
            sent = True
        except ShowStoreError as e:
            logger.error("Error sending command %s: %s", command, e)
        except asyncio.CancelledError:
            logger.warning("Command %s cancelled", command)
            raise
        finally:
            self._commands_in_flight -= 1
            if not sent and control is not None:
                control.fail()
            if not self._commands_in_flight:
                if sent:
                    self._schedule_resume()
                else:
                    self._resume_polling()
            self._notify()

        if sent:
            logger.info("Command %s sent", command)
        return sent

    def _cancel_resume(self):
        if self._resume_handle is not None:
            self._resume_handle.cancel()
            self._resume_handle = None

    def _schedule_resume(self):
        self._cancel_resume()
        loop = asyncio.get_running_loop()
        self._resume_handle = loop.call_later(self.settle_delay, self._resume_polling)

    def _resume_polling(self):
        self._resume_handle = None
        if self._stopped or self.mode is None or self._commands_in_flight:
            return
        self.poller.start()
        self._notify()

    # ── Mode ──

    def request_mode(self, new_mode: str):
        """Ask for a mode change.  Returns the guard's Proceed or Confirm."""
        if new_mode not in MODES:
            raise ValueError(f"unknown mode {new_mode!r}")
        if self.pending_confirmation is not None:
            self.pending_confirmation.cancel()

        if new_mode == self.mode:
            self.mode_selector = new_mode
            self._notify()
            return Proceed(self.mode, new_mode)

        decision = self.guard.request_change(self.mode, new_mode)
        self.mode_selector = new_mode
        if decision.requires_confirmation:
            self.pending_confirmation = decision
            logger.info("Mode change %s -> %s needs confirmation", self.mode, new_mode)
        else:
            self._apply_mode(new_mode)
        self._notify()
        return decision

    async def change_mode(self, new_mode: str):
        """request_mode, then wait for the mode command if one went out."""
        decision = self.request_mode(new_mode)
        await self._await_mode_command()
        return decision

    async def confirm_mode_change(self) -> bool:
        pending = self.pending_confirmation
        if pending is None:
            return False
        pending.confirm()
        await self._await_mode_command()
        return True

    def cancel_mode_change(self) -> bool:
        pending = self.pending_confirmation
        if pending is None:
            return False
        pending.cancel()
        return True

    async def _await_mode_command(self):
        task, self._mode_task = self._mode_task, None
        if task is not None:
            await task

    def _apply_mode(self, mode: str):
        old = self.mode
        self.pending_confirmation = None
        self.mode = self.mode_selector = mode
        self.preferences.set(MODE_KEY, mode)
        self._update_visibility()
        logger.info("Mode %s -> %s (%s)", old, mode, MODE_NAMES[mode])
        self._mode_task = self._spawn(
            self.send_command(self.guard.mode_command(mode)))
        self._notify()

    def _rollback_mode(self, old_mode):
        self.pending_confirmation = None
        self.mode_selector = old_mode
        logger.info("Mode change cancelled, staying in %s", old_mode)
        self._notify()

    def _update_visibility(self):
        count = self.active_player_count
        recording = self.mode == RECORDING
        for player_id, panel in self.players.items():
            panel.set_enabled(player_id <= count and not recording)
        self.recorder.set_enabled(recording)
