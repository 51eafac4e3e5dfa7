# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Per-button state machine and the player panels that group them.

A Control is one player × verb button.  Its visible state is owned locally
until the next reconciliation pass replaces it with what the device says:

    disabled ──(show loaded)──> enabled ──(device reports verb)──> active
    enabled/active ──click──> inflight ──(reconcile)──> disabled|enabled|active
                                       └─(send failed)─> state before click

Clicks on disabled or inflight controls are ignored, so a control never has
two commands outstanding.
"""

import asyncio
import logging

from .protocol import NO_SHOW, TIME_PLACEHOLDER, encode, pad_show

logger = logging.getLogger(__name__)

DISABLED = "disabled"
ENABLED = "enabled"
ACTIVE = "active"
IN_FLIGHT = "inflight"

# Buttons on a player panel; "continue" is the second meaning of hold
PLAYER_VERBS = ("play", "loop", "stop", "hold", "restart")
RECORDER_VERBS = ("record", "stop", "hold", "restart")

BLINK_PERIOD = 0.333  # seconds per phase, ~3 blinks a second


class Control:
    """One button: a player id, a verb, and its current visual state."""

    def __init__(self, player_id: int, verb: str, on_change=None):
        self.player_id = player_id
        self.verb = verb
        self.state = DISABLED
        self.highlight = False          # blink phase, only meaningful while inflight
        self._prior_state: str | None = None
        self._on_change = on_change     # callback(control, old_state)

    def __repr__(self):
        return f"<Control {self.player_id}/{self.verb} {self.state}>"

    @property
    def in_flight(self) -> bool:
        return self.state == IN_FLIGHT

    def command_verb(self) -> str:
        """The verb a click sends right now (hold toggles to continue when held)."""
        if self.verb == "hold" and self.state == ACTIVE:
            return "continue"
        return self.verb

    def click(self, show_id=None) -> str | None:
        """Enter inflight and return the wire command, or None if the click is ignored."""
        if self.state == IN_FLIGHT:
            logger.debug("Ignoring click on %s/%s: command already in flight",
                         self.player_id, self.verb)
            return None
        if self.state == DISABLED:
            logger.debug("Ignoring click on disabled %s/%s", self.player_id, self.verb)
            return None
        command = encode(self.player_id, self.command_verb(), show_id)
        self._prior_state = self.state
        self._set(IN_FLIGHT)
        return command

    def settle(self, state: str):
        """Apply reconciled device truth.  Always clears inflight."""
        self._prior_state = None
        self._set(state)

    def fail(self):
        """The command could not be sent: fall back to the state before the click."""
        if self.state != IN_FLIGHT:
            return
        prior = self._prior_state or ENABLED
        self._prior_state = None
        self._set(prior)

    def disable(self):
        self.settle(DISABLED)

    def _set(self, state: str):
        if state == self.state:
            return
        old = self.state
        self.state = state
        if state != IN_FLIGHT:
            self.highlight = False
        if self._on_change:
            self._on_change(self, old)

    def to_dict(self) -> dict:
        return {"verb": self.verb, "state": self.state, "highlight": self.highlight}


class PlayerPanel:
    """The show selector, time display and buttons of one player (or the recorder)."""

    def __init__(self, player_id: int, verbs=PLAYER_VERBS, kind: str = "player",
                 on_change=None):
        self.player_id = player_id
        self.kind = kind
        self.enabled = False
        self.selected_show = NO_SHOW
        self.time_display = TIME_PLACEHOLDER
        # The selector is the load control: choosing a show sends LD
        self.selector = Control(player_id, "load", on_change)
        self.buttons = {verb: Control(player_id, verb, on_change) for verb in verbs}

    def __repr__(self):
        return f"<PlayerPanel {self.key} enabled={self.enabled}>"

    @property
    def key(self) -> str:
        return f"{self.kind}-{self.player_id}"

    def controls(self):
        yield self.selector
        yield from self.buttons.values()

    def control(self, verb: str) -> Control | None:
        if verb == "load":
            return self.selector
        return self.buttons.get(verb)

    def set_enabled(self, enabled: bool):
        """Show or hide this panel for the current mode."""
        self.enabled = enabled
        if not enabled:
            for control in self.controls():
                control.disable()
            return
        # Best guess until the next poll
        if self.selector.state == DISABLED:
            self.selector.settle(ENABLED)
        loaded = self.selected_show != NO_SHOW
        for control in self.buttons.values():
            if control.state == DISABLED and loaded:
                control.settle(ENABLED)

    def select_show(self, show_id) -> str | None:
        """User picked a show: remember it and click the load control."""
        if not self.enabled:
            logger.debug("Ignoring show selection on hidden %s", self.key)
            return None
        show = pad_show(show_id)
        command = self.selector.click(show)
        if command:
            self.selected_show = show
        return command

    def click(self, verb: str) -> str | None:
        control = self.buttons.get(verb)
        if control is None:
            logger.warning("%s has no %s button", self.key, verb)
            return None
        return control.click(self.selected_show)

    def to_dict(self) -> dict:
        return {
            "player": self.player_id,
            "kind": self.kind,
            "enabled": self.enabled,
            "show": self.selected_show,
            "time": self.time_display,
            "selector": self.selector.to_dict(),
            "buttons": {verb: c.to_dict() for verb, c in self.buttons.items()},
        }


class Blinker:
    """Alternates a control's highlight while it is inflight.

    Purely presentational: the task ends by itself once the control leaves
    inflight, and ``stop`` ends it immediately.
    """

    def __init__(self, period: float = BLINK_PERIOD, on_tick=None):
        self.period = period
        self._on_tick = on_tick
        self._tasks: dict[Control, asyncio.Task] = {}

    def start(self, control: Control):
        self.stop(control)
        self._tasks[control] = asyncio.create_task(self._blink(control))

    def stop(self, control: Control):
        task = self._tasks.pop(control, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        control.highlight = False

    def stop_all(self):
        for control in list(self._tasks):
            self.stop(control)

    def __contains__(self, control: Control):
        return control in self._tasks

    async def _blink(self, control: Control):
        try:
            while control.state == IN_FLIGHT:
                await asyncio.sleep(self.period)
                if control.state != IN_FLIGHT:
                    break
                control.highlight = not control.highlight
                if self._on_tick:
                    self._on_tick(control)
        finally:
            control.highlight = False
            if self._tasks.get(control) is asyncio.current_task():
                del self._tasks[control]
