# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Mode Transition Guard.

Narrowing from one of the multi player modes to single player (or
recording) stops whatever players 2 - 4 are doing, so it has to be
confirmed.  Every other change goes straight through.

The guard also owns the mode command itself: the device has no recording
mode, so Recording goes out on the wire as single player.
"""

from .protocol import MULTI_MODES, RECORDING, SINGLE, encode, wire_mode_id

CONFIRM_TITLE = "Confirm Mode Change"
CONFIRM_MESSAGE = (
    "Switching to a single player mode will stop any ongoing playback "
    "on players 2 - 4. Are you certain you want to proceed?"
)

_NARROW_TARGETS = (SINGLE, RECORDING)


def requires_confirmation(old_mode: str | None, new_mode: str) -> bool:
    return old_mode in MULTI_MODES and new_mode in _NARROW_TARGETS


class Proceed:
    """Apply the change right away."""

    requires_confirmation = False

    def __init__(self, old_mode, new_mode):
        self.old_mode = old_mode
        self.new_mode = new_mode

    def __repr__(self):
        return f"<Proceed {self.old_mode} -> {self.new_mode}>"


class Confirm:
    """Ask the user first, then call exactly one of on_confirm / on_cancel."""

    requires_confirmation = True

    def __init__(self, old_mode, new_mode, on_confirm, on_cancel,
                 title: str = CONFIRM_TITLE, message: str = CONFIRM_MESSAGE):
        self.old_mode = old_mode
        self.new_mode = new_mode
        self.title = title
        self.message = message
        self._on_confirm = on_confirm
        self._on_cancel = on_cancel
        self.resolved = False

    def __repr__(self):
        return f"<Confirm {self.old_mode} -> {self.new_mode} resolved={self.resolved}>"

    @property
    def prompt(self) -> dict:
        return {
            "title": self.title,
            "message": self.message,
            "from": self.old_mode,
            "to": self.new_mode,
        }

    def confirm(self):
        if self.resolved:
            return None
        self.resolved = True
        return self._on_confirm()

    def cancel(self):
        if self.resolved:
            return None
        self.resolved = True
        return self._on_cancel()


class ModeTransitionGuard:
    """Turns a (from, to) pair into a Proceed or a Confirm.

    ``apply(new_mode)`` performs the change, ``rollback(old_mode)`` puts the
    mode selector back.  Both are supplied by the session.
    """

    def __init__(self, apply, rollback):
        self._apply = apply
        self._rollback = rollback

    def request_change(self, old_mode: str | None, new_mode: str):
        if not requires_confirmation(old_mode, new_mode):
            return Proceed(old_mode, new_mode)
        return Confirm(
            old_mode, new_mode,
            on_confirm=lambda: self._apply(new_mode),
            on_cancel=lambda: self._rollback(old_mode),
        )

    def mode_command(self, mode: str) -> str:
        return encode(0, "mode", wire_mode_id(mode))
