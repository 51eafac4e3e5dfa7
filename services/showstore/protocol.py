# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
ShowStore wire protocol: player modes and the command encoder.

Commands are plain ASCII sent as the query string of a GET to ``/``:

    <player><code>[<show>]     e.g. "2ST05"  (player 2, play show 05)
    MS<mode>                   e.g. "MS1"    (device-global mode switch)

Modes (the ids double as the values stored in preferences):
    "0" single player         "1" multi player HTP
    "2" multi player LTP      "3" multi player priority
    "4" recording             (sent to the device as "0")
"""

import re

# ── Modes ──

SINGLE = "0"
MULTI_HTP = "1"
MULTI_LTP = "2"
MULTI_PRIORITY = "3"
RECORDING = "4"

MODES = (SINGLE, MULTI_HTP, MULTI_LTP, MULTI_PRIORITY, RECORDING)
MULTI_MODES = (MULTI_HTP, MULTI_LTP, MULTI_PRIORITY)

MODE_NAMES = {
    SINGLE: "Single Player",
    MULTI_HTP: "Multi Player HTP",
    MULTI_LTP: "Multi Player LTP",
    MULTI_PRIORITY: "Multi Player Priority",
    RECORDING: "Recording",
}

_PLAYER_COUNTS = {
    SINGLE: 1,
    MULTI_HTP: 4,
    MULTI_LTP: 4,
    MULTI_PRIORITY: 4,
    RECORDING: 1,  # recorder uses the single player setup
}

MAX_PLAYERS = 4


def active_player_count(mode: str | None) -> int:
    """Number of players the device runs in *mode* (0 before a mode is chosen)."""
    return _PLAYER_COUNTS.get(mode, 0)


def wire_mode_id(mode: str) -> str:
    """Mode id as the device expects it.  It has no separate recording mode."""
    return SINGLE if mode == RECORDING else mode


# ── Verbs ──

VERB_CODES = {
    "load": "LD",
    "play": "ST",
    "loop": "LP",
    "stop": "SP",
    "hold": "HD",
    "continue": "CT",
    "restart": "RS",
    "record": "RC",
    "mode": "MS",
}

# Verbs whose command carries a two-digit show id
SHOW_VERBS = ("load", "play", "loop", "record")

NO_SHOW = "00"
TIME_PLACEHOLDER = "--:--:--"


def pad_show(show_id) -> str:
    """Zero-pad a show id to the device's two-character form."""
    if show_id is None or show_id == "":
        return NO_SHOW
    return str(show_id).zfill(2)


def encode(player_id, verb: str, show_id=None) -> str:
    """Encode one logical action as a wire command.

    encode(2, "play", "05")  → "2ST05"
    encode(1, "mode", "0")   → "MS0"   (no player prefix)
    encode(3, "stop")        → "3SP"

    An unknown verb raises KeyError; that is a caller bug, not device input.
    """
    code = VERB_CODES[verb]
    if verb == "mode":
        return code + str(show_id or "")
    command = f"{player_id}{code}"
    if verb in SHOW_VERBS:
        command += pad_show(show_id)
    return command


# ── Time display ──

_UNIT_MARKERS = re.compile(r"[hHmMsS]")


def format_time(raw: str | None, show: str) -> str:
    """Render the device's elapsed time for display.

    The device marks units with letters ("01h02m03s" or "1h02:03"); those
    become colons.  With no show loaded the time is meaningless.
    """
    if show == NO_SHOW or not raw:
        return TIME_PLACEHOLDER
    return _UNIT_MARKERS.sub(":", raw).rstrip(":")
