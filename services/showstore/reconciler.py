# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Fold one status.xml snapshot into the player panels.

Device truth always wins: any control still inflight is settled to whatever
the snapshot implies, even if that is not what the click asked for.
Running the same snapshot twice gives the same result.
"""

import logging

from .controls import ACTIVE, DISABLED, ENABLED
from .protocol import NO_SHOW, format_time

logger = logging.getLogger(__name__)


def button_state(verb: str, status, enabled: bool = True) -> str:
    """State a button should show for one PlayerStatus."""
    if not enabled or status.show == NO_SHOW:
        return DISABLED
    if verb == status.status.lower():
        return ACTIVE
    return ENABLED


def selector_state(status, enabled: bool = True) -> str:
    # Picking a show must stay possible while nothing is loaded
    if not enabled:
        return DISABLED
    return ACTIVE if status.status.lower() == "load" else ENABLED


def reconcile_panel(panel, status):
    panel.selected_show = status.show
    panel.time_display = format_time(status.time, status.show)
    panel.selector.settle(selector_state(status, panel.enabled))
    for verb, control in panel.buttons.items():
        control.settle(button_state(verb, status, panel.enabled))


def reconcile(statuses, panels) -> int:
    """Apply *statuses* to every panel bound to the same player index.

    *panels* is an iterable of PlayerPanel; the recorder shares index 1 with
    player 1.  Returns the number of panels updated.
    """
    by_player: dict[int, list] = {}
    for panel in panels:
        by_player.setdefault(panel.player_id, []).append(panel)

    seen = set()
    for status in statuses:
        targets = by_player.get(status.index)
        if not targets:
            logger.warning("Status for unknown player %s ignored", status.index)
            continue
        for panel in targets:
            reconcile_panel(panel, status)
            seen.add(panel)

    # No status for these panels; inflight must not outlive a pass
    for players in by_player.values():
        for panel in players:
            if panel in seen:
                continue
            for control in panel.controls():
                control.fail()
    return len(seen)
