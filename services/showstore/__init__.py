# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
ShowStore: client-side control session for an ELC ShowStore.

The ShowStore hosts up to four show players plus a recorder.  This package
does NOT play anything itself.  It encodes button presses into the device's
query-string commands, polls status.xml once a second, and folds what the
device reports back into an in-memory model that the UI renders.

Modules:
  protocol.py    — wire codes, modes, command encoder
  status.py      — status.xml / toc.xml parsing
  device.py      — aiohttp client for the ShowStore HTTP interface
  controls.py    — per-button state machine and player panels
  reconciler.py  — merges polled status into the panels
  poller.py      — cancellable periodic status fetch
  mode_guard.py  — confirm/rollback for destructive mode changes
  preferences.py — last-used mode on disk
  session.py     — composes all of the above
"""
