# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Error taxonomy for ShowStore communication.

None of these are fatal to a session: the poller skips the cycle, a failed
command reverts its control.  They exist so callers can log precisely.
"""


class ShowStoreError(Exception):
    """Base class for everything the device layer raises."""


class NetworkError(ShowStoreError):
    """Transport failure: connection refused, timeout, HTTP error status."""


class ParseError(ShowStoreError):
    """The device answered with something that is not well-formed XML."""


class ProtocolAnomaly(ShowStoreError):
    """Well-formed XML that lacks the elements or attributes we need."""
