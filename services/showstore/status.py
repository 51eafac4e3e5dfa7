# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Parsers for the two XML resources the ShowStore serves.

status.xml (polled):
    <status>
      <player index="1" status="PLAY" show="03" time="00h01m12s"/>
      ...
    </status>

toc.xml (fetched once):
    <toc>
      <show index="01">Opening</show>
      ...
    </toc>
"""

from collections import namedtuple
from xml.etree import ElementTree

from .errors import ParseError, ProtocolAnomaly
from .protocol import pad_show

PlayerStatus = namedtuple("PlayerStatus", ["index", "status", "show", "time"])
Show = namedtuple("Show", ["index", "label"])


def _parse_xml(text: str, resource: str) -> ElementTree.Element:
    try:
        return ElementTree.fromstring(text)
    except ElementTree.ParseError as e:
        raise ParseError(f"{resource}: {e}") from e


def parse_status(text: str) -> list[PlayerStatus]:
    """Parse status.xml into PlayerStatus records, in document order.

    Raises ParseError for malformed XML and ProtocolAnomaly when there are
    no player elements or one of them lacks a usable index.
    """
    root = _parse_xml(text, "status.xml")
    players = root.iter("player")
    statuses = []
    for el in players:
        raw_index = el.get("index")
        try:
            index = int(raw_index)
        except (TypeError, ValueError):
            raise ProtocolAnomaly(f"status.xml: bad player index {raw_index!r}")
        statuses.append(PlayerStatus(
            index=index,
            status=(el.get("status") or "").strip().lower(),
            show=pad_show(el.get("show")),
            time=el.get("time") or "",
        ))
    if not statuses:
        raise ProtocolAnomaly("status.xml: no player elements")
    return statuses


def parse_toc(text: str) -> list[Show]:
    """Parse toc.xml into (index, label) pairs.  Entries without an index are skipped."""
    root = _parse_xml(text, "toc.xml")
    shows = []
    for el in root.iter("show"):
        index = el.get("index")
        if not index:
            continue
        label = "".join(el.itertext()).strip()
        shows.append(Show(index=pad_show(index), label=label))
    return shows
