# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Tiny persistent key/value store (one JSON object on disk).

Only holds the last selected player mode today.  Read once at startup,
written once per confirmed mode change; no merging, last write wins.
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

MODE_KEY = "playerMode"


class PreferenceStore:
    def __init__(self, path: str):
        self.path = path
        self._data: dict | None = None

    def _load(self) -> dict:
        if self._data is not None:
            return self._data
        try:
            with open(self.path) as f:
                data = json.load(f)
            self._data = data if isinstance(data, dict) else {}
        except FileNotFoundError:
            self._data = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not read preferences %s: %s", self.path, e)
            self._data = {}
        return self._data

    def get(self, key: str, default=None):
        return self._load().get(key, default)

    def set(self, key: str, value) -> bool:
        data = self._load()
        data[key] = value
        tmp = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
            logger.info("Saved %s=%r to %s", key, value, self.path)
            return True
        except OSError as e:
            logger.error("Could not write preferences %s: %s", self.path, e)
            return False
