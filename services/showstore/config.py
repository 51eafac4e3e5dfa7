# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Shared configuration loader for the ShowStore controller.

Loads a single JSON config file.  Search order:
  1. /etc/showstore/config.json   (deployed install)
  2. config.json                  (working directory, local runs)
  3. ../../config/default.json    (repo fallback)

Usage:
    from showstore.config import cfg

    device_url    = cfg("showstore", "url", default="http://showstore.local")
    poll_interval = cfg("polling", "interval", default=1.0)
    port          = cfg("controller", "port", default=8780)
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

_SEARCH_PATHS = [
    "/etc/showstore/config.json",
    "config.json",
    os.path.join(os.path.dirname(__file__), "..", "..", "config", "default.json"),
]


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    device = config.get("showstore") or {}
    if not device.get("url"):
        logger.warning("Config %s: missing showstore.url — using http://showstore.local", path)
    polling = config.get("polling") or {}
    interval = polling.get("interval", 1.0)
    if not isinstance(interval, (int, float)) or interval <= 0:
        logger.warning("Config %s: polling.interval must be a positive number, got %r", path, interval)
    settle = polling.get("settle_delay", 0.66)
    if not isinstance(settle, (int, float)) or settle < 0:
        logger.warning("Config %s: polling.settle_delay must be >= 0, got %r", path, settle)



def _read(path: str) -> dict | None:
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Config %s: top level must be an object, ignoring", path)
        return None
    return data


def load_config() -> dict:
    """Return the controller config, reading it on first use."""
    global _config
    if _config is None:
        for path in _SEARCH_PATHS:
            data = _read(path)
            if data is not None:
                logger.info("Config loaded from %s", path)
                _validate(data, path)
                _config = data
                break
        else:
            logger.warning("No ShowStore config found, running on defaults")
            _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Look up a section, or one key inside it.

    cfg("controller")                         -> {"port": 8780}
    cfg("showstore", "timeout", default=3.0)  -> 3.0 unless configured
    """
    value = load_config().get(section)
    if key is not None:
        value = value.get(key) if isinstance(value, dict) else None
    return default if value is None else value


def reload_config():
    """Drop the cached config and read it again."""
    global _config
    _config = None
    return load_config()
