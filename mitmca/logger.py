"""
mitmca.logger
~~~~~~~~~~~~~
Diagnostic side channel for the CA.  Events are dicts; they go out as
JSON lines with daily rotation when a log file is configured, and as
one human-readable line on the console.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

_ISO = "%Y-%m-%dT%H:%M:%SZ"

def _now() -> str:  # RFC-3339 without microseconds
    return datetime.now(tz=timezone.utc).strftime(_ISO)


class _PlainFormatter(logging.Formatter):
    """ e.g. 2025-06-19T15:07:02Z leaf_issued example.com 3f9c...e1 """

    def format(self, record):  # type: ignore[override]
        if not isinstance(record.msg, dict):
            return super().format(record)
        d: Dict[str, Any] = record.msg

        parts = [d.get("ts", _now()), d.get("event", "-")]
        for key in ("host", "folder", "serial", "path"):
            if key in d:
                parts.append(str(d[key]))
        if "error" in d:
            parts.extend(["ERROR", d["error"]])
        return " ".join(parts)


class _JSONFormatter(logging.Formatter):
    def format(self, record):  # type: ignore[override]
        return json.dumps(record.msg, separators=(",", ":"), default=str)


class CALogger:
    def __init__(
        self,
        basename: str | Path | None = None,
        level: int | str = logging.INFO,
        console: bool = False,
    ):
        root = logging.getLogger("mitmca")
        root.setLevel(level)

        if basename:
            root.propagate = False  # don't spam the root logger

            basename = Path(basename).with_suffix("")  # mitmca
            jsonl_file = basename.with_suffix(".jsonl")

            if not any(
                isinstance(h, logging.handlers.TimedRotatingFileHandler)
                and h.baseFilename == os.path.abspath(jsonl_file)
                for h in root.handlers
            ):
                # json lines
                h = logging.handlers.TimedRotatingFileHandler(
                    jsonl_file, when="midnight", backupCount=7, encoding="utf-8"
                )
                h.setFormatter(_JSONFormatter())
                root.addHandler(h)

        if console and not any(
            isinstance(h.formatter, _PlainFormatter) for h in root.handlers
        ):
            h = logging.StreamHandler()
            h.setFormatter(_PlainFormatter())
            root.addHandler(h)

        self.log = root

    def ca_loaded(self, folder: str | Path, serial: str):
        self.log.info(
            {
                "event": "ca_loaded",
                "ts": _now(),
                "folder": str(folder),
                "serial": serial,
            }
        )

    def ca_generated(self, folder: str | Path, serial: str):
        self.log.info(
            {
                "event": "ca_generated",
                "ts": _now(),
                "folder": str(folder),
                "serial": serial,
            }
        )

    def ca_persist_fail(self, folder: str | Path, error: BaseException):
        self.log.error(
            {
                "event": "ca_persist_fail",
                "ts": _now(),
                "folder": str(folder),
                "error": repr(error),
            }
        )

    def leaf_issued(self, host: str, serial: str, alt_names: list[str]):
        self.log.info(
            {
                "event": "leaf_issued",
                "ts": _now(),
                "host": host,
                "serial": serial,
                "alt_names": alt_names,
            }
        )

    def leaf_persisted(self, host: str, path: str | Path):
        self.log.debug(
            {
                "event": "leaf_persisted",
                "ts": _now(),
                "host": host,
                "path": str(path),
            }
        )

    def leaf_persist_fail(self, host: str, path: str | Path, error: BaseException):
        self.log.warning(
            {
                "event": "leaf_persist_fail",
                "ts": _now(),
                "host": host,
                "path": str(path),
                "error": repr(error),
            }
        )

    def persist_callback_fail(self, host: str, error: BaseException):
        self.log.error(
            {
                "event": "persist_callback_fail",
                "ts": _now(),
                "host": host,
                "error": repr(error),
            }
        )
