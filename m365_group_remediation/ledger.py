"""
Action Ledger — append-only evidence of one run.

Two text artifacts per run, both named with the run-start timestamp:
  * the operational log: every step, resolution, success and error, each line
    prefixed with a UTC timestamp;
  * the findings report: the pre-remediation inventory of public groups.

Every line is flushed and fsynced before the call returns.

A successful remediation is always written as exactly two consecutive lines,
which the downstream notification watcher parses:

    2024-05-01 06:00:03  ACTION: PUBLIC→PRIVATE  GroupId=<id>  Name='<name>'
    2024-05-01 06:00:03  LABEL:  <labelId>
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional, TextIO

logger = logging.getLogger("m365_group_remediation.ledger")

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
SEPARATOR = "  "
NO_PUBLIC_GROUPS_LINE = "No public unified groups found."

ACTION_TEMPLATE = "ACTION: PUBLIC→PRIVATE  GroupId={group_id}  Name='{name}'"
LABEL_TEMPLATE = "LABEL:  {label_id}"

_ACTION_RE = re.compile(
    r"^(?P<ts>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})  "
    r"ACTION: PUBLIC→PRIVATE  GroupId=(?P<group_id>\S+)  Name='(?P<name>.*)'$"
)
_LABEL_RE = re.compile(
    r"^(?P<ts>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2})  LABEL:  (?P<label_id>\S+)$"
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _one_line(text: str) -> str:
    # display names may carry line breaks; one entry is one line
    return " ".join(str(text).splitlines())


def report_line(group_id: str, display_name: str) -> str:
    return f"{group_id}  |  {display_name}"


@dataclass(frozen=True)
class RemediationEvent:
    """One ACTION/LABEL pair read back from an operational log."""
    timestamp: str
    group_id: str
    display_name: str
    label_id: str


class ActionLedger:
    """Writes the operational log and the findings report for one run."""

    def __init__(
        self,
        log_path: Path,
        report_path: Path,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.log_path = Path(log_path)
        self.report_path = Path(report_path)
        self._clock = clock
        self._log: Optional[TextIO] = None
        self._report: Optional[TextIO] = None

    def __enter__(self) -> "ActionLedger":
        self.open()
        return self

    def __exit__(self, *args):
        self.close()

    def open(self):
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self.report_path.parent.mkdir(parents=True, exist_ok=True)
        self._log = open(self.log_path, "a", encoding="utf-8")
        self._report = open(self.report_path, "a", encoding="utf-8")

    def close(self):
        for fh in (self._log, self._report):
            if fh is not None and not fh.closed:
                fh.close()
        self._log = self._report = None

    @property
    def artifacts(self) -> list[Path]:
        return [self.log_path, self.report_path]

    def _stamp(self) -> str:
        return self._clock().strftime(TIMESTAMP_FORMAT)

    def log_action(self, message: str):
        """Append a timestamped line to the operational log."""
        message = _one_line(message)
        self._write(self._log, f"{self._stamp()}{SEPARATOR}{message}")
        logger.info(message)

    def log_report(self, message: str):
        """Append a plain line to the findings report."""
        self._write(self._report, _one_line(message))

    def log_remediation(self, group_id: str, display_name: str, label_id: str):
        """The two-line ACTION/LABEL record, always written back to back."""
        stamp = self._stamp()
        action = ACTION_TEMPLATE.format(group_id=group_id, name=_one_line(display_name))
        label = LABEL_TEMPLATE.format(label_id=label_id)
        self._write(
            self._log,
            f"{stamp}{SEPARATOR}{action}\n{stamp}{SEPARATOR}{label}",
        )
        logger.info(f"{action} {label}")

    @staticmethod
    def _write(fh: Optional[TextIO], line: str):
        if fh is None:
            raise RuntimeError("ActionLedger is not open.")
        fh.write(line + "\n")
        fh.flush()
        os.fsync(fh.fileno())


def parse_remediation_events(lines: Iterable[str]) -> list[RemediationEvent]:
    """Extract (group id, name, label id) from an operational log."""
    events = []
    pending = None
    for raw in lines:
        line = raw.rstrip("\n")
        if pending is not None:
            match = _LABEL_RE.match(line)
            if match:
                events.append(RemediationEvent(
                    timestamp=pending.group("ts"),
                    group_id=pending.group("group_id"),
                    display_name=pending.group("name"),
                    label_id=match.group("label_id"),
                ))
                pending = None
                continue
        pending = _ACTION_RE.match(line)
    return events
