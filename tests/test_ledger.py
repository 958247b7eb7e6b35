"""Tests for the Action Ledger and the two-line remediation contract."""

from __future__ import annotations

from m365_group_remediation.ledger import (
    ActionLedger,
    NO_PUBLIC_GROUPS_LINE,
    parse_remediation_events,
    report_line,
)

from conftest import FIXED_NOW, FIXED_STAMP, LABEL_ID, read_lines


class TestActionLog:

    def test_log_action_is_timestamped(self, ledger):
        ledger.log_action("Job started")
        assert read_lines(ledger.log_path) == [f"{FIXED_STAMP}  Job started"]

    def test_lines_are_durable_before_close(self, ledger):
        """Each write is flushed; another reader sees it while the ledger is open."""
        ledger.log_action("first")
        ledger.log_report("a  |  b")
        assert read_lines(ledger.log_path) == [f"{FIXED_STAMP}  first"]
        assert read_lines(ledger.report_path) == ["a  |  b"]

    def test_order_follows_calls(self, ledger):
        for i in range(5):
            ledger.log_action(f"step {i}")
        lines = read_lines(ledger.log_path)
        assert [l.split("  ", 1)[1] for l in lines] == [f"step {i}" for i in range(5)]

    def test_append_only_across_reopen(self, tmp_path):
        log = tmp_path / "log.txt"
        report = tmp_path / "report.txt"
        with ActionLedger(log, report, clock=lambda: FIXED_NOW) as led:
            led.log_action("one")
        with ActionLedger(log, report, clock=lambda: FIXED_NOW) as led:
            led.log_action("two")
        assert read_lines(log) == [f"{FIXED_STAMP}  one", f"{FIXED_STAMP}  two"]

    def test_multiline_message_stays_one_entry(self, ledger):
        ledger.log_action("bad\nname")
        assert read_lines(ledger.log_path) == [f"{FIXED_STAMP}  bad name"]

    def test_writing_when_closed_raises(self, tmp_path):
        led = ActionLedger(tmp_path / "l.txt", tmp_path / "r.txt")
        try:
            led.log_action("x")
        except RuntimeError as e:
            assert "not open" in str(e)
        else:
            raise AssertionError("expected RuntimeError")

    def test_artifacts(self, ledger):
        assert ledger.artifacts == [ledger.log_path, ledger.report_path]


class TestRemediationContract:

    def test_two_line_shape(self, ledger):
        ledger.log_remediation("g-1", "Sales Team", LABEL_ID)
        assert read_lines(ledger.log_path) == [
            f"{FIXED_STAMP}  ACTION: PUBLIC→PRIVATE  GroupId=g-1  Name='Sales Team'",
            f"{FIXED_STAMP}  LABEL:  {LABEL_ID}",
        ]

    def test_parse_round_trip(self, ledger):
        ledger.log_action("Job started")
        ledger.log_remediation("g-1", "Sales", LABEL_ID)
        ledger.log_action("INFO: something")
        ledger.log_remediation("g-2", "O'Brien's Team", LABEL_ID)
        events = parse_remediation_events(read_lines(ledger.log_path))
        assert [(e.group_id, e.display_name, e.label_id) for e in events] == [
            ("g-1", "Sales", LABEL_ID),
            ("g-2", "O'Brien's Team", LABEL_ID),
        ]
        assert all(e.timestamp == FIXED_STAMP for e in events)

    def test_parse_ignores_action_without_label(self):
        lines = [
            f"{FIXED_STAMP}  ACTION: PUBLIC→PRIVATE  GroupId=g-1  Name='A'",
            f"{FIXED_STAMP}  ACTION: PUBLIC→PRIVATE  GroupId=g-2  Name='B'",
            f"{FIXED_STAMP}  LABEL:  {LABEL_ID}",
        ]
        events = parse_remediation_events(lines)
        assert [e.group_id for e in events] == ["g-2"]

    def test_name_with_newline_keeps_two_lines(self, ledger):
        ledger.log_remediation("g-1", "Line\nBreak", LABEL_ID)
        lines = read_lines(ledger.log_path)
        assert len(lines) == 2
        assert parse_remediation_events(lines)[0].display_name == "Line Break"


def test_report_line_shape():
    assert report_line("g-1", "Sales") == "g-1  |  Sales"


def test_none_found_line_is_explicit():
    assert NO_PUBLIC_GROUPS_LINE.lower().startswith("no public")
