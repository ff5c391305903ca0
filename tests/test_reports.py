#!/usr/bin/env python3
# test_reports.py - host report aggregation and rendering

from managers.reports import HostOutcome, HostReport, OperationResult, format_reports, summarize


def ops(*flags):
    return [OperationResult(f"vmhba{65 + i}", ok) for i, ok in enumerate(flags)]


class TestFromOperations:
    """Outcome derivation"""

    def test_all_succeeded(self):
        report = HostReport.from_operations("esx-01", ops(True, True), rescanned=True)
        assert report.outcome == HostOutcome.COMPLETED
        assert report.message == "2/2 operation(s) succeeded"
        assert report.status == "success"

    def test_nothing_to_do_is_completed(self):
        assert HostReport.from_operations("esx-01", [], rescanned=True).outcome == HostOutcome.COMPLETED

    def test_some_failed(self):
        assert HostReport.from_operations("esx-01", ops(True, False), rescanned=True).outcome == HostOutcome.PARTIAL

    def test_all_failed(self):
        report = HostReport.from_operations("esx-01", ops(False, False), rescanned=True)
        assert report.outcome == HostOutcome.FAILED
        assert report.status == "failed"

    def test_failed_rescan_downgrades(self):
        report = HostReport.from_operations("esx-01", ops(True), rescanned=False)
        assert report.outcome == HostOutcome.PARTIAL
        assert report.message.endswith("rescan failed")

    def test_explicit_message(self):
        assert HostReport.from_operations("esx-01", ops(True), True, message="done").message == "done"


def test_skipped_report():
    report = HostReport.skipped("esx-02", HostOutcome.SKIPPED_IN_USE, "datastore nvme-ds01 in use")

    assert report.outcome.is_skip
    assert report.status == "skipped"
    assert report.to_dict()["outcome"] == "skipped_in_use"
    assert report.operations == []


def test_summarize_counts():
    results = [
        {"status": "success"},
        {"status": "failed"},
        {"status": "skipped"},
        {"status": "skipped_not_connected"},
        {},
    ]
    assert summarize(results) == {"success": 1, "failed": 1, "skipped": 2}


def test_format_reports_lists_failed_targets():
    report = HostReport.from_operations("esx-01", ops(True, False), rescanned=True)

    table = format_reports([report.to_dict()])

    assert "esx-01" in table
    assert "partial" in table
    assert "vmhba66" in table
