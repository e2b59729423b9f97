# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the signal surface fed to classification."""

from __future__ import annotations

from malscope.models.analysis import DynamicAnalysis, StaticAnalysis
from malscope.scanner.signals import extract_signals


class TestExtractSignals:
    def test_counts_from_sample_reports(self, static_report, dynamic_report) -> None:
        signals = extract_signals(static_report, dynamic_report)

        assert signals.suspicious_strings == 4
        assert signals.url_strings == 1
        assert signals.ip_strings == 1
        assert signals.registry_strings == 1
        assert signals.suspicious_import_groups == 5
        assert "CryptEncrypt" in signals.sensitive_imports
        assert signals.sensitive_imports == sorted(signals.sensitive_imports)
        assert signals.overall_entropy == 7.2
        assert signals.packed_sections == [".rsrc"]
        assert signals.is_packed

        assert signals.api_calls == 7
        assert signals.suspicious_api_calls == 6
        assert "WriteProcessMemory" in signals.observed_sensitive_apis
        assert "CreateFileW" not in signals.observed_sensitive_apis
        assert signals.network_events == 3
        assert signals.distinct_destinations == 3
        assert signals.suspicious_file_operations == 3
        assert signals.suspicious_registry_operations == 2
        assert signals.processes == 3
        assert signals.suspicious_processes == 3

    def test_threshold_is_configurable(self, static_report, dynamic_report) -> None:
        signals = extract_signals(static_report, dynamic_report, packed_entropy_threshold=8.0)
        assert signals.packed_sections == []
        assert not signals.is_packed

    def test_threshold_is_inclusive(self, static_report, dynamic_report) -> None:
        signals = extract_signals(static_report, dynamic_report, packed_entropy_threshold=7.9)
        assert signals.packed_sections == [".rsrc"]

    def test_empty_analyses(self) -> None:
        signals = extract_signals(StaticAnalysis(), DynamicAnalysis())
        assert signals.suspicious_total == 0
        assert signals.sensitive_imports == []
        assert not signals.is_packed

    def test_deterministic(self, static_report, dynamic_report) -> None:
        first = extract_signals(static_report, dynamic_report)
        second = extract_signals(static_report, dynamic_report)
        assert first == second
        assert first.model_dump_json() == second.model_dump_json()
