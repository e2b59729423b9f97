# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for confidence band mapping and threat level helpers."""

from __future__ import annotations

import math

import pytest

from malscope.core.constants import ThreatLevel
from malscope.scanner.severity import (
    ThreatBands,
    confidence_to_threat_level,
    derive_threat_level,
    is_benign_family,
)


class TestConfidenceBands:
    @pytest.mark.parametrize(
        ("confidence", "expected"),
        [
            (0.0, ThreatLevel.CLEAN),
            (1e-9, ThreatLevel.LOW),
            (0.30, ThreatLevel.LOW),
            (0.55, ThreatLevel.LOW),
            (0.5500001, ThreatLevel.MEDIUM),
            (0.65, ThreatLevel.MEDIUM),
            (0.75, ThreatLevel.MEDIUM),
            (0.78, ThreatLevel.HIGH),
            (0.8999999, ThreatLevel.HIGH),
            (0.90, ThreatLevel.HIGH),
            (0.9000001, ThreatLevel.CRITICAL),
            (0.94, ThreatLevel.CRITICAL),
            (1.0, ThreatLevel.CRITICAL),
        ],
    )
    def test_band_edges(self, confidence: float, expected: ThreatLevel) -> None:
        assert confidence_to_threat_level(confidence) == expected

    @pytest.mark.parametrize("bad", [-0.01, 1.01, math.nan, math.inf])
    def test_out_of_range_rejected(self, bad: float) -> None:
        with pytest.raises(ValueError, match="Confidence"):
            confidence_to_threat_level(bad)

    def test_total_and_monotonic_over_unit_interval(self) -> None:
        order = list(ThreatLevel)
        previous = 0
        for step in range(0, 1001):
            level = confidence_to_threat_level(step / 1000)
            assert order.index(level) >= previous
            previous = order.index(level)

    def test_custom_bands(self) -> None:
        bands = ThreatBands(critical=0.8, high=0.6, medium=0.4)
        assert confidence_to_threat_level(0.81, bands) == ThreatLevel.CRITICAL
        assert confidence_to_threat_level(0.8, bands) == ThreatLevel.HIGH
        assert confidence_to_threat_level(0.41, bands) == ThreatLevel.MEDIUM

    def test_unordered_bands_rejected(self) -> None:
        with pytest.raises(ValueError, match="medium <= high <= critical"):
            ThreatBands(critical=0.5, high=0.7, medium=0.2)


class TestDeriveThreatLevel:
    def test_benign_family_is_clean_at_any_confidence(self) -> None:
        assert derive_threat_level("Benign", 0.98) == ThreatLevel.CLEAN
        assert derive_threat_level("clean", 0.5) == ThreatLevel.CLEAN

    def test_missing_family_is_clean(self) -> None:
        assert derive_threat_level(None, 0.99) == ThreatLevel.CLEAN
        assert derive_threat_level("   ", 0.99) == ThreatLevel.CLEAN

    def test_malicious_family_uses_bands(self) -> None:
        assert derive_threat_level("Ransomware", 0.94) == ThreatLevel.CRITICAL
        assert derive_threat_level("PUP", 0.3) == ThreatLevel.LOW

    def test_is_benign_family_case_insensitive(self) -> None:
        assert is_benign_family(" BENIGN ")
        assert not is_benign_family("Trojan")
        assert is_benign_family("Whitelisted", ["whitelisted"])

