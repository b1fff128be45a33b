#!/usr/bin/env python3
"""
Tests for scoring/macro.py

Covers:
- Distinct signal counting
- Time-decay windows and undated signals
- Asset-type / place relevance filtering
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from scoring.macro import (
    DealContext,
    SignalContext,
    compute_decayed_macro_weight,
    count_unique_macro_signals,
    infer_signal_context,
    is_signal_relevant,
    window_weight,
)


class TestCountUniqueMacroSignals:
    """COUNT(DISTINCT signal_id)."""

    def test_duplicates_count_once(self):
        links = [
            {"deal_risk_id": "r1", "signal_id": "a"},
            {"deal_risk_id": "r2", "signal_id": "a"},
            {"deal_risk_id": "r2", "signal_id": "b"},
        ]
        assert count_unique_macro_signals(links) == 2

    def test_missing_ids_ignored(self):
        assert count_unique_macro_signals([{"signal_id": None}, {}]) == 0

    def test_empty(self):
        assert count_unique_macro_signals([]) == 0


class TestDecayedWeight:
    """Window weights by signal age."""

    def test_window_weight(self):
        assert window_weight(Decimal("0")) == Decimal("1.00")
        assert window_weight(Decimal("7")) == Decimal("1.00")
        assert window_weight(Decimal("8")) == Decimal("0.50")
        assert window_weight(Decimal("90")) == Decimal("0.25")
        assert window_weight(Decimal("91")) == Decimal("0")
        assert window_weight(None) == Decimal("0.25")

    def test_mixed_ages(self, as_of):
        links = [
            {"signal_id": "fresh", "signal_date": "2025-02-18T00:00:00Z"},
            {"signal_id": "recent", "signal_date": "2025-02-01"},
            {"signal_id": "old", "signal_date": "2024-12-15"},
            {"signal_id": "stale", "signal_date": "2024-10-01"},
            {"signal_id": "undated"},
        ]
        assert compute_decayed_macro_weight(links, as_of) == Decimal("2.00")

    def test_newest_date_per_signal(self, as_of):
        links = [
            {"signal_id": "a", "signal_date": "2024-12-15"},
            {"signal_id": "a", "signal_date": "2025-02-19"},
            {"signal_id": "a"},
        ]
        assert compute_decayed_macro_weight(links, as_of) == Decimal("1.00")

    def test_future_signal_is_fresh(self, as_of):
        links = [{"signal_id": "a", "signal_date": "2025-03-01"}]
        assert compute_decayed_macro_weight(links, as_of) == Decimal("1.00")

    def test_naive_as_of_taken_as_utc(self):
        links = [{"signal_id": "x", "signal_date": "2025-01-01"}]
        naive = compute_decayed_macro_weight(links, datetime(2025, 3, 1))
        aware = compute_decayed_macro_weight(links, datetime(2025, 3, 1, tzinfo=timezone.utc))
        assert naive == aware == Decimal("0.25")

    def test_unparseable_as_of_rejected(self):
        with pytest.raises(ValueError):
            compute_decayed_macro_weight([{"signal_id": "x"}], "not-a-date")

    def test_no_links(self):
        assert compute_decayed_macro_weight([], datetime(2025, 1, 1, tzinfo=timezone.utc)) == Decimal("0")


class TestRelevance:
    """Signal relevance to a deal."""

    def test_asset_mismatch_excluded(self):
        signal = SignalContext(asset_type="Office")
        deal = DealContext(asset_type="Multifamily")
        assert is_signal_relevant(signal, deal) is False

    def test_asset_synonyms_match(self):
        signal = SignalContext(asset_type="multi-family")
        deal = DealContext(asset_type="Multifamily Garden")
        assert is_signal_relevant(signal, deal) is True

    def test_place_containment(self):
        signal = SignalContext(state="phoenix")
        assert is_signal_relevant(signal, DealContext(market="Phoenix, AZ")) is True
        assert is_signal_relevant(signal, DealContext(market="Dallas, TX")) is False

    def test_missing_context_never_excludes(self):
        assert is_signal_relevant(SignalContext(), DealContext(asset_type="Office", market="Dallas, TX")) is True
        assert is_signal_relevant(SignalContext(asset_type="Office", state="texas"), DealContext()) is True

    def test_infer_signal_context(self):
        context = infer_signal_context("Rates", "Phoenix multifamily rents fell")
        assert context.asset_type == "multifamily"
        assert context.state == "phoenix"
        assert context.category == "Rates"

    def test_infer_signal_context_empty(self):
        context = infer_signal_context(None, None)
        assert context == SignalContext()
