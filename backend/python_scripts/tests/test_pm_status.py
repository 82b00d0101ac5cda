"""
Unit tests for analyze/pm_status.py

Runs offline — no database or network required.
"""

import sys
from pathlib import Path

import pytest

# Allow imports from the package root
_PKG_ROOT = Path(__file__).resolve().parent.parent
if str(_PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(_PKG_ROOT))

from analyze.events import Asset, AssetCategory, ServiceRecord
from analyze.pm_status import (
    PmStatus,
    build_pm_board,
    classify_usage,
    due_soon_window,
    filter_pm_board,
    oil_life_percent,
    pm_parameters,
    pm_status_for_asset,
    reconcile_usage,
)
from config.scoring_config import merge_config


def _vehicle(asset_id, usage, name=None):
    return Asset(asset_id=asset_id, name=name or asset_id, category=AssetCategory.VEHICLE, usage=usage)


def _equipment(asset_id, usage, name=None):
    return Asset(asset_id=asset_id, name=name or asset_id, category=AssetCategory.EQUIPMENT, usage=usage)


# ── classify_usage ──────────────────────────────────────────────

class TestClassifyUsage:
    def test_vehicle_due_soon(self):
        result = classify_usage(104800, 100000, interval=5000, due_soon_window=500)
        assert result["status"] is PmStatus.DUE_SOON
        assert result["due_at"] == 105000
        assert result["remaining"] == 200
        assert result["overdue_amount"] == 0

    def test_equipment_overdue(self):
        result = classify_usage(260, 0, interval=250, due_soon_window=25)
        assert result["status"] is PmStatus.OVERDUE
        assert result["due_at"] == 250
        assert result["overdue_amount"] == 10

    def test_exactly_at_due_is_overdue(self):
        result = classify_usage(105000, 100000, 5000, 500)
        assert result["status"] is PmStatus.OVERDUE
        assert result["overdue_amount"] == 0

    def test_window_edge_is_due_soon(self):
        assert classify_usage(104500, 100000, 5000, 500)["status"] is PmStatus.DUE_SOON

    def test_on_track(self):
        assert classify_usage(100000, 100000, 5000, 500)["status"] is PmStatus.ON_TRACK

    def test_invalid_current_usage_is_excluded(self):
        for bad in (None, float("nan"), float("inf"), -1, "abc"):
            assert classify_usage(bad, 0, 5000, 500) is None

    def test_invalid_last_service_defaults_to_zero(self):
        assert classify_usage(260, None, 250, 25)["overdue_amount"] == 10
        assert classify_usage(260, -5, 250, 25)["overdue_amount"] == 10

    def test_overdue_iff_past_due_point(self):
        for current in range(0, 600, 7):
            result = classify_usage(current, 200, 250, 25)
            assert (result["status"] is PmStatus.OVERDUE) == (current >= 450)
            assert result["overdue_amount"] >= 0


# ── parameters ──────────────────────────────────────────────────

class TestPmParameters:
    def test_vehicle(self):
        params = pm_parameters("vehicle")
        assert params["interval"] == 5000
        assert params["due_soon_window"] == 500
        assert params["unit"] == "miles"

    def test_equipment_enum(self):
        params = pm_parameters(AssetCategory.EQUIPMENT)
        assert params["interval"] == 250
        assert params["due_soon_window"] == 25

    def test_floor_applies_to_short_intervals(self):
        assert due_soon_window(50, 10) == 10

    def test_config_override(self):
        config = merge_config({"pm": {"vehicle": {"interval": 6000}}})
        assert pm_parameters("vehicle", config)["due_soon_window"] == 600

    def test_unknown_category_raises(self):
        with pytest.raises(ValueError):
            pm_parameters("boat")


# ── reconcile_usage ─────────────────────────────────────────────

class TestReconcileUsage:
    def test_takes_maximum(self):
        assert reconcile_usage(1200, 1000) == 1200
        assert reconcile_usage(1000, 1200) == 1200

    def test_single_valid_value(self):
        assert reconcile_usage(None, 1000) == 1000
        assert reconcile_usage(float("nan"), 5) == 5
        assert reconcile_usage(-1, 3) == 3

    def test_neither_valid(self):
        assert reconcile_usage(None, None) is None


# ── oil_life_percent ────────────────────────────────────────────

class TestOilLifePercent:
    def test_half_used(self):
        assert oil_life_percent(102500, 100000, 5000) == 50

    def test_past_interval_is_zero(self):
        assert oil_life_percent(106000, 100000, 5000) == 0

    def test_unknown(self):
        assert oil_life_percent(None, 100000, 5000) is None
        assert oil_life_percent(102500, None, 5000) is None


# ── build_pm_board ──────────────────────────────────────────────

class TestBuildPmBoard:
    def _fleet(self):
        assets = [
            _vehicle("v1", 104800, "Truck 1"),
            _vehicle("v2", 106000, "Truck 2"),
            _equipment("e1", 260, "Loader"),
            _equipment("e2", None, "Forklift"),
            _vehicle("v3", 101000, "Truck 3"),
            _vehicle("v4", 104700, "Truck 4"),
        ]
        records = [
            ServiceRecord("v1", 95000, "2025-01-01T00:00:00"),
            ServiceRecord("v1", 100000, "2026-01-01T00:00:00"),
            ServiceRecord("v1", -1, "2026-01-20T00:00:00"),
            ServiceRecord("v2", 100000, "2026-01-01T00:00:00"),
            ServiceRecord("v3", 100000, "2026-01-01T00:00:00"),
            ServiceRecord("v4", 100000, "2026-01-01T00:00:00"),
        ]
        return assets, records

    def test_sort_order_and_rank(self):
        assets, records = self._fleet()
        board = build_pm_board(assets, records)
        assert [r["asset_id"] for r in board] == ["v2", "e1", "v1", "v4"]
        assert [r["rank"] for r in board] == [1, 2, 3, 4]

    def test_row_fields(self):
        assets, records = self._fleet()
        row = build_pm_board(assets, records)[0]
        assert row["status"] is PmStatus.OVERDUE
        assert row["due_at"] == 105000
        assert row["overdue_amount"] == 1000
        assert row["unit"] == "miles"
        assert row["last_service_at"] == "2026-01-01T00:00:00"

    def test_equipment_without_records_uses_zero(self):
        assets, records = self._fleet()
        row = next(r for r in build_pm_board(assets, records) if r["asset_id"] == "e1")
        assert row["last_service_usage"] == 0
        assert row["overdue_amount"] == 10

    def test_invalid_usage_and_on_track_excluded(self):
        assets, records = self._fleet()
        ids = {r["asset_id"] for r in build_pm_board(assets, records)}
        assert "e2" not in ids
        assert "v3" not in ids

    def test_local_usage_reconciled_by_max(self):
        assets, records = self._fleet()
        board = build_pm_board(assets, records, local_usage={"vehicle:v3": 104900, "vehicle:v2": 1})
        v3 = next(r for r in board if r["asset_id"] == "v3")
        v2 = next(r for r in board if r["asset_id"] == "v2")
        assert v3["current_usage"] == 104900
        assert v3["status"] is PmStatus.DUE_SOON
        assert v2["current_usage"] == 106000

    def test_empty(self):
        assert build_pm_board([], []) == []

    def test_vehicle_and_equipment_sharing_an_id(self):
        assets = [_vehicle("u1", 104800, "Truck U1"), _equipment("u1", 480, "Loader U1")]
        records = [
            ServiceRecord("u1", 100000, "2026-01-01T00:00:00", AssetCategory.VEHICLE),
            ServiceRecord("u1", 250, "2026-02-01T00:00:00", AssetCategory.EQUIPMENT),
        ]
        board = build_pm_board(assets, records)
        rows = {r["asset_name"]: r for r in board}
        assert set(rows) == {"Truck U1", "Loader U1"}
        assert rows["Truck U1"]["status"] is PmStatus.DUE_SOON
        assert rows["Truck U1"]["remaining"] == 200
        assert rows["Truck U1"]["last_service_usage"] == 100000
        assert rows["Loader U1"]["status"] is PmStatus.DUE_SOON
        assert rows["Loader U1"]["last_service_usage"] == 250

    def test_local_usage_keyed_by_category(self):
        assets = [_vehicle("u1", 1000, "Truck U1"), _equipment("u1", 0, "Loader U1")]
        board = build_pm_board(assets, [], local_usage={"equipment:u1": 260})
        assert [(r["asset_name"], r["current_usage"]) for r in board] == [("Loader U1", 260)]


class TestPmStatusForAsset:
    def test_single_asset(self):
        result = pm_status_for_asset(_vehicle("v1", 104800), [ServiceRecord("v1", 100000, "2026-01-01")])
        assert result["status"] is PmStatus.DUE_SOON

    def test_unknown_usage(self):
        assert pm_status_for_asset(_vehicle("v1", None)) is None

    def test_ignores_other_category_record(self):
        records = [
            ServiceRecord("u1", 100000, "2026-01-01T00:00:00", AssetCategory.VEHICLE),
            ServiceRecord("u1", 250, "2026-02-01T00:00:00", AssetCategory.EQUIPMENT),
        ]
        result = pm_status_for_asset(_vehicle("u1", 104800), records)
        assert result["status"] is PmStatus.DUE_SOON
        assert result["remaining"] == 200


class TestFilterPmBoard:
    def _board(self):
        assets, records = TestBuildPmBoard()._fleet()
        return build_pm_board(assets, records)

    def test_status(self):
        rows = filter_pm_board(self._board(), status="Overdue")
        assert [r["asset_id"] for r in rows] == ["v2", "e1"]

    def test_category(self):
        rows = filter_pm_board(self._board(), category=AssetCategory.EQUIPMENT)
        assert [r["asset_id"] for r in rows] == ["e1"]

    def test_search_keeps_rank(self):
        rows = filter_pm_board(self._board(), search="truck 4")
        assert [(r["asset_id"], r["rank"]) for r in rows] == [("v4", 4)]
