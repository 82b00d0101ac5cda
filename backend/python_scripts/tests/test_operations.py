"""
Unit tests for analyze/operations.py

Runs offline — no database or network required.
"""

import sys
from pathlib import Path
from datetime import datetime

# Allow imports from the package root
_PKG_ROOT = Path(__file__).resolve().parent.parent
if str(_PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(_PKG_ROOT))

from analyze.events import Asset, AssetCategory, EventKind, event_from_row
from analyze.operations import (
    downtime_board,
    failure_analysis,
    open_request_counts,
    performance_summary,
    risk_summary,
    sla_hours,
    weekly_series,
)

TZ = "America/New_York"
REF = datetime(2026, 2, 5, 12, 0)

ASSETS = [
    Asset("v1", "Truck 1", AssetCategory.VEHICLE, status="Red Tagged", updated_at="2026-02-01T12:00:00"),
    Asset("v2", "Truck 2", AssetCategory.VEHICLE, status="Active"),
    Asset("e1", "Loader", AssetCategory.EQUIPMENT, status="Out of Service", updated_at="2026-02-04T12:00:00"),
]


def _request(req_id, created_at, status="Open", vehicle_id="v1", equipment_id=None, **extra):
    row = {"id": req_id, "created_at": created_at, "status": status,
           "vehicle_id": vehicle_id, "equipment_id": equipment_id}
    row.update(extra)
    return event_from_row(EventKind.REQUEST, row)


def _log(log_id, created_at, vehicle_id="v1", equipment_id=None, request_id=None, actor=None, **extra):
    row = {"id": log_id, "created_at": created_at, "vehicle_id": vehicle_id,
           "equipment_id": equipment_id, "request_id": request_id, "created_by": actor}
    row.update(extra)
    return event_from_row(EventKind.LOG, row)


# ── open requests & downtime ────────────────────────────────────

class TestOpenRequestCounts:
    def test_grouped_by_asset(self):
        requests = [
            _request("r1", "2026-02-02T09:00:00"),
            _request("r2", "2026-02-03T09:00:00", status="In Progress"),
            _request("r3", "2026-02-03T09:00:00", status="Closed"),
            _request("r4", "2026-02-03T09:00:00", vehicle_id=None, equipment_id="e1"),
        ]
        rows = open_request_counts(requests, ASSETS)
        assert [(r["asset_id"], r["asset_category"], r["asset_name"], r["count"]) for r in rows] == [
            ("v1", "vehicle", "Truck 1", 2),
            ("e1", "equipment", "Loader", 1),
        ]


class TestDowntimeBoard:
    def _requests(self):
        return [
            _request("r1", "2026-02-02T09:00:00", description="Brake noise"),
            _request("r2", "2026-02-03T09:00:00", status="In Progress", description="Lights out"),
            _request("r3", "2026-02-04T09:00:00", status="Closed", description="Wipers"),
            _request("r4", "2026-02-04T09:00:00", vehicle_id=None, equipment_id="v1"),
        ]

    def _logs(self):
        return [
            _log("l1", "2026-02-03T10:00:00"),
            _log("l2", "2026-02-04T10:00:00"),
        ]

    def test_down_assets_longest_first(self):
        rows = downtime_board(ASSETS, self._requests(), self._logs(), reference_time=REF)
        assert [(r["asset_id"], r["days_down"]) for r in rows] == [("v1", 4), ("e1", 1)]

    def test_row_details(self):
        v1 = downtime_board(ASSETS, self._requests(), self._logs(), reference_time=REF)[0]
        assert v1["status"] == "Red Tagged"
        assert v1["down_since"] == "2026-02-01T12:00:00"
        assert v1["open_requests"] == 2
        assert v1["latest_issue"] == "Lights out"
        assert v1["last_log_at"] == "2026-02-04T10:00:00"

    def test_nothing_open(self):
        e1 = downtime_board(ASSETS, self._requests(), self._logs(), reference_time=REF)[1]
        assert e1["open_requests"] == 0
        assert e1["latest_issue"] is None
        assert e1["last_log_at"] is None

    def test_no_down_assets(self):
        assert downtime_board([ASSETS[1]], reference_time=REF) == []


# ── failure_analysis ────────────────────────────────────────────

class TestFailureAnalysis:
    def _data(self):
        requests = [
            _request("r1", "2026-01-30T09:00:00", system_affected="Brakes", description="Brake noise"),
            _request("r2", "2026-02-01T09:00:00", vehicle_id="v2", system_affected="Electrical"),
            _request("r1", "2026-02-01T09:00:00", vehicle_id=None, equipment_id="e1",
                     system_affected="Hydraulics"),
        ]
        logs = [
            _log("l1", "2026-02-02T09:00:00", request_id="r1"),
            _log("l2", "2026-02-03T09:00:00", vehicle_id="v2", request_id="r2", notes="Swapped fuse"),
            _log("l3", "2026-02-04T10:00:00", notes="Checked tires"),
            _log("l4", "2026-02-04T09:00:00", vehicle_id=None, equipment_id="e1", request_id="r1"),
            _log("l5", "2026-01-10T09:00:00", request_id="r1"),
            _log("l6", "2026-02-04T09:00:00", vehicle_id=None),
        ]
        return logs, requests

    def _run(self, **kwargs):
        logs, requests = self._data()
        return failure_analysis(logs, requests, ASSETS, start_date="2026-02-01",
                                end_date="2026-02-05", tz=TZ, **kwargs)

    def test_rows_newest_first(self):
        result = self._run()
        assert [r["log_id"] for r in result["rows"]] == ["l3", "l4", "l2", "l1"]

    def test_system_resolved_per_category(self):
        rows = {r["log_id"]: r for r in self._run()["rows"]}
        assert rows["l1"]["system_affected"] == "Brakes"
        assert rows["l4"]["system_affected"] == "Hydraulics"
        assert rows["l3"]["system_affected"] == "Unspecified"

    def test_description_fallback(self):
        rows = {r["log_id"]: r for r in self._run()["rows"]}
        assert rows["l1"]["description"] == "Brake noise"
        assert rows["l2"]["description"] == "Swapped fuse"
        assert rows["l4"]["description"] == "No description"

    def test_top_lists(self):
        result = self._run()
        assert result["top_systems"][0] == {"system": "Brakes", "count": 1}
        top = result["top_repeat_assets"][0]
        assert (top["asset_id"], top["asset_name"], top["count"]) == ("v1", "Truck 1", 2)

    def test_system_filter_keeps_all_options(self):
        result = self._run(system="Brakes")
        assert [r["log_id"] for r in result["rows"]] == ["l1"]
        assert result["system_options"] == ["Brakes", "Electrical", "Hydraulics", "Unspecified"]

    def test_category_filter_narrows_options(self):
        result = self._run(category="vehicle")
        assert [r["log_id"] for r in result["rows"]] == ["l3", "l2", "l1"]
        assert result["system_options"] == ["Brakes", "Electrical", "Unspecified"]

    def test_empty(self):
        result = failure_analysis([], tz=TZ)
        assert result == {"rows": [], "top_systems": [], "top_repeat_assets": [], "system_options": []}


# ── performance ─────────────────────────────────────────────────

class TestPerformanceSummary:
    def _requests(self):
        return [
            _request("r1", "2026-02-02T09:00:00", status="Closed", closed_at="2026-02-04T09:00:00"),
            _request("r2", "2026-02-03T09:00:00", status="Closed", closed_at="2026-02-04T21:00:00"),
            _request("r3", "2026-02-04T09:00:00"),
            _request("r4", "2026-02-10T09:00:00", status="In Progress"),
            _request("r5", "2026-01-01T09:00:00"),
        ]

    def test_counts(self):
        summary = performance_summary(self._requests(), start_date="2026-02-01",
                                      end_date="2026-02-28", tz=TZ)
        assert summary["open_count"] == 2
        assert summary["closed_count"] == 2
        # whole days: (2 + 1) / 2
        assert summary["avg_close_days"] == 1.5

    def test_weekly_series(self):
        summary = performance_summary(self._requests(), start_date="2026-02-01",
                                      end_date="2026-02-28", tz=TZ)
        assert summary["weekly"] == [
            {"week": "2026-02-02", "created": 3, "closed": 2},
            {"week": "2026-02-09", "created": 1, "closed": 0},
        ]

    def test_logs_by_mechanic(self):
        logs = [
            _log("l1", "2026-02-02T09:00:00", actor="m1"),
            _log("l2", "2026-02-03T09:00:00", actor="m1"),
            _log("l3", "2026-02-03T09:00:00"),
        ]
        summary = performance_summary([], logs, start_date="2026-02-01", end_date="2026-02-28",
                                      display_names={"m1": "Dana"}, tz=TZ)
        assert summary["logs_by_mechanic"] == [
            {"actor_id": "m1", "display_name": "Dana", "count": 2},
            {"actor_id": "Unknown", "display_name": "Unknown", "count": 1},
        ]
        assert summary["avg_close_days"] == 0

    def test_weekly_series_drops_unparsable(self):
        assert weekly_series([_request("r1", "not a date")], tz=TZ) == []
        assert weekly_series([], tz=TZ) == []


# ── risk ────────────────────────────────────────────────────────

class TestSlaHours:
    def test_by_urgency(self):
        assert sla_hours("Urgent") == 12
        assert sla_hours("High") == 24
        assert sla_hours("Low") == 48
        assert sla_hours(None) == 48


class TestRiskSummary:
    def test_counters(self):
        requests = [
            _request("a", "2026-02-04T06:00:00", urgency="Urgent", system_affected="Brakes"),
            _request("b", "2026-02-05T06:00:00", urgency="High", system_affected="Brakes"),
            _request("c", "2026-02-02T12:00:00", status="In Progress", vehicle_id="v2",
                     system_affected="Electrical"),
            _request("d", "2026-02-03T12:00:00", status="Closed", vehicle_id="v2"),
            _request("e", "2026-01-20T12:00:00"),
        ]
        logs = [_log("l1", "2026-02-03T09:00:00", vehicle_id="v2", request_id="c")]
        risk = risk_summary(requests, logs, period="weekly", reference_time=REF, tz=TZ)
        assert risk == {
            "sla_breaches": 2,
            "unacknowledged": 1,
            "repeat_failures": 1,
            "unresolved_requests": 3,
            "period_requests": 4,
        }

    def test_empty(self):
        risk = risk_summary([], period="weekly", reference_time=REF, tz=TZ)
        assert risk == {"sla_breaches": 0, "unacknowledged": 0, "repeat_failures": 0,
                        "unresolved_requests": 0, "period_requests": 0}
