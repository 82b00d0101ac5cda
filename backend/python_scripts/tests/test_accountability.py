"""
Unit tests for analyze/accountability.py

Runs offline — no database or network required.
"""

import sys
from pathlib import Path
from datetime import datetime

# Allow imports from the package root
_PKG_ROOT = Path(__file__).resolve().parent.parent
if str(_PKG_ROOT) not in sys.path:
    sys.path.insert(0, str(_PKG_ROOT))

from analyze.accountability import (
    ActorClass,
    actor_trend,
    composite_score,
    mechanic_band,
    mechanic_scoreboard,
    sort_leaderboard,
    submission_summary,
    teammate_scoreboard,
)
from analyze.events import EventKind, GradedSubmission, event_from_row

TZ = "America/New_York"
REF = datetime(2026, 2, 5, 12, 0)
LONG_NOTE = "Replaced front brake pads and rotors"


def _log(log_id, created_at, actor, request_id="r1", status="Closed", notes=LONG_NOTE):
    return event_from_row(EventKind.LOG, {
        "id": log_id, "created_at": created_at, "created_by": actor,
        "request_id": request_id, "vehicle_id": "v1",
        "status_update": status, "notes": notes,
    })


def _grade(grade_id, actor, score, flag=False, complete=True, at="2026-02-04T10:00:00"):
    return GradedSubmission(
        event_id=grade_id, created_at=at, actor_id=actor, score=score,
        accountability_flag=flag, is_complete=complete,
    )


def _inspection(insp_id, created_at, employee, inspection_date, fails=0, links=0):
    items = {f"item{i}": "fail" for i in range(fails)}
    items["ok"] = "pass"
    return event_from_row(EventKind.INSPECTION, {
        "id": insp_id, "vehicle_id": "v1", "created_at": created_at,
        "checklist": {
            "employee": employee,
            "inspectionDate": inspection_date,
            "sections": {"main": {"applicable": True, "items": items}},
            "failRequestLinks": {f"main.item{i}": f"r{i}" for i in range(links)},
        },
    })


# ── composite_score / mechanic_band ─────────────────────────────

class TestCompositeScore:
    def test_mechanic_weights(self):
        assert composite_score(80, 100, 50, actor_class=ActorClass.MECHANIC) == 78

    def test_mechanic_ignores_flags(self):
        assert composite_score(80, 100, 50, flags=3, incomplete=2, actor_class="mechanic") == 78

    def test_teammate_penalties(self):
        assert composite_score(80, 100, 100, flags=1, incomplete=1) == 78

    def test_clamped(self):
        assert composite_score(0, 0, 0, flags=10) == 0
        assert composite_score(100, 100, 100) == 100


class TestMechanicBand:
    def test_boundaries_belong_to_lower_band(self):
        assert mechanic_band(0) == "Intervention"
        assert mechanic_band(25) == "Intervention"
        assert mechanic_band(26) == "Needs Review"
        assert mechanic_band(50) == "Needs Review"
        assert mechanic_band(51) == "Operational"
        assert mechanic_band(75) == "Operational"
        assert mechanic_band(76) == "Good"


# ── sort_leaderboard ────────────────────────────────────────────

class TestSortLeaderboard:
    def test_ties_break_on_display_name(self):
        rows = [
            {"display_name": "Zed", "accountability_score": 80, "event_count": 3},
            {"display_name": "Amy", "accountability_score": 80, "event_count": 3},
        ]
        assert [r["display_name"] for r in sort_leaderboard(rows)] == ["Amy", "Zed"]

    def test_event_count_before_name(self):
        rows = [
            {"display_name": "Amy", "accountability_score": 80, "event_count": 2},
            {"display_name": "Zed", "accountability_score": 80, "event_count": 5},
            {"display_name": "Bob", "accountability_score": 90, "event_count": 1},
        ]
        assert [r["display_name"] for r in sort_leaderboard(rows)] == ["Bob", "Zed", "Amy"]


# ── mechanic_scoreboard ─────────────────────────────────────────

class TestMechanicScoreboard:
    def _logs(self):
        return [
            _log("l1", "2026-02-03T09:00:00", "m1"),
            _log("l2", "2026-02-04T09:00:00", "m1"),
            _log("l3", "2026-02-04T10:00:00", "m2", request_id=None, status="", notes=""),
            _log("l4", "2026-02-04T11:00:00", None, status="In Progress"),
            _log("l5", "2026-01-04T11:00:00", "m3"),
        ]

    def test_rows(self):
        rows = mechanic_scoreboard(self._logs(), "weekly", REF, display_names={"m1": "Dana"}, tz=TZ)
        assert [r["actor_id"] for r in rows] == ["m1", "Unknown", "m2"]

        m1, unknown, m2 = rows
        assert m1["display_name"] == "Dana"
        assert (m1["event_count"], m1["avg_score"], m1["accountability_score"], m1["band"]) == (2, 100, 100, "Good")

        assert unknown["display_name"] == "Unknown"
        assert unknown["avg_score"] == 92
        assert unknown["completion_rate"] == 0
        assert (unknown["accountability_score"], unknown["band"]) == (75, "Operational")

        assert m2["display_name"] == "m2"
        assert (m2["avg_score"], m2["linkage_rate"]) == (76, 0)
        assert (m2["accountability_score"], m2["band"]) == (46, "Needs Review")

    def test_period_excludes_old_logs(self):
        rows = mechanic_scoreboard(self._logs(), "weekly", REF, tz=TZ)
        assert "m3" not in [r["actor_id"] for r in rows]

    def test_idempotent(self):
        logs = self._logs()
        first = mechanic_scoreboard(logs, "monthly", REF, tz=TZ)
        second = mechanic_scoreboard(logs, "monthly", REF, tz=TZ)
        assert first == second

    def test_no_logs(self):
        assert mechanic_scoreboard([], "weekly", REF, tz=TZ) == []


# ── teammate_scoreboard ─────────────────────────────────────────

class TestTeammateScoreboard:
    def _data(self):
        grades = [
            _grade("g1", "Sam", 90, flag=True),
            _grade("g2", "Sam", 70, complete=False),
            _grade("g3", None, 100),
            _grade("g4", "Alex", 100, at="2026-01-10T10:00:00"),
        ]
        inspections = [
            _inspection("i1", "2026-02-04T09:00:00", "Sam", "2026-02-04", fails=2, links=1),
        ]
        return grades, inspections

    def test_rows(self):
        grades, inspections = self._data()
        rows = teammate_scoreboard(grades, inspections, "weekly", REF, tz=TZ)
        assert [r["actor_id"] for r in rows] == ["Unknown", "Sam"]

        unknown, sam = rows
        assert unknown["accountability_score"] == 100
        assert (sam["event_count"], sam["avg_score"]) == (2, 80)
        assert (sam["completion_rate"], sam["linkage_rate"]) == (100, 50)
        assert (sam["flags"], sam["incomplete"]) == (1, 1)
        # 80*.5 + 50*.25 + 100*.25 - 8 - 4 = 65.5
        assert sam["accountability_score"] == 66

    def test_late_inspection_not_on_time(self):
        rows = teammate_scoreboard([], [_inspection("i1", "2026-02-04T09:00:00", "Sam", "2026-02-03")],
                                   "weekly", REF, tz=TZ)
        assert rows[0]["completion_rate"] == 0
        assert rows[0]["event_count"] == 0

    def test_unnamed_inspection_goes_to_unknown(self):
        rows = teammate_scoreboard([], [_inspection("i1", "2026-02-04T09:00:00", "", "2026-02-04")],
                                   "weekly", REF, tz=TZ)
        assert rows[0]["actor_id"] == "Unknown"


# ── summaries & trends ──────────────────────────────────────────

class TestSubmissionSummary:
    def test_counts(self):
        grades, _ = TestTeammateScoreboard()._data()
        summary = submission_summary(grades, "weekly", REF, tz=TZ)
        assert summary == {"submissions": 3, "avg_score": 87, "flags": 1, "incomplete": 1, "with_na": 0}


class TestActorTrend:
    def test_weekly_points(self):
        logs = [
            _log("l1", "2026-02-03T09:00:00", "m1"),
            _log("l2", "2026-02-04T09:00:00", "m1", request_id=None, status="", notes=""),
            _log("l3", "2026-02-10T09:00:00", "m1"),
            _log("l4", "garbage", "m1"),
            _log("l5", "2026-02-10T09:00:00", "m2"),
        ]
        assert actor_trend(logs, actor_id="m1", tz=TZ) == [
            {"actor_id": "m1", "week": "2026-02-02", "avg_score": 88, "event_count": 2},
            {"actor_id": "m1", "week": "2026-02-09", "avg_score": 100, "event_count": 1},
        ]

    def test_empty(self):
        assert actor_trend([]) == []
