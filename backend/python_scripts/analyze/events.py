"""
Maintenance Event Model & Aggregation

Normalises the heterogeneous maintenance records read from the store
(inspections, requests, maintenance logs, PM events and graded form
submissions) into one closed family of immutable event types, and filters
them by period, date range, asset and actor for the dashboards.

Read-only: nothing in this module writes to the store or mutates its
inputs.

Usage:
    from analyze.events import events_from_rows, aggregate_events, EventKind

    logs = events_from_rows(EventKind.LOG, log_rows)
    result = aggregate_events(logs, period='weekly', reference_time=now)
    result['events']             # events in this week
    result['systems_affected']   # dropdown options for *those* events
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config.scoring_config import DOWN_STATUSES, UNKNOWN_ACTOR, UNSPECIFIED_SYSTEM
from lib.date_utils import in_date_range, in_period, parse_timestamp, to_local
from lib.stats_utils import is_valid_counter, to_number

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════

class AssetCategory(str, Enum):
    VEHICLE = "vehicle"
    EQUIPMENT = "equipment"


class OperationalStatus(str, Enum):
    ACTIVE = "Active"
    RED_TAGGED = "Red Tagged"
    OUT_OF_SERVICE = "Out of Service"
    RETIRED = "Retired"
    INACTIVE = "Inactive"

    @classmethod
    def is_down(cls, status: Optional[str]) -> bool:
        """Red-tagged and out-of-service assets count as down."""
        return (status or "").strip() in DOWN_STATUSES


class EventKind(str, Enum):
    INSPECTION = "inspection"
    REQUEST = "request"
    LOG = "log"
    PM_EVENT = "pm_event"
    GRADED_SUBMISSION = "graded_submission"


@dataclass(frozen=True)
class Asset:
    """One vehicle or equipment unit as read from the fleet registry."""

    asset_id: str
    name: str
    category: AssetCategory
    usage: Optional[float] = None
    status: Optional[str] = None
    updated_at: Any = None
    year: Optional[int] = None

    @property
    def display_name(self) -> str:
        return self.name or self.asset_id

    @property
    def key(self) -> str:
        """``category:id``, the same shape as ``asset_key`` for events."""
        return f"{self.category.value}:{self.asset_id}"


@dataclass(frozen=True)
class ServiceRecord:
    """Usage counter captured by a PM/service submission."""

    asset_id: str
    usage: Optional[float]
    created_at: Any
    asset_category: Optional[AssetCategory] = None

    def belongs_to(self, asset: Asset) -> bool:
        """Same id and, when the record knows it, the same category."""
        if self.asset_id != asset.asset_id:
            return False
        return self.asset_category is None or self.asset_category is asset.category


@dataclass(frozen=True)
class MaintenanceEvent:
    """Envelope shared by every event kind."""

    event_id: str
    created_at: Any
    actor_id: Optional[str] = None
    asset_id: Optional[str] = None
    asset_category: Optional[AssetCategory] = None


@dataclass(frozen=True)
class Inspection(MaintenanceEvent):
    inspection_type: Optional[str] = None
    overall_status: Optional[str] = None
    checklist: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Request(MaintenanceEvent):
    status: Optional[str] = None
    urgency: Optional[str] = None
    system_affected: Optional[str] = None
    description: Optional[str] = None
    issue_identified_during: Optional[str] = None
    updated_at: Any = None
    closed_at: Any = None

    @property
    def status_text(self) -> str:
        return (self.status or "").strip()


@dataclass(frozen=True)
class Log(MaintenanceEvent):
    request_id: Optional[str] = None
    status_update: Optional[str] = None
    notes: Optional[str] = None
    self_score: Optional[float] = None

    @property
    def has_linked_request(self) -> bool:
        return bool(self.request_id)

    @property
    def status_text(self) -> str:
        return (self.status_update or "").strip()

    @property
    def note_length(self) -> int:
        return len((self.notes or "").strip())


@dataclass(frozen=True)
class PmEvent(MaintenanceEvent):
    usage: Optional[float] = None


@dataclass(frozen=True)
class GradedSubmission(MaintenanceEvent):
    form_type: Optional[str] = None
    form_id: Optional[str] = None
    score: float = 0
    is_complete: bool = True
    has_na: bool = False
    missing_count: int = 0
    accountability_flag: bool = False
    accountability_reason: Optional[str] = None


AnyEvent = Union[Inspection, Request, Log, PmEvent, GradedSubmission]

_KIND_BY_TYPE = (
    (Inspection, EventKind.INSPECTION),
    (Request, EventKind.REQUEST),
    (Log, EventKind.LOG),
    (PmEvent, EventKind.PM_EVENT),
    (GradedSubmission, EventKind.GRADED_SUBMISSION),
)


def event_kind(event: MaintenanceEvent) -> EventKind:
    """Kind tag for an event; unknown types are a programming error."""
    for cls, kind in _KIND_BY_TYPE:
        if type(event) is cls:
            return kind
    raise TypeError(f"Unsupported maintenance event type: {type(event).__name__}")


# ═══════════════════════════════════════════════════════════════════════
# Row normalisation
# ═══════════════════════════════════════════════════════════════════════

def _text(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _asset_ref(row: Dict[str, Any]) -> Tuple[Optional[str], Optional[AssetCategory]]:
    """Resolve (asset_id, category) from vehicle_id / equipment_id columns."""
    if _text(row.get("vehicle_id")):
        return _text(row["vehicle_id"]), AssetCategory.VEHICLE
    if _text(row.get("equipment_id")):
        return _text(row["equipment_id"]), AssetCategory.EQUIPMENT
    category = row.get("asset_category")
    try:
        category = AssetCategory(category) if category else None
    except ValueError:
        category = None
    return _text(row.get("asset_id")), category


def _bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "t", "1", "yes")
    return bool(value)


def parse_inspection_checklist(checklist: Any) -> Dict[str, Any]:
    """Pull teammate, date and fail/linkage counts out of a checklist payload.

    Only sections marked applicable count toward fails; exiting items always
    count. Malformed payloads produce empty values, never errors.
    """
    obj = checklist if isinstance(checklist, dict) else {}
    employee = obj.get("employee")
    employee = employee.strip() if isinstance(employee, str) else ""
    inspection_date = obj.get("inspectionDate")
    inspection_date = inspection_date.strip() if isinstance(inspection_date, str) else ""

    fail_count = 0
    sections = obj.get("sections") if isinstance(obj.get("sections"), dict) else {}
    for section in sections.values():
        if not isinstance(section, dict) or section.get("applicable") is not True:
            continue
        items = section.get("items") if isinstance(section.get("items"), dict) else {}
        fail_count += sum(1 for v in items.values() if isinstance(v, str) and v.lower() == "fail")

    exiting = obj.get("exiting") if isinstance(obj.get("exiting"), dict) else {}
    fail_count += sum(1 for v in exiting.values() if isinstance(v, str) and v.lower() == "fail")

    links = obj.get("failRequestLinks") if isinstance(obj.get("failRequestLinks"), dict) else {}
    linked = sum(1 for v in links.values() if isinstance(v, str) and v.strip())

    return {
        "employee": employee,
        "inspection_date": inspection_date,
        "fail_count": fail_count,
        "linked_fail_count": min(linked, fail_count),
    }


def asset_from_row(row: Dict[str, Any], category: Union[AssetCategory, str]) -> Asset:
    """Build an Asset from a vehicles/equipment row.

    Vehicles carry ``mileage``, equipment ``current_hours``; a generic
    ``usage`` column is accepted for either. Invalid counters become None.
    """
    category = AssetCategory(category)
    usage_col = "mileage" if category is AssetCategory.VEHICLE else "current_hours"
    raw_usage = row.get(usage_col, row.get("usage"))
    usage = to_number(raw_usage)
    year = to_number(row.get("year"))
    return Asset(
        asset_id=str(row.get("id")),
        name=_text(row.get("name")) or str(row.get("id")),
        category=category,
        usage=usage,
        status=_text(row.get("status")),
        updated_at=row.get("updated_at"),
        year=int(year) if year is not None else None,
    )


def event_from_row(kind: Union[EventKind, str], row: Dict[str, Any]) -> AnyEvent:
    """Normalise one store row into its event variant.

    Optional columns may be missing entirely; blank strings become None.
    """
    kind = EventKind(kind)
    asset_id, category = _asset_ref(row)
    event_id = str(row.get("id"))

    if kind is EventKind.INSPECTION:
        checklist = row.get("checklist") if isinstance(row.get("checklist"), dict) else {}
        meta = parse_inspection_checklist(checklist)
        return Inspection(
            event_id=event_id,
            created_at=row.get("created_at"),
            actor_id=meta["employee"] or _text(row.get("created_by")),
            asset_id=asset_id,
            asset_category=category,
            inspection_type=_text(row.get("inspection_type")),
            overall_status=_text(row.get("overall_status")),
            checklist=checklist,
        )
    if kind is EventKind.REQUEST:
        return Request(
            event_id=event_id,
            created_at=row.get("created_at"),
            actor_id=_text(row.get("created_by")),
            asset_id=asset_id,
            asset_category=category,
            status=_text(row.get("status")),
            urgency=_text(row.get("urgency")),
            system_affected=_text(row.get("system_affected")),
            description=_text(row.get("description")),
            issue_identified_during=_text(row.get("issue_identified_during")),
            updated_at=row.get("updated_at"),
            closed_at=row.get("closed_at"),
        )
    if kind is EventKind.LOG:
        return Log(
            event_id=event_id,
            created_at=row.get("created_at"),
            actor_id=_text(row.get("created_by")),
            asset_id=asset_id,
            asset_category=category,
            request_id=_text(row.get("request_id")),
            status_update=row.get("status_update"),
            notes=row.get("notes"),
            self_score=to_number(row.get("mechanic_self_score")),
        )
    if kind is EventKind.PM_EVENT:
        raw_usage = row.get("usage", row.get("hours", row.get("mileage")))
        return PmEvent(
            event_id=event_id,
            created_at=row.get("created_at"),
            actor_id=_text(row.get("created_by")),
            asset_id=asset_id,
            asset_category=category,
            usage=to_number(raw_usage),
        )
    if kind is EventKind.GRADED_SUBMISSION:
        return GradedSubmission(
            event_id=event_id,
            created_at=row.get("submitted_at", row.get("created_at")),
            actor_id=_text(row.get("submitted_by")),
            asset_id=asset_id,
            asset_category=category,
            form_type=_text(row.get("form_type")),
            form_id=_text(row.get("form_id")),
            score=to_number(row.get("score")) or 0,
            is_complete=_bool(row.get("is_complete", True)),
            has_na=_bool(row.get("has_na", False)),
            missing_count=int(to_number(row.get("missing_count")) or 0),
            accountability_flag=_bool(row.get("accountability_flag", False)),
            accountability_reason=_text(row.get("accountability_reason")),
        )
    raise TypeError(f"Unsupported event kind: {kind!r}")


def events_from_rows(kind: Union[EventKind, str], rows: Iterable[Dict[str, Any]]) -> List[AnyEvent]:
    return [event_from_row(kind, row) for row in rows or []]


# ═══════════════════════════════════════════════════════════════════════
# Accessors
# ═══════════════════════════════════════════════════════════════════════

def actor_key(event: MaintenanceEvent) -> str:
    """Grouping key for the actor; missing actors share the Unknown bucket."""
    return (event.actor_id or "").strip() or UNKNOWN_ACTOR


def asset_key(event: MaintenanceEvent) -> Optional[str]:
    """``category:id`` key so vehicle and equipment ids never collide."""
    if not event.asset_id:
        return None
    category = event.asset_category.value if event.asset_category else "asset"
    return f"{category}:{event.asset_id}"


def event_timestamp(event: MaintenanceEvent):
    """Creation timestamp used for temporal aggregation, for any kind."""
    event_kind(event)
    return event.created_at


def closure_timestamp(request: Request):
    """When a request closed: ``closed_at``, else its last update."""
    return request.closed_at or request.updated_at


def closure_latency_days(request: Request) -> Optional[float]:
    """Days from creation to closure, or None when either end is unusable."""
    created = parse_timestamp(request.created_at)
    closed = parse_timestamp(closure_timestamp(request))
    if created is None or closed is None:
        return None
    latency = (to_local(closed) - to_local(created)).total_seconds() / 86400
    return max(0.0, latency)


def latest_service_record(records: Iterable[ServiceRecord]) -> Optional[ServiceRecord]:
    """Most recent record by timestamp, ignoring invalid usage/timestamps."""
    best = None
    best_ts = None
    for record in records or []:
        if not is_valid_counter(record.usage):
            continue
        ts = parse_timestamp(record.created_at)
        if ts is None:
            continue
        ts_key = to_local(ts)
        if best is None or ts_key > best_ts:
            best, best_ts = record, ts_key
    return best


def service_records_from_events(events: Iterable[MaintenanceEvent]) -> List[ServiceRecord]:
    """ServiceRecords carried by the PM events in a collection."""
    return [
        ServiceRecord(asset_id=e.asset_id, usage=e.usage, created_at=e.created_at,
                      asset_category=e.asset_category)
        for e in events or []
        if isinstance(e, PmEvent) and e.asset_id
    ]


def request_index(events: Iterable[MaintenanceEvent]) -> Dict[Tuple[Optional[AssetCategory], str], Request]:
    """Requests keyed by (asset category, request id)."""
    return {
        (e.asset_category, e.event_id): e
        for e in events or []
        if isinstance(e, Request)
    }


def linked_request(log: Log, requests: Dict[Tuple[Optional[AssetCategory], str], Request]) -> Optional[Request]:
    if not log.request_id:
        return None
    return requests.get((log.asset_category, log.request_id))


def system_affected(event: MaintenanceEvent,
                    requests: Optional[Dict[Tuple[Optional[AssetCategory], str], Request]] = None) -> Optional[str]:
    """System affected for a request, or for a log via its linked request.

    Other kinds carry no system and return None.
    """
    kind = event_kind(event)
    if kind is EventKind.REQUEST:
        return event.system_affected or UNSPECIFIED_SYSTEM
    if kind is EventKind.LOG:
        req = linked_request(event, requests or {})
        return (req.system_affected if req else None) or UNSPECIFIED_SYSTEM
    if kind in (EventKind.INSPECTION, EventKind.PM_EVENT, EventKind.GRADED_SUBMISSION):
        return None
    raise TypeError(f"Unhandled event kind: {kind!r}")


# ═══════════════════════════════════════════════════════════════════════
# Aggregation
# ═══════════════════════════════════════════════════════════════════════

def aggregate_events(
    events: Sequence[MaintenanceEvent],
    period: Optional[str] = None,
    reference_time=None,
    asset_id: Optional[str] = None,
    asset_category: Optional[AssetCategory] = None,
    actor_id: Optional[str] = None,
    kinds: Optional[Iterable[EventKind]] = None,
    start_date=None,
    end_date=None,
    requests: Optional[Sequence[Request]] = None,
    tz=None,
) -> Dict[str, Any]:
    """Filter a snapshot of events and derive dropdown options from the result.

    Args:
        events: heterogeneous events from one snapshot
        period: optional calendar period (daily/weekly/...) anchored at
            ``reference_time``
        asset_id / actor_id: optional exact-match filters; ``actor_id`` may
            be ``UNKNOWN_ACTOR`` to select events without an actor
        asset_category: narrows ``asset_id`` to one category, since vehicle
            and equipment ids can coincide
        kinds: optional subset of EventKind to keep
        start_date / end_date: optional inclusive calendar-day bounds
        requests: extra requests used only to resolve log -> request links
            (e.g. requests created before the active window)

    Returns:
        Dict with the kept ``events`` (input order) and the distinct
        ``systems_affected`` / ``linked_request_ids`` observed among them.
    """
    wanted_kinds = {EventKind(k) for k in kinds} if kinds else None
    if asset_category is not None:
        asset_category = AssetCategory(asset_category)
    lookup = request_index(list(requests or []) + list(events or []))

    kept = []
    excluded_ts = 0
    for event in events or []:
        kind = event_kind(event)
        if wanted_kinds is not None and kind not in wanted_kinds:
            continue
        if asset_id is not None and event.asset_id != asset_id:
            continue
        if asset_category is not None and event.asset_category is not asset_category:
            continue
        if actor_id is not None and actor_key(event) != actor_id:
            continue
        ts = event_timestamp(event)
        if period is not None and not in_period(ts, period, reference_time, tz):
            if parse_timestamp(ts) is None:
                excluded_ts += 1
            continue
        if (start_date is not None or end_date is not None) and not in_date_range(ts, start_date, end_date, tz):
            if parse_timestamp(ts) is None:
                excluded_ts += 1
            continue
        kept.append(event)

    if excluded_ts:
        logger.debug("Excluded %d events with unparsable timestamps", excluded_ts)

    systems = set()
    linked_ids = set()
    for event in kept:
        system = system_affected(event, lookup)
        if system is not None:
            systems.add(system)
        if isinstance(event, Log) and event.request_id:
            linked_ids.add(event.request_id)

    return {
        "events": kept,
        "systems_affected": sorted(systems),
        "linked_request_ids": sorted(linked_ids),
    }
