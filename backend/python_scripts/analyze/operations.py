"""
Operations Dashboard Summaries

Read-only rollups behind the maintenance operations view:

  * **Downtime** — red-tagged / out-of-service assets, how long they have
    been down and what is still open against them.
  * **Failures** — maintenance logs in a date range by system affected,
    with top systems and repeat assets.
  * **Performance** — request throughput, time to close and weekly
    created/closed series.
  * **Risk** — SLA breaches, unacknowledged requests and repeat failures
    for a period.

Usage:
    from analyze.operations import downtime_board, failure_analysis

    down = downtime_board(assets, requests, logs, reference_time=now)
    failures = failure_analysis(logs, requests, assets, start_date='2026-01-01')
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config.scoring_config import (
    CLOSED_REQUEST_STATUSES,
    DEFAULT_CONFIG,
    OPEN_REQUEST_STATUSES,
    UNKNOWN_ACTOR,
    UNSPECIFIED_SYSTEM,
)
from analyze.events import (
    Asset,
    AssetCategory,
    EventKind,
    Log,
    OperationalStatus,
    Request,
    actor_key,
    aggregate_events,
    asset_key,
    closure_timestamp,
    linked_request,
    request_index,
)
from lib.date_utils import (
    UNKNOWN_BUCKET,
    days_between,
    hours_between,
    parse_timestamp,
    to_local,
    week_bucket_key,
)
from lib.stats_utils import round_half_up

logger = logging.getLogger(__name__)

TOP_N = 20
CLOSED = 'Closed'


def _asset_names(assets: Iterable[Asset]) -> Dict[str, str]:
    return {a.key: a.display_name for a in assets or []}


def _newest_first(events):
    def key(event):
        ts = parse_timestamp(event.created_at)
        return (0, -to_local(ts).timestamp()) if ts is not None else (1, 0.0)
    return sorted(events, key=key)


def _is_open(request: Request) -> bool:
    return request.status_text in OPEN_REQUEST_STATUSES


# ═══════════════════════════════════════════════════════════════════════
# Open requests & downtime
# ═══════════════════════════════════════════════════════════════════════

def open_request_counts(requests: Iterable[Request],
                        assets: Iterable[Asset] = ()) -> List[Dict[str, Any]]:
    """Open / In Progress requests grouped by asset, busiest first."""
    names = _asset_names(assets)
    counts: Counter = Counter()
    refs = {}
    for req in requests or []:
        key = asset_key(req)
        if key is None or not _is_open(req):
            continue
        counts[key] += 1
        refs[key] = req

    rows = [
        {
            'asset_id': refs[key].asset_id,
            'asset_category': refs[key].asset_category.value if refs[key].asset_category else None,
            'asset_name': names.get(key, refs[key].asset_id),
            'count': count,
        }
        for key, count in counts.items()
    ]
    return sorted(rows, key=lambda r: (-r['count'], r['asset_name']))


def downtime_board(assets: Iterable[Asset], requests: Iterable[Request] = (),
                   logs: Iterable[Log] = (), reference_time=None) -> List[Dict[str, Any]]:
    """Down assets with days down, open requests and latest issue.

    ``days_down`` counts whole days since the asset record was last updated
    (the status change); longest-down assets come first.
    """
    open_by_asset: Dict[str, List[Request]] = {}
    for req in requests or []:
        key = asset_key(req)
        if key is not None and _is_open(req):
            open_by_asset.setdefault(key, []).append(req)

    last_log: Dict[str, Any] = {}
    for log in _newest_first([l for l in logs or [] if asset_key(l)]):
        last_log.setdefault(asset_key(log), log.created_at)

    now = reference_time if reference_time is not None else datetime.now(timezone.utc)

    rows = []
    for asset in assets or []:
        if not OperationalStatus.is_down(asset.status):
            continue
        key = asset.key
        open_rows = _newest_first(open_by_asset.get(key, []))
        rows.append({
            'asset_id': asset.asset_id,
            'asset_name': asset.display_name,
            'asset_category': asset.category.value,
            'status': asset.status,
            'down_since': asset.updated_at,
            'days_down': days_between(asset.updated_at, now),
            'open_requests': len(open_rows),
            'latest_issue': open_rows[0].description if open_rows else None,
            'last_log_at': last_log.get(key),
        })

    rows.sort(key=lambda r: -r['days_down'])
    return rows


# ═══════════════════════════════════════════════════════════════════════
# Failure analysis
# ═══════════════════════════════════════════════════════════════════════

def failure_analysis(logs: Iterable[Log], requests: Iterable[Request] = (),
                     assets: Iterable[Asset] = (), start_date=None, end_date=None,
                     category=None, system: Optional[str] = None,
                     tz=None) -> Dict[str, Any]:
    """Maintenance logs in a date range, by system affected.

    Args:
        logs: maintenance log events
        requests: requests used to resolve each log's system affected
        assets: fleet snapshot for display names
        start_date / end_date: inclusive day bounds (None = unbounded)
        category: optional AssetCategory (or its value) to keep
        system: optional system affected to keep

    Returns:
        Dict with ``rows`` (newest first), ``top_systems``,
        ``top_repeat_assets`` and ``system_options``. The options list the
        systems present under the date and category filters, so choosing a
        system never hides the others from the dropdown.
    """
    if category is not None:
        category = AssetCategory(category)
    names = _asset_names(assets)
    requests = list(requests or [])
    lookup = request_index(requests)

    in_range = aggregate_events(list(logs or []), start_date=start_date, end_date=end_date,
                                kinds=[EventKind.LOG], requests=requests, tz=tz)['events']
    scoped = [
        log for log in in_range
        if log.asset_id and (category is None or log.asset_category is category)
    ]
    system_options = aggregate_events(scoped, requests=requests)['systems_affected']

    rows = []
    for log in _newest_first(scoped):
        req = linked_request(log, lookup)
        system_affected = ((req.system_affected if req else None) or '').strip() or UNSPECIFIED_SYSTEM
        if system is not None and system_affected != system:
            continue
        description = (
            ((req.description if req else None) or '').strip()
            or (log.notes or '').strip()
            or (log.status_update or '').strip()
            or 'No description'
        )
        rows.append({
            'log_id': log.event_id,
            'created_at': log.created_at,
            'request_id': log.request_id,
            'asset_id': log.asset_id,
            'asset_category': log.asset_category.value if log.asset_category else None,
            'asset_name': names.get(asset_key(log), log.asset_id),
            'system_affected': system_affected,
            'description': description,
        })

    system_counts = Counter(r['system_affected'] for r in rows)
    top_systems = sorted(
        ({'system': s, 'count': c} for s, c in system_counts.items()),
        key=lambda r: (-r['count'], r['system']),
    )[:TOP_N]

    asset_counts: Counter = Counter()
    asset_rows = {}
    for r in rows:
        key = (r['asset_category'], r['asset_id'])
        asset_counts[key] += 1
        asset_rows[key] = r
    top_repeat_assets = sorted(
        (
            {
                'asset_id': asset_rows[k]['asset_id'],
                'asset_category': asset_rows[k]['asset_category'],
                'asset_name': asset_rows[k]['asset_name'],
                'count': c,
            }
            for k, c in asset_counts.items()
        ),
        key=lambda r: (-r['count'], r['asset_name']),
    )[:TOP_N]

    return {
        'rows': rows,
        'top_systems': top_systems,
        'top_repeat_assets': top_repeat_assets,
        'system_options': system_options,
    }


# ═══════════════════════════════════════════════════════════════════════
# Performance
# ═══════════════════════════════════════════════════════════════════════

def weekly_series(requests: Iterable[Request], tz=None) -> List[Dict[str, Any]]:
    """Requests created and closed per Monday-aligned week, oldest first.

    Timestamps that cannot be parsed are dropped from the series.
    """
    created = [week_bucket_key(r.created_at, tz) for r in requests or []]
    closed = [
        week_bucket_key(closure_timestamp(r), tz)
        for r in requests or []
        if r.status_text == CLOSED
    ]
    frame = pd.DataFrame({
        'created': pd.Series(created, dtype=object).value_counts(),
        'closed': pd.Series(closed, dtype=object).value_counts(),
    }).fillna(0)
    frame = frame[frame.index != UNKNOWN_BUCKET].sort_index()
    return [
        {'week': week, 'created': int(row['created']), 'closed': int(row['closed'])}
        for week, row in frame.iterrows()
    ]


def performance_summary(requests: Iterable[Request], logs: Iterable[Log] = (),
                        start_date=None, end_date=None,
                        display_names: Optional[Dict[str, str]] = None,
                        tz=None) -> Dict[str, Any]:
    """Request throughput and mechanic activity for a date range."""
    in_range = aggregate_events(list(requests or []), start_date=start_date, end_date=end_date,
                                kinds=[EventKind.REQUEST], tz=tz)['events']
    logs_in_range = aggregate_events(list(logs or []), start_date=start_date, end_date=end_date,
                                     kinds=[EventKind.LOG], tz=tz)['events']

    open_count = sum(1 for r in in_range if _is_open(r))
    closed = [r for r in in_range if r.status_text == CLOSED]
    if closed:
        total = sum(days_between(r.created_at, closure_timestamp(r)) for r in closed)
        avg_close_days = round_half_up(total / len(closed) * 10) / 10
    else:
        avg_close_days = 0

    names = display_names or {}
    per_mechanic = Counter(actor_key(l) for l in logs_in_range)
    logs_by_mechanic = sorted(
        (
            {
                'actor_id': actor,
                'display_name': UNKNOWN_ACTOR if actor == UNKNOWN_ACTOR else names.get(actor) or actor,
                'count': count,
            }
            for actor, count in per_mechanic.items()
        ),
        key=lambda r: (-r['count'], r['display_name']),
    )

    return {
        'open_count': open_count,
        'closed_count': len(closed),
        'avg_close_days': avg_close_days,
        'weekly': weekly_series(in_range, tz),
        'logs_by_mechanic': logs_by_mechanic,
    }


# ═══════════════════════════════════════════════════════════════════════
# Risk
# ═══════════════════════════════════════════════════════════════════════

def sla_hours(urgency: Optional[str], config: Dict[str, Any] = None) -> float:
    sla = (config or DEFAULT_CONFIG)['sla']
    return sla.get((urgency or '').strip(), sla['default'])


def risk_summary(requests: Iterable[Request], logs: Iterable[Log] = (),
                 period: Optional[str] = None, reference_time=None,
                 config: Dict[str, Any] = None, tz=None) -> Dict[str, Any]:
    """Risk counters for requests raised in the period.

    A still-open request breaches SLA once older than its urgency window;
    it is unacknowledged when no log links to it after 24 hours. Repeat
    failures count asset/system pairs raised at least twice.
    ``period_requests`` counts every request raised in the period;
    ``unresolved_requests`` only those not yet closed or resolved.
    """
    sla = (config or DEFAULT_CONFIG)['sla']
    now = reference_time if reference_time is not None else datetime.now(timezone.utc)
    in_period_requests = aggregate_events(list(requests or []), period=period,
                                          reference_time=now, kinds=[EventKind.REQUEST],
                                          tz=tz)['events']
    linked_ids = {l.request_id for l in logs or [] if isinstance(l, Log) and l.request_id}

    sla_breaches = 0
    unacknowledged = 0
    unresolved_requests = 0
    for req in in_period_requests:
        if req.status_text in CLOSED_REQUEST_STATUSES:
            continue
        unresolved_requests += 1
        age = hours_between(req.created_at, now)
        if age is None:
            continue
        if age > sla_hours(req.urgency, config):
            sla_breaches += 1
        if req.event_id not in linked_ids and age > sla['unacknowledgedHours']:
            unacknowledged += 1

    pairs = Counter(
        (asset_key(r) or 'unknown', (r.system_affected or 'Other').strip())
        for r in in_period_requests
    )
    repeat_failures = sum(1 for count in pairs.values() if count >= 2)

    return {
        'sla_breaches': sla_breaches,
        'unacknowledged': unacknowledged,
        'repeat_failures': repeat_failures,
        'unresolved_requests': unresolved_requests,
        'period_requests': len(in_period_requests),
    }
