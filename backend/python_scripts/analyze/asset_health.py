"""
Asset Health — composite per-asset health score

Blends PM status, open-request load, downtime state and recent mechanic
quality into one 0-100 health score per vehicle or equipment unit:

    operational = 100
                  - 30 if red-tagged / out of service
                  - 12 per open request (capped at 36)
                  - 20 Overdue / - 10 Due Soon
                  + legacy allowance for older assets
    health      = operational * 0.8 + mechanic * 0.2

Usage:
    from analyze.asset_health import compose_asset_health

    summary = compose_asset_health(asset, service_records, events,
                                   reference_time=now)
    summary['health_score']
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from config.scoring_config import DEFAULT_CONFIG, OPEN_REQUEST_STATUSES
from analyze.events import Asset, Log, OperationalStatus, Request, ServiceRecord
from analyze.pm_status import PmStatus, pm_status_for_asset
from analyze.quality import log_quality_score
from lib.date_utils import parse_timestamp, to_local
from lib.stats_utils import clamp_percent, mean_score, to_number

logger = logging.getLogger(__name__)

DECLINE_POINTS = 3


def legacy_asset_allowance(year, current_year: Optional[int] = None,
                           config: Dict[str, Any] = None) -> int:
    """Points added back for older assets; only the highest band applies."""
    year = to_number(year)
    if year is None or year <= 0:
        return 0
    if current_year is None:
        current_year = datetime.now().year
    age = current_year - int(year)
    for min_age, allowance in (config or DEFAULT_CONFIG)['health']['legacyAllowance']:
        if age >= min_age:
            return allowance
    return 0


def operational_score(status: Optional[str], open_request_count: int,
                      pm_status: Optional[PmStatus], year=None,
                      current_year: Optional[int] = None,
                      config: Dict[str, Any] = None) -> int:
    """Operational condition of an asset.

    ``pm_status`` of None means usage is unknown and no PM penalty applies.
    """
    h = (config or DEFAULT_CONFIG)['health']
    score = 100
    if OperationalStatus.is_down(status):
        score -= h['downStatusPenalty']
    score -= min(h['openRequestPenaltyCap'], max(0, open_request_count) * h['openRequestPenalty'])
    if pm_status is PmStatus.OVERDUE:
        score -= h['overduePenalty']
    elif pm_status is PmStatus.DUE_SOON:
        score -= h['dueSoonPenalty']
    score += legacy_asset_allowance(year, current_year, config)
    return clamp_percent(score)


def _recency_key(log: Log):
    ts = parse_timestamp(log.created_at)
    if ts is None:
        return (1, 0.0)
    return (0, -to_local(ts).timestamp())


def mechanic_quality_score(logs: Iterable[Log], config: Dict[str, Any] = None) -> int:
    """Mean quality of the most recent logs, or the neutral default."""
    h = (config or DEFAULT_CONFIG)['health']
    recent = sorted((l for l in logs or [] if isinstance(l, Log)), key=_recency_key)
    recent = recent[:h['recentLogCount']]
    if not recent:
        return h['defaultMechanicScore']
    return mean_score(log_quality_score(l, config) for l in recent)


def _belongs_to(event, asset: Asset) -> bool:
    if event.asset_id != asset.asset_id:
        return False
    return event.asset_category is None or event.asset_category is asset.category


def compose_asset_health(asset: Asset,
                         service_records: Iterable[ServiceRecord] = (),
                         events: Iterable[Any] = (),
                         config: Dict[str, Any] = None,
                         reference_time=None,
                         local_usage=None) -> Dict[str, Any]:
    """Health summary for one asset.

    Args:
        asset: the vehicle or equipment unit
        service_records: PM/service records (any asset; filtered here)
        events: requests and logs (any asset; filtered here)
        config: scoring configuration (DEFAULT_CONFIG if None)
        reference_time: anchors the asset age (defaults to now)
        local_usage: optional locally cached usage reading

    Returns:
        Dict with asset_id, pm_status (None when usage is unknown),
        operational_score, mechanic_score, open_requests and health_score.
    """
    h = (config or DEFAULT_CONFIG)['health']
    ref = parse_timestamp(reference_time) if reference_time is not None else None
    current_year = to_local(ref).year if ref is not None else None

    own_events = [e for e in events or [] if _belongs_to(e, asset)]
    open_requests = sum(
        1 for e in own_events
        if isinstance(e, Request) and e.status_text in OPEN_REQUEST_STATUSES
    )
    logs = [e for e in own_events if isinstance(e, Log)]

    pm = pm_status_for_asset(asset, service_records, config, local_usage)
    pm_status = pm['status'] if pm else None
    if pm is None:
        logger.debug("Asset %s has no usable usage reading; PM penalty skipped", asset.asset_id)

    op = operational_score(asset.status, open_requests, pm_status, asset.year, current_year, config)
    mech = mechanic_quality_score(logs, config)
    health = clamp_percent(op * h['operationalWeight'] + mech * h['mechanicWeight'])

    return {
        'asset_id': asset.asset_id,
        'asset_name': asset.display_name,
        'asset_category': asset.category.value,
        'pm_status': pm_status,
        'operational_score': op,
        'mechanic_score': mech,
        'open_requests': open_requests,
        'health_score': health,
    }


def asset_health_board(assets: Iterable[Asset],
                       service_records: Iterable[ServiceRecord] = (),
                       events: Iterable[Any] = (),
                       config: Dict[str, Any] = None,
                       reference_time=None,
                       local_usage: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Health summaries for a fleet, lowest health first.

    ``local_usage`` is keyed by ``Asset.key`` (``category:id``).
    """
    records = list(service_records or [])
    all_events = list(events or [])
    local_usage = local_usage or {}
    rows = [
        compose_asset_health(a, records, all_events, config, reference_time,
                             local_usage.get(a.key))
        for a in assets or []
    ]
    return sorted(rows, key=lambda r: (r['health_score'], r['asset_name']))


# ═══════════════════════════════════════════════════════════════════════
# Trend actions
# ═══════════════════════════════════════════════════════════════════════

def _valid_points(points: Sequence[float]) -> List[float]:
    return [v for v in (to_number(p) for p in points or []) if v is not None]


def is_declining(points: Sequence[float]) -> bool:
    """True when the last three valid points are strictly decreasing."""
    values = _valid_points(points)
    if len(values) < DECLINE_POINTS:
        return False
    a, b, c = values[-DECLINE_POINTS:]
    return a > b > c


def declining_trends(health_points: Sequence[float] = (),
                     mechanic_points: Sequence[float] = ()) -> List[Dict[str, Any]]:
    """Follow-up actions suggested by declining health or mechanic trends."""
    actions = []
    if is_declining(health_points):
        actions.append({
            'action_type': 'asset_health_decline',
            'summary': 'Asset health trend is declining for the last 3 logs.',
            'recent_points': _valid_points(health_points)[-DECLINE_POINTS:],
        })
    if is_declining(mechanic_points):
        actions.append({
            'action_type': 'mechanic_decline',
            'summary': 'Mechanic trend is declining for the last 3 logs.',
            'recent_points': _valid_points(mechanic_points)[-DECLINE_POINTS:],
        })
    return actions
