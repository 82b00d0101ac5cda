"""
Preventative Maintenance Status — usage-based PM classification & boards

Classifies each asset against its service interval (miles for vehicles,
operating hours for equipment) as On Track, Due Soon or Overdue, and builds
the combined due/overdue board every dashboard shows.

Read-only stage: inputs are a snapshot of assets and service records.

Usage:
    from analyze.pm_status import classify_usage, build_pm_board

    classify_usage(104800, 100000, interval=5000, due_soon_window=500)
    # {'status': PmStatus.DUE_SOON, 'due_at': 105000, 'remaining': 200, ...}

    board = build_pm_board(assets, service_records)
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from config.scoring_config import DEFAULT_CONFIG, get_pm_settings
from analyze.events import Asset, AssetCategory, ServiceRecord, latest_service_record
from lib.stats_utils import clamp_percent, is_valid_counter, round_half_up, to_number

logger = logging.getLogger(__name__)


class PmStatus(str, Enum):
    ON_TRACK = "On Track"
    DUE_SOON = "Due Soon"
    OVERDUE = "Overdue"


# ═══════════════════════════════════════════════════════════════════════
# Classification
# ═══════════════════════════════════════════════════════════════════════

def due_soon_window(interval: float, floor: float,
                    fraction: float = DEFAULT_CONFIG['pm']['dueSoonFraction']) -> int:
    """Usage margin before the due point at which an asset is Due Soon."""
    return max(floor, round_half_up(interval * fraction))


def pm_parameters(category, config: Dict[str, Any] = None) -> Dict[str, Any]:
    """Interval, due-soon window and unit for an asset category.

    Raises:
        ValueError: for a category other than vehicle/equipment
    """
    if config is None:
        config = DEFAULT_CONFIG
    key = category.value if isinstance(category, AssetCategory) else str(category)
    settings = get_pm_settings(key, config)
    fraction = config['pm'].get('dueSoonFraction', DEFAULT_CONFIG['pm']['dueSoonFraction'])
    return {
        'interval': settings['interval'],
        'due_soon_window': due_soon_window(settings['interval'], settings['dueSoonFloor'], fraction),
        'unit': settings['unit'],
    }


def classify_usage(current_usage, last_service_usage, interval: float,
                   due_soon_window: float) -> Optional[Dict[str, Any]]:
    """Classify one asset's PM status from its usage counters.

    Args:
        current_usage: current odometer / hour-meter reading
        last_service_usage: reading at the most recent service (0 if none)
        interval: usage between services (> 0)
        due_soon_window: margin before ``due_at`` that counts as Due Soon

    Returns:
        Dict with status, due_at, remaining and overdue_amount, or None when
        the current reading is missing, negative or not finite.
    """
    if not is_valid_counter(current_usage):
        return None
    current = to_number(current_usage)
    last = to_number(last_service_usage) if is_valid_counter(last_service_usage) else 0.0

    due_at = last + interval
    remaining = due_at - current

    if current >= due_at:
        status = PmStatus.OVERDUE
    elif remaining <= due_soon_window:
        status = PmStatus.DUE_SOON
    else:
        status = PmStatus.ON_TRACK

    return {
        'status': status,
        'due_at': due_at,
        'remaining': remaining,
        'overdue_amount': current - due_at if status is PmStatus.OVERDUE else 0,
    }


def reconcile_usage(local_value, server_value) -> Optional[float]:
    """Merge a locally cached usage counter with the server's.

    Counters only grow, so the larger valid reading wins. An invalid reading
    on either side is ignored; None when neither is usable.
    """
    valid = [to_number(v) for v in (local_value, server_value) if is_valid_counter(v)]
    if not valid:
        return None
    return max(valid)


def oil_life_percent(current_usage, last_oil_change_usage, interval: float) -> Optional[int]:
    """Remaining oil life as a 0-100 percentage, or None when unknown."""
    if not is_valid_counter(current_usage) or not is_valid_counter(last_oil_change_usage):
        return None
    if not interval or interval <= 0:
        return None
    used = max(0.0, to_number(current_usage) - to_number(last_oil_change_usage))
    return clamp_percent((interval - used) / interval * 100)


# ═══════════════════════════════════════════════════════════════════════
# Boards
# ═══════════════════════════════════════════════════════════════════════

def _records_by_id(service_records: Iterable[ServiceRecord]) -> Dict[str, List[ServiceRecord]]:
    grouped: Dict[str, List[ServiceRecord]] = {}
    for record in service_records or []:
        grouped.setdefault(record.asset_id, []).append(record)
    return grouped


def _latest_for(asset: Asset, records: Iterable[ServiceRecord]) -> Optional[ServiceRecord]:
    return latest_service_record(r for r in records or [] if r.belongs_to(asset))


def _board_sort_key(row: Dict[str, Any]):
    if row['status'] is PmStatus.OVERDUE:
        return (0, -row['overdue_amount'], row['asset_name'])
    return (1, row['remaining'], row['asset_name'])


def pm_status_for_asset(asset: Asset, service_records: Iterable[ServiceRecord] = (),
                        config: Dict[str, Any] = None,
                        local_usage=None) -> Optional[Dict[str, Any]]:
    """Classification for a single asset, or None when its usage is unknown."""
    params = pm_parameters(asset.category, config)
    current = reconcile_usage(local_usage, asset.usage)
    record = _latest_for(asset, service_records)
    last = record.usage if record else None
    return classify_usage(current, last, params['interval'], params['due_soon_window'])


def build_pm_board(assets: Iterable[Asset],
                   service_records: Iterable[ServiceRecord] = (),
                   config: Dict[str, Any] = None,
                   local_usage: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Combined Due Soon / Overdue board across vehicles and equipment.

    Args:
        assets: fleet snapshot
        service_records: PM/service records for those assets
        config: scoring configuration (DEFAULT_CONFIG if None)
        local_usage: optional locally cached readings keyed by ``Asset.key``
            (``category:id``), merged with the server reading via ``reconcile_usage``

    Returns:
        Rows ordered Overdue first (largest overrun first), then Due Soon
        (closest first), each with a 1-based ``rank``. On Track assets and
        assets without a usable reading are left off.
    """
    local_usage = local_usage or {}
    by_id = _records_by_id(service_records)

    rows = []
    skipped = 0
    for asset in assets or []:
        params = pm_parameters(asset.category, config)
        current = reconcile_usage(local_usage.get(asset.key), asset.usage)
        record = _latest_for(asset, by_id.get(asset.asset_id))
        last = record.usage if record else None

        result = classify_usage(current, last, params['interval'], params['due_soon_window'])
        if result is None:
            skipped += 1
            logger.debug("Skipping asset %s: no usable usage reading", asset.asset_id)
            continue
        if result['status'] is PmStatus.ON_TRACK:
            continue

        rows.append({
            'asset_id': asset.asset_id,
            'asset_name': asset.display_name,
            'asset_category': asset.category.value,
            'unit': params['unit'],
            'current_usage': current,
            'last_service_usage': last if is_valid_counter(last) else 0,
            'last_service_at': record.created_at if record else None,
            'due_at': result['due_at'],
            'status': result['status'],
            'overdue_amount': result['overdue_amount'],
            'remaining': result['remaining'],
        })

    if skipped:
        logger.debug("PM board excluded %d assets with invalid usage", skipped)

    rows.sort(key=_board_sort_key)
    for rank, row in enumerate(rows, start=1):
        row['rank'] = rank
    return rows


def filter_pm_board(rows: Iterable[Dict[str, Any]], status=None, category=None,
                    search: Optional[str] = None) -> List[Dict[str, Any]]:
    """Narrow board rows by status, category and a case-insensitive name search.

    Ranks are left as computed on the full board.
    """
    if status is not None:
        status = PmStatus(status)
    if isinstance(category, AssetCategory):
        category = category.value
    needle = (search or '').strip().lower()

    out = []
    for row in rows or []:
        if status is not None and row['status'] is not status:
            continue
        if category is not None and row['asset_category'] != category:
            continue
        if needle and needle not in str(row['asset_name']).lower():
            continue
        out.append(row)
    return out
