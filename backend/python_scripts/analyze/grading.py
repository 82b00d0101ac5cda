"""
Form Submission Grading

Scores inspection and maintenance-request submissions for completeness and
raises the accountability flag used by the teammate leaderboard. The grade
dicts produced here are what the store persists as graded submissions;
``grade_to_submission`` turns one back into a ``GradedSubmission`` event.

Usage:
    from analyze.grading import grade_inspection, grade_request

    grade = grade_request(request_row, prior_inspections=pre_trips)
    grade['score'], grade['accountability_flag']
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from config.scoring_config import DEFAULT_CONFIG
from analyze.events import (
    AssetCategory,
    GradedSubmission,
    Inspection,
    parse_inspection_checklist,
)
from lib.date_utils import hours_between, parse_timestamp, to_local
from lib.stats_utils import clamp_percent

logger = logging.getLogger(__name__)

FORM_INSPECTION = 'inspection'
FORM_VEHICLE_REQUEST = 'vehicle_maintenance_request'
FORM_EQUIPMENT_REQUEST = 'equipment_maintenance_request'

NA_VALUES = ('na', 'n/a', 'not applicable')
ITEM_ANSWERS = ('pass', 'fail', 'na')

PRE_TRIP = 'Pre-Trip'
PRE_TRIP_DURING = 'Pre-Trip Inspection'

# Pre-trips considered when looking for a clean pass before a request
PRE_TRIP_CANDIDATES = 5

ACCOUNTABILITY_REASON = (
    "Maintenance issue was reported within {hours}h of a Passing pre-trip "
    "with no failed items."
)

# Request fields that must be non-blank, as (column, label)
_REQUEST_COLUMNS = (
    ('system_affected', 'System Affected'),
    ('urgency', 'Urgency'),
    ('drivability', 'Drivability'),
    ('unit_status', 'Unit Status'),
    ('issue_identified_during', 'Issue Identified During'),
)


def has_na_value(value: Any) -> bool:
    """True if any string inside ``value`` (recursively) is an N/A answer."""
    if isinstance(value, str):
        return value.strip().lower() in NA_VALUES
    if isinstance(value, (list, tuple)):
        return any(has_na_value(v) for v in value)
    if isinstance(value, dict):
        return any(has_na_value(v) for v in value.values())
    return False


def read_description_field(description: Optional[str], key: str) -> str:
    """Value of the first ``Key: value`` line in a request description."""
    if not description:
        return ''
    prefix = f"{key.lower()}:"
    for line in description.split('\n'):
        if line.strip().lower().startswith(prefix):
            return line[line.index(':') + 1:].strip()
    return ''


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ''


def _dict(value) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _grade(row: Dict[str, Any], submitted_by: str, missing: List[str], has_na: bool,
           missing_penalty: float, na_penalty: float, category: Optional[AssetCategory],
           metadata: Dict[str, Any]) -> Dict[str, Any]:
    score = clamp_percent(100 - len(missing) * missing_penalty - (na_penalty if has_na else 0))
    asset_id = row.get('vehicle_id') if category is AssetCategory.VEHICLE else row.get('equipment_id')
    return {
        'submitted_at': row.get('created_at'),
        'submitted_by': submitted_by or None,
        'vehicle_id': asset_id if category is AssetCategory.VEHICLE else None,
        'equipment_id': asset_id if category is AssetCategory.EQUIPMENT else None,
        'score': score,
        'is_complete': not missing,
        'has_na': has_na,
        'missing_count': len(missing),
        'missing_fields': missing,
        'accountability_flag': False,
        'accountability_reason': None,
        'metadata': metadata,
    }


# ═══════════════════════════════════════════════════════════════════════
# Inspections
# ═══════════════════════════════════════════════════════════════════════

def grade_inspection(row: Dict[str, Any], config: Dict[str, Any] = None) -> Dict[str, Any]:
    """Grade a pre/post-trip inspection row.

    Missing: teammate, inspection date, signature, and every applicable
    section item or exiting item not answered pass/fail/na. Each missing
    field costs 20 points; any N/A answer anywhere costs 12 once.
    """
    g = (config or DEFAULT_CONFIG)['grading']
    checklist = _dict(row.get('checklist'))
    missing = []

    teammate = _text(checklist.get('employee'))
    if not teammate:
        missing.append('Teammate')
    if not _text(checklist.get('inspectionDate')):
        missing.append('Inspection Date')
    if not _text(checklist.get('employeeSignature')):
        missing.append('Teammate Signature')

    for section_id, section in _dict(checklist.get('sections')).items():
        if not isinstance(section, dict) or section.get('applicable') is not True:
            continue
        for item_key, answer in _dict(section.get('items')).items():
            if answer not in ITEM_ANSWERS:
                missing.append(f"{section_id}.{item_key}")

    for item_key, answer in _dict(checklist.get('exiting')).items():
        if answer not in ITEM_ANSWERS:
            missing.append(f"exiting.{item_key}")

    meta = parse_inspection_checklist(checklist)
    return _grade(
        row, teammate, missing, has_na_value(checklist),
        g['inspectionMissingPenalty'], g['inspectionNaPenalty'],
        AssetCategory.VEHICLE,
        {'overall_status': row.get('overall_status'), 'fail_count': meta['fail_count']},
    )


# ═══════════════════════════════════════════════════════════════════════
# Maintenance requests
# ═══════════════════════════════════════════════════════════════════════

def _clean_pre_trip_before(request_row: Dict[str, Any], teammate: str,
                           prior_inspections: Iterable[Inspection],
                           lookback_hours: float) -> Optional[Inspection]:
    """Most recent passing, zero-fail pre-trip within the lookback window."""
    created = parse_timestamp(request_row.get('created_at'))
    if created is None:
        return None
    created = to_local(created)
    vehicle_id = str(request_row.get('vehicle_id') or '')

    candidates = []
    for inspection in prior_inspections or []:
        if inspection.inspection_type != PRE_TRIP or inspection.asset_id != vehicle_id:
            continue
        at = parse_timestamp(inspection.created_at)
        if at is None or to_local(at) > created:
            continue
        candidates.append((to_local(at), inspection))
    candidates.sort(key=lambda pair: pair[0], reverse=True)

    wanted = teammate.lower()
    for _, inspection in candidates[:PRE_TRIP_CANDIDATES]:
        hours = hours_between(inspection.created_at, request_row.get('created_at'))
        if hours is None or hours < 0 or hours > lookback_hours:
            continue
        meta = parse_inspection_checklist(inspection.checklist)
        trip_teammate = meta['employee'].lower()
        teammate_matches = not wanted or not trip_teammate or wanted == trip_teammate
        if teammate_matches and (inspection.overall_status or '') == 'Pass' and meta['fail_count'] == 0:
            return inspection
    return None


def grade_request(row: Dict[str, Any], prior_inspections: Optional[Iterable[Inspection]] = None,
                  config: Dict[str, Any] = None) -> Dict[str, Any]:
    """Grade a vehicle or equipment maintenance request row.

    Title, teammate and request date are read from ``Key: value`` lines of
    the description; the remaining required fields are columns. Each
    missing field costs 16 points; an N/A answer in the description costs
    10 once.

    Vehicle requests are flagged for accountability when a passing pre-trip
    with no failed items, by the same teammate (or either unnamed), was
    filed within the lookback window before the request and the issue was
    not found during a pre-trip.
    """
    g = (config or DEFAULT_CONFIG)['grading']
    description = row.get('description') or ''
    category = AssetCategory.VEHICLE if row.get('vehicle_id') else AssetCategory.EQUIPMENT
    missing = []

    teammate = read_description_field(description, 'Teammate')
    for key in ('Title', 'Teammate', 'Request Date'):
        if not read_description_field(description, key):
            missing.append(key)
    for column, label in _REQUEST_COLUMNS:
        if not _text(row.get(column)):
            missing.append(label)

    grade = _grade(
        row, teammate, missing, has_na_value(description),
        g['requestMissingPenalty'], g['requestNaPenalty'], category,
        {
            'system_affected': row.get('system_affected'),
            'urgency': row.get('urgency'),
            'drivability': row.get('drivability'),
        },
    )

    if category is AssetCategory.VEHICLE and prior_inspections:
        lookback = g['preTripLookbackHours']
        matched = _clean_pre_trip_before(row, teammate, prior_inspections, lookback)
        if matched is not None and _text(row.get('issue_identified_during')) != PRE_TRIP_DURING:
            grade['accountability_flag'] = True
            grade['accountability_reason'] = ACCOUNTABILITY_REASON.format(hours=lookback)
            logger.debug("Request %s flagged against pre-trip %s", row.get('id'), matched.event_id)

    return grade


def grade_to_submission(grade: Dict[str, Any], form_type: str, form_id: str) -> GradedSubmission:
    """Wrap a grade dict as a GradedSubmission event."""
    if grade.get('vehicle_id'):
        asset_id, category = str(grade['vehicle_id']), AssetCategory.VEHICLE
    elif grade.get('equipment_id'):
        asset_id, category = str(grade['equipment_id']), AssetCategory.EQUIPMENT
    else:
        asset_id, category = None, None
    return GradedSubmission(
        event_id=f"{form_type}:{form_id}",
        created_at=grade.get('submitted_at'),
        actor_id=grade.get('submitted_by'),
        asset_id=asset_id,
        asset_category=category,
        form_type=form_type,
        form_id=str(form_id),
        score=grade.get('score', 0),
        is_complete=bool(grade.get('is_complete', True)),
        has_na=bool(grade.get('has_na', False)),
        missing_count=int(grade.get('missing_count', 0)),
        accountability_flag=bool(grade.get('accountability_flag', False)),
        accountability_reason=grade.get('accountability_reason'),
    )
