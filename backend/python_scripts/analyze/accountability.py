"""
Accountability Scoreboards — per-actor rollups for teammates and mechanics

Groups scored events by actor within a period and produces the leaderboard
rows the form-reports and ops dashboards render:

  * **Mechanics** — maintenance logs: average log quality, request linkage
    and closure rates, composite score and band.
  * **Teammates** — graded form submissions plus inspections: average form
    score, on-time inspection rate, failed-item linkage rate, with penalties
    for accountability flags and incomplete forms.

Events without an actor land in the ``Unknown`` bucket, which is always
kept. Every call recomputes from the snapshot it is given.

Usage:
    from analyze.accountability import mechanic_scoreboard, sort_leaderboard

    rows = mechanic_scoreboard(logs, period='monthly', reference_time=now,
                               display_names=names)
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from config.scoring_config import DEFAULT_CONFIG, UNKNOWN_ACTOR
from analyze.events import (
    EventKind,
    GradedSubmission,
    Inspection,
    Log,
    actor_key,
    aggregate_events,
    parse_inspection_checklist,
)
from analyze.quality import log_quality_score
from lib.date_utils import UNKNOWN_BUCKET, local_date_string, week_bucket_key
from lib.stats_utils import clamp_percent, mean_score, rate_percent, round_half_up

logger = logging.getLogger(__name__)


class ActorClass(str, Enum):
    TEAMMATE = "teammate"
    MECHANIC = "mechanic"


ACTOR_WEIGHTS = {
    ActorClass.TEAMMATE: DEFAULT_CONFIG['accountability']['teammate'],
    ActorClass.MECHANIC: DEFAULT_CONFIG['accountability']['mechanic'],
}

CLOSED_LOG_STATUS = 'Closed'


# ═══════════════════════════════════════════════════════════════════════
# Scoring primitives
# ═══════════════════════════════════════════════════════════════════════

def composite_score(avg_score: float, linkage_rate: float, completion_rate: float,
                    flags: int = 0, incomplete: int = 0,
                    actor_class=ActorClass.TEAMMATE,
                    config: Dict[str, Any] = None) -> int:
    """Weighted accountability score for one actor, clamped to 0-100."""
    actor_class = ActorClass(actor_class)
    if config is None:
        weights = ACTOR_WEIGHTS[actor_class]
    else:
        weights = config['accountability'][actor_class.value]
    return clamp_percent(
        avg_score * weights['score']
        + linkage_rate * weights['linkage']
        + completion_rate * weights['completion']
        - flags * weights['flagPenalty']
        - incomplete * weights['incompletePenalty']
    )


def mechanic_band(score: float, config: Dict[str, Any] = None) -> str:
    """Qualitative band; each upper bound belongs to the lower band."""
    acc = (config or DEFAULT_CONFIG)['accountability']
    for upper, label in acc['bands']:
        if score <= upper:
            return label
    return acc['topBand']


def _display(actor_id: str, display_names: Optional[Dict[str, str]]) -> str:
    if actor_id == UNKNOWN_ACTOR:
        return UNKNOWN_ACTOR
    return (display_names or {}).get(actor_id) or actor_id


def sort_leaderboard(rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Highest score first, then most events, then display name A-Z."""
    return sorted(
        rows,
        key=lambda r: (-r['accountability_score'], -r['event_count'], str(r['display_name'])),
    )


# ═══════════════════════════════════════════════════════════════════════
# Mechanics
# ═══════════════════════════════════════════════════════════════════════

def mechanic_scoreboard(logs: Iterable[Log], period: Optional[str] = None,
                        reference_time=None,
                        display_names: Optional[Dict[str, str]] = None,
                        config: Dict[str, Any] = None, tz=None) -> List[Dict[str, Any]]:
    """Leaderboard of mechanics from their maintenance logs in the period.

    Args:
        logs: Log events (other kinds are ignored)
        period: daily/weekly/monthly/quarterly/yearly, or None for all time
        reference_time: anchor for the period window (defaults to now)
        display_names: optional actor id -> display name mapping

    Returns:
        Sorted rows with avg_score, linkage_rate, completion_rate (share of
        logs marked Closed), accountability_score and band.
    """
    kept = aggregate_events(list(logs or []), period=period, reference_time=reference_time,
                            kinds=[EventKind.LOG], tz=tz)['events']

    grouped: Dict[str, Dict[str, Any]] = {}
    for log in kept:
        entry = grouped.setdefault(actor_key(log), {'scores': [], 'linked': 0, 'closed': 0})
        entry['scores'].append(log_quality_score(log, config))
        if log.has_linked_request:
            entry['linked'] += 1
        if log.status_text == CLOSED_LOG_STATUS:
            entry['closed'] += 1

    rows = []
    for actor_id, entry in grouped.items():
        count = len(entry['scores'])
        avg = mean_score(entry['scores'])
        linkage = rate_percent(entry['linked'], count)
        closure = rate_percent(entry['closed'], count)
        score = composite_score(avg, linkage, closure, actor_class=ActorClass.MECHANIC, config=config)
        rows.append({
            'actor_id': actor_id,
            'display_name': _display(actor_id, display_names),
            'event_count': count,
            'avg_score': avg,
            'linkage_rate': linkage,
            'completion_rate': closure,
            'flags': 0,
            'incomplete': 0,
            'accountability_score': score,
            'band': mechanic_band(score, config),
        })

    logger.debug("Mechanic scoreboard: %d actors from %d logs", len(rows), len(kept))
    return sort_leaderboard(rows)


# ═══════════════════════════════════════════════════════════════════════
# Teammates
# ═══════════════════════════════════════════════════════════════════════

def _teammate_entry() -> Dict[str, Any]:
    return {
        'forms': 0, 'scores': [], 'flags': 0, 'incomplete': 0,
        'inspections': 0, 'on_time': 0, 'fail_count': 0, 'linked_fail_count': 0,
    }


def teammate_scoreboard(submissions: Iterable[GradedSubmission],
                        inspections: Iterable[Inspection] = (),
                        period: Optional[str] = None, reference_time=None,
                        display_names: Optional[Dict[str, str]] = None,
                        config: Dict[str, Any] = None, tz=None) -> List[Dict[str, Any]]:
    """Leaderboard of teammates from graded forms and their inspections.

    Graded submissions supply the average score, flags and incomplete
    counts. Inspections supply the on-time rate (inspection date equals the
    local submission date) and the fail-link rate (failed items linked to a
    request), which stand in for completion and linkage.
    """
    period_grades = aggregate_events(list(submissions or []), period=period,
                                     reference_time=reference_time,
                                     kinds=[EventKind.GRADED_SUBMISSION], tz=tz)['events']
    period_inspections = aggregate_events(list(inspections or []), period=period,
                                          reference_time=reference_time,
                                          kinds=[EventKind.INSPECTION], tz=tz)['events']

    grouped: Dict[str, Dict[str, Any]] = {}
    for grade in period_grades:
        entry = grouped.setdefault(actor_key(grade), _teammate_entry())
        entry['forms'] += 1
        entry['scores'].append(grade.score)
        if grade.accountability_flag:
            entry['flags'] += 1
        if not grade.is_complete:
            entry['incomplete'] += 1

    for inspection in period_inspections:
        meta = parse_inspection_checklist(inspection.checklist)
        entry = grouped.setdefault(meta['employee'] or UNKNOWN_ACTOR, _teammate_entry())
        entry['inspections'] += 1
        if meta['inspection_date'] and local_date_string(inspection.created_at, tz) == meta['inspection_date']:
            entry['on_time'] += 1
        entry['fail_count'] += meta['fail_count']
        entry['linked_fail_count'] += meta['linked_fail_count']

    rows = []
    for actor_id, entry in grouped.items():
        avg = mean_score(entry['scores'])
        on_time = rate_percent(entry['on_time'], entry['inspections'])
        fail_link = rate_percent(entry['linked_fail_count'], entry['fail_count'])
        score = composite_score(avg, fail_link, on_time, entry['flags'], entry['incomplete'],
                                ActorClass.TEAMMATE, config)
        rows.append({
            'actor_id': actor_id,
            'display_name': _display(actor_id, display_names),
            'event_count': entry['forms'],
            'inspections': entry['inspections'],
            'avg_score': avg,
            'linkage_rate': fail_link,
            'completion_rate': on_time,
            'flags': entry['flags'],
            'incomplete': entry['incomplete'],
            'accountability_score': score,
            'band': mechanic_band(score, config),
        })

    return sort_leaderboard(rows)


# ═══════════════════════════════════════════════════════════════════════
# Summaries & trends
# ═══════════════════════════════════════════════════════════════════════

def submission_summary(submissions: Iterable[GradedSubmission], period: Optional[str] = None,
                       reference_time=None, tz=None) -> Dict[str, Any]:
    """Headline numbers for graded forms in the period."""
    kept = aggregate_events(list(submissions or []), period=period, reference_time=reference_time,
                            kinds=[EventKind.GRADED_SUBMISSION], tz=tz)['events']
    return {
        'submissions': len(kept),
        'avg_score': mean_score(g.score for g in kept),
        'flags': sum(1 for g in kept if g.accountability_flag),
        'incomplete': sum(1 for g in kept if not g.is_complete),
        'with_na': sum(1 for g in kept if g.has_na),
    }


def actor_trend(logs: Iterable[Log], actor_id: Optional[str] = None,
                config: Dict[str, Any] = None, tz=None) -> List[Dict[str, Any]]:
    """Weekly average log quality per mechanic, oldest week first.

    Logs with unparsable timestamps fall in the Unknown week and are not
    charted.
    """
    records = [
        {
            'actor_id': actor_key(log),
            'week': week_bucket_key(log.created_at, tz),
            'score': log_quality_score(log, config),
        }
        for log in logs or []
        if isinstance(log, Log)
    ]
    if not records:
        return []

    df = pd.DataFrame(records)
    df = df[df['week'] != UNKNOWN_BUCKET]
    if actor_id is not None:
        df = df[df['actor_id'] == actor_id]
    if df.empty:
        return []

    weekly = (
        df.groupby(['actor_id', 'week'])
          .agg(avg_score=('score', 'mean'), event_count=('score', 'size'))
          .reset_index()
          .sort_values(['actor_id', 'week'])
    )
    return [
        {
            'actor_id': row.actor_id,
            'week': row.week,
            'avg_score': round_half_up(row.avg_score),
            'event_count': int(row.event_count),
        }
        for row in weekly.itertuples(index=False)
    ]
