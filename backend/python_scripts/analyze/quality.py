"""
Maintenance Quality Scoring

Turns one maintenance log into a 0-100 objective quality score using fixed
penalties, optionally blended with the mechanic's self-reported score.

Usage:
    from analyze.quality import quality_score, log_quality_score

    quality_score(has_linked_request=False, status_text='', note_length=0)
    # 76
"""

from typing import Any, Dict

from config.scoring_config import DEFAULT_CONFIG
from analyze.events import Log
from lib.stats_utils import clamp_percent, to_number


def objective_quality_score(has_linked_request: bool, status_text: str, note_length: int,
                            config: Dict[str, Any] = None) -> int:
    """Score from 100 down, with every applicable penalty stacking.

    A blank status and "In Progress" are exclusive; so are empty notes and
    short notes.
    """
    q = (config or DEFAULT_CONFIG)['quality']
    score = 100

    if not has_linked_request:
        score -= q['noLinkedRequest']

    status = (status_text or '').strip()
    if not status:
        score -= q['blankStatus']
    elif status == 'In Progress':
        score -= q['inProgressStatus']

    note_length = max(0, int(note_length or 0))
    if note_length == 0:
        score -= q['emptyNotes']
    elif note_length < q['shortNotesLength']:
        score -= q['shortNotes']

    return clamp_percent(score)


def blend_self_score(objective: float, self_reported=None, config: Dict[str, Any] = None) -> int:
    """Blend a self-reported score into the objective one.

    Ignored unless it is a finite number; out-of-range values are clamped
    before weighting.
    """
    q = (config or DEFAULT_CONFIG)['quality']
    self_score = to_number(self_reported)
    if self_score is None:
        return clamp_percent(objective)
    return clamp_percent(
        objective * q['objectiveWeight'] + clamp_percent(self_score) * q['selfScoreWeight']
    )


def quality_score(has_linked_request: bool, status_text: str, note_length: int,
                  self_reported_score=None, config: Dict[str, Any] = None) -> int:
    objective = objective_quality_score(has_linked_request, status_text, note_length, config)
    return blend_self_score(objective, self_reported_score, config)


def log_quality_score(log: Log, config: Dict[str, Any] = None) -> int:
    """Final quality score for a maintenance log event."""
    return quality_score(
        log.has_linked_request,
        log.status_text,
        log.note_length,
        log.self_score,
        config,
    )
