"""
Scoring Engine Configuration

Central configuration for PM status classification, maintenance quality
scoring, accountability leaderboards and asset health composition.
Every dashboard reads its thresholds from here so the due-soon windows,
weights and bands cannot drift between views.
"""

import os
from typing import Dict, Any, Optional


# Default configuration
DEFAULT_CONFIG = {
    # Timezone used for calendar-aligned period buckets (local day/week/...)
    'timezone': os.getenv('SCORING_TIMEZONE', 'America/New_York'),

    # Preventative maintenance intervals, per asset category
    'pm': {
        'vehicle': {
            'interval': 5000,  # miles between services
            'dueSoonFloor': 100,  # minimum due-soon window (miles)
            'unit': 'miles',
        },
        'equipment': {
            'interval': 250,  # operating hours between services
            'dueSoonFloor': 10,  # minimum due-soon window (hours)
            'unit': 'hours',
        },
        'dueSoonFraction': 0.1,  # window = max(floor, interval * fraction)
    },

    # Objective quality penalties for a maintenance log
    'quality': {
        'noLinkedRequest': 6,
        'blankStatus': 10,
        'inProgressStatus': 8,
        'emptyNotes': 8,
        'shortNotes': 8,
        'shortNotesLength': 20,  # notes shorter than this are "short"
        'objectiveWeight': 0.8,
        'selfScoreWeight': 0.2,
    },

    # Composite accountability weights per actor class
    'accountability': {
        'teammate': {
            'score': 0.5,
            'linkage': 0.25,
            'completion': 0.25,
            'flagPenalty': 8,
            'incompletePenalty': 4,
        },
        'mechanic': {
            'score': 0.6,
            'linkage': 0.2,
            'completion': 0.2,
            'flagPenalty': 0,
            'incompletePenalty': 0,
        },
        # Upper bounds (inclusive) of each mechanic band, lowest first
        'bands': [
            (25, 'Intervention'),
            (50, 'Needs Review'),
            (75, 'Operational'),
        ],
        'topBand': 'Good',
    },

    # Per-asset health composition
    'health': {
        'downStatusPenalty': 30,
        'openRequestPenalty': 12,
        'openRequestPenaltyCap': 36,
        'overduePenalty': 20,
        'dueSoonPenalty': 10,
        # (minimum age in years, allowance) - highest threshold met wins
        'legacyAllowance': [(18, 14), (12, 10), (8, 6)],
        'recentLogCount': 6,
        'defaultMechanicScore': 75,
        'operationalWeight': 0.8,
        'mechanicWeight': 0.2,
    },

    # Form grading penalties
    'grading': {
        'inspectionMissingPenalty': 20,
        'inspectionNaPenalty': 12,
        'requestMissingPenalty': 16,
        'requestNaPenalty': 10,
        'preTripLookbackHours': 72,
    },

    # Request SLA windows (hours) by urgency
    'sla': {
        'Urgent': 12,
        'High': 24,
        'default': 48,
        'unacknowledgedHours': 24,
    },
}

# Convenience constants
VEHICLE_PM_INTERVAL = DEFAULT_CONFIG['pm']['vehicle']['interval']
EQUIPMENT_PM_INTERVAL = DEFAULT_CONFIG['pm']['equipment']['interval']
VEHICLE_DUE_SOON_FLOOR = DEFAULT_CONFIG['pm']['vehicle']['dueSoonFloor']
EQUIPMENT_DUE_SOON_FLOOR = DEFAULT_CONFIG['pm']['equipment']['dueSoonFloor']

UNKNOWN_ACTOR = 'Unknown'
UNSPECIFIED_SYSTEM = 'Unspecified'

DOWN_STATUSES = ('Red Tagged', 'Out of Service')
OPEN_REQUEST_STATUSES = ('Open', 'In Progress')
CLOSED_REQUEST_STATUSES = ('Closed', 'Resolved')


def merge_config(user_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge user config with defaults

    Args:
        user_config: User-provided configuration overrides

    Returns:
        Merged configuration dictionary
    """
    if user_config is None:
        user_config = {}

    config = DEFAULT_CONFIG.copy()

    for key, value in user_config.items():
        if key in config and isinstance(config[key], dict) and isinstance(value, dict):
            merged = dict(config[key])
            for sub_key, sub_value in value.items():
                # One more level so e.g. {'pm': {'vehicle': {'interval': 6000}}}
                # keeps the vehicle floor and unit
                if isinstance(merged.get(sub_key), dict) and isinstance(sub_value, dict):
                    merged[sub_key] = {**merged[sub_key], **sub_value}
                else:
                    merged[sub_key] = sub_value
            config[key] = merged
        else:
            config[key] = value

    return config


def get_pm_settings(category: str, config: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Get the PM settings block for an asset category

    Args:
        category: 'vehicle' or 'equipment'
        config: Configuration dictionary (uses DEFAULT_CONFIG if None)

    Returns:
        Dict with interval, dueSoonFloor and unit
    """
    if config is None:
        config = DEFAULT_CONFIG

    try:
        return config['pm'][category]
    except KeyError:
        raise ValueError(f"Unknown asset category: {category!r}")
