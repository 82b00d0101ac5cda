"""
Configuration for the scoring engine
"""

from .scoring_config import (
    DEFAULT_CONFIG,
    merge_config,
    get_pm_settings,
    # PM constants
    VEHICLE_PM_INTERVAL,
    EQUIPMENT_PM_INTERVAL,
    VEHICLE_DUE_SOON_FLOOR,
    EQUIPMENT_DUE_SOON_FLOOR,
    # Sentinels and status vocabularies
    UNKNOWN_ACTOR,
    UNSPECIFIED_SYSTEM,
    DOWN_STATUSES,
    OPEN_REQUEST_STATUSES,
    CLOSED_REQUEST_STATUSES,
)

__all__ = [
    'DEFAULT_CONFIG',
    'merge_config',
    'get_pm_settings',
    'VEHICLE_PM_INTERVAL',
    'EQUIPMENT_PM_INTERVAL',
    'VEHICLE_DUE_SOON_FLOOR',
    'EQUIPMENT_DUE_SOON_FLOOR',
    'UNKNOWN_ACTOR',
    'UNSPECIFIED_SYSTEM',
    'DOWN_STATUSES',
    'OPEN_REQUEST_STATUSES',
    'CLOSED_REQUEST_STATUSES',
]
