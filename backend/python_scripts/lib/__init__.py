"""
Utility libraries for the scoring engine
"""

from .actor_registry import (
    display_name,
    get_display_names,
    get_active_profiles,
)

from .logging_config import (
    configure_logging,
    get_logger,
)

from .stats_utils import (
    round_half_up,
    to_number,
    is_valid_counter,
    clamp_percent,
    rate_percent,
    mean_score,
)

from .date_utils import (
    PERIODS,
    UNKNOWN_BUCKET,
    parse_timestamp,
    to_local,
    period_start,
    period_end,
    in_period,
    in_date_range,
    week_bucket_key,
    days_between,
    hours_between,
    local_date_string,
)

__all__ = [
    # actor_registry
    'display_name',
    'get_display_names',
    'get_active_profiles',
    # logging_config
    'configure_logging',
    'get_logger',
    # stats_utils
    'round_half_up',
    'to_number',
    'is_valid_counter',
    'clamp_percent',
    'rate_percent',
    'mean_score',
    # date_utils
    'PERIODS',
    'UNKNOWN_BUCKET',
    'parse_timestamp',
    'to_local',
    'period_start',
    'period_end',
    'in_period',
    'in_date_range',
    'week_bucket_key',
    'days_between',
    'hours_between',
    'local_date_string',
]
