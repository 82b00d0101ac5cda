"""
Scoreboard Export — board rows as display-ready DataFrames

Converts the dict rows produced by the analyze stage into pandas DataFrames
with display column headers, and renders them as CSV text. The presentation
layer owns files and downloads; nothing here touches the filesystem.

Usage:
    from deliver.scoreboard_export import pm_board_frame, frame_to_csv

    csv_text = frame_to_csv(pm_board_frame(build_pm_board(assets, records)))
"""

from enum import Enum
from typing import Any, Dict, Iterable, List

import pandas as pd

PM_BOARD_COLUMNS = {
    'rank': 'Rank',
    'asset_name': 'Asset',
    'asset_category': 'Type',
    'status': 'Status',
    'current_usage': 'Current',
    'last_service_usage': 'Last Service',
    'due_at': 'Due At',
    'overdue_amount': 'Overdue By',
    'remaining': 'Remaining',
    'unit': 'Unit',
}

SCOREBOARD_COLUMNS = {
    'display_name': 'Name',
    'event_count': 'Events',
    'avg_score': 'Avg Score',
    'linkage_rate': 'Linkage %',
    'completion_rate': 'Completion %',
    'flags': 'Flags',
    'incomplete': 'Incomplete',
    'accountability_score': 'Accountability',
    'band': 'Band',
}

ASSET_HEALTH_COLUMNS = {
    'asset_name': 'Asset',
    'asset_category': 'Type',
    'pm_status': 'PM Status',
    'operational_score': 'Operational',
    'mechanic_score': 'Mechanic',
    'open_requests': 'Open Requests',
    'health_score': 'Health',
}


def _plain(value):
    return value.value if isinstance(value, Enum) else value


def _frame(rows: Iterable[Dict[str, Any]], columns: Dict[str, str]) -> pd.DataFrame:
    records: List[Dict[str, Any]] = [
        {key: _plain(row.get(key)) for key in columns}
        for row in rows or []
    ]
    df = pd.DataFrame(records, columns=list(columns))
    return df.rename(columns=columns)


def pm_board_frame(rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """PM board rows in rank order with display headers."""
    return _frame(rows, PM_BOARD_COLUMNS)


def scoreboard_frame(rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    return _frame(rows, SCOREBOARD_COLUMNS)


def asset_health_frame(rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """Asset health summaries; unknown PM status renders as ``Unknown``."""
    df = _frame(rows, ASSET_HEALTH_COLUMNS)
    df['PM Status'] = df['PM Status'].fillna('Unknown')
    return df


def frame_to_csv(df: pd.DataFrame) -> str:
    return df.to_csv(index=False)
