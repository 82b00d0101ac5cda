"""
Accountability Actions — coaching / warning / recognition records

The one write path of the scoring engine. Managers create an action against
a team member (or a whole role) and later resolve or dismiss it. Each call
is a single statement committed on its own; a failed write is rolled back,
reported and re-raised to the caller with the driver's message. Nothing is
retried.

Usage:
    from govern.accountability_actions import connect, create_action, ActionCreate

    conn = connect()
    row = create_action(conn, ActionCreate(
        created_by='u-1', role_scope='mechanic', action_type='coaching',
        note='Link every log to its request.',
    ))
    transition_action(conn, row['id'], 'resolved')
"""

import logging
import os
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import psycopg2
import psycopg2.errors
from dotenv import load_dotenv
from psycopg2.extras import RealDictCursor
from pydantic import BaseModel, field_validator

from lib.sentry_client import capture_exception, init_sentry

_PKG_ROOT = Path(__file__).resolve().parent.parent
_PROJECT_ROOT = _PKG_ROOT.parent.parent
load_dotenv(_PROJECT_ROOT / '.env')

logger = logging.getLogger(__name__)

_COLUMNS = "id, created_at, created_by, target_user_id, role_scope, action_type, status, note, due_date, resolved_at"

ACTIONS_TABLE_DDL = """
    CREATE TABLE IF NOT EXISTS accountability_actions (
        id              bigserial   PRIMARY KEY,
        created_at      timestamptz NOT NULL DEFAULT NOW(),
        created_by      text        NOT NULL,
        target_user_id  text,
        role_scope      text        NOT NULL DEFAULT 'all'
                        CHECK (role_scope IN ('teammate', 'mechanic', 'all')),
        action_type     text        NOT NULL
                        CHECK (action_type IN ('coaching', 'warning', 'critical', 'recognition')),
        status          text        NOT NULL DEFAULT 'open'
                        CHECK (status IN ('open', 'resolved', 'dismissed')),
        note            text        NOT NULL CHECK (btrim(note) <> ''),
        due_date        date,
        resolved_at     timestamptz
    );

    CREATE INDEX IF NOT EXISTS idx_accountability_actions_target
        ON accountability_actions (target_user_id, status);
"""


class RoleScope(str, Enum):
    TEAMMATE = "teammate"
    MECHANIC = "mechanic"
    ALL = "all"


class ActionType(str, Enum):
    COACHING = "coaching"
    WARNING = "warning"
    CRITICAL = "critical"
    RECOGNITION = "recognition"


class ActionStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ActionWriteError(RuntimeError):
    """A create/transition write failed; the message is the store's own."""


class ActionCreate(BaseModel):
    created_by: str
    target_user_id: Optional[str] = None
    role_scope: RoleScope = RoleScope.ALL
    action_type: ActionType
    note: str
    due_date: Optional[date] = None

    @field_validator('note')
    @classmethod
    def note_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('Action note is required.')
        return value

    @field_validator('created_by')
    @classmethod
    def created_by_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('created_by is required.')
        return value

    @field_validator('target_user_id')
    @classmethod
    def blank_target_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


def connect():
    """Open a store connection from DATABASE_URL and start error reporting."""
    db_url = os.getenv('DATABASE_URL')
    if not db_url:
        raise RuntimeError("DATABASE_URL not configured")
    init_sentry('accountability-actions')
    conn = psycopg2.connect(db_url)
    conn.autocommit = False
    return conn


def ensure_actions_table(conn) -> None:
    """Create the accountability_actions table if it does not exist."""
    try:
        with conn.cursor() as cur:
            cur.execute(ACTIONS_TABLE_DDL)
        conn.commit()
    except psycopg2.Error as exc:
        _fail(conn, exc, 'ensure_actions_table', {})


def _fail(conn, exc: Exception, operation: str, context: Dict[str, Any]):
    """Roll back, report and re-raise a failed write."""
    conn.rollback()
    capture_exception(exc, {'operation': operation, **context})
    logger.error("%s failed: %s", operation, exc, extra=context)
    raise ActionWriteError(str(exc)) from exc


def create_action(conn, payload: ActionCreate) -> Dict[str, Any]:
    """Insert a new open action and return the stored row.

    Raises:
        ActionWriteError: the insert failed (rolled back, not retried)
    """
    params = (
        payload.created_by,
        payload.target_user_id,
        payload.role_scope.value,
        payload.action_type.value,
        ActionStatus.OPEN.value,
        payload.note,
        payload.due_date,
    )
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"""
                INSERT INTO accountability_actions
                    (created_by, target_user_id, role_scope, action_type, status, note, due_date)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING {_COLUMNS}
            """, params)
            row = cur.fetchone()
        conn.commit()
    except psycopg2.Error as exc:
        _fail(conn, exc, 'create_action', {'action_type': payload.action_type.value})

    logger.info("Created %s action %s", payload.action_type.value, row['id'])
    return dict(row)


def transition_action(conn, action_id: int, status, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Resolve or dismiss an open action.

    ``resolved`` stamps ``resolved_at``; ``dismissed`` clears it. Actions
    that are no longer open are left untouched.

    Raises:
        ValueError: ``status`` is not resolved/dismissed
        ActionWriteError: the update failed or the action is not open
    """
    status = ActionStatus(status)
    if status is ActionStatus.OPEN:
        raise ValueError("Actions can only move to resolved or dismissed")
    resolved_at = (now or datetime.now(timezone.utc)) if status is ActionStatus.RESOLVED else None

    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(f"""
                UPDATE accountability_actions
                SET    status = %s, resolved_at = %s
                WHERE  id = %s AND status = %s
                RETURNING {_COLUMNS}
            """, (status.value, resolved_at, action_id, ActionStatus.OPEN.value))
            row = cur.fetchone()
        if row is None:
            conn.rollback()
            raise ActionWriteError(f"Action {action_id} not found or not open")
        conn.commit()
    except psycopg2.Error as exc:
        _fail(conn, exc, 'transition_action', {'action_id': action_id})

    logger.info("Action %s -> %s", action_id, status.value)
    return dict(row)


def list_actions(conn, target_user_id: Optional[str] = None, status=None,
                 limit: int = 300) -> List[Dict[str, Any]]:
    """Actions newest first, optionally for one user and/or status.

    Returns an empty list if the table doesn't exist yet.
    """
    query = f"SELECT {_COLUMNS} FROM accountability_actions WHERE TRUE"
    params: list = []
    if target_user_id:
        query += " AND target_user_id = %s"
        params.append(target_user_id)
    if status is not None:
        query += " AND status = %s"
        params.append(ActionStatus(status).value)
    query += " ORDER BY created_at DESC LIMIT %s"
    params.append(limit)

    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, tuple(params))
            rows = cur.fetchall()
            return [dict(r) for r in rows] if rows else []
    except psycopg2.errors.UndefinedTable:
        conn.rollback()
        return []
