"""
Actor Registry — resolve display names for mechanics and teammates.

Leaderboards key actors by profile id; this module reads the `profiles`
table once per snapshot so the scoring functions can label rows without
touching the store themselves.

Usage:
    from lib.actor_registry import get_display_names

    names = get_display_names(conn, ['u-1', 'u-2'])
    # {'u-1': 'Dana Reyes', 'u-2': 'ops@example.com'}
"""

import logging
from typing import Dict, Iterable, List, Optional

import psycopg2
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)


def display_name(profile: Dict) -> str:
    """Full name, else email, else the profile id."""
    for key in ('full_name', 'email'):
        value = (profile.get(key) or '').strip()
        if value:
            return value
    return str(profile.get('id'))


def get_display_names(conn, actor_ids: Iterable[str]) -> Dict[str, str]:
    """Map profile ids to display names.

    Ids without a profile are omitted; callers fall back to the raw id.
    Returns an empty mapping if the profiles table doesn't exist yet.
    """
    ids = sorted({a for a in actor_ids if isinstance(a, str) and a})
    if not ids:
        return {}
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute("""
                SELECT id, full_name, email
                FROM   profiles
                WHERE  id = ANY(%s)
            """, (ids,))
            rows = cur.fetchall() or []
    except psycopg2.errors.UndefinedTable:
        conn.rollback()
        logger.warning("profiles table missing; using raw actor ids")
        return {}
    return {str(r['id']): display_name(r) for r in rows}


def get_active_profiles(conn, role: Optional[str] = None) -> List[Dict]:
    """Active profiles ordered by name, optionally limited to one role."""
    query = """
        SELECT id, full_name, email, role
        FROM   profiles
        WHERE  status = 'Active'
    """
    params: tuple = ()
    if role:
        query += " AND role = %s"
        params = (role,)
    query += " ORDER BY full_name"
    try:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
            return [dict(r) for r in rows] if rows else []
    except psycopg2.errors.UndefinedTable:
        conn.rollback()
        return []
