# database.py
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

import config

# columns a profile update may touch
UPDATABLE_COLUMNS = (
    "username", "first_name", "last_name", "email", "password",
    "role", "preferences", "bio", "picture",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dict_factory(cursor, row) -> Dict:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def get_conn():
    conn = sqlite3.connect(config.DATABASE_FILE, check_same_thread=False)
    conn.row_factory = _dict_factory
    return conn


def init_db():
    """Create the users and secrets tables if they don't exist. Call this once at app startup."""
    conn = get_conn()
    c = conn.cursor()
    c.execute("""
        CREATE TABLE IF NOT EXISTS users (
            user_id TEXT PRIMARY KEY,
            username TEXT NOT NULL UNIQUE,
            first_name TEXT NOT NULL,
            last_name TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            role TEXT NOT NULL,
            preferences TEXT,
            bio TEXT,
            picture TEXT,
            access_token TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL
        )
    """)
    c.execute("""
        CREATE TABLE IF NOT EXISTS secrets (
            secret_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            message TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """)
    conn.commit()
    conn.close()


def create_user(username: str, first_name: str, last_name: str, email: str,
                password: str, role: str, access_token: str,
                preferences: str = None, bio: str = None) -> Dict:
    """
    Insert a new user and return the stored row.
    'password' must already be hashed; 'preferences' is a comma-separated string,
    e.g. "react,node,python". Raises sqlite3.IntegrityError on a taken username/email.
    """
    user_id = uuid.uuid4().hex
    conn = get_conn()
    try:
        c = conn.cursor()
        c.execute("""
            INSERT INTO users (user_id, username, first_name, last_name, email, password,
                               role, preferences, bio, access_token, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (user_id, username, first_name, last_name, email, password,
              role, preferences, bio, access_token, _now()))
        conn.commit()
        c.execute("SELECT * FROM users WHERE user_id = ?", (user_id,))
        return c.fetchone()
    finally:
        conn.close()


def _get_user_by(column: str, value: str) -> Optional[Dict]:
    conn = get_conn()
    c = conn.cursor()
    c.execute(f"SELECT * FROM users WHERE {column} = ?", (value,))
    row = c.fetchone()
    conn.close()
    return row


def get_user(user_id: str) -> Optional[Dict]:
    """Return the user row as a dict or None"""
    return _get_user_by("user_id", user_id)


def get_user_by_username(username: str) -> Optional[Dict]:
    return _get_user_by("username", username)


def get_user_by_token(access_token: str) -> Optional[Dict]:
    if not access_token:
        return None
    return _get_user_by("access_token", access_token)


def update_user(user_id: str, fields: Dict) -> Optional[Dict]:
    """
    Apply a partial update and return the updated row, or None if the user doesn't exist.
    Keys outside UPDATABLE_COLUMNS are ignored.
    """
    changes = {k: v for k, v in fields.items() if k in UPDATABLE_COLUMNS}
    conn = get_conn()
    try:
        c = conn.cursor()
        if changes:
            assignments = ", ".join(f"{col} = ?" for col in changes)
            c.execute(f"UPDATE users SET {assignments} WHERE user_id = ?",
                      (*changes.values(), user_id))
            conn.commit()
        c.execute("SELECT * FROM users WHERE user_id = ?", (user_id,))
        return c.fetchone()
    finally:
        conn.close()


def delete_user(user_id: str) -> Optional[Dict]:
    """Delete a user together with their secrets. Returns the deleted row or None."""
    conn = get_conn()
    try:
        c = conn.cursor()
        c.execute("SELECT * FROM users WHERE user_id = ?", (user_id,))
        row = c.fetchone()
        if row:
            c.execute("DELETE FROM secrets WHERE user_id = ?", (user_id,))
            c.execute("DELETE FROM users WHERE user_id = ?", (user_id,))
            conn.commit()
        return row
    finally:
        conn.close()


def get_all_users(role: str = None) -> List[Dict]:
    """Return all users in insertion order, optionally restricted to one role"""
    conn = get_conn()
    c = conn.cursor()
    if role:
        c.execute("SELECT * FROM users WHERE role = ? ORDER BY rowid", (role,))
    else:
        c.execute("SELECT * FROM users ORDER BY rowid")
    rows = c.fetchall()
    conn.close()
    return rows


def get_all_preferences() -> List[str]:
    """Raw preference strings of every user that has any"""
    conn = get_conn()
    c = conn.cursor()
    c.execute("SELECT preferences FROM users WHERE preferences IS NOT NULL ORDER BY rowid")
    rows = [r["preferences"] for r in c.fetchall()]
    conn.close()
    return rows


def add_secret(user_id: str, message: str) -> Dict:
    conn = get_conn()
    try:
        c = conn.cursor()
        c.execute("INSERT INTO secrets (user_id, message, created_at) VALUES (?, ?, ?)",
                  (user_id, message, _now()))
        conn.commit()
        c.execute("SELECT * FROM secrets WHERE secret_id = ?", (c.lastrowid,))
        return c.fetchone()
    finally:
        conn.close()


def get_secrets(user_id: str, limit: int = 20) -> List[Dict]:
    """Return the user's newest secrets first"""
    conn = get_conn()
    c = conn.cursor()
    c.execute("""
        SELECT * FROM secrets WHERE user_id = ?
        ORDER BY created_at DESC, secret_id DESC LIMIT ?
    """, (user_id, limit))
    rows = c.fetchall()
    conn.close()
    return rows
