"""
User Repository.

Identity store: all account data access against the ``users`` table.
Every statement runs under the shared connection lock.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Optional

from travelgate.database import DatabaseManager
from travelgate.logger import StructuredLogger
from travelgate.models.enums import UserRole
from travelgate.models.user import User, UserCreate
from travelgate.repositories.base_repository import BaseRepository

# Columns an update may touch; guards against building SQL from arbitrary keys.
_UPDATABLE_COLUMNS: frozenset[str] = frozenset({
    "email",
    "first_name",
    "last_name",
    "role",
    "is_active",
    "password_hash",
})


class UserRepository(BaseRepository):
    """Data access layer for User entities.

    Prefer :meth:`deactivate` to revoke access.  :meth:`hard_delete` is
    refused by the store (``sqlite3.IntegrityError``) while any travel
    request still references the user.
    """

    TABLE = "users"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> Optional[User]:
        with self._db.lock:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (user_id,)
            ).fetchone()
        return User(**dict(row)) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email address (exact match on the trimmed value)."""
        with self._db.lock:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE email = ?", (email.strip(),)
            ).fetchone()
        return User(**dict(row)) if row else None

    def email_exists(self, email: str, exclude_id: Optional[str] = None) -> bool:
        """``True`` when another account already uses *email*."""
        sql = f"SELECT 1 FROM {self.TABLE} WHERE email = ?"
        params: list[str] = [email.strip()]
        if exclude_id is not None:
            sql += " AND id <> ?"
            params.append(exclude_id)
        with self._db.lock:
            return self.sqlite.execute(sql, params).fetchone() is not None

    def list_users(
        self,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
    ) -> list[User]:
        """Return users, newest first, optionally filtered by role and activity."""
        clauses: list[str] = []
        params: list[object] = []
        if role is not None:
            clauses.append("role = ?")
            params.append(str(role))
        if is_active is not None:
            clauses.append("is_active = ?")
            params.append(int(is_active))

        sql = f"SELECT * FROM {self.TABLE}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC"

        with self._db.lock:
            rows = self.sqlite.execute(sql, params).fetchall()
        return [User(**dict(row)) for row in rows]

    def list_active_by_roles(self, roles: Iterable[UserRole]) -> list[User]:
        """Active users holding any of *roles*, sorted by name."""
        role_values = [str(r) for r in roles]
        if not role_values:
            return []
        placeholders = ", ".join("?" for _ in role_values)
        with self._db.lock:
            rows = self.sqlite.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE is_active = 1 AND role IN ({placeholders})
                ORDER BY first_name, last_name
                """,
                role_values,
            ).fetchall()
        return [User(**dict(row)) for row in rows]

    def count_by_role_and_activity(self) -> list[tuple[UserRole, bool, int]]:
        """Return ``(role, is_active, count)`` for every populated group."""
        with self._db.lock:
            rows = self.sqlite.execute(
                f"""
                SELECT role, is_active, COUNT(*) AS cnt
                FROM {self.TABLE}
                GROUP BY role, is_active
                """
            ).fetchall()
        return [(UserRole(row["role"]), bool(row["is_active"]), int(row["cnt"])) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, data: UserCreate) -> User:
        """Insert a new account.

        Raises:
            sqlite3.IntegrityError: If the email is already taken.
        """
        user_id = self._new_id()
        now = self._now()
        with self._db.lock:
            try:
                self.sqlite.execute(
                    f"""
                    INSERT INTO {self.TABLE}
                        (id, email, password_hash, first_name, last_name,
                         role, is_active, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                    """,
                    (
                        user_id,
                        data.email.strip(),
                        data.password_hash,
                        data.first_name.strip(),
                        data.last_name.strip(),
                        str(data.role),
                        now,
                        now,
                    ),
                )
                self._commit()
            except Exception:
                self._rollback()
                raise
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (user_id,)
            ).fetchone()
        self._logger.info("Created user %s with role %s.", user_id, data.role)
        return User(**dict(row))

    def update(self, user_id: str, fields: dict[str, object]) -> Optional[User]:
        """Apply *fields* to the user and bump ``updated_at``.

        Returns the updated user, or ``None`` when it does not exist.
        Unknown column names are ignored.

        Raises:
            sqlite3.IntegrityError: If a new email collides with another account.
        """
        assignments = {k: v for k, v in fields.items() if k in _UPDATABLE_COLUMNS}
        if not assignments:
            return self.get_by_id(user_id)

        set_clause = ", ".join(f"{column} = ?" for column in assignments)
        params = [self._to_sql(v) for v in assignments.values()]
        params.extend([self._now(), user_id])

        with self._db.lock:
            try:
                cursor = self.sqlite.execute(
                    f"UPDATE {self.TABLE} SET {set_clause}, updated_at = ? WHERE id = ?",
                    params,
                )
                self._commit()
            except Exception:
                self._rollback()
                raise
            if cursor.rowcount == 0:
                return None
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (user_id,)
            ).fetchone()
        return User(**dict(row)) if row else None

    def deactivate(self, user_id: str) -> Optional[User]:
        """Soft-delete: revoke access while keeping every reference intact."""
        return self.update(user_id, {"is_active": False})

    def hard_delete(self, user_id: str) -> bool:
        """Remove the account row.  Returns ``False`` when nothing was deleted.

        Raises:
            sqlite3.IntegrityError: While travel requests reference the user.
        """
        with self._db.lock:
            try:
                cursor = self.sqlite.execute(
                    f"DELETE FROM {self.TABLE} WHERE id = ?", (user_id,)
                )
                self._commit()
            except Exception:
                self._rollback()
                raise
            return cursor.rowcount > 0
