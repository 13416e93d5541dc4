"""User repository: lookup, lockout bookkeeping, admin CRUD."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func, or_, select, update

from .db import get_session
from .models import User, as_utc, utcnow
from .passwords import hash_password
from .roles import permissions_for, role_label


def _iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def is_locked(user: User, now: datetime | None = None) -> bool:
    until = as_utc(user.locked_until)
    return until is not None and until > (now or utcnow())


def user_to_dict(user: User, *, with_permissions: bool = False) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "full_name": user.full_name,
        "role": user.role,
        "role_label": role_label(user.role),
        "is_active": bool(user.is_active),
        "last_login": _iso(user.last_login),
        "failed_attempts": user.failed_attempts or 0,
        "locked_until": _iso(user.locked_until) if is_locked(user) else None,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at),
    }
    if with_permissions:
        data["permissions"] = sorted(permissions_for(user.role))
    return data


class UserRepo:
    """Users are addressed by id; lookups return detached ORM rows or dicts."""

    def find_for_login(self, identifier: str) -> Optional[User]:
        ident = (identifier or "").strip().lower()
        if not ident:
            return None
        db = get_session()
        try:
            return db.execute(
                select(User).where(or_(func.lower(User.username) == ident, func.lower(User.email) == ident))
            ).scalars().first()
        finally:
            db.close()

    def get(self, user_id: int) -> Optional[User]:
        db = get_session()
        try:
            return db.get(User, user_id)
        finally:
            db.close()

    def get_dict(self, user_id: int, *, with_permissions: bool = False) -> Optional[dict[str, Any]]:
        user = self.get(user_id)
        return user_to_dict(user, with_permissions=with_permissions) if user else None

    def username_taken(self, username: str, exclude_id: int | None = None) -> bool:
        return self._taken(func.lower(User.username) == username.lower(), exclude_id)

    def email_taken(self, email: str, exclude_id: int | None = None) -> bool:
        return self._taken(func.lower(User.email) == email.lower(), exclude_id)

    def _taken(self, cond, exclude_id: int | None) -> bool:
        db = get_session()
        try:
            stmt = select(User.id).where(cond)
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            return db.execute(stmt.limit(1)).first() is not None
        finally:
            db.close()

    def list_users(self, *, search: str | None, page: int, limit: int) -> tuple[list[dict[str, Any]], int]:
        db = get_session()
        try:
            stmt = select(User)
            if search:
                like = f"%{search.lower()}%"
                stmt = stmt.where(
                    or_(
                        func.lower(User.username).like(like),
                        func.lower(User.email).like(like),
                        func.lower(func.coalesce(User.full_name, "")).like(like),
                    )
                )
            total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
            rows = db.execute(
                stmt.order_by(User.created_at.desc(), User.id.desc()).limit(limit).offset((page - 1) * limit)
            ).scalars().all()
            return [user_to_dict(u) for u in rows], int(total)
        finally:
            db.close()

    def list_all(self) -> list[User]:
        db = get_session()
        try:
            return list(db.execute(select(User).order_by(User.id)).scalars().all())
        finally:
            db.close()

    def create_user(
        self,
        *,
        username: str,
        email: str,
        password: str,
        full_name: str | None,
        role: str = "real-estate-agent",
        created_by: int | None = None,
        is_active: bool = True,
    ) -> User:
        db = get_session()
        try:
            user = User(
                username=username.strip().lower(),
                email=email.strip().lower(),
                password_hash=hash_password(password),
                full_name=full_name,
                role=role,
                is_active=is_active,
                failed_attempts=0,
                created_by=created_by,
            )
            db.add(user)
            db.commit()
            db.refresh(user)
            return user
        finally:
            db.close()

    def update_user(self, user_id: int, fields: dict[str, Any]) -> Optional[User]:
        allowed = {"username", "email", "full_name", "role", "is_active"}
        db = get_session()
        try:
            user = db.get(User, user_id)
            if user is None:
                return None
            for key, value in fields.items():
                if key not in allowed:
                    continue
                if key in ("username", "email") and isinstance(value, str):
                    value = value.strip().lower()
                setattr(user, key, value)
            db.commit()
            db.refresh(user)
            return user
        finally:
            db.close()

    def set_password(self, user_id: int, password: str, *, unlock: bool = True) -> bool:
        values: dict[str, Any] = {"password_hash": hash_password(password), "updated_at": utcnow()}
        if unlock:
            values.update(failed_attempts=0, locked_until=None)
        return self._update(user_id, values)

    def record_failed_login(self, user_id: int, *, max_attempts: int, lock_minutes: int) -> tuple[int, datetime | None]:
        """Increment failed_attempts; lock the account once max_attempts is reached."""
        db = get_session()
        try:
            user = db.get(User, user_id)
            if user is None:
                return 0, None
            attempts = (user.failed_attempts or 0) + 1
            user.failed_attempts = attempts
            locked_until = None
            if attempts >= max_attempts:
                locked_until = utcnow() + timedelta(minutes=lock_minutes)
                user.locked_until = locked_until
            db.commit()
            return attempts, locked_until
        finally:
            db.close()

    def record_successful_login(self, user_id: int) -> None:
        self._update(user_id, {"failed_attempts": 0, "locked_until": None, "last_login": utcnow()})

    def unlock(self, user_id: int) -> bool:
        return self._update(user_id, {"failed_attempts": 0, "locked_until": None})

    def unlock_all(self) -> int:
        db = get_session()
        try:
            res = db.execute(
                update(User)
                .where(or_(User.failed_attempts > 0, User.locked_until.is_not(None)))
                .values(failed_attempts=0, locked_until=None)
            )
            db.commit()
            return res.rowcount or 0
        finally:
            db.close()

    def _update(self, user_id: int, values: dict[str, Any]) -> bool:
        db = get_session()
        try:
            res = db.execute(update(User).where(User.id == user_id).values(**values))
            db.commit()
            return (res.rowcount or 0) > 0
        finally:
            db.close()


__all__ = ["UserRepo", "is_locked", "user_to_dict"]
