from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models.db import SessionLocal
from src.models.notification import Platform, PushToken
from src.models.tables import PushTokenRecord
from src.notifications.errors import PersistenceError
from src.storage.repository import TokenStore
from src.utils.time import utc_now


class SqlTokenRepository(TokenStore):
    """Token store on the ``push_tokens`` table.

    Removal and touch are single targeted statements keyed by token value, so
    two cleanups for the same user never overwrite each other.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self.session_factory = session_factory

    @staticmethod
    def _to_model(row: PushTokenRecord) -> PushToken:
        return PushToken(
            token=row.token,
            platform=Platform(row.platform),
            last_used=row.last_used,
            created_at=row.created_at,
            user_agent=row.user_agent,
        )

    @staticmethod
    def _count(db: Session, user_id: str) -> int:
        return db.execute(
            select(func.count()).select_from(PushTokenRecord).where(PushTokenRecord.user_id == user_id)
        ).scalar_one()

    def register(self, user_id: str, platform: str, token: str, user_agent: str | None = None) -> int:
        platform = Platform(platform).value
        db = self.session_factory()
        try:
            row = db.execute(
                select(PushTokenRecord).where(PushTokenRecord.user_id == user_id, PushTokenRecord.token == token)
            ).scalar_one_or_none()
            now = utc_now()
            if row:
                row.platform = platform
                row.user_agent = user_agent or "Unknown"
                row.last_used = now
            else:
                db.add(
                    PushTokenRecord(
                        user_id=user_id,
                        token=token,
                        platform=platform,
                        user_agent=user_agent or "Unknown",
                        last_used=now,
                        created_at=now,
                    )
                )
            db.commit()
            return self._count(db, user_id)
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Failed to register push token: {exc}") from exc
        finally:
            db.close()

    def unregister(self, user_id: str, token: str) -> int:
        self.remove_tokens(user_id, [token])
        db = self.session_factory()
        try:
            return self._count(db, user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to count push tokens: {exc}") from exc
        finally:
            db.close()

    def find_tokens_by_user_id(self, user_id: str) -> list[PushToken]:
        db = self.session_factory()
        try:
            rows = db.execute(
                select(PushTokenRecord).where(PushTokenRecord.user_id == user_id).order_by(PushTokenRecord.id)
            ).scalars().all()
            return [self._to_model(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to load push tokens: {exc}") from exc
        finally:
            db.close()

    def remove_tokens(self, user_id: str, tokens: Iterable[str]) -> int:
        values = list(set(tokens))
        if not values:
            return 0
        db = self.session_factory()
        try:
            result = db.execute(
                delete(PushTokenRecord).where(
                    PushTokenRecord.user_id == user_id,
                    PushTokenRecord.token.in_(values),
                )
            )
            db.commit()
            return result.rowcount or 0
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Failed to remove push tokens: {exc}") from exc
        finally:
            db.close()

    def touch_last_used(self, user_id: str, tokens: Iterable[str], at: datetime | None = None) -> int:
        values = list(set(tokens))
        if not values:
            return 0
        db = self.session_factory()
        try:
            result = db.execute(
                update(PushTokenRecord)
                .where(PushTokenRecord.user_id == user_id, PushTokenRecord.token.in_(values))
                .values(last_used=at or utc_now())
            )
            db.commit()
            return result.rowcount or 0
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError(f"Failed to update push token timestamps: {exc}") from exc
        finally:
            db.close()
