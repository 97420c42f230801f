"""Persistence for OTP records.

All writes commit immediately so that each operation is its own atomic unit.
The attempt counter and the verified flag are changed with single conditional
UPDATE statements (increment-and-fetch, compare-and-set) rather than a
read-modify-write in Python, so concurrent verifications against one record
cannot both succeed or push the counter past the ceiling. Their results are
copied onto the loaded instance as committed state, never as pending changes.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value
from sqlmodel import select

from creativehub.exceptions import StoreUnavailable
from creativehub.models import OtpPurpose, OtpRecord
from creativehub.services.otp import Clock, OtpPolicy, mask_email, utc_clock

logger = logging.getLogger(__name__)


class OtpStore:
    """Keyed storage for OTP records backed by an async SQL session."""

    def __init__(self, session: AsyncSession, clock: Clock = utc_clock) -> None:
        self.session = session
        self.clock = clock

    @asynccontextmanager
    async def _guard(self, action: str) -> AsyncGenerator[None, None]:
        """Translate driver and connection failures into ``StoreUnavailable``."""
        try:
            yield
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"OTP store failed to {action}: {e!r}", exc_info=True)
            try:
                await self.session.rollback()
            except (SQLAlchemyError, OSError):
                logger.debug("Rollback after store failure also failed")
            raise StoreUnavailable() from e

    async def create(
        self,
        subject_email: str,
        code: str,
        purpose: OtpPurpose | None,
    ) -> OtpRecord:
        """Replace every record for ``subject_email`` with a fresh one."""
        async with self._guard("create record"):
            await self.session.execute(
                delete(OtpRecord).where(OtpRecord.subject_email == subject_email)  # type: ignore[arg-type]
            )
            record = OtpRecord(
                subject_email=subject_email,
                code=code,
                purpose=purpose,
                attempts=0,
                verified=False,
                created_at=self.clock(),
            )
            self.session.add(record)
            await self.session.commit()

        logger.debug(f"Created {purpose.value if purpose else 'legacy'} OTP for {mask_email(subject_email)}")
        return record

    async def find_latest(
        self,
        subject_email: str,
        verified: bool | None = None,
    ) -> OtpRecord | None:
        """Most recently created record for the email, optionally filtered."""
        stmt = select(OtpRecord).where(OtpRecord.subject_email == subject_email)
        if verified is not None:
            stmt = stmt.where(OtpRecord.verified == verified)
        stmt = stmt.order_by(OtpRecord.created_at.desc()).limit(1)  # type: ignore[attr-defined]

        async with self._guard("look up record"):
            result = await self.session.execute(stmt)
            return result.scalars().first()

    async def record_failed_attempt(self, record: OtpRecord, max_attempts: int) -> int | None:
        """Atomically increment ``attempts`` while it is under ``max_attempts``.

        Returns the new count, or None when the record is gone, already
        verified, or already at the ceiling.
        """
        stmt = (
            update(OtpRecord)
            .where(OtpRecord.id == record.id)  # type: ignore[arg-type]
            .where(OtpRecord.verified.is_(False))  # type: ignore[attr-defined]
            .where(OtpRecord.attempts < max_attempts)  # type: ignore[arg-type]
            .values(attempts=OtpRecord.attempts + 1)
            .returning(OtpRecord.attempts)
            .execution_options(synchronize_session=False)
        )
        async with self._guard("record failed attempt"):
            result = await self.session.execute(stmt)
            attempts = result.scalar_one_or_none()
            await self.session.commit()

        if attempts is not None:
            set_committed_value(record, "attempts", attempts)
        return attempts

    async def mark_verified(self, record: OtpRecord, max_attempts: int | None = None) -> bool:
        """Flip ``verified`` from false to true; only one caller can win.

        Callers must still delete the record to finish its lifecycle.
        """
        stmt = (
            update(OtpRecord)
            .where(OtpRecord.id == record.id)  # type: ignore[arg-type]
            .where(OtpRecord.verified.is_(False))  # type: ignore[attr-defined]
        )
        if max_attempts is not None:
            stmt = stmt.where(OtpRecord.attempts < max_attempts)  # type: ignore[arg-type]
        stmt = stmt.values(verified=True).execution_options(synchronize_session=False)

        async with self._guard("mark record verified"):
            result = await self.session.execute(stmt)
            await self.session.commit()

        won = result.rowcount == 1  # type: ignore[attr-defined]
        if won:
            set_committed_value(record, "verified", True)
        return won

    async def consume(self, record: OtpRecord, max_attempts: int) -> bool:
        """Mark the record verified and delete it. False if another request won."""
        if not await self.mark_verified(record, max_attempts):
            return False
        await self.delete(record)
        return True

    async def delete(self, record: OtpRecord) -> None:
        async with self._guard("delete record"):
            if record in self.session:
                self.session.expunge(record)
            await self.session.execute(
                delete(OtpRecord)
                .where(OtpRecord.id == record.id)  # type: ignore[arg-type]
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()

    async def delete_for_email(self, subject_email: str) -> int:
        """Remove every record for an email; returns how many were deleted."""
        async with self._guard("delete records"):
            result = await self.session.execute(
                delete(OtpRecord)
                .where(OtpRecord.subject_email == subject_email)  # type: ignore[arg-type]
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        return result.rowcount or 0  # type: ignore[attr-defined]

    async def purge_expired(self, policy: OtpPolicy) -> int:
        """Delete records whose validity window has closed."""
        cutoff = self.clock() - timedelta(seconds=policy.expiry_seconds)
        async with self._guard("purge expired records"):
            result = await self.session.execute(
                delete(OtpRecord)
                .where(OtpRecord.created_at < cutoff)  # type: ignore[arg-type]
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        return result.rowcount or 0  # type: ignore[attr-defined]
