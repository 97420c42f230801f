"""Account lookup and provisioning."""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from creativehub.exceptions import StoreUnavailable, ValidationError
from creativehub.models import Privilege, User
from creativehub.services.otp import mask_email, normalize_email

logger = logging.getLogger(__name__)


class AccountStore:
    """Reads and creates ``User`` rows on behalf of the auth flows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == normalize_email(email))
        try:
            result = await self.session.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Account lookup failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str) -> User | None:
        stmt = select(User).where(User.id == user_id)
        try:
            result = await self.session.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Account lookup failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e
        return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str | None = None,
        phone: str = "",
        privilege: Privilege = Privilege.STANDARD,
    ) -> User:
        user = User(
            email=normalize_email(email),
            name=name,
            phone=phone,
            password_hash=password_hash,
            privilege=privilege,
        )
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ValidationError("User with this email already exists") from e
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            logger.error(f"Account creation failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e

        logger.info(f"Created {privilege.value} account for {mask_email(user.email)}")
        return user

    async def set_password(self, user: User, password_hash: str) -> None:
        user.password_hash = password_hash
        try:
            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            logger.error(f"Password update failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e

    async def update_profile(
        self,
        user: User,
        name: str | None = None,
        email: str | None = None,
    ) -> User:
        """Change the display name and/or email; omitted fields are left alone."""
        if email is not None:
            email = normalize_email(email)
            if email != user.email:
                existing = await self.find_by_email(email)
                if existing is not None and existing.id != user.id:
                    raise ValidationError("User with this email already exists")
                user.email = email
        if name is not None:
            user.name = name

        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ValidationError("User with this email already exists") from e
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            logger.error(f"Profile update failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e

        logger.info(f"Updated profile for {mask_email(user.email)}")
        return user

    async def list_all(self, limit: int = 100, offset: int = 0) -> list[User]:
        stmt = select(User).order_by(User.created_at).offset(offset).limit(limit)  # type: ignore[arg-type]
        try:
            result = await self.session.execute(stmt)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Account listing failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e
        return list(result.scalars().all())

    async def set_privilege(self, user: User, privilege: Privilege) -> None:
        """Takes effect at the account's next login; existing tokens keep their claim."""
        user.privilege = privilege
        try:
            await self.session.commit()
        except (SQLAlchemyError, OSError) as e:
            await self.session.rollback()
            logger.error(f"Privilege update failed: {e!r}")
            raise StoreUnavailable("Account store unavailable") from e
        logger.info(f"Set {mask_email(user.email)} to {privilege.value}")
