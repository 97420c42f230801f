"""Session token signing and verification (JWT)."""

from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from creativehub.config import settings
from creativehub.exceptions import InvalidToken
from creativehub.models import Privilege, User


class TokenSigner:
    """Issues self-contained session tokens carrying account id and privilege."""

    def __init__(
        self,
        secret: str | None = None,
        algorithm: str | None = None,
        expiration_days: int | None = None,
    ) -> None:
        self.secret = secret or settings.session_secret
        self.algorithm = algorithm or settings.jwt_algorithm
        self.expiration_days = expiration_days or settings.jwt_expiration_days

    def sign(self, account_id: str, privilege: Privilege | str, email: str | None = None) -> str:
        now = datetime.now(UTC)
        payload = {
            "sub": account_id,
            "privilege": Privilege(privilege).value,
            "exp": now + timedelta(days=self.expiration_days),
            "iat": now,
        }
        if email:
            payload["email"] = email
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        """Decode and validate a token, raising ``InvalidToken``."""
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            raise InvalidToken(f"Invalid token: {e}") from e


token_signer = TokenSigner()


def create_token(user: User) -> str:
    """Create a session token for a user."""
    return token_signer.sign(user.id, user.privilege, user.email)


def decode_token(token: str) -> dict:
    """Decode and validate a session token."""
    return token_signer.decode(token)


async def verify_token(session: AsyncSession, token: str) -> User:
    """Verify a session token and return the associated user."""
    payload = decode_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise InvalidToken("Invalid token: missing user ID")

    stmt = select(User).where(User.id == user_id)
    result = await session.execute(stmt)
    user = result.scalar_one_or_none()

    if not user:
        raise InvalidToken("User not found")

    return user
