"""User account model."""

from enum import Enum

from sqlmodel import Field, SQLModel

from creativehub.models.base import TimestampMixin, generate_nanoid


class Privilege(str, Enum):
    """Account privilege level."""

    STANDARD = "standard"
    PRIVILEGED = "privileged"


class User(TimestampMixin, SQLModel, table=True):
    """User account model."""

    __tablename__ = "users"

    id: str = Field(default_factory=generate_nanoid, primary_key=True, max_length=21)
    email: str = Field(unique=True, index=True, max_length=255)
    name: str | None = Field(default=None, max_length=100)
    phone: str = Field(default="", max_length=32)
    password_hash: str = Field(max_length=255)
    privilege: Privilege = Field(default=Privilege.STANDARD)

    @property
    def is_privileged(self) -> bool:
        return self.privilege == Privilege.PRIVILEGED


class UserRead(SQLModel):
    """Schema for reading a user."""

    id: str
    email: str
    name: str | None
    privilege: Privilege
