"""create_users_and_otp_records

Revision ID: 7f3a1c9e2b40
Revises:
Create Date: 2026-10-19 09:12:41.207315

Initial schema: accounts and their outstanding OTP challenges.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "7f3a1c9e2b40"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

privilege_enum = sa.Enum("STANDARD", "PRIVILEGED", name="privilege")
otp_purpose_enum = sa.Enum(
    "LOGIN", "REGISTRATION", "VERIFICATION", "PASSWORD_RESET", name="otppurpose"
)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("privilege", privilege_enum, nullable=False, server_default="STANDARD"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "otp_records",
        sa.Column("id", sa.String(length=21), nullable=False),
        sa.Column("subject_email", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=6), nullable=False),
        # Null on records issued before purposes were tracked
        sa.Column("purpose", otp_purpose_enum, nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_otp_records_subject_email", "otp_records", ["subject_email"])
    op.create_index("ix_otp_records_created_at", "otp_records", ["created_at"])


def downgrade() -> None:
    op.drop_index("ix_otp_records_created_at", table_name="otp_records")
    op.drop_index("ix_otp_records_subject_email", table_name="otp_records")
    op.drop_table("otp_records")
    otp_purpose_enum.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    privilege_enum.drop(op.get_bind(), checkfirst=True)
