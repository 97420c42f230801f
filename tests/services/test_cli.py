"""CLI command tests against a throwaway SQLite file."""

import asyncio
from contextlib import asynccontextmanager
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel
from typer.testing import CliRunner

from creativehub.cli import app
from creativehub.database import Database
from creativehub.models import OtpPurpose, Privilege
from creativehub.services.accounts import AccountStore
from creativehub.services.otp_store import OtpStore

runner = CliRunner()


@pytest.fixture
def cli_database_url(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

    async def _create_schema():
        engine = create_async_engine(url)
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        await engine.dispose()

    asyncio.run(_create_schema())

    @asynccontextmanager
    async def session_context():
        database = Database(url)
        try:
            async with database.session() as session:
                yield session
        finally:
            await database.close()

    with (
        patch("creativehub.cli.users.get_session_context", session_context),
        patch("creativehub.cli.otp.get_session_context", session_context),
    ):
        yield session_context


def _run(coro_factory, session_context):
    async def _inner():
        async with session_context() as session:
            return await coro_factory(session)

    return asyncio.run(_inner())


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Creative Hub v" in result.output


def test_users_create_and_grant_admin(cli_database_url):
    result = runner.invoke(
        app, ["users", "create", "cli@example.com", "--password", "hunter22", "--name", "Cli"]
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["users", "grant-admin", "cli@example.com"])
    assert result.exit_code == 0, result.output

    user = _run(lambda s: AccountStore(s).find_by_email("cli@example.com"), cli_database_url)
    assert user.privilege == Privilege.PRIVILEGED

    result = runner.invoke(app, ["users", "revoke-admin", "cli@example.com"])
    assert result.exit_code == 0
    user = _run(lambda s: AccountStore(s).find_by_email("cli@example.com"), cli_database_url)
    assert user.privilege == Privilege.STANDARD


def test_users_create_rejects_short_password(cli_database_url):
    result = runner.invoke(app, ["users", "create", "cli@example.com", "--password", "abc"])
    assert result.exit_code == 1


def test_users_create_duplicate(cli_database_url):
    runner.invoke(app, ["users", "create", "cli@example.com", "--password", "hunter22"])
    result = runner.invoke(app, ["users", "create", "cli@example.com", "--password", "hunter22"])
    assert result.exit_code == 1
    assert "already exists" in result.output


def test_grant_admin_unknown_user(cli_database_url):
    result = runner.invoke(app, ["users", "grant-admin", "ghost@example.com"])
    assert result.exit_code == 1


def test_users_list(cli_database_url):
    runner.invoke(app, ["users", "create", "cli@example.com", "--password", "hunter22"])

    result = runner.invoke(app, ["users", "list"])
    assert result.exit_code == 0, result.output
    assert "Users" in result.output


def test_otp_status_never_prints_code(cli_database_url):
    _run(lambda s: OtpStore(s).create("cli@example.com", "424242", OtpPurpose.LOGIN), cli_database_url)

    result = runner.invoke(app, ["otp", "status", "CLI@example.com"])
    assert result.exit_code == 0
    assert "login" in result.output
    assert "424242" not in result.output


def test_otp_purge_expired(cli_database_url):
    result = runner.invoke(app, ["otp", "purge-expired"])
    assert result.exit_code == 0
    assert "Deleted 0" in result.output


def test_db_migrate_failure_exits_nonzero():
    with patch("creativehub.cli.db.subprocess.run", return_value=MagicMock(returncode=1)) as run:
        result = runner.invoke(app, ["db", "migrate"])

    assert result.exit_code == 1
    assert run.call_args[0][0][-2:] == ["upgrade", "head"]
