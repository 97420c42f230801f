"""Admin endpoints. Authorized from the token's privilege claim."""

from fastapi import APIRouter, Query

from creativehub.api.deps import AdminUser, SessionDep
from creativehub.models.user import UserRead
from creativehub.services.accounts import AccountStore

router = APIRouter()


@router.get("/users", response_model=list[UserRead])
async def list_users(
    _admin: AdminUser,
    session: SessionDep,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
):
    """List accounts, oldest first."""
    users = await AccountStore(session).list_all(limit=limit, offset=offset)
    return [UserRead.model_validate(user, from_attributes=True) for user in users]
