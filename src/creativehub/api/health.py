"""Liveness and readiness endpoints.

``/health`` answers as long as the process is serving requests. ``/health/ready``
additionally needs the account/OTP store to answer a query and an email backend
that can be built from the current settings, since no login step-up can finish
without both.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from creativehub.api.deps import SessionDep, get_email_service
from creativehub.services.email import EmailService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
async def health_check():
    return {"status": "ok"}


@router.get("/ready")
async def readiness_check(
    session: SessionDep,
    email: Annotated[EmailService, Depends(get_email_service)],
):
    """503 with the failing component marked when a login could not complete."""
    components = {"store": "connected", "email": "configured"}

    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Store readiness check failed: {e!r}")
        components["store"] = "disconnected"

    try:
        backend = email.backend
    except ValueError as e:
        logger.error(f"Email backend unusable: {e}")
        components["email"] = "misconfigured"
    else:
        components["email_backend"] = type(backend).__name__

    if components["store"] != "connected" or components["email"] != "configured":
        return JSONResponse(status_code=503, content={"status": "unavailable", **components})
    return {"status": "ok", **components}
