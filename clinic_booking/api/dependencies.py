"""
Request dependencies.

Public routes only need the service graph. Admin routes additionally
resolve the bearer token to an email through the backend's auth endpoint
and require that email to be listed in admin_users.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from clinic_booking.core.admin import AdminService
from clinic_booking.infra.table_store import StoreError
from clinic_booking.services import Services

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    """Service graph built in the application lifespan."""
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting up",
        )
    return services


async def get_admin_service(
    services: Services = Depends(get_services),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> AdminService:
    """AdminService bound to the caller's token, if the caller is an admin."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = credentials.credentials
    email = await services.auth.get_user_email(token)
    if email is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )

    admin = AdminService(services.admin_store(token), cache=services.cache)
    try:
        allowed = await admin.is_admin(email)
    except StoreError as e:
        logger.error(f"Error checking admin status for {email}: {e}")
        allowed = False

    if not allowed:
        logger.warning(f"Non-admin user attempted admin access: {email}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )

    return admin
