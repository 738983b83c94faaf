"""
Authentication router for Kader Learn.

Tokens come from the hosted auth provider. This module only resolves the
bearer token to a profile and enforces role checks.
"""

from typing import Optional
from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from kaderlearn.core.database import get_db
from kaderlearn.core.exceptions import ForbiddenError, UnauthorizedError
from kaderlearn.core.responses import success_response
from kaderlearn.core.security import verify_token
from kaderlearn.models.user import Profile


router = APIRouter()

bearer_scheme = HTTPBearer(auto_error=False)


# Dependencies
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> Profile:
    """
    Get current authenticated user from the bearer token.
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required", code="UNAUTHORIZED")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise UnauthorizedError("Could not validate credentials", code="INVALID_TOKEN")

    user = db.get(Profile, payload["sub"])
    if user is None:
        raise UnauthorizedError("User profile not found", code="PROFILE_NOT_FOUND")

    if not user.is_active:
        raise ForbiddenError("Inactive user", code="INACTIVE_USER")

    return user


def get_current_admin_user(
    current_user: Profile = Depends(get_current_user)
) -> Profile:
    """
    Verify that the current user has admin privileges.
    """
    if not current_user.is_admin:
        raise ForbiddenError("Admin access required", code="ADMIN_REQUIRED")
    return current_user


def get_current_superadmin_user(
    current_user: Profile = Depends(get_current_user)
) -> Profile:
    if not current_user.is_superadmin:
        raise ForbiddenError("Superadmin access required", code="SUPERADMIN_REQUIRED")
    return current_user


# Endpoints
@router.get("/me")
async def read_current_user(current_user: Profile = Depends(get_current_user)):
    """
    Get the current user's profile.
    """
    return success_response("PROFILE_FETCHED", "Profile fetched", current_user.to_dict())
