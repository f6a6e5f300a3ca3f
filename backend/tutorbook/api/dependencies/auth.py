# backend/tutorbook/api/dependencies/auth.py
"""
Authentication dependencies.

The identity provider sits in front of the API and forwards the signed-in
caller as a base64 JSON principal header. These dependencies decode it and
make sure a local ``users`` row exists for the caller.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.exceptions import ForbiddenException, UnauthorizedException
from ...models.user import User
from ...principal import ClientPrincipal, PrincipalDecodeError
from ...repositories.factory import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)


def get_current_principal(request: Request) -> ClientPrincipal:
    header_value = request.headers.get(settings.principal_header)
    if not header_value:
        raise UnauthorizedException("Authentication required", code="NOT_AUTHENTICATED")
    try:
        return ClientPrincipal.from_header(header_value)
    except PrincipalDecodeError as exc:
        logger.warning(f"Rejected client principal: {exc}")
        raise UnauthorizedException(
            "Invalid authentication credentials", code="INVALID_PRINCIPAL"
        ) from exc


def get_current_user(
    principal: ClientPrincipal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> User:
    """Local user for the caller, created on first sight and kept in sync with the principal."""
    repo = RepositoryFactory.create_user_repository(db)
    user = repo.get_by_external_id(principal.user_id)
    roles = ",".join(principal.roles)

    if user is None:
        user = User(external_id=principal.user_id, email=principal.email, roles=roles)
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # concurrent first request for the same caller
            db.rollback()
            user = repo.get_by_external_id(principal.user_id)
            if user is None:
                raise
        else:
            logger.info(f"Registered new user {user.id}", extra={"user_id": user.id})
        return user

    if (principal.email and user.email != principal.email) or user.roles != roles:
        user.email = principal.email or user.email
        user.roles = roles
        db.commit()
    return user


def get_active_user(current_user: User = Depends(get_current_user)) -> User:
    """Caller that is allowed to act; suspended accounts are turned away."""
    if current_user.is_suspended:
        raise ForbiddenException(
            "Your account is suspended", code="ACCOUNT_SUSPENDED"
        )
    return current_user


def require_job_secret(request: Request) -> None:
    """Guard for scheduled job endpoints: the shared secret must match."""
    expected = settings.autocomplete_secret.get_secret_value() if settings.autocomplete_secret else ""
    provided: Optional[str] = request.headers.get("x-autocomplete-secret")
    if not expected or not provided or not hmac.compare_digest(provided, expected):
        raise UnauthorizedException("Unauthorized", code="INVALID_JOB_SECRET")
