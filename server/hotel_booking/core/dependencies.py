"""FastAPI dependencies for database sessions, authentication, and collaborators."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
import jwt
from jwt import PyJWTError

from .config import settings
from .database import get_db
from .exceptions import AuthenticationError, AuthorizationError


HOTEL_MANAGER_ROLE = "HOTEL_MANAGER"


@dataclass(frozen=True)
class CurrentUser:
    """Caller identity resolved from the bearer token."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    roles: tuple[str, ...] = ()

    @property
    def is_hotel_manager(self) -> bool:
        return HOTEL_MANAGER_ROLE in self.roles


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> CurrentUser:
    """
    Authentication dependency that validates HS256 Bearer tokens.

    Raises:
        AuthenticationError: If the token is missing, malformed, expired or unsigned
    """
    if not authorization:
        raise AuthenticationError("Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError("Invalid authorization header format")
    if scheme.lower() != "bearer":
        raise AuthenticationError("Invalid authentication scheme")

    try:
        # PyJWT verifies "exp" when the claim is present
        payload = jwt.decode(token, settings.bearer_token_secret, algorithms=["HS256"])
    except PyJWTError as e:
        raise AuthenticationError(f"Token validation failed: {e}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError("Invalid token payload")

    return CurrentUser(
        id=str(user_id),
        email=payload.get("email"),
        name=payload.get("name"),
        roles=tuple(payload.get("roles", [])),
    )


async def get_hotel_manager(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Authenticated caller holding the hotel manager role."""
    if not user.is_hotel_manager:
        raise AuthorizationError("Hotel manager role required")
    return user


def get_checkout_gateway(request: Request):
    """Checkout gateway configured on the application at startup."""
    return request.app.state.checkout_gateway


def get_pricing_pipeline(request: Request):
    """Pricing pipeline built from settings at startup."""
    return request.app.state.pricing_pipeline
