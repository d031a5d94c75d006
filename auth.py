import logging
from typing import Optional

from fastapi import Depends, Header, Request

from errors import Forbidden, TokenError, Unauthenticated
from security import TokenClaims, TokenService

logger = logging.getLogger(__name__)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """Verify the bearer token and attach its claims to ``request.state.user``."""
    if not authorization:
        raise Unauthenticated("Missing Authorization header")
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid auth scheme")
    except ValueError:
        raise Unauthenticated("Invalid Authorization header")
    try:
        claims = tokens.verify(token)
    except TokenError as e:
        logger.debug("Rejected bearer token: %s", e.message)
        raise
    request.state.user = claims
    return claims


def require_role(role: str):
    def checker(user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
        if user.role != role:
            raise Forbidden(f"{role.capitalize()} only")
        return user
    return checker
