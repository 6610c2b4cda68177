"""
Admin authorization for the gallery API.

Access tokens are issued by the storefront's auth service and signed with the
shared JWT_SECRET. This API never sees passwords: it decodes the bearer token,
checks that it is an access token, and gates every route on the ADMIN role.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import ExpiredSignatureError, PyJWTError

from gallery.core.config import config
from gallery.core.exceptions import ForbiddenError, UnauthorizedError

bearer_scheme = HTTPBearer(description="Access token issued by the storefront auth service")

ACCESS_TOKEN_TYPE = "access"
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


@dataclass
class TokenData:
    """Claims this API relies on"""
    user_id: int
    username: str
    role: str


class AuthService:

    @staticmethod
    def create_access_token(claims: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        """
        Sign an access token the same way the auth service does.
        Handy for scripts and tests that need to call the API.
        """
        issued_at = datetime.utcnow()
        payload = {
            **claims,
            "iat": issued_at,
            "exp": issued_at + (expires_delta or DEFAULT_TOKEN_LIFETIME),
            "type": ACCESS_TOKEN_TYPE,
        }
        return jwt.encode(payload, config.jwt_secret, algorithm=config.jwt_algorithm)

    @staticmethod
    def verify_token(token: str) -> Optional[TokenData]:
        """
        Decode an access token.

        Returns None for a bad signature, a non-access token or missing claims.

        Raises:
            UnauthorizedError: If the token has expired
        """
        try:
            claims: Dict[str, Any] = jwt.decode(
                token, config.jwt_secret, algorithms=[config.jwt_algorithm]
            )
        except ExpiredSignatureError:
            raise UnauthorizedError("Token has expired")
        except PyJWTError:
            return None

        if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
            return None

        try:
            return TokenData(
                user_id=int(claims["user_id"]),
                username=str(claims["sub"]),
                role=str(claims["role"]),
            )
        except (KeyError, TypeError, ValueError):
            return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> TokenData:
    token_data = AuthService.verify_token(credentials.credentials)
    if token_data is None:
        raise UnauthorizedError("Invalid authentication credentials")
    return token_data


class RoleChecker:
    """Dependency allowing only callers whose token carries one of `allowed_roles`."""

    def __init__(self, allowed_roles: List[str]) -> None:
        self.allowed_roles = allowed_roles

    async def __call__(self, current_user: TokenData = Depends(get_current_user)) -> TokenData:
        if current_user.role not in self.allowed_roles:
            raise ForbiddenError(
                f"Operation not permitted. Required roles: {', '.join(self.allowed_roles)}"
            )
        return current_user


require_admin = RoleChecker(["ADMIN"])
