from dataclasses import dataclass
from typing import Callable

from fastapi import Depends, Header, HTTPException, WebSocket, status

from app.auth.jwt import JwtError, decode_jwt, jwt_http_exception
from app.config import allowed_roles_list, settings

AllowedRole = str

DRIVER_ROLE = "DRIVER"
BACKOFFICE_ROLES = ("OPS", "ADMIN")
TEST_BYPASS_DRIVER_ID = "test-driver"


@dataclass
class AuthContext:
    user_id: str
    role: AllowedRole
    source: str | None = None


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.removeprefix("Bearer ").strip() or None


def auth_context_from_token(token: str) -> AuthContext:
    try:
        payload = decode_jwt(token, settings.jwt_secret)
    except JwtError as err:
        raise jwt_http_exception("Invalid JWT") from err

    role = payload.get("role")
    user_id = payload.get("sub")
    if role not in allowed_roles_list() or not isinstance(user_id, str) or not user_id:
        raise jwt_http_exception("Invalid JWT claims")
    return AuthContext(user_id=user_id, role=role, source=payload.get("source"))


def get_auth_context(authorization: str | None = Header(default=None)) -> AuthContext:
    token = _bearer_token(authorization)
    if token is None:
        if settings.enable_test_auth_bypass:
            return AuthContext(user_id=TEST_BYPASS_DRIVER_ID, role=DRIVER_ROLE, source="test")
        raise jwt_http_exception("Missing bearer token")
    return auth_context_from_token(token)


def require_roles(*roles: str) -> Callable[[AuthContext], AuthContext]:
    def dependency(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return auth

    return dependency


require_driver = require_roles(DRIVER_ROLE)
require_backoffice = require_roles(*BACKOFFICE_ROLES)


def websocket_driver_context(websocket: WebSocket) -> AuthContext | None:
    """Resolve the driver behind a WebSocket handshake.

    Browsers cannot set headers on a WebSocket, so the token may also come
    from the ``token`` query parameter. Returns None when the handshake
    should be refused.
    """
    token = _bearer_token(websocket.headers.get("authorization"))
    if token is None:
        token = websocket.query_params.get("token")
    if not token:
        return None
    try:
        auth = auth_context_from_token(token)
    except HTTPException:
        return None
    return auth if auth.role == DRIVER_ROLE else None
