from dataclasses import dataclass

from jose import JWTError, jwt
from starlette.requests import Request

from brokercrm.core.config import get_settings


@dataclass
class AuthUser:
    sub: str
    roles: list[str]
    organisation_id: int | None = None


_ANONYMOUS = AuthUser(sub="anonymous", roles=["guest"])


def _parse_organisation_claim(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


async def get_current_user(request: Request) -> AuthUser:
    """Decode the bearer token into an identity.

    Missing or invalid tokens resolve to an anonymous guest; callers decide
    what a guest may see.
    """
    auth_header = request.headers.get("authorization", "")
    token = auth_header.removeprefix("Bearer ") if auth_header.startswith("Bearer ") else ""
    if not token:
        return _ANONYMOUS

    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return _ANONYMOUS

    roles = payload.get("roles", ["user"])
    if not isinstance(roles, list):
        roles = ["user"]
    subject = str(payload.get("sub", "anonymous"))
    request.state.user_id = subject
    return AuthUser(
        sub=subject,
        roles=[str(role) for role in roles],
        organisation_id=_parse_organisation_claim(payload.get("organisation_id")),
    )
