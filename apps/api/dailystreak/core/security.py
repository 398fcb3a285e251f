from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from dailystreak.services.supabase_auth import get_current_user

_MIN_TOKEN_LENGTH = 20


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    email: str | None
    # Forwarded to Supabase so row-level security scopes streak rows.
    access_token: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _get_bearer_token(request: Request) -> str:
    scheme, _, token = (request.headers.get("authorization") or "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or " " in token or len(token) < _MIN_TOKEN_LENGTH:
        raise _unauthorized("Missing token")
    return token


async def verify_token(request: Request) -> AuthContext:
    token = _get_bearer_token(request)

    # Verification is delegated to Supabase Auth.
    try:
        user = await get_current_user(access_token=token)
    except Exception:
        raise _unauthorized("Unauthorized")

    user_id = user.get("id")
    if not isinstance(user_id, str) or not user_id.strip():
        raise _unauthorized("Unauthorized")

    email = user.get("email")
    return AuthContext(
        user_id=user_id,
        email=email.strip() if isinstance(email, str) and email.strip() else None,
        access_token=token,
    )


AuthDep = Annotated[AuthContext, Depends(verify_token)]
