from __future__ import annotations

from typing import Any

from aws_lambda_powertools import Logger
from fastapi import Request

from .errors import AuthenticationRequiredError
from .models import Caller, Role

logger = Logger()

CALLER_ID_HEADER = "x-caller-id"
CALLER_ROLE_HEADER = "x-caller-role"

# Role names used by the identity provider.
_ROLE_ALIASES = {
    "member": Role.MEMBER,
    "user": Role.MEMBER,
    "adjudicator": Role.ADJUDICATOR,
    "admin": Role.ADJUDICATOR,
}


def _authorizer_claims(request: Request) -> dict[str, Any] | None:
    """Claims from the API Gateway authorizer, or None when no authorizer ran."""
    # Mangum exposes the raw API Gateway event under "aws.event".
    event = request.scope.get("aws.event") or {}
    authorizer = event.get("requestContext", {}).get("authorizer")
    if not authorizer:
        return None
    claims = authorizer.get("jwt", {}).get("claims") or authorizer.get("lambda") or {}
    return claims if isinstance(claims, dict) else {}


def parse_role(raw: str | None) -> Role:
    if raw is None or not raw.strip():
        return Role.MEMBER
    role = _ROLE_ALIASES.get(raw.strip().lower())
    if role is None:
        raise AuthenticationRequiredError("Unrecognized caller role")
    return role


def get_caller(request: Request) -> Caller:
    """FastAPI dependency resolving the authenticated caller of a request.

    Behind an authorizer the caller comes from its claims alone; the
    ``X-Caller-*`` headers are only read when no authorizer context exists.
    """
    claims = _authorizer_claims(request)
    if claims is not None:
        caller_id = claims.get("sub")
        raw_role = claims.get("custom:role") or claims.get("role")
    else:
        caller_id = request.headers.get(CALLER_ID_HEADER)
        raw_role = request.headers.get(CALLER_ROLE_HEADER)

    if not caller_id or not str(caller_id).strip():
        raise AuthenticationRequiredError()
    caller = Caller(caller_id=str(caller_id).strip(), role=parse_role(raw_role))
    logger.append_keys(caller_id=caller.caller_id)
    return caller
