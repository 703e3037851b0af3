from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List, Optional

import jwt
from fastapi import Header, HTTPException, Request

from .db import Database, utc_now

SESSION_ALGORITHM = "HS256"
SESSION_TTL = timedelta(days=14)


def _parse_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization token.")
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid authorization token.")
    return parts[1]


def _verify_session_token(token: str, secret: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[SESSION_ALGORITHM], options={"require": ["sub"]})
    except jwt.PyJWTError as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token.") from exc


def issue_session_token(user_id: int, name: str, secret: str, *, ttl: timedelta = SESSION_TTL) -> str:
    now = utc_now()
    claims = {"sub": str(user_id), "name": name, "iat": now, "exp": now + ttl}
    return jwt.encode(claims, secret, algorithm=SESSION_ALGORITHM)


@dataclass
class AuthContext:
    user_id: int
    name: str
    memberships: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def family_ids(self) -> List[int]:
        return [membership["family_id"] for membership in self.memberships]

    def relation_for(self, family_id: int) -> Optional[str]:
        for membership in self.memberships:
            if membership["family_id"] == family_id:
                return membership.get("relation")
        return None


def resolve_auth_context(db: Database, secret: str, authorization: Optional[str]) -> AuthContext:
    token = _parse_bearer_token(authorization)
    claims = _verify_session_token(token, secret)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=401, detail="Invalid or expired token.") from exc
    user = db.get_user(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unknown user.")
    return AuthContext(
        user_id=user_id,
        name=claims.get("name") or user.get("name") or "사용자",
        memberships=db.list_memberships(user_id),
    )


async def get_auth_context(request: Request, authorization: Optional[str] = Header(None)) -> AuthContext:
    state = request.app.state
    return resolve_auth_context(state.db, state.config.session_secret, authorization)


def require_child_access(db: Database, auth: AuthContext, child_id: int, *, hide_existence: bool = False) -> dict:
    """Return the child row when it belongs to one of the caller's families.

    With ``hide_existence`` a missing child is reported as 403 as well.
    """
    child = db.get_child(child_id)
    if not child:
        if hide_existence:
            raise HTTPException(status_code=403, detail="Child not accessible.")
        raise HTTPException(status_code=404, detail="Child not found.")
    if child["family_id"] not in auth.family_ids:
        raise HTTPException(status_code=403, detail="Child not accessible.")
    return child
