from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Literal

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import OAuth2PasswordBearer

UserType = Literal["donor", "organization", "admin"]
USER_TYPES = ("donor", "organization", "admin")

# tokens are issued by the external auth service; we only verify them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, built once per request from the token claims."""
    id: str
    user_type: UserType

    @property
    def is_organization(self) -> bool:
        return self.user_type == "organization"


def create_token(payload: Dict[str, Any], secret: str, alg: str = "HS256", minutes: int = 30) -> str:
    payload = dict(payload)
    payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    return jwt.encode(payload, secret, algorithm=alg)


def decode_token(token: str, secret: str, alg: str = "HS256") -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[alg])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def principal_from_claims(data: Dict[str, Any]) -> Principal:
    sub = data.get("sub")
    user_type = data.get("user_type")
    if not sub or user_type not in USER_TYPES:
        raise HTTPException(status_code=401, detail="Invalid token claims")
    return Principal(id=str(sub), user_type=user_type)


async def get_current_principal(request: Request, token: str = Depends(oauth2_scheme)) -> Principal:
    settings = request.app.state.settings
    data = decode_token(token, settings.jwt_secret, settings.jwt_alg)
    principal = principal_from_claims(data)
    request.state.user_id = principal.id
    return principal
