"""JWT handling for the caller identity handed to the reservation engine.

Accounts and sign-in live outside this project; tokens are only decoded here.
``create_access_token`` exists so operators and tests can mint tokens with the
shared secret.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt
from pydantic import BaseModel

from .config import get_settings

settings = get_settings()


class RoleEnum(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class Caller(BaseModel):
    member_id: int
    role: RoleEnum = RoleEnum.MEMBER
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMIN


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


def caller_from_token(token: str) -> Caller:
    payload = decode_token(token)
    subject = payload.get("sub")
    if subject is None or not str(subject).isdigit():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing subject in token")
    try:
        role = RoleEnum(payload.get("role", RoleEnum.MEMBER.value))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown role in token") from exc
    return Caller(member_id=int(subject), role=role, name=payload.get("name"), email=payload.get("email"))
