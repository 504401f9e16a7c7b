"""Reusable FastAPI dependencies for caller identity and the reservation engine."""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from .auth import Caller, caller_from_token
from .availability import AvailabilityService
from .database import get_db
from .events import EventDispatcher, build_dispatcher
from .store import ReservationStore

oauth_scheme = OAuth2PasswordBearer(tokenUrl="/token", auto_error=False)

_dispatcher: Optional[EventDispatcher] = None


def get_dispatcher() -> EventDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = build_dispatcher()
    return _dispatcher


def get_store(db: Session = Depends(get_db)) -> ReservationStore:
    return ReservationStore(db)


def get_availability_service(
    store: ReservationStore = Depends(get_store),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> AvailabilityService:
    return AvailabilityService(store.db, store=store, dispatcher=dispatcher)


def get_optional_caller(token: Optional[str] = Depends(oauth_scheme)) -> Optional[Caller]:
    """``None`` for anonymous (guest) requests."""
    if not token:
        return None
    return caller_from_token(token)


def get_current_caller(caller: Optional[Caller] = Depends(get_optional_caller)) -> Caller:
    if caller is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return caller


def require_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return caller
