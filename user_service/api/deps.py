import structlog
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from user_service.core.exceptions import AuthorizationError
from user_service.core.security import decode_token
from user_service.db.session import get_db
from user_service.models.user import User
from user_service.services.address_service import AddressService
from user_service.services.events import EventPublisher

logger = structlog.get_logger()


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        raise AuthorizationError("Unauthorized")

    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        raise AuthorizationError("Unauthorized")
    return token


def get_current_user_id(request: Request) -> int:
    """Map the bearer credential to the caller's user id."""
    payload = decode_token(_bearer_token(request))
    if payload.get("type") != "access":
        raise AuthorizationError("Invalid token")

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthorizationError("Invalid token")
    return user_id


def get_current_user(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        logger.warning("auth_rejected_unknown_user", user_id=user_id)
        raise AuthorizationError("Invalid authentication credentials")
    return user


def get_event_publisher(request: Request) -> EventPublisher:
    return request.app.state.event_publisher


def get_address_service(
    db: Session = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher),
) -> AddressService:
    return AddressService(db, events)
