import math
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from user_service.core.exceptions import (
    AddressNotFound,
    APIError,
    AuthorizationError,
    InternalError,
    InvalidCoordinates,
    MissingRequiredFields,
)
from user_service.models.address import Address
from user_service.models.user import User
from user_service.schemas.address import AddressCreate, AddressUpdate
from user_service.services.events import EventPublisher

logger = structlog.get_logger()

REQUIRED_FIELDS = ("label", "street_address", "city", "state", "postal_code", "country")
COORDINATE_RANGES = {
    "latitude": (-90.0, 90.0),
    "longitude": (-180.0, 180.0),
}


def parse_coordinate(field: str, value: Any) -> Optional[float]:
    """Return the coordinate as a float, or raise if malformed/out of range."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidCoordinates(field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidCoordinates(field)

    low, high = COORDINATE_RANGES[field]
    if not math.isfinite(number) or number < low or number > high:
        raise InvalidCoordinates(field)
    return number


def validate_new_address(payload: AddressCreate) -> Dict[str, Any]:
    """Check create preconditions and return the column values to persist."""
    data = payload.model_dump(exclude={"is_default"})

    missing = [field for field in REQUIRED_FIELDS if not data.get(field)]
    if missing:
        raise MissingRequiredFields(missing)

    for field in COORDINATE_RANGES:
        data[field] = parse_coordinate(field, data[field])
    return data


def validate_address_changes(payload: AddressUpdate) -> Dict[str, Any]:
    """
    Reduce a partial update to the columns that actually change.

    Null or unset fields keep their stored value. Text fields that are sent
    must still be non-empty.
    """
    changes = {
        field: value
        for field, value in payload.model_dump(exclude_unset=True).items()
        if value is not None
    }

    empty = [field for field in REQUIRED_FIELDS if field in changes and not changes[field]]
    if empty:
        raise MissingRequiredFields(empty)

    for field in COORDINATE_RANGES:
        if field in changes:
            changes[field] = parse_coordinate(field, changes[field])
    return changes


class AddressService:
    """Owns a user's addresses and keeps exactly one of them default."""

    def __init__(self, db: Session, events: EventPublisher):
        self.db = db
        self.events = events

    @contextmanager
    def _transaction(self, action: str, **log_context):
        try:
            yield
            self.db.commit()
        except APIError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception(f"{action}_failed", **log_context)
            raise InternalError(f"Failed to {action.replace('_', ' ')}") from exc

    def _lock_owner(self, user_id: int) -> User:
        # Serializes every default-changing write for the same user.
        owner = (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .first()
        )
        if owner is None:
            raise AuthorizationError("Invalid authentication credentials")
        return owner

    def _owned_address(self, user_id: int, address_id: int, lock: bool = False) -> Optional[Address]:
        query = self.db.query(Address).filter(
            Address.id == address_id,
            Address.user_id == user_id,
        )
        if lock:
            query = query.with_for_update()
        return query.first()

    def add_address(self, user_id: int, payload: AddressCreate) -> Address:
        data = validate_new_address(payload)

        with self._transaction("add_address", user_id=user_id):
            self._lock_owner(user_id)
            existing = (
                self.db.query(func.count(Address.id))
                .filter(Address.user_id == user_id)
                .scalar()
            )
            is_first_address = existing == 0

            address = Address(user_id=user_id, is_default=is_first_address, **data)
            self.db.add(address)

        self.db.refresh(address)
        logger.info(
            "address_added",
            user_id=user_id,
            address_id=address.id,
            is_default=address.is_default,
        )

        self.events.publish(
            "address.added",
            {
                "userId": user_id,
                "addressId": address.id,
                "label": address.label,
                "isDefault": address.is_default,
                "isFirstAddress": is_first_address,
            },
        )
        return address

    def list_addresses(self, user_id: int) -> List[Address]:
        # Oldest first; callers wanting the default first must sort themselves.
        return (
            self.db.query(Address)
            .filter(Address.user_id == user_id)
            .order_by(Address.created_at.asc(), Address.id.asc())
            .all()
        )

    def get_address(self, user_id: int, address_id: int) -> Address:
        address = self._owned_address(user_id, address_id)
        if address is None:
            raise AddressNotFound()
        return address

    def count_addresses(self, user_id: int) -> int:
        return (
            self.db.query(func.count(Address.id))
            .filter(Address.user_id == user_id)
            .scalar()
        ) or 0

    def update_address(self, user_id: int, address_id: int, payload: AddressUpdate) -> Address:
        changes = validate_address_changes(payload)
        make_default = changes.pop("is_default", None) is True

        with self._transaction("update_address", user_id=user_id, address_id=address_id):
            self._lock_owner(user_id)
            address = self._owned_address(user_id, address_id, lock=True)
            if address is None:
                raise AddressNotFound()

            now = datetime.utcnow()
            if make_default:
                demoted = (
                    self.db.query(Address)
                    .filter(
                        Address.user_id == user_id,
                        Address.id != address.id,
                        Address.is_default == True,
                    )
                    .update({"is_default": False, "updated_at": now}, synchronize_session=False)
                )
                address.is_default = True
                if demoted:
                    logger.info(
                        "address_default_reassigned",
                        user_id=user_id,
                        address_id=address.id,
                        demoted=demoted,
                    )

            for field, value in changes.items():
                setattr(address, field, value)
            address.updated_at = now

        self.db.refresh(address)
        self.events.publish(
            "address.updated",
            {
                "userId": user_id,
                "addressId": address.id,
                "updatedFields": sorted([*changes, "is_default"] if make_default else changes),
                "isDefault": address.is_default,
            },
        )
        return address

    def delete_address(self, user_id: int, address_id: int) -> None:
        promoted_id = None

        with self._transaction("delete_address", user_id=user_id, address_id=address_id):
            self._lock_owner(user_id)
            address = self._owned_address(user_id, address_id, lock=True)
            if address is None:
                raise AddressNotFound()

            was_default = bool(address.is_default)
            self.db.delete(address)
            self.db.flush()

            if was_default:
                successor = (
                    self.db.query(Address)
                    .filter(Address.user_id == user_id)
                    .order_by(Address.created_at.asc(), Address.id.asc())
                    .with_for_update()
                    .first()
                )
                if successor is not None:
                    successor.is_default = True
                    successor.updated_at = datetime.utcnow()
                    promoted_id = successor.id

        logger.info(
            "address_deleted",
            user_id=user_id,
            address_id=address_id,
            was_default=was_default,
            promoted_address_id=promoted_id,
        )
        self.events.publish(
            "address.deleted",
            {
                "userId": user_id,
                "addressId": address_id,
                "wasDefault": was_default,
                "promotedAddressId": promoted_id,
            },
        )
