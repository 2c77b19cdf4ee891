import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from user_service.api.deps import get_event_publisher
from user_service.core.exceptions import InvalidCredentials, UserAlreadyExists
from user_service.core.security import create_access_token, hash_password, verify_password
from user_service.db.session import get_db
from user_service.models.user import User
from user_service.schemas.user import AuthResponse, UserCreate, UserLogin, UserResponse
from user_service.services.events import EventPublisher
from user_service.utils.response import success

router = APIRouter()
logger = structlog.get_logger()


def _issue_token(user: User) -> str:
    return create_access_token({"sub": str(user.id)})


@router.post(
    "/register",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Register user account",
    responses={
        201: {"description": "Registration successful"},
        400: {"description": "Validation error or user already exists"},
    },
)
def register(
    user_in: UserCreate,
    db: Session = Depends(get_db),
    events: EventPublisher = Depends(get_event_publisher),
):
    existing_user = db.query(User).filter(User.email == user_in.email).first()
    if existing_user:
        raise UserAlreadyExists()

    user = User(
        email=user_in.email,
        password_hash=hash_password(user_in.password),
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        phone=user_in.phone,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise UserAlreadyExists()
    db.refresh(user)

    logger.info("user_registered", user_id=user.id)
    events.publish("user.registered", {"userId": user.id, "email": user.email})

    return success(
        data=AuthResponse(user=UserResponse.model_validate(user), token=_issue_token(user)),
        message="Registration successful",
    )


@router.post(
    "/login",
    response_model=dict,
    summary="Login user",
    responses={
        200: {"description": "Login successful"},
        401: {"description": "Invalid credentials"},
    },
)
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == credentials.email).first()
    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning("login_failed", email=credentials.email)
        raise InvalidCredentials()

    if not user.is_active:
        raise InvalidCredentials()

    return success(
        data=AuthResponse(user=UserResponse.model_validate(user), token=_issue_token(user)),
        message="Login successful",
    )
