from fastapi import status
from typing import Any, List, Optional


class APIError(Exception):
    def __init__(self, status_code: int, message: str, errors: Optional[List[Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.errors = errors or []


class ValidationError(APIError):
    def __init__(self, message: str, errors: Optional[List[Any]] = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, errors)


class AuthorizationError(APIError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message)


class NotFoundError(APIError):
    def __init__(self, message: str = "Not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class AddressNotFound(NotFoundError):
    def __init__(self):
        super().__init__("Address not found")


class MissingRequiredFields(ValidationError):
    def __init__(self, fields: List[str]):
        super().__init__(
            "Missing required fields",
            errors=[{"field": field, "reason": "required"} for field in fields],
        )


class InvalidCoordinates(ValidationError):
    def __init__(self, field: str):
        super().__init__(
            "Invalid coordinates",
            errors=[{"field": field, "reason": "out_of_range"}],
        )


class UserAlreadyExists(ValidationError):
    def __init__(self):
        super().__init__("User already exists")


class InvalidCredentials(AuthorizationError):
    def __init__(self):
        super().__init__("Incorrect email or password")


class InternalError(APIError):
    def __init__(self, message: str = "Internal server error"):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, message)
