from user_service.models.user import User
from user_service.models.address import Address
