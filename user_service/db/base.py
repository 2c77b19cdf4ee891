from user_service.db.base_class import Base


# IMPORT ALL MODELS HERE (THIS REGISTERS THEM WITH Base.metadata)
from user_service.models.user import User
from user_service.models.address import Address
