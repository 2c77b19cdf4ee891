from fastapi import APIRouter, Depends, status
from typing import List

from user_service.api.deps import get_address_service, get_current_user
from user_service.models.user import User
from user_service.schemas.address import AddressCount, AddressCreate, AddressResponse, AddressUpdate
from user_service.schemas.user import UserResponse
from user_service.services.address_service import AddressService
from user_service.utils.response import success

router = APIRouter()


@router.get("/profile", response_model=dict)
def get_user_profile(current_user: User = Depends(get_current_user)):
    """Get current user profile"""
    return success(data=UserResponse.model_validate(current_user), message="User profile retrieved")


# ============= ADDRESSES =============

@router.post(
    "/address",
    response_model=dict,
    status_code=status.HTTP_201_CREATED,
    summary="Add delivery address",
    description="""
Adds an address for the authenticated user.

Rules:
1. label, street_address, city, state, postal_code and country are required
2. latitude must be within [-90, 90] and longitude within [-180, 180]
3. The user's first address becomes the default; later ones never do on create
""",
    responses={
        201: {"description": "Address added"},
        400: {"description": "Missing required fields or invalid coordinates"},
        401: {"description": "Missing or invalid bearer token"},
    },
)
def add_address(
    address_data: AddressCreate,
    current_user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    address = service.add_address(current_user.id, address_data)
    return success(data=AddressResponse.model_validate(address), message="Address added successfully")


@router.get("/addresses", response_model=dict)
def get_user_addresses(
    current_user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    """List the caller's addresses, oldest first."""
    addresses: List[AddressResponse] = [
        AddressResponse.model_validate(address)
        for address in service.list_addresses(current_user.id)
    ]
    return success(data=addresses, message="Addresses retrieved")


@router.get("/addresses/count", response_model=dict)
def get_address_count(
    current_user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    count = service.count_addresses(current_user.id)
    return success(data=AddressCount(count=count), message="Address count retrieved")


@router.get("/addresses/{address_id}", response_model=dict)
def get_address(
    address_id: int,
    current_user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    address = service.get_address(current_user.id, address_id)
    return success(data=AddressResponse.model_validate(address), message="Address retrieved")


@router.put("/addresses/{address_id}", response_model=dict)
def update_address(
    address_id: int,
    address_update: AddressUpdate,
    current_user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    """Partially update an address; is_default=true moves the default here."""
    address = service.update_address(current_user.id, address_id, address_update)
    return success(data=AddressResponse.model_validate(address), message="Address updated")


@router.delete("/addresses/{address_id}", response_model=dict)
def delete_address(
    address_id: int,
    current_user: User = Depends(get_current_user),
    service: AddressService = Depends(get_address_service),
):
    service.delete_address(current_user.id, address_id)
    return success(message="Address deleted successfully")
