# signaturepro/users/router.py

from fastapi import APIRouter, Depends

from signaturepro.users.models import User
from signaturepro.users.schemas import UserResponse
from signaturepro.users.utils import get_current_user

router = APIRouter(tags=["Users"])


@router.get("/user", response_model=UserResponse)
def get_user_me(
    current_user: User = Depends(get_current_user),
):
    """Get details of the currently authenticated owner."""
    return current_user
