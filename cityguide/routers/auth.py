"""Authentication routes.

Sign-in, sign-up and sign-out are handled by Auth0 on the frontend; the
backend only reads the verified identity.
"""
from fastapi import APIRouter, Depends
from cityguide.models.auth import UserResponse
from cityguide.dependencies import get_current_user

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    """
    Get current authenticated user information from Auth0 token.
    """
    return UserResponse(
        id=current_user["id"],
        email=current_user.get("email"),
        name=current_user.get("name"),
        avatar_url=current_user.get("picture"),
    )
