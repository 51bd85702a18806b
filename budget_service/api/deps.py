from fastapi import Header, HTTPException
from budget_service.services.auth.jwt_handler import CurrentUser, get_current_user


def get_current_user_profile(access_token: str = Header(..., description="Access token (without Bearer)")) -> CurrentUser:
    """Extract current user from JWT token"""
    if access_token.startswith("Bearer "):
        access_token = access_token.replace("Bearer ", "")
    user = get_current_user(access_token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user
