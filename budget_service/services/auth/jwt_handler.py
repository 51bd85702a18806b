import jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel
from budget_service.config import get_settings


class CurrentUser(BaseModel):
    """Identity of the caller as asserted by the identity provider's token"""
    user_id: str
    name: str = ""
    email: str = ""


def create_access_token(user_id: str, name: str = "", email: str = "", expires_minutes: Optional[int] = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {"user_id": user_id, "name": name, "email": email, "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str):
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        return payload
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_current_user(token: str) -> Optional[CurrentUser]:
    """Extract the caller's identity from a JWT token"""
    payload = decode_access_token(token)
    if not payload or not payload.get("user_id"):
        return None
    return CurrentUser(
        user_id=payload["user_id"],
        name=payload.get("name") or "",
        email=payload.get("email") or ""
    )
