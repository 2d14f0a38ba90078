"""
Authentication utilities - JWT bearer verification

Tokens are issued by the dashboard's login service; this backend only
verifies them.
"""
import os
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from pydantic import BaseModel

# Configuration
JWT_SECRET = os.getenv("JWT_SECRET", "your-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"

# Security scheme
security = HTTPBearer()


class TokenData(BaseModel):
    username: Optional[str] = None
    hotel_ids: Optional[list] = None


def decode_token(token: str) -> TokenData:
    """Decode and validate a JWT, raising 401 on any problem"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        raise credentials_exception

    username = payload.get("sub")
    if username is None:
        raise credentials_exception
    return TokenData(username=username, hotel_ids=payload.get("hotels"))


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> dict:
    """Get current user from JWT token"""
    token_data = decode_token(credentials.credentials)
    return {
        "username": token_data.username,
        "hotel_ids": token_data.hotel_ids,
    }


def check_hotel_access(current_user: dict, hotel_id) -> None:
    """403 unless the token grants access to the hotel (no claim = all hotels)"""
    allowed = current_user.get("hotel_ids")
    if allowed is not None and str(hotel_id) not in {str(h) for h in allowed}:
        raise HTTPException(status_code=403, detail=f"No access to hotel {hotel_id}")
