from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict, Any, Optional
import logging

from services.auth_service import auth_service
from services.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["authentication"])
security = HTTPBearer(auto_error=False)

def _bearer_token(credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials

# Dependency resolving the verified caller. The token's subject is the only
# user id trusted for ownership checks.
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Dict[str, Any]:
    token = _bearer_token(credentials)
    try:
        return await auth_service.verify_token(token)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

@router.get("/me")
async def me(current_user: dict = Depends(get_current_user)) -> Dict[str, Any]:
    """Current authenticated user"""
    return {"user": {"id": current_user["id"], "email": current_user.get("email")}}

@router.post("/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    current_user: dict = Depends(get_current_user),
) -> Dict[str, Any]:
    """
    Logout endpoint - blacklists the token
    """
    token_blacklisted = await auth_service.blacklist_token(_bearer_token(credentials))
    logger.info(f"User {current_user['id']} logged out")
    return {
        "message": "Logged out successfully",
        "token_blacklisted": token_blacklisted
    }
