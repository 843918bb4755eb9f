import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any

import jwt
import redis.asyncio as redis

from config import settings
from services.exceptions import AuthenticationError

# Configure logging
logger = logging.getLogger(__name__)

class AuthService:
    """
    Verifies bearer tokens issued by the identity provider.

    Tokens are JWTs signed with the provider's secret; the ``sub`` claim is the
    only trusted user id. Logged-out tokens are kept in Redis until they expire.
    """

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client
        self.secret_key = settings.AUTH_JWT_SECRET
        self.algorithm = settings.AUTH_JWT_ALGORITHM
        self.audience = settings.AUTH_JWT_AUDIENCE

    def _decode(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        options = {"verify_exp": verify_exp}
        if not self.audience:
            options["verify_aud"] = False
        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            audience=self.audience,
            options=options,
        )

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify JWT token and return the principal it identifies"""
        try:
            payload = self._decode(token)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")

        user_id = payload.get("sub")
        if not user_id:
            raise AuthenticationError("Invalid token")

        if await self.is_token_blacklisted(token):
            raise AuthenticationError("Token has been revoked")

        return {
            "id": str(user_id),
            "email": payload.get("email"),
            "payload": payload,
        }

    async def blacklist_token(self, token: str) -> bool:
        """Add token to blacklist (for logout)"""
        if not self.redis_client:
            return False

        try:
            payload = self._decode(token, verify_exp=False)
            exp_timestamp = payload.get("exp")
            if not exp_timestamp:
                return False

            remaining_time = int(exp_timestamp - datetime.now(timezone.utc).timestamp())
            if remaining_time <= 0:
                return False

            await self.redis_client.setex(f"blacklist_token:{token}", remaining_time, "1")
            logger.info("Token added to blacklist")
            return True

        except Exception as e:
            logger.error(f"Error blacklisting token: {str(e)}")
            return False

    async def is_token_blacklisted(self, token: str) -> bool:
        """Check if token is blacklisted; an unreachable Redis counts as not blacklisted"""
        if not self.redis_client:
            return False

        try:
            return bool(await self.redis_client.exists(f"blacklist_token:{token}"))
        except Exception as e:
            logger.warning(f"Could not check token blacklist: {str(e)}")
            return False

# Global auth service instance
auth_service = AuthService()
