# core/security.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


class JWTManager:
    """JWT token handling for candidate and owner identities"""

    def __init__(self):
        self.secret_key = settings.jwt_secret
        self.algorithm = settings.jwt_algorithm
        self.token_expire = timedelta(days=settings.jwt_candidate_expiration)
        self.issuer = settings.jwt_issuer

    def create_access_token(
        self,
        user_id: int,
        role: str = "candidate",
        custom_expiration: Optional[timedelta] = None,
    ) -> str:
        """
        Create JWT access token

        Args:
            user_id: Candidate (or test owner) id
            role: Role claim carried in the token
            custom_expiration: Override default expiration

        Returns:
            JWT access token string
        """
        issued_at = datetime.now(timezone.utc)
        expire = issued_at + (custom_expiration or self.token_expire)

        payload = {
            "sub": str(user_id),
            "user_id": user_id,
            "role": role,
            "exp": int(expire.timestamp()),
            "iat": int(issued_at.timestamp()),
            "iss": self.issuer,
            "type": "access",
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str, token_type: str = "access") -> Dict[str, Any]:
        """
        Verify and decode a JWT token.
        Raises 401 Unauthorized if the token is invalid, expired or of the wrong type.
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except JWTError as e:
            logger.warning(f"JWT verification failed: {e}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Could not validate credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if payload.get("type") != token_type:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token type",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return payload


jwt_manager = JWTManager()
