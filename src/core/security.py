from jose import JWTError, jwt
from datetime import datetime, timezone, timedelta
import uuid
from typing import Optional, Dict, Any

from src.core.config import settings


class SecurityUtils:
    # ==================== JWT TOKEN GENERATION ====================
    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> tuple[str, datetime, str]:
        """
        Create JWT access token with jti claim.

        Tokens are normally issued by the identity provider; this is used by
        service scripts and tests that need a token signed with the shared key.
        """
        to_encode = data.copy()
        jti = str(uuid.uuid4())

        if expires_delta:
            expire = datetime.now(timezone.utc) + expires_delta
        else:
            expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

        to_encode.update({
            "exp": expire,
            "iat": datetime.now(timezone.utc),
            "jti": jti,
        })

        encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
        return encoded_jwt, expire, jti

    # ==================== TOKEN VERIFICATION ====================
    @staticmethod
    def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
        """Verify JWT access token"""
        try:
            payload = jwt.decode(
                token,
                settings.SECRET_KEY,
                algorithms=[settings.JWT_ALGORITHM],
                options={"verify_aud": False},
            )
        except JWTError:
            return None

        if not payload.get("sub"):
            return None
        return payload
