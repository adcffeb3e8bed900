"""
Authentifizierung für den Transkriptions-Endpoint
Service-Tokens (JWT) für integrierte Systeme, alternativ X-API-Key.
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import HTTPException, status, Request
from fastapi.security.utils import get_authorization_scheme_param
from scribe_transcriber.config import settings
from scribe_transcriber.core.logging import get_logger

logger = get_logger(__name__)


class SecurityManager:
    """Stellt Service-Tokens aus und prüft eingehende Credentials"""

    def __init__(self, secret_key: Optional[str] = None, audience: Optional[str] = None):
        self.secret_key = secret_key or settings.api_secret_key
        self.audience = audience or settings.token_audience
        self.algorithm = settings.token_algorithm

    def issue_service_token(self, subject: str, expires_delta: Optional[timedelta] = None) -> str:
        """Stellt ein Token für ein aufrufendes System aus (z.B. die Praxis-Software)"""
        now = datetime.now(timezone.utc)
        claims = {
            "sub": subject,
            "aud": self.audience,
            "iat": now,
            "exp": now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes)),
        }
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_service_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Gibt die Claims zurück, oder None bei ungültiger Signatur, Audience oder Ablauf"""
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm], audience=self.audience)
        except JWTError as e:
            logger.warning(f"Service token rejected: {e}")
            return None

    def hash_api_key(self, api_key: str) -> str:
        """Kurzer Hash, damit Keys nie im Klartext im Audit-Log landen"""
        return hashlib.sha256(api_key.encode()).hexdigest()[:16]

    def generate_request_id(self) -> str:
        return secrets.token_urlsafe(16)

    def validate_api_key(self, api_key: str) -> bool:
        """Vereinfacht: jeder nicht-leere Key"""
        return bool(api_key and api_key.strip())


# Global security manager instance
security_manager = SecurityManager()


async def get_current_user(request: Request) -> Dict[str, Any]:
    """
    Dependency für /v1/transcribe.
    Ein gültiges Bearer-Token hat Vorrang, sonst wird der X-API-Key geprüft.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header:
        scheme, credentials = get_authorization_scheme_param(auth_header)
        if scheme.lower() == "bearer":
            claims = security_manager.verify_service_token(credentials)
            if claims:
                logger.info(f"Authenticated service token for subject: {claims.get('sub')}")
                return {"sub": claims.get("sub"), "auth_type": "service_token"}

    api_key = request.headers.get("X-API-Key")
    if api_key and security_manager.validate_api_key(api_key):
        key_hash = security_manager.hash_api_key(api_key)
        logger.info(f"Authenticated via API key with hash: {key_hash}")
        return {"sub": f"api_key_{key_hash}", "auth_type": "api_key", "api_key_hash": key_hash}

    logger.warning("Authentication failed: no valid service token or API key.")
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
