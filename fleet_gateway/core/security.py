"""
Fleet Gateway - Credential Verifier
Password hashing (bcrypt) and device bearer tokens (JWT, HS256)
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import bcrypt
from jose import ExpiredSignatureError, JWTError, jwt

from fleet_gateway.core.config import settings
from fleet_gateway.core.errors import InvalidToken

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
TOKEN_TYPE = "vehicle"


class CredentialVerifier:
    """Hashes device secrets and issues/verifies device tokens."""

    def __init__(
        self,
        secret: str | None = None,
        ttl: timedelta | None = None,
        rounds: int | None = None,
    ):
        self._secret = secret or settings.vehicle_jwt_secret
        self._ttl = ttl or timedelta(days=settings.token_ttl_days)
        self._rounds = rounds or settings.bcrypt_rounds

    # ==================== SECRETS ====================

    def hash_secret(self, secret: str) -> str:
        """Salted one-way hash of a device secret."""
        hashed = bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt(rounds=self._rounds))
        return hashed.decode("utf-8")

    def verify_secret(self, secret: str, hashed: str | None) -> bool:
        """Check a presented secret against a stored hash."""
        if not secret or not hashed:
            return False
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError as e:
            logger.warning(f"Unusable password hash or secret: {e}")
            return False

    # ==================== TOKENS ====================

    def issue(
        self,
        device_uid: str,
        claims: dict[str, Any] | None = None,
        ttl: timedelta | None = None,
    ) -> str:
        """Sign a token bound to one device."""
        now = datetime.now(timezone.utc)
        payload = dict(claims or {})
        payload.update({
            "vehicleId": device_uid,
            "type": TOKEN_TYPE,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": now + (ttl or self._ttl),
        })
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def verify(self, token: str) -> dict[str, Any]:
        """
        Verify signature and expiry of a token.

        Expired and malformed tokens both raise InvalidToken; only the log
        tells them apart.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            logger.info("Token rejected: expired")
            raise InvalidToken("Invalid or expired token")
        except JWTError as e:
            logger.info(f"Token rejected: malformed or bad signature ({e})")
            raise InvalidToken("Invalid or expired token")

        if claims.get("type") != TOKEN_TYPE or not claims.get("vehicleId"):
            logger.info("Token rejected: missing device claims")
            raise InvalidToken("Invalid or expired token")
        return claims
