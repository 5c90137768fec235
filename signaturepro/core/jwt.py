# signaturepro/core/jwt.py

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from signaturepro.core.config import settings
from signaturepro.core.exceptions import ExpiredTokenError, InvalidTokenError
from signaturepro.utils.logger import get_logger

logger = get_logger(__name__)

SIGNATURE_SCOPE = "signature"
ACCESS_SCOPE = "access"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time, timezone-aware UTC"""
    return datetime.now(timezone.utc)


class SignatureTokenClaims(BaseModel):
    """Decoded signature-link token: one signer, one contract."""
    signer_id: str
    contract_id: str
    email: str
    token_id: str
    expires_at: datetime


class AccessTokenClaims(BaseModel):
    """Decoded access token identifying a contract owner."""
    user_id: str
    email: str
    token_id: str
    expires_at: datetime


# --- JWT Token Management ---

class TokenService:
    """
    Issues and verifies stateless HS256 tokens.

    Signature tokens bind {signer, contract, email} for signature links.
    Access tokens identify an owner for the API and the realtime channel.
    Nothing is stored server side: a stale but valid token is refused by
    the coordinator's state guards, not by a revocation list.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        signature_ttl: timedelta = timedelta(hours=1),
        access_ttl: timedelta = timedelta(days=1),
        clock: Clock = utc_now,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.signature_ttl = signature_ttl
        self.access_ttl = access_ttl
        self._clock = clock

    def _encode(self, claims: Dict[str, Any], ttl: timedelta) -> str:
        now = self._clock()
        expire = now + ttl
        to_encode = dict(claims)
        to_encode.update({
            "iat": int(now.timestamp()),
            "exp": int(expire.timestamp()),
            "jti": uuid.uuid4().hex,
        })
        try:
            return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)
        except Exception as e:
            logger.error("Error creating token", scope=claims.get("scope"), error_message=str(e))
            raise

    def _decode(self, token: str, scope: str) -> Dict[str, Any]:
        if not token or not isinstance(token, str):
            raise InvalidTokenError()
        try:
            # Expiry is checked against the injected clock below
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError as e:
            logger.warning("Error verifying token", scope=scope, error_message=str(e))
            raise InvalidTokenError() from e

        if payload.get("scope") != scope:
            logger.warning("Token presented with the wrong scope", expected=scope, actual=payload.get("scope"))
            raise InvalidTokenError()

        exp = payload.get("exp")
        if not isinstance(exp, (int, float)):
            raise InvalidTokenError()
        if self._clock().timestamp() > exp:
            logger.info("Token has expired", scope=scope, jti=payload.get("jti"))
            raise ExpiredTokenError()
        return payload

    def issue_signature_token(
        self,
        signer_id: str,
        contract_id: str,
        email: str,
        ttl: Optional[timedelta] = None,
    ) -> str:
        """Create a short-lived signature-link token for one signer."""
        return self._encode(
            {
                "scope": SIGNATURE_SCOPE,
                "signerId": signer_id,
                "contractId": contract_id,
                "email": email,
            },
            ttl or self.signature_ttl,
        )

    def verify_signature_token(self, token: str) -> SignatureTokenClaims:
        """
        Verify a signature-link token.

        Raises:
            ExpiredTokenError: past its expiry
            InvalidTokenError: bad signature, format, scope or claims
        """
        payload = self._decode(token, SIGNATURE_SCOPE)
        try:
            return SignatureTokenClaims(
                signer_id=payload["signerId"],
                contract_id=payload["contractId"],
                email=payload["email"],
                token_id=payload["jti"],
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, ValueError) as e:
            raise InvalidTokenError() from e

    def issue_access_token(self, user_id: str, email: str, ttl: Optional[timedelta] = None) -> str:
        """Create an access token for an owner"""
        return self._encode(
            {"scope": ACCESS_SCOPE, "sub": email, "userId": user_id},
            ttl or self.access_ttl,
        )

    def verify_access_token(self, token: str) -> AccessTokenClaims:
        """Verify an access token"""
        payload = self._decode(token, ACCESS_SCOPE)
        try:
            return AccessTokenClaims(
                user_id=payload["userId"],
                email=payload["sub"],
                token_id=payload["jti"],
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, ValueError) as e:
            raise InvalidTokenError("Invalid access token") from e


def build_token_service(clock: Clock = utc_now) -> TokenService:
    """Token service configured from settings"""
    return TokenService(
        secret_key=settings.secret_key,
        algorithm=settings.algorithm,
        signature_ttl=timedelta(minutes=settings.signature_token_expire_minutes),
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        clock=clock,
    )
