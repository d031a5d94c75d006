import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from errors import BadSignature, Expired, Malformed

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
TOKEN_LIFETIME = timedelta(days=7)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)


# --------------------- Passwords ---------------------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def dummy_verify() -> None:
    """Burn the same time as a real comparison when there is no hash to check."""
    pwd_context.dummy_verify()


# --------------------- Tokens ---------------------

class TokenClaims(BaseModel):
    sub: str
    email: str
    role: str = "customer"
    iat: Optional[int] = None
    exp: Optional[int] = None


class TokenService:
    """
    Issues and verifies signed bearer tokens.

    Tokens are compact JWTs (header.payload.signature, base64url segments)
    signed with a symmetric key. They carry the user id as ``sub`` plus the
    email and role, and expire a fixed lifetime after issuance.
    """

    def __init__(self, secret: str, algorithm: str = "HS256", lifetime: timedelta = TOKEN_LIFETIME):
        if not secret:
            raise ValueError("A signing secret is required")
        self._secret = secret
        self.algorithm = algorithm
        self.lifetime = lifetime

    def __repr__(self) -> str:
        return f"TokenService(algorithm={self.algorithm!r}, lifetime={self.lifetime!r})"

    def issue(self, sub: str, email: str, role: str) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {
            "sub": sub,
            "email": email,
            "role": role,
            "iat": now,
            "exp": now + self.lifetime,
        }
        return jwt.encode(to_encode, self._secret, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        if not token or len(token.split(".")) != 3:
            raise Malformed()
        try:
            jwt.get_unverified_claims(token)
        except JWTError:
            raise Malformed()

        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise Expired()
        except JWTError as e:
            logger.debug("Token rejected: %s", e)
            raise BadSignature()

        try:
            return TokenClaims(**payload)
        except ValueError:
            raise Malformed("Token is missing required claims")
