import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from orthomonitor.config.config import settings

ACCESS_TOKEN_EXPIRE_MINUTES = settings.ACCESS_TOKEN_EXPIRE_MINUTES
PATIENT_TOKEN_EXPIRE_MINUTES = settings.PATIENT_TOKEN_EXPIRE_MINUTES
SECRET_KEY = settings.SECRET_KEY
ALGORITHM = settings.ALGORITHM

ACCESS_TOKEN_TYPE = "access"
PATIENT_TOKEN_TYPE = "patient"


class TokenManager:
    """
    JWT issuing and decoding.

    Clinic staff and patients share the signing key; the ``type`` claim keeps
    the two audiences apart so a patient token never authorises a clinic
    route and vice versa.
    """

    @staticmethod
    def _encode(data: dict, token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + expires_delta
        to_encode.update({"exp": expire, "type": token_type})
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(
        data: dict,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a clinic-user access token."""
        return TokenManager._encode(
            data,
            ACCESS_TOKEN_TYPE,
            expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    @staticmethod
    def create_patient_token(
        data: dict,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a patient-portal token."""
        return TokenManager._encode(
            data,
            PATIENT_TOKEN_TYPE,
            expires_delta or timedelta(minutes=PATIENT_TOKEN_EXPIRE_MINUTES),
        )

    @staticmethod
    def decode_token(token: str) -> dict:
        """Decode and verify a JWT token"""
        try:
            payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
            return payload
        except JWTError as e:
            raise ValueError("Invalid or expired token") from e

    @staticmethod
    def generate_invite_token() -> str:
        """64 hex characters of cryptographic randomness."""
        return secrets.token_hex(32)
