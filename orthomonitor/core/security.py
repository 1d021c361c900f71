import uuid
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, HashingError, VerificationError, InvalidHashError
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi import Depends, HTTPException, Request, status, Security
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.sessions import ACCESS_TOKEN_TYPE, PATIENT_TOKEN_TYPE, TokenManager
from orthomonitor.core.utils import logger
from orthomonitor.middlewares.audit_log import PATIENT_ROLE, set_audit_actor
from orthomonitor.models.patient_model import Patient
from orthomonitor.models.user_model import User
from orthomonitor.schemas.common_schemas import DoctorRole


ph = PasswordHasher(
    time_cost=3, memory_cost=65536, parallelism=1, hash_len=32, salt_len=16
)

security = HTTPBearer(
    scheme_name="Bearer Token", description="Enter your JWT token", auto_error=False
)


def get_password_hash(password: str) -> str:
    """Hash a plaintext password using Argon2"""
    try:
        return ph.hash(password)
    except HashingError as e:
        logger.log_error({"event_type": "password_hashing_failed", "error": str(e)})
        raise HTTPException(status_code=500, detail="Password hashing failed") from e


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plaintext password against an Argon2 hashed password"""
    try:
        ph.verify(hashed_password, plain_password)
        return True
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError) as e:
        logger.log_error(
            {
                "event_type": "password_verification_error",
                "error": str(e),
            }
        )
        return False


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_subject(
    credentials: HTTPAuthorizationCredentials, expected_type: str
) -> uuid.UUID:
    if credentials is None:
        raise _unauthorized("Not authenticated")

    try:
        payload = TokenManager.decode_token(credentials.credentials)
    except ValueError as e:
        logger.log_warning({"event_type": "invalid_auth_credentials", "error": str(e)})
        raise _unauthorized("Invalid authentication credentials")

    if payload.get("type") != expected_type:
        logger.log_security_event(
            {
                "event_type": "token_type_mismatch",
                "expected": expected_type,
                "received": payload.get("type"),
            }
        )
        raise _unauthorized("Invalid token type")

    subject = payload.get("sub")
    if not subject:
        raise _unauthorized("Token does not contain a subject")

    try:
        return uuid.UUID(subject)
    except ValueError:
        raise _unauthorized("Invalid authentication credentials")


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the clinic user behind a Bearer ``access`` token.

    Raises:
        HTTPException: 401 when the token is missing, invalid, of the wrong
            type, or belongs to an unknown or inactive user.
    """
    user_id = _decode_subject(credentials, ACCESS_TOKEN_TYPE)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise _unauthorized("User not found")

    if not user.is_active:
        raise _unauthorized("Account is inactive")

    set_audit_actor(request, user.id, user.role.value, user.practice_id)
    return user


async def get_current_patient(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Security(security),
    db: AsyncSession = Depends(get_db),
) -> Patient:
    """Resolve the patient behind a Bearer ``patient`` token."""
    patient_id = _decode_subject(credentials, PATIENT_TOKEN_TYPE)

    result = await db.execute(select(Patient).where(Patient.id == patient_id))
    patient = result.scalar_one_or_none()

    if patient is None:
        raise _unauthorized("Patient not found")

    set_audit_actor(request, patient.id, PATIENT_ROLE, patient.practice_id)
    return patient


def require_role(*roles: DoctorRole):
    """Dependency factory restricting a route to the given staff roles."""

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.log_security_event(
                {
                    "event_type": "role_check_failed",
                    "user_id": str(current_user.id),
                    "role": current_user.role.value,
                    "required": [role.value for role in roles],
                }
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action",
            )
        return current_user

    return role_checker


def require_admin():
    return require_role(DoctorRole.ADMIN)
