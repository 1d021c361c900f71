from typing import Tuple
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.core.security import get_password_hash, verify_password
from orthomonitor.core.sessions import TokenManager
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.repositories.practice_repo import PracticeRepository
from orthomonitor.repositories.user_repo import UserRepository
from orthomonitor.schemas.common_schemas import DoctorRole
from orthomonitor.schemas.user_schemas import UserLoginSchema, UserRegisterSchema


class AuthService:
    """Clinic staff registration and login."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repo = UserRepository(self.db)
        self.practice_repo = PracticeRepository(self.db)

    @staticmethod
    def _issue_token(user: User) -> str:
        return TokenManager.create_access_token(
            {
                "sub": str(user.id),
                "practice_id": str(user.practice_id),
                "role": user.role.value,
            }
        )

    async def register(self, user_data: UserRegisterSchema) -> Tuple[str, User]:
        """
        Create a DOCTOR account inside an existing practice.

        Raises:
            HTTPException: 404 unknown practice, 409 email already registered
        """
        practice = await self.practice_repo.get_practice_by_id(user_data.practice_id)
        if not practice:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Practice with ID '{user_data.practice_id}' not found",
            )

        existing = await self.repo.get_user_by_email(user_data.email)
        if existing:
            logger.log_warning(
                {
                    "event": "user_registration_failed",
                    "reason": "duplicate_email",
                    "email": user_data.email,
                }
            )
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already registered",
            )

        user = User(
            practice_id=user_data.practice_id,
            name=user_data.name,
            email=user_data.email,
            password=get_password_hash(user_data.password),
            role=DoctorRole.DOCTOR,
            credentials=user_data.credentials,
        )
        user = await self.repo.create_user(user)

        logger.log_info(
            {
                "event": "user_registered",
                "user_id": str(user.id),
                "practice_id": str(user.practice_id),
            }
        )
        return self._issue_token(user), user

    async def login(self, credentials: UserLoginSchema) -> Tuple[str, User]:
        user = await self.repo.get_user_by_email(credentials.email)

        if not user or not verify_password(credentials.password, user.password):
            logger.log_security_event(
                {
                    "event": "login_failed",
                    "audience": "clinic",
                    "email": credentials.email,
                }
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )

        if not user.is_active:
            logger.log_security_event(
                {"event": "login_blocked", "reason": "inactive", "user_id": str(user.id)}
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )

        logger.log_info({"event": "user_logged_in", "user_id": str(user.id)})
        return self._issue_token(user), user
