from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orthomonitor.api.dependencies import get_db
from orthomonitor.core.security import get_current_user
from orthomonitor.core.utils import logger
from orthomonitor.models.user_model import User
from orthomonitor.schemas.user_schemas import (
    AuthResponseSchema,
    UserLoginSchema,
    UserRegisterSchema,
    UserResponseSchema,
)
from orthomonitor.services.auth_service import AuthService


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=AuthResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def register(user_data: UserRegisterSchema, db: AsyncSession = Depends(get_db)):
    """
    Register a clinic doctor into an existing practice.

    Returns:
        AuthResponseSchema: access token and the created user

    Raises:
        HTTPException: 404 unknown practice, 409 email already registered
    """
    auth_service = AuthService(db)

    try:
        token, user = await auth_service.register(user_data)
        return AuthResponseSchema(
            access_token=token,
            user=UserResponseSchema.model_validate(user, from_attributes=True),
        )

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "user_registration_error",
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during registration",
        )


@router.post("/login", response_model=AuthResponseSchema)
async def login(credentials: UserLoginSchema, db: AsyncSession = Depends(get_db)):
    auth_service = AuthService(db)

    try:
        token, user = await auth_service.login(credentials)
        return AuthResponseSchema(
            access_token=token,
            user=UserResponseSchema.model_validate(user, from_attributes=True),
        )

    except HTTPException:
        raise

    except Exception as e:
        logger.log_error(
            {
                "event": "user_login_error",
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An unexpected error occurred during login",
        )


@router.get("/me", response_model=UserResponseSchema)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the authenticated clinic user."""
    return UserResponseSchema.model_validate(current_user, from_attributes=True)
