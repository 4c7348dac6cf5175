import logging

from fastapi import APIRouter, Depends, status
from jose import ExpiredSignatureError, JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings
from database import get_session
from errors import AuthenticationFailed, ValidationFailed
from mailer import send_email
from models import User
from ratelimit import rate_limit
from schemas import (
    ForgotPasswordRequest, LoginRequest, RefreshRequest, RegisterRequest, ResetPasswordRequest, ok,
)
from security import Security, get_current_user, get_security, get_settings
from services import users as user_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(rate_limit)])

RESET_MESSAGE = "If an account with that email exists, a password reset link has been sent"


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_session),
                   security: Security = Depends(get_security)):
    user = await user_service.create(session, security, payload.name, payload.email, payload.password)
    return ok(
        {"userId": user.id, "userName": user.name, "email": user.email,
         "token": security.create_access_token(user.id)},
        "User registered successfully",
    )


@router.post("/login")
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_session),
                security: Security = Depends(get_security)):
    user = await user_service.authenticate(session, security, payload.email, payload.password)
    return ok(
        {"token": security.create_access_token(user.id),
         "refreshToken": security.create_refresh_token(user.id),
         "userId": user.id, "userName": user.name},
        "Login successful",
    )


@router.post("/logout")
async def logout(_: User = Depends(get_current_user)):
    # Stateless JWT: the client discards its tokens.
    return ok(message="Logout successful")


@router.post("/refresh")
async def refresh(payload: RefreshRequest, session: AsyncSession = Depends(get_session),
                  security: Security = Depends(get_security)):
    try:
        user_id = security.decode_token(payload.refresh_token, "refresh")
    except ExpiredSignatureError:
        raise AuthenticationFailed("Refresh token expired")
    except JWTError:
        raise AuthenticationFailed("Invalid refresh token")
    user = await user_service.get_by_id(session, user_id)
    if user is None or user.status != "active":
        raise AuthenticationFailed("Invalid refresh token")
    return ok({"token": security.create_access_token(user.id),
               "refreshToken": security.create_refresh_token(user.id)})


@router.post("/forgot-password")
async def forgot_password(payload: ForgotPasswordRequest, session: AsyncSession = Depends(get_session),
                          security: Security = Depends(get_security),
                          settings: Settings = Depends(get_settings)):
    user = await user_service.get_by_email(session, payload.email)
    if user is not None and user.status == "active":
        token = security.create_reset_token(user.id)
        send_email(user.email, "Reset Password", f"Reset link: {settings.frontend_url}/reset-password?token={token}")
    else:
        logger.info("Password reset requested for unknown address %s", payload.email)
    return ok(message=RESET_MESSAGE)


@router.post("/reset-password")
async def reset_password(payload: ResetPasswordRequest, session: AsyncSession = Depends(get_session),
                         security: Security = Depends(get_security)):
    try:
        user_id = security.decode_token(payload.token, "reset")
    except JWTError:
        raise ValidationFailed("Invalid or expired reset token")
    await user_service.set_password(session, security, user_id, payload.new_password)
    return ok(message="Password reset successful")
