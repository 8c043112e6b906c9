"""
Pathway Admin - Authentication Router
Admin sign-in, sign-out, password change and password reset.
"""
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from ..auth import require_admin
from ..errors import (
    SIGN_IN_MESSAGES,
    TOO_MANY_REQUESTS,
    IdentityError,
    user_facing_message,
)
from ..models.db_models import AuthAccountDB
from ..services.identity_service import IdentityService
from ..services.mail_service import ResetMailer
from .deps import get_identity, get_mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    email: str
    role: Optional[str] = None
    display_name: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class AccountResponse(BaseModel):
    """The signed-in admin."""
    uid: str
    email: str
    role: Optional[str] = None
    display_name: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: str = ""
    new_password: str = ""
    confirm_password: str = ""


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirmRequest(BaseModel):
    token: str
    new_password: str


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/login", response_model=TokenResponse)
async def login(request: LoginRequest, identity: IdentityService = Depends(get_identity)):
    """
    Authenticate an admin and return a JWT token.
    """
    try:
        result = identity.sign_in(request.email, request.password)
    except IdentityError as e:
        logger.warning(f"Sign-in failed for {request.email}: {e.code}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS if e.code == TOO_MANY_REQUESTS
            else status.HTTP_401_UNAUTHORIZED,
            detail=user_facing_message(
                e, SIGN_IN_MESSAGES, "Login failed. Please check your credentials and try again."
            ),
            headers={"WWW-Authenticate": "Bearer"},
        )

    account = result.account
    if not account.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )

    logger.info(f"Admin logged in: {account.email}")
    return TokenResponse(
        access_token=result.access_token,
        email=account.email,
        role=account.role,
        display_name=account.display_name,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    current_admin: AuthAccountDB = Depends(require_admin),
    identity: IdentityService = Depends(get_identity),
):
    """
    Sign out. Every token issued to this account stops working.
    """
    identity.sign_out(current_admin.uid)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=AccountResponse)
async def get_me(current_admin: AuthAccountDB = Depends(require_admin)):
    """Return the signed-in admin."""
    return AccountResponse(
        uid=current_admin.uid,
        email=current_admin.email,
        role=current_admin.role,
        display_name=current_admin.display_name,
    )


@router.post("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    current_admin: AuthAccountDB = Depends(require_admin),
    identity: IdentityService = Depends(get_identity),
):
    """
    Change the admin's password after re-authenticating with the current one.
    """
    identity.change_password(
        current_admin.uid,
        request.current_password,
        request.new_password,
        request.confirm_password,
    )
    return MessageResponse(message="Password updated")


@router.post("/password-reset", response_model=MessageResponse)
async def request_password_reset(
    request: PasswordResetRequest,
    identity: IdentityService = Depends(get_identity),
    mailer: ResetMailer = Depends(get_mailer),
):
    """
    Issue a password reset token and email the reset link to the account.
    """
    email = request.email.strip().lower()
    token = identity.send_password_reset_email(email)
    mailer.send_password_reset(email, token)
    return MessageResponse(message="Password reset email sent")


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(request: PasswordResetConfirmRequest, identity: IdentityService = Depends(get_identity)):
    """Set a new password using a reset token."""
    identity.reset_password(request.token, request.new_password)
    return MessageResponse(message="Password has been reset")
