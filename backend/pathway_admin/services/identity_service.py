"""
Identity Service

Credential accounts for console users and admins: creation, sign-in with
lockout, sign-out, re-authentication, password change and reset.
"""
import hashlib
import logging
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..auth import create_access_token, hash_password, verify_password
from ..errors import (
    EMAIL_IN_USE,
    INVALID_EMAIL,
    PASSWORD_CHANGE_MESSAGES,
    PASSWORD_RESET_MESSAGES,
    REQUIRES_RECENT_LOGIN,
    TOO_MANY_REQUESTS,
    USER_DISABLED,
    USER_NOT_FOUND,
    WEAK_PASSWORD,
    WRONG_PASSWORD,
    IdentityError,
    ServiceError,
    StoreError,
    ValidationError,
    user_facing_message,
)
from ..models.db_models import AdminRole, AuthAccountDB, PasswordResetDB

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Minimum the identity backend itself accepts; the console form asks for more
MIN_ACCOUNT_PASSWORD_LENGTH = 6
MIN_PASSWORD_LENGTH = 8


def validate_password(password: Optional[str]) -> Optional[str]:
    """Error message for a weak password, None when acceptable."""
    if not password:
        return "Password is required"
    if len(password) < MIN_PASSWORD_LENGTH:
        return "Password must be at least 8 characters long"
    has_letter = any(ch.isascii() and ch.isalpha() for ch in password)
    has_digit = any(ch.isdigit() for ch in password)
    if not has_letter or not has_digit:
        return "Password must contain both letters and numbers"
    return None


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass
class SignInResult:
    account: AuthAccountDB
    access_token: str


class IdentityService:
    """Credential store backed by the auth_accounts table."""

    def __init__(self, db: Session, now: Optional[datetime] = None):
        self.db = db
        self.now = now

    def _utcnow(self) -> datetime:
        # Columns hold naive UTC
        current = self.now or datetime.now(timezone.utc)
        if current.tzinfo is not None:
            current = current.astimezone(timezone.utc).replace(tzinfo=None)
        return current

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Identity write failed: {e}")
            raise StoreError(str(e)) from e

    def _account(self, uid: str) -> AuthAccountDB:
        account = self.db.query(AuthAccountDB).filter(AuthAccountDB.uid == uid).first()
        if account is None:
            raise IdentityError(USER_NOT_FOUND)
        return account

    def get_by_email(self, email: str) -> Optional[AuthAccountDB]:
        return self.db.query(AuthAccountDB).filter(AuthAccountDB.email == normalize_email(email)).first()

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def create_account(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
        role: Optional[AdminRole] = None,
    ) -> str:
        """Create a credential account and return its uid. `role` makes it an admin."""
        email = normalize_email(email)
        if not EMAIL_PATTERN.match(email):
            raise IdentityError(INVALID_EMAIL)
        if not password or len(password) < MIN_ACCOUNT_PASSWORD_LENGTH:
            raise IdentityError(WEAK_PASSWORD)
        if self.get_by_email(email):
            raise IdentityError(EMAIL_IN_USE)

        now = self._utcnow()
        account = AuthAccountDB(
            uid=str(uuid.uuid4()),
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
            is_admin=role is not None,
            role=role.value if role else None,
            failed_sign_ins=0,
            token_version=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(account)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise IdentityError(EMAIL_IN_USE) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Account creation for {email} failed: {e}")
            raise StoreError(str(e)) from e

        logger.info(f"Created account {account.uid} for {email}")
        return account.uid

    def delete_account(self, uid: str) -> None:
        account = self._account(uid)
        self.db.delete(account)
        self._commit()
        logger.info(f"Deleted account {uid}")

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def sign_in(self, email: str, password: str) -> SignInResult:
        """
        Verify credentials and issue an access token.

        After MAX_FAILED_SIGN_INS consecutive failures the account is locked
        for SIGN_IN_LOCKOUT_MINUTES.
        """
        if not email or "@" not in email:
            raise ValidationError("Please provide a valid email address")
        if not password:
            raise ValidationError("Please enter your password")

        account = self.get_by_email(email)
        if account is None:
            raise IdentityError(USER_NOT_FOUND)
        if account.disabled:
            raise IdentityError(USER_DISABLED)

        now = self._utcnow()
        if account.locked_until and account.locked_until > now:
            raise IdentityError(TOO_MANY_REQUESTS)

        self._check_password(account, password, now)
        account.last_authenticated_at = now
        self._commit()

        token = create_access_token(
            account.uid, account.email, account.role or "", account.token_version or 0
        )
        logger.info(f"Account {account.uid} signed in")
        return SignInResult(account=account, access_token=token)

    def _check_password(self, account: AuthAccountDB, password: str, now: datetime) -> None:
        if verify_password(password, account.password_hash):
            account.failed_sign_ins = 0
            account.locked_until = None
            return

        account.failed_sign_ins = (account.failed_sign_ins or 0) + 1
        if account.failed_sign_ins >= config.MAX_FAILED_SIGN_INS:
            account.locked_until = now + timedelta(minutes=config.SIGN_IN_LOCKOUT_MINUTES)
            account.failed_sign_ins = 0
            logger.warning(f"Account {account.uid} locked after repeated failed sign-ins")
        self._commit()
        raise IdentityError(WRONG_PASSWORD)

    def sign_out(self, uid: str) -> None:
        """Invalidate every token issued so far."""
        account = self._account(uid)
        account.token_version = (account.token_version or 0) + 1
        self._commit()
        logger.info(f"Account {uid} signed out")

    def reauthenticate(self, uid: str, password: str) -> None:
        account = self._account(uid)
        now = self._utcnow()
        if account.locked_until and account.locked_until > now:
            raise IdentityError(TOO_MANY_REQUESTS)
        self._check_password(account, password, now)
        account.last_authenticated_at = now
        self._commit()

    # =========================================================================
    # PASSWORDS
    # =========================================================================

    def update_password(self, uid: str, new_password: str) -> None:
        """Requires a sign-in or re-authentication within RECENT_LOGIN_WINDOW_MINUTES."""
        account = self._account(uid)
        now = self._utcnow()
        window = timedelta(minutes=config.RECENT_LOGIN_WINDOW_MINUTES)
        if not account.last_authenticated_at or now - account.last_authenticated_at > window:
            raise IdentityError(REQUIRES_RECENT_LOGIN)
        if not new_password or len(new_password) < MIN_ACCOUNT_PASSWORD_LENGTH:
            raise IdentityError(WEAK_PASSWORD)

        account.password_hash = hash_password(new_password)
        account.updated_at = now
        self._commit()
        logger.info(f"Password updated for account {uid}")

    def change_password(self, uid: str, current_password: str, new_password: str, confirm_password: str) -> None:
        """Form validation, then re-authentication, then the update."""
        if not current_password or not new_password or not confirm_password:
            raise ValidationError("Please fill in all fields.")
        if new_password != confirm_password:
            raise ValidationError("New passwords do not match.")
        problem = validate_password(new_password)
        if problem:
            raise ValidationError(problem)

        try:
            self.reauthenticate(uid, current_password)
            self.update_password(uid, new_password)
        except (IdentityError, StoreError) as e:
            logger.error(f"Password change for {uid} failed: {e}")
            raise ServiceError(user_facing_message(
                e, PASSWORD_CHANGE_MESSAGES, "Failed to update password. Please try again."
            )) from e

    def send_password_reset_email(self, email: str) -> str:
        """
        Issue a single-use reset token for the account.

        Only the token's hash is stored. The raw token is returned for
        ResetMailer to deliver.
        """
        if not email or "@" not in email:
            raise ValidationError("Please provide a valid email address")

        account = self.get_by_email(email)
        if account is None:
            error = IdentityError(USER_NOT_FOUND)
            raise ServiceError(user_facing_message(error, PASSWORD_RESET_MESSAGES)) from error

        token = secrets.token_urlsafe(32)
        now = self._utcnow()
        self.db.add(PasswordResetDB(
            id=str(uuid.uuid4()),
            uid=account.uid,
            email=account.email,
            token_hash=hash_reset_token(token),
            expires_at=now + timedelta(minutes=config.PASSWORD_RESET_EXPIRE_MINUTES),
            created_at=now,
        ))
        try:
            self._commit()
        except StoreError as e:
            raise ServiceError("Failed to send password reset email. Please try again.") from e

        logger.info(f"Password reset requested for {account.email}")
        return token

    def reset_password(self, token: str, new_password: str) -> None:
        """Consume a reset token and set the new password."""
        problem = validate_password(new_password)
        if problem:
            raise ValidationError(problem)

        request = self.db.query(PasswordResetDB).filter(
            PasswordResetDB.token_hash == hash_reset_token(token or "")
        ).first()
        now = self._utcnow()
        if request is None or request.used_at is not None or request.expires_at < now:
            raise ServiceError("This password reset link is invalid or has expired.")

        account = self._account(request.uid)
        account.password_hash = hash_password(new_password)
        account.token_version = (account.token_version or 0) + 1
        account.failed_sign_ins = 0
        account.locked_until = None
        account.updated_at = now
        request.used_at = now
        self._commit()
        logger.info(f"Password reset completed for account {account.uid}")
