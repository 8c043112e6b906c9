"""
Pathway Admin - Authentication Utilities
Password hashing, JWT tokens, and admin auth dependencies
"""
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .config import ACCESS_TOKEN_EXPIRE_HOURS, ALGORITHM, SECRET_KEY
from .database import get_db
from .models.db_models import AdminRole, AuthAccountDB

# Bearer token security
security = HTTPBearer()


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def create_access_token(uid: str, email: str, role: str = "", token_version: int = 0) -> str:
    """Create a JWT access token. `ver` must match the account's token_version."""
    expire = datetime.utcnow() + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": uid,
        "email": email,
        "role": role,
        "ver": token_version,
        "exp": expire
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT token. Expired or tampered tokens give None."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


async def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> AuthAccountDB:
    """
    Dependency to get the signed-in account.
    Validates the JWT and checks it has not been revoked by a sign-out.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    uid: str = payload.get("sub")
    if uid is None:
        raise credentials_exception

    account = db.query(AuthAccountDB).filter(AuthAccountDB.uid == uid).first()
    if account is None or account.disabled:
        raise credentials_exception

    if payload.get("ver", 0) != (account.token_version or 0):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session has ended, please sign in again",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return account


async def require_admin(current_account: AuthAccountDB = Depends(get_current_account)) -> AuthAccountDB:
    """
    Dependency to require an admin role.
    Use this on every console route.
    """
    if not current_account.is_admin or current_account.role not in (r.value for r in AdminRole):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_account


async def require_superadmin(current_account: AuthAccountDB = Depends(require_admin)) -> AuthAccountDB:
    """Account management is limited to superadmins."""
    if current_account.role != AdminRole.SUPERADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Superadmin access required"
        )
    return current_account
