"""
Pathway Admin - Router Dependencies
Shared FastAPI dependencies and CSV download responses.
"""
from datetime import datetime
from typing import Optional

from fastapi import Depends, Response
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.identity_service import IdentityService
from ..services.mail_service import ResetMailer


def get_now() -> Optional[datetime]:
    """Reference instant for range computations. None means the wall clock."""
    return None


def get_identity(db: Session = Depends(get_db), now: Optional[datetime] = Depends(get_now)) -> IdentityService:
    return IdentityService(db, now)


def get_mailer() -> ResetMailer:
    return ResetMailer()


def csv_download(filename: str, content: str) -> Response:
    """CSV body delivered as a browser download."""
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
