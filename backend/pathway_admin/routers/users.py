"""
Pathway Admin - Users Router
User list, details, creation and edits.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

from ..auth import require_admin
from ..models.records import UserStatus, UserTier
from ..services.document_store import DocumentStore, get_store
from ..services.identity_service import IdentityService
from ..services.user_service import UserService
from .deps import get_identity, get_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"], dependencies=[Depends(require_admin)])

TIER_NAMES = [t.value for t in UserTier]
STATUS_NAMES = [s.value for s in UserStatus]


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    tier: str
    status: str
    date_joined: str
    last_activity: str
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None


class UserDetailsResponse(UserResponse):
    """User row plus documents, scores and the credit report analysis."""
    driving_license_url: Optional[str] = None
    credit_report_url: Optional[str] = None
    documents_completed: bool = False
    credit_report_analysis: Optional[Dict[str, Any]] = None
    scores: Dict[str, Dict[str, Any]] = {}


class UsersPageResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    page_size: int
    has_more: bool


class CountResponse(BaseModel):
    total: int


class CreateUserRequest(BaseModel):
    name: str
    email: EmailStr
    password: str
    tier: str = UserTier.CORE.value
    status: str = UserStatus.ACTIVE.value
    phone: Optional[str] = None
    address: Optional[str] = None
    date_joined: Optional[str] = None  # ISO format: YYYY-MM-DD

    @field_validator('tier')
    @classmethod
    def validate_tier(cls, v):
        if v not in TIER_NAMES:
            raise ValueError(f'Invalid tier. Must be one of: {", ".join(TIER_NAMES)}')
        return v

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v not in STATUS_NAMES:
            raise ValueError(f'Invalid status. Must be one of: {", ".join(STATUS_NAMES)}')
        return v


class UpdateUserRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    tier: Optional[str] = None
    status: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    date_joined: Optional[str] = None
    last_activity: Optional[str] = None

    @field_validator('tier')
    @classmethod
    def validate_tier(cls, v):
        if v is not None and v not in TIER_NAMES:
            raise ValueError(f'Invalid tier. Must be one of: {", ".join(TIER_NAMES)}')
        return v

    @field_validator('status')
    @classmethod
    def validate_status(cls, v):
        if v is not None and v not in STATUS_NAMES:
            raise ValueError(f'Invalid status. Must be one of: {", ".join(STATUS_NAMES)}')
        return v


class CreatedResponse(BaseModel):
    id: str


class MessageResponse(BaseModel):
    message: str


def get_user_service(
    store: DocumentStore = Depends(get_store),
    identity: IdentityService = Depends(get_identity),
    now: Optional[datetime] = Depends(get_now),
) -> UserService:
    return UserService(store, identity, now)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("", response_model=UsersPageResponse)
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    tier: Optional[str] = Query(None, description="Core, Advantage, Pro or all"),
    user_status: Optional[str] = Query(None, alias="status", description="active, inactive or all"),
    sort_by: str = Query("date_joined", pattern="^(date_joined|last_activity)$"),
    service: UserService = Depends(get_user_service),
):
    """
    Paginated user list with search and filters.
    """
    result = service.get_users(
        page=page,
        page_size=page_size,
        search=search,
        tier_filter=tier,
        status_filter=user_status,
        sort_by=sort_by,
    )
    return UsersPageResponse(
        users=[UserResponse.model_validate(u) for u in result.users],
        total=result.total,
        page=page,
        page_size=page_size,
        has_more=result.has_more,
    )


@router.get("/count", response_model=CountResponse)
async def count_users(service: UserService = Depends(get_user_service)):
    return CountResponse(total=service.get_total_users_count())


@router.get("/{user_id}", response_model=UserDetailsResponse)
async def get_user(user_id: str, service: UserService = Depends(get_user_service)):
    """Full details for one user."""
    details = service.get_user_by_id(user_id)
    if details is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return UserDetailsResponse.model_validate(details)


@router.post("", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_user(request: CreateUserRequest, service: UserService = Depends(get_user_service)):
    """
    Create a sign-in account and the matching user document.
    """
    uid = service.create_user(request.model_dump())
    return CreatedResponse(id=uid)


@router.patch("/{user_id}", response_model=MessageResponse)
async def update_user(user_id: str, request: UpdateUserRequest, service: UserService = Depends(get_user_service)):
    """Update only the fields sent."""
    service.update_user(user_id, request.model_dump(exclude_unset=True))
    return MessageResponse(message="User updated")
