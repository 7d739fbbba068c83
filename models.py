from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

# --- AUTH ---
class LoginRequest(BaseModel):
    email: str
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str
    user_id: str

# --- PACKAGE CREDITS ---
class PackageCredit(BaseModel):
    """A member's package credit, normalized from the member_packages join."""
    id: str
    member_id: str
    package_id: str
    name: str
    type: str
    remaining: int
    total: int
    expiry: Optional[str] = None
    status: str = "active"

class PackageInfo(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price: float
    duration_days: Optional[int] = None
    session_count: Optional[int] = None
    type: str

class AssignPackageRequest(BaseModel):
    package_id: str
    start_date: Optional[str] = None  # YYYY-MM-DD, defaults to today

class PackageRequestCreate(BaseModel):
    package_id: str
    notes: Optional[str] = None

# --- MEMBERS ---
class MemberSummary(BaseModel):
    id: str
    user_id: str
    name: str
    email: str
    membership_status: str
    packages: List[PackageCredit] = []

# --- SESSIONS ---
class SessionSlot(BaseModel):
    """A session as seen by the booking flow."""
    id: str
    title: str
    type: str
    trainer_id: Optional[str] = None
    trainer_name: str = "Unknown Trainer"
    start_time: str
    end_time: str
    max_capacity: int
    current_bookings: int
    status: str
    location: Optional[str] = None
    description: Optional[str] = None

class CreateSessionRequest(BaseModel):
    title: str
    package_type_id: str
    trainer_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    max_capacity: int = Field(default=1, ge=1)
    description: Optional[str] = None
    location: Optional[str] = None

class UpdateSessionRequest(BaseModel):
    title: Optional[str] = None
    trainer_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    max_capacity: Optional[int] = Field(default=None, ge=1)
    description: Optional[str] = None
    location: Optional[str] = None

class CancelSessionRequest(BaseModel):
    reason: Optional[str] = None

# --- BOOKINGS ---
class BookSessionRequest(BaseModel):
    session_id: str
    notes: Optional[str] = None

class AdminBookSessionRequest(BaseModel):
    member_id: str
    session_id: str
    notes: Optional[str] = None

class BookingResult(BaseModel):
    status: str
    booking_id: str
    session_id: str
    member_package_id: str
    current_bookings: int
    sessions_remaining: int
    email_sent: bool
    message: str
