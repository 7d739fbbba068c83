from sqlalchemy import Column, Integer, String, Boolean, Float, ForeignKey, Text, CheckConstraint, Index, text
from database import Base
from datetime import datetime
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat()


# --- IDENTITY ---

class ProfileORM(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True, default=_uuid)
    email = Column(String, unique=True, index=True)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String, index=True, default="member")  # admin, member, trainer
    hashed_password = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(String, default=_now)
    updated_at = Column(String, default=_now)


class MemberORM(Base):
    __tablename__ = "members"

    id = Column(String, primary_key=True, index=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), unique=True, index=True)
    membership_status = Column(String, default="active", index=True)  # active, expired, suspended
    emergency_contact = Column(String, nullable=True)
    medical_conditions = Column(String, nullable=True)
    joined_at = Column(String, default=_now)
    created_at = Column(String, default=_now)
    updated_at = Column(String, default=_now)


class TrainerORM(Base):
    __tablename__ = "trainers"

    id = Column(String, primary_key=True, index=True, default=_uuid)
    user_id = Column(String, ForeignKey("profiles.id"), unique=True, index=True)
    specializations = Column(String, nullable=True)  # Comma-separated (e.g., "Yoga,HIIT")
    bio = Column(String, nullable=True)
    hourly_rate = Column(Float, nullable=True)
    is_available = Column(Boolean, default=True)
    max_sessions_per_day = Column(Integer, default=8)
    hire_date = Column(String, nullable=True)
    created_at = Column(String, default=_now)


# --- PACKAGES & CREDITS ---

class PackageTypeORM(Base):
    """Session category a package pays for (Personal Training, Group Class, ...)."""
    __tablename__ = "package_types"

    id = Column(String, primary_key=True, index=True, default=_uuid)
    name = Column(String, unique=True, index=True)
    description = Column(String, nullable=True)
    color = Column(String, default="#3b82f6")
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(String, default=_now)


class PackageORM(Base):
    __tablename__ = "packages"

    id = Column(String, primary_key=True, index=True, default=_uuid)
    name = Column(String)
    description = Column(String, nullable=True)
    price = Column(Float, default=0.0)
    duration_days = Column(Integer, nullable=True)  # null = no expiry date
    session_count = Column(Integer, nullable=True)
    package_type_id = Column(String, ForeignKey("package_types.id"), index=True)
    is_active = Column(Boolean, default=True, index=True)
    created_at = Column(String, default=_now)
    updated_at = Column(String, default=_now)


class MemberPackageORM(Base):
    """A member's purchased package instance (package credit)."""
    __tablename__ = "member_packages"
    __table_args__ = (
        CheckConstraint("sessions_remaining >= 0", name="ck_member_packages_remaining_non_negative"),
    )

    id = Column(String, primary_key=True, index=True, default=_uuid)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    package_id = Column(String, ForeignKey("packages.id"), index=True)

    start_date = Column(String)  # YYYY-MM-DD
    end_date = Column(String, nullable=True)  # YYYY-MM-DD, null = no expiry
    sessions_remaining = Column(Integer, default=0)
    sessions_total = Column(Integer, default=0)
    price = Column(Float, nullable=True)  # price paid, copied from the package
    status = Column(String, default="active", index=True)  # active, expired

    purchased_at = Column(String, default=_now)
    activated_at = Column(String, nullable=True)
    created_at = Column(String, default=_now)
    updated_at = Column(String, default=_now)


class PackageRequestORM(Base):
    """Member asking an admin for a package."""
    __tablename__ = "package_requests"

    id = Column(String, primary_key=True, index=True, default=_uuid)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    package_id = Column(String, ForeignKey("packages.id"), index=True)
    status = Column(String, default="pending", index=True)  # pending, approved, rejected
    notes = Column(String, nullable=True)
    requested_at = Column(String, default=_now)
    approved_by = Column(String, ForeignKey("profiles.id"), nullable=True)
    approved_at = Column(String, nullable=True)


# --- SESSIONS & BOOKINGS ---

class SessionORM(Base):
    """A schedulable class / training slot."""
    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("current_bookings >= 0", name="ck_sessions_bookings_non_negative"),
        CheckConstraint("current_bookings <= max_capacity", name="ck_sessions_bookings_within_capacity"),
    )

    id = Column(String, primary_key=True, index=True, default=_uuid)
    title = Column(String)
    description = Column(String, nullable=True)
    trainer_id = Column(String, ForeignKey("trainers.id"), nullable=True, index=True)
    package_type_id = Column(String, ForeignKey("package_types.id"), index=True)  # Required credit type

    # ISO datetimes (UTC, seconds precision) so string comparison orders correctly
    start_time = Column(String, index=True)
    end_time = Column(String, index=True)

    max_capacity = Column(Integer, default=1)
    current_bookings = Column(Integer, default=0)
    status = Column(String, default="scheduled", index=True)  # scheduled, completed, cancelled
    location = Column(String, nullable=True)

    cancelled_at = Column(String, nullable=True)
    cancellation_reason = Column(String, nullable=True)
    created_at = Column(String, default=_now)
    updated_at = Column(String, default=_now)


class BookingORM(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        # One live booking per member per session
        Index(
            "uq_bookings_member_session_active", "member_id", "session_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id = Column(String, primary_key=True, index=True, default=_uuid)
    member_id = Column(String, ForeignKey("members.id"), index=True)
    session_id = Column(String, ForeignKey("sessions.id"), index=True)
    member_package_id = Column(String, ForeignKey("member_packages.id"), nullable=True, index=True)

    status = Column(String, default="confirmed", index=True)  # confirmed, attended, cancelled
    booking_time = Column(String, default=_now)
    booked_by = Column(String, nullable=True)  # profile id of whoever made the booking
    notes = Column(String, nullable=True)

    attended = Column(Boolean, default=False)
    attendance_time = Column(String, nullable=True)
    cancelled_at = Column(String, nullable=True)

    created_at = Column(String, default=_now)
    updated_at = Column(String, default=_now)


# --- SIDE EFFECTS ---

class NotificationORM(Base):
    """Notifications for users (members, trainers, admins)."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("profiles.id"), index=True)  # Who receives the notification
    type = Column(String, index=True)  # session_booked, booking_cancelled, session_cancelled, alert, ...
    title = Column(String)
    message = Column(String)
    data = Column(Text, nullable=True)  # JSON data for additional context
    read = Column(Boolean, default=False, index=True)
    created_at = Column(String, default=_now)


class EmailLogORM(Base):
    """Outbound email record. Rows start as 'pending' and are dispatched after commit."""
    __tablename__ = "email_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient_email = Column(String, index=True)
    template_name = Column(String, index=True)  # booking_confirmation, session_cancellation, package_expiry_warning
    subject = Column(String)
    body_html = Column(Text, nullable=True)
    status = Column(String, default="pending", index=True)  # pending, sent, failed
    sent_at = Column(String, nullable=True)
    failed_reason = Column(String, nullable=True)
    meta_json = Column("metadata", Text, nullable=True)
    created_at = Column(String, default=_now)


class ActivityLogORM(Base):
    """Audit trail of admin / member actions."""
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=True, index=True)
    action = Column(String, index=True)  # session_booked, session_cancelled, package_assigned, ...
    target_type = Column(String)
    target_id = Column(String)
    details = Column(Text, nullable=True)  # JSON
    created_at = Column(String, default=_now, index=True)
