from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.eventdesk.models import Base, new_uuid

MEMBER_ROLES = ("owner", "editor", "viewer")
INVITATION_STATUSES = ("active", "used", "revoked", "expired")
GENDERS = ("男", "女", "それ以外")

REGISTRATION_FIELDS = ("company_name", "name", "gender", "age", "phone_number", "email")
INVITE_FIELDS = ("invite_code", "name", "gender", "age", "phone_number", "email")


class OrganizerProfile(Base):
    __tablename__ = "organizer_profiles"
    __table_args__ = (Index("idx_organizer_profiles_is_approved", "is_approved"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    organization_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    website_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Flipped by the admin console; events cannot be published while False
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class OrganizerMember(Base):
    __tablename__ = "organizer_members"
    __table_args__ = (Index("idx_organizer_members_profile", "organizer_profile_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    organizer_profile_id: Mapped[str] = mapped_column(
        ForeignKey("organizer_profiles.id", ondelete="CASCADE"), nullable=False
    )
    line_user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    gender: Mapped[str | None] = mapped_column(String(16), nullable=True)  # 男 | 女 | それ以外
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)

    role: Mapped[str] = mapped_column(String(16), nullable=False, default="editor")  # owner | editor | viewer
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class OrganizerInvitation(Base):
    __tablename__ = "organizer_invitations"
    __table_args__ = (Index("idx_organizer_invitations_profile", "organizer_profile_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    organizer_profile_id: Mapped[str] = mapped_column(
        ForeignKey("organizer_profiles.id", ondelete="CASCADE"), nullable=False
    )
    code: Mapped[str] = mapped_column(String(16), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="editor")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active")

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_by_member_id: Mapped[str | None] = mapped_column(
        ForeignKey("organizer_members.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
