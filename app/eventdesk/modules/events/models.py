from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.eventdesk.models import Base, new_uuid

APPROVAL_STATUSES = ("pending", "approved", "rejected")
APPLICATION_STATUSES = ("pending", "approved", "rejected")
ADDITIONAL_IMAGE_SLOTS = (1, 2, 3, 4)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("idx_events_profile", "organizer_profile_id"),
        Index("idx_events_approval_status", "approval_status"),
        Index("idx_events_start_date", "event_start_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    organizer_profile_id: Mapped[str] = mapped_column(
        ForeignKey("organizer_profiles.id", ondelete="CASCADE"), nullable=False
    )

    # Basics
    event_name: Mapped[str] = mapped_column(String(50), nullable=False)
    event_name_furigana: Mapped[str] = mapped_column(String(50), nullable=False)
    genre: Mapped[str] = mapped_column(String(64), nullable=False)
    is_shizuoka_vocational_assoc_related: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    opt_out_newspaper_publication: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Period
    event_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    event_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    event_display_period: Mapped[str] = mapped_column(String(50), nullable=False)
    event_period_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    event_time: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Applications and tickets
    application_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    application_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    application_display_period: Mapped[str | None] = mapped_column(String(64), nullable=True)
    application_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    ticket_release_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    ticket_sales_location: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Content
    lead_text: Mapped[str] = mapped_column(String(100), nullable=False)
    event_description: Mapped[str] = mapped_column(String(250), nullable=False)
    event_introduction_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Images (public URLs from the event-images bucket)
    main_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    main_image_caption: Mapped[str | None] = mapped_column(String(255), nullable=True)
    additional_image1_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_image1_caption: Mapped[str | None] = mapped_column(String(255), nullable=True)
    additional_image2_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_image2_caption: Mapped[str | None] = mapped_column(String(255), nullable=True)
    additional_image3_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_image3_caption: Mapped[str | None] = mapped_column(String(255), nullable=True)
    additional_image4_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_image4_caption: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Venue
    venue_name: Mapped[str] = mapped_column(String(255), nullable=False)
    venue_postal_code: Mapped[str | None] = mapped_column(String(8), nullable=True)
    venue_city: Mapped[str | None] = mapped_column(String(64), nullable=True)
    venue_town: Mapped[str | None] = mapped_column(String(128), nullable=True)
    venue_address: Mapped[str | None] = mapped_column(String(255), nullable=True)
    venue_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    venue_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Links and contact
    homepage_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    related_page_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(32), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    parking_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    fee_info: Mapped[str | None] = mapped_column(Text, nullable=True)
    organizer_info: Mapped[str | None] = mapped_column(Text, nullable=True)

    approval_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class EventApplication(Base):
    __tablename__ = "event_applications"
    __table_args__ = (
        UniqueConstraint("event_id", "exhibitor_id", name="uq_event_applications_event_exhibitor"),
        Index("idx_event_applications_status", "application_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    event_id: Mapped[str] = mapped_column(ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    exhibitor_id: Mapped[str] = mapped_column(ForeignKey("exhibitors.id", ondelete="CASCADE"), nullable=False)
    application_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
