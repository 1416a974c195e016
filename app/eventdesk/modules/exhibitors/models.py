from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.eventdesk.models import Base, new_uuid

EXHIBITOR_FIELDS = ("name", "gender", "age", "phone_number", "email", "genre_category", "genre_free_text")

# Order matters: forms and profile pages list documents in this order.
DOCUMENT_TYPES = (
    ("business_license", "Business license"),
    ("vehicle_inspection", "Vehicle inspection certificate"),
    ("automobile_inspection", "Automobile inspection certificate"),
    ("pl_insurance", "PL insurance"),
    ("fire_equipment_layout", "Fire equipment layout"),
)


def document_column(document_type: str) -> str:
    return f"{document_type}_image_url"


class Exhibitor(Base):
    __tablename__ = "exhibitors"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    line_user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    gender: Mapped[str] = mapped_column(String(16), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)

    genre_category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    genre_free_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Public URLs issued by the exhibitor-documents bucket
    business_license_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_inspection_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    automobile_inspection_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    pl_insurance_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    fire_equipment_layout_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow
    )
