"""initial eventdesk schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    existing_tables = set(inspect(bind).get_table_names())

    if "admin_users" not in existing_tables:
        op.create_table(
            "admin_users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="admin"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("actor_type", sa.String(length=32), nullable=True),
            sa.Column("actor_id", sa.String(length=128), nullable=True),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("reason", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )
        op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])

    if "organizer_profiles" not in existing_tables:
        op.create_table(
            "organizer_profiles",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("organization_name", sa.String(length=255), nullable=False),
            sa.Column("contact_phone", sa.String(length=32), nullable=True),
            sa.Column("contact_email", sa.String(length=320), nullable=True),
            sa.Column("website_url", sa.Text(), nullable=True),
            sa.Column("is_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )
        op.create_index("idx_organizer_profiles_is_approved", "organizer_profiles", ["is_approved"])

    if "organizer_members" not in existing_tables:
        op.create_table(
            "organizer_members",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column(
                "organizer_profile_id",
                sa.String(length=36),
                sa.ForeignKey("organizer_profiles.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("line_user_id", sa.String(length=64), nullable=False, unique=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("gender", sa.String(length=16), nullable=True),
            sa.Column("age", sa.Integer(), nullable=True),
            sa.Column("phone_number", sa.String(length=32), nullable=True),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="editor"),
            sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )
        op.create_index("idx_organizer_members_profile", "organizer_members", ["organizer_profile_id"])

    if "organizer_invitations" not in existing_tables:
        op.create_table(
            "organizer_invitations",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column(
                "organizer_profile_id",
                sa.String(length=36),
                sa.ForeignKey("organizer_profiles.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("code", sa.String(length=16), nullable=False, unique=True),
            sa.Column("role", sa.String(length=16), nullable=False, server_default="editor"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
            sa.Column("expires_at", sa.DateTime(), nullable=True),
            sa.Column("used_at", sa.DateTime(), nullable=True),
            sa.Column(
                "created_by_member_id",
                sa.String(length=36),
                sa.ForeignKey("organizer_members.id", ondelete="SET NULL"),
                nullable=True,
            ),
            *_timestamps(),
        )
        op.create_index("idx_organizer_invitations_profile", "organizer_invitations", ["organizer_profile_id"])

    if "exhibitors" not in existing_tables:
        op.create_table(
            "exhibitors",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("line_user_id", sa.String(length=64), nullable=False, unique=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("gender", sa.String(length=16), nullable=False),
            sa.Column("age", sa.Integer(), nullable=False),
            sa.Column("phone_number", sa.String(length=32), nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False),
            sa.Column("genre_category", sa.String(length=64), nullable=True),
            sa.Column("genre_free_text", sa.Text(), nullable=True),
            sa.Column("business_license_image_url", sa.Text(), nullable=True),
            sa.Column("vehicle_inspection_image_url", sa.Text(), nullable=True),
            sa.Column("automobile_inspection_image_url", sa.Text(), nullable=True),
            sa.Column("pl_insurance_image_url", sa.Text(), nullable=True),
            sa.Column("fire_equipment_layout_image_url", sa.Text(), nullable=True),
            *_timestamps(),
        )

    if "events" not in existing_tables:
        image_columns = [sa.Column("main_image_url", sa.Text(), nullable=True)]
        image_columns.append(sa.Column("main_image_caption", sa.String(length=255), nullable=True))
        for n in (1, 2, 3, 4):
            image_columns.append(sa.Column(f"additional_image{n}_url", sa.Text(), nullable=True))
            image_columns.append(sa.Column(f"additional_image{n}_caption", sa.String(length=255), nullable=True))
        op.create_table(
            "events",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column(
                "organizer_profile_id",
                sa.String(length=36),
                sa.ForeignKey("organizer_profiles.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("event_name", sa.String(length=50), nullable=False),
            sa.Column("event_name_furigana", sa.String(length=50), nullable=False),
            sa.Column("genre", sa.String(length=64), nullable=False),
            sa.Column("is_shizuoka_vocational_assoc_related", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("opt_out_newspaper_publication", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("event_start_date", sa.Date(), nullable=False),
            sa.Column("event_end_date", sa.Date(), nullable=False),
            sa.Column("event_display_period", sa.String(length=50), nullable=False),
            sa.Column("event_period_notes", sa.Text(), nullable=True),
            sa.Column("event_time", sa.String(length=64), nullable=True),
            sa.Column("application_start_date", sa.Date(), nullable=True),
            sa.Column("application_end_date", sa.Date(), nullable=True),
            sa.Column("application_display_period", sa.String(length=64), nullable=True),
            sa.Column("application_notes", sa.Text(), nullable=True),
            sa.Column("ticket_release_start_date", sa.Date(), nullable=True),
            sa.Column("ticket_sales_location", sa.Text(), nullable=True),
            sa.Column("lead_text", sa.String(length=100), nullable=False),
            sa.Column("event_description", sa.String(length=250), nullable=False),
            sa.Column("event_introduction_text", sa.Text(), nullable=True),
            *image_columns,
            sa.Column("venue_name", sa.String(length=255), nullable=False),
            sa.Column("venue_postal_code", sa.String(length=8), nullable=True),
            sa.Column("venue_city", sa.String(length=64), nullable=True),
            sa.Column("venue_town", sa.String(length=128), nullable=True),
            sa.Column("venue_address", sa.String(length=255), nullable=True),
            sa.Column("venue_latitude", sa.Float(), nullable=True),
            sa.Column("venue_longitude", sa.Float(), nullable=True),
            sa.Column("homepage_url", sa.Text(), nullable=True),
            sa.Column("related_page_url", sa.Text(), nullable=True),
            sa.Column("contact_name", sa.String(length=255), nullable=False),
            sa.Column("contact_phone", sa.String(length=32), nullable=False),
            sa.Column("contact_email", sa.String(length=320), nullable=True),
            sa.Column("parking_info", sa.Text(), nullable=True),
            sa.Column("fee_info", sa.Text(), nullable=True),
            sa.Column("organizer_info", sa.Text(), nullable=True),
            sa.Column("approval_status", sa.String(length=16), nullable=False, server_default="pending"),
            *_timestamps(),
        )
        op.create_index("idx_events_profile", "events", ["organizer_profile_id"])
        op.create_index("idx_events_approval_status", "events", ["approval_status"])
        op.create_index("idx_events_start_date", "events", ["event_start_date"])

    if "event_applications" not in existing_tables:
        op.create_table(
            "event_applications",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("event_id", sa.String(length=36), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "exhibitor_id", sa.String(length=36), sa.ForeignKey("exhibitors.id", ondelete="CASCADE"), nullable=False
            ),
            sa.Column("application_status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("applied_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("event_id", "exhibitor_id", name="uq_event_applications_event_exhibitor"),
        )
        op.create_index("idx_event_applications_status", "event_applications", ["application_status"])

    if "form_drafts" not in existing_tables:
        op.create_table(
            "form_drafts",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("form_type", sa.String(length=64), nullable=False),
            sa.Column("payload", sa.Text(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("user_id", "form_type", name="uq_form_drafts_user_form"),
        )


def downgrade() -> None:
    op.drop_table("form_drafts")
    op.drop_index("idx_event_applications_status", table_name="event_applications")
    op.drop_table("event_applications")
    op.drop_index("idx_events_start_date", table_name="events")
    op.drop_index("idx_events_approval_status", table_name="events")
    op.drop_index("idx_events_profile", table_name="events")
    op.drop_table("events")
    op.drop_table("exhibitors")
    op.drop_index("idx_organizer_invitations_profile", table_name="organizer_invitations")
    op.drop_table("organizer_invitations")
    op.drop_index("idx_organizer_members_profile", table_name="organizer_members")
    op.drop_table("organizer_members")
    op.drop_index("idx_organizer_profiles_is_approved", table_name="organizer_profiles")
    op.drop_table("organizer_profiles")
    op.drop_index("idx_audit_events_created_at", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_table("admin_users")
