"""create announcements

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


announcement_category = sa.Enum("academic", "sil", "club", "general", name="announcement_category")
announcement_status = sa.Enum("scheduled", "active", "urgent", "expired", name="announcement_status")


def upgrade() -> None:
    op.create_table(
        "announcements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", announcement_category, nullable=False),
        sa.Column("author_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("status", announcement_status, nullable=False, server_default="active"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("priority_level", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("is_emergency", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_announcements_author_id", "announcements", ["author_id"], unique=False)

    op.create_table(
        "announcement_settings",
        sa.Column(
            "announcement_id",
            sa.Integer(),
            sa.ForeignKey("announcements.id", ondelete="CASCADE"),
            primary_key=True,
            nullable=False,
        ),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("emergency_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("send_email", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("email_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("visible_after", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_announcement_settings_scheduled_at",
        "announcement_settings",
        ["scheduled_at"],
        unique=False,
    )

    op.create_table(
        "announcement_targets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "announcement_id",
            sa.Integer(),
            sa.ForeignKey("announcements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("target_year", sa.Integer(), nullable=True),
        sa.Column("deadline_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deadline_label", sa.Text(), nullable=True),
    )
    op.create_index(
        "ix_announcement_targets_announcement_id",
        "announcement_targets",
        ["announcement_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_announcement_targets_announcement_id", table_name="announcement_targets")
    op.drop_table("announcement_targets")
    op.drop_index("ix_announcement_settings_scheduled_at", table_name="announcement_settings")
    op.drop_table("announcement_settings")
    op.drop_index("ix_announcements_author_id", table_name="announcements")
    op.drop_table("announcements")
    announcement_status.drop(op.get_bind(), checkfirst=True)
    announcement_category.drop(op.get_bind(), checkfirst=True)
