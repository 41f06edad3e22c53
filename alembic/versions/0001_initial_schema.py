"""initial draw schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "survey_instances",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("program_name", sa.String(length=255), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("prize_name", sa.String(length=255), nullable=True),
        sa.Column("lifecycle_state", sa.String(length=20), nullable=False),
        sa.Column("draw_enabled", sa.Boolean(), nullable=False),
        sa.Column("draw_mode", sa.String(length=20), nullable=False),
        sa.Column("draw_status", sa.String(length=20), nullable=False),
        sa.Column("draw_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "lifecycle_state IN ('running','closed')",
            name=op.f("ck_survey_instances_lifecycle_state_enum"),
        ),
        sa.CheckConstraint(
            "draw_mode IN ('auto','manual')",
            name=op.f("ck_survey_instances_draw_mode_enum"),
        ),
        sa.CheckConstraint(
            "draw_status IN ('none','in_progress','completed')",
            name=op.f("ck_survey_instances_draw_status_enum"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_survey_instances")),
    )
    op.create_index(
        "ix_survey_instances_draw_status", "survey_instances", ["draw_status"]
    )

    op.create_table(
        "survey_responses",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("instance_id", ID_TYPE, nullable=False),
        sa.Column("draw_token", sa.String(length=64), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["instance_id"],
            ["survey_instances.id"],
            name=op.f("fk_survey_responses_instance_id_survey_instances"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_survey_responses")),
        sa.UniqueConstraint("draw_token", name=op.f("uq_survey_responses_draw_token")),
    )
    op.create_index(
        op.f("ix_survey_responses_instance_id"), "survey_responses", ["instance_id"]
    )

    op.create_table(
        "response_contacts",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("draw_token", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_response_contacts")),
        sa.UniqueConstraint("draw_token", name=op.f("uq_response_contacts_draw_token")),
    )

    op.create_table(
        "draw_records",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("reference", sa.String(length=32), nullable=False),
        sa.Column("instance_id", ID_TYPE, nullable=False),
        sa.Column("seed", sa.String(length=64), nullable=False),
        sa.Column("pool_hash", sa.String(length=64), nullable=False),
        sa.Column("candidates_count", sa.Integer(), nullable=False),
        sa.Column("winner_token", sa.String(length=64), nullable=False),
        sa.Column("winner_index", sa.Integer(), nullable=False),
        sa.Column("algorithm", sa.String(length=50), nullable=False),
        sa.Column("trigger_mode", sa.String(length=20), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("program_name", sa.String(length=255), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("prize_name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "candidates_count > 0",
            name=op.f("ck_draw_records_candidates_count_positive"),
        ),
        sa.CheckConstraint(
            "winner_index >= 0 AND winner_index < candidates_count",
            name=op.f("ck_draw_records_winner_index_in_pool"),
        ),
        sa.CheckConstraint(
            "trigger_mode IN ('auto','manual')",
            name=op.f("ck_draw_records_trigger_mode_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["instance_id"],
            ["survey_instances.id"],
            name=op.f("fk_draw_records_instance_id_survey_instances"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_records")),
        sa.UniqueConstraint("instance_id", name=op.f("uq_draw_records_instance_id")),
        sa.UniqueConstraint("reference", name=op.f("uq_draw_records_reference")),
    )

    op.create_table(
        "draw_notifications",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("draw_record_id", ID_TYPE, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('not_applicable','pending','sent','failed')",
            name=op.f("ck_draw_notifications_notification_status_enum"),
        ),
        sa.ForeignKeyConstraint(
            ["draw_record_id"],
            ["draw_records.id"],
            name=op.f("fk_draw_notifications_draw_record_id_draw_records"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_draw_notifications")),
        sa.UniqueConstraint(
            "draw_record_id", name=op.f("uq_draw_notifications_draw_record_id")
        ),
    )


def downgrade() -> None:
    op.drop_table("draw_notifications")
    op.drop_table("draw_records")
    op.drop_table("response_contacts")
    op.drop_index(op.f("ix_survey_responses_instance_id"), table_name="survey_responses")
    op.drop_table("survey_responses")
    op.drop_index("ix_survey_instances_draw_status", table_name="survey_instances")
    op.drop_table("survey_instances")
