"""Create task templates, task instances and escalation states

Revision ID: 4a7c1e9b2d30
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "4a7c1e9b2d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "task_templates",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("list_id", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False, server_default="no_priority"),
        sa.Column("strict_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requires_explanation_if_missed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_be_snoozed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notification_interval_minutes", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("rule", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_task_templates_owner_id"), "task_templates", ["owner_id"], unique=False)
    op.create_index(op.f("ix_task_templates_list_id"), "task_templates", ["list_id"], unique=False)
    op.create_index(
        "ix_task_templates_owner_list_title", "task_templates", ["owner_id", "list_id", "title"], unique=False
    )

    op.create_table(
        "task_instances",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("list_id", sa.String(), nullable=False),
        sa.Column(
            "template_id",
            sa.String(),
            sa.ForeignKey("task_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("instance_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("due_at", sa.DateTime(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("note", sa.String(), nullable=True),
        sa.Column("priority", sa.String(), nullable=False, server_default="no_priority"),
        sa.Column("strict_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("requires_explanation_if_missed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_be_snoozed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notification_interval_minutes", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("template_id", "instance_number", name="uq_task_instance_number"),
    )
    op.create_index(op.f("ix_task_instances_owner_id"), "task_instances", ["owner_id"], unique=False)
    op.create_index(op.f("ix_task_instances_list_id"), "task_instances", ["list_id"], unique=False)
    op.create_index(op.f("ix_task_instances_template_id"), "task_instances", ["template_id"], unique=False)
    op.create_index(op.f("ix_task_instances_due_at"), "task_instances", ["due_at"], unique=False)
    op.create_index("ix_task_instances_status_due_at", "task_instances", ["status", "due_at"], unique=False)

    op.create_table(
        "escalation_states",
        sa.Column(
            "instance_id",
            sa.String(),
            sa.ForeignKey("task_instances.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("level", sa.String(), nullable=False, server_default="normal"),
        sa.Column("notification_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_notified_at", sa.DateTime(), nullable=True),
        sa.Column("became_overdue_at", sa.DateTime(), nullable=True),
        sa.Column("coaches_notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("coaches_notified_at", sa.DateTime(), nullable=True),
        sa.Column("blocking_app", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("blocking_started_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(op.f("ix_escalation_states_level"), "escalation_states", ["level"], unique=False)
    op.create_index(op.f("ix_escalation_states_blocking_app"), "escalation_states", ["blocking_app"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_escalation_states_blocking_app"), table_name="escalation_states")
    op.drop_index(op.f("ix_escalation_states_level"), table_name="escalation_states")
    op.drop_table("escalation_states")

    op.drop_index("ix_task_instances_status_due_at", table_name="task_instances")
    op.drop_index(op.f("ix_task_instances_due_at"), table_name="task_instances")
    op.drop_index(op.f("ix_task_instances_template_id"), table_name="task_instances")
    op.drop_index(op.f("ix_task_instances_list_id"), table_name="task_instances")
    op.drop_index(op.f("ix_task_instances_owner_id"), table_name="task_instances")
    op.drop_table("task_instances")

    op.drop_index("ix_task_templates_owner_list_title", table_name="task_templates")
    op.drop_index(op.f("ix_task_templates_list_id"), table_name="task_templates")
    op.drop_index(op.f("ix_task_templates_owner_id"), table_name="task_templates")
    op.drop_table("task_templates")
