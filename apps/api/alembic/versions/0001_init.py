"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _id() -> sa.Column:
  return sa.Column("id", sa.String(36), primary_key=True)


def _created_at() -> sa.Column:
  return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
  op.create_table(
    "users",
    _id(),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="member"),
    sa.Column("notification_prefs", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    _created_at(),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "api_tokens",
    _id(),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    _created_at(),
    sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"], unique=False)
  op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"], unique=True)

  op.create_table(
    "boards",
    _id(),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("owner_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
    _created_at(),
  )
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"], unique=False)

  op.create_table(
    "board_members",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("role", sa.String(), nullable=False, server_default="member"),
    sa.Column("can_view", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("can_create_cards", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("can_edit_cards", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("can_move_cards", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("can_delete_cards", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("can_manage_labels", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    _created_at(),
    sa.UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),
  )
  op.create_index("ix_board_members_user_id", "board_members", ["user_id"], unique=False)

  op.create_table(
    "lists",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    _created_at(),
  )
  op.create_index("ix_lists_board_id", "lists", ["board_id"], unique=False)

  op.create_table(
    "cards",
    _id(),
    sa.Column("list_id", sa.String(36), sa.ForeignKey("lists.id", ondelete="CASCADE"), nullable=False),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False, server_default=""),
    sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("project_id", sa.String(), nullable=True),
    _created_at(),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_cards_list_position", "cards", ["list_id", "position"], unique=False)

  op.create_table(
    "card_assignments",
    _id(),
    sa.Column("card_id", sa.String(36), sa.ForeignKey("cards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("assigned_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    sa.Column("workload_hours", sa.Float(), nullable=True),
    sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("card_id", "user_id", name="ux_card_assignments_card_user"),
  )
  op.create_index("ix_card_assignments_card_id", "card_assignments", ["card_id"], unique=False)
  op.create_index("ix_card_assignments_user_id", "card_assignments", ["user_id"], unique=False)

  op.create_table(
    "labels",
    _id(),
    sa.Column("board_id", sa.String(36), sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=True),
    _created_at(),
  )
  op.create_index("ix_labels_board_id", "labels", ["board_id"], unique=False)

  op.create_table(
    "card_labels",
    _id(),
    sa.Column("card_id", sa.String(36), sa.ForeignKey("cards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("label_id", sa.String(36), sa.ForeignKey("labels.id", ondelete="CASCADE"), nullable=False),
    _created_at(),
    sa.UniqueConstraint("card_id", "label_id", name="ux_card_labels_card_label"),
  )
  op.create_index("ix_card_labels_card_id", "card_labels", ["card_id"], unique=False)
  op.create_index("ix_card_labels_label_id", "card_labels", ["label_id"], unique=False)

  op.create_table(
    "card_activity",
    _id(),
    sa.Column("card_id", sa.String(36), sa.ForeignKey("cards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    sa.Column("kind", sa.String(16), nullable=False),
    sa.Column("category", sa.String(16), nullable=True),
    sa.Column("description", sa.Text(), nullable=False),
    _created_at(),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_card_activity_card_id", "card_activity", ["card_id"], unique=False)

  op.create_table(
    "notifications",
    _id(),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("activity_id", sa.String(36), sa.ForeignKey("card_activity.id", ondelete="CASCADE"), nullable=False),
    sa.Column("category", sa.String(16), nullable=True),
    sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    _created_at(),
    sa.UniqueConstraint("user_id", "activity_id", name="ux_notifications_user_activity"),
  )
  op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
  op.create_index(
    "ix_notifications_user_unread",
    "notifications",
    ["user_id"],
    unique=False,
    postgresql_where=sa.text("read_at IS NULL"),
  )


def downgrade() -> None:
  op.drop_table("notifications")
  op.drop_table("card_activity")
  op.drop_table("card_labels")
  op.drop_table("labels")
  op.drop_table("card_assignments")
  op.drop_table("cards")
  op.drop_table("lists")
  op.drop_table("board_members")
  op.drop_table("boards")
  op.drop_table("api_tokens")
  op.drop_table("users")
