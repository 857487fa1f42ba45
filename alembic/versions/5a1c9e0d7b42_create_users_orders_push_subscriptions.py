"""create users, orders and web push subscriptions

Revision ID: 5a1c9e0d7b42
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5a1c9e0d7b42"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "users",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("firebase_uid", sa.String(), nullable=False),
    sa.Column("username", sa.String(), nullable=False),
    sa.Column("email", sa.String(), nullable=True),
    sa.Column("full_name", sa.String(), nullable=True),
    sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("username"),
  )
  op.create_index(op.f("ix_users_firebase_uid"), "users", ["firebase_uid"], unique=True)

  op.create_table(
    "orders",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.Integer(), nullable=False),
    sa.Column("status", sa.Text(), nullable=False, server_default="processing"),
    sa.Column("total", sa.Numeric(10, 2), nullable=False),
    sa.Column("items", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_orders_user_id"), "orders", ["user_id"], unique=False)

  op.create_table(
    "web_push_subscriptions",
    sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
    sa.Column("user_id", sa.Integer(), nullable=False),
    sa.Column("endpoint", sa.Text(), nullable=False),
    sa.Column("p256dh", sa.Text(), nullable=False),
    sa.Column("auth", sa.Text(), nullable=False),
    sa.Column("user_agent", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ux_web_push_subscriptions_endpoint", "web_push_subscriptions", ["endpoint"], unique=True)
  op.create_index(op.f("ix_web_push_subscriptions_user_id"), "web_push_subscriptions", ["user_id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index(op.f("ix_web_push_subscriptions_user_id"), table_name="web_push_subscriptions")
  op.drop_index("ux_web_push_subscriptions_endpoint", table_name="web_push_subscriptions")
  op.drop_table("web_push_subscriptions")
  op.drop_index(op.f("ix_orders_user_id"), table_name="orders")
  op.drop_table("orders")
  op.drop_index(op.f("ix_users_firebase_uid"), table_name="users")
  op.drop_table("users")
