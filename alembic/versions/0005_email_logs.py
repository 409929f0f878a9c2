from alembic import op
import sqlalchemy as sa

revision = "0005_email_logs"
down_revision = "0004_donations"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("email_to", sa.Text(), nullable=True),
        sa.Column("email_from", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column(
            "sent_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("status IN ('sent','failed')", name="ck_email_logs_status"),
    )
    op.create_index("idx_email_logs_user", "email_logs", ["user_id", "sent_at"])


def downgrade():
    op.drop_index("idx_email_logs_user", table_name="email_logs")
    op.drop_table("email_logs")
