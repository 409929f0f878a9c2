from alembic import op
import sqlalchemy as sa

revision = "0001_users_currencies"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # users are owned by the accounts service; only the columns read here
    op.execute(
        """
    CREATE TABLE IF NOT EXISTS users (
      id SERIAL PRIMARY KEY,
      email TEXT NOT NULL UNIQUE,
      name TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """
    )

    op.create_table(
        "currencies",
        sa.Column("code", sa.String(3), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("symbol", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("exchange_rate", sa.Numeric(18, 8), nullable=False),
        sa.Column(
            "last_updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.CheckConstraint("exchange_rate > 0", name="ck_currencies_rate_positive"),
    )


def downgrade():
    op.drop_table("currencies")
