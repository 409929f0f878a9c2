from alembic import op

revision = "0002_user_payment_methods"
down_revision = "0001_users_currencies"
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        """
    CREATE TABLE IF NOT EXISTS user_payment_methods (
      id SERIAL PRIMARY KEY,
      user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      payment_type TEXT NOT NULL,
      provider_payment_id TEXT,
      last_four TEXT,
      expiry_date TEXT,
      card_brand TEXT,
      is_default BOOLEAN NOT NULL DEFAULT false,
      is_active BOOLEAN NOT NULL DEFAULT true,
      billing_address_line1 TEXT,
      billing_address_line2 TEXT,
      billing_city TEXT,
      billing_state TEXT,
      billing_postal_code TEXT,
      billing_country TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE INDEX IF NOT EXISTS idx_payment_methods_user ON user_payment_methods(user_id);
    -- at most one default per user
    CREATE UNIQUE INDEX IF NOT EXISTS uq_payment_methods_default
        ON user_payment_methods(user_id) WHERE is_default;
    """
    )


def downgrade():
    op.execute("DROP TABLE IF EXISTS user_payment_methods;")
