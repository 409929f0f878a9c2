from alembic import op

revision = "0004_donations"
down_revision = "0003_recurring_donations"
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        """
    CREATE TABLE IF NOT EXISTS donations (
      id SERIAL PRIMARY KEY,
      amount NUMERIC(12, 2) NOT NULL CHECK (amount > 0),
      currency VARCHAR(3) NOT NULL REFERENCES currencies(code),
      status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending','completed','failed','refunded','cancelled')),
      payment_method TEXT NOT NULL,
      transaction_id TEXT,
      donor_name TEXT,
      donor_email TEXT,
      donor_phone TEXT,
      user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
      message TEXT,
      is_anonymous BOOLEAN NOT NULL DEFAULT false,
      converted_amount_usd NUMERIC(12, 2),
      recurring_donation_id INTEGER REFERENCES recurring_donations(id),
      ip_address TEXT,
      country_code TEXT,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );

    CREATE INDEX IF NOT EXISTS idx_donations_user      ON donations(user_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_donations_recurring ON donations(recurring_donation_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_donations_txn       ON donations(transaction_id);
    """
    )


def downgrade():
    op.execute("DROP TABLE IF EXISTS donations;")
