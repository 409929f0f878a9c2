from alembic import op

revision = "0008_donation_receipts"
down_revision = "0007_payment_method_customer"
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        """
    CREATE TABLE IF NOT EXISTS donation_receipts (
      id SERIAL PRIMARY KEY,
      receipt_number TEXT NOT NULL UNIQUE,
      donation_id INTEGER REFERENCES donations(id) ON DELETE CASCADE,
      recurring_donation_id INTEGER REFERENCES recurring_donations(id) ON DELETE CASCADE,
      user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
      tax_year INTEGER NOT NULL,
      amount NUMERIC(12, 2) NOT NULL,
      currency VARCHAR(3) NOT NULL REFERENCES currencies(code),
      issued_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      CHECK ((donation_id IS NULL) <> (recurring_donation_id IS NULL))
    );

    -- one receipt per donation, and per series, per tax year
    CREATE UNIQUE INDEX IF NOT EXISTS uq_receipts_donation_year
      ON donation_receipts(donation_id, tax_year) WHERE donation_id IS NOT NULL;
    CREATE UNIQUE INDEX IF NOT EXISTS uq_receipts_recurring_year
      ON donation_receipts(recurring_donation_id, tax_year) WHERE recurring_donation_id IS NOT NULL;
    CREATE INDEX IF NOT EXISTS idx_receipts_year_user ON donation_receipts(tax_year, user_id);
    """
    )


def downgrade():
    op.execute("DROP TABLE IF EXISTS donation_receipts;")
