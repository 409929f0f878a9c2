from alembic import op

revision = "0003_recurring_donations"
down_revision = "0002_user_payment_methods"
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        """
    CREATE TABLE IF NOT EXISTS recurring_donations (
      id SERIAL PRIMARY KEY,
      user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
      amount NUMERIC(12, 2) NOT NULL CHECK (amount > 0),
      currency VARCHAR(3) NOT NULL REFERENCES currencies(code),
      frequency TEXT NOT NULL
        CHECK (frequency IN ('one_time','daily','weekly','monthly','quarterly','yearly')),
      payment_method TEXT NOT NULL,
      payment_method_id INTEGER REFERENCES user_payment_methods(id),
      status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending','completed','failed','refunded','cancelled')),
      start_date TIMESTAMPTZ NOT NULL,
      next_payment_date TIMESTAMPTZ NOT NULL,
      end_date TIMESTAMPTZ,
      total_payments_count INTEGER CHECK (total_payments_count > 0),
      completed_payments_count INTEGER NOT NULL DEFAULT 0 CHECK (completed_payments_count >= 0),
      last_payment_date TIMESTAMPTZ,
      ended_at TIMESTAMPTZ,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      CHECK (total_payments_count IS NULL OR completed_payments_count <= total_payments_count)
    );

    CREATE INDEX IF NOT EXISTS idx_recurring_user ON recurring_donations(user_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_recurring_due
        ON recurring_donations(next_payment_date)
        WHERE status = 'completed' AND ended_at IS NULL;
    """
    )


def downgrade():
    op.execute("DROP TABLE IF EXISTS recurring_donations;")
