from alembic import op

revision = "0007_payment_method_customer"
down_revision = "0006_stripe_events"
branch_labels = None
depends_on = None


def upgrade():
    # Stripe Customer a stored card is attached to; off-session charges need it
    op.execute(
        """
    ALTER TABLE user_payment_methods
      ADD COLUMN IF NOT EXISTS provider_customer_id TEXT;
    """
    )


def downgrade():
    op.execute("ALTER TABLE user_payment_methods DROP COLUMN IF EXISTS provider_customer_id;")
