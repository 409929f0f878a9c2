from prometheus_client import Counter

DONATION_CHARGES = Counter(
    "giving_donation_charges_total",
    "Charge attempts by outcome (completed, failed, error)",
    ["outcome"],
)
RECURRING_CYCLES = Counter(
    "giving_recurring_cycles_total",
    "Recurring cycles by outcome (completed, finished, failed, error)",
    ["outcome"],
)
NOTIFICATIONS = Counter(
    "giving_notifications_total",
    "Donor emails by delivery status",
    ["status"],
)
