"""
Locust load tests for the Giving API.

Install: pip install -e .[dev]
Run: locust -f locustfile.py --host=http://127.0.0.1:5050

For headless: locust -f locustfile.py --host=http://127.0.0.1:5050 \
    --users 10 --spawn-rate 2 --run-time 1m --headless

Authenticated endpoints need LOCUST_TOKEN (a JWT from the accounts service).
"""

import os
from locust import HttpUser, task, between


class GivingAPIUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        self.token = os.getenv("LOCUST_TOKEN") or None

    def _headers(self):
        h = {"Content-Type": "application/json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    @task(10)
    def ping(self):
        self.client.get("/__ping")

    @task(8)
    def currencies(self):
        self.client.get("/api/currencies")

    @task(6)
    def convert(self):
        self.client.get(
            "/api/currencies/convert/EUR/USD/100",
            name="/api/currencies/convert/[from]/[to]/[amount]",
        )

    @task(3)
    def history(self):
        if not self.token:
            return
        self.client.get("/api/donations/history", headers=self._headers())

    @task(2)
    def recurring(self):
        if not self.token:
            return
        self.client.get("/api/donations/recurring", headers=self._headers())

    @task(1)
    def payment_methods(self):
        if not self.token:
            return
        self.client.get("/api/payment-methods", headers=self._headers())
