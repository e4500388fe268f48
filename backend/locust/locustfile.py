"""
Locust Load Test Suite

Prerequisite: the tours listed in LOAD_TOUR_IDS exist in the catalog, e.g.
  INSERT INTO tours (id, title) VALUES ('tour_load_a', 'Load A'), ('tour_load_b', 'Load B');

Run scenarios:
  locust -f locustfile.py --tags duplicates  # Redelivery storm on few payments
  locust -f locustfile.py --tags throughput  # Fresh payments + settled cache
  locust -f locustfile.py --tags edge        # Bad payloads
  locust -f locustfile.py                    # All tests
"""

import json
import os
import random
import string

from locust import HttpUser, task, between, tag, events

WEBHOOK_URL = "/api/v1/webhooks/payments"
TOUR_IDS = os.environ.get("LOAD_TOUR_IDS", "tour_load_a,tour_load_b").split(",")

# Shared state
HOT_PAYMENTS = []


def random_payment_id():
    return "pi_load_" + "".join(random.choices(string.ascii_letters + string.digits, k=14))


def cart_for(lines: int) -> list[dict]:
    return [
        {
            "i": index,
            "t": random.choice(TOUR_IDS),
            "d": "2026-12-01",
            "tm": "09:00",
            "a": random.randint(1, 4),
            "c": random.randint(0, 2),
            "bp": 50,
        }
        for index in range(lines)
    ]


def payment_envelope(payment_id: str, cart: list[dict], **metadata_overrides) -> dict:
    payload = json.dumps(cart, separators=(",", ":"))
    middle = len(payload) // 2
    metadata = {
        "has_booking_data": "true",
        "customer_email": f"{payment_id}@load.test",
        "customer_first_name": "Load",
        "customer_last_name": "Tester",
        "discount_code": "none",
        "pricing_discount": "0",
        "cart_data": payload[:middle],
        "cart_data_2": payload[middle:],
    }
    metadata.update(metadata_overrides)
    return {
        "id": "evt_" + payment_id,
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": payment_id, "amount": 10800, "currency": "usd", "metadata": metadata}},
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    """Setup: a handful of payments every duplicate-storm user redelivers."""
    print("\n" + "=" * 60)
    print("SETUP: Preparing hot payment ids for redelivery storm...")
    print("=" * 60)
    HOT_PAYMENTS.extend((random_payment_id(), cart_for(random.randint(1, 3))) for _ in range(5))


class DuplicateDeliveryUser(HttpUser):
    """
    TEST 1: Redelivery storm - 100 users -> 5 payments

    Run: locust -f locustfile.py --tags duplicates -u 100 -r 50 --run-time 30s

    After test, verify no cart line was booked twice:
      SELECT payment_id, item_index, COUNT(*) FROM bookings
      GROUP BY payment_id, item_index HAVING COUNT(*) > 1;
    Should return no rows.
    """
    wait_time = between(0, 0.1)

    @tag("duplicates")
    @task
    def redeliver_hot_payment(self):
        """All users deliver the same few events concurrently."""
        if not HOT_PAYMENTS:
            return
        payment_id, cart = random.choice(HOT_PAYMENTS)

        with self.client.post(WEBHOOK_URL, json=payment_envelope(payment_id, cart),
                              name=WEBHOOK_URL + " [duplicate]", catch_response=True) as resp:
            if resp.status_code != 200:
                resp.failure(f"Unexpected: {resp.status_code}")
                return
            outcome = resp.json()["result"]["outcome"]
            if outcome in ("created", "already_confirmed", "updated"):
                resp.success()
            else:
                resp.failure(f"Unexpected outcome: {outcome}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - fresh payments, each redelivered once

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare the latency of the [redelivery] requests between runs.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput")
    @task(10)
    def fresh_payment_then_redelivery(self):
        payment_id = random_payment_id()
        body = payment_envelope(payment_id, cart_for(random.randint(1, 3)))
        self.client.post(WEBHOOK_URL, json=body, name=WEBHOOK_URL + " [fresh]")
        self.client.post(WEBHOOK_URL, json=body, name=WEBHOOK_URL + " [redelivery]")

    @tag("throughput", "read")
    @task(3)
    def list_payment_bookings(self):
        if HOT_PAYMENTS:
            payment_id, _ = random.choice(HOT_PAYMENTS)
            self.client.get(f"/api/v1/bookings/?payment_id={payment_id}", name="/api/v1/bookings/")

    @tag("throughput")
    @task(1)
    def health_check(self):
        """Monitor system health."""
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad payloads

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    Data problems are acknowledged with 200 and an outcome; only a
    malformed envelope is rejected.
    """
    wait_time = between(0.5, 1.5)

    def _expect_outcome(self, body: dict, expected: str, name: str):
        with self.client.post(WEBHOOK_URL, json=body, name=name, catch_response=True) as resp:
            if resp.status_code == 200 and resp.json().get("result", {}).get("outcome") == expected:
                resp.success()
            else:
                resp.failure(f"Expected {expected}, got {resp.status_code} {resp.text[:200]}")

    @tag("edge")
    @task
    def broken_cart(self):
        body = payment_envelope(random_payment_id(), [], cart_data="[{broken", cart_data_2="")
        self._expect_outcome(body, "invalid_cart_data", WEBHOOK_URL + " [broken cart]")

    @tag("edge")
    @task
    def missing_customer(self):
        body = payment_envelope(random_payment_id(), cart_for(1), customer_email="")
        self._expect_outcome(body, "missing_customer_data", WEBHOOK_URL + " [no customer]")

    @tag("edge")
    @task
    def unknown_tour(self):
        cart = cart_for(1)
        cart[0]["t"] = "tour_does_not_exist"
        body = payment_envelope(random_payment_id(), cart)
        self._expect_outcome(body, "no_bookings_created", WEBHOOK_URL + " [unknown tour]")

    @tag("edge")
    @task
    def malformed_json(self):
        """Send garbage data."""
        with self.client.post(WEBHOOK_URL, data="not json at all",
                              headers={"Content-Type": "application/json"},
                              catch_response=True) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")
