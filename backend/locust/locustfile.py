"""
Locust Load Test Suite

Targets an existing branch (branches are managed outside this service):
  LOAD_BRANCH_ID      branch accepting reservations without approval (default 1)
  LOAD_BOOKING_DAYS   days ahead to book (default 7)

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test double booking
  locust -f locustfile.py --tags throughput   # Test availability cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
from datetime import date, timedelta

from locust import HttpUser, task, between, tag, events

BRANCH_ID = int(os.environ.get("LOAD_BRANCH_ID", "1"))
BOOKING_DATE = (date.today() + timedelta(days=int(os.environ.get("LOAD_BOOKING_DAYS", "7")))).isoformat()
CONTESTED_TIME = "19:00"
SLOT_TIMES = [f"{h:02d}:{m:02d}" for h in range(12, 21) for m in (0, 15, 30, 45)]

# Shared state
BOOKING_IDS = []


def random_customer_id():
    return random.randint(1, 999_999)


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Branch {BRANCH_ID}, date {BOOKING_DATE}, contested slot {CONTESTED_TIME}")
    print("=" * 60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - many customers -> one slot

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify no table holds two overlapping confirmed bookings:
      SELECT a.table_id FROM bookings a JOIN bookings b
        ON a.table_id = b.table_id AND a.id < b.id
       AND a.booking_date = b.booking_date AND a.booking_time = b.booking_time
       WHERE a.status IN ('approved', 'seated') AND b.status IN ('approved', 'seated');
    Should return no rows
    """
    wait_time = between(0, 0.1)

    @tag("concurrency")
    @task
    def book_contested_slot(self):
        """All users fight for the same slot; extras land on the waitlist or get 409."""
        with self.client.post(
            f"/api/v1/branches/{BRANCH_ID}/bookings",
            json={
                "customer_id": random_customer_id(),
                "booking_date": BOOKING_DATE,
                "booking_time": CONTESTED_TIME,
                "party_size": 2,
            },
            name="/api/v1/branches/{id}/bookings [contested]",
            catch_response=True,
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: no table and waitlist full
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Availability cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the server, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def range_calendar_cached(self):
        """Hammer the cached range endpoint."""
        start = date.fromisoformat(BOOKING_DATE)
        self.client.get(
            f"/api/v1/branches/{BRANCH_ID}/availability/range",
            params={
                "start_date": start.isoformat(),
                "end_date": (start + timedelta(days=6)).isoformat(),
                "party_size": random.randint(1, 4),
            },
            name="/api/v1/branches/{id}/availability/range [cached]",
        )

    @tag("throughput", "read")
    @task(3)
    def check_slot(self):
        self.client.get(
            f"/api/v1/branches/{BRANCH_ID}/availability",
            params={"date": BOOKING_DATE, "time": random.choice(SLOT_TIMES), "party_size": 2},
            name="/api/v1/branches/{id}/availability",
        )

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_branch(self):
        with self.client.post(
            "/api/v1/branches/999999/bookings",
            json={"customer_id": 1, "booking_date": BOOKING_DATE, "booking_time": "19:00", "party_size": 2},
            name="/api/v1/branches/{id}/bookings [unknown]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_party(self):
        with self.client.post(
            f"/api/v1/branches/{BRANCH_ID}/bookings",
            json={"customer_id": 1, "booking_date": BOOKING_DATE, "booking_time": "19:00", "party_size": 0},
            name="/api/v1/branches/{id}/bookings [zero party]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def huge_party(self):
        with self.client.post(
            f"/api/v1/branches/{BRANCH_ID}/bookings",
            json={"customer_id": 1, "booking_date": BOOKING_DATE, "booking_time": "19:00", "party_size": 999},
            name="/api/v1/branches/{id}/bookings [huge party]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def past_date(self):
        with self.client.post(
            f"/api/v1/branches/{BRANCH_ID}/bookings",
            json={"customer_id": 1, "booking_date": "2000-01-01", "booking_time": "19:00", "party_size": 2},
            name="/api/v1/branches/{id}/bookings [past]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400])

    @tag("edge")
    @task
    def complete_unknown_booking(self):
        with self.client.post(
            "/api/v1/bookings/999999/complete",
            json={},
            name="/api/v1/bookings/{id}/complete [unknown]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post(
            f"/api/v1/branches/{BRANCH_ID}/bookings",
            data="not json at all",
            name="/api/v1/branches/{id}/bookings [malformed]",
            catch_response=True,
        ) as resp:
            self._expect(resp, [400, 422])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly checking availability
      - Some bookings
      - Occasional cancellations
    """
    wait_time = between(1, 3)

    @task(50)
    def browse_availability(self):
        self.client.get(
            f"/api/v1/branches/{BRANCH_ID}/availability",
            params={"date": BOOKING_DATE, "time": random.choice(SLOT_TIMES), "party_size": random.randint(1, 6)},
            name="/api/v1/branches/{id}/availability",
        )

    @task(10)
    def book_table(self):
        resp = self.client.post(
            f"/api/v1/branches/{BRANCH_ID}/bookings",
            json={
                "customer_id": random_customer_id(),
                "booking_date": BOOKING_DATE,
                "booking_time": random.choice(SLOT_TIMES),
                "party_size": random.randint(1, 6),
            },
            name="/api/v1/branches/{id}/bookings",
        )
        if resp.status_code == 201:
            BOOKING_IDS.append(resp.json()["id"])

    @task(3)
    def cancel_booking(self):
        if BOOKING_IDS:
            booking_id = BOOKING_IDS.pop(random.randrange(len(BOOKING_IDS)))
            self.client.post(
                f"/api/v1/bookings/{booking_id}/cancel",
                json={"reason": "load test"},
                name="/api/v1/bookings/{id}/cancel",
            )
