"""
Pre-Deploy and Smoke Test Script.

Validates a running server and executes a booking round trip:
1. Health Check
2. Public slot listing
3. Book -> Cancel -> Refund verification

Requires the seeded student token (see backend/seed_users.py):
    STUDENT_TOKEN=... python scripts/validate_deployment.py
"""

import os
import sys

import httpx

BASE_URL = os.environ.get("BASE_URL", "http://127.0.0.1:8000")
API_PREFIX = "/v1"


def print_step(step, msg):
    print(f"[{step}] {msg}")


def fail(msg):
    print(f"❌ FAILURE: {msg}")
    sys.exit(1)


def success(msg):
    print(f"✅ {msg}")


def main():
    print("🚀 Starting Deployment Validation...")
    token = os.environ.get("STUDENT_TOKEN")
    if not token:
        fail("STUDENT_TOKEN is not set")
    headers = {"Authorization": f"Bearer {token}"}

    with httpx.Client(base_url=BASE_URL, timeout=10.0) as client:
        print_step("PRE-DEPLOY", "Checking /health...")
        try:
            response = client.get("/health")
        except httpx.HTTPError as e:
            fail(f"Health check died: {e}")
        if response.status_code != 200:
            fail(f"Health check returned {response.status_code}")
        success(f"Health: {response.json()}")

        print_step("VERIFY", "Listing open slots...")
        slots = client.get(f"{API_PREFIX}/slots").json()["slots"]
        if not slots:
            fail("No OPEN slots found. Did you run seed_users.py?")
        slot = slots[0]
        success(f"Found {len(slots)} open slot(s)")

        print_step("SMOKE", "Running Book -> Cancel -> Refund flow...")
        before = client.get(f"{API_PREFIX}/credits/balance", headers=headers).json()["balance"]

        res = client.post(f"{API_PREFIX}/bookings", json={"slot_id": slot["id"]}, headers=headers)
        if res.status_code != 201:
            fail(f"Booking failed: {res.status_code} {res.text}")
        booking = res.json()
        success(f"Booked slot {slot['id']}, meeting: {booking['meeting_outcome']['status']}")

        res = client.post(f"{API_PREFIX}/bookings/{booking['booking_id']}/cancel", headers=headers)
        if res.status_code != 200:
            fail(f"Cancel failed: {res.status_code} {res.text}")

        after = client.get(f"{API_PREFIX}/credits/balance", headers=headers).json()["balance"]
        if after != before:
            fail(f"Balance not restored: {before} -> {after}")
        success(f"Refund verified, balance {after}")

    success("Deployment Validation Passed!")


if __name__ == "__main__":
    main()
