"""Tradehub load testing: Locust entry point.

Run specific user classes with Locust's class selection.

Usage:
    # All users (web UI):
    locust -f loadtests/locustfile.py --host http://localhost:8000

    # Checkout traffic only:
    locust -f loadtests/locustfile.py CheckoutUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py CheckoutUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest

The server must run with PAYMENT_GATEWAY=fake so hosted checkouts settle.
"""

import logging
import time

import requests
from locust import events

from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.back_office import InvoiceUser, OperatorUser  # noqa: F401
from loadtests.scenarios.checkout import CheckoutUser  # noqa: F401

logger = logging.getLogger("loadtest")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log the API error body for every failed request."""
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400:
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    """Print the size of the manual reconciliation queue when the run ends."""
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    if not environment.host:
        return
    try:
        resp = requests.get(f"{environment.host}/webhooks/unmatched", timeout=5)
        resp.raise_for_status()
        print(f"[LOADTEST] Parked payments awaiting an operator: {len(resp.json())}\n")
    except requests.RequestException as e:
        print(f"[LOADTEST] Could not read the manual queue: {e}\n")
