"""Checkout load test scenarios.

Stateful SequentialTaskSet journeys that place an order and pay it through
the provider webhooks or the hosted Pesapal checkout.
"""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import mtn_callback, order_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import OrderState


class _OrderJourney(SequentialTaskSet):
    def on_start(self):
        self.state = OrderState()

    def place(self, payment_method="mobile_money"):
        with self.client.post(
            "/orders",
            json=order_data(payment_method),
            catch_response=True,
            name="POST /orders",
        ) as resp:
            if resp.status_code != 201:
                resp.failure(f"Place order failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()
            self.state.order_id = resp.json()["id"]

        with self.client.get(
            f"/orders/{self.state.order_id}",
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Get order failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()
            order = resp.json()
            self.state.order_number = order["order_number"]
            self.state.total_amount = order["total_amount"]


class ReferencedCallbackJourney(_OrderJourney):
    """Place Order -> MTN callback quoting the order number -> Read back.

    The fast path of reconciliation: an exact reference match.
    """

    @task
    def place_order(self):
        self.place()

    @task
    def mtn_callback(self):
        payload = mtn_callback(self.state.total_amount, reference=self.state.order_number)
        with self.client.post(
            "/webhooks/mtn",
            json=payload,
            catch_response=True,
            name="POST /webhooks/mtn (reference)",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Callback failed: {resp.status_code} {extract_error_detail(resp)}")
            elif resp.json()["status"] != "matched":
                resp.failure(f"Callback not matched: {resp.json()}")

    @task
    def read_back(self):
        with self.client.get(
            f"/orders/{self.state.order_id}",
            catch_response=True,
            name="GET /orders/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.state.payment_status = resp.json()["payment_status"]

    @task
    def done(self):
        self.interrupt()


class UnreferencedCallbackJourney(_OrderJourney):
    """Place Order -> MTN callback without a reference -> Same callback again.

    Exercises the amount ladder under contention (parking is an acceptable
    outcome when concurrent orders share the amount) and duplicate delivery.
    """

    @task
    def place_order(self):
        self.place()

    @task
    def mtn_callback_twice(self):
        payload = mtn_callback(self.state.total_amount)
        for attempt in ("first", "replay"):
            with self.client.post(
                "/webhooks/mtn",
                json=payload,
                catch_response=True,
                name=f"POST /webhooks/mtn (no reference, {attempt})",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Callback failed: {resp.status_code} {extract_error_detail(resp)}")
                elif attempt == "replay" and not resp.json()["duplicate"]:
                    resp.failure("Replayed callback was not reported as a duplicate")

    @task
    def done(self):
        self.interrupt()


class HostedCheckoutJourney(_OrderJourney):
    """Place Order -> Pesapal payment link -> Verify."""

    @task
    def place_order(self):
        self.place()

    @task
    def initiate_payment(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/payments",
            json={"provider": "pesapal"},
            catch_response=True,
            name="POST /orders/{id}/payments",
        ) as resp:
            if resp.status_code != 201:
                resp.failure(f"Initiate payment failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()
            self.state.payment_ref = resp.json()["transaction_ref"]

    @task
    def verify_payment(self):
        with self.client.post(
            f"/orders/{self.state.order_id}/payments/verify",
            json={"transaction_ref": self.state.payment_ref},
            catch_response=True,
            name="POST /orders/{id}/payments/verify",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Verify failed: {resp.status_code} {extract_error_detail(resp)}")
            else:
                self.state.payment_status = resp.json()["status"]

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    """Buyers paying for orders.

    - 50% callback quoting the order number
    - 25% callback without a reference
    - 25% hosted checkout
    """

    wait_time = between(0.5, 2.0)
    tasks = {
        ReferencedCallbackJourney: 4,
        UnreferencedCallbackJourney: 2,
        HostedCheckoutJourney: 2,
    }
