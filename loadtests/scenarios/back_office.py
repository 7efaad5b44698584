"""Invoicing and operator load test scenarios."""

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import invoice_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import InvoiceState


class InvoiceJourney(SequentialTaskSet):
    """Generate Invoice -> Issue -> Pesapal payment link -> Verify."""

    def on_start(self):
        self.state = InvoiceState()

    @task
    def generate_invoice(self):
        with self.client.post(
            "/invoices",
            json=invoice_data(),
            catch_response=True,
            name="POST /invoices",
        ) as resp:
            if resp.status_code != 201:
                resp.failure(f"Generate invoice failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()
            self.state.invoice_id = resp.json()["id"]

    @task
    def issue_invoice(self):
        with self.client.post(
            f"/invoices/{self.state.invoice_id}/issue",
            catch_response=True,
            name="POST /invoices/{id}/issue",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Issue invoice failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()
            self.state.status = "issued"

    @task
    def initiate_payment(self):
        with self.client.post(
            f"/invoices/{self.state.invoice_id}/payments",
            json={"provider": "pesapal"},
            catch_response=True,
            name="POST /invoices/{id}/payments",
        ) as resp:
            if resp.status_code != 201:
                resp.failure(f"Invoice payment failed: {resp.status_code} {extract_error_detail(resp)}")
                self.interrupt()
            self.state.payment_ref = resp.json()["transaction_ref"]

    @task
    def verify_payment(self):
        with self.client.post(
            f"/invoices/{self.state.invoice_id}/payments/verify",
            json={"transaction_ref": self.state.payment_ref},
            catch_response=True,
            name="POST /invoices/{id}/payments/verify",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Invoice verify failed: {resp.status_code} {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class OperatorUser(HttpUser):
    """Back-office reads: the manual queue and what sellers are owed."""

    wait_time = between(2.0, 5.0)

    @task(3)
    def unmatched_queue(self):
        self.client.get("/webhooks/unmatched", name="GET /webhooks/unmatched")

    @task(2)
    def pending_payouts(self):
        self.client.get("/payouts/pending", name="GET /payouts/pending")

    @task(1)
    def failed_payouts(self):
        self.client.get("/payouts", params={"status": "failed"}, name="GET /payouts?status=failed")


class InvoiceUser(HttpUser):
    wait_time = between(1.0, 3.0)
    tasks = [InvoiceJourney]
