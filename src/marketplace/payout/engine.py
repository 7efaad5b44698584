"""Payout engine application service.

Creation and every later payout command run under the locks of the orders
involved (and the payout's own lock once it exists). ``process_payout``
moves the payout to PROCESSING in the caller's thread and runs the transfer
on a bounded background executor; a rejected or crashed transfer ends as a
FAILED payout with its orders released, never as a stuck PROCESSING one.
"""

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import UTC, datetime

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from marketplace.config import get_settings
from marketplace.domain import marketplace
from marketplace.payout.backoff import retry_window
from marketplace.payout.creation import CancelPayout, CreatePayout
from marketplace.payout.payout import Payout, PayoutStatus
from marketplace.payout.processing import CompletePayout, FailPayout, RetryPayout, StartPayout
from marketplace.payout.transfer import TransferInstruction, TransferReceipt, get_transfer
from marketplace.utils.locks import order_locks, payout_locks

logger = structlog.get_logger(__name__)

_executor: ThreadPoolExecutor | None = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=get_settings().payout_workers,
                thread_name_prefix="payout-transfer",
            )
        return _executor


def shutdown_executor(wait: bool = True) -> None:
    global _executor
    with _executor_lock:
        if _executor is not None:
            _executor.shutdown(wait=wait)
            _executor = None


def _locked(payout_id: str, command):
    payout = current_domain.repository_for(Payout).get(payout_id)
    with payout_locks.hold(payout_id), order_locks.hold(*payout.order_ids()):
        return current_domain.process(command, asynchronous=False)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_payout(payout_id: str) -> Payout:
    return current_domain.repository_for(Payout).get(payout_id)


def list_payouts(seller_id: str | None = None, status: str | None = None, limit: int = 100) -> list[Payout]:
    filters = {}
    if seller_id:
        filters["seller_id"] = seller_id
    if status:
        filters["status"] = status
    query = current_domain.repository_for(Payout)._dao.query
    if filters:
        query = query.filter(**filters)
    payouts = query.limit(limit).all().items
    return sorted(payouts, key=lambda p: p.created_at, reverse=True)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
def create_payout(
    seller_id: str,
    order_ids: list[str],
    destination: dict,
    seller_email: str | None = None,
    payment_method: str | None = None,
    notes: str | None = None,
    actor: str | None = None,
) -> str:
    command = CreatePayout(
        seller_id=seller_id,
        seller_email=seller_email,
        order_ids=json.dumps(list(order_ids)),
        provider=destination.get("provider"),
        account_number=destination.get("account_number"),
        account_name=destination.get("account_name"),
        payment_method=payment_method,
        notes=notes,
        actor=actor,
    )
    with order_locks.hold(*order_ids):
        payout_id = current_domain.process(command, asynchronous=False)
    logger.info("Payout created", payout_id=payout_id, seller_id=seller_id, orders=len(order_ids))
    return payout_id


def process_payout(payout_id: str, actor: str | None = None) -> Future:
    """Start the transfer. The returned future resolves to the payout's final status."""
    _locked(payout_id, StartPayout(payout_id=payout_id, actor=actor))
    logger.info("Payout processing started", payout_id=payout_id, actor=actor)
    return _get_executor().submit(_run_transfer, payout_id)


def _run_transfer(payout_id: str) -> str:
    with marketplace.domain_context():
        payout = get_payout(payout_id)
        instruction = TransferInstruction(
            payout_id=payout.payout_id,
            amount=payout.net_amount,
            currency=payout.currency,
            provider=payout.destination.provider,
            account_number=payout.destination.account_number,
            account_name=payout.destination.account_name,
        )
        try:
            receipt = get_transfer().transfer(instruction)
        except Exception as exc:
            logger.exception("Payout transfer raised", payout_id=payout_id)
            receipt = TransferReceipt(success=False, failure_reason=str(exc) or exc.__class__.__name__)

        if receipt.success:
            _locked(
                payout_id,
                CompletePayout(
                    payout_id=payout_id,
                    transaction_id=receipt.transaction_id,
                    reference=receipt.reference,
                ),
            )
            logger.info("Payout completed", payout_id=payout_id, transaction_id=receipt.transaction_id)
        else:
            _locked(payout_id, FailPayout(payout_id=payout_id, reason=receipt.failure_reason or "Transfer failed"))
            logger.warning("Payout failed", payout_id=payout_id, reason=receipt.failure_reason)
        return get_payout(payout_id).status


def retry_payout(payout_id: str, actor: str | None = None, now: datetime | None = None) -> None:
    _locked(payout_id, RetryPayout(payout_id=payout_id, actor=actor, now=now or datetime.now(UTC)))
    logger.info("Payout retry accepted", payout_id=payout_id, actor=actor)


def cancel_payout(payout_id: str, reason: str | None = None, actor: str | None = None) -> None:
    _locked(payout_id, CancelPayout(payout_id=payout_id, reason=reason, actor=actor))
    logger.info("Payout cancelled", payout_id=payout_id, actor=actor)


def sweep_failed_payouts(now: datetime | None = None, actor: str = "scheduler") -> list[str]:
    """Retry and re-process every failed payout whose backoff window has passed."""
    now = now or datetime.now(UTC)
    max_attempts = get_settings().max_payout_attempts
    retried = []
    for payout in list_payouts(status=PayoutStatus.FAILED.value, limit=1000):
        if payout.attempts >= max_attempts:
            continue
        if not retry_window(payout.attempts, payout.last_attempt_at, now).eligible:
            continue
        try:
            retry_payout(payout.payout_id, actor=actor, now=now)
            process_payout(payout.payout_id, actor=actor)
        except ValidationError as exc:
            logger.warning("Payout sweep skipped payout", payout_id=payout.payout_id, errors=exc.messages)
            continue
        retried.append(payout.payout_id)
    return retried
