"""Payout transfer port: sends a seller's net amount to their account.

Only an in-memory adapter ships; a provider disbursement adapter plugs in
through ``set_transfer``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class TransferInstruction:
    payout_id: str
    amount: int
    currency: str
    provider: str
    account_number: str
    account_name: str | None = None


@dataclass(frozen=True)
class TransferReceipt:
    success: bool
    transaction_id: str | None = None
    reference: str | None = None
    failure_reason: str | None = None


class TransferPort(ABC):
    @abstractmethod
    def transfer(self, instruction: TransferInstruction) -> TransferReceipt:
        """Send the money. May raise on transport failures."""
        ...


class FakeTransfer(TransferPort):
    """Transfer adapter that records instructions for test assertions."""

    def __init__(self):
        self.calls: list[TransferInstruction] = []
        self.should_succeed = True
        self.failure_reason = "Insufficient float balance"
        self.error: Exception | None = None

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Insufficient float balance",
        error: Exception | None = None,
    ):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.error = error

    def transfer(self, instruction: TransferInstruction) -> TransferReceipt:
        self.calls.append(instruction)
        if self.error is not None:
            raise self.error
        if not self.should_succeed:
            return TransferReceipt(success=False, failure_reason=self.failure_reason)
        return TransferReceipt(
            success=True,
            transaction_id=f"TXN-{uuid4().hex[:12].upper()}",
            reference=f"REF-{instruction.payout_id}",
        )

    def reset(self):
        self.calls.clear()
        self.configure()


_transfer: TransferPort | None = None


def get_transfer() -> TransferPort:
    global _transfer
    if _transfer is None:
        _transfer = FakeTransfer()
    return _transfer


def set_transfer(adapter: TransferPort) -> None:
    global _transfer
    _transfer = adapter


def reset_transfer() -> None:
    global _transfer
    _transfer = None
