"""Marketplace bounded context: order payment lifecycle and settlement.

Owns the order state machine, the payment gateway abstraction, webhook
reconciliation of mobile-money notifications, the provider fee schedules and
the seller payout engine.
"""

import structlog
from protean.domain import Domain

from marketplace.utils.logging import silence_library_loggers

marketplace = Domain(name="marketplace")

silence_library_loggers()

logger = structlog.get_logger(__name__)
