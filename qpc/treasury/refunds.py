from __future__ import annotations

"""
QPC Treasury — Refund Ledger
----------------------------

Per-depositor refund balances, credited when a job is reclaimed by the
timeout path and withdrawn by the depositor.

Ordering rules
  • `issue_refund` is idempotent: the `refund_claimed` flag on the job is set
    in the same transaction that credits the balance, so the credit fires at
    most once per job.
  • `claim` zeroes the balance *before* calling the payout sink. A sink that
    re-enters `claim` during the transfer sees a zero balance. If the
    transfer raises, the surrounding transaction rolls back and the balance
    is restored exactly.

The payout sink is the only external interaction. `LedgerPayoutSink` records
payouts in the state DB; deployments plug in a bridge/custodian sink with
the same `transfer(depositor, amount)` shape.
"""

import logging
from typing import Protocol

from .. import metrics
from ..context import ComputeContext
from ..errors import NothingToClaim, TransferFailure
from ..qtypes.events import EventType, RefundReason
from ..qtypes.job import Job, JobStatus, NO_REQUEST

log = logging.getLogger(__name__)


class PayoutSink(Protocol):
    def transfer(self, depositor: str, amount: int) -> None: ...


class LedgerPayoutSink:
    """Records each payout in the `payouts` table."""

    def __init__(self, ctx: ComputeContext) -> None:
        self.ctx = ctx

    def transfer(self, depositor: str, amount: int) -> None:
        self.ctx.db.insert_payout(depositor, amount, self.ctx.now())


class RefundLedger:
    def __init__(self, ctx: ComputeContext, sink: PayoutSink) -> None:
        self.ctx = ctx
        self.sink = sink

    # ---- issuance (internal) ---------------------------------------------

    def issue_refund(self, job: Job, reason: RefundReason) -> bool:
        """
        Credit `job.deposit` to its depositor and mark the job Refunded.

        No-op (returns False) if the refund was already claimed, the deposit
        is zero, or the job completed.
        """
        if job.refund_claimed or job.deposit == 0 or job.status is JobStatus.COMPLETED:
            return False

        db = self.ctx.db
        with db.tx():
            job.refund_claimed = True
            job.status = JobStatus.REFUNDED
            if job.outstanding_request_id != NO_REQUEST:
                db.consume_correlation(job.outstanding_request_id, "refunded")
                job.outstanding_request_id = NO_REQUEST
            db.update_job(job)
            balance = db.credit_balance(job.depositor, job.deposit)
            self.ctx.emit(
                EventType.REFUND_ISSUED,
                job_id=job.job_id,
                principal=job.depositor,
                amount=job.deposit,
                reason=reason.value,
                balance=balance,
            )
        metrics.record_refund(reason.value)
        log.info(
            "refund issued",
            extra={"job_id": job.job_id, "depositor": job.depositor,
                   "amount": job.deposit, "reason": reason.value},
        )
        return True

    # ---- withdrawal ------------------------------------------------------

    def claim(self, depositor: str) -> int:
        """Withdraw the full pending balance. Returns the amount paid."""
        db = self.ctx.db
        try:
            with db.tx():
                amount = db.get_balance(depositor)
                if amount == 0:
                    raise NothingToClaim("no refund pending", details={"depositor": depositor})
                db.set_balance(depositor, 0)
                try:
                    self.sink.transfer(depositor, amount)
                except Exception as e:
                    raise TransferFailure(
                        "refund transfer failed",
                        details={"depositor": depositor, "amount": amount, "cause": repr(e)},
                    ) from e
                self.ctx.emit(EventType.REFUND_CLAIMED, principal=depositor, amount=amount)
        except TransferFailure:
            metrics.record_claim("failed")
            log.error("refund transfer failed; balance restored",
                      extra={"depositor": depositor}, exc_info=True)
            raise
        metrics.record_claim("paid")
        log.info("refund claimed", extra={"depositor": depositor, "amount": amount})
        return amount

    def pending(self, depositor: str) -> int:
        return self.ctx.db.get_balance(depositor)


__all__ = ["PayoutSink", "LedgerPayoutSink", "RefundLedger"]
