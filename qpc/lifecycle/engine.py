from __future__ import annotations

"""
Job lifecycle engine
====================

Drives a job through

    Submitted → DecryptPending → Completed
         └────────────┴──────→ TimedOut → Refunded

Lazy timeouts
-------------
There is no scheduler. Every state-changing call reads the host clock once,
at its start, and re-checks the job's windows before doing anything else:

  • exec window:     now > submit_time + exec_timeout               (execute, request, manual refund)
  • callback window: now > submit_time + exec_timeout + grace_window (oracle callback)

If a window has elapsed, the call is redirected into TimedOut → Refunded
within the same transaction and returns normally; it does not raise.

Atomicity
---------
Each public operation runs in one store transaction. Validation errors
abort with no partial state change. Side effects on the refund ledger, the
correlation table and the audit log commit together with the job record.

Correlation
-----------
`outstanding_request_id` on the job and the correlation row must agree for a
callback to be accepted. Anything else (unknown id, superseded id, a second
delivery after completion) is a security alert: logged, counted and audited,
with the job left untouched.
"""

import logging
import math
from enum import Enum
from typing import Any, List, Optional, Union

from .. import metrics
from ..circuits.algorithms import AlgorithmRunner
from ..circuits.descriptor import CircuitStore
from ..context import ComputeContext
from ..errors import (Expired, FheError, InvalidInput, InvalidState, NotFound,
                      SecurityAlert, StoreError, Unauthorized)
from ..fhe.backend import Ciphertext
from ..oracle.gateway import OracleGateway
from ..qtypes.events import AuditEvent, EventType, RefundReason
from ..qtypes.job import (NO_REQUEST, AlgorithmTag, Correlation, Job, JobStatus,
                          can_transition)
from ..registry.access import AccessRegistry
from ..treasury.refunds import RefundLedger

log = logging.getLogger(__name__)

# largest value an SQLite INTEGER column holds
MAX_STORED_INT = (1 << 63) - 1


class CallbackOutcome(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"      # security alert; state unchanged
    REFUNDED = "refunded"      # arrived after the grace window


_STAGE_REASON = {
    "execute": RefundReason.EXECUTE_TIMEOUT,
    "request": RefundReason.REQUEST_TIMEOUT,
    "callback": RefundReason.CALLBACK_TIMEOUT,
    "manual": RefundReason.MANUAL,
}


class JobLifecycleEngine:
    def __init__(
        self,
        ctx: ComputeContext,
        registry: AccessRegistry,
        gateway: OracleGateway,
        refunds: RefundLedger,
        runner: AlgorithmRunner,
        circuits: Optional[CircuitStore] = None,
    ) -> None:
        self.ctx = ctx
        self.registry = registry
        self.gateway = gateway
        self.refunds = refunds
        self.runner = runner
        self.circuits = circuits

    # ---- helpers ---------------------------------------------------------

    @property
    def _cfg(self):
        return self.ctx.config

    def _load(self, job_id: int) -> Job:
        job = self.ctx.db.get_job(int(job_id))
        if job is None:
            raise NotFound(f"job {job_id} does not exist", details={"job_id": int(job_id)})
        return job

    def _move(self, job: Job, dst: JobStatus) -> None:
        if not can_transition(job.status, dst):
            raise InvalidState(
                f"illegal transition {job.status.value} -> {dst.value}",
                job_id=job.job_id, status=job.status.value,
            )
        job.status = dst

    def exec_expired(self, job: Job, now: float) -> bool:
        return now > self._cfg.exec_deadline(job.submit_time)

    def callback_expired(self, job: Job, now: float) -> bool:
        return now > self._cfg.callback_deadline(job.submit_time)

    def _redirect_to_refund(self, job: Job, now: float, stage: str) -> None:
        """TimedOut, then Refunded, in the caller's transaction."""
        deadline = (self._cfg.callback_deadline(job.submit_time) if stage == "callback"
                    else self._cfg.exec_deadline(job.submit_time))
        exp = Expired(job_id=job.job_id, stage=stage, deadline=deadline, now=now)
        if job.status is not JobStatus.TIMED_OUT:
            self._move(job, JobStatus.TIMED_OUT)
            self.ctx.db.update_job(job)
            self.ctx.emit(EventType.JOB_TIMED_OUT, ts=now, job_id=job.job_id,
                          principal=job.depositor, stage=stage, deadline=deadline)
            metrics.record_timeout(stage)
            log.warning(str(exp), extra={"job_id": job.job_id, "stage": stage})
        self.refunds.issue_refund(job, _STAGE_REASON[stage])

    # ---- submission ------------------------------------------------------

    def submit_job(
        self,
        depositor: str,
        encrypted_input: Union[str, Ciphertext],
        algorithm_tag: Any,
        deposit: int,
    ) -> int:
        """Validate and store a new job as Submitted; return its id (first id is 1)."""
        try:
            tag = AlgorithmTag.parse(algorithm_tag)
        except ValueError:
            raise InvalidInput("invalid algorithm type", details={"algorithm_tag": repr(algorithm_tag)}) from None
        if isinstance(deposit, bool) or not isinstance(deposit, int):
            raise InvalidInput("deposit must be an integer")
        minimum = self._cfg.fees.minimum_fee
        if deposit < minimum:
            raise InvalidInput("insufficient fee", details={"deposit": deposit, "minimum_fee": minimum})
        if deposit > MAX_STORED_INT:
            raise InvalidInput("deposit too large", details={"deposit": deposit, "maximum": MAX_STORED_INT})
        handle = encrypted_input.handle if isinstance(encrypted_input, Ciphertext) else str(encrypted_input)
        try:
            Ciphertext.from_handle(handle)
        except FheError as e:
            raise InvalidInput("malformed encrypted input", details=e.details) from e
        if not depositor:
            raise InvalidInput("depositor must be non-empty")
        if not self.ctx.acl.allowed(handle, depositor):
            raise Unauthorized("depositor holds no decrypt capability for the input", principal=depositor)

        with metrics.timed("submit_job"), self.ctx.db.tx():
            if self._cfg.circuits.require_state and self.circuits is not None \
                    and not self.circuits.has_state(depositor):
                raise InvalidInput("quantum state not initialized", details={"depositor": depositor})
            now = self.ctx.now()
            job_id = self.ctx.db.allocate("next_job_id")
            job = Job(
                job_id=job_id,
                depositor=depositor,
                encrypted_input=handle,
                algorithm=tag,
                deposit=deposit,
                submit_time=now,
            )
            self.ctx.db.insert_job(job)
            self.ctx.emit(EventType.JOB_SUBMITTED, ts=now, job_id=job_id, principal=depositor,
                          algorithm=int(tag), deposit=deposit)
        metrics.record_submit(tag.label)
        log.info("job submitted", extra={"job_id": job_id, "depositor": depositor, "algorithm": tag.label})
        return job_id

    # ---- execution -------------------------------------------------------

    def execute_job(self, job_id: int, caller: str) -> JobStatus:
        """
        Run the algorithm stand-in and move the job to DecryptPending.

        Returns the resulting status: DecryptPending on success, Refunded if
        the exec window had already elapsed.
        """
        with metrics.timed("execute_job"), self.ctx.db.tx():
            if not self.registry.is_authorized_node(caller):
                raise Unauthorized("caller is not an authorized compute node", principal=caller)
            job = self._load(job_id)
            if job.status is not JobStatus.SUBMITTED:
                raise InvalidState("job is not awaiting execution",
                                   job_id=job.job_id, status=job.status.value)
            now = self.ctx.now()
            if self.exec_expired(job, now):
                self._redirect_to_refund(job, now, "execute")
                return job.status

            result, units = self.runner.run(job.algorithm, job.encrypted_input)
            job.encrypted_result = result.handle
            job.resource_units = int(units)
            self._move(job, JobStatus.DECRYPT_PENDING)
            self.ctx.db.update_job(job)
            self.ctx.emit(EventType.ALGORITHM_EXECUTED, ts=now, job_id=job.job_id, principal=caller,
                          executor=caller, resource_units=job.resource_units)
            if self.ctx.acl.grant(result, job.depositor, at=now):
                self.ctx.emit(EventType.DECRYPT_GRANTED, ts=now, job_id=job.job_id,
                              principal=job.depositor)

        metrics.record_execute(job.algorithm.label, job.resource_units)
        log.info("job executed", extra={"job_id": job.job_id, "executor": caller,
                                        "resource_units": job.resource_units})
        return job.status

    # ---- decryption request ----------------------------------------------

    def request_decryption(self, job_id: int, caller: str) -> int:
        """
        Ask the oracle to decrypt the job result. Returns the oracle request
        id, or NO_REQUEST (0) if the job had expired and was refunded instead.
        """
        with metrics.timed("request_decryption"), self.ctx.db.tx():
            job = self._load(job_id)
            if caller != job.depositor:
                raise Unauthorized("only the depositor may request decryption", principal=caller)
            if job.status is not JobStatus.DECRYPT_PENDING:
                raise InvalidState("job is not awaiting decryption",
                                   job_id=job.job_id, status=job.status.value)
            now = self.ctx.now()
            if self.exec_expired(job, now):
                self._redirect_to_refund(job, now, "request")
                metrics.record_decrypt_request("expired")
                return NO_REQUEST

            db = self.ctx.db
            if job.outstanding_request_id != NO_REQUEST:
                prior = db.get_correlation(job.outstanding_request_id)
                if prior is not None and not prior.consumed and now <= prior.deadline:
                    raise InvalidState(
                        "a decryption request is already outstanding",
                        job_id=job.job_id, status=job.status.value,
                        details={"request_id": prior.request_id, "deadline": prior.deadline},
                    )
                db.consume_correlation(job.outstanding_request_id, "superseded")
                metrics.record_decrypt_request("superseded")
                log.info("stale decryption request superseded",
                         extra={"job_id": job.job_id, "request_id": job.outstanding_request_id})

            deadline = min(now + self._cfg.timeouts.request_timeout_s,
                           self._cfg.callback_deadline(job.submit_time))
            request_id = self.gateway.request_decryption(job.encrypted_result, deadline, job.depositor)
            if request_id <= NO_REQUEST:
                raise StoreError("oracle returned an invalid request id", details={"request_id": request_id})

            job.outstanding_request_id = request_id
            db.update_job(job)
            db.insert_correlation(Correlation(request_id=request_id, job_id=job.job_id,
                                              created_at=now, deadline=deadline))
            self.ctx.emit(EventType.DECRYPTION_REQUESTED, ts=now, job_id=job.job_id,
                          principal=caller, request_id=request_id, deadline=deadline)

        metrics.record_decrypt_request("issued")
        log.info("decryption requested", extra={"job_id": job.job_id, "request_id": request_id})
        return request_id

    # ---- oracle callback -------------------------------------------------

    def on_oracle_callback(self, request_id: int, plaintext: int, caller: str) -> CallbackOutcome:
        """Entry point reserved for the trusted oracle principal."""
        if caller != self._cfg.oracle.principal:
            raise Unauthorized("callback caller is not the decryption oracle", principal=caller)

        with metrics.timed("on_oracle_callback"), self.ctx.db.tx():
            db = self.ctx.db
            corr = db.get_correlation(int(request_id))
            job = db.get_job(corr.job_id) if corr is not None else None
            if (
                job is None
                or job.outstanding_request_id != int(request_id)
                or job.status is not JobStatus.DECRYPT_PENDING
            ):
                self._alert(int(request_id), job)
                return CallbackOutcome.REJECTED

            now = self.ctx.now()
            if self.callback_expired(job, now):
                self._redirect_to_refund(job, now, "callback")
                metrics.record_callback("timed_out")
                return CallbackOutcome.REFUNDED

            if isinstance(plaintext, bool) or not isinstance(plaintext, int) or plaintext < 0:
                raise InvalidInput("oracle plaintext must be a non-negative integer")
            limit = min(1 << self.ctx.fhe.bits_of(job.encrypted_result), MAX_STORED_INT + 1)
            if plaintext >= limit:
                raise InvalidInput("oracle plaintext exceeds the result width",
                                   details={"plaintext": plaintext, "limit": limit})

            self._move(job, JobStatus.COMPLETED)
            job.complete_time = now if now > job.submit_time else math.nextafter(job.submit_time, math.inf)
            job.plaintext_result = plaintext
            job.outstanding_request_id = NO_REQUEST
            db.consume_correlation(int(request_id), "completed")
            db.update_job(job)
            self.ctx.emit(EventType.JOB_COMPLETED, ts=now, job_id=job.job_id,
                          principal=job.depositor, request_id=int(request_id))

        metrics.record_callback("completed")
        log.info("job completed", extra={"job_id": job.job_id, "request_id": int(request_id)})
        return CallbackOutcome.COMPLETED

    def _alert(self, request_id: int, job: Optional[Job]) -> None:
        alert = SecurityAlert(
            request_id=request_id,
            job_id=job.job_id if job is not None else None,
            outstanding_request_id=job.outstanding_request_id if job is not None else None,
        )
        kind = "unknown_request" if job is None else "stale_request"
        log.warning(str(alert), extra={"request_id": request_id, "kind": kind,
                                       "job_id": job.job_id if job is not None else None})
        metrics.record_security_alert(kind)
        metrics.record_callback("rejected")
        self.ctx.emit(
            EventType.SECURITY_ALERT,
            job_id=job.job_id if job is not None else None,
            kind=kind,
            request_id=request_id,
            outstanding_request_id=alert.details.get("outstanding_request_id"),
        )

    # ---- manual refund ---------------------------------------------------

    def request_manual_refund(self, job_id: int, caller: str) -> int:
        """Depositor-initiated refund of an expired, uncompleted job. Returns the amount credited."""
        with metrics.timed("request_manual_refund"), self.ctx.db.tx():
            job = self._load(job_id)
            if caller != job.depositor:
                raise Unauthorized("only the depositor may request a refund", principal=caller)
            if job.refund_claimed:
                raise InvalidState("refund already claimed", job_id=job.job_id, status=job.status.value)
            if job.status is JobStatus.COMPLETED:
                raise InvalidState("job already completed", job_id=job.job_id, status=job.status.value)
            now = self.ctx.now()
            if not self.exec_expired(job, now):
                raise InvalidState(
                    "job has not expired", job_id=job.job_id, status=job.status.value,
                    details={"deadline": self._cfg.exec_deadline(job.submit_time), "now": now},
                )
            self._redirect_to_refund(job, now, "manual")
        return job.deposit if job.refund_claimed else 0

    # ---- reads -----------------------------------------------------------

    def get_job(self, job_id: int) -> Job:
        return self._load(job_id)

    def get_job_status(self, job_id: int) -> JobStatus:
        return self._load(job_id).status

    def get_job_history(self, depositor: str) -> List[int]:
        return self.ctx.db.job_ids_for(depositor)

    def list_events(self, job_id: Optional[int] = None, *, after_seq: int = 0,
                    limit: int = 1000) -> List[AuditEvent]:
        return self.ctx.db.list_events(job_id=job_id, after_seq=after_seq, limit=limit)


__all__ = ["JobLifecycleEngine", "CallbackOutcome"]
