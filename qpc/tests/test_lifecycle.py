from __future__ import annotations

import pytest

from qpc.errors import InvalidInput, InvalidState, NotFound, Unauthorized
from qpc.lifecycle.engine import CallbackOutcome
from qpc.qtypes.events import EventType
from qpc.qtypes.job import NO_REQUEST, JobStatus

from .conftest import (DEPOSITOR, EXEC_TIMEOUT, GRACE, MIN_FEE, ORACLE,
                       REQUEST_TIMEOUT, WORKER)


def _etypes(node, job_id):
    return [ev.etype for ev in node.engine.list_events(job_id)]


# ---- submission --------------------------------------------------------------


def test_first_submission_gets_id_one(node, submit):
    job_id = submit(42)
    assert job_id == 1
    job = node.engine.get_job(job_id)
    assert job.status is JobStatus.SUBMITTED
    assert job.deposit == MIN_FEE
    assert job.encrypted_result is None
    assert job.outstanding_request_id == NO_REQUEST
    assert submit(43) == 2


@pytest.mark.parametrize("tag", [6, -1, "teleport", None])
def test_submit_rejects_unknown_algorithm(node, tag):
    with pytest.raises(InvalidInput):
        node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), tag, MIN_FEE)


def test_submit_accepts_algorithm_names(node):
    job_id = node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), "grover", MIN_FEE)
    assert node.engine.get_job(job_id).algorithm.label == "grover"


def test_submit_rejects_under_minimum_fee(node):
    with pytest.raises(InvalidInput) as ei:
        node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), 0, MIN_FEE - 1)
    assert ei.value.message == "insufficient fee"


def test_submit_rejects_malformed_input(node):
    with pytest.raises(InvalidInput):
        node.engine.submit_job(DEPOSITOR, "0xdeadbeef", 0, MIN_FEE)


def test_submit_rejects_deposit_beyond_storage_range(node):
    with pytest.raises(InvalidInput) as ei:
        node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), 0, 1 << 63)
    assert ei.value.message == "deposit too large"
    assert node.engine.get_job_history(DEPOSITOR) == []


def test_submit_requires_capability_over_input(node):
    with pytest.raises(Unauthorized):
        node.engine.submit_job(DEPOSITOR, node.encrypt(1), 0, MIN_FEE)
    assert node.engine.get_job_history(DEPOSITOR) == []


def test_submit_rejects_another_depositors_handles(node, submit):
    job_id = submit(77)
    node.engine.execute_job(job_id, WORKER)
    job = node.engine.get_job(job_id)
    for handle in (job.encrypted_input, job.encrypted_result):
        with pytest.raises(Unauthorized):
            node.engine.submit_job("mallory", handle, 5, MIN_FEE)
    assert node.engine.get_job_history("mallory") == []


def test_failed_submission_leaves_no_trace(node, submit):
    with pytest.raises(InvalidInput):
        node.engine.submit_job(DEPOSITOR, node.encrypt(1, owner=DEPOSITOR), 9, MIN_FEE)
    assert node.engine.get_job_history(DEPOSITOR) == []
    assert node.engine.list_events() == []
    assert submit() == 1


def test_history_is_in_submission_order(node, submit):
    ids = [submit(v) for v in (1, 2, 3)]
    submit(4, depositor="bob")
    assert node.engine.get_job_history(DEPOSITOR) == ids
    assert node.engine.get_job_history("nobody") == []


# ---- execution ---------------------------------------------------------------


def test_execute_by_unauthorized_caller_leaves_job_untouched(node, submit):
    job_id = submit()
    with pytest.raises(Unauthorized):
        node.engine.execute_job(job_id, "mallory")
    assert node.engine.get_job_status(job_id) is JobStatus.SUBMITTED
    assert node.engine.get_job(job_id).encrypted_result is None


def test_execute_missing_job(node):
    with pytest.raises(NotFound):
        node.engine.execute_job(99, WORKER)


def test_execute_moves_to_decrypt_pending_and_grants_depositor(node, submit):
    job_id = submit(5)
    status = node.engine.execute_job(job_id, WORKER)
    assert status is JobStatus.DECRYPT_PENDING

    job = node.engine.get_job(job_id)
    assert job.resource_units > 0
    assert job.encrypted_result is not None
    assert node.ctx.acl.allowed(job.encrypted_result, DEPOSITOR)
    assert not node.ctx.acl.allowed(job.encrypted_result, WORKER)
    # shor stand-in: x^2 + 1
    assert node.ctx.fhe.decrypt(job.encrypted_result) == 26
    assert _etypes(node, job_id).count(EventType.DECRYPT_GRANTED) == 1


def test_operator_may_execute(node, submit):
    assert node.engine.execute_job(submit(), "owner") is JobStatus.DECRYPT_PENDING


def test_execute_twice_is_invalid_state(node, submit):
    job_id = submit()
    node.engine.execute_job(job_id, WORKER)
    with pytest.raises(InvalidState):
        node.engine.execute_job(job_id, WORKER)


def test_execute_at_exact_deadline_still_runs(node, submit, clock):
    job_id = submit()
    clock.advance(EXEC_TIMEOUT)
    assert node.engine.execute_job(job_id, WORKER) is JobStatus.DECRYPT_PENDING


def test_execute_after_timeout_redirects_to_refund(node, submit, clock):
    job_id = submit()
    clock.advance(EXEC_TIMEOUT + 1)
    assert node.engine.execute_job(job_id, WORKER) is JobStatus.REFUNDED

    job = node.engine.get_job(job_id)
    assert job.refund_claimed
    assert job.encrypted_result is None
    assert node.refunds.pending(DEPOSITOR) == MIN_FEE
    types = _etypes(node, job_id)
    assert types.index(EventType.JOB_TIMED_OUT) < types.index(EventType.REFUND_ISSUED)


# ---- decryption request ------------------------------------------------------


def test_only_depositor_may_request_decryption(node, submit):
    job_id = submit()
    node.engine.execute_job(job_id, WORKER)
    with pytest.raises(Unauthorized):
        node.engine.request_decryption(job_id, "bob")


def test_request_before_execution_is_invalid_state(node, submit):
    with pytest.raises(InvalidState):
        node.engine.request_decryption(submit(), DEPOSITOR)


def test_request_records_correlation(node, requested):
    job_id, request_id = requested()
    assert request_id > NO_REQUEST
    job = node.engine.get_job(job_id)
    assert job.outstanding_request_id == request_id
    corr = node.db.get_correlation(request_id)
    assert corr.job_id == job_id and not corr.consumed


def test_request_after_timeout_returns_sentinel(node, submit, clock):
    job_id = submit()
    node.engine.execute_job(job_id, WORKER)
    clock.advance(EXEC_TIMEOUT + 1)
    assert node.engine.request_decryption(job_id, DEPOSITOR) == NO_REQUEST
    assert node.engine.get_job_status(job_id) is JobStatus.REFUNDED
    assert node.refunds.pending(DEPOSITOR) == MIN_FEE


def test_second_request_while_outstanding_is_rejected(node, requested):
    job_id, _ = requested()
    with pytest.raises(InvalidState):
        node.engine.request_decryption(job_id, DEPOSITOR)


def test_stale_request_is_superseded(node, requested, clock):
    job_id, first = requested()
    clock.advance(REQUEST_TIMEOUT + 1)
    second = node.engine.request_decryption(job_id, DEPOSITOR)
    assert second != first
    old = node.db.get_correlation(first)
    assert old.consumed and old.consumed_reason == "superseded"

    # the superseded id can no longer complete the job
    assert node.engine.on_oracle_callback(first, 1, ORACLE) is CallbackOutcome.REJECTED
    assert node.engine.get_job_status(job_id) is JobStatus.DECRYPT_PENDING
    assert node.engine.on_oracle_callback(second, 1, ORACLE) is CallbackOutcome.COMPLETED


# ---- oracle callback ---------------------------------------------------------


def test_oracle_round_trip_completes_job(node, requested, events):
    job_id, request_id = requested(5)
    assert node.oracle.fulfill(request_id) is CallbackOutcome.COMPLETED

    job = node.engine.get_job(job_id)
    assert job.status is JobStatus.COMPLETED
    assert job.plaintext_result == 26
    assert job.complete_time > job.submit_time
    assert job.outstanding_request_id == NO_REQUEST
    assert node.db.get_correlation(request_id).consumed_reason == "completed"
    assert EventType.JOB_COMPLETED in [e.etype for e in events]


def test_complete_time_is_after_submit_even_without_clock_movement(node, requested):
    job_id, request_id = requested()
    node.engine.on_oracle_callback(request_id, 7, ORACLE)
    job = node.engine.get_job(job_id)
    assert job.complete_time > job.submit_time


def test_duplicate_callback_is_rejected_without_state_change(node, requested):
    job_id, request_id = requested()
    node.engine.on_oracle_callback(request_id, 7, ORACLE)
    before = node.engine.get_job(job_id)

    assert node.engine.on_oracle_callback(request_id, 99, ORACLE) is CallbackOutcome.REJECTED
    assert node.engine.get_job(job_id) == before
    assert EventType.SECURITY_ALERT in _etypes(node, job_id)


def test_unknown_request_id_raises_security_alert(node, requested):
    requested()
    assert node.engine.on_oracle_callback(12345, 1, ORACLE) is CallbackOutcome.REJECTED
    alerts = node.db.list_events(etype=EventType.SECURITY_ALERT.value)
    assert len(alerts) == 1
    assert alerts[0].data["request_id"] == 12345
    assert alerts[0].data["kind"] == "unknown_request"


def test_callback_from_non_oracle_is_unauthorized(node, requested):
    job_id, request_id = requested()
    with pytest.raises(Unauthorized):
        node.engine.on_oracle_callback(request_id, 1, DEPOSITOR)
    assert node.engine.get_job_status(job_id) is JobStatus.DECRYPT_PENDING


def test_callback_rejects_negative_plaintext(node, requested):
    job_id, request_id = requested()
    with pytest.raises(InvalidInput):
        node.engine.on_oracle_callback(request_id, -1, ORACLE)
    assert node.engine.get_job_status(job_id) is JobStatus.DECRYPT_PENDING


@pytest.mark.parametrize("plaintext", [256, 1 << 63, 1 << 64])
def test_callback_rejects_plaintext_wider_than_result(node, requested, plaintext):
    job_id, request_id = requested()
    with pytest.raises(InvalidInput):
        node.engine.on_oracle_callback(request_id, plaintext, ORACLE)
    assert node.engine.get_job_status(job_id) is JobStatus.DECRYPT_PENDING
    assert node.engine.on_oracle_callback(request_id, 255, ORACLE) is CallbackOutcome.COMPLETED


def test_callback_inside_grace_window_still_completes(node, requested, clock):
    job_id, request_id = requested()
    clock.advance(EXEC_TIMEOUT + GRACE)
    assert node.engine.on_oracle_callback(request_id, 3, ORACLE) is CallbackOutcome.COMPLETED


def test_callback_after_grace_window_refunds(node, requested, clock):
    job_id, request_id = requested()
    clock.advance(EXEC_TIMEOUT + GRACE + 1)
    assert node.oracle.fulfill(request_id) is CallbackOutcome.REFUNDED

    job = node.engine.get_job(job_id)
    assert job.status is JobStatus.REFUNDED
    assert job.plaintext_result is None
    assert node.refunds.pending(DEPOSITOR) == MIN_FEE
    assert node.db.get_correlation(request_id).consumed_reason == "refunded"


# ---- manual refund -----------------------------------------------------------


def test_manual_refund_before_expiry_is_rejected(node, submit):
    with pytest.raises(InvalidState):
        node.engine.request_manual_refund(submit(), DEPOSITOR)


def test_manual_refund_by_stranger_is_unauthorized(node, submit, clock):
    job_id = submit()
    clock.advance(EXEC_TIMEOUT + 1)
    with pytest.raises(Unauthorized):
        node.engine.request_manual_refund(job_id, "bob")


def test_manual_refund_credits_once(node, submit, clock):
    job_id = submit()
    clock.advance(EXEC_TIMEOUT + 1)
    assert node.engine.request_manual_refund(job_id, DEPOSITOR) == MIN_FEE
    assert node.engine.get_job_status(job_id) is JobStatus.REFUNDED
    with pytest.raises(InvalidState):
        node.engine.request_manual_refund(job_id, DEPOSITOR)
    assert node.refunds.pending(DEPOSITOR) == MIN_FEE


def test_manual_refund_of_completed_job_is_rejected(node, requested, clock):
    job_id, request_id = requested()
    node.engine.on_oracle_callback(request_id, 1, ORACLE)
    clock.advance(EXEC_TIMEOUT + 1)
    with pytest.raises(InvalidState):
        node.engine.request_manual_refund(job_id, DEPOSITOR)
    assert node.refunds.pending(DEPOSITOR) == 0


def test_manual_refund_invalidates_outstanding_request(node, requested, clock):
    job_id, request_id = requested()
    clock.advance(EXEC_TIMEOUT + 1)
    node.engine.request_manual_refund(job_id, DEPOSITOR)
    assert node.engine.on_oracle_callback(request_id, 1, ORACLE) is CallbackOutcome.REJECTED
    assert node.engine.get_job_status(job_id) is JobStatus.REFUNDED
    assert node.refunds.pending(DEPOSITOR) == MIN_FEE


# ---- reads -------------------------------------------------------------------


def test_get_missing_job_is_not_found(node):
    with pytest.raises(NotFound):
        node.engine.get_job(7)
    with pytest.raises(NotFound):
        node.engine.get_job_status(7)


def test_event_log_follows_lifecycle(node, requested):
    job_id, request_id = requested()
    node.engine.on_oracle_callback(request_id, 1, ORACLE)
    assert _etypes(node, job_id) == [
        EventType.JOB_SUBMITTED,
        EventType.ALGORITHM_EXECUTED,
        EventType.DECRYPT_GRANTED,
        EventType.DECRYPTION_REQUESTED,
        EventType.JOB_COMPLETED,
    ]
