from __future__ import annotations

"""
qpc.rpc.methods
---------------

JSON-RPC style method implementations for the QPC job service.

Exposed methods (bind via `make_methods`):
  • qpc.encryptInput
  • qpc.submitJob            • qpc.getJob
  • qpc.executeJob           • qpc.getJobStatus
  • qpc.requestDecryption    • qpc.getJobHistory
  • qpc.onOracleCallback     • qpc.listEvents
  • qpc.requestManualRefund  • qpc.getPendingRefund
  • qpc.claimRefund          • qpc.obfuscatedDivide
  • qpc.obfuscatePrice       • qpc.deobfuscatePrice
  • qpc.initializeQuantumState / qpc.getQuantumStateInfo
  • qpc.createEntanglement   • qpc.compileQuantumCircuit
  • qpc.addWorker / qpc.removeWorker / qpc.listWorkers / qpc.isAuthorizedNode

Design:
  - Transport-agnostic: returns a dict of callables a JSON-RPC dispatcher can
    register. `build_rest_router` exposes the same callables via FastAPI.
  - Identity management is out of scope, so state-changing methods take the
    calling principal explicitly as `caller`.
  - Domain errors (`QPCError`) propagate; dispatchers serialize them with
    `to_dict()`, the REST router maps them with `http_status_for`.

Usage:
    from qpc.rpc.methods import make_methods
    methods = make_methods(node)
    methods["qpc.submitJob"](caller="alice", encryptedInput=h, algorithmTag=0, deposit=1_000_000)
"""

from typing import Any, Callable, Dict, List, Optional

from ..errors import (FheError, InvalidInput, InvalidState, NotFound,
                      NothingToClaim, QPCError, StoreError, TransferFailure,
                      Unauthorized)
from ..node import QPCNode
from ..qtypes.events import AuditEvent
from ..qtypes.job import Job

# ---- Views -----------------------------------------------------------------


def job_view(job: Job, viewer: Optional[str] = None) -> Dict[str, Any]:
    """The disclosed plaintext is only shown to the job's depositor."""
    return {
        "jobId": job.job_id,
        "depositor": job.depositor,
        "status": job.status.value,
        "algorithmTag": int(job.algorithm),
        "algorithm": job.algorithm.label,
        "deposit": job.deposit,
        "submitTime": job.submit_time,
        "completeTime": job.complete_time,
        "encryptedInput": job.encrypted_input,
        "encryptedResult": job.encrypted_result,
        "outstandingRequestId": job.outstanding_request_id,
        "refundClaimed": job.refund_claimed,
        "plaintextResult": job.plaintext_result if viewer == job.depositor else None,
        "resourceUnits": job.resource_units,
    }


def event_view(ev: AuditEvent) -> Dict[str, Any]:
    return {
        "seq": ev.seq,
        "type": ev.etype.value,
        "ts": ev.ts,
        "jobId": ev.job_id,
        "principal": ev.principal,
        "data": dict(ev.data),
    }


# ---- Helpers ---------------------------------------------------------------

_HTTP_STATUS = (
    (InvalidInput, 400),
    (FheError, 400),
    (Unauthorized, 403),
    (NotFound, 404),
    (InvalidState, 409),
    (NothingToClaim, 402),
    (TransferFailure, 502),
    (StoreError, 500),
)


def http_status_for(err: QPCError) -> int:
    for cls, status in _HTTP_STATUS:
        if isinstance(err, cls):
            return status
    return 400


def _coerce_int(value: Any, name: str, *, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise InvalidInput(f"invalid {name}: must be an integer")
    try:
        iv = int(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"invalid {name}: must be an integer") from e
    if iv < minimum:
        raise InvalidInput(f"invalid {name}: must be >= {minimum}")
    return iv


def _coerce_operand(value: Any, name: str) -> Any:
    if isinstance(value, str) and value.startswith("0x"):
        return value
    return _coerce_int(value, name)


def _require(value: Optional[str], name: str) -> str:
    if not value:
        raise InvalidInput(f"{name} is required")
    return value


def _int_list(values: Any, name: str) -> List[int]:
    if not isinstance(values, (list, tuple)):
        raise InvalidInput(f"{name} must be a list of integers")
    return [_coerce_int(v, name) for v in values]


# ---- JSON-RPC method factory ----------------------------------------------


def make_methods(node: QPCNode) -> Dict[str, Callable[..., Any]]:
    """
    Build a mapping of JSON-RPC method name -> callable.
    Each callable returns plain JSON-serializable structures.
    """
    engine = node.engine

    # -- lifecycle --

    def qpc_encrypt_input(*, caller: str, value: Any) -> Dict[str, Any]:
        owner = _require(caller, "caller")
        try:
            handle = node.encrypt(_coerce_int(value, "value"), owner=owner)
        except FheError as e:
            raise InvalidInput("value out of range for the input width", details=e.details) from e
        return {"owner": owner, "handle": handle}

    def qpc_submit_job(*, caller: str, encryptedInput: str, algorithmTag: Any, deposit: Any) -> Dict[str, Any]:
        job_id = engine.submit_job(_require(caller, "caller"), _require(encryptedInput, "encryptedInput"),
                                   algorithmTag, _coerce_int(deposit, "deposit"))
        return {"jobId": job_id}

    def qpc_execute_job(*, caller: str, jobId: Any) -> Dict[str, Any]:
        job_id = _coerce_int(jobId, "jobId", minimum=1)
        status = engine.execute_job(job_id, _require(caller, "caller"))
        return {"jobId": job_id, "status": status.value}

    def qpc_request_decryption(*, caller: str, jobId: Any) -> Dict[str, Any]:
        job_id = _coerce_int(jobId, "jobId", minimum=1)
        request_id = engine.request_decryption(job_id, _require(caller, "caller"))
        return {"jobId": job_id, "requestId": request_id, "status": engine.get_job_status(job_id).value}

    def qpc_on_oracle_callback(*, caller: str, requestId: Any, plaintext: Any) -> Dict[str, Any]:
        request_id = _coerce_int(requestId, "requestId")
        outcome = engine.on_oracle_callback(request_id, _coerce_int(plaintext, "plaintext"),
                                            _require(caller, "caller"))
        return {"requestId": request_id, "outcome": outcome.value}

    def qpc_request_manual_refund(*, caller: str, jobId: Any) -> Dict[str, Any]:
        job_id = _coerce_int(jobId, "jobId", minimum=1)
        amount = engine.request_manual_refund(job_id, _require(caller, "caller"))
        return {"jobId": job_id, "amount": amount, "status": engine.get_job_status(job_id).value}

    def qpc_claim_refund(*, caller: str) -> Dict[str, Any]:
        amount = node.refunds.claim(_require(caller, "caller"))
        return {"depositor": caller, "amount": amount}

    def qpc_get_pending_refund(*, depositor: str) -> Dict[str, Any]:
        return {"depositor": depositor, "amount": node.refunds.pending(_require(depositor, "depositor"))}

    # -- reads --

    def qpc_get_job(*, jobId: Any, caller: Optional[str] = None) -> Dict[str, Any]:
        return job_view(engine.get_job(_coerce_int(jobId, "jobId", minimum=1)), caller)

    def qpc_get_job_status(*, jobId: Any) -> Dict[str, Any]:
        job_id = _coerce_int(jobId, "jobId", minimum=1)
        return {"jobId": job_id, "status": engine.get_job_status(job_id).value}

    def qpc_get_job_history(*, depositor: str) -> Dict[str, Any]:
        return {"depositor": depositor, "jobIds": engine.get_job_history(_require(depositor, "depositor"))}

    def qpc_list_events(*, jobId: Any = None, afterSeq: Any = 0, limit: Any = 100) -> Dict[str, Any]:
        job_id = None if jobId is None else _coerce_int(jobId, "jobId", minimum=1)
        items = [event_view(ev) for ev in engine.list_events(
            job_id, after_seq=_coerce_int(afterSeq, "afterSeq"), limit=_coerce_int(limit, "limit", minimum=1))]
        next_seq = items[-1]["seq"] if items else _coerce_int(afterSeq, "afterSeq")
        return {"items": items, "nextSeq": next_seq}

    # -- privacy transforms --

    def qpc_obfuscated_divide(*, caller: str, numerator: Any, denominator: Any) -> Dict[str, Any]:
        ct = node.privacy.obfuscated_divide(_coerce_operand(numerator, "numerator"),
                                            _coerce_operand(denominator, "denominator"),
                                            _require(caller, "caller"))
        return {"handle": ct.handle}

    def qpc_obfuscate_price(*, caller: str, price: Any, priceId: Any) -> Dict[str, Any]:
        price_id = _coerce_int(priceId, "priceId")
        ct = node.privacy.obfuscate_price(_coerce_operand(price, "price"), price_id, _require(caller, "caller"))
        return {"priceId": price_id, "handle": ct.handle}

    def qpc_deobfuscate_price(*, caller: str, priceId: Any) -> Dict[str, Any]:
        price_id = _coerce_int(priceId, "priceId")
        ct = node.privacy.deobfuscate_price(price_id, _require(caller, "caller"))
        return {"priceId": price_id, "handle": ct.handle}

    # -- quantum states & circuits --

    def qpc_initialize_quantum_state(*, caller: str, amplitudes: Any, qubitCount: Any) -> Dict[str, Any]:
        info = node.circuits.initialize_state(_require(caller, "caller"), _int_list(amplitudes, "amplitudes"),
                                              _coerce_int(qubitCount, "qubitCount"))
        return info.to_dict()

    def qpc_get_quantum_state_info(*, owner: str) -> Dict[str, Any]:
        return node.circuits.state_info(_require(owner, "owner")).to_dict()

    def qpc_create_entanglement(*, caller: str, partner: str) -> Dict[str, Any]:
        node.circuits.create_entanglement(_require(caller, "caller"), _require(partner, "partner"))
        return {"owner": caller, "partner": partner}

    def qpc_compile_quantum_circuit(*, caller: str, circuitId: Any, gateTypes: Any,
                                    targetQubits: Any, controlQubits: Any) -> Dict[str, Any]:
        circuit_id = _coerce_int(circuitId, "circuitId")
        gates = node.circuits.compile_circuit(
            _require(caller, "caller"), circuit_id,
            _int_list(gateTypes, "gateTypes"), _int_list(targetQubits, "targetQubits"),
            _int_list(controlQubits, "controlQubits"),
        )
        return {"circuitId": circuit_id, "owner": caller, "gates": gates}

    # -- access registry --

    def qpc_add_worker(*, caller: str, worker: str) -> Dict[str, Any]:
        added = node.registry.add_worker(_require(worker, "worker"), _require(caller, "caller"))
        return {"worker": worker, "added": added}

    def qpc_remove_worker(*, caller: str, worker: str) -> Dict[str, Any]:
        removed = node.registry.remove_worker(_require(worker, "worker"), _require(caller, "caller"))
        return {"worker": worker, "removed": removed}

    def qpc_list_workers() -> Dict[str, Any]:
        return {"workers": node.registry.workers(), "operators": node.registry.operators()}

    def qpc_is_authorized_node(*, principal: str) -> Dict[str, Any]:
        return {"principal": principal, "authorized": node.registry.is_authorized_node(principal)}

    # Map JSON-RPC names → callables
    return {
        "qpc.encryptInput": qpc_encrypt_input,
        "qpc.submitJob": qpc_submit_job,
        "qpc.executeJob": qpc_execute_job,
        "qpc.requestDecryption": qpc_request_decryption,
        "qpc.onOracleCallback": qpc_on_oracle_callback,
        "qpc.requestManualRefund": qpc_request_manual_refund,
        "qpc.claimRefund": qpc_claim_refund,
        "qpc.getPendingRefund": qpc_get_pending_refund,
        "qpc.getJob": qpc_get_job,
        "qpc.getJobStatus": qpc_get_job_status,
        "qpc.getJobHistory": qpc_get_job_history,
        "qpc.listEvents": qpc_list_events,
        "qpc.obfuscatedDivide": qpc_obfuscated_divide,
        "qpc.obfuscatePrice": qpc_obfuscate_price,
        "qpc.deobfuscatePrice": qpc_deobfuscate_price,
        "qpc.initializeQuantumState": qpc_initialize_quantum_state,
        "qpc.getQuantumStateInfo": qpc_get_quantum_state_info,
        "qpc.createEntanglement": qpc_create_entanglement,
        "qpc.compileQuantumCircuit": qpc_compile_quantum_circuit,
        "qpc.addWorker": qpc_add_worker,
        "qpc.removeWorker": qpc_remove_worker,
        "qpc.listWorkers": qpc_list_workers,
        "qpc.isAuthorizedNode": qpc_is_authorized_node,
    }


# ---- REST adapter (FastAPI) ------------------------------------------------


def build_rest_router(node: QPCNode):
    """
    Return a FastAPI APIRouter over the same method table.
    The calling principal is passed in the `X-QPC-Principal` header.
    """
    from fastapi import APIRouter, Body, Header, HTTPException, Query

    router = APIRouter()
    methods = make_methods(node)

    def call(name: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            return methods[name](**kwargs)
        except QPCError as e:
            raise HTTPException(status_code=http_status_for(e), detail=e.to_dict()) from e

    def body_field(payload: Dict[str, Any], key: str) -> Any:
        if key not in payload:
            raise HTTPException(status_code=422, detail=f"missing field: {key}")
        return payload[key]

    # -- jobs --

    @router.post("/inputs")
    def http_encrypt_input(payload: Dict[str, Any] = Body(...), x_qpc_principal: str = Header(...)):
        return call("qpc.encryptInput", caller=x_qpc_principal, value=body_field(payload, "value"))

    @router.post("/jobs")
    def http_submit_job(payload: Dict[str, Any] = Body(...), x_qpc_principal: str = Header(...)):
        return call("qpc.submitJob", caller=x_qpc_principal,
                    encryptedInput=body_field(payload, "encryptedInput"),
                    algorithmTag=body_field(payload, "algorithmTag"),
                    deposit=body_field(payload, "deposit"))

    @router.get("/jobs/{job_id}")
    def http_get_job(job_id: int, x_qpc_principal: Optional[str] = Header(None)):
        return call("qpc.getJob", jobId=job_id, caller=x_qpc_principal)

    @router.get("/jobs/{job_id}/status")
    def http_get_job_status(job_id: int):
        return call("qpc.getJobStatus", jobId=job_id)

    @router.post("/jobs/{job_id}/execute")
    def http_execute_job(job_id: int, x_qpc_principal: str = Header(...)):
        return call("qpc.executeJob", caller=x_qpc_principal, jobId=job_id)

    @router.post("/jobs/{job_id}/decrypt")
    def http_request_decryption(job_id: int, x_qpc_principal: str = Header(...)):
        return call("qpc.requestDecryption", caller=x_qpc_principal, jobId=job_id)

    @router.post("/jobs/{job_id}/refund")
    def http_request_manual_refund(job_id: int, x_qpc_principal: str = Header(...)):
        return call("qpc.requestManualRefund", caller=x_qpc_principal, jobId=job_id)

    @router.get("/depositors/{depositor}/jobs")
    def http_get_job_history(depositor: str):
        return call("qpc.getJobHistory", depositor=depositor)

    @router.get("/events")
    def http_list_events(
        jobId: Optional[int] = None,
        afterSeq: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
    ):
        return call("qpc.listEvents", jobId=jobId, afterSeq=afterSeq, limit=limit)

    # -- oracle --

    @router.post("/oracle/callback")
    def http_oracle_callback(payload: Dict[str, Any] = Body(...), x_qpc_principal: str = Header(...)):
        return call("qpc.onOracleCallback", caller=x_qpc_principal,
                    requestId=body_field(payload, "requestId"),
                    plaintext=body_field(payload, "plaintext"))

    # -- refunds --

    @router.get("/refunds/{depositor}")
    def http_get_pending_refund(depositor: str):
        return call("qpc.getPendingRefund", depositor=depositor)

    @router.post("/refunds/claim")
    def http_claim_refund(x_qpc_principal: str = Header(...)):
        return call("qpc.claimRefund", caller=x_qpc_principal)

    # -- privacy --

    @router.post("/privacy/divide")
    def http_obfuscated_divide(payload: Dict[str, Any] = Body(...), x_qpc_principal: str = Header(...)):
        return call("qpc.obfuscatedDivide", caller=x_qpc_principal,
                    numerator=body_field(payload, "numerator"),
                    denominator=body_field(payload, "denominator"))

    @router.post("/privacy/prices/{price_id}")
    def http_obfuscate_price(price_id: int, payload: Dict[str, Any] = Body(...),
                             x_qpc_principal: str = Header(...)):
        return call("qpc.obfuscatePrice", caller=x_qpc_principal, priceId=price_id,
                    price=body_field(payload, "price"))

    @router.post("/privacy/prices/{price_id}/recover")
    def http_deobfuscate_price(price_id: int, x_qpc_principal: str = Header(...)):
        return call("qpc.deobfuscatePrice", caller=x_qpc_principal, priceId=price_id)

    # -- quantum states & circuits --

    @router.post("/states")
    def http_initialize_state(payload: Dict[str, Any] = Body(...), x_qpc_principal: str = Header(...)):
        return call("qpc.initializeQuantumState", caller=x_qpc_principal,
                    amplitudes=body_field(payload, "amplitudes"),
                    qubitCount=body_field(payload, "qubitCount"))

    @router.get("/states/{owner}")
    def http_get_state(owner: str):
        return call("qpc.getQuantumStateInfo", owner=owner)

    @router.post("/states/entangle")
    def http_entangle(payload: Dict[str, Any] = Body(...), x_qpc_principal: str = Header(...)):
        return call("qpc.createEntanglement", caller=x_qpc_principal, partner=body_field(payload, "partner"))

    @router.post("/circuits/{circuit_id}")
    def http_compile_circuit(circuit_id: int, payload: Dict[str, Any] = Body(...),
                             x_qpc_principal: str = Header(...)):
        return call("qpc.compileQuantumCircuit", caller=x_qpc_principal, circuitId=circuit_id,
                    gateTypes=body_field(payload, "gateTypes"),
                    targetQubits=body_field(payload, "targetQubits"),
                    controlQubits=body_field(payload, "controlQubits"))

    # -- access registry --

    @router.get("/workers")
    def http_list_workers():
        return call("qpc.listWorkers")

    @router.put("/workers/{worker}")
    def http_add_worker(worker: str, x_qpc_principal: str = Header(...)):
        return call("qpc.addWorker", caller=x_qpc_principal, worker=worker)

    @router.delete("/workers/{worker}")
    def http_remove_worker(worker: str, x_qpc_principal: str = Header(...)):
        return call("qpc.removeWorker", caller=x_qpc_principal, worker=worker)

    return router


__all__ = [
    "job_view",
    "event_view",
    "http_status_for",
    "make_methods",
    "build_rest_router",
]
