from __future__ import annotations

from typing import Any, Dict

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from qpc.errors import InvalidInput, Unauthorized
from qpc.rpc.methods import make_methods
from qpc.rpc.mount import mount_qpc, register_jsonrpc

from .conftest import DEPOSITOR, EXEC_TIMEOUT, MIN_FEE, OPERATOR, ORACLE, WORKER


def _mk_client(node) -> TestClient:
    app = FastAPI()
    mount_qpc(app, node, prefix="/qpc")
    return TestClient(app)


def _as(principal: str) -> Dict[str, str]:
    return {"X-QPC-Principal": principal}


# ---- JSON-RPC method table ----------------------------------------------------


def test_register_jsonrpc_with_add_dispatcher(node):
    class _Dispatcher:
        def __init__(self) -> None:
            self.methods: Dict[str, Any] = {}

        def add(self, method, func):
            self.methods[method] = func

    d = _Dispatcher()
    register_jsonrpc(d, node)
    assert "qpc.submitJob" in d.methods
    assert set(d.methods) == set(make_methods(node))


def test_register_jsonrpc_with_register_dispatcher(node):
    class _Dispatcher:
        def __init__(self) -> None:
            self.names = []

        def register(self, method, func):
            self.names.append(method)

    d = _Dispatcher()
    register_jsonrpc(d, node)
    assert "qpc.onOracleCallback" in d.names


def test_methods_round_trip(node):
    m = make_methods(node)
    job_id = m["qpc.submitJob"](caller=DEPOSITOR, encryptedInput=node.encrypt(5, owner=DEPOSITOR),
                                algorithmTag="shor", deposit=str(MIN_FEE))["jobId"]
    assert m["qpc.executeJob"](caller=WORKER, jobId=job_id)["status"] == "DecryptPending"
    rid = m["qpc.requestDecryption"](caller=DEPOSITOR, jobId=job_id)["requestId"]
    out = m["qpc.onOracleCallback"](caller=ORACLE, requestId=rid, plaintext=26)
    assert out["outcome"] == "completed"

    view = m["qpc.getJob"](jobId=job_id, caller=DEPOSITOR)
    assert view["status"] == "Completed"
    assert view["plaintextResult"] == 26
    assert m["qpc.getJob"](jobId=job_id)["plaintextResult"] is None
    assert m["qpc.getJob"](jobId=job_id, caller="mallory")["plaintextResult"] is None
    assert m["qpc.getJobHistory"](depositor=DEPOSITOR)["jobIds"] == [job_id]
    events = m["qpc.listEvents"](jobId=job_id)
    assert events["items"][0]["type"] == "JobSubmitted"
    assert events["nextSeq"] == events["items"][-1]["seq"]


def test_methods_coerce_and_reject_bad_ids(node):
    m = make_methods(node)
    with pytest.raises(InvalidInput):
        m["qpc.getJob"](jobId="abc")
    with pytest.raises(InvalidInput):
        m["qpc.getJob"](jobId=0)
    with pytest.raises(InvalidInput):
        m["qpc.submitJob"](caller="", encryptedInput=node.encrypt(1), algorithmTag=0, deposit=MIN_FEE)


# ---- REST --------------------------------------------------------------------


def test_rest_job_flow(node):
    client = _mk_client(node)
    r = client.post("/qpc/jobs", headers=_as(DEPOSITOR),
                    json={"encryptedInput": node.encrypt(5, owner=DEPOSITOR), "algorithmTag": 0, "deposit": MIN_FEE})
    assert r.status_code == 200, r.text
    job_id = r.json()["jobId"]

    r = client.post(f"/qpc/jobs/{job_id}/execute", headers=_as(WORKER))
    assert r.json()["status"] == "DecryptPending"

    r = client.post(f"/qpc/jobs/{job_id}/decrypt", headers=_as(DEPOSITOR))
    rid = r.json()["requestId"]

    r = client.post("/qpc/oracle/callback", headers=_as(ORACLE), json={"requestId": rid, "plaintext": 26})
    assert r.json()["outcome"] == "completed"

    r = client.get(f"/qpc/jobs/{job_id}/status")
    assert r.json() == {"jobId": job_id, "status": "Completed"}
    assert client.get(f"/qpc/depositors/{DEPOSITOR}/jobs").json()["jobIds"] == [job_id]


def test_rest_error_mapping(node):
    client = _mk_client(node)
    r = client.post("/qpc/jobs", headers=_as(DEPOSITOR),
                    json={"encryptedInput": node.encrypt(5, owner=DEPOSITOR), "algorithmTag": 0, "deposit": 1})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "QPC_INVALID_INPUT"

    assert client.get("/qpc/jobs/99").status_code == 404
    assert client.post("/qpc/jobs/99/execute", headers=_as("mallory")).status_code == 403
    assert client.post("/qpc/refunds/claim", headers=_as(DEPOSITOR)).status_code == 402
    # missing principal header
    assert client.post("/qpc/jobs/1/execute").status_code == 422


def test_methods_refuse_foreign_ciphertexts(node, submit):
    m = make_methods(node)
    job_id = submit(77)
    m["qpc.executeJob"](caller=WORKER, jobId=job_id)
    result = m["qpc.getJob"](jobId=job_id)["encryptedResult"]
    with pytest.raises(Unauthorized):
        m["qpc.obfuscatedDivide"](caller="mallory", numerator=result, denominator=1)
    with pytest.raises(Unauthorized):
        m["qpc.obfuscatePrice"](caller="mallory", price=result, priceId=1)
    with pytest.raises(Unauthorized):
        m["qpc.submitJob"](caller="mallory", encryptedInput=result, algorithmTag=5, deposit=MIN_FEE)


def test_encrypt_input_grants_the_caller(node):
    m = make_methods(node)
    handle = m["qpc.encryptInput"](caller=DEPOSITOR, value=9)["handle"]
    assert node.ctx.acl.holders(handle) == [DEPOSITOR]
    with pytest.raises(InvalidInput):
        m["qpc.encryptInput"](caller=DEPOSITOR, value=256)


def test_rest_sealed_input_and_plaintext_visibility(node):
    client = _mk_client(node)
    r = client.post("/qpc/inputs", headers=_as(DEPOSITOR), json={"value": 5})
    assert r.status_code == 200, r.text
    handle = r.json()["handle"]

    r = client.post("/qpc/jobs", headers=_as("mallory"),
                    json={"encryptedInput": handle, "algorithmTag": 0, "deposit": MIN_FEE})
    assert r.status_code == 403

    r = client.post("/qpc/jobs", headers=_as(DEPOSITOR),
                    json={"encryptedInput": handle, "algorithmTag": 0, "deposit": MIN_FEE})
    job_id = r.json()["jobId"]
    client.post(f"/qpc/jobs/{job_id}/execute", headers=_as(WORKER))
    rid = client.post(f"/qpc/jobs/{job_id}/decrypt", headers=_as(DEPOSITOR)).json()["requestId"]
    client.post("/qpc/oracle/callback", headers=_as(ORACLE), json={"requestId": rid, "plaintext": 26})

    assert client.get(f"/qpc/jobs/{job_id}", headers=_as(DEPOSITOR)).json()["plaintextResult"] == 26
    assert client.get(f"/qpc/jobs/{job_id}", headers=_as("mallory")).json()["plaintextResult"] is None
    assert client.get(f"/qpc/jobs/{job_id}").json()["plaintextResult"] is None


def test_rest_oracle_plaintext_out_of_range(node, requested):
    client = _mk_client(node)
    _, rid = requested()
    r = client.post("/qpc/oracle/callback", headers=_as(ORACLE), json={"requestId": rid, "plaintext": 2 ** 64})
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "QPC_INVALID_INPUT"


def test_rest_conflict_on_duplicate_execute(node, submit):
    client = _mk_client(node)
    job_id = submit()
    assert client.post(f"/qpc/jobs/{job_id}/execute", headers=_as(WORKER)).status_code == 200
    assert client.post(f"/qpc/jobs/{job_id}/execute", headers=_as(WORKER)).status_code == 409


def test_rest_refund_and_claim(node, submit, clock):
    client = _mk_client(node)
    job_id = submit()
    clock.advance(EXEC_TIMEOUT + 1)
    r = client.post(f"/qpc/jobs/{job_id}/refund", headers=_as(DEPOSITOR))
    assert r.json() == {"jobId": job_id, "amount": MIN_FEE, "status": "Refunded"}
    assert client.get(f"/qpc/refunds/{DEPOSITOR}").json()["amount"] == MIN_FEE
    assert client.post("/qpc/refunds/claim", headers=_as(DEPOSITOR)).json()["amount"] == MIN_FEE
    assert client.get(f"/qpc/refunds/{DEPOSITOR}").json()["amount"] == 0


def test_rest_privacy(node):
    client = _mk_client(node)
    r = client.post("/qpc/privacy/divide", headers=_as(DEPOSITOR), json={"numerator": 200, "denominator": 7})
    assert node.ctx.fhe.decrypt(r.json()["handle"]) == 28

    client.post("/qpc/privacy/prices/7", headers=_as(DEPOSITOR), json={"price": 100})
    r = client.post("/qpc/privacy/prices/7/recover", headers=_as(DEPOSITOR))
    assert node.ctx.fhe.decrypt(r.json()["handle"]) == 100
    assert client.post("/qpc/privacy/prices/8/recover", headers=_as(DEPOSITOR)).status_code == 404


def test_rest_states_and_circuits(node):
    client = _mk_client(node)
    r = client.post("/qpc/states", headers=_as(DEPOSITOR), json={"amplitudes": [1, 2, 3, 4], "qubitCount": 2})
    assert r.json()["qubit_count"] == 2
    client.post("/qpc/states", headers=_as("bob"), json={"amplitudes": [1, 2], "qubitCount": 1})
    assert client.post("/qpc/states/entangle", headers=_as(DEPOSITOR), json={"partner": "bob"}).status_code == 200
    assert client.get(f"/qpc/states/{DEPOSITOR}").json()["entangled_with"] == "bob"

    r = client.post("/qpc/circuits/1", headers=_as(DEPOSITOR),
                    json={"gateTypes": [1, 2], "targetQubits": [0, 1], "controlQubits": [0, 0]})
    assert len(r.json()["gates"]) == 2
    r = client.post("/qpc/circuits/2", headers=_as(DEPOSITOR),
                    json={"gateTypes": [1], "targetQubits": [5], "controlQubits": [0]})
    assert r.status_code == 400


def test_rest_workers(node):
    client = _mk_client(node)
    assert client.put("/qpc/workers/worker-2", headers=_as(OPERATOR)).json()["added"] is True
    assert client.put("/qpc/workers/worker-3", headers=_as(WORKER)).status_code == 403
    assert client.get("/qpc/workers").json()["workers"] == [WORKER, "worker-2"]
    assert client.delete("/qpc/workers/worker-2", headers=_as(OPERATOR)).json()["removed"] is True


def test_metrics_endpoint(node, submit):
    client = _mk_client(node)
    submit()
    r = client.get("/qpc/metrics/")
    assert r.status_code == 200
    assert "qpc_jobs_submitted_total" in r.text
