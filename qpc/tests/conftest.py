from __future__ import annotations

from typing import Callable, List, Tuple

import pytest

from qpc.clock import ManualClock
from qpc.config import (AccessConfig, FeeConfig, QPCConfig, StorageConfig,
                        TimeoutConfig)
from qpc.node import QPCNode, build_node
from qpc.qtypes.events import AuditEvent

T0 = 1_700_000_000.0
MIN_FEE = 1_000_000
EXEC_TIMEOUT = 3_600
GRACE = 1_800
REQUEST_TIMEOUT = 600

DEPOSITOR = "alice"
WORKER = "worker-1"
OPERATOR = "owner"
ORACLE = "oracle"


def make_config(db_path: str = ":memory:", **fees) -> QPCConfig:
    return QPCConfig(
        fees=FeeConfig(minimum_fee=fees.get("minimum_fee", MIN_FEE)),
        timeouts=TimeoutConfig(
            exec_timeout_s=EXEC_TIMEOUT,
            grace_window_s=GRACE,
            request_timeout_s=REQUEST_TIMEOUT,
        ),
        access=AccessConfig(operators=[OPERATOR], workers=[WORKER]),
        storage=StorageConfig(db_path=db_path),
    )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def cfg() -> QPCConfig:
    return make_config()


@pytest.fixture
def node(cfg: QPCConfig, clock: ManualClock):
    n = build_node(cfg, clock=clock)
    yield n
    n.close()


@pytest.fixture
def events(node: QPCNode) -> List[AuditEvent]:
    """Audit events published on the bus (committed only)."""
    seen: List[AuditEvent] = []
    node.ctx.bus.subscribe(seen.append)
    return seen


@pytest.fixture
def submit(node: QPCNode) -> Callable[..., int]:
    def _submit(value: int = 5, *, depositor: str = DEPOSITOR, tag=0, deposit: int = MIN_FEE) -> int:
        return node.engine.submit_job(depositor, node.encrypt(value, owner=depositor), tag, deposit)

    return _submit


@pytest.fixture
def requested(node: QPCNode, submit) -> Callable[..., Tuple[int, int]]:
    """Submit → execute → request decryption; returns (job_id, request_id)."""
    def _requested(value: int = 5, *, tag=0) -> Tuple[int, int]:
        job_id = submit(value, tag=tag)
        node.engine.execute_job(job_id, WORKER)
        return job_id, node.engine.request_decryption(job_id, DEPOSITOR)

    return _requested
