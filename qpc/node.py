from __future__ import annotations

"""
Service wiring.

`build_node(cfg)` opens the state DB and assembles every component around a
single `ComputeContext`. All durable state lives in the DB, so building a
second node over the same file after a restart resumes exactly where the
first left off (the oracle callback is re-registered on build).

    node = build_node(load())
    job_id = node.engine.submit_job("alice", node.encrypt(42, owner="alice"), 0, 1_000_000)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .circuits.algorithms import AlgorithmRunner
from .circuits.descriptor import CircuitStore
from .clock import Clock, SystemClock
from .config import QPCConfig
from .context import ComputeContext, EventBus
from .fhe.acl import CapabilityMap
from .fhe.backend import MockFheBackend, generate_key
from .lifecycle.engine import JobLifecycleEngine
from .oracle.gateway import DecryptionOracle, OracleGateway
from .oracle.local import LocalOracle
from .privacy.transforms import PrivacyTransforms
from .registry.access import AccessRegistry
from .store.state_db import QPCStateDB, open_state_db
from .treasury.refunds import LedgerPayoutSink, PayoutSink, RefundLedger

log = logging.getLogger(__name__)

_FHE_KEY = "fhe_key"


@dataclass
class QPCNode:
    ctx: ComputeContext
    registry: AccessRegistry
    oracle: LocalOracle
    gateway: OracleGateway
    refunds: RefundLedger
    circuits: CircuitStore
    engine: JobLifecycleEngine
    privacy: PrivacyTransforms

    @property
    def config(self) -> QPCConfig:
        return self.ctx.config

    @property
    def db(self) -> QPCStateDB:
        return self.ctx.db

    def encrypt(self, value: int, bits: Optional[int] = None, *, owner: Optional[str] = None) -> str:
        """
        Client-side helper: seal a plaintext into a ciphertext handle. `owner`
        receives the decrypt capability; without one the handle cannot be used
        as an operand or job input by anybody.
        """
        ct = self.ctx.fhe.encrypt(value, bits or self.config.obfuscation.value_bits)
        if owner:
            with self.ctx.db.tx():
                self.ctx.acl.grant(ct, owner, at=self.ctx.now())
        return ct.handle

    def close(self) -> None:
        self.ctx.db.close()


def _load_fhe_key(db: QPCStateDB) -> bytes:
    with db.tx():
        raw = db.get_meta(_FHE_KEY)
        if raw is None:
            key = generate_key()
            db.set_meta(_FHE_KEY, key.hex())
            log.info("generated new FHE service key")
            return key
    return bytes.fromhex(raw)


def build_node(
    cfg: Optional[QPCConfig] = None,
    *,
    clock: Optional[Clock] = None,
    db: Optional[QPCStateDB] = None,
    sink: Optional[PayoutSink] = None,
    oracle: Optional[DecryptionOracle] = None,
) -> QPCNode:
    """
    Assemble a node. `oracle` replaces the in-process oracle as the gateway
    target (the local oracle is still built for inspection/fulfilment).
    """
    cfg = cfg or QPCConfig()
    cfg.validate()
    db = db or open_state_db(cfg.storage.db_path)
    fhe = MockFheBackend(_load_fhe_key(db))
    ctx = ComputeContext(
        db=db,
        clock=clock or SystemClock(),
        fhe=fhe,
        acl=CapabilityMap(db),
        config=cfg,
        bus=EventBus(),
    )

    registry = AccessRegistry(ctx)
    registry.seed(cfg.access.operators, cfg.access.workers)

    local = LocalOracle(ctx)
    gateway = OracleGateway(oracle or local, cfg.oracle.callback_id)
    refunds = RefundLedger(ctx, sink or LedgerPayoutSink(ctx))
    circuits = CircuitStore(ctx)
    engine = JobLifecycleEngine(ctx, registry, gateway, refunds, AlgorithmRunner(fhe), circuits)
    local.register_callback(cfg.oracle.callback_id, engine.on_oracle_callback)

    return QPCNode(
        ctx=ctx,
        registry=registry,
        oracle=local,
        gateway=gateway,
        refunds=refunds,
        circuits=circuits,
        engine=engine,
        privacy=PrivacyTransforms(ctx),
    )


__all__ = ["QPCNode", "build_node"]
