from __future__ import annotations
"""
qpc.config — configuration for the Quantum Privacy Compute (QPC) job service

Covers:
- Minimum job fee (deposit floor, integer base units)
- Lifecycle timeouts (execution window, callback grace window, oracle request deadline)
- Obfuscation factor range and ciphertext bit widths for the privacy transforms
- Decryption oracle principal / callback id
- Access registry seeds (privileged operators, compute workers)
- Quantum circuit / state limits
- Storage location

Environment overrides (all optional; sensible defaults provided):

  # Fees (base units)
  QPC_MINIMUM_FEE=1000000

  # Timeouts (seconds)
  QPC_EXEC_TIMEOUT_S=3600
  QPC_GRACE_WINDOW_S=1800
  QPC_REQUEST_TIMEOUT_S=600

  # Obfuscation
  QPC_MULT_MIN=2
  QPC_MULT_MAX=256
  QPC_VALUE_BITS=8
  QPC_PRICE_BITS=32
  QPC_WORK_BITS=64

  # Oracle
  QPC_ORACLE_PRINCIPAL=oracle
  QPC_ORACLE_CALLBACK_ID=qpc.onOracleCallback

  # Access registry (comma separated principals)
  QPC_OPERATORS=owner
  QPC_WORKERS=worker-1,worker-2

  # Circuits
  QPC_MAX_QUBITS=3
  QPC_MAX_GATES=100000
  QPC_REQUIRE_STATE=0

  # Storage
  QPC_DB=qpc.db

You can also load from a JSON or YAML file via `QPC_CONFIG_FILE=/path/to/config.(json|yaml|yml)`.
File values override defaults; environment overrides the file.
"""


from dataclasses import dataclass, asdict, field
from typing import Any, Dict, List, Optional, Tuple
import json
import os
from pathlib import Path

import yaml


# -------------------------- Data classes --------------------------


@dataclass
class FeeConfig:
    """Deposit floor for a job submission, in integer base units."""
    minimum_fee: int = 1_000_000

    def validate(self) -> None:
        if self.minimum_fee < 0:
            raise ValueError("minimum_fee must be non-negative.")


@dataclass
class TimeoutConfig:
    """
    Lifecycle windows, all in seconds relative to the job's submit time.

    - exec_timeout_s: bounds submission → execution → decryption request
    - grace_window_s: extra time after exec_timeout_s for the oracle callback
    - request_timeout_s: deadline hint handed to the oracle; once it passes, a
      new decryption request may supersede the outstanding one
    """
    exec_timeout_s: float = 3_600
    grace_window_s: float = 1_800
    request_timeout_s: float = 600

    def validate(self) -> None:
        if self.exec_timeout_s <= 0:
            raise ValueError("exec_timeout_s must be positive.")
        if self.grace_window_s < 0:
            raise ValueError("grace_window_s must be non-negative.")
        if self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be positive.")


@dataclass
class ObfuscationConfig:
    """Scale-factor range [mult_min, mult_max) and ciphertext widths (bits)."""
    mult_min: int = 2
    mult_max: int = 256
    value_bits: int = 8          # reference numeric domain: 8-bit unsigned
    price_bits: int = 32
    work_bits: int = 64          # widened intermediates

    def validate(self) -> None:
        if self.mult_min < 1:
            raise ValueError("mult_min must be >= 1.")
        if self.mult_max <= self.mult_min:
            raise ValueError(f"mult_max must be > mult_min (got {self.mult_min}..{self.mult_max}).")
        for name, v in (("value_bits", self.value_bits),
                        ("price_bits", self.price_bits),
                        ("work_bits", self.work_bits)):
            if not (1 <= v <= 64):
                raise ValueError(f"{name} must be between 1 and 64 (got {v}).")
        widest = max(self.value_bits, self.price_bits)
        if widest + self.mult_max.bit_length() > self.work_bits:
            raise ValueError(
                "work_bits too small: value/price bits plus scale-factor bits must fit "
                f"(need {widest + self.mult_max.bit_length()}, have {self.work_bits})."
            )


@dataclass
class OracleConfig:
    """The one trusted principal allowed to deliver decryption callbacks."""
    principal: str = "oracle"
    callback_id: str = "qpc.onOracleCallback"

    def validate(self) -> None:
        if not self.principal:
            raise ValueError("oracle principal must be non-empty.")
        if not self.callback_id:
            raise ValueError("oracle callback_id must be non-empty.")


@dataclass
class AccessConfig:
    """Initial access registry contents."""
    operators: List[str] = field(default_factory=lambda: ["owner"])
    workers: List[str] = field(default_factory=list)

    def validate(self) -> None:
        if any(not p for p in self.operators + self.workers):
            raise ValueError("principals must be non-empty strings.")


@dataclass
class CircuitConfig:
    """Quantum state / circuit descriptor limits."""
    max_qubits: int = 3
    max_gates: int = 100_000
    require_state: bool = False

    def validate(self) -> None:
        if not (1 <= self.max_qubits <= 16):
            raise ValueError(f"max_qubits must be between 1 and 16 (got {self.max_qubits}).")
        if self.max_gates <= 0:
            raise ValueError("max_gates must be positive.")


@dataclass
class StorageConfig:
    db_path: str = "qpc.db"

    def validate(self) -> None:
        if not self.db_path:
            raise ValueError("db_path must be non-empty (use ':memory:' for tests).")


@dataclass
class QPCConfig:
    """Top-level configuration container."""
    fees: FeeConfig = field(default_factory=FeeConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    obfuscation: ObfuscationConfig = field(default_factory=ObfuscationConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    access: AccessConfig = field(default_factory=AccessConfig)
    circuits: CircuitConfig = field(default_factory=CircuitConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    def validate(self) -> None:
        self.fees.validate()
        self.timeouts.validate()
        self.obfuscation.validate()
        self.oracle.validate()
        self.access.validate()
        self.circuits.validate()
        self.storage.validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    # Derived bounds used by the lifecycle engine
    def exec_deadline(self, submit_time: float) -> float:
        return submit_time + self.timeouts.exec_timeout_s

    def callback_deadline(self, submit_time: float) -> float:
        return submit_time + self.timeouts.exec_timeout_s + self.timeouts.grace_window_s


# -------------------------- Loaders --------------------------


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(str(v).replace("_", ""))
    except ValueError as e:
        raise ValueError(f"Invalid int for {name}: {v!r}") from e


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError as e:
        raise ValueError(f"Invalid float for {name}: {v!r}") from e


def _getenv_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in ("1", "true", "yes", "on")


def _getenv_list(name: str, default: List[str]) -> List[str]:
    v = os.getenv(name)
    if v is None:
        return list(default)
    return [p.strip() for p in v.split(",") if p.strip()]


def from_env(base: Optional[QPCConfig] = None, prefix: str = "QPC_") -> QPCConfig:
    """
    Build a QPCConfig from environment variables, optionally layering on top of `base`.
    """
    cfg = base or QPCConfig()

    new_cfg = QPCConfig(
        fees=FeeConfig(
            minimum_fee=_getenv_int(f"{prefix}MINIMUM_FEE", cfg.fees.minimum_fee),
        ),
        timeouts=TimeoutConfig(
            exec_timeout_s=_getenv_float(f"{prefix}EXEC_TIMEOUT_S", cfg.timeouts.exec_timeout_s),
            grace_window_s=_getenv_float(f"{prefix}GRACE_WINDOW_S", cfg.timeouts.grace_window_s),
            request_timeout_s=_getenv_float(f"{prefix}REQUEST_TIMEOUT_S", cfg.timeouts.request_timeout_s),
        ),
        obfuscation=ObfuscationConfig(
            mult_min=_getenv_int(f"{prefix}MULT_MIN", cfg.obfuscation.mult_min),
            mult_max=_getenv_int(f"{prefix}MULT_MAX", cfg.obfuscation.mult_max),
            value_bits=_getenv_int(f"{prefix}VALUE_BITS", cfg.obfuscation.value_bits),
            price_bits=_getenv_int(f"{prefix}PRICE_BITS", cfg.obfuscation.price_bits),
            work_bits=_getenv_int(f"{prefix}WORK_BITS", cfg.obfuscation.work_bits),
        ),
        oracle=OracleConfig(
            principal=os.getenv(f"{prefix}ORACLE_PRINCIPAL") or cfg.oracle.principal,
            callback_id=os.getenv(f"{prefix}ORACLE_CALLBACK_ID") or cfg.oracle.callback_id,
        ),
        access=AccessConfig(
            operators=_getenv_list(f"{prefix}OPERATORS", cfg.access.operators),
            workers=_getenv_list(f"{prefix}WORKERS", cfg.access.workers),
        ),
        circuits=CircuitConfig(
            max_qubits=_getenv_int(f"{prefix}MAX_QUBITS", cfg.circuits.max_qubits),
            max_gates=_getenv_int(f"{prefix}MAX_GATES", cfg.circuits.max_gates),
            require_state=_getenv_bool(f"{prefix}REQUIRE_STATE", cfg.circuits.require_state),
        ),
        storage=StorageConfig(
            db_path=os.getenv(f"{prefix}DB") or cfg.storage.db_path,
        ),
    )
    new_cfg.validate()
    return new_cfg


def from_file(path: str | os.PathLike[str]) -> QPCConfig:
    """
    Load configuration from a JSON or YAML file.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(p)

    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text or "{}")

    def pick(dct: Dict[str, Any], key: str, default: Any) -> Any:
        return dct.get(key, default)

    fees = data.get("fees", {})
    timeouts = data.get("timeouts", {})
    obf = data.get("obfuscation", {})
    oracle = data.get("oracle", {})
    access = data.get("access", {})
    circuits = data.get("circuits", {})
    storage = data.get("storage", {})

    cfg = QPCConfig(
        fees=FeeConfig(
            minimum_fee=int(pick(fees, "minimum_fee", FeeConfig().minimum_fee)),
        ),
        timeouts=TimeoutConfig(
            exec_timeout_s=float(pick(timeouts, "exec_timeout_s", TimeoutConfig().exec_timeout_s)),
            grace_window_s=float(pick(timeouts, "grace_window_s", TimeoutConfig().grace_window_s)),
            request_timeout_s=float(pick(timeouts, "request_timeout_s", TimeoutConfig().request_timeout_s)),
        ),
        obfuscation=ObfuscationConfig(
            mult_min=int(pick(obf, "mult_min", ObfuscationConfig().mult_min)),
            mult_max=int(pick(obf, "mult_max", ObfuscationConfig().mult_max)),
            value_bits=int(pick(obf, "value_bits", ObfuscationConfig().value_bits)),
            price_bits=int(pick(obf, "price_bits", ObfuscationConfig().price_bits)),
            work_bits=int(pick(obf, "work_bits", ObfuscationConfig().work_bits)),
        ),
        oracle=OracleConfig(
            principal=str(pick(oracle, "principal", OracleConfig().principal)),
            callback_id=str(pick(oracle, "callback_id", OracleConfig().callback_id)),
        ),
        access=AccessConfig(
            operators=list(pick(access, "operators", AccessConfig().operators)),
            workers=list(pick(access, "workers", AccessConfig().workers)),
        ),
        circuits=CircuitConfig(
            max_qubits=int(pick(circuits, "max_qubits", CircuitConfig().max_qubits)),
            max_gates=int(pick(circuits, "max_gates", CircuitConfig().max_gates)),
            require_state=bool(pick(circuits, "require_state", CircuitConfig().require_state)),
        ),
        storage=StorageConfig(
            db_path=str(pick(storage, "db_path", StorageConfig().db_path)),
        ),
    )
    cfg.validate()
    return cfg


def load() -> QPCConfig:
    """
    Load configuration using the following precedence:
      1) File at $QPC_CONFIG_FILE (JSON/YAML)
      2) Environment variables (QPC_*), applied on top of defaults or file values
    """
    file_path = os.getenv("QPC_CONFIG_FILE")
    base = from_file(file_path) if file_path else QPCConfig()
    return from_env(base=base)


# -------------------------- Utilities --------------------------


def pretty(cfg: Optional[QPCConfig] = None) -> str:
    """Return a human-readable JSON string of the current config."""
    obj = (cfg or load()).to_dict()
    return json.dumps(obj, indent=2, sort_keys=True)


def mult_range(cfg: QPCConfig) -> Tuple[int, int]:
    """Half-open scale-factor range [MULT_MIN, MULT_MAX)."""
    return cfg.obfuscation.mult_min, cfg.obfuscation.mult_max


__all__ = [
    "FeeConfig",
    "TimeoutConfig",
    "ObfuscationConfig",
    "OracleConfig",
    "AccessConfig",
    "CircuitConfig",
    "StorageConfig",
    "QPCConfig",
    "from_env",
    "from_file",
    "load",
    "pretty",
    "mult_range",
]
