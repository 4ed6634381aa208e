from __future__ import annotations

import json

import pytest
import yaml

from qpc.config import QPCConfig, from_env, from_file, load, mult_range, pretty


def test_defaults_validate():
    cfg = QPCConfig()
    cfg.validate()
    assert cfg.fees.minimum_fee == 1_000_000
    assert mult_range(cfg) == (2, 256)
    assert cfg.callback_deadline(100.0) == 100.0 + 3_600 + 1_800


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("QPC_MINIMUM_FEE", "5_000")
    monkeypatch.setenv("QPC_EXEC_TIMEOUT_S", "60")
    monkeypatch.setenv("QPC_WORKERS", "w1, w2")
    monkeypatch.setenv("QPC_REQUIRE_STATE", "yes")
    monkeypatch.setenv("QPC_DB", ":memory:")
    cfg = from_env()
    assert cfg.fees.minimum_fee == 5_000
    assert cfg.timeouts.exec_timeout_s == 60.0
    assert cfg.access.workers == ["w1", "w2"]
    assert cfg.circuits.require_state is True
    assert cfg.storage.db_path == ":memory:"


def test_env_rejects_garbage(monkeypatch):
    monkeypatch.setenv("QPC_MULT_MIN", "two")
    with pytest.raises(ValueError):
        from_env()


def test_yaml_file(tmp_path):
    p = tmp_path / "qpc.yaml"
    p.write_text(yaml.safe_dump({
        "fees": {"minimum_fee": 10},
        "timeouts": {"grace_window_s": 5},
        "access": {"operators": ["root"], "workers": ["w"]},
    }))
    cfg = from_file(p)
    assert cfg.fees.minimum_fee == 10
    assert cfg.timeouts.grace_window_s == 5.0
    assert cfg.timeouts.exec_timeout_s == 3_600
    assert cfg.access.operators == ["root"]


def test_json_file_and_env_precedence(tmp_path, monkeypatch):
    p = tmp_path / "qpc.json"
    p.write_text(json.dumps({"oracle": {"principal": "file-oracle"}, "fees": {"minimum_fee": 7}}))
    monkeypatch.setenv("QPC_CONFIG_FILE", str(p))
    monkeypatch.setenv("QPC_MINIMUM_FEE", "8")
    cfg = load()
    assert cfg.oracle.principal == "file-oracle"
    assert cfg.fees.minimum_fee == 8


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        from_file(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "section,field,value",
    [
        ("obfuscation", "mult_max", 2),
        ("obfuscation", "work_bits", 32),
        ("timeouts", "exec_timeout_s", 0),
        ("circuits", "max_qubits", 0),
        ("fees", "minimum_fee", -1),
    ],
)
def test_validation(section, field, value):
    cfg = QPCConfig()
    setattr(getattr(cfg, section), field, value)
    with pytest.raises(ValueError):
        cfg.validate()


def test_pretty_is_json():
    assert json.loads(pretty(QPCConfig()))["obfuscation"]["work_bits"] == 64


def test_package_shortcuts():
    import qpc
    from qpc import config, node

    assert qpc.load_config is config.load
    assert qpc.build_node is node.build_node
    assert "lifecycle" in dir(qpc)
    with pytest.raises(AttributeError):
        qpc.not_a_module
