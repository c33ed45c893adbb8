from __future__ import annotations

import json
import logging

import pytest
import yaml
from typer.testing import CliRunner

from tokendist.cli.main import app, load_snapshot, simulate_cycle
from tokendist.config import DistributorParams
from tokendist.store.sqlite import SQLiteStore
from tokendist.tests.helpers import AUTHORITY, make_env

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for k in ("TOKENDIST_CONFIG_FILE", "TOKENDIST_MIN_ELIGIBLE_BALANCE", "TOKENDIST_MAX_BATCH_SIZE"):
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("TOKENDIST_LOG_LEVEL", "WARNING")


@pytest.fixture
def snapshot(tmp_path):
    path = tmp_path / "holders.yaml"
    path.write_text(yaml.safe_dump({"holders": {"A": 1_500, "B": 500, "C": 3_500}}))
    return path


def test_config_prints_effective_params(monkeypatch):
    monkeypatch.setenv("TOKENDIST_MAX_BATCH_SIZE", "7")
    result = runner.invoke(app, ["config"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["max_batch_size"] == 7


def test_config_from_file(tmp_path):
    path = tmp_path / "p.json"
    path.write_text(json.dumps({"min_eligible_balance": 5}))
    result = runner.invoke(app, ["config", "--file", str(path)])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["min_eligible_balance"] == 5


def test_config_invalid_file_exits_2(tmp_path):
    path = tmp_path / "p.yaml"
    path.write_text("bogus_key: 1\n")
    result = runner.invoke(app, ["config", "--file", str(path)])
    assert result.exit_code == 2


def test_simulate_json(snapshot):
    result = runner.invoke(app, ["simulate", str(snapshot), "--pool", "1000", "--json"])
    assert result.exit_code == 0, result.output
    out = json.loads(result.stdout)
    assert out["paid"] == {"A": 300, "C": 700}
    assert out["total_eligible"] == 5_000
    assert out["dust"] == 0
    assert out["ineligible"] == 1


def test_simulate_table(snapshot):
    result = runner.invoke(app, ["simulate", str(snapshot), "--pool", "10"])
    assert result.exit_code == 0, result.output
    assert "HOLDER" in result.stdout
    assert "dust" in result.stdout


def test_simulate_bad_snapshot(tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"A": -3}))
    result = runner.invoke(app, ["simulate", str(path), "--pool", "10"])
    assert result.exit_code == 2


def test_simulate_pool_out_of_range(snapshot):
    result = runner.invoke(app, ["simulate", str(snapshot), "--pool", str(1 << 64)])
    assert result.exit_code == 1


def test_status_reports_store(tmp_path):
    db = tmp_path / "dist.db"
    store = SQLiteStore(str(db))
    e = make_env(store=store, pool=1_000, balances={"A": 3_000})
    e.dist.start(AUTHORITY)
    e.dist.accumulate(AUTHORITY, {"A": 3_000})
    store.close()

    result = runner.invoke(app, ["status", "--db", str(db), "--json"])
    assert result.exit_code == 0, result.output
    out = json.loads(result.stdout)
    assert out["config"]["state"] == "accumulating"
    assert out["config"]["total_eligible_tokens"] == 3_000
    assert [c["cycle_id"] for c in out["cycles"]] == [1]

    result = runner.invoke(app, ["status", "--db", str(db)])
    assert result.exit_code == 0, result.output
    assert "accumulating" in result.stdout


def test_status_missing_db(tmp_path):
    result = runner.invoke(app, ["status", "--db", str(tmp_path / "nope.db")])
    assert result.exit_code == 2


def test_load_snapshot_plain_mapping(tmp_path):
    path = tmp_path / "h.json"
    path.write_text(json.dumps({"A": 1, "B": 2}))
    assert load_snapshot(path) == {"A": 1, "B": 2}


def test_simulate_cycle_direct():
    report = simulate_cycle({"A": 1_000, "B": 1_000, "C": 1_000}, 10, DistributorParams())
    assert report.paid == {"A": 3, "B": 3, "C": 3}
    assert report.dust == 1


def test_simulate_writes_log_file_and_metrics(snapshot, tmp_path):
    log_file = tmp_path / "logs" / "run.jsonl"
    prom = tmp_path / "run.prom"
    root = logging.getLogger()
    try:
        result = runner.invoke(
            app,
            ["--log-level", "INFO", "--log-file", str(log_file),
             "simulate", str(snapshot), "--pool", "1000", "--metrics-out", str(prom)],
        )
    finally:
        for h in list(root.handlers):
            if isinstance(h, logging.FileHandler):
                root.removeHandler(h)
                h.close()
    assert result.exit_code == 0, result.output
    lines = [json.loads(line) for line in log_file.read_text().splitlines()]
    started = [rec for rec in lines if rec["msg"] == "cycle 1 started"]
    assert started and started[0]["component"] == "driver"
    assert "tokendist_payouts_total" in prom.read_text()


def test_simulate_rejects_vault_in_snapshot(tmp_path):
    path = tmp_path / "h.yaml"
    path.write_text(yaml.safe_dump({"A": 1_000, "reward-vault": 1_000}))
    result = runner.invoke(app, ["simulate", str(path), "--pool", "1000"])
    assert result.exit_code == 1
