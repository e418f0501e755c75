"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from atomop.cli.main import cli
from atomop.data.models import PoolKey
from atomop.execution.planner import BatchPlanner
from fakes import ALICE, NOW, TOKEN0, TOKEN1


@pytest.fixture
def runner(tmp_path, monkeypatch) -> CliRunner:
    monkeypatch.chdir(tmp_path)
    return CliRunner()


def _write_batch(tmp_path, closed: bool):
    key = PoolKey(currency0=TOKEN0, currency1=TOKEN1, fee=3000, tick_spacing=60)
    batch = BatchPlanner(clock=lambda: NOW).decrease_liquidity(1, key, 500, 1, 2, ALICE)
    data = batch.to_dict()
    if not closed:
        data["actions"] = data["actions"][:1]
    path = tmp_path / "batch.json"
    path.write_text(json.dumps(data))
    return str(path)


def test_check_batch_closed(runner, tmp_path):
    result = runner.invoke(cli, ["check-batch", _write_batch(tmp_path, closed=True)])

    assert result.exit_code == 0, result.output
    assert "DECREASE_LIQUIDITY -> TAKE_PAIR" in result.output
    assert "All touched currencies are settled" in result.output


def test_check_batch_unclosed_exits_2(runner, tmp_path):
    result = runner.invoke(cli, ["check-batch", _write_batch(tmp_path, closed=False)])

    assert result.exit_code == 2
    assert "ERROR" in result.output
    assert TOKEN0 in result.output


def test_check_batch_json_output(runner, tmp_path):
    result = runner.invoke(
        cli, ["check-batch", _write_batch(tmp_path, closed=True), "--json-output", "--encode"]
    )

    payload = json.loads(result.output)
    assert payload["closed"] is True
    assert payload["unsettled"] == []
    assert payload["predicted_deltas"] == {TOKEN0: 1, TOKEN1: 2}
    assert payload["calldata"].startswith("0x")


def test_check_batch_rejects_malformed_input(runner, tmp_path):
    bad_json = tmp_path / "broken.json"
    bad_json.write_text("{not json")
    bad_batch = tmp_path / "bad.json"
    bad_batch.write_text(json.dumps({"deadline": 1, "actions": [{"kind": "NOPE"}]}))

    assert runner.invoke(cli, ["check-batch", str(bad_json)]).exit_code == 2
    result = runner.invoke(cli, ["check-batch", str(bad_batch)])
    assert result.exit_code == 2
    assert "unknown action kind" in result.output


def test_ledger_show_empty(runner, tmp_path, monkeypatch):
    monkeypatch.setenv("ATOMOP_DB_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    from atomop.config.settings import get_settings

    get_settings.cache_clear()

    result = runner.invoke(cli, ["ledger", "show"])

    assert result.exit_code == 0, result.output
    assert "No tracked positions." in result.output


def test_signing_key_without_rpc_exits_2(runner, monkeypatch):
    monkeypatch.setenv("ATOMOP_PRIVATE_KEY", "0x" + "11" * 32)

    result = runner.invoke(cli, ["ledger", "journal"])

    assert result.exit_code == 2


def test_ledger_show_lists_cleared_positions(runner, tmp_path, monkeypatch):
    from atomop.data.storage import get_session, init_db
    from atomop.ledger.store import LedgerStore

    db_url = f"sqlite:///{tmp_path / 'ledger.db'}"
    init_db(db_url)
    db_session = get_session()
    LedgerStore(db_session).save_positions([], cleared=[7])
    db_session.close()
    monkeypatch.setenv("ATOMOP_DB_URL", db_url)
    from atomop.config.settings import get_settings

    get_settings.cache_clear()

    result = runner.invoke(cli, ["ledger", "show", "--json-output"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output)["cleared"] == ["7"]
