from __future__ import annotations

import json
from pathlib import Path

import pytest

from account_splitting import cli
from account_splitting.chain import Receipt, derive_address
from account_splitting.config import set_default_config_path
from account_splitting.ledger import read_wallet_ledger
from account_splitting.probe import NodeResult

SENDER_KEY = "0x%064x" % 1


class RecordingChain:
    def __init__(self, revert: bool = False) -> None:
        self.revert = revert
        self.calls: list[str] = []

    def suggested_gas_price(self) -> int:
        return 10**9

    def estimate_gas(self, sender, to, value, data=b""):
        return 21000

    def next_nonce(self, address):
        return 0

    def submit_contract_call(self, *args, **kwargs):
        self.calls.append("contract")
        return "0x%064x" % len(self.calls)

    def submit_direct_transfer(self, *args, **kwargs):
        self.calls.append("direct")
        return "0x%064x" % len(self.calls)

    def wait_confirmed(self, tx_hash):
        return Receipt(transaction_hash=tx_hash, status=0 if self.revert else 1, gas_used=21000)


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("account_splitting.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
    yield
    set_default_config_path(None)


def _ledger(path: Path, seeds) -> Path:
    lines = ["Address,Private Key"]
    for seed in seeds:
        key = "0x%064x" % seed
        lines.append(f"{derive_address(key)},{key}")
    path.write_text("\n".join(lines) + "\n")
    return path


def test_genwallet_writes_ledger(tmp_path: Path, capsys) -> None:
    cli.main(["genwallet", "-n", "2", "-d", str(tmp_path / "out"), "-o", "keys.csv"])

    wallets = read_wallet_ledger(tmp_path / "out" / "keys.csv")
    assert len(wallets) == 2
    assert "Wrote 2 wallets" in capsys.readouterr().out


def test_genmnemonic_writes_mnemonic_column(tmp_path: Path) -> None:
    cli.main(["genmnemonic", "-n", "1", "-d", str(tmp_path)])

    header = (tmp_path / "mnemonic.csv").read_text().splitlines()[0]
    assert header == "Address,Private Key,Mnemonic"


def test_verifycsv_prints_report(tmp_path: Path, capsys) -> None:
    path = _ledger(tmp_path / "w.csv", [1, 2])

    cli.main(["verifycsv", "-f", str(path)])

    out = capsys.readouterr().out
    assert "Matched: 2" in out
    assert "Mismatched: 0" in out


def test_batch_transfer_validates_before_connecting(tmp_path: Path, monkeypatch, capsys) -> None:
    def refuse(_args):  # pragma: no cover - must not run
        raise AssertionError("network should not be touched")

    monkeypatch.setattr(cli, "_connect", refuse)
    recipients = _ledger(tmp_path / "r.csv", [2, 3])

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["batch-transfer", "--csv", str(recipients), "--batch-size", "0"])

    assert excinfo.value.code == 1
    assert "--batch-size" in capsys.readouterr().err


def test_batch_transfer_reports_missing_ledger(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "_connect", lambda _args: RecordingChain())

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["batch-transfer", "--csv", str(tmp_path / "missing.csv")])

    assert excinfo.value.code == 1
    assert "not found" in capsys.readouterr().err


def test_batch_transfer_prints_json_summary(tmp_path: Path, monkeypatch, capsys) -> None:
    chain = RecordingChain()
    monkeypatch.setattr(cli, "_connect", lambda _args: chain)
    recipients = _ledger(tmp_path / "r.csv", [2, 3, 4])
    senders = _ledger(tmp_path / "s.csv", [1])

    cli.main(
        [
            "batch-transfer",
            "--csv",
            str(recipients),
            "--sender-csv",
            str(senders),
            "--batch-size",
            "5",
            "--json",
        ]
    )

    summary = json.loads(capsys.readouterr().out)
    assert summary["mode"] == "batch"
    assert summary["succeeded"] == 1
    assert chain.calls == ["contract"]


def test_aborted_batch_run_exits_nonzero(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "_connect", lambda _args: RecordingChain(revert=True))
    recipients = _ledger(tmp_path / "r.csv", [2])
    senders = _ledger(tmp_path / "s.csv", [1])

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["batch-transfer", "--csv", str(recipients), "--sender-csv", str(senders)])

    assert excinfo.value.code == 1
    assert "aborted at batch 1/1" in capsys.readouterr().err


def test_sender_index_out_of_range(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "_connect", lambda _args: RecordingChain())
    recipients = _ledger(tmp_path / "r.csv", [2])
    senders = _ledger(tmp_path / "s.csv", [1])

    with pytest.raises(SystemExit):
        cli.main(
            [
                "batch-transfer",
                "--csv",
                str(recipients),
                "--sender-csv",
                str(senders),
                "--sender-index",
                "3",
            ]
        )

    assert "--sender-index" in capsys.readouterr().err


def test_single_transfer_runs_every_wallet(tmp_path: Path, monkeypatch, capsys) -> None:
    chain = RecordingChain()
    monkeypatch.setattr(cli, "_connect", lambda _args: chain)
    wallets = _ledger(tmp_path / "w.csv", [1, 2, 3])

    cli.main(["single-transfer", "--csv", str(wallets), "--delay", "0", "--json"])

    summary = json.loads(capsys.readouterr().out)
    assert summary["mode"] == "single"
    assert summary["succeeded"] == 3
    assert chain.calls == ["direct", "direct", "direct"]


def test_single_transfer_rejects_bad_amount(tmp_path: Path, capsys) -> None:
    wallets = _ledger(tmp_path / "w.csv", [1])

    with pytest.raises(SystemExit):
        cli.main(["single-transfer", "--csv", str(wallets), "--amount", "0"])

    assert "--amount" in capsys.readouterr().err


@pytest.mark.parametrize("amount", ["0", "0.0"])
def test_batch_transfer_rejects_zero_amount(tmp_path: Path, monkeypatch, capsys, amount) -> None:
    def refuse(_args):  # pragma: no cover - must not run
        raise AssertionError("network should not be touched")

    monkeypatch.setattr(cli, "_connect", refuse)
    recipients = _ledger(tmp_path / "r.csv", [2, 3])

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["batch-transfer", "--csv", str(recipients), "--amount", amount])

    assert excinfo.value.code == 1
    assert "--amount" in capsys.readouterr().err


def test_check_rpc_formats_results(monkeypatch, capsys) -> None:
    seen: dict[str, object] = {}

    def fake_probe(urls, timeout):
        seen["urls"] = list(urls)
        seen["timeout"] = timeout
        return [NodeResult(url=urls[0], response_time=0.02, block_height=9)]

    monkeypatch.setattr(cli, "probe_nodes", fake_probe)

    cli.main(["check-rpc", "--node", "https://one.node/", "--timeout", "2", "--format", "csv"])

    assert seen == {"urls": ["https://one.node/"], "timeout": 2.0}
    assert "https://one.node/,20.00,9" in capsys.readouterr().out


def test_global_config_flag_requires_existing_file(tmp_path: Path, capsys) -> None:
    wallets = _ledger(tmp_path / "w.csv", [1])

    with pytest.raises(SystemExit):
        cli.main(["--config", str(tmp_path / "nope.yaml"), "single-transfer", "--csv", str(wallets)])

    assert "Config file not found" in capsys.readouterr().err
