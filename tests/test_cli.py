"""CLI tests through typer's runner with fake clients injected."""

import json

import pytest
from typer.testing import CliRunner

from conftest import RECORD_VALUES
from labnet.cli import client
from labnet.cli.main import app
from labnet.config import config
from labnet.fabric.reconciler import ReconciliationEngine
from labnet.fabric.store import BaselineStore
from labnet.network.allocator import NetworkAllocator

runner = CliRunner()


class StaticSource:
    name = "static"

    def __init__(self, entries):
        self.entries = entries

    def collect(self):
        return list(self.entries)


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr("labnet.cli.main.configure_logging", lambda *a, **k: None)


@pytest.fixture(autouse=True)
def restore_output_format(monkeypatch):
    # --format sets the global config; undo it between invocations
    monkeypatch.setattr(config, "OUTPUT_FORMAT", config.OUTPUT_FORMAT)


@pytest.fixture
def env_file(tmp_path):
    path = tmp_path / ".env"
    path.write_text("".join(f"{k}={v}\n" for k, v in RECORD_VALUES.items()))
    return path


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "backup" / "baseline.db")


@pytest.fixture
def fakes(monkeypatch, seeded, routes, db_path):
    """Point the CLI at the in-memory controller and a temporary store."""
    monkeypatch.setattr(config, "PERSIST_POOL_ROUTE", False)
    monkeypatch.setattr(client, "get_store", lambda: BaselineStore(db_path))
    monkeypatch.setattr(
        client,
        "get_engine",
        lambda record: ReconciliationEngine(
            seeded, routes, BaselineStore(db_path), record
        ),
    )
    return seeded


@pytest.fixture
def allocator(monkeypatch):
    """Allocator that only sees 192.168.0.0/24 and 172.16.0.0/24 as taken."""
    source = StaticSource(["192.168.0.0/24", "172.16.0.0/24"])
    monkeypatch.setattr(
        client, "get_allocator", lambda local_only=False: NetworkAllocator([source])
    )


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "LabNet v" in result.stdout


def test_subdivide_json():
    result = runner.invoke(
        app, ["--format", "json", "net", "subdivide", "172.16.16.0/21", "4"]
    )
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["parent"] == "172.16.16.0/21"
    assert [c["block"] for c in data["children"]] == [
        "172.16.16.0/23",
        "172.16.18.0/23",
        "172.16.20.0/23",
        "172.16.22.0/23",
    ]


def test_subdivide_rejects_bad_count():
    result = runner.invoke(app, ["net", "subdivide", "172.16.16.0/21", "3"])
    assert result.exit_code == 1


def test_split_pool_yaml():
    result = runner.invoke(
        app, ["--format", "yaml", "net", "split-pool", "192.168.81.0/24", "4"]
    )
    assert result.exit_code == 0
    assert "ovpn: 192.168.81.0/25" in result.stdout
    assert "wg: 192.168.81.128/25" in result.stdout


def test_net_find_json(allocator):
    result = runner.invoke(app, ["--format", "json", "net", "find", "24"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["block"] == "192.168.1.0/24"
    assert data["range"].startswith("192.168.1.")


def test_net_find_class_option(allocator):
    result = runner.invoke(
        app, ["--format", "json", "net", "find", "24", "--class", "172"]
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout)["block"] == "172.16.1.0/24"


def test_net_find_rejects_bad_prefix(allocator):
    result = runner.invoke(app, ["net", "find", "12"])
    assert result.exit_code == 1


def test_net_propose_json(allocator):
    result = runner.invoke(
        app, ["--format", "json", "net", "propose", "--tenants", "4"]
    )
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["VPNDMZ_CIDR"] == "192.168.80.0/24"
    assert data["VPN_POOL"] == "192.168.81.0/24"
    assert data["PJALL_CIDR"] == "172.16.16.0/21"
    assert data["NUM_PJ"] == "4"


@pytest.mark.parametrize("tenants", ["3", "32"])
def test_net_propose_rejects_tenant_count(allocator, tenants):
    result = runner.invoke(app, ["net", "propose", "--tenants", tenants])
    assert result.exit_code == 1


def test_net_propose_write(allocator, monkeypatch, tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("# site\nVPN_POOL=10.0.0.0/24\nTOKEN_ID=root@pam!x\n")
    monkeypatch.setattr(config, "ENV_FILE", str(env_path))

    result = runner.invoke(app, ["net", "propose", "--write"])
    assert result.exit_code == 0
    lines = env_path.read_text().splitlines()
    assert lines[:3] == ["# site", "VPN_POOL=192.168.81.0/24", "TOKEN_ID=root@pam!x"]
    assert "PJALL_CIDR=172.16.16.0/21" in lines
    assert "NUM_PJ=8" in lines


def test_plan_render(env_file):
    result = runner.invoke(app, ["plan", "render", "--env-file", str(env_file)])
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert "PJ01_CIDR=172.16.16.0/23" in lines
    assert "WG_POOL=192.168.81.128/25" in lines


def test_plan_show_missing_record(tmp_path):
    result = runner.invoke(
        app, ["plan", "show", "--env-file", str(tmp_path / "missing.env")]
    )
    assert result.exit_code == 1


def test_plan_show_invalid_record(env_file):
    env_file.write_text(env_file.read_text() + "VPN_POOL=192.168.80.0/25\n")
    result = runner.invoke(app, ["plan", "show", "--env-file", str(env_file)])
    assert result.exit_code == 1


def test_baseline_status_and_reset(fakes, db_path):
    result = runner.invoke(app, ["--format", "json", "baseline", "status"])
    assert result.exit_code == 0
    assert json.loads(result.stdout) == {"captured": False, "path": db_path}

    assert runner.invoke(app, ["baseline", "reset"]).exit_code == 1
    assert runner.invoke(app, ["baseline", "reset", "--yes"]).exit_code == 0


def test_baseline_capture_then_status(fakes, env_file):
    result = runner.invoke(app, ["baseline", "capture", "--env-file", str(env_file)])
    assert result.exit_code == 0

    result = runner.invoke(app, ["--format", "json", "baseline", "status"])
    status = json.loads(result.stdout)
    assert status["captured"] is True
    assert status["node"] == "pve01"

    result = runner.invoke(app, ["baseline", "capture", "--env-file", str(env_file)])
    assert result.exit_code == 1


def test_fabric_apply_then_restore(fakes, env_file):
    result = runner.invoke(app, ["fabric", "apply", "--env-file", str(env_file)])
    assert result.exit_code == 0, result.output
    assert "vpndmz" in fakes.zones
    assert "ICMP_RULE_COMMENT2=ICMP_RULE2_PRTN_DEVPJS" in env_file.read_text()

    result = runner.invoke(
        app, ["--format", "json", "fabric", "restore", "--env-file", str(env_file)]
    )
    assert result.exit_code == 0, result.output
    report = json.loads(result.stdout)
    assert report["collections"]["zones"]["kept"] == ["lanzone"]
    assert list(fakes.zones) == ["lanzone"]


def test_fabric_restore_without_baseline(fakes, env_file):
    result = runner.invoke(app, ["fabric", "restore", "--env-file", str(env_file)])
    assert result.exit_code == 1


def test_fabric_restore_strict(fakes, env_file):
    runner.invoke(app, ["fabric", "apply", "--env-file", str(env_file)])
    fakes.fail_writes.add("delete_zone")

    args = ["fabric", "restore", "--env-file", str(env_file)]
    assert runner.invoke(app, args).exit_code == 0
    assert runner.invoke(app, [*args, "--strict"]).exit_code == 1


def test_config_show_masks_secret():
    result = runner.invoke(
        app, ["--token-secret", "s3cret", "--format", "json", "config", "show"]
    )
    assert result.exit_code == 0
    values = json.loads(result.stdout)
    assert values["PVE_TOKEN_SECRET"] == "********"
    assert values["OUTPUT_FORMAT"] == "json"


def test_config_env_skips_secret():
    result = runner.invoke(app, ["--node", "pve02", "config", "env"])
    assert result.exit_code == 0
    assert "LABNET_NODE_NAME=pve02" in result.stdout.splitlines()
    assert "PVE_TOKEN_SECRET" not in result.stdout
