"""
Shared fixtures: a throwaway unit file, environment files, credentials and a
scripted systemctl, so heartbeat runs never touch the real system.
"""

from pathlib import Path
from typing import List, Tuple

import pytest

from cardano_nodekit.config import FailoverSettings
from cardano_nodekit.toolkit.core.ip_tools import NodeIdentity
from cardano_nodekit.toolkit.core.probe import ProbeResult
from cardano_nodekit.toolkit.core.systemd import ServiceController

PARENT = "203.0.113.10"
SELF_IPV4 = "198.51.100.7"

ENV_UNIT_TEMPLATE = """\
# Make sure cardano-node is installed as a service
[Unit]
Description=Cardano Node start script
After=multi-user.target

[Service]
User=cardano
Environment=LD_LIBRARY_PATH=/usr/local/lib
EnvironmentFile={env_dir}/cardano-node.env{suffix}
KillSignal=SIGINT
SyslogIdentifier=cardano-node
Type=simple
WorkingDirectory=/home/cardano
ExecStart=/home/cardano/cardano-node run --config /home/cardano/files/config.json --port 6000 $CERTKEYARGS
Restart=on-failure
RestartSec=12s
LimitNOFILE=32768

[Install]
WantedBy=multi-user.target
"""

PRODUCER_EXEC = (
    "ExecStart=/home/cardano/cardano-node run --port 6000 "
    "--shelley-kes-key /home/cardano/priv-mainnet/kes.skey "
    "--shelley-vrf-key /home/cardano/priv-mainnet/vrf.skey "
    "--shelley-operational-certificate /home/cardano/priv-mainnet/node.cert"
)
STANDBY_EXEC = "ExecStart=/home/cardano/cardano-node run --port 6000"

LEGACY_STANDBY_UNIT = f"""\
[Unit]
Description=Cardano Node start script

[Service]
User=cardano
{STANDBY_EXEC}
#{PRODUCER_EXEC}
Restart=on-failure

[Install]
WantedBy=multi-user.target
"""

LEGACY_PRODUCER_UNIT = f"""\
[Unit]
Description=Cardano Node start script

[Service]
User=cardano
# {STANDBY_EXEC}
{PRODUCER_EXEC}
Restart=on-failure

[Install]
WantedBy=multi-user.target
"""


def env_unit(env_dir, suffix: str) -> str:
    return ENV_UNIT_TEMPLATE.format(env_dir=env_dir, suffix=suffix)


class FakeSystemctl:
    """Scripted stand-in for systemctl; records every call."""

    def __init__(self, active: bool = True, reload_rc: int = 0, restart_rc: int = 0, comes_back: bool = True):
        self.active = active
        self.reload_rc = reload_rc
        self.restart_rc = restart_rc
        self.comes_back = comes_back
        self.calls: List[List[str]] = []

    def __call__(self, command: List[str]) -> Tuple[int, str, str]:
        self.calls.append(command)
        action = command[1]
        if action == "is-active":
            return (0, "active", "") if self.active else (3, "inactive", "")
        if action == "daemon-reload":
            return self.reload_rc, "", "reload failed" if self.reload_rc else ""
        if action == "restart":
            if self.restart_rc:
                self.active = False
                return self.restart_rc, "", "Job for cardano-node.service failed"
            self.active = self.comes_back
            return 0, "", ""
        raise AssertionError(f"unexpected systemctl call: {command}")

    @property
    def actions(self) -> List[str]:
        return [c[1] for c in self.calls]

    @property
    def restarts(self) -> int:
        return self.actions.count("restart")


@pytest.fixture
def credentials_dir(tmp_path):
    priv = tmp_path / "priv-mainnet"
    priv.mkdir()
    return priv


@pytest.fixture
def install_credentials(credentials_dir):
    def _install(kes=True, vrf=True, cert=True):
        for name, wanted in (("kes.skey", kes), ("vrf.skey", vrf), ("node.cert", cert)):
            if wanted:
                (credentials_dir / name).write_text('{"type": "x", "cborHex": "5820abcd"}\n')
    return _install


@pytest.fixture
def unit_path(tmp_path):
    systemd_dir = tmp_path / "etc-systemd"
    systemd_dir.mkdir()
    return systemd_dir / "cardano-node.service"


@pytest.fixture
def write_unit(unit_path, tmp_path):
    """Write the unit with the EnvironmentFile encoding for the given suffix (or raw text)."""
    def _write(suffix: str = ".standingby", text: str = None) -> Path:
        unit_path.write_text(text if text is not None else env_unit(tmp_path, suffix))
        unit_path.chmod(0o644)
        return unit_path
    return _write


@pytest.fixture
def settings(tmp_path, unit_path, credentials_dir):
    return FailoverSettings(
        parent_address=PARENT,
        parent_port=6000,
        service_name="cardano-node",
        unit_paths=[unit_path, tmp_path / "lib-systemd" / "cardano-node.service"],
        credential_paths={
            "kes_key": credentials_dir / "kes.skey",
            "vrf_key": credentials_dir / "vrf.skey",
            "operational_certificate": credentials_dir / "node.cert",
        },
        probe_timeout=2.0,
        probe_attempts=1,
        probe_interval=0.0,
        lock_file=tmp_path / "run" / "failover.lock",
    )


@pytest.fixture
def systemctl():
    return FakeSystemctl()


@pytest.fixture
def service(systemctl):
    return ServiceController("cardano-node", runner=systemctl)


def identity_of(*local, ipv4=SELF_IPV4, ipv6=""):
    identity = NodeIdentity(frozenset(local or ("127.0.0.1", "10.0.0.5")), ipv4, ipv6)
    return lambda settings: identity


def probe_returns(result: ProbeResult):
    calls = []

    def _probe(settings, identity):
        calls.append(identity)
        return result
    _probe.calls = calls
    return _probe
