"""
End-to-end heartbeat runs against a temporary unit file and a scripted
systemctl. Covers the decision table as seen from outside plus the
scenarios operators care about: stand-down, blocked promotion, untrusted
probes and a restart that fails after the unit was rewritten.
"""

import logging
from dataclasses import replace

import pytest

from cardano_nodekit.toolkit.commands import heartbeat
from cardano_nodekit.toolkit.commands.heartbeat import run_heartbeat, manage_heartbeat
from cardano_nodekit.toolkit.core import ip_tools
from cardano_nodekit.toolkit.core.lock import RunLock
from cardano_nodekit.toolkit.core.outcome import Outcome, report
from cardano_nodekit.toolkit.core.probe import ProbeResult
from cardano_nodekit.toolkit.core.systemd import ServiceController
from cardano_nodekit.toolkit.core.unit_file import ConfigWriteError, Role, ServiceUnit
from conftest import FakeSystemctl, LEGACY_STANDBY_UNIT, PARENT, identity_of, probe_returns


def _role(unit_path):
    return ServiceUnit.load(unit_path).role


def test_parent_host_does_nothing(settings, write_unit, service, systemctl):
    path = write_unit(".normal")
    before = path.read_text()
    probe = probe_returns(ProbeResult.UNREACHABLE)

    result = run_heartbeat(settings, service, identity_of("127.0.0.1", PARENT), probe)

    assert result.outcome == Outcome.PARENT_NO_OP
    assert result.exit_code == 0
    assert probe.calls == []
    assert systemctl.calls == []
    assert path.read_text() == before


def test_parent_detected_by_external_address(settings, write_unit, service):
    write_unit(".standingby")
    result = run_heartbeat(settings, service, identity_of(ipv4=PARENT), probe_returns(ProbeResult.UNREACHABLE))
    assert result.outcome == Outcome.PARENT_NO_OP


def test_scenario_a_parent_back_stands_down(settings, write_unit, install_credentials, service, systemctl):
    install_credentials()
    path = write_unit(".normal")

    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.REACHABLE))

    assert result.outcome == Outcome.TRANSITIONED
    assert result.exit_code == 0
    assert result.role == Role.STANDBY
    assert _role(path) == Role.STANDBY
    assert systemctl.actions == ["is-active", "daemon-reload", "restart", "is-active"]


def test_scenario_b_no_credentials_blocks_promotion(settings, write_unit, install_credentials, service, systemctl, caplog):
    install_credentials(kes=False)
    path = write_unit(".standingby")
    before = path.read_text()

    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.UNREACHABLE))
    with caplog.at_level(logging.DEBUG, logger="cardano_nodekit"):
        code = report(result)

    assert result.outcome == Outcome.PRECONDITION_BLOCKED
    assert code == Outcome.PRECONDITION_BLOCKED.exit_code != 0
    assert path.read_text() == before
    assert systemctl.calls == []
    assert "kes.skey" in result.message
    assert [r.levelno for r in caplog.records if r.name == "cardano_nodekit.heartbeat"] == [logging.WARNING]


@pytest.mark.parametrize("suffix", [".standingby", ".normal"])
@pytest.mark.parametrize("with_credentials", [True, False])
def test_scenario_c_indeterminate_never_touches_anything(
        settings, write_unit, install_credentials, service, systemctl, caplog, suffix, with_credentials):
    if with_credentials:
        install_credentials()
    path = write_unit(suffix)
    before = path.read_text()

    result = run_heartbeat(settings, service, identity_of(ipv4=""), heartbeat.default_prober)
    with caplog.at_level(logging.DEBUG, logger="cardano_nodekit"):
        code = report(result)

    assert result.outcome == Outcome.INDETERMINATE_REACHABILITY
    assert code == 4
    assert path.read_text() == before
    assert systemctl.calls == []
    assert [r.levelno for r in caplog.records if r.name == "cardano_nodekit.heartbeat"] == [logging.CRITICAL]


def _offline(monkeypatch):
    monkeypatch.setattr(ip_tools, "get_local_addresses", lambda: frozenset({"127.0.0.1", "10.0.0.5"}))
    monkeypatch.setattr(ip_tools, "get_external_ipv4", lambda *a: "")
    monkeypatch.setattr(ip_tools, "get_external_ipv6", lambda *a: "")


def test_preset_external_address_does_not_bypass_indeterminate(
        settings, write_unit, install_credentials, service, systemctl, monkeypatch):
    install_credentials()
    path = write_unit(".standingby")
    before = path.read_text()
    _offline(monkeypatch)
    preset = replace(settings, external_ipv4="198.51.100.7", external_ipv6="2001:db8::7")

    result = run_heartbeat(preset, service)

    assert result.outcome == Outcome.INDETERMINATE_REACHABILITY
    assert path.read_text() == before
    assert systemctl.calls == []


def test_preset_parent_address_still_excludes_the_parent(settings, write_unit, service, systemctl, monkeypatch):
    path = write_unit(".normal")
    before = path.read_text()
    _offline(monkeypatch)

    result = run_heartbeat(replace(settings, external_ipv4=PARENT), service)

    assert result.outcome == Outcome.PARENT_NO_OP
    assert path.read_text() == before
    assert systemctl.calls == []


def test_scenario_d_restart_failure_after_transition(settings, write_unit, install_credentials, caplog):
    install_credentials()
    path = write_unit(".standingby")
    systemctl = FakeSystemctl(active=True, restart_rc=1)

    result = run_heartbeat(settings, ServiceController("cardano-node", runner=systemctl),
                           identity_of(), probe_returns(ProbeResult.UNREACHABLE))
    with caplog.at_level(logging.DEBUG, logger="cardano_nodekit"):
        code = report(result)

    assert result.outcome == Outcome.SERVICE_RESTART_FAILURE
    assert code == 6
    assert _role(path) == Role.BLOCK_PRODUCER
    assert [r.levelno for r in caplog.records if r.name == "cardano_nodekit.heartbeat"] == [logging.CRITICAL]


def test_daemon_reload_failure_is_a_restart_failure(settings, write_unit, install_credentials):
    install_credentials()
    write_unit(".standingby")
    systemctl = FakeSystemctl(active=True, reload_rc=1)

    result = run_heartbeat(settings, ServiceController("cardano-node", runner=systemctl),
                           identity_of(), probe_returns(ProbeResult.UNREACHABLE))

    assert result.outcome == Outcome.SERVICE_RESTART_FAILURE
    assert systemctl.restarts == 0


def test_service_that_does_not_come_back_is_a_restart_failure(settings, write_unit, install_credentials):
    install_credentials()
    write_unit(".standingby")
    systemctl = FakeSystemctl(active=True, comes_back=False)

    result = run_heartbeat(settings, ServiceController("cardano-node", runner=systemctl),
                           identity_of(), probe_returns(ProbeResult.UNREACHABLE))

    assert result.outcome == Outcome.SERVICE_RESTART_FAILURE


def test_stopped_service_is_reconfigured_but_not_started(settings, write_unit, install_credentials):
    install_credentials()
    path = write_unit(".standingby")
    systemctl = FakeSystemctl(active=False)

    result = run_heartbeat(settings, ServiceController("cardano-node", runner=systemctl),
                           identity_of(), probe_returns(ProbeResult.UNREACHABLE))

    assert result.outcome == Outcome.TRANSITIONED_NOT_RESTARTED
    assert result.exit_code == 0
    assert _role(path) == Role.BLOCK_PRODUCER
    assert systemctl.actions == ["is-active", "daemon-reload"]


def test_second_run_is_a_no_op(settings, write_unit, install_credentials, service, systemctl):
    install_credentials()
    path = write_unit(".standingby")
    probe = probe_returns(ProbeResult.UNREACHABLE)

    first = run_heartbeat(settings, service, identity_of(), probe)
    after_first = path.read_text()
    mtime = path.stat().st_mtime_ns
    calls_after_first = len(systemctl.calls)

    second = run_heartbeat(settings, service, identity_of(), probe)

    assert first.outcome == Outcome.TRANSITIONED
    assert second.outcome == Outcome.ALREADY_CORRECT
    assert second.exit_code == 0
    assert path.read_text() == after_first
    assert path.stat().st_mtime_ns == mtime
    assert len(systemctl.calls) == calls_after_first


def test_round_trip_restores_unit_byte_for_byte(settings, write_unit, install_credentials, service, systemctl):
    install_credentials()
    path = write_unit(".standingby")
    original = path.read_bytes()

    down = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.UNREACHABLE))
    assert down.outcome == Outcome.TRANSITIONED
    assert _role(path) == Role.BLOCK_PRODUCER

    up = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.REACHABLE))
    assert up.outcome == Outcome.TRANSITIONED
    assert path.read_bytes() == original
    assert systemctl.restarts == 2


def test_legacy_unit_is_switched(settings, write_unit, install_credentials, service):
    install_credentials()
    path = write_unit(text=LEGACY_STANDBY_UNIT)

    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.UNREACHABLE))

    assert result.outcome == Outcome.TRANSITIONED
    assert _role(path) == Role.BLOCK_PRODUCER


def test_standby_with_parent_up_is_already_correct(settings, write_unit, service, systemctl):
    write_unit(".standingby")
    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.REACHABLE))
    assert result.outcome == Outcome.ALREADY_CORRECT
    assert systemctl.calls == []


def test_config_write_failure_leaves_service_alone(settings, write_unit, install_credentials, service, systemctl, monkeypatch):
    install_credentials()
    path = write_unit(".standingby")
    before = path.read_text()

    def fail(path, text):
        raise ConfigWriteError(f"Cannot rewrite {path}: read-only file system")
    monkeypatch.setattr(heartbeat, "write_unit_file", fail)

    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.UNREACHABLE))

    assert result.outcome == Outcome.CONFIG_WRITE_FAILURE
    assert result.exit_code == 5
    assert path.read_text() == before
    assert systemctl.restarts == 0
    assert "daemon-reload" not in systemctl.actions


def test_missing_unit_file_is_a_config_error(settings, service):
    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.UNREACHABLE))
    assert result.outcome == Outcome.CONFIG_ERROR
    assert result.exit_code == 2


def test_ambiguous_unit_is_a_config_error(settings, write_unit, install_credentials, service, systemctl, tmp_path):
    install_credentials()
    text = write_unit(".normal").read_text().replace(
        "[Service]\n", f"[Service]\nEnvironmentFile={tmp_path}/x.env.standingby\n")
    write_unit(text=text)

    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.REACHABLE))

    assert result.outcome == Outcome.CONFIG_ERROR
    assert systemctl.calls == []


def test_inline_comment_in_exec_start_is_a_config_error(settings, write_unit, install_credentials, service, systemctl):
    install_credentials()
    path = write_unit(text=(
        "[Service]\n"
        "ExecStart=/home/cardano/cardano-node run --port 6000 # --shelley-kes-key k "
        "--shelley-vrf-key v --shelley-operational-certificate c\n"
    ))
    before = path.read_text()

    result = run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.UNREACHABLE))

    assert result.outcome == Outcome.CONFIG_ERROR
    assert path.read_text() == before
    assert systemctl.calls == []


def test_held_lock_skips_the_run(settings, write_unit, service, systemctl):
    path = write_unit(".normal")
    before = path.read_text()
    probe = probe_returns(ProbeResult.REACHABLE)

    with RunLock(settings.lock_file):
        result = run_heartbeat(settings, service, identity_of(), probe)

    assert result.outcome == Outcome.LOCK_HELD
    assert result.exit_code == 0
    assert probe.calls == []
    assert path.read_text() == before
    assert systemctl.calls == []


def test_lock_is_released_after_a_run(settings, write_unit, service):
    write_unit(".standingby")
    run_heartbeat(settings, service, identity_of(), probe_returns(ProbeResult.REACHABLE))
    with RunLock(settings.lock_file) as lock:
        assert lock.held


def test_manage_heartbeat_reports_missing_parent(tmp_path, monkeypatch):
    monkeypatch.delenv("PARENT_ADDRESS", raising=False)
    config_file = tmp_path / "config.toml"
    config_file.write_text('[failover]\nparent_address = ""\n')
    assert manage_heartbeat(str(config_file)) == Outcome.CONFIG_ERROR.exit_code


def test_manage_heartbeat_turns_crashes_into_exit_code(tmp_path, monkeypatch):
    config_file = tmp_path / "config.toml"
    config_file.write_text(f'[failover]\nparent_address = "{PARENT}"\nlock_file = "{tmp_path}/l.lock"\n')

    def boom(settings):
        raise RuntimeError("boom")
    monkeypatch.setattr(heartbeat, "run_heartbeat", boom)

    assert manage_heartbeat(str(config_file)) == Outcome.UNEXPECTED_ERROR.exit_code
