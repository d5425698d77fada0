"""Tests for VM lifecycle, image cache, and SSH wait helpers."""

from __future__ import annotations

from pathlib import Path

import pytest
from loguru import logger

from pvevm.config import artifact_paths
from pvevm.errors import (
    DownloadFailedError,
    SSHTimeoutError,
    VMCreationError,
    VMDestroyError,
)
from pvevm.util import CmdError, CmdResult
from pvevm.vm import (
    VMState,
    create_or_start_vm,
    destroy_vm,
    fetch_image,
    virt_install_cmd,
    vm_state,
    vm_status,
    wait_for_ssh,
)


@pytest.fixture
def warnings():
    messages: list[str] = []
    handler_id = logger.add(
        lambda m: messages.append(m.record['message']), level='WARNING'
    )
    yield messages
    logger.remove(handler_id)


def test_vm_state_is_read_from_hypervisor(fake_host, cfg) -> None:
    assert vm_state(cfg) is VMState.ABSENT
    fake_host.domains['proxmox'] = 'shut off'
    assert vm_state(cfg) is VMState.STOPPED
    fake_host.domains['proxmox'] = 'paused'
    assert vm_state(cfg) is VMState.STOPPED
    fake_host.domains['proxmox'] = 'running'
    assert vm_state(cfg) is VMState.RUNNING


def test_virt_install_cmd_requests_unattended_install(cfg) -> None:
    cmd = virt_install_cmd(cfg, iso=Path('/c/d.iso'), preseed=Path('/c/p.cfg'))
    assert cmd[0] == 'virt-install'
    assert cmd[cmd.index('--location') + 1] == '/c/d.iso'
    assert cmd[cmd.index('--initrd-inject') + 1] == '/c/p.cfg'
    extra = cmd[cmd.index('--extra-args') + 1]
    assert 'auto=true' in extra and 'priority=critical' in extra
    assert cmd[cmd.index('--network') + 1] == (
        'network=default,mac=52:54:00:ab:cd:10,model=virtio'
    )
    disk = cmd[cmd.index('--disk') + 1]
    assert disk.startswith(f'path={artifact_paths(cfg)["disk"]},size=80,')
    assert '--noreboot' in cmd
    assert cmd[cmd.index('--wait') + 1] == '-1'
    assert cmd[cmd.index('--memory') + 1] == '8192'
    assert cmd[cmd.index('--vcpus') + 1] == '4'


def test_create_absent_vm_installs_then_starts(fake_host, cfg) -> None:
    state = create_or_start_vm(
        cfg, iso=Path('/c/d.iso'), preseed=Path('/c/p.cfg')
    )
    assert state is VMState.RUNNING
    tools = [
        c[0] if c[0] != 'virsh' else c[3]
        for c in fake_host.calls
        if c[0] == 'virt-install' or c[3] == 'start'
    ]
    assert tools == ['virt-install', 'start']
    assert fake_host.domains == {'proxmox': 'running'}


def test_stopped_vm_is_started_not_recreated(fake_host, cfg, warnings) -> None:
    fake_host.domains['proxmox'] = 'shut off'
    state = create_or_start_vm(
        cfg, iso=Path('/c/d.iso'), preseed=Path('/c/p.cfg')
    )
    assert state is VMState.RUNNING
    assert fake_host.commands('virt-install') == []
    assert len(fake_host.virsh_calls('start')) == 1
    assert any('skipping creation' in m for m in warnings)


def test_running_vm_is_a_noop_with_warning(fake_host, cfg, warnings) -> None:
    fake_host.domains['proxmox'] = 'running'
    state = create_or_start_vm(
        cfg, iso=Path('/c/d.iso'), preseed=Path('/c/p.cfg')
    )
    assert state is VMState.RUNNING
    assert fake_host.commands('virt-install') == []
    assert fake_host.virsh_calls('start') == []
    assert any('no install performed' in m for m in warnings)


def test_create_failure_is_fatal_and_not_retried(fake_host, cfg) -> None:
    fake_host.virt_install_rc = 1
    with pytest.raises(VMCreationError, match='pvevm destroy'):
        create_or_start_vm(cfg, iso=Path('/c/d.iso'), preseed=Path('/c/p.cfg'))
    assert len(fake_host.commands('virt-install')) == 1
    assert fake_host.virsh_calls('start') == []


def test_create_vm_explains_guest_memory_failure(monkeypatch, cfg) -> None:
    def fake_run_cmd(cmd, **kwargs):
        if cmd[0] == 'virt-install':
            raise CmdError(
                cmd,
                CmdResult(
                    1,
                    '',
                    "qemu-system-x86_64: cannot set up guest memory 'pc.ram': Cannot allocate memory",
                ),
            )
        return CmdResult(1, '', 'error: failed to get domain')

    monkeypatch.setattr('pvevm.vm.lifecycle.run_cmd', fake_run_cmd)
    with pytest.raises(VMCreationError, match='could not allocate guest RAM'):
        create_or_start_vm(cfg, iso=Path('/c/d.iso'), preseed=Path('/c/p.cfg'))


def test_destroy_missing_vm_is_not_an_error(fake_host, cfg) -> None:
    assert destroy_vm(cfg) is False
    assert fake_host.virsh_calls('undefine') == []


def test_destroy_running_vm_removes_storage(fake_host, cfg) -> None:
    fake_host.domains['proxmox'] = 'running'
    assert destroy_vm(cfg) is True
    assert fake_host.domains == {}
    assert len(fake_host.virsh_calls('destroy')) == 1
    assert '--remove-all-storage' in fake_host.virsh_calls('undefine')[0]


def test_destroy_stopped_vm_ignores_not_running_error(fake_host, cfg) -> None:
    fake_host.domains['proxmox'] = 'shut off'
    assert destroy_vm(cfg) is True
    assert fake_host.domains == {}


def test_destroy_raises_when_domain_survives(fake_host, cfg) -> None:
    fake_host.domains['proxmox'] = 'shut off'
    fake_host.stuck_domains.add('proxmox')
    with pytest.raises(VMDestroyError, match='still present'):
        destroy_vm(cfg)
    assert len(fake_host.virsh_calls('undefine')) == 4


def test_vm_status(fake_host, cfg) -> None:
    assert vm_status(cfg) == 'VM not found: proxmox\n'
    fake_host.domains['proxmox'] = 'running'
    out = vm_status(cfg)
    assert 'state=running' in out
    assert 'ip=192.168.122.10' in out


def test_fetch_image_skips_download_when_cached(fake_host, cfg) -> None:
    iso = artifact_paths(cfg)['iso']
    iso.parent.mkdir(parents=True)
    iso.write_bytes(b'ISO')
    for _ in range(3):
        assert fetch_image(cfg) == iso
    assert fake_host.commands('curl') == []


def test_fetch_image_redownloads_empty_file(fake_host, cfg) -> None:
    iso = artifact_paths(cfg)['iso']
    iso.parent.mkdir(parents=True)
    iso.write_bytes(b'')
    fetch_image(cfg)
    assert len(fake_host.commands('curl')) == 1
    assert iso.read_bytes() == b'ISO9660'


def test_fetch_image_uses_temp_then_rename(fake_host, cfg) -> None:
    out = fetch_image(cfg)
    curl = fake_host.commands('curl')[0]
    assert curl[curl.index('-o') + 1] == str(out) + '.part'
    assert curl[-1] == cfg.image.iso_url
    assert out.read_bytes() == b'ISO9660'
    assert not Path(str(out) + '.part').exists()


def test_fetch_image_failure_cleans_partial(monkeypatch, cfg) -> None:
    def fake_run_cmd(cmd, **kwargs):
        Path(cmd[cmd.index('-o') + 1]).write_bytes(b'trunc')
        raise CmdError(cmd, CmdResult(22, '', 'curl: (22) 404'))

    monkeypatch.setattr('pvevm.vm.image.run_cmd', fake_run_cmd)
    with pytest.raises(DownloadFailedError):
        fetch_image(cfg)
    iso = artifact_paths(cfg)['iso']
    assert not iso.exists()
    assert not Path(str(iso) + '.part').exists()


def test_wait_for_ssh_exhausts_exact_budget(fake_host, cfg, no_sleep) -> None:
    fake_host.ssh_ok = False
    cfg.ssh.attempts = 7
    cfg.ssh.interval_s = 5
    with pytest.raises(SSHTimeoutError, match='7 attempts'):
        wait_for_ssh(cfg)
    assert len(fake_host.commands('ssh')) == 7
    assert no_sleep == [5] * 6


def test_wait_for_ssh_default_budget(fake_host, cfg, no_sleep) -> None:
    fake_host.ssh_ok = False
    with pytest.raises(SSHTimeoutError):
        wait_for_ssh(cfg)
    assert len(fake_host.commands('ssh')) == 60
    assert no_sleep == [5] * 59


def test_wait_for_ssh_probe_command(fake_host, cfg, no_sleep) -> None:
    assert wait_for_ssh(cfg) == 1
    ssh = fake_host.commands('ssh')[0]
    assert 'ConnectTimeout=3' in ssh
    assert 'StrictHostKeyChecking=no' in ssh
    assert ssh[-2:] == ['me@192.168.122.10', 'true']
    assert ssh[ssh.index('-i') + 1] == cfg.paths.ssh_identity_file
    assert no_sleep == []


def test_destroy_dry_run_reports_missing_vm(fake_host, cfg) -> None:
    assert destroy_vm(cfg, dry_run=True) is False
    fake_host.domains['proxmox'] = 'running'
    assert destroy_vm(cfg, dry_run=True) is True
    assert fake_host.domains == {'proxmox': 'running'}
    assert fake_host.virsh_calls('destroy') == []
    assert fake_host.virsh_calls('undefine') == []
