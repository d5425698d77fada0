"""VM lifecycle: inspect, create with unattended install, start, destroy, wait."""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Callable

from loguru import logger

from ..config import ProxmoxVMConfig, artifact_paths
from ..errors import (
    PollTimeoutError,
    SSHTimeoutError,
    VMCreationError,
    VMDestroyError,
)
from ..runtime import require_ssh_identity, ssh_base_args, virsh_cmd
from ..util import CmdError, poll, run_cmd

log = logger


class VMState(str, enum.Enum):
    ABSENT = 'absent'
    STOPPED = 'stopped'
    RUNNING = 'running'


def _is_guest_memory_allocation_error(ex: Exception) -> bool:
    text = str(ex).lower()
    return "cannot set up guest memory 'pc.ram': cannot allocate memory" in text


def _memory_allocation_failure_message(cfg: ProxmoxVMConfig) -> str:
    return (
        'VM creation failed because QEMU could not allocate guest RAM on the host.\n'
        f'Requested resources: ram_mb={cfg.vm.ram_mb}, cpus={cfg.vm.cpus}.\n'
        'Lower vm.ram_mb in the config or free host memory, then run '
        '`pvevm destroy` and retry.'
    )


def _virsh(cfg: ProxmoxVMConfig, *args: str, check: bool = False):
    return run_cmd(
        virsh_cmd(cfg, *args),
        sudo=cfg.libvirt.use_sudo,
        check=check,
        capture=True,
    )


def _vm_defined(cfg: ProxmoxVMConfig) -> bool:
    return _virsh(cfg, 'dominfo', cfg.vm.name).code == 0


def vm_state(cfg: ProxmoxVMConfig) -> VMState:
    if not _vm_defined(cfg):
        return VMState.ABSENT
    st = _virsh(cfg, 'domstate', cfg.vm.name).stdout.strip().lower()
    if st == 'running':
        return VMState.RUNNING
    return VMState.STOPPED


def virt_install_cmd(
    cfg: ProxmoxVMConfig, *, iso: Path, preseed: Path
) -> list[str]:
    disk = artifact_paths(cfg)['disk']
    return [
        'virt-install',
        '--connect',
        cfg.libvirt.uri,
        '--name',
        cfg.vm.name,
        '--memory',
        str(cfg.vm.ram_mb),
        '--vcpus',
        str(cfg.vm.cpus),
        '--cpu',
        'host-passthrough',
        '--os-variant',
        cfg.vm.os_variant,
        '--disk',
        f'path={disk},size={cfg.vm.disk_gb},format=qcow2,bus=virtio,cache=writeback',
        '--network',
        f'network={cfg.network.name},mac={cfg.vm.mac},model=virtio',
        '--graphics',
        'none',
        '--console',
        'pty,target_type=serial',
        '--location',
        str(iso),
        '--initrd-inject',
        str(preseed),
        '--extra-args',
        cfg.install.extra_args,
        '--noreboot',
        '--wait',
        '-1',
    ]


def _start_vm(cfg: ProxmoxVMConfig) -> None:
    _virsh(cfg, 'start', cfg.vm.name, check=True)
    log.info('VM started: {}', cfg.vm.name)


def create_or_start_vm(
    cfg: ProxmoxVMConfig,
    *,
    iso: Path,
    preseed: Path,
    dry_run: bool = False,
) -> VMState:
    """
    Converge the VM to running with the OS installed.

    An absent VM is created with ``virt-install`` and the unattended install
    is run to completion before the first ``virsh start``. A stopped VM is
    only started and a running VM is left untouched; an existing VM is never
    recreated here (use :func:`destroy_vm` first).

    Raises:
        VMCreationError: if ``virt-install`` fails. Creation is not retried.
    """
    name = cfg.vm.name
    state = VMState.ABSENT if dry_run else vm_state(cfg)
    if state is VMState.RUNNING:
        log.warning(
            "VM '{}' already exists and is running -- skipping creation, no install performed",
            name,
        )
        return state
    if state is VMState.STOPPED:
        log.warning("VM '{}' already exists -- skipping creation", name)
        _start_vm(cfg)
        return VMState.RUNNING

    cmd = virt_install_cmd(cfg, iso=iso, preseed=preseed)
    if dry_run:
        log.info('DRYRUN: {}', ' '.join(cmd))
        log.info('DRYRUN: virsh start {}', name)
        return VMState.RUNNING

    log.info(
        'Creating VM: {} ({} vCPU, {}MB RAM, {}GB disk)',
        name,
        cfg.vm.cpus,
        cfg.vm.ram_mb,
        cfg.vm.disk_gb,
    )
    try:
        run_cmd(cmd, sudo=cfg.libvirt.use_sudo, check=True, capture=False)
    except CmdError as ex:
        if _is_guest_memory_allocation_error(ex):
            raise VMCreationError(_memory_allocation_failure_message(cfg)) from ex
        raise VMCreationError(
            f'virt-install failed for {name} (code={ex.result.code}). '
            f'Run `pvevm destroy` before retrying.'
        ) from ex
    log.info('Debian installation complete -- starting VM')
    try:
        _start_vm(cfg)
    except CmdError as ex:
        raise VMCreationError(
            f'VM {name} installed but failed to start: {ex.result.stderr.strip()}'
        ) from ex
    return VMState.RUNNING


def destroy_vm(cfg: ProxmoxVMConfig, *, dry_run: bool = False) -> bool:
    """
    Force-stop and undefine the VM, deleting its storage.

    Returns False when there was nothing to destroy. Irreversible.
    """
    name = cfg.vm.name
    if not _vm_defined(cfg):
        log.info('VM not defined, nothing to destroy: {}', name)
        return False
    if dry_run:
        log.info(
            'DRYRUN: virsh destroy {}; virsh undefine {} --remove-all-storage',
            name,
            name,
        )
        return True
    log.info('Destroying VM: {}', name)
    # Fails harmlessly when the domain is already shut off.
    _virsh(cfg, 'destroy', name)
    # Different libvirt states require different undefine flags.
    attempts = [
        [
            'undefine',
            name,
            '--managed-save',
            '--snapshots-metadata',
            '--nvram',
            '--remove-all-storage',
        ],
        ['undefine', name, '--nvram', '--remove-all-storage'],
        ['undefine', name, '--remove-all-storage'],
        ['undefine', name],
    ]
    errs: list[str] = []
    for args in attempts:
        res = _virsh(cfg, *args)
        if res.code != 0:
            msg = (res.stderr or res.stdout or '').strip()
            if msg:
                errs.append(f'{" ".join(args)}: {msg}')
        if not _vm_defined(cfg):
            if '--remove-all-storage' not in args:
                log.warning(
                    'VM {} undefined without storage removal; disk may remain at {}',
                    name,
                    artifact_paths(cfg)['disk'],
                )
            log.info('VM destroyed: {}', name)
            return True
    detail = '\n'.join(errs[-4:]) if errs else '(no details)'
    raise VMDestroyError(
        f'Failed to undefine VM {name}; domain is still present after retries.\n{detail}'
    )


def vm_status(cfg: ProxmoxVMConfig) -> str:
    name = cfg.vm.name
    dom = _virsh(cfg, 'dominfo', name)
    if dom.code != 0:
        return f'VM not found: {name}\n'
    state = _virsh(cfg, 'domstate', name).stdout.strip()
    return dom.stdout + f'\nstate={state}\nip={cfg.vm.ip}\n'


def ssh_probe(cfg: ProxmoxVMConfig) -> bool:
    ident = require_ssh_identity(cfg.paths.ssh_identity_file)
    cmd = [
        'ssh',
        *ssh_base_args(
            ident,
            batch_mode=True,
            connect_timeout=cfg.ssh.connect_timeout,
            strict_host_key_checking='no',
        ),
        f'{cfg.vm.user}@{cfg.vm.ip}',
        'true',
    ]
    return run_cmd(cmd, check=False, capture=True).code == 0


def wait_for_ssh(
    cfg: ProxmoxVMConfig,
    *,
    dry_run: bool = False,
    sleep: Callable[[float], None] | None = None,
) -> int:
    ip = cfg.vm.ip
    if dry_run:
        log.info('DRYRUN: wait for SSH on {}@{}', cfg.vm.user, ip)
        return 0
    log.info('Waiting for SSH on {}...', ip)
    try:
        attempt = poll(
            lambda: ssh_probe(cfg),
            attempts=cfg.ssh.attempts,
            interval_s=cfg.ssh.interval_s,
            sleep=sleep,
            what=f'SSH on {ip}',
        )
    except PollTimeoutError as ex:
        raise SSHTimeoutError(
            f'SSH timeout after {ex.attempts} attempts ({cfg.vm.user}@{ip})',
            ex.attempts,
        ) from ex
    log.info('SSH is up')
    return attempt
