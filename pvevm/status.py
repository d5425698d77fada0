"""Probe and rendering logic for per-stage status reporting."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import ProxmoxVMConfig, artifact_paths
from .host import check_commands, credential_files
from .net import dhcp_reservations
from .vm import VMState, image_cached, ssh_probe, vm_state


@dataclass(frozen=True)
class ProbeOutcome:
    ok: bool | None
    detail: str


def status_line(ok: bool | None, label: str, detail: str = '') -> str:
    icon = '✅' if ok is True else ('➖' if ok is None else '❌')
    suffix = f' - {detail}' if detail else ''
    return f'{icon} {label}{suffix}'


def probe_host_tools() -> ProbeOutcome:
    missing, missing_opt = check_commands()
    if missing:
        return ProbeOutcome(False, f'missing: {", ".join(missing)}')
    if missing_opt:
        return ProbeOutcome(True, f'optional missing: {", ".join(missing_opt)}')
    return ProbeOutcome(True, 'all present')


def probe_credentials(cfg: ProxmoxVMConfig) -> ProbeOutcome:
    missing = [str(p) for _, p in credential_files(cfg) if not p.is_file()]
    if missing:
        return ProbeOutcome(False, f'missing: {", ".join(missing)}')
    return ProbeOutcome(True, 'vault password + SSH public key present')


def probe_reservation(cfg: ProxmoxVMConfig) -> ProbeOutcome:
    mac = cfg.vm.mac.lower()
    hits = [h for h in dhcp_reservations(cfg) if h[0] == mac]
    if not hits:
        return ProbeOutcome(False, f'no reservation for {mac}')
    ip = hits[0][1]
    if ip != cfg.vm.ip:
        return ProbeOutcome(False, f'{mac} reserved for {ip}, expected {cfg.vm.ip}')
    return ProbeOutcome(True, f'{mac} -> {ip}')


def probe_image(cfg: ProxmoxVMConfig) -> ProbeOutcome:
    iso: Path = artifact_paths(cfg)['iso']
    if image_cached(iso):
        return ProbeOutcome(True, str(iso))
    return ProbeOutcome(False, f'not cached: {iso}')


def probe_vm(cfg: ProxmoxVMConfig) -> tuple[ProbeOutcome, VMState]:
    state = vm_state(cfg)
    if state is VMState.RUNNING:
        return ProbeOutcome(True, state.value), state
    if state is VMState.STOPPED:
        return ProbeOutcome(None, state.value), state
    return ProbeOutcome(False, state.value), state


def probe_ssh(cfg: ProxmoxVMConfig, state: VMState) -> ProbeOutcome:
    if state is not VMState.RUNNING:
        return ProbeOutcome(None, 'VM not running')
    if ssh_probe(cfg):
        return ProbeOutcome(True, f'{cfg.vm.user}@{cfg.vm.ip}')
    return ProbeOutcome(False, f'{cfg.vm.user}@{cfg.vm.ip} unreachable')


def render_status(cfg: ProxmoxVMConfig) -> str:
    vm_probe, state = probe_vm(cfg)
    rows = [
        ('Host tools', probe_host_tools()),
        ('Credential files', probe_credentials(cfg)),
        (f'DHCP reservation ({cfg.network.name})', probe_reservation(cfg)),
        ('Installer ISO', probe_image(cfg)),
        (f'VM {cfg.vm.name}', vm_probe),
        ('SSH', probe_ssh(cfg, state)),
    ]
    lines = [f'🖥️  pvevm status: {cfg.vm.name}']
    lines.extend(status_line(o.ok, label, o.detail) for label, o in rows)
    return '\n'.join(lines)
