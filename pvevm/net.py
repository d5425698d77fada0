"""DHCP host reservations on an existing libvirt network."""

from __future__ import annotations

import xml.etree.ElementTree as ET
from xml.sax.saxutils import quoteattr

from loguru import logger

from .config import ProxmoxVMConfig
from .results import ReservationOutcome, ReservationResult
from .runtime import virsh_cmd
from .util import run_cmd

log = logger


def _dump_network_xml(cfg: ProxmoxVMConfig) -> str:
    res = run_cmd(
        virsh_cmd(cfg, 'net-dumpxml', cfg.network.name),
        sudo=cfg.libvirt.use_sudo,
        check=False,
        capture=True,
    )
    if res.code != 0:
        log.debug(
            'net-dumpxml {} failed: {}', cfg.network.name, res.stderr.strip()
        )
        return ''
    return res.stdout


def parse_dhcp_hosts(xml_text: str) -> list[tuple[str, str, str]]:
    """Return (mac, ip, name) for every ``<ip><dhcp><host>`` entry."""
    if not xml_text.strip():
        return []
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return []
    hosts = []
    for host in root.findall('./ip/dhcp/host'):
        hosts.append(
            (
                host.get('mac', '').lower(),
                host.get('ip', ''),
                host.get('name', ''),
            )
        )
    return hosts


def dhcp_reservations(cfg: ProxmoxVMConfig) -> list[tuple[str, str, str]]:
    return parse_dhcp_hosts(_dump_network_xml(cfg))


def host_entry_xml(mac: str, name: str, ip: str) -> str:
    return f'<host mac={quoteattr(mac)} name={quoteattr(name)} ip={quoteattr(ip)}/>'


def ensure_dhcp_reservation(
    cfg: ProxmoxVMConfig, *, dry_run: bool = False
) -> ReservationResult:
    mac = cfg.vm.mac.lower()
    ip = cfg.vm.ip
    existing = [h for h in dhcp_reservations(cfg) if h[0] == mac]
    if existing:
        log.info('DHCP reservation present: {} -> {}', mac, existing[0][1])
        return ReservationResult(
            ReservationOutcome.EXISTS, mac, existing[0][1] or ip
        )
    entry = host_entry_xml(mac, cfg.vm.name, ip)
    cmd = virsh_cmd(
        cfg,
        'net-update',
        cfg.network.name,
        'add',
        'ip-dhcp-host',
        entry,
        '--live',
        '--config',
    )
    if dry_run:
        log.info('DRYRUN: {}', ' '.join(cmd))
        return ReservationResult(ReservationOutcome.ADDED, mac, ip, 'dry run')
    log.info('Adding DHCP reservation: {} -> {}', mac, ip)
    res = run_cmd(cmd, sudo=cfg.libvirt.use_sudo, check=False, capture=True)
    if res.code != 0:
        detail = (res.stderr or res.stdout).strip()
        log.warning(
            'DHCP reservation for {} on network {} not applied; continuing: {}',
            mac,
            cfg.network.name,
            detail or f'code={res.code}',
        )
        return ReservationResult(
            ReservationOutcome.FAILED_IGNORED, mac, ip, detail
        )
    return ReservationResult(ReservationOutcome.ADDED, mac, ip)


def network_status(cfg: ProxmoxVMConfig) -> str:
    name = cfg.network.name
    info = run_cmd(
        virsh_cmd(cfg, 'net-info', name),
        sudo=cfg.libvirt.use_sudo,
        check=False,
        capture=True,
    )
    lines = [info.stdout.rstrip()]
    for mac, ip, host in dhcp_reservations(cfg):
        lines.append(f'reservation: {mac} -> {ip} ({host})')
    return '\n'.join(lines) + '\n'
