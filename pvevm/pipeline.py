"""Stage sequences behind the ``full``, ``ansible`` and ``destroy`` verbs."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from loguru import logger

from .config import ProxmoxVMConfig
from .host import check_preconditions
from .net import ensure_dhcp_reservation
from .playbook import run_playbook
from .preseed import prepare_preseed
from .results import ReservationResult
from .vm import (
    VMState,
    create_or_start_vm,
    destroy_vm,
    fetch_image,
    wait_for_ssh,
)

log = logger


@dataclass
class RunReport:
    stages: list[str] = field(default_factory=list)
    reservation: ReservationResult | None = None
    iso: Path | None = None
    preseed: Path | None = None
    vm_state: VMState | None = None
    ssh_attempts: int = 0


def run_full(cfg: ProxmoxVMConfig, *, dry_run: bool = False) -> RunReport:
    report = RunReport()
    check_preconditions(cfg)
    report.stages.append('preconditions')
    report.reservation = ensure_dhcp_reservation(cfg, dry_run=dry_run)
    report.stages.append('dhcp')
    report.iso = fetch_image(cfg, dry_run=dry_run)
    report.stages.append('image')
    report.preseed = prepare_preseed(cfg, dry_run=dry_run)
    report.stages.append('preseed')
    report.vm_state = create_or_start_vm(
        cfg, iso=report.iso, preseed=report.preseed, dry_run=dry_run
    )
    report.stages.append('vm')
    report.ssh_attempts = wait_for_ssh(cfg, dry_run=dry_run)
    report.stages.append('ssh')
    run_playbook(cfg, dry_run=dry_run)
    report.stages.append('ansible')
    return report


def run_ansible_only(
    cfg: ProxmoxVMConfig,
    extra_args: Sequence[str] = (),
    *,
    dry_run: bool = False,
) -> RunReport:
    report = RunReport()
    check_preconditions(cfg)
    report.stages.append('preconditions')
    run_playbook(cfg, extra_args, dry_run=dry_run)
    report.stages.append('ansible')
    return report


def run_destroy(cfg: ProxmoxVMConfig, *, dry_run: bool = False) -> RunReport:
    report = RunReport()
    destroy_vm(cfg, dry_run=dry_run)
    report.stages.append('destroy')
    report.vm_state = VMState.ABSENT
    return report
