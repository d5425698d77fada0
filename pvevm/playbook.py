"""Ansible playbook runner and the post-deployment summary."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from loguru import logger

from .config import ProxmoxVMConfig
from .errors import ConvergenceError
from .util import expand, run_cmd

log = logger


def _ansible_dir(cfg: ProxmoxVMConfig) -> Path:
    path = Path(expand(cfg.paths.ansible_dir))
    if not path.is_dir():
        raise FileNotFoundError(f'Ansible directory not found: {path}')
    return path


def playbook_cmd(
    cfg: ProxmoxVMConfig, extra_args: Sequence[str] = ()
) -> list[str]:
    return ['ansible-playbook', cfg.ansible.playbook, *extra_args]


def run_playbook(
    cfg: ProxmoxVMConfig,
    extra_args: Sequence[str] = (),
    *,
    dry_run: bool = False,
) -> None:
    """
    Run the playbook from the Ansible directory, streaming its output.

    Extra arguments are forwarded verbatim. The exit code is the only
    success signal; individual task results are not interpreted.

    Raises:
        ConvergenceError: carrying ansible-playbook's exit code.
    """
    cmd = playbook_cmd(cfg, extra_args)
    if dry_run:
        log.info('DRYRUN: cd {} && {}', cfg.paths.ansible_dir, ' '.join(cmd))
        return
    ansible_dir = _ansible_dir(cfg)
    log.info('Running Ansible playbook...')
    res = run_cmd(cmd, check=False, capture=False, cwd=ansible_dir)
    if res.code != 0:
        raise ConvergenceError(res.code, playbook=cfg.ansible.playbook)
    log.info('Proxmox VE deployment complete!')


def lint_playbook(cfg: ProxmoxVMConfig) -> int:
    res = run_cmd(
        ['ansible-lint', cfg.ansible.playbook],
        check=False,
        capture=False,
        cwd=_ansible_dir(cfg),
    )
    return res.code


def summary_banner(cfg: ProxmoxVMConfig) -> str:
    ip = cfg.vm.ip
    rule = '=' * 51
    return '\n'.join(
        [
            rule,
            f'  Proxmox VE Web UI: https://{ip}:{cfg.ansible.web_port}',
            f'  User: {cfg.vm.user}@{cfg.ansible.realm}',
            f'  SSH:  ssh {cfg.vm.user}@{ip}',
            rule,
        ]
    )
