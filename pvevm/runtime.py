"""Runtime helpers for constructing virsh and SSH command arguments."""

from __future__ import annotations

from .config import ProxmoxVMConfig
from .errors import MissingCredentialFileError


def virsh_cmd(cfg: ProxmoxVMConfig, *args: str) -> list[str]:
    return ['virsh', '-c', cfg.libvirt.uri, *args]


def require_ssh_identity(identity: str) -> str:
    ident = (identity or '').strip()
    if not ident:
        raise MissingCredentialFileError(
            '(empty)', what='SSH identity (paths.ssh_identity_file)'
        )
    return ident


def ssh_base_args(
    ident: str,
    *,
    strict_host_key_checking: str,
    connect_timeout: int | None = None,
    batch_mode: bool = False,
) -> list[str]:
    args: list[str] = []
    if batch_mode:
        args.extend(['-o', 'BatchMode=yes'])
    if connect_timeout is not None:
        args.extend(['-o', f'ConnectTimeout={connect_timeout}'])
    args.extend(['-o', f'StrictHostKeyChecking={strict_host_key_checking}'])
    args.extend(['-i', ident])
    return args
