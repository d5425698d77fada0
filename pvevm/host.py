"""Host dependency and credential-file precondition checks."""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from .config import ProxmoxVMConfig
from .errors import MissingCredentialFileError, MissingDependencyError
from .util import expand, which

log = logger

REQUIRED_CMDS = [
    'virsh',
    'virt-install',
    'qemu-img',
    'ansible-playbook',
    'ansible-vault',
    'curl',
    'openssl',
    'ssh',
]
OPTIONAL_CMDS = ['ansible-lint']


def check_commands() -> tuple[list[str], list[str]]:
    missing = [c for c in REQUIRED_CMDS if which(c) is None]
    missing_opt = [c for c in OPTIONAL_CMDS if which(c) is None]
    return missing, missing_opt


def credential_files(cfg: ProxmoxVMConfig) -> list[tuple[str, Path]]:
    return [
        ('vault password file', Path(expand(cfg.paths.vault_password_file))),
        ('SSH public key', cfg.pubkey_path),
    ]


def check_preconditions(cfg: ProxmoxVMConfig) -> None:
    """
    Fail fast on the first missing executable or credential file.

    Raises:
        MissingDependencyError: a required command is not on PATH.
        MissingCredentialFileError: the vault password file or SSH public
            key does not exist.
    """
    for cmd in REQUIRED_CMDS:
        if which(cmd) is None:
            raise MissingDependencyError(cmd)
    for what, path in credential_files(cfg):
        if not path.is_file():
            raise MissingCredentialFileError(str(path), what=what)
    log.debug('Preconditions satisfied for VM {}', cfg.vm.name)
