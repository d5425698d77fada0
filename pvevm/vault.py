"""Ansible Vault access: key lookup plus view/edit/encrypt passthroughs."""

from __future__ import annotations

from loguru import logger

from .config import ProxmoxVMConfig
from .errors import SecretLookupError
from .util import CmdError, expand, run_cmd

log = logger


def _vault_cmd(cfg: ProxmoxVMConfig, action: str) -> list[str]:
    return [
        'ansible-vault',
        action,
        expand(cfg.paths.secrets_file),
        '--vault-password-file',
        expand(cfg.paths.vault_password_file),
    ]


def extract_key(text: str, key: str) -> str | None:
    """Find ``key: value`` at the start of a line and return the bare value."""
    prefix = f'{key}:'
    for line in text.splitlines():
        if line.startswith(prefix):
            return line[len(prefix):].strip().replace('"', '')
    return None


def vault_get(cfg: ProxmoxVMConfig, key: str) -> str:
    try:
        res = run_cmd(_vault_cmd(cfg, 'view'), check=True, capture=True)
    except CmdError as ex:
        raise SecretLookupError(
            f'Could not decrypt {cfg.paths.secrets_file}: {ex.result.stderr.strip()}'
        ) from ex
    value = extract_key(res.stdout, key)
    if not value:
        # An empty substitution would silently produce a broken preseed.
        raise SecretLookupError(
            f'Key {key!r} missing or empty in {cfg.paths.secrets_file}'
        )
    log.debug('Read vault key {}', key)
    return value


def vault_passthrough(cfg: ProxmoxVMConfig, action: str) -> int:
    if action not in {'view', 'edit', 'encrypt'}:
        raise ValueError(f'Unsupported vault action: {action}')
    return run_cmd(_vault_cmd(cfg, action), check=True, capture=False).code
