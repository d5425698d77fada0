"""Render the Debian preseed answer file with hashed credentials."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from .config import ProxmoxVMConfig, artifact_paths
from .errors import MissingCredentialFileError, PreseedError
from .util import ensure_dir, expand, run_cmd
from .vault import vault_get

log = logger

ROOTPW_PLACEHOLDER = 'ROOTPW_PLACEHOLDER'
USERPW_PLACEHOLDER = 'USERPW_PLACEHOLDER'
SSHKEY_PLACEHOLDER = 'SSHKEY_PLACEHOLDER'
PLACEHOLDERS = (ROOTPW_PLACEHOLDER, USERPW_PLACEHOLDER, SSHKEY_PLACEHOLDER)


def hash_password(password: str) -> str:
    """SHA-512 crypt hash via ``openssl passwd -6``; password goes over stdin."""
    res = run_cmd(
        ['openssl', 'passwd', '-6', '-stdin'],
        input_text=password + '\n',
        check=True,
        capture=True,
    )
    hashed = res.stdout.strip()
    if not hashed.startswith('$6$'):
        raise PreseedError('openssl passwd -6 returned an unexpected hash')
    return hashed


def render_preseed(
    template: str, *, root_hash: str, user_hash: str, pubkey: str
) -> str:
    missing = [p for p in PLACEHOLDERS if p not in template]
    if missing:
        raise PreseedError(
            f'Preseed template lacks placeholders: {", ".join(missing)}'
        )
    out = (
        template.replace(ROOTPW_PLACEHOLDER, root_hash)
        .replace(USERPW_PLACEHOLDER, user_hash)
        .replace(SSHKEY_PLACEHOLDER, pubkey)
    )
    leftover = [p for p in PLACEHOLDERS if p in out]
    if leftover:
        raise PreseedError(
            f'Placeholders left after substitution: {", ".join(leftover)}'
        )
    return out


def _write_private(path: Path, text: str) -> None:
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        f.write(text)
    os.chmod(path, 0o600)


def prepare_preseed(cfg: ProxmoxVMConfig, *, dry_run: bool = False) -> Path:
    p = artifact_paths(cfg)
    out_path = p['preseed']
    template_path = Path(expand(cfg.paths.preseed_template))
    if dry_run:
        log.info('DRYRUN: render {} -> {}', template_path, out_path)
        return out_path

    pubkey_path = cfg.pubkey_path
    if not pubkey_path.is_file():
        raise MissingCredentialFileError(str(pubkey_path), what='SSH public key')
    pubkey = pubkey_path.read_text(encoding='utf-8').strip()
    template = template_path.read_text(encoding='utf-8')

    root_hash = hash_password(vault_get(cfg, cfg.ansible.root_password_key))
    user_hash = hash_password(vault_get(cfg, cfg.ansible.user_password_key))

    text = render_preseed(
        template, root_hash=root_hash, user_hash=user_hash, pubkey=pubkey
    )
    ensure_dir(p['cache_dir'])
    _write_private(out_path, text)
    log.info('Preseed prepared with hashed passwords + SSH key: {}', out_path)
    return out_path
