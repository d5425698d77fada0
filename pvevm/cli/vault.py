"""CLI wrappers over ansible-vault for the secrets file."""

from __future__ import annotations

import scriptconfig as scfg

from ..vault import vault_passthrough
from ._common import _BaseCommand, _load_cfg


def _run_vault(cls, action: str, argv, kwargs) -> int:
    args = cls.cli(argv=argv, data=kwargs)
    cfg = _load_cfg(args.config)
    return vault_passthrough(cfg, action)


class VaultViewCLI(_BaseCommand):
    """View encrypted secrets."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        return _run_vault(cls, 'view', argv, kwargs)


class VaultEditCLI(_BaseCommand):
    """Edit encrypted secrets."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        return _run_vault(cls, 'edit', argv, kwargs)


class VaultEncryptCLI(_BaseCommand):
    """Encrypt the secrets file in place."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        return _run_vault(cls, 'encrypt', argv, kwargs)


class VaultModalCLI(scfg.ModalCLI):
    """Ansible Vault helpers for the secrets file."""

    view = VaultViewCLI
    edit = VaultEditCLI
    encrypt = VaultEncryptCLI
