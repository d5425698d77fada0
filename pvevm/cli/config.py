"""CLI commands for writing and inspecting the TOML config."""

from __future__ import annotations

import sys

import scriptconfig as scfg

from ..config import ProxmoxVMConfig, dump_toml, save
from ._common import (
    _BaseCommand,
    _cfg_path,
    _load_cfg_with_path,
    user_config_path,
)


class ConfigInitCLI(_BaseCommand):
    """Write a config file populated with the built-in defaults."""

    user = scfg.Value(
        False,
        isflag=True,
        help='Write the per-user config instead of ./.pvevm.toml.',
    )
    force = scfg.Value(
        False, isflag=True, help='Overwrite an existing config file.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        path = user_config_path() if args.user else _cfg_path(args.config)
        if path.exists() and not args.force:
            print(f'Config already exists: {path}', file=sys.stderr)
            print('Use --force to overwrite it.', file=sys.stderr)
            return 2
        path.parent.mkdir(parents=True, exist_ok=True)
        save(path, ProxmoxVMConfig())
        print(f'Wrote config: {path}')
        return 0


class ConfigShowCLI(_BaseCommand):
    """Show the resolved config (file values merged over defaults)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg, path = _load_cfg_with_path(args.config)
        print(f'# Source: {path if path is not None else "(built-in defaults)"}')
        print(dump_toml(cfg), end='')
        return 0


class ConfigModalCLI(scfg.ModalCLI):
    """Config file management."""

    init = ConfigInitCLI
    show = ConfigShowCLI
