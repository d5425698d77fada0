from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import TextIO

import scriptconfig as scfg
import ubelt as ub
from loguru import logger

from ..config import ProxmoxVMConfig, load

log = logger

GREEN = '\033[0;32m'
RED = '\033[0;31m'
NC = '\033[0m'

LOCAL_CONFIG_NAME = '.pvevm.toml'


class _BaseCommand(scfg.DataConfig):
    """Base options shared by all commands."""

    config = scfg.Value(
        None, help=f'Path to config TOML (default: {LOCAL_CONFIG_NAME}).'
    )
    verbose = scfg.Value(
        0,
        short_alias=['v'],
        isflag='counter',
        help='Increase verbosity (-v, -vv).',
    )


def user_config_path() -> Path:
    return Path(ub.Path.appdir('pvevm', type='config')) / 'config.toml'


def _cfg_path(p: str | None) -> Path:
    return Path(p or LOCAL_CONFIG_NAME).resolve()


def _find_cfg_path(config_opt: str | None) -> Path | None:
    if config_opt is not None:
        path = _cfg_path(config_opt)
        if not path.exists():
            raise FileNotFoundError(
                f'Config not found: {path}. Run: pvevm config init --config {path}'
            )
        return path
    for cand in (_cfg_path(None), user_config_path()):
        if cand.exists():
            return cand
    return None


def _load_cfg_with_path(
    config_opt: str | None,
) -> tuple[ProxmoxVMConfig, Path | None]:
    path = _find_cfg_path(config_opt)
    if path is None:
        log.debug('No config file found; using built-in defaults')
        return ProxmoxVMConfig().expanded_paths(), None
    log.debug('Loading config from {}', path)
    return load(path).expanded_paths(), path


def _load_cfg(config_opt: str | None) -> ProxmoxVMConfig:
    cfg, _ = _load_cfg_with_path(config_opt)
    return cfg


def _use_color(stream: TextIO) -> bool:
    return stream.isatty() and os.getenv('NO_COLOR') is None


def _print_success(text: str) -> None:
    if _use_color(sys.stdout):
        text = '\n'.join(f'{GREEN}{line}{NC}' for line in text.splitlines())
    print(text)


def _print_error(message: str) -> None:
    if _use_color(sys.stderr):
        print(f'{RED}[x]{NC} {message}', file=sys.stderr)
    else:
        print(f'[x] {message}', file=sys.stderr)


__all__ = [name for name in globals() if not name.startswith('__')]
