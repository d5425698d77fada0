"""Top-level modal CLI wiring, argv normalization, and logging setup."""

from __future__ import annotations

import os
import shutil
import sys

import scriptconfig as scfg
from loguru import logger

from ..config import artifact_paths
from ..errors import ConvergenceError
from ..host import check_commands
from ..net import network_status
from ..pipeline import run_ansible_only, run_destroy, run_full
from ..playbook import lint_playbook, summary_banner
from ..status import render_status
from ..vm import vm_status
from ._common import (
    _BaseCommand,
    _load_cfg,
    _print_error,
    _print_success,
    log,
)
from .config import ConfigModalCLI
from .help import HelpModalCLI
from .vault import VaultModalCLI


class FullCLI(_BaseCommand):
    """Provision the VM, install Debian unattended, and run Ansible (full run)."""

    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        run_full(cfg, dry_run=args.dry_run)
        if not args.dry_run:
            print()
            _print_success(summary_banner(cfg))
        return 0


class AnsibleCLI(_BaseCommand):
    """Run Ansible only against an existing VM (args after -- are forwarded)."""

    playbook_args = scfg.Value(
        [],
        nargs='*',
        help='Arguments forwarded verbatim to ansible-playbook (pass after --).',
    )
    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        run_ansible_only(
            cfg, list(args.playbook_args or []), dry_run=args.dry_run
        )
        if not args.dry_run:
            print()
            _print_success(summary_banner(cfg))
        return 0


class DestroyCLI(_BaseCommand):
    """Tear down the VM completely, including its disk (no confirmation)."""

    dry_run = scfg.Value(
        False, isflag=True, help='Print actions without running.'
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        run_destroy(cfg, dry_run=args.dry_run)
        return 0


class StatusCLI(_BaseCommand):
    """Report host tools, credentials, DHCP reservation, ISO, VM and SSH state."""

    detail = scfg.Value(
        False,
        isflag=True,
        help='Also print raw virsh dominfo and network details.',
    )

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        print(render_status(cfg))
        if args.detail:
            print()
            print(vm_status(cfg), end='')
            print(network_status(cfg), end='')
        return 0


class DoctorCLI(_BaseCommand):
    """Check host prerequisites and list missing required tools."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        cls.cli(argv=argv, data=kwargs)
        missing, missing_opt = check_commands()
        if missing:
            print('❌ Missing required commands:', ', '.join(missing))
            return 2
        if missing_opt:
            print('➖ Missing optional commands:', ', '.join(missing_opt))
        print('✅ Required host commands are present.')
        return 0


class CleanCLI(_BaseCommand):
    """Remove cached files (installer ISO, generated preseed)."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        cache_dir = artifact_paths(cfg)['cache_dir']
        if cache_dir.exists():
            shutil.rmtree(cache_dir)
        log.info('Cache cleaned: {}', cache_dir)
        return 0


class LintCLI(_BaseCommand):
    """Run ansible-lint on the playbook."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        return lint_playbook(cfg)


class ProxmoxVMModalCLI(scfg.ModalCLI):
    """Provision a libvirt VM and install Proxmox VE on it with Ansible."""

    full = FullCLI
    ansible = AnsibleCLI
    destroy = DestroyCLI
    status = StatusCLI
    doctor = DoctorCLI
    clean = CleanCLI
    lint = LintCLI
    vault = VaultModalCLI
    config = ConfigModalCLI
    help = HelpModalCLI


def main(argv: list[str] | None = None) -> None:
    if argv is None:
        argv = sys.argv[1:]
    argv, passthrough = _split_passthrough(list(argv))
    argv = _normalize_argv(argv)

    verbosity = 1
    config_value = _option_value(argv, '--config')
    try:
        verbosity = _load_cfg(config_value).verbosity
    except Exception:
        verbosity = 1
    _setup_logging(_count_verbose(argv), verbosity)

    if passthrough and argv[0] != 'ansible':
        _print_error(
            f"Extra arguments after '--' are only accepted by `ansible`, not `{argv[0]}`"
        )
        sys.exit(2)

    try:
        if passthrough:
            rc = AnsibleCLI.main(
                argv=False,
                playbook_args=passthrough,
                **_ansible_kwargs(argv[1:]),
            )
        else:
            rc = ProxmoxVMModalCLI.main(argv=argv, _noexit=True)
    except ConvergenceError as ex:
        _print_error(str(ex))
        log.error('Playbook failed: {}', ex)
        sys.exit(ex.returncode or 1)
    except Exception as ex:
        _print_error(str(ex))
        log.error('Unhandled pvevm error: {}', ex)
        sys.exit(2)

    if any(flag in argv for flag in ('-h', '--help')):
        sys.exit(0)
    if isinstance(rc, int):
        sys.exit(rc)
    sys.exit(0)


def _setup_logging(args_verbose: int, cfg_verbosity: int) -> None:
    logger.remove()
    effective_verbosity = args_verbose if args_verbose > 0 else cfg_verbosity
    level = 'WARNING'
    if effective_verbosity == 1:
        level = 'INFO'
    elif effective_verbosity >= 2:
        level = 'DEBUG'
    colorize = sys.stderr.isatty() and os.getenv('NO_COLOR') is None
    logger.add(
        sys.stderr,
        level=level,
        colorize=colorize,
        format='<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>',
    )
    log.debug(
        'Logging configured at {} (effective_verbosity={}, colorize={})',
        level,
        effective_verbosity,
        colorize,
    )


_VALUE_OPTIONS = ('--config',)


def _split_passthrough(argv: list[str]) -> tuple[list[str], list[str]]:
    """Split ``argv`` at the first ``--``; the tail goes to ansible-playbook."""
    if '--' in argv:
        idx = argv.index('--')
        return argv[:idx], argv[idx + 1 :]
    return argv, []


def _normalize_argv(argv: list[str]) -> list[str]:
    """
    Put the verb first, defaulting to the full run when none is given.

    Options may precede the verb (``pvevm -v destroy``); they are moved
    behind the verb and its subcommands so the verb's own parser sees them.
    """
    if not argv:
        return ['full']
    if argv[0] in ('-h', '--help'):
        return argv
    idx = _first_positional(argv)
    if idx is None:
        return ['full', *argv]
    rest = argv[idx:]
    if rest[0] == 'ansible-only':
        rest[0] = 'ansible'
    return [*rest, *argv[:idx]]


def _first_positional(argv: list[str]) -> int | None:
    skip_next = False
    for idx, item in enumerate(argv):
        if skip_next:
            skip_next = False
            continue
        if item in _VALUE_OPTIONS:
            skip_next = True
            continue
        if not item.startswith('-'):
            return idx
    return None


def _ansible_kwargs(args: list[str]) -> dict:
    """
    Read the ``ansible`` verb's own options when a ``--`` tail is present.

    Raises:
        ValueError: on an option the verb does not accept.
    """
    kwargs: dict = {'verbose': _count_verbose(args)}
    items = iter(args)
    for item in items:
        if item == '--config':
            kwargs['config'] = next(items, None)
            if kwargs['config'] is None:
                raise ValueError('--config requires a path')
        elif item.startswith('--config='):
            kwargs['config'] = item.split('=', 1)[1]
        elif item in ('--dry_run', '--dry-run'):
            kwargs['dry_run'] = True
        elif _count_verbose([item]) == 0:
            raise ValueError(f'Unrecognized argument for `ansible`: {item}')
    return kwargs


def _option_value(argv: list[str], *names: str) -> str | None:
    for name in names:
        if name in argv:
            try:
                return argv[argv.index(name) + 1]
            except IndexError:
                return None
    return None


def _count_verbose(argv: list[str]) -> int:
    count = 0
    for item in argv:
        if item == '--verbose':
            count += 1
        elif item.startswith('-') and not item.startswith('--'):
            short = item[1:]
            if short and set(short) <= {'v'}:
                count += len(short)
    return count
