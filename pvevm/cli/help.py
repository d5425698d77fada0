"""CLI help and command-tree rendering utilities."""

from __future__ import annotations

import shlex
import textwrap

import scriptconfig as scfg
import ubelt as ub

from ..config import artifact_paths
from ._common import _BaseCommand, _load_cfg


class HelpTreeCLI(_BaseCommand):
    """Print the expanded pvevm command tree."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        cls.cli(argv=argv, data=kwargs)
        from .main import ProxmoxVMModalCLI

        print(_render_command_tree(ProxmoxVMModalCLI))
        return 0


class HelpRawCLI(_BaseCommand):
    """Print the direct system-tool commands behind each pipeline stage."""

    @classmethod
    def main(cls, argv=True, **kwargs):
        args = cls.cli(argv=argv, data=kwargs)
        cfg = _load_cfg(args.config)
        p = artifact_paths(cfg)
        q = shlex.quote
        uri = q(cfg.libvirt.uri)
        vm = q(cfg.vm.name)
        net = q(cfg.network.name)
        lines = textwrap.dedent(
            f"""
            # pvevm help raw
            # Mapping: VM={cfg.vm.name} | network={cfg.network.name} | ip={cfg.vm.ip}

            # Host dependency checks (maps to: pvevm doctor)
            command -v virsh virt-install qemu-img ansible-playbook ansible-vault curl openssl ssh

            # DHCP reservation (maps to: full run, stage 2)
            virsh -c {uri} net-dumpxml {net}
            virsh -c {uri} net-dhcp-leases {net}

            # Installer ISO cache (maps to: full run, stage 3)
            ls -lh {q(str(p['iso']))}

            # VM state (maps to: pvevm status)
            virsh -c {uri} dominfo {vm}
            virsh -c {uri} domstate {vm}
            virsh -c {uri} console {vm}

            # SSH readiness probe (maps to: full run, stage 6)
            ssh -o BatchMode=yes -o ConnectTimeout={cfg.ssh.connect_timeout} -o StrictHostKeyChecking=no {q(cfg.vm.user)}@{cfg.vm.ip} true

            # Playbook (maps to: pvevm ansible)
            cd {q(cfg.paths.ansible_dir)} && ansible-playbook {q(cfg.ansible.playbook)}

            # Teardown (maps to: pvevm destroy)
            virsh -c {uri} destroy {vm}
            virsh -c {uri} undefine {vm} --remove-all-storage
            """
        ).strip()
        print(ub.highlight_code(lines, lexer_name='bash'))
        return 0


class HelpModalCLI(scfg.ModalCLI):
    """Help and discovery commands."""

    tree = HelpTreeCLI
    raw = HelpRawCLI


def _iter_modal_members(
    modal_cls: type[scfg.ModalCLI],
) -> list[tuple[str, type]]:
    members: list[tuple[str, type]] = []
    for name, val in modal_cls.__dict__.items():
        if name.startswith('_'):
            continue
        if not isinstance(val, type):
            continue
        if issubclass(val, scfg.ModalCLI) or issubclass(val, scfg.DataConfig):
            members.append((name, val))
    return members


def _short_help_line(cls: type) -> str:
    doc = (getattr(cls, '__doc__', '') or '').strip()
    if not doc:
        return ''
    return doc.splitlines()[0].strip()


def _render_command_tree(
    modal_cls: type[scfg.ModalCLI], prefix: str = 'pvevm'
) -> str:
    root_help = _short_help_line(modal_cls)
    root_line = f'{prefix} - {root_help}' if root_help else prefix
    lines: list[str] = [root_line]

    def walk(cls: type[scfg.ModalCLI], parent: str, indent: str) -> None:
        members = _iter_modal_members(cls)
        for idx, (name, subcls) in enumerate(members):
            last = idx == len(members) - 1
            branch = '└── ' if last else '├── '
            path = f'{parent} {name}'
            help_line = _short_help_line(subcls)
            if help_line:
                lines.append(f'{indent}{branch}{path} - {help_line}')
            else:
                lines.append(f'{indent}{branch}{path}')
            if issubclass(subcls, scfg.ModalCLI):
                walk(subcls, path, indent + ('    ' if last else '│   '))

    walk(modal_cls, prefix, '')
    return '\n'.join(lines)
