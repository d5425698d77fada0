"""Shared fixtures: a config rooted in tmp_path and an in-memory libvirt host."""

from __future__ import annotations

import hashlib
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from pvevm.config import ProxmoxVMConfig
from pvevm.util import CmdError, CmdResult

REPO_ROOT = Path(__file__).resolve().parent.parent

PATCHED_MODULES = (
    'pvevm.net',
    'pvevm.vault',
    'pvevm.preseed',
    'pvevm.playbook',
    'pvevm.vm.image',
    'pvevm.vm.lifecycle',
)


class FakeHost:
    """Stand-in for virsh, virt-install, curl, openssl, ansible and ssh."""

    def __init__(self) -> None:
        self.domains: dict[str, str] = {}
        self.dhcp_hosts: list[tuple[str, str, str]] = []
        self.calls: list[list[str]] = []
        self.secrets = (
            '---\n'
            'vault_root_password: "r00t-secret"\n'
            'vault_user_password: us3r-secret\n'
        )
        self.ssh_ok = True
        self.playbook_rc = 0
        self.virt_install_rc = 0
        self.net_update_rc = 0
        self.stuck_domains: set[str] = set()

    def commands(self, tool: str) -> list[list[str]]:
        return [c for c in self.calls if c and c[0] == tool]

    def virsh_calls(self, sub: str) -> list[list[str]]:
        return [c for c in self.commands('virsh') if c[3] == sub]

    def network_xml(self) -> str:
        hosts = ''.join(
            f"<host mac='{m}' name='{n}' ip='{i}'/>"
            for m, n, i in self.dhcp_hosts
        )
        return (
            '<network><name>default</name>'
            "<ip address='192.168.122.1' netmask='255.255.255.0'><dhcp>"
            "<range start='192.168.122.2' end='192.168.122.254'/>"
            f'{hosts}</dhcp></ip></network>'
        )

    def run_cmd(self, cmd, **kwargs) -> CmdResult:
        cmd = list(cmd)
        self.calls.append(cmd)
        res = self._dispatch(cmd, kwargs)
        if kwargs.get('check', True) and res.code != 0:
            raise CmdError(cmd, res)
        return res

    def _dispatch(self, cmd: list[str], kwargs: dict) -> CmdResult:
        tool = cmd[0]
        if tool == 'virsh':
            return self._virsh(cmd[3:])
        if tool == 'virt-install':
            if self.virt_install_rc != 0:
                return CmdResult(self.virt_install_rc, '', 'ERROR install failed')
            self.domains[cmd[cmd.index('--name') + 1]] = 'shut off'
            return CmdResult(0, '', '')
        if tool == 'curl':
            Path(cmd[cmd.index('-o') + 1]).write_bytes(b'ISO9660')
            return CmdResult(0, '', '')
        if tool == 'openssl':
            pw = kwargs['input_text'].strip()
            digest = hashlib.sha512(pw.encode()).hexdigest()[:86]
            return CmdResult(0, f'$6$fakesalt${digest}\n', '')
        if tool == 'ansible-vault':
            return CmdResult(0, self.secrets, '')
        if tool == 'ssh':
            return CmdResult(0 if self.ssh_ok else 255, '', '')
        if tool in {'ansible-playbook', 'ansible-lint'}:
            return CmdResult(self.playbook_rc, '', '')
        raise AssertionError(f'unexpected command: {cmd}')

    def _virsh(self, args: list[str]) -> CmdResult:
        sub = args[0]
        name = args[1] if len(args) > 1 else ''
        missing = CmdResult(1, '', f"error: failed to get domain '{name}'")
        if sub == 'dominfo':
            if name not in self.domains:
                return missing
            return CmdResult(0, f'Name:           {name}\n', '')
        if sub == 'domstate':
            if name not in self.domains:
                return missing
            return CmdResult(0, self.domains[name] + '\n\n', '')
        if sub == 'start':
            if name not in self.domains:
                return missing
            self.domains[name] = 'running'
            return CmdResult(0, f'Domain {name} started\n', '')
        if sub == 'destroy':
            if self.domains.get(name) != 'running':
                return CmdResult(1, '', 'error: domain is not running')
            self.domains[name] = 'shut off'
            return CmdResult(0, '', '')
        if sub == 'undefine':
            if name not in self.domains:
                return missing
            if name in self.stuck_domains:
                return CmdResult(1, '', 'error: cannot undefine')
            del self.domains[name]
            return CmdResult(0, '', '')
        if sub == 'net-dumpxml':
            return CmdResult(0, self.network_xml(), '')
        if sub == 'net-info':
            return CmdResult(0, f'Name:           {name}\nActive:         yes\n', '')
        if sub == 'net-update':
            if self.net_update_rc != 0:
                return CmdResult(self.net_update_rc, '', 'error: operation failed')
            host = ET.fromstring(args[4])
            mac = host.get('mac', '')
            if any(h[0] == mac for h in self.dhcp_hosts):
                return CmdResult(1, '', 'error: there is an existing dhcp host entry')
            self.dhcp_hosts.append((mac, host.get('name', ''), host.get('ip', '')))
            return CmdResult(0, '', '')
        raise AssertionError(f'unexpected virsh command: {args}')


@pytest.fixture
def cfg(tmp_path: Path) -> ProxmoxVMConfig:
    cfg = ProxmoxVMConfig()
    ansible_dir = tmp_path / 'ansible'
    (ansible_dir / 'files').mkdir(parents=True)
    (ansible_dir / 'playbook.yml').write_text('---\n', encoding='utf-8')
    template = ansible_dir / 'files' / 'preseed.cfg'
    template.write_text(
        (REPO_ROOT / 'ansible' / 'files' / 'preseed.cfg').read_text(
            encoding='utf-8'
        ),
        encoding='utf-8',
    )
    vault_pass = ansible_dir / '.vault_pass'
    vault_pass.write_text('vault-pass\n', encoding='utf-8')
    secrets = ansible_dir / 'secrets.yml'
    secrets.write_text('$ANSIBLE_VAULT;1.1;AES256\n', encoding='utf-8')
    ident = tmp_path / 'id_ed25519'
    ident.write_text('PRIVATE\n', encoding='utf-8')
    (tmp_path / 'id_ed25519.pub').write_text(
        'ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIFake me@host\n', encoding='utf-8'
    )
    cfg.paths.ansible_dir = str(ansible_dir)
    cfg.paths.cache_dir = str(tmp_path / '.cache')
    cfg.paths.secrets_file = str(secrets)
    cfg.paths.vault_password_file = str(vault_pass)
    cfg.paths.preseed_template = str(template)
    cfg.paths.ssh_identity_file = str(ident)
    cfg.paths.disk_dir = str(tmp_path / 'images')
    return cfg


@pytest.fixture
def fake_host(monkeypatch) -> FakeHost:
    host = FakeHost()
    for mod in PATCHED_MODULES:
        monkeypatch.setattr(f'{mod}.run_cmd', host.run_cmd)
    monkeypatch.setattr('pvevm.host.which', lambda c: f'/usr/bin/{c}')
    return host


@pytest.fixture
def no_sleep(monkeypatch) -> list[float]:
    sleeps: list[float] = []
    monkeypatch.setattr('pvevm.util.time.sleep', sleeps.append)
    return sleeps
