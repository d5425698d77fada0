"""Config dataclasses and TOML load/save for the provisioning pipeline."""

from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path

from .util import expand

DEFAULT_DEBIAN_NETINST_URL = (
    'https://cdimage.debian.org/debian-cd/current/amd64/iso-cd/'
    'debian-12.9.0-amd64-netinst.iso'
)
DEFAULT_INSTALL_EXTRA_ARGS = (
    'auto=true priority=critical preseed/file=/preseed.cfg '
    'console=ttyS0,115200n8'
)

SECTIONS = (
    'vm',
    'network',
    'libvirt',
    'image',
    'install',
    'ssh',
    'ansible',
    'paths',
)


@dataclass
class VMConfig:
    name: str = 'proxmox'
    user: str = 'me'
    cpus: int = 4
    ram_mb: int = 8192
    disk_gb: int = 80
    mac: str = '52:54:00:ab:cd:10'
    ip: str = '192.168.122.10'
    os_variant: str = 'debian12'


@dataclass
class NetworkConfig:
    name: str = 'default'


@dataclass
class LibvirtConfig:
    uri: str = 'qemu:///system'
    use_sudo: bool = False


@dataclass
class ImageConfig:
    iso_url: str = DEFAULT_DEBIAN_NETINST_URL
    cache_name: str = 'debian-12-netinst.iso'
    redownload: bool = False


@dataclass
class InstallConfig:
    preseed_name: str = 'preseed.cfg'
    extra_args: str = DEFAULT_INSTALL_EXTRA_ARGS


@dataclass
class SSHConfig:
    attempts: int = 60
    interval_s: int = 5
    connect_timeout: int = 3


@dataclass
class AnsibleConfig:
    playbook: str = 'playbook.yml'
    root_password_key: str = 'vault_root_password'
    user_password_key: str = 'vault_user_password'
    web_port: int = 8006
    realm: str = 'pam'


@dataclass
class PathsConfig:
    ansible_dir: str = 'ansible'
    cache_dir: str = '.cache'
    secrets_file: str = 'ansible/secrets.yml'
    vault_password_file: str = 'ansible/.vault_pass'
    preseed_template: str = 'ansible/files/preseed.cfg'
    ssh_identity_file: str = '~/.ssh/id_ed25519'
    ssh_pubkey_path: str = ''
    disk_dir: str = '/var/lib/libvirt/images'


@dataclass
class ProxmoxVMConfig:
    vm: VMConfig = field(default_factory=VMConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    libvirt: LibvirtConfig = field(default_factory=LibvirtConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    ssh: SSHConfig = field(default_factory=SSHConfig)
    ansible: AnsibleConfig = field(default_factory=AnsibleConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    verbosity: int = 1

    def expanded_paths(self) -> 'ProxmoxVMConfig':
        p = self.paths
        p.ansible_dir = expand(p.ansible_dir)
        p.cache_dir = expand(p.cache_dir)
        p.secrets_file = expand(p.secrets_file)
        p.vault_password_file = expand(p.vault_password_file)
        p.preseed_template = expand(p.preseed_template)
        p.ssh_identity_file = (
            expand(p.ssh_identity_file) if p.ssh_identity_file else ''
        )
        p.ssh_pubkey_path = expand(p.ssh_pubkey_path) if p.ssh_pubkey_path else ''
        p.disk_dir = expand(p.disk_dir)
        return self

    @property
    def pubkey_path(self) -> Path:
        if self.paths.ssh_pubkey_path:
            return Path(expand(self.paths.ssh_pubkey_path))
        return Path(expand(self.paths.ssh_identity_file) + '.pub')


def artifact_paths(cfg: ProxmoxVMConfig) -> dict[str, Path]:
    cache_dir = Path(expand(cfg.paths.cache_dir))
    return {
        'cache_dir': cache_dir,
        'iso': cache_dir / cfg.image.cache_name,
        'preseed': cache_dir / cfg.install.preseed_name,
        'disk': Path(expand(cfg.paths.disk_dir)) / f'{cfg.vm.name}.qcow2',
    }


def _toml_escape(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def dump_toml(cfg: ProxmoxVMConfig) -> str:
    d = asdict(cfg)
    lines: list[str] = []
    # Top-level keys must precede the first table header.
    if d['verbosity'] != 1:
        lines.append(f'verbosity = {d["verbosity"]}')
        lines.append('')
    for section, body in d.items():
        if isinstance(body, dict):
            lines.append(f'[{section}]')
            for k, v in body.items():
                if isinstance(v, bool):
                    lines.append(f'{k} = {"true" if v else "false"}')
                elif isinstance(v, int):
                    lines.append(f'{k} = {v}')
                else:
                    lines.append(f'{k} = "{_toml_escape(str(v))}"')
            lines.append('')
    return '\n'.join(lines).rstrip() + '\n'


def loads(text: str) -> ProxmoxVMConfig:
    raw = tomllib.loads(text)
    cfg = ProxmoxVMConfig()
    for section in SECTIONS:
        if section in raw and isinstance(raw[section], dict):
            obj = getattr(cfg, section)
            for k, v in raw[section].items():
                if hasattr(obj, k):
                    setattr(obj, k, v)
    if 'verbosity' in raw:
        cfg.verbosity = raw['verbosity']
    return cfg


def load(path: Path) -> ProxmoxVMConfig:
    return loads(path.read_text(encoding='utf-8'))


def save(path: Path, cfg: ProxmoxVMConfig) -> None:
    path.write_text(dump_toml(cfg), encoding='utf-8')
