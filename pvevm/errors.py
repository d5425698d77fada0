"""Project-specific exception types."""

from __future__ import annotations


class PVEVMError(RuntimeError):
    """Base error for domain-level pvevm failures."""


class MissingDependencyError(PVEVMError):
    """Raised when a required host executable is not on PATH."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f'Missing: {name}')


class MissingCredentialFileError(PVEVMError):
    """Raised when the vault password file or SSH public key is absent."""

    def __init__(self, path: str, what: str = 'credential file'):
        self.path = path
        super().__init__(f'Missing {what}: {path}')


class DownloadFailedError(PVEVMError):
    """Raised when the installer image could not be downloaded."""


class SecretLookupError(PVEVMError):
    """Raised when a vault key is missing or empty."""


class PreseedError(PVEVMError):
    """Raised when the install configuration cannot be rendered cleanly."""


class VMCreationError(PVEVMError):
    """Raised when virt-install fails; creation is never retried."""


class VMDestroyError(PVEVMError):
    """Raised when a domain is still defined after every undefine attempt."""


class PollTimeoutError(PVEVMError, TimeoutError):
    """Raised when a bounded poll exhausts its attempts."""

    def __init__(self, message: str, attempts: int):
        self.attempts = attempts
        super().__init__(message)


class SSHTimeoutError(PollTimeoutError):
    """Raised when the VM never accepts an SSH connection."""


class ConvergenceError(PVEVMError):
    """Raised when ansible-playbook exits non-zero."""

    def __init__(self, returncode: int, playbook: str = 'playbook'):
        self.returncode = returncode
        super().__init__(f'{playbook} failed with exit code {returncode}')
