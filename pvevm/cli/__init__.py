"""CLI package exports for top-level command entry points."""

from __future__ import annotations

from .main import ProxmoxVMModalCLI, main

__all__ = ['ProxmoxVMModalCLI', 'main']
