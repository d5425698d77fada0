"""VM operation exports for image caching and lifecycle helpers."""

from __future__ import annotations

from .image import fetch_image, image_cached
from .lifecycle import (
    VMState,
    create_or_start_vm,
    destroy_vm,
    ssh_probe,
    virt_install_cmd,
    vm_state,
    vm_status,
    wait_for_ssh,
)

__all__ = [
    'VMState',
    'create_or_start_vm',
    'destroy_vm',
    'fetch_image',
    'image_cached',
    'ssh_probe',
    'virt_install_cmd',
    'vm_state',
    'vm_status',
    'wait_for_ssh',
]
