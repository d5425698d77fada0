"""Provision a libvirt VM and install Proxmox VE on it."""

__version__ = '0.1.0'
