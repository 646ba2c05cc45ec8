"""
Citadel Dev - development environment manager for the Citadel stack.

This package sets up a directory of Citadel source checkouts with a Vagrant
VM descriptor and drives the VM and its containers from the host.
"""

from .main import main

__version__ = "1.0.0"
__all__ = ["main"]
