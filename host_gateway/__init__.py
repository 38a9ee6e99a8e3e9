"""
Host Gateway.

Liveness and self-healing for the host/client connection registry.
"""

__version__ = "0.1.0"
