"""
Host Gateway Components.

- core/: constants
- connection/: connection registry, ping failure tracking
- data/: host status repository
"""
