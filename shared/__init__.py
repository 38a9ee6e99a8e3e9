"""
Shared module for common utilities used by the host gateway.

STRUCTURE:
- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging

- shared.infrastructure: Database
  - db.py: SQLAlchemy sessions, safe_commit()

- shared.models: SQLAlchemy ORM models
  - base.py: Declarative base
  - host.py: HostInstance

IMPORT EXAMPLES:
    from shared.config.settings import settings
    from shared.config.logging import get_logger
    from shared.infrastructure.db import get_db_context, safe_commit
    from shared.models import HostInstance
"""
