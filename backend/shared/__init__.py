"""
Shared module for common utilities of the menu sync service.

STRUCTURE:
- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy engine factory, safe_commit()
  - events/: Redis pub/sub, event publishing
  - correlation.py: Request correlation IDs

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Collections, statuses, engine states

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - retry.py: Backoff with jitter, retry_async()
  - health.py: Health check helpers

IMPORT EXAMPLES:
    from shared.infrastructure.db import build_engine, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Collections, MenuItemStatus
    from shared.utils.exceptions import ValidationError
    from shared.utils.retry import retry_async
"""
