"""
Shared module for cross-cutting concerns of the costing API and CLI.

STRUCTURE:
- shared.security: Authentication, authorization, password hashing
  - auth.py: JWT verification, current_user_context, require_roles
  - password.py: Bcrypt hashing
  - rate_limit.py: Login rate limiting (slowapi)

- shared.infrastructure: Database and request plumbing
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: X-Request-ID middleware and log filter

- shared.config: Configuration
  - settings.py: Environment config (pydantic-settings)
  - logging.py: Structured logging
  - constants.py: Roles, audit vocabulary, precisions, plan limits

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Authentication schemas

IMPORT EXAMPLES:
    from shared.security.auth import verify_jwt, current_user_context
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import Roles, Precision
    from shared.utils.exceptions import NotFoundError, ValidationError
"""
