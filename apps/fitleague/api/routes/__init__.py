"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter) lives here; every sub-router imports what it
needs from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from fitleague.api.routes.entries import router as entries_router  # noqa: E402
from fitleague.api.routes.rest_days import router as rest_days_router  # noqa: E402
from fitleague.api.routes.challenges import router as challenges_router  # noqa: E402
from fitleague.api.routes.leaderboard import router as leaderboard_router  # noqa: E402
from fitleague.api.routes.leagues import router as leagues_router  # noqa: E402
from fitleague.api.routes.admin import router as admin_router  # noqa: E402
from fitleague.api.routes.cron import router as cron_router  # noqa: E402

router = APIRouter()
router.include_router(entries_router)
router.include_router(rest_days_router)
router.include_router(challenges_router)
router.include_router(leaderboard_router)
router.include_router(leagues_router)
router.include_router(admin_router)
router.include_router(cron_router)
