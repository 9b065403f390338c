"""API routes."""

from payrun_engine.api.routes.health import router as health_router
from payrun_engine.api.routes.pay_periods import router as pay_periods_router

__all__ = ["pay_periods_router", "health_router"]
