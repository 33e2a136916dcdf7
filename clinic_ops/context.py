"""
Request-scoped context passed explicitly into every rota/workflow operation.

Carries the current organisation, the acting user and the clock. Services
never read organisation or user from Flask globals; blueprints build a
context per request and tests build one directly.

Usage:
    ctx = RotaContext(organisation_id=1, actor_id=7)
    rota_service.fetch_or_create_week(ctx, site_id=3, week_start=date(2024, 6, 3))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RotaContext:
    organisation_id: int
    actor_id: int | None = None
    clock: Clock = field(default=_utcnow, compare=False)

    def now(self) -> datetime:
        return self.clock()

    def today(self) -> date:
        return self.clock().date()
