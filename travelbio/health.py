"""
Health report for the sidebar panel.

Three checks feed the report:
- store: the configured gateway answers ``fetch_all_countries``
- configuration: the selected backend has what it needs
- ratings: out-of-range or non-numeric values flagged since start-up

Only the store is critical. A broken store makes the whole report
unhealthy; any other problem only degrades it.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from travelbio import __version__
from travelbio.circuit_breaker import circuit_breakers, is_open
from travelbio.config import Settings
from travelbio.errors import DataStoreError
from travelbio.gateway import DataStoreGateway
from travelbio.logging_config import metrics


class HealthStatus(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus
    message: Optional[str] = None
    latency_ms: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def healthy(cls, name: str, **kwargs) -> "ComponentHealth":
        return cls(name, HealthStatus.HEALTHY, **kwargs)

    @classmethod
    def degraded(cls, name: str, message: str, **kwargs) -> "ComponentHealth":
        return cls(name, HealthStatus.DEGRADED, message=message, **kwargs)

    @classmethod
    def unhealthy(cls, name: str, message: str, **kwargs) -> "ComponentHealth":
        return cls(name, HealthStatus.UNHEALTHY, message=message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "latency_ms": None if self.latency_ms is None else round(self.latency_ms, 2),
            "details": self.details,
            "checked_at": self.checked_at.isoformat(),
        }


@dataclass
class SystemHealth:
    status: HealthStatus
    checks: Dict[str, ComponentHealth]
    uptime_seconds: float = 0.0
    version: str = __version__

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "uptime_seconds": round(self.uptime_seconds, 1),
            "checks": {name: check.to_dict() for name, check in self.checks.items()},
        }


_started = time.monotonic()


def check_store_health(gateway: DataStoreGateway) -> ComponentHealth:
    """
    Time one country listing against the store.

    A gateway guarded by an open circuit breaker is reported unhealthy
    without being called.

    Returns:
        ComponentHealth with ``country_count`` when the store answered
    """
    name = "store"
    details: Dict[str, Any] = {"backend": gateway.name}

    if getattr(gateway, "circuit_breaker", None) is not None and is_open(gateway.name):
        return ComponentHealth.unhealthy(
            name,
            "Circuit breaker is open; store calls are being rejected",
            details={**details, **circuit_breakers.get_status(gateway.name)},
        )

    started = time.perf_counter()
    try:
        countries = gateway.fetch_all_countries()
    except DataStoreError as e:
        return ComponentHealth.unhealthy(name, f"Store error: {e}", details=details)
    latency_ms = (time.perf_counter() - started) * 1000

    if not countries:
        return ComponentHealth.degraded(
            name, "No countries in the store", latency_ms=latency_ms, details=details
        )
    details["country_count"] = len(countries)
    return ComponentHealth.healthy(name, latency_ms=latency_ms, details=details)


def check_configuration_health(settings: Settings) -> ComponentHealth:
    name = "configuration"
    details = {"backend": settings.backend, "max_workers": settings.max_workers}

    if settings.backend == "supabase" and not settings.supabase_configured:
        return ComponentHealth.unhealthy(
            name, "SUPABASE_URL and SUPABASE_ANON_KEY must be set", details=details
        )
    if settings.backend == "memory":
        return ComponentHealth.degraded(name, "Serving in-memory demo data", details=details)
    return ComponentHealth.healthy(name, details=details)


def check_rating_health() -> ComponentHealth:
    """Ratings the aggregator or the grouped query flagged as out of range or non-numeric."""
    flagged = metrics.get_metrics()["malformed_ratings"]
    if flagged:
        return ComponentHealth.degraded(
            "ratings",
            f"{flagged} malformed rating value(s) seen while aggregating",
            details={"malformed_ratings": flagged},
        )
    return ComponentHealth.healthy("ratings", details={"malformed_ratings": 0})


def get_system_health(gateway: DataStoreGateway, settings: Settings) -> SystemHealth:
    checks = {
        "store": check_store_health(gateway),
        "configuration": check_configuration_health(settings),
        "ratings": check_rating_health(),
    }

    if checks["store"].status == HealthStatus.UNHEALTHY:
        status = HealthStatus.UNHEALTHY
    elif any(check.status.severity for check in checks.values()):
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    return SystemHealth(
        status=status,
        checks=checks,
        uptime_seconds=time.monotonic() - _started,
    )


def get_circuit_breaker_health() -> Dict[str, Any]:
    return circuit_breakers.get_all_status()


def is_ready(gateway: DataStoreGateway) -> bool:
    """The store can serve reads."""
    return check_store_health(gateway).status != HealthStatus.UNHEALTHY
