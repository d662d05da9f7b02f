"""
Circuit breakers for data store calls.

Wraps pybreaker with a named registry so every gateway instance talking
to the same backend shares one breaker, and state changes are logged.
"""

from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, Optional

import pybreaker

from travelbio.logging_config import get_logger, metrics

# Logger
logger = get_logger("circuit_breaker")


# ============================================================================
# Configuration
# ============================================================================

@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""

    fail_max: int = 5               # Failures before opening circuit
    reset_timeout: float = 60.0     # Seconds before attempting recovery


# Per-backend overrides; only the REST gateway is guarded today
DEFAULT_CONFIGS = {
    "supabase": CircuitBreakerConfig(fail_max=5, reset_timeout=60.0),
    "default": CircuitBreakerConfig(),
}


class LoggingListener(pybreaker.CircuitBreakerListener):
    """Logs breaker state changes and failures."""

    def state_change(self, cb, old_state, new_state) -> None:
        old_name = getattr(old_state, "name", None)
        new_name = getattr(new_state, "name", None)
        logger.warning(
            f"Circuit breaker '{cb.name}' changed state: {old_name} -> {new_name}",
            extra={"breaker": cb.name, "old_state": old_name, "new_state": new_name}
        )

    def failure(self, cb, exc) -> None:
        metrics.record_error(f"breaker_failure.{cb.name}")
        logger.debug(
            f"Circuit breaker '{cb.name}' recorded failure",
            extra={"breaker": cb.name, "error_type": type(exc).__name__}
        )


# ============================================================================
# Circuit Breaker Registry
# ============================================================================

class CircuitBreakerRegistry:
    """
    Breakers keyed by backend name.

    Gateways look their breaker up here instead of creating one, so a
    Streamlit rerun that builds a fresh gateway keeps the failure count.
    """

    def __init__(self):
        self._breakers: Dict[str, pybreaker.CircuitBreaker] = {}
        self._lock = Lock()

    def get(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None
    ) -> pybreaker.CircuitBreaker:
        """
        Return the breaker for a backend, creating it on first use.

        Args:
            name: Backend name, e.g. "supabase"
            config: Optional configuration override, used on creation only

        Returns:
            pybreaker CircuitBreaker instance
        """
        with self._lock:
            if name not in self._breakers:
                cfg = config or DEFAULT_CONFIGS.get(name, DEFAULT_CONFIGS["default"])
                self._breakers[name] = pybreaker.CircuitBreaker(
                    fail_max=cfg.fail_max,
                    reset_timeout=cfg.reset_timeout,
                    listeners=[LoggingListener()],
                    name=name,
                )
            return self._breakers[name]

    def get_status(self, name: str) -> Dict[str, Any]:
        """Get current status of one breaker for monitoring."""
        breaker = self.get(name)
        return {
            "name": name,
            "state": breaker.current_state,
            "fail_counter": breaker.fail_counter,
            "fail_max": breaker.fail_max,
            "reset_timeout": breaker.reset_timeout,
        }

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        """Status of every breaker created so far, for the health panel."""
        return {name: self.get_status(name) for name in list(self._breakers)}

    def reset_all(self) -> None:
        """Close every circuit breaker."""
        with self._lock:
            for breaker in self._breakers.values():
                breaker.close()


# Global registry instance
circuit_breakers = CircuitBreakerRegistry()


def get_circuit_breaker(name: str) -> pybreaker.CircuitBreaker:
    """Get a circuit breaker by name from the global registry."""
    return circuit_breakers.get(name)


def is_open(name: str) -> bool:
    """Check if the named breaker is blocking calls."""
    return get_circuit_breaker(name).current_state == pybreaker.STATE_OPEN
