"""Runtime settings for netcheck, read from the environment."""

import os
from dataclasses import dataclass

GATEWAYS = ("system", "fake")


@dataclass
class Settings:
    log_level: str = "INFO"
    gateway: str = "system"  # "system" | "fake"
    probe_timeout_ms: int = 1000
    refresh_interval_ms: int = 1000
    reports_file: str | None = None  # INI file; None uses the per-user QSettings location

    def __post_init__(self):
        if self.gateway not in GATEWAYS:
            raise ValueError(f"gateway must be one of {', '.join(GATEWAYS)}")
        if self.probe_timeout_ms <= 0:
            raise ValueError("probe_timeout_ms must be positive")
        if self.refresh_interval_ms < 0:
            raise ValueError("refresh_interval_ms must not be negative")

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """Build settings from NETCHECK_* variables, keeping defaults for unset ones.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def _int(name: str, default: int) -> int:
            raw = env.get(name, "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None

        return cls(
            log_level=env.get("NETCHECK_LOG_LEVEL", defaults.log_level).upper(),
            gateway=env.get("NETCHECK_GATEWAY", defaults.gateway).strip().lower() or defaults.gateway,
            probe_timeout_ms=_int("NETCHECK_PROBE_TIMEOUT_MS", defaults.probe_timeout_ms),
            refresh_interval_ms=_int("NETCHECK_REFRESH_MS", defaults.refresh_interval_ms),
            reports_file=env.get("NETCHECK_REPORTS_FILE") or None,
        )
