"""Client configuration for etatrack."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from etatrack.exceptions import EtaConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class MqttSettings:
    """Broker settings for the position publisher.

    Publishing is disabled when ``host`` is ``None``.
    """

    host: str | None = None
    port: int = 1883
    keepalive: int = 60
    topic_prefix: str = "trips"
    username: str | None = None
    password: str | None = None
    tls: bool = False
    publish_timeout: float = 5.0


@dataclasses.dataclass(frozen=True)
class EtaConfig:
    """Tracker configuration.

    Parameters
    ----------
    base_url : str
        Base URL of the travel-time service.
    batch_endpoint : str
        Path of the batched travel-time (matrix) endpoint.
    route_endpoint : str
        Path of the single-route endpoint used for fallback distances.
    telemetry_endpoint : str
        Path that receives fire-and-forget poll telemetry.
    api_key : str or None
        Optional key forwarded as ``?key=`` on every request.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    poll_interval_ms : int
        Base poll interval. Clamped to ``[1000, 30000]`` by the scheduler.
    assumed_speed_kmph : float
        Speed used to synthesize an ETA from a distance.
    smoothing_alpha : float
        Weight of the newest observation in exponential smoothing, ``(0, 1]``.
    watch_interval_ms : int
        Minimum spacing between two published position samples.
    apply_results_after_stop : bool
        Whether a poll cycle that completes after ``stop()`` still writes its
        results into the store.
    permissive_search : bool
        Enable the last-resort recursive search when normalizing responses.
    telemetry_enabled : bool
        Send poll outcomes to ``telemetry_endpoint``.
    travel_mode : str
        Travel mode forwarded with single-route requests.
    route_type : str
        Route type forwarded with single-route requests.
    mqtt : MqttSettings
        Position publisher broker settings.
    """

    base_url: str = "http://localhost:3000"
    batch_endpoint: str = "/api/matrix-eta"
    route_endpoint: str = "/api/route"
    telemetry_endpoint: str = "/api/eta-telemetry"
    api_key: str | None = None
    request_timeout: float = 10.0
    poll_interval_ms: int = 5000
    assumed_speed_kmph: float = 35.0
    smoothing_alpha: float = 0.25
    watch_interval_ms: int = 5000
    apply_results_after_stop: bool = False
    permissive_search: bool = True
    telemetry_enabled: bool = True
    travel_mode: str = "car"
    route_type: str = "fastest"
    mqtt: MqttSettings = dataclasses.field(default_factory=MqttSettings)

    def __post_init__(self) -> None:
        if not 0 < self.smoothing_alpha <= 1:
            raise EtaConfigError(f"smoothing_alpha must be in (0, 1], got {self.smoothing_alpha}")
        if self.assumed_speed_kmph <= 0:
            raise EtaConfigError(f"assumed_speed_kmph must be positive, got {self.assumed_speed_kmph}")
        if self.poll_interval_ms < 0 or self.watch_interval_ms < 0:
            raise EtaConfigError("intervals must be non-negative")
        if self.request_timeout <= 0:
            raise EtaConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def from_env(cls, **overrides: Any) -> EtaConfig:
        """Create configuration from environment variables.

        Reads optional ``ETA_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        EtaConfig
            Populated configuration.

        Raises
        ------
        EtaConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        mqtt_kwargs: dict[str, Any] = {}
        _ENV_MQTT_MAP = {
            "ETA_MQTT_HOST": "host",
            "ETA_MQTT_TOPIC_PREFIX": "topic_prefix",
            "ETA_MQTT_USERNAME": "username",
            "ETA_MQTT_PASSWORD": "password",
        }
        for env_key, field_name in _ENV_MQTT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = val
        for env_key, field_name in (("ETA_MQTT_PORT", "port"), ("ETA_MQTT_KEEPALIVE", "keepalive")):
            val = env.get(env_key)
            if val is not None:
                mqtt_kwargs[field_name] = _parse_number(env_key, val, int)
        if "ETA_MQTT_TLS" in env:
            mqtt_kwargs["tls"] = _env_bool(env.get("ETA_MQTT_TLS"), False)

        # Allow overriding broker fields via a nested dict
        mqtt_overrides = overrides.pop("mqtt", None)
        if isinstance(mqtt_overrides, dict):
            mqtt_kwargs.update(mqtt_overrides)
        elif isinstance(mqtt_overrides, MqttSettings):
            mqtt_kwargs = dataclasses.asdict(mqtt_overrides)

        config_kwargs: dict[str, Any] = {"mqtt": MqttSettings(**mqtt_kwargs)}

        _ENV_CONFIG_MAP = {
            "ETA_BASE_URL": "base_url",
            "ETA_BATCH_ENDPOINT": "batch_endpoint",
            "ETA_ROUTE_ENDPOINT": "route_endpoint",
            "ETA_TELEMETRY_ENDPOINT": "telemetry_endpoint",
            "ETA_API_KEY": "api_key",
            "ETA_TRAVEL_MODE": "travel_mode",
            "ETA_ROUTE_TYPE": "route_type",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "ETA_REQUEST_TIMEOUT": ("request_timeout", float),
            "ETA_POLL_INTERVAL_MS": ("poll_interval_ms", int),
            "ETA_ASSUMED_SPEED_KMPH": ("assumed_speed_kmph", float),
            "ETA_SMOOTHING_ALPHA": ("smoothing_alpha", float),
            "ETA_WATCH_INTERVAL_MS": ("watch_interval_ms", int),
        }
        for env_key, (field_name, kind) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _parse_number(env_key, val, kind)

        _ENV_BOOL_MAP = {
            "ETA_APPLY_RESULTS_AFTER_STOP": ("apply_results_after_stop", False),
            "ETA_PERMISSIVE_SEARCH": ("permissive_search", True),
            "ETA_TELEMETRY_ENABLED": ("telemetry_enabled", True),
        }
        for env_key, (field_name, default) in _ENV_BOOL_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _env_bool(env.get(env_key), default)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)


def _parse_number(env_key: str, value: str, kind: type) -> Any:
    try:
        return kind(value.strip())
    except ValueError as exc:
        raise EtaConfigError(f"{env_key} is not a valid {kind.__name__}: {value!r}") from exc
