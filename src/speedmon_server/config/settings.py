"""Settings model: pydantic-settings with env var support."""

from __future__ import annotations

from pydantic_settings import BaseSettings

ENV_PREFIX = "SPEEDMON_"


class Settings(BaseSettings):
    """Server settings.

    Use ``ConfigLoader.load_settings()`` to build with YAML + env var layering.
    Direct construction (e.g. in tests) skips YAML loading.
    """

    database_url: str = "sqlite+aiosqlite:///speed_monitor.db"
    dashboard_url: str = "http://localhost:3000"
    log_level: str = "INFO"

    # Baseline maintenance
    baseline_interval: int = 10
    baseline_window: int = 100
    baseline_min_records: int = 5

    # Anomaly detection
    anomaly_min_samples: int = 10
    anomaly_z_threshold: float = 2.0

    # Diagnosis
    diagnosis_window_days: int = 7
    diagnosis_min_records: int = 3
    diagnosis_max_records: int = 50

    # Connection-event alert rules, events per trailing hour
    roam_alert_threshold: int = 5
    disconnect_alert_threshold: int = 3

    model_config = {"env_prefix": ENV_PREFIX}
