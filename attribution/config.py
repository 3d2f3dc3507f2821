"""
Application configuration management.
"""
import logging
import os
from pathlib import Path
from dataclasses import dataclass, field


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path("./data")


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DISTRIBUTION_TYPES = ("linear", "front_loaded", "back_loaded")


class SettingsValidationError(Exception):
    """Raised when performance reporting settings are out of range."""
    pass


@dataclass
class AppConfig:
    """Application configuration with environment overrides."""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)

    # Environment
    app_env: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Cache settings (UI layer only)
    cache_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("CACHE_TTL_SECONDS", "3600")))

    # Reserved synthetic clients
    time_off_client_name: str = field(default_factory=lambda: os.getenv("TIME_OFF_CLIENT_NAME", "X - Time Off"))
    internal_client_name: str = field(default_factory=lambda: os.getenv("INTERNAL_CLIENT_NAME", "X - Internal"))

    # Capacity model
    default_capacity_hours_per_week: float = field(
        default_factory=lambda: float(os.getenv("DEFAULT_CAPACITY_HOURS_PER_WEEK", "40"))
    )

    # Fan-out and timeouts
    weekly_issues_max_lookback: int = field(default_factory=lambda: int(os.getenv("WEEKLY_ISSUES_MAX_LOOKBACK", "4")))
    report_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("REPORT_TIMEOUT_SECONDS", "60")))
    capacity_timeout_seconds: float = field(default_factory=lambda: float(os.getenv("CAPACITY_TIMEOUT_SECONDS", "10")))

    @property
    def processed_dir(self) -> Path:
        return self.data_dir / "processed"

    @property
    def exports_dir(self) -> Path:
        return self.data_dir / "exports"

    @property
    def is_prod(self) -> bool:
        return self.app_env.lower() == "prod"


@dataclass
class PerformanceSettings:
    """Thresholds and policies used by the attribution engine."""

    hours_variance_warn_pct: float = field(
        default_factory=lambda: float(os.getenv("HOURS_VARIANCE_WARN_PCT", "0.05"))
    )
    hours_variance_critical_pct: float = field(
        default_factory=lambda: float(os.getenv("HOURS_VARIANCE_CRITICAL_PCT", "0.15"))
    )
    attention_risk_days: int = field(default_factory=lambda: int(os.getenv("ATTENTION_RISK_DAYS", "7")))
    gm_variance_threshold_pct: float = field(
        default_factory=lambda: float(os.getenv("GM_VARIANCE_THRESHOLD_PCT", "0.05"))
    )
    gm_materiality_floor: float = field(default_factory=lambda: float(os.getenv("GM_MATERIALITY_FLOOR", "1000")))
    default_distribution_type: str = field(
        default_factory=lambda: os.getenv("DEFAULT_DISTRIBUTION_TYPE", "linear")
    )
    # Multi-role splitting when every competing target is zero
    split_zero_targets_equally: bool = field(
        default_factory=lambda: _env_flag("SPLIT_ZERO_TARGETS_EQUALLY", "true")
    )

    def validate(self) -> "PerformanceSettings":
        """Check ranges; returns self so calls can be chained."""
        warn = self.hours_variance_warn_pct
        crit = self.hours_variance_critical_pct
        if not 0 <= warn <= 1:
            raise SettingsValidationError("hours_variance_warn_pct must be a number between 0 and 1")
        if not 0 <= crit <= 1:
            raise SettingsValidationError("hours_variance_critical_pct must be a number between 0 and 1")
        if crit <= warn:
            raise SettingsValidationError("hours_variance_critical_pct must be greater than hours_variance_warn_pct")
        if not 0 <= self.attention_risk_days <= 365:
            raise SettingsValidationError("attention_risk_days must be a number between 0 and 365")
        if self.gm_variance_threshold_pct < 0:
            raise SettingsValidationError("gm_variance_threshold_pct must not be negative")
        dist = self.default_distribution_type.strip().lower()
        if dist not in DISTRIBUTION_TYPES:
            raise SettingsValidationError(
                f"default_distribution_type must be one of: {', '.join(DISTRIBUTION_TYPES)}"
            )
        return self

    def as_dict(self) -> dict:
        return {
            "hours_variance_warn_pct": self.hours_variance_warn_pct,
            "hours_variance_critical_pct": self.hours_variance_critical_pct,
            "attention_risk_days": self.attention_risk_days,
            "gm_variance_threshold_pct": self.gm_variance_threshold_pct,
            "gm_materiality_floor": self.gm_materiality_floor,
            "default_distribution_type": self.default_distribution_type,
            "split_zero_targets_equally": self.split_zero_targets_equally,
        }


def configure_logging(level: str = None) -> None:
    """Configure root logging once for scripts and the Streamlit shell."""
    logging.basicConfig(
        level=(level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Global config instance
config = AppConfig()


# Table file names
TABLE_FILES = {
    "clients": "clients",
    "consultants": "consultants",
    "contracts": "contracts",
    "benchmarks": "benchmarks",
    "benchmark_history": "benchmark_history",
    "holidays": "holidays",
    "timecard_lines": "timecard_lines",
    "issue_notes": "issue_notes",
}

# Required columns (hard fail if missing)
REQUIRED_COLUMNS = {
    "clients": ["client_id", "client_name", "active_status"],
    "consultants": ["consultant_id", "pay_type", "pay_rate", "hourly_rate"],
    "contracts": ["contract_id", "client_id", "contract_type", "contract_start_date"],
    "benchmarks": ["client_id", "consultant_id", "role", "effective_date", "target_hours"],
    "benchmark_history": ["client_id", "consultant_id", "role", "effective_date", "target_hours"],
    "holidays": ["holiday_date"],
    "timecard_lines": ["timesheet_date", "client_id", "consultant_id", "status"],
    "issue_notes": ["issue_key", "issue_type"],
}

# Optional columns (soft warn if missing)
OPTIONAL_COLUMNS = {
    "consultants": [
        "first_name",
        "last_name",
        "job_title",
        "capacity_hours_per_week",
        "timecard_cycle",
        "status",
    ],
    "contracts": [
        "contract_name",
        "contract_end_date",
        "contract_length",
        "contract_end_reason",
        "monthly_fee",
        "total_project_fee",
        "onboarding_fee",
        "assigned_cfo",
        "assigned_cfo_rate",
        "assigned_controller",
        "assigned_controller_rate",
        "assigned_senior_accountant",
        "assigned_senior_accountant_rate",
        "assigned_software",
        "assigned_software_rate",
        "assigned_software_quantity",
        "assigned_software_cost",
        "assigned_software_provided_free",
        "additional_staff",
    ],
    "benchmarks": [
        "benchmark_id",
        "low_range_hours",
        "high_range_hours",
        "bill_rate",
        "weekly_hours",
        "distribution_type",
    ],
    "timecard_lines": [
        "project_id",
        "client_facing_hours",
        "non_client_facing_hours",
        "other_task_hours",
    ],
    "holidays": ["holiday_name"],
}

# Formatting constants
FORMAT_CURRENCY = "${:,.0f}"
FORMAT_CURRENCY_DECIMAL = "${:,.2f}"
FORMAT_HOURS = "{:,.1f}"
FORMAT_PERCENT = "{:.1f}%"
