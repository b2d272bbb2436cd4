# src/utils/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    return v if v is not None and v != "" else default


def _env_int(key: str, default: int) -> int:
    v = _env(key)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError as e:
        raise ValueError(f"{key} must be an integer, got: {v!r}") from e


def _env_float(key: str, default: float) -> float:
    v = _env(key)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError as e:
        raise ValueError(f"{key} must be a number, got: {v!r}") from e


@dataclass(frozen=True)
class ProjectPaths:
    root: Path
    data_dir: Path
    renewals_dir: Path
    reports_dir: Path


def get_project_root() -> Path:
    """
    Resolve repo root robustly.
    Assumes this file lives at: <root>/src/utils/config.py
    """
    return Path(__file__).resolve().parents[2]


def get_paths() -> ProjectPaths:
    root = get_project_root()
    data_dir = root / "data"
    return ProjectPaths(
        root=root,
        data_dir=data_dir,
        renewals_dir=data_dir / "renewals",
        reports_dir=root / "reports",
    )


@dataclass(frozen=True)
class AwsConfig:
    region: str
    s3_bucket: Optional[str]
    s3_prefix: str

    @property
    def enabled(self) -> bool:
        return self.s3_bucket is not None

    def key_for(self, filename: str) -> str:
        return f"{self.s3_prefix.rstrip('/')}/{filename}"


def get_aws_config() -> AwsConfig:
    """
    Configure S3 usage via environment variables.
    Keep it optional so local runs are frictionless.

    Env:
      AWS_REGION (default: ap-south-1)
      S3_BUCKET  (optional)
      S3_PREFIX  (default: premium-renewal-engine)
    """
    return AwsConfig(
        region=_env("AWS_REGION", "ap-south-1") or "ap-south-1",
        s3_bucket=_env("S3_BUCKET", None),
        s3_prefix=_env("S3_PREFIX", "premium-renewal-engine")
        or "premium-renewal-engine",
    )


@dataclass(frozen=True)
class RenewalConfig:
    grace_days: int = 7
    timezone: str = "Asia/Kathmandu"
    # Days ahead of the renewal date for the one-off upcoming reminder (0 disables)
    reminder_days: int = 5
    # Days past due at which the single grace-period reminder goes out (0 disables)
    grace_reminder_day: int = 2
    ledger_path: Optional[Path] = None
    notify_max_workers: int = 4
    notify_timeout_seconds: float = 10.0
    notify_history: int = 1000


def get_renewal_config() -> RenewalConfig:
    """
    Env:
      RENEWAL_GRACE_DAYS          (default: 7)
      APP_TIMEZONE                (default: Asia/Kathmandu)
      RENEWAL_REMINDER_DAYS       (default: 5)
      RENEWAL_GRACE_REMINDER_DAY  (default: 2)
      RENEWAL_LEDGER_PATH         (default: data/renewals/purchased_policies.csv)
      NOTIFY_MAX_WORKERS          (default: 4)
      NOTIFY_TIMEOUT_SECONDS      (default: 10)
      NOTIFY_HISTORY_LIMIT        (default: 1000)
    """
    ledger = _env("RENEWAL_LEDGER_PATH")
    return RenewalConfig(
        grace_days=_env_int("RENEWAL_GRACE_DAYS", 7),
        timezone=_env("APP_TIMEZONE", "Asia/Kathmandu") or "Asia/Kathmandu",
        reminder_days=_env_int("RENEWAL_REMINDER_DAYS", 5),
        grace_reminder_day=_env_int("RENEWAL_GRACE_REMINDER_DAY", 2),
        ledger_path=Path(ledger) if ledger else get_paths().renewals_dir / "purchased_policies.csv",
        notify_max_workers=_env_int("NOTIFY_MAX_WORKERS", 4),
        notify_timeout_seconds=_env_float("NOTIFY_TIMEOUT_SECONDS", 10.0),
        notify_history=_env_int("NOTIFY_HISTORY_LIMIT", 1000),
    )


def get_log_level() -> str:
    return (_env("LOG_LEVEL", "INFO") or "INFO").upper()
