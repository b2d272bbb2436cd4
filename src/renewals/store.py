# src/renewals/store.py
"""
Purchased-policy ledger backed by a pandas DataFrame.

Each lifecycle phase is one set-based update: a boolean mask over the whole
frame selects the eligible rows, the change is applied to a copy, and the copy
is committed in one step (persisted first when the ledger has a file path).
If persisting fails, the in-memory frame is left untouched and
LedgerPersistenceError is raised, so a phase is all-or-nothing.

Selection always keys off the current renewal_status value, which is what
makes re-running a pass on the same day a no-op for state.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Union

import pandas as pd

from src.renewals.models import PurchasedPolicy, RenewalStatus
from src.utils.io import read_df, replace_df

logger = logging.getLogger(__name__)

LEDGER_COLUMNS = [
    "id",
    "user_id",
    "policy_id",
    "policy_name",
    "email",
    "renewal_status",
    "next_renewal_date",
    "billing_cycle",
    "cycle_amount",
    "renewal_reminder_sent_at",
    "renewal_grace_reminders_sent",
]


class LedgerPersistenceError(RuntimeError):
    """Writing the ledger failed; the attempted transition was not applied."""


def _clean(val: Any) -> Any:
    if val is None:
        return None
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        pass
    return val


def _optional_int(val: Any) -> Optional[int]:
    val = _clean(val)
    return int(val) if val is not None else None


def _naive(ts: Union[date, datetime, pd.Timestamp]) -> pd.Timestamp:
    ts = pd.Timestamp(ts)
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts


def _normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in LEDGER_COLUMNS if c not in df.columns]
    if "id" in missing or "user_id" in missing:
        raise ValueError(f"Ledger is missing required columns: {missing}")

    out = df.copy()
    for c in missing:
        out[c] = None

    out["id"] = out["id"].astype("int64")
    out["user_id"] = out["user_id"].astype("int64")
    out["renewal_status"] = out["renewal_status"].fillna(RenewalStatus.ACTIVE.value).astype(str).str.strip().str.lower()
    out["next_renewal_date"] = pd.to_datetime(out["next_renewal_date"], errors="coerce").dt.normalize()
    out["renewal_reminder_sent_at"] = pd.to_datetime(out["renewal_reminder_sent_at"], errors="coerce")
    out["renewal_grace_reminders_sent"] = (
        pd.to_numeric(out["renewal_grace_reminders_sent"], errors="coerce").fillna(0).astype("int64")
    )
    out["cycle_amount"] = pd.to_numeric(out["cycle_amount"], errors="coerce")

    unknown = set(out["renewal_status"]) - {s.value for s in RenewalStatus}
    if unknown:
        raise ValueError(f"Unknown renewal_status values in ledger: {sorted(unknown)}")

    if out["id"].duplicated().any():
        dupes = sorted(out.loc[out["id"].duplicated(), "id"].unique().tolist())
        raise ValueError(f"Duplicate purchased policy ids in ledger: {dupes}")

    return out[LEDGER_COLUMNS].reset_index(drop=True)


def _row_to_record(row: Mapping[str, Any]) -> PurchasedPolicy:
    next_date = _clean(row["next_renewal_date"])
    sent_at = _clean(row["renewal_reminder_sent_at"])
    amount = _clean(row["cycle_amount"])
    return PurchasedPolicy(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        policy_id=_optional_int(row["policy_id"]),
        renewal_status=RenewalStatus(row["renewal_status"]),
        next_renewal_date=next_date.date() if next_date is not None else None,
        policy_name=_clean(row["policy_name"]),
        email=_clean(row["email"]),
        billing_cycle=_clean(row["billing_cycle"]),
        cycle_amount=float(amount) if amount is not None else None,
        renewal_reminder_sent_at=sent_at.to_pydatetime() if sent_at is not None else None,
        renewal_grace_reminders_sent=int(row["renewal_grace_reminders_sent"]),
    )


def _record_to_row(record: Union[PurchasedPolicy, Mapping[str, Any]]) -> Dict[str, Any]:
    if isinstance(record, PurchasedPolicy):
        row = record.to_dict()
    else:
        row = dict(record)
    status = row.get("renewal_status")
    if isinstance(status, RenewalStatus):
        row["renewal_status"] = status.value
    return row


class RenewalLedger:
    """
    Store of purchased policies keyed by buy request id.

    path: optional CSV/Parquet file. When set, every committed transition is
    written there (atomically, via a temp file + rename) before it becomes
    visible in memory.
    """

    def __init__(self, frame: Optional[pd.DataFrame] = None, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._df = _normalize_frame(frame if frame is not None else pd.DataFrame(columns=LEDGER_COLUMNS))

    # ---------------------------
    # Construction / persistence
    # ---------------------------
    @classmethod
    def from_records(
        cls,
        records: Iterable[Union[PurchasedPolicy, Mapping[str, Any]]],
        path: Optional[Union[str, Path]] = None,
    ) -> "RenewalLedger":
        rows = [_record_to_row(r) for r in records]
        frame = pd.DataFrame(rows, columns=LEDGER_COLUMNS) if rows else None
        return cls(frame, path=path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RenewalLedger":
        """Load from file; a missing file gives an empty ledger bound to that path."""
        path = Path(path)
        if not path.exists():
            logger.info("Ledger %s does not exist yet; starting empty.", path)
            return cls(None, path=path)
        return cls(read_df(path), path=path)

    def reload(self) -> None:
        """Re-read the backing file (e.g. after it was refreshed from S3)."""
        if self.path is None or not self.path.exists():
            return
        frame = _normalize_frame(read_df(self.path))
        with self._lock:
            self._df = frame

    def save(self) -> None:
        with self._lock:
            self._commit(self._df)

    def _commit(self, frame: pd.DataFrame) -> None:
        if self.path is not None:
            try:
                replace_df(frame, self.path)
            except (OSError, ValueError, ImportError) as e:
                raise LedgerPersistenceError(f"Could not persist renewal ledger to {self.path}: {e}") from e
        self._df = frame

    # ---------------------------
    # Reads
    # ---------------------------
    def to_frame(self) -> pd.DataFrame:
        with self._lock:
            return self._df.copy()

    def records(self, status: Optional[Union[str, RenewalStatus]] = None) -> List[PurchasedPolicy]:
        """All records, latest renewal date first, optionally filtered by status."""
        with self._lock:
            frame = self._df
        if status is not None:
            value = status.value if isinstance(status, RenewalStatus) else str(status).lower()
            frame = frame[frame["renewal_status"] == value]
        frame = frame.sort_values("next_renewal_date", ascending=False, na_position="last")
        return self._to_records(frame)

    def get(self, record_id: int) -> Optional[PurchasedPolicy]:
        with self._lock:
            hit = self._df[self._df["id"] == int(record_id)]
        if hit.empty:
            return None
        return _row_to_record(hit.iloc[0])

    def __len__(self) -> int:
        return len(self._df)

    @staticmethod
    def _to_records(frame: pd.DataFrame) -> List[PurchasedPolicy]:
        return [_row_to_record(row) for _, row in frame.iterrows()]

    # ---------------------------
    # Set-based transitions
    # ---------------------------
    def _excluded(self, frame: pd.DataFrame, exclude_ids: Collection[int]) -> pd.Series:
        return frame["id"].isin([int(i) for i in exclude_ids])

    def mark_due(self, today: date) -> List[PurchasedPolicy]:
        """active -> due for every record whose renewal date is today or earlier."""
        with self._lock:
            frame = self._df
            mask = (frame["renewal_status"] == RenewalStatus.ACTIVE.value) & (
                frame["next_renewal_date"] <= _naive(today)
            )
            if not mask.any():
                return []

            updated = frame.copy()
            updated.loc[mask, "renewal_status"] = RenewalStatus.DUE.value
            updated.loc[mask, "renewal_grace_reminders_sent"] = 0
            self._commit(updated)
            return self._to_records(updated[mask])

    def mark_expired(self, cutoff: date, exclude_ids: Collection[int] = ()) -> List[PurchasedPolicy]:
        """due -> expired for every record whose renewal date is strictly before cutoff."""
        with self._lock:
            frame = self._df
            mask = (
                (frame["renewal_status"] == RenewalStatus.DUE.value)
                & (frame["next_renewal_date"] < _naive(cutoff))
                & ~self._excluded(frame, exclude_ids)
            )
            if not mask.any():
                return []

            updated = frame.copy()
            updated.loc[mask, "renewal_status"] = RenewalStatus.EXPIRED.value
            self._commit(updated)
            return self._to_records(updated[mask])

    def claim_upcoming_reminders(self, today: date, window_end: date, sent_at: datetime) -> List[PurchasedPolicy]:
        """
        Active records renewing after today and on or before window_end that
        were never reminded. They are stamped before being returned, so each
        record is reminded at most once.
        """
        with self._lock:
            frame = self._df
            dates = frame["next_renewal_date"]
            mask = (
                (frame["renewal_status"] == RenewalStatus.ACTIVE.value)
                & (dates > _naive(today))
                & (dates <= _naive(window_end))
                & frame["renewal_reminder_sent_at"].isna()
            )
            if not mask.any():
                return []

            updated = frame.copy()
            updated.loc[mask, "renewal_reminder_sent_at"] = _naive(sent_at)
            self._commit(updated)
            return self._to_records(updated[mask])

    def claim_grace_reminders(
        self,
        today: date,
        day: int,
        grace_days: int,
        exclude_ids: Collection[int] = (),
    ) -> List[PurchasedPolicy]:
        """
        Due records exactly `day` days past their renewal date that have not had
        a grace reminder yet. The reminder counter is bumped before returning.
        """
        if day <= 0 or day > grace_days:
            return []

        with self._lock:
            frame = self._df
            days_past = (_naive(today) - frame["next_renewal_date"]).dt.days
            mask = (
                (frame["renewal_status"] == RenewalStatus.DUE.value)
                & (days_past == day)
                & (frame["renewal_grace_reminders_sent"] < 1)
                & ~self._excluded(frame, exclude_ids)
            )
            if not mask.any():
                return []

            updated = frame.copy()
            updated.loc[mask, "renewal_grace_reminders_sent"] = updated.loc[mask, "renewal_grace_reminders_sent"] + 1
            self._commit(updated)
            return self._to_records(updated[mask])
