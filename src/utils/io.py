from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import pandas as pd
from filelock import FileLock

PathLike = Union[str, Path]

_FORMATS = (".csv", ".parquet")


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _format(path: Path) -> str:
    suf = path.suffix.lower()
    if suf not in _FORMATS:
        raise ValueError(f"Unsupported dataframe format: {suf or '<none>'} ({path})")
    return suf


def read_df(path: PathLike) -> pd.DataFrame:
    path = Path(path)
    suf = _format(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return pd.read_csv(path) if suf == ".csv" else pd.read_parquet(path)


def write_df(df: pd.DataFrame, path: PathLike) -> None:
    path = Path(path)
    suf = _format(path)
    ensure_dir(path.parent)
    if suf == ".csv":
        df.to_csv(path, index=False)
    else:
        df.to_parquet(path, index=False)


def replace_df(df: pd.DataFrame, path: PathLike) -> None:
    """
    Write next to the target, then rename over it. Readers see either the old
    file or the new one, never a half-written frame.
    """
    path = Path(path)
    tmp = path.with_name(f"{path.stem}.tmp{path.suffix}")
    try:
        write_df(df, tmp)
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()


def file_lock(path: PathLike) -> FileLock:
    """Inter-process lock living beside `path` (`<path>.lock`)."""
    path = Path(path)
    ensure_dir(path.parent)
    return FileLock(f"{path}.lock")


def write_json(payload: Mapping[str, Any], path: Path) -> None:
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, default=str)


# ---------------------------
# Optional S3 mirror of the ledger file
# ---------------------------
def _s3(region: Optional[str] = None):
    import boto3

    return boto3.client("s3", region_name=region)


def s3_pull(bucket: str, key: str, local_path: PathLike, region: Optional[str] = None) -> bool:
    """Download s3://bucket/key over local_path. False when the object does not exist yet."""
    from botocore.exceptions import ClientError

    local_path = Path(local_path)
    s3 = _s3(region)
    try:
        s3.head_object(Bucket=bucket, Key=key)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
            return False
        raise

    ensure_dir(local_path.parent)
    s3.download_file(bucket, key, str(local_path))
    return True


def s3_push(local_path: PathLike, bucket: str, key: str, region: Optional[str] = None) -> None:
    local_path = Path(local_path)
    if not local_path.exists():
        raise FileNotFoundError(f"Local file not found: {local_path}")
    _s3(region).upload_file(str(local_path), bucket, key)
