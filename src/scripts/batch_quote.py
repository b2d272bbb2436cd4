# src/scripts/batch_quote.py
"""
Quote a table of applicants against one policy base premium.

Inputs:
- a CSV/Parquet file, one applicant per row, columns named like the /quote
  applicant fields (age, dob, is_smoker, health_score, coverage_type,
  family_members, conditions, city, weight, height, occupation_class, ...)

Outputs:
- the input columns plus every pricing factor and calculated_total
- warnings joined into a single column

Usage:
  python -m src.scripts.batch_quote --in_path data/applicants.csv --base_premium 12000
  python -m src.scripts.batch_quote --in_path data/applicants.parquet --base_premium 12000 --out_path reports/quotes.csv
"""

from __future__ import annotations

import argparse
from datetime import date
from pathlib import Path
from typing import Optional

import pandas as pd

from src.services.quote_service import get_config, quote_from_request
from src.utils.io import read_df, write_df

FACTOR_COLUMNS = [
    "age",
    "age_factor",
    "smoker_factor",
    "health_factor",
    "coverage_factor",
    "disease_loading",
    "regional_loading",
    "loyalty_discount",
    "bmi",
    "bmi_factor",
    "occupation_factor",
    "calculated_total",
]


def quote_frame(df: pd.DataFrame, base_premium: float, today: Optional[date] = None) -> pd.DataFrame:
    cfg = get_config()
    rows = []
    for raw in df.to_dict(orient="records"):
        resp = quote_from_request(base_premium, raw, cfg=cfg, today=today)
        row = {k: resp.quote[k] for k in FACTOR_COLUMNS}
        row["warnings"] = "; ".join(resp.warnings)
        rows.append(row)

    quoted = pd.DataFrame(rows, columns=FACTOR_COLUMNS + ["warnings"], index=df.index)
    # input age is kept as-is; the priced (effective) age gets its own column
    quoted = quoted.rename(columns={"age": "effective_age"})
    return pd.concat([df, quoted], axis=1)


def parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Quote a table of applicants.")
    p.add_argument("--in_path", type=str, required=True, help="Applicants file (.csv or .parquet).")
    p.add_argument("--base_premium", type=float, required=True, help="Policy base premium.")
    p.add_argument(
        "--out_path",
        type=str,
        default=None,
        help="Output path. Default: <in_path stem>_quotes.csv next to the input.",
    )
    return p.parse_args()


def main() -> None:
    args = parse_args()
    in_path = Path(args.in_path)
    out_path = Path(args.out_path) if args.out_path else in_path.with_name(f"{in_path.stem}_quotes.csv")

    df = read_df(in_path)
    out = quote_frame(df, args.base_premium)
    write_df(out, out_path)

    print(f"[OK] Quotes saved: {out_path}")
    print(f"Rows: {len(out)} | Mean total={out['calculated_total'].mean():.2f}")


if __name__ == "__main__":
    main()
