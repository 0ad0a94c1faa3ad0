from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd


def parquet_sibling(csv_path: str | Path) -> Path:
    return Path(csv_path).with_suffix(".parquet")


def table_exists(csv_path: str | Path) -> bool:
    """Return ``True`` when either the CSV or its Parquet sibling exists."""

    return Path(csv_path).exists() or parquet_sibling(csv_path).exists()


def prefer_parquet(
    csv_path: str | Path,
    *,
    dtype: Optional[Dict[str, Any]] = None,
    **csv_kwargs: Any,
) -> pd.DataFrame:
    """Read a seed table, using ``<name>.parquet`` instead of the CSV when present.

    ``dtype`` is applied to both readers so string identifiers survive either
    path; entries for columns the table lacks are ignored.  Remaining keyword
    arguments only reach :func:`pandas.read_csv`.
    """

    pq_path = parquet_sibling(csv_path)
    if pq_path.exists():
        frame = pd.read_parquet(pq_path)
        present = {col: kind for col, kind in (dtype or {}).items() if col in frame.columns}
        return frame.astype(present) if present else frame

    if dtype is not None:
        csv_kwargs.setdefault("dtype", dtype)
    return pd.read_csv(csv_path, **csv_kwargs)
