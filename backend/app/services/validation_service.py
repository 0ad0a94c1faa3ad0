r"""backend\app\services\validation_service.py"""

from __future__ import annotations

import os

import pandas as pd

from .store import REQUIRED_PRODUCT_COLS, REQUIRED_SALES_COLS


class ValidationService:
    def __init__(self, data_root: str | None = None):
        self.data_root = data_root or os.getenv("DATA_DIR", "data")

    def run(self) -> dict:
        checks = []

        def add(name: str, ok: bool, msg: str = "") -> None:
            checks.append({"name": name, "ok": bool(ok), "message": msg})

        products = os.path.join(self.data_root, "products.csv")
        sales = os.path.join(self.data_root, "sales.csv")

        add("file_products_exists", os.path.exists(products), products)
        add("file_sales_exists", os.path.exists(sales), sales)

        if os.path.exists(products):
            df = pd.read_csv(products, nrows=3)
            missing = [c for c in REQUIRED_PRODUCT_COLS if c not in df.columns]
            add("products_columns_ok", not missing, f"missing: {missing}" if missing else "")

        if os.path.exists(sales):
            dfs = pd.read_csv(sales, nrows=3)
            missing = [c for c in REQUIRED_SALES_COLS if c not in dfs.columns]
            add("sales_columns_ok", not missing, f"missing: {missing}" if missing else "")
            if not missing and not dfs.empty:
                parsed = pd.to_datetime(dfs["sale_date"], errors="coerce", utc=True)
                add(
                    "sales_dates_parse",
                    bool(parsed.notna().all()),
                    "sale_date must be ISO-8601 timestamps",
                )

        overall = all(x["ok"] for x in checks)
        return {"ok": overall, "checks": checks}
