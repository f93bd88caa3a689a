from __future__ import annotations

import os
import sqlite3
import sys
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import pytest


def pytest_configure():
    # Ensure project root is on sys.path for absolute imports like 'layoffs_pipeline.silver'
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    # Console logging only while testing
    os.environ.setdefault("LOG_DIR", "")


RAW_DEFAULTS = {
    "company": "Acme",
    "location": "Seattle",
    "industry": "Retail",
    "total_laid_off": "100",
    "percentage_laid_off": "0.15",
    "event_date": "3/1/2023",
    "stage": "Series B",
    "country": "United States",
    "funds_raised_millions": "50",
}


@pytest.fixture
def make_raw():
    """Build an all-text working frame shaped like the bronze table."""
    from layoffs_pipeline.bronze import LAYOFF_COLUMNS

    def _make(rows: List[Dict[str, Optional[str]]]) -> pd.DataFrame:
        records = [{**RAW_DEFAULTS, **row} for row in rows]
        return pd.DataFrame(records, columns=LAYOFF_COLUMNS, dtype=object)

    return _make


@pytest.fixture
def make_silver_db():
    """Open an in-memory database holding a silver_layoffs table with the given records."""
    from layoffs_pipeline.bronze import LAYOFF_COLUMNS
    from layoffs_pipeline.silver import SILVER_TABLE, create_silver_table

    connections = []

    def _make(records: List[Dict[str, object]]) -> sqlite3.Connection:
        conn = sqlite3.connect(":memory:")
        create_silver_table(conn.cursor())
        conn.executemany(
            f"INSERT INTO {SILVER_TABLE} ({', '.join(LAYOFF_COLUMNS)}) "
            f"VALUES ({', '.join('?' for _ in LAYOFF_COLUMNS)})",
            [tuple(record.get(col) for col in LAYOFF_COLUMNS) for record in records],
        )
        conn.commit()
        connections.append(conn)
        return conn

    yield _make
    for conn in connections:
        conn.close()
