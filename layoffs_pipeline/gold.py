import sqlite3
import pandas as pd
import os
import logging
from typing import Callable, Dict, Optional

from layoffs_pipeline.silver import SILVER_TABLE

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("GoldLayer")

GROUP_DIMENSIONS = ('company', 'industry', 'country')

DATE_RANGE_QUERY = f"""
SELECT
    MIN(event_date) AS earliest_date,
    MAX(event_date) AS latest_date
FROM {SILVER_TABLE}
WHERE event_date IS NOT NULL
"""

TOTALS_QUERY = f"""
SELECT
    SUM(total_laid_off) AS total_laid_off,
    SUM(funds_raised_millions) AS funds_raised_millions
FROM {SILVER_TABLE}
"""

# percentage_laid_off = 100 means the company shut down
FULL_SHUTDOWNS_QUERY = f"""
SELECT COUNT(*) AS full_shutdowns
FROM {SILVER_TABLE}
WHERE percentage_laid_off = 100
"""

LAYOFFS_BY_QUERY = """
SELECT
    {dimension},
    SUM(total_laid_off) AS total_laid_off
FROM {table}
GROUP BY {dimension}
ORDER BY total_laid_off DESC, {dimension}
"""

MONTHLY_LAYOFFS_QUERY = f"""
WITH monthly_layoffs AS (
    SELECT
        strftime('%Y-%m', event_date) AS year_month,
        SUM(total_laid_off) AS monthly_laid_off
    FROM {SILVER_TABLE}
    WHERE event_date IS NOT NULL
    GROUP BY strftime('%Y-%m', event_date)
)
SELECT
    year_month,
    monthly_laid_off,
    SUM(monthly_laid_off) OVER (ORDER BY year_month) AS cumulative_laid_off
FROM monthly_layoffs
ORDER BY year_month
"""

# RANK() gives tied values the same rank and skips the following ranks
INDUSTRY_YEAR_RANKINGS_QUERY = f"""
WITH ranked AS (
    SELECT
        company,
        CAST(strftime('%Y', event_date) AS INTEGER) AS year,
        industry,
        location,
        total_laid_off,
        SUM(total_laid_off) OVER (
            PARTITION BY strftime('%Y', event_date), industry
        ) AS industry_year_total,
        RANK() OVER (
            PARTITION BY industry, strftime('%Y', event_date)
            ORDER BY total_laid_off DESC
        ) AS industry_year_rank
    FROM {SILVER_TABLE}
    WHERE event_date IS NOT NULL
      AND industry IS NOT NULL
)
SELECT *
FROM ranked
WHERE :top_n IS NULL OR industry_year_rank <= :top_n
ORDER BY year, industry, industry_year_rank, company
"""

TOP_COMPANIES_BY_YEAR_QUERY = f"""
WITH company_years AS (
    SELECT
        company,
        CAST(strftime('%Y', event_date) AS INTEGER) AS year,
        SUM(total_laid_off) AS total_laid_off
    FROM {SILVER_TABLE}
    WHERE event_date IS NOT NULL
    GROUP BY company, strftime('%Y', event_date)
),
ranked AS (
    SELECT
        company,
        year,
        total_laid_off,
        RANK() OVER (PARTITION BY year ORDER BY total_laid_off DESC) AS year_rank
    FROM company_years
)
SELECT company, year, total_laid_off, year_rank
FROM ranked
WHERE year_rank <= :top_n
ORDER BY year, year_rank, company
"""


def date_range(conn: sqlite3.Connection) -> pd.DataFrame:
    return pd.read_sql(DATE_RANGE_QUERY, conn)


def totals(conn: sqlite3.Connection) -> pd.DataFrame:
    """Total layoffs and funds raised; NULLs are left out of the sums."""
    return pd.read_sql(TOTALS_QUERY, conn)


def full_shutdowns(conn: sqlite3.Connection) -> pd.DataFrame:
    return pd.read_sql(FULL_SHUTDOWNS_QUERY, conn)


def layoffs_by(conn: sqlite3.Connection, dimension: str) -> pd.DataFrame:
    """
    Sum total_laid_off per company, industry or country, largest first.

    Args:
        conn: Connection to the database holding the silver table
        dimension: One of 'company', 'industry', 'country'

    Returns:
        DataFrame with columns [dimension, 'total_laid_off']
    """
    if dimension not in GROUP_DIMENSIONS:
        raise ValueError(f"Cannot group layoffs by '{dimension}', expected one of {GROUP_DIMENSIONS}")
    query = LAYOFFS_BY_QUERY.format(dimension=dimension, table=SILVER_TABLE)
    return pd.read_sql(query, conn)


def monthly_layoffs(conn: sqlite3.Connection) -> pd.DataFrame:
    """Layoffs per year-month with a running total, oldest month first."""
    return pd.read_sql(MONTHLY_LAYOFFS_QUERY, conn)


def industry_year_rankings(conn: sqlite3.Connection, top_n: Optional[int] = None) -> pd.DataFrame:
    """
    Rank each layoff event within its (industry, year) by total_laid_off.

    Args:
        conn: Connection to the database holding the silver table
        top_n: Keep only events ranked <= top_n (all events when None)

    Returns:
        DataFrame with columns company, year, industry, location,
        total_laid_off, industry_year_total, industry_year_rank
    """
    return pd.read_sql(INDUSTRY_YEAR_RANKINGS_QUERY, conn, params={'top_n': top_n})


def top_companies_by_year(conn: sqlite3.Connection, top_n: int = 5) -> pd.DataFrame:
    """
    Rank companies by their summed layoffs within each year and keep the
    top_n ranks. Ties share a rank, so a year can return more than top_n rows.
    """
    return pd.read_sql(TOP_COMPANIES_BY_YEAR_QUERY, conn, params={'top_n': top_n})


ANALYSES: Dict[str, Callable[..., pd.DataFrame]] = {
    'date-range': lambda conn, top_n=None: date_range(conn),
    'totals': lambda conn, top_n=None: totals(conn),
    'full-shutdowns': lambda conn, top_n=None: full_shutdowns(conn),
    'by-company': lambda conn, top_n=None: layoffs_by(conn, 'company'),
    'by-industry': lambda conn, top_n=None: layoffs_by(conn, 'industry'),
    'by-country': lambda conn, top_n=None: layoffs_by(conn, 'country'),
    'monthly': lambda conn, top_n=None: monthly_layoffs(conn),
    'industry-year-rankings': lambda conn, top_n=None: industry_year_rankings(conn, top_n),
    'top-companies-by-year': lambda conn, top_n=5: top_companies_by_year(conn, top_n if top_n is not None else 5),
}

# Gold table name for each analysis
GOLD_TABLES = {
    'date-range': 'gold_date_range',
    'totals': 'gold_totals',
    'full-shutdowns': 'gold_full_shutdowns',
    'by-company': 'gold_layoffs_by_company',
    'by-industry': 'gold_layoffs_by_industry',
    'by-country': 'gold_layoffs_by_country',
    'monthly': 'gold_monthly_layoffs',
    'industry-year-rankings': 'gold_industry_year_rankings',
    'top-companies-by-year': 'gold_top_companies_by_year',
}


def aggregate_silver_to_gold(db_file: str, top_n: int = 5) -> bool:
    """
    Materialize every analysis over silver_layoffs as a gold_* table.

    The industry/year rankings are stored unfiltered; top_n applies to the
    per-year company ranking.
    """
    conn = None
    try:
        conn = sqlite3.connect(db_file)
        for name, table in GOLD_TABLES.items():
            top = None if name == 'industry-year-rankings' else top_n
            df = ANALYSES[name](conn, top)
            df.to_sql(table, conn, if_exists='replace', index=False)
            logger.info(f"Wrote {len(df)} rows to {table}.")
        conn.commit()
        logger.info(f"Successfully aggregated {len(GOLD_TABLES)} gold tables.")
        return True

    except Exception as e:
        logger.error(f"Error during gold layer aggregation: {e}")
        return False

    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    DB_FILE = os.path.join(BASE_DIR, "database", "layoffs.db")

    logger.info(f"Aggregating data into gold tables: {DB_FILE}")

    if aggregate_silver_to_gold(DB_FILE):
        logger.info("Gold layer aggregation completed successfully.")
    else:
        logger.error("Gold layer aggregation failed.")
