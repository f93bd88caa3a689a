import sqlite3
import os
import logging
from typing import Dict, Iterable, Optional

import numpy as np
import pandas as pd

from layoffs_pipeline.bronze import BRONZE_TABLE, LAYOFF_COLUMNS
from layoffs_pipeline.config import CleaningRules

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("SilverLayer")

SILVER_TABLE = "silver_layoffs"

TEXT_COLUMNS = ['company', 'location', 'industry', 'stage', 'country']
INTEGER_COLUMNS = ['total_laid_off', 'funds_raised_millions']

# Columns that only exist while the pipeline runs
ROW_NUMBER_COLUMN = 'row_num'
WORKING_COLUMNS = [ROW_NUMBER_COLUMN]

# Set on DataFrame.attrs once percentages are on the 0-100 scale
PERCENT_RESCALED = 'percentage_rescaled'

_NULL_KEY = '\x00NULL'


def create_silver_table(cursor):
    """
    Recreate the silver_layoffs table.
    """
    cursor.execute(f"DROP TABLE IF EXISTS {SILVER_TABLE}")
    cursor.execute(f"""
        CREATE TABLE {SILVER_TABLE} (
            company TEXT,
            location TEXT,
            industry TEXT,
            total_laid_off INTEGER,
            percentage_laid_off REAL,
            event_date DATE,
            stage TEXT,
            country TEXT,
            funds_raised_millions INTEGER
        )
    """)


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------

def number_duplicate_rows(df: pd.DataFrame) -> None:
    """
    Add a row_num ordinal within each group of rows equal on all nine
    attributes. Nulls compare equal to each other, as in SQL PARTITION BY.
    """
    keys = df[LAYOFF_COLUMNS].astype('string').fillna(_NULL_KEY)
    df[ROW_NUMBER_COLUMN] = keys.groupby(LAYOFF_COLUMNS, sort=False).cumcount() + 1


def remove_duplicates(df: pd.DataFrame) -> int:
    """
    Delete exact duplicate records in place, keeping the first of each group.

    Records for the same company with a different date, location or any
    other attribute are not duplicates.

    Returns:
        Number of rows removed
    """
    number_duplicate_rows(df)
    duplicates = df.index[df[ROW_NUMBER_COLUMN] > 1]
    df.drop(index=duplicates, inplace=True)
    logger.info(f"Removed {len(duplicates)} duplicate records, {len(df)} remaining.")
    return len(duplicates)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def _clean_text(value, null_markers: Iterable[str]):
    if not isinstance(value, str):
        return None if pd.isna(value) else value
    value = value.strip()
    return None if value in null_markers else value


def _is_missing(series: pd.Series, null_markers: Iterable[str]) -> pd.Series:
    markers = set(null_markers)
    return series.map(lambda v: pd.isna(v) or (isinstance(v, str) and v.strip() in markers)).astype(bool)


def _log_changes(rule: str, before: pd.Series, after: pd.Series) -> None:
    changed = int(((before != after) & before.notna()).sum())
    if changed:
        logger.info(f"{rule}: {changed} values changed.")


def trim_text_columns(df: pd.DataFrame, null_markers: Iterable[str] = ("", "NULL")) -> None:
    markers = tuple(null_markers)
    for column in TEXT_COLUMNS:
        df[column] = df[column].astype(object).map(lambda v: _clean_text(v, markers))


def fix_locations(df: pd.DataFrame, location_fixes: Dict[str, str]) -> None:
    before = df['location'].copy()
    df['location'] = df['location'].map(lambda v: location_fixes.get(v, v) if isinstance(v, str) else v)
    _log_changes("Location fixes", before, df['location'])


def canonicalize_industries(df: pd.DataFrame, industry_keywords: Dict[str, str]) -> None:
    """
    Collapse every industry containing a configured keyword (case-insensitive)
    onto its canonical label, e.g. 'Crypto Currency' -> 'Crypto'.
    """
    for keyword, label in industry_keywords.items():
        needle = keyword.lower()
        mask = df['industry'].map(lambda v: isinstance(v, str) and needle in v.lower() and v != label).astype(bool)
        if mask.any():
            logger.info(f"Industry keyword '{keyword}' -> '{label}': {int(mask.sum())} values changed.")
            df.loc[mask, 'industry'] = label


def canonicalize_countries(df: pd.DataFrame, country_fixes: Dict[str, str], trailing_chars: str = ".",
                           null_markers: Iterable[str] = ("", "NULL")) -> None:
    before = df['country'].copy()
    markers = tuple(null_markers)

    def canonical(value):
        if not isinstance(value, str):
            return value
        value = country_fixes.get(value, value)
        if trailing_chars:
            value = value.rstrip(trailing_chars).rstrip()
        return None if value in markers else value

    df['country'] = df['country'].map(canonical)
    _log_changes("Country fixes", before, df['country'])


def parse_event_dates(df: pd.DataFrame, date_format: str = "%m/%d/%Y",
                      null_markers: Iterable[str] = ("", "NULL")) -> None:
    """
    Convert event_date text into dates. Values that do not match the pattern
    become null; the rest of the record is kept.
    """
    column = df['event_date']
    if pd.api.types.is_datetime64_any_dtype(column):
        return

    missing = _is_missing(column, null_markers)
    text = column.astype(object).where(~missing, None).map(lambda v: v.strip() if isinstance(v, str) else v)
    parsed = pd.to_datetime(text, format=date_format, errors='coerce')
    failed = int((~missing & parsed.isna()).sum())
    if failed:
        logger.warning(f"{failed} event_date values did not match '{date_format}' and were set to NULL.")
    df['event_date'] = parsed


def _to_number(series: pd.Series, name: str, null_markers: Iterable[str]) -> pd.Series:
    if pd.api.types.is_numeric_dtype(series):
        missing = series.isna()
        numbers = series.astype('float64')
    else:
        missing = _is_missing(series, null_markers)
        text = series.astype(object).where(~missing, None).map(lambda v: v.strip() if isinstance(v, str) else v)
        numbers = pd.to_numeric(text, errors='coerce').astype('float64')
    # inf and magnitudes beyond int64 cannot be stored as counts
    numbers = numbers.mask(~np.isfinite(numbers) | (numbers.abs() >= 2.0 ** 63))
    failed = int((~missing & numbers.isna()).sum())
    if failed:
        logger.warning(f"{failed} {name} values are not numeric or out of range and were set to NULL.")
    return numbers


def coerce_numbers(df: pd.DataFrame, null_markers: Iterable[str] = ("", "NULL")) -> None:
    for column in INTEGER_COLUMNS:
        numbers = _to_number(df[column], column, null_markers)
        df[column] = numbers.astype('Float64').round().astype('Int64')


def rescale_percentages(df: pd.DataFrame, null_markers: Iterable[str] = ("", "NULL")) -> None:
    """
    Express percentage_laid_off on a 0-100 scale (0.15 -> 15.0).

    The frame is flagged afterwards so a second pass leaves it alone.
    """
    if df.attrs.get(PERCENT_RESCALED):
        return

    fractions = _to_number(df['percentage_laid_off'], 'percentage_laid_off', null_markers)
    percentages = (fractions.astype('float64') * 100).round(2)
    out_of_range = percentages.notna() & ((percentages < 0) | (percentages > 100))
    if out_of_range.any():
        logger.warning(f"{int(out_of_range.sum())} percentage_laid_off values fall outside 0-100 and were set to NULL.")
        percentages = percentages.mask(out_of_range)
    df['percentage_laid_off'] = percentages
    df.attrs[PERCENT_RESCALED] = True


def normalize_records(df: pd.DataFrame, rules: CleaningRules) -> None:
    """
    Standardize every field in place. No row is added or removed.
    """
    trim_text_columns(df, rules.null_markers)
    fix_locations(df, rules.location_fixes)
    canonicalize_industries(df, rules.industry_keywords)
    canonicalize_countries(df, rules.country_fixes, rules.country_trailing_chars, rules.null_markers)
    parse_event_dates(df, rules.date_format, rules.null_markers)
    coerce_numbers(df, rules.null_markers)
    rescale_percentages(df, rules.null_markers)


# ---------------------------------------------------------------------------
# Missing values
# ---------------------------------------------------------------------------

def impute_industries(df: pd.DataFrame, overrides: Optional[Dict[str, str]] = None) -> int:
    """
    Fill null or blank industries from other records of the same company.

    When sibling records disagree, the lexicographically greatest industry
    wins (SQL MAX semantics). Records still lacking an industry are then
    matched against the override table by company-name prefix.

    Returns:
        Number of records whose industry was filled
    """
    df['industry'] = df['industry'].astype(object)
    missing = df['industry'].map(lambda v: pd.isna(v) or (isinstance(v, str) and not v.strip())).astype(bool)
    if not missing.any():
        return 0

    known = df.loc[~missing, ['company', 'industry']]
    sibling_industry = known.groupby('company')['industry'].max()
    df.loc[missing, 'industry'] = df.loc[missing, 'company'].map(sibling_industry)

    for prefix, industry in (overrides or {}).items():
        mask = df['industry'].isna() & df['company'].map(lambda c: isinstance(c, str) and c.startswith(prefix)).astype(bool)
        if mask.any():
            logger.info(f"Industry override '{prefix}*' -> '{industry}': {int(mask.sum())} records.")
            df.loc[mask, 'industry'] = industry

    df['industry'] = df['industry'].where(df['industry'].notna(), None)
    filled = int((missing & df['industry'].notna()).sum())
    remaining = int(df['industry'].isna().sum())
    logger.info(f"Imputed industry for {filled} records, {remaining} still NULL.")
    return filled


def remove_uninformative_rows(df: pd.DataFrame) -> int:
    """
    Delete records with neither total_laid_off nor percentage_laid_off.

    Returns:
        Number of rows removed
    """
    mask = df['total_laid_off'].isna() & df['percentage_laid_off'].isna()
    uninformative = df.index[mask]
    df.drop(index=uninformative, inplace=True)
    logger.info(f"Removed {len(uninformative)} records without layoff figures, {len(df)} remaining.")
    return len(uninformative)


def resolve_missing_values(df: pd.DataFrame, rules: CleaningRules) -> None:
    # Only industry is inferred; numeric fields and stage stay NULL
    impute_industries(df, rules.industry_overrides)
    remove_uninformative_rows(df)


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def drop_working_columns(df: pd.DataFrame) -> None:
    df.drop(columns=[col for col in WORKING_COLUMNS if col in df.columns], inplace=True)


def clean_layoffs(df: pd.DataFrame, rules: Optional[CleaningRules] = None) -> pd.DataFrame:
    """
    Run deduplication, normalization, missing-value resolution and projection
    over one working DataFrame. The frame is modified in place and returned.

    Duplicates are matched on the raw values, before trimming and
    canonicalization, so ' Acme' and 'Acme' rows are both kept.
    """
    rules = rules or CleaningRules()
    remove_duplicates(df)
    normalize_records(df, rules)
    resolve_missing_values(df, rules)
    drop_working_columns(df)
    return df


def to_storage_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Shape a clean frame for the silver table: dates as ISO text.
    """
    storage = df[LAYOFF_COLUMNS].copy()
    dates = pd.to_datetime(storage['event_date'])
    storage['event_date'] = dates.dt.strftime('%Y-%m-%d').where(dates.notna(), None)
    return storage


def transform_bronze_to_silver(db_file: str, rules: Optional[CleaningRules] = None) -> bool:
    """
    Clean the bronze_layoffs records and rebuild the silver_layoffs table.
    """
    conn = None
    try:
        conn = sqlite3.connect(db_file)
        bronze_df = pd.read_sql(f"SELECT {', '.join(LAYOFF_COLUMNS)} FROM {BRONZE_TABLE}", conn)
        logger.info(f"Read {len(bronze_df)} records from bronze layer for silver transformation.")

        silver_df = clean_layoffs(bronze_df, rules)

        cursor = conn.cursor()
        create_silver_table(cursor)
        to_storage_frame(silver_df).to_sql(SILVER_TABLE, conn, if_exists='append', index=False)
        conn.commit()
        logger.info(f"Successfully transformed {len(silver_df)} records into silver layer.")
        return True

    except Exception as e:
        logger.error(f"Error during silver layer transformation: {e}")
        return False

    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    DB_FILE = os.path.join(BASE_DIR, "database", "layoffs.db")

    if transform_bronze_to_silver(DB_FILE):
        logger.info("Silver layer transformation completed successfully.")
    else:
        logger.error("Silver layer transformation failed.")
