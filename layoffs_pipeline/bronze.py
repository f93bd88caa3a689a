import sqlite3
import csv
import os
import logging

# Set up logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger("BronzeLayer")

BRONZE_TABLE = "bronze_layoffs"

LAYOFF_COLUMNS = [
    'company', 'location', 'industry', 'total_laid_off', 'percentage_laid_off',
    'event_date', 'stage', 'country', 'funds_raised_millions'
]

# Source header -> record attribute
SOURCE_ALIASES = {
    'date': 'event_date',
}


def canonical_header(name: str) -> str:
    name = name.strip()
    return SOURCE_ALIASES.get(name, name)


def create_bronze_table(cursor):
    """
    Recreate the bronze_layoffs table. Every column is TEXT so values are kept
    exactly as they appear in the source, and there is no key so duplicate
    rows survive ingestion.
    """
    cursor.execute(f"DROP TABLE IF EXISTS {BRONZE_TABLE}")
    cursor.execute(f"""
        CREATE TABLE {BRONZE_TABLE} (
            company TEXT,
            location TEXT,
            industry TEXT,
            total_laid_off TEXT,
            percentage_laid_off TEXT,
            event_date TEXT,
            stage TEXT,
            country TEXT,
            funds_raised_millions TEXT
        )
    """)


def validate_csv_structure(csv_file: str, required_columns: list) -> bool:
    """
    Validate the structure of the CSV file.

    Args:
        csv_file: Path to the CSV file
        required_columns: List of required column names (after alias mapping)

    Returns:
        True if the CSV structure is valid, False otherwise
    """
    try:
        with open(csv_file, newline='', encoding='utf-8-sig') as f:
            reader = csv.DictReader(f)
            csv_columns = reader.fieldnames
            if not csv_columns:
                logger.error("CSV file is empty or has no headers.")
                return False
            present = {canonical_header(col) for col in csv_columns}
            missing_columns = [col for col in required_columns if col not in present]
            if missing_columns:
                logger.error(f"CSV file is missing required columns: {missing_columns}")
                return False
        return True
    except Exception as e:
        logger.error(f"Error validating CSV structure: {e}")
        return False


def ingest_data(csv_file: str, db_file: str) -> bool:
    """
    Copy every row of the layoffs CSV verbatim into the bronze_layoffs table.

    The table is rebuilt on each call, so ingesting the same file twice
    yields the same bronze layer.

    Args:
        csv_file: Path to the CSV file
        db_file: Path to the SQLite database file

    Returns:
        True if ingestion is successful, False otherwise
    """
    if not validate_csv_structure(csv_file, LAYOFF_COLUMNS):
        logger.error("CSV structure validation failed. Aborting ingestion.")
        return False

    conn = None
    try:
        # Ensure the directory for the database exists
        db_dir = os.path.dirname(db_file)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        conn = sqlite3.connect(db_file)
        cursor = conn.cursor()
        create_bronze_table(cursor)

        with open(csv_file, newline='', encoding='utf-8-sig') as f:
            reader = csv.reader(f)
            header = [canonical_header(col) for col in next(reader)]
            positions = [header.index(col) for col in LAYOFF_COLUMNS]
            rows = []
            for line_number, values in enumerate(reader, start=2):
                if not values:
                    continue
                if len(values) != len(header):
                    logger.warning(f"Line {line_number} has {len(values)} fields, expected {len(header)}. Missing fields are stored as NULL.")
                rows.append(tuple(values[i] if i < len(values) else None for i in positions))

        cursor.executemany(f"""
            INSERT INTO {BRONZE_TABLE}
            ({', '.join(LAYOFF_COLUMNS)})
            VALUES ({', '.join('?' for _ in LAYOFF_COLUMNS)})
        """, rows)

        conn.commit()
        logger.info(f"Successfully ingested {len(rows)} records into bronze layer.")
        return True

    except Exception as e:
        logger.error(f"Error during data ingestion: {e}")
        return False

    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
    CSV_FILE = os.path.join(BASE_DIR, "data", "sample", "layoffs.csv")
    DB_FILE = os.path.join(BASE_DIR, "database", "layoffs.db")

    logger.info(f"Ingesting data from: {CSV_FILE}")
    logger.info(f"Saving database to: {DB_FILE}")

    if not os.path.exists(CSV_FILE):
        logger.error(f"CSV file not found: {CSV_FILE}")
    else:
        if ingest_data(CSV_FILE, DB_FILE):
            logger.info("Bronze layer ingestion completed successfully.")
        else:
            logger.error("Bronze layer ingestion failed.")
