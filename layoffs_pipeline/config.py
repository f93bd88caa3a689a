"""
Runtime settings and hand-curated cleaning rules.

Settings come from environment variables (a local .env file is loaded first).
Cleaning rules are plain lookup tables so they can be audited and extended
through a JSON file without touching the transformation code.
"""
import json
import os
from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()  # load environment variables from .env file

# Define constants
DEFAULT_DB_PATH = "database/layoffs.db"
DEFAULT_CSV_FILE = "data/sample/layoffs.csv"
DEFAULT_EXPORT_DIR = "data/exports"
DEFAULT_LOG_DIR = "logs"
DEFAULT_TOP_N = 5

# Known mis-encodings (UTF-8 bytes read as Latin-1) and unaccented spellings
LOCATION_FIXES = {
    "DÃ¼sseldorf": "Düsseldorf",
    "Dusseldorf": "Düsseldorf",
    "FlorianÃ³polis": "Florianópolis",
    "MalmÃ¶": "Malmö",
    "Malmo": "Malmö",
}

# keyword (case-insensitive substring) -> canonical industry label
INDUSTRY_KEYWORDS = {
    "crypto": "Crypto",
}

COUNTRY_FIXES = {
    "United States.": "United States",
}

# company-name prefix -> industry, used only when no sibling record has one
INDUSTRY_OVERRIDES = {
    "Bally": "Gaming",
}


@dataclass(frozen=True)
class CleaningRules:
    null_markers: Tuple[str, ...] = ("", "NULL")
    date_format: str = "%m/%d/%Y"
    location_fixes: Dict[str, str] = field(default_factory=lambda: dict(LOCATION_FIXES))
    industry_keywords: Dict[str, str] = field(default_factory=lambda: dict(INDUSTRY_KEYWORDS))
    country_fixes: Dict[str, str] = field(default_factory=lambda: dict(COUNTRY_FIXES))
    country_trailing_chars: str = "."
    industry_overrides: Dict[str, str] = field(default_factory=lambda: dict(INDUSTRY_OVERRIDES))


def load_rules(path: Optional[str] = None) -> CleaningRules:
    """
    Build the cleaning rules, optionally overlaying a JSON file on the defaults.

    Each top-level key of the file replaces the default value of the matching
    CleaningRules field.

    Args:
        path: Path to a JSON rules file (optional)

    Returns:
        CleaningRules instance

    Raises:
        OSError: If the file cannot be read
        ValueError: If the file is not a JSON object or names an unknown rule
    """
    rules = CleaningRules()
    if not path:
        return rules

    with open(path, encoding="utf-8") as f:
        overrides = json.load(f)

    if not isinstance(overrides, dict):
        raise ValueError(f"Rules file {path} must contain a JSON object")

    known = {f.name for f in fields(CleaningRules)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(f"Unknown cleaning rules in {path}: {unknown}")

    if "null_markers" in overrides:
        overrides["null_markers"] = tuple(overrides["null_markers"])
    return replace(rules, **overrides)


@dataclass(frozen=True)
class Settings:
    db_path: str
    csv_file: str
    export_dir: str
    rules_file: Optional[str]
    top_n: int
    log_level: str
    log_dir: str


def get_settings() -> Settings:
    return Settings(
        db_path=os.environ.get("LAYOFFS_DB_PATH", DEFAULT_DB_PATH),
        csv_file=os.environ.get("LAYOFFS_CSV_FILE", DEFAULT_CSV_FILE),
        export_dir=os.environ.get("LAYOFFS_EXPORT_DIR", DEFAULT_EXPORT_DIR),
        rules_file=os.environ.get("LAYOFFS_RULES_FILE") or None,
        top_n=int(os.environ.get("LAYOFFS_TOP_N", str(DEFAULT_TOP_N))),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        log_dir=os.environ.get("LOG_DIR", DEFAULT_LOG_DIR),
    )
