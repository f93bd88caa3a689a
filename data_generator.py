#!/usr/bin/env python3
"""
Layoffs Data Generator

Generates a synthetic raw layoffs CSV in the shape of the public layoffs
dataset, including the quirks the silver layer cleans up: exact duplicate
rows, padded text, mis-encoded city names, industry label variants, a stray
trailing period on country names, fractional percentages, NULL markers and
unparseable dates.
"""

import os
import argparse
from datetime import date, timedelta
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from utils.logger import setup_logger

logger = setup_logger("Data_Generator", log_file="data_generator.log", log_dir=None)

# Define constants
DEFAULT_OUTPUT_DIR = "data/sample"
DEFAULT_NUM_RECORDS = 2000
DEFAULT_SEED = 42
SOURCE_DATE_FORMAT = "%m/%d/%Y"
NULL_MARKER = "NULL"

CSV_HEADERS = [
    'company', 'location', 'industry', 'total_laid_off', 'percentage_laid_off',
    'date', 'stage', 'country', 'funds_raised_millions'
]

# location -> country
LOCATIONS = {
    'SF Bay Area': 'United States',
    'New York City': 'United States',
    'Seattle': 'United States',
    'Bengaluru': 'India',
    'London': 'United Kingdom',
    'Berlin': 'Germany',
    'Düsseldorf': 'Germany',
    'Florianópolis': 'Brazil',
    'Malmö': 'Sweden',
    'Singapore': 'Singapore',
}

# How the same place shows up after bad encoding or without accents
LOCATION_VARIANTS = {
    'Düsseldorf': ['DÃ¼sseldorf', 'Dusseldorf'],
    'Florianópolis': ['FlorianÃ³polis'],
    'Malmö': ['MalmÃ¶', 'Malmo'],
}

INDUSTRIES = ['Retail', 'Consumer', 'Transportation', 'Finance', 'Healthcare',
              'Food', 'Real Estate', 'Travel', 'Crypto', 'Education']

INDUSTRY_VARIANTS = {
    'Crypto': ['Crypto Currency', 'CryptoCurrency'],
}

STAGES = ['Seed', 'Series A', 'Series B', 'Series C', 'Series D', 'Post-IPO', 'Acquired', 'Unknown']

START_DATE = date(2020, 3, 11)
END_DATE = date(2023, 3, 6)


def generate_companies(rng: np.random.Generator, num_companies: int) -> List[Dict[str, str]]:
    """Generate companies with a fixed location and industry each."""
    companies = []
    locations = list(LOCATIONS)
    for i in range(1, num_companies + 1):
        location = locations[rng.integers(len(locations))]
        companies.append({
            'company': f"Company {i:04d}",
            'location': location,
            'country': LOCATIONS[location],
            'industry': INDUSTRIES[rng.integers(len(INDUSTRIES))],
            'stage': STAGES[rng.integers(len(STAGES))],
        })
    # A company whose only event has no industry
    companies.append({
        'company': "Bally's Interactive",
        'location': 'Providence',
        'country': 'United States',
        'industry': NULL_MARKER,
        'stage': 'Post-IPO',
    })
    return companies


def _maybe_variant(rng: np.random.Generator, value: str, variants: Dict[str, List[str]], rate: float) -> str:
    if value in variants and rng.random() < rate:
        options = variants[value]
        return options[rng.integers(len(options))]
    return value


def create_layoff_record(rng: np.random.Generator, company: Dict[str, str]) -> Dict[str, str]:
    """Create one raw layoff row, as text, with some dirt mixed in."""
    event_date = START_DATE + timedelta(days=int(rng.integers((END_DATE - START_DATE).days + 1)))
    total = str(int(rng.gamma(1.5, 150)) + 1)
    fraction = f"{rng.uniform(0.01, 1.0):.2f}"
    if rng.random() < 0.03:
        fraction = "1"

    record = {
        'company': company['company'],
        'location': _maybe_variant(rng, company['location'], LOCATION_VARIANTS, 0.5),
        'industry': _maybe_variant(rng, company['industry'], INDUSTRY_VARIANTS, 0.4),
        'total_laid_off': total,
        'percentage_laid_off': fraction,
        'date': event_date.strftime(SOURCE_DATE_FORMAT),
        'stage': company['stage'],
        'country': company['country'],
        'funds_raised_millions': str(int(rng.gamma(1.2, 300))),
    }

    roll = rng.random()
    if roll < 0.15:
        record['total_laid_off'] = NULL_MARKER
    elif roll < 0.30:
        record['percentage_laid_off'] = NULL_MARKER
    elif roll < 0.40:
        record['total_laid_off'] = NULL_MARKER
        record['percentage_laid_off'] = NULL_MARKER

    if rng.random() < 0.05:
        record['industry'] = '' if rng.random() < 0.5 else NULL_MARKER
    if rng.random() < 0.03:
        record['stage'] = NULL_MARKER
    if rng.random() < 0.05:
        record['funds_raised_millions'] = NULL_MARKER
    if rng.random() < 0.02:
        record['company'] = f" {record['company']}"
    if rng.random() < 0.02:
        record['location'] = f"{record['location']} "
    if record['country'] == 'United States' and rng.random() < 0.02:
        record['country'] = 'United States.'
    if rng.random() < 0.01:
        record['date'] = NULL_MARKER
    return record


def generate_layoff_data(num_records: int = DEFAULT_NUM_RECORDS, seed: int = DEFAULT_SEED,
                         duplicate_rate: float = 0.01) -> pd.DataFrame:
    """Generate raw layoff rows as an all-text DataFrame with source headers.

    Args:
        num_records: Number of distinct rows to generate before duplication
        seed: Seed for the random generator
        duplicate_rate: Share of rows repeated verbatim at the end

    Returns:
        DataFrame with the CSV_HEADERS columns
    """
    rng = np.random.default_rng(seed)
    companies = generate_companies(rng, max(1, num_records // 3))

    records = [create_layoff_record(rng, companies[rng.integers(len(companies) - 1)])
               for _ in range(num_records)]

    bally = create_layoff_record(rng, companies[-1])
    bally['total_laid_off'] = '30'
    records.append(bally)

    num_duplicates = int(len(records) * duplicate_rate)
    if num_duplicates:
        picks = rng.choice(len(records), size=num_duplicates, replace=False)
        records.extend(dict(records[i]) for i in picks)

    return pd.DataFrame(records, columns=CSV_HEADERS)


def write_layoffs_csv(output_dir: str = DEFAULT_OUTPUT_DIR, filename: str = "layoffs.csv",
                      num_records: int = DEFAULT_NUM_RECORDS, seed: int = DEFAULT_SEED) -> Optional[str]:
    """Generate synthetic layoff data and save it to CSV.

    Returns:
        Path to the generated file if successful, None otherwise
    """
    try:
        os.makedirs(output_dir, exist_ok=True)
        output_file = os.path.join(output_dir, filename)
        df = generate_layoff_data(num_records, seed)
        df.to_csv(output_file, index=False, encoding='utf-8')
        logger.info(f"Successfully generated {len(df)} records in {output_file}")
        return output_file
    except OSError as e:
        logger.error(f"Error generating layoff data: {e}")
        return None


def main():
    """Main entry point for the script."""
    parser = argparse.ArgumentParser(description='Generate synthetic raw layoffs data')
    parser.add_argument('--records', type=int, default=DEFAULT_NUM_RECORDS,
                        help=f'Number of records to generate (default: {DEFAULT_NUM_RECORDS})')
    parser.add_argument('--seed', type=int, default=DEFAULT_SEED,
                        help=f'Random seed (default: {DEFAULT_SEED})')
    parser.add_argument('--output-dir', type=str, default=DEFAULT_OUTPUT_DIR,
                        help=f'Output directory (default: {DEFAULT_OUTPUT_DIR})')
    parser.add_argument('--filename', type=str, default="layoffs.csv",
                        help='Output filename (default: layoffs.csv)')
    args = parser.parse_args()

    output_file = write_layoffs_csv(args.output_dir, args.filename, args.records, args.seed)
    if output_file:
        print(f"Data generation complete. File saved to: {output_file}")
    else:
        print("Data generation failed. Check logs for details.")


if __name__ == "__main__":
    main()
