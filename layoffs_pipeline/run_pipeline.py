#!/usr/bin/env python3
"""
Layoffs Medallion Pipeline

Loads the raw layoffs CSV into the bronze layer, cleans it into the silver
layer (deduplication, standardization, missing values, projection) and
materializes the analysis queries as gold tables, all inside one SQLite
database. Individual analyses can also be run on demand from the command line.
"""

import os
import sys
import sqlite3
import argparse
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from layoffs_pipeline.bronze import BRONZE_TABLE, ingest_data
from layoffs_pipeline.config import CleaningRules, get_settings, load_rules
from layoffs_pipeline.gold import ANALYSES, GOLD_TABLES, aggregate_silver_to_gold
from layoffs_pipeline.silver import SILVER_TABLE, transform_bronze_to_silver
from utils.logger import setup_logger

settings = get_settings()

# Set up logging
logger = setup_logger("Layoffs_Pipeline", log_file="layoffs_pipeline.log",
                      level=settings.log_level, log_dir=settings.log_dir)

LAYER_TABLES = {
    'bronze': [BRONZE_TABLE],
    'silver': [SILVER_TABLE],
    'gold': list(GOLD_TABLES.values()),
}


class PipelineError(Exception):
    """A stage failed and the run was aborted."""


class LayoffsPipeline:
    """Runs the bronze -> silver -> gold layoffs pipeline on a SQLite database."""

    def __init__(self, db_path: str = settings.db_path, rules: Optional[CleaningRules] = None):
        """
        Initialize the pipeline with database path and cleaning rules.

        Args:
            db_path: Path to the SQLite database file
            rules: Cleaning rules (defaults to the built-in tables)
        """
        self.db_path = db_path
        self.rules = rules or CleaningRules()
        self._ensure_db_directory()

    def _ensure_db_directory(self) -> None:
        """Ensure the database directory exists."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def process_bronze_layer(self, csv_file: str) -> None:
        """
        Load the raw CSV into the bronze layer.

        Raises:
            PipelineError: If the file is missing, unreadable or lacks a column
        """
        if not os.path.exists(csv_file):
            raise PipelineError(f"CSV file not found: {csv_file}")
        if not ingest_data(csv_file, self.db_path):
            raise PipelineError("Bronze layer processing failed")
        logger.info("Bronze layer processing completed successfully.")

    def process_silver_layer(self) -> None:
        if not transform_bronze_to_silver(self.db_path, self.rules):
            raise PipelineError("Silver layer processing failed")
        logger.info("Silver layer processing completed successfully.")

    def process_gold_layer(self, top_n: int = settings.top_n) -> None:
        if not aggregate_silver_to_gold(self.db_path, top_n):
            raise PipelineError("Gold layer processing failed")
        logger.info("Gold layer processing completed successfully.")

    def export_data(self, layer: str, output_dir: str = settings.export_dir) -> List[str]:
        """
        Export every table of a layer to Parquet.

        Args:
            layer: Layer to export ('bronze', 'silver', or 'gold')
            output_dir: Directory to save the exported files

        Returns:
            Paths of the exported files
        """
        if layer not in LAYER_TABLES:
            raise ValueError(f"Invalid layer: {layer}")

        os.makedirs(output_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        exported = []

        conn = self.connect()
        try:
            for table in LAYER_TABLES[layer]:
                df = pd.read_sql(f"SELECT * FROM {table}", conn)
                output_file = os.path.join(output_dir, f"{table}_{timestamp}.parquet")
                df.to_parquet(output_file, index=False)
                logger.info(f"Exported {len(df)} records from {table} to {output_file}")
                exported.append(output_file)
        finally:
            conn.close()
        return exported

    def get_layer_stats(self) -> Dict[str, int]:
        """
        Get record counts for the bronze and silver tables.

        Returns:
            Dictionary with record counts; -1 for a table that does not exist
        """
        stats = {}
        conn = self.connect()
        try:
            cursor = conn.cursor()
            for layer, table in (('bronze', BRONZE_TABLE), ('silver', SILVER_TABLE)):
                try:
                    cursor.execute(f"SELECT COUNT(*) FROM {table}")
                    stats[f'{layer}_count'] = cursor.fetchone()[0]
                except sqlite3.OperationalError:
                    stats[f'{layer}_count'] = -1
        finally:
            conn.close()
        return stats

    def run_pipeline(self, csv_file: str, export_dir: Optional[str] = None,
                     top_n: int = settings.top_n) -> Dict[str, object]:
        """
        Run the full pipeline.

        Args:
            csv_file: Path to the raw layoffs CSV
            export_dir: Directory for Parquet exports (no export when None)
            top_n: Number of ranks kept in the per-year company ranking

        Returns:
            Dictionary with layer statistics and exported file paths

        Raises:
            PipelineError: If any stage fails; later stages are not run
        """
        logger.info("Starting layoffs pipeline...")
        self.process_bronze_layer(csv_file)
        self.process_silver_layer()
        self.process_gold_layer(top_n)

        exports = {}
        if export_dir:
            for layer in LAYER_TABLES:
                exports[layer] = self.export_data(layer, export_dir)

        stats = self.get_layer_stats()
        logger.info(f"Pipeline completed successfully. Layer statistics: {stats}")
        return {'stats': stats, 'exports': exports}

    def run_analysis(self, name: str, top_n: Optional[int] = None) -> pd.DataFrame:
        """
        Run one analysis query against the silver layer.

        Raises:
            ValueError: If the analysis name is unknown
            PipelineError: If the silver layer has not been built
        """
        if name not in ANALYSES:
            raise ValueError(f"Unknown analysis '{name}', expected one of {sorted(ANALYSES)}")
        conn = self.connect()
        try:
            return ANALYSES[name](conn, top_n)
        except pd.errors.DatabaseError as e:
            raise PipelineError(f"Analysis '{name}' failed, has the pipeline been run? {e}") from e
        finally:
            conn.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Clean and analyze the global layoffs dataset')
    subparsers = parser.add_subparsers(dest='command', required=True)

    run_parser = subparsers.add_parser('run', help='Run the bronze -> silver -> gold pipeline')
    run_parser.add_argument('--csv', type=str, default=settings.csv_file, help='Path to the raw layoffs CSV')
    run_parser.add_argument('--db', type=str, default=settings.db_path, help='Path to SQLite database')
    run_parser.add_argument('--rules', type=str, default=settings.rules_file, help='JSON file overriding the cleaning rules')
    run_parser.add_argument('--export-dir', type=str, default=settings.export_dir, help='Directory for exported Parquet files')
    run_parser.add_argument('--no-export', action='store_true', help='Skip the Parquet export')
    run_parser.add_argument('--top-n', type=int, default=settings.top_n, help='Ranks kept per year in the company ranking')

    analyze_parser = subparsers.add_parser('analyze', help='Run one analysis query on the silver layer')
    analyze_parser.add_argument('analysis', choices=sorted(ANALYSES), help='Analysis to run')
    analyze_parser.add_argument('--db', type=str, default=settings.db_path, help='Path to SQLite database')
    analyze_parser.add_argument('--top-n', type=int, default=None, help='Keep only ranks <= N (ranking analyses)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point for the pipeline."""
    args = build_parser().parse_args(argv)

    try:
        if args.command == 'run':
            rules = load_rules(args.rules)
            pipeline = LayoffsPipeline(db_path=args.db, rules=rules)
            result = pipeline.run_pipeline(
                args.csv,
                export_dir=None if args.no_export else args.export_dir,
                top_n=args.top_n,
            )
            print("Pipeline execution completed:")
            print(f"Bronze layer: {result['stats']['bronze_count']} records")
            print(f"Silver layer: {result['stats']['silver_count']} records")
            for layer, files in result['exports'].items():
                print(f"{layer.capitalize()} layer export: {', '.join(files)}")
        else:
            pipeline = LayoffsPipeline(db_path=args.db)
            df = pipeline.run_analysis(args.analysis, args.top_n)
            print(df.to_string(index=False))
    except (PipelineError, OSError, ValueError) as e:
        logger.error(f"Error running pipeline: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
