"""
Layoffs Medallion ETL Package

Modules:
    bronze.py   - Copies the raw layoffs CSV verbatim into the bronze layer.
    silver.py   - Deduplicates, standardizes and resolves missing values into the silver layer.
    gold.py     - Runs the analysis queries and stores their results in the gold layer.
    config.py   - Environment settings and the hand-curated cleaning rules.
    run_pipeline.py - Orchestrates the full pipeline and provides the command line.

Version: 1.0.0
"""

__version__ = "1.0.0"
