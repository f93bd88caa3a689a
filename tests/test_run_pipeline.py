from __future__ import annotations

import os
import sqlite3

import pandas as pd
import pytest

from data_generator import generate_layoff_data, write_layoffs_csv
from layoffs_pipeline.bronze import LAYOFF_COLUMNS
from layoffs_pipeline.run_pipeline import LayoffsPipeline, PipelineError, main
from layoffs_pipeline.silver import SILVER_TABLE, TEXT_COLUMNS


@pytest.fixture
def generated_csv(tmp_path):
    return write_layoffs_csv(str(tmp_path / "sample"), "layoffs.csv", num_records=600, seed=7)


def _silver(db_file):
    conn = sqlite3.connect(db_file)
    try:
        return pd.read_sql(f"SELECT * FROM {SILVER_TABLE}", conn)
    finally:
        conn.close()


def test_generated_data_contains_dirt():
    df = generate_layoff_data(600, seed=7)
    assert df.duplicated().sum() > 0
    assert (df["percentage_laid_off"] == "NULL").any()
    assert df["industry"].isin(["Crypto Currency", "CryptoCurrency"]).any()


def test_pipeline_output_satisfies_cleaning_invariants(tmp_path, generated_csv):
    db_file = str(tmp_path / "layoffs.db")
    result = LayoffsPipeline(db_path=db_file).run_pipeline(generated_csv, export_dir=None)

    raw_rows = len(pd.read_csv(generated_csv, dtype=str, keep_default_na=False))
    assert result["stats"]["bronze_count"] == raw_rows

    df = _silver(db_file)
    assert list(df.columns) == LAYOFF_COLUMNS
    assert 0 < len(df) == result["stats"]["silver_count"] < raw_rows

    # every record carries some layoff magnitude
    assert (df["total_laid_off"].notna() | df["percentage_laid_off"].notna()).all()
    assert df["percentage_laid_off"].dropna().between(0, 100).all()

    for column in TEXT_COLUMNS:
        values = df[column].dropna()
        assert (values == values.str.strip()).all(), column

    assert not df["industry"].isin(["Crypto Currency", "CryptoCurrency"]).any()
    assert not (df["country"] == "United States.").any()
    assert not df["location"].isin(["DÃ¼sseldorf", "Dusseldorf", "MalmÃ¶", "Malmo", "FlorianÃ³polis"]).any()
    assert set(df.loc[df["company"] == "Bally's Interactive", "industry"]) == {"Gaming"}

    dates = df["event_date"].dropna()
    assert dates.str.fullmatch(r"\d{4}-\d{2}-\d{2}").all()

    # industry is only missing when no record of the company has one
    known = set(df.loc[df["industry"].notna(), "company"])
    assert not (df["industry"].isna() & df["company"].isin(known)).any()


def test_pipeline_rerun_is_idempotent(tmp_path, generated_csv):
    db_file = str(tmp_path / "layoffs.db")
    pipeline = LayoffsPipeline(db_path=db_file)
    pipeline.run_pipeline(generated_csv)
    first = _silver(db_file)
    pipeline.run_pipeline(generated_csv)
    pd.testing.assert_frame_equal(_silver(db_file), first)


def test_pipeline_exports_parquet(tmp_path, generated_csv):
    export_dir = str(tmp_path / "exports")
    result = LayoffsPipeline(db_path=str(tmp_path / "layoffs.db")).run_pipeline(generated_csv, export_dir=export_dir)
    assert set(result["exports"]) == {"bronze", "silver", "gold"}
    for files in result["exports"].values():
        for path in files:
            assert os.path.exists(path)
    silver_file = result["exports"]["silver"][0]
    assert list(pd.read_parquet(silver_file).columns) == LAYOFF_COLUMNS


def test_missing_source_aborts_before_any_stage(tmp_path):
    db_file = str(tmp_path / "layoffs.db")
    pipeline = LayoffsPipeline(db_path=db_file)
    with pytest.raises(PipelineError):
        pipeline.run_pipeline(str(tmp_path / "missing.csv"))
    assert pipeline.get_layer_stats() == {"bronze_count": -1, "silver_count": -1}


def test_schema_mismatch_aborts(tmp_path):
    csv_file = tmp_path / "bad.csv"
    csv_file.write_text("company,location\nAcme,Seattle\n", encoding="utf-8")
    with pytest.raises(PipelineError):
        LayoffsPipeline(db_path=str(tmp_path / "layoffs.db")).run_pipeline(str(csv_file))


def test_run_analysis_before_pipeline_raises(tmp_path):
    pipeline = LayoffsPipeline(db_path=str(tmp_path / "layoffs.db"))
    with pytest.raises(PipelineError):
        pipeline.run_analysis("totals")
    with pytest.raises(ValueError):
        pipeline.run_analysis("no-such-analysis")


def test_cli_run_then_analyze(tmp_path, generated_csv, capsys):
    db_file = str(tmp_path / "layoffs.db")
    assert main(["run", "--csv", generated_csv, "--db", db_file, "--no-export", "--top-n", "3"]) == 0
    out = capsys.readouterr().out
    assert "Pipeline execution completed" in out

    assert main(["analyze", "by-industry", "--db", db_file]) == 0
    out = capsys.readouterr().out
    assert "industry" in out and "total_laid_off" in out
    assert "Gaming" in out

    assert main(["analyze", "top-companies-by-year", "--db", db_file, "--top-n", "1"]) == 0
    assert "year_rank" in capsys.readouterr().out


def test_cli_run_with_missing_csv_exits_nonzero(tmp_path):
    assert main(["run", "--csv", str(tmp_path / "missing.csv"), "--db", str(tmp_path / "layoffs.db"), "--no-export"]) == 1


def test_cli_run_with_bad_rules_file_exits_nonzero(tmp_path, generated_csv):
    rules = tmp_path / "rules.json"
    rules.write_text('{"unknown": 1}', encoding="utf-8")
    args = ["run", "--csv", generated_csv, "--db", str(tmp_path / "layoffs.db"), "--rules", str(rules), "--no-export"]
    assert main(args) == 1
