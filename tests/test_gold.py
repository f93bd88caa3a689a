from __future__ import annotations

import sqlite3

import pandas as pd
import pytest

from layoffs_pipeline import gold


def _event(company, total, event_date="2022-06-01", industry="Retail", **extra):
    return {
        "company": company,
        "location": extra.pop("location", "Seattle"),
        "industry": industry,
        "total_laid_off": total,
        "percentage_laid_off": extra.pop("percentage_laid_off", 10.0),
        "event_date": event_date,
        "stage": "Series B",
        "country": extra.pop("country", "United States"),
        "funds_raised_millions": extra.pop("funds_raised_millions", None),
    }


def test_date_range_ignores_missing_dates(make_silver_db):
    conn = make_silver_db([
        _event("A", 1, "2021-05-01"),
        _event("B", 1, "2020-03-11"),
        _event("C", 1, None),
        _event("D", 1, "2023-03-06"),
    ])
    row = gold.date_range(conn).iloc[0]
    assert row["earliest_date"] == "2020-03-11"
    assert row["latest_date"] == "2023-03-06"


def test_totals_exclude_nulls(make_silver_db):
    conn = make_silver_db([
        _event("A", 100, funds_raised_millions=10),
        _event("B", None, funds_raised_millions=None),
        _event("C", 50, funds_raised_millions=5),
    ])
    row = gold.totals(conn).iloc[0]
    assert row["total_laid_off"] == 150
    assert row["funds_raised_millions"] == 15


def test_full_shutdowns_counts_hundred_percent(make_silver_db):
    conn = make_silver_db([
        _event("A", 100, percentage_laid_off=100.0),
        _event("B", None, percentage_laid_off=100.0),
        _event("C", 50, percentage_laid_off=50.0),
        _event("D", 50, percentage_laid_off=None),
    ])
    assert gold.full_shutdowns(conn).iloc[0]["full_shutdowns"] == 2


def test_layoffs_by_industry_sorted_descending(make_silver_db):
    conn = make_silver_db([
        _event("A", 100, industry="Retail"),
        _event("B", 30, industry="Tech"),
        _event("C", 50, industry="Retail"),
    ])
    df = gold.layoffs_by(conn, "industry")
    assert list(df.columns) == ["industry", "total_laid_off"]
    assert list(df.itertuples(index=False, name=None)) == [("Retail", 150), ("Tech", 30)]


def test_layoffs_by_company_and_country(make_silver_db):
    conn = make_silver_db([
        _event("A", 10, country="India"),
        _event("B", 300, country="United States"),
        _event("A", 20, "2022-07-01", country="India"),
    ])
    by_company = gold.layoffs_by(conn, "company")
    assert list(by_company["company"]) == ["B", "A"]
    assert list(by_company["total_laid_off"]) == [300, 30]
    by_country = gold.layoffs_by(conn, "country")
    assert list(by_country["country"]) == ["United States", "India"]


def test_layoffs_by_rejects_unknown_dimension(make_silver_db):
    conn = make_silver_db([])
    with pytest.raises(ValueError):
        gold.layoffs_by(conn, "stage; DROP TABLE silver_layoffs")


def test_monthly_layoffs_running_total(make_silver_db):
    conn = make_silver_db([
        _event("A", 100, "2023-01-05"),
        _event("B", 50, "2023-01-20"),
        _event("C", 30, "2022-12-01"),
        _event("D", 20, "2023-03-02"),
        _event("E", 999, None),
    ])
    df = gold.monthly_layoffs(conn)
    assert list(df.columns) == ["year_month", "monthly_laid_off", "cumulative_laid_off"]
    assert list(df["year_month"]) == ["2022-12", "2023-01", "2023-03"]
    assert list(df["monthly_laid_off"]) == [30, 150, 20]
    assert list(df["cumulative_laid_off"]) == [30, 180, 200]


def test_industry_year_rankings_use_competition_ranking(make_silver_db):
    conn = make_silver_db([
        _event("A", 100, "2022-01-01"),
        _event("B", 50, "2022-02-01"),
        _event("C", 50, "2022-03-01"),
        _event("D", 10, "2022-04-01"),
        _event("E", 70, "2023-01-01"),
        _event("F", 5, "2022-01-01", industry="Tech"),
        _event("G", 5, "2022-01-01", industry=None),
    ])
    df = gold.industry_year_rankings(conn)
    retail_2022 = df[(df["industry"] == "Retail") & (df["year"] == 2022)]
    assert list(retail_2022["company"]) == ["A", "B", "C", "D"]
    assert list(retail_2022["industry_year_rank"]) == [1, 2, 2, 4]
    assert set(retail_2022["industry_year_total"]) == {210}
    assert "G" not in set(df["company"])

    top = gold.industry_year_rankings(conn, top_n=2)
    assert list(top.loc[(top["industry"] == "Retail") & (top["year"] == 2022), "company"]) == ["A", "B", "C"]
    assert set(top["company"]) == {"A", "B", "C", "E", "F"}


def test_top_companies_by_year_sums_per_company(make_silver_db):
    conn = make_silver_db([
        _event("A", 60, "2022-01-01"),
        _event("A", 60, "2022-09-01"),
        _event("B", 100, "2022-05-01"),
        _event("C", 100, "2022-06-01"),
        _event("D", 10, "2022-07-01"),
        _event("B", 5, "2023-01-01"),
    ])
    df = gold.top_companies_by_year(conn, top_n=2)
    assert list(df.columns) == ["company", "year", "total_laid_off", "year_rank"]
    assert list(df.itertuples(index=False, name=None)) == [
        ("A", 2022, 120, 1),
        ("B", 2022, 100, 2),
        ("C", 2022, 100, 2),
        ("B", 2023, 5, 1),
    ]


def test_analyses_registry_runs_every_query(make_silver_db):
    conn = make_silver_db([_event("A", 10), _event("B", 20, "2023-02-01", industry="Tech")])
    for name, analysis in gold.ANALYSES.items():
        assert isinstance(analysis(conn, None), pd.DataFrame), name


def test_aggregate_silver_to_gold_writes_tables(tmp_path, make_silver_db):
    db_file = str(tmp_path / "layoffs.db")
    source = make_silver_db([_event("A", 10), _event("B", 20, "2023-02-01")])
    target = sqlite3.connect(db_file)
    source.backup(target)
    target.close()

    assert gold.aggregate_silver_to_gold(db_file, top_n=1)

    conn = sqlite3.connect(db_file)
    try:
        for table in gold.GOLD_TABLES.values():
            assert pd.read_sql(f"SELECT * FROM {table}", conn) is not None
        top = pd.read_sql("SELECT * FROM gold_top_companies_by_year", conn)
        assert list(top["company"]) == ["A", "B"]
    finally:
        conn.close()


def test_aggregate_fails_without_silver(tmp_path):
    assert not gold.aggregate_silver_to_gold(str(tmp_path / "empty.db"))
