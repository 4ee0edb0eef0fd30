# tests/test_basic.py
import pandas as pd
import pytest
import yaml

from filters import FilterConditions
from pipeline import cmd_batch, cmd_coldstart, cmd_forecast, cmd_similar, main


@pytest.fixture
def csv_inputs(tmp_path, make_sales, make_catalog):
    """Raw storefront rows and catalog written to disk, plus a small search config."""
    sales = pd.concat([make_sales(1, 80), make_sales(2, 80, base=35.0), make_sales(3, 25)], ignore_index=True)
    sales_path = tmp_path / "sales.csv"
    catalog_path = tmp_path / "catalog.csv"
    config_path = tmp_path / "forecast.yaml"
    sales.to_csv(sales_path, index=False)
    make_catalog([1, 2, 3]).to_csv(catalog_path, index=False)
    config_path.write_text(yaml.safe_dump({
        "search": {"max_p": 1, "max_q": 1, "max_P": 0, "max_Q": 0, "max_D": 0, "max_order": 2},
    }))
    return str(sales_path), str(catalog_path), str(config_path)


def test_similar_command_writes_distance_table(csv_inputs, tmp_path):
    sales, catalog, _ = csv_inputs
    out = tmp_path / "out" / "similar.csv"
    best, table = cmd_similar(sales, catalog, 3, FilterConditions(brand="acme"), out_csv=str(out))

    assert best in (1, 2)
    saved = pd.read_csv(out)
    assert list(saved.columns) == ["candidate_id", "target_id", "distance"]
    assert sorted(saved["candidate_id"]) == [1, 2]
    assert saved["distance"].is_monotonic_increasing


def test_forecast_command_writes_horizon(csv_inputs, tmp_path):
    sales, catalog, config = csv_inputs
    out = tmp_path / "fc.csv"
    result = cmd_forecast(sales, catalog, 1, 10, 1, 0, out_csv=str(out), config_path=config)

    saved = pd.read_csv(out)
    assert len(saved) == 10
    for col in ("product_id", "date_offset", "date", "point_forecast", "lower_bound", "upper_bound"):
        assert col in saved.columns
    assert (saved["product_id"] == 1).all()
    assert result.mode.value == "short"


def test_batch_and_coldstart_commands(csv_inputs, tmp_path):
    sales, catalog, config = csv_inputs
    batch = cmd_batch(sales, catalog, [1, 3], 30, 0, 0, out_csv=str(tmp_path / "b.csv"), config_path=config)
    assert list(batch.results) == [1]
    assert list(batch.failures) == [3]
    assert len(pd.read_csv(tmp_path / "b.csv")) == 30

    res = cmd_coldstart(sales, catalog, 3, 7, 0, 0, FilterConditions(), out_csv=str(tmp_path / "c.csv"),
                        config_path=config)
    saved = pd.read_csv(tmp_path / "c.csv")
    assert (saved["target_id"] == 3).all()
    assert (saved["product_id"] == res.substitute_id).all()


def test_cli_entrypoint(csv_inputs, tmp_path, capsys):
    sales, catalog, _ = csv_inputs
    out = tmp_path / "cli.csv"
    main(["--log-level", "WARNING", "similar", "--sales", sales, "--catalog", catalog,
          "--target", "3", "--main-category", "10", "--out", str(out)])
    assert "Closest product to 3" in capsys.readouterr().out
    assert out.exists()
