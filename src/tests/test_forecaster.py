# tests/test_forecaster.py
import numpy as np
import pandas as pd
import pytest

from models.forecaster import (
    HistoryMode, SeasonalForecaster, forecast, forecast_batch, forecast_cold_start, select_mode,
)
from series_store import product_history
from utils.errors import InsufficientHistory, InvalidHorizon
from utils.schema import HORIZON_COLS

HARMONICS = [f"{fn}{k}_365.25" for k in range(1, 6) for fn in ("sin", "cos")]
ACCURACY_KEYS = {"ME", "RMSE", "MAE", "MPE", "MAPE", "MASE", "ACF1"}


def _check_horizon(result, horizon, start):
    hz = result.horizon
    assert len(hz) == horizon
    assert set(HORIZON_COLS) <= set(hz.columns)
    assert list(hz.columns[:3]) == HORIZON_COLS[:3]
    assert hz["date_offset"].tolist() == list(range(1, horizon + 1))
    assert hz["date"].iloc[0] == pd.Timestamp(start)
    assert (hz["date"].diff().dropna() == pd.Timedelta(days=1)).all()
    cols = ["point_forecast", "lower_80", "upper_80", "lower_95", "upper_95", "lower_bound", "upper_bound"]
    assert np.isfinite(hz[cols].to_numpy()).all()
    assert (hz[cols] >= 0).all().all()
    assert (hz["lower_bound"] <= hz["point_forecast"] + 1e-9).all()
    assert (hz["point_forecast"] <= hz["upper_bound"] + 1e-9).all()
    assert (hz["lower_95"] <= hz["lower_80"] + 1e-9).all()
    assert (hz["upper_80"] <= hz["upper_95"] + 1e-9).all()


def test_mode_threshold():
    assert select_mode(364) is HistoryMode.SHORT
    assert select_mode(365) is HistoryMode.LONG
    assert select_mode(30, threshold=20) is HistoryMode.LONG


def test_long_history_end_to_end(make_store, fast_config):
    store = make_store({1001: 400})
    result = forecast(store, 1001, 35, promotion_1_flag=1, promotion_2_flag=0, config=fast_config)

    assert result.mode is HistoryMode.LONG
    assert result.product_id == 1001
    for col in HARMONICS + ["average_price", "web1_prop", "promotion_dummy_1"]:
        assert col in result.regressors
    assert result.excluded_regressors == ["promotion_dummy_2"]
    assert result.model_summary["seasonal_order"] == (0, 0, 0, 0)
    assert result.model_summary["n_obs"] == 400
    _check_horizon(result, 35, "2023-02-05")

    assert set(result.accuracy) == ACCURACY_KEYS
    for key in ("ME", "RMSE", "MAE", "MASE"):
        assert np.isfinite(result.accuracy[key])

    frame = result.to_frame()
    assert frame.columns[0] == "product_id"
    assert (frame["product_id"] == 1001).all()
    assert "ARIMA" in result.summary_text()


def test_short_history_searches_weekly_seasonality(make_store, fast_config):
    store = make_store({5: 120})
    result = forecast(store, 5, 14, config=fast_config)

    assert result.mode is HistoryMode.SHORT
    assert not any(col.startswith(("sin", "cos")) for col in result.regressors)
    assert result.model_summary["seasonal_period"] == 7
    assert result.model_summary["candidates_evaluated"] > 0
    assert 0 <= result.model_summary["candidates_failed"] < result.model_summary["candidates_evaluated"]
    _check_horizon(result, 14, "2022-05-01")


@pytest.mark.parametrize("n_days,expected", [(364, HistoryMode.SHORT), (365, HistoryMode.LONG)])
def test_mode_boundary_on_real_fits(make_store, fast_config, n_days, expected):
    tiny = fast_config.with_search(max_p=0, max_q=0, max_P=0, max_Q=0)
    history = product_history(make_store({8: n_days}), 8)
    result = SeasonalForecaster(tiny).fit_forecast(history, 7)
    assert result.mode is expected
    assert any(c.startswith("sin") for c in result.regressors) == (expected is HistoryMode.LONG)


def test_bad_horizon_and_history(make_store, fast_config):
    store = make_store({1: 30})
    for bad in (0, -1):
        with pytest.raises(InvalidHorizon):
            forecast(store, 1, bad, config=fast_config)
    with pytest.raises(InsufficientHistory) as err:
        forecast(store, 1, 31, config=fast_config)
    assert (err.value.window_length, err.value.horizon) == (30, 31)
    with pytest.raises(InsufficientHistory) as err:
        forecast(store, 404, 7, config=fast_config)
    assert err.value.window_length == 0


def test_batch_records_failures_and_continues(make_store, fast_config):
    store = make_store({1: 90, 2: 10})
    batch = forecast_batch(store, [1, 2, 3], 14, config=fast_config)

    assert list(batch.results) == [1]
    assert set(batch.failures) == {2, 3}
    assert isinstance(batch.failures[2], InsufficientHistory)
    frame = batch.to_frame()
    assert len(frame) == 14
    assert set(frame["product_id"]) == {1}


def test_cold_start_uses_a_substitute(make_store, fast_config):
    store = make_store({1: 90, 2: 90, 3: 20})
    res = forecast_cold_start(store, 3, 7, conditions={"brand": "acme"}, config=fast_config)

    assert res.target_id == 3
    assert res.substitute_id in (1, 2)
    assert res.forecast.product_id == res.substitute_id
    assert set(res.distance_table["candidate_id"]) == {1, 2}
    assert len(res.forecast.horizon) == 7
