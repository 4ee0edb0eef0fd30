# tests/test_covariates.py
import numpy as np
import pandas as pd
import pytest

from covariates import build_covariates, fourier_terms, select_regressors, with_harmonics
from utils.errors import InsufficientHistory, InvalidHorizon


@pytest.fixture
def history():
    n = 20
    rng = np.random.default_rng(3)
    mix = rng.dirichlet([5, 3, 2], n)
    return pd.DataFrame({
        "product_id": 1001,
        "date": pd.date_range("2023-03-01", periods=n, freq="D"),
        "units_sold": rng.poisson(10, n),
        "average_price": np.arange(1, n + 1, dtype=float),
        "promotion_dummy_1": [0, 1] * (n // 2),
        "promotion_dummy_2": 0,
        "web1_prop": mix[:, 0],
        "web2_prop": mix[:, 1],
        "web3_prop": mix[:, 2],
    })


def test_constant_dummy_is_excluded(history):
    used, excluded = select_regressors(history)
    assert used == ["average_price", "web1_prop", "web2_prop", "web3_prop", "promotion_dummy_1"]
    assert excluded == ["promotion_dummy_2"]

    history["promotion_dummy_1"] = 1
    used, excluded = select_regressors(history)
    assert "promotion_dummy_1" not in used
    assert excluded == ["promotion_dummy_1", "promotion_dummy_2"]


def test_horizon_rows_follow_persistence_rules(history):
    cov = build_covariates(history, horizon=5, promotion_1=1, promotion_2=1)

    assert list(cov.train.columns) == cov.regressors
    assert list(cov.future.columns) == cov.regressors
    assert "promotion_dummy_2" not in cov.future.columns
    assert len(cov.train) == 20 and len(cov.future) == 5

    # price: mean of the last 5 prices (16..20)
    assert np.allclose(cov.future["average_price"], 18.0)
    # channel mix: last 5 days replayed in order
    for col in ("web1_prop", "web2_prop", "web3_prop"):
        assert np.allclose(cov.future[col].to_numpy(), history[col].to_numpy()[-5:])
    assert (cov.future["promotion_dummy_1"] == 1).all()

    assert cov.future.index.tolist() == list(range(20, 25))
    assert cov.future_dates[0] == pd.Timestamp("2023-03-21")
    assert len(cov.future_dates) == 5


def test_promotion_flag_zero_is_broadcast(history):
    cov = build_covariates(history, horizon=3, promotion_1=0)
    assert (cov.future["promotion_dummy_1"] == 0).all()


def test_history_shorter_than_horizon(history):
    with pytest.raises(InsufficientHistory) as err:
        build_covariates(history, horizon=21)
    assert err.value.window_length == 20
    assert err.value.horizon == 21
    assert err.value.product_id == 1001
    # exactly h days is enough
    assert len(build_covariates(history, horizon=20).future) == 20


@pytest.mark.parametrize("bad", [0, -3, 2.5, True])
def test_invalid_horizon(history, bad):
    with pytest.raises(InvalidHorizon):
        build_covariates(history, horizon=bad)


def test_fourier_terms_shape_and_range():
    terms = fourier_terms(pd.date_range("2022-01-01", periods=400, freq="D"), order=5)
    assert terms.shape == (400, 10)
    assert list(terms.columns[:2]) == ["sin1_365.25", "cos1_365.25"]
    assert terms.abs().max().max() <= 1.0


def test_harmonics_continue_across_the_horizon(history):
    cov = with_harmonics(build_covariates(history, horizon=4), history["date"], order=2)
    harmonic_cols = ["sin1_365.25", "cos1_365.25", "sin2_365.25", "cos2_365.25"]
    assert cov.regressors[-4:] == harmonic_cols

    all_dates = pd.date_range("2023-03-01", periods=24, freq="D")
    expected = fourier_terms(all_dates, order=2)
    assert np.allclose(cov.train[harmonic_cols].to_numpy(), expected.iloc[:20].to_numpy())
    assert np.allclose(cov.future[harmonic_cols].to_numpy(), expected.iloc[20:].to_numpy())
