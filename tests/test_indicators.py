"""Unit tests for indicators.technical."""

import numpy as np
import pandas as pd
import pytest

from perp_bot.indicators.technical import atr, compute_indicator_frame, ema, rsi, true_range


def test_atr_constant_range(make_candles):
    df = make_candles([100.0] * 30)
    df["high"], df["low"] = 101.0, 99.0
    values = atr(df, 14)
    assert values.iloc[:14].isna().all()
    assert values.iloc[14:].tolist() == pytest.approx([2.0] * 16)


def test_atr_is_simple_mean_of_true_range(random_walk):
    df = random_walk(n=60)
    values = atr(df, 14)
    tr = true_range(df)
    assert values.iloc[30] == pytest.approx(tr.iloc[17:31].mean())


def test_atr_never_negative(random_walk):
    values = atr(random_walk(n=500), 14).dropna()
    assert (values >= 0).all()


def test_atr_short_series_all_nan(make_candles):
    assert atr(make_candles([100.0] * 10), 14).isna().all()


def test_rsi_strictly_increasing_is_100():
    closes = pd.Series(np.arange(100.0, 140.0))
    values = rsi(closes, 14)
    assert values.iloc[:14].isna().all()
    assert (values.iloc[14:] == 100.0).all()


def test_rsi_strictly_decreasing_is_0():
    values = rsi(pd.Series(np.arange(140.0, 100.0, -1.0)), 14)
    assert (values.iloc[14:] == 0.0).all()


def test_rsi_plain_average():
    # changes alternate +2 / -1 -> over 14 changes: 7 gains of 2, 7 losses of 1
    closes = [100.0]
    for i in range(20):
        closes.append(closes[-1] + (2.0 if i % 2 == 0 else -1.0))
    values = rsi(pd.Series(closes), 14)
    expected = 100 - 100 / (1 + (14 / 14) / (7 / 14))
    assert values.iloc[14] == pytest.approx(expected)


def test_rsi_bounded(random_walk):
    values = rsi(random_walk(n=500)["close"], 14).dropna()
    assert ((values >= 0) & (values <= 100)).all()


def test_ema_seed_and_recursion():
    values = ema(pd.Series([10.0, 20.0, 30.0]), 3)  # k = 0.5
    assert values.tolist() == pytest.approx([10.0, 15.0, 22.5])


def test_indicator_frame_columns(random_walk):
    df = random_walk(n=300)
    frame = compute_indicator_frame(df)
    for col in ("atr", "atr_ma", "rsi", "ema20", "ema50", "ema200"):
        assert col in frame.columns
    assert len(frame) == len(df)
    assert not frame["ema200"].isna().any()
    # average of the 50 previous ATR values, current bar excluded
    assert frame["atr_ma"].iloc[100] == pytest.approx(frame["atr"].iloc[50:100].mean())
