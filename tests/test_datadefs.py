import math

import numpy as np
import pytest

from rface import datadefs
from rface.errors import ConfigurationError


def test_nan_strings_are_case_insensitive():
    for s in ["", "NA", "na", " NaN ", "n/a", "?", "null", "None"]:
        assert datadefs.is_nan_str(s)
    assert not datadefs.is_nan_str("0")
    assert not datadefs.is_nan_str("nana")


def test_str_to_num():
    assert datadefs.str_to_num("1.5") == 1.5
    assert math.isnan(datadefs.str_to_num("NA"))
    with pytest.raises(ConfigurationError):
        datadefs.str_to_num("abc")


def test_strv_to_catv_first_seen_order():
    codes, mapping, back = datadefs.strv_to_catv(["b", "a", "NA", "b", "c"])
    assert mapping == {"b": 0.0, "a": 1.0, "c": 2.0}
    assert back == {0.0: "b", 1.0: "a", 2.0: "c"}
    assert codes[0] == 0.0 and codes[1] == 1.0 and codes[4] == 2.0
    assert math.isnan(codes[2])


def test_statistics_skip_missing():
    data = [1.0, float("nan"), 3.0]
    assert datadefs.count_real_values(data) == 2
    assert datadefs.mean(data) == 2.0
    assert datadefs.squared_error(data) == 2.0
    freq, n = datadefs.count_freq([0.0, 1.0, 1.0, float("nan")])
    assert freq == {0.0: 1, 1.0: 2}
    assert n == 3
    assert datadefs.cardinality([1.0, 1.0, 2.0, float("nan")]) == 2
    assert math.isnan(datadefs.mean([float("nan")]))


def test_map_data_sorted_by_value():
    m = datadefs.map_data([2.0, 0.0, 2.0, float("nan"), 1.0])
    assert list(m) == [0.0, 1.0, 2.0]
    assert m[2.0] == [0, 2]


def test_gini():
    assert datadefs.gini([0.0, 0.0, 1.0, 1.0]) == pytest.approx(0.5)
    assert datadefs.gini({0.0: 4}) == 0.0
    assert datadefs.gini([]) == 0.0


def test_pearson_correlation():
    x = [1.0, 2.0, 3.0, float("nan")]
    assert datadefs.pearson_correlation(x, [2.0, 4.0, 6.0, 1.0]) == pytest.approx(1.0)
    assert math.isnan(datadefs.pearson_correlation([1.0, 1.0], [1.0, 2.0]))


def test_incremental_squared_error_matches_batch():
    values = [3.0, -1.0, 4.0, 1.5, 9.0]
    mu, se = 0.0, 0.0
    for n, x in enumerate(values, start=1):
        mu, se = datadefs.increment_squared_error(x, n, mu, se)
    assert mu == pytest.approx(np.mean(values))
    assert se == pytest.approx(datadefs.squared_error(values))

    mu, se = datadefs.decrement_squared_error(values[-1], 4, mu, se)
    assert mu == pytest.approx(np.mean(values[:-1]))
    assert se == pytest.approx(datadefs.squared_error(values[:-1]))
    assert datadefs.decrement_squared_error(2.0, 0, 2.0, 0.0) == (0.0, 0.0)


def test_incremental_squared_frequency():
    freq = {}
    sf = 0
    for x in [0.0, 1.0, 1.0, 1.0]:
        sf = datadefs.increment_squared_frequency(x, freq, sf)
    assert sf == 1 + 9
    sf = datadefs.decrement_squared_frequency(0.0, freq, sf)
    assert sf == 9
    assert 0.0 not in freq


def test_is_nan_accepts_numpy_scalars():
    assert datadefs.is_nan(None)
    assert datadefs.is_nan(float("nan"))
    assert datadefs.is_nan(np.float32("nan"))
    assert datadefs.is_nan(np.float64("nan"))
    assert not datadefs.is_nan(np.float32(1.0))
    assert not datadefs.is_nan("NA")
