import numpy as np
import pytest

from rface import Treedata
from rface.errors import ConfigurationError


def _store_with_missing():
    """Ten samples; the reference feature is missing at samples 2 and 7."""
    ref = [str(i) if i not in (2, 7) else "NA" for i in range(10)]
    other = [str(i * 2) for i in range(10)]
    return Treedata([ref, other], ["N:ref", "N:other"], [True, True], random_state=11)


@pytest.mark.parametrize("with_replacement,fraction", [(True, 1.0), (True, 0.5),
                                                       (False, 1.0), (False, 0.6),
                                                       (True, 1.5)])
def test_bootstrap_properties(with_replacement, fraction):
    td = _store_with_missing()
    real = set(np.flatnonzero(~np.isnan(td.feature_data(0))).tolist())
    ics, oob = td.bootstrap_from_real_samples(with_replacement, fraction, 0)

    assert len(ics) == int(np.floor(fraction * len(real)))
    assert set(ics.tolist()) <= real
    assert set(oob.tolist()) == real - set(ics.tolist())
    assert np.all(np.diff(ics) >= 0)
    assert len(set(oob.tolist())) == len(oob)
    if not with_replacement:
        assert len(set(ics.tolist())) == len(ics)


def test_bootstrap_full_without_replacement_has_empty_oob():
    td = _store_with_missing()
    ics, oob = td.bootstrap_from_real_samples(False, 1.0, 0)
    assert ics.tolist() == [0, 1, 3, 4, 5, 6, 8, 9]
    assert oob.size == 0


def test_bootstrap_rejects_bad_fraction():
    td = _store_with_missing()
    with pytest.raises(ConfigurationError):
        td.bootstrap_from_real_samples(True, 0.0, 0)
    with pytest.raises(ConfigurationError):
        td.bootstrap_from_real_samples(False, 1.2, 0)


def test_bootstrap_uses_supplied_generator():
    td = _store_with_missing()
    a, _ = td.bootstrap_from_real_samples(True, 1.0, 1, rng=np.random.default_rng(5))
    b, _ = td.bootstrap_from_real_samples(True, 1.0, 1, rng=np.random.default_rng(5))
    assert np.array_equal(a, b)
