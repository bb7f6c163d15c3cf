import numpy as np
from rface import StochasticForest, Treedata


def test_afm_forest_smoke(tmp_path):
    path = tmp_path / "tiny.afm"
    rows = ["\tN:y\tN:num\tC:cat"]
    for i in range(12):
        rows.append(f"s{i}\t{1.0 + 0.5 * i}\t{i}\t{'A' if i < 6 else 'B'}")
    path.write_text("\n".join(rows) + "\n")
    td = Treedata.from_file(path, random_state=0)
    rf = StochasticForest(n_trees=3, m_try=2, node_size=1, random_state=0).fit(td, "N:y")
    _ = rf.predict(td)
    _ = rf.trees_[0].export_rules()


def test_gbt_smoke():
    td = Treedata([["1", "1.5", "2", "2.5"], ["1", "2", "3", "4"], ["A", "A", "B", "B"]],
                  ["N:y", "N:num", "C:cat"], [True, True, False], random_state=0)
    gbt = StochasticForest(mode="GBT", n_trees=2, node_size=1, random_state=0).fit(td, "N:y")
    pred = gbt.predict(td)
    assert pred.shape == (4,)
    assert np.all(np.isfinite(pred))
