import numpy as np
import pandas as pd
import pytest

from dataset import MISSING_INT, UNLABELED, DataSet, is_acceptable_float, is_acceptable_int


def test_from_arrays_names_attributes():
    ds = DataSet.from_arrays(float_attr=[[1.0, 2.0], [3.0, 4.0]], int_attr=[[1], [2]])
    assert ds.size() == 2
    assert ds.float_names == ["f0", "f1"]
    assert ds.int_names == ["i0"]
    assert ds.num_numeric == 3
    assert (ds.categories == UNLABELED).all()


def test_block_shape_mismatch_raises():
    with pytest.raises(ValueError):
        DataSet(float_names=["a", "b"], float_attr=np.zeros((3, 3)))


def test_numeric_matrix_maps_missing_int_to_nan():
    ds = DataSet.from_arrays(float_attr=[[0.5], [1.5]], int_attr=[[4], [MISSING_INT]])
    X = ds.numeric_matrix()
    assert X.shape == (2, 2)
    assert X[0, 0] == 4.0
    assert np.isnan(X[1, 0])
    assert X[1, 1] == 1.5
    assert not is_acceptable_int(ds.int_attr[1, 0])


def test_get_instance_is_a_row_view():
    ds = DataSet.from_arrays(float_attr=[[1.0, 2.0], [3.0, 4.0]], categories=[0, 1])
    inst = ds[1]
    assert inst.category == 1
    np.testing.assert_array_equal(inst.numeric(), [3.0, 4.0])
    copy = inst.copy_content()
    copy.float_attr[0] = -1.0
    assert ds.float_attr[1, 0] == 3.0


def test_subset_append_and_priors():
    ds = DataSet.from_arrays(float_attr=np.arange(8.0).reshape(4, 2), categories=[0, 0, 1, 1])
    sub = ds.subset([3, 0])
    np.testing.assert_array_equal(sub.categories, [1, 0])
    np.testing.assert_array_equal(sub.float_attr[0], [6.0, 7.0])

    joined = ds.append(sub)
    assert joined.size() == 6
    assert joined.count_categories() == 2
    np.testing.assert_allclose(joined.class_priors(), [0.5, 0.5])


def test_append_rejects_other_schema():
    a = DataSet.from_arrays(float_attr=[[1.0]])
    b = DataSet.from_arrays(float_attr=[[1.0, 2.0]])
    with pytest.raises(ValueError):
        a.append(b)


def test_dataframe_conversion():
    df = pd.DataFrame({
        "count": [1, 2, 3],
        "weight": [0.1, np.nan, 0.3],
        "color": ["red", "blue", "red"],
        "label": ["a", "b", "a"],
    })
    ds = DataSet.from_dataframe(df, label_col="label")
    assert ds.int_names == ["count"]
    assert ds.float_names == ["weight"]
    assert ds.nominal_names == ["color"]
    np.testing.assert_array_equal(ds.categories, [0, 1, 0])

    back = ds.to_dataframe()
    assert list(back["count"]) == [1, 2, 3]
    assert back["weight"].isna().sum() == 1
    assert list(back["category"]) == [0, 1, 0]


def test_dataframe_round_trip_keeps_missing_ints():
    ds = DataSet.from_arrays(int_attr=[[1], [MISSING_INT], [3]], float_attr=[[0.5], [1.5], [np.nan]],
                             categories=[0, 1, 1])
    frame = ds.to_dataframe()
    assert frame["i0"].isna().tolist() == [False, True, False]

    back = DataSet.from_dataframe(frame, label_col="category")
    assert back.int_names == ["i0"]
    assert back.float_names == ["f0"]
    np.testing.assert_array_equal(back.int_attr[:, 0], [1, MISSING_INT, 3])
    np.testing.assert_array_equal(back.float_attr[:, 0], [0.5, 1.5, np.nan])
    np.testing.assert_array_equal(back.categories, [0, 1, 1])


def test_acceptable_values():
    np.testing.assert_array_equal(is_acceptable_float([1.0, np.nan, np.inf]), [True, False, False])
    np.testing.assert_array_equal(is_acceptable_int([3, MISSING_INT]), [True, False])
