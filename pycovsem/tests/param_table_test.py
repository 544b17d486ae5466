#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Fri Jun 23 09:12:40 2023

@author: lukepinkel
"""
import pytest
import numpy as np
import pandas as pd

from pycovsem.pysem.param_table import ParameterTable
from pycovsem.pysem.errors import ModelSpecificationError
from pycovsem.pysem.watershed import MEASUREMENT_MODEL, MIMIC_MODEL, WATERSHED_MODEL, FA_TRACTS


WATERSHED_VARS = (["gf_MatrixReasoning", "WM_DigitRecall", "WM_DotMatrix",
                   "WM_BackwardDigit", "WM_MrX", "PS_PhAB_il", "PS_Teach_il",
                   "PS_DKEFS_il"] + FA_TRACTS)

FORMULA0 = """
f1 =~ x1 + x2 + x3
f2 =~ x4 + x5 + x6
f2 ~ f1
"""

FORMULA1 = """
y1 ~ x1 + x2
y2 ~ y1 + x1
"""


def make_cov(names, seed=0):
    rng = np.random.default_rng(seed)
    X = rng.normal(size=(200, len(names)))
    S = np.cov(X, rowvar=False) + np.eye(len(names))
    return pd.DataFrame(S, index=names, columns=names)


def test_param_table():
    S = make_cov([f"x{i}" for i in range(1, 7)])
    ptable = ParameterTable(FORMULA0, S)
    param_df = ptable.param_df
    assert (np.all(param_df.loc[param_df["fixed"], "free"] == 0))
    assert (np.all(param_df.loc[~param_df["fixed"], "free"] == np.arange(1, ptable.n_free+1)))
    # 6 loadings, 1 regression, 6 residual variances
    assert (ptable.n_free == 13)
    assert (ptable.degrees_of_freedom == 21 - 13)
    latent_var = param_df.loc[(param_df["rel"] == "~~") & param_df["lhs"].isin(["f1", "f2"])]
    assert (np.all(latent_var["fixed"]))
    assert (np.allclose(latent_var["fixedval"], 1.0))
    assert (set(param_df["mat"]) == {0, 1, 2, 3})
    assert (ptable.obs_names == [f"x{i}" for i in range(1, 7)])
    assert (ptable.lav_names == ["f1", "f2"])


def test_marker_identification():
    S = make_cov([f"x{i}" for i in range(1, 7)])
    ptable = ParameterTable(FORMULA0, S, std_lv=False)
    param_df = ptable.param_df
    loadings = param_df.loc[param_df["rel"] == "=~"]
    fixed = loadings.loc[loadings["fixed"], "rhs"].tolist()
    assert (fixed == ["x1", "x4"])
    assert (ptable.n_free == 13)
    latent_var = param_df.loc[(param_df["rel"] == "~~") & param_df["lhs"].isin(["f1", "f2"])]
    assert (not np.any(latent_var["fixed"]))

    ptable = ParameterTable("f1 =~ NA*x1 + x2 + x3", S, std_lv=False)
    loadings = ptable.param_df.loc[ptable.param_df["rel"] == "=~"]
    assert (loadings.loc[loadings["fixed"], "rhs"].tolist() == ["x2"])


def test_path_model():
    S = make_cov(["x1", "x2", "y1", "y2"])
    ptable = ParameterTable(FORMULA1, S)
    param_df = ptable.param_df
    # 4 regressions, var(x1), var(x2), cov(x1, x2), 2 residual variances
    assert (ptable.n_free == 9)
    assert (ptable.degrees_of_freedom == 1)
    assert (ptable.lav_names == ["x1", "x2", "y1", "y2"])
    cov = param_df.loc[(param_df["rel"] == "~~") & (param_df["lhs"] != param_df["rhs"])]
    assert (len(cov) == 1)
    assert (set(cov[["lhs", "rhs"]].values.flatten()) == {"x1", "x2"})
    row = cov.iloc[0]
    assert (np.isclose(row["start"], S.loc["x1", "x2"]))
    # phantom latents carry the observed variance in Phi, Theta is empty
    assert (np.all(param_df.loc[param_df["rel"] != "~", "mat"] == 2))
    L = ptable.start_mats[0]
    assert (np.allclose(L.values, np.eye(4)))


def test_watershed_tables():
    S = make_cov(WATERSHED_VARS)
    ptable = ParameterTable(WATERSHED_MODEL, S)
    assert (ptable.p == 18)
    assert (ptable.n_free == 93)
    assert (ptable.degrees_of_freedom == 78)
    param_df = ptable.param_df
    gf_res = param_df.loc[(param_df["lhs"] == "gf_MatrixReasoning") & (param_df["rel"] == "~~")]
    assert (gf_res["fixed"].all())
    assert (np.allclose(gf_res["fixedval"], 0.0))

    ptable = ParameterTable(MEASUREMENT_MODEL, S)
    assert (ptable.p == 8)
    assert (ptable.degrees_of_freedom == 18)
    ptable = ParameterTable(MIMIC_MODEL, S)
    assert (ptable.degrees_of_freedom == 18)


def test_unused_variables_are_ignored():
    S = make_cov(["x1", "x2", "x3", "unused"])
    ptable = ParameterTable("f =~ x1 + x2 + x3", S)
    assert (ptable.obs_names == ["x1", "x2", "x3"])
    assert (ptable.sample_cov.shape == (3, 3))


@pytest.mark.parametrize("formula", [
    "f =~ x1 + x2 + x9",
    "f =~ x1 + x2 + x3\nf =~ x1",
    "x1 ~~ x2\nx2 ~~ x1",
    "x1 ~ x1",
    "x1 ~ x2\nx2 ~ x3\nx3 ~ x1",
    "f =~ x1 + x2 + x3\ng =~ x4 + x5 + x6\nf ~ g\ng ~ f",
])
def test_specification_errors(formula):
    S = make_cov([f"x{i}" for i in range(1, 7)])
    with pytest.raises(ModelSpecificationError):
        ParameterTable(formula, S)
