#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Tue Jun 27 11:05:48 2023

@author: lukepinkel
"""
import pytest
import numpy as np
import pandas as pd

from pycovsem.pysem.model_data import ModelData
from pycovsem.pysem.watershed import (fit_watershed_models, FA_TRACTS, MODELS,
                                      COHORT_SAMPLE_SIZES)

WM_IND = ["WM_DigitRecall", "WM_DotMatrix", "WM_BackwardDigit", "WM_MrX"]
PS_IND = ["PS_PhAB_il", "PS_Teach_il", "PS_DKEFS_il"]
OBS = ["gf_MatrixReasoning"] + WM_IND + PS_IND + FA_TRACTS


def watershed_cov():
    """Population covariance of a watershed model with known parameters"""
    lav = ["gf", "WM", "PS"] + FA_TRACTS
    q, p = len(lav), len(OBS)
    B = np.zeros((q, q))
    B[0, 1], B[0, 2] = 0.3, 0.4
    B[1, 3:] = 0.1
    B[2, 3:] = np.tile([0.15, -0.05], 5)
    F = np.eye(q)
    F[1, 2] = F[2, 1] = 0.3
    F[3:, 3:] = 0.7 * np.eye(10) + 0.3
    L = np.zeros((p, q))
    L[0, 0] = 0.7
    L[1:5, 1] = [0.7, 0.6, 0.5, 0.6]
    L[5:8, 2] = [0.8, 0.6, 0.7]
    L[8:, 3:] = np.eye(10)
    P = np.diag([0.0, 0.5, 0.6, 0.7, 0.6, 0.4, 0.6, 0.5] + [0.0] * 10)
    IB = np.linalg.inv(np.eye(q) - B)
    Sigma = L.dot(IB).dot(F).dot(IB.T).dot(L.T) + P
    return pd.DataFrame(Sigma, index=OBS, columns=OBS)


def get_est(res, lhs, rel, rhs):
    est = res.estimates
    ix = (est["lhs"] == lhs) & (est["rel"] == rel) & (est["rhs"] == rhs)
    return est.loc[ix, "est"].values[0]


def test_watershed_models():
    S = watershed_cov()
    results = fit_watershed_models(S, n_obs=COHORT_SAMPLE_SIZES["CALM"])
    assert (list(results) == list(MODELS))
    assert (results["three_factor"].df == 18)
    assert (results["mimic"].df == 18)
    assert (results["watershed"].df == 78)
    for name, res in results.items():
        assert (res.converged)
        assert (not res.rank_deficient)
        assert (res.fmin < 1e-8)
        assert (res.n_obs == 551)
        std_all = res.estimates.loc[res.estimates["rel"] == "=~", "std_all"]
        assert (np.all(np.abs(std_all) <= 1.0 + 1e-8))
    res = results["watershed"]
    assert (np.isclose(get_est(res, "gf", "~", "PS"), 0.4, atol=1e-4))
    assert (np.isclose(get_est(res, "gf", "~", "WM"), 0.3, atol=1e-4))
    assert (np.isclose(get_est(res, "PS", "~~", "WM"), 0.3, atol=1e-4))
    assert (np.isclose(get_est(res, "WM", "~", "fa_UF"), 0.1, atol=1e-4))
    assert (np.isclose(get_est(res, "PS", "~", "fa_SLF"), -0.05, atol=1e-4))
    assert (np.isclose(get_est(res, "gf_MatrixReasoning", "~~", "gf_MatrixReasoning"), 0.0))
    assert (set(FA_TRACTS) <= set(res.model_mats["B"].columns))


def test_concurrent_fits():
    S = watershed_cov()
    S["unused"] = 0.0
    S.loc["unused"] = 0.0
    S.loc["unused", "unused"] = 1.0
    data = ModelData(S, 300)
    sequential = fit_watershed_models(data, models=["three_factor", "mimic"],
                                      fit_kws=dict(fit_baseline=False))
    concurrent = fit_watershed_models(data, models=["three_factor", "mimic"], max_workers=2,
                                      fit_kws=dict(fit_baseline=False))
    for name in sequential:
        assert (np.allclose(sequential[name].theta, concurrent[name].theta))
        assert ("unused" not in sequential[name].implied_cov.columns)
        assert (np.isnan(sequential[name].fit_indices["cfi"]))


def test_unknown_model():
    with pytest.raises(KeyError):
        fit_watershed_models(watershed_cov(), n_obs=551, models=["bifactor"])
