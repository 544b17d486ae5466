#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Sat Jun 24 14:02:19 2023

@author: lukepinkel
"""
import pytest
import numpy as np
import pandas as pd

from pycovsem.pysem.sem import SEM
from pycovsem.pysem.errors import NonConvergenceSignal
from pycovsem.utilities.numerical_derivs import fo_fc_cd, jac_cd
from pycovsem.utilities.linalg_operations import _vech, _invech


FORMULA0 = """
f1 =~ x1 + x2 + x3
f2 =~ x4 + x5 + x6
f3 =~ x7 + x8 + x9
f2 ~ f1 + z1
f3 ~ f2 + f1
x1 ~~ x4
"""

FORMULA1 = """
y1 ~ z1 + z2
y2 ~ y1 + z1
y3 ~ y2
"""

FORMULA2 = """
g =~ f1 + f2
f1 =~ x1 + x2 + x3
f2 =~ x4 + x5 + x6
"""


def make_cov(names, seed=0):
    rng = np.random.default_rng(seed)
    A = rng.normal(size=(len(names), len(names)))
    S = A.dot(A.T) / len(names) + np.eye(len(names))
    return pd.DataFrame(S, index=names, columns=names)


NAMES = [f"x{i}" for i in range(1, 10)] + ["y1", "y2", "y3", "z1", "z2"]


@pytest.mark.parametrize("formula", [FORMULA0, FORMULA1, FORMULA2])
@pytest.mark.parametrize("std_lv", [True, False])
def test_dsigma(formula, std_lv):
    model = SEM(formula, make_cov(NAMES), n_obs=300, std_lv=std_lv)
    x = model.theta.copy() * 1.2 + 0.02
    dsigma_exact = model.cov_model.dsigma(x)
    dsigma_approx = jac_cd(model.cov_model.vech_implied_cov, x)
    assert (dsigma_exact.shape == (model.p * (model.p + 1) // 2, model.n_params))
    assert (np.allclose(dsigma_exact, dsigma_approx, atol=1e-5, rtol=1e-5))


@pytest.mark.parametrize("estimator", ["ML", "GLS"])
@pytest.mark.parametrize("formula", [FORMULA0, FORMULA1, FORMULA2])
def test_gradient(formula, estimator):
    model = SEM(formula, make_cov(NAMES), n_obs=300, estimator=estimator)
    x = model.theta.copy() * 1.2 + 0.02
    grad_exact = model.gradient(x)
    grad_approx = fo_fc_cd(model.func, x)
    assert (np.allclose(grad_exact, grad_approx, atol=1e-4, rtol=1e-4))


def test_information():
    # the expected information is the Gauss-Newton weight of the discrepancy
    S = make_cov(NAMES)
    model = SEM(FORMULA0, S, n_obs=300)
    x = model.theta.copy()
    H = model.information(x)
    D = model.cov_model.dsigma(x)
    Sigma = model.cov_model.implied_cov(x)
    Sinv = np.linalg.inv(Sigma)
    H_alt = np.zeros_like(H)
    for i in range(model.n_params):
        Di = _invech(D[:, i])
        for j in range(model.n_params):
            Dj = _invech(D[:, j])
            H_alt[i, j] = np.trace(Sinv.dot(Di).dot(Sinv).dot(Dj))
    assert (np.allclose(H, H_alt))
    assert (np.allclose(H, H.T))


def test_implied_cov():
    S = make_cov(NAMES)
    model = SEM(FORMULA1, S, n_obs=300)
    cov_model = model.cov_model
    x = model.theta.copy() * 1.1 + 0.05
    L, B, F, P = cov_model.par_to_model_mats(x)
    IB = np.linalg.inv(np.eye(B.shape[0]) - B)
    Sigma = L.dot(IB).dot(F).dot(IB.T).dot(L.T) + P
    assert (np.allclose(cov_model.implied_cov(x), Sigma))
    assert (np.allclose(_vech(Sigma), cov_model.vech_implied_cov(x)))
    mats = cov_model.to_dataframes(x)
    assert (list(mats) == ["L", "B", "F", "P"])
    assert (list(mats["L"].index) == model.param_table.obs_names)
    assert (list(mats["B"].columns) == model.param_table.lav_names)


def test_singular_ib():
    model = SEM(FORMULA1, make_cov(NAMES), n_obs=300)
    q = model.cov_model.q1
    B = np.zeros((q, q))
    B[0, 1] = B[1, 0] = 1.0
    with pytest.raises(NonConvergenceSignal):
        model.cov_model.inverse_ib(B)


def test_baseline_structure():
    S = make_cov(NAMES)
    model = SEM(FORMULA0, S, n_obs=300)
    baseline = SEM(model.baseline_formula(), model.data, n_obs=300)
    assert (baseline.cov_model.q1 == 0)
    assert (baseline.n_params == model.p)
    x = baseline.theta.copy() * 1.3
    dsigma_exact = baseline.cov_model.dsigma(x)
    dsigma_approx = jac_cd(baseline.cov_model.vech_implied_cov, x)
    assert (np.allclose(dsigma_exact, dsigma_approx, atol=1e-6))
