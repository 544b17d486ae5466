#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Mon Jun 26 15:21:37 2023

@author: lukepinkel
"""
import numpy as np
import scipy as sp
import scipy.stats

from pycovsem.pysem import fit_measures as fm


S = np.array([[1.0, 0.4, 0.3],
              [0.4, 1.0, 0.2],
              [0.3, 0.2, 1.0]])


def test_chi2_test():
    chi2, p = fm.chi2_test(0.05, 4, 201)
    assert (np.isclose(chi2, 10.0))
    assert (np.isclose(p, sp.stats.chi2.sf(10.0, 4)))
    chi2, p = fm.chi2_test(-1e-14, 4, 201)
    assert (chi2 == 0.0)
    chi2, p = fm.chi2_test(0.0, 0, 201)
    assert (p == 1.0)
    chi2, p = fm.chi2_test(0.05, 0, 201)
    assert (np.isnan(p))
    chi2, p = fm.chi2_test(0.0, -1, 201)
    assert (np.isnan(p))


def test_cfi_tli():
    assert (fm.cfi(3.0, 5, 200.0, 10) == 1.0)
    assert (np.isclose(fm.cfi(25.0, 5, 205.0, 10), 1.0 - 20.0 / 195.0))
    assert (fm.cfi(0.0, 0, 0.0, 3) == 1.0)
    assert (np.isclose(fm.tli(25.0, 5, 205.0, 10), (20.5 - 5.0) / 19.5))
    assert (np.isnan(fm.tli(0.0, 0, 205.0, 10)))


def test_rmsea():
    assert (np.isnan(fm.rmsea(10.0, 0, 100)))
    assert (fm.rmsea(3.0, 5, 100) == 0.0)
    assert (np.isclose(fm.rmsea(30.0, 10, 101), np.sqrt(20.0 / 1000.0)))
    lower, upper = fm.rmsea_ci(30.0, 10, 101)
    est = fm.rmsea(30.0, 10, 101)
    assert (lower < est < upper)
    # the bounds invert the noncentral chi square cdf
    a = 0.05
    assert (np.isclose(sp.stats.ncx2.cdf(30.0, 10, lower**2 * 1000.0), 1 - a, atol=1e-6))
    assert (np.isclose(sp.stats.ncx2.cdf(30.0, 10, upper**2 * 1000.0), a, atol=1e-6))
    lower, upper = fm.rmsea_ci(2.0, 10, 101)
    assert (lower == 0.0 and upper == 0.0)
    assert (all(np.isnan(fm.rmsea_ci(2.0, 0, 101))))
    pclose = fm.rmsea_pclose(30.0, 10, 101)
    assert (0.0 < pclose < 1.0)


def test_srmr_gfi():
    assert (np.isclose(fm.srmr(S, S), 0.0))
    assert (np.isclose(fm.gfi(S, S), 1.0))
    Sigma = np.eye(3)
    resid = (S - Sigma)[np.tril_indices(3)]
    assert (np.isclose(fm.srmr(Sigma, S), np.sqrt(np.sum(resid**2) / 6.0)))
    assert (np.isnan(fm.agfi(Sigma, S, 0)))
    assert (fm.agfi(Sigma, S, 3) < fm.gfi(Sigma, S))


def test_fit_measures():
    Sigma = np.eye(3)
    fval = np.linalg.slogdet(Sigma)[1] + np.trace(np.linalg.solve(Sigma, S)) \
        - np.linalg.slogdet(S)[1] - 3
    baseline = dict(chi2=99.0 * fval, df=3, converged=True)
    measures = fm.fit_measures(Sigma, S, fval, 3, 3, 100, baseline=baseline)
    assert (np.isclose(measures["chi2"], 99.0 * fval))
    assert (np.isclose(measures["cfi"], 0.0))
    assert (measures["baseline_converged"])
    ll = fm.loglike(Sigma, S, 100)
    assert (np.isclose(measures["aic"], -2 * ll + 6))
    assert (np.isclose(measures["bic"], -2 * ll + np.log(100) * 3))

    measures = fm.fit_measures(Sigma, S, fval, 3, 3, 100, baseline=dict(baseline, converged=False))
    assert (not measures["baseline_converged"])
    for key in ("cfi", "tli", "rmsea", "rmsea_ci_lower", "rmsea_ci_upper"):
        assert (np.isnan(measures[key]))
    assert (np.isfinite(measures["srmr"]))
