#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Sat May 23 03:54:38 2020

@author: lukepinkel
"""
import numpy as np
import scipy as sp
import scipy.stats
import pandas as pd


def get_param_table(params, se_params, labels=None, alpha=0.05):
    """
    Wald table for a set of estimates.

    Parameters
    ----------
    params : array-like
        Estimates.
    se_params : array-like
        Standard errors, NaN for fixed parameters.
    labels : pandas.DataFrame, optional
        Columns placed in front of the estimates (e.g. lhs, rel, rhs).
    alpha : float, optional
        The level of the confidence intervals is 1 - alpha.

    Returns
    -------
    df : pandas.DataFrame
        est, SE, z, two sided p and the confidence limits.
    """
    est = np.asarray(params, dtype=float).reshape(-1)
    se = np.asarray(se_params, dtype=float).reshape(-1)
    with np.errstate(divide="ignore", invalid="ignore"):
        z = est / se
    q = sp.stats.norm.ppf(1.0 - alpha / 2.0)
    ci_label = f"CI{100*(1-alpha):g}"
    df = pd.DataFrame({"est": est, "SE": se, "z": z,
                       "p": 2.0 * sp.stats.norm.sf(np.abs(z)),
                       f"Lower{ci_label}": est - q * se,
                       f"Upper{ci_label}": est + q * se})
    if labels is not None:
        df = pd.concat([labels.reset_index(drop=True), df], axis=1)
    return df


def format_table(df, cols, digits=3):
    return df[cols].to_string(index=False, float_format=f"{{:.{digits}f}}".format)
