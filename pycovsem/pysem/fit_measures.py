# -*- coding: utf-8 -*-
"""
Created on Tue Oct  5 09:28:08 2021

@author: lukepinkel
"""
import numpy as np
import scipy as sp
import scipy.stats
import scipy.optimize


def srmr(Sigma, S):
    """Standardized root mean square residual over the nonredundant elements"""
    p = S.shape[0]
    y = 0.0
    t = (p + 1.0) * p
    for i in range(p):
        for j in range(i+1):
            y += (Sigma[i, j]-S[i, j])**2/(S[i, i]*S[j, j])
    y = np.sqrt((2.0 / t) * y)
    return y


def gfi(Sigma, S):
    p = S.shape[0]
    tmp1 = np.linalg.solve(Sigma, S)
    tmp2 = tmp1 - np.eye(p)
    y = 1.0 - np.trace(np.dot(tmp2, tmp2)) / np.trace(np.dot(tmp1, tmp1))
    return y


def agfi(Sigma, S, df):
    if df <= 0:
        return np.nan
    p = S.shape[0]
    t = (p + 1.0) * p
    y = 1.0 - (t / (2.0*df)) * (1.0-gfi(Sigma, S))
    return y


def chi2_test(fval, df, n_obs, atol=1e-6):
    """
    Likelihood ratio statistic (n - 1) F against the saturated model.
    A just identified model (df = 0) that reproduces S has p = 1, with
    df < 0 or a nonzero statistic at df = 0 the p-value is NaN.
    """
    chi2 = max((n_obs - 1.0) * fval, 0.0)
    if df > 0:
        pval = sp.stats.chi2.sf(chi2, df)
    elif df == 0 and chi2 <= atol:
        pval = 1.0
    else:
        pval = np.nan
    return chi2, pval


def rmsea(chi2, df, n_obs):
    if df <= 0:
        return np.nan
    return np.sqrt(np.maximum(chi2 - df, 0.0) / (df * (n_obs - 1.0)))


def _ncp_for_cdf(chi2, df, target):
    """Noncentrality at which P(X <= chi2) equals target, 0 if below the central case"""
    if sp.stats.chi2.cdf(chi2, df) < target:
        return 0.0

    def func(ncp):
        return sp.stats.ncx2.cdf(chi2, df, ncp) - target
    lo = 1e-10
    if func(lo) <= 0:
        return 0.0
    hi = max(chi2 - df, 1.0)
    while func(hi) > 0:
        hi *= 2.0
    return sp.optimize.brentq(func, lo, hi, xtol=1e-10)


def rmsea_ci(chi2, df, n_obs, level=0.90):
    """
    Confidence interval of the RMSEA obtained by inverting the noncentral
    chi square distribution of the test statistic
    """
    if df <= 0:
        return np.nan, np.nan
    a = (1.0 - level) / 2.0
    ncp_lower = _ncp_for_cdf(chi2, df, 1.0 - a)
    ncp_upper = _ncp_for_cdf(chi2, df, a)
    scale = df * (n_obs - 1.0)
    return np.sqrt(ncp_lower / scale), np.sqrt(ncp_upper / scale)


def rmsea_pclose(chi2, df, n_obs, close=0.05):
    """P(RMSEA <= close) test, probability of a statistic at least as large"""
    if df <= 0:
        return np.nan
    ncp = close**2 * df * (n_obs - 1.0)
    return sp.stats.ncx2.sf(chi2, df, ncp)


def cfi(chi2, df, chi2_base, df_base):
    num = max(chi2 - df, 0.0)
    den = max(chi2 - df, chi2_base - df_base, 0.0)
    if den == 0:
        return 1.0
    return 1.0 - num / den


def tli(chi2, df, chi2_base, df_base):
    if df <= 0 or df_base <= 0:
        return np.nan
    base_ratio = chi2_base / df_base
    if base_ratio == 1.0:
        return np.nan
    return (base_ratio - chi2 / df) / (base_ratio - 1.0)


def loglike(Sigma, S, n_obs):
    """Multivariate normal log likelihood of the sample covariance"""
    p = S.shape[0]
    lndSigma = np.linalg.slogdet(Sigma)[1]
    trSV = np.trace(np.linalg.solve(Sigma, S))
    return -n_obs / 2.0 * (lndSigma + trSV + p * np.log(2.0 * np.pi))


def information_criteria(ll, n_params, n_obs):
    aic = -2.0 * ll + 2.0 * n_params
    bic = -2.0 * ll + np.log(n_obs) * n_params
    return aic, bic


def fit_measures(Sigma, S, fval, df, n_params, n_obs, baseline=None):
    """
    Global fit measures of a fitted covariance structure.

    Parameters
    ----------
    Sigma, S : (p, p) ndarray
        Implied and sample covariance.
    fval : float
        Minimized discrepancy.
    df : int
        Degrees of freedom.
    n_params : int
        Number of free parameters.
    n_obs : int
        Sample size.
    baseline : dict, optional
        `chi2`, `df` and `converged` of the independence model.  Measures
        relative to the baseline are NaN when it is missing or did not
        converge.

    Returns
    -------
    measures : dict
    """
    chi2, pval = chi2_test(fval, df, n_obs)
    ll = loglike(Sigma, S, n_obs)
    aic, bic = information_criteria(ll, n_params, n_obs)
    baseline_ok = baseline is not None and baseline.get("converged", False)
    if baseline_ok:
        chi2_b, df_b = baseline["chi2"], baseline["df"]
        cfi_ = cfi(chi2, df, chi2_b, df_b)
        tli_ = tli(chi2, df, chi2_b, df_b)
        rmsea_ = rmsea(chi2, df, n_obs)
        lower, upper = rmsea_ci(chi2, df, n_obs)
        pclose = rmsea_pclose(chi2, df, n_obs)
    else:
        chi2_b = df_b = np.nan
        cfi_ = tli_ = rmsea_ = lower = upper = pclose = np.nan
    measures = dict(chi2=chi2, df=df, pvalue=pval,
                    baseline_chi2=chi2_b, baseline_df=df_b,
                    baseline_converged=bool(baseline_ok),
                    cfi=cfi_, tli=tli_, rmsea=rmsea_,
                    rmsea_ci_lower=lower, rmsea_ci_upper=upper,
                    rmsea_pvalue=pclose, srmr=srmr(Sigma, S),
                    gfi=gfi(Sigma, S), agfi=agfi(Sigma, S, df),
                    loglik=ll, aic=aic, bic=bic, fmin=fval, npar=n_params,
                    n_obs=n_obs)
    return measures
