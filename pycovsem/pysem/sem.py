#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Thu Nov  5 20:08:47 2020

@author: lukepinkel
"""
import logging
import warnings
from dataclasses import dataclass, field

import numpy as np
import pandas as pd

from .cov_model import CovarianceStructure
from .errors import (InputShapeError, NonConvergenceSignal, RankDeficiencyError,
                     RankDeficiencyWarning)
from .fit_measures import fit_measures, chi2_test
from .fitfunctions import LikelihoodObjective, GLSObjective
from .model_data import ModelData
from .optimizer import FisherScoring, minimize_scipy
from .param_table import ParameterTable
from ..utilities.func_utils import handle_default_kws, safe_divide
from ..utilities.linalg_operations import corr_scale, min_rel_eig
from ..utilities.numerical_derivs import so_gc_cd, jac_cd
from ..utilities.output import get_param_table, format_table

logger = logging.getLogger(__name__)

_kept_when_rank_deficient = ("npar", "n_obs", "df", "fmin", "baseline_converged")


@dataclass(frozen=True, eq=False)
class SEMResults:
    """
    Everything produced by one call to `SEM.fit`.  Arrays are read only.

    Attributes
    ----------
    theta : ndarray
        Free parameter estimates.
    theta_cov : ndarray
        Asymptotic covariance of theta, NaN if the information matrix is
        singular.
    estimates : pandas.DataFrame
        All parameters (free and fixed) with standard errors, Wald tests and
        the std_lv and std_all standardized solutions.
    fit_indices : pandas.Series
        Chi square test, baseline comparison, RMSEA, SRMR, GFI, AGFI,
        log likelihood and information criteria.
    r_squared : pandas.Series
        Explained variance of indicators and endogenous variables.
    converged : bool
        False when the optimizer stopped without meeting its criteria.
    rank_deficient : bool
        True when the information matrix was singular at the estimate.
    """
    theta: np.ndarray
    theta_cov: np.ndarray
    estimates: pd.DataFrame
    implied_cov: pd.DataFrame
    sample_cov: pd.DataFrame
    model_mats: dict
    fit_indices: pd.Series
    r_squared: pd.Series
    residuals: pd.DataFrame
    cor_residuals: pd.DataFrame
    fmin: float
    df: int
    n_obs: int
    n_params: int
    converged: bool
    n_iter: int
    message: str
    rank_deficient: bool
    min_eigenvalue: float
    estimator: str = "ML"
    method: str = "fisher"
    information: str = "expected"
    theta_names: list = field(default_factory=list)

    def __post_init__(self):
        for arr in (self.theta, self.theta_cov):
            arr.setflags(write=False)

    @property
    def se(self):
        return np.sqrt(np.diag(self.theta_cov))

    @property
    def params(self):
        """Free parameters only, in theta order"""
        est = self.estimates
        return est.loc[est["free"] > 0].sort_values("free").reset_index(drop=True)

    @property
    def standardized(self):
        cols = ["lhs", "rel", "rhs", "est", "std_lv", "std_all", "std_all_SE"]
        return self.estimates[cols]

    @property
    def baseline_converged(self):
        return bool(self.fit_indices["baseline_converged"])

    def summary(self, standardized=True):
        """
        Text summary of the fit, laid out in sections for loadings,
        regressions, covariances, variances and fit measures.
        """
        lines = [f"{self.estimator} estimation ({self.method}) "
                 f"{'converged' if self.converged else 'did NOT converge'} "
                 f"after {self.n_iter} iterations",
                 f"  Number of observations {self.n_obs:>12d}",
                 f"  Number of free parameters {self.n_params:>9d}",
                 f"  Degrees of freedom {self.df:>16d}"]
        if self.rank_deficient:
            lines.append("  Information matrix is singular: standard errors unavailable")
        lines.extend(["", "Fit measures", self.fit_indices.to_string(), ""])
        cols = ["lhs", "rhs", "est", "SE", "z", "p"]
        if standardized:
            cols += ["std_lv", "std_all"]
        est = self.estimates
        is_var = (est["rel"] == "~~") & (est["lhs"] == est["rhs"])
        sections = [("Latent variables", est["rel"] == "=~"),
                    ("Regressions", est["rel"] == "~"),
                    ("Covariances", (est["rel"] == "~~") & ~is_var),
                    ("Variances", is_var)]
        for title, ix in sections:
            if np.any(ix):
                lines.extend([title, format_table(est.loc[ix], cols), ""])
        if len(self.r_squared) > 0:
            lines.extend(["R-square", self.r_squared.to_string(float_format="{:.3f}".format)])
        return "\n".join(lines)


class SEM(object):
    """
    Covariance structure model fitted to a sample covariance matrix.

    Parameters
    ----------
    formula : str
        Model string, e.g. "f =~ x1 + x2 + x3".
    sample_cov : pandas.DataFrame, ndarray or ModelData
        Sample covariance matrix over named observed variables.  Variables
        the model does not reference are dropped.
    n_obs : int
        Sample size the covariance matrix was computed from.  Not needed when
        `sample_cov` is a ModelData.
    estimator : {"ML", "GLS"}
        Discrepancy function.
    std_lv : bool
        Identify latent variables by fixing their (residual) variances to one
        rather than fixing the first loading.
    model_kws : dict, optional
        auto_fix_single, var_floor.
    """
    fit_functions = {"ML": LikelihoodObjective, "GLS": GLSObjective}
    default_model_kws = dict(auto_fix_single=True, var_floor=1e-6)
    default_fisher_options = dict(max_iter=500, ftol=1e-12, xtol=1e-9)

    def __init__(self, formula, sample_cov, n_obs=None, estimator="ML", std_lv=True,
                 model_kws=None):
        model_kws = handle_default_kws(model_kws, self.default_model_kws)
        estimator = str(estimator).upper()
        if estimator not in self.fit_functions:
            raise ValueError(f"Unknown estimator '{estimator}', use one of {list(self.fit_functions)}")
        if isinstance(sample_cov, ModelData):
            data = sample_cov if n_obs is None else ModelData(sample_cov.sample_cov_df, n_obs)
        else:
            data = ModelData.from_samplestats(sample_cov, n_obs)
        self.param_table = ParameterTable(formula, data.sample_cov_df, std_lv=std_lv,
                                          **model_kws)
        self.data = data.subset_and_order(self.param_table.obs_names)
        self.cov_model = CovarianceStructure(self.param_table)
        self.fit_function = self.fit_functions[estimator](self.data)
        self.formula = formula
        self.estimator = estimator
        self.std_lv = std_lv
        self.model_kws = model_kws
        self.n_obs = self.data.n_obs
        self.p = self.param_table.p
        self.n_params = self.cov_model.nt1
        self.df = self.param_table.degrees_of_freedom
        self.theta = self.cov_model.theta.copy()
        self.theta_names = self.cov_model.theta_names
        logger.info("Built model with %d observed variables, %d free parameters, %d df",
                    self.p, self.n_params, self.df)

    def func(self, theta):
        Sigma = self.cov_model.implied_cov(theta)
        return self.fit_function.function(Sigma)

    def gradient(self, theta):
        Sigma = self.cov_model.implied_cov(theta)
        dSigma = self.cov_model.dsigma(theta)
        return self.fit_function.gradient(Sigma, dSigma)

    def information(self, theta):
        Sigma = self.cov_model.implied_cov(theta)
        dSigma = self.cov_model.dsigma(theta)
        return self.fit_function.information(Sigma, dSigma)

    def hessian_observed(self, theta):
        """Central difference hessian of the discrepancy"""
        H = so_gc_cd(self.gradient, theta)
        return H

    def _check_theta(self, theta_init):
        if theta_init is None:
            return self.theta.copy()
        theta = np.asarray(theta_init, dtype=float).reshape(-1)
        if theta.shape[0] != self.n_params or not np.all(np.isfinite(theta)):
            raise InputShapeError(
                f"theta_init must hold {self.n_params} finite values, got shape {theta.shape}")
        try:
            f0 = self.func(self.cov_model.project(theta))
        except NonConvergenceSignal as exc:
            raise InputShapeError(f"Model is not defined at theta_init: {exc}") from exc
        if not np.isfinite(f0):
            raise InputShapeError("theta_init gives an implied covariance that is not positive definite")
        return theta

    def _optimize(self, theta0, method, minimize_kws, minimize_options, warn=True):
        if method == "fisher":
            opts = handle_default_kws(minimize_options, self.default_fisher_options)
            optimizer = FisherScoring(self.func, self.gradient, self.information,
                                      self.cov_model.lb, **opts)
            return optimizer.minimize(theta0, warn=warn)
        theta0 = self.cov_model.project(theta0)
        try:
            f0 = self.func(theta0)
        except NonConvergenceSignal as exc:
            raise NonConvergenceSignal(f"Model is not defined at the starting values: {exc}") from exc
        if not np.isfinite(f0):
            raise NonConvergenceSignal("Model is not defined at the starting values")
        minimize_kws = handle_default_kws(minimize_kws, dict(method=method))
        return minimize_scipy(self.func, self.gradient, self.information, theta0,
                              bounds=self.cov_model.make_bounds(),
                              minimize_kws=minimize_kws,
                              minimize_options=minimize_options, warn=warn)

    def _information_matrix(self, theta, information):
        if information == "expected":
            return self.information(theta)
        elif information == "observed":
            return self.hessian_observed(theta)
        raise ValueError(f"information must be 'expected' or 'observed', got '{information}'")

    def standardized_values(self, theta, kind="all"):
        """
        Standardized value of every parameter in the table.

        kind="lv" rescales latent variables to unit variance, kind="all"
        rescales observed variables as well.  Variances become proportions
        of unexplained variance and covariances become (residual)
        correlations.
        """
        L, B, IB, F, P = self.cov_model.model_mats_with_inverse(theta)
        V = IB.dot(F).dot(IB.T)
        Sigma = L.dot(V).dot(L.T) + P
        latent = np.array([v in self.param_table.var_names["nob"] for v in self.param_table.lav_names],
                          dtype=bool)
        scale_all = kind == "all"
        sd_lv = np.sqrt(np.maximum(np.diag(V), 0.0))
        sd_ov = np.sqrt(np.maximum(np.diag(Sigma), 0.0))
        sd_rl = np.sqrt(np.maximum(np.diag(F), 0.0))
        sd_ro = np.sqrt(np.maximum(np.diag(P), 0.0))
        s_lv = np.where(latent | scale_all, sd_lv, 1.0)
        s_rl = np.where(latent | scale_all, sd_rl, 1.0)
        s_ov = sd_ov if scale_all else np.ones(self.p)
        s_ro = sd_ro if scale_all else np.ones(self.p)
        pt = self.param_table.param_df
        mats = (L, B, F, P)
        mat, r, c = pt["mat"].values, pt["r"].values, pt["c"].values
        est = np.array([mats[m][i, j] for m, i, j in zip(mat, r, c)])
        num, den = np.ones_like(est), np.ones_like(est)
        diag = r == c
        ix = mat == 0
        num[ix], den[ix] = s_lv[c[ix]], s_ov[r[ix]]
        ix = mat == 1
        num[ix], den[ix] = s_lv[c[ix]], s_lv[r[ix]]
        ix = (mat == 2) & diag
        den[ix] = s_lv[r[ix]]**2
        ix = (mat == 2) & ~diag
        den[ix] = s_rl[r[ix]] * s_rl[c[ix]]
        ix = (mat == 3) & diag
        den[ix] = s_ov[r[ix]]**2
        ix = (mat == 3) & ~diag
        den[ix] = s_ro[r[ix]] * s_ro[c[ix]]
        return safe_divide(est * num, den)

    def r_squared(self, theta):
        L, B, IB, F, P = self.cov_model.model_mats_with_inverse(theta)
        V = IB.dot(F).dot(IB.T)
        Sigma = L.dot(V).dot(L.T) + P
        pt, ptab = self.param_table, self.param_table.param_df
        r2 = {}
        for v in pt.obs_names:
            if v in pt.var_names["ind"] and v not in pt.var_names["lav"]:
                i = pt.obs_order[v]
                r2[v] = 1.0 - P[i, i] / Sigma[i, i]
        endog = set(ptab.loc[ptab["mat"] == 1, "r"])
        for v in pt.lav_names:
            j = pt.lav_order[v]
            if j in endog:
                r2[v] = 1.0 - F[j, j] / V[j, j]
        return pd.Series(r2, dtype=float, name="R2")

    def _build_estimates(self, theta, theta_cov):
        pt = self.param_table.param_df
        L, B, F, P = self.cov_model.par_to_model_mats(theta)
        mats = (L, B, F, P)
        est = np.array([mats[m][i, j] for m, i, j in zip(pt["mat"], pt["r"], pt["c"])])
        se = np.full(len(pt), np.nan)
        free = pt["free"].values > 0
        se[free] = np.sqrt(np.maximum(np.diag(theta_cov), 0.0))[pt.loc[free, "ind"].values]
        table = get_param_table(est, se, labels=pt[["lhs", "rel", "rhs", "free"]])
        table["std_lv"] = self.standardized_values(theta, kind="lv")
        table["std_all"] = self.standardized_values(theta, kind="all")
        table["std_all_SE"] = self.standardized_se(theta, theta_cov)
        return table

    def standardized_se(self, theta, theta_cov):
        """Delta method standard errors of the std_all solution"""
        if self.n_params == 0 or np.any(np.isnan(theta_cov)):
            return np.full(len(self.param_table.param_df), np.nan)
        J = jac_cd(self.standardized_values, theta, args=("all",))
        V = J.dot(theta_cov).dot(J.T)
        return np.sqrt(np.maximum(np.diag(V), 0.0))

    def baseline_formula(self):
        return "\n".join(f"{v} ~~ {v}" for v in self.param_table.obs_names)

    def fit_baseline(self, method="fisher", minimize_kws=None, minimize_options=None):
        """
        Fit the independence model (free variances, zero covariances) with
        the same estimator and optimizer.

        Returns
        -------
        baseline : dict
            chi2, df, fmin and converged.
        """
        baseline = SEM(self.baseline_formula(), self.data, estimator=self.estimator,
                       model_kws=self.model_kws)
        try:
            res = baseline._optimize(baseline.theta.copy(), method, minimize_kws,
                                     minimize_options, warn=False)
        except NonConvergenceSignal as exc:
            logger.warning("Baseline model could not be fitted: %s", exc)
            return dict(chi2=np.nan, df=baseline.df, fmin=np.nan, converged=False)
        chi2, _ = chi2_test(res.fun, baseline.df, self.n_obs)
        if not res.success:
            logger.warning("Baseline model did not converge: %s", res.message)
        return dict(chi2=chi2, df=baseline.df, fmin=res.fun, converged=bool(res.success))

    def fit(self, method="fisher", theta_init=None, information="expected",
            minimize_kws=None, minimize_options=None, raise_rank_deficiency=True,
            fit_baseline=True, rank_tol=1e-8):
        """
        Estimate the model.

        Parameters
        ----------
        method : str, optional
            "fisher" for Fisher scoring, otherwise a scipy.optimize.minimize
            method such as "trust-constr" or "L-BFGS-B".
        theta_init : array_like, optional
            Starting values, defaults to the heuristic start values.
        information : {"expected", "observed"}
            Information matrix used for standard errors.
        minimize_kws : dict, optional
            Extra keyword arguments for scipy.optimize.minimize.
        minimize_options : dict, optional
            Options of the optimizer (max_iter, ftol and xtol for "fisher").
        raise_rank_deficiency : bool, optional
            Raise RankDeficiencyError on a singular information matrix.  If
            False a warning is issued and the result is flagged instead.
        fit_baseline : bool, optional
            Fit the independence model for CFI, TLI and RMSEA.
        rank_tol : float, optional
            Threshold on the smallest eigenvalue of the information matrix
            scaled to unit diagonal.

        Returns
        -------
        result : SEMResults

        Raises
        ------
        InputShapeError
            theta_init has the wrong length, is not finite, or gives an
            implied covariance at which the discrepancy is undefined.
        RankDeficiencyError
            The information matrix is singular and raise_rank_deficiency
            is True.
        """
        theta0 = self._check_theta(theta_init)
        res = self._optimize(theta0, method, minimize_kws, minimize_options)
        theta = np.asarray(res.x, dtype=float)
        Sigma = self.cov_model.implied_cov(theta)
        fval = self.func(theta)
        t = self.n_params
        if t > 0:
            H = self._information_matrix(theta, information)
            min_eig = min_rel_eig(H)
        else:
            H, min_eig = np.zeros((0, 0)), np.inf
        rank_deficient = bool(t > 0 and min_eig <= rank_tol)
        if rank_deficient:
            theta_cov = np.full((t, t), np.nan)
        elif t == 0:
            theta_cov = np.zeros((0, 0))
        else:
            theta_cov = 2.0 / self.n_obs * np.linalg.inv(H)
        baseline = None
        if fit_baseline and not rank_deficient:
            baseline = self.fit_baseline(method, minimize_kws, minimize_options)
        S = self.data.sample_cov
        measures = fit_measures(Sigma, S, fval, self.df, t, self.n_obs, baseline=baseline)
        if rank_deficient:
            for key in measures:
                if key not in _kept_when_rank_deficient:
                    measures[key] = np.nan
        estimates = self._build_estimates(theta, theta_cov)
        names = self.param_table.obs_names
        _, R_S = corr_scale(S)
        _, R_Sigma = corr_scale(Sigma)
        result = SEMResults(
            theta=theta.copy(), theta_cov=theta_cov, estimates=estimates,
            implied_cov=pd.DataFrame(Sigma, index=names, columns=names),
            sample_cov=self.data.sample_cov_df.copy(),
            model_mats=self.cov_model.to_dataframes(theta),
            fit_indices=pd.Series(measures, dtype=object),
            r_squared=self.r_squared(theta),
            residuals=pd.DataFrame(S - Sigma, index=names, columns=names),
            cor_residuals=pd.DataFrame(R_S - R_Sigma, index=names, columns=names),
            fmin=float(fval), df=int(self.df), n_obs=self.n_obs, n_params=t,
            converged=bool(res.success), n_iter=int(res.get("nit", 0) or 0),
            message=str(res.message), rank_deficient=rank_deficient,
            min_eigenvalue=float(min_eig), estimator=self.estimator, method=method,
            information=information, theta_names=list(self.theta_names))
        logger.info("Fit finished: converged=%s, F=%.6g, chi2=%.4g on %d df",
                    result.converged, fval, measures["chi2"], self.df)
        if rank_deficient:
            msg = (f"Information matrix is singular at the estimate (smallest scaled "
                   f"eigenvalue {min_eig:.3g}); the model is not identified")
            logger.warning(msg)
            if raise_rank_deficiency:
                raise RankDeficiencyError(msg, fit_result=result)
            warnings.warn(msg, RankDeficiencyWarning)
        return result
