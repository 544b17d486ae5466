#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Minimizers for covariance structure discrepancy functions.

`FisherScoring` is a projected Gauss-Newton iteration with step halving
that uses the expected information of the discrepancy as its curvature.
`minimize_scipy` hands the same problem to `scipy.optimize.minimize`.
Both keep every piece of state local to a single call.
"""
import logging
import warnings
import numpy as np
import scipy as sp
import scipy.optimize

from .errors import NonConvergenceSignal
from ..utilities.func_utils import handle_default_kws
from ..utilities.optimizer_utils import (process_optimizer_kwargs, bounded_methods,
                                         hessian_methods)

logger = logging.getLogger(__name__)


class FisherScoring(object):
    """
    Fisher scoring for a discrepancy F(theta) with lower bounds.

    Parameters
    ----------
    func : callable
        F(theta).  May return np.inf or raise NonConvergenceSignal at
        infeasible points.
    grad : callable
        Gradient of F.
    info : callable
        Expected second derivatives of F.
    lb : ndarray
        Lower bounds, -np.inf for unbounded parameters.
    max_iter : int
        Iteration cap.
    ftol, xtol : float
        Tolerances on the relative change in F and the largest relative
        change in theta.  Both must be met.
    max_halving : int
        Number of times a step is halved before giving up on it.
    """

    def __init__(self, func, grad, info, lb, max_iter=500, ftol=1e-12, xtol=1e-9,
                 max_halving=40, gtol=1e-5):
        self.func = func
        self.grad = grad
        self.info = info
        self.lb = np.asarray(lb, dtype=float)
        self.max_iter = max_iter
        self.ftol = ftol
        self.xtol = xtol
        self.max_halving = max_halving
        self.gtol = gtol

    def _evaluate(self, theta):
        try:
            f = self.func(theta)
        except (NonConvergenceSignal, np.linalg.LinAlgError):
            return np.inf
        return f if np.isfinite(f) else np.inf

    def _direction(self, theta, g, H):
        active = (theta <= self.lb) & (g > 0)
        d = np.zeros_like(theta)
        free = ~active
        if np.any(free):
            Hf = H[np.ix_(free, free)]
            d[free] = np.linalg.lstsq(Hf, -g[free], rcond=None)[0]
        return d

    def minimize(self, theta0, warn=True):
        """
        Parameters
        ----------
        theta0 : ndarray
            Starting values.
        warn : bool
            Issue a NonConvergenceSignal warning when the iteration stops
            without converging.

        Returns
        -------
        res : scipy.optimize.OptimizeResult
            With x, fun, jac, nit, success, status and message.  success is
            False when the iteration cap was reached.
        """
        theta = np.maximum(np.asarray(theta0, dtype=float), self.lb)
        f = self._evaluate(theta)
        if not np.isfinite(f):
            raise NonConvergenceSignal("Model is not defined at the starting values")
        g = self.grad(theta)
        converged, message, status = False, "Maximum number of iterations reached", 1
        nit = 0
        for nit in range(1, self.max_iter + 1):
            H = self.info(theta)
            d = self._direction(theta, g, H)
            step, accepted = 1.0, False
            slack = 16 * np.finfo(float).eps * max(abs(f), 1.0)
            for _ in range(self.max_halving):
                theta_new = np.maximum(theta + step * d, self.lb)
                f_new = self._evaluate(theta_new)
                if f_new <= f + slack:
                    accepted = True
                    break
                step /= 2.0
            if not accepted:
                converged = np.max(np.abs(g), initial=0.0) < self.gtol
                status = 0 if converged else 2
                message = ("No descent step available at a stationary point" if converged
                           else "Step halving failed to decrease the objective")
                break
            f_change = abs(f - f_new) / max(abs(f), 1.0)
            x_change = np.max(np.abs(theta_new - theta) / np.maximum(np.abs(theta), 1.0),
                              initial=0.0)
            theta, f = theta_new, f_new
            g = self.grad(theta)
            logger.debug("iter %d: f=%.10g step=%.3g dx=%.3g df=%.3g", nit, f, step,
                         x_change, f_change)
            if f_change < self.ftol and x_change < self.xtol:
                converged, status, message = True, 0, "Converged"
                break
        res = sp.optimize.OptimizeResult(x=theta, fun=f, jac=g, nit=nit,
                                         success=bool(converged), status=status,
                                         message=message)
        if not converged and warn:
            warnings.warn(f"Fisher scoring did not converge after {nit} iterations: {message}",
                          NonConvergenceSignal)
        return res


def minimize_scipy(func, grad, info, theta0, bounds=None, minimize_kws=None,
                   minimize_options=None, warn=True):
    """
    Minimize a discrepancy with scipy.optimize.minimize.

    Parameters
    ----------
    func, grad, info : callable
        Discrepancy, gradient and expected information.
    theta0 : ndarray
        Starting values.
    bounds : list of tuple, optional
        (lower, upper) pairs, passed on for methods that accept bounds.
    minimize_kws : dict, optional
        Keyword arguments of scipy.optimize.minimize, e.g. method.
    minimize_options : dict, optional
        Options of the chosen method.
    warn : bool
        Warn with NonConvergenceSignal when the method reports failure.

    Returns
    -------
    res : scipy.optimize.OptimizeResult
    """
    minimize_kws = handle_default_kws(minimize_kws, {})
    if minimize_options is not None:
        minimize_kws["options"] = handle_default_kws(minimize_options,
                                                     minimize_kws.get("options") or {})
    minimize_kws = process_optimizer_kwargs(minimize_kws)
    method = minimize_kws["method"]
    if method in hessian_methods:
        minimize_kws.setdefault("hess", info)
    if method in bounded_methods and bounds is not None:
        minimize_kws.setdefault("bounds", bounds)

    def _func(theta):
        try:
            f = func(theta)
        except (NonConvergenceSignal, np.linalg.LinAlgError):
            return np.inf
        return f if np.isfinite(f) else np.inf

    res = sp.optimize.minimize(_func, theta0, jac=grad, **minimize_kws)
    logger.debug("%s finished after %s iterations: %s", method, res.get("nit"), res.message)
    if not res.success and warn:
        warnings.warn(f"{method} did not converge: {res.message}", NonConvergenceSignal)
    return res
