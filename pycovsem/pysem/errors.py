#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Exceptions and warnings raised while building and fitting covariance
structure models.

Input and specification problems abort before any iteration. Numerical
problems found during or after optimization are attached to the result so
that callers can decide whether the estimates are usable.
"""


class InputShapeError(ValueError):
    """The covariance matrix or sample size cannot be used as input."""


class ModelSpecificationError(ValueError):
    """The model syntax is malformed or references unknown variables."""


class NonConvergenceSignal(RuntimeWarning):
    """
    The optimizer stopped without meeting its convergence criteria, or an
    evaluation point had a singular (I - B).  Raised internally for infeasible
    points and issued as a warning when a fit hits its iteration cap.
    """


class RankDeficiencyError(ArithmeticError):
    """
    The information matrix is singular at the estimate, so the model is not
    (empirically) identified and standard errors do not exist.

    Attributes
    ----------
    fit_result : SEMResults or None
        The result bundle with point estimates, standard errors set to NaN.
    """

    def __init__(self, message, fit_result=None):
        super().__init__(message)
        self.fit_result = fit_result


class RankDeficiencyWarning(RuntimeWarning):
    """Issued instead of raising RankDeficiencyError when the caller asks for it."""
