#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Wed May 31 23:30:43 2023

@author: lukepinkel
"""

import numpy as np
from abc import ABCMeta, abstractmethod

from ..utilities.linalg_operations import _invech


def _chol_inv(A):
    """Inverse and log determinant of a positive definite matrix, or None"""
    try:
        C = np.linalg.cholesky(A)
    except np.linalg.LinAlgError:
        return None, None
    Cinv = np.linalg.inv(C)
    Ainv = Cinv.T.dot(Cinv)
    lndA = 2.0 * np.sum(np.log(np.diag(C)))
    return Ainv, lndA


class CovarianceFitFunction(metaclass=ABCMeta):
    """
    Abstract base class for discrepancy functions between a sample and a
    model implied covariance matrix.
    Subclasses must implement the _function, _gradient, and _information
    methods.

    Parameters
    ----------
    data : ModelData, optional
        The data that the fit function operates on. If None, it should be
        supplied when calling the function, gradient or information methods.
    """

    def __init__(self, data=None):
        self.data = data

    def function(self, Sigma, data=None):
        """
        Calls the specific function implementation, using the stored data if not supplied.

        Parameters
        ----------
        Sigma : (p, p) array_like
            The covariance matrix.
        data : ModelData, optional
            The data to apply the function on. If None, the stored data is used.

        Returns
        -------
        float
            The discrepancy, np.inf if Sigma is not positive definite.
        """
        data = self.data if data is None else data
        f = self._function(Sigma, data)
        return f

    def gradient(self, Sigma, dSigma, data=None):
        """
        Calls the specific gradient implementation, using the stored data if not supplied.

        Parameters
        ----------
        Sigma : (p, p) array_like
            The covariance matrix.
        dSigma : (p*(p+1)/2, t) array_like
            d vech(Sigma)
        data : ModelData, optional
            The data to apply the gradient on. If None, the stored data is used.

        Returns
        -------
        g : (t,) ndarray
            The gradient.
        """
        data = self.data if data is None else data
        g = self._gradient(Sigma, dSigma, data)
        return g

    def information(self, Sigma, dSigma, data=None):
        """
        Expected second derivatives (the Gauss-Newton weight) of the
        discrepancy, using the stored data if not supplied.

        Parameters
        ----------
        Sigma : (p, p) array_like
            The covariance matrix.
        dSigma : (p*(p+1)/2, t) array_like
            d vech(Sigma)
        data : ModelData, optional
            The data. If None, the stored data is used.

        Returns
        -------
        H : (t, t) ndarray
        """
        data = self.data if data is None else data
        H = self._information(Sigma, dSigma, data)
        return H

    @staticmethod
    @abstractmethod
    def _function(Sigma, data):
        pass

    @staticmethod
    @abstractmethod
    def _gradient(Sigma, dSigma, data):
        pass

    @staticmethod
    @abstractmethod
    def _information(Sigma, dSigma, data):
        pass

    @staticmethod
    def _weighted_information(W, dSigma):
        D1 = _invech(dSigma.T).T
        WD = np.einsum("ij,jkl->ikl", W, D1)
        H = np.einsum("ijk,jil->kl", WD, WD, optimize=True)
        return (H + H.T) / 2.0


class LikelihoodObjective(CovarianceFitFunction):
    """
    Normal theory maximum likelihood discrepancy
    F = log|Sigma| + tr(S Sigma^{-1}) - log|S| - p
    """

    @staticmethod
    def _function(Sigma, data):
        """
        Function computation for the likelihood objective.

        Parameters
        ----------
        Sigma : (p, p) array_like
            The covariance matrix.
        data : ModelData
            The sample covariance and its log determinant.

        Returns
        -------
        f: float
            The result of the function computation.
        """
        C = data.sample_cov
        Sinv, lndS = _chol_inv(Sigma)
        if Sinv is None:
            return np.inf
        trSinvC = np.sum(Sinv * C)
        f = lndS + trSinvC - data.log_det - C.shape[0]
        return f

    @staticmethod
    def _gradient(Sigma, dSigma, data):
        """
        Gradient computation for the likelihood objective for covariance and
        Sigma of size (p, p) and dSigma of size (p*(p+1)/2, t) where t
        is the number of parameters Sigma is being differentiated wrt

        Parameters
        ----------
        Sigma : (p, p) array_like
            The covariance matrix.
        dSigma : (p*(p+1)/2, t) array_like
            d vech(Sigma)
        data : ModelData
            The sample covariance.

        Returns
        -------
        g: (t,) array_like
            The result of the gradient computation of shape (t,).
        """
        C = data.sample_cov
        R = C - Sigma
        Sinv = np.linalg.inv(Sigma)
        A = Sinv.dot(R).dot(Sinv)
        D1 = _invech(dSigma.T).T
        g = -np.einsum("ji,ijk->k", A, D1)
        return g

    @staticmethod
    def _information(Sigma, dSigma, data):
        """
        Expected hessian tr(Sigma^{-1} dSigma_i Sigma^{-1} dSigma_j)
        """
        Sinv = np.linalg.inv(Sigma)
        return CovarianceFitFunction._weighted_information(Sinv, dSigma)


class GLSObjective(CovarianceFitFunction):
    """
    Normal theory generalized least squares discrepancy
    F = tr[((S - Sigma) S^{-1})^2] / 2
    """

    @staticmethod
    def _function(Sigma, data):
        C = data.sample_cov
        if not np.all(np.isfinite(Sigma)):
            return np.inf
        W = np.linalg.inv(C)
        RW = (C - Sigma).dot(W)
        f = np.sum(RW * RW.T) / 2.0
        return f

    @staticmethod
    def _gradient(Sigma, dSigma, data):
        C = data.sample_cov
        W = np.linalg.inv(C)
        A = W.dot(C - Sigma).dot(W)
        D1 = _invech(dSigma.T).T
        g = -np.einsum("ji,ijk->k", A, D1)
        return g

    @staticmethod
    def _information(Sigma, dSigma, data):
        W = np.linalg.inv(data.sample_cov)
        return CovarianceFitFunction._weighted_information(W, dSigma)
