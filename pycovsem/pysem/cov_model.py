import numpy as np
import pandas as pd

from .derivatives import _dsigma, selection_arrays
from .errors import NonConvergenceSignal
from ..utilities.linalg_operations import _vech, vech_inds


class CovarianceStructure(object):
    """
    Covariance structure Sigma = L (I-B)^{-1} F (I-B)^{-T} L' + P of a
    model described by a `ParameterTable`.

    Attributes
    ----------
    matrix_names : list of str
        The names of the matrices in the model ("L", "B", "F", "P").

    is_symmetric : dict
        A dictionary indicating whether each matrix is symmetric.

    p1, q1 : int
        Number of observed and of structural (latent and phantom) variables.

    p2 : int
        Number of nonredundant elements of Sigma.

    nt1 : int
        Number of free parameters.

    theta : np.ndarray
        Start values.

    lb : np.ndarray
        Lower bounds of the free parameters (variances are bounded below by
        a small positive floor, everything else by -inf).

    free_mats, free_rows, free_cols : np.ndarray
        Matrix (0=L, 1=B, 2=F, 3=P), row and column of each free parameter.
    """
    matrix_names = ["L", "B", "F", "P"]
    is_symmetric = {0: False, 1: False, 2: True, 3: True}
    cond_max = 1.0 / (1e4 * np.finfo(float).eps)

    def __init__(self, param_table):
        self.param_table = param_table
        self.p1, self.q1 = param_table.p, param_table.q
        self.p2 = (self.p1 + 1) * self.p1 // 2
        self.Iq = np.eye(self.q1)
        self.mat_dims = param_table.mat_dims
        self.templates = [param_table.start_mats[i].values.copy() for i in range(4)]
        free_df = param_table.free_df
        self.free_mats = free_df["mat"].values.astype(np.int64)
        self.free_rows = free_df["r"].values.astype(np.int64)
        self.free_cols = free_df["c"].values.astype(np.int64)
        self.nt1 = len(free_df)
        self.theta = free_df["start"].values.astype(float)
        self.lb = free_df["lb"].values.astype(float)
        self.theta_names = param_table.labels
        self.make_derivative_arrays()

    def make_derivative_arrays(self):
        self.dA, self.r, self.c = selection_arrays(self.free_mats, self.free_rows,
                                                   self.free_cols, self.mat_dims)
        self.vech_inds = vech_inds(self.p1).astype(np.int64)

    def par_to_model_mats(self, theta):
        """
        Parameters
        ----------
        theta : array_like
            Vector of free parameters

        Returns
        -------
        L, B, F, P : ndarray
            Loadings (p, q), structural coefficients (q, q), latent
            (co)variances (q, q) and residual (co)variances (p, p)
        """
        theta = np.asarray(theta, dtype=float)
        mats = [template.copy() for template in self.templates]
        for i in range(4):
            ix = self.free_mats == i
            r, c = self.free_rows[ix], self.free_cols[ix]
            mats[i][r, c] = theta[ix]
            if self.is_symmetric[i]:
                mats[i][c, r] = theta[ix]
        L, B, F, P = mats
        return L, B, F, P

    def inverse_ib(self, B):
        """
        Inverse of (I - B).  Raises NonConvergenceSignal when (I - B) is
        singular or too ill conditioned to invert reliably.
        """
        IB = self.Iq - B
        if self.q1 == 0:
            return IB
        cond = np.linalg.cond(IB)
        if not np.isfinite(cond) or cond > self.cond_max:
            raise NonConvergenceSignal(f"(I - B) is singular (condition number {cond:.3g})")
        return np.linalg.inv(IB)

    def model_mats_with_inverse(self, theta):
        L, B, F, P = self.par_to_model_mats(theta)
        IB = self.inverse_ib(B)
        return L, B, IB, F, P

    def implied_cov(self, theta):
        """
        Parameters
        ----------
        theta : array_like
            Vector of free parameters

        Returns
        -------
        Sigma: ndarray
            Matrix of size (p x p) containing the covariance matrix implied
            by the model evaluated at theta
        """
        L, _, IB, F, P = self.model_mats_with_inverse(theta)
        A = L.dot(IB)
        Sigma = A.dot(F).dot(A.T) + P
        return (Sigma + Sigma.T) / 2.0

    def dsigma(self, theta):
        """
        Jacobian of vech(Sigma) with respect to theta

        Returns
        -------
        dS : (p*(p+1)/2, t) ndarray
        """
        if self.q1 == 0:
            # only residual (co)variances
            p = self.p1
            return _vech(self.dA[:, :p, :p]).T.copy()
        L, _, IB, F, _ = self.model_mats_with_inverse(theta)
        dS = np.zeros((self.p2, self.nt1))
        dS = _dsigma(dS, L, IB, F, self.dA, self.r, self.c,
                     self.free_mats, self.nt1, self.vech_inds)
        return dS

    def vech_implied_cov(self, theta):
        return _vech(self.implied_cov(theta))

    def project(self, theta):
        """Clip variance parameters to their floor"""
        return np.maximum(theta, self.lb)

    def make_bounds(self):
        bounds = [(lb if np.isfinite(lb) else None, None) for lb in self.lb]
        return bounds

    def to_dataframes(self, theta):
        mats = self.par_to_model_mats(theta)
        pt = self.param_table
        dfs = {}
        for i, name in enumerate(self.matrix_names):
            dfs[name] = pd.DataFrame(mats[i], index=pt.mat_rows[i], columns=pt.mat_cols[i])
        return dfs
