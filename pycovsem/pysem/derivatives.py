#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Fri Jun  9 01:53:02 2023

@author: lukepinkel
"""

import numba
import numpy as np


@numba.jit(nopython=True)
def _dsigma(dS, L, IB, F, dA, r, c, deriv_type, n, vech_inds):
    """
    First derivatives of vech(Sigma) with respect to each free parameter,
    written into the columns of dS.

    Parameters
    ----------
    dS : (p*(p+1)/2, n) ndarray
        Output array, assumed zero on entry.
    L : (p, q) ndarray
        Loadings.
    IB : (q, q) ndarray
        Inverse of (I - B).
    F : (q, q) ndarray
        Latent (co)variances.
    dA : (n, m, m) ndarray
        Derivative of the parameter's matrix with respect to the parameter,
        zero padded. Symmetric matrices have both off diagonal cells set.
    r, c : (n,) ndarray
        Dimensions of the matrix of each parameter.
    deriv_type : (n,) ndarray
        Matrix of each parameter, 0=L, 1=B, 2=F, 3=P.
    n : int
        Number of parameters.
    vech_inds : ndarray
        Positions of vech(Sigma) within the column major flattening.
    """
    LB = L.dot(IB)
    BF = IB.dot(F)
    LBt = LB.T
    BFBt = BF.dot(IB.T)
    LBFBt = L.dot(BFBt)
    for i in range(n):
        kind = deriv_type[i]
        J = np.ascontiguousarray(dA[i, :r[i], :c[i]])
        if kind == 0:
            J1 = LBFBt.dot(J.T)
            tmp = (J1 + J1.T)
        elif kind == 1:
            J1 = J.dot(BF)
            tmp = LB.dot(J1 + J1.T).dot(LBt)
        elif kind == 2:
            tmp = LB.dot(J).dot(LBt)
        else:
            tmp = J.copy()
        dS[:, i] += tmp.T.flatten()[vech_inds]
    return dS


def selection_arrays(mats, rows, cols, mat_dims):
    """
    Unit perturbation matrices used by `_dsigma`.

    Parameters
    ----------
    mats, rows, cols : (n,) array_like of int
        Matrix, row and column of each free parameter.  Parameters of
        symmetric matrices (2 and 3) are stored with rows >= cols.
    mat_dims : dict
        Shape of each matrix.

    Returns
    -------
    dA : (n, m, m) ndarray
    r, c : (n,) ndarray of int
    """
    n = len(mats)
    m = max(max(dims) for dims in mat_dims.values())
    dA = np.zeros((n, m, m))
    r, c = np.zeros(n, dtype=np.int64), np.zeros(n, dtype=np.int64)
    for i, (mat, row, col) in enumerate(zip(mats, rows, cols)):
        r[i], c[i] = mat_dims[mat]
        dA[i, row, col] = 1.0
        if mat in (2, 3):
            dA[i, col, row] = 1.0
    return dA, r, c
