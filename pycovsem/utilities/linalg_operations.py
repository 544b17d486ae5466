#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Sat May 16 21:47:11 2020

@author: lukepinkel
"""

import numpy as np


def _vech(x):
    m = x.shape[-1]
    ix, jx = np.triu_indices(m, k=0)
    res = x[..., jx, ix]
    return res


def _invech(x):
    old_shape = x.shape
    n = x.shape[-1]
    m = int((np.sqrt(8 * n + 1) - 1) // 2)
    out_shape = old_shape[:-1] + (m, m)
    res = np.zeros(out_shape, dtype=x.dtype)
    ix, jx = np.triu_indices(m, k=0)
    is_diag = ix == jx
    diag_elements = x[..., is_diag]
    off_diag_elem = x[..., ~is_diag]
    ixo, jxo = ix[~is_diag], jx[~is_diag]
    ixd, jxd = ix[is_diag],  jx[is_diag]
    res[..., jxo, ixo] = off_diag_elem
    res[..., ixo, jxo] = off_diag_elem
    res[..., ixd, jxd] = diag_elements
    return res


def vech_inds(p):
    """
    Positions of the lower half of a (p, p) matrix within its column major
    flattening, i.e. `x.T.flatten()[vech_inds(p)] == _vech(x)`
    """
    ix = np.arange(p * p).reshape(p, p, order='F')
    return _vech(ix)


def corr_scale(S):
    """
    Rescales a covariance matrix to correlation units

    Parameters
    ----------
    S : (p, p) array_like
        Covariance matrix

    Returns
    -------
    d : (p,) ndarray
        Standard deviations
    R : (p, p) ndarray
        Correlation matrix
    """
    d = np.sqrt(np.diag(S))
    R = S / np.outer(d, d)
    return d, R


def min_rel_eig(A):
    """
    Smallest eigenvalue of a symmetric matrix after rescaling it to unit
    diagonal, which makes the rank check invariant to parameter scale.
    Returns -inf when any diagonal element is non-positive
    """
    d = np.diag(A)
    if np.any(~np.isfinite(A)) or np.any(d <= 0):
        return -np.inf
    v = 1.0 / np.sqrt(d)
    R = A * np.outer(v, v)
    return np.linalg.eigvalsh((R + R.T) / 2.0).min()
