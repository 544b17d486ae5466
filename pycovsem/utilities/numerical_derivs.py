#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Sat Jun  6 14:40:17 2020

@author: lukepinkel
"""
import numpy as np

_cd_eps = (np.finfo(float).eps)**(1.0/3.0)


def jac_cd(f, x, eps=None, args=()):
    """
    Central difference jacobian of a vector valued function, returned with
    shape (len(f(x)), len(x))
    """
    eps = _cd_eps if eps is None else eps
    x = np.asarray(x, dtype=float)
    n = len(x)
    f0 = np.atleast_1d(f(x, *args))
    J, h = np.zeros((f0.shape[0], n)), np.zeros(n)
    for i in range(n):
        h[i] = eps
        J[:, i] = (np.atleast_1d(f(x+h, *args)) - np.atleast_1d(f(x-h, *args))) / (2 * eps)
        h[i] = 0
    return J


def fo_fc_cd(f, x, eps=None, args=()):
    """Central difference gradient of a scalar function"""
    return jac_cd(f, x, eps, args)[0]


def so_gc_cd(g, x, eps=None, args=()):
    """Symmetrized central difference hessian from an analytic gradient"""
    H = jac_cd(g, x, eps, args)
    return (H + H.T) / 2.0
