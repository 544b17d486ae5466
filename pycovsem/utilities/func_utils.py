#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Sun Jul 31 01:22:10 2022

@author: lukepinkel
"""
import numpy as np


def handle_default_kws(kws, default_kws):
    """
    Merge caller keyword arguments over a dict of defaults, neither input is
    modified.
    """
    kws = {} if kws is None else kws
    kws = {**default_kws, **kws}
    return kws


def safe_divide(a, b):
    """Elementwise a / b, NaN where b is zero or not finite"""
    a, b = np.asarray(a, dtype=float), np.asarray(b, dtype=float)
    out = np.full(np.broadcast(a, b).shape, np.nan)
    np.divide(a, b, out=out, where=(b != 0) & np.isfinite(b))
    return out
