#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Tue May 19 21:42:34 2020

@author: lukepinkel
"""

LBFGSB_options = dict(maxfun=5000, maxiter=5000, gtol=1e-8)
SLSQP_options = dict(maxiter=1000)
TrustConstr_options = dict(verbose=0, gtol=1e-8, maxiter=5000)
default_opts = {'L-BFGS-B': LBFGSB_options,
                'SLSQP': SLSQP_options,
                'trust-constr': TrustConstr_options}
method_aliases = {'l-bfgs-b': 'L-BFGS-B', 'lbfgsb': 'L-BFGS-B', 'LBFGSB': 'L-BFGS-B',
                  'slsqp': 'SLSQP', 'trust-constr': 'trust-constr'}
bounded_methods = {'L-BFGS-B', 'SLSQP', 'trust-constr', 'TNC', 'Powell', 'Nelder-Mead'}
hessian_methods = {'trust-constr', 'trust-exact', 'trust-ncg', 'trust-krylov',
                   'Newton-CG', 'dogleg'}


def process_optimizer_kwargs(optimizer_kwargs, default_method='trust-constr'):
    """
    Fill in the method and the default options of a scipy.optimize.minimize
    call without overriding anything supplied by the caller.
    """
    optimizer_kwargs = {} if optimizer_kwargs is None else dict(optimizer_kwargs)
    method = optimizer_kwargs.get('method', default_method)
    method = method_aliases.get(method, method)
    optimizer_kwargs['method'] = method
    defaults = default_opts.get(method, {})
    options = dict(optimizer_kwargs.get('options') or {})
    for dfkey, dfval in defaults.items():
        if dfkey not in options:
            options[dfkey] = dfval
    optimizer_kwargs['options'] = options
    return optimizer_kwargs
