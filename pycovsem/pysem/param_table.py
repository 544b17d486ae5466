#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Thu Jun 15 07:57:34 2023

@author: lukepinkel
"""
import logging
import numpy as np
import pandas as pd

from .errors import ModelSpecificationError
from .formula_parser import FormulaParser

logger = logging.getLogger(__name__)


class ParameterTable:
    """
    Builds the parameter table of a single group covariance structure model
    from a model string, adding the parameters that are left implicit in the
    syntax.

    Parameters
    ----------
    formulas : str
        Model string.
    sample_cov : pandas.DataFrame
        Sample covariance matrix with named rows and columns.  Used to check
        variable names, to order the observed variables and for start values.
    std_lv : bool, optional
        If True latent variables (residual variances for endogenous ones) are
        fixed to one.  Otherwise the first loading of each factor is fixed to
        one and the factor variances are free.
    auto_fix_single : bool, optional
        Fix the automatically added residual variance of an indicator that is
        the only indicator of its factor to zero.
    var_floor : float, optional
        Lower bound for free variances.

    Attributes
    ----------
    param_df : pandas.DataFrame
        One row per parameter with columns lhs, rel, rhs, mat, r, c, fixed,
        fixedval, start, lb, user, free and ind.  `free` is 1,...,t for free
        parameters and 0 otherwise, `ind` is the position in theta.
    free_df : pandas.DataFrame
        Subset of `param_df` holding the free parameters in theta order.
    obs_names, lav_names : list of str
        Row orders of Theta and Phi.
    """
    is_symmetric = {0: False, 1: False, 2: True, 3: True}

    def __init__(self, formulas, sample_cov, std_lv=True, auto_fix_single=True,
                 var_floor=1e-6):
        self.std_lv = std_lv
        self.auto_fix_single = auto_fix_single
        self.var_floor = var_floor
        self.init_formula_parser(formulas)
        self.check_relations()
        self.check_variables(sample_cov)
        self.check_acyclic()
        self.promote_observed()
        self.set_ordering(sample_cov)
        self.sample_cov = sample_cov.loc[self.obs_names, self.obs_names]
        self.process_parameter_table()
        self.sort_and_index_parameters()
        self.prepare_matrices()

    def init_formula_parser(self, formulas):
        self.formula_parser = FormulaParser(formulas)
        self.var_names = self.formula_parser.var_names
        self.param_df = self.formula_parser.param_df.copy()
        self.param_df["user"] = True

    def check_relations(self):
        param_df = self.param_df
        directed = param_df["rel"] != "~~"
        self_rel = directed & (param_df["lhs"] == param_df["rhs"])
        if np.any(self_rel):
            row = param_df.loc[self_rel].iloc[0]
            raise ModelSpecificationError(
                f"Variable '{row['lhs']}' cannot load on or regress on itself")
        pair = param_df[["lhs", "rhs"]].values
        is_cov = (param_df["rel"] == "~~").values
        keys = [(rel, *sorted(p)) if c else (rel, *p)
                for rel, p, c in zip(param_df["rel"], pair, is_cov)]
        seen = set()
        for key in keys:
            if key in seen:
                rel, a, b = key
                raise ModelSpecificationError(f"Duplicated relation '{a} {rel} {b}'")
            seen.add(key)

    def check_variables(self, sample_cov):
        available = set(sample_cov.columns)
        missing = self.var_names["obs"] - available
        if missing:
            raise ModelSpecificationError(
                "Variables not found in the covariance matrix: "
                f"{', '.join(sorted(missing))}")

    def check_acyclic(self):
        """
        Raise if the directed paths (factor to indicator, predictor to
        outcome) contain a cycle.
        """
        param_df = self.param_df
        edges = {}
        mes = param_df["rel"] == "=~"
        reg = param_df["rel"] == "~"
        for a, b in zip(param_df.loc[mes, "lhs"], param_df.loc[mes, "rhs"]):
            edges.setdefault(a, []).append(b)
        for a, b in zip(param_df.loc[reg, "rhs"], param_df.loc[reg, "lhs"]):
            edges.setdefault(a, []).append(b)
        state = {}
        for root in edges:
            if state.get(root, 0):
                continue
            stack = [(root, iter(edges.get(root, [])))]
            state[root] = 1
            while stack:
                node, children = stack[-1]
                child = next(children, None)
                if child is None:
                    state[node] = 2
                    stack.pop()
                elif state.get(child, 0) == 1:
                    raise ModelSpecificationError(
                        f"Cyclic structural relations involving '{child}' "
                        "(only recursive models are supported)")
                elif state.get(child, 0) == 0:
                    state[child] = 1
                    stack.append((child, iter(edges.get(child, []))))

    def promote_observed(self):
        """
        Observed variables taking part in the structural model are carried
        as phantom latent variables. An observed variable covarying with a
        structural variable joins the structural model as well.
        """
        var_names, param_df = self.var_names, self.param_df
        lvo = set(var_names["lvo"])
        cov = param_df.loc[param_df["rel"] == "~~", ["lhs", "rhs"]].values
        changed = True
        while changed:
            changed = False
            lav = lvo | var_names["nob"]
            for a, b in cov:
                for x, y in ((a, b), (b, a)):
                    if x in lav and y not in lav:
                        lvo.add(y)
                        changed = True
        var_names["lvo"] = lvo
        var_names["lav"] = lvo | var_names["nob"]
        # recompute the derived sets now that lav may have grown
        var_names["lox"] = var_names["lav"] - (var_names["nob"] | var_names["end"] | var_names["ind"])
        var_names["lvx"] = var_names["nob"] - (var_names["ind"] | var_names["end"])
        self.var_names = var_names

    def set_ordering(self, sample_cov):
        obs = self.var_names["obs"]
        self.obs_names = [v for v in sample_cov.columns if v in obs]
        latents = self.formula_parser.latent_order
        self.lav_names = latents + [v for v in self.obs_names if v in self.var_names["lvo"]]
        self.obs_order = dict(zip(self.obs_names, np.arange(len(self.obs_names))))
        self.lav_order = dict(zip(self.lav_names, np.arange(len(self.lav_names))))
        self.p, self.q = len(self.obs_names), len(self.lav_names)

    def process_parameter_table(self):
        self.add_variances()
        if not self.std_lv:
            self.fix_first()
        self.add_covariances()
        self.apply_identification()

    def check_missing_variances(self, vars_to_check):
        param_df = self.param_df
        cov_ix = (param_df["rel"] == "~~")
        sym_ix = (param_df["lhs"] == param_df["rhs"])
        existing = set(param_df.loc[cov_ix & sym_ix, "lhs"])
        return [v for v in vars_to_check if v not in existing]

    def check_missing_covs(self, vars_to_check):
        param_df = self.param_df
        df = param_df.loc[param_df["rel"] == "~~"]
        existing = set(zip(df["lhs"], df["rhs"])) | set(zip(df["rhs"], df["lhs"]))
        vars_to_check = list(vars_to_check)
        pairs_to_add = []
        for j in range(len(vars_to_check)):
            for i in range(j+1, len(vars_to_check)):
                x1, x2 = vars_to_check[i], vars_to_check[j]
                if (x1, x2) not in existing:
                    pairs_to_add.append((x1, x2))
        return pairs_to_add

    @property
    def single_indicators(self):
        """Observed variables that are the only indicator of their factor"""
        param_df = self.param_df
        mes = param_df.loc[(param_df["rel"] == "=~") & param_df["user"]]
        n_ind = mes.groupby("lhs")["rhs"].size()
        n_fac = mes.groupby("rhs")["lhs"].size()
        singles = set(mes.loc[mes["lhs"].map(n_ind) == 1, "rhs"])
        return {v for v in singles if n_fac[v] == 1 and v not in self.var_names["lav"]}

    def add_variances(self):
        var_names = self.var_names
        ordered = self.lav_names + [v for v in self.obs_names if v not in var_names["lav"]]
        vars_to_add = self.check_missing_variances(ordered)
        singles = self.single_indicators if self.auto_fix_single else set()
        rows = []
        for var in vars_to_add:
            row = {"lhs": var, "rel": "~~", "rhs": var, "fixed": False,
                   "fixedval": None, "start": None, "force_free": False,
                   "user": False}
            if var in singles:
                row["fixed"], row["fixedval"] = True, 0.0
                logger.info("Fixing residual variance of single indicator '%s' to zero", var)
            rows.append(row)
        self._append_rows(rows)

    def fix_first(self):
        param_df, var_names = self.param_df, self.var_names
        ltable = param_df.loc[(param_df["rel"] == "=~") & param_df["lhs"].isin(var_names["nob"])]
        for v in self.formula_parser.latent_order:
            ix = ltable["lhs"] == v
            if np.any(ltable.loc[ix, "fixed"]):
                continue
            candidates = ltable.index[ix & ~ltable["force_free"]]
            if len(candidates) > 0:
                param_df.loc[candidates[0], "fixed"] = True
                param_df.loc[candidates[0], "fixedval"] = 1.0
        self.param_df = param_df

    def add_covariances(self):
        var_names = self.var_names
        rows = []
        for key in ("lvx", "lox", "enx"):
            group = [v for v in self.lav_names if v in var_names[key]]
            for x1, x2 in self.check_missing_covs(group):
                rows.append({"lhs": x1, "rel": "~~", "rhs": x2, "fixed": False,
                             "fixedval": None, "start": None,
                             "force_free": False, "user": False})
        self._append_rows(rows)

    def apply_identification(self):
        """
        Fix latent (residual) variances to one when the latent variables
        are standardized, unless the row was explicitly freed with NA*
        """
        if not self.std_lv:
            return
        param_df = self.param_df
        ix = ((param_df["rel"] == "~~") & (param_df["lhs"] == param_df["rhs"]) &
              param_df["lhs"].isin(self.var_names["nob"]) &
              ~param_df["force_free"] & (param_df["mod"].isnull()))
        param_df.loc[ix, "fixed"] = True
        param_df.loc[ix, "fixedval"] = 1.0
        self.param_df = param_df

    def _append_rows(self, rows):
        if rows:
            self.param_df = pd.concat([self.param_df, pd.DataFrame(rows)],
                                      ignore_index=True)

    @property
    def masks(self):
        param_df = self.param_df
        lav = self.var_names["lav"]
        masks = {}
        masks['mes'] = param_df["rel"] == "=~"
        masks['reg'] = param_df["rel"] == "~"
        masks['cov'] = param_df["rel"] == "~~"
        masks['rvl'] = param_df["rhs"].isin(lav)
        masks['lvl'] = param_df["lhs"].isin(lav)
        return masks

    def assign_matrices(self):
        param_df = self.param_df
        masks = self.masks
        ix = {}
        ix[0] = masks['mes'] & ~masks['rvl']
        ix[1] = (masks['mes'] & masks['rvl']) | masks['reg']
        ix[2] = masks['cov'] & masks['lvl']
        ix[3] = masks['cov'] & ~masks['lvl']
        param_df["mat"] = 0
        for i in range(4):
            param_df.loc[ix[i], "mat"] = i
        mes = masks['mes']
        r = np.where(mes, param_df["rhs"], param_df["lhs"])
        c = np.where(mes, param_df["lhs"], param_df["rhs"])
        rmap = np.where(param_df["mat"].isin([0, 3]), 0, 1)
        cmap = np.where(param_df["mat"] == 3, 0, 1)
        orders = (self.obs_order, self.lav_order)
        param_df["r"] = [orders[k][v] for k, v in zip(rmap, r)]
        param_df["c"] = [orders[k][v] for k, v in zip(cmap, c)]
        sym = param_df["mat"].isin([2, 3]) & (param_df["r"] < param_df["c"])
        param_df.loc[sym, ["r", "c"]] = param_df.loc[sym, ["c", "r"]].values
        param_df[["mat", "r", "c"]] = param_df[["mat", "r", "c"]].astype(int)
        self.param_df = param_df

    def sort_table(self):
        self.param_df = self.param_df.sort_values(["mat", "c", "r"], kind="stable")
        self.param_df = self.param_df.reset_index(drop=True)

    @staticmethod
    def index_params(param_df):
        param_df["free"] = 0
        ix = ~param_df["fixed"].astype(bool)
        n = int(np.sum(ix))
        param_df.loc[ix, "free"] = np.arange(1, 1+n)
        param_df["ind"] = param_df["free"] - 1
        return param_df

    def add_bounds(self, param_df):
        ix = (param_df["lhs"] == param_df["rhs"]) & (param_df["rel"] == "~~")
        param_df["lb"] = -np.inf
        param_df.loc[ix, "lb"] = self.var_floor
        return param_df

    def _default_start(self, row):
        S, vn = self.sample_cov, self.var_names
        lhs, rel, rhs, mat = row["lhs"], row["rel"], row["rhs"], row["mat"]
        if rel == "=~":
            if rhs in vn["nob"]:
                return 1.0
            return np.sqrt(S.loc[rhs, rhs] / 2.0) if self.std_lv else 1.0
        elif rel == "~":
            return 0.0
        elif mat == 2:
            if lhs != rhs:
                both_lox = lhs in vn["lox"] and rhs in vn["lox"]
                return S.loc[lhs, rhs] if both_lox else 0.0
            if lhs in vn["lox"]:
                return S.loc[lhs, lhs]
            if lhs in vn["lvo"]:
                return S.loc[lhs, lhs] / 2.0
            return self._latent_var_start(lhs)
        else:
            return S.loc[lhs, lhs] / 2.0 if lhs == rhs else 0.0

    def _latent_var_start(self, lv):
        if self.std_lv:
            return 1.0
        param_df = self.param_df
        ind = param_df.loc[(param_df["rel"] == "=~") & (param_df["lhs"] == lv), "rhs"]
        ind = [v for v in ind if v in self.obs_order]
        if len(ind) == 0:
            return 1.0
        return self.sample_cov.loc[ind[0], ind[0]] / 2.0

    def add_starts(self, param_df):
        start = []
        for _, row in param_df.iterrows():
            if row["fixed"]:
                start.append(float(row["fixedval"]))
            elif row["start"] is not None and not pd.isnull(row["start"]):
                start.append(float(row["start"]))
            else:
                start.append(float(self._default_start(row)))
        param_df["start"] = start
        param_df["fixedval"] = np.where(param_df["fixed"], param_df["start"], np.nan)
        return param_df

    def sort_and_index_parameters(self):
        self.param_df["fixed"] = self.param_df["fixed"].astype(bool)
        self.param_df["force_free"] = self.param_df["force_free"].astype(bool)
        self.param_df["user"] = self.param_df["user"].astype(bool)
        self.assign_matrices()
        self.sort_table()
        self.param_df = self.index_params(self.param_df)
        self.param_df = self.add_bounds(self.param_df)
        self.param_df = self.add_starts(self.param_df)
        self.param_df = self.param_df[["lhs", "rel", "rhs", "mat", "r", "c",
                                       "fixed", "fixedval", "start", "lb",
                                       "user", "free", "ind"]]
        self.free_ix = self.param_df["free"] != 0
        self.free_df = self.param_df.loc[self.free_ix].reset_index(drop=True)
        self.n_free = len(self.free_df)

    def prepare_matrices(self):
        """
        Matrices of free parameter indices (1,...,t, zero where fixed) and
        templates holding the fixed values, each as a labeled DataFrame.
        Phantom latent variables get a unit loading on their observed twin.
        """
        param_df = self.param_df
        p, q = self.p, self.q
        ov_names, lv_names = self.obs_names, self.lav_names
        mat_dims = {0: (p, q), 1: (q, q), 2: (q, q), 3: (p, p)}
        mat_rows = {0: ov_names, 1: lv_names, 2: lv_names, 3: ov_names}
        mat_cols = {0: lv_names, 1: lv_names, 2: lv_names, 3: ov_names}
        free_mats, start_mats = {}, {}
        for i in range(4):
            subtable = param_df.loc[param_df["mat"] == i]
            free_mat = np.zeros(mat_dims[i], dtype=int)
            start_mat = np.zeros(mat_dims[i])
            free = subtable.loc[~subtable["fixed"]]
            fixed = subtable.loc[subtable["fixed"]]
            free_mat[(free["r"].values, free["c"].values)] = free["free"].values
            start_mat[(fixed["r"].values, fixed["c"].values)] = fixed["fixedval"].values
            if self.is_symmetric[i]:
                free_mat = free_mat + np.tril(free_mat, -1).T
                start_mat = start_mat + np.tril(start_mat, -1).T
            if i == 0:
                for v in self.var_names["lvo"]:
                    start_mat[self.obs_order[v], self.lav_order[v]] = 1.0
            free_mats[i] = pd.DataFrame(free_mat, index=mat_rows[i], columns=mat_cols[i])
            start_mats[i] = pd.DataFrame(start_mat, index=mat_rows[i], columns=mat_cols[i])
        self.free_mats = free_mats
        self.start_mats = start_mats
        self.mat_rows = mat_rows
        self.mat_cols = mat_cols
        self.mat_dims = mat_dims

    @property
    def labels(self):
        return self.free_df[["lhs", "rel", "rhs"]].astype(str).agg(' '.join, axis=1).tolist()

    @property
    def n_moments(self):
        return self.p * (self.p + 1) // 2

    @property
    def degrees_of_freedom(self):
        return self.n_moments - self.n_free
