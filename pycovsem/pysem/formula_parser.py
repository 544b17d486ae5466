#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Wed Jun 21 16:18:10 2023

@author: lukepinkel
"""


import re
import pandas as pd

from .errors import ModelSpecificationError


NAME_PATTERN = r"[A-Za-z_][A-Za-z0-9_.]*"
_name_re = re.compile(rf"^{NAME_PATTERN}$")
_start_re = re.compile(r"^start\((.+)\)$")
_rel_re = re.compile(r"=~|~~|~")
_invalid_ops = ("<~", "~*~", ":=", "==", "<", ">", "|")


class FormulaParser:
    """
    A class to parse a set of formulas and extract variables and parameters
    from the formulas.

    Grammar
    -------
    * ``#`` and ``!`` start a comment that runs to the end of the line.
    * Statements are separated by newlines or ``;``.  A statement whose text
      ends with ``+`` or with an operator continues on the next line, as does
      a line that starts with ``+``.
    * ``lhs =~ rhs`` (measurement), ``lhs ~ rhs`` (regression) and
      ``lhs ~~ rhs`` ((co)variance).  Both sides are ``+`` separated lists and
      every left hand term is paired with every right hand term.
    * Right hand terms are ``name`` or ``modifier*name`` where the modifier
      is a number (fixed value), ``NA`` (force the parameter free) or
      ``start(value)`` (starting value).
    * Names start with a letter or underscore and contain letters, digits,
      underscores and dots.
    """

    def __init__(self, formulas):
        """
        Initialize the FormulaParser with a set of formulas.

        Parameters
        ----------
        formulas : str
            A string of formulas to be parsed.
        """
        if not isinstance(formulas, str):
            raise ModelSpecificationError("Model formula must be a string")
        self.formulas = formulas
        self._parse_formula(formulas)
        self.var_names = self.classify_variables(self.param_df)

    @staticmethod
    def split_statements(formulas):
        """
        Strip comments and split a model string into single statements,
        joining relations that span several lines.

        Parameters
        ----------
        formulas : str
            Model string.

        Returns
        -------
        statements : list of str
        """
        lines = []
        for line in formulas.splitlines():
            line = re.sub(r"[#!].*", "", line)
            lines.extend(part.strip() for part in line.split(";"))
        statements = []
        for line in lines:
            if not line:
                continue
            if statements and (line.startswith("+") or
                               statements[-1].endswith(("+", "~"))):
                statements[-1] = f"{statements[-1]} {line}"
            else:
                statements.append(line)
        return statements

    def _parse_formula(self, formulas):
        self._param_list = []
        statements = self.split_statements(formulas)
        if len(statements) == 0:
            raise ModelSpecificationError("Model formula contains no relations")
        for statement in statements:
            self.unpack_equation(statement)
        self.param_df = pd.DataFrame(self._param_list)

    @staticmethod
    def _parse_modifier(mod, equation):
        """
        Interprets a modifier of a right hand side term

        Returns
        -------
        fixed, fixedval, start, force_free
        """
        if mod.upper() == "NA":
            return False, None, None, True
        start_match = _start_re.match(mod)
        if start_match is not None:
            try:
                start = float(start_match.group(1))
            except ValueError:
                raise ModelSpecificationError(
                    f"Invalid start value '{mod}' in '{equation}'") from None
            return False, None, start, False
        try:
            fixedval = float(mod)
        except ValueError:
            if _name_re.match(mod):
                msg = f"Equality labels are not supported ('{mod}' in '{equation}')"
            else:
                msg = f"Invalid modifier '{mod}' in '{equation}'"
            raise ModelSpecificationError(msg) from None
        return True, fixedval, None, False

    @staticmethod
    def _check_name(name, equation):
        if name == "1":
            raise ModelSpecificationError(
                f"Intercepts are not supported for covariance structure "
                f"models ('{equation}')")
        if not _name_re.match(name):
            raise ModelSpecificationError(
                f"Invalid variable name '{name}' in '{equation}'")
        return name

    @staticmethod
    def _get_var_pair(left_side, right_side, rel, equation):
        """
        Extracts a variable pair and relationship from a formula.

        Parameters
        ----------
        left_side : str
            The left-hand side of the equation.
        right_side : str
            The right-hand side of the equation.
        rel : str
            The relationship operator in the equation
            (one of "=~", "~~", or "~").
        equation : str
            The complete statement, used in error messages

        Returns
        ----------
        row : dict
            A dictionary representing the extracted variable pair
            and relationship.
        """
        lhs = FormulaParser._check_name(left_side.strip(), equation)
        comps = [comp.strip() for comp in right_side.strip().split('*')]
        if len(comps) > 2 or any(len(comp) == 0 for comp in comps):
            raise ModelSpecificationError(f"Invalid term '{right_side.strip()}' in '{equation}'")
        if len(comps) == 2:
            mod, name = comps
            fixed, fixedval, start, force_free = FormulaParser._parse_modifier(mod, equation)
        else:
            mod, name = None, comps[0]
            fixed, fixedval, start, force_free = False, None, None, False
        rhs = FormulaParser._check_name(name, equation)
        row = {"lhs": lhs, "rel": rel, "rhs": rhs, "mod": mod,
               "fixed": fixed, "fixedval": fixedval, "start": start,
               "force_free": force_free}
        return row

    def unpack_equation(self, equation):
        """
        Unpacks an equation into component variable pairs and relationships.

        Parameters
        ----------
        equation : str
            The equation to be unpacked.
        """
        for op in _invalid_ops:
            if op in equation.replace("=~", "").replace("~~", ""):
                raise ModelSpecificationError(f"Unsupported operator '{op}' in '{equation}'")
        rels = _rel_re.findall(equation)
        if len(rels) != 1:
            raise ModelSpecificationError(
                f"Each statement needs exactly one of '=~', '~', '~~' ('{equation}')")
        rel = rels[0]
        lhss, rhss = equation.split(rel)
        lhs_terms, rhs_terms = lhss.split('+'), rhss.split('+')
        if any(len(x.strip()) == 0 for x in lhs_terms + rhs_terms):
            raise ModelSpecificationError(f"Empty term in '{equation}'")
        for left_side in lhs_terms:
            for right_side in rhs_terms:
                row = self._get_var_pair(left_side, right_side, rel, equation)
                self._param_list.append(row)

    @staticmethod
    def classify_variables(param_df):
        """
        Classifies variables from the formulas into different categories
        based on their roles.

        - 'all': All variables in the model.
        - 'nob': Non-observed (latent) variables.
        - 'obs': Observed variables, i.e., variables not in 'nob'.
        - 'ind': Indicator variables observed or unobserved.
        - 'end': Variables on the left of a regression.
        - 'exo': Variables on the right of a regression.
        - 'reg': Any variables involved in regression equations.
        - 'lvo': Observed variables that are part of the structural model.
        - 'lav': All variables treated as part of the structural model
                 (union of 'lvo' and 'nob').
        - 'lox': Observed exogenous variables in the structural model.
        - 'lvx': Latent variables that are neither indicators nor outcomes.
        - 'enx': Outcomes of regressions that predict nothing themselves.

        Parameters
        ----------
        param_df : pandas.DataFrame
            DataFrame where each row represents a parameter in the formula.

        Returns
        ----------
        names : dict
            A dictionary where keys are categories and values are sets of
            variable names in each category.
        """
        measurement_mask = param_df["rel"] == "=~"
        regressions_mask = param_df["rel"] == "~"
        all_var_names = set(param_df[["lhs", "rhs"]].values.flatten())
        nob_var_names = set(param_df.loc[measurement_mask, "lhs"])
        obs_var_names = all_var_names - nob_var_names
        ind_var_names = set(param_df.loc[measurement_mask, "rhs"])
        end_var_names = set(param_df.loc[regressions_mask, "lhs"])
        exo_var_names = set(param_df.loc[regressions_mask, "rhs"])
        reg_var_names = set.union(end_var_names, exo_var_names)
        lvo_var_names = reg_var_names - nob_var_names
        lav_var_names = lvo_var_names | nob_var_names
        lox_var_names = lav_var_names - (nob_var_names | end_var_names | ind_var_names)
        lvx_var_names = nob_var_names - (ind_var_names | end_var_names)
        enx_var_names = end_var_names - exo_var_names
        names = {"all": all_var_names, "nob": nob_var_names,
                 "obs": obs_var_names, "ind": ind_var_names,
                 "end": end_var_names, "exo": exo_var_names,
                 "reg": reg_var_names, "lvo": lvo_var_names,
                 "lav": lav_var_names, "lox": lox_var_names,
                 "lvx": lvx_var_names, "enx": enx_var_names}
        return names

    @property
    def latent_order(self):
        """Latent variables in order of first definition"""
        lhs = self.param_df.loc[self.param_df["rel"] == "=~", "lhs"]
        return list(dict.fromkeys(lhs))
