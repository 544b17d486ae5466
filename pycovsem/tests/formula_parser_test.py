#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Created on Thu Jun 22 20:11:51 2023

@author: lukepinkel
"""
import pytest
import numpy as np

from pycovsem.pysem.formula_parser import FormulaParser
from pycovsem.pysem.errors import ModelSpecificationError


FORMULA0 = """
# three factor model
gf =~ x1
WM =~ x2 + x3 + x4
PS =~ x5 + x6 + x7
gf ~ PS + WM
PS ~~ WM
"""

FORMULA1 = """
f1 =~ y1 + y2 +
      y3
f2 =~ y4 + y5
      + y6
f2 ~ f1 + z1 ! covariate
"""


def test_formula_parser():
    parser = FormulaParser(FORMULA0)
    param_df = parser.param_df
    assert (len(param_df) == 10)
    assert (list(param_df.columns[:3]) == ["lhs", "rel", "rhs"])
    assert ((param_df["rel"] == "=~").sum() == 7)
    assert ((param_df["rel"] == "~").sum() == 2)
    assert ((param_df["rel"] == "~~").sum() == 1)
    assert (parser.latent_order == ["gf", "WM", "PS"])

    var_names = parser.var_names
    assert (var_names["nob"] == {"gf", "WM", "PS"})
    assert (var_names["obs"] == {f"x{i}" for i in range(1, 8)})
    assert (var_names["end"] == {"gf"})
    assert (var_names["exo"] == {"PS", "WM"})
    assert (var_names["lvo"] == set())
    assert (var_names["lox"] == set())
    assert (var_names["lvx"] == {"PS", "WM"})
    assert (var_names["enx"] == {"gf"})


def test_continuations_and_comments():
    parser = FormulaParser(FORMULA1)
    param_df = parser.param_df
    f1 = param_df.loc[param_df["lhs"] == "f1", "rhs"].tolist()
    f2 = param_df.loc[(param_df["lhs"] == "f2") & (param_df["rel"] == "=~"), "rhs"].tolist()
    assert (f1 == ["y1", "y2", "y3"])
    assert (f2 == ["y4", "y5", "y6"])
    assert ("covariate" not in param_df[["lhs", "rhs"]].values)
    var_names = parser.var_names
    assert (var_names["lvo"] == {"z1"})
    assert (var_names["lox"] == {"z1"})

    parser = FormulaParser("f =~ a + b + c; g =~ d + e + h; g ~ f")
    assert (len(parser.param_df) == 7)
    assert (parser.latent_order == ["f", "g"])


def test_split_statements():
    statements = FormulaParser.split_statements("a ~\n b + c # comment\n\n; d ~~ e")
    assert (statements == ["a ~ b + c", "d ~~ e"])


def test_modifiers():
    parser = FormulaParser("f =~ NA*x1 + 0.5*x2 + start(0.8)*x3\nx1 ~~ 1*x1")
    param_df = parser.param_df.set_index("rhs")
    assert (param_df.loc["x1", "force_free"] == [True, False]).all()
    assert (param_df.loc["x2", "fixed"])
    assert (np.isclose(param_df.loc["x2", "fixedval"], 0.5))
    assert (not param_df.loc["x3", "fixed"])
    assert (np.isclose(param_df.loc["x3", "start"], 0.8))
    x1_var = parser.param_df.loc[parser.param_df["rel"] == "~~"].iloc[0]
    assert (x1_var["fixed"] and np.isclose(x1_var["fixedval"], 1.0))


def test_multiple_lhs():
    parser = FormulaParser("y1 + y2 ~ x1 + x2")
    pairs = set(zip(parser.param_df["lhs"], parser.param_df["rhs"]))
    assert (pairs == {("y1", "x1"), ("y1", "x2"), ("y2", "x1"), ("y2", "x2")})


@pytest.mark.parametrize("formula", [
    "f =~ a*x1 + x2 + x3",
    "y ~ 1 + x",
    "f <~ x1 + x2",
    "a := b*c",
    "y ~ x ~ z",
    "f =~ x1 + + x2",
    "f =~",
    "just some words",
    "f =~ 2x",
    "f =~ start(abc)*x1",
    "",
    "# only a comment",
])
def test_parser_errors(formula):
    with pytest.raises(ModelSpecificationError):
        FormulaParser(formula)


def test_error_names_statement():
    with pytest.raises(ModelSpecificationError, match="y ~ 1"):
        FormulaParser("f =~ x1 + x2 + x3\ny ~ 1")
