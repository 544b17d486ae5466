#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Hierarchical watershed models of fluid intelligence.

Three nested models fitted to the covariance matrix of a cohort:

* ``three_factor``: measurement model for fluid intelligence (gf), working
  memory (WM) and processing speed (PS)
* ``mimic``: adds the regression of gf on WM and PS
* ``watershed``: adds white matter fractional anisotropy (FA) of ten tracts as
  predictors of WM and PS, with correlated WM and PS residuals

The CALM covariance matrix summarizes 551 children.  The sample size of the
NKI-RS matrix depends on the missing data handling used to compute it and
has to be supplied by the caller.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

from .model_data import ModelData
from .sem import SEM

logger = logging.getLogger(__name__)


FA_TRACTS = ["fa_UF", "fa_SLF", "fa_IFOF", "fa_ATR", "fa_CST",
             "fa_FMaj", "fa_FMin", "fa_CG", "fa_CH", "fa_ILF"]

MEASUREMENT_MODEL = """
# latent variables: gf (fluid intelligence), WM (working memory) and PS (processing speed)
gf =~ gf_MatrixReasoning
WM =~ WM_DigitRecall + WM_DotMatrix + WM_BackwardDigit + WM_MrX
PS =~ PS_PhAB_il + PS_Teach_il + PS_DKEFS_il
"""

MIMIC_MODEL = MEASUREMENT_MODEL + """
# regressions
gf ~ PS + WM
"""

WATERSHED_MODEL = MIMIC_MODEL + f"""
PS ~ {' + '.join(FA_TRACTS)}
WM ~ {' + '.join(FA_TRACTS)}

# covariances
PS ~~ WM
"""

MODELS = {"three_factor": MEASUREMENT_MODEL,
          "mimic": MIMIC_MODEL,
          "watershed": WATERSHED_MODEL}

COHORT_SAMPLE_SIZES = {"CALM": 551}


def fit_model(name, data, fit_kws=None, model_kws=None):
    fit_kws = {} if fit_kws is None else fit_kws
    logger.info("Fitting %s model", name)
    model = SEM(MODELS[name], data, model_kws=model_kws)
    return model.fit(**fit_kws)


def fit_watershed_models(sample_cov, n_obs=None, models=None, max_workers=None,
                         fit_kws=None, model_kws=None):
    """
    Fit the watershed model sequence to one covariance matrix.

    Parameters
    ----------
    sample_cov : pandas.DataFrame or ModelData
        Covariance matrix over (at least) the variables of the models.
    n_obs : int, optional
        Sample size, required unless `sample_cov` is a ModelData.
    models : list of str, optional
        Subset of MODELS to fit, all by default.
    max_workers : int, optional
        If given, fit the models concurrently in a thread pool of this size.
    fit_kws : dict, optional
        Passed to `SEM.fit`.  Rank deficiency is reported on the results
        rather than raised unless raise_rank_deficiency is set here.
    model_kws : dict, optional
        Passed to `SEM`.

    Returns
    -------
    results : dict of SEMResults
        Keyed by model name.
    """
    if not isinstance(sample_cov, ModelData):
        sample_cov = ModelData.from_samplestats(sample_cov, n_obs)
    elif n_obs is not None:
        sample_cov = ModelData(sample_cov.sample_cov_df, n_obs)
    fit_kws = {"raise_rank_deficiency": False, **(fit_kws or {})}
    names = list(MODELS) if models is None else list(models)
    unknown = [name for name in names if name not in MODELS]
    if unknown:
        raise KeyError(f"Unknown models {unknown}, choose from {list(MODELS)}")
    if max_workers is None:
        return {name: fit_model(name, sample_cov, fit_kws, model_kws) for name in names}
    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        futures = {name: ex.submit(fit_model, name, sample_cov, fit_kws, model_kws)
                   for name in names}
        return {name: future.result() for name, future in futures.items()}
