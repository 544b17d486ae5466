# -*- coding: utf-8 -*-
"""
Created on Wed Jun 28 18:02:51 2023

@author: lukepinkel
"""
import sys
import logging

from pycovsem.pysem.model_data import ModelData
from pycovsem.pysem.watershed import fit_watershed_models, COHORT_SAMPLE_SIZES

logging.basicConfig(level=logging.INFO,
                    format="%(asctime)s %(name)s %(levelname)s: %(message)s")

# covariance matrix with variable names in the header and first column
path = sys.argv[1] if len(sys.argv) > 1 else "CovMat_CALM.csv"
n_obs = int(sys.argv[2]) if len(sys.argv) > 2 else COHORT_SAMPLE_SIZES["CALM"]

data = ModelData.from_csv(path, n_obs=n_obs)
results = fit_watershed_models(data, max_workers=3)

for name, res in results.items():
    print(f"\n{'=' * 30} {name} {'=' * 30}")
    print(res.summary(standardized=True))
    if res.rank_deficient:
        print(f"{name}: information matrix is singular, standard errors are not reported")
