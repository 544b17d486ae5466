import logging
import numbers
import pandas as pd
import numpy as np

from .errors import InputShapeError

logger = logging.getLogger(__name__)


class ModelData(object):
    """
    A sample covariance matrix over named observed variables together with
    the number of observations it summarizes.

    Parameters
    ----------
    sample_cov : pandas.DataFrame or (p, p) ndarray
        Sample covariance matrix.  Unnamed arrays get the names x1, ..., xp.
    n_obs : int
        Sample size.  Taken as given and never checked against the matrix.
    sym_tol : float, optional
        Relative tolerance for the symmetry check.
    """

    def __init__(self, sample_cov, n_obs, sym_tol=1e-8):
        self.sample_cov, self.sample_cov_df = self._to_dataframe_and_array(sample_cov)
        self.n_obs = self._check_n_obs(n_obs)
        self.sym_tol = sym_tol
        self._initialize()

    def _initialize(self):
        S = self.sample_cov
        if S.ndim != 2 or S.shape[0] != S.shape[1] or S.shape[0] == 0:
            raise InputShapeError(f"Covariance matrix must be square, got shape {S.shape}")
        if not np.all(np.isfinite(S)):
            raise InputShapeError("Covariance matrix contains non-finite values")
        index, columns = self.sample_cov_df.index, self.sample_cov_df.columns
        if not index.equals(columns):
            raise InputShapeError("Row and column labels of the covariance matrix disagree")
        if columns.has_duplicates:
            dups = list(columns[columns.duplicated()])
            raise InputShapeError(f"Duplicated variable names {dups}")
        scale = max(np.abs(S).max(), 1.0)
        if np.abs(S - S.T).max() > self.sym_tol * scale:
            raise InputShapeError("Covariance matrix is not symmetric")
        S = (S + S.T) / 2.0
        self.sample_cov_df = pd.DataFrame(S, index=columns, columns=columns)
        self.sample_cov = S

    @staticmethod
    def _check_n_obs(n_obs):
        if isinstance(n_obs, bool) or not isinstance(n_obs, numbers.Integral) or n_obs < 2:
            raise InputShapeError(f"Sample size must be an integer greater than one, got {n_obs!r}")
        return int(n_obs)

    @staticmethod
    def _to_dataframe_and_array(data):
        if isinstance(data, pd.DataFrame):
            try:
                df = data.astype(float)
            except (TypeError, ValueError) as exc:
                raise InputShapeError("Covariance matrix has non numeric entries") from exc
            df.index = df.index.map(str)
            df.columns = df.columns.map(str)
            arr = df.values
        elif isinstance(data, np.ndarray):
            if data.ndim != 2:
                raise InputShapeError(f"Covariance matrix must be two dimensional, got {data.ndim}")
            index = [f"x{i}" for i in range(1, data.shape[0]+1)]
            columns = [f"x{i}" for i in range(1, data.shape[1]+1)]
            arr = np.asarray(data, dtype=float)
            df = pd.DataFrame(arr, index=index, columns=columns)
        else:
            raise InputShapeError(f"Unsupported covariance input of type {type(data).__name__}")
        return arr, df

    @property
    def var_names(self):
        return list(self.sample_cov_df.columns)

    def subset_and_order(self, variables):
        """
        Restrict the covariance matrix to `variables` (in that order) and
        check that the result is positive definite.

        Parameters
        ----------
        variables : list of str
            Observed variables used by a model.

        Returns
        -------
        model_data : ModelData
            New instance over the requested variables.
        """
        variables = list(variables)
        dropped = [v for v in self.var_names if v not in variables]
        if dropped:
            logger.info("Dropping %d unused variables: %s", len(dropped), ", ".join(dropped))
        S = self.sample_cov_df.loc[variables, variables]
        if np.linalg.eigvalsh(S.values).min() <= 0:
            raise InputShapeError("Covariance matrix of the model variables is not positive definite")
        return type(self)(S, self.n_obs, sym_tol=self.sym_tol)

    @property
    def log_det(self):
        return np.linalg.slogdet(self.sample_cov)[1]

    @classmethod
    def from_samplestats(cls, sample_cov, n_obs, sym_tol=1e-8):
        return cls(sample_cov=sample_cov, n_obs=n_obs, sym_tol=sym_tol)

    @classmethod
    def from_csv(cls, path, n_obs, sym_tol=1e-8, **read_kws):
        """
        Read a covariance matrix stored with variable names in the header
        and the first column.

        Parameters
        ----------
        path : str or path-like
            CSV file.
        n_obs : int
            Sample size the matrix was computed from.
        **read_kws
            Passed to `pandas.read_csv`.

        Returns
        -------
        model_data : ModelData
        """
        read_kws = {"index_col": 0, **read_kws}
        sample_cov = pd.read_csv(path, **read_kws)
        logger.debug("Read %d x %d covariance matrix from %s", *sample_cov.shape, path)
        return cls(sample_cov=sample_cov, n_obs=n_obs, sym_tol=sym_tol)
