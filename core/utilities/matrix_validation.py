# core/utilities/matrix_validation.py
from typing import Tuple
import numpy as np
import scipy.sparse as sp

def validate_feature_matrix(matrix, name: str = "matrix") -> Tuple[bool, str]:
    """Check that a feature matrix is 2-D, real-valued and finite."""
    if not sp.issparse(matrix):
        try:
            matrix = np.asarray(matrix)
        except (TypeError, ValueError) as e:
            return False, f"{name} is not array-like ({e})"

    if matrix.ndim != 2:
        return False, f"{name} must be 2-D, got {matrix.ndim}-D"

    # Type check
    dtype = matrix.dtype
    if dtype != np.bool_ and not np.issubdtype(dtype, np.number):
        return False, f"{name} has non-numeric dtype {dtype}"
    if np.issubdtype(dtype, np.complexfloating):
        return False, f"{name} has complex dtype {dtype}"

    # NaN/Inf check, stored entries only for sparse input
    if np.issubdtype(dtype, np.floating):
        values = sp.coo_matrix(matrix).data if sp.issparse(matrix) else matrix
        bad = int(np.count_nonzero(~np.isfinite(values)))
        if bad:
            return False, f"{name} holds {bad} NaN or Inf value(s)"

    return True, "Valid"
