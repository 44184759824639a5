"""Type aliases to improve type hint readability."""

from typing import Any, Callable, TypeAlias, Union

from jax import Array
import numpy as np
import scipy.sparse as sp

LinearMap: TypeAlias = Callable[[Array], Array]
RHSFunction: TypeAlias = Callable[..., Any]
JacobianMatrix: TypeAlias = Union[Array, np.ndarray, sp.csc_matrix]
