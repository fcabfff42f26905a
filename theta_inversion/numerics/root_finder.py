# Copyright 2025 The theta_inversion Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""A safeguarded secant method for many independent scalar equations.

Each element of the input arrays defines its own scalar equation
`residual_fn(x, *args) = 0` that has a root in the bracket `[lower, upper]`,
i.e. the residual changes sign between the two ends of the bracket. The
iterations of all elements are carried out together in vectorized form, but
every element keeps its own state and stops on its own: the result at an
element depends only on the inputs at that element.

Each iteration takes a secant step from the last two iterates. The step is
replaced by bisection of the current bracket if it is not finite, if it falls
outside of the open bracket, or if the previous step failed to reduce the
magnitude of the residual. The bracket shrinks with the sign of every new
residual, so progress is guaranteed even when the secant step misbehaves.
"""

import collections
from typing import Sequence, Tuple

import numpy as np
from theta_inversion.utility import types

ResidualFn = types.ResidualFn

RootFinderResult = collections.namedtuple(
    'RootFinderResult', ('x', 'converged', 'iterations'))


def _select_exact_root(
    candidates: Sequence[Tuple[np.ndarray, np.ndarray]],
    default: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
  """Picks the first candidate position whose residual is exactly zero."""
  x = default.copy()
  found = np.zeros(default.shape, dtype=bool)
  for position, residual in candidates:
    exact = ~found & (residual == 0.0)
    x[exact] = position[exact]
    found |= exact
  return x, found


def safeguarded_secant(
    residual_fn: ResidualFn,
    args: Sequence[np.ndarray],
    x0: np.ndarray,
    x1: np.ndarray,
    lower: np.ndarray,
    upper: np.ndarray,
    f_lower: np.ndarray,
    f_upper: np.ndarray,
    max_iterations: int,
    rtol: float,
    atol: float,
) -> RootFinderResult:
  """Finds the roots of `residual_fn` within brackets.

  Args:
    residual_fn: The function whose root is sought, called as
      `residual_fn(x, *args)` with 1D arrays of equal length. It must be
      elementwise.
    args: The per-element arguments of `residual_fn`, as 1D arrays.
    x0: The first seed of the secant iterations.
    x1: The second seed of the secant iterations, which is the first iterate.
    lower: The lower end of the bracket.
    upper: The upper end of the bracket.
    f_lower: The residual at `lower`.
    f_upper: The residual at `upper`. Must differ in sign from `f_lower`, or
      one of them must be zero.
    max_iterations: The maximum number of iterations of each element.
    rtol: The relative tolerance of successive iterates.
    atol: The absolute tolerance of successive iterates.

  Returns:
    A `RootFinderResult` with the last iterate `x`, whether each element
    converged, and the number of iterations taken by each element. Roots found
    exactly at the seeds or at the ends of the bracket take no iterations.

  Raises:
    ValueError: If any tolerance is negative.
  """
  if rtol < 0.0 or atol < 0.0:
    raise ValueError(
        f'Tolerance should be non-negative: (rtol, atol) = ({rtol}, {atol}).')

  lower = np.array(lower, dtype=types.NP_DTYPE)
  upper = np.array(upper, dtype=types.NP_DTYPE)
  f_lower = np.asarray(f_lower, dtype=types.NP_DTYPE)
  sign_lower = np.sign(f_lower)

  x_prev = np.clip(x0, lower, upper)
  x = np.clip(x1, lower, upper)
  f_prev = residual_fn(x_prev, *args)
  f = residual_fn(x, *args)

  # The seeds shrink the bracket.
  for position, residual in ((x_prev, f_prev), (x, f)):
    on_lower_side = np.sign(residual) == sign_lower
    lower = np.where(on_lower_side, np.maximum(lower, position), lower)
    upper = np.where(on_lower_side, upper, np.minimum(upper, position))

  x, converged = _select_exact_root(
      ((x, f), (x_prev, f_prev), (lower, f_lower), (upper, f_upper)), x)
  iterations = np.zeros(x.shape, dtype=types.NP_ITERATION_DTYPE)
  stalled = np.zeros(x.shape, dtype=bool)

  for _ in range(max_iterations):
    idx = np.flatnonzero(~converged)
    if idx.size == 0:
      break

    a0, fa0 = x_prev[idx], f_prev[idx]
    a1, fa1 = x[idx], f[idx]
    lo, hi = lower[idx], upper[idx]

    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
      secant = a1 - fa1 * (a1 - a0) / (fa1 - fa0)
    use_bisection = (stalled[idx] | ~np.isfinite(secant) | (secant <= lo) |
                     (secant >= hi))
    x_new = np.where(use_bisection, 0.5 * (lo + hi), secant)
    f_new = residual_fn(x_new, *(arg[idx] for arg in args))

    on_lower_side = np.sign(f_new) == sign_lower[idx]
    lo = np.where(on_lower_side, x_new, lo)
    hi = np.where(on_lower_side, hi, x_new)

    tol = atol + rtol * np.abs(x_new)
    narrow = hi - lo <= tol
    done = (f_new == 0.0) | (np.abs(x_new - a1) <= tol) | narrow
    # The middle of a narrow bracket is within half its width of the root.
    x_new = np.where(narrow & (f_new != 0.0), 0.5 * (lo + hi), x_new)

    x_prev[idx], f_prev[idx] = a1, fa1
    x[idx], f[idx] = x_new, f_new
    lower[idx], upper[idx] = lo, hi
    stalled[idx] = np.abs(f_new) >= np.abs(fa1)
    iterations[idx] += 1
    converged[idx] = done

  return RootFinderResult(x=x, converged=converged, iterations=iterations)
