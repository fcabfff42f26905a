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

"""Solves the temperature from the liquid potential temperature.

The temperature T is the root of

  f(T) = T (p_ref / p)^(R_d / cp_d) exp(-L_v q_l / (cp_d T)) - theta_l,

which is strictly increasing in T for q_l >= 0. Samples without liquid water
are inverted in closed form. All other samples are solved with a safeguarded
secant method within the bracket `[config.t_min, config.t_max]`, seeded with
the dry and the linearized guesses of the temperature, which bound the root
from below and above.

Failures at a sample never raise. They are reported in the `status` of the
sample instead, so that a batch is always evaluated in full.
"""

from typing import Optional

import numpy as np
from theta_inversion.base import parameters
from theta_inversion.numerics import root_finder
from theta_inversion.physics import constants as constants_lib
from theta_inversion.physics.thermodynamics import liquid_potential_temperature as lpt
from theta_inversion.solver import results
from theta_inversion.utility import types

SolverConfig = parameters.SolverConfig
SolverResult = results.SolverResult
SolverStatus = results.SolverStatus
BatchResult = results.BatchResult


def theta_l_residual(
    t: np.ndarray,
    exner_inv: np.ndarray,
    liquid_t: np.ndarray,
    target: np.ndarray,
) -> np.ndarray:
  """Computes the residual of the liquid potential temperature at `t`."""
  return lpt.theta_l_from_exner_inverse(t, exner_inv, liquid_t) - target


def solve_chunk(
    theta_l: np.ndarray,
    p: np.ndarray,
    q_l: np.ndarray,
    config: SolverConfig,
    constants: Optional[constants_lib.PhysicalConstants] = None,
    out: Optional[BatchResult] = None,
) -> BatchResult:
  """Solves the temperature for a contiguous chunk of samples.

  This is the kernel shared by the single sample and the batch solvers. The
  result at each sample depends only on the inputs of that sample and on
  `config`.

  Args:
    theta_l: The liquid potential temperatures, as a 1D array, in units of K.
    p: The pressures, as a 1D array, in units of Pa.
    q_l: The liquid water contents, as a 1D array, in units of kg/kg.
    config: The tolerances and bounds of the solver. Assumed to be valid.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.
    out: Optional 1D output arrays to write to, e.g. views into the results of
      a whole batch. Allocated if not provided.

  Returns:
    The results of the chunk, which is `out` if it is provided.
  """
  theta_l = np.asarray(theta_l, dtype=types.NP_DTYPE)
  p = np.asarray(p, dtype=types.NP_DTYPE)
  q_l = np.asarray(q_l, dtype=types.NP_DTYPE)
  if out is None:
    out = BatchResult.empty(theta_l.shape)

  with np.errstate(all='ignore'):
    exner_inv = lpt.exner_inverse(p, constants)
    liquid_t = lpt.liquid_term(q_l, constants)
    t_dry = theta_l / exner_inv

  valid = (np.isfinite(theta_l) & np.isfinite(p) & np.isfinite(q_l) &
           (theta_l > 0.0) & (p > 0.0) & (q_l >= 0.0))
  out.T[:] = np.where(np.isfinite(t_dry) & (t_dry > 0.0), t_dry, np.nan)
  out.converged[:] = False
  out.iterations[:] = 0
  out.status[:] = SolverStatus.DOMAIN_ERROR

  # Without liquid water the dry guess is the exact root.
  dry = valid & (q_l == 0.0)
  in_bounds = (t_dry >= config.t_min) & (t_dry <= config.t_max)
  out.converged[dry & in_bounds] = True
  out.status[dry & in_bounds] = SolverStatus.CONVERGED
  out.status[dry & ~in_bounds] = SolverStatus.NO_BRACKET

  wet = np.flatnonzero(valid & (q_l > 0.0))
  if wet.size == 0:
    return out

  args = (exner_inv[wet], liquid_t[wet], theta_l[wet])
  lower = np.full(wet.shape, config.t_min, dtype=types.NP_DTYPE)
  upper = np.full(wet.shape, config.t_max, dtype=types.NP_DTYPE)
  f_lower = theta_l_residual(lower, *args)
  f_upper = theta_l_residual(upper, *args)

  bracketed = (f_lower <= 0.0) & (f_upper >= 0.0)
  out.status[wet[~bracketed]] = SolverStatus.NO_BRACKET

  idx = wet[bracketed]
  if idx.size == 0:
    return out

  sol = root_finder.safeguarded_secant(
      theta_l_residual,
      tuple(arg[bracketed] for arg in args),
      x0=t_dry[idx],
      x1=t_dry[idx] + liquid_t[idx],
      lower=lower[bracketed],
      upper=upper[bracketed],
      f_lower=f_lower[bracketed],
      f_upper=f_upper[bracketed],
      max_iterations=config.max_iter,
      rtol=config.rtol,
      atol=config.atol,
  )
  out.T[idx] = sol.x
  out.converged[idx] = sol.converged
  out.iterations[idx] = sol.iterations
  out.status[idx] = np.where(sol.converged, SolverStatus.CONVERGED,
                             SolverStatus.MAX_ITERATIONS)
  return out


def solve_temperature(
    theta_l: float,
    p: float,
    q_l: float,
    config: Optional[SolverConfig] = None,
    constants: Optional[constants_lib.PhysicalConstants] = None,
) -> SolverResult:
  """Solves the temperature of a single sample.

  Args:
    theta_l: The liquid potential temperature, in units of K.
    p: The pressure, in units of Pa.
    q_l: The liquid water content, in units of kg/kg.
    config: The tolerances and bounds of the solver. Defaults to
      `SolverConfig()`.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    The `SolverResult` of the sample. It is identical to the result of the same
    sample solved as part of a batch.

  Raises:
    ConfigurationError: If `config` is invalid.
    ValueError: If any input is not a scalar.
  """
  config = config if config is not None else SolverConfig()
  config.validate()

  inputs = [np.asarray(x, dtype=types.NP_DTYPE) for x in (theta_l, p, q_l)]
  if any(x.size != 1 for x in inputs):
    raise ValueError(
        f'`solve_temperature` takes scalar inputs, but inputs of sizes '
        f'{[x.size for x in inputs]} are provided. Use '
        f'`solve_temperature_batch` for arrays.')

  return solve_chunk(*(x.reshape(1) for x in inputs), config, constants)[0]
