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

"""The liquid potential temperature and its zero-liquid inverse.

The liquid potential temperature is related to the temperature T, the pressure
p and the liquid water content q_l by:

  theta_l = T (p_ref / p)^(R_d / cp_d) exp(-L_v q_l / (cp_d T)).

With q_l = 0 the relation reduces to the dry potential temperature, which has a
closed-form inverse that is used as the initial guess of the temperature.

All functions accept scalars or numpy arrays, and follow numpy broadcasting.
"""

from typing import Optional

import numpy as np
from theta_inversion.base import errors
from theta_inversion.physics import constants as constants_lib
from theta_inversion.utility import types

FloatOrArray = types.FloatOrArray
PhysicalConstants = constants_lib.PhysicalConstants


def _constants_or_default(
    constants: Optional[PhysicalConstants],
) -> PhysicalConstants:
  return constants if constants is not None else constants_lib.DEFAULT_CONSTANTS


def exner_inverse(
    p: FloatOrArray,
    constants: Optional[PhysicalConstants] = None,
) -> FloatOrArray:
  """Computes the inverse Exner function (p_ref / p)^(R_d / cp_d)."""
  constants = _constants_or_default(constants)
  return np.power(constants.p_ref / np.asarray(p, dtype=types.NP_DTYPE),
                  constants.kappa)


def liquid_term(
    q_l: FloatOrArray,
    constants: Optional[PhysicalConstants] = None,
) -> FloatOrArray:
  """Computes L_v q_l / cp_d, the temperature scale of the liquid correction."""
  constants = _constants_or_default(constants)
  return constants.lh_v * np.asarray(q_l, dtype=types.NP_DTYPE) / constants.cp_d


def theta_l_from_exner_inverse(
    t: np.ndarray,
    exner_inv: np.ndarray,
    liquid_t: np.ndarray,
) -> np.ndarray:
  """Evaluates the liquid potential temperature without domain checks.

  This is the form used in the iterations of the solver, where the inverse
  Exner function and the liquid term of each sample are computed only once.

  Args:
    t: The temperature, in units of K. Must be positive.
    exner_inv: The inverse Exner function, (p_ref / p)^(R_d / cp_d).
    liquid_t: The liquid term L_v q_l / cp_d, in units of K.

  Returns:
    The liquid potential temperature, in units of K.
  """
  return t * exner_inv * np.exp(-liquid_t / t)


def check_domain(
    t: Optional[FloatOrArray] = None,
    p: Optional[FloatOrArray] = None,
    q_l: Optional[FloatOrArray] = None,
) -> None:
  """Checks that the inputs are in the physical domain.

  Args:
    t: The temperature, which has to be finite and positive.
    p: The pressure, which has to be finite and positive.
    q_l: The liquid water content, which has to be finite and non-negative.

  Raises:
    DomainError: If any element of the inputs is outside of the domain.
  """
  for name, value, allow_zero in (('T', t, False), ('p', p, False),
                                  ('q_l', q_l, True)):
    if value is None:
      continue
    value = np.asarray(value, dtype=types.NP_DTYPE)
    if not np.all(np.isfinite(value)):
      raise errors.DomainError(f'`{name}` must be finite.')
    invalid = value < 0.0 if allow_zero else value <= 0.0
    if np.any(invalid):
      bound = 'non-negative' if allow_zero else 'positive'
      raise errors.DomainError(
          f'`{name}` must be {bound}, but {np.count_nonzero(invalid)} '
          f'value(s) are not, e.g. {value[invalid].flat[0]}.')


def liquid_potential_temperature(
    t: FloatOrArray,
    p: FloatOrArray,
    q_l: FloatOrArray,
    constants: Optional[PhysicalConstants] = None,
) -> FloatOrArray:
  """Computes the liquid potential temperature.

  Args:
    t: The temperature, in units of K.
    p: The pressure, in units of Pa.
    q_l: The liquid water content, in units of kg/kg.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    The liquid potential temperature, in units of K.

  Raises:
    DomainError: If T <= 0, p <= 0, q_l < 0, or any input is not finite.
  """
  check_domain(t, p, q_l)
  return theta_l_from_exner_inverse(
      np.asarray(t, dtype=types.NP_DTYPE),
      exner_inverse(p, constants),
      liquid_term(q_l, constants),
  )


def liquid_potential_temperature_derivative(
    t: FloatOrArray,
    p: FloatOrArray,
    q_l: FloatOrArray,
    constants: Optional[PhysicalConstants] = None,
) -> FloatOrArray:
  """Computes the derivative of the liquid potential temperature wrt T.

  d theta_l / dT = (p_ref / p)^(R_d / cp_d) exp(-a / T) (1 + a / T), with
  a = L_v q_l / cp_d. It is positive for all T > 0 if q_l >= 0, i.e. the liquid
  potential temperature is strictly increasing in T.

  Args:
    t: The temperature, in units of K.
    p: The pressure, in units of Pa.
    q_l: The liquid water content, in units of kg/kg.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    The derivative of the liquid potential temperature with respect to T.

  Raises:
    DomainError: If T <= 0, p <= 0, q_l < 0, or any input is not finite.
  """
  check_domain(t, p, q_l)
  t = np.asarray(t, dtype=types.NP_DTYPE)
  a_over_t = liquid_term(q_l, constants) / t
  return exner_inverse(p, constants) * np.exp(-a_over_t) * (1.0 + a_over_t)


def is_monotonic_in_bracket(
    p: FloatOrArray,
    q_l: FloatOrArray,
    t_min: float,
    t_max: float,
    num_points: int = 1024,
    constants: Optional[PhysicalConstants] = None,
) -> bool:
  """Checks numerically that theta_l is strictly increasing in [t_min, t_max].

  Args:
    p: The pressures to be checked, in units of Pa.
    q_l: The liquid water contents to be checked, broadcastable with `p`.
    t_min: The lower bound of the temperature bracket, in units of K.
    t_max: The upper bound of the temperature bracket, in units of K.
    num_points: The number of temperatures sampled in the bracket.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    True if the liquid potential temperature increases strictly between
    consecutive sampled temperatures for every pair of `p` and `q_l`.
  """
  p, q_l = np.broadcast_arrays(
      np.asarray(p, dtype=types.NP_DTYPE), np.asarray(q_l, dtype=types.NP_DTYPE))
  t = np.linspace(t_min, t_max, num_points)
  theta_l = liquid_potential_temperature(
      t[:, np.newaxis], p.reshape(1, -1), q_l.reshape(1, -1), constants)
  return bool(np.all(np.diff(theta_l, axis=0) > 0.0))


def dry_temperature_guess(
    theta_l: FloatOrArray,
    p: FloatOrArray,
    constants: Optional[PhysicalConstants] = None,
) -> FloatOrArray:
  """Computes the temperature assuming that there is no liquid water.

  T = theta_l / (p_ref / p)^(R_d / cp_d), which is the exact inverse of the
  liquid potential temperature when q_l = 0.

  Args:
    theta_l: The liquid potential temperature, in units of K.
    p: The pressure, in units of Pa.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    The temperature of the dry air, in units of K.
  """
  return np.asarray(theta_l, dtype=types.NP_DTYPE) / exner_inverse(p, constants)


def linearized_temperature_guess(
    theta_l: FloatOrArray,
    p: FloatOrArray,
    q_l: FloatOrArray,
    constants: Optional[PhysicalConstants] = None,
) -> FloatOrArray:
  """Computes the temperature with a first order liquid correction.

  T = theta_l / (p_ref / p)^(R_d / cp_d) + L_v q_l / cp_d, which follows from
  linearizing the exponential term around q_l = 0. It overestimates the
  temperature slightly, so it pairs with the dry guess as the seeds of the
  secant iterations.

  Args:
    theta_l: The liquid potential temperature, in units of K.
    p: The pressure, in units of Pa.
    q_l: The liquid water content, in units of kg/kg.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    The linearized estimate of the temperature, in units of K.
  """
  return (dry_temperature_guess(theta_l, p, constants) +
          liquid_term(q_l, constants))
