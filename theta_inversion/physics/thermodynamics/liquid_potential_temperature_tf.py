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

"""The liquid potential temperature and its inverse for TensorFlow graphs.

This library mirrors `liquid_potential_temperature` and `temperature_solver`
on tensors, so that the temperature can be recovered inside a simulation step
without a round trip to the host. Inputs are assumed to be float64 tensors of
the same shape. The results agree with the numpy solver within the configured
tolerance; bitwise reproducibility is guaranteed by the numpy solver only.
"""

from typing import Optional, Tuple

from theta_inversion.base import parameters
from theta_inversion.numerics import root_finder_tf
from theta_inversion.physics import constants as constants_lib
from theta_inversion.utility import types
import tensorflow as tf

FlowFieldVal = tf.Tensor
PhysicalConstants = constants_lib.PhysicalConstants

_TF_DTYPE = types.TF_DTYPE


def _constants_or_default(
    constants: Optional[PhysicalConstants],
) -> PhysicalConstants:
  return constants if constants is not None else constants_lib.DEFAULT_CONSTANTS


def exner_inverse(
    p: FlowFieldVal,
    constants: Optional[PhysicalConstants] = None,
) -> FlowFieldVal:
  """Computes the inverse Exner function (p_ref / p)^(R_d / cp_d)."""
  constants = _constants_or_default(constants)
  return tf.pow(constants.p_ref / p, constants.kappa)


def liquid_potential_temperature(
    t: FlowFieldVal,
    p: FlowFieldVal,
    q_l: FlowFieldVal,
    constants: Optional[PhysicalConstants] = None,
) -> FlowFieldVal:
  """Computes the liquid potential temperature.

  Args:
    t: The temperature, in units of K.
    p: The pressure, in units of Pa.
    q_l: The liquid water content, in units of kg/kg.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    The liquid potential temperature, in units of K.
  """
  constants = _constants_or_default(constants)
  return t * exner_inverse(p, constants) * tf.exp(
      -constants.lh_v * q_l / (constants.cp_d * t))


def dry_temperature_guess(
    theta_l: FlowFieldVal,
    p: FlowFieldVal,
    constants: Optional[PhysicalConstants] = None,
) -> FlowFieldVal:
  """Computes the temperature assuming that there is no liquid water."""
  return theta_l / exner_inverse(p, constants)


def linearized_temperature_guess(
    theta_l: FlowFieldVal,
    p: FlowFieldVal,
    q_l: FlowFieldVal,
    constants: Optional[PhysicalConstants] = None,
) -> FlowFieldVal:
  """Computes the temperature with a first order liquid correction."""
  constants = _constants_or_default(constants)
  return (dry_temperature_guess(theta_l, p, constants) +
          constants.lh_v * q_l / constants.cp_d)


def temperature_from_liquid_potential_temperature(
    theta_l: FlowFieldVal,
    p: FlowFieldVal,
    q_l: FlowFieldVal,
    config: Optional[parameters.SolverConfig] = None,
    constants: Optional[PhysicalConstants] = None,
) -> Tuple[FlowFieldVal, FlowFieldVal, FlowFieldVal]:
  """Computes the temperature from the liquid potential temperature.

  Args:
    theta_l: The liquid potential temperature, in units of K.
    p: The pressure, in units of Pa.
    q_l: The liquid water content, in units of kg/kg.
    config: The tolerances and bounds of the solver. Its `parallelism` and
      `chunk_size` are not used. Defaults to `SolverConfig()`.
    constants: The physical constants. Defaults to `DEFAULT_CONSTANTS`.

  Returns:
    A tuple of the temperature, whether the solver converged, and the number of
    iterations taken, at each element. Where the solver did not converge, the
    temperature is the best available estimate, or NaN outside of the
    physical domain.

  Raises:
    ConfigurationError: If `config` is invalid.
  """
  config = config if config is not None else parameters.SolverConfig()
  config.validate()
  constants = _constants_or_default(constants)

  theta_l = tf.convert_to_tensor(theta_l, dtype=_TF_DTYPE)
  p = tf.convert_to_tensor(p, dtype=_TF_DTYPE)
  q_l = tf.convert_to_tensor(q_l, dtype=_TF_DTYPE)

  exner_inv = exner_inverse(p, constants)
  liquid_t = constants.lh_v * q_l / constants.cp_d
  t_dry = theta_l / exner_inv

  valid = tf.reduce_all(
      tf.stack([
          tf.math.is_finite(theta_l),
          tf.math.is_finite(p),
          tf.math.is_finite(q_l),
          tf.greater(theta_l, 0.0),
          tf.greater(p, 0.0),
          tf.greater_equal(q_l, 0.0),
      ]),
      axis=0)
  dry = tf.logical_and(valid, tf.equal(q_l, 0.0))
  wet = tf.logical_and(valid, tf.greater(q_l, 0.0))

  def residual_fn(t, exner_inv_i, liquid_t_i, target_i):
    """Computes the error of the liquid potential temperature."""
    return t * exner_inv_i * tf.exp(-liquid_t_i / t) - target_i

  args = (exner_inv, liquid_t, theta_l)
  lower = config.t_min * tf.ones_like(theta_l)
  upper = config.t_max * tf.ones_like(theta_l)
  f_lower = residual_fn(lower, *args)
  f_upper = residual_fn(upper, *args)
  bracketed = tf.logical_and(
      wet,
      tf.logical_and(tf.less_equal(f_lower, 0.0), tf.greater_equal(f_upper,
                                                                   0.0)))

  t_sol, converged, iterations = root_finder_tf.safeguarded_secant(
      residual_fn,
      args,
      x0=t_dry,
      x1=t_dry + liquid_t,
      lower=lower,
      upper=upper,
      f_lower=f_lower,
      f_upper=f_upper,
      max_iterations=config.max_iter,
      rtol=config.rtol,
      atol=config.atol,
      active=bracketed,
  )

  t_best = tf.where(
      tf.logical_and(tf.math.is_finite(t_dry), tf.greater(t_dry, 0.0)), t_dry,
      tf.constant(float('nan'), dtype=_TF_DTYPE) * tf.ones_like(t_dry))
  t = tf.where(bracketed, t_sol, t_best)
  in_bounds = tf.logical_and(
      tf.greater_equal(t_dry, config.t_min), tf.less_equal(t_dry, config.t_max))
  converged = tf.where(dry, in_bounds, tf.logical_and(bracketed, converged))
  iterations = tf.where(bracketed, iterations, tf.zeros_like(iterations))
  return t, converged, iterations
