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

"""A safeguarded secant method for tensors of independent scalar equations.

This is the TensorFlow counterpart of `root_finder.safeguarded_secant`, for use
inside simulation graphs. Considering the efficiency on accelerators, all
elements are updated together on tensors of a fixed shape, and the elements that
have converged are frozen with masks. The loop terminates when all elements
have converged or the maximum number of iterations is reached.
"""

import collections
from typing import Optional, Sequence, Tuple

from theta_inversion.utility import types
import tensorflow as tf

TensorResidualFn = types.TensorResidualFn

_SecantState = collections.namedtuple(
    'SecantState',
    ('x_prev', 'f_prev', 'x', 'f', 'lower', 'upper', 'stalled', 'converged',
     'iterations'))


def safeguarded_secant(
    residual_fn: TensorResidualFn,
    args: Sequence[tf.Tensor],
    x0: tf.Tensor,
    x1: tf.Tensor,
    lower: tf.Tensor,
    upper: tf.Tensor,
    f_lower: tf.Tensor,
    f_upper: tf.Tensor,
    max_iterations: int,
    rtol: float,
    atol: float,
    active: Optional[tf.Tensor] = None,
) -> Tuple[tf.Tensor, tf.Tensor, tf.Tensor]:
  """Finds the roots of `residual_fn` within brackets.

  Args:
    residual_fn: The elementwise function whose root is sought, called as
      `residual_fn(x, *args)`.
    args: The per-element arguments of `residual_fn`.
    x0: The first seed of the secant iterations.
    x1: The second seed of the secant iterations, which is the first iterate.
    lower: The lower end of the bracket.
    upper: The upper end of the bracket.
    f_lower: The residual at `lower`.
    f_upper: The residual at `upper`. Must differ in sign from `f_lower`, or
      one of them must be zero, at all active elements.
    max_iterations: The maximum number of iterations.
    rtol: The relative tolerance of successive iterates.
    atol: The absolute tolerance of successive iterates.
    active: An optional boolean mask of the elements to be solved. Inactive
      elements take no iteration and are reported as not converged.

  Returns:
    A tuple of the last iterates, whether each element converged, and the
    number of iterations taken by each element.

  Raises:
    ValueError: If any tolerance is negative.
  """
  if rtol < 0.0 or atol < 0.0:
    raise ValueError(
        f'Tolerance should be non-negative: (rtol, atol) = ({rtol}, {atol}).')

  if active is None:
    active = tf.ones_like(x1, dtype=tf.bool)
  sign_lower = tf.sign(f_lower)

  x_prev = tf.clip_by_value(x0, lower, upper)
  x = tf.clip_by_value(x1, lower, upper)
  f_prev = residual_fn(x_prev, *args)
  f = residual_fn(x, *args)

  # The seeds shrink the bracket.
  for position, residual in ((x_prev, f_prev), (x, f)):
    on_lower_side = tf.equal(tf.sign(residual), sign_lower)
    lower = tf.where(on_lower_side, tf.maximum(lower, position), lower)
    upper = tf.where(on_lower_side, upper, tf.minimum(upper, position))

  # Roots found exactly at the seeds or the ends of the bracket.
  converged = tf.zeros_like(active)
  for position, residual in ((x, f), (x_prev, f_prev), (lower, f_lower),
                             (upper, f_upper)):
    exact = tf.logical_and(tf.logical_not(converged), tf.equal(residual, 0.0))
    x = tf.where(exact, position, x)
    converged = tf.logical_or(converged, exact)
  converged = tf.logical_and(converged, active)

  def body(i: tf.Tensor, states: _SecantState) -> Tuple[tf.Tensor,
                                                        _SecantState]:
    """The main function for one safeguarded secant iteration."""
    update = tf.logical_and(active, tf.logical_not(states.converged))

    df = states.f - states.f_prev
    secant = states.x - states.f * (states.x - states.x_prev) / tf.where(
        tf.equal(df, 0.0), tf.ones_like(df), df)
    use_bisection = tf.reduce_any(
        tf.stack([
            states.stalled,
            tf.equal(df, 0.0),
            tf.logical_not(tf.math.is_finite(secant)),
            tf.less_equal(secant, states.lower),
            tf.greater_equal(secant, states.upper),
        ]),
        axis=0)
    x_new = tf.where(use_bisection, 0.5 * (states.lower + states.upper),
                     secant)
    f_new = residual_fn(x_new, *args)

    on_lower_side = tf.equal(tf.sign(f_new), sign_lower)
    lower_new = tf.where(on_lower_side, x_new, states.lower)
    upper_new = tf.where(on_lower_side, states.upper, x_new)

    tol = atol + rtol * tf.abs(x_new)
    narrow = tf.less_equal(upper_new - lower_new, tol)
    done = tf.reduce_any(
        tf.stack([
            tf.equal(f_new, 0.0),
            tf.less_equal(tf.abs(x_new - states.x), tol),
            narrow,
        ]),
        axis=0)
    # The middle of a narrow bracket is within half its width of the root.
    x_new = tf.where(
        tf.logical_and(narrow, tf.not_equal(f_new, 0.0)),
        0.5 * (lower_new + upper_new), x_new)

    select = lambda new, old: tf.where(update, new, old)
    return (i + 1,
            _SecantState(
                x_prev=select(states.x, states.x_prev),
                f_prev=select(states.f, states.f_prev),
                x=select(x_new, states.x),
                f=select(f_new, states.f),
                lower=select(lower_new, states.lower),
                upper=select(upper_new, states.upper),
                stalled=select(
                    tf.greater_equal(tf.abs(f_new), tf.abs(states.f)),
                    states.stalled),
                converged=select(done, states.converged),
                iterations=select(states.iterations + 1, states.iterations),
            ))

  def cond(i: tf.Tensor, states: _SecantState) -> tf.Tensor:
    """The stop condition of the iterations."""
    pending = tf.logical_and(active, tf.logical_not(states.converged))
    return tf.logical_and(tf.less(i, max_iterations), tf.reduce_any(pending))

  i0 = tf.constant(0)
  states_0 = _SecantState(
      x_prev=x_prev,
      f_prev=f_prev,
      x=x,
      f=f,
      lower=lower,
      upper=upper,
      stalled=tf.zeros_like(active),
      converged=converged,
      iterations=tf.zeros_like(x, dtype=tf.int32),
  )
  _, sol = tf.while_loop(
      cond=cond, body=body, loop_vars=(i0, states_0), back_prop=False)

  return sol.x, sol.converged, sol.iterations
