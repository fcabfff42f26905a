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

"""Library for the input config of the temperature solver.

A `SolverConfig` is constructed once per batch and shared read-only by all
workers. It can be created directly, or from the command line flags defined in
this module with `config_from_flags`:

  config = parameters.config_from_flags()
  result = batch_evaluator.solve_temperature_batch(theta_l, p, q_l, config)
"""

import dataclasses
import math
import os
from typing import Optional

from absl import flags
from absl import logging
from theta_inversion.base import errors

# The default relative tolerance of the temperature iterations.
DEFAULT_RTOL = 1e-6
# The default absolute tolerance of the temperature iterations, in units of K.
DEFAULT_ATOL = 1e-3
DEFAULT_MAX_ITER = 50
# The default bracket of valid temperatures, in units of K (about -100 C to
# 50 C).
DEFAULT_T_MIN = 173.0
DEFAULT_T_MAX = 323.0
# The default number of samples in a chunk dispatched to a worker.
DEFAULT_CHUNK_SIZE = 65536

_RTOL = flags.DEFINE_float(
    'theta_inversion_rtol',
    DEFAULT_RTOL,
    'The relative tolerance of the successive temperature iterates.',
)
_ATOL = flags.DEFINE_float(
    'theta_inversion_atol',
    DEFAULT_ATOL,
    'The absolute tolerance of the successive temperature iterates, in K.',
)
_MAX_ITER = flags.DEFINE_integer(
    'theta_inversion_max_iter',
    DEFAULT_MAX_ITER,
    'The maximum number of iterations allowed for a single sample.',
)
_T_MIN = flags.DEFINE_float(
    'theta_inversion_t_min',
    DEFAULT_T_MIN,
    'The lower bound of the temperature bracket, in K.',
)
_T_MAX = flags.DEFINE_float(
    'theta_inversion_t_max',
    DEFAULT_T_MAX,
    'The upper bound of the temperature bracket, in K.',
)
_PARALLELISM = flags.DEFINE_integer(
    'theta_inversion_parallelism',
    None,
    'The number of workers that evaluate a batch. Uses all available cores '
    'if not set.',
)
_CHUNK_SIZE = flags.DEFINE_integer(
    'theta_inversion_chunk_size',
    DEFAULT_CHUNK_SIZE,
    'The number of contiguous samples evaluated by a worker at a time.',
)


def default_parallelism() -> int:
  """Returns the number of cores available to this process."""
  if hasattr(os, 'sched_getaffinity'):
    return max(len(os.sched_getaffinity(0)), 1)
  return os.cpu_count() or 1


@dataclasses.dataclass(frozen=True)
class SolverConfig:
  """The tolerances, bounds and parallelism of a temperature solve.

  Attributes:
    rtol: The relative tolerance on successive iterates.
    atol: The absolute tolerance on successive iterates, in K.
    max_iter: The maximum number of iterations for a single sample.
    t_min: The lower bound of the temperature bracket, in K.
    t_max: The upper bound of the temperature bracket, in K.
    parallelism: The number of workers evaluating a batch.
    chunk_size: The number of contiguous samples in a unit of work.
  """

  rtol: float = DEFAULT_RTOL
  atol: float = DEFAULT_ATOL
  max_iter: int = DEFAULT_MAX_ITER
  t_min: float = DEFAULT_T_MIN
  t_max: float = DEFAULT_T_MAX
  parallelism: int = dataclasses.field(default_factory=default_parallelism)
  chunk_size: int = DEFAULT_CHUNK_SIZE

  def validate(self) -> None:
    """Checks that the config is well formed.

    Raises:
      ConfigurationError: If any of the bounds, tolerances, iteration budget,
        parallelism or chunk size is invalid.
    """
    if not (math.isfinite(self.t_min) and math.isfinite(self.t_max)):
      raise errors.ConfigurationError(
          f'Temperature bounds must be finite, but (t_min, t_max) = '
          f'({self.t_min}, {self.t_max}).')
    if self.t_min <= 0.0:
      raise errors.ConfigurationError(
          f'`t_min` must be positive to stay clear of the singularity at '
          f'T = 0, but {self.t_min} is provided.')
    if self.t_min >= self.t_max:
      raise errors.ConfigurationError(
          f'`t_min` must be less than `t_max`, but (t_min, t_max) = '
          f'({self.t_min}, {self.t_max}).')
    if not (self.rtol >= 0.0 and self.atol >= 0.0):
      raise errors.ConfigurationError(
          f'Tolerances should be non-negative: (rtol, atol) = '
          f'({self.rtol}, {self.atol}).')
    if self.max_iter < 1:
      raise errors.ConfigurationError(
          f'`max_iter` must be at least 1, but {self.max_iter} is provided.')
    if self.parallelism < 1:
      raise errors.ConfigurationError(
          f'`parallelism` must be at least 1, but {self.parallelism} is '
          f'provided.')
    if self.chunk_size < 1:
      raise errors.ConfigurationError(
          f'`chunk_size` must be at least 1, but {self.chunk_size} is '
          f'provided.')

  def replace(self, **changes) -> 'SolverConfig':
    """Returns a copy of this config with `changes` applied.

    Useful to resubmit the non-converged samples of a batch with widened
    bounds or relaxed tolerances.

    Args:
      **changes: The fields to be changed and their new values.

    Returns:
      A new `SolverConfig`.
    """
    return dataclasses.replace(self, **changes)


def _flag_value(holder: flags.FlagHolder):
  """Reads a flag, falling back to its default if flags are not parsed."""
  return flags.FLAGS[holder.name].value


def config_from_flags(parallelism: Optional[int] = None) -> SolverConfig:
  """Creates a validated `SolverConfig` from the command line flags.

  Args:
    parallelism: An optional override of `--theta_inversion_parallelism`.

  Returns:
    The `SolverConfig` specified by the flags.

  Raises:
    ConfigurationError: If the flags specify an invalid config.
  """
  if parallelism is None:
    parallelism = _flag_value(_PARALLELISM)
  if parallelism is None:
    parallelism = default_parallelism()

  config = SolverConfig(
      rtol=_flag_value(_RTOL),
      atol=_flag_value(_ATOL),
      max_iter=_flag_value(_MAX_ITER),
      t_min=_flag_value(_T_MIN),
      t_max=_flag_value(_T_MAX),
      parallelism=parallelism,
      chunk_size=_flag_value(_CHUNK_SIZE),
  )
  config.validate()
  logging.info('Temperature solver config from flags: %s', config)
  return config
