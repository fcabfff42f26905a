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

"""Errors raised by the temperature inversion library.

Per-sample errors (`DomainError`, `ConvergenceError`) are recorded in the
result of the sample by the solvers and never abort a batch. They are raised
only by the public forward model and by `SolverResult.raise_for_status`.
`ConfigurationError` is raised before any sample is dispatched.
"""


class ThetaInversionError(Exception):
  """Base class of all errors raised by this library."""


class DomainError(ThetaInversionError, ValueError):
  """Raised when an input is outside of the physical domain.

  The domain is T > 0, p > 0 and q_l >= 0, with all values finite.
  """


class ConvergenceError(ThetaInversionError, ArithmeticError):
  """Raised when a root is not bracketed or the iteration budget is used up."""


class ConfigurationError(ThetaInversionError, ValueError):
  """Raised when a `SolverConfig` is malformed."""


class BatchCancelledError(ThetaInversionError):
  """Raised when a batch is cancelled before all chunks are evaluated."""
