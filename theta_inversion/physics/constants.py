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

"""A library of physical constants used by the temperature inversion."""

import dataclasses

# The reference pressure of the potential temperature, in units of Pa.
P_REF = 1.0e5

# The gas constant for dry air, in units of J/kg/K.
R_D = 287.04

# The constant pressure heat capacity of dry air, in units of J/kg/K.
CP_D = 1004.0

# The latent heat of vaporization, in units of J/kg.
LH_V = 2.5e6


@dataclasses.dataclass(frozen=True)
class PhysicalConstants:
  """The constants in the liquid potential temperature relation.

  Instances are immutable so that a single instance can be shared by all
  workers of a batch without synchronization.
  """

  p_ref: float = P_REF
  r_d: float = R_D
  cp_d: float = CP_D
  lh_v: float = LH_V

  @property
  def kappa(self) -> float:
    """The exponent of the Exner function, R_d / cp_d."""
    return self.r_d / self.cp_d


DEFAULT_CONSTANTS = PhysicalConstants()
