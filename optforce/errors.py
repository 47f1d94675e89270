#!/usr/bin/env python3
#
# Copyright 2022 Max Planck Insitute Magdeburg
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
#
#
#
"""Exceptions raised by the OptForce package"""


class OptForceError(Exception):
    """Base class of all errors raised in the OptForce package"""


class ValidationError(OptForceError, ValueError):
    """Malformed or inconsistent input, detected before any solver is called"""


class ExternalBackendError(OptForceError, RuntimeError):
    """An external optimization backend returned an unusable result"""


class SolverFailure(OptForceError, RuntimeError):
    """The MILP solver terminated with a status other than success or infeasibility

    Args:
        message (str):
            Description of the failure.

        status (str): (Default: None)
            The status string reported by the solver interface.
    """

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class SolverInfeasible(OptForceError):
    """The MILP has no further solution

    This is not an error. It signals the regular end of a solution enumeration."""
