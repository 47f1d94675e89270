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
"""Static strings used in the OptForce package

    Model and envelopes

        MODEL_ID = 'model_id'

        MIN_FLUXES_WT = 'min_fluxes_wt'

        MAX_FLUXES_WT = 'max_fluxes_wt'

        CONSTRAINTS = 'constraints'

        EXCLUDED = 'excluded_rxns'

    Solvers and status codes

        SOLVER = 'solver'

        GLPK = 'glpk'

        HIGHS = 'highs'

        OPTIMAL = 'optimal' # from optlang interface

        INFEASIBLE ='infeasible' # from optlang interface

        TIME_LIMIT = 'time_limit' # from optlang interface

        UNBOUNDED = 'unbounded' # from optlang interface

        TIME_LIMIT_W_SOL = 'time_limit_w_sols'

        ERROR = 'error'

    Constraint senses

        GEQ = 'G'

        EQ = 'E'

        LEQ = 'L'

    Must set setup

        MUST_SETUP = 'must_setup'

        MUST_TYPE = 'must_type'

        MUST_U = 'must_u'

        MUST_L = 'must_l'

        MUST_UL = 'must_ul'

        BIG_M = 'M'

        VAR_BOUND = 'bound'

        MIN_IMPROVEMENT = 'min_improvement'

        INT_TOL = 'int_tol'

        MAX_SOLUTIONS = 'max_solutions'

        T_LIMIT = 'time_limit'

        KEEP_INPUTS = 'keep_inputs'

        INPUT_DIR = 'input_dir'

        RUN_DIR = 'run_dir'

    Analysis

        MAXIMIZE = 'maximize'

        MINIMIZE = 'minimize'

    Interventions

        Intervention.UPREGULATION, Intervention.DOWNREGULATION, Intervention.KNOCKOUT
"""

from enum import Enum

# Model and envelopes
MODEL_ID = 'model_id'
MIN_FLUXES_WT = 'min_fluxes_wt'
MAX_FLUXES_WT = 'max_fluxes_wt'
CONSTRAINTS = 'constraints'
EXCLUDED = 'excluded_rxns'

# Solvers and status codes
SOLVER = 'solver'
GLPK = 'glpk'
HIGHS = 'highs'
from optlang.interface import OPTIMAL,    \
                              INFEASIBLE, \
                              TIME_LIMIT, \
                              UNBOUNDED

TIME_LIMIT_W_SOL = 'time_limit_w_sols'
ERROR = 'error'

# Constraint senses
GEQ = 'G'
EQ = 'E'
LEQ = 'L'
SENSES = {GEQ: GEQ, EQ: EQ, LEQ: LEQ, '>=': GEQ, '=': EQ, '==': EQ, '<=': LEQ}

# Must set setup
MUST_SETUP = 'must_setup'
MUST_TYPE = 'must_type'
MUST_U = 'must_u'
MUST_L = 'must_l'
MUST_UL = 'must_ul'
BIG_M = 'M'
VAR_BOUND = 'bound'
MIN_IMPROVEMENT = 'min_improvement'
INT_TOL = 'int_tol'
MAX_SOLUTIONS = 'max_solutions'
T_LIMIT = 'time_limit'
KEEP_INPUTS = 'keep_inputs'
INPUT_DIR = 'input_dir'
RUN_DIR = 'run_dir'

# Analysis
MAXIMIZE = 'maximize'
MINIMIZE = 'minimize'


class Intervention(Enum):
    """Types of flux interventions proposed by OptForce"""
    UPREGULATION = 'upregulation'
    DOWNREGULATION = 'downregulation'
    KNOCKOUT = 'knockout'

    @classmethod
    def from_code(cls, code):
        """Translate the legacy one-letter codes 'U', 'L' and 'K'"""
        if isinstance(code, cls):
            return code
        codes = {'U': cls.UPREGULATION, 'L': cls.DOWNREGULATION, 'K': cls.KNOCKOUT}
        if code in codes:
            return codes[code]
        return cls(code)
