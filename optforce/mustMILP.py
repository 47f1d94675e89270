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
"""Enumeration of MustUL reaction pairs (MustULMILP)"""

import time
from numpy import inf, isnan
from typing import List
from optforce.names import *
from optforce.errors import ValidationError, SolverFailure, SolverInfeasible
from optforce.metabolicModel import as_metabolic_model
from optforce.mustProblem import MustULProblem
from optforce.mustSolutions import InterventionPair, MustSolutions
from optforce.solver_interface import solve_milp, select_solver
import logging


class MustULMILP:
    """Enumerator for MustUL pairs
    
    Each iteration builds a MustULProblem that excludes all pairs found so far and solves it.
    An optimal solution yields a new pair, infeasibility means that all pairs have been found.
    Any other solver outcome is an error and raises SolverFailure.

    Example:
        must_ul = MustULMILP(model, envelope_wt, constraints=['EX_glc = -10'], solver='glpk')
        sols = must_ul.enumerate(max_solutions=10)

    Args:
        model (MetabolicModel or cobra.Model):
            The metabolic model.
            
        envelope_wt (FluxEnvelope):
            Minimal and maximal fluxes of the wild type.
            
        constraints, excluded_rxns, M, bound, min_improvement (optional):
            Passed on to MustULProblem.
            
        int_tol (optional (float)): (Default: 0.99)
            Binary variables with values above int_tol count as selected, values below
            1-int_tol as not selected.
            
        solver (optional (str)): (Default: automatically selected)
            Solver backend: 'glpk' or 'highs'.
    """

    def __init__(self, model, envelope_wt, **kwargs):
        allowed_keys = {CONSTRAINTS, EXCLUDED, BIG_M, VAR_BOUND, MIN_IMPROVEMENT, INT_TOL, SOLVER}
        # set all keys passed in kwargs
        for key, value in dict(kwargs).items():
            if key in allowed_keys:
                setattr(self, key, value)
            else:
                raise ValidationError("Key " + key + " is not supported.")
        # set all remaining keys to None
        for key in allowed_keys:
            if key not in dict(kwargs).keys():
                setattr(self, key, None)
        if self.int_tol is None:
            self.int_tol = 0.99
        if not 0.5 < self.int_tol < 1:
            raise ValidationError('int_tol must lie between 0.5 and 1.')
        self.model = as_metabolic_model(model)
        self.envelope_wt = envelope_wt
        self.solver = select_solver(self.solver)
        self.problem_args = {
            CONSTRAINTS: self.constraints,
            EXCLUDED: self.excluded_rxns,
            BIG_M: self.M,
            VAR_BOUND: self.bound,
            MIN_IMPROVEMENT: self.min_improvement
        }
        # validates all inputs before the first solver call
        self.problem = self.build(())
        self.history = []

    def build(self, solutions) -> MustULProblem:
        """Build the MILP for a (read-only) tuple of previous solutions"""
        return MustULProblem(self.model, self.envelope_wt, solutions=solutions, **self.problem_args)

    def solve(self, problem, time_limit=inf) -> InterventionPair:
        """Solve one MustUL MILP and extract the selected pair
        
        Raises SolverInfeasible if no further pair exists and SolverFailure for all
        other unsuccessful solver outcomes."""
        sol = solve_milp(problem.A,
                         problem.b,
                         problem.csense,
                         problem.c,
                         problem.lb,
                         problem.ub,
                         problem.vtype,
                         osense=problem.osense,
                         solver=self.solver,
                         time_limit=time_limit)
        if sol.status == INFEASIBLE:
            raise SolverInfeasible('No further MustUL pair exists.')
        if sol.status not in [OPTIMAL, TIME_LIMIT_W_SOL]:
            raise SolverFailure('Solver ' + self.solver + ' returned status ' + str(sol.status) + '.', sol.status)
        if not sol.has_solution:
            raise SolverFailure('Solver ' + self.solver + ' returned no solution vector.', sol.status)
        y1 = [sol.x[i] for i in problem.col_range('y1')]
        y2 = [sol.x[i] for i in problem.col_range('y2')]
        if any(1 - self.int_tol < v < self.int_tol or isnan(v) for v in y1 + y2):
            raise SolverFailure('Binary variables of the MILP solution are not integral.', sol.status)
        sel1 = [j for j, v in enumerate(y1) if v >= self.int_tol]
        sel2 = [j for j, v in enumerate(y2) if v >= self.int_tol]
        if len(sel1) != 1 or len(sel2) != 1:
            raise SolverFailure('MILP solution selects ' + str(len(sel1)) + ' and ' + str(len(sel2)) +
                                ' reactions instead of one pair.', sol.status)
        p1, p2 = sel1[0], sel2[0]
        v = problem.offset['v']
        self.last_status = sol.status
        return InterventionPair(p1, p2, self.model.reaction_ids[p1], self.model.reaction_ids[p2], sol.x[v + p1],
                                sol.x[v + p2], sol.objective)

    def enumerate(self, max_solutions=inf, time_limit=inf) -> MustSolutions:
        """Find all MustUL pairs
        
        Args:
            max_solutions (optional (int)): (Default: inf)
                Stop after this number of pairs.
                
            time_limit (optional (float)): (Default: inf)
                Wall-clock time limit in seconds for the whole enumeration.
        
        Returns:
            (MustSolutions):
            The pairs found and the linear MustUL set.
        """
        if max_solutions is None:
            max_solutions = inf
        if time_limit is None:
            time_limit = inf
        endtime = time.time() + time_limit
        status = OPTIMAL
        logging.info('Finding MustUL pairs ...')
        while len(self.history) < max_solutions:
            remaining = endtime - time.time()
            if remaining <= 0:
                status = TIME_LIMIT
                break
            problem = self.build(tuple(self.history)) if self.history else self.problem
            try:
                pair = self.solve(problem, remaining)
            except SolverInfeasible:
                status = INFEASIBLE
                break
            except SolverFailure as e:
                if e.status == TIME_LIMIT and endtime - time.time() <= 0:
                    status = TIME_LIMIT
                    break
                raise
            if pair in self.history or pair.swapped() in self.history:
                raise SolverFailure('Solver returned the previously found pair ' + str(pair) + '.', self.last_status)
            self.history.append(pair)
            logging.info('MustUL pair ' + str(len(self.history)) + ': ' + pair.y1_id + ' (' +
                         str(round(pair.flux_y1, 6)) + '), ' + pair.y2_id + ' (' + str(round(pair.flux_y2, 6)) +
                         '), objective ' + str(round(pair.objective, 6)))
            if self.last_status == TIME_LIMIT_W_SOL:
                status = TIME_LIMIT
                break
        if status == INFEASIBLE and self.history:  # all solutions found
            status = OPTIMAL
        if status == TIME_LIMIT and self.history:  # some solutions found, timelimit reached
            status = TIME_LIMIT_W_SOL
        if status == TIME_LIMIT_W_SOL or status == TIME_LIMIT:
            logging.info('Time limit reached.')
        elif self.history:
            logging.info('Finished enumerating MustUL pairs. ' + str(len(self.history)) + ' pairs found.')
        else:
            logging.info('Finished enumerating MustUL pairs. No pairs exist.')
        return self.build_must_solution(status, max_solutions, time_limit)

    def build_must_solution(self, status, max_solutions, time_limit) -> MustSolutions:
        must_setup = {
            MODEL_ID: self.model.id,
            MUST_TYPE: MUST_UL,
            CONSTRAINTS: self.constraints,
            EXCLUDED: self.excluded_rxns,
            SOLVER: self.solver,
            MAX_SOLUTIONS: max_solutions,
            T_LIMIT: time_limit,
            BIG_M: self.problem.M,
            VAR_BOUND: self.problem.bound,
            MIN_IMPROVEMENT: self.problem.min_improvement,
        }
        return MustSolutions(self.model, list(self.history), status, must_setup)
