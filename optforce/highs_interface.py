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
"""HiGHS solver interface for LP and MILP (through scipy.optimize.milp)"""

from scipy import sparse
from scipy.optimize import milp, Bounds, LinearConstraint
from numpy import array, nan, inf, isinf
from optforce.names import *
from typing import Tuple, List
import logging


class HIGHS_MILP_LP():
    """HiGHS interface for MILP and LP
    
    This class wraps the HiGHS solver that ships with scipy (scipy.optimize.milp)
    and offers the same bindings as the GLPK interface. The problem is held in
    vector-matrix form and handed to HiGHS as a whole upon each solve call.
    
    Accepts a (mixed integer) linear problem in the form:
        minimize(c),
        subject to: 
        A_ineq * x <= b_ineq,
        A_eq * x  = b_eq,
        lb <= x <= ub,
        forall(i) type(x_i) = vtype(i) (continous, binary, integer)
        
    Example: 
        highs = HIGHS_MILP_LP(c, A_ineq, b_ineq, A_eq, b_eq, lb, ub, vtype)
    """

    def __init__(self, c, A_ineq, b_ineq, A_eq, b_eq, lb, ub, vtype):
        self.c = [float(v) for v in c]
        self.A = sparse.vstack((A_ineq, A_eq), format='csr')
        self.row_lb = [-inf] * len(b_ineq) + [float(b) for b in b_eq]
        self.row_ub = [float(b) for b in b_ineq] + [float(b) for b in b_eq]
        self.lb = [float(v) for v in lb]
        self.ub = [float(v) for v in ub]
        self.vtype = vtype
        self.integrality = array([0 if v == 'C' else 1 for v in vtype])
        self.tlim = inf

    def solve(self) -> Tuple[List, float, str]:
        """Solve the MILP or LP
        
        Example:
            sol_x, optim, status = highs.solve()
        
        Returns:
            (Tuple[List, float, str])
            
            solution_vector, optimal_value, optimization_status
        """
        numvars = len(self.c)
        if numvars == 0:
            return [], 0.0, OPTIMAL
        try:
            res = self.solve_MILP_LP()
        except Exception as e:
            logging.error('Error while running HiGHS: ' + str(e))
            return [nan] * numvars, nan, ERROR
        if res.status == 0:
            status = OPTIMAL
        elif res.status == 1 and res.x is not None:
            status = TIME_LIMIT_W_SOL
        elif res.status == 1:
            return [nan] * numvars, nan, TIME_LIMIT
        elif res.status == 2:
            return [nan] * numvars, nan, INFEASIBLE
        elif res.status == 3:
            return [nan] * numvars, -inf, UNBOUNDED
        elif 'infeasible' in str(res.message).lower():
            # "unbounded or infeasible": with finite bounds the problem cannot be unbounded
            if all(not isinf(v) for v in self.lb + self.ub):
                return [nan] * numvars, nan, INFEASIBLE
            return [nan] * numvars, -inf, UNBOUNDED
        else:
            logging.error('HiGHS terminated with: ' + str(res.message))
            return [nan] * numvars, nan, ERROR
        x = [round(float(y), 12) for y in res.x]  # workaround, round to 12 decimals
        min_cx = round(float(res.fun), 12)
        return x, min_cx, status

    def slim_solve(self) -> float:
        """Solve the MILP or LP, but return only the optimal value
                
        Example:
            optim = highs.slim_solve()
        
        Returns:
            (float)
            
            Optimum value of the objective function.
        """
        _, opt, status = self.solve()
        if status in [OPTIMAL, TIME_LIMIT_W_SOL, UNBOUNDED]:
            return opt
        return nan

    def set_objective(self, c):
        """Set the objective function with a vector"""
        self.c = [float(v) for v in c]

    def set_objective_idx(self, C):
        """Set the objective function with index-value pairs
        
        e.g.: C=[[1, 1.0], [4,-0.2]]"""
        for c in C:
            self.c[c[0]] = float(c[1])

    def set_time_limit(self, t):
        """Set the computation time limit (in seconds)"""
        self.tlim = t

    def solve_MILP_LP(self):
        """Trigger HiGHS solution through scipy"""
        options = {'disp': False, 'presolve': True}
        if not isinf(self.tlim):
            options['time_limit'] = float(self.tlim)
        constraints = None
        if self.A.shape[0] > 0:
            constraints = LinearConstraint(self.A, self.row_lb, self.row_ub)
        return milp(array(self.c),
                    integrality=self.integrality,
                    bounds=Bounds(array(self.lb), array(self.ub)),
                    constraints=constraints,
                    options=options)
