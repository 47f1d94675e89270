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
"""Unified solver interface for LPs and MILPs (MILP_LP, solve_milp)"""

from numpy import inf, isnan, nan, unique
from scipy import sparse
from typing import List, Tuple
from cobra import Configuration
from re import search
from optforce import avail_solvers
from optforce.names import *
from optforce.errors import ValidationError
import logging


class MILP_LP(object):
    """Unified MILP and LP interface
    
    This class is a wrapper for several solver interfaces to offer unique and 
    consistent bindings for the construction and solution of MILPs and LPs 
    in an vector-matrix-based manner.
    
    Accepts a (mixed integer) linear problem in the form:
        minimize(c),
        subject to: 
        A_ineq * x <= b_ineq,
        A_eq * x  = b_eq,
        lb <= x <= ub,
        forall(i) type(x_i) = vtype(i) (continous, binary, integer)
                    
    Please ensure that the number of variables and (in)equalities is consistent
        
    Example: 
        milp = MILP_LP(c=c, A_ineq=A_ineq, b_ineq=b_ineq, A_eq=A_eq, b_eq=b_eq, lb=lb, ub=ub, vtype=vtype)
                
    Args:
        c (list of float): (Default: None)
            The objective vector (Objective sense: minimization).
            
        A_ineq (sparse.csr_matrix): (Default: None)
            A coefficient matrix of the static inequalities.   
            
        b_ineq (list of float): (Default: None)
            The right hand side of the static inequalities.
            
        A_eq (sparse.csr_matrix): (Default: None)
            A coefficient matrix of the static equalities.   
            
        b_eq (list of float): (Default: None)
            The right hand side of the static equalities.
            
        lb (list of float): (Default: None)
            The lower variable bounds.
            
        ub (list of float): (Default: None)
            The upper variable bounds.
            
        vtype (str): (Default: None)
            A character string that specifies the type of each variable:
            'C'ontinous, 'B'inary or 'I'nteger
            
        solver (str): (Default: taken from avail_solvers)
            Solver backend that should be used: 'glpk' or 'highs'

        skip_checks (bool): (Default: False)
            Upon MILP construction, the dimensions of all provided vectors and matrices
            are checked to verify their consistency. If skip_checks=True is set, these
            checks are skipped.
        
        tlim (float):
            Solution time limit in seconds.
            
        Returns:
            (MILP_LP):
            
            A MILP/LP solver interface class.
    """

    def __init__(self, **kwargs):
        allowed_keys = {'c', 'A_ineq', 'b_ineq', 'A_eq', 'b_eq', 'lb', 'ub', 'vtype', 'solver', 'skip_checks', 'tlim'}
        # set all keys passed in kwargs
        for key, value in kwargs.items():
            if key in allowed_keys:
                setattr(self, key, value)
            else:
                raise ValidationError("Key " + key + " is not supported.")
        # set all remaining keys to None
        for key in allowed_keys:
            if key not in kwargs.keys():
                setattr(self, key, None)
        # Select solver (either by choice or automatically glpk > highs)
        if self.solver is None:
            if len(avail_solvers) > 0:
                self.solver = select_solver()
            else:
                raise ValidationError('No solver available. Please ensure that one of the following '\
                    'solvers is avaialable in your Python environment: GLPK (swiglpk), HiGHS (scipy>=1.9)')
        elif self.solver not in avail_solvers:
            raise ValidationError("Selected solver '" + self.solver + "' is not installed / set up correctly.")
        if self.A_ineq is not None:
            numvars = self.A_ineq.shape[1]
        elif self.A_eq is not None:
            numvars = self.A_eq.shape[1]
        else:
            logging.warning('Problem has no variables.')
            numvars = 0
        if self.c is None:
            self.c = [0.0] * numvars
        if self.A_ineq is None:
            self.A_ineq = sparse.csr_matrix((0, numvars))
        if self.b_ineq is None:
            self.b_ineq = []
        if self.A_eq is None:
            self.A_eq = sparse.csr_matrix((0, numvars))
        if self.b_eq is None:
            self.b_eq = []
        if self.lb is None:
            self.lb = [-inf] * numvars
        if self.ub is None:
            self.ub = [inf] * numvars
        if self.vtype is None:
            self.vtype = 'C' * numvars
        # check dimensions
        if not self.skip_checks:
            if not (self.A_ineq.shape[0] == len(self.b_ineq)):
                raise ValidationError("A_ineq and b_ineq must have the same number of rows/elements")
            if not (self.A_eq.shape[0] == len(self.b_eq)):
                raise ValidationError("A_eq and b_eq must have the same number of rows/elements")
            if not (self.A_ineq.shape[1]==numvars and self.A_eq.shape[1]==numvars and len(self.c)==numvars and \
                    len(self.lb)==numvars and len(self.ub)==numvars and len(self.vtype)==numvars):
                raise ValidationError("A_eq, A_ineq, c, lb, ub, vtype must have the same number of columns/elements")
        # Cast variables as float
        self.A_ineq = sparse.csr_matrix(self.A_ineq).astype(float)
        self.A_eq = sparse.csr_matrix(self.A_eq).astype(float)
        self.c = [float(v) for v in self.c]
        self.b_ineq = [float(v) for v in self.b_ineq]
        self.b_eq = [float(v) for v in self.b_eq]
        self.lb = [float(v) for v in self.lb]
        self.ub = [float(v) for v in self.ub]
        # Create backend
        if self.solver == GLPK:
            from optforce.glpk_interface import GLPK_MILP_LP
            self.backend = GLPK_MILP_LP(self.c, self.A_ineq, self.b_ineq, self.A_eq, self.b_eq, self.lb, self.ub, self.vtype)
        elif self.solver == HIGHS:
            from optforce.highs_interface import HIGHS_MILP_LP
            self.backend = HIGHS_MILP_LP(self.c, self.A_ineq, self.b_ineq, self.A_eq, self.b_eq, self.lb, self.ub, self.vtype)
        if self.tlim is None:
            self.set_time_limit(inf)
        else:
            self.set_time_limit(self.tlim)

    def solve(self, round_int=True) -> Tuple[List, float, float]:
        """Solve the MILP or LP
        
        Example:
            sol_x, optim, status = milp.solve()

        Args:
            round_int (optional (bool)): (Default: True)
                Round the values of integer and binary variables to the next integer.
        
        Returns:
            (Tuple[List, float, float])
            
            solution_vector, optimal_value, optimization_status
        """
        x, min_cx, status = self.backend.solve()
        if round_int and status in [OPTIMAL, TIME_LIMIT_W_SOL]:
            x = [x[i] if self.vtype[i] == 'C' else int(round(x[i])) for i in range(len(x))]
        return x, min_cx, status

    def slim_solve(self) -> float:
        """Solve the MILP or LP, but return only the optimal value
                
        Example:
            optim = milp.slim_solve()
        
        Returns:
            (float)
            
            Optimum value of the objective function.
        """
        return self.backend.slim_solve()

    def set_objective(self, c):
        """Set the objective function with a vector"""
        self.c = c
        self.backend.set_objective(c)

    def set_objective_idx(self, C):
        """Set the objective function with index-value pairs
        
        e.g.: C=[[1, 1.0], [4,-0.2]]"""
        # when indices occur multiple times, take first one
        C_idx = [C[i][0] for i in range(len(C))]
        C_idx = unique([C_idx.index(C_idx[i]) for i in range(len(C_idx))])
        C = [C[i] for i in C_idx]
        for i in range(len(C)):
            self.c[C[i][0]] = C[i][1]
        self.backend.set_objective_idx(C)

    def set_time_limit(self, t):
        """Set the computation time limit (in seconds)"""
        self.tlim = t
        self.backend.set_time_limit(t)


class MILPSolution(object):
    """Result of a single MILP solve

    Args:
        status (str):
            Optimization status (OPTIMAL, INFEASIBLE, UNBOUNDED, TIME_LIMIT, TIME_LIMIT_W_SOL or ERROR)

        x (list of float):
            Values of all variables. Contains nan if no solution exists.

        x_int (list of float):
            Unrounded values of the integer and binary variables, in the order of the variables.

        objective (float):
            Objective value in the given objective sense (maximized or minimized).
    """

    def __init__(self, status, x, x_int, objective):
        self.status = status
        self.x = x
        self.x_int = x_int
        self.objective = objective

    @property
    def has_solution(self):
        return self.status in [OPTIMAL, TIME_LIMIT_W_SOL] and len(self.x) > 0 and not isnan(self.x[0])

    def __repr__(self):
        return "<MILPSolution status=" + str(self.status) + " objective=" + str(self.objective) + ">"


def csense2mat(A, b, csense) -> Tuple[sparse.csr_matrix, List, sparse.csr_matrix, List]:
    """Translate a constraint system with row senses into inequalities and equalities

    Rows of A * x ~ b are sorted by their sense: 'L'ess or equal rows are kept,
    'G'reater or equal rows are multiplied with -1, 'E'qual rows go to the equality
    system. The order of rows within each system is preserved.

    Example:
        A_ineq, b_ineq, A_eq, b_eq = csense2mat(A, b, 'EGL')

    Args:
        A (sparse.csr_matrix):
            Coefficient matrix.

        b (list of float):
            Right hand sides.

        csense (str):
            One character ('G', 'E' or 'L') per row of A.

    Returns:
        (Tuple):
        A_ineq, b_ineq, A_eq, b_eq
    """
    A = sparse.csr_matrix(A)
    if not (A.shape[0] == len(b) == len(csense)):
        raise ValidationError("A, b and csense must have the same number of rows/elements")
    if any(s not in [GEQ, EQ, LEQ] for s in csense):
        raise ValidationError("Constraint senses must be one of 'G', 'E' or 'L'.")
    idx_l = [i for i, s in enumerate(csense) if s == LEQ]
    idx_g = [i for i, s in enumerate(csense) if s == GEQ]
    idx_e = [i for i, s in enumerate(csense) if s == EQ]
    A_ineq = sparse.vstack((A[idx_l, :], -A[idx_g, :]), format='csr')
    b_ineq = [float(b[i]) for i in idx_l] + [-float(b[i]) for i in idx_g]
    A_eq = A[idx_e, :]
    b_eq = [float(b[i]) for i in idx_e]
    return A_ineq, b_ineq, A_eq, b_eq


def solve_milp(A, b, csense, c, lb, ub, vtype, osense=MINIMIZE, solver=None, time_limit=inf) -> MILPSolution:
    """Solve a MILP given in the form A * x (>=|=|<=) b, lb <= x <= ub

    This is the entry point through which MILPs in row-sense form are handed to
    the solver backends.

    Example:
        sol = solve_milp(A, b, 'EEGL', c, lb, ub, 'CCBB', MAXIMIZE, solver='glpk')

    Args:
        A (sparse.csr_matrix), b (list of float), csense (str):
            Constraint system with one sense character per row.

        c (list of float):
            Objective coefficients.

        lb, ub (list of float):
            Variable bounds.

        vtype (str):
            'C'ontinous, 'B'inary or 'I'nteger per variable.

        osense (optional (str)): (Default: 'minimize')
            Objective sense: 'maximize' or 'minimize'.

        solver (optional (str)):
            Solver backend.

        time_limit (optional (float)): (Default: inf)
            Time limit in seconds.

    Returns:
        (MILPSolution):
        Status, solution vector, raw integer values and objective value.
    """
    if osense not in [MAXIMIZE, MINIMIZE]:
        raise ValidationError('Objective sense must be "' + MINIMIZE + '" or "' + MAXIMIZE + '".')
    A_ineq, b_ineq, A_eq, b_eq = csense2mat(A, b, csense)
    sign = -1.0 if osense == MAXIMIZE else 1.0
    milp = MILP_LP(c=[sign * v for v in c],
                   A_ineq=A_ineq,
                   b_ineq=b_ineq,
                   A_eq=A_eq,
                   b_eq=b_eq,
                   lb=lb,
                   ub=ub,
                   vtype=vtype,
                   solver=solver,
                   tlim=time_limit)
    x, min_cx, status = milp.solve(round_int=False)
    x_int = [x[i] for i, t in enumerate(vtype) if t != 'C']
    objective = sign * min_cx if not isnan(min_cx) else nan
    return MILPSolution(status, x, x_int, objective)


def select_solver(solver=None, model=None) -> str:
    """Select a solver for subsequent MILP/LP computations
    
    This function will determine the solver to be used for subsequend MILP/LP computations. 
    If a solver is specified and available, it is used. Otherwise, the solver configured in the
    model or in the COBRA configuration is used if the package offers a backend for it. If
    neither is available, the solvers are picked in the order: 'glpk', 'highs'.
    
    Example:
        solver = select_solver('highs')
    
    Args:
        solver (optional (str)):
            A user preferred solver, that should be checked for availability: 'glpk' or 'highs'.
            
        model (optional (cobra.Model)):
            A metabolic model that is an instance of the cobra.Model class. The function will try to
            dertermine the selected solver by accessing the field model.solver.
            
    Returns:
        (str):
            The selected solver name.
    """
    if not avail_solvers:
        raise ValidationError('No solver available. Please ensure that swiglpk or scipy>=1.9 is installed.')
    preferred = [s for s in [GLPK, HIGHS] if s in avail_solvers]
    # first try to use selected solver
    if solver:
        if solver in avail_solvers:
            return solver
        else:
            logging.warning('Selected solver ' + solver + ' not available. Using ' + preferred[0] + " instead.")
            return preferred[0]
    # if no solver was defined, use solver specified in model
    if hasattr(model, 'solver') and hasattr(model.solver, 'interface'):
        solver = search('(' + '|'.join(avail_solvers) + ')', model.solver.interface.__name__)
        if solver is not None:
            return solver[0]
    # if no solver specified in model, use solver from cobra configuration
    cobra_conf = Configuration()
    if hasattr(cobra_conf, 'solver') and hasattr(cobra_conf.solver, '__name__'):
        solver = search('(' + '|'.join(avail_solvers) + ')', cobra_conf.solver.__name__)
        if solver is not None:
            return solver[0]
    return preferred[0]
