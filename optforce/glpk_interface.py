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
"""GLPK solver interface for LP and MILP"""

from scipy import sparse
from numpy import nan, inf, isinf
from optforce.names import *
from typing import Tuple, List
from swiglpk import *
import logging


class GLPK_MILP_LP():
    """GLPK interface for MILP and LP
    
    This class is a wrapper for the GLPK-Python API to offer bindings and namings
    for functions for the construction and manipulation of MILPs and LPs in an
    vector-matrix-based manner that are consistent with those of the HiGHS
    interface in this package.
    
    Accepts a (mixed integer) linear problem in the form:
        minimize(c),
        subject to: 
        A_ineq * x <= b_ineq,
        A_eq * x  = b_eq,
        lb <= x <= ub,
        forall(i) type(x_i) = vtype(i) (continous, binary, integer)
        
    Example: 
        glpk = GLPK_MILP_LP(c, A_ineq, b_ineq, A_eq, b_eq, lb, ub, vtype)
                
    Args:
        c (list of float):
            The objective vector (Objective sense: minimization).
            
        A_ineq (sparse.csr_matrix):
            A coefficient matrix of the static inequalities.   
            
        b_ineq (list of float):
            The right hand side of the static inequalities.
            
        A_eq (sparse.csr_matrix):
            A coefficient matrix of the static equalities.   
            
        b_eq (list of float):
            The right hand side of the static equalities.
            
        lb (list of float):
            The lower variable bounds.
            
        ub (list of float):
            The upper variable bounds.
            
        vtype (str):
            A character string that specifies the type of each variable:
            'C'ontinous, 'B'inary or 'I'nteger
            
        Returns:
            (GLPK_MILP_LP):
            
            A GLPK MILP/LP interface class.
    """

    def __init__(self, c, A_ineq, b_ineq, A_eq, b_eq, lb, ub, vtype):
        self.glpk = glp_create_prob()
        # Careful with indexing! GLPK indexing starts with 1 and not with 0
        numvars = A_ineq.shape[1]
        self.ismilp = any([v != 'C' for v in vtype])

        # add and set variables, types and bounds
        if numvars > 0:
            glp_add_cols(self.glpk, numvars)
        for i, v in enumerate(vtype):
            if v == 'C':
                glp_set_col_kind(self.glpk, i + 1, GLP_CV)
            if v == 'I':
                glp_set_col_kind(self.glpk, i + 1, GLP_IV)
            if v == 'B':
                glp_set_col_kind(self.glpk, i + 1, GLP_BV)
        for i in range(numvars):
            self.set_col_bnds(i, float(lb[i]), float(ub[i]))

        # set objective
        glp_set_obj_dir(self.glpk, GLP_MIN)
        self.set_objective(c)

        # stack all problem rows and add constraints
        if A_ineq.shape[0] + A_eq.shape[0] > 0:
            glp_add_rows(self.glpk, A_ineq.shape[0] + A_eq.shape[0])
            eq_type = [GLP_UP] * len(b_ineq) + [GLP_FX] * len(b_eq)
            for i, t, b in zip(range(len(b_ineq + b_eq)), eq_type, b_ineq + b_eq):
                if t == GLP_UP and isinf(b):
                    glp_set_row_bnds(self.glpk, i + 1, GLP_FR, -inf, inf)
                else:
                    glp_set_row_bnds(self.glpk, i + 1, t, float(b), float(b))

            A = sparse.vstack((A_ineq, A_eq), 'coo')
            ia = intArray(A.nnz + 1)
            ja = intArray(A.nnz + 1)
            ar = doubleArray(A.nnz + 1)
            for i, row, col, data in zip(range(A.nnz), A.row, A.col, A.data):
                ia[i + 1] = int(row) + 1
                ja[i + 1] = int(col) + 1
                ar[i + 1] = float(data)
            if A.nnz:
                glp_load_matrix(self.glpk, A.nnz, ia, ja, ar)

        # LP simplex parameters
        self.lp_params = glp_smcp()
        glp_init_smcp(self.lp_params)
        self.max_tlim = self.lp_params.tm_lim
        self.lp_params.tol_bnd = 1e-9
        self.lp_params.msg_lev = 0
        # MILP parameters
        if self.ismilp:
            self.milp_params = glp_iocp()
            glp_init_iocp(self.milp_params)
            self.milp_params.presolve = 1
            self.milp_params.tol_int = 1e-12
            self.milp_params.tol_obj = 1e-9
            self.milp_params.msg_lev = 0

    def solve(self) -> Tuple[List, float, str]:
        """Solve the MILP or LP
        
        Example:
            sol_x, optim, status = glpk.solve()
        
        Returns:
            (Tuple[List, float, str])
            
            solution_vector, optimal_value, optimization_status
        """
        numvars = glp_get_num_cols(self.glpk)
        try:
            min_cx, status, bool_tlim = self.solve_MILP_LP()
        except Exception as e:
            logging.error('Error while running GLPK: ' + str(e))
            return [nan] * numvars, nan, ERROR
        if bool_tlim and status == GLP_FEAS:  # timeout with solution
            status = TIME_LIMIT_W_SOL
        elif status in [GLP_OPT, GLP_FEAS]:  # solution
            status = OPTIMAL
        elif bool_tlim and status == GLP_UNDEF:  # timeout without solution
            return [nan] * numvars, nan, TIME_LIMIT
        elif status in [GLP_INFEAS, GLP_NOFEAS]:  # infeasible
            return [nan] * numvars, nan, INFEASIBLE
        elif status in [GLP_UNBND, GLP_UNDEF]:  # solution unbounded
            return [nan] * numvars, -inf, UNBOUNDED
        else:
            logging.error('GLPK status code ' + str(status) + ' not handled.')
            return [nan] * numvars, nan, ERROR
        x = self.getSolution()
        x = [round(y, 12) for y in x]  # workaround, round to 12 decimals
        min_cx = round(min_cx, 12)
        return x, min_cx, status

    def slim_solve(self) -> float:
        """Solve the MILP or LP, but return only the optimal value
                
        Example:
            optim = glpk.slim_solve()
        
        Returns:
            (float)
            
            Optimum value of the objective function.
        """
        try:
            opt, status, bool_tlim = self.solve_MILP_LP()
        except Exception as e:
            logging.error('Error while running GLPK: ' + str(e))
            return nan
        if status in [GLP_OPT, GLP_FEAS]:  # solution integer optimal (tolerance)
            return round(opt, 12)  # workaround, round to 12 decimals
        elif status in [GLP_UNBND, GLP_UNDEF] and not bool_tlim:  # solution unbounded
            return -inf
        else:  # infeasible or timeout
            return nan

    def set_objective(self, c):
        """Set the objective function with a vector"""
        for i, c_i in enumerate(c):
            glp_set_obj_coef(self.glpk, i + 1, float(c_i))

    def set_objective_idx(self, C):
        """Set the objective function with index-value pairs
        
        e.g.: C=[[1, 1.0], [4,-0.2]]"""
        for c in C:
            glp_set_obj_coef(self.glpk, c[0] + 1, float(c[1]))

    def set_col_bnds(self, i, l, u):
        """Set the bounds of the variable with index i"""
        if isinf(l) and isinf(u):
            glp_set_col_bnds(self.glpk, i + 1, GLP_FR, l, u)
        elif not isinf(l) and isinf(u):
            glp_set_col_bnds(self.glpk, i + 1, GLP_LO, l, u)
        elif isinf(l) and not isinf(u):
            glp_set_col_bnds(self.glpk, i + 1, GLP_UP, l, u)
        elif l < u:
            glp_set_col_bnds(self.glpk, i + 1, GLP_DB, l, u)
        else:
            glp_set_col_bnds(self.glpk, i + 1, GLP_FX, l, u)

    def set_time_limit(self, t):
        """Set the computation time limit (in seconds)"""
        if isinf(t) or t * 1000 > self.max_tlim:
            if self.ismilp:
                self.milp_params.tm_lim = self.max_tlim
            self.lp_params.tm_lim = self.max_tlim
        else:
            if self.ismilp:
                self.milp_params.tm_lim = int(t * 1000)
            self.lp_params.tm_lim = int(t * 1000)

    def getSolution(self) -> list:
        """Retrieve solution from GLPK backend"""
        if self.ismilp:
            x = [glp_mip_col_val(self.glpk, i + 1) for i in range(glp_get_num_cols(self.glpk))]
        else:
            x = [glp_get_col_prim(self.glpk, i + 1) for i in range(glp_get_num_cols(self.glpk))]
        return x

    def solve_MILP_LP(self) -> Tuple[float, int, bool]:
        """Trigger GLPK solution through backend"""
        starttime = glp_time()
        # The LP relaxation is solved first. The MILP solver occasionally loses the
        # connection when started on an infeasible problem.
        prelim_status = glp_simplex(self.glpk, self.lp_params)
        # Some feasible LPs fail initially but complete when presolved (GLP_EFAIL).
        if prelim_status == GLP_EFAIL:
            self.lp_params.presolve = 1
            self.lp_params.meth = 3
            prelim_status = glp_simplex(self.glpk, self.lp_params)
            self.lp_params.presolve = 0
            self.lp_params.meth = 1
        status = glp_get_status(self.glpk)
        if self.ismilp and status not in [GLP_INFEAS, GLP_NOFEAS]:
            ret = glp_intopt(self.glpk, self.milp_params)
            # the MILP presolver reports infeasibility only through the return code
            if ret == GLP_ENOPFS:
                status = GLP_NOFEAS
            elif ret == GLP_ENODFS:
                status = GLP_UNBND
            else:
                status = glp_mip_status(self.glpk)
            opt = glp_mip_obj_val(self.glpk)
        else:
            opt = glp_get_obj_val(self.glpk)
        timelim_reached = glp_difftime(glp_time(), starttime) * 1000 >= self.lp_params.tm_lim
        return opt, status, timelim_reached
