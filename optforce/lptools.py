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
"""Flux balance and flux variability analysis for wild-type and mutant flux ranges"""

from scipy import sparse
from pandas import DataFrame, Series
from cobra.core import Solution
from numpy import floor, sign, mod, nan, isnan, unique
from typing import Tuple
from optforce.names import *
from optforce.metabolicModel import FluxEnvelope, as_metabolic_model
from optforce.parse_constr import encode_constraints
from optforce.solver_interface import MILP_LP, csense2mat, select_solver
from optforce.errors import ValidationError
import logging


def idx2c(i, prev) -> list:
    """Builds the objective function for minimizing or maximizing the flux through the reaction
    with the index floor(i / 2). If i is even, there is a maximization.
    
    Args:
        i (int):
            An index between 0 and 2*num_reacs.
        prev (int):
            Index of the previously optimized reaction. Its objective coefficient is reset.
    Returns:
        (list):
            Index-value pairs of the objective function.
    """
    col = int(floor(i / 2))
    sig = sign(mod(i, 2) - 0.5)
    C = [[col, sig], [prev, 0.0]]
    C_idx = [C[i][0] for i in range(len(C))]
    C_idx = unique([C_idx.index(C_idx[i]) for i in range(len(C_idx))])
    C = [C[i] for i in C_idx]
    return C


def fva(model, **kwargs) -> DataFrame:
    """Flux Variability Analysis (FVA)
    
    Flux Variability Analysis determines the global flux ranges of reactions by minimizing and 
    maximizing the flux through all reactions of a given metabolic network. Flux constraints on
    single reactions narrow down the flux states, e.g. to compute the flux ranges of a strain
    that overproduces a target.
    
    Example:
        flux_ranges = fva(model, constraints=['EX_glc = -10', 'EX_suc >= 5'], solver='glpk')
    
    Args:
        model (MetabolicModel or cobra.Model):
            A metabolic model.
            
        solver (optional (str)):
            The solver that should be used for FVA.
            
        constraints (optional (str, list or dict)): (Default: None)
            Flux constraints on single reactions. See parse_constraints.
            
    Returns:
        (pandas.DataFrame):
            A data frame containing the minimum and maximum attainable flux rates for all reactions.
    """
    allowed_keys = {CONSTRAINTS, SOLVER}
    for key in kwargs:
        if key not in allowed_keys:
            raise ValidationError("Key " + key + " is not supported.")
    solver = select_solver(kwargs.get(SOLVER), model)
    model = as_metabolic_model(model)
    reaction_ids = model.reaction_ids
    numr = model.num_reactions

    # prepare vectors and matrices
    A_ineq, b_ineq, A_eq, b_eq = flux_constraints(model, kwargs.get(CONSTRAINTS))

    # build LP
    lp = MILP_LP(A_ineq=A_ineq, b_ineq=b_ineq, A_eq=A_eq, b_eq=b_eq, lb=model.lb, ub=model.ub, solver=solver)
    _, _, status = lp.solve()
    if status not in [OPTIMAL, UNBOUNDED]:  # if problem not feasible or unbounded
        logging.error('FVA problem not feasible.')
        return DataFrame(
            {
                "minimum": [nan] * numr,
                "maximum": [nan] * numr,
            },
            index=reaction_ids,
        )

    x = [nan] * 2 * numr
    prev = 0
    for i in range(2 * numr):
        C = idx2c(i, prev)
        lp.set_objective_idx(C)
        x[i] = lp.slim_solve()
        prev = C[0][0]

    x = [v if isnan(v) or abs(v) >= 1e-11 else 0.0 for v in x]  # cut off for very small absolute values
    fva_result = DataFrame(
        {
            "minimum": [x[i] for i in range(1, 2 * numr, 2)],
            "maximum": [-x[i] for i in range(0, 2 * numr, 2)],
        },
        index=reaction_ids,
    )
    return fva_result


def flux_envelope(model, **kwargs) -> FluxEnvelope:
    """Flux ranges of all reactions as FluxEnvelope (see fva for arguments)"""
    model = as_metabolic_model(model)
    return FluxEnvelope.from_frame(fva(model, **kwargs), model.reaction_ids)


def flux_constraints(model, constraints=None) -> Tuple:
    """Steady-state and flux constraints of a model as A_ineq, b_ineq, A_eq, b_eq"""
    fixed = encode_constraints(constraints, model.reaction_ids)
    A_ineq, b_ineq, A_eq, b_eq = csense2mat(fixed.fixed_matrix(), fixed.fixed_value, fixed.fixed_sense)
    A_eq = sparse.vstack((model.S, A_eq), format='csr')
    b_eq = model.b + b_eq
    return A_ineq, b_ineq, A_eq, b_eq


def fba(model, **kwargs) -> Solution:
    """Flux Balance Analysis (FBA)
    
    Flux Balance Analysis optimizes a linear objective function in the space of steady-state
    flux vectors of a metabolic model, e.g. to determine the maximal growth rate of a strain
    or the flux range of a product at a given growth rate.
    
    Example:
        sol = fba(model, obj='EX_suc', obj_sense='minimize', constraints=['BIOMASS = 0.2'])
    
    Args:
        model (MetabolicModel or cobra.Model):
            A metabolic model. If no custom objective is provided, the objective
            coefficients of the model are used.
            
        solver (optional (str)):
            The solver that should be used for FBA.
            
        constraints (optional (str, list or dict)): (Default: None)
            Flux constraints on single reactions. See parse_constraints.
            
        obj (optional (str or dict)):
            A reaction identifier or a dict {reaction_id: coefficient}.
            
        obj_sense (optional (str)): (Default: 'maximize')
            'maximize' or 'minimize'.
            
        fix_obj (optional (dict, float)):
            An additional equality constraint (c_fix*v = value) given as
            ({reaction_id: coefficient}, value), e.g. to fix the growth rate.
            
    Returns:
        (cobra.core.Solution):
            A solution object that contains the objective value, an optimal flux vector
            and the optimization status.
    """
    allowed_keys = {CONSTRAINTS, SOLVER, 'obj', 'obj_sense', 'fix_obj'}
    for key in kwargs:
        if key not in allowed_keys:
            raise ValidationError("Key " + key + " is not supported.")
    solver = select_solver(kwargs.get(SOLVER), model)
    model = as_metabolic_model(model)
    obj = kwargs.get('obj')
    if obj is None:
        c = list(model.c)
    else:
        c = _obj_vector(obj, model)
    obj_sense = kwargs.get('obj_sense') or MAXIMIZE
    if obj_sense not in [MAXIMIZE, MINIMIZE]:
        raise ValidationError('Objective sense must be "' + MINIMIZE + '" or "' + MAXIMIZE + '".')
    if obj_sense == MAXIMIZE:
        c = [-v for v in c]

    A_ineq, b_ineq, A_eq, b_eq = flux_constraints(model, kwargs.get(CONSTRAINTS))
    if kwargs.get('fix_obj') is not None:
        c_fix, value = kwargs['fix_obj']
        A_eq = sparse.vstack((A_eq, sparse.csr_matrix([_obj_vector(c_fix, model)])), format='csr')
        b_eq = b_eq + [float(value)]

    lp = MILP_LP(c=c, A_ineq=A_ineq, b_ineq=b_ineq, A_eq=A_eq, b_eq=b_eq, lb=model.lb, ub=model.ub, solver=solver)
    x, opt_cx, status = lp.solve()
    if status not in [OPTIMAL, UNBOUNDED]:
        status = INFEASIBLE
    if obj_sense == MAXIMIZE:
        opt_cx = -opt_cx
    return Solution(opt_cx, status, fluxes=Series(x, index=model.reaction_ids))


def _obj_vector(obj, model) -> list:
    if isinstance(obj, str):
        obj = {obj: 1.0}
    c = [0.0] * model.num_reactions
    for r, v in obj.items():
        c[model.reaction_index(r)] = float(v)
    return c
