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
"""Request and result contract of the outer OptForce optimization (run_optforce)

The outer OptForce problem searches for k interventions (upregulations, downregulations
and knockouts) that guarantee the overproduction of a target. It is solved by an external
backend. This module validates the request handed to such a backend and translates the
result dataset that it returns into OptForceSolutions.

The result dataset is a dictionary with the keys
    counter:                        number of sets found
    matrix1, matrix2, matrix3:      {set_index: {reaction_id: value}} selection of upregulated,
                                    downregulated and knocked out reactions
    matrix1_flux, ..., matrix3_flux: {set_index: {reaction_id: flux}} fluxes achieved by these reactions
    objective:                      {set_index: value}
Set indices run from 1 to counter. All keys are required if counter > 0. Every set is
evaluated on the model (maximal growth rate and guaranteed range of the target flux)."""

from typing import Dict, List, Tuple
from numpy import nan
from pandas import DataFrame
from optforce.names import *
from optforce.errors import ValidationError, ExternalBackendError
from optforce.metabolicModel import MetabolicModel, FluxEnvelope, as_metabolic_model
from optforce.mustSolutions import MustSolutions
from optforce.parse_constr import parse_constraints
from optforce.lptools import fba
from optforce.solver_interface import select_solver
import pickle
import logging

COUNTER = 'counter'
SELECTION_KEYS = {Intervention.UPREGULATION: 'matrix1', Intervention.DOWNREGULATION: 'matrix2', Intervention.KNOCKOUT: 'matrix3'}
FLUX_KEYS = {Intervention.UPREGULATION: 'matrix1_flux', Intervention.DOWNREGULATION: 'matrix2_flux',
             Intervention.KNOCKOUT: 'matrix3_flux'}
OBJECTIVE = 'objective'
SELECTION_TOL = 0.99
FLUX_TOL = 1e-6


class OptForceRequest:
    """Input of the outer OptForce problem
    
    Example:
        request = OptForceRequest(model, 'EX_suc', must_u, must_l, envelope_wt, envelope_mt, k=2, n_sets=5)
    
    Args:
        model (MetabolicModel or cobra.Model):
            The metabolic model.
            
        target_rxn (str):
            Reaction whose flux should be increased.
            
        must_u, must_l (MustSolutions or list of str):
            Reactions that are candidates for upregulation and downregulation.
            
        envelope_wt, envelope_mt (FluxEnvelope):
            Flux ranges of wild type and mutant.
            
        k (int): (Default: 1)
            Number of interventions per set.
            
        n_sets (int): (Default: 1)
            Maximal number of sets.
            
        constraints (optional (str, list or dict)):
            Flux constraints of the mutant.
            
        excluded (optional (dict or list)):
            Interventions that must not be proposed, either as dict {Intervention: [reaction_ids]}
            or as list of (reaction_id, type) where type is an Intervention or one of 'U', 'L', 'K'.
    """

    def __init__(self, model, target_rxn, must_u, must_l, envelope_wt, envelope_mt, k=1, n_sets=1, constraints=None,
                 excluded=None):
        if model is None:
            raise ValidationError('No model specified.')
        self.model = as_metabolic_model(model)
        if not target_rxn:
            raise ValidationError('No target specified.')
        if not self.model.has_reaction(target_rxn):
            raise ValidationError("Target '" + str(target_rxn) + "' not found in model.")
        self.target_rxn = target_rxn
        self.must_u = self._must_list(must_u, 'MustU')
        self.must_l = self._must_list(must_l, 'MustL')
        for name, env in [('wild type', envelope_wt), ('mutant', envelope_mt)]:
            if not isinstance(env, FluxEnvelope):
                raise ValidationError('The flux ranges of the ' + name + ' must be given as FluxEnvelope.')
            if len(env) != self.model.num_reactions:
                raise ValidationError('Wrong number of flux ranges for the ' + name + '.')
        self.envelope_wt = envelope_wt
        self.envelope_mt = envelope_mt
        for name, value in [('k', k), ('n_sets', n_sets)]:
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ValidationError(name + ' must be a positive integer.')
        self.k = k
        self.n_sets = n_sets
        self.constraints = parse_constraints(constraints, self.model.reaction_ids)
        self.excluded = self._excluded_dict(excluded)

    def _must_list(self, must, name) -> List[str]:
        if must is None:
            raise ValidationError('No ' + name + ' set specified.')
        if isinstance(must, MustSolutions):
            must = must.linear
        must = list(must)
        unknown = [r for r in must if not self.model.has_reaction(r)]
        if unknown:
            raise ValidationError(name + ' contains reactions that are not in the model: ' + ', '.join(map(str, unknown)))
        return must

    def _excluded_dict(self, excluded) -> Dict:
        result = {t: [] for t in Intervention}
        if not excluded:
            return result
        if isinstance(excluded, dict):
            items = [(r, t) for t, rxns in excluded.items() for r in rxns]
        else:
            items = list(excluded)
        for item in items:
            if len(item) != 2:
                raise ValidationError('Excluded interventions must be pairs (reaction_id, type).')
            rid, code = item
            try:
                intervention = Intervention.from_code(code)
            except ValueError:
                raise ValidationError("Unknown intervention type '" + str(code) + "'.") from None
            if not self.model.has_reaction(rid):
                raise ValidationError("Excluded reaction '" + str(rid) + "' not found in model.")
            if rid not in result[intervention]:
                result[intervention].append(rid)
        return result


class OptForceBackend:
    """Interface of the external solver for the outer OptForce problem
    
    Subclasses implement solve, which receives an OptForceRequest and returns the
    result dataset described in the module docstring."""

    def solve(self, request: OptForceRequest) -> Dict:
        raise NotImplementedError


class OptForceSet:
    """One set of interventions found by OptForce
    
    Besides the interventions and the fluxes they achieve, a set carries the maximal growth
    rate and the guaranteed range of the target flux when the interventions are applied to
    the model (see evaluate_optforce_set). These values are nan until the set is evaluated."""

    def __init__(self, reactions, interventions, flux, objective, growth=nan, min_target=nan, max_target=nan):
        self.reactions = tuple(reactions)
        self.interventions = tuple(interventions)
        self.flux = tuple(flux)
        self.objective = objective
        self.growth = growth
        self.min_target = min_target
        self.max_target = max_target

    def as_dict(self) -> Dict:
        """Interventions as dict {reaction_id: Intervention}"""
        return dict(zip(self.reactions, self.interventions))

    def __len__(self):
        return len(self.reactions)

    def __repr__(self):
        return 'OptForceSet(' + ', '.join(r + ': ' + t.value for r, t in zip(self.reactions, self.interventions)) + ')'


class OptForceSolutions:
    """Container for OptForce intervention sets"""

    def __init__(self, sets, status, request=None):
        self.sets = list(sets)
        self.status = status
        self.target_rxn = request.target_rxn if request is not None else None
        self.k = request.k if request is not None else None

    def get_num_sols(self):
        return len(self.sets)

    def get_sets(self, i=None):
        """Get intervention sets as dicts. i: selection of set indices"""
        if i is None:
            return [s.as_dict() for s in self.sets]
        return [s.as_dict() for j, s in enumerate(self.sets) if j in i]

    def to_frame(self) -> DataFrame:
        """Table view with one row per intervention"""
        return DataFrame([[j + 1, r, t.value, f, s.objective, s.min_target, s.max_target, s.growth]
                          for j, s in enumerate(self.sets)
                          for r, t, f in zip(s.reactions, s.interventions, s.flux)],
                         columns=['set', 'reaction', 'intervention', 'flux', 'objective', 'min_target', 'max_target', 'growth'])

    def save(self, filename):
        """Save OptForce solutions to a file."""
        with open(filename, 'wb') as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls, filename):
        """Load OptForce solutions from a file."""
        with open(filename, 'rb') as f:
            cls = pickle.load(f)
        return cls


def _table(result, key) -> Dict:
    """Result table as {set_index: {reaction_id: value}}"""
    table = result.get(key) or {}
    if isinstance(table, DataFrame):
        table = table.to_dict(orient='index')
    if not isinstance(table, dict):
        raise ExternalBackendError("Result field '" + key + "' has an unexpected format.")
    return {int(i): row for i, row in table.items()}


def parse_result(result, request=None) -> OptForceSolutions:
    """Translate the result dataset of an OptForce backend into OptForceSolutions"""
    if not isinstance(result, dict):
        raise ExternalBackendError('OptForce backend returned ' + type(result).__name__ + ' instead of a result dataset.')
    if COUNTER not in result:
        raise ExternalBackendError("Result dataset of the OptForce backend lacks the field '" + COUNTER + "'.")
    try:
        n_sols = int(result[COUNTER])
    except (TypeError, ValueError):
        raise ExternalBackendError("Result field '" + COUNTER + "' is not a number.") from None
    if n_sols > 0:
        required = list(SELECTION_KEYS.values()) + list(FLUX_KEYS.values()) + [OBJECTIVE]
        missing = [key for key in required if key not in result]
        if missing:
            raise ExternalBackendError('Result dataset of the OptForce backend lacks the field(s): ' + ', '.join(missing))
    selections = {t: _table(result, key) for t, key in SELECTION_KEYS.items()}
    fluxes = {t: _table(result, key) for t, key in FLUX_KEYS.items()}
    objective = {int(i): v for i, v in (result.get(OBJECTIVE) or {}).items()}
    sets = []
    for i in range(1, n_sols + 1):
        reactions = []
        interventions = []
        flux = []
        # order of the interventions: upregulations, downregulations, knockouts
        for t in Intervention:
            selected = [r for r, v in selections[t].get(i, {}).items() if v > SELECTION_TOL]
            achieved = {r: v for r, v in fluxes[t].get(i, {}).items() if v > FLUX_TOL}
            reactions += selected
            interventions += [t] * len(selected)
            flux += [float(achieved.get(r, 0.0)) for r in selected]
        if request is not None:
            unknown = [r for r in reactions if not request.model.has_reaction(r)]
            if unknown:
                raise ExternalBackendError('OptForce backend returned unknown reactions: ' + ', '.join(unknown))
        sets.append(OptForceSet(reactions, interventions, flux, float(objective.get(i, 0.0))))
    status = OPTIMAL if sets else INFEASIBLE
    return OptForceSolutions(sets, status, request)


def evaluate_optforce_set(model, target_rxn, opt_set, solver=None) -> Tuple[float, float, float]:
    """Growth rate and guaranteed target flux of a strain with the interventions of an OptForce set
    
    Up- and downregulated reactions are fixed to the flux achieved in the set, knocked out
    reactions to zero. The growth rate (the model objective) is maximized and then fixed, and
    the target flux is minimized and maximized at this growth rate.
    
    Example:
        growth, min_target, max_target = evaluate_optforce_set(model, 'EX_suc', sols.sets[0])
    
    Returns:
        (Tuple[float, float, float]):
        maximal growth rate, minimal and maximal target flux. All values are nan if the
        interventions render the model infeasible.
    """
    model = as_metabolic_model(model)
    solver = select_solver(solver)
    lb = list(model.lb)
    ub = list(model.ub)
    for r, t, f in zip(opt_set.reactions, opt_set.interventions, opt_set.flux):
        j = model.reaction_index(r)
        value = 0.0 if t == Intervention.KNOCKOUT else f
        lb[j] = value
        ub[j] = value
    model_force = MetabolicModel(model.reaction_ids, model.metabolite_ids, model.S, lb, ub, model.c, model.b, model.id)
    growth = fba(model_force, solver=solver)
    if growth.status != OPTIMAL:
        logging.warning('Model with interventions ' + str(opt_set) + ' is ' + str(growth.status) + '.')
        return nan, nan, nan
    growth_obj = {r: c for r, c in zip(model.reaction_ids, model.c) if c != 0}
    fix_obj = (growth_obj, growth.objective_value) if growth_obj else None
    min_target = fba(model_force, obj=target_rxn, obj_sense=MINIMIZE, fix_obj=fix_obj, solver=solver)
    max_target = fba(model_force, obj=target_rxn, obj_sense=MAXIMIZE, fix_obj=fix_obj, solver=solver)
    return growth.objective_value, min_target.objective_value, max_target.objective_value


def run_optforce(request: OptForceRequest, backend: OptForceBackend, solver=None) -> OptForceSolutions:
    """Solve the outer OptForce problem with an external backend
    
    Every set returned by the backend is evaluated with evaluate_optforce_set.
    
    Example:
        sols = run_optforce(OptForceRequest(model, 'EX_suc', must_u, must_l, env_wt, env_mt, k=2), backend)
    
    Args:
        request (OptForceRequest):
            The validated request.
            
        backend (OptForceBackend):
            The external solver of the outer problem.
            
        solver (optional (str)):
            LP solver for the evaluation of the sets: 'glpk' or 'highs'.
    
    Returns:
        (OptForceSolutions):
        Intervention sets found by the backend.
    """
    if not isinstance(request, OptForceRequest):
        raise ValidationError('run_optforce requires an OptForceRequest.')
    logging.info('Running OptForce for target ' + request.target_rxn + ' with k=' + str(request.k) + '.')
    sols = parse_result(backend.solve(request), request)
    if sols.get_num_sols():
        for s in sols.sets:
            s.growth, s.min_target, s.max_target = evaluate_optforce_set(request.model, request.target_rxn, s, solver)
            logging.info('OptForce set: ' + str(s) + ', objective ' + str(s.objective) + ', target ' +
                         str(s.min_target) + ' to ' + str(s.max_target) + ' at growth ' + str(s.growth))
    else:
        logging.info('OptForce did not find any set.')
    return sols
