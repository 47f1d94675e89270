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
"""Function: computing Must sets (compute_must_sets)"""

from contextlib import contextmanager
from typing import List
from numpy import inf
import os
import shutil
import pickle
import tempfile
import logging
from optforce.names import *
from optforce.errors import ValidationError
from optforce.metabolicModel import FluxEnvelope, as_metabolic_model
from optforce.parse_constr import parse_constraints, encode_exclusions, triple2str
from optforce.lptools import flux_envelope
from optforce.mustSolutions import MustSolutions
from optforce.mustMILP import MustULMILP
from optforce.solver_interface import select_solver

STAGING_FILES = ('model.pkl', 'minFluxesW.pkl', 'maxFluxesW.pkl', 'constrOpt.pkl', 'excludedRxns.pkl')


def find_must_u(model, envelope_wt, envelope_mt, excluded_rxns=None, tol=1e-7) -> MustSolutions:
    """First-order MustU set
    
    Reactions whose minimal flux in the mutant exceeds their maximal flux in the wild type.
    
    Example:
        must_u = find_must_u(model, fva_wt, fva_mt)
    
    Args:
        model (MetabolicModel or cobra.Model):
            The metabolic model.
            
        envelope_wt, envelope_mt (FluxEnvelope):
            Flux ranges of the wild type and of the overproducing mutant.
            
        excluded_rxns (optional (list of str)):
            Reactions that are never reported.
            
        tol (optional (float)): (Default: 1e-7)
            Minimal separation of the flux ranges.
            
    Returns:
        (MustSolutions):
        The MustU set with single reactions as members.
    """
    model, envelope_wt, envelope_mt, excl = _first_order_inputs(model, envelope_wt, envelope_mt, excluded_rxns)
    must = [r for j, r in enumerate(model.reaction_ids)
            if j not in excl and envelope_mt.min_flux[j] > envelope_wt.max_flux[j] + tol]
    logging.info('MustU set: ' + str(len(must)) + ' reactions.')
    return MustSolutions(model, must, OPTIMAL, {MODEL_ID: model.id, MUST_TYPE: MUST_U, EXCLUDED: excluded_rxns})


def find_must_l(model, envelope_wt, envelope_mt, excluded_rxns=None, tol=1e-7) -> MustSolutions:
    """First-order MustL set
    
    Reactions whose maximal flux in the mutant lies below their minimal flux in the wild type.
    Arguments as in find_must_u."""
    model, envelope_wt, envelope_mt, excl = _first_order_inputs(model, envelope_wt, envelope_mt, excluded_rxns)
    must = [r for j, r in enumerate(model.reaction_ids)
            if j not in excl and envelope_mt.max_flux[j] < envelope_wt.min_flux[j] - tol]
    logging.info('MustL set: ' + str(len(must)) + ' reactions.')
    return MustSolutions(model, must, OPTIMAL, {MODEL_ID: model.id, MUST_TYPE: MUST_L, EXCLUDED: excluded_rxns})


def _first_order_inputs(model, envelope_wt, envelope_mt, excluded_rxns):
    model = as_metabolic_model(model)
    for name, env in [('wild type', envelope_wt), ('mutant', envelope_mt)]:
        if not isinstance(env, FluxEnvelope):
            raise ValidationError('The flux ranges of the ' + name + ' must be given as FluxEnvelope.')
        if len(env) != model.num_reactions:
            raise ValidationError('The flux ranges of the ' + name + ' contain ' + str(len(env)) +
                                  ' reactions, but the model has ' + str(model.num_reactions) + '.')
    excl = set(encode_exclusions(excluded_rxns, model.reaction_ids))
    return model, envelope_wt, envelope_mt, excl


def stage_inputs(directory, model, envelope_wt, constraints=None, excluded_rxns=None) -> List[str]:
    """Write the inputs of a Must set computation to a directory
    
    The model, the wild-type flux ranges, the constraints and the excluded reactions
    are pickled into the files model.pkl, minFluxesW.pkl, maxFluxesW.pkl, constrOpt.pkl
    and excludedRxns.pkl. The directory is created if needed. The working directory
    is not changed.

    Returns:
        (list of str):
        Paths of the written files.
    """
    model = as_metabolic_model(model)
    constraints = parse_constraints(constraints, model.reaction_ids)
    excluded_rxns = [model.reaction_ids[i] for i in encode_exclusions(excluded_rxns, model.reaction_ids)]
    if not isinstance(envelope_wt, FluxEnvelope) or len(envelope_wt) != model.num_reactions:
        raise ValidationError('The wild-type flux ranges must be a FluxEnvelope with one range per reaction.')
    os.makedirs(directory, exist_ok=True)
    contents = [model, list(envelope_wt.min_flux), list(envelope_wt.max_flux), constraints, excluded_rxns]
    paths = []
    for filename, content in zip(STAGING_FILES, contents):
        path = os.path.join(directory, filename)
        with open(path, 'wb') as f:
            pickle.dump(content, f)
        paths.append(path)
    logging.info('  Inputs saved in ' + str(directory) + '.')
    return paths


@contextmanager
def run_directory(path=None, keep=False):
    """Context for a run directory
    
    Creates the directory (or a temporary one if no path is given) and yields its path.
    On exit, a directory created by this context is removed unless keep=True. Directories
    that existed before are never removed.
    
    Example:
        with run_directory('run1', keep=True) as d:
            stage_inputs(d, model, envelope_wt)
    """
    if path is None:
        path = tempfile.mkdtemp(prefix='optforce_')
        created = True
    else:
        created = not os.path.isdir(path)
        os.makedirs(path, exist_ok=True)
    try:
        yield path
    finally:
        if created and not keep:
            shutil.rmtree(path)


def compute_must_sets(model, **kwargs) -> MustSolutions:
    """Computes a Must set (MustUL, MustU or MustL)
    
    MustUL pairs are computed with the bilevel MILP. First-order sets (MustU, MustL)
    compare the flux ranges of wild type and mutant. Flux ranges that are not provided
    are computed with FVA: the wild type without constraints, the mutant with the
    provided constraints. The parameters can be passed individually or in a setup
    dictionary (must_setup), individual arguments take precedence.
    
    Example:
        sols = compute_must_sets(model, constraints=['EX_glc = -10', 'EX_suc >= 5'], max_solutions=20)
    
    Args:
        model (MetabolicModel or cobra.Model):
            The metabolic model.
            
        must_setup (optional (dict)):
            A dictionary with any of the parameters listed hereafter.
            
        must_type (optional (str)): (Default: 'must_ul')
            'must_ul', 'must_u' or 'must_l'.
            
        envelope_wt (optional (FluxEnvelope)):
            Flux ranges of the wild type. Alternatively, min_fluxes_wt and max_fluxes_wt.
            
        envelope_mt (optional (FluxEnvelope)):
            Flux ranges of the mutant (only for first-order sets).
            
        constraints (optional (str, list or dict)):
            Flux constraints of the overproducing mutant.
            
        excluded_rxns (optional (list of str)):
            Reactions that must not be selected.
            
        solver (optional (str)):
            Solver backend: 'glpk' or 'highs'.
            
        M, bound, min_improvement, int_tol (optional):
            Parameters of the MustUL MILP (see MustULProblem and MustULMILP).
            
        max_solutions (optional (int)): (Default: inf)
            Maximum number of MustUL pairs.
            
        time_limit (optional (float)): (Default: inf)
            Time limit in seconds for the enumeration.
            
        keep_inputs (optional (bool)): (Default: False)
            Save the inputs to input_dir (default: 'InputsMustUL', 'InputsMustU' or 'InputsMustL')
            inside run_dir.
            
        input_dir (optional (str)):
            Directory for the saved inputs. Relative paths refer to run_dir.
            
        run_dir (optional (str)): (Default: new temporary directory)
            Run directory in which input_dir is created when keep_inputs is set. The path of the
            saved inputs is stored in the setup of the returned solutions (key 'input_dir').
            
    Returns:
        (MustSolutions):
        The Must set.
    """
    allowed_keys = {
        MUST_SETUP, MUST_TYPE, MODEL_ID, MIN_FLUXES_WT, MAX_FLUXES_WT, 'envelope_wt', 'envelope_mt', CONSTRAINTS, EXCLUDED,
        SOLVER, BIG_M, VAR_BOUND, MIN_IMPROVEMENT, INT_TOL, MAX_SOLUTIONS, T_LIMIT, KEEP_INPUTS, INPUT_DIR, RUN_DIR,
        'tol'
    }
    logging.info('Preparing Must set computation.')
    if MUST_SETUP in kwargs:
        setup = dict(kwargs.pop(MUST_SETUP))
        setup.update(kwargs)
        kwargs = setup
    # check all keys passed in kwargs
    for key in kwargs:
        if key not in allowed_keys:
            raise ValidationError("Key " + key + " is not supported.")
    model = as_metabolic_model(model)
    if MODEL_ID in kwargs and kwargs[MODEL_ID] != model.id:
        logging.warning('Model IDs of provided model and setup not matching. Errors might occur due to '
                        'non-matching reaction identifiers.')
    must_type = kwargs.get(MUST_TYPE) or MUST_UL
    if must_type not in [MUST_UL, MUST_U, MUST_L]:
        raise ValidationError("Unknown Must set type '" + str(must_type) + "'.")
    solver = select_solver(kwargs.get(SOLVER))
    constraints = parse_constraints(kwargs.get(CONSTRAINTS), model.reaction_ids)
    excluded_rxns = kwargs.get(EXCLUDED)
    if constraints:
        logging.info('  Constraints: ' + ', '.join(triple2str(c) for c in constraints))

    envelope_wt = kwargs.get('envelope_wt')
    if envelope_wt is None and (kwargs.get(MIN_FLUXES_WT) is not None or kwargs.get(MAX_FLUXES_WT) is not None):
        envelope_wt = FluxEnvelope(kwargs.get(MIN_FLUXES_WT), kwargs.get(MAX_FLUXES_WT))
    if envelope_wt is None:
        logging.info('  Computing wild-type flux ranges.')
        envelope_wt = flux_envelope(model, solver=solver)
    elif isinstance(envelope_wt, (tuple, list)) and len(envelope_wt) == 2:
        envelope_wt = FluxEnvelope(*envelope_wt)

    # all inputs are validated before anything is written or solved
    if must_type in [MUST_U, MUST_L]:
        encode_exclusions(excluded_rxns, model.reaction_ids)
        envelope_mt = kwargs.get('envelope_mt')
        if envelope_mt is None:
            logging.info('  Computing mutant flux ranges.')
            envelope_mt = flux_envelope(model, constraints=constraints, solver=solver)
        _first_order_inputs(model, envelope_wt, envelope_mt, excluded_rxns)
    else:
        must_ul = MustULMILP(model,
                             envelope_wt,
                             constraints=constraints,
                             excluded_rxns=excluded_rxns,
                             M=kwargs.get(BIG_M),
                             bound=kwargs.get(VAR_BOUND),
                             min_improvement=kwargs.get(MIN_IMPROVEMENT),
                             int_tol=kwargs.get(INT_TOL),
                             solver=solver)
    input_dir = None
    if kwargs.get(KEEP_INPUTS):
        input_dir = kwargs.get(INPUT_DIR) or {MUST_UL: 'InputsMustUL', MUST_U: 'InputsMustU', MUST_L: 'InputsMustL'}[must_type]
        if os.path.isabs(input_dir):
            stage_inputs(input_dir, model, envelope_wt, constraints, excluded_rxns)
        else:
            with run_directory(kwargs.get(RUN_DIR), keep=True) as run_dir:
                input_dir = os.path.join(run_dir, input_dir)
                stage_inputs(input_dir, model, envelope_wt, constraints, excluded_rxns)
    if must_type in [MUST_U, MUST_L]:
        find = find_must_u if must_type == MUST_U else find_must_l
        tol = kwargs.get('tol') if kwargs.get('tol') is not None else 1e-7
        sols = find(model, envelope_wt, envelope_mt, excluded_rxns, tol)
    else:
        sols = must_ul.enumerate(max_solutions=kwargs.get(MAX_SOLUTIONS, inf), time_limit=kwargs.get(T_LIMIT, inf))
    if input_dir is not None:
        sols.must_setup[INPUT_DIR] = input_dir
    return sols
