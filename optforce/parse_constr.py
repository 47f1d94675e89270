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
"""Functions for parsing reaction constraints and encoding them in the reaction index space"""

from typing import List, Tuple
from scipy import sparse
from optforce.names import *
from optforce.errors import ValidationError
import logging
import re


def parse_constraints(constr, reaction_ids) -> List[Tuple[str, float, str]]:
    """Parses flux constraints on single reactions
    
    Constraints fix the flux of individual reactions to a value, or bound it from above
    or below. They can be passed in different forms that are all translated into a list of
    triples (reaction_id, value, sense) with sense in 'G' (>=), 'E' (=) or 'L' (<=).
    
    Example:
        parse_constraints(['EX_glc = -10', 'ATPM >= 8.39'], reaction_ids) or
        parse_constraints({'rxnList': ['EX_glc', 'ATPM'], 'values': [-10, 8.39], 'sense': 'EG'}, reaction_ids) or
        parse_constraints([('EX_glc', -10, 'E'), ('ATPM', 8.39, '>=')], reaction_ids)
    
    Args:
        constr (str, list or dict): 
            (List of) constraints in string form, a list of triples or a dictionary with the
            parallel lists 'rxnList', 'values' and 'sense'.
            
        reaction_ids (list of str): 
            List of reaction identifiers.

    Returns:
        (List of tuples): 
        List of constraints (reaction_id, value, sense).
        E.g.: [('EX_glc', -10.0, 'E'), ('ATPM', 8.39, 'G')]
    """
    if not constr:
        return []
    if isinstance(constr, dict):
        constr = _parallel2list(constr)
    elif isinstance(constr, str):
        constr = [c for c in re.split(r"\n|,", constr)]
    elif isinstance(constr, tuple) and len(constr) == 3 and not isinstance(constr[0], (tuple, list)):
        constr = [constr]
    D = []
    for c in constr:
        if isinstance(c, str):
            if not c.strip():
                continue
            D.append(lineq2triple(c, reaction_ids))
        elif isinstance(c, (tuple, list)) and len(c) == 3:
            rid, value, sense = c
            if rid not in reaction_ids:
                raise ValidationError("Reaction '" + str(rid) + "' of constraint not found in model.")
            D.append((rid, _to_float(value), _to_sense(sense)))
        else:
            raise ValidationError("Constraint " + str(c) + " must be a string or a triple (reaction_id, value, sense).")
    return D


def _parallel2list(D) -> List:
    """Translates the parallel-array form {'rxnList':[...], 'values':[...], 'sense':'EG...'}"""
    missing = [k for k in ['rxnList', 'values', 'sense'] if k not in D]
    if missing:
        raise ValidationError("Constraint dictionary lacks the field(s): " + ", ".join(missing))
    rxns, values, senses = list(D['rxnList']), list(D['values']), list(D['sense'])
    if not (len(rxns) == len(values) == len(senses)):
        raise ValidationError("The fields 'rxnList', 'values' and 'sense' must have the same length (" +
                              str(len(rxns)) + ", " + str(len(values)) + ", " + str(len(senses)) + ").")
    return list(zip(rxns, values, senses))


def _to_float(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError("Constraint value " + str(value) + " is not a number.") from None


def _to_sense(sense) -> str:
    if sense not in SENSES:
        raise ValidationError("Unknown constraint sense '" + str(sense) + "'. Use one of: " + ", ".join(SENSES.keys()))
    return SENSES[sense]


def lineq2triple(equation, reaction_ids) -> Tuple[str, float, str]:
    """Translates a constraint string on a single reaction into a triple
    
    E.g.: 'EX_glc >= -10' -> ('EX_glc', -10.0, 'G')
    """
    try:
        lhs, rhs = re.split('<=|>=|==|=', equation)
        eq_sign = re.search('<=|>=|==|=', equation)[0]
    except (ValueError, TypeError):
        raise ValidationError("Constraint '" + equation + "' must contain exactly one (in)equality sign: <=,=,>=.") from None
    rid = lhs.strip()
    if rid not in reaction_ids:
        raise ValidationError("Left hand side of constraint '" + equation +
                              "' must be a single reaction identifier of the model.")
    return rid, _to_float(rhs.strip()), _to_sense(eq_sign)


def triple2str(triple) -> str:
    """Translates a constraint triple into a string, e.g. ('R1', 2.0, 'G') -> 'R1 >= 2.0'"""
    signs = {GEQ: '>=', EQ: '=', LEQ: '<='}
    return triple[0] + ' ' + signs[triple[2]] + ' ' + str(triple[1])


class FixedConstraints:
    """Constraints in the reaction index space of a model
    
    Attributes:
        fixed_idx (list of int): Ascending indices of constrained reactions.
        fixed_value (list of float): Constraint values, aligned with fixed_idx.
        fixed_sense (str): One sense character ('G', 'E', 'L') per constrained reaction.
        free_idx (list of int): Ascending indices of all other reactions.
        num_reactions (int): Total number of reactions.
    """

    def __init__(self, fixed_idx, fixed_value, fixed_sense, num_reactions):
        self.fixed_idx = list(fixed_idx)
        self.fixed_value = list(fixed_value)
        self.fixed_sense = ''.join(fixed_sense)
        self.num_reactions = num_reactions
        fixed = set(self.fixed_idx)
        self.free_idx = [i for i in range(num_reactions) if i not in fixed]

    @property
    def num_fixed(self) -> int:
        return len(self.fixed_idx)

    @property
    def num_free(self) -> int:
        return len(self.free_idx)

    def fixed_matrix(self) -> sparse.csr_matrix:
        """Selection matrix of the constrained reactions (num_fixed x num_reactions)"""
        return selection_rows(self.fixed_idx, self.num_reactions)

    def free_matrix(self) -> sparse.csr_matrix:
        """Selection matrix of the unconstrained reactions (num_free x num_reactions)"""
        return selection_rows(self.free_idx, self.num_reactions)


def selection_rows(idx, numcols) -> sparse.csr_matrix:
    """Sparse matrix with one row per index in idx that contains a 1 in the column idx[i]"""
    return sparse.csr_matrix(([1.0] * len(idx), (list(range(len(idx))), list(idx))), shape=(len(idx), numcols))


def encode_constraints(constraints, reaction_ids) -> FixedConstraints:
    """Encodes flux constraints as index and value vectors
    
    The constrained reactions are sorted by their position in the model. Each reaction may
    only be constrained once.
    
    Example:
        fc = encode_constraints(['R2 <= 5', 'R1 = 1'], ['R1', 'R2', 'R3'])
        fc.fixed_idx   # [0, 1]
        fc.fixed_sense # 'EL'
        fc.free_idx    # [2]

    Args:
        constraints (str, list or dict):
            Constraints in any form accepted by parse_constraints.
            
        reaction_ids (list of str):
            List of reaction identifiers.
            
    Returns:
        (FixedConstraints):
        Indices, values and senses of the constrained reactions and indices of the free reactions.
    """
    reaction_ids = list(reaction_ids)
    rxn_index = {r: i for i, r in enumerate(reaction_ids)}
    triples = parse_constraints(constraints, rxn_index)
    rids = [t[0] for t in triples]
    duplicates = sorted(set(r for r in rids if rids.count(r) > 1))
    if duplicates:
        raise ValidationError("Reaction(s) constrained more than once: " + ", ".join(duplicates))
    triples = sorted(triples, key=lambda t: rxn_index[t[0]])
    return FixedConstraints([rxn_index[t[0]] for t in triples], [t[1] for t in triples], [t[2] for t in triples],
                            len(reaction_ids))


def encode_exclusions(excluded, reaction_ids) -> List[int]:
    """Translates excluded reaction identifiers into ascending model indices"""
    if not excluded:
        return []
    if isinstance(excluded, str):
        excluded = [excluded]
    excluded = list(excluded)
    rxn_index = {r: i for i, r in enumerate(reaction_ids)}
    unknown = [r for r in excluded if r not in rxn_index]
    if unknown:
        raise ValidationError("Excluded reaction(s) not found in model: " + ", ".join(str(r) for r in unknown))
    idx = sorted(set(rxn_index[r] for r in excluded))
    if len(idx) < len(excluded):
        logging.warning('Excluded reactions contain duplicates. Duplicates are ignored.')
    return idx
