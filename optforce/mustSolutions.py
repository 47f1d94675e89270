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
"""Container for Must set solutions (InterventionPair, MustSolutions)"""

from typing import List
from pandas import DataFrame
from optforce.names import *
from optforce.errors import ValidationError
import pickle
import logging


class InterventionPair(object):
    """One pair of reactions found by the MustUL MILP
    
    The flux through reaction y1 must increase above its wild-type maximum while
    the flux through reaction y2 must decrease below its wild-type minimum (or vice versa).
    Instances are immutable and compare equal if they select the same reactions
    in the same orientation.
    
    Args:
        y1, y2 (int):
            Model indices of the selected reactions.
            
        y1_id, y2_id (str):
            Identifiers of the selected reactions.
            
        flux_y1, flux_y2 (float):
            Fluxes through both reactions in the MILP solution.
            
        objective (float):
            Value of the outer objective.
    """
    __slots__ = ('_y1', '_y2', '_y1_id', '_y2_id', '_flux_y1', '_flux_y2', '_objective')

    def __init__(self, y1, y2, y1_id=None, y2_id=None, flux_y1=None, flux_y2=None, objective=None):
        for name, value in zip(self.__slots__, (int(y1), int(y2), y1_id, y2_id, flux_y1, flux_y2, objective)):
            object.__setattr__(self, name, value)

    def __setattr__(self, name, value):
        raise AttributeError('InterventionPair is immutable.')

    y1 = property(lambda self: self._y1)
    y2 = property(lambda self: self._y2)
    y1_id = property(lambda self: self._y1_id)
    y2_id = property(lambda self: self._y2_id)
    flux_y1 = property(lambda self: self._flux_y1)
    flux_y2 = property(lambda self: self._flux_y2)
    objective = property(lambda self: self._objective)

    @property
    def idx(self):
        return (self._y1, self._y2)

    @property
    def ids(self):
        return (self._y1_id, self._y2_id)

    def swapped(self):
        """The same pair in reverse orientation"""
        return InterventionPair(self._y2, self._y1, self._y2_id, self._y1_id, self._flux_y2, self._flux_y1,
                                self._objective)

    def __eq__(self, other):
        if isinstance(other, InterventionPair):
            return self.idx == other.idx
        return NotImplemented

    def __hash__(self):
        return hash(self.idx)

    def __getstate__(self):
        return tuple(getattr(self, s) for s in self.__slots__)

    def __setstate__(self, state):
        for name, value in zip(self.__slots__, state):
            object.__setattr__(self, name, value)

    def __repr__(self):
        return 'InterventionPair(' + str(self._y1_id if self._y1_id is not None else self._y1) + ', ' + \
            str(self._y2_id if self._y2_id is not None else self._y2) + ')'


class MustSolutions(object):
    """Container for Must sets
    
    Objects of this class are returned by Must set computations. For MustUL sets,
    the container holds the reaction pairs found by the enumeration in the order of
    their discovery, for first-order sets (MustU, MustL), it holds single reactions.
    In both cases, the linear Must set is the union of all reactions involved,
    sorted in the order of the model reactions.
    
    Instances of this class are not meant to be created by users.
    
    Args:
        model (MetabolicModel):
            The metabolic model the Must set refers to.
            
        members (list of InterventionPair or list of str):
            Reaction pairs (MustUL) or reaction identifiers (MustU, MustL).
        
        status (str):
            Status string of the computation (e.g.: 'optimal')
            
        must_setup (dict):
            A dictionary containing information about the problem setup, e.g. the keys
            MODEL_ID, MUST_TYPE, CONSTRAINTS, EXCLUDED, SOLVER, MAX_SOLUTIONS, T_LIMIT.
            
    Returns
        (MustSolutions):
        Must set solutions
    """

    def __init__(self, model, members, status, must_setup=None):
        self.status = status
        self.must_setup = dict(must_setup) if must_setup else {}
        self.reaction_ids = tuple(model.reaction_ids)
        self._rxn_index = {r: i for i, r in enumerate(self.reaction_ids)}
        pairs = []
        singles = []
        for m in members:
            if isinstance(m, InterventionPair):
                if not all(0 <= i < len(self.reaction_ids) for i in m.idx):
                    raise ValidationError('Reaction pair ' + str(m.idx) + ' lies outside the reaction index range.')
                if m.y1_id is None or m.y2_id is None:
                    m = InterventionPair(m.y1, m.y2, self.reaction_ids[m.y1], self.reaction_ids[m.y2], m.flux_y1,
                                         m.flux_y2, m.objective)
                if m not in pairs:
                    pairs.append(m)
            else:
                if m not in self._rxn_index:
                    raise ValidationError("Reaction '" + str(m) + "' not found in model.")
                if m not in singles:
                    singles.append(m)
        if pairs and singles:
            raise ValidationError('Must sets contain either reaction pairs or single reactions.')
        self._pairs = tuple(pairs)
        self._singles = tuple(singles)
        self.must_type = self.must_setup.get(MUST_TYPE, MUST_U if singles else MUST_UL)
        self._linear = tuple(self.union_linear([r for p in pairs for r in p.ids] + singles))

    def union_linear(self, *id_lists) -> List[str]:
        """Union of reaction identifiers, sorted in the order of the model reactions"""
        ids = set()
        for id_list in id_lists:
            ids.update(id_list)
        unknown = [r for r in ids if r not in self._rxn_index]
        if unknown:
            raise ValidationError("Reaction(s) not found in model: " + ", ".join(sorted(unknown)))
        return [r for r in self.reaction_ids if r in ids]

    def ids_to_idx(self, ids) -> List[int]:
        """Model indices of reaction identifiers (ascending)"""
        return [self._rxn_index[r] for r in self.union_linear(ids)]

    def idx_to_ids(self, idx) -> List[str]:
        """Reaction identifiers of model indices (in model order)"""
        if not all(0 <= i < len(self.reaction_ids) for i in idx):
            raise ValidationError('Reaction indices lie outside the reaction index range.')
        return [self.reaction_ids[i] for i in sorted(set(idx))]

    @property
    def linear(self) -> List[str]:
        return list(self._linear)

    @property
    def linear_idx(self) -> List[int]:
        return [self._rxn_index[r] for r in self._linear]

    @property
    def pairs(self) -> List[InterventionPair]:
        return list(self._pairs)

    @property
    def pairs_ids(self) -> List[tuple]:
        return [p.ids for p in self._pairs]

    @property
    def pairs_idx(self) -> List[tuple]:
        return [p.idx for p in self._pairs]

    @property
    def reactions(self) -> List[str]:
        """Single reactions of first-order Must sets"""
        return list(self._singles)

    def get_num_sols(self):
        """Get number of pairs (MustUL) or reactions (MustU, MustL)"""
        return len(self._pairs) if self._pairs else len(self._singles)

    def is_empty(self):
        return self.get_num_sols() == 0

    def get_pairs(self, i=None):
        """Get reaction pairs as tuples of identifiers. i: selection of pair indices"""
        if i is None:
            return self.pairs_ids
        return [p for j, p in enumerate(self.pairs_ids) if j in i]

    def to_frame(self) -> DataFrame:
        """Table view with one row per pair (MustUL) or reaction (MustU, MustL)"""
        if self._singles:
            return DataFrame({'reaction': self.reactions, 'index': [self._rxn_index[r] for r in self._singles]})
        return DataFrame([[p.y1_id, p.y2_id, p.y1, p.y2, p.flux_y1, p.flux_y2, p.objective] for p in self._pairs],
                         columns=['y1', 'y2', 'y1_idx', 'y2_idx', 'flux_y1', 'flux_y2', 'objective'])

    def __len__(self):
        return self.get_num_sols()

    def __repr__(self):
        return '<MustSolutions ' + str(self.must_type) + ': ' + str(self.get_num_sols()) + ' members, ' + \
            str(len(self._linear)) + ' reactions>'

    def save(self, filename):
        """Save Must set solutions to a file."""
        with open(filename, 'wb') as f:
            pickle.dump(self, f)

    @classmethod
    def load(cls, filename):
        """Load Must set solutions from a file."""
        with open(filename, 'rb') as f:
            cls = pickle.load(f)
        logging.info('Loaded ' + str(cls) + ' from ' + str(filename) + '.')
        return cls
