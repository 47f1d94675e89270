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
"""Read-only view on a metabolic network (MetabolicModel) and wild-type/mutant flux ranges (FluxEnvelope)"""

from scipy import sparse
from numpy import isfinite, isnan
from cobra import Model
from cobra.util import create_stoichiometric_matrix
from optforce.errors import ValidationError
import logging


class MetabolicModel:
    """Stoichiometric model in vector-matrix form
    
    The optimization problems built in this package only require the stoichiometric
    matrix, the flux bounds and the reaction and metabolite identifiers of a network.
    MetabolicModel bundles these fields and checks their consistency once upon
    construction. Afterwards, the object is treated as read-only.
    
    Example:
        model = MetabolicModel(['EX_A', 'R1'], ['A'], S, lb=[-10, 0], ub=[10, 10])
        model = MetabolicModel.from_cobra(cobra_model)

    Args:
        reaction_ids (list of str):
            Unique reaction identifiers (length R).
            
        metabolite_ids (list of str):
            Unique metabolite identifiers (length M).
            
        S (sparse.csr_matrix or array-like):
            Stoichiometric matrix of size M x R.
            
        lb, ub (list of float):
            Lower and upper flux bounds (length R).
            
        c (optional (list of float)): (Default: all-zero)
            Objective coefficients of the reactions.
            
        b (optional (list of float)): (Default: all-zero)
            Right hand side of the mass balances.
            
        id (optional (str)): (Default: 'model')
            Name of the model.
    """

    def __init__(self, reaction_ids, metabolite_ids, S, lb, ub, c=None, b=None, id=None):
        for name, value in zip(['reaction_ids', 'metabolite_ids', 'S', 'lb', 'ub'],
                               [reaction_ids, metabolite_ids, S, lb, ub]):
            if value is None:
                raise ValidationError("Model field '" + name + "' is missing.")
        self.id = id if id is not None else 'model'
        self.reaction_ids = [str(r) for r in reaction_ids]
        self.metabolite_ids = [str(m) for m in metabolite_ids]
        numr = len(self.reaction_ids)
        numm = len(self.metabolite_ids)
        if len(set(self.reaction_ids)) < numr:
            raise ValidationError('Reaction identifiers must be unique.')
        if len(set(self.metabolite_ids)) < numm:
            raise ValidationError('Metabolite identifiers must be unique.')
        self.S = sparse.csr_matrix(S, dtype=float)
        if self.S.shape != (numm, numr):
            raise ValidationError('Stoichiometric matrix has shape ' + str(self.S.shape) + ', expected ' +
                                  str((numm, numr)) + '.')
        if c is None:
            c = [0.0] * numr
        if b is None:
            b = [0.0] * numm
        self.lb = [float(v) for v in lb]
        self.ub = [float(v) for v in ub]
        self.c = [float(v) for v in c]
        self.b = [float(v) for v in b]
        if not (len(self.lb) == len(self.ub) == len(self.c) == numr):
            raise ValidationError('lb, ub and c must contain one value per reaction.')
        if len(self.b) != numm:
            raise ValidationError('b must contain one value per metabolite.')
        if any(isnan(v) for v in self.lb + self.ub):
            raise ValidationError('Flux bounds must not be NaN.')
        violated = [r for r, l, u in zip(self.reaction_ids, self.lb, self.ub) if l > u]
        if violated:
            raise ValidationError('Lower bound exceeds upper bound for reaction(s): ' + ', '.join(violated))
        self._rxn_index = {r: i for i, r in enumerate(self.reaction_ids)}

    @classmethod
    def from_cobra(cls, model: Model):
        """Create a MetabolicModel from a cobra.Model"""
        logging.info('  Reading ' + str(len(model.reactions)) + ' reactions and ' + str(len(model.metabolites)) +
                     ' metabolites from model ' + str(model.id) + '.')
        S = sparse.csr_matrix(create_stoichiometric_matrix(model))
        return cls(model.reactions.list_attr('id'),
                   model.metabolites.list_attr('id'),
                   S,
                   lb=model.reactions.list_attr('lower_bound'),
                   ub=model.reactions.list_attr('upper_bound'),
                   c=model.reactions.list_attr('objective_coefficient'),
                   id=model.id)

    @property
    def num_reactions(self) -> int:
        return len(self.reaction_ids)

    @property
    def num_metabolites(self) -> int:
        return len(self.metabolite_ids)

    def reaction_index(self, reaction_id) -> int:
        """Index of a reaction in the model, raises ValidationError if the reaction is unknown"""
        try:
            return self._rxn_index[reaction_id]
        except KeyError:
            raise ValidationError("Reaction '" + str(reaction_id) + "' not found in model " + self.id + ".") from None

    def has_reaction(self, reaction_id) -> bool:
        return reaction_id in self._rxn_index

    def bound_magnitude(self) -> float:
        """Largest finite absolute value among all flux bounds"""
        finite = [abs(v) for v in self.lb + self.ub if abs(v) != float('inf')]
        return max(finite) if finite else 0.0

    def __repr__(self):
        return '<MetabolicModel ' + self.id + ': ' + str(self.num_reactions) + ' reactions, ' + \
            str(self.num_metabolites) + ' metabolites>'


def as_metabolic_model(model) -> MetabolicModel:
    """Accept either a MetabolicModel or a cobra.Model"""
    if isinstance(model, MetabolicModel):
        return model
    if isinstance(model, Model):
        return MetabolicModel.from_cobra(model)
    raise ValidationError('Expected a MetabolicModel or cobra.Model, got ' + type(model).__name__ + '.')


class FluxEnvelope:
    """Minimum and maximum flux of every reaction under one condition
    
    Envelopes are usually computed with flux variability analysis (see fva) for the
    wild type and for the overproducing mutant. The vectors are stored as tuples and
    cannot be changed after construction.

    Args:
        min_flux, max_flux (list of float):
            Minimal and maximal flux of each reaction.
    """
    __slots__ = ('_min_flux', '_max_flux')

    def __init__(self, min_flux, max_flux):
        if min_flux is None or max_flux is None:
            raise ValidationError('Flux envelope requires minimum and maximum fluxes.')
        min_flux = tuple(float(v) for v in min_flux)
        max_flux = tuple(float(v) for v in max_flux)
        if len(min_flux) != len(max_flux):
            raise ValidationError('Minimum and maximum flux vectors of an envelope differ in length.')
        if not all(isfinite(v) for v in min_flux + max_flux):
            raise ValidationError('Flux envelope contains NaN or infinite values. The flux ranges stem from an '
                                  'infeasible or unbounded flux variability analysis.')
        object.__setattr__(self, '_min_flux', min_flux)
        object.__setattr__(self, '_max_flux', max_flux)

    def __setattr__(self, name, value):
        raise AttributeError('FluxEnvelope is immutable.')

    @classmethod
    def from_frame(cls, frame, reaction_ids=None):
        """Create an envelope from a DataFrame with the columns 'minimum' and 'maximum'
        
        If reaction_ids are provided, the rows are taken in this order."""
        if reaction_ids is not None:
            missing = [r for r in reaction_ids if r not in frame.index]
            if missing:
                raise ValidationError('Flux ranges missing for reaction(s): ' + ', '.join(missing))
            frame = frame.loc[list(reaction_ids)]
        return cls(frame['minimum'].tolist(), frame['maximum'].tolist())

    @property
    def min_flux(self):
        return self._min_flux

    @property
    def max_flux(self):
        return self._max_flux

    def __len__(self):
        return len(self._min_flux)

    def __eq__(self, other):
        return isinstance(other, FluxEnvelope) and self._min_flux == other._min_flux and \
            self._max_flux == other._max_flux

    def __hash__(self):
        return hash((self._min_flux, self._max_flux))

    def __getstate__(self):
        return (self._min_flux, self._max_flux)

    def __setstate__(self, state):
        object.__setattr__(self, '_min_flux', state[0])
        object.__setattr__(self, '_max_flux', state[1])

    def __repr__(self):
        return '<FluxEnvelope of ' + str(len(self)) + ' reactions>'
