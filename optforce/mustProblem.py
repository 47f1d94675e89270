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
"""Construction of the bilevel MILP that identifies MustUL pairs

This module translates a metabolic model, the flux ranges of the wild type and previously
found reaction pairs into a single-level mixed-integer linear problem. The inner problem
(minimize the flux through one selected reaction and maximize the flux through another
one) is replaced by its primal and dual constraints together with the strong duality
condition z_primal = z_dual. Products of binary selection variables and fluxes are
linearized with the big-M method.

The problem is kept in the form A*x (>=|=|<=) b, lb <= x <= ub with one sense character
per row. All variables are stored in the fixed column layout

    v | y1 | y2 | mu | w1 | w2 | delta_m | delta_p | theta | theta_p | lambda | z_primal | z_dual | z

where lambda has one entry per metabolite and all other vector blocks have one entry per
reaction. The rows are grouped, and the size of each group is recorded in row_groups."""

from collections import OrderedDict
from numpy import array, isinf
from scipy import sparse
from typing import List, Tuple
from optforce.names import *
from optforce.errors import ValidationError
from optforce.metabolicModel import MetabolicModel, FluxEnvelope, as_metabolic_model
from optforce.parse_constr import encode_constraints, encode_exclusions, selection_rows
import logging


def is_candidate(envelope) -> List[bool]:
    """Reactions with a non-zero wild-type minimum or maximum flux"""
    return [mn != 0 or mx != 0 for mn, mx in zip(envelope.min_flux, envelope.max_flux)]


def selection_matrix(mask) -> sparse.csr_matrix:
    """Rows of the identity matrix that belong to the True entries of mask"""
    return selection_rows([i for i, m in enumerate(mask) if m], len(mask))


def pair_indices(pair) -> Tuple[int, int]:
    """Indices (y1, y2) of an InterventionPair or a tuple"""
    if hasattr(pair, 'y1') and hasattr(pair, 'y2'):
        return int(pair.y1), int(pair.y2)
    if len(pair) != 2:
        raise ValidationError('A reaction pair must consist of exactly two reaction indices.')
    return int(pair[0]), int(pair[1])


class MustULProblem:
    """MustUL bilevel MILP
    
    The constructor builds the MILP that selects one reaction (y1) whose flux must rise above
    its wild-type maximum and one reaction (y2) whose flux must fall below its wild-type minimum,
    so that the sum of both changes is maximal under the inner flux optimization.
    Every pair in solutions is excluded by two no-good cuts, one for each orientation.
    
    Example:
        problem = MustULProblem(model, envelope_wt, constraints=['EX_glc = -10'], solutions=((2, 5),))
    
    Args:
        model (MetabolicModel or cobra.Model):
            The metabolic model.
            
        envelope_wt (FluxEnvelope):
            Minimal and maximal fluxes of the wild type.
            
        constraints (optional (str, list or dict)): (Default: None)
            Flux constraints of the mutant strain, e.g. ['EX_glc = -10', 'EX_prod >= 5'].
            See parse_constraints for the accepted forms.
            
        excluded_rxns (optional (list of str)): (Default: None)
            Reactions that must not be selected.
            
        solutions (optional (tuple)): (Default: ())
            Reaction pairs found before. Either InterventionPair objects or tuples (y1, y2) of indices.
            
        M (optional (float)): (Default: 2000)
            Big-M for the linearization of y*v. Must exceed all flux bounds.
            
        bound (optional (float)): (Default: 1000)
            Bound for dual and auxiliary variables. Also used for infinite flux bounds.
            
        min_improvement (optional (float)): (Default: 0.1)
            Smallest accepted value of the outer objective z.
            
    Returns:
        (MustULProblem):
            The MILP in the fields A, b, csense, c, lb, ub, vtype and osense.
    """

    def __init__(self, model, envelope_wt, **kwargs):
        allowed_keys = {CONSTRAINTS, EXCLUDED, 'solutions', BIG_M, VAR_BOUND, MIN_IMPROVEMENT}
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
        if self.solutions is None:
            self.solutions = ()
        if self.M is None:
            self.M = 2000.0
        if self.bound is None:
            self.bound = 1000.0
        if self.min_improvement is None:
            self.min_improvement = 0.1

        self.model = as_metabolic_model(model)
        if not isinstance(envelope_wt, FluxEnvelope):
            if isinstance(envelope_wt, (tuple, list)) and len(envelope_wt) == 2:
                envelope_wt = FluxEnvelope(*envelope_wt)
            else:
                raise ValidationError('The wild-type flux ranges must be given as FluxEnvelope.')
        numr = self.model.num_reactions
        if len(envelope_wt) != numr:
            raise ValidationError('The wild-type flux ranges contain ' + str(len(envelope_wt)) +
                                  ' reactions, but the model has ' + str(numr) + '.')
        self.envelope_wt = envelope_wt
        if self.bound <= 0:
            raise ValidationError('The variable bound must be positive.')
        # replace infinite bounds
        self.flux_lb = [-self.bound if isinf(l) else l for l in self.model.lb]
        self.flux_ub = [self.bound if isinf(u) else u for u in self.model.ub]
        max_bound = self.model.bound_magnitude()
        if any(isinf(v) for v in self.model.lb + self.model.ub):
            max_bound = max(max_bound, self.bound)
        if not self.M > max_bound:
            raise ValidationError('M (' + str(self.M) + ') must be larger than the largest flux bound (' +
                                  str(max_bound) + ').')
        self.fixed = encode_constraints(self.constraints, self.model.reaction_ids)
        self.excluded_idx = encode_exclusions(self.excluded_rxns, self.model.reaction_ids)
        self.pairs = tuple(pair_indices(p) for p in self.solutions)
        for p in self.pairs:
            if not all(0 <= i < numr for i in p):
                raise ValidationError('Reaction pair ' + str(p) + ' lies outside the reaction index range.')

        self.candidates = is_candidate(envelope_wt)
        fixed = set(self.fixed.fixed_idx)
        self.cand_idx = [j for j in range(numr) if self.candidates[j]]
        self.cand_free_idx = [j for j in self.fixed.free_idx if self.candidates[j]]
        self.noncand_free_idx = [j for j in self.fixed.free_idx if not self.candidates[j]]
        logging.info('  Building MustUL MILP with ' + str(len(self.cand_idx)) + ' candidates (' + str(len(fixed)) +
                     ' constrained, ' + str(len(self.excluded_idx)) + ' excluded) and ' + str(len(self.pairs)) +
                     ' previous solutions.')

        self.layout = OrderedDict([('v', numr), ('y1', numr), ('y2', numr), ('mu', numr), ('w1', numr), ('w2', numr),
                                   ('delta_m', numr), ('delta_p', numr), ('theta', numr), ('theta_p', numr),
                                   ('lambda', self.model.num_metabolites), ('z_primal', 1), ('z_dual', 1), ('z', 1)])
        self.offset = {}
        pos = 0
        for name, size in self.layout.items():
            self.offset[name] = pos
            pos += size
        self.num_vars = pos

        self.row_groups = OrderedDict()
        self._A = []
        self._b = []
        self._csense = []
        self.build_outer()
        self.build_dual()
        self.build_primal()
        self.A = sparse.vstack(self._A, format='csr')
        self.b = self._b
        self.csense = ''.join(self._csense)
        del self._A, self._b, self._csense
        self.build_bounds()
        self.c = [0.0] * self.num_vars
        self.c[self.offset['z']] = 1.0
        self.osense = MAXIMIZE

    def rows(self, nrows, **blocks) -> sparse.csr_matrix:
        """Place coefficient blocks (given per variable block) into full-width rows"""
        if nrows == 0:
            return sparse.csr_matrix((0, self.num_vars))
        mats = []
        for name, size in self.layout.items():
            if name in blocks:
                mat = sparse.csr_matrix(blocks[name], dtype=float)
                if mat.shape != (nrows, size):
                    raise ValueError('Block ' + name + ' has shape ' + str(mat.shape) + ', expected ' +
                                     str((nrows, size)) + '.')
                mats.append(mat)
            else:
                mats.append(sparse.csr_matrix((nrows, size)))
        return sparse.hstack(mats, format='csr')

    def add_rows(self, group, A, b, csense):
        if isinstance(csense, str) and len(csense) == 1:
            csense = csense * A.shape[0]
        self.row_groups[group] = A.shape[0]
        self._A.append(A)
        self._b += [float(v) for v in b]
        self._csense += list(csense)

    def sel(self, idx, values=None) -> sparse.csr_matrix:
        """Row vector over all reactions with values (default: 1) at idx"""
        if values is None:
            values = [1.0] * len(idx)
        return sparse.csr_matrix((list(values), ([0] * len(idx), list(idx))), shape=(1, self.model.num_reactions))

    def build_outer(self):
        """Outer problem: objective, selection of reactions, no-good cuts and big-M linearization"""
        M = self.M
        minW = self.envelope_wt.min_flux
        maxW = self.envelope_wt.max_flux
        cnic = self.cand_free_idx
        sel_cnic = self.sel(cnic)
        # z = sum(w1 - w2) - sum(maxW*y1 - minW*y2)
        self.add_rows('outer_obj',
                      self.rows(1,
                                y1=self.sel(cnic, [maxW[j] for j in cnic]),
                                y2=self.sel(cnic, [-minW[j] for j in cnic]),
                                w1=-sel_cnic,
                                w2=sel_cnic,
                                z=[[1.0]]), [0.0], EQ)
        self.add_rows('primal_dual', self.rows(1, z_primal=[[1.0]], z_dual=[[-1.0]]), [0.0], EQ)
        sel_fixed = self.sel(self.fixed.fixed_idx)
        self.add_rows('fixed_y1', self.rows(1, y1=sel_fixed), [0.0], EQ)
        self.add_rows('fixed_y2', self.rows(1, y2=sel_fixed), [0.0], EQ)
        sel_excl = self.sel(self.excluded_idx)
        self.add_rows('excluded_y1', self.rows(1, y1=sel_excl), [0.0], EQ)
        self.add_rows('excluded_y2', self.rows(1, y2=sel_excl), [0.0], EQ)
        self.add_rows('select_y1', self.rows(1, y1=sel_cnic), [1.0], EQ)
        self.add_rows('select_y2', self.rows(1, y2=sel_cnic), [1.0], EQ)
        # exclude previous solutions in both orientations
        cuts = []
        for p1, p2 in self.pairs:
            cuts.append(self.rows(1, y1=self.sel([p1]), y2=self.sel([p2])))
            cuts.append(self.rows(1, y1=self.sel([p2]), y2=self.sel([p1])))
        if cuts:
            self.add_rows('no_good', sparse.vstack(cuts, format='csr'), [1.0] * len(cuts), LEQ)
        else:
            self.add_rows('no_good', self.rows(0), [], LEQ)
        self.add_rows('min_improvement', self.rows(1, z=[[1.0]]), [self.min_improvement], GEQ)
        # big-M envelope of w = y*v for all candidates
        nCan = len(self.cand_idx)
        Ic = selection_rows(self.cand_idx, self.model.num_reactions)
        for w, y in [('w1', 'y1'), ('w2', 'y2')]:
            A = sparse.vstack((
                self.rows(nCan, **{w: Ic, 'v': -Ic, y: M * Ic}),   # w - v + M*y <= M
                self.rows(nCan, **{w: Ic, 'v': -Ic, y: -M * Ic}),  # w - v - M*y >= -M
                self.rows(nCan, **{w: Ic, y: -M * Ic}),            # w - M*y <= 0
                self.rows(nCan, **{w: Ic, y: M * Ic})),            # w + M*y >= 0
                format='csr')
            self.add_rows('mccormick_' + w, A, [M] * nCan + [-M] * nCan + [0.0] * (2 * nCan),
                          LEQ * nCan + GEQ * nCan + LEQ * nCan + GEQ * nCan)
        self.add_rows('mutual_exclusion', self.rows(nCan, y1=Ic, y2=Ic), [1.0] * nCan, LEQ)

    def build_dual(self):
        """Dual of the inner problem: objective and stationarity conditions"""
        S = self.model.S
        free = self.fixed.free_idx
        fixed_idx = self.fixed.fixed_idx
        # z_dual = b_fixed*mu + sum_free(lb*delta_m - ub*delta_p)
        self.add_rows('dual_obj',
                      self.rows(1,
                                mu=-self.sel(fixed_idx, self.fixed.fixed_value),
                                delta_m=-self.sel(free, [self.flux_lb[j] for j in free]),
                                delta_p=self.sel(free, [self.flux_ub[j] for j in free]),
                                z_dual=[[1.0]]), [0.0], EQ)
        n_fixed = len(fixed_idx)
        self.add_rows('stationarity_fixed',
                      self.rows(n_fixed, mu=selection_rows(fixed_idx, self.model.num_reactions),
                                **{'lambda': S[:, fixed_idx].T}), [0.0] * n_fixed, EQ)
        cnic = self.cand_free_idx
        Icnic = selection_rows(cnic, self.model.num_reactions)
        self.add_rows('stationarity_candidate',
                      self.rows(len(cnic), y1=-Icnic, y2=Icnic, delta_m=Icnic, delta_p=-Icnic,
                                **{'lambda': S[:, cnic].T}), [0.0] * len(cnic), EQ)
        nc = self.noncand_free_idx
        Inc = selection_rows(nc, self.model.num_reactions)
        self.add_rows('stationarity_other',
                      self.rows(len(nc), delta_m=Inc, delta_p=-Inc, **{'lambda': S[:, nc].T}), [0.0] * len(nc), EQ)

    def build_primal(self):
        """Primal inner problem with the flux bounds written as inequalities"""
        sel_cnic = self.sel(self.cand_free_idx)
        self.add_rows('primal_obj', self.rows(1, w1=-sel_cnic, w2=sel_cnic, z_primal=[[1.0]]), [0.0], EQ)
        self.add_rows('mass_balance', self.rows(self.model.num_metabolites, v=self.model.S), self.model.b, EQ)
        self.add_rows('fixed_flux', self.rows(self.fixed.num_fixed, v=self.fixed.fixed_matrix()), self.fixed.fixed_value,
                      self.fixed.fixed_sense)
        free = self.fixed.free_idx
        Inic = self.fixed.free_matrix()
        self.add_rows('upper_bound', self.rows(len(free), v=-Inic), [-self.flux_ub[j] for j in free], GEQ)
        self.add_rows('lower_bound', self.rows(len(free), v=Inic), [self.flux_lb[j] for j in free], GEQ)

    def build_bounds(self):
        numr = self.model.num_reactions
        bnd = self.bound
        lb = []
        ub = []
        vtype = ''
        for name, size in self.layout.items():
            if name == 'v':
                lb += self.flux_lb
                ub += self.flux_ub
            elif name in ['y1', 'y2']:
                lb += [0.0] * size
                ub += [1.0 if c else 0.0 for c in self.candidates]
            elif name in ['delta_m', 'delta_p', 'theta', 'theta_p']:
                lb += [0.0] * size
                ub += [bnd] * size
            else:
                lb += [-bnd] * size
                ub += [bnd] * size
            vtype += ('B' if name in ['y1', 'y2'] else 'C') * size
        # dual variables of inequality constraints are sign-restricted
        for j, s in zip(self.fixed.fixed_idx, self.fixed.fixed_sense):
            if s == GEQ:
                lb[self.offset['mu'] + j] = 0.0
            elif s == LEQ:
                ub[self.offset['mu'] + j] = 0.0
        self.lb = lb
        self.ub = ub
        self.vtype = vtype

    def col_range(self, name) -> range:
        """Column indices of a variable block"""
        return range(self.offset[name], self.offset[name] + self.layout[name])

    @property
    def num_rows(self) -> int:
        return self.A.shape[0]

    @staticmethod
    def num_rows_expected(num_reactions, num_metabolites, num_fixed, num_candidates, num_pairs) -> int:
        """Number of rows of the MILP, derived from the problem dimensions only"""
        num_free = num_reactions - num_fixed
        outer = 1 + 1 + 2 + 2 + 2 + 2 * num_pairs + 1 + 8 * num_candidates + num_candidates
        dual = 1 + num_reactions
        primal = 1 + num_metabolites + num_fixed + 2 * num_free
        return outer + dual + primal

    def assignment_vector(self, pair) -> List[float]:
        """Variable vector with y1[p1] = y2[p2] = 1 and all other entries zero"""
        p1, p2 = pair_indices(pair)
        x = [0.0] * self.num_vars
        x[self.offset['y1'] + p1] = 1.0
        x[self.offset['y2'] + p2] = 1.0
        return x

    def violates_no_good(self, pair) -> bool:
        """True if the selection of pair (in this orientation) is forbidden by a no-good cut"""
        if self.row_groups['no_good'] == 0:
            return False
        start = 0
        for group, size in self.row_groups.items():
            if group == 'no_good':
                break
            start += size
        A = self.A[start:start + self.row_groups['no_good'], :]
        lhs = A.dot(array(self.assignment_vector(pair)))
        return any(v > 1.0 for v in lhs)
