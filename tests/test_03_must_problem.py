"""Test the construction of the MustUL MILP."""
from numpy import array
import optforce as of
from optforce.names import *
import pytest


def test_candidates(envelope_toy):
    assert (of.is_candidate(envelope_toy) == [True, True, True])
    assert (of.is_candidate(of.FluxEnvelope([0, -5, 0], [0, -2, 0])) == [False, True, False])
    assert (of.selection_matrix([False, True, True]).toarray().tolist() == [[0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])


def test_dimensions(model_toy, envelope_toy, constr_toy):
    """The number of rows only depends on the problem dimensions."""
    for solutions in [(), ((1, 2),), ((1, 2), (2, 1), (0, 1))]:
        problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy, solutions=solutions)
        expected = of.MustULProblem.num_rows_expected(3, 1, 1, 3, len(solutions))
        assert (problem.num_rows == expected)
        assert (sum(problem.row_groups.values()) == expected)
        assert (len(problem.b) == len(problem.csense) == expected)
        assert (problem.A.shape[1] == 10 * 3 + 1 + 3)
        assert (len(problem.lb) == len(problem.ub) == len(problem.vtype) == len(problem.c) == problem.A.shape[1])
        assert (problem.row_groups['no_good'] == 2 * len(solutions))


def test_dimensions_exclusions(model_chain):
    env = of.FluxEnvelope([10, 0, 0, 0, 0], [10, 10, 10, 10, 10])
    problem = of.MustULProblem(model_chain, env, excluded_rxns=['R1', 'EX_P'])
    assert (problem.num_rows == of.MustULProblem.num_rows_expected(5, 3, 0, 5, 0))
    assert (problem.row_groups['stationarity_candidate'] == 5)
    assert (problem.row_groups['stationarity_other'] == 0)
    assert (problem.row_groups['excluded_y1'] == 1)


def test_row_group_order(model_toy, envelope_toy, constr_toy):
    problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy)
    assert (list(problem.row_groups.keys()) == [
        'outer_obj', 'primal_dual', 'fixed_y1', 'fixed_y2', 'excluded_y1', 'excluded_y2', 'select_y1', 'select_y2', 'no_good',
        'min_improvement', 'mccormick_w1', 'mccormick_w2', 'mutual_exclusion', 'dual_obj', 'stationarity_fixed',
        'stationarity_candidate', 'stationarity_other', 'primal_obj', 'mass_balance', 'fixed_flux', 'upper_bound',
        'lower_bound'
    ])
    assert (problem.row_groups['stationarity_fixed'] == 1)
    assert (problem.row_groups['stationarity_candidate'] == 2)
    assert (problem.row_groups['mccormick_w1'] == 12)


def test_variables(model_abc):
    env = of.FluxEnvelope([0, -5, 0], [0, -2, 0])
    problem = of.MustULProblem(model_abc, env, constraints=['A >= 1'])
    assert (problem.vtype.count('B') == 6)
    assert (problem.osense == MAXIMIZE)
    assert (problem.c[problem.offset['z']] == 1.0 and sum(problem.c) == 1.0)
    y1 = [problem.ub[i] for i in problem.col_range('y1')]
    assert (y1 == [0.0, 1.0, 0.0])
    mu = problem.offset['mu']
    assert (problem.lb[mu] == 0.0 and problem.ub[mu] == 1000.0)
    assert (problem.lb[mu + 1] == -1000.0)
    dm = problem.offset['delta_m']
    assert (problem.lb[dm] == 0.0)


def test_outer_objective_row(model_toy, envelope_toy, constr_toy):
    problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy)
    row = problem.A[0, :].toarray()[0]
    off = problem.offset
    # z - w1 + w2 + maxW*y1 - minW*y2 = 0 over free candidates R1 and R2
    assert (row[off['z']] == 1.0)
    assert (row[off['w1'] + 1] == -1.0 and row[off['w2'] + 1] == 1.0)
    assert (row[off['y1'] + 1] == 2.0 and row[off['y2'] + 1] == -1.0)
    assert (row[off['y1'] + 2] == 1.0 and row[off['y2'] + 2] == -0.5)
    assert (row[off['y1']] == 0.0 and row[off['w1']] == 0.0)
    assert (problem.csense[0] == EQ and problem.b[0] == 0.0)


def test_no_good_cuts(model_toy, envelope_toy, constr_toy):
    """Recorded pairs are excluded in both orientations."""
    problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy)
    assert (not problem.violates_no_good((1, 2)))
    problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy, solutions=((1, 2),))
    assert (problem.violates_no_good((1, 2)))
    assert (problem.violates_no_good((2, 1)))
    assert (not problem.violates_no_good((1, 1)))
    assert (not problem.violates_no_good((0, 2)))
    pair = of.InterventionPair(2, 0)
    problem = of.MustULProblem(model_toy, envelope_toy, solutions=(pair,))
    assert (problem.violates_no_good(pair) and problem.violates_no_good(pair.swapped()))


def test_validation(model_toy, envelope_toy):
    with pytest.raises(of.ValidationError):
        of.MustULProblem(model_toy, of.FluxEnvelope([0, 1], [1, 2]))
    with pytest.raises(of.ValidationError):
        of.MustULProblem(model_toy, envelope_toy, constraints=['R7 = 1'])
    with pytest.raises(of.ValidationError):
        of.MustULProblem(model_toy, envelope_toy, excluded_rxns=['R7'])
    with pytest.raises(of.ValidationError):
        of.MustULProblem(model_toy, envelope_toy, solutions=((1, 3),))
    with pytest.raises(of.ValidationError):
        of.MustULProblem(model_toy, envelope_toy, M=5)
    with pytest.raises(of.ValidationError):
        of.MustULProblem(model_toy, envelope_toy, gamma=5)


@pytest.mark.timeout(15)
def test_cut_problem_infeasible(curr_solver, model_toy, envelope_toy, constr_toy):
    """With the only valid pair cut off, the MILP has no solution."""
    problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy, solutions=((1, 2),))
    sol = of.solve_milp(problem.A, problem.b, problem.csense, problem.c, problem.lb, problem.ub, problem.vtype,
                        problem.osense, solver=curr_solver)
    assert (sol.status == INFEASIBLE)


@pytest.mark.timeout(15)
def test_first_solve(curr_solver, model_toy, envelope_toy, constr_toy):
    problem = of.MustULProblem(model_toy, envelope_toy, constraints=constr_toy)
    sol = of.solve_milp(problem.A, problem.b, problem.csense, problem.c, problem.lb, problem.ub, problem.vtype,
                        problem.osense, solver=curr_solver)
    assert (sol.status == OPTIMAL)
    assert (sol.objective == pytest.approx(4.5, abs=1e-6))
    x = array(sol.x)
    assert (x[list(problem.col_range('y1'))] == pytest.approx([0.0, 1.0, 0.0], abs=1e-6))
    assert (x[list(problem.col_range('y2'))] == pytest.approx([0.0, 0.0, 1.0], abs=1e-6))
    assert (x[list(problem.col_range('v'))] == pytest.approx([10.0, 8.0, 2.0], abs=1e-6))
    assert (sol.x[problem.offset['z_primal']] == pytest.approx(sol.x[problem.offset['z_dual']], abs=1e-6))
