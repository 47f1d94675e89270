"""Test model loading, solver availability and the MILP interface."""
from scipy import sparse
from numpy import inf, isnan
import optforce as of
from optforce.names import *
import pytest


def test_import_optforce():
    import optforce


def test_solver_availability(curr_solver):
    """Test solver availability."""
    assert (curr_solver in of.avail_solvers)


def test_solver_loading(curr_solver):
    """Test that solvers interfaces can be loaded."""
    milp = of.MILP_LP(solver=curr_solver)
    assert (milp.solve() == ([], 0.0, OPTIMAL))


def test_select_solver(curr_solver, model_toy):
    """Test solver choice."""
    assert (of.select_solver() in [GLPK, HIGHS])
    assert (of.select_solver('notasolver') in [GLPK, HIGHS])
    assert (of.select_solver(curr_solver) == curr_solver)
    model_toy.solver = 'glpk'
    if GLPK in of.avail_solvers:
        assert (of.select_solver(None, model_toy) == GLPK)


def test_unknown_key():
    with pytest.raises(of.ValidationError):
        of.MILP_LP(c=[1.0], lb=[0.0], ub=[1.0], A_ineq=sparse.csr_matrix((0, 1)), b_ineq=[], alpha=1)


def test_model_from_cobra(model_toy):
    model = of.MetabolicModel.from_cobra(model_toy)
    assert (model.reaction_ids == ['EX_in', 'R1', 'R2'])
    assert (model.metabolite_ids == ['A'])
    assert (model.S.toarray().tolist() == [[1.0, -1.0, -1.0]])
    assert (model.ub == [10.0, 10.0, 2.0])
    assert (model.b == [0.0])
    assert (model.reaction_index('R2') == 2)
    assert (model.bound_magnitude() == 10.0)


def test_model_validation():
    S = [[1.0, -1.0]]
    with pytest.raises(of.ValidationError):
        of.MetabolicModel(['a', 'b'], ['x'], S, lb=[0.0, 5.0], ub=[1.0, 1.0])
    with pytest.raises(of.ValidationError):
        of.MetabolicModel(['a', 'a'], ['x'], S, lb=[0.0, 0.0], ub=[1.0, 1.0])
    with pytest.raises(of.ValidationError):
        of.MetabolicModel(['a', 'b', 'c'], ['x'], S, lb=[0.0, 0.0], ub=[1.0, 1.0])
    with pytest.raises(of.ValidationError):
        of.MetabolicModel(['a', 'b'], ['x'], None, lb=[0.0, 0.0], ub=[1.0, 1.0])
    model = of.MetabolicModel(['a', 'b'], ['x'], S, lb=[0.0, 0.0], ub=[1.0, 1.0])
    with pytest.raises(of.ValidationError):
        model.reaction_index('c')


def test_flux_envelope_immutable():
    env = of.FluxEnvelope([0, 1], [2, 3])
    assert (env.min_flux == (0.0, 1.0))
    with pytest.raises(AttributeError):
        env.min_flux = (1.0, 1.0)
    with pytest.raises(of.ValidationError):
        of.FluxEnvelope([0, 1], [2])


def test_csense2mat():
    A = sparse.csr_matrix([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
    A_ineq, b_ineq, A_eq, b_eq = of.csense2mat(A, [1.0, 2.0, 3.0], 'GEL')
    assert (A_ineq.toarray().tolist() == [[1.0, 1.0], [-1.0, -0.0]])
    assert (b_ineq == [3.0, -1.0])
    assert (A_eq.toarray().tolist() == [[0.0, 1.0]])
    assert (b_eq == [2.0])
    with pytest.raises(of.ValidationError):
        of.csense2mat(A, [1.0, 2.0, 3.0], 'GEX')


@pytest.mark.timeout(15)
def test_solve_milp(curr_solver):
    """maximize x + 2y subject to x + y <= 1.5, x >= 0.5, y binary."""
    A = sparse.csr_matrix([[1.0, 1.0], [1.0, 0.0]])
    sol = of.solve_milp(A, [1.5, 0.5], 'LG', [1.0, 2.0], [0.0, 0.0], [10.0, 1.0], 'CB', MAXIMIZE, solver=curr_solver)
    assert (sol.status == OPTIMAL)
    assert (sol.has_solution)
    assert (sol.objective == pytest.approx(2.5))
    assert (sol.x == pytest.approx([0.5, 1.0]))
    assert (sol.x_int == pytest.approx([1.0]))
    sol = of.solve_milp(A, [1.5, 0.5], 'LG', [1.0, 2.0], [0.0, 0.0], [10.0, 1.0], 'CB', MINIMIZE, solver=curr_solver)
    assert (sol.objective == pytest.approx(0.5))


@pytest.mark.timeout(15)
def test_solve_milp_infeasible(curr_solver):
    A = sparse.csr_matrix([[1.0, 1.0]])
    sol = of.solve_milp(A, [3.0], 'G', [1.0, 1.0], [0.0, 0.0], [1.0, 1.0], 'BB', MAXIMIZE, solver=curr_solver)
    assert (sol.status == INFEASIBLE)
    assert (not sol.has_solution)
    assert (isnan(sol.objective))
