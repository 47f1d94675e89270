import pytest
from cobra import Model, Reaction, Metabolite
from optforce.names import *
import optforce as of

# Initialize the list of solvers with those that are installed
solvers = [s for s in [GLPK, HIGHS] if s in of.avail_solvers]


@pytest.fixture(params=solvers, scope="session")
def curr_solver(request: pytest.FixtureRequest) -> str:
    """Provide session-level fixture for parametrized solver names."""
    return request.param


def add_reaction(model, rid, stoich, lb, ub):
    reac = Reaction(rid, lower_bound=lb, upper_bound=ub)
    model.add_reactions([reac])
    reac.add_metabolites({model.metabolites.get_by_id(m): v for m, v in stoich.items()})
    return reac


@pytest.fixture
def model_toy():
    """Uptake of A (EX_in) that is split between R1 and R2. R2 has a capacity of 2."""
    model = Model('toy')
    model.add_metabolites([Metabolite('A', compartment='c')])
    add_reaction(model, 'EX_in', {'A': 1.0}, 0.0, 10.0)
    add_reaction(model, 'R1', {'A': -1.0}, 0.0, 10.0)
    add_reaction(model, 'R2', {'A': -1.0}, 0.0, 2.0)
    return model


@pytest.fixture
def envelope_toy():
    """Wild-type flux ranges of model_toy."""
    return of.FluxEnvelope([10.0, 1.0, 0.5], [10.0, 2.0, 1.0])


@pytest.fixture
def constr_toy():
    return ['EX_in = 10']


@pytest.fixture
def model_abc():
    """Three reactions A, B and C that produce or consume X."""
    model = Model('abc')
    model.add_metabolites([Metabolite('X', compartment='c')])
    add_reaction(model, 'A', {'X': 1.0}, -10.0, 10.0)
    add_reaction(model, 'B', {'X': -1.0}, -10.0, 10.0)
    add_reaction(model, 'C', {'X': -1.0}, -10.0, 10.0)
    return model


@pytest.fixture
def model_chain():
    """Linear pathway with a branch: EX_S -> S, R1: S -> P, R2: S -> Q, EX_P: P ->, EX_Q: Q ->"""
    model = Model('chain')
    model.add_metabolites([Metabolite(m, compartment='c') for m in ['S', 'P', 'Q']])
    add_reaction(model, 'EX_S', {'S': 1.0}, 0.0, 10.0)
    add_reaction(model, 'R1', {'S': -1.0, 'P': 1.0}, 0.0, 1000.0)
    add_reaction(model, 'R2', {'S': -1.0, 'Q': 1.0}, 0.0, 1000.0)
    add_reaction(model, 'EX_P', {'P': -1.0}, 0.0, 1000.0)
    add_reaction(model, 'EX_Q', {'Q': -1.0}, 0.0, 1000.0)
    return model
