"""Test the OptForce request/result contract and the staging of inputs."""
import os
import pickle
from numpy import isnan
import optforce as of
from optforce.names import *
import pytest


class FakeBackend(of.OptForceBackend):
    """Backend that returns a prepared result dataset"""

    def __init__(self, result):
        self.result = result
        self.requests = []

    def solve(self, request):
        self.requests.append(request)
        return self.result


@pytest.fixture
def request_abc(model_abc):
    env_wt = of.FluxEnvelope([0.0, -5.0, 1.0], [2.0, -2.0, 3.0])
    env_mt = of.FluxEnvelope([3.0, -1.0, 0.0], [4.0, 0.0, 0.5])
    return of.OptForceRequest(model_abc, 'A', ['A', 'B'], ['C'], env_wt, env_mt, k=2, n_sets=3)


def test_intervention_codes():
    assert (of.Intervention.from_code('U') == of.Intervention.UPREGULATION)
    assert (of.Intervention.from_code('L') == of.Intervention.DOWNREGULATION)
    assert (of.Intervention.from_code('K') == of.Intervention.KNOCKOUT)
    assert (of.Intervention.from_code('knockout') == of.Intervention.KNOCKOUT)
    assert (of.Intervention.from_code(of.Intervention.UPREGULATION) == of.Intervention.UPREGULATION)
    with pytest.raises(ValueError):
        of.Intervention.from_code('X')


def test_request(model_abc, request_abc):
    assert (request_abc.must_u == ['A', 'B'])
    assert (request_abc.k == 2)
    assert (request_abc.excluded[of.Intervention.KNOCKOUT] == [])
    env = request_abc.envelope_wt
    request = of.OptForceRequest(model_abc, 'A', [], [], env, env, excluded=[('B', 'K'), ('C', 'U'), ('B', 'K')])
    assert (request.excluded[of.Intervention.KNOCKOUT] == ['B'])
    assert (request.excluded[of.Intervention.UPREGULATION] == ['C'])
    request = of.OptForceRequest(model_abc, 'A', [], [], env, env, excluded={of.Intervention.DOWNREGULATION: ['C']})
    assert (request.excluded[of.Intervention.DOWNREGULATION] == ['C'])
    must_u = of.MustSolutions(of.MetabolicModel.from_cobra(model_abc), ['C', 'B'], OPTIMAL)
    request = of.OptForceRequest(model_abc, 'A', must_u, [], env, env)
    assert (request.must_u == ['B', 'C'])


def test_request_validation(model_abc, request_abc):
    env = request_abc.envelope_wt
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(None, 'A', [], [], env, env)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, '', [], [], env, env)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'D', [], [], env, env)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', None, [], env, env)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', ['D'], [], env, env)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', [], [], env, of.FluxEnvelope([0.0], [1.0]))
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', [], [], env, [[0.0] * 3, [1.0] * 3])
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', [], [], env, env, k=0)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', [], [], env, env, n_sets=1.5)
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', [], [], env, env, excluded=[('B', 'X')])
    with pytest.raises(of.ValidationError):
        of.OptForceRequest(model_abc, 'A', [], [], env, env, excluded=[('D', 'K')])


@pytest.mark.timeout(15)
def test_run_optforce(curr_solver, request_abc):
    result = {
        'counter': 2,
        'matrix1': {1: {'A': 1.0, 'B': 0.0}, 2: {'B': 1.0}},
        'matrix2': {1: {'C': 1.0}, 2: {}},
        'matrix3': {2: {'C': 0.999999}},
        'matrix1_flux': {1: {'A': 3.5}, 2: {'B': 1e-9}},
        'matrix2_flux': {1: {'C': 0.2}},
        'matrix3_flux': {},
        'objective': {1: 3.5, 2: 1.0},
    }
    backend = FakeBackend(result)
    sols = of.run_optforce(request_abc, backend, solver=curr_solver)
    assert (backend.requests == [request_abc])
    assert (sols.status == OPTIMAL)
    assert (sols.get_num_sols() == 2)
    assert (sols.target_rxn == 'A')
    first, second = sols.sets
    assert (first.reactions == ('A', 'C'))
    assert (first.interventions == (of.Intervention.UPREGULATION, of.Intervention.DOWNREGULATION))
    assert (first.flux == (3.5, 0.2))
    assert (first.objective == 3.5)
    assert (second.as_dict() == {'B': of.Intervention.UPREGULATION, 'C': of.Intervention.KNOCKOUT})
    assert (second.flux == (0.0, 0.0))
    frame = sols.to_frame()
    assert (frame['set'].tolist() == [1, 1, 2, 2])
    assert (frame['intervention'].tolist() == ['upregulation', 'downregulation', 'upregulation', 'knockout'])
    # model without objective: growth 0, fluxes of A and C fixed, target A = 3.5 (set 1) and 0 (set 2)
    assert (first.growth == pytest.approx(0.0, abs=1e-9))
    assert (first.min_target == pytest.approx(3.5, abs=1e-6) and first.max_target == pytest.approx(3.5, abs=1e-6))
    assert (second.min_target == pytest.approx(0.0, abs=1e-6) and second.max_target == pytest.approx(0.0, abs=1e-6))
    assert (frame['min_target'].tolist() == pytest.approx([3.5, 3.5, 0.0, 0.0], abs=1e-6))


def test_no_sets(request_abc):
    sols = of.run_optforce(request_abc, FakeBackend({'counter': 0}))
    assert (sols.status == INFEASIBLE)
    assert (sols.get_num_sols() == 0)
    assert (sols.get_sets() == [])


def test_malformed_results(request_abc):
    with pytest.raises(of.ExternalBackendError):
        of.run_optforce(request_abc, FakeBackend(None))
    with pytest.raises(of.ExternalBackendError):
        of.run_optforce(request_abc, FakeBackend({'matrix1': {}}))
    with pytest.raises(of.ExternalBackendError):
        of.run_optforce(request_abc, FakeBackend({'counter': 'many'}))
    with pytest.raises(of.ExternalBackendError):
        of.run_optforce(request_abc, FakeBackend({'counter': 1, 'matrix1': {1: {'A': 1.0}}, 'matrix2': {}}))
    with pytest.raises(of.ExternalBackendError):
        of.run_optforce(request_abc,
                        FakeBackend({
                            'counter': 1,
                            'matrix1': {1: {'Z': 1.0}},
                            'matrix2': {},
                            'matrix3': {},
                            'matrix1_flux': {},
                            'matrix2_flux': {},
                            'matrix3_flux': {},
                            'objective': {}
                        }))
    with pytest.raises(of.ValidationError):
        of.run_optforce(None, FakeBackend({'counter': 0}))
    with pytest.raises(NotImplementedError):
        of.run_optforce(request_abc, of.OptForceBackend())



def complete_result():
    return {
        'counter': 1,
        'matrix1': {1: {'A': 1.0}},
        'matrix2': {1: {}},
        'matrix3': {1: {}},
        'matrix1_flux': {1: {'A': 2.0}},
        'matrix2_flux': {1: {}},
        'matrix3_flux': {1: {}},
        'objective': {1: 2.0},
    }


def test_missing_result_keys(request_abc):
    """Every field of the result dataset is required once sets were found."""
    sols = of.parse_result(complete_result(), request_abc)
    assert (sols.sets[0].flux == (2.0,))
    assert (sols.sets[0].objective == 2.0)
    for key in ['matrix1', 'matrix2', 'matrix3', 'matrix1_flux', 'matrix2_flux', 'matrix3_flux', 'objective']:
        result = complete_result()
        del result[key]
        with pytest.raises(of.ExternalBackendError):
            of.parse_result(result, request_abc)
    assert (of.parse_result({'counter': 0}, request_abc).get_num_sols() == 0)

def test_save_solutions(request_abc, tmp_path):
    result = complete_result()
    result['matrix1'] = {1: {'B': 1.0}}
    sols = of.parse_result(result, request_abc)
    filename = str(tmp_path / 'optforce.pkl')
    sols.save(filename)
    loaded = of.OptForceSolutions.load(filename)
    assert (loaded.get_sets() == [{'B': of.Intervention.UPREGULATION}])
    assert (loaded.k == 2)


def test_stage_inputs(model_toy, envelope_toy, tmp_path):
    cwd = os.getcwd()
    directory = str(tmp_path / 'InputsMustUL')
    paths = of.stage_inputs(directory, model_toy, envelope_toy, ['EX_in = 10'], ['R2'])
    assert (os.getcwd() == cwd)
    assert ([os.path.basename(p) for p in paths] == list(of.STAGING_FILES))
    with open(os.path.join(directory, 'maxFluxesW.pkl'), 'rb') as f:
        assert (pickle.load(f) == [10.0, 2.0, 1.0])
    with open(os.path.join(directory, 'constrOpt.pkl'), 'rb') as f:
        assert (pickle.load(f) == [('EX_in', 10.0, EQ)])
    with open(os.path.join(directory, 'excludedRxns.pkl'), 'rb') as f:
        assert (pickle.load(f) == ['R2'])


def test_run_directory(tmp_path):
    cwd = os.getcwd()
    with of.run_directory() as d:
        assert (os.path.isdir(d))
        assert (os.getcwd() == cwd)
    assert (not os.path.exists(d))
    with of.run_directory(keep=True) as d:
        pass
    assert (os.path.isdir(d))
    os.rmdir(d)
    existing = tmp_path / 'existing'
    existing.mkdir()
    with of.run_directory(str(existing)) as d:
        assert (d == str(existing))
    assert (existing.is_dir())
    new = str(tmp_path / 'new')
    with of.run_directory(new) as d:
        open(os.path.join(d, 'x.txt'), 'w').close()
    assert (not os.path.exists(new))


@pytest.mark.timeout(15)
def test_evaluate_set(curr_solver, model_abc):
    """Interventions are applied to the model bounds, growth (B) is maximized, then the target range is found."""
    model_abc.objective = 'B'
    up = of.OptForceSet(['A'], [of.Intervention.UPREGULATION], [5.0], 1.0)
    growth, min_target, max_target = of.evaluate_optforce_set(model_abc, 'C', up, solver=curr_solver)
    assert (growth == pytest.approx(10.0, abs=1e-6))
    assert (min_target == pytest.approx(-5.0, abs=1e-6))
    assert (max_target == pytest.approx(-5.0, abs=1e-6))
    ko = of.OptForceSet(['C'], [of.Intervention.KNOCKOUT], [0.0], 1.0)
    assert (of.evaluate_optforce_set(model_abc, 'A', ko, solver=curr_solver) == pytest.approx((10.0, 10.0, 10.0),
                                                                                               abs=1e-6))
    infeasible = of.OptForceSet(['A', 'B', 'C'],
                                [of.Intervention.UPREGULATION, of.Intervention.KNOCKOUT, of.Intervention.KNOCKOUT],
                                [5.0, 0.0, 0.0], 1.0)
    values = of.evaluate_optforce_set(model_abc, 'A', infeasible, solver=curr_solver)
    assert (all(isnan(v) for v in values))


@pytest.mark.timeout(15)
def test_fba(curr_solver, model_abc):
    model_abc.objective = 'B'
    sol = of.fba(model_abc, solver=curr_solver)
    assert (sol.status == OPTIMAL)
    assert (sol.objective_value == pytest.approx(10.0, abs=1e-6))
    sol = of.fba(model_abc, obj='C', obj_sense=MINIMIZE, fix_obj=({'B': 1.0}, 10.0), solver=curr_solver)
    assert (sol.objective_value == pytest.approx(-10.0, abs=1e-6))
    assert (sol.fluxes['A'] == pytest.approx(0.0, abs=1e-6))
    assert (of.fba(model_abc, constraints=['A = 5', 'B = 10', 'C = 10'], solver=curr_solver).status == INFEASIBLE)
    with pytest.raises(of.ValidationError):
        of.fba(model_abc, obj='D')
