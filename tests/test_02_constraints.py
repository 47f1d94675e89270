"""Test parsing and encoding of flux constraints and exclusions."""
import logging
import optforce as of
from optforce.names import *
import pytest

rids = ['EX_glc', 'R1', 'R2', 'R3', 'EX_suc']


def test_parse_constraint_forms():
    """Strings, triples and parallel arrays are translated to the same triples."""
    expected = [('EX_glc', -10.0, EQ), ('EX_suc', 5.0, GEQ), ('R2', 3.0, LEQ)]
    assert (of.parse_constraints(['EX_glc = -10', 'EX_suc >= 5', 'R2 <= 3'], rids) == expected)
    assert (of.parse_constraints('EX_glc = -10, EX_suc >= 5, R2 <= 3', rids) == expected)
    assert (of.parse_constraints([('EX_glc', -10, '='), ('EX_suc', 5, 'G'), ('R2', 3, '<=')], rids) == expected)
    assert (of.parse_constraints({'rxnList': ['EX_glc', 'EX_suc', 'R2'], 'values': [-10, 5, 3], 'sense': 'EGL'}, rids) == expected)
    assert (of.parse_constraints(None, rids) == [])


def test_parse_constraint_errors():
    with pytest.raises(of.ValidationError):
        of.parse_constraints(['R4 = 1'], rids)
    with pytest.raises(of.ValidationError):
        of.parse_constraints(['2 R1 = 1'], rids)
    with pytest.raises(of.ValidationError):
        of.parse_constraints([('R1', 1.0, 'X')], rids)
    with pytest.raises(of.ValidationError):
        of.parse_constraints([('R1', 'abc', 'E')], rids)
    with pytest.raises(of.ValidationError):
        of.parse_constraints({'rxnList': ['R1', 'R2'], 'values': [1.0], 'sense': 'EE'}, rids)
    with pytest.raises(of.ValidationError):
        of.parse_constraints({'rxnList': ['R1'], 'values': [1.0]}, rids)


def test_encode_constraints_partition():
    """Constrained and free reactions partition the reaction indices."""
    for constr in [[], ['R3 <= 2'], ['EX_suc >= 1', 'EX_glc = -10'], [(r, 0.0, 'E') for r in rids]]:
        fc = of.encode_constraints(constr, rids)
        assert (sorted(fc.fixed_idx + fc.free_idx) == list(range(len(rids))))
        assert (not set(fc.fixed_idx) & set(fc.free_idx))
        assert (fc.fixed_idx == sorted(fc.fixed_idx))
        assert (len(fc.fixed_value) == len(fc.fixed_sense) == fc.num_fixed)


def test_encode_constraints_alignment():
    """Values and senses are sorted together with the reaction indices."""
    fc = of.encode_constraints(['EX_suc >= 1', 'R1 <= 4', 'EX_glc = -10'], rids)
    assert (fc.fixed_idx == [0, 1, 4])
    assert (fc.fixed_value == [-10.0, 4.0, 1.0])
    assert (fc.fixed_sense == 'ELG')
    assert (fc.free_idx == [2, 3])
    assert (fc.fixed_matrix().toarray().tolist()[1] == [0.0, 1.0, 0.0, 0.0, 0.0])


def test_encode_constraints_duplicates():
    with pytest.raises(of.ValidationError):
        of.encode_constraints(['R1 <= 4', 'R1 >= 1'], rids)


def test_encode_exclusions(caplog):
    assert (of.encode_exclusions(['R3', 'R1'], rids) == [1, 3])
    assert (of.encode_exclusions(None, rids) == [])
    with caplog.at_level(logging.WARNING):
        assert (of.encode_exclusions(['R3', 'R1', 'R3'], rids) == [1, 3])
    assert ('duplicates' in caplog.text)
    with pytest.raises(of.ValidationError):
        of.encode_exclusions(['R7'], rids)
