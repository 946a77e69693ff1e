from collections import namedtuple

import pytest

from primalpair.diversity import (
    Label,
    calculate_distance,
    dominates,
    generate_explanation,
    generate_label,
    identify_badges,
    identify_strengths,
    select_diverse,
    select_hybrid,
    select_pareto_optimal,
)

FakePrimer = namedtuple("FakePrimer", "seq start length tm terminal_dg")
FakePair = namedtuple(
    "FakePair", "fwd rev score tm_diff heterodimer_dg amplicon_length"
)


def fake_primer(start=0, length=20, tm=60.0, seq="ACGTACGTACGTACGTACGC"):
    return FakePrimer(seq, start, length, tm, -8.0)


def fake_pair(score=80.0, tm_diff=1.5, heterodimer_dg=-5.0, length=20, start=0):
    fwd = fake_primer(start=start, length=length)
    rev = fake_primer(start=start + 200, length=length)
    return FakePair(fwd, rev, score, tm_diff, heterodimer_dg, 300)


@pytest.fixture
def primers():
    return [fake_primer(start=i * 7 % 150, length=18 + i % 6) for i in range(30)]


def score(primer):
    return primer.tm - primer.length / 10 - primer.start / 100


def test_distance_identical_points_is_zero():
    assert calculate_distance((5, 20, 60.0), (5, 20, 60.0)) == 0


def test_distance_is_capped_at_one():
    assert calculate_distance((0, 15, 40.0), (1000, 60, 90.0)) == 1.0


def test_select_diverse_first_pick_is_best(primers):
    selected = select_diverse(primers, 5, score)

    assert selected[0] == max(primers, key=score)
    assert len(selected) == 5
    assert len(set(selected)) == 5


def test_select_diverse_small_pool_returns_all(primers):
    selected = select_diverse(primers[:3], 5, score)

    assert sorted(selected, key=score) == sorted(primers[:3], key=score)


def test_select_diverse_min_score(primers):
    threshold = sorted(score(p) for p in primers)[-2]

    assert len(select_diverse(primers, 5, score, min_score=threshold)) == 2


def test_select_diverse_empty():
    assert select_diverse([], 5, score) == []


def test_dominates():
    assert dominates((2, 2), (1, 2))
    assert not dominates((2, 2), (2, 2))
    assert not dominates((3, 1), (1, 3))


def test_select_pareto_optimal():
    points = [(1, 3), (3, 1), (2, 2), (1, 1)]
    front = select_pareto_optimal(points, [lambda p: p[0], lambda p: p[1]])

    assert front == [(1, 3), (3, 1), (2, 2)]


def test_select_hybrid_reasons():
    pairs = [fake_pair(score=90 - i, start=i * 13) for i in range(20)]
    selections = select_hybrid(pairs, 6, lambda p: p.score)

    assert [s.reason for s in selections[:3]] == [
        "best_overall",
        "top_by_score",
        "top_by_score",
    ]
    assert all(s.reason == "diverse" for s in selections[3:])
    assert len({id(s.candidate) for s in selections}) == 6


def test_select_hybrid_small_pool():
    pairs = [fake_pair(score=80), fake_pair(score=70)]
    selections = select_hybrid(pairs, 5, lambda p: p.score)

    assert [s.reason for s in selections] == ["best_overall", "included"]


def test_select_hybrid_small_pool_labels_highest_score():
    low, high = fake_pair(score=60), fake_pair(score=85)
    selections = select_hybrid([low, high], 5, lambda p: p.score)

    assert selections[0].candidate is high
    assert selections[0].reason == "best_overall"
    assert [s.candidate for s in selections] == [high, low]


def test_strength_best_overall():
    best = fake_pair(score=90)
    pool = [best, fake_pair(score=80), fake_pair(score=79)]

    assert identify_strengths(best, pool) == ["best_overall"]


def test_strength_requires_significant_gap():
    pair = fake_pair(score=80.5, tm_diff=1.0)
    pool = [pair, fake_pair(score=80.0, tm_diff=2.0)]

    assert identify_strengths(pair, pool) == ["best_tm_match"]


def test_no_strength_when_tied():
    pair = fake_pair()

    assert identify_strengths(pair, [pair, fake_pair()]) == []


def test_labels_and_explanations():
    assert generate_label(["safest_dimer"]) == Label("safest_dimer", "Safe")
    assert generate_label([]) is None
    assert generate_explanation(["compact"]).startswith("Shortest primers")


def test_badges():
    pair = fake_pair(tm_diff=0.5, heterodimer_dg=-3.0)

    assert identify_badges(pair) == [
        "gc_clamp",
        "low_tm_diff",
        "safe_dimer",
        "optimal_length",
        "stable_3prime",
    ]
    assert identify_badges(pair._replace(tm_diff=2.0, heterodimer_dg=-8.0)) == [
        "gc_clamp",
        "optimal_length",
        "stable_3prime",
    ]
