import pytest

from primalpair import config
from primalpair.cache import CandidateCache
from primalpair.equilibrium import (
    EquilibriumConstants,
    calculate_equilibrium_efficiency,
    classify_efficiency,
    efficiency_to_score,
    equilibrium_constants,
    solve_equilibrium,
    species_dg,
)
from primalpair.thermo import reverse_complement

FWD = "CTACTAATAGCACACACGGGGC"
REV = "ACGCTGTAACGTAGATCCGTTG"


@pytest.fixture
def constants():
    return EquilibriumConstants(*[1.0] * 9)._replace(target_fwd=1e9, target_rev=1e9)


def test_efficiency_bounds_and_bottleneck(template):
    result = calculate_equilibrium_efficiency(FWD, REV, template)

    assert 0 <= result.efficiency <= 1
    assert result.efficiency == min(result.efficiency_fwd, result.efficiency_rev)
    expected = "forward" if result.efficiency_fwd < result.efficiency_rev else "reverse"
    assert result.bottleneck == expected


def test_losses_are_fractions(template):
    result = calculate_equilibrium_efficiency(FWD, REV, template)

    for losses in (result.losses_fwd, result.losses_rev):
        for value in losses:
            assert 0 <= value <= 1


def test_losses_and_efficiency_stay_in_range(template):
    result = calculate_equilibrium_efficiency(FWD, REV, template)

    for efficiency, losses in (
        (result.efficiency_fwd, result.losses_fwd),
        (result.efficiency_rev, result.losses_rev),
    ):
        assert 0 < efficiency + sum(losses) <= 2


def test_cache_gives_identical_result(template):
    cache = CandidateCache(template[:40])
    plain = calculate_equilibrium_efficiency(FWD, REV, template)
    cached = calculate_equilibrium_efficiency(FWD, REV, template, cache=cache)

    assert cached.efficiency == pytest.approx(plain.efficiency, abs=1e-3)
    for a, b in zip(plain.species, cached.species):
        assert b == pytest.approx(a, abs=0.011)


def test_species_for_pair(template):
    species = species_dg(FWD, REV, template)

    assert species.target_fwd < -10
    assert species.target_rev < -10
    assert species.target_fwd < species.hairpin_fwd


def test_off_target_species_can_be_disabled(template):
    species = species_dg(FWD, REV, template, include_off_target=False)

    assert species.off_target_fwd == 0
    assert species.off_target_rev == 0


def test_equilibrium_constants():
    species = species_dg(FWD, REV, FWD + "A" * 40 + reverse_complement(REV))
    constants = equilibrium_constants(species._replace(hairpin_fwd=None))

    assert constants.hairpin_fwd == config.MISSING_K
    assert constants.target_fwd > constants.hairpin_rev


def test_raising_target_constant_raises_bound_target(constants):
    weak = solve_equilibrium(constants, 0.5e-6, 1e-9)
    strong = solve_equilibrium(constants._replace(target_fwd=1e12), 0.5e-6, 1e-9)

    assert strong.fwd.target > weak.fwd.target


def test_raising_hairpin_constant_raises_hairpin_fraction(constants):
    weak = solve_equilibrium(constants, 0.5e-6, 1e-9)
    strong = solve_equilibrium(constants._replace(hairpin_fwd=1e3), 0.5e-6, 1e-9)

    assert strong.fwd.hairpin > weak.fwd.hairpin


def test_refined_solution_is_bounded(constants):
    state = solve_equilibrium(
        constants._replace(heterodimer=1e7), 0.5e-6, 1e-9, refine=True
    )

    assert 0 <= state.fwd.free <= 0.5e-6
    assert 0 <= state.template_free <= 1e-9


def test_efficiency_to_score_is_monotone():
    efficiencies = [i / 100 for i in range(101)]
    scores = [efficiency_to_score(e) for e in efficiencies]

    assert scores == sorted(scores)
    assert efficiency_to_score(0.95) == 100
    assert efficiency_to_score(1.0) == 100
    assert efficiency_to_score(0.70) == 70


@pytest.mark.parametrize(
    "efficiency, quality",
    [
        (0.99, "excellent"),
        (0.9, "good"),
        (0.75, "acceptable"),
        (0.6, "marginal"),
        (0.1, "poor"),
    ],
)
def test_classify_efficiency(efficiency, quality):
    assert classify_efficiency(efficiency) == quality
