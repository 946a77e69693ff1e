import pytest

from primalpair import config
from primalpair.primer import (
    BindingSiteError,
    InvalidSequenceError,
    PrimerFactory,
    Strand,
    find_binding_sites,
    resolve_thermo,
    score,
    validate_dna,
)
from primalpair.scoring import QualityTier

ADD_FWD = "GGTCTCAATGAGACAATA"
REV = "TTTCGTATGCTGACCTAG"
PRIMER = "GACTGGCATCGATCGGCTAG"


@pytest.fixture
def factory():
    return PrimerFactory()


def test_validate_dna():
    assert validate_dna("acgt") == "ACGT"
    with pytest.raises(InvalidSequenceError):
        validate_dna("ACGU")


def test_factory_optimal_primer_has_no_penalty(factory):
    primer = factory.build("A" * 22, 62.0, 62.0, 0.5, 0.0, Strand.FORWARD)

    assert primer.penalty == 0
    assert primer.length == 22


def test_factory_penalty_components(factory):
    primer = factory.build(
        "A" * 22, 60.0, 60.0, 0.5, -2.0, Strand.FORWARD, off_target_count=1
    )

    assert primer.scoring.penalty_tm == 2.0
    assert primer.scoring.penalty_dg == 4.0
    assert primer.scoring.penalty_off_target == 20.0
    assert primer.penalty == 26.0


def test_factory_pair_adds_tm_diff(factory):
    fwd = factory.build("A" * 22, 60.0, 60.0, 0.5, 0.0, Strand.FORWARD)
    rev = factory.build("T" * 22, 63.0, 63.0, 0.5, 0.0, Strand.REVERSE)
    fwd, rev = factory.build_pair(fwd, rev)

    assert fwd.scoring.penalty_tm_diff == rev.scoring.penalty_tm_diff == 3.0
    assert fwd.penalty == 5.0
    assert rev.penalty == 4.0


def test_positive_dg_is_clamped(factory):
    primer = factory.build("A" * 22, 62.0, 62.0, 0.5, 1.5, Strand.FORWARD)

    assert primer.dg == 0.0


def test_primer_str(factory):
    primer = factory.build("ACGT" * 5, 62.0, 62.0, 0.5, 0.0, Strand.REVERSE, start=7)

    assert str(primer) == "REVERSE:ACGTACGTACGTACGTACGT:7"


def test_find_binding_sites_with_addition(short_template):
    add_fwd, amplicon, add_rev = find_binding_sites(ADD_FWD, REV, short_template)

    assert add_fwd == 6
    assert add_rev == 0
    assert amplicon == short_template


def test_find_binding_sites_without_template():
    assert find_binding_sites(ADD_FWD, REV) == (0, "", 0)


def test_find_binding_sites_missing(short_template):
    with pytest.raises(BindingSiteError):
        find_binding_sites("CCCCCCCCCCCCCCCCCC", REV, short_template)


def test_score_single_primer():
    fwd, rev = score("GACTGGCATCGATCGGCTAG")

    assert rev is None
    assert fwd.tm == fwd.tm_total
    assert 0 <= fwd.composite <= 100
    assert isinstance(fwd.scoring.quality, QualityTier)
    assert fwd.scoring.efficiency is None


def test_score_pair_on_template(short_template):
    fwd, rev = score(ADD_FWD, REV, short_template)

    assert fwd.tm < fwd.tm_total
    assert rev.tm == rev.tm_total
    assert fwd.penalty > rev.penalty
    assert fwd.scoring.penalty_tm_diff == rev.scoring.penalty_tm_diff
    assert 0 <= fwd.scoring.efficiency <= 1
    assert fwd.scoring.efficiency == rev.scoring.efficiency
    assert fwd.composite == rev.composite


def test_score_pair_is_case_insensitive(short_template):
    upper = score(ADD_FWD, REV, short_template)
    lower = score(ADD_FWD.lower(), REV.lower(), short_template.lower())

    assert upper == lower


def test_score_without_equilibrium(short_template):
    options = config.SearchOptions(include_equilibrium=False)
    fwd, rev = score(ADD_FWD, REV, short_template, options=options)

    assert fwd.scoring.efficiency is None
    assert rev.scoring.losses == ()


@pytest.mark.parametrize("fwd, rev", [("ACGTACGT", REV), (ADD_FWD, "ACGTACGT")])
def test_score_short_primers_raise(fwd, rev):
    with pytest.raises(InvalidSequenceError):
        score(fwd, rev)


def test_score_invalid_bases_raise():
    with pytest.raises(InvalidSequenceError):
        score("ACGUACGUACGUACGUACGU")


def test_score_unbound_primer_raises(short_template):
    with pytest.raises(BindingSiteError):
        score("CCCCCCCCCCCCCCCCCC", REV, short_template)


def test_unscored_primer_defaults(factory):
    scoring = factory.build("A" * 22, 60.0, 60.0, 0.5, 0.0, Strand.FORWARD).scoring

    assert scoring.efficiency is None
    assert scoring.composite is None
    assert scoring.losses == ()
    assert scoring.warnings == ()
    assert scoring.critical_warnings == ()


def test_resolve_thermo_prefers_chosen_method():
    assembly = config.SCORING_PRESETS["ASSEMBLY"]
    chosen = config.SearchOptions(
        preset=assembly, thermo=config.ThermoOptions(method="primer3")
    )

    assert resolve_thermo(config.SearchOptions()).method == "santalucia"
    assert resolve_thermo(config.SearchOptions(preset=assembly)).method == "q5"
    assert resolve_thermo(chosen).method == "primer3"


def test_chosen_tm_method_changes_tm():
    default, _ = score(PRIMER)
    q5_options = config.SearchOptions(thermo=config.ThermoOptions(method="q5"))
    q5, _ = score(PRIMER, options=q5_options)
    by_preset, _ = score(
        PRIMER,
        options=config.SearchOptions(preset=config.SCORING_PRESETS["ASSEMBLY"]),
    )

    assert q5.tm != default.tm
    assert by_preset.tm == q5.tm
