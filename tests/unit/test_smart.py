import pytest

from primalpair.primer import PrimerFactory, Strand, with_scoring
from primalpair.smart import (
    analyze_three_prime_end,
    apply_smart_design,
    length_variants,
    optimize_primer,
)

# The first 18 bases end AT-rich, extending by 3 gives a GC clamp
WINDOW = "GACTGCAAGCTAGCTTATGCC"
GOOD_END = "TTAGCATGCACGGAC"


@pytest.fixture
def factory():
    return PrimerFactory()


def build(factory, seq, strand, composite):
    primer = factory.build(seq, 60.0, 60.0, 0.5, 0.0, strand)
    return with_scoring(primer, composite=composite)


def rescorer(composite):
    def rescore(fwd, rev):
        return with_scoring(fwd, composite=composite), with_scoring(
            rev, composite=composite
        )

    return rescore


def test_analyze_three_prime_end_poor():
    analysis = analyze_three_prime_end("ACGTACGTACGTAAAAA")

    assert analysis.quality == "poor"
    assert analysis.gc_last2 == 0
    assert analysis.poly_a
    assert analysis.poly_at
    assert not analysis.has_gc_clamp
    assert analysis.needs_work
    assert any("No GC clamp" in issue for issue in analysis.issues)


def test_analyze_three_prime_end_excellent():
    analysis = analyze_three_prime_end(GOOD_END.lower())

    assert analysis.quality == "excellent"
    assert analysis.ends_with_gc
    assert analysis.issues == ()
    assert not analysis.needs_work
    assert not analysis.can_improve


def test_length_variants_sorted_by_priority():
    variants = length_variants(WINDOW, 0, 18)

    assert [v.length for v in variants] != []
    assert all(16 <= v.length <= 21 for v in variants)
    priorities = [v.priority for v in variants]
    assert priorities == sorted(priorities, reverse=True)


def test_optimize_primer_extends_to_gc_clamp():
    result = optimize_primer(WINDOW, 0, 18)

    assert result.optimized
    assert result.seq == WINDOW
    assert result.delta == 3
    assert "Length extended by 3bp" in result.reason
    assert result.analysis.gc_last2 == 2


def test_optimize_primer_keeps_good_end():
    result = optimize_primer(GOOD_END, 0, len(GOOD_END))

    assert not result.optimized
    assert result.reason == "Already optimal"
    assert result.seq == GOOD_END


def test_smart_design_skips_good_pairs(factory):
    fwd = build(factory, GOOD_END, Strand.FORWARD, 90)
    rev = build(factory, GOOD_END, Strand.REVERSE, 90)

    new_fwd, new_rev, report = apply_smart_design(
        fwd, rev, GOOD_END, GOOD_END, None, None
    )

    assert (new_fwd, new_rev) == (fwd, rev)
    assert not report.optimized
    assert report.reason.startswith("Already meets target")


def test_smart_design_applies_improvement(factory):
    fwd = build(factory, WINDOW[:18], Strand.FORWARD, 60)
    rev = build(factory, GOOD_END, Strand.REVERSE, 60)

    def rebuild(seq, strand, start):
        return build(factory, seq, strand, None)

    new_fwd, new_rev, report = apply_smart_design(
        fwd, rev, WINDOW, GOOD_END, rebuild, rescorer(70)
    )

    assert report.optimized
    assert new_fwd.seq == WINDOW
    assert new_rev.seq == GOOD_END
    assert report.original_score == 60
    assert report.score == 70
    assert report.improvements[0].startswith("FWD:")


def test_smart_design_reverts_on_score_drop(factory):
    fwd = build(factory, WINDOW[:18], Strand.FORWARD, 60)
    rev = build(factory, GOOD_END, Strand.REVERSE, 60)

    def rebuild(seq, strand, start):
        return build(factory, seq, strand, None)

    new_fwd, new_rev, report = apply_smart_design(
        fwd, rev, WINDOW, GOOD_END, rebuild, rescorer(50)
    )

    assert (new_fwd, new_rev) == (fwd, rev)
    assert not report.optimized
    assert report.reason == "Reverted - Score drop"
    assert report.alternative[0].seq == WINDOW
