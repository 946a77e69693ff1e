from primalpair.cache import CandidateCache
from primalpair.config import ThermoOptions
from primalpair.thermo import calc_hairpin_dg, calc_heterodimer_dg, calc_tm


def test_gc_cache():
    seq = "ATGCATGC"
    cache = CandidateCache(seq)

    assert len(cache.gc) == len(seq)
    assert cache.gc[0][len(seq) - 1] == 0.5
    assert cache.gc[2][3] == 1.0


def test_tm_cache():
    seq = "ATGCATGCATGCATGC"
    cache = CandidateCache(seq)

    assert len(cache.tm) == len(seq)
    assert cache.tm[0][len(seq) - 1] > 0


def test_tm_cache_matches_direct_calculation():
    seq = "GACTGGCATCGATCGGCTAGCA"
    cache = CandidateCache(seq)

    assert abs(cache.tm[0][len(seq) - 1] - calc_tm(seq)) < 0.1
    assert abs(cache.tm[3][15] - calc_tm(seq[3:16])) < 0.1


def test_tm_cache_other_method():
    seq = "GACTGGCATCGATCGGCTAGCA"
    cache = CandidateCache(seq, thermo=ThermoOptions(method="primer3"))

    assert cache.tm[0][len(seq) - 1] == calc_tm(seq, method="primer3")


def test_dg_cache():
    seq = "ATGCATGCATGC"
    cache = CandidateCache(seq)

    assert len(cache.dg) == len(seq)
    assert isinstance(cache.dg[0][len(seq) - 1], float)


def test_dg_cache_only_fills_requested_cells():
    seq = "CCCCGGGGAAAACCCCGGGG"
    cache = CandidateCache(seq, starts=[0], ends=[19])

    assert cache.dg[0][19] == calc_hairpin_dg(seq)
    assert cache.dg[1][19] is None


def test_off_target_cache():
    # GTGGCTAGCC is one base removed from GTGGCTAGGC in seq
    parent = (
        "CTGACTCTACTTGGAAATGTGGCTAGGCCTTTGCCCACGCACCTGATCGGTCCTGTGGCTAGCCTCGTTTGC"
        "TTTTTAGGACCGGATGAACTACAGAGCATTGCAAGAATC"
    )
    seq = "CTGACTCTACTTGGAAATGTGGCTAGGCCTT"
    cache = CandidateCache(seq, parent)

    assert cache.off_targets[0] == 0
    assert len(cache.off_targets) == len(seq)
    assert any(count > 0 for count in cache.off_targets)


def test_off_targets_without_check_are_zero():
    cache = CandidateCache("CTGACTCTACTTGGAAATGTGGCTAGGCCTT")

    assert not any(cache.off_targets)


def test_memoized_structures():
    cache = CandidateCache("ATGCATGCATGC")
    fwd, rev = "GACTGGCATCGATCGGCTAG", "CTAGCCGATCGATGCCAGTC"

    assert cache.hairpin(fwd) == calc_hairpin_dg(fwd)
    assert cache.heterodimer(fwd, rev) == calc_heterodimer_dg(fwd, rev)
    assert cache.heterodimer(rev, fwd) == cache.heterodimer(fwd, rev)
    assert cache.heterodimer(fwd, rev, 55) == calc_heterodimer_dg(fwd, rev, 55)
