from primalpair.offtarget import (
    Risk,
    analyze_off_targets_pair,
    classify_off_targets,
    count_off_targets,
    find_type_e,
    find_type_f,
    intended_site,
    kmer_count_map,
    score_off_target_classification,
    score_off_target_enhanced,
)
from primalpair.thermo import reverse_complement

PRIMER = "GCGTACGGCTAGCCTGACGC"


def test_kmer_count_map_counts_single_mismatches():
    counts = kmer_count_map("ACGTACGTAC", k=10)

    assert counts["ACGTACGTAC"] == 1
    assert counts["TCGTACGTAC"] == 1
    assert counts["TTGTACGTAC"] == 0


def test_count_off_targets_excludes_intended_site():
    unique = "ACGTTGCAGGCTAAGCTTCG"
    counts = kmer_count_map(unique)
    assert count_off_targets(unique[-10:], counts) == 0

    counts = kmer_count_map(unique + "TTTTT" + unique[-10:])
    assert count_off_targets(unique[-10:], counts) == 1


def test_clean_template_passes():
    classification = classify_off_targets(PRIMER, "A" * 80)

    assert classification.status == "pass"
    assert classification.counts["total"] == 0
    assert score_off_target_classification(classification) == 1.0
    assert "No significant" in classification.summary


def test_antisense_site_is_high_risk():
    template = "A" * 30 + PRIMER + "A" * 30
    classification = classify_off_targets(PRIMER, template)

    assert classification.status == "critical"
    assert classification.counts["B"] >= 1
    assert all(s.risk == Risk.HIGH for s in classification.sites if s.type == "B")
    assert score_off_target_classification(classification) <= 0.3


def test_partial_homology_is_medium_risk():
    # Only the 3' 12 bases of the primer have a binding site
    template = "A" * 30 + reverse_complement(PRIMER[-12:]) + "A" * 30
    classification = classify_off_targets(PRIMER, template, intended=200)

    assert classification.counts["C"] >= 1
    assert classification.status in ("warning", "critical")


def test_exact_duplicate_is_type_a():
    template = "T" * 100 + reverse_complement(PRIMER) + "T" * 100
    classification = classify_off_targets(PRIMER, template, intended=0)

    assert classification.counts["A"] >= 1
    exact = [s for s in classification.sites if s.subtype == "exact"]
    assert exact[0].position == 100
    assert classification.status == "critical"


def test_intended_site_is_not_an_off_target():
    template = "T" * 100 + reverse_complement(PRIMER) + "T" * 100
    assert classify_off_targets(PRIMER, template, intended=100).counts["A"] == 0

    template = "A" * 30 + PRIMER + "A" * 30
    assert classify_off_targets(PRIMER, template, intended=30).counts["B"] == 0


def test_intended_site(template):
    fwd, rev = "CTACTAATAGCACACACGGGGC", "ACGCTGTAACGTAGATCCGTTG"

    assert intended_site(fwd, template, True) == (0, len(fwd))
    start, end = intended_site(rev, template, False)
    assert template[start:end] == reverse_complement(rev)
    assert intended_site("GGGGGGGGGGGG", template, True) is None


def test_analyze_off_targets_pair_clean_pair_passes():
    fwd, rev = "GAGGAAGAGGGAAGGAGAAG", "AGAAAGGAGAGAAAGGGAGA"
    template = "A" * 30 + fwd + "A" * 30 + reverse_complement(rev) + "A" * 30
    result = analyze_off_targets_pair(fwd, rev, template)

    assert result["status"] == "pass"
    assert result["fwd"].counts["total"] == 0
    assert result["rev"].counts["total"] == 0
    assert result["combined"]["total"] == 0
    assert "No significant" in result["summary"]
    assert result["score"] == 1.0


def test_self_complementary_primer_has_type_e_sites():
    analysis = find_type_e("GTCAGCATGCGCATGCTGAC")

    assert analysis.homodimer_dg < -10
    homodimer = [s for s in analysis.sites if s.subtype == "homodimer"]
    assert homodimer[0].type == "E"
    assert homodimer[0].risk == Risk.HIGH

    assert find_type_e("GAGGAAGAGGGAAGGAGAAG").sites == []


def test_complementary_pair_has_type_f_site():
    fwd = "GACTGGCATCGATCGGCTAG"
    analysis = find_type_f(fwd, reverse_complement(fwd))

    assert analysis.heterodimer_dg < -10
    assert [(s.type, s.risk) for s in analysis.sites] == [("F", Risk.HIGH)]
    assert find_type_f("GAGGAAGAGGGAAGGAGAAG", "AGAAAGGAGAGAAAGGGAGA").sites == []


def test_structure_sites_lower_enhanced_score():
    clean = classify_off_targets(PRIMER, "A" * 80)
    fwd = "GACTGGCATCGATCGGCTAG"
    type_f = find_type_f(fwd, reverse_complement(fwd))

    assert score_off_target_enhanced(clean) == 1.0
    assert score_off_target_enhanced(clean, type_f.sites) == 0.7


def test_analyze_off_targets_pair_escalates_stable_structures():
    fwd, rev = "GTCAGCATGCGCATGCTGAC", "AGAAAGGAGAGAAAGGGAGA"
    template = "A" * 30 + fwd + "A" * 30 + reverse_complement(rev) + "A" * 30
    result = analyze_off_targets_pair(fwd, rev, template)

    assert result["fwd"].status == "pass"
    assert result["rev"].status == "pass"
    assert result["status"] == "warning"
    assert result["combined"]["E"] >= 1
    assert "stable secondary structure" in result["summary"]
    assert result["score"] <= 0.75
