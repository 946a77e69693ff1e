"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains off-target detection: k-mer site counting for the
candidate cache, and classification of alternative binding sites by risk.

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>
"""

import logging

from collections import Counter, namedtuple
from enum import Enum

from primalpair import config
from primalpair.thermo import (
    calc_duplex_dg,
    calc_hairpin_dg,
    calc_heterodimer_dg,
    calc_homodimer_dg,
    reverse_complement,
)

logger = logging.getLogger("primalpair")

BASES = "ACGT"

OffTargetThresholds = namedtuple(
    "OffTargetThresholds",
    "max_mismatches terminal_mismatches stability antisense_anchor "
    "partial_anchors partial_relief internal_min internal_max internal_skip "
    "temperature hairpin homodimer heterodimer hairpin_margin dimer_margin",
    defaults=(
        2,
        0,
        -11.0,
        10,
        (8, 10, 12),
        3.0,
        10,
        12,
        5,
        55.0,
        -3.0,
        -6.0,
        -6.0,
        3.0,
        4.0,
    ),
)
OffTargetSite = namedtuple(
    "OffTargetSite",
    "type subtype position risk dg mismatches anchor_length description",
    defaults=(None, None, None, ""),
)
OffTargetClassification = namedtuple(
    "OffTargetClassification", "status counts sites summary"
)
StructureAnalysis = namedtuple("StructureAnalysis", "hairpin_dg homodimer_dg sites")
HeterodimerAnalysis = namedtuple("HeterodimerAnalysis", "heterodimer_dg sites")

# Score penalty per structure site, by type and risk
STRUCTURE_PENALTIES = {
    ("E", "high"): 0.25,
    ("E", "medium"): 0.10,
    ("F", "high"): 0.30,
    ("F", "medium"): 0.15,
}


class Risk(Enum):
    """Off-target risk level."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def kmer_count_map(seq, k=config.OFF_TARGET_KMER):
    """
    Count k-mers in seq, plus every single-base mutant of each k-mer.

    A lookup therefore counts exact and one-mismatch occurrences.
    """
    counts = Counter()
    for i in range(len(seq) - k + 1):
        kmer = seq[i : i + k]
        counts[kmer] += 1
        for j, base in enumerate(kmer):
            for alt in BASES:
                if alt != base:
                    counts[kmer[:j] + alt + kmer[j + 1 :]] += 1
    return counts


def count_off_targets(kmer, counts):
    """Extra binding sites for a k-mer on both strands, less the intended one."""
    return max(0, counts[kmer] + counts[reverse_complement(kmer)] - 1)


def count_mismatches(seq1, seq2):
    return sum(1 for a, b in zip(seq1, seq2) if a != b)


def find_all(template, pattern):
    """All (overlapping) start positions of pattern in template."""
    positions = []
    pos = template.find(pattern)
    while pos != -1:
        positions.append(pos)
        pos = template.find(pattern, pos + 1)
    return positions


def intended_site(primer, template, forward=True):
    """Template (start, end) of a primer's intended site, or None."""
    anchor_len = min(config.OFF_TARGET_ANCHOR, len(primer))
    if forward:
        pos = template.find(primer[-anchor_len:])
        if pos == -1:
            return None
        return (max(0, pos + anchor_len - len(primer)), pos + anchor_len)
    pos = template.find(reverse_complement(primer[-anchor_len:]))
    if pos == -1:
        return None
    return (pos, pos + len(primer))


def _is_intended(pos, intended, window):
    return intended is not None and abs(pos - intended) < window


def find_type_a(primer, template, intended, thresholds):
    """Exact or near-exact alternative priming sites."""
    sites = []
    n = len(primer)
    if n < 10:
        return sites
    # The primer's 3' end pairs with the first base of its binding site
    for pos in find_all(template, reverse_complement(primer[-10:])):
        start, end = pos, pos + n
        if _is_intended(start, intended, 5) or end > len(template):
            continue
        partner = reverse_complement(template[start:end])
        mismatches = count_mismatches(primer, partner)
        if mismatches == 0:
            sites.append(
                OffTargetSite(
                    "A",
                    "exact",
                    start,
                    Risk.HIGH,
                    mismatches=0,
                    description="Exact match, alternative amplification site",
                )
            )
        elif mismatches <= thresholds.max_mismatches:
            terminal = count_mismatches(primer[-3:], partner[-3:])
            if terminal > thresholds.terminal_mismatches:
                continue
            dg = calc_duplex_dg(primer, template[start:end], thresholds.temperature)
            if dg < thresholds.stability:
                sites.append(
                    OffTargetSite(
                        "A",
                        "near_exact",
                        start,
                        Risk.HIGH,
                        dg=dg,
                        mismatches=mismatches,
                        description=(
                            f"Near-exact match ({mismatches} mismatches), "
                            "potential mispriming"
                        ),
                    )
                )
    return sites


def find_type_b(primer, template, intended, thresholds):
    """Antisense sites, where the primer's 3' anchor appears in the template."""
    sites = []
    anchor_len = thresholds.antisense_anchor
    if len(primer) < anchor_len:
        return sites
    for pos in find_all(template, primer[-anchor_len:]):
        end = pos + anchor_len
        start = max(0, end - len(primer))
        if _is_intended(start, intended, 5):
            continue
        target = reverse_complement(template[start:end])
        dg = calc_duplex_dg(primer[-(end - start) :], target, thresholds.temperature)
        if dg < thresholds.stability:
            sites.append(
                OffTargetSite(
                    "B",
                    "antisense",
                    start,
                    Risk.HIGH,
                    dg=dg,
                    description="Antisense binding, primer appears in template strand",
                )
            )
    return sites


def find_type_c(primer, template, intended, thresholds):
    """Partial 3' homology sites, keeping the longest anchor per site."""
    sites = {}
    for length in thresholds.partial_anchors:
        if length > len(primer):
            continue
        anchor = primer[-length:]
        rc_anchor = reverse_complement(anchor)
        dg = calc_duplex_dg(anchor, rc_anchor, thresholds.temperature)
        if dg >= thresholds.stability + thresholds.partial_relief:
            continue
        for pos in find_all(template, rc_anchor):
            if _is_intended(pos, intended, len(primer)):
                continue
            near = [p for p in sites if abs(p - pos) < 5]
            key = near[0] if near else pos
            sites[key] = OffTargetSite(
                "C",
                "partial_3prime",
                key,
                Risk.MEDIUM,
                dg=dg,
                anchor_length=length,
                description=f"Partial 3' homology ({length}bp), potential mispriming",
            )
    return [sites[p] for p in sorted(sites)]


def find_type_d(primer, template, intended, thresholds):
    """Internal homology away from the 3' end."""
    sites = []
    covered = []
    internal = primer[: -thresholds.internal_skip]
    longest = min(thresholds.internal_max, len(internal))
    for length in range(longest, thresholds.internal_min - 1, -1):
        for start in range(len(internal) - length + 1):
            region = reverse_complement(internal[start : start + length])
            for pos in find_all(template, region):
                if _is_intended(pos, intended, len(primer)):
                    continue
                if any(s <= pos < s + n for s, n in covered):
                    continue
                covered.append((pos, length))
                sites.append(
                    OffTargetSite(
                        "D",
                        "internal",
                        pos,
                        Risk.LOW,
                        anchor_length=length,
                        description="Internal homology, usually tolerable",
                    )
                )
    return sites


def _structure_site(type_, subtype, dg, threshold, margin, description):
    risk = Risk.HIGH if dg < threshold - margin else Risk.MEDIUM
    return OffTargetSite(
        type_,
        subtype,
        None,
        risk,
        dg=round(dg, 2),
        description=f"{description} (dG={dg:.1f} kcal/mol)",
    )


def find_type_e(primer, thresholds=OffTargetThresholds()):
    """Self-complementarity stable enough to compete with target binding."""
    hairpin_dg = calc_hairpin_dg(primer, thresholds.temperature)
    homodimer_dg = calc_homodimer_dg(primer, thresholds.temperature)
    sites = []
    if hairpin_dg < thresholds.hairpin:
        sites.append(
            _structure_site(
                "E",
                "hairpin",
                hairpin_dg,
                thresholds.hairpin,
                thresholds.hairpin_margin,
                "Stable hairpin",
            )
        )
    if homodimer_dg < thresholds.homodimer:
        sites.append(
            _structure_site(
                "E",
                "homodimer",
                homodimer_dg,
                thresholds.homodimer,
                thresholds.dimer_margin,
                "Stable homodimer",
            )
        )
    return StructureAnalysis(round(hairpin_dg, 2), round(homodimer_dg, 2), sites)


def find_type_f(fwd, rev, thresholds=OffTargetThresholds()):
    """Forward/reverse cross-dimer stable enough to compete with target binding."""
    dg = calc_heterodimer_dg(fwd, rev, thresholds.temperature)
    sites = []
    if dg < thresholds.heterodimer:
        sites.append(
            _structure_site(
                "F",
                "heterodimer",
                dg,
                thresholds.heterodimer,
                thresholds.dimer_margin,
                "Stable heterodimer",
            )
        )
    return HeterodimerAnalysis(round(dg, 2), sites)


def _summary(sites):
    """Human-readable summary of classified sites."""

    def plural(count, word, suffix="s"):
        return f"{count} {word}{suffix if count > 1 else ''}"

    parts = []
    exact = sum(1 for s in sites if s.subtype == "exact")
    near = sum(1 for s in sites if s.subtype == "near_exact")
    antisense = sum(1 for s in sites if s.type == "B")
    partial = sum(1 for s in sites if s.type == "C")
    internal = sum(1 for s in sites if s.type == "D")
    structures = sum(1 for s in sites if s.type in ("E", "F"))
    if exact:
        parts.append(f"{plural(exact, 'exact match', 'es')} (HIGH RISK)")
    if near:
        parts.append(f"{plural(near, 'near-exact match', 'es')} (HIGH RISK)")
    if antisense:
        parts.append(f"{plural(antisense, 'antisense binding site')} (HIGH RISK)")
    if partial:
        label = plural(partial, "partial 3' homology site")
        parts.append(f"{label} (MEDIUM RISK)")
    if internal:
        parts.append(f"{plural(internal, 'internal homology site')} (LOW RISK)")
    if structures:
        parts.append(f"{plural(structures, 'stable secondary structure')}")
    return "; ".join(parts) or "No significant off-target sites detected"


def classify_off_targets(
    primer, template, intended=None, thresholds=OffTargetThresholds()
):
    """
    Classify alternative binding sites of a primer on a template.

    `intended` is the template start of the primer's own site; hits there
    are not off-targets. None checks every hit.
    """
    sites = (
        find_type_a(primer, template, intended, thresholds)
        + find_type_b(primer, template, intended, thresholds)
        + find_type_c(primer, template, intended, thresholds)
        + find_type_d(primer, template, intended, thresholds)
    )
    counts = Counter(s.type for s in sites)
    counts.update(s.risk.value for s in sites)
    counts["total"] = len(sites)

    if counts[Risk.HIGH.value]:
        status = "critical"
    elif counts[Risk.MEDIUM.value]:
        status = "warning"
    else:
        status = "pass"

    logger.debug(f"Off-target classification {primer}: {status}, {dict(counts)}")
    return OffTargetClassification(status, counts, sites, _summary(sites))


def score_off_target_classification(classification):
    """Score (0-1) a classification, high risk sites dominate."""
    high = classification.counts[Risk.HIGH.value]
    if high >= 3:
        return 0.0
    if high == 2:
        return 0.1
    if high == 1:
        return 0.3
    medium = classification.counts[Risk.MEDIUM.value]
    low = classification.counts[Risk.LOW.value]
    return round(max(0.0, 1.0 - 0.15 * medium - 0.02 * low), 3)


def score_off_target_enhanced(classification, structure_sites=()):
    """Classification score less hairpin, homodimer and heterodimer penalties."""
    score = score_off_target_classification(classification)
    for site in structure_sites:
        score -= STRUCTURE_PENALTIES.get((site.type, site.risk.value), 0.0)
    return round(max(0.0, min(1.0, score)), 3)


def _start(site):
    return site[0] if site else None


def analyze_off_targets_pair(fwd, rev, template, thresholds=OffTargetThresholds()):
    """
    Classify off-targets for both primers; the pair takes the worse.

    Template sites (types A-D) come from each primer's classification.
    Self-structures (type E) and the cross-dimer (type F) lower the score
    and lift a passing pair to a warning when highly stable.
    """
    fwd_cls = classify_off_targets(
        fwd, template, _start(intended_site(fwd, template, True)), thresholds
    )
    rev_cls = classify_off_targets(
        rev, template, _start(intended_site(rev, template, False)), thresholds
    )
    type_e_fwd = find_type_e(fwd, thresholds)
    type_e_rev = find_type_e(rev, thresholds)
    type_f = find_type_f(fwd, rev, thresholds)
    structure_sites = type_e_fwd.sites + type_e_rev.sites + type_f.sites

    statuses = {fwd_cls.status, rev_cls.status}
    if "critical" in statuses:
        status = "critical"
    elif "warning" in statuses:
        status = "warning"
    else:
        status = "pass"
    if status == "pass" and any(s.risk == Risk.HIGH for s in structure_sites):
        status = "warning"

    combined = fwd_cls.counts + rev_cls.counts
    combined.update(s.type for s in structure_sites)
    combined.update(s.risk.value for s in structure_sites)
    combined["total"] = (
        fwd_cls.counts["total"] + rev_cls.counts["total"] + len(structure_sites)
    )

    return {
        "status": status,
        "fwd": fwd_cls,
        "rev": rev_cls,
        "type_e_fwd": type_e_fwd,
        "type_e_rev": type_e_rev,
        "type_f": type_f,
        "combined": combined,
        "summary": _summary(fwd_cls.sites + rev_cls.sites + structure_sites),
        "score": min(
            score_off_target_enhanced(fwd_cls, type_e_fwd.sites),
            score_off_target_enhanced(rev_cls, type_e_rev.sites + type_f.sites),
        ),
    }
