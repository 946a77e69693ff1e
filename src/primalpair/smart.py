"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains smart design: post-hoc length nudging of a chosen
pair to improve 3' end composition without losing score or Tm matching.

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
import re

from collections import namedtuple

from primalpair import config
from primalpair.scoring import G4_MOTIF, gc_count
from primalpair.thermo import calc_hairpin_dg, calc_terminal_dg

logger = logging.getLogger("primalpair")

LengthVariant = namedtuple("LengthVariant", "seq length delta analysis priority")
OptimizedPrimer = namedtuple(
    "OptimizedPrimer", "seq length delta optimized reason analysis original_analysis"
)
SmartDesignReport = namedtuple(
    "SmartDesignReport",
    "optimized reason original_score score improvements fwd_analysis rev_analysis "
    "alternative",
    defaults=((), None, None, None),
)


class ThreePrimeAnalysis(
    namedtuple(
        "ThreePrimeAnalysis",
        "seq gc_last2 gc_last3 gc_last5 terminal_dg ends_with_gc poly_a poly_t "
        "poly_at quality issues",
    )
):
    """3' end composition of a primer."""

    __slots__ = ()

    @property
    def has_gc_clamp(self):
        return self.gc_last2 >= 1

    @property
    def needs_work(self):
        return self.quality in ("poor", "marginal") or self.gc_last2 == 0

    @property
    def can_improve(self):
        return self.quality != "excellent" and bool(self.issues)


def analyze_three_prime_end(seq):
    """Classify the 3' end: GC clamp, A/T runs and terminal dG."""
    seq = seq.upper()
    last5 = seq[-5:]
    gc_last2 = gc_count(seq[-2:])
    gc_last5 = gc_count(last5)
    poly_at = bool(re.search(r"[AT]{4,}", last5))
    terminal_dg = calc_terminal_dg(seq)

    quality = "excellent"
    issues = []
    if gc_last2 == 0:
        quality = "poor"
        issues.append("No GC clamp (0 G/C in last 2 bases)")
    elif gc_last2 == 2 and not poly_at:
        quality = "good"

    if poly_at:
        quality = "acceptable" if quality == "excellent" else "poor"
        issues.append("Poly-A/T run in 3' end")

    if terminal_dg > -6:
        quality = "poor"
        issues.append(f"3' terminal dG too weak: {terminal_dg:.1f} kcal/mol")
    elif terminal_dg < -14:
        if quality == "excellent":
            quality = "acceptable"
        issues.append(f"3' terminal dG very strong: {terminal_dg:.1f} kcal/mol")

    if gc_last5 <= 1 and quality != "poor":
        quality = "acceptable"
        issues.append("AT-rich 3' end (<=1 G/C in last 5 bases)")

    return ThreePrimeAnalysis(
        seq=seq,
        gc_last2=gc_last2,
        gc_last3=gc_count(seq[-3:]),
        gc_last5=gc_last5,
        terminal_dg=round(terminal_dg, 2),
        ends_with_gc=seq[-1:] in ("G", "C"),
        poly_a="AAA" in last5,
        poly_t="TTT" in last5,
        poly_at=poly_at,
        quality=quality,
        issues=tuple(issues),
    )


def variant_priority(analysis, delta, limits=config.SmartDesignLimits()):
    """Rank a length variant; the clamp dominates, then terminal dG."""
    priority = {1: 100, 2: 80}.get(analysis.gc_last2, -50)
    if analysis.ends_with_gc:
        priority += 30

    low, high = limits.terminal_dg_optimal
    acc_low, acc_high = limits.terminal_dg_acceptable
    if low <= analysis.terminal_dg <= high:
        priority += 50
    elif acc_low <= analysis.terminal_dg <= acc_high:
        priority += 20
    else:
        priority -= 30

    if analysis.poly_at:
        priority -= 40
    priority -= abs(delta) * 5
    if 18 <= len(analysis.seq) <= 24:
        priority += 15
    return priority


def length_variants(
    window,
    start,
    length,
    min_len=config.LEN_MIN,
    max_len=config.LEN_MAX,
    limits=config.SmartDesignLimits(),
):
    """Extended and contracted variants of window[start:start+length], best first."""
    variants = []
    shortest = max(min_len, length - limits.contract_max)
    longest = min(max_len, length + limits.extend_max)
    for n in range(shortest, longest + 1):
        if start + n > len(window):
            continue
        seq = window[start : start + n]
        analysis = analyze_three_prime_end(seq)
        delta = n - length
        variants.append(
            LengthVariant(seq, n, delta, analysis, variant_priority(analysis, delta))
        )
    variants.sort(key=lambda v: v.priority, reverse=True)
    return variants


def optimize_primer(
    window,
    start,
    length,
    min_len=config.LEN_MIN,
    max_len=config.LEN_MAX,
    limits=config.SmartDesignLimits(),
):
    """Pick the length variant with the best 3' end, if it beats the current one."""
    current = window[start : start + length]
    analysis = analyze_three_prime_end(current)

    def unchanged(reason):
        return OptimizedPrimer(current, length, 0, False, reason, analysis, analysis)

    if analysis.quality == "excellent":
        return unchanged("Already optimal")

    variants = length_variants(window, start, length, min_len, max_len, limits)
    viable = [
        v
        for v in variants
        if v.analysis.gc_last2 > 0
        and limits.terminal_dg_min <= v.analysis.terminal_dg <= limits.terminal_dg_max
    ]
    candidates = viable or variants
    if not candidates:
        return unchanged("No better variants found")

    best = candidates[0]
    if best.priority <= variant_priority(analysis, 0, limits):
        return unchanged("Current primer is already best option")

    improvements = []
    if best.analysis.gc_last2 > analysis.gc_last2:
        improvements.append(
            f"GC clamp improved ({analysis.gc_last2} -> {best.analysis.gc_last2})"
        )
    if best.analysis.quality != analysis.quality:
        improvements.append(
            f"Quality improved ({analysis.quality} -> {best.analysis.quality})"
        )
    if best.delta:
        direction = "extended" if best.delta > 0 else "contracted"
        improvements.append(f"Length {direction} by {abs(best.delta)}bp")

    return OptimizedPrimer(
        best.seq,
        best.length,
        best.delta,
        True,
        "; ".join(improvements) or "Improved 3' end composition",
        best.analysis,
        analysis,
    )


def _hairpin_worsened(before, after, limits):
    return after < before - limits.max_hairpin_worsening or (
        after < limits.hairpin_floor <= before
    )


def apply_smart_design(
    fwd,
    rev,
    fwd_window,
    rev_window,
    rebuild,
    rescore,
    target_score=config.SMART_DESIGN_TARGET,
    max_len=config.LEN_MAX,
    temperature=55.0,
    limits=config.SmartDesignLimits(),
):
    """
    Nudge primer lengths to improve 3' ends of a scored pair.

    `rebuild(seq, strand, start)` returns an unscored primer and
    `rescore(fwd, rev)` returns the pair with scoring attached. Changes are
    rejected if they create a G4 motif or a much worse hairpin, and reverted
    if the composite drops or the Tm difference worsens too much.

    Returns (fwd, rev, SmartDesignReport).
    """
    score = fwd.scoring.composite
    fwd_analysis = analyze_three_prime_end(fwd.seq)
    rev_analysis = analyze_three_prime_end(rev.seq)

    def unchanged(reason, alternative=None):
        report = SmartDesignReport(
            False, reason, score, score, (), fwd_analysis, rev_analysis, alternative
        )
        return fwd, rev, report

    if score >= target_score and not (
        fwd_analysis.needs_work or rev_analysis.needs_work
    ):
        logger.debug(f"Smart design: score {score} meets target {target_score}")
        return unchanged("Already meets target score with good 3' ends")

    new_fwd, new_rev = fwd, rev
    improvements = []
    for label, primer, window, analysis in (
        ("FWD", fwd, fwd_window, fwd_analysis),
        ("REV", rev, rev_window, rev_analysis),
    ):
        if analysis.quality == "excellent" and analysis.gc_last2:
            continue
        result = optimize_primer(
            window, primer.start, primer.length, max_len=max_len, limits=limits
        )
        if not result.optimized or result.seq == primer.seq:
            continue
        rebuilt = rebuild(result.seq, primer.strand, primer.start)
        improvements.append(f"{label}: {result.reason}")
        if label == "FWD":
            new_fwd = rebuilt
        else:
            new_rev = rebuilt

    if not improvements:
        return unchanged("No optimizations applied")

    for old, new in ((fwd, new_fwd), (rev, new_rev)):
        if G4_MOTIF.search(new.seq) and not G4_MOTIF.search(old.seq):
            logger.debug("Smart design: rejected, created a G-quadruplex motif")
            return unchanged("Rejected - G-quadruplex motif")
        before = calc_hairpin_dg(old.seq, temperature)
        after = calc_hairpin_dg(new.seq, temperature)
        if _hairpin_worsened(before, after, limits):
            logger.debug(f"Smart design: rejected, hairpin {before} -> {after}")
            return unchanged("Rejected - hairpin worsened")

    new_fwd, new_rev = rescore(new_fwd, new_rev)
    new_score = new_fwd.scoring.composite
    tm_diff = abs(fwd.tm - rev.tm)
    new_tm_diff = abs(new_fwd.tm - new_rev.tm)
    score_dropped = new_score < score
    tm_worsened = new_tm_diff > tm_diff + limits.max_tm_diff_worsening

    if score_dropped or tm_worsened:
        reason = "Score drop" if score_dropped else "Tm matching priority"
        logger.debug(
            f"Smart design: reverted ({reason}), score {score} -> {new_score}, "
            f"Tm diff {tm_diff:.1f} -> {new_tm_diff:.1f}"
        )
        return unchanged(f"Reverted - {reason}", alternative=(new_fwd, new_rev))

    logger.debug(f"Smart design: score {score} -> {new_score}, {improvements}")
    report = SmartDesignReport(
        True,
        "; ".join(improvements),
        score,
        new_score,
        tuple(improvements),
        analyze_three_prime_end(new_fwd.seq),
        analyze_three_prime_end(new_rev.seq),
    )
    return new_fwd, new_rev, report
