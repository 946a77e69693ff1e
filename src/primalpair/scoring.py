"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains the composite scoring engine: piecewise feature
curves (0-1), their weighted combination into a 0-100 score, and quality
tier classification.

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
import math
import re

from collections import namedtuple
from enum import Enum

from primalpair import config
from primalpair.offtarget import analyze_off_targets_pair
from primalpair.thermo import calc_max_homo, calc_terminal_dg

logger = logging.getLogger("primalpair")

G4_MOTIF = re.compile(r"G{3,}[ATGC]{1,7}G{3,}[ATGC]{1,7}G{3,}[ATGC]{1,7}G{3,}")
POLY_AT = re.compile(r"[AT]{4,}")

UNKNOWN_FEATURE = 0.8
OPTIONAL_PAIR_FEATURES = (
    "length_diff",
    "amplicon_length",
    "amplicon_structure",
    "distance_to_roi",
)

CompositeScore = namedtuple("CompositeScore", "score raw breakdown total_weight")
G4Analysis = namedtuple("G4Analysis", "score severity ggg_count message")
PairAnalysis = namedtuple(
    "PairAnalysis",
    "fwd_scores rev_scores pair_scores composite effective_score quality "
    "critical_warnings warnings g4_fwd g4_rev off_targets",
)


class QualityTier(Enum):
    """Quality tier, ordered by rank."""

    POOR = 0
    MARGINAL = 1
    ACCEPTABLE = 2
    GOOD = 3
    EXCELLENT = 4

    @property
    def rank(self):
        return self.value

    @property
    def label(self):
        return self.name.lower()

    def __lt__(self, other):
        return self.rank < other.rank


def piecewise_logistic(value, rng, steepness=0.5, floor=0.0):
    """
    Piecewise score: 1 in the optimal range, linear 1 to 0.7 across the
    acceptable band, logistic decay below 0.7 beyond it.
    """
    if rng.opt_low <= value <= rng.opt_high:
        return 1.0
    if value < rng.opt_low:
        if value >= rng.acc_low:
            return 0.7 + 0.3 * (value - rng.acc_low) / (rng.opt_low - rng.acc_low)
        excess = rng.acc_low - value
    else:
        if value <= rng.acc_high:
            return 0.7 + 0.3 * (rng.acc_high - value) / (rng.acc_high - rng.opt_high)
        excess = value - rng.acc_high
    return max(floor, 0.7 / (1 + math.exp(steepness * excess)))


def score_tm(tm, rng=config.DEFAULT_PRESET.tm):
    return piecewise_logistic(tm, rng, steepness=0.5)


def score_gc(gc, rng=config.DEFAULT_PRESET.gc):
    """Score GC content; fractions are converted to percent."""
    if gc <= 1:
        gc *= 100
    return piecewise_logistic(gc, rng, steepness=0.15)


def score_length(length, rng=config.DEFAULT_PRESET.length):
    return piecewise_logistic(length, rng, steepness=0.3)


def score_amplicon_length(length):
    return piecewise_logistic(length, config.Range(400, 800, 200, 1200), 0.005)


def score_distance_to_roi(distance):
    """Score the distance from a sequencing primer to the region of interest."""
    if distance < 0:
        return 0.0
    return piecewise_logistic(distance, config.Range(100, 500, 50, 700), 0.01)


def score_terminal_dg(dg, optimal=(-11.0, -6.0), loose_decay=0.3, tight_decay=0.15):
    """Score 3' terminal dG; too loose is penalised harder than too tight."""
    low, high = optimal
    if low <= dg <= high:
        return 1.0
    if dg > high:
        return math.exp(-loose_decay * (dg - high))
    return math.exp(-tight_decay * (low - dg))


def score_tm_diff(tm_fwd, tm_rev, free=3, mild=5, moderate=8, decay=0.2):
    diff = abs(tm_fwd - tm_rev)
    if diff <= free:
        return 1.0
    if diff <= mild:
        return 0.9 - 0.1 * (diff - free) / (mild - free)
    if diff <= moderate:
        return 0.7 - 0.2 * (diff - mild) / (moderate - mild)
    return 0.5 * math.exp(-decay * (diff - moderate))


def _score_structure(dg, threshold, steepness):
    if dg >= threshold:
        return 1.0
    return math.exp(-steepness * (threshold - dg))


def score_terminal_base(seq):
    """A 3' G or C anchors extension; A or T scores 0.7."""
    return 1.0 if seq[-1] in "GC" else 0.7


def score_length_diff(length_fwd, length_rev):
    """Pair length mismatch; up to 3 nt is free."""
    diff = abs(length_fwd - length_rev)
    return piecewise_logistic(diff, config.Range(0, 3, 0, 8), steepness=0.5)


def score_hairpin(dg, threshold=-3.0):
    return _score_structure(dg, threshold, 0.8)


def score_homodimer(dg, threshold=-6.0):
    return _score_structure(dg, threshold, 0.5)


def score_heterodimer(dg, threshold=-6.0):
    return _score_structure(dg, threshold, 0.5)


def score_off_target(count):
    """1 for none, 0.7 for one, 0.1 for two, disqualified at three."""
    if count == 0:
        return 1.0
    if count >= 3:
        return 0.0
    return max(0.0, 1 - 0.3 * 3 ** (count - 1))


def gc_count(seq):
    return seq.count("G") + seq.count("C")


def score_gc_clamp(seq):
    """One G/C in the last two bases is ideal."""
    count = gc_count(seq[-2:])
    if count == 1:
        return 1.0
    if count == 2:
        return 0.85
    return 0.5


def score_three_prime_composition(seq, terminal_dg=None):
    """Weighted GC clamp, terminal dG and 3' pattern score."""
    last5 = seq[-5:]
    clamp = score_gc_clamp(seq)

    dg_score = 1.0
    if terminal_dg is not None:
        if terminal_dg > -6:
            dg_score = max(0.2, 1.0 - (terminal_dg + 6) * 0.12)
        elif terminal_dg < -11:
            dg_score = max(0.5, 1.0 - (-11 - terminal_dg) * 0.05)

    pattern = 1.0
    if POLY_AT.search(last5):
        pattern -= 0.40
    if seq[-1] not in "GC":
        pattern -= 0.15
    if gc_count(last5) <= 1:
        pattern -= 0.15
    if "AAA" in last5 or "TTT" in last5:
        pattern -= 0.10
    pattern = max(0.0, pattern)

    score = clamp * 0.40 + dg_score * 0.35 + pattern * 0.25
    return max(0.0, min(1.0, round(score, 3)))


def score_homopolymer(seq, max_run=3, per_base=0.15):
    longest = calc_max_homo(seq)
    if longest <= max_run:
        return 1.0
    return max(0.3, 1 - (longest - max_run) * per_base)


def analyze_g_quadruplex(seq):
    """G-quadruplex risk analysis."""
    ggg_count = len(re.findall(r"GGG+", seq))
    if G4_MOTIF.search(seq):
        return G4Analysis(
            0.0, "critical", ggg_count, "G-Quadruplex motif, primer will likely fail"
        )
    if "GGGG" in seq:
        return G4Analysis(
            0.2, "warning", ggg_count, "GGGG run, may cause polymerase pausing"
        )
    if ggg_count >= 2:
        return G4Analysis(
            0.6, "caution", ggg_count, "Multiple GGG runs, potential inter-strand G4"
        )
    return G4Analysis(1.0, "ok", ggg_count, "No G-Quadruplex risk")


def score_g_quadruplex(seq):
    return analyze_g_quadruplex(seq).score


def score_amplicon_structure(seq, window=20, gc_threshold=70, run_threshold=5):
    """Penalise GC-rich windows, long runs and very high overall GC."""
    if len(seq) < window:
        return 1.0
    score = 1.0

    rich = sum(
        1
        for i in range(len(seq) - window + 1)
        if gc_count(seq[i : i + window]) / window * 100 >= gc_threshold
    )
    if rich:
        score -= min(0.4, rich * 0.1)

    longest = calc_max_homo(seq)
    if longest >= run_threshold:
        score -= min(0.3, (longest - run_threshold + 1) * 0.1)

    overall = gc_count(seq) / len(seq) * 100
    if overall > 65:
        score -= min(0.2, (overall - 65) * 0.01)

    return max(0.0, min(1.0, score))


def calculate_composite_score(features, weights=None):
    """Weighted mean of 0-1 features with a positive weight, scaled to 0-100."""
    weights = weights or config.DEFAULT_WEIGHTS
    total = total_weight = 0.0
    breakdown = {}
    for key, value in features.items():
        weight = weights.get(key, 0)
        if weight <= 0 or value is None:
            continue
        total += value * weight
        total_weight += weight
        breakdown[key] = {
            "score": round(value, 3),
            "weight": weight,
            "contribution": round(value * weight, 3),
        }
    raw = total / total_weight if total_weight else 0.0
    return CompositeScore(
        score=round(raw * 100),
        raw=round(raw, 3),
        breakdown=breakdown,
        total_weight=round(total_weight, 3),
    )


def classify_quality(score):
    """Quality tier for a 0-100 score."""
    for threshold, label in config.QUALITY_TIERS:
        if score >= threshold:
            return QualityTier[label.upper()]
    return QualityTier.POOR


def apply_weight_multipliers(weights, application="DEFAULT"):
    """Scale weight groups for an application, keeping the total weight."""
    multipliers = config.WEIGHT_MULTIPLIERS[application.upper()]
    if not multipliers:
        return dict(weights)
    scaled = dict(weights)
    for group, factor in multipliers.items():
        for key in config.WEIGHT_GROUPS[group]:
            if key in scaled:
                scaled[key] *= factor
    norm = sum(weights.values()) / sum(scaled.values())
    return {key: value * norm for key, value in scaled.items()}


def primer_scores(
    primer, preset=config.DEFAULT_PRESET, hairpin_dg=None, homodimer_dg=None
):
    """
    Piecewise feature scores for one primer.

    `primer` needs seq, tm, gc and off_target_count attributes. Structure
    features without a dG score a neutral 0.8.
    """
    seq = primer.seq
    terminal_dg = calc_terminal_dg(seq)
    off_target_count = getattr(primer, "off_target_count", None)
    return {
        "tm": score_tm(primer.tm, preset.tm),
        "gc": score_gc(primer.gc, preset.gc),
        "length": score_length(len(seq), preset.length),
        "terminal_3_dg": score_terminal_dg(terminal_dg),
        "gc_clamp": score_gc_clamp(seq),
        "homopolymer": score_homopolymer(seq),
        "hairpin": UNKNOWN_FEATURE
        if hairpin_dg is None
        else score_hairpin(hairpin_dg, preset.hairpin_threshold),
        "homodimer": UNKNOWN_FEATURE
        if homodimer_dg is None
        else score_homodimer(homodimer_dg, preset.homodimer_threshold),
        "off_target": UNKNOWN_FEATURE
        if off_target_count is None
        else score_off_target(off_target_count),
        "g_quadruplex": score_g_quadruplex(seq),
        "three_prime_comp": score_three_prime_composition(seq, terminal_dg),
        "terminal_base": score_terminal_base(seq),
    }


def single_features(scores):
    """Composite input for a single primer."""
    return {
        "tm_fwd": scores["tm"],
        "gc_fwd": scores["gc"],
        "length_fwd": scores["length"],
        "hairpin_fwd": scores["hairpin"],
        "self_dimer_fwd": scores["homodimer"],
        "terminal_3_dg": scores["terminal_3_dg"],
        "gc_clamp_fwd": scores["gc_clamp"],
        "three_prime_comp_fwd": scores["three_prime_comp"],
        "off_target": scores["off_target"],
        "g_quadruplex_fwd": scores["g_quadruplex"],
        "homopolymer_fwd": scores["homopolymer"],
        "terminal_base_fwd": scores["terminal_base"],
    }


def pair_features(fwd, rev, pair=None):
    """Composite input for a pair; terminal dG and off-target take the worse."""
    pair = pair or {}
    features = {
        "tm_fwd": fwd["tm"],
        "tm_rev": rev["tm"],
        "gc_fwd": fwd["gc"],
        "gc_rev": rev["gc"],
        "length_fwd": fwd["length"],
        "length_rev": rev["length"],
        "hairpin_fwd": fwd["hairpin"],
        "hairpin_rev": rev["hairpin"],
        "self_dimer_fwd": fwd["homodimer"],
        "self_dimer_rev": rev["homodimer"],
        "heterodimer": pair.get("heterodimer", UNKNOWN_FEATURE),
        "tm_diff": pair.get("tm_diff", 1.0),
        "terminal_3_dg": min(fwd["terminal_3_dg"], rev["terminal_3_dg"]),
        "gc_clamp_fwd": fwd["gc_clamp"],
        "gc_clamp_rev": rev["gc_clamp"],
        "three_prime_comp_fwd": fwd["three_prime_comp"],
        "three_prime_comp_rev": rev["three_prime_comp"],
        "off_target": min(fwd["off_target"], rev["off_target"]),
        "g_quadruplex_fwd": fwd["g_quadruplex"],
        "g_quadruplex_rev": rev["g_quadruplex"],
        "homopolymer_fwd": fwd["homopolymer"],
        "homopolymer_rev": rev["homopolymer"],
        "terminal_base_fwd": fwd["terminal_base"],
        "terminal_base_rev": rev["terminal_base"],
    }
    for key in OPTIONAL_PAIR_FEATURES:
        if key in pair:
            features[key] = pair[key]
    return features


def critical_warnings(
    fwd_seq, rev_seq=None, tm_diff=None, preset=config.DEFAULT_PRESET
):
    """Warnings severe enough to cost 20 points each of effective score."""
    warnings = []
    limit = preset.length.opt_high + config.CRITICAL_LENGTH_EXCESS
    for name, seq in (("Forward", fwd_seq), ("Reverse", rev_seq)):
        if not seq:
            continue
        if len(seq) > limit:
            warnings.append(
                f"CRITICAL {name}: Primer extremely long ({len(seq)}bp, optimal: "
                f"{preset.length.opt_low}-{preset.length.opt_high}bp)"
            )
        homo = calc_max_homo(seq)
        if homo >= config.CRITICAL_HOMOPOLYMER:
            warnings.append(
                f"CRITICAL {name}: Severe homopolymer run ({homo} identical bases)"
            )
    if tm_diff is not None and tm_diff > config.CRITICAL_TM_DIFF:
        warnings.append(f"CRITICAL Tm difference: {tm_diff:.1f}C")
    return warnings


def effective_score(score, critical_count):
    return max(0, score - config.CRITICAL_WARNING_PENALTY * critical_count)


def analyze_primer_pair(
    fwd,
    rev=None,
    preset=config.DEFAULT_PRESET,
    weights=None,
    application="DEFAULT",
    hairpin_fwd=None,
    hairpin_rev=None,
    homodimer_fwd=None,
    homodimer_rev=None,
    heterodimer=None,
    amplicon_length=None,
    amplicon_seq=None,
    template=None,
    distance_to_roi=None,
):
    """
    Full analysis of a primer or primer pair.

    Returns feature scores, the composite, the effective score after
    critical warning penalties, its tier, and human-readable warnings.
    """
    weights = apply_weight_multipliers(weights or preset.weights, application)
    warnings = []

    fwd_scores = primer_scores(fwd, preset, hairpin_fwd, homodimer_fwd)
    g4_fwd = analyze_g_quadruplex(fwd.seq)
    if g4_fwd.severity in ("critical", "warning"):
        warnings.append(f"Forward: {g4_fwd.message}")
    if fwd_scores["terminal_3_dg"] < 0.5:
        warnings.append("Forward: Weak 3' terminal binding")

    if rev is None:
        composite = calculate_composite_score(single_features(fwd_scores), weights)
        criticals = critical_warnings(fwd.seq, preset=preset)
        effective = effective_score(composite.score, len(criticals))
        return PairAnalysis(
            fwd_scores,
            None,
            None,
            composite,
            effective,
            classify_quality(effective),
            criticals,
            warnings + criticals,
            g4_fwd,
            None,
            None,
        )

    rev_scores = primer_scores(rev, preset, hairpin_rev, homodimer_rev)
    g4_rev = analyze_g_quadruplex(rev.seq)
    if g4_rev.severity in ("critical", "warning"):
        warnings.append(f"Reverse: {g4_rev.message}")
    if rev_scores["terminal_3_dg"] < 0.5:
        warnings.append("Reverse: Weak 3' terminal binding")

    tm_diff = abs(fwd.tm - rev.tm)
    if config.WARN_TM_DIFF < tm_diff <= config.CRITICAL_TM_DIFF:
        warnings.append(
            f"Tm difference: {tm_diff:.1f}C (>5C may cause unequal amplification)"
        )

    pair_scores = {
        "tm_diff": score_tm_diff(fwd.tm, rev.tm),
        "heterodimer": UNKNOWN_FEATURE
        if heterodimer is None
        else score_heterodimer(heterodimer, preset.heterodimer_threshold),
        "length_diff": score_length_diff(len(fwd.seq), len(rev.seq)),
    }
    if distance_to_roi is not None:
        pair_scores["distance_to_roi"] = score_distance_to_roi(distance_to_roi)
    if amplicon_length is not None:
        pair_scores["amplicon_length"] = score_amplicon_length(amplicon_length)
    if amplicon_seq:
        pair_scores["amplicon_structure"] = score_amplicon_structure(amplicon_seq)

    off_targets = None
    if template:
        off_targets = analyze_off_targets_pair(fwd.seq, rev.seq, template)
        if off_targets["status"] == "critical":
            warnings.append("High risk off-target binding sites detected")

    composite = calculate_composite_score(
        pair_features(fwd_scores, rev_scores, pair_scores), weights
    )
    criticals = critical_warnings(fwd.seq, rev.seq, tm_diff, preset)
    effective = effective_score(composite.score, len(criticals))

    logger.debug(
        f"Pair {fwd.seq}/{rev.seq}: composite {composite.score}, "
        f"effective {effective}, {len(criticals)} critical"
    )

    return PairAnalysis(
        fwd_scores,
        rev_scores,
        pair_scores,
        composite,
        effective,
        classify_quality(effective),
        criticals,
        warnings + criticals,
        g4_fwd,
        g4_rev,
        off_targets,
    )
