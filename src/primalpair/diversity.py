"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains diversity-aware and Pareto selection of candidates,
plus the strength labels attached to alternatives.

Selection works on any candidate type: callers pass a `score` callable
and a `features` callable returning (position, length, tm).

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

from collections import namedtuple

from primalpair import config

logger = logging.getLogger("primalpair")

Selection = namedtuple("Selection", "candidate reason")
Label = namedtuple("Label", "key text")

LABELS = {
    "best_overall": "Best",
    "best_tm_match": "Tm",
    "safest_dimer": "Safe",
    "shortest_amplicon": "Short",
    "compact": "Compact",
    "specific": "Specific",
}
EXPLANATIONS = {
    "best_overall": "Top composite score across all metrics",
    "best_tm_match": "Most consistent annealing temperature",
    "safest_dimer": "Lowest risk of primer-primer binding",
    "shortest_amplicon": "Faster PCR cycles, easier gel analysis",
    "compact": "Shortest primers, lower synthesis cost",
    "specific": "Longest primers, maximum specificity",
}


def primer_features(primer):
    return (primer.start, primer.length, primer.tm)


def pair_features(pair):
    """Pairs are placed by forward start, total length and mean Tm."""
    return (
        pair.fwd.start,
        pair.fwd.length + pair.rev.length,
        (pair.fwd.tm + pair.rev.tm) / 2,
    )


def calculate_distance(a, b, ranges=config.DiversityRanges()):
    """Normalised Euclidean distance between two feature tuples, capped at 1."""
    deltas = (
        abs(a[0] - b[0]) / ranges.position,
        abs(a[1] - b[1]) / ranges.length,
        abs(a[2] - b[2]) / ranges.tm,
    )
    distance = math.sqrt(sum(d * d for d in deltas))
    return min(1.0, distance / math.sqrt(3))


def select_diverse(
    candidates,
    n,
    score,
    features=primer_features,
    min_score=None,
    ranges=config.DiversityRanges(),
):
    """
    Select n candidates balancing quality against diversity.

    The first pick is the best score. Each later pick maximises the
    geometric mean of its quality, rescaled into [0.1, 1] over the viable
    pool, and its distance to the nearest pick so far.
    """
    if not candidates:
        return []

    ranked = sorted(candidates, key=score, reverse=True)
    viable = ranked
    if min_score is not None:
        viable = [c for c in ranked if score(c) >= min_score]
    if not viable:
        return ranked[:n]
    if len(viable) <= n:
        return viable

    best, worst = score(viable[0]), score(viable[-1])
    spread = (best - worst) or 1
    points = [features(c) for c in viable]

    selected = [0]
    remaining = list(range(1, len(viable)))
    # Nearest-pick distance, updated as picks are added
    nearest = {i: calculate_distance(points[i], points[0], ranges) for i in remaining}

    while len(selected) < n and remaining:
        best_index, best_value = remaining[0], -1.0
        for i in remaining:
            quality = 0.1 + 0.9 * (score(viable[i]) - worst) / spread
            value = math.sqrt(quality * (nearest[i] + 0.01))
            if value > best_value:
                best_index, best_value = i, value
        selected.append(best_index)
        remaining.remove(best_index)
        for i in remaining:
            nearest[i] = min(
                nearest[i], calculate_distance(points[i], points[best_index], ranges)
            )

    return [viable[i] for i in selected]


def dominates(a, b):
    """True if objective vector a is >= b everywhere and > b somewhere."""
    return all(x >= y for x, y in zip(a, b)) and any(x > y for x, y in zip(a, b))


def select_pareto_optimal(candidates, objectives):
    """Candidates not dominated by any other; objectives are higher-is-better."""
    values = [tuple(obj(c) for obj in objectives) for c in candidates]
    front = []
    for i, candidate in enumerate(candidates):
        others = values[:i] + values[i + 1 :]
        if not any(dominates(other, values[i]) for other in others):
            front.append(candidate)
    return front


def select_hybrid(
    candidates,
    n,
    score,
    features=pair_features,
    objectives=None,
    num_by_score=None,
    ranges=config.DiversityRanges(),
):
    """
    Top candidates by score followed by diverse picks from the rest.

    Returns a list of Selection(candidate, reason).
    """
    if not candidates:
        return []
    ranked = sorted(candidates, key=score, reverse=True)
    if len(ranked) <= n:
        return [
            Selection(c, "best_overall" if i == 0 else "included")
            for i, c in enumerate(ranked)
        ]

    num_by_score = math.ceil(n / 2) if num_by_score is None else num_by_score
    selected = [
        Selection(c, "best_overall" if i == 0 else "top_by_score")
        for i, c in enumerate(ranked[:num_by_score])
    ]

    rest = ranked[num_by_score:]
    slots = n - len(selected)
    if slots > 0 and rest:
        if objectives:
            front = select_pareto_optimal(rest, objectives)
            reason = "pareto_optimal"
        else:
            front = rest
            reason = "diverse"
        picks = select_diverse(front, slots, score, features, ranges=ranges)
        selected.extend(Selection(c, reason) for c in picks)
        logger.debug(
            f"Hybrid selection: {num_by_score} by score, {len(picks)} {reason} "
            f"from {len(front)}"
        )

    return selected


def _unique_best(value, values, gap, tolerance=0.0, lowest=False):
    """
    True if value is uniquely the best of values by at least gap.

    `tolerance` widens the tie band around the best value.
    """
    if lowest:
        value, values = -value, [-v for v in values]
    best = max(values)
    if value < best - tolerance:
        return False
    at_best = [v for v in values if v >= best - tolerance]
    others = [v for v in values if v < best - tolerance]
    if len(at_best) != 1:
        return False
    return not others or best - max(others) >= gap


def identify_strengths(candidate, pool):
    """
    The distinguishing strength of a pair within a pool, or an empty list.

    A strength is only assigned when the pair is uniquely and significantly
    the best on it. Checks stop at the first strength found.
    """
    if not pool:
        return []

    primer_len = candidate.fwd.length + candidate.rev.length
    primer_lens = [c.fwd.length + c.rev.length for c in pool]
    amplicons = [c.amplicon_length for c in pool if c.amplicon_length]

    if _unique_best(candidate.score, [c.score for c in pool], gap=1):
        return ["best_overall"]
    if _unique_best(
        candidate.tm_diff,
        [c.tm_diff for c in pool],
        gap=0.3,
        tolerance=0.05,
        lowest=True,
    ):
        return ["best_tm_match"]
    if _unique_best(
        candidate.heterodimer_dg,
        [c.heterodimer_dg for c in pool],
        gap=0.5,
        tolerance=0.1,
    ):
        return ["safest_dimer"]
    if (
        candidate.amplicon_length
        and amplicons
        and _unique_best(candidate.amplicon_length, amplicons, gap=5, lowest=True)
    ):
        return ["shortest_amplicon"]
    if _unique_best(primer_len, primer_lens, gap=0, lowest=True):
        return ["compact"]
    if _unique_best(primer_len, primer_lens, gap=0):
        return ["specific"]
    return []


def generate_label(strengths):
    """Short label for the first recognised strength, or None."""
    for key, text in LABELS.items():
        if key in strengths:
            return Label(key, text)
    return None


def generate_explanation(strengths):
    """One-line practical benefit of a strength, or None."""
    for key, text in EXPLANATIONS.items():
        if key in strengths:
            return text
    return None


def identify_badges(pair):
    """Non-exclusive quality badges for a pair."""
    fwd, rev = pair.fwd, pair.rev
    badges = []
    if fwd.seq[-1] in "GC" and rev.seq[-1] in "GC":
        badges.append("gc_clamp")
    if pair.tm_diff <= 1.0:
        badges.append("low_tm_diff")
    if pair.heterodimer_dg > -6:
        badges.append("safe_dimer")
    if all(18 <= p.length <= 24 for p in (fwd, rev)):
        badges.append("optimal_length")
    if all(-11 <= p.terminal_dg <= -6 for p in (fwd, rev)):
        badges.append("stable_3prime")
    return badges
