"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains the PairSearch class, the tiered search for the best
primer pair over a template, and its alternatives.

Tier 1 rejects candidates on absolute bounds, tier 2 scores a diverse
subset individually, tier 3 scores the cross product as pairs. A joint Tm
pass over all raw candidates adds pairs with well matched Tm that the
individual tiers would miss.

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
from operator import attrgetter

from primalpair import config
from primalpair.cache import CandidateCache
from primalpair.diversity import (
    generate_explanation,
    generate_label,
    identify_badges,
    identify_strengths,
    pair_features,
    primer_features,
    select_diverse,
    select_hybrid,
)
from primalpair.primer import (
    InvalidRangeError,
    InvalidSequenceError,
    PairCandidate,
    PrimerFactory,
    Strand,
    build_primer,
    resolve_thermo,
    score_pair,
    score_single,
    validate_dna,
)
from primalpair.smart import apply_smart_design
from primalpair.thermo import reverse_complement

logger = logging.getLogger("primalpair")

Design = namedtuple("Design", "fwd rev alternatives categories smart pair")
Alternative = namedtuple("Alternative", "pair reason label explanation badges")

STAGES = ["candidates", "tier 1", "tier 2", "tier 3", "joint Tm", "selection"]
CATEGORIES = [
    "highest_score",
    "shortest_primers",
    "longest_primers",
    "best_tm_match",
    "fewest_issues",
]


class NoSuitablePrimersError(Exception):
    """No candidate satisfied the hard constraints."""

    def __init__(self, message, direction=None):
        super().__init__(message)
        self.direction = direction


def parse_add_len(add, add_len):
    """
    Resolve the (min, max) number of 5' addition bases to include.

    Without an explicit range the whole addition is used, up to 40 bases.
    """
    if not add:
        return 0, 0

    add_min, add_max = add_len
    if add_min == -1 and add_max == -1:
        assumed = min(40, len(add))
        if assumed != len(add):
            logger.warning(
                f"{len(add)}bp additional sequence added without a length range, "
                f"adding between {assumed - 10} and {assumed}bp"
            )
            return assumed - 10, assumed
        return assumed, assumed

    if add_min < 0 <= add_max:
        return 0, min(len(add), add_max)
    if add_max < 0 <= add_min:
        return min(len(add), add_min), len(add)
    if add_min > add_max:
        raise InvalidRangeError(
            f"add_len range has a min > max: {add_min} > {add_max}"
        )
    return max(add_min, 0), min(add_max, len(add))


def js_round(value):
    """Round half up."""
    return math.floor(value + 0.5)


def tm_bin(tm):
    return js_round(tm / config.TM_BIN_WIDTH) * config.TM_BIN_WIDTH


def _zone_loss(value, rng, acceptable_loss, outside_loss):
    """Linear loss across the acceptable band, flat loss beyond it."""
    if rng.opt_low <= value <= rng.opt_high:
        return 0.0
    if value < rng.opt_low:
        if value < rng.acc_low:
            return outside_loss
        return acceptable_loss * (rng.opt_low - value) / (rng.opt_low - rng.acc_low)
    if value > rng.acc_high:
        return outside_loss
    return acceptable_loss * (value - rng.opt_high) / (rng.acc_high - rng.opt_high)


def quick_score(primer, preset=config.DEFAULT_PRESET):
    """
    Cheap 0-1 screening score using the preset's piecewise zones.

    Zero outside the hard Tm and GC bounds. Primers inside them never
    score below QUICK_SCORE_FLOOR.
    """
    tm_low, tm_high = config.TM_BOUNDS
    gc_low, gc_high = config.GC_BOUNDS
    if not (tm_low <= primer.tm <= tm_high and gc_low <= primer.gc <= gc_high):
        return 0.0

    score = 1.0
    score -= _zone_loss(primer.tm, preset.tm, 0.3, 0.5)
    score -= _zone_loss(primer.gc * 100, preset.gc, 0.2, 0.4)
    length = preset.length
    if not length.opt_low <= primer.length <= length.opt_high:
        in_band = length.acc_low <= primer.length <= length.acc_high
        score -= 0.1 if in_band else 0.3

    return max(min(score, 1.0), 0.0) or config.QUICK_SCORE_FLOOR


def joint_penalty(fwd, rev):
    """Quadratic Tm mismatch with light length and hairpin tiebreakers."""
    penalty = 2.0 * abs(fwd.tm - rev.tm) ** 2
    penalty += 0.05 * (abs(fwd.length - 22) + abs(rev.length - 22))
    for primer in (fwd, rev):
        if primer.dg < -2:
            penalty += 0.5 * abs(primer.dg)
    return penalty


def tier_bucket(pair):
    """Search-order tier, 1 (best) to 4."""
    low_score = 0 < pair.score < 70
    if pair.tm_diff <= 2 and pair.worst_dg > -3 and not low_score:
        return 1
    if pair.tm_diff <= 5 and pair.worst_dg > -5:
        return 2
    if pair.tm_diff <= 8:
        return 3
    return 4


def count_issues(pair):
    """Count of practical problems, used to break score ties."""
    issues = 0
    for primer in (pair.fwd, pair.rev):
        piecewise = primer.scoring.piecewise or {}
        if primer.seq[-1] not in "GC":
            issues += 1
        if primer.dg < -3:
            issues += 1
        if primer.off_target_count:
            issues += 2
        if primer.tm > 68:
            issues += 1
        if piecewise.get("terminal_3_dg", 1) < 0.7:
            issues += 1
        if piecewise.get("homodimer", 1) < 0.5:
            issues += 1
        if piecewise.get("g_quadruplex", 1) < 0.5:
            issues += 1
    if pair.heterodimer_dg < -12:
        issues += 2
    elif pair.heterodimer_dg < -9:
        issues += 1
    return issues


def sort_pairs(pairs, by_score=True):
    """
    Sort pairs by score (higher) or penalty, then penalty, then seq.
    seq is necessary to maintain deterministic output.
    """
    pairs = sorted(pairs, key=attrgetter("key"))
    pairs.sort(key=attrgetter("penalty"))
    if by_score:
        pairs.sort(key=attrgetter("score"), reverse=True)
    return pairs


class PairSearch:
    """
    A search for the best primer pair amplifying a whole template.
    """

    def __init__(
        self,
        template,
        options=config.SearchOptions(),
        add_fwd="",
        add_rev="",
        add_fwd_len=(-1, -1),
        add_rev_len=(-1, -1),
        offtarget_check="",
        progress_tracker=None,
    ):
        """Init PairSearch."""
        self.options = options
        self.progress_tracker = progress_tracker
        self.template = validate_dna(template, "template")
        self.check = (
            validate_dna(offtarget_check, "offtarget_check")
            if offtarget_check
            else self.template
        )
        add_fwd = validate_dna(add_fwd, "add_fwd")
        add_rev = validate_dna(add_rev, "add_rev")

        self.add_fwd_min, self.add_fwd_max = parse_add_len(add_fwd, add_fwd_len)
        self.add_rev_min, self.add_rev_max = parse_add_len(add_rev, add_rev_len)
        self.max_len = config.LEN_MAX
        if options.allow_extended_primers:
            self.max_len = config.LEN_MAX_EXTENDED

        fwd_tail = add_fwd[len(add_fwd) - self.add_fwd_max :]
        rev_tail = reverse_complement(add_rev)[: self.add_rev_max]
        self.seq_full = fwd_tail + self.template + rev_tail
        if len(self.seq_full) < config.LEN_MAX:
            raise InvalidSequenceError(
                "Template sequence length is too short: "
                f"{len(self.seq_full)}bp < {config.LEN_MAX}bp"
            )

        self.thermo = resolve_thermo(options)
        self.factory = PrimerFactory(options.optimum, options.penalties)
        self.considered = 0
        self.fwd_cache = self.rev_cache = None
        self._pairs = {}

        self.fwd = None
        self.rev = None
        self.pair = None
        self.alternatives = []
        self.categories = {}
        self.smart = None

        logger.debug(str(self))

    def __str__(self):
        lines = [
            "PairSearch",
            f"Template length: {len(self.template)}",
            f"Fwd addition: {self.add_fwd_min} - {self.add_fwd_max}",
            f"Rev addition: {self.add_rev_min} - {self.add_rev_max}",
            f"Max length: {self.max_len}",
            f"Preset: {self.options.preset.name}",
            f"Exhaustive: {self.options.exhaustive_search}",
        ]
        return "\n".join(lines)

    @property
    def exhaustive(self):
        return self.options.exhaustive_search

    def quick_score(self, primer):
        return quick_score(primer, self.options.preset)

    def add_considered(self, num):
        """Increment number of considered primers; update progress tracker."""
        self.considered += num
        if self.progress_tracker:
            self.progress_tracker.considered = self.considered

    def _stage(self, name):
        logger.debug(f"Stage: {name}")
        if self.progress_tracker:
            self.progress_tracker.stage = name
            self.progress_tracker.goto(STAGES.index(name))

    def _strand_params(self, strand):
        """(window, add_min, add_max) for a strand."""
        if strand == Strand.FORWARD:
            return self.seq_full, self.add_fwd_min, self.add_fwd_max
        return reverse_complement(self.seq_full), self.add_rev_min, self.add_rev_max

    def generate_candidates(self, strand):
        """Build a primer for every start/end cell of the strand window."""
        seq, add_min, add_max = self._strand_params(strand)
        window = seq[: add_max + self.max_len]
        starts = range(0, add_max - add_min + 1)
        ends = [
            e
            for e in range(config.LEN_MIN - 1 + add_max, self.max_len + add_max)
            if e < len(window)
        ]
        cache = CandidateCache(window, self.check, self.thermo, starts, ends)
        factory = self.factory.with_optimal_length(
            js_round(self.options.optimum.length + (add_min + add_max) / 2)
        )

        candidates = []
        for s in starts:
            for e in ends:
                candidates.append(
                    factory.build(
                        window[s : e + 1],
                        cache.tm[add_max][e],
                        cache.tm[s][e],
                        cache.gc[s][e],
                        cache.dg[s][e],
                        strand,
                        off_target_count=cache.off_targets[e],
                        start=s,
                        terminal_dg=cache.terminal_dg[e],
                    )
                )

        if strand == Strand.FORWARD:
            self.fwd_cache = cache
        else:
            self.rev_cache = cache
        self.add_considered(len(candidates))
        logger.debug(f"{strand.name}: {len(candidates)} raw candidates")
        return candidates

    def quick_reject(self, candidates, strand):
        """Tier 1: hard bounds, ranked by quick score."""
        _, _, add_max = self._strand_params(strand)
        survivors = [
            p
            for p in candidates
            if config.LEN_MIN <= p.length <= self.max_len + add_max
            and self.quick_score(p) > 0
        ]
        if not survivors:
            direction = "FWD" if strand == Strand.FORWARD else "REV"
            raise NoSuitablePrimersError(
                f"Failed to create any primers in the {direction} direction",
                direction=direction,
            )
        survivors.sort(key=attrgetter("seq"))
        survivors.sort(key=self.quick_score, reverse=True)
        logger.debug(f"{strand.name}: tier 1 kept {len(survivors)}/{len(candidates)}")
        return survivors

    def score_individually(self, survivors):
        """Tier 2: a diverse top N, scored as single primers."""
        n = config.TOP_N_EXHAUSTIVE if self.exhaustive else config.TOP_N
        selected = select_diverse(
            survivors, n, score=self.quick_score, features=primer_features
        )
        return [
            score_single(
                p, self.options.preset, self.fwd_cache, self.options.application
            )
            for p in selected
        ]

    def amplicon(self, fwd, rev):
        """Template spanned by a pair, including any 5' additions."""
        return self.seq_full[fwd.start : len(self.seq_full) - rev.start]

    def score_pair(self, fwd, rev):
        """Fully score a pair, memoized by sequence."""
        key = (fwd.seq, rev.seq)
        if key in self._pairs:
            return self._pairs[key]

        fwd, rev = self.factory.build_pair(fwd, rev)
        template = self.amplicon(fwd, rev)
        fwd, rev = score_pair(
            fwd,
            rev,
            template,
            preset=self.options.preset,
            temperature=self.options.annealing_temperature,
            include_equilibrium=self.options.include_equilibrium,
            cache=self.fwd_cache,
            off_template=self.check,
            application=self.options.application,
        )
        pair = PairCandidate(
            fwd=fwd,
            rev=rev,
            score=fwd.scoring.composite,
            penalty=round(fwd.penalty + rev.penalty, 1),
            tm_diff=round(abs(fwd.tm - rev.tm), 2),
            heterodimer_dg=fwd.scoring.heterodimer_dg,
            amplicon_length=len(template),
        )
        self._pairs[key] = pair
        return pair

    def score_pairs(self, fwd_list, rev_list):
        """Tier 3: the cross product, with early rejects outside exhaustive mode."""
        combos = [(f, r) for f in fwd_list for r in rev_list]
        if not self.exhaustive:
            kept = [
                (f, r)
                for f, r in combos
                if abs(f.tm - r.tm) <= config.REJECT_TM_DIFF
                and self.fwd_cache.heterodimer(f.seq, r.seq)
                >= config.REJECT_HETERODIMER_DG
            ]
            logger.debug(f"Tier 3 early reject kept {len(kept)}/{len(combos)}")
            combos = kept or combos
        return [self.score_pair(f, r) for f, r in combos]

    def joint_tm_pairs(self, all_fwd, all_rev):
        """Pairs from Tm bins close enough to match, best by joint penalty."""
        per_bin = (
            config.CANDIDATES_PER_BIN_EXHAUSTIVE
            if self.exhaustive
            else config.CANDIDATES_PER_BIN
        )

        def bins(primers):
            grouped = {}
            for p in primers:
                grouped.setdefault(tm_bin(p.tm), []).append(p)
            for key in grouped:
                grouped[key].sort(key=attrgetter("seq"))
                grouped[key].sort(key=attrgetter("penalty"))
                grouped[key] = grouped[key][:per_bin]
            return grouped

        fwd_bins, rev_bins = bins(all_fwd), bins(all_rev)
        ranked = []
        for fwd_tm in sorted(fwd_bins):
            for rev_tm in sorted(rev_bins):
                if abs(fwd_tm - rev_tm) > config.TM_BIN_TOLERANCE:
                    continue
                for f in fwd_bins[fwd_tm]:
                    for r in rev_bins[rev_tm]:
                        if abs(f.tm - r.tm) > config.JOINT_MAX_TM_DIFF:
                            continue
                        ranked.append((joint_penalty(f, r), f.seq, r.seq, f, r))

        ranked.sort(key=lambda item: item[:3])
        if not self.exhaustive:
            ranked = ranked[: config.JOINT_TOP_K]
        logger.debug(
            f"Joint Tm: {len(fwd_bins)} fwd bins, {len(rev_bins)} rev bins, "
            f"scoring {len(ranked)} pairs"
        )
        return [self.score_pair(f, r) for _, _, _, f, r in ranked]

    def select_best(self, pool):
        """First non-empty tier wins, or the global best when exhaustive."""
        if self.exhaustive:
            ranked = sorted(pool, key=attrgetter("key"))
            ranked.sort(key=attrgetter("penalty"))
            ranked.sort(key=count_issues)
            ranked.sort(key=attrgetter("score"), reverse=True)
            logger.debug(
                f"Exhaustive: best of {len(pool)}, score {ranked[0].score}, "
                f"{count_issues(ranked[0])} issues"
            )
            return ranked[0]

        tiers = {1: [], 2: [], 3: [], 4: []}
        for pair in pool:
            tiers[tier_bucket(pair)].append(pair)
        logger.debug(
            "Tier buckets: " + ", ".join(f"t{t}={len(p)}" for t, p in tiers.items())
        )
        for num, pairs in tiers.items():
            if pairs:
                best = sort_pairs(pairs, by_score=self.options.use_composite_score)[0]
                logger.debug(f"Selected from tier {num}: {best}")
                return best

    def select_alternatives(self, pool, best):
        """Filter the pool and pick diverse, labelled alternatives."""
        seen = {best.key}
        filtered = []
        for pair in sort_pairs(pool):
            if pair.key in seen:
                continue
            seen.add(pair.key)
            if (
                pair.score < config.ALT_MIN_SCORE
                or max(pair.fwd.tm, pair.rev.tm) > config.ALT_MAX_TM
                or pair.tm_diff > config.ALT_MAX_TM_DIFF
                or pair.heterodimer_dg < config.ALT_MIN_HETERODIMER_DG
            ):
                continue
            filtered.append(pair)

        objectives = [
            attrgetter("score"),
            lambda c: -c.tm_diff,
            attrgetter("heterodimer_dg"),
            lambda c: -c.amplicon_length,
        ]
        selections = select_hybrid(
            filtered,
            config.MAX_ALTERNATIVES,
            score=attrgetter("score"),
            features=pair_features,
            objectives=objectives,
        )

        alternatives = []
        for selection in selections:
            strengths = identify_strengths(selection.candidate, filtered)
            alternatives.append(
                Alternative(
                    pair=selection.candidate,
                    reason=selection.reason,
                    label=generate_label(strengths),
                    explanation=generate_explanation(strengths),
                    badges=identify_badges(selection.candidate),
                )
            )
        logger.debug(f"{len(alternatives)} alternatives from {len(filtered)}")
        return alternatives, filtered

    def categorize(self, filtered, best):
        """Alternatives grouped by what they are best at, no pair repeated."""
        total_len = lambda c: c.fwd.length + c.rev.length  # noqa: E731
        orders = {
            "highest_score": lambda c: -c.score,
            "shortest_primers": lambda c: (total_len(c), -c.score),
            "longest_primers": lambda c: (-total_len(c), -c.score),
            "best_tm_match": lambda c: (round(c.tm_diff, 1), -c.score),
            "fewest_issues": lambda c: (count_issues(c), -c.score),
        }
        seen = {best.key}
        categories = {}
        for name in CATEGORIES:
            categories[name] = []
            for pair in sorted(filtered, key=orders[name]):
                if pair.key in seen:
                    continue
                seen.add(pair.key)
                categories[name].append(pair)
                if len(categories[name]) >= config.CATEGORY_SIZE:
                    break
        return categories

    def _smart_design(self, best):
        """Run smart design on the best pair, returning the (new) best pair."""
        strand_adds = {
            Strand.FORWARD: self.add_fwd_max,
            Strand.REVERSE: self.add_rev_max,
        }

        def rebuild(seq, strand, start):
            add = max(0, strand_adds[strand] - start)
            return build_primer(
                seq, add, strand, self.check, self.factory, self.thermo, start
            )

        def rescore(fwd, rev):
            pair = self.score_pair(fwd, rev)
            return pair.fwd, pair.rev

        fwd, rev, self.smart = apply_smart_design(
            best.fwd,
            best.rev,
            self.seq_full,
            reverse_complement(self.seq_full),
            rebuild,
            rescore,
            target_score=self.options.smart_design_target_score,
            max_len=self.max_len + max(strand_adds.values()),
            temperature=self.options.annealing_temperature,
        )
        if self.smart.optimized:
            return self.score_pair(fwd, rev)
        return best

    def design(self):
        """Run the tiered search; return a Design."""
        if self.progress_tracker:
            self.progress_tracker.end = len(STAGES)

        self._stage("candidates")
        all_fwd = self.generate_candidates(Strand.FORWARD)
        all_rev = self.generate_candidates(Strand.REVERSE)

        self._stage("tier 1")
        fwd_survivors = self.quick_reject(all_fwd, Strand.FORWARD)
        rev_survivors = self.quick_reject(all_rev, Strand.REVERSE)

        self._stage("tier 2")
        fwd_scored = self.score_individually(fwd_survivors)
        rev_scored = self.score_individually(rev_survivors)

        self._stage("tier 3")
        pool = {p.key: p for p in self.score_pairs(fwd_scored, rev_scored)}

        self._stage("joint Tm")
        for pair in self.joint_tm_pairs(all_fwd, all_rev):
            pool.setdefault(pair.key, pair)
        pool = list(pool.values())
        if not pool:
            raise NoSuitablePrimersError("Failed to create a pair of PCR primers")

        self._stage("selection")
        best = self.select_best(pool)
        if self.options.use_smart_design:
            best = self._smart_design(best)

        self.alternatives, filtered = self.select_alternatives(pool, best)
        if self.exhaustive:
            self.categories = self.categorize(filtered, best)

        self.pair, self.fwd, self.rev = best, best.fwd, best.rev
        logger.debug(f"Best pair: {best}, {len(pool)} pairs considered")

        if self.progress_tracker:
            self.progress_tracker.goto(self.progress_tracker.end)
            self.progress_tracker.finish()

        return Design(
            self.fwd, self.rev, self.alternatives, self.categories, self.smart, best
        )


def design_primers(
    template,
    options=config.SearchOptions(),
    add_fwd="",
    add_rev="",
    add_fwd_len=(-1, -1),
    add_rev_len=(-1, -1),
    offtarget_check="",
    progress_tracker=None,
):
    """Design the best primer pair amplifying a template."""
    search = PairSearch(
        template,
        options,
        add_fwd=add_fwd,
        add_rev=add_rev,
        add_fwd_len=add_fwd_len,
        add_rev_len=add_rev_len,
        offtarget_check=offtarget_check,
        progress_tracker=progress_tracker,
    )
    return search.design()
