"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains classes and functions related to primers: immutable
primer records, the penalty factory, and single and pair scoring.

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

from collections import namedtuple
from enum import Enum

from primalpair import config
from primalpair.cache import CandidateCache
from primalpair.equilibrium import calculate_equilibrium_efficiency, efficiency_to_score
from primalpair.scoring import analyze_primer_pair
from primalpair.thermo import calc_heterodimer_dg, calc_homodimer_dg, reverse_complement

logger = logging.getLogger("primalpair")

DNA_ALPHABET = set("ACGT")


class Strand(Enum):
    """Primer strand."""

    FORWARD = "+"
    REVERSE = "-"


Scoring = namedtuple(
    "Scoring",
    "penalty penalty_tm penalty_tm_diff penalty_gc penalty_length penalty_dg "
    "penalty_off_target efficiency efficiency_score losses piecewise composite "
    "effective_score critical_warnings quality warnings g_quadruplex heterodimer_dg",
    defaults=(
        0.0,  # penalty_off_target
        None,  # efficiency
        None,  # efficiency_score
        (),  # losses
        None,  # piecewise
        None,  # composite
        None,  # effective_score
        (),  # critical_warnings
        None,  # quality
        (),  # warnings
        None,  # g_quadruplex
        None,  # heterodimer_dg
    ),
)


class Primer(
    namedtuple(
        "Primer",
        "seq length tm tm_total gc dg terminal_dg strand off_target_count start "
        "scoring",
    )
):
    """
    A primer candidate.

    seq includes any 5' addition; tm covers the binding part only, tm_total
    the whole primer. Records are immutable, update with `with_scoring`.
    """

    __slots__ = ()

    def __str__(self):
        """Primer string representation."""
        return f"{self.strand.name}:{self.seq}:{self.start}"

    @property
    def penalty(self):
        return self.scoring.penalty

    @property
    def composite(self):
        return self.scoring.composite


class PairCandidate(
    namedtuple(
        "PairCandidate", "fwd rev score penalty tm_diff heterodimer_dg amplicon_length"
    )
):
    """A scored forward/reverse primer pair."""

    __slots__ = ()

    def __str__(self):
        return f"{self.fwd.seq}/{self.rev.seq}:{self.score}:{self.penalty}"

    @property
    def key(self):
        return (self.fwd.seq, self.rev.seq)

    @property
    def worst_dg(self):
        """The most stable hairpin of the pair."""
        return min(self.fwd.dg, self.rev.dg)


class InvalidSequenceError(ValueError):
    """Sequence contains invalid bases or is too short."""

    pass


class InvalidRangeError(ValueError):
    """A (min, max) range has min > max."""

    pass


class BindingSiteError(ValueError):
    """A primer's binding site could not be found on the template."""

    pass


def with_scoring(primer, **changes):
    """Return a copy of the primer with updated scoring fields."""
    return primer._replace(scoring=primer.scoring._replace(**changes))


def resolve_thermo(options):
    """Thermo options with the Tm method set, the preset's unless chosen."""
    if options.thermo.method:
        return options.thermo
    return options.thermo._replace(method=options.preset.tm_method)


def validate_dna(seq, name="sequence"):
    """Uppercase a sequence, raise on non-ACGT bases."""
    seq = seq.upper()
    invalid = set(seq) - DNA_ALPHABET
    if invalid:
        raise InvalidSequenceError(
            f"Invalid non-DNA bases found in {name}: {''.join(sorted(invalid))}"
        )
    return seq


class PrimerFactory:
    """Build primers with the additive penalty model."""

    def __init__(self, optimum=config.Optimum(), penalties=config.PenaltyWeights()):
        """Init PrimerFactory."""
        self.optimum = optimum
        self.penalties = penalties

    def build(
        self,
        seq,
        tm,
        tm_total,
        gc,
        dg,
        strand,
        off_target_count=0,
        start=0,
        terminal_dg=0.0,
    ):
        """Build a primer and its penalty components."""
        opt, pen = self.optimum, self.penalties
        dg = min(dg, 0.0)
        penalty_tm = round(abs(tm - opt.tm) * pen.tm, 1)
        penalty_gc = round(abs(gc - opt.gc) * pen.gc * 100, 1)
        penalty_length = round(abs(len(seq) - opt.length) * pen.length, 1)
        penalty_dg = round(abs(dg) * pen.dg, 1)
        penalty_off_target = round(off_target_count * pen.off_target, 1)
        penalty = round(
            penalty_tm + penalty_gc + penalty_length + penalty_dg + penalty_off_target,
            1,
        )
        return Primer(
            seq=seq,
            length=len(seq),
            tm=tm,
            tm_total=tm_total,
            gc=gc,
            dg=dg,
            terminal_dg=terminal_dg,
            strand=strand,
            off_target_count=off_target_count,
            start=start,
            scoring=Scoring(
                penalty=penalty,
                penalty_tm=penalty_tm,
                penalty_tm_diff=0.0,
                penalty_gc=penalty_gc,
                penalty_length=penalty_length,
                penalty_dg=penalty_dg,
                penalty_off_target=penalty_off_target,
            ),
        )

    def build_pair(self, fwd, rev):
        """Add the Tm difference penalty to both primers of a pair."""
        penalty_tm_diff = round(abs(fwd.tm - rev.tm) * self.penalties.tm_diff, 1)
        return tuple(
            with_scoring(
                p,
                penalty_tm_diff=penalty_tm_diff,
                penalty=round(p.scoring.penalty + penalty_tm_diff, 1),
            )
            for p in (fwd, rev)
        )

    def with_optimal_length(self, length):
        """A new factory with a different optimal length."""
        return PrimerFactory(self.optimum._replace(length=length), self.penalties)


def _homodimer(seq, cache):
    return cache.homodimer(seq) if cache else calc_homodimer_dg(seq)


def _heterodimer(seq1, seq2, cache):
    return cache.heterodimer(seq1, seq2) if cache else calc_heterodimer_dg(seq1, seq2)


def score_single(
    primer, preset=config.DEFAULT_PRESET, cache=None, application="DEFAULT"
):
    """Attach piecewise feature scores, composite and tier to one primer."""
    analysis = analyze_primer_pair(
        primer,
        preset=preset,
        application=application,
        hairpin_fwd=primer.dg,
        homodimer_fwd=_homodimer(primer.seq, cache),
    )
    return with_scoring(
        primer,
        piecewise=analysis.fwd_scores,
        composite=analysis.composite.score,
        effective_score=analysis.effective_score,
        quality=analysis.quality,
        critical_warnings=tuple(analysis.critical_warnings),
        warnings=tuple(analysis.warnings),
        g_quadruplex=analysis.g4_fwd.severity,
    )


def score_pair(
    fwd,
    rev,
    template="",
    preset=config.DEFAULT_PRESET,
    temperature=55.0,
    include_equilibrium=True,
    cache=None,
    off_template=None,
    classify_off_targets=False,
    application="DEFAULT",
):
    """
    Attach pair scoring to both primers.

    `template` runs from the forward primer's 5' end to the reverse
    complement of the reverse primer's 5' end. Without it only the
    heterodimer and Tm difference are scored at pair level.
    """
    heterodimer = _heterodimer(fwd.seq, rev.seq, cache)
    analysis = analyze_primer_pair(
        fwd,
        rev,
        preset=preset,
        application=application,
        hairpin_fwd=fwd.dg,
        hairpin_rev=rev.dg,
        homodimer_fwd=_homodimer(fwd.seq, cache),
        homodimer_rev=_homodimer(rev.seq, cache),
        heterodimer=heterodimer,
        amplicon_length=len(template) if template else None,
        amplicon_seq=template or None,
        template=(off_template or template) if classify_off_targets else None,
    )
    shared = dict(
        composite=analysis.composite.score,
        effective_score=analysis.effective_score,
        quality=analysis.quality,
        critical_warnings=tuple(analysis.critical_warnings),
        warnings=tuple(analysis.warnings),
        heterodimer_dg=heterodimer,
    )
    fwd = with_scoring(
        fwd,
        piecewise=analysis.fwd_scores,
        g_quadruplex=analysis.g4_fwd.severity,
        **shared,
    )
    rev = with_scoring(
        rev,
        piecewise=analysis.rev_scores,
        g_quadruplex=analysis.g4_rev.severity,
        **shared,
    )

    if include_equilibrium and template:
        result = calculate_equilibrium_efficiency(
            fwd.seq,
            rev.seq,
            template,
            config.EquilibriumOptions(temperature=temperature),
            off_template=off_template,
            cache=cache,
        )
        efficiency_score = round(efficiency_to_score(result.efficiency), 1)
        fwd = with_scoring(
            fwd,
            efficiency=result.efficiency,
            efficiency_score=efficiency_score,
            losses=result.losses_fwd,
        )
        rev = with_scoring(
            rev,
            efficiency=result.efficiency,
            efficiency_score=efficiency_score,
            losses=result.losses_rev,
        )

    return fwd, rev


def find_binding_sites(fwd, rev="", seq=""):
    """
    Locate primer binding sites on a (possibly circular) template.

    Returns (add_fwd, amplicon, add_rev): the lengths of 5' additions that
    do not bind, and the template between the binding sites.
    """
    if not seq:
        return 0, "", 0

    n = len(seq)
    seq = seq * 3
    anchor = config.OFF_TARGET_KMER

    pos = seq.find(fwd[-anchor:], n)
    if pos == -1:
        raise BindingSiteError("Failed to find `fwd` binding site in `seq`")
    i = len(fwd) - anchor
    while i > 0 and seq[pos - 1] == fwd[i - 1]:
        pos -= 1
        i -= 1
    add_fwd = i
    seq = seq[pos:]

    if not rev:
        return add_fwd, seq[:n], 0

    rc = reverse_complement(rev)
    end = seq.find(rc[:anchor])
    if end == -1:
        raise BindingSiteError("Failed to find `rev` binding site in `seq`")
    j = anchor
    while j < len(rc) and end + j < len(seq) and seq[end + j] == rc[j]:
        j += 1
    add_rev = len(rc) - j
    return add_fwd, seq[: end + j], add_rev


def build_primer(seq, add, strand, check, factory, thermo, start=0):
    """Build a primer from its own sequence via a single-row cache."""
    last = len(seq) - 1
    cache = CandidateCache(seq, check, thermo, starts=[0], ends=[last])
    return factory.build(
        seq,
        cache.tm[add][last],
        cache.tm[0][last],
        cache.gc[0][last],
        cache.dg[0][last],
        strand,
        off_target_count=cache.off_targets[last],
        start=start,
        terminal_dg=cache.terminal_dg[last],
    )


def score(fwd, rev="", seq="", offtarget_check="", options=config.SearchOptions()):
    """
    Score existing primers, alone or as a pair, against an optional template.

    Returns (fwd, rev) primers with scoring attached; rev is None when
    only a forward primer is given.
    """
    fwd = validate_dna(fwd, "fwd")
    rev = validate_dna(rev, "rev") if rev else ""
    if len(fwd) < config.LEN_MIN:
        raise InvalidSequenceError(
            f"`fwd` primer is too short: {len(fwd)} < {config.LEN_MIN}"
        )
    if rev and len(rev) < config.LEN_MIN:
        raise InvalidSequenceError(
            f"`rev` primer is too short: {len(rev)} < {config.LEN_MIN}"
        )
    seq = validate_dna(seq, "seq") if seq else ""
    check = validate_dna(offtarget_check, "offtarget_check") if offtarget_check else seq

    add_fwd, amplicon, add_rev = find_binding_sites(fwd, rev, seq)
    factory = PrimerFactory(options.optimum, options.penalties)
    thermo = resolve_thermo(options)

    fwd_primer = build_primer(fwd, add_fwd, Strand.FORWARD, check, factory, thermo)
    if not rev:
        return score_single(fwd_primer, options.preset, None, options.application), None

    rev_primer = build_primer(rev, add_rev, Strand.REVERSE, check, factory, thermo)
    fwd_primer, rev_primer = factory.build_pair(fwd_primer, rev_primer)

    template = ""
    if amplicon:
        template = fwd[:add_fwd] + amplicon + reverse_complement(rev[:add_rev])

    logger.debug(f"Scoring {fwd_primer} {rev_primer} on {len(template)} nt template")
    return score_pair(
        fwd_primer,
        rev_primer,
        template,
        preset=options.preset,
        temperature=options.annealing_temperature,
        include_equilibrium=options.include_equilibrium,
        off_template=check or None,
        classify_off_targets=bool(template),
        application=options.application,
    )
