"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains nearest-neighbour thermodynamics: melting temperature,
3' terminal stability and the free energy of hairpins, dimers and duplexes.

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

import math

from enum import Enum
from itertools import groupby

from Bio.Seq import reverse_complement as bio_reverse_complement
from Bio.SeqUtils import MeltingTemp as mt
from primer3 import calc_tm as p3_calc_tm

from primalpair import config

# SantaLucia & Hicks (2004) unified parameters, dH kcal/mol, dS cal/(mol K)
NN_TABLE = mt.DNA_NN4
INIT = NN_TABLE["init"]
TERMINAL_AT = NN_TABLE["init_A/T"]
SYMMETRY = NN_TABLE["sym"]
R_CAL = 1.9872

COMPLEMENT = {"A": "T", "T": "A", "G": "C", "C": "G"}
TERMINAL_LEN = 5
TERMINAL_DG_CLASSES = [(-6.0, "loose"), (-9.0, "ideal"), (-11.0, "strong")]


class StructureKind(Enum):
    """Kinds of structure with a free energy."""

    HAIRPIN = "hairpin"
    HOMODIMER = "homodimer"
    HETERODIMER = "heterodimer"
    DUPLEX = "duplex"


def reverse_complement(seq):
    """Reverse complement a DNA sequence."""
    return bio_reverse_complement(seq)


def calc_gc(seq):
    """Calculate the GC fraction for a sequence."""
    if not seq:
        return 0.0
    return (seq.count("G") + seq.count("C")) / len(seq)


def calc_max_homo(seq):
    """Calculate max homopolymer length for a sequence."""
    return sorted([(len(list(g))) for k, g in groupby(seq)], reverse=True)[0]


def is_complement(a, b):
    """Watson-Crick pairing between two bases."""
    return COMPLEMENT.get(a) == b


def nn_params(pair):
    """Return (dH, dS) for a dinucleotide stacked on its complement."""
    key = f"{pair}/{COMPLEMENT[pair[0]]}{COMPLEMENT[pair[1]]}"
    if key not in NN_TABLE:
        key = key[::-1]
    return NN_TABLE[key]


def nn_sum(seq):
    """Sum NN stacking dH and dS along a sequence (no initiation)."""
    dh = ds = 0.0
    for i in range(len(seq) - 1):
        h, s = nn_params(seq[i : i + 2])
        dh += h
        ds += s
    return dh, ds


def duplex_initiation(seq):
    """Initiation and terminal A/T dH, dS for a perfectly paired duplex."""
    dh, ds = INIT
    for end in (seq[0], seq[-1]):
        if end in "AT":
            dh += TERMINAL_AT[0]
            ds += TERMINAL_AT[1]
    return dh, ds


def monovalent_mm(conditions):
    """Monovalent cation concentration (mM), Tris counted at half."""
    return conditions.na_mm + conditions.k_mm + conditions.tris_mm / 2


def tm_from_nn(dh, ds, seq, conditions):
    """
    Melting temperature from total duplex dH/dS.

    Concentration term is R ln(C1 - C2/2), salt correction is Owczarzy 2008
    (free Mg after dNTP chelation, mixed monovalent/divalent regimes).
    """
    c1, c2 = conditions.primer_nm, conditions.template_nm
    if seq == reverse_complement(seq):
        ds += SYMMETRY[1]
        k = c1 * 1e-9
    else:
        k = (max(c1, c2) - min(c1, c2) / 2.0) * 1e-9
    tm_k = (1000 * dh) / (ds + R_CAL * math.log(k))
    corr = mt.salt_correction(
        Na=conditions.na_mm,
        K=conditions.k_mm,
        Tris=conditions.tris_mm,
        Mg=conditions.mg_mm,
        dNTPs=conditions.dntp_mm,
        method=7,
        seq=seq,
    )
    return 1 / (1 / tm_k + corr) - config.KELVIN


def calc_tm_santalucia(seq, conditions=config.CONDITIONS["PCR"]):
    """Calculate Tm with SantaLucia NN parameters and Owczarzy salt correction."""
    dh, ds = nn_sum(seq)
    ih, is_ = duplex_initiation(seq)
    return round(tm_from_nn(dh + ih, ds + is_, seq, conditions), 1)


def calc_tm_q5(seq, conditions=config.CONDITIONS["Q5"]):
    """
    Calculate Tm for NEB Q5 polymerase.

    NN Tm at 1M Na, Mg2+ correction and the empirical Q5 buffer fit.
    """
    n = len(seq)
    dh, ds = nn_sum(seq)
    ih, is_ = duplex_initiation(seq)
    ct = conditions.primer_nm * 1e-9
    tm_1m = (1000 * (dh + ih)) / (ds + is_ + R_CAL * math.log(ct / 4))
    corr = mt.salt_correction(Mg=conditions.mg_mm, method=7, seq=seq)
    tm_mg = 1 / (1 / tm_1m + corr) - config.KELVIN
    tm = (
        18.25
        + 0.949 * tm_mg
        + 8.67 * calc_gc(seq)
        - 5.25 * math.log(n)
        + 0.12 * n
        - 77.05 / n
    )
    return round(tm, 1)


def calc_tm_primer3(seq, conditions=config.CONDITIONS["PCR"]):
    """Calculate Tm using primer3 with the same buffer conditions."""
    return round(
        p3_calc_tm(
            seq,
            mv_conc=monovalent_mm(conditions),
            dv_conc=conditions.mg_mm,
            dntp_conc=conditions.dntp_mm,
            dna_conc=conditions.primer_nm,
        ),
        1,
    )


def calc_tm(seq, conditions=None, method="santalucia"):
    """Calculate Tm for a sequence by the named method."""
    if len(seq) < 2:
        raise ValueError(f"Sequence too short for Tm: {seq}")
    if method == "santalucia":
        return calc_tm_santalucia(seq, conditions or config.CONDITIONS["PCR"])
    if method == "q5":
        return calc_tm_q5(seq, conditions or config.CONDITIONS["Q5"])
    if method == "primer3":
        return calc_tm_primer3(seq, conditions or config.CONDITIONS["PCR"])
    raise ValueError(f"Unknown Tm method: {method}")


def annealing_temperature_q5(tm_fwd, tm_rev):
    """Q5 annealing temperature: lower Tm + 1, capped at 72."""
    return min(min(tm_fwd, tm_rev) + 1, 72)


def calc_terminal_dg(seq):
    """dG (kcal/mol, 37C) of the last five 3' bases."""
    if len(seq) < 2:
        return 0.0
    dh, ds = nn_sum(seq[-TERMINAL_LEN:])
    return round(dh - 310.15 * ds / 1000, 2)


def classify_terminal_dg(dg):
    """Classify 3' terminal stability."""
    for threshold, label in TERMINAL_DG_CLASSES:
        if dg > threshold:
            return label
    return "sticky"


def _dg(dh, ds, temperature):
    """dG from dH (kcal/mol) and dS (cal/(mol K))."""
    return dh - (temperature + config.KELVIN) * ds / 1000


def _loop_dg(size, temperature):
    """Hairpin loop initiation dG, entropic so scaled with temperature."""
    table = config.HAIRPIN_LOOP_DG
    if size in table:
        dg = table[size]
    else:
        lower = max(k for k in table if k < size)
        upper = min(k for k in table if k > size)
        dg = table[lower] + (table[upper] - table[lower]) * (size - lower) / (
            upper - lower
        )
    return dg * (temperature + config.KELVIN) / 310.15


def calc_hairpin_dg(seq, temperature=config.FOLD_TEMP_C):
    """
    Estimate the most stable hairpin dG for a sequence.

    Scans every loop position and loop size, extends the stem outward while
    bases pair, and scores stem stacks plus loop initiation.
    """
    n = len(seq)
    if n < 6:
        return 0.0

    best = 0.0
    stem_min = config.HAIRPIN_STEM_MIN
    for loop_start in range(stem_min, n - stem_min - config.HAIRPIN_LOOP_MIN + 1):
        for loop in range(config.HAIRPIN_LOOP_MIN, config.HAIRPIN_LOOP_MAX + 1):
            loop_end = loop_start + loop
            if loop_end >= n:
                break
            k = 0
            while (
                loop_start - 1 - k >= 0
                and loop_end + k < n
                and is_complement(seq[loop_start - 1 - k], seq[loop_end + k])
            ):
                k += 1
            if k < stem_min:
                continue
            dh, ds = nn_sum(seq[loop_start - k : loop_start])
            dg = _dg(dh, ds, temperature) + _loop_dg(loop, temperature)
            best = min(best, dg)

    return round(min(0.0, best), 2)


def _dimer_dg(a, b, temperature, symmetric):
    """Best antiparallel alignment dG between a and b (both 5'-3')."""
    na, nb = len(a), len(b)
    stack_min = config.DIMER_STACK_MIN
    best = 0.0

    # a[i] pairs b[j] where i + j == s
    for s in range(stack_min - 1, na + nb - stack_min):
        i_min = max(0, s - nb + 1)
        i_max = min(na - 1, s)
        dh = ds = 0.0
        run = longest = 0
        three_prime = False
        for i in range(i_min, i_max + 1):
            j = s - i
            if not is_complement(a[i], b[j]):
                run = 0
                continue
            run += 1
            longest = max(longest, run)
            if i >= na - 3 or j >= nb - 3:
                three_prime = True
            if run > 1:
                h, s_ = nn_params(a[i - 1 : i + 1])
                dh += h
                ds += s_
        if longest < stack_min or dh >= 0:
            continue
        dh += INIT[0]
        ds += INIT[1]
        if symmetric:
            ds += SYMMETRY[1]
        dg = _dg(dh, ds, temperature)
        if not three_prime:
            dg *= config.INTERNAL_DIMER_WEIGHT
        best = min(best, dg)

    return round(min(0.0, best), 2)


def calc_homodimer_dg(seq, temperature=config.FOLD_TEMP_C):
    """Most stable self-dimer dG, damped if no 3' end is involved."""
    if len(seq) < 6:
        return 0.0
    return _dimer_dg(seq, seq, temperature, symmetric=True)


def calc_heterodimer_dg(seq1, seq2, temperature=config.FOLD_TEMP_C):
    """Most stable cross-dimer dG between two primers."""
    if len(seq1) < 4 or len(seq2) < 4:
        return 0.0
    return _dimer_dg(seq1, seq2, temperature, symmetric=False)


def calc_duplex_dg(primer, target, temperature=config.FOLD_TEMP_C):
    """
    dG of a primer hybridised to a target strand.

    The target is given 5'-3', so a perfect match is the reverse complement
    of the primer. Only paired adjacent steps contribute.
    """
    n = min(len(primer), len(target))
    if n < 2:
        return 0.0
    p, t = primer[-n:], target[:n]
    dh = ds = 0.0
    stacks = 0
    for i in range(n - 1):
        if is_complement(p[i], t[n - 1 - i]) and is_complement(p[i + 1], t[n - 2 - i]):
            h, s = nn_params(p[i : i + 2])
            dh += h
            ds += s
            stacks += 1
    if not stacks:
        return 0.0
    ih, is_ = duplex_initiation(p)
    return round(min(0.0, _dg(dh + ih, ds + is_, temperature)), 2)


def calc_offtarget_dg(primer, template, exclude=None, temperature=55.0):
    """
    Most stable unintended binding site for a primer on either strand.

    Sites are seeded by an exact 3' anchor match. Sites overlapping the
    `exclude` (start, end) interval of the template are skipped.
    """
    anchor_len = config.OFF_TARGET_ANCHOR
    n = len(primer)
    if n < anchor_len or not template:
        return 0.0

    anchor = primer[-anchor_len:]
    best = 0.0

    def overlaps(start, end):
        return exclude is not None and start < exclude[1] and end > exclude[0]

    # Primer binds the top strand: rc(anchor) starts the site
    rc_anchor = reverse_complement(anchor)
    pos = template.find(rc_anchor)
    while pos != -1:
        end = min(len(template), pos + n)
        if not overlaps(pos, end):
            best = min(best, calc_duplex_dg(primer, template[pos:end], temperature))
        pos = template.find(rc_anchor, pos + 1)

    # Primer binds the bottom strand: anchor ends the site on the top strand
    pos = template.find(anchor)
    while pos != -1:
        end = pos + anchor_len
        start = max(0, end - n)
        if not overlaps(start, end):
            target = reverse_complement(template[start:end])
            best = min(best, calc_duplex_dg(primer, target, temperature))
        pos = template.find(anchor, pos + 1)

    return round(best, 2)


def free_energy(kind, seq, second=None, temperature=55.0):
    """Free energy (kcal/mol) for a structure kind."""
    kind = StructureKind(kind)
    if kind == StructureKind.HAIRPIN:
        return calc_hairpin_dg(seq, temperature)
    if kind == StructureKind.HOMODIMER:
        return calc_homodimer_dg(seq, temperature)
    if second is None:
        raise ValueError(f"A second sequence is required for {kind.value}")
    if kind == StructureKind.HETERODIMER:
        return calc_heterodimer_dg(seq, second, temperature)
    return calc_duplex_dg(seq, second, temperature)
