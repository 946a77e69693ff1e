"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains the per-request candidate cache of GC, Tm, structure
and off-target values over every subsequence of a strand window.

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

from primalpair import config
from primalpair.offtarget import count_off_targets, kmer_count_map
from primalpair.thermo import (
    calc_hairpin_dg,
    calc_heterodimer_dg,
    calc_homodimer_dg,
    calc_offtarget_dg,
    calc_terminal_dg,
    calc_tm,
    duplex_initiation,
    nn_params,
    tm_from_nn,
)

logger = logging.getLogger("primalpair")


class CandidateCache:
    """
    Precomputed primer features for one strand window.

    gc and tm are triangular matrices indexed [start][end] (inclusive) over
    the whole window. dg is only filled for the requested starts and ends.
    The matrices are read-only after construction; only the memo tables
    of the structure methods grow.
    """

    def __init__(
        self,
        seq,
        offtarget_check="",
        thermo=config.ThermoOptions(),
        starts=None,
        ends=None,
    ):
        """Init CandidateCache."""
        self.seq = seq
        self.thermo = thermo
        self.starts = list(starts) if starts is not None else list(range(len(seq)))
        self.ends = list(ends) if ends is not None else list(range(len(seq)))
        self._memo = {"hairpin": {}, "homodimer": {}, "heterodimer": {}, "ot": {}}

        self.gc = self._build_gc()
        self.tm = self._build_tm()
        self.dg = self._build_dg()
        self.terminal_dg = [calc_terminal_dg(seq[: e + 1]) for e in range(len(seq))]
        self.off_targets = self._build_off_targets(offtarget_check)

        logger.debug(
            f"Cache built for {len(seq)} nt window, "
            f"{len(self.starts)} starts x {len(self.ends)} ends"
        )

    def __len__(self):
        return len(self.seq)

    def _build_gc(self):
        """GC fraction for every i <= j from a prefix count."""
        n = len(self.seq)
        prefix = [0]
        for base in self.seq:
            prefix.append(prefix[-1] + (base in "GC"))
        gc = [[None] * n for _ in range(n)]
        for i in range(n):
            for j in range(i, n):
                gc[i][j] = (prefix[j + 1] - prefix[i]) / (j - i + 1)
        return gc

    def _build_tm(self):
        """Tm for every i < j, NN sums from cumulative stacks."""
        seq = self.seq
        n = len(seq)
        tm = [[None] * n for _ in range(n)]
        conditions = self.thermo.conditions

        method = self.thermo.method or "santalucia"
        if method != "santalucia":
            for i in range(n):
                for j in range(i + 1, n):
                    tm[i][j] = calc_tm(seq[i : j + 1], conditions, method)
            return tm

        # cum[k] holds the stack sums of seq[0:k+1]
        cum_h, cum_s = [0.0], [0.0]
        for k in range(n - 1):
            h, s = nn_params(seq[k : k + 2])
            cum_h.append(cum_h[-1] + h)
            cum_s.append(cum_s[-1] + s)

        for i in range(n):
            for j in range(i + 1, n):
                sub = seq[i : j + 1]
                ih, is_ = duplex_initiation(sub)
                dh = cum_h[j] - cum_h[i] + ih
                ds = cum_s[j] - cum_s[i] + is_
                tm[i][j] = round(tm_from_nn(dh, ds, sub, conditions), 1)
        return tm

    def _build_dg(self):
        """Hairpin dG for requested starts and ends only."""
        n = len(self.seq)
        dg = [[None] * n for _ in range(n)]
        for i in self.starts:
            for j in self.ends:
                if i < j < n:
                    dg[i][j] = self.hairpin(self.seq[i : j + 1])
        return dg

    def _build_off_targets(self, offtarget_check):
        """Off-target counts for the k-mer ending at each index."""
        k = config.OFF_TARGET_KMER
        counts = [0] * len(self.seq)
        if not offtarget_check:
            return counts
        kmers = kmer_count_map(offtarget_check, k)
        for e in range(k - 1, len(self.seq)):
            counts[e] = count_off_targets(self.seq[e - k + 1 : e + 1], kmers)
        return counts

    def hairpin(self, seq, temperature=None):
        """Memoized hairpin dG."""
        temperature = self.thermo.fold_temp if temperature is None else temperature
        key = (seq, temperature)
        if key not in self._memo["hairpin"]:
            self._memo["hairpin"][key] = calc_hairpin_dg(seq, temperature)
        return self._memo["hairpin"][key]

    def homodimer(self, seq, temperature=None):
        """Memoized homodimer dG."""
        temperature = self.thermo.fold_temp if temperature is None else temperature
        key = (seq, temperature)
        if key not in self._memo["homodimer"]:
            self._memo["homodimer"][key] = calc_homodimer_dg(seq, temperature)
        return self._memo["homodimer"][key]

    def heterodimer(self, seq1, seq2, temperature=None):
        """Memoized heterodimer dG, keyed independent of order."""
        temperature = self.thermo.fold_temp if temperature is None else temperature
        key = (min(seq1, seq2), max(seq1, seq2), temperature)
        if key not in self._memo["heterodimer"]:
            self._memo["heterodimer"][key] = calc_heterodimer_dg(
                key[0], key[1], temperature
            )
        return self._memo["heterodimer"][key]

    def off_target_dg(self, primer, template, exclude=None, temperature=55.0):
        """Memoized off-target dG."""
        key = (primer, template, exclude, temperature)
        if key not in self._memo["ot"]:
            self._memo["ot"][key] = calc_offtarget_dg(
                primer, template, exclude, temperature
            )
        return self._memo["ot"][key]
