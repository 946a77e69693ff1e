"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains the DesignReporter object.
This object extends a PairSearch object to provide reporting methods.

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

import csv
import json
import logging

from abc import ABC, abstractmethod

from Bio import SeqIO

from primalpair import config, __version__ as version
from primalpair.primer import Strand
from primalpair.search import PairSearch

logger = logging.getLogger("primalpair")


class DesignReporter(PairSearch):
    """Reporting methods to extend PairSearch."""

    def __init__(self, outpath, reference, *args, prefix=config.PREFIX, **kwargs):
        """Init DesignReporter."""
        self.outpath = outpath
        self.reference = reference
        self.prefix = prefix
        super().__init__(str(reference.seq), *args, **kwargs)

    @property
    def primers(self):
        return [self.fwd, self.rev]

    def tail_length(self, primer):
        """Number of 5' addition bases in a primer."""
        add_max = (
            self.add_fwd_max if primer.strand == Strand.FORWARD else self.add_rev_max
        )
        return max(0, add_max - primer.start)

    def binding_coords(self, primer):
        """(start, end) of a primer's binding part, in template coordinates."""
        binding = primer.length - self.tail_length(primer)
        if primer.strand == Strand.FORWARD:
            return 0, binding
        return len(self.template) - binding, len(self.template)

    def write_default_outputs(self):
        """Write all default output files."""
        self.write_primer_bed()
        self.write_primer_tsv()
        self.write_alternatives_tsv()
        self.write_refs()
        self.write_run_report_json()

    def write_primer_bed(self):
        """Write primer BED file."""
        filepath = self.outpath / f"{self.prefix}.primer.bed"
        logger.info(f"Writing {filepath}")

        rows = []
        for p in self.primers:
            start, end = self.binding_coords(p)
            rows.append(
                [
                    self.reference.id,
                    start,
                    end,
                    f"{self.prefix}_{p.strand.name}",
                    round(p.composite or 0),
                    p.strand.value,
                ]
            )

        with open(filepath, "w") as fh:
            cw = csv.writer(fh, delimiter="\t")
            cw.writerows(rows)

    def write_primer_tsv(self):
        """Write primer TSV file."""
        filepath = self.outpath / f"{self.prefix}.primer.tsv"
        logger.info(f"Writing {filepath}")

        rows = [
            [
                "name",
                "seq",
                "size",
                "%gc",
                "tm",
                "tm_total",
                "penalty",
                "score",
                "quality",
                "efficiency",
            ]
        ]
        for p in self.primers:
            efficiency = p.scoring.efficiency
            rows.append(
                [
                    f"{self.prefix}_{p.strand.name}",
                    p.seq,
                    p.length,
                    f"{p.gc * 100:.1f}",
                    f"{p.tm:.2f}",
                    f"{p.tm_total:.2f}",
                    p.penalty,
                    p.composite,
                    p.scoring.quality.name if p.scoring.quality else "",
                    "" if efficiency is None else f"{efficiency:.3f}",
                ]
            )

        with open(filepath, "w") as fh:
            cw = csv.writer(fh, delimiter="\t")
            cw.writerows(rows)

    def write_alternatives_tsv(self):
        """Write alternative pairs TSV file."""
        filepath = self.outpath / f"{self.prefix}.alternatives.tsv"
        logger.info(f"Writing {filepath}")

        rows = [
            [
                "rank",
                "reason",
                "label",
                "fwd",
                "rev",
                "score",
                "tm_fwd",
                "tm_rev",
                "tm_diff",
                "heterodimer_dg",
                "amplicon_length",
                "badges",
            ]
        ]
        for rank, alt in enumerate(self.alternatives, 1):
            pair = alt.pair
            rows.append(
                [
                    rank,
                    alt.reason,
                    alt.label.text if alt.label else "",
                    pair.fwd.seq,
                    pair.rev.seq,
                    pair.score,
                    f"{pair.fwd.tm:.2f}",
                    f"{pair.rev.tm:.2f}",
                    pair.tm_diff,
                    f"{pair.heterodimer_dg:.2f}",
                    pair.amplicon_length,
                    ",".join(alt.badges),
                ]
            )

        with open(filepath, "w") as fh:
            cw = csv.writer(fh, delimiter="\t")
            cw.writerows(rows)

    def write_refs(self):
        """Write reference FASTA."""
        filepath = self.outpath / f"{self.prefix}.reference.fasta"
        logger.info(f"Writing {filepath}")
        SeqIO.write([self.reference], filepath, "fasta")

    def primer_report(self, primer):
        scoring = primer.scoring
        return {
            "seq": primer.seq,
            "length": primer.length,
            "tm": round(primer.tm, 2),
            "tm_total": round(primer.tm_total, 2),
            "gc": round(primer.gc, 3),
            "hairpin_dg": round(primer.dg, 2),
            "terminal_dg": round(primer.terminal_dg, 2),
            "off_target_count": primer.off_target_count,
            "penalty": primer.penalty,
            "losses": scoring.losses._asdict() if scoring.losses else {},
            "critical_warnings": list(scoring.critical_warnings),
            "warnings": list(scoring.warnings),
        }

    def write_run_report_json(self):
        """Write run report json."""
        filepath = self.outpath / f"{self.prefix}.report.json"
        logger.info(f"Writing {filepath}")
        options = self.options
        data = {
            "reference": self.reference.id,
            "reference_length": len(self.template),
            "fwd": self.primer_report(self.fwd),
            "rev": self.primer_report(self.rev),
            "pair": {
                "score": self.pair.score,
                "penalty": self.pair.penalty,
                "quality": self.fwd.scoring.quality.name,
                "tm_diff": self.pair.tm_diff,
                "heterodimer_dg": round(self.pair.heterodimer_dg, 2),
                "amplicon_length": self.pair.amplicon_length,
                "efficiency": self.fwd.scoring.efficiency,
                "efficiency_score": self.fwd.scoring.efficiency_score,
            },
            "alternatives": len(self.alternatives),
            "categories": {
                name: [f"{p.fwd.seq}/{p.rev.seq}" for p in pairs]
                for name, pairs in self.categories.items()
            },
            "smart_design": None
            if self.smart is None
            else {
                "optimized": self.smart.optimized,
                "reason": self.smart.reason,
                "original_score": self.smart.original_score,
                "score": self.smart.score,
            },
            "considered": self.considered,
            "config": {
                "preset": options.preset.name,
                "tm_method": self.thermo.method,
                "optimal_tm": options.optimum.tm,
                "annealing_temperature": options.annealing_temperature,
                "use_composite_score": options.use_composite_score,
                "use_smart_design": options.use_smart_design,
                "allow_extended_primers": options.allow_extended_primers,
                "exhaustive_search": options.exhaustive_search,
                "add_fwd_len": [self.add_fwd_min, self.add_fwd_max],
                "add_rev_len": [self.add_rev_min, self.add_rev_max],
                "primalpair_version": version,
            },
        }
        filepath.write_text(json.dumps(data))


class ProgressTracker(ABC):
    """Abstract base class for ProgressTracker."""

    @abstractmethod
    def goto(self, val):
        """Update progress to val."""
        ...

    @property
    def end(self):
        """Progress end value."""
        ...

    @end.setter
    @abstractmethod
    def end(self, val):
        """Set progress end value."""
        ...

    @property
    def considered(self):
        """Count of considered primers."""
        ...

    @considered.setter
    @abstractmethod
    def considered(self, considered):
        """Set count of considered primers."""
        ...

    @property
    def stage(self):
        """The current search stage."""
        ...

    @stage.setter
    @abstractmethod
    def stage(self, stage):
        """Set current search stage."""
        ...

    @abstractmethod
    def interrupt(self):
        """Prepare to be interrupted by a log message."""
        ...

    @abstractmethod
    def finish(self):
        """Finish tracking progress."""
        ...
