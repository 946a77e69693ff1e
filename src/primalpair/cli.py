"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains the CLI for PrimalPair.
It is executed when the user runs 'primalpair' after installation,
or 'python -m primalpair'.

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

import click
import logging
import sys

from pathlib import Path

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord
from progress.bar import ShadyBar

from primalpair import __version__ as version, config
from primalpair.equilibrium import calculate_equilibrium_efficiency
from primalpair.primer import score, validate_dna
from primalpair.reporting import DesignReporter, ProgressTracker
from primalpair.search import NoSuitablePrimersError

logger = logging.getLogger("primalpair")


CLI_CONTEXT = dict(
    auto_envvar_prefix="PRIMALPAIR",
    help_option_names=["-h", "--help"],
)
PRESET_NAMES = [name.lower() for name in config.SCORING_PRESETS]


@click.group(context_settings=CLI_CONTEXT)
@click.version_option(version, "--version", "-V")
def cli():
    """a tool for designing and ranking PCR primer pairs."""
    pass


def main():
    """Console script entry point."""
    cli()


def build_options(
    preset="amplification",
    tm_method=None,
    optimal_tm=None,
    annealing_temp=55.0,
    exhaustive=False,
    smart=False,
    extended=False,
    composite=True,
):
    """SearchOptions from CLI option values."""
    scoring_preset = config.SCORING_PRESETS[preset.upper()]
    optimum = config.Optimum()
    if optimal_tm is not None:
        optimum = optimum._replace(tm=optimal_tm)
    return config.SearchOptions(
        optimum=optimum,
        preset=scoring_preset,
        thermo=config.ThermoOptions(method=tm_method),
        use_composite_score=composite,
        use_smart_design=smart,
        allow_extended_primers=extended,
        exhaustive_search=exhaustive,
        annealing_temperature=annealing_temp,
    )


@cli.command()
@click.argument("fasta", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--outpath",
    "-o",
    type=click.Path(file_okay=False, writable=True),
    help="Path to output directory.",
    metavar="<dir>",
    default=config.OUTPUT_PATH,
    show_default=True,
)
@click.option(
    "--name",
    "-n",
    type=click.STRING,
    help="Prefix name for your outputs.",
    metavar="<str>",
    default=config.PREFIX,
    show_default=True,
)
@click.option(
    "--preset",
    type=click.Choice(PRESET_NAMES, case_sensitive=False),
    help="Scoring preset.",
    default="amplification",
    show_default=True,
)
@click.option(
    "--tm-method",
    type=click.Choice(config.TM_METHODS, case_sensitive=False),
    help="Tm method, overrides the preset.",
    default=None,
)
@click.option(
    "--optimal-tm",
    type=click.FloatRange(40, 80),
    help="Optimal primer Tm.",
    metavar="<float>",
    default=config.Optimum().tm,
    show_default=True,
)
@click.option(
    "--annealing-temp",
    type=click.FloatRange(30, 80),
    help="Annealing temperature for the equilibrium model.",
    metavar="<float>",
    default=55.0,
    show_default=True,
)
@click.option(
    "--add-fwd",
    type=click.STRING,
    help="Fixed 5' addition for the forward primer.",
    metavar="<seq>",
    default="",
)
@click.option(
    "--add-rev",
    type=click.STRING,
    help="Fixed 5' addition for the reverse primer.",
    metavar="<seq>",
    default="",
)
@click.option(
    "--offtarget-fasta",
    type=click.Path(exists=True, dir_okay=False),
    help="FASTA to check for off-target binding, defaults to the template.",
    default=None,
)
@click.option(
    "--exhaustive/--no-exhaustive",
    "-e",
    help="Search all candidates, slower.",
    default=False,
)
@click.option(
    "--smart/--no-smart",
    "-s",
    help="Nudge primer lengths to improve 3' ends.",
    default=False,
)
@click.option(
    "--extended/--no-extended",
    "-x",
    help=f"Allow primers up to {config.LEN_MAX_EXTENDED} nt.",
    default=False,
)
@click.option(
    "--no-composite",
    is_flag=True,
    help="Rank by penalty instead of composite score.",
    default=False,
)
@click.option("--debug/--no-debug", "-d", help="Set log level DEBUG.", default=False)
@click.option(
    "--force/--no-force",
    "-f",
    help="Force output to an existing directory, overwrite files.",
    default=False,
)
def design(
    fasta,
    outpath,
    name,
    preset,
    tm_method,
    optimal_tm,
    annealing_temp,
    add_fwd,
    add_rev,
    offtarget_fasta,
    exhaustive,
    smart,
    extended,
    no_composite,
    debug,
    force,
):
    """Design the best primer pair for a template."""
    # Validate output path
    try:
        outpath = get_output_path(outpath, force=force)
    except IOError as e:
        click.echo(click.style(f"Error: {e}", fg="red",))
        sys.exit(1)

    # Setup logging
    setup_logging(outpath, debug=debug, prefix=name)

    # Process FASTA input
    try:
        reference = process_fasta(fasta)
        offtarget_check = read_offtarget_fasta(offtarget_fasta)
    except ValueError as e:
        logger.error(f"Error: {e}")
        sys.exit(2)

    options = build_options(
        preset,
        tm_method,
        optimal_tm,
        annealing_temp,
        exhaustive,
        smart,
        extended,
        not no_composite,
    )

    logger.info(f"Template: {reference.id} ({len(reference)} nt)")
    logger.info(
        f"Preset: {options.preset.name}, "
        f"{'exhaustive' if exhaustive else 'heuristic'} search"
    )

    # Progress bar
    progress_bar = ProgressBar()

    # Design pair
    try:
        reporter = DesignReporter(
            outpath,
            reference,
            options,
            prefix=name,
            add_fwd=add_fwd,
            add_rev=add_rev,
            offtarget_check=offtarget_check,
            progress_tracker=progress_bar,
        )
        reporter.design()
    except ValueError as e:
        progress_bar.interrupt()
        logger.error(f"Error: {e}")
        sys.exit(2)
    except NoSuitablePrimersError as e:
        progress_bar.interrupt()
        logger.error(f"Error: Unable to find suitable primers. {e}")
        sys.exit(10)
    except Exception as e:
        # Unexpected error
        progress_bar.interrupt()
        logger.error(f"Error: {e}")
        raise e

    # Write outputs
    pair = reporter.pair
    logger.info(
        f"All done! Best pair scored {pair.score} "
        f"({reporter.fwd.scoring.quality.name.lower()}), "
        f"Tm diff {pair.tm_diff}C, {len(reporter.alternatives)} "
        f"alternative{'' if len(reporter.alternatives) == 1 else 's'}"
    )
    logger.info(f"FWD: {reporter.fwd.seq}")
    logger.info(f"REV: {reporter.rev.seq}")
    if reporter.smart is not None:
        logger.info(f"Smart design: {reporter.smart.reason}")
    reporter.write_default_outputs()
    sys.exit(0)


@cli.command("score")
@click.argument("fwd", type=click.STRING)
@click.argument("rev", type=click.STRING, required=False, default="")
@click.option(
    "--template-fasta",
    "-t",
    type=click.Path(exists=True, dir_okay=False),
    help="Template FASTA, enables equilibrium scoring.",
    default=None,
)
@click.option(
    "--offtarget-fasta",
    type=click.Path(exists=True, dir_okay=False),
    help="FASTA to check for off-target binding, defaults to the template.",
    default=None,
)
@click.option(
    "--preset",
    type=click.Choice(PRESET_NAMES, case_sensitive=False),
    help="Scoring preset.",
    default="amplification",
    show_default=True,
)
@click.option(
    "--annealing-temp",
    type=click.FloatRange(30, 80),
    help="Annealing temperature for the equilibrium model.",
    metavar="<float>",
    default=55.0,
    show_default=True,
)
def score_command(fwd, rev, template_fasta, offtarget_fasta, preset, annealing_temp):
    """Score existing primers, alone or as a pair."""
    try:
        seq = str(process_fasta(template_fasta, 0).seq) if template_fasta else ""
        offtarget_check = read_offtarget_fasta(offtarget_fasta)
        options = build_options(preset, annealing_temp=annealing_temp)
        fwd_primer, rev_primer = score(fwd, rev, seq, offtarget_check, options)
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red",))
        sys.exit(2)

    rows = [
        [
            "strand",
            "seq",
            "size",
            "tm",
            "%gc",
            "hairpin_dg",
            "penalty",
            "score",
            "quality",
            "efficiency",
        ]
    ]
    for p in filter(None, (fwd_primer, rev_primer)):
        efficiency = p.scoring.efficiency
        rows.append(
            [
                p.strand.name,
                p.seq,
                p.length,
                f"{p.tm:.2f}",
                f"{p.gc * 100:.1f}",
                f"{p.dg:.2f}",
                p.penalty,
                p.composite,
                p.scoring.quality.name,
                "" if efficiency is None else f"{efficiency:.3f}",
            ]
        )
    for row in rows:
        click.echo("\t".join(str(value) for value in row))
    for warning in fwd_primer.scoring.warnings:
        click.echo(f"# {warning}")


@cli.command()
@click.argument("fwd", type=click.STRING)
@click.argument("rev", type=click.STRING)
@click.argument("template_fasta", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--annealing-temp",
    type=click.FloatRange(30, 80),
    help="Annealing temperature.",
    metavar="<float>",
    default=55.0,
    show_default=True,
)
def equilibrium(fwd, rev, template_fasta, annealing_temp):
    """Model the binding equilibrium of a primer pair on a template."""
    try:
        fwd = validate_dna(fwd, "fwd")
        rev = validate_dna(rev, "rev")
        template = str(process_fasta(template_fasta, 0).seq)
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red",))
        sys.exit(2)

    result = calculate_equilibrium_efficiency(
        fwd, rev, template, config.EquilibriumOptions(temperature=annealing_temp)
    )
    click.echo(f"efficiency\t{result.efficiency:.4f}")
    click.echo(f"efficiency_fwd\t{result.efficiency_fwd:.4f}")
    click.echo(f"efficiency_rev\t{result.efficiency_rev:.4f}")
    click.echo(f"bottleneck\t{result.bottleneck}")
    click.echo(f"quality\t{result.quality}")
    for strand, losses in (("fwd", result.losses_fwd), ("rev", result.losses_rev)):
        for name, value in losses._asdict().items():
            click.echo(f"loss_{strand}_{name}\t{value:.4f}")


def process_fasta(file_path, min_ref_size=config.LEN_MAX):
    """Parse and validate a single-record template fasta file."""

    references = []
    records = SeqIO.parse(file_path, "fasta")  # may raise

    # Remove gaps
    for record in records:
        ref = SeqRecord(
            Seq(str(record.seq).replace("-", "").upper()),
            id=record.id,
            description=record.id,
        )
        references.append(ref)

    # Check for no references
    if not references:
        raise ValueError("The input FASTA file does not contain any valid templates.")

    # Check for too many references
    if len(references) > 1:
        raise ValueError("Only a single template sequence is supported.")

    template = references[0]

    # Check for too short template
    if min_ref_size and len(template) < min_ref_size:
        raise ValueError(
            f"Your template is too short, the minimum size is {min_ref_size} nt."
        )

    # Check for a valid alphabet
    VALID_ALPHABET = "ACGT"
    if any(base not in VALID_ALPHABET for base in set(template.seq)):
        raise ValueError(
            "Your template contains invalid nucleotide codes. "
            f"The supported alphabet is '{VALID_ALPHABET}'. "
            "Ambiguity codes are not currently supported."
        )

    return template


def read_offtarget_fasta(file_path):
    """Concatenated, gap-free sequence of all records, or '' without a file."""
    if not file_path:
        return ""
    seqs = [
        str(record.seq).replace("-", "").upper()
        for record in SeqIO.parse(file_path, "fasta")
    ]
    if not seqs:
        raise ValueError("The off-target FASTA file does not contain any sequences.")
    return validate_dna("".join(seqs), "offtarget_check")


def setup_logging(output_path, debug=False, prefix=config.PREFIX):
    """Setup logging output and verbosity."""

    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    # File handler
    log_filepath = output_path / f"{prefix}.log"
    fh = logging.FileHandler(log_filepath)
    fh.setLevel(logging.DEBUG)
    fh_formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
    fh.setFormatter(fh_formatter)
    logger.addHandler(fh)

    # Stream handler STDOUT
    sh = logging.StreamHandler(sys.stdout)
    sh.setLevel(logging.INFO)
    sh_formatter = logging.Formatter("%(message)s")
    sh.setFormatter(sh_formatter)
    logger.addHandler(sh)

    logger.info(f"Writing log to {log_filepath}")
    logger.debug(f"primalpair version {version}")


def get_output_path(output_path, force=False):
    """
    Check for an existing output dir, require --force to overwrite.
    Create dir, return path object.
    """
    path = Path(output_path)

    if path.exists() and not force:
        raise IOError("Directory exists add --force to overwrite")

    path.mkdir(exist_ok=True)
    return path


class ProgressBar(ShadyBar, ProgressTracker):
    """Progress bar for terminal stdout."""

    suffix = "%(percent)d%% [%(index)d / %(max)d]"

    def __init__(self, *args, **kwargs):
        """Init ProgressBar."""
        self.__considered = 0
        self.__stage = ""
        super().__init__(*args, **kwargs)

    def goto(self, val):
        """Update progress to val."""
        super().goto(val)

    @property
    def end(self):
        """End (max) progress value."""
        return self.max

    @end.setter
    def end(self, val):
        """Set end progress value."""
        self.max = val

    @property
    def considered(self):
        """Count of considered primers."""
        return self.__considered

    @considered.setter
    def considered(self, considered):
        """Set count of considered primers."""
        self.__considered = considered
        self.update_message()

    @property
    def stage(self):
        """Current search stage."""
        return self.__stage

    @stage.setter
    def stage(self, stage):
        """Set current search stage."""
        self.__stage = stage
        self.update_message()

    def update_message(self):
        """Update progress bar prefix message."""
        self.message = f"Considered {self.considered} primers, {self.stage}"

    def interrupt(self):
        """Prepare to be interrupted by a log message."""
        if self.index:
            self.finish()


if __name__ == "__main__":
    cli()
