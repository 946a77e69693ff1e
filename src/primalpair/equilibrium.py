"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains the competitive binding equilibrium model, estimating
the fraction of each primer bound to its intended target at annealing.

Each primer partitions between free, hairpin, homodimer, heterodimer,
target-bound and off-target states in proportion to the Boltzmann weight
of each state. Bimolecular states are weighted by partner concentration.

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
from primalpair.offtarget import intended_site
from primalpair.thermo import (
    calc_duplex_dg,
    calc_hairpin_dg,
    calc_heterodimer_dg,
    calc_homodimer_dg,
    calc_offtarget_dg,
    reverse_complement,
)

logger = logging.getLogger("primalpair")

SPECIES = (
    "hairpin_fwd hairpin_rev homodimer_fwd homodimer_rev heterodimer "
    "target_fwd target_rev off_target_fwd off_target_rev"
)
SpeciesDG = namedtuple("SpeciesDG", SPECIES)
EquilibriumConstants = namedtuple("EquilibriumConstants", SPECIES)

StrandState = namedtuple(
    "StrandState", "free hairpin homodimer heterodimer target off_target"
)
EquilibriumState = namedtuple("EquilibriumState", "fwd rev heterodimer template_free")
Losses = namedtuple("Losses", "hairpin homodimer heterodimer off_target free")
EquilibriumResult = namedtuple(
    "EquilibriumResult",
    "efficiency efficiency_fwd efficiency_rev bottleneck quality losses_fwd "
    "losses_rev species constants state",
)


def species_dg(
    fwd,
    rev,
    template,
    off_template=None,
    temperature=55.0,
    include_off_target=True,
    cache=None,
):
    """
    dG (kcal/mol) for every competing species of a primer pair.

    The template runs 5'-3' from the forward primer site to the reverse
    complement of the reverse primer site.
    """
    off_template = off_template or template
    nf, nr = len(fwd), len(rev)

    # Cache methods share signatures with the uncached functions
    if cache is not None:
        hairpin, homodimer = cache.hairpin, cache.homodimer
        heterodimer, off_target = cache.heterodimer, cache.off_target_dg
    else:
        hairpin, homodimer = calc_hairpin_dg, calc_homodimer_dg
        heterodimer, off_target = calc_heterodimer_dg, calc_offtarget_dg

    if include_off_target:
        ot_fwd = off_target(
            fwd, off_template, intended_site(fwd, off_template, True), temperature
        )
        ot_rev = off_target(
            rev, off_template, intended_site(rev, off_template, False), temperature
        )
    else:
        ot_fwd = ot_rev = 0.0

    return SpeciesDG(
        hairpin_fwd=hairpin(fwd, temperature),
        hairpin_rev=hairpin(rev, temperature),
        homodimer_fwd=homodimer(fwd, temperature),
        homodimer_rev=homodimer(rev, temperature),
        heterodimer=heterodimer(fwd, rev, temperature),
        target_fwd=calc_duplex_dg(
            fwd, reverse_complement(template[:nf]), temperature
        ),
        target_rev=calc_duplex_dg(rev, template[-nr:], temperature),
        off_target_fwd=ot_fwd,
        off_target_rev=ot_rev,
    )


def equilibrium_constants(species, temperature=55.0):
    """K = exp(-dG/RT) for each species; missing values get a negligible K."""
    rt = config.GAS_CONSTANT * (temperature + config.KELVIN)
    return EquilibriumConstants(
        *[
            config.MISSING_K if dg is None else math.exp(-dg / rt)
            for dg in species
        ]
    )


def _strand_state(k_hp, k_homo, k_t, k_off, k_het, p, t, partner):
    """Partition one primer strand over its states."""
    q = 1 + k_hp + k_homo * p + k_t * t + k_off * t + k_het * partner
    return StrandState(
        free=p / q,
        hairpin=p * k_hp / q,
        homodimer=p * k_homo * p / q / 2,
        heterodimer=p * k_het * partner / q / 2,
        target=p * k_t * t / q,
        off_target=p * k_off * t / q,
    )


def solve_equilibrium(
    constants, primer_conc, template_conc, refine=False, max_iterations=50, tol=1e-12
):
    """
    Solve the competing equilibria for both primers.

    By default a single pass takes the partner primer at its total
    concentration. With refine, the heterodimer term uses the partner's
    free pool and both strands are re-solved until the pools converge.
    """
    k = constants
    p, t = primer_conc, template_conc
    partner_fwd = partner_rev = p

    for iteration in range(max_iterations if refine else 1):
        fwd = _strand_state(
            k.hairpin_fwd,
            k.homodimer_fwd,
            k.target_fwd,
            k.off_target_fwd,
            k.heterodimer,
            p,
            t,
            partner_fwd,
        )
        rev = _strand_state(
            k.hairpin_rev,
            k.homodimer_rev,
            k.target_rev,
            k.off_target_rev,
            k.heterodimer,
            p,
            t,
            partner_rev,
        )
        if not refine:
            break
        delta = abs(fwd.free - partner_rev) + abs(rev.free - partner_fwd)
        partner_fwd, partner_rev = rev.free, fwd.free
        if delta < tol:
            logger.debug(f"Equilibrium converged after {iteration + 1} iterations")
            break

    return EquilibriumState(
        fwd=fwd,
        rev=rev,
        heterodimer=(fwd.heterodimer + rev.heterodimer) / 2,
        template_free=max(0.0, t - fwd.target - rev.target),
    )


def classify_efficiency(efficiency):
    """Quality tier for an equilibrium efficiency."""
    for threshold, label in config.EFFICIENCY_TIERS:
        if efficiency >= threshold:
            return label
    return "poor"


def efficiency_to_score(efficiency, optimal=0.95, acceptable=0.70, steepness=10):
    """Map efficiency to a 0-100 score; monotonic non-decreasing."""
    if efficiency >= optimal:
        return 100.0
    if efficiency >= acceptable:
        return 70 + 30 * (efficiency - acceptable) / (optimal - acceptable)
    return 70 / (1 + math.exp(steepness * (acceptable - efficiency)))


def _losses(strand, heterodimer, p):
    return Losses(
        hairpin=strand.hairpin / p,
        homodimer=strand.homodimer / p,
        heterodimer=heterodimer / p / 2,
        off_target=strand.off_target / p,
        free=strand.free / p,
    )


def calculate_equilibrium_efficiency(
    fwd,
    rev,
    template,
    options=config.EquilibriumOptions(),
    off_template=None,
    cache=None,
):
    """Equilibrium efficiency of a primer pair; the pair is its weaker strand."""
    species = species_dg(
        fwd,
        rev,
        template,
        off_template=off_template,
        temperature=options.temperature,
        include_off_target=options.include_off_target,
        cache=cache,
    )
    constants = equilibrium_constants(species, options.temperature)
    state = solve_equilibrium(
        constants,
        options.primer_conc,
        options.template_conc,
        refine=options.refine,
        max_iterations=options.max_iterations,
        tol=options.tolerance,
    )

    p = options.primer_conc
    eff_fwd = min(1.0, max(0.0, state.fwd.target / p))
    eff_rev = min(1.0, max(0.0, state.rev.target / p))
    efficiency = min(eff_fwd, eff_rev)

    logger.debug(
        f"Equilibrium {fwd}/{rev}: fwd {eff_fwd:.4f}, rev {eff_rev:.4f}, {species}"
    )

    return EquilibriumResult(
        efficiency=efficiency,
        efficiency_fwd=eff_fwd,
        efficiency_rev=eff_rev,
        bottleneck="forward" if eff_fwd < eff_rev else "reverse",
        quality=classify_efficiency(efficiency),
        losses_fwd=_losses(state.fwd, state.heterodimer, p),
        losses_rev=_losses(state.rev, state.heterodimer, p),
        species=species,
        constants=constants,
        state=state,
    )
