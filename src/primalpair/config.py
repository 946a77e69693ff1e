"""
PrimalPair: thermodynamic design and ranking of PCR primer pairs

Copyright (C) 2020 Joshua Quick and Andrew Smith
www.github.com/aresti/primalscheme

This module contains config values.

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

from collections import namedtuple

PREFIX = "primalpair"
OUTPUT_PATH = "./output"

# Primer length limits
LEN_MIN = 15
LEN_MAX = 32
LEN_MAX_EXTENDED = 60

# Reaction conditions, concentrations in nM (primer, template) and mM (salts)
Conditions = namedtuple(
    "Conditions", "primer_nm template_nm na_mm k_mm tris_mm mg_mm dntp_mm"
)
CONDITIONS = {
    "PCR": Conditions(250.0, 0.0, 0.0, 50.0, 2.0, 1.5, 0.2),
    "Q5": Conditions(500.0, 0.0, 0.0, 50.0, 2.0, 2.0, 0.2),
}

# A thermo method of None defers to the scoring preset
TM_METHODS = ["santalucia", "q5", "primer3"]
FOLD_TEMP_C = 37.0
ThermoOptions = namedtuple(
    "ThermoOptions",
    "method conditions fold_temp",
    defaults=(None, CONDITIONS["PCR"], FOLD_TEMP_C),
)

# Gas constant, kcal/(mol K)
GAS_CONSTANT = 1.987e-3
KELVIN = 273.15
MISSING_K = 1e-10

EquilibriumOptions = namedtuple(
    "EquilibriumOptions",
    "temperature primer_conc template_conc include_off_target refine "
    "max_iterations tolerance",
    defaults=(55.0, 0.5e-6, 1e-9, True, False, 50, 1e-12),
)

EFFICIENCY_TIERS = [
    (0.95, "excellent"),
    (0.85, "good"),
    (0.70, "acceptable"),
    (0.50, "marginal"),
]

# Hairpin loop initiation dG (kcal/mol) at 37C, SantaLucia & Hicks 2004
HAIRPIN_LOOP_DG = {
    3: 3.5,
    4: 3.5,
    5: 3.3,
    6: 4.0,
    7: 4.2,
    8: 4.3,
    9: 4.5,
    10: 4.6,
    12: 5.0,
}
HAIRPIN_LOOP_MIN = 3
HAIRPIN_LOOP_MAX = 12
HAIRPIN_STEM_MIN = 3
DIMER_STACK_MIN = 3
INTERNAL_DIMER_WEIGHT = 0.8
OFF_TARGET_ANCHOR = 8
OFF_TARGET_KMER = 10

# Legacy penalty model
Optimum = namedtuple("Optimum", "tm gc length", defaults=(62.0, 0.5, 22))
PenaltyWeights = namedtuple(
    "PenaltyWeights",
    "tm tm_diff gc length dg off_target",
    defaults=(1.0, 1.0, 0.2, 0.5, 2.0, 20.0),
)

# Piecewise curve breakpoints
Range = namedtuple("Range", "opt_low opt_high acc_low acc_high")

DEFAULT_WEIGHTS = {
    "off_target": 0.25,
    "terminal_3_dg": 0.20,
    "g_quadruplex_rev": 0.15,
    "g_quadruplex_fwd": 0.05,
    "tm_rev": 0.05,
    "hairpin_rev": 0.05,
    "heterodimer": 0.06,
    "gc_rev": 0.04,
    "self_dimer_fwd": 0.04,
    "self_dimer_rev": 0.04,
    "three_prime_comp_fwd": 0.04,
    "three_prime_comp_rev": 0.04,
    "gc_fwd": 0.02,
    "gc_clamp_fwd": 0.03,
    "gc_clamp_rev": 0.03,
    "tm_diff": 0.03,
    "tm_fwd": 0.02,
    "hairpin_fwd": 0.02,
    "homopolymer_fwd": 0.02,
    "homopolymer_rev": 0.02,
    "amplicon_length": 0.02,
    "amplicon_structure": 0.02,
    "length_fwd": 0.01,
    "length_rev": 0.01,
    "terminal_base_fwd": 0.01,
    "terminal_base_rev": 0.01,
    "length_diff": 0.01,
    "distance_to_roi": 0.01,
}

ScoringPreset = namedtuple(
    "ScoringPreset",
    "name tm gc length hairpin_threshold homodimer_threshold "
    "heterodimer_threshold tm_method weights",
)
SCORING_PRESETS = {
    "AMPLIFICATION": ScoringPreset(
        "Amplification (PCR)",
        Range(55, 60, 50, 65),
        Range(40, 60, 30, 70),
        Range(18, 24, 15, 30),
        -3.0,
        -6.0,
        -6.0,
        "santalucia",
        DEFAULT_WEIGHTS,
    ),
    "SEQUENCING": ScoringPreset(
        "Sanger Sequencing",
        Range(55, 60, 50, 65),
        Range(40, 60, 30, 70),
        Range(18, 24, 15, 30),
        -2.5,
        -5.0,
        -5.0,
        "santalucia",
        dict(DEFAULT_WEIGHTS, off_target=0.30),
    ),
    "ASSEMBLY": ScoringPreset(
        "Gibson/NEBuilder Assembly",
        Range(48, 65, 43, 70),
        Range(40, 60, 30, 70),
        Range(18, 30, 15, 36),
        -3.0,
        -6.0,
        -6.0,
        "q5",
        dict(DEFAULT_WEIGHTS, heterodimer=0.15),
    ),
    "MUTAGENESIS": ScoringPreset(
        "Site-Directed Mutagenesis",
        Range(50, 72, 45, 77),
        Range(40, 60, 30, 70),
        Range(25, 45, 22, 51),
        -3.0,
        -6.0,
        -6.0,
        "q5",
        dict(DEFAULT_WEIGHTS, terminal_3_dg=0.25, heterodimer=0.15),
    ),
}
DEFAULT_PRESET = SCORING_PRESETS["AMPLIFICATION"]

# Weight groups scaled together by an application multiplier
WEIGHT_GROUPS = {
    "tm": ["tm_fwd", "tm_rev", "tm_diff"],
    "gc": ["gc_fwd", "gc_rev"],
    "hairpin": ["hairpin_fwd", "hairpin_rev"],
    "homodimer": ["self_dimer_fwd", "self_dimer_rev"],
    "heterodimer": ["heterodimer"],
    "terminal_3_dg": ["terminal_3_dg"],
    "off_target": ["off_target"],
}
WEIGHT_MULTIPLIERS = {
    "DEFAULT": {},
    "QPCR": {"tm": 1.3, "gc": 1.2, "heterodimer": 1.4, "homodimer": 1.3},
    "COLONY_PCR": {"tm": 0.9, "hairpin": 0.8, "homodimer": 0.8},
    "LONG_RANGE": {"tm": 1.2, "terminal_3_dg": 1.4, "hairpin": 1.1},
    "GC_RICH": {"hairpin": 1.5, "homodimer": 1.3, "tm": 1.2},
    "AT_RICH": {"terminal_3_dg": 1.3, "tm": 1.1},
    "MULTIPLEX": {"heterodimer": 1.6, "tm": 1.4, "homodimer": 1.2},
    "HIGH_FIDELITY": {"off_target": 1.5, "terminal_3_dg": 1.3, "heterodimer": 1.2},
}

QUALITY_TIERS = [
    (90, "excellent"),
    (75, "good"),
    (60, "acceptable"),
    (40, "marginal"),
]
CRITICAL_WARNING_PENALTY = 20
CRITICAL_LENGTH_EXCESS = 15
CRITICAL_HOMOPOLYMER = 6
CRITICAL_TM_DIFF = 8.0
WARN_TM_DIFF = 5.0

# Tier 1 hard bounds
TM_BOUNDS = (45.0, 72.0)
GC_BOUNDS = (0.20, 0.80)
QUICK_SCORE_FLOOR = 0.01

# Tier 2/3 sizes and early rejects
TOP_N = 10
TOP_N_EXHAUSTIVE = 50
REJECT_TM_DIFF = 8.0
REJECT_HETERODIMER_DG = -10.0

# Joint Tm optimisation
TM_BIN_WIDTH = 2
TM_BIN_TOLERANCE = 8
CANDIDATES_PER_BIN = 10
CANDIDATES_PER_BIN_EXHAUSTIVE = 100
JOINT_MAX_TM_DIFF = 5.0
JOINT_TOP_K = 20

# Alternatives
MAX_ALTERNATIVES = 10
ALT_MIN_SCORE = 50
ALT_MAX_TM = 72.0
ALT_MAX_TM_DIFF = 5.0
ALT_MIN_HETERODIMER_DG = -10.0
CATEGORY_SIZE = 3

# Diversity distance normalisation
DiversityRanges = namedtuple(
    "DiversityRanges", "position length tm", defaults=(100, 10, 15)
)

# Smart design
SmartDesignLimits = namedtuple(
    "SmartDesignLimits",
    "extend_max contract_max terminal_dg_optimal terminal_dg_acceptable "
    "terminal_dg_min terminal_dg_max max_hairpin_worsening hairpin_floor "
    "max_tm_diff_worsening",
    defaults=(3, 2, (-11.0, -6.0), (-14.0, -4.0), -15.0, -3.0, 3.0, -6.0, 2.0),
)
SMART_DESIGN_TARGET = 75

SearchOptions = namedtuple(
    "SearchOptions",
    "optimum penalties preset thermo use_composite_score use_smart_design "
    "smart_design_target_score allow_extended_primers exhaustive_search "
    "annealing_temperature include_equilibrium application",
    defaults=(
        Optimum(),
        PenaltyWeights(),
        DEFAULT_PRESET,
        ThermoOptions(),
        True,
        False,
        SMART_DESIGN_TARGET,
        False,
        False,
        55.0,
        True,
        "DEFAULT",
    ),
)
