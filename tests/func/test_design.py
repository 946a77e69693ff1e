import pytest

from primalpair import config
from primalpair.primer import InvalidRangeError, InvalidSequenceError
from primalpair.search import CATEGORIES, STAGES, PairSearch, design_primers
from primalpair.thermo import reverse_complement as rc


class RecordingTracker:
    """Collects progress updates from a search."""

    def __init__(self):
        self.end = None
        self.considered = 0
        self.stage = None
        self.stages = []
        self.finished = False

    def goto(self, val):
        self.stages.append(self.stage)

    def finish(self):
        self.finished = True


@pytest.fixture(scope="module")
def design(template):
    return design_primers(template)


@pytest.fixture(scope="module")
def exhaustive_design(template):
    return design_primers(template, config.SearchOptions(exhaustive_search=True))


def test_primers_span_the_template(design, template):
    assert template.startswith(design.fwd.seq)
    assert template.endswith(rc(design.rev.seq))
    assert design.pair.amplicon_length == len(template)


def test_primer_lengths_within_limits(design):
    for primer in (design.fwd, design.rev):
        assert config.LEN_MIN <= primer.length <= config.LEN_MAX


def test_tm_total_equals_tm_without_additions(design):
    assert design.fwd.tm == design.fwd.tm_total
    assert design.rev.tm == design.rev.tm_total


def test_pair_is_scored(design):
    assert design.pair.fwd == design.fwd
    assert 0 <= design.pair.score <= 100
    assert design.fwd.scoring.efficiency is not None
    assert design.fwd.scoring.quality is not None


def test_alternatives_are_unique_and_exclude_best(design):
    keys = [alt.pair.key for alt in design.alternatives]

    assert len(keys) == len(set(keys))
    assert design.pair.key not in keys
    assert len(keys) <= config.MAX_ALTERNATIVES


def test_design_is_deterministic(design, template):
    again = design_primers(template)

    assert again.pair.key == design.pair.key
    assert [a.pair.key for a in again.alternatives] == [
        a.pair.key for a in design.alternatives
    ]


def test_exhaustive_is_never_worse(design, exhaustive_design):
    assert exhaustive_design.pair.score >= design.pair.score


def test_exhaustive_categories(exhaustive_design):
    categories = exhaustive_design.categories
    keys = [p.key for pairs in categories.values() for p in pairs]

    assert list(categories) == CATEGORIES
    assert len(keys) == len(set(keys))
    assert exhaustive_design.pair.key not in keys
    assert all(len(pairs) <= config.CATEGORY_SIZE for pairs in categories.values())


def test_heuristic_has_no_categories(design):
    assert design.categories == {}


def test_fwd_addition(template):
    design = design_primers(template, add_fwd="GGTCTC")

    assert design.fwd.seq.startswith("GGTCTC")
    assert design.fwd.tm < design.fwd.tm_total
    assert template.startswith(design.fwd.seq[6:])


def test_rev_addition(template):
    design = design_primers(template, add_rev="GGTCTC")

    assert design.rev.seq.startswith("GGTCTC")
    assert template.endswith(rc(design.rev.seq[6:]))


def test_addition_range_min_above_max_raises(template):
    with pytest.raises(InvalidRangeError):
        design_primers(template, add_fwd="GGTCTC", add_fwd_len=(5, 2))


def test_rna_template_raises(template):
    with pytest.raises(InvalidSequenceError):
        design_primers(template.replace("T", "U"))


def test_too_short_template_raises(template):
    with pytest.raises(InvalidSequenceError, match="too short"):
        PairSearch(template[:20])


def test_case_insensitive_template(short_template, template):
    upper = design_primers(short_template, offtarget_check=template)
    lower = design_primers(short_template.lower(), offtarget_check=template.lower())

    assert upper.pair.key == lower.pair.key


def test_off_target_counted_for_repeated_start(repeated_start_template):
    design = design_primers(repeated_start_template)

    assert design.fwd.off_target_count >= 1
    assert design.fwd.scoring.penalty_off_target > 0
    assert design.fwd.scoring.losses.off_target > 0


def test_progress_tracker_follows_stages(template):
    tracker = RecordingTracker()
    search = PairSearch(template, progress_tracker=tracker)
    search.design()

    assert tracker.end == len(STAGES)
    assert tracker.stages[: len(STAGES)] == STAGES
    assert tracker.considered == search.considered > 0
    assert tracker.finished


def test_smart_design_report(template):
    options = config.SearchOptions(use_smart_design=True)
    design = design_primers(template, options)

    assert design.smart is not None
    assert design.smart.reason
    assert design.pair.fwd == design.fwd
