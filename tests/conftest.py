import pytest
import random

from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

TEMPLATE = (
    "CTACTAATAGCACACACGGGGCAATACCAGCACAAGCTAGTCTCGCGGGAACGCTCGTCAGCATACGAAAGAGCTT"
    "AAGGCACGCCAATTCGCACTGTCAGGGTCACTTGGGTGTTTTGCACTACCGTCAGGTACGCTAGTATGCGTTCTTCC"
    "TTCCAGAGGTATGTGGCTGCGTGGTCAAAAGTGCGGCATTCGTATTTGCTCCTCGTGTTTACTCTCACAAACTTGAC"
    "CTGGAGATCAAGGAGATGCTTCTTGTGGAACTGGACAACGCATCAACGCAACGGATCTACGTTACAGCGT"
)
SHORT_TEMPLATE = "AATGAGACAATAGCACACACAGCTAGGTCAGCATACGAAA"


def random_seq(seq_len, gc=0.5, seed=1):
    """A reproducible random sequence with a target GC fraction."""
    rng = random.Random(seed)
    bases = []
    for _ in range(seq_len):
        if rng.random() < gc:
            bases.append(rng.choice("GC"))
        else:
            bases.append(rng.choice("AT"))
    return "".join(bases)


def seq_record_factory(seq, id="template"):
    """Generate a SeqRecord for testing purposes"""
    return SeqRecord(Seq(seq), id=id, description="")


@pytest.fixture(scope="session")
def template():
    return TEMPLATE


@pytest.fixture(scope="session")
def short_template():
    return SHORT_TEMPLATE


@pytest.fixture(scope="session")
def temp_inputs_path(tmp_path_factory):
    """Return a temp_path for generating input files"""
    return tmp_path_factory.mktemp("inputs")


@pytest.fixture(scope="session")
def input_fasta_valid(temp_inputs_path):
    """A single valid template record"""
    fh = temp_inputs_path / "valid.fa"
    SeqIO.write(seq_record_factory(TEMPLATE.lower()), fh, "fasta")
    return fh


@pytest.fixture(scope="session")
def input_fasta_empty(temp_inputs_path):
    """Generate an empty fasta input file"""
    fh = temp_inputs_path / "empty_input.fa"
    fh.write_text("")
    return fh


@pytest.fixture(scope="session")
def input_fasta_invalid_alphabet(temp_inputs_path):
    """Generate a fasta file with an invalid alphabet"""
    fh = temp_inputs_path / "invalid_alphabet.fa"
    SeqIO.write(seq_record_factory(TEMPLATE[:100] + "RN" + TEMPLATE[100:]), fh, "fasta")
    return fh


@pytest.fixture(scope="session")
def input_fasta_two_records(temp_inputs_path):
    """Generate a fasta file with more than one record"""
    fh = temp_inputs_path / "two_records.fa"
    records = [
        seq_record_factory(TEMPLATE, id="first"),
        seq_record_factory(TEMPLATE, id="second"),
    ]
    SeqIO.write(records, fh, "fasta")
    return fh


@pytest.fixture(scope="session")
def input_fasta_short(temp_inputs_path):
    """Generate a fasta file with a too short record"""
    fh = temp_inputs_path / "short.fa"
    SeqIO.write(seq_record_factory(TEMPLATE[:20]), fh, "fasta")
    return fh


@pytest.fixture(scope="session")
def input_fasta_with_gaps(temp_inputs_path):
    """Generate a fasta file that includes gaps"""
    fh = temp_inputs_path / "with_gaps.fa"
    SeqIO.write(seq_record_factory(TEMPLATE[:50] + "---" + TEMPLATE[50:]), fh, "fasta")
    return fh


@pytest.fixture(scope="session")
def repeated_start_template():
    """A template whose first 45 bases occur again internally"""
    head = random_seq(45, gc=0.6, seed=3)
    body = random_seq(210, gc=0.6, seed=4)
    return head + body[:100] + head + body[100:]


@pytest.fixture(scope="session")
def input_fasta_short_template(temp_inputs_path):
    """A short template, below the design minimum but fine for scoring"""
    fh = temp_inputs_path / "short_template.fa"
    SeqIO.write(seq_record_factory(SHORT_TEMPLATE), fh, "fasta")
    return fh
