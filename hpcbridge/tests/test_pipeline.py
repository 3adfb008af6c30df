import shlex

import pytest

from hpcbridge.config import PipelineConfig
from hpcbridge.pipeline import build_command, PipelineOptions


@pytest.fixture
def config():
    return PipelineConfig(
        path="/opt/pipeline",
        kraken2_db="/db/kraken2",
        checkv_db="/db/checkv",
        blastdb_viruses="/db/blast/viruses",
        blastdb_nt="/db/blast/nt",
        blastdb_nr="/db/blast/nr",
        diamonddb="/db/diamond/nr.dmnd",
    )


def _options(command):
    """Parse the --flag value pairs of a command into a dictionary."""
    words = shlex.split(command)
    options = {}

    for i, word in enumerate(words):
        if word.startswith("-"):
            has_value = i + 1 < len(words) and not words[i + 1].startswith("-")
            options[word] = words[i + 1] if has_value else True

    return words, options


def test_default_command(config):
    words, options = _options(build_command("/data/p1", PipelineOptions(), config))

    assert words[:3] == ["nextflow", "run", "/opt/pipeline/main.nf"]

    assert options["--input"] == "/data/p1/raw/samplesheet.csv"
    assert options["--outdir"] == "/data/p1/results"
    assert options["--kraken2_db"] == "/db/kraken2"
    assert options["--checkv_db"] == "/db/checkv"
    assert options["--adapters"] == "/opt/pipeline/assets/illumina_adapter.fa"
    assert options["--blastdb_viruses"] == "/db/blast/viruses"
    assert options["--blastdb_nt"] == "/db/blast/nt"
    assert options["--blastdb_nr"] == "/db/blast/nr"
    assert options["--diamonddb"] == "/db/diamond/nr.dmnd"
    assert options["--trimming_tool"] == "fastp"
    assert options["--assembler"] == "megahit"
    assert options["--quality"] == "20"
    assert options["--min_contig_length"] == "200"
    assert options["-profile"] == "slurm"

    assert "--queue" not in options
    assert not any(word.startswith("--skip_") for word in words)


def test_custom_options(config):
    options = PipelineOptions(
        trimming_tool="trimmomatic",
        assembler="spades",
        min_contig_length=500,
        quality=30,
        profile="local",
        queue="long",
        skip_assembly=True,
        skip_final_report=True,
    )

    words, parsed = _options(build_command("/data/p1", options, config))

    assert parsed["--trimming_tool"] == "trimmomatic"
    assert parsed["--assembler"] == "spades"
    assert parsed["--min_contig_length"] == "500"
    assert parsed["--quality"] == "30"
    assert parsed["-profile"] == "local"
    assert parsed["--queue"] == "long"

    assert [word for word in words if word.startswith("--skip_")] == [
        "--skip_assembly",
        "--skip_final_report",
    ]


def test_paths_are_quoted(config):
    command = build_command("/data/my project; rm -rf ~", PipelineOptions(), config)

    _, options = _options(command)

    assert options["--input"] == "/data/my project; rm -rf ~/raw/samplesheet.csv"
    assert "'/data/my project; rm -rf ~/results'" in command


def test_pipeline_path_required():
    with pytest.raises(ValueError):
        build_command("/data/p1", PipelineOptions(), PipelineConfig())
