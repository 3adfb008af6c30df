"""Module that composes the Nextflow command that runs the analysis pipeline."""

from dataclasses import dataclass
import posixpath
import shlex
from typing import List

from hpcbridge.config import PipelineConfig

# Pipeline stages that can be skipped, in the order their flags are emitted
SKIPPABLE_STAGES = (
    "quality",
    "trimming",
    "assembly",
    "blast_annotation",
    "taxonomic_profiling",
    "viral_analysis",
    "coverage_analysis",
    "contig_organization",
    "visualization",
    "final_report",
)


@dataclass
class PipelineOptions:
    """User-selectable options of a pipeline run."""

    trimming_tool: str = "fastp"
    assembler: str = "megahit"
    min_contig_length: int = 200
    quality: int = 20
    profile: str = "slurm"
    queue: str = ""

    skip_quality: bool = False
    skip_trimming: bool = False
    skip_assembly: bool = False
    skip_blast_annotation: bool = False
    skip_taxonomic_profiling: bool = False
    skip_viral_analysis: bool = False
    skip_coverage_analysis: bool = False
    skip_contig_organization: bool = False
    skip_visualization: bool = False
    skip_final_report: bool = False


def build_command(
    project_path: str, options: PipelineOptions, config: PipelineConfig
) -> str:
    """Compose the full pipeline command for a project directory."""
    if not config.path:
        raise ValueError("pipeline path is not configured")

    q = shlex.quote

    parts: List[str] = ["nextflow", "run", q(posixpath.join(config.path, "main.nf"))]

    # Inputs and outputs
    parts += ["--input", q(posixpath.join(project_path, "raw", "samplesheet.csv"))]
    parts += ["--outdir", q(posixpath.join(project_path, "results"))]

    # Databases
    parts += ["--kraken2_db", q(config.kraken2_db)]
    parts += ["--checkv_db", q(config.checkv_db)]
    parts += [
        "--adapters",
        q(posixpath.join(config.path, "assets", "illumina_adapter.fa")),
    ]
    parts += ["--blastdb_viruses", q(config.blastdb_viruses)]
    parts += ["--blastdb_nt", q(config.blastdb_nt)]
    parts += ["--blastdb_nr", q(config.blastdb_nr)]
    parts += ["--diamonddb", q(config.diamonddb)]

    # Tools and quality parameters
    parts += ["--trimming_tool", q(options.trimming_tool)]
    parts += ["--assembler", q(options.assembler)]
    parts += ["--quality", str(int(options.quality))]
    parts += ["--min_contig_length", str(int(options.min_contig_length))]

    # Execution
    parts += ["-profile", q(options.profile)]

    if options.queue:
        parts += ["--queue", q(options.queue)]

    for stage in SKIPPABLE_STAGES:
        if getattr(options, f"skip_{stage}"):
            parts.append(f"--skip_{stage}")

    return " ".join(parts)
