# src/metaprog/programs/__init__.py

from .cluster import Partition, cluster_programs
from .config import MetaProgramConfig, MultiNMFConfig, PipelineConfig, load_config
from .extract import Program, ProgramKey, extract_all_programs, extract_programs, gene_universe
from .factors import FactorMatrix, FactorStore, factor_from_anndata, run_multi_nmf, run_nmf
from .metaprograms import (
    MetaProgram,
    MetaProgramResult,
    drop_meta_programs,
    get_meta_programs,
    save_meta_program_result,
    signature_gene_sets,
)
from .metrics import compute_metrics
from .scoring import score_meta_programs
from .signature import ConsensusSignature, build_signature, build_signatures
from .similarity import SimilarityMatrix, compute_similarity

__all__ = [
    "Partition",
    "cluster_programs",
    "MetaProgramConfig",
    "MultiNMFConfig",
    "PipelineConfig",
    "load_config",
    "Program",
    "ProgramKey",
    "extract_all_programs",
    "extract_programs",
    "gene_universe",
    "FactorMatrix",
    "FactorStore",
    "factor_from_anndata",
    "run_multi_nmf",
    "run_nmf",
    "MetaProgram",
    "MetaProgramResult",
    "drop_meta_programs",
    "get_meta_programs",
    "save_meta_program_result",
    "signature_gene_sets",
    "compute_metrics",
    "score_meta_programs",
    "ConsensusSignature",
    "build_signature",
    "build_signatures",
    "SimilarityMatrix",
    "compute_similarity",
]
