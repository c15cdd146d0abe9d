"""
Named configuration for the offline preparation and the statistics build.

Every threshold that decides whether a gene or subtype is kept lives here
as a named value, so the question "why was this gene excluded?" has an
inspectable answer that is also written into the build manifest.

Defaults reproduce the published BeatAML app:
    - Filter 1: normalized expression > 4 in more than 99% of patients
    - Filter 2: standard deviation > 1 across patients
    - Subtypes: genes mutated in at least 5% of the cohort

Supports YAML and JSON config files; CLI flags override file values.

Examples:
    >>> config = load_pipeline_config(Path("beataml.yaml"))
    >>> config.filters.detection_threshold
    4.0
    >>> config = config.with_overrides(min_prevalence=0.1)
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

__all__ = [
    'FilterConfig',
    'SubtypeConfig',
    'RankSumConfig',
    'SignificanceConfig',
    'InputColumns',
    'PipelineConfig',
    'load_config',
    'load_pipeline_config',
    'validate_config',
]


@dataclass(frozen=True)
class FilterConfig:
    """Gene filters applied to the expression matrix."""
    biotype: str = "protein_coding"
    excluded_substrings: Tuple[str, ...] = (".", "-")
    excluded_patterns: Tuple[str, ...] = (r"^C\d+orf\d+$",)
    detection_threshold: float = 4.0
    detection_fraction: float = 0.99
    min_sd: float = 1.0
    ddof: int = 1


@dataclass(frozen=True)
class SubtypeConfig:
    """Prevalence filter that defines the genetic subtype panel."""
    min_prevalence: float = 0.05
    # Calls with VAF below this do not count; missing VAF always counts.
    min_vaf: float = 0.0


@dataclass(frozen=True)
class RankSumConfig:
    """Mann-Whitney U test variant."""
    method: str = "asymptotic"
    use_continuity: bool = False
    alternative: str = "two-sided"


@dataclass(frozen=True)
class SignificanceConfig:
    """FDR method and adjusted p-value cutoffs for significance labels."""
    fdr_method: str = "fdr_bh"
    # (cutoff, label) pairs checked in order; first padj < cutoff wins.
    tiers: Tuple[Tuple[float, str], ...] = (
        (0.0001, "***"),
        (0.001, "**"),
        (0.01, "**"),
        (0.05, "*"),
    )
    summary_digits: int = 2


@dataclass(frozen=True)
class InputColumns:
    """Column names of the raw BeatAML input files."""
    expression_gene_id: str = "stable_id"
    expression_symbol: str = "display_label"
    expression_biotype: str = "biotype"
    expression_annotations: Tuple[str, ...] = ("description",)
    mutation_sample: str = "dbgap_sample_id"
    mutation_symbol: str = "symbol"
    mutation_vaf: str = "t_vaf"
    clinical_patient: str = "dbgap_subject_id"
    clinical_rna_sample: str = "dbgap_rnaseq_sample"
    clinical_dna_sample: str = "dbgap_dnaseq_sample"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Complete configuration for the prepare command.

    Mirrors the config-file structure: one section per dataclass.
    """
    filters: FilterConfig = field(default_factory=FilterConfig)
    subtypes: SubtypeConfig = field(default_factory=SubtypeConfig)
    rank_sum: RankSumConfig = field(default_factory=RankSumConfig)
    significance: SignificanceConfig = field(default_factory=SignificanceConfig)
    columns: InputColumns = field(default_factory=InputColumns)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> PipelineConfig:
        """
        Build from a nested dictionary (as returned by load_config).

        Unknown sections or keys raise ValueError so typos are not silently
        ignored.
        """
        validate_config(config)
        sections = {
            'filters': FilterConfig,
            'subtypes': SubtypeConfig,
            'rank_sum': RankSumConfig,
            'significance': SignificanceConfig,
            'columns': InputColumns,
        }
        unknown = set(config) - set(sections)
        if unknown:
            raise ValueError(
                f"Unknown config sections: {sorted(unknown)}. "
                f"Valid sections: {', '.join(sections)}"
            )

        kwargs = {}
        for name, section_cls in sections.items():
            values = dict(config.get(name) or {})
            valid_keys = {f.name for f in fields(section_cls)}
            bad_keys = set(values) - valid_keys
            if bad_keys:
                raise ValueError(
                    f"Unknown keys in '{name}' section: {sorted(bad_keys)}"
                )
            for key, value in values.items():
                # YAML/JSON lists -> tuples to keep the dataclasses hashable
                if isinstance(value, list):
                    values[key] = tuple(
                        tuple(v) if isinstance(v, list) else v for v in value
                    )
            kwargs[name] = section_cls(**values)
        return cls(**kwargs)

    def with_overrides(
        self,
        detection_threshold: Optional[float] = None,
        detection_fraction: Optional[float] = None,
        min_sd: Optional[float] = None,
        min_prevalence: Optional[float] = None,
    ) -> PipelineConfig:
        """Return a copy with explicitly set CLI values taking precedence."""
        filter_updates = {
            k: v for k, v in {
                'detection_threshold': detection_threshold,
                'detection_fraction': detection_fraction,
                'min_sd': min_sd,
            }.items() if v is not None
        }
        subtype_updates = {} if min_prevalence is None else {'min_prevalence': min_prevalence}
        return replace(
            self,
            filters=replace(self.filters, **filter_updates),
            subtypes=replace(self.subtypes, **subtype_updates),
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form for the build manifest."""
        return asdict(self)


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    if suffix not in ('.yaml', '.yml', '.json'):
        raise ValueError(
            f"Unsupported config format: {suffix}. "
            f"Use .yaml, .yml, or .json"
        )

    try:
        with open(config_path, 'r') as f:
            if suffix == '.json':
                config = json.load(f)
            else:
                config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def load_pipeline_config(config_path: Optional[Path] = None) -> PipelineConfig:
    """Load a PipelineConfig from file, or the defaults when no path is given."""
    if config_path is None:
        return PipelineConfig()
    return PipelineConfig.from_dict(load_config(config_path))


def _check_fraction(section: Dict[str, Any], key: str, where: str) -> None:
    if key in section:
        value = section[key]
        if not isinstance(value, (int, float)) or not (0 <= value < 1):
            raise ValueError(f"{where}.{key} must be a number in [0, 1), got: {value}")


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate configuration values before building dataclasses.

    Raises:
        ValueError: If configuration is invalid
    """
    filters = config.get('filters') or {}
    _check_fraction(filters, 'detection_fraction', 'filters')
    if 'min_sd' in filters:
        min_sd = filters['min_sd']
        if not isinstance(min_sd, (int, float)) or min_sd < 0:
            raise ValueError(f"filters.min_sd must be non-negative, got: {min_sd}")

    subtypes = config.get('subtypes') or {}
    _check_fraction(subtypes, 'min_prevalence', 'subtypes')

    rank_sum = config.get('rank_sum') or {}
    if 'method' in rank_sum:
        valid_methods = ['asymptotic', 'exact', 'auto']
        if rank_sum['method'] not in valid_methods:
            raise ValueError(
                f"Invalid rank_sum method '{rank_sum['method']}'. "
                f"Choose from: {', '.join(valid_methods)}"
            )
    if 'alternative' in rank_sum:
        valid_alternatives = ['two-sided', 'less', 'greater']
        if rank_sum['alternative'] not in valid_alternatives:
            raise ValueError(
                f"Invalid rank_sum alternative '{rank_sum['alternative']}'. "
                f"Choose from: {', '.join(valid_alternatives)}"
            )

    significance = config.get('significance') or {}
    if 'fdr_method' in significance:
        valid_fdr = ['fdr_bh', 'fdr_by', 'bonferroni', 'holm']
        if significance['fdr_method'] not in valid_fdr:
            raise ValueError(
                f"Invalid fdr_method '{significance['fdr_method']}'. "
                f"Choose from: {', '.join(valid_fdr)}"
            )
