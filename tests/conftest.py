"""
Pytest configuration and shared fixtures.

Two kinds of test data:

    generate_beataml_inputs():
        Raw tables shaped like the BeatAML release (expression table with
        annotation columns, per-call mutation records, clinical sample map),
        with genes and subtypes placed on both sides of every filter.

    small_cohort:
        A hand-built 10-patient cohort whose rank-sum results are known
        exactly, for statistics and lookup tests.
"""

import numpy as np
import pandas as pd
import pytest

from amlsubtypes.cohort import Cohort, build_cohort
from amlsubtypes.core.matrices import ExpressionMatrix, MutationMatrix
from amlsubtypes.lookup import SubtypeExpressionLookup
from amlsubtypes.quality.filtering import ZScaleTransform
from amlsubtypes.stats.results import build_stat_result


def _spread(rng: np.random.RandomState, n: int, center: float, scale: float) -> np.ndarray:
    """Shuffled, evenly spaced values: SD ~ scale, range center +/- 1.7 * scale."""
    return center + scale * rng.permutation(np.linspace(-1.7, 1.7, n))


def generate_beataml_inputs(n_patients: int = 40, seed: int = 7):
    """
    Generate raw BeatAML-style inputs.

    Patients are P001..P{n}; patient i has RNA sample R{i} and DNA sample D{i}.

    Genes (expression table rows):
        HIF1A       passes all filters; +6 in NPM1-mutated patients
        MYC, GATA2, KRAS
                    pass all filters, no subtype effect
        LOWEXP      fails the detection filter (values around 2)
        FLAT        fails the variability filter (SD ~ 0.1)
        AC004893.1, HLA-A, C9orf72
                    protein coding but excluded by the symbol filter
        LINC00001   not protein coding

    Mutated genes (distinct patients):
        NPM1 10, FLT3 8, DNMT3A 4, TP53 2 (exactly 5% of 40), RARE1 1

    Returns:
        (expression_table, mutation_calls, sample_map)
    """
    rng = np.random.RandomState(seed)
    patients = [f"P{i:03d}" for i in range(1, n_patients + 1)]
    rna = [f"R{i:03d}" for i in range(1, n_patients + 1)]
    dna = [f"D{i:03d}" for i in range(1, n_patients + 1)]

    npm1 = set(patients[0:10])
    flt3 = set(patients[5:13])
    dnmt3a = set(patients[20:24])
    tp53 = set(patients[30:32])
    rare1 = {patients[35]}

    genes = [
        ("HIF1A", "protein_coding", _spread(rng, n_patients, 8.0, 1.5)),
        ("MYC", "protein_coding", _spread(rng, n_patients, 7.0, 1.5)),
        ("GATA2", "protein_coding", _spread(rng, n_patients, 6.5, 1.2)),
        ("KRAS", "protein_coding", _spread(rng, n_patients, 9.0, 1.4)),
        ("LOWEXP", "protein_coding", _spread(rng, n_patients, 2.0, 1.0)),
        ("FLAT", "protein_coding", _spread(rng, n_patients, 9.0, 0.1)),
        ("AC004893.1", "protein_coding", _spread(rng, n_patients, 7.0, 1.5)),
        ("HLA-A", "protein_coding", _spread(rng, n_patients, 7.0, 1.5)),
        ("C9orf72", "protein_coding", _spread(rng, n_patients, 7.0, 1.5)),
        ("LINC00001", "lincRNA", _spread(rng, n_patients, 7.0, 1.5)),
    ]
    hif1a = genes[0][2]
    for j, patient in enumerate(patients):
        if patient in npm1:
            hif1a[j] += 6.0

    values = np.vstack([g[2] for g in genes])
    expression = pd.DataFrame(values, columns=rna)
    # Column order in the file is not the patient order
    expression = expression[list(reversed(rna))]
    expression["R_ORPHAN"] = 7.0
    expression.insert(0, "stable_id", [f"ENSG{i:011d}" for i in range(len(genes))])
    expression.insert(1, "display_label", [g[0] for g in genes])
    expression.insert(2, "description", [f"{g[0]} description" for g in genes])
    expression.insert(3, "biotype", [g[1] for g in genes])

    calls = []
    for gene, members in [("NPM1", npm1), ("FLT3", flt3), ("DNMT3A", dnmt3a),
                          ("TP53", tp53), ("RARE1", rare1)]:
        for patient in sorted(members):
            calls.append((dna[patients.index(patient)], gene, 0.4))
    # A second call in the same gene and patient counts once
    calls.append((dna[0], "NPM1", 0.35))
    # Calls on samples outside the cohort are ignored
    calls.append(("D_UNKNOWN", "NPM1", 0.5))
    calls.append(("D_UNKNOWN", "ASXL1", 0.5))
    mutation_calls = pd.DataFrame(calls, columns=["dbgap_sample_id", "symbol", "t_vaf"])

    sample_map = pd.DataFrame({
        "dbgap_subject_id": patients + ["P900", "P901"],
        "dbgap_rnaseq_sample": rna + ["R900", None],
        "dbgap_dnaseq_sample": dna + ["D900", "D901"],
        "consensus_sex": ["F", "M"] * (n_patients // 2) + ["F", "M"],
    })
    sample_map = sample_map.sample(frac=1.0, random_state=seed).reset_index(drop=True)

    return expression, mutation_calls, sample_map


@pytest.fixture
def beataml_inputs():
    """Raw inputs for a 40-patient synthetic cohort."""
    return generate_beataml_inputs()


@pytest.fixture
def beataml_cohort(beataml_inputs):
    """Aligned cohort built from beataml_inputs with default configuration."""
    expression, calls, sample_map = beataml_inputs
    return build_cohort(expression, calls, sample_map)


def build_small_cohort() -> Cohort:
    """
    Hand-built 10-patient cohort.

    G1: P01-P05 = 11..15, P06-P10 = 1..5 (complete separation on S1)
    G2: no relation to S1 or S2
    S1: P01-P05 mutated
    S2: P01 and P06 mutated
    S3: nobody mutated (every G x S3 cell is not computable)
    """
    patients = [f"P{i:02d}" for i in range(1, 11)]
    raw = ExpressionMatrix(
        data=np.array([
            [11, 12, 13, 14, 15, 1, 2, 3, 4, 5],
            [3, 8, 1, 10, 6, 2, 9, 4, 7, 5],
        ], dtype=float),
        gene_ids=["G1", "G2"],
        patient_ids=patients,
    )
    mutations = MutationMatrix(
        data=np.array([
            [1, 1, 0],
            [1, 0, 0],
            [1, 0, 0],
            [1, 0, 0],
            [1, 0, 0],
            [0, 1, 0],
            [0, 0, 0],
            [0, 0, 0],
            [0, 0, 0],
            [0, 0, 0],
        ]),
        patient_ids=patients,
        subtypes=["S1", "S2", "S3"],
    )
    return Cohort(raw=raw, zscaled=ZScaleTransform().apply(raw), mutations=mutations)


@pytest.fixture
def small_cohort():
    return build_small_cohort()


@pytest.fixture
def small_stat_result(small_cohort):
    return build_stat_result(small_cohort)


@pytest.fixture
def small_lookup(small_cohort, small_stat_result):
    return SubtypeExpressionLookup(
        raw=small_cohort.raw,
        zscaled=small_cohort.zscaled,
        mutations=small_cohort.mutations,
        stat_result=small_stat_result,
    )


def write_raw_inputs(directory, expression, calls, sample_map):
    """Write raw inputs the way they are distributed; returns the three paths."""
    expression_path = directory / "beataml_norm_exp.txt"
    calls_path = directory / "beataml_wes_mutations.txt"
    clinical_path = directory / "beataml_clinical.csv"
    expression.to_csv(expression_path, sep="\t", index=False)
    calls.to_csv(calls_path, sep="\t", index=False)
    sample_map.to_csv(clinical_path, index=False)
    return expression_path, calls_path, clinical_path
