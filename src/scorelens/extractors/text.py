"""Explanations for the non-LLM text metrics: BLEU, ROUGE, chrF, string similarity.

These metrics involve no judge models. Their explanation shows the two
input texts, the configuration, the computation that produced the
score, and the score itself. The scoring formulas are computed
upstream; only their configuration is described here.
"""

from __future__ import annotations

from typing import Any

from scorelens.explanation.interpretation import format_percent, standard_interpretation, truncate
from scorelens.explanation.models import (
    BleuExplanation,
    ChrfExplanation,
    ExplanationItem,
    RougeExplanation,
    StepExplanation,
    StringSimilarityExplanation,
)
from scorelens.extraction.payloads import reference_from_prompt, response_from_prompt
from scorelens.extraction.steps import RunReader
from scorelens.extractors.common import compute_score_step
from scorelens.models.metadata import BleuMetadata, ChrfMetadata, RougeMetadata, StringSimilarityMetadata

_TEXT_MEANINGS = (
    "The response is nearly identical to the reference.",
    "The response closely matches the reference.",
    "The response partially overlaps with the reference.",
    "The response has little overlap with the reference.",
)


def _text_steps(
    score: float | None,
    *,
    response: str,
    reference: str,
    configuration: dict[str, str],
    compute_name: str,
    compute_title: str,
    compute_description: str,
    text_limit: int,
) -> list[StepExplanation]:
    return [
        StepExplanation(
            step_name="InputTexts",
            step_number=1,
            title="Input texts",
            description="The response is compared with the reference answer.",
            items=[
                ExplanationItem(content=truncate(response, text_limit), source="response", index=1),
                ExplanationItem(content=truncate(reference, text_limit), source="reference", index=2),
            ],
        ),
        StepExplanation(
            step_name="Configuration",
            step_number=2,
            title="Configuration",
            metadata=configuration,
            items=[ExplanationItem(content=f"{k} = {v}") for k, v in configuration.items()],
        ),
        StepExplanation(
            step_name=compute_name,
            step_number=3,
            title=compute_title,
            description=compute_description,
            output_summary=format_percent(score),
        ),
        compute_score_step(4, score, description="The computed similarity is the final score."),
    ]


def _text_texts(reader: RunReader) -> tuple[str, str]:
    return (
        reader.sample_text("response", response_from_prompt),
        reader.sample_text("reference", reference_from_prompt),
    )


def _has_compute_data(reader: RunReader) -> bool:
    return reader.score is not None or reader.not_calculated


# -- BLEU --

BLEU_DESCRIPTION = "Measures n-gram precision overlap between the response and the reference."


def build_bleu(
    score: float | None,
    *,
    response: str,
    reference: str,
    max_ngram: int = 4,
    smoothing: bool = True,
    text_limit: int = 200,
) -> BleuExplanation:
    steps = _text_steps(
        score,
        response=response,
        reference=reference,
        configuration={"max_ngram": str(max_ngram), "smoothing": str(smoothing).lower()},
        compute_name="ComputeBleu",
        compute_title="Compute BLEU",
        compute_description=(
            f"Geometric mean of 1..{max_ngram}-gram precisions multiplied by a brevity penalty"
            + (", with smoothing for zero counts." if smoothing else ".")
        ),
        text_limit=text_limit,
    )
    return BleuExplanation(
        score=score,
        simple_description=BLEU_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula=f"BLEU = BP × exp(Σ log p_n / {max_ngram})",
            meanings=_TEXT_MEANINGS,
        ),
        response=response,
        reference=reference,
        max_ngram=max_ngram,
        smoothing=smoothing,
    )


def bleu_from_metadata(reader: RunReader, metadata: BleuMetadata) -> BleuExplanation | None:
    response, reference = _text_texts(reader)
    return build_bleu(
        reader.score,
        response=response,
        reference=reference,
        max_ngram=metadata.max_ngram,
        smoothing=metadata.smoothing,
        text_limit=reader.text_limit,
    )


def bleu_from_steps(reader: RunReader) -> BleuExplanation | None:
    if not _has_compute_data(reader):
        return None
    response, reference = _text_texts(reader)
    return build_bleu(
        reader.score,
        response=response,
        reference=reference,
        max_ngram=int(reader.config_value("max_ngram", "maxNgram", default=4)),
        smoothing=_as_bool(reader.config_value("smoothing", default=True)),
        text_limit=reader.text_limit,
    )


# -- ROUGE --

ROUGE_DESCRIPTION = "Measures n-gram or longest-common-subsequence overlap between the response and the reference."


def build_rouge(
    score: float | None,
    *,
    response: str,
    reference: str,
    rouge_type: str = "ROUGE_L",
    mode: str = "FMEASURE",
    text_limit: int = 200,
) -> RougeExplanation:
    rouge_type = rouge_type.upper()
    mode = mode.upper()
    unit = "longest common subsequence" if rouge_type == "ROUGE_L" else f"{rouge_type[-1]}-gram overlap"
    steps = _text_steps(
        score,
        response=response,
        reference=reference,
        configuration={"rouge_type": rouge_type, "mode": mode},
        compute_name="ComputeRouge",
        compute_title=f"Compute {rouge_type.replace('_', '-')}",
        compute_description=f"{mode.lower()} of the {unit} between response and reference.",
        text_limit=text_limit,
    )
    return RougeExplanation(
        score=score,
        simple_description=ROUGE_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula=f"{rouge_type.replace('_', '-')} {mode.lower()}",
            meanings=_TEXT_MEANINGS,
        ),
        response=response,
        reference=reference,
        rouge_type=rouge_type,
        mode=mode,
    )


def rouge_from_metadata(reader: RunReader, metadata: RougeMetadata) -> RougeExplanation | None:
    response, reference = _text_texts(reader)
    return build_rouge(
        reader.score,
        response=response,
        reference=reference,
        rouge_type=metadata.rouge_type,
        mode=metadata.mode,
        text_limit=reader.text_limit,
    )


def rouge_from_steps(reader: RunReader) -> RougeExplanation | None:
    if not _has_compute_data(reader):
        return None
    response, reference = _text_texts(reader)
    return build_rouge(
        reader.score,
        response=response,
        reference=reference,
        rouge_type=str(reader.config_value("rouge_type", "rougeType", default="ROUGE_L")),
        mode=str(reader.config_value("mode", default="FMEASURE")),
        text_limit=reader.text_limit,
    )


# -- chrF --

CHRF_DESCRIPTION = "Measures character n-gram F-score between the response and the reference."


def build_chrf(
    score: float | None,
    *,
    response: str,
    reference: str,
    char_ngram_order: int = 6,
    word_ngram_order: int = 0,
    beta: float = 2.0,
    text_limit: int = 200,
) -> ChrfExplanation:
    variant = "chrF++" if word_ngram_order > 0 else "chrF"
    steps = _text_steps(
        score,
        response=response,
        reference=reference,
        configuration={
            "char_ngram_order": str(char_ngram_order),
            "word_ngram_order": str(word_ngram_order),
            "beta": f"{beta:g}",
        },
        compute_name="ComputeChrf",
        compute_title=f"Compute {variant}",
        compute_description=(
            f"F-beta (beta={beta:g}) over character 1..{char_ngram_order}-grams"
            + (f" and word 1..{word_ngram_order}-grams." if word_ngram_order > 0 else ".")
        ),
        text_limit=text_limit,
    )
    return ChrfExplanation(
        score=score,
        simple_description=CHRF_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula=f"{variant} = (1 + β²) × P × R / (β² × P + R)",
            meanings=_TEXT_MEANINGS,
        ),
        response=response,
        reference=reference,
        char_ngram_order=char_ngram_order,
        word_ngram_order=word_ngram_order,
        beta=beta,
    )


def chrf_from_metadata(reader: RunReader, metadata: ChrfMetadata) -> ChrfExplanation | None:
    response, reference = _text_texts(reader)
    return build_chrf(
        reader.score,
        response=response,
        reference=reference,
        char_ngram_order=metadata.char_ngram_order,
        word_ngram_order=metadata.word_ngram_order,
        beta=metadata.beta,
        text_limit=reader.text_limit,
    )


def chrf_from_steps(reader: RunReader) -> ChrfExplanation | None:
    if not _has_compute_data(reader):
        return None
    response, reference = _text_texts(reader)
    return build_chrf(
        reader.score,
        response=response,
        reference=reference,
        char_ngram_order=int(reader.config_value("char_ngram_order", "charNgramOrder", default=6)),
        word_ngram_order=int(reader.config_value("word_ngram_order", "wordNgramOrder", default=0)),
        beta=float(reader.config_value("beta", default=2.0)),
        text_limit=reader.text_limit,
    )


# -- String similarity --

STRING_DESCRIPTION = "Measures edit-distance based similarity between the response and the reference."

_DISTANCE_DESCRIPTIONS: dict[str, str] = {
    "LEVENSHTEIN": "1 - Levenshtein edit distance / length of the longer text.",
    "HAMMING": "1 - Hamming distance / text length.",
    "JARO": "Jaro similarity of matching characters and transpositions.",
    "JARO_WINKLER": "Jaro similarity boosted for a common prefix.",
}


def build_string_similarity(
    score: float | None,
    *,
    response: str,
    reference: str,
    distance_measure: str = "LEVENSHTEIN",
    case_sensitive: bool = True,
    text_limit: int = 200,
) -> StringSimilarityExplanation:
    measure = distance_measure.upper()
    steps = _text_steps(
        score,
        response=response,
        reference=reference,
        configuration={"distance_measure": measure, "case_sensitive": str(case_sensitive).lower()},
        compute_name="ComputeStringSimilarity",
        compute_title=f"Compute {measure.replace('_', '-').title()} similarity",
        compute_description=_DISTANCE_DESCRIPTIONS.get(measure, f"{measure} similarity.")
        + ("" if case_sensitive else " Texts are lower-cased first."),
        text_limit=text_limit,
    )
    return StringSimilarityExplanation(
        score=score,
        simple_description=STRING_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula=f"Similarity = 1 - {measure.lower()}_distance(response, reference) / max_length",
            meanings=_TEXT_MEANINGS,
        ),
        response=response,
        reference=reference,
        distance_measure=measure,
        case_sensitive=case_sensitive,
    )


def string_similarity_from_metadata(
    reader: RunReader, metadata: StringSimilarityMetadata
) -> StringSimilarityExplanation | None:
    response, reference = _text_texts(reader)
    return build_string_similarity(
        reader.score,
        response=response,
        reference=reference,
        distance_measure=metadata.distance_measure,
        case_sensitive=metadata.case_sensitive,
        text_limit=reader.text_limit,
    )


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def string_similarity_from_steps(reader: RunReader) -> StringSimilarityExplanation | None:
    if not _has_compute_data(reader):
        return None
    response, reference = _text_texts(reader)
    return build_string_similarity(
        reader.score,
        response=response,
        reference=reference,
        distance_measure=str(reader.config_value("distance_measure", "distanceMeasure", default="LEVENSHTEIN")),
        case_sensitive=_as_bool(reader.config_value("case_sensitive", "caseSensitive", default=True)),
        text_limit=reader.text_limit,
    )
