"""Explanations for answer-quality metrics.

Response relevancy, semantic similarity, factual correctness, answer
correctness, and answer accuracy compare the response with the user
input or the reference answer, either through embeddings, claim-level
NLI, or a pair of judges.
"""

from __future__ import annotations

import statistics

from scorelens.explanation.interpretation import format_percent, round_half_up, standard_interpretation, truncate
from scorelens.explanation.models import (
    AnswerAccuracyExplanation,
    AnswerCorrectnessExplanation,
    ClaimVerdict,
    ExplanationItem,
    FactualCorrectnessExplanation,
    GeneratedQuestion,
    JudgeRating,
    ModelStepResult,
    ResponseRelevancyExplanation,
    SemanticSimilarityExplanation,
    StepExplanation,
)
from scorelens.extraction.payloads import (
    get_bool,
    get_dicts,
    get_float,
    get_strings,
    get_text,
    question_from_prompt,
    reference_from_prompt,
    response_from_prompt,
)
from scorelens.extraction.steps import RunReader, first_entry
from scorelens.extractors.common import agreement_step, compute_score_step, failed_model_results, text_items
from scorelens.models.metadata import (
    AnswerAccuracyMetadata,
    AnswerCorrectnessMetadata,
    FactualCorrectnessMetadata,
    ResponseRelevancyMetadata,
    SemanticSimilarityMetadata,
)

COSINE_STEP = "ComputeCosineSimilarity"


def _similarity_results(similarities: dict[str, float]) -> list[ModelStepResult]:
    return [
        ModelStepResult(model_id=m, verdict=f"{s:.4f}", numeric_result=s)
        for m, s in similarities.items()
    ]


def _mean_calculation(similarities: dict[str, float], score: float | None) -> str:
    if not similarities:
        return format_percent(score)
    if len(similarities) == 1:
        value = first_entry(similarities)
        return f"cos = {value:.4f} = {format_percent(value)}"
    terms = " + ".join(f"{s:.4f}" for s in similarities.values())
    return f"({terms}) / {len(similarities)} = {format_percent(statistics.fmean(similarities.values()))}"


# -- Response relevancy --

RELEVANCY_DESCRIPTION = "Measures how well the response addresses the user's question."
QUESTIONS_STEP = "GenerateQuestions"

_RELEVANCY_MEANINGS = (
    "The response directly and completely addresses the question.",
    "The response addresses the question with minor digressions.",
    "The response only partially addresses the question.",
    "The response does not address the question or is noncommittal.",
)


def build_response_relevancy(
    score: float | None,
    *,
    response: str,
    question: str,
    questions: list[GeneratedQuestion],
    noncommittal: bool,
    model_similarities: dict[str, float],
    failed_models: dict[str, str] | None = None,
    text_limit: int = 200,
) -> ResponseRelevancyExplanation:
    """Assemble a ResponseRelevancyExplanation.

    Args:
        score: Aggregated score, or None.
        response: The evaluated response.
        question: The original user question, if known.
        questions: Questions regenerated from the response by the first model.
        noncommittal: Whether the response was judged evasive.
        model_similarities: Embedding model id to mean cosine similarity.
        failed_models: Model id to error for failed models.
        text_limit: Maximum echoed response length.
    """
    model_results = _similarity_results(model_similarities)
    model_results += failed_model_results(failed_models or {})

    steps = [
        StepExplanation(
            step_name=QUESTIONS_STEP,
            step_number=1,
            title="Generate questions from the response",
            description="Questions the response would answer are generated, and evasive answers are flagged.",
            input_data=truncate(response, text_limit) or None,
            output_summary=f"{len(questions)} questions" + (", noncommittal" if noncommittal else ""),
            items=[
                ExplanationItem(
                    content=q.question,
                    passed=not q.noncommittal,
                    verdict="NONCOMMITTAL" if q.noncommittal else None,
                    index=i,
                )
                for i, q in enumerate(questions, 1)
            ],
            metadata={"question": truncate(question, text_limit)} if question else {},
        ),
        agreement_step(
            COSINE_STEP,
            2,
            "Compare with the original question",
            model_results,
            description="Cosine similarity between the original question and each generated question, averaged.",
            output_summary=", ".join(f"{m}: {s:.4f}" for m, s in model_similarities.items()) or None,
        ),
        compute_score_step(3, score),
    ]

    calculation = "Noncommittal response → 0.0" if noncommittal else _mean_calculation(model_similarities, score)
    return ResponseRelevancyExplanation(
        score=score,
        simple_description=RELEVANCY_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Relevancy = mean(cos(question, generated_i)) × (1 - noncommittal)",
            calculation=calculation,
            meanings=_RELEVANCY_MEANINGS,
        ),
        response=response,
        questions=questions,
        noncommittal=noncommittal,
        model_similarities=model_similarities,
    )


def response_relevancy_from_metadata(
    reader: RunReader, metadata: ResponseRelevancyMetadata
) -> ResponseRelevancyExplanation | None:
    texts = first_entry(metadata.generated_questions) or []
    flags = first_entry(metadata.noncommittal_flags) or []
    questions = [
        GeneratedQuestion(question=q, noncommittal=flags[i] if i < len(flags) else False)
        for i, q in enumerate(texts)
    ]
    return build_response_relevancy(
        reader.score,
        response=reader.sample_text("response", response_from_prompt, QUESTIONS_STEP),
        question=reader.sample_text("user_input", question_from_prompt),
        questions=questions,
        noncommittal=any(flags),
        model_similarities=dict(metadata.similarity_scores),
        failed_models=reader.exclusion_causes(metadata.similarity_scores),
        text_limit=reader.text_limit,
    )


def _questions_from_payload(data: dict) -> tuple[list[GeneratedQuestion], bool]:
    overall = get_bool(data, "noncommittal") or False
    questions: list[GeneratedQuestion] = []
    for entry in data.get("questions") or []:
        if isinstance(entry, str):
            questions.append(GeneratedQuestion(question=entry, noncommittal=overall))
        elif isinstance(entry, dict) and isinstance(entry.get("question"), str):
            flag = get_bool(entry, "noncommittal")
            questions.append(
                GeneratedQuestion(question=entry["question"], noncommittal=overall if flag is None else flag)
            )
    return questions, overall or any(q.noncommittal for q in questions)


def response_relevancy_from_steps(reader: RunReader) -> ResponseRelevancyExplanation | None:
    generate = reader.step(QUESTIONS_STEP)
    cosine = reader.step(COSINE_STEP)
    if generate is None and cosine is None:
        return None

    questions: list[GeneratedQuestion] = []
    noncommittal = False
    for _, data in reader.payloads(generate):
        questions, noncommittal = _questions_from_payload(data)
        if questions:
            break

    similarities = reader.scalars_by_model(cosine)
    failed = {m: e for m, e in reader.failed_models(cosine).items() if m not in similarities}
    return build_response_relevancy(
        reader.score,
        response=reader.sample_text("response", response_from_prompt, QUESTIONS_STEP),
        question=reader.sample_text("user_input", question_from_prompt),
        questions=questions,
        noncommittal=noncommittal,
        model_similarities=similarities,
        failed_models=failed,
        text_limit=reader.text_limit,
    )


# -- Semantic similarity --

SIMILARITY_DESCRIPTION = "Measures the semantic resemblance between the response and the reference answer."

_SIMILARITY_MEANINGS = (
    "The response is semantically equivalent to the reference.",
    "The response is semantically close to the reference.",
    "The response shares only part of the reference's meaning.",
    "The response is semantically different from the reference.",
)


def build_semantic_similarity(
    score: float | None,
    *,
    response: str,
    reference: str,
    threshold: float | None,
    model_similarities: dict[str, float],
    failed_models: dict[str, str] | None = None,
    text_limit: int = 200,
) -> SemanticSimilarityExplanation:
    model_results = _similarity_results(model_similarities)
    model_results += failed_model_results(failed_models or {})

    steps = [
        StepExplanation(
            step_name="EmbedTexts",
            step_number=1,
            title="Embed response and reference",
            description="Both texts are converted to embedding vectors.",
            items=[
                ExplanationItem(content=truncate(response, text_limit), source="response", index=1),
                ExplanationItem(content=truncate(reference, text_limit), source="reference", index=2),
            ],
        ),
        agreement_step(
            COSINE_STEP,
            2,
            "Cosine similarity",
            model_results,
            description="Cosine similarity of the two embeddings, per embedding model.",
            output_summary=", ".join(f"{m}: {s:.4f}" for m, s in model_similarities.items()) or None,
        ),
    ]
    if threshold is not None:
        above = score is not None and score >= threshold
        steps.append(
            StepExplanation(
                step_name="ApplyThreshold",
                step_number=3,
                title="Apply threshold",
                description=f"Similarity at or above {threshold:.2f} counts as a match (1.0), else 0.0.",
                output_summary="N/A" if score is None else ("Above threshold" if above else "Below threshold"),
            )
        )
    steps.append(compute_score_step(len(steps) + 1, score))

    return SemanticSimilarityExplanation(
        score=score,
        simple_description=SIMILARITY_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Similarity = cos(embed(response), embed(reference))",
            calculation=_mean_calculation(model_similarities, score),
            meanings=_SIMILARITY_MEANINGS,
        ),
        response=response,
        reference=reference,
        threshold=threshold,
        model_similarities=model_similarities,
    )


def semantic_similarity_from_metadata(
    reader: RunReader, metadata: SemanticSimilarityMetadata
) -> SemanticSimilarityExplanation | None:
    return build_semantic_similarity(
        reader.score,
        response=reader.sample_text("response", response_from_prompt),
        reference=reader.sample_text("reference", reference_from_prompt),
        threshold=metadata.threshold,
        model_similarities=dict(metadata.embedding_model_scores),
        failed_models=reader.exclusion_causes(metadata.embedding_model_scores),
        text_limit=reader.text_limit,
    )


def semantic_similarity_from_steps(reader: RunReader) -> SemanticSimilarityExplanation | None:
    cosine = reader.step(COSINE_STEP)
    if cosine is None:
        return None
    similarities = reader.scalars_by_model(cosine)
    threshold = reader.config_value("threshold")
    return build_semantic_similarity(
        reader.score,
        response=reader.sample_text("response", response_from_prompt),
        reference=reader.sample_text("reference", reference_from_prompt),
        threshold=None if threshold is None else float(threshold),
        model_similarities=similarities,
        failed_models={m: e for m, e in reader.failed_models(cosine).items() if m not in similarities},
        text_limit=reader.text_limit,
    )


# -- Factual correctness --

FACTUAL_DESCRIPTION = "Measures claim-level factual overlap between the response and the reference."
RESPONSE_CLAIMS_STEP = "DecomposeResponseClaims"
REFERENCE_CLAIMS_STEP = "DecomposeReferenceClaims"
NLI_STEP = "VerifyClaimsNLI"

_FACTUAL_MEANINGS = (
    "The response's claims match the reference almost exactly.",
    "Most claims agree with the reference.",
    "The response and reference share only some claims.",
    "Few claims agree between the response and the reference.",
)


def supported_ratio(verdicts: list[ClaimVerdict]) -> float | None:
    if not verdicts:
        return None
    return sum(1 for v in verdicts if v.verdict == "SUPPORTED") / len(verdicts)


def _f1(precision: float | None, recall: float | None) -> float | None:
    if precision is None or recall is None:
        return None
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def build_factual_correctness(
    score: float | None,
    *,
    mode: str,
    response_claims: list[str],
    reference_claims: list[str],
    precision_verdicts: list[ClaimVerdict],
    recall_verdicts: list[ClaimVerdict],
) -> FactualCorrectnessExplanation:
    """Assemble a FactualCorrectnessExplanation.

    Precision checks response claims against the reference; recall
    checks reference claims against the response. Mode (PRECISION,
    RECALL or F1) selects the headline calculation.
    """
    mode = mode.upper()
    precision = supported_ratio(precision_verdicts)
    recall = supported_ratio(recall_verdicts)

    def verdict_items(verdicts: list[ClaimVerdict]) -> list[ExplanationItem]:
        return [
            ExplanationItem(
                content=v.claim,
                passed=v.verdict == "SUPPORTED",
                verdict=v.verdict,
                reason=v.reason or None,
                index=i,
            )
            for i, v in enumerate(verdicts, 1)
        ]

    steps = [
        StepExplanation(
            step_name=RESPONSE_CLAIMS_STEP,
            step_number=1,
            title="Decompose the response into claims",
            output_summary=f"{len(response_claims)} claims",
            items=text_items(response_claims),
        ),
        StepExplanation(
            step_name=REFERENCE_CLAIMS_STEP,
            step_number=2,
            title="Decompose the reference into claims",
            output_summary=f"{len(reference_claims)} claims",
            items=text_items(reference_claims),
        ),
        StepExplanation(
            step_name="VerifyPrecision",
            step_number=3,
            title="Verify response claims against the reference",
            output_summary=f"Precision = {format_percent(precision)}",
            items=verdict_items(precision_verdicts),
        ),
    ]
    if recall_verdicts or mode != "PRECISION":
        steps.append(
            StepExplanation(
                step_name="VerifyRecall",
                step_number=4,
                title="Verify reference claims against the response",
                output_summary=f"Recall = {format_percent(recall)}",
                items=verdict_items(recall_verdicts),
            )
        )
    steps.append(compute_score_step(len(steps) + 1, score))

    if mode == "PRECISION":
        formula = "Precision = Supported response claims / Response claims"
        calculation = (
            f"{sum(1 for v in precision_verdicts if v.verdict == 'SUPPORTED')}/{len(precision_verdicts)}"
            f" = {format_percent(precision)}"
        )
    elif mode == "RECALL":
        formula = "Recall = Supported reference claims / Reference claims"
        calculation = (
            f"{sum(1 for v in recall_verdicts if v.verdict == 'SUPPORTED')}/{len(recall_verdicts)}"
            f" = {format_percent(recall)}"
        )
    else:
        formula = "F1 = 2 × (Precision × Recall) / (Precision + Recall)"
        if precision is None or recall is None:
            calculation = format_percent(score)
        else:
            calculation = f"2 × ({precision:.2f} × {recall:.2f}) / ({precision:.2f} + {recall:.2f}) = {format_percent(_f1(precision, recall))}"

    return FactualCorrectnessExplanation(
        score=score,
        simple_description=FACTUAL_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula=formula,
            calculation=calculation,
            meanings=_FACTUAL_MEANINGS,
        ),
        mode=mode,
        response_claims=response_claims,
        reference_claims=reference_claims,
        precision_verdicts=precision_verdicts,
        recall_verdicts=recall_verdicts,
        precision=precision,
        recall=recall,
    )


def factual_correctness_from_metadata(
    reader: RunReader, metadata: FactualCorrectnessMetadata
) -> FactualCorrectnessExplanation | None:
    def convert(summaries: dict) -> list[ClaimVerdict]:
        return [ClaimVerdict(claim=v.claim, verdict=v.verdict, reason=v.reason) for v in first_entry(summaries) or []]

    return build_factual_correctness(
        reader.score,
        mode=metadata.mode,
        response_claims=list(first_entry(metadata.response_claims) or []),
        reference_claims=list(first_entry(metadata.reference_claims) or []),
        precision_verdicts=convert(metadata.precision_verdicts),
        recall_verdicts=convert(metadata.recall_verdicts),
    )


def _nli_label(entry: dict) -> str | None:
    label = (get_text(entry, "verdict", "label") or "").strip().upper()
    if label in ("SUPPORTED", "CONTRADICTED", "NEUTRAL"):
        return label
    flag = get_bool(entry, "verdict", "supported")
    if flag is None:
        return None
    return "SUPPORTED" if flag else "NEUTRAL"


def _claim_verdicts(reader: RunReader, step) -> list[ClaimVerdict]:
    for _, data in reader.payloads(step):
        verdicts = []
        for entry in get_dicts(data, "verdicts"):
            claim = get_text(entry, "claim", "statement")
            label = _nli_label(entry)
            if claim is None or label is None:
                continue
            verdicts.append(ClaimVerdict(claim=claim, verdict=label, reason=get_text(entry, "reason", "reasoning") or ""))
        if verdicts:
            return verdicts
    return []


def factual_correctness_from_steps(reader: RunReader) -> FactualCorrectnessExplanation | None:
    nli_steps = reader.steps_where(lambda name: name.startswith(NLI_STEP))
    if not nli_steps:
        return None

    def claims(step_name: str) -> list[str]:
        payload = reader.first_payload(reader.step(step_name), "claims")
        return get_strings(payload, "claims") if payload else []

    # The first verification pass checks response claims, the second reference claims
    precision_step = nli_steps[0]
    recall_step = nli_steps[1] if len(nli_steps) > 1 else None
    return build_factual_correctness(
        reader.score,
        mode=str(reader.config_value("mode", default="F1")),
        response_claims=claims(RESPONSE_CLAIMS_STEP),
        reference_claims=claims(REFERENCE_CLAIMS_STEP),
        precision_verdicts=_claim_verdicts(reader, precision_step),
        recall_verdicts=_claim_verdicts(reader, recall_step) if recall_step is not None else [],
    )


# -- Answer correctness --

CORRECTNESS_DESCRIPTION = "Combines factual correctness and semantic similarity into one weighted score."
FACTUAL_STEP = "ComputeFactualCorrectness"
SEMANTIC_STEP = "ComputeSemanticSimilarity"

_CORRECTNESS_MEANINGS = (
    "The response is correct and closely matches the reference.",
    "The response is largely correct.",
    "The response is partially correct.",
    "The response is largely incorrect.",
)


def normalize_weights(factual: float, semantic: float) -> tuple[float, float]:
    """Scale the two weights to sum to 1 (default 0.75/0.25 when both are zero)."""
    total = factual + semantic
    if total <= 0:
        return 0.75, 0.25
    return factual / total, semantic / total


def build_answer_correctness(
    score: float | None,
    *,
    response: str,
    reference: str,
    factual_score: float | None,
    semantic_score: float | None,
    factual_weight: float,
    semantic_weight: float,
    text_limit: int = 200,
) -> AnswerCorrectnessExplanation:
    """Assemble an AnswerCorrectnessExplanation.

    A sub-score is None when every model failed its step; the weighted
    combination is then not shown.
    """
    combined = None
    if factual_score is not None and semantic_score is not None:
        combined = factual_weight * factual_score + semantic_weight * semantic_score
    steps = [
        StepExplanation(
            step_name=FACTUAL_STEP,
            step_number=1,
            title="Factual correctness",
            description="Claim-level F1 between the response and the reference.",
            input_data=truncate(response, text_limit) or None,
            output_summary="N/A" if factual_score is None else f"{factual_score:.4f}",
        ),
        StepExplanation(
            step_name=SEMANTIC_STEP,
            step_number=2,
            title="Semantic similarity",
            description="Embedding similarity between the response and the reference.",
            input_data=truncate(reference, text_limit) or None,
            output_summary="N/A" if semantic_score is None else f"{semantic_score:.4f}",
        ),
        StepExplanation(
            step_name="CombineScores",
            step_number=3,
            title="Weighted combination",
            metadata={"factual_weight": f"{factual_weight:.2f}", "semantic_weight": f"{semantic_weight:.2f}"},
            output_summary=format_percent(combined),
        ),
        compute_score_step(4, score),
    ]
    if combined is None:
        calculation = format_percent(score)
    else:
        calculation = (
            f"{factual_weight:.2f} × {factual_score:.4f} + {semantic_weight:.2f} × {semantic_score:.4f}"
            f" = {format_percent(combined)}"
        )
    return AnswerCorrectnessExplanation(
        score=score,
        simple_description=CORRECTNESS_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Answer Correctness = w_f × Factual + w_s × Semantic",
            calculation=calculation,
            meanings=_CORRECTNESS_MEANINGS,
        ),
        response=response,
        reference=reference,
        factual_score=factual_score,
        semantic_score=semantic_score,
        factual_weight=factual_weight,
        semantic_weight=semantic_weight,
    )


def answer_correctness_from_metadata(
    reader: RunReader, metadata: AnswerCorrectnessMetadata
) -> AnswerCorrectnessExplanation | None:
    return build_answer_correctness(
        reader.score,
        response=reader.sample_text("response", response_from_prompt),
        reference=reader.sample_text("reference", reference_from_prompt),
        factual_score=metadata.factual_score,
        semantic_score=metadata.semantic_score,
        factual_weight=metadata.normalized_factual_weight,
        semantic_weight=metadata.normalized_semantic_weight,
        text_limit=reader.text_limit,
    )


def _configured_weights(reader: RunReader) -> tuple[float, float]:
    weights = reader.config_value("weights")
    if isinstance(weights, (list, tuple)) and len(weights) == 2:
        return normalize_weights(float(weights[0]), float(weights[1]))
    return normalize_weights(
        float(reader.config_value("factual_weight", "factualWeight", default=0.75)),
        float(reader.config_value("semantic_weight", "semanticWeight", default=0.25)),
    )


def answer_correctness_from_steps(reader: RunReader) -> AnswerCorrectnessExplanation | None:
    factual = first_entry(reader.scalars_by_model(reader.step(FACTUAL_STEP)))
    semantic = first_entry(reader.scalars_by_model(reader.step(SEMANTIC_STEP)))
    if (factual is None or semantic is None) and not reader.not_calculated:
        return None
    factual_weight, semantic_weight = _configured_weights(reader)
    return build_answer_correctness(
        reader.score,
        response=reader.sample_text("response", response_from_prompt),
        reference=reader.sample_text("reference", reference_from_prompt),
        factual_score=factual,
        semantic_score=semantic,
        factual_weight=factual_weight,
        semantic_weight=semantic_weight,
        text_limit=reader.text_limit,
    )


# -- Answer accuracy --

ACCURACY_DESCRIPTION = "Two independent judges rate agreement between the response and the reference on a 0-2 scale."
INITIAL_STEP = "InitialJudgment"
CONFIRM_STEP = "ConfirmJudgment"

_ACCURACY_MEANINGS = (
    "The response fully agrees with the reference.",
    "The response mostly agrees with the reference.",
    "The response partially agrees with the reference.",
    "The response does not agree with the reference.",
)


def _rating_results(ratings: list[JudgeRating]) -> list[ModelStepResult]:
    return [
        ModelStepResult(
            model_id=r.model_id,
            verdict=f"{r.raw_score}/2",
            numeric_result=float(r.raw_score),
            reasoning=r.reasoning or None,
        )
        for r in ratings
    ]


def build_answer_accuracy(
    score: float | None,
    *,
    response: str,
    reference: str,
    initial_judgments: list[JudgeRating],
    confirmed_judgments: list[JudgeRating],
    used_dual_judge: bool,
    failed_models: dict[str, str] | None = None,
    text_limit: int = 200,
) -> AnswerAccuracyExplanation:
    final_raw = None if score is None else round_half_up(score * 2)
    failed = failed_model_results(failed_models or {})

    steps = [
        agreement_step(
            INITIAL_STEP,
            1,
            "First judgment",
            _rating_results(initial_judgments) + failed,
            description="The response is rated against the reference: 0 (wrong), 1 (partial), 2 (correct).",
            input_data=truncate(response, text_limit) or None,
            output_summary=f"{len(initial_judgments)} ratings",
        )
    ]
    if used_dual_judge:
        steps.append(
            agreement_step(
                CONFIRM_STEP,
                2,
                "Confirming judgment",
                _rating_results(confirmed_judgments),
                description="A second judgment with the roles of response and reference swapped.",
                input_data=truncate(reference, text_limit) or None,
                output_summary=f"{len(confirmed_judgments)} ratings",
            )
        )
    steps.append(
        compute_score_step(
            len(steps) + 1,
            score,
            description="The judgments are averaged and divided by 2.",
        )
    )

    calculation = format_percent(score) if final_raw is None else f"{final_raw}/2 = {score:.2f}"
    return AnswerAccuracyExplanation(
        score=score,
        simple_description=ACCURACY_DESCRIPTION,
        steps=steps,
        interpretation=standard_interpretation(
            score,
            formula="Answer Accuracy = mean(judgments) / 2",
            calculation=calculation,
            meanings=_ACCURACY_MEANINGS,
        ),
        response=response,
        reference=reference,
        initial_judgments=initial_judgments,
        confirmed_judgments=confirmed_judgments,
        final_raw_score=final_raw,
        used_dual_judge=used_dual_judge,
    )


def answer_accuracy_from_metadata(
    reader: RunReader, metadata: AnswerAccuracyMetadata
) -> AnswerAccuracyExplanation | None:
    def ratings(judgments: dict) -> list[JudgeRating]:
        return [JudgeRating(model_id=m, raw_score=j.raw_score, reasoning=j.reasoning) for m, j in judgments.items()]

    return build_answer_accuracy(
        reader.score,
        response=reader.sample_text("response", response_from_prompt),
        reference=reader.sample_text("reference", reference_from_prompt),
        initial_judgments=ratings(metadata.initial_judgments),
        confirmed_judgments=ratings(metadata.confirmed_judgments),
        used_dual_judge=metadata.used_dual_judge,
        failed_models=reader.exclusion_causes(metadata.initial_judgments),
        text_limit=reader.text_limit,
    )


def _judge_ratings(reader: RunReader, step_name: str) -> list[JudgeRating]:
    ratings: list[JudgeRating] = []
    seen: set[str] = set()
    for model_id, data in reader.payloads(reader.step(step_name)):
        value = get_float(data, "score", "rating")
        if value is None or model_id in seen:
            continue
        seen.add(model_id)
        ratings.append(
            JudgeRating(
                model_id=model_id,
                raw_score=round_half_up(value),
                reasoning=get_text(data, "reasoning", "reason") or "",
            )
        )
    return ratings


def answer_accuracy_from_steps(reader: RunReader) -> AnswerAccuracyExplanation | None:
    initial_step = reader.step(INITIAL_STEP)
    if initial_step is None:
        return None
    initial = _judge_ratings(reader, INITIAL_STEP)
    seen = {r.model_id for r in initial}
    return build_answer_accuracy(
        reader.score,
        response=reader.sample_text("response", response_from_prompt),
        reference=reader.sample_text("reference", reference_from_prompt),
        initial_judgments=initial,
        confirmed_judgments=_judge_ratings(reader, CONFIRM_STEP),
        used_dual_judge=reader.step(CONFIRM_STEP) is not None,
        failed_models={m: e for m, e in reader.failed_models(initial_step).items() if m not in seen},
        text_limit=reader.text_limit,
    )
