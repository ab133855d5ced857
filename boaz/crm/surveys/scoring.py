"""Survey program summaries.

NPS programs bucket each response's overall score: 0-6 detractor, 7-8 passive,
9-10 promoter. ``nps`` is promoters% minus detractors%, rounded half up.
Every other program type reports the mean score and a count per distinct score.
Responses carrying per-question answers also yield a per-question average.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol

from boaz.crm.surveys.schemas import ProgramSummary, QuestionSummary


class ScoredResponse(Protocol):
    score: float
    answers: list[dict[str, Any]] | None


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def score_key(score: float) -> str:
    value = float(score)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def overall_score(score: float | None, answers: Sequence[Mapping[str, Any]] | None) -> float:
    if answers:
        return sum(float(answer["score"]) for answer in answers) / len(answers)
    if score is None:
        raise ValueError("score_or_answers_required")
    return float(score)


def _question_summaries(
    responses: Sequence[ScoredResponse],
    questions: Iterable[Mapping[str, Any]],
) -> list[QuestionSummary]:
    labels = {str(question.get("id")): str(question.get("label")) for question in questions}
    totals: dict[str, list[float]] = {}
    for response in responses:
        for answer in response.answers or []:
            question_id = str(answer.get("question_id"))
            bucket = totals.setdefault(question_id, [0.0, 0])
            bucket[0] += float(answer.get("score", 0))
            bucket[1] += 1

    return [
        QuestionSummary(
            question_id=question_id,
            label=labels.get(question_id, question_id),
            average_score=total / count,
            responses=int(count),
        )
        for question_id, (total, count) in totals.items()
    ]


def build_program_summary(
    program_type: str,
    responses: Sequence[ScoredResponse],
    questions: Iterable[Mapping[str, Any]] = (),
) -> ProgramSummary:
    total = len(responses)
    summary = ProgramSummary(total_responses=total)
    if total == 0:
        return summary

    if program_type == "NPS":
        detractors = sum(1 for response in responses if response.score <= 6)
        passives = sum(1 for response in responses if 6 < response.score <= 8)
        promoters = total - detractors - passives
        detractors_pct = detractors / total * 100
        promoters_pct = promoters / total * 100
        summary.detractors = detractors
        summary.passives = passives
        summary.promoters = promoters
        summary.detractors_pct = detractors_pct
        summary.passives_pct = passives / total * 100
        summary.promoters_pct = promoters_pct
        summary.nps = round_half_up(promoters_pct - detractors_pct)
    else:
        distribution: dict[str, int] = {}
        for response in responses:
            key = score_key(response.score)
            distribution[key] = distribution.get(key, 0) + 1
        summary.average_score = sum(response.score for response in responses) / total
        summary.distribution = distribution

    question_summaries = _question_summaries(responses, questions)
    if question_summaries:
        summary.questions = question_summaries
    return summary
