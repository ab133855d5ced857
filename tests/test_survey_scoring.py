from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from boaz.crm.surveys.scoring import build_program_summary, overall_score, round_half_up, score_key


@dataclass
class _Response:
    score: float
    answers: list[dict[str, Any]] | None = field(default=None)


def _responses(*scores: float) -> list[_Response]:
    return [_Response(score=score) for score in scores]


def test_nps_with_three_detractors_and_two_promoters() -> None:
    summary = build_program_summary("NPS", _responses(0, 3, 6, 7, 7, 8, 8, 8, 9, 10))

    assert summary.total_responses == 10
    assert summary.detractors == 3
    assert summary.passives == 5
    assert summary.promoters == 2
    assert summary.detractors_pct == pytest.approx(30.0)
    assert summary.promoters_pct == pytest.approx(20.0)
    assert summary.nps == -10
    assert summary.average_score is None


def test_nps_bucket_boundaries() -> None:
    summary = build_program_summary("NPS", _responses(6, 6.5, 8, 8.5, 9))
    assert summary.detractors == 1
    assert summary.passives == 2
    assert summary.promoters == 2


def test_nps_rounds_half_up() -> None:
    # 1 promoter, 0 detractors out of 8 -> 12.5
    summary = build_program_summary("NPS", _responses(10, 7, 7, 7, 7, 7, 7, 7))
    assert summary.nps == 13
    assert round_half_up(-12.5) == -12


def test_empty_program_only_reports_total() -> None:
    summary = build_program_summary("NPS", [])
    assert summary.total_responses == 0
    assert summary.nps is None
    assert summary.distribution is None


def test_csat_average_and_distribution() -> None:
    summary = build_program_summary("CSAT", _responses(5, 4, 4, 2.5))

    assert summary.total_responses == 4
    assert summary.average_score == pytest.approx(3.875)
    assert summary.distribution == {"5": 1, "4": 2, "2.5": 1}
    assert summary.nps is None


def test_question_breakdown_uses_labels() -> None:
    responses = [
        _Response(score=8, answers=[{"question_id": "q1", "score": 10}, {"question_id": "q2", "score": 6}]),
        _Response(score=6, answers=[{"question_id": "q1", "score": 6}]),
    ]
    summary = build_program_summary("Post-interaction", responses, [{"id": "q1", "label": "Speed"}])

    assert summary.questions is not None
    by_id = {item.question_id: item for item in summary.questions}
    assert by_id["q1"].label == "Speed"
    assert by_id["q1"].average_score == pytest.approx(8.0)
    assert by_id["q1"].responses == 2
    assert by_id["q2"].label == "q2"


def test_overall_score_prefers_answers() -> None:
    assert overall_score(3, [{"question_id": "a", "score": 10}, {"question_id": "b", "score": 5}]) == 7.5
    assert overall_score(4, None) == 4.0
    with pytest.raises(ValueError):
        overall_score(None, [])


def test_score_key_formats_integers_without_fraction() -> None:
    assert score_key(9.0) == "9"
    assert score_key(7.5) == "7.5"
