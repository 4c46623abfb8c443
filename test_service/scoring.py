from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class GradedAnswer:
    question_id: int
    selected_option_id: Optional[int]
    is_correct: bool
    correct_option_id: Optional[int]

    def as_dict(self) -> dict:
        return {
            "question_id": self.question_id,
            "selected_option_id": self.selected_option_id,
            "is_correct": self.is_correct,
            "correct_option_id": self.correct_option_id,
        }


@dataclass
class ScoreReport:
    score: int
    passed: bool
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    answers: List[GradedAnswer] = field(default_factory=list)


def percent_round_half_up(correct: int, total: int) -> int:
    """
    round(correct / total * 100) with halves rounded up, in integer math
    so 12.5 becomes 13 (Python's round() would give 12).
    """
    if total <= 0:
        return 0
    return (200 * correct + total) // (2 * total)


def grade_answers(
    answer_key: Dict[int, Optional[int]],
    answers: List[dict],
    passing_score: int,
) -> ScoreReport:
    """
    Grade a submission against the answer key of one test.

    `answer_key` maps every question of the test to its canonical correct
    option id (None when the question has no correct option), so its size is
    the denominator: unanswered questions count against the score.
    `answers` is the raw list of {question_id, selected_option_id}.
    """
    total = len(answer_key)
    graded: List[GradedAnswer] = []
    answered_ids = set()
    correct_ids = set()

    for a in answers:
        qid = a["question_id"]
        selected = a.get("selected_option_id")
        correct_option_id = answer_key.get(qid)
        is_correct = qid in answer_key and selected is not None and selected == correct_option_id

        if qid in answer_key:
            answered_ids.add(qid)
        if is_correct:
            correct_ids.add(qid)

        graded.append(GradedAnswer(
            question_id=qid,
            selected_option_id=selected,
            is_correct=is_correct,
            correct_option_id=correct_option_id,
        ))

    correct_count = len(correct_ids)
    score = percent_round_half_up(correct_count, total)

    return ScoreReport(
        score=score,
        passed=score >= passing_score,
        total_questions=total,
        correct_answers=correct_count,
        # submitted-but-wrong, not total - correct
        incorrect_answers=sum(1 for a in graded if not a.is_correct),
        unanswered=total - len(answered_ids),
        answers=graded,
    )
