from __future__ import annotations

from footiq.scoring import QUIZ_TOTAL_QUESTIONS, calculate_quiz_score

PLAYING = "playing"
COMPLETE = "complete"


def initial_state() -> dict:
    return {
        "current_question_index": 0,
        "answers": [],
        "game_status": PLAYING,
        "score": None,
        "attempt_saved": False,
        "started_at": None,
        "showing_feedback": False,
        "last_answered_index": None,
    }


def correct_count(state: dict) -> int:
    return sum(1 for answer in state["answers"] if answer["is_correct"])


def current_question(state: dict, content: dict) -> dict | None:
    questions = content["questions"]
    index = state["current_question_index"]
    return questions[index] if index < len(questions) else None


def reduce(state: dict, action: dict) -> dict:
    kind = action["type"]

    if kind == "ANSWER_QUESTION":
        answer = {
            "question_index": state["current_question_index"],
            "selected_index": action["selected_index"],
            "is_correct": action["is_correct"],
        }
        return {
            **state,
            "answers": state["answers"] + [answer],
            "showing_feedback": True,
            "last_answered_index": state["current_question_index"],
        }

    if kind == "NEXT_QUESTION":
        next_index = state["current_question_index"] + 1
        if next_index >= QUIZ_TOTAL_QUESTIONS:
            return {**state, "showing_feedback": False}
        return {**state, "current_question_index": next_index, "showing_feedback": False}

    if kind == "GAME_COMPLETE":
        return {**state, "game_status": COMPLETE, "score": action["score"], "showing_feedback": False}

    if kind == "ATTEMPT_SAVED":
        return {**state, "attempt_saved": True}

    if kind == "RESET":
        return initial_state()

    return state


def answer_question(state: dict, content: dict, selected_index: int) -> dict:
    """Record an answer; ignored while feedback is showing or once complete."""
    question = current_question(state, content)
    if state["showing_feedback"] or state["game_status"] == COMPLETE or question is None:
        return state
    return reduce(
        state,
        {"type": "ANSWER_QUESTION", "selected_index": selected_index, "is_correct": selected_index == question["correct_index"]},
    )


def advance(state: dict) -> dict:
    """Move past the feedback for the last answer, completing after the final question."""
    if not state["showing_feedback"]:
        return state
    if state["current_question_index"] >= QUIZ_TOTAL_QUESTIONS - 1:
        return reduce(state, {"type": "GAME_COMPLETE", "score": calculate_quiz_score(correct_count(state))})
    return reduce(state, {"type": "NEXT_QUESTION"})


def build_metadata(state: dict) -> dict:
    return {"answers": state["answers"], "correct_count": correct_count(state)}
