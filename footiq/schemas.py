from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

GAME_MODES = ("the_thread", "tic_tac_toe", "topical_quiz", "the_grid")
CELL_KEYS = tuple(str(i) for i in range(9))

YEARS_PATTERN = r"^\d{4}-(\d{4})?$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class ContentValidationError(ValueError):
    def __init__(self, game_mode: str, issues: list[str]) -> None:
        self.game_mode = game_mode
        self.issues = issues
        super().__init__(f"Invalid {game_mode} content: " + "; ".join(issues))


class PuzzleBase(BaseModel):
    puzzle_date: str = Field(pattern=DATE_PATTERN)
    game_mode: Literal["the_thread", "tic_tac_toe", "topical_quiz", "the_grid"]
    status: Literal["draft", "live", "archived"] = "draft"
    difficulty: Optional[Literal["easy", "medium", "hard"]] = None
    source: Optional[str] = None


class ThreadBrand(BaseModel):
    brand_name: str = Field(min_length=1)
    years: str = Field(pattern=YEARS_PATTERN)
    is_hidden: bool = False


class KitLore(BaseModel):
    fun_fact: str = Field(min_length=1)


class ThreadContent(BaseModel):
    thread_type: Literal["sponsor", "supplier"]
    path: list[ThreadBrand] = Field(min_length=3)
    correct_club_id: str = Field(min_length=1)
    correct_club_name: str = Field(min_length=1)
    kit_lore: KitLore


def _check_cell_keys(value: dict) -> dict:
    missing = [k for k in CELL_KEYS if k not in value]
    if missing:
        raise ValueError(f"valid_answers missing cells: {', '.join(missing)}")
    extra = [k for k in value if k not in CELL_KEYS]
    if extra:
        raise ValueError(f"valid_answers has unknown cells: {', '.join(extra)}")
    return value


class TicTacToeContent(BaseModel):
    rows: list[str] = Field(min_length=3, max_length=3)
    columns: list[str] = Field(min_length=3, max_length=3)
    valid_answers: dict[str, list[str]]

    @field_validator("valid_answers")
    @classmethod
    def _all_cells(cls, value: dict) -> dict:
        return _check_cell_keys(value)


class QuizQuestion(BaseModel):
    id: str = Field(min_length=1)
    question: str = Field(min_length=1)
    image_url: str = ""
    options: list[str] = Field(min_length=4, max_length=4)
    correct_index: int = Field(ge=0, le=3)

    @field_validator("image_url")
    @classmethod
    def _url_or_empty(cls, value: str) -> str:
        if value and not value.startswith(("http://", "https://")):
            raise ValueError("image_url must be an http(s) URL or empty")
        return value

    @field_validator("options")
    @classmethod
    def _non_empty_options(cls, value: list[str]) -> list[str]:
        if any(not option.strip() for option in value):
            raise ValueError("options must be non-empty")
        return value


class TopicalQuizContent(BaseModel):
    questions: list[QuizQuestion] = Field(min_length=5, max_length=5)


class GridCategory(BaseModel):
    type: Literal["club", "nation", "stat", "trophy"]
    value: str = Field(min_length=1)


class GridContent(BaseModel):
    xAxis: list[GridCategory] = Field(min_length=3, max_length=3)
    yAxis: list[GridCategory] = Field(min_length=3, max_length=3)
    valid_answers: Optional[dict[str, list[str]]] = None
    title: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _answers_cover_grid(self) -> "GridContent":
        if self.valid_answers is not None:
            _check_cell_keys(self.valid_answers)
        return self


CONTENT_MODELS = {
    "the_thread": ThreadContent,
    "tic_tac_toe": TicTacToeContent,
    "topical_quiz": TopicalQuizContent,
    "the_grid": GridContent,
}


def _issues(exc: ValidationError) -> list[str]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        out.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return out


def validate_content(game_mode: str, content: dict) -> BaseModel:
    model = CONTENT_MODELS.get(game_mode)
    if model is None:
        raise ContentValidationError(game_mode, [f"unknown game mode {game_mode!r}"])
    try:
        return model.model_validate(content)
    except ValidationError as exc:
        raise ContentValidationError(game_mode, _issues(exc)) from exc


def validate_puzzle(puzzle: dict) -> dict:
    """Validate a full puzzle record (base fields plus mode content)."""
    try:
        base = PuzzleBase.model_validate(puzzle)
    except ValidationError as exc:
        raise ContentValidationError(str(puzzle.get("game_mode")), _issues(exc)) from exc
    parsed = validate_content(base.game_mode, puzzle.get("content") or {})
    return {**base.model_dump(), "content": parsed.model_dump(exclude_none=True)}
