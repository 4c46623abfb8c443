from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

TestStatus = Literal["draft", "published", "archived"]


def _check_options(options: list) -> list:
    if len(options) < 2:
        raise ValueError("A question needs at least two options.")
    correct = sum(1 for o in options if o.is_correct)
    if correct != 1:
        raise ValueError(f"Exactly one option must be correct (got {correct}).")
    return options


# Folders
class FolderCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    parent_id: Optional[int] = None

    @field_validator("parent_id", mode="before")
    @classmethod
    def null_string_is_root(cls, v):
        # older admin clients send the literal string "null" for a root folder
        if v in ("null", ""):
            return None
        return v


class FolderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None


class FolderRef(BaseModel):
    id: int
    name: str


class FolderTestOut(BaseModel):
    id: int
    title: str
    is_free: bool
    status: str


class FolderContentsOut(BaseModel):
    folder: FolderRef
    breadcrumbs: list[FolderRef]
    folders: list[FolderRef]
    tests: list[FolderTestOut]


class RootFolderOut(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    subfolder_count: int
    test_count: int


# Tests
class TestBaseIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    category: str = ""
    passing_score: int = Field(default=0, ge=0, le=100)
    duration_hours: int = Field(default=0, ge=0)
    duration_minutes: int = Field(default=0, ge=0)
    instructions: str = ""

    @field_validator("description", "category", "instructions", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v


class TestCreateIn(TestBaseIn):
    folder_id: Optional[int] = None


class TestCreateOut(BaseModel):
    id: int
    status: str
    step: str = "test_sections"


class TestSettingsIn(TestBaseIn):
    # pydantic's lax bool parsing also accepts the legacy "true"/"false" strings
    is_free: bool = False
    status: TestStatus = "draft"
    shuffle_questions: bool = False
    show_results_immediately: bool = False
    allow_answer_review: bool = False
    enable_time_limit: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def empty_status_is_draft(cls, v):
        return v or "draft"


class TestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    folder_id: Optional[int] = None
    title: str
    description: str
    category: str
    passing_score: int
    duration_minutes: int
    instructions: str
    status: str
    is_free: bool
    shuffle_questions: bool
    show_results_immediately: bool
    allow_answer_review: bool
    enable_time_limit: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Questions
class LocalizedText(BaseModel):
    en: str = ""
    ta: str = ""


class OptionCreateIn(BaseModel):
    option_english: str = ""
    option_tamil: str = ""
    is_correct: bool = False


class QuestionCreateIn(BaseModel):
    question_english: str = ""
    question_tamil: str = ""
    options: list[OptionCreateIn]

    @field_validator("options")
    @classmethod
    def one_correct_option(cls, v):
        return _check_options(v)

    @model_validator(mode="after")
    def has_text(self):
        if not (self.question_english.strip() or self.question_tamil.strip()):
            raise ValueError("Question text is required in at least one language.")
        return self


class OptionUpdateIn(BaseModel):
    text: LocalizedText
    is_correct: bool = False


class QuestionUpdateIn(BaseModel):
    question: LocalizedText
    options: list[OptionUpdateIn]

    @field_validator("options")
    @classmethod
    def one_correct_option(cls, v):
        return _check_options(v)


class OptionOut(BaseModel):
    option_id: int
    text: LocalizedText
    is_correct: bool


class QuestionOut(BaseModel):
    question_id: int
    test_id: int
    question: LocalizedText
    options: list[OptionOut]


class QuestionSavedOut(BaseModel):
    status: str = "success"
    message: str
    question: QuestionOut


class QuestionDeletedOut(BaseModel):
    status: str = "success"
    message: str
    question_id: int


# Search
class SearchTestOut(BaseModel):
    id: int
    title: str
    description: str
    category: str
    status: str
    is_free: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    folder_name: Optional[str] = None
    folder_id: Optional[int] = None
    question_count: int


class Pagination(BaseModel):
    total: int
    totalPages: int
    currentPage: int
    limit: int


class SearchOut(BaseModel):
    status: str = "success"
    pagination: Pagination
    query: str
    sort: str
    tests: list[SearchTestOut]


# Taking a test
class PublicOptionOut(BaseModel):
    option_id: int
    text: LocalizedText


class PublicQuestionOut(BaseModel):
    question_id: int
    question: LocalizedText
    options: list[PublicOptionOut]


class TestDetailsOut(BaseModel):
    id: int
    title: str
    description: str
    category: str
    duration_minutes: int
    instructions: str
    passing_score: int
    shuffle_questions: bool
    show_results_immediately: bool
    allow_answer_review: bool
    enable_time_limit: bool
    questions: list[PublicQuestionOut]


class SubmitAnswerIn(BaseModel):
    question_id: int
    selected_option_id: Optional[int] = None


class SubmitTestIn(BaseModel):
    answers: list[SubmitAnswerIn] = Field(default_factory=list)
    time_taken_seconds: int = Field(default=0, ge=0)


class GradedAnswerOut(BaseModel):
    question_id: int
    selected_option_id: Optional[int] = None
    is_correct: bool
    correct_option_id: Optional[int] = None


class SubmitTestOut(BaseModel):
    attempt_id: int
    test_id: int
    test_title: str
    score: int
    passed: bool
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    time_taken_seconds: int
    passing_score: int
    answers: list[GradedAnswerOut]


# Catalog
class CatalogTestOut(BaseModel):
    id: int
    title: str
    description: str
    category: str
    duration_minutes: int
    instructions: str
    status: str


class CatalogFolderOut(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None
    level: int
    has_tests: bool
    tests: list[CatalogTestOut]
    subfolders: list["CatalogFolderOut"]


# History
class HistoryItemOut(BaseModel):
    attempt_id: int
    test_id: int
    test_name: Optional[str] = None
    taken_date: Optional[datetime] = None
    score: int
    passed: bool
    status: str


class HistoryOut(BaseModel):
    status: str = "success"
    history: list[HistoryItemOut]
    pagination: Pagination


class AttemptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: int
    user_id: int
    score: int
    passed: bool
    answers: list[GradedAnswerOut]
    total_questions: int
    correct_answers: int
    incorrect_answers: int
    unanswered: int
    time_taken_seconds: int
    passing_score: int
    created_at: Optional[datetime] = None
