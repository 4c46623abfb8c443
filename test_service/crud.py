import logging
import math
import random

from sqlalchemy import func, or_, text
from sqlalchemy.orm import Session, selectinload
from shared.database import atomic
from .models import TestFolder, Test, TestQuestion, TestOption, TestAttempt
from .scoring import grade_answers

logger = logging.getLogger("test-service")


class NotFound(LookupError):
    pass


class Conflict(Exception):
    pass


BREADCRUMBS_SQL = text("""
    WITH RECURSIVE folder_path(id, name, parent_id, depth) AS (
        SELECT id, name, parent_id, 0
        FROM test_folders
        WHERE id = :fid

        UNION ALL

        SELECT f.id, f.name, f.parent_id, fp.depth + 1
        FROM test_folders f
        JOIN folder_path fp ON f.id = fp.parent_id
    )
    SELECT id, name FROM folder_path ORDER BY depth DESC
""")

SUBTREE_SQL = text("""
    WITH RECURSIVE subtree(id, depth) AS (
        SELECT id, 0 FROM test_folders WHERE id = :fid

        UNION ALL

        SELECT f.id, s.depth + 1
        FROM test_folders f
        JOIN subtree s ON f.parent_id = s.id
    )
    SELECT id, depth FROM subtree ORDER BY depth DESC
""")

ROOT_FOLDERS_SQL = text("""
    SELECT
        tf.id,
        tf.name,
        tf.parent_id,
        (SELECT COUNT(*) FROM test_folders sub WHERE sub.parent_id = tf.id) AS subfolder_count,
        (SELECT COUNT(*) FROM tests t WHERE t.folder_id = tf.id) AS test_count
    FROM test_folders tf
    WHERE tf.parent_id IS NULL
    ORDER BY tf.name
""")


# ----------------------------
# Folders
# ----------------------------

def get_folder(db: Session, folder_id: int) -> TestFolder | None:
    return db.query(TestFolder).filter(TestFolder.id == folder_id).first()


def create_folder(db: Session, name: str, parent_id: int | None = None) -> TestFolder:
    # a folder can only hang off an existing one, so the forest stays acyclic
    if parent_id is not None and not get_folder(db, parent_id):
        raise NotFound("Parent folder not found")

    f = TestFolder(name=name, parent_id=parent_id)
    db.add(f)
    db.commit()
    db.refresh(f)
    logger.info("Created folder %s (%r) under %s", f.id, f.name, parent_id)
    return f


def get_breadcrumbs(db: Session, folder_id: int) -> list[dict]:
    rows = db.execute(BREADCRUMBS_SQL, {"fid": folder_id}).fetchall()
    return [{"id": r[0], "name": r[1]} for r in rows]


def get_folder_contents(db: Session, folder_id: int, public_access: bool = False) -> dict:
    folder = get_folder(db, folder_id)
    if not folder:
        raise NotFound("Folder not found")

    subfolders = (
        db.query(TestFolder)
        .filter(TestFolder.parent_id == folder_id)
        .order_by(TestFolder.name.asc(), TestFolder.id.asc())
        .all()
    )

    q = db.query(Test).filter(Test.folder_id == folder_id)
    if public_access:
        q = q.filter(Test.is_free.is_(True), Test.status == "published")
    tests = q.order_by(Test.id.asc()).all()

    return {
        "folder": {"id": folder.id, "name": folder.name},
        "breadcrumbs": get_breadcrumbs(db, folder_id),
        "folders": [{"id": s.id, "name": s.name} for s in subfolders],
        "tests": [{"id": t.id, "title": t.title, "is_free": t.is_free, "status": t.status} for t in tests],
    }


def list_root_folders(db: Session) -> list[dict]:
    rows = db.execute(ROOT_FOLDERS_SQL).fetchall()
    return [
        {"id": r[0], "name": r[1], "parent_id": r[2], "subfolder_count": int(r[3]), "test_count": int(r[4])}
        for r in rows
    ]


def delete_folder(db: Session, folder_id: int, cascade: bool = False) -> dict:
    """
    Delete a folder.

    Without `cascade` a folder that still holds subfolders or tests is left
    alone and Conflict is raised. With `cascade` the whole subtree goes in
    one transaction: descendant folders, their tests, and those tests'
    questions and options. Attempts are history and are never touched.
    """
    folder = get_folder(db, folder_id)
    if not folder:
        raise NotFound("Folder not found")

    deleted = {"id": folder.id, "name": folder.name, "parent_id": folder.parent_id, "created_at": folder.created_at}

    if not cascade:
        has_children = db.query(TestFolder.id).filter(TestFolder.parent_id == folder_id).first() is not None
        has_tests = db.query(Test.id).filter(Test.folder_id == folder_id).first() is not None
        if has_children or has_tests:
            raise Conflict("Folder is not empty; delete its contents first or pass cascade=true")
        db.delete(folder)
        db.commit()
        logger.info("Deleted folder %s", folder_id)
        return deleted

    # deepest first so no folder is removed while a child still points at it
    subtree_ids = [r[0] for r in db.execute(SUBTREE_SQL, {"fid": folder_id}).fetchall()]
    with atomic(db):
        for t in db.query(Test).filter(Test.folder_id.in_(subtree_ids)).all():
            db.delete(t)
        db.flush()
        for fid in subtree_ids:
            db.query(TestFolder).filter(TestFolder.id == fid).delete(synchronize_session=False)
    logger.info("Deleted folder %s with %d folder(s) in subtree", folder_id, len(subtree_ids))
    return deleted


# ----------------------------
# Tests
# ----------------------------

def get_test(db: Session, test_id: int) -> Test | None:
    return db.query(Test).filter(Test.id == test_id).first()


def create_test(db: Session, payload: dict) -> Test:
    folder_id = payload.get("folder_id")
    if folder_id is not None and not get_folder(db, folder_id):
        raise NotFound("Folder not found")

    t = Test(
        folder_id=folder_id,
        title=payload["title"],
        description=payload.get("description") or "",
        category=payload.get("category") or "",
        passing_score=payload.get("passing_score") or 0,
        duration_minutes=(payload.get("duration_hours") or 0) * 60 + (payload.get("duration_minutes") or 0),
        instructions=payload.get("instructions") or "",
        status="draft",  # always; publishing goes through the settings step
    )
    db.add(t)
    db.commit()
    db.refresh(t)
    logger.info("Created test %s (%r) in folder %s", t.id, t.title, folder_id)
    return t


def update_test_settings(db: Session, test_id: int, settings: dict) -> Test:
    t = get_test(db, test_id)
    if not t:
        raise NotFound("Test not found")

    with atomic(db):
        t.title = settings["title"]
        t.description = settings.get("description") or ""
        t.category = settings.get("category") or ""
        t.passing_score = settings.get("passing_score") or 0
        t.duration_minutes = (settings.get("duration_hours") or 0) * 60 + (settings.get("duration_minutes") or 0)
        t.instructions = settings.get("instructions") or ""
        t.is_free = bool(settings.get("is_free"))
        t.status = settings.get("status") or "draft"
        t.shuffle_questions = bool(settings.get("shuffle_questions"))
        t.show_results_immediately = bool(settings.get("show_results_immediately"))
        t.allow_answer_review = bool(settings.get("allow_answer_review"))
        t.enable_time_limit = bool(settings.get("enable_time_limit"))

    db.refresh(t)
    logger.info("Updated settings of test %s (status=%s, is_free=%s)", t.id, t.status, t.is_free)
    return t


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def search_tests(db: Session, query: str = "", sort: str = "modified", page: int = 1, limit: int = 10) -> dict:
    question_count = (
        db.query(func.count(TestQuestion.id))
        .filter(TestQuestion.test_id == Test.id)
        .correlate(Test)
        .scalar_subquery()
    )
    q = db.query(Test, TestFolder.name, question_count).outerjoin(TestFolder, Test.folder_id == TestFolder.id)

    query = (query or "").strip()
    if query:
        pattern = f"%{_escape_like(query.lower())}%"
        q = q.filter(or_(
            func.lower(Test.title).like(pattern, escape="\\"),
            func.lower(Test.description).like(pattern, escape="\\"),
            func.lower(TestFolder.name).like(pattern, escape="\\"),
        ))

    total = q.count()

    normalized_sort = (sort or "modified").lower()
    if normalized_sort == "name":
        q = q.order_by(Test.title.asc(), Test.id.asc())
    else:
        q = q.order_by(Test.updated_at.desc(), Test.id.desc())

    rows = q.offset((page - 1) * limit).limit(limit).all()

    return {
        "status": "success",
        "pagination": {
            "total": total,
            "totalPages": math.ceil(total / limit),
            "currentPage": page,
            "limit": limit,
        },
        "query": query,
        "sort": normalized_sort,
        "tests": [
            {
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "category": t.category,
                "status": t.status,
                "is_free": t.is_free,
                "created_at": t.created_at,
                "updated_at": t.updated_at,
                "folder_name": folder_name,
                "folder_id": t.folder_id,
                "question_count": int(count or 0),
            }
            for t, folder_name, count in rows
        ],
    }


# ----------------------------
# Questions / options
# ----------------------------

def question_dict(q: TestQuestion, include_correct: bool = True) -> dict:
    options = []
    for o in q.options:
        opt = {"option_id": o.id, "text": {"en": o.option_english, "ta": o.option_tamil}}
        if include_correct:
            opt["is_correct"] = o.is_correct
        options.append(opt)

    out = {
        "question_id": q.id,
        "question": {"en": q.question_english, "ta": q.question_tamil},
        "options": options,
    }
    if include_correct:
        out["test_id"] = q.test_id
    return out


def get_question(db: Session, test_id: int, question_id: int) -> TestQuestion | None:
    return (
        db.query(TestQuestion)
        .filter(TestQuestion.id == question_id, TestQuestion.test_id == test_id)
        .first()
    )


def add_question(db: Session, test_id: int, payload: dict) -> TestQuestion:
    if not get_test(db, test_id):
        raise NotFound("Test not found")

    with atomic(db):
        q = TestQuestion(
            test_id=test_id,
            question_english=payload.get("question_english") or "",
            question_tamil=payload.get("question_tamil") or "",
        )
        for o in payload["options"]:
            q.options.append(TestOption(
                option_english=o.get("option_english") or "",
                option_tamil=o.get("option_tamil") or "",
                is_correct=bool(o.get("is_correct")),
            ))
        db.add(q)

    db.refresh(q)
    logger.info("Added question %s with %d options to test %s", q.id, len(q.options), test_id)
    return q


def update_question(db: Session, test_id: int, question_id: int, payload: dict) -> TestQuestion:
    """
    Replace a question's text and its whole option set. Option ids are not
    preserved across edits.
    """
    q = get_question(db, test_id, question_id)
    if not q:
        raise NotFound("Question not found")

    with atomic(db):
        q.question_english = payload["question"].get("en") or ""
        q.question_tamil = payload["question"].get("ta") or ""
        q.options.clear()
        db.flush()
        for o in payload["options"]:
            q.options.append(TestOption(
                option_english=o["text"].get("en") or "",
                option_tamil=o["text"].get("ta") or "",
                is_correct=bool(o.get("is_correct")),
            ))

    db.refresh(q)
    logger.info("Replaced question %s of test %s (%d options)", q.id, test_id, len(q.options))
    return q


def delete_question(db: Session, test_id: int, question_id: int) -> int:
    q = get_question(db, test_id, question_id)
    if not q:
        raise NotFound("Question not found")
    db.delete(q)
    db.commit()
    logger.info("Deleted question %s of test %s", question_id, test_id)
    return question_id


def list_questions(db: Session, test_id: int) -> list[TestQuestion]:
    return (
        db.query(TestQuestion)
        .options(selectinload(TestQuestion.options))
        .filter(TestQuestion.test_id == test_id)
        .order_by(TestQuestion.id.asc())
        .all()
    )


# ----------------------------
# Taking and scoring
# ----------------------------

def get_public_test(db: Session, test_id: int) -> Test | None:
    return (
        db.query(Test)
        .filter(Test.id == test_id, Test.is_free.is_(True), Test.status == "published")
        .first()
    )


def get_test_details(db: Session, test_id: int) -> dict:
    """
    A free+published test as served to a test taker: settings plus questions
    whose options carry no correctness flag.
    """
    t = get_public_test(db, test_id)
    if not t:
        raise NotFound("Test not found")

    questions = [question_dict(q, include_correct=False) for q in list_questions(db, test_id)]
    if t.shuffle_questions:
        random.shuffle(questions)

    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "category": t.category,
        "duration_minutes": t.duration_minutes,
        "instructions": t.instructions,
        "passing_score": t.passing_score,
        "shuffle_questions": t.shuffle_questions,
        "show_results_immediately": t.show_results_immediately,
        "allow_answer_review": t.allow_answer_review,
        "enable_time_limit": t.enable_time_limit,
        "questions": questions,
    }


def load_answer_key(db: Session, test_id: int) -> dict[int, int | None]:
    """
    question_id -> canonical correct option id for every question of a test.
    Writes guarantee one correct option per question; should older rows carry
    several, the lowest option id wins so grading stays deterministic.
    """
    correct = (
        db.query(TestOption.question_id, func.min(TestOption.id).label("correct_option_id"))
        .filter(TestOption.is_correct.is_(True))
        .group_by(TestOption.question_id)
        .subquery()
    )
    rows = (
        db.query(TestQuestion.id, correct.c.correct_option_id)
        .outerjoin(correct, correct.c.question_id == TestQuestion.id)
        .filter(TestQuestion.test_id == test_id)
        .all()
    )
    return {qid: option_id for qid, option_id in rows}


def evaluate_test(db: Session, test_id: int, user_id: int, answers: list[dict], time_taken_seconds: int = 0) -> dict:
    t = get_test(db, test_id)
    if not t:
        raise NotFound("Test not found")

    report = grade_answers(load_answer_key(db, test_id), answers, t.passing_score)
    graded = [a.as_dict() for a in report.answers]

    with atomic(db):
        attempt = TestAttempt(
            test_id=test_id,
            user_id=user_id,
            score=report.score,
            passed=report.passed,
            answers=graded,
            total_questions=report.total_questions,
            correct_answers=report.correct_answers,
            incorrect_answers=report.incorrect_answers,
            unanswered=report.unanswered,
            time_taken_seconds=time_taken_seconds,
            passing_score=t.passing_score,
        )
        db.add(attempt)

    db.refresh(attempt)
    logger.info(
        "User %s scored %s%% on test %s (attempt %s, passed=%s)",
        user_id, report.score, test_id, attempt.id, report.passed,
    )

    return {
        "attempt_id": attempt.id,
        "test_id": test_id,
        "test_title": t.title,
        "score": report.score,
        "passed": report.passed,
        "total_questions": report.total_questions,
        "correct_answers": report.correct_answers,
        "incorrect_answers": report.incorrect_answers,
        "unanswered": report.unanswered,
        "time_taken_seconds": time_taken_seconds,
        "passing_score": t.passing_score,
        "answers": graded,
    }


# ----------------------------
# History
# ----------------------------

HISTORY_SORTS = {
    "date_desc": (TestAttempt.created_at.desc(), TestAttempt.id.desc()),
    "date_asc": (TestAttempt.created_at.asc(), TestAttempt.id.asc()),
    "score_desc": (TestAttempt.score.desc(), TestAttempt.id.desc()),
    "score_asc": (TestAttempt.score.asc(), TestAttempt.id.asc()),
}


def list_attempts(db: Session, user_id: int, page: int = 1, limit: int = 10, sort: str = "date_desc") -> dict:
    q = (
        db.query(TestAttempt, Test.title)
        .outerjoin(Test, Test.id == TestAttempt.test_id)
        .filter(TestAttempt.user_id == user_id)
    )
    total = q.count()
    rows = (
        q.order_by(*HISTORY_SORTS.get(sort, HISTORY_SORTS["date_desc"]))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "status": "success",
        "history": [
            {
                "attempt_id": a.id,
                "test_id": a.test_id,
                "test_name": title,
                "taken_date": a.created_at,
                "score": a.score,
                "passed": a.passed,
                "status": "Passed" if a.passed else "Failed",
            }
            for a, title in rows
        ],
        "pagination": {
            "total": total,
            "totalPages": math.ceil(total / limit),
            "currentPage": page,
            "limit": limit,
        },
    }


def get_attempt(db: Session, user_id: int, attempt_id: int) -> TestAttempt:
    a = (
        db.query(TestAttempt)
        .filter(TestAttempt.id == attempt_id, TestAttempt.user_id == user_id)
        .first()
    )
    if not a:
        raise NotFound("Attempt not found")
    return a
