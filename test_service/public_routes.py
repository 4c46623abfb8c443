from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from shared.database import db_dependency
from shared.security import require_user
from .schemas import (
    CatalogFolderOut, RootFolderOut, FolderContentsOut,
    TestDetailsOut, PublicQuestionOut,
    SubmitTestIn, SubmitTestOut, HistoryOut, AttemptOut,
)
from .catalog import get_free_tests
from .crud import (
    NotFound,
    list_root_folders, get_folder_contents,
    get_test_details, evaluate_test,
    list_attempts, get_attempt,
)


def build_public_router(SessionLocal):
    router = APIRouter()
    get_db = db_dependency(SessionLocal)

    # Catalog
    @router.get("/free", response_model=list[CatalogFolderOut], dependencies=[Depends(require_user)])
    def free_tests(db: Session = Depends(get_db)):
        return get_free_tests(db)

    @router.get("/free/all", response_model=list[RootFolderOut], dependencies=[Depends(require_user)])
    def root_folders(db: Session = Depends(get_db)):
        return list_root_folders(db)

    @router.get("/folders/{folder_id}/contents/public", response_model=FolderContentsOut)
    def public_folder_contents(folder_id: int, db: Session = Depends(get_db)):
        try:
            return get_folder_contents(db, folder_id, public_access=True)
        except NotFound as e:
            raise HTTPException(404, str(e))

    # Taking a test
    @router.get("/test/{test_id}/take", response_model=TestDetailsOut, dependencies=[Depends(require_user)])
    def take_test(test_id: int, db: Session = Depends(get_db)):
        try:
            return get_test_details(db, test_id)
        except NotFound as e:
            raise HTTPException(404, str(e))

    @router.get("/test/{test_id}/questions/details", dependencies=[Depends(require_user)])
    def test_questions(test_id: int, db: Session = Depends(get_db)):
        try:
            details = get_test_details(db, test_id)
        except NotFound as e:
            raise HTTPException(404, str(e))
        questions = [PublicQuestionOut(**q) for q in details["questions"]]
        return {"test_id": test_id, "total_questions": len(questions), "questions": questions}

    @router.post("/test/{test_id}/submit", response_model=SubmitTestOut)
    def submit_test(
        test_id: int,
        payload: SubmitTestIn,
        user: dict = Depends(require_user),
        db: Session = Depends(get_db),
    ):
        try:
            return evaluate_test(
                db,
                test_id,
                user["id"],
                [a.model_dump() for a in payload.answers],
                payload.time_taken_seconds,
            )
        except NotFound as e:
            raise HTTPException(404, str(e))

    # History
    @router.get("/history", response_model=HistoryOut)
    def history(
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        sort: str = Query(default="date_desc", pattern="^(date_desc|date_asc|score_desc|score_asc)$"),
        user: dict = Depends(require_user),
        db: Session = Depends(get_db),
    ):
        return list_attempts(db, user["id"], page, limit, sort)

    @router.get("/history/{attempt_id}", response_model=AttemptOut)
    def attempt_detail(attempt_id: int, user: dict = Depends(require_user), db: Session = Depends(get_db)):
        try:
            return get_attempt(db, user["id"], attempt_id)
        except NotFound as e:
            raise HTTPException(404, str(e))

    return router
