from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from shared.database import db_dependency
from shared.security import require_admin
from .schemas import (
    FolderCreateIn, FolderOut, FolderContentsOut,
    TestCreateIn, TestCreateOut, TestSettingsIn, TestOut,
    QuestionCreateIn, QuestionUpdateIn, QuestionOut,
    QuestionSavedOut, QuestionDeletedOut, SearchOut,
)
from .crud import (
    NotFound, Conflict,
    create_folder, get_folder_contents, delete_folder,
    create_test, update_test_settings, search_tests,
    add_question, update_question, delete_question, list_questions,
    question_dict,
)


def build_router(SessionLocal):
    """Admin test-authoring endpoints; every route needs an admin token."""
    router = APIRouter(dependencies=[Depends(require_admin)])
    get_db = db_dependency(SessionLocal)

    # Folders
    @router.post("/folders", response_model=FolderOut)
    def create_folder_route(payload: FolderCreateIn, db: Session = Depends(get_db)):
        try:
            return create_folder(db, payload.name, payload.parent_id)
        except NotFound as e:
            raise HTTPException(404, str(e))

    @router.get("/folders/{folder_id}/contents", response_model=FolderContentsOut)
    def folder_contents(folder_id: int, db: Session = Depends(get_db)):
        try:
            return get_folder_contents(db, folder_id, public_access=False)
        except NotFound as e:
            raise HTTPException(404, str(e))

    @router.delete("/folders/{folder_id}", response_model=FolderOut)
    def remove_folder(folder_id: int, cascade: bool = Query(default=False), db: Session = Depends(get_db)):
        try:
            return delete_folder(db, folder_id, cascade=cascade)
        except NotFound as e:
            raise HTTPException(404, str(e))
        except Conflict as e:
            raise HTTPException(409, str(e))

    # Tests
    @router.post("/", response_model=TestCreateOut)
    def create_test_route(payload: TestCreateIn, db: Session = Depends(get_db)):
        try:
            t = create_test(db, payload.model_dump())
        except NotFound as e:
            raise HTTPException(404, str(e))
        return TestCreateOut(id=t.id, status=t.status)

    @router.put("/{test_id}/settings", response_model=TestOut)
    def update_settings(test_id: int, payload: TestSettingsIn, db: Session = Depends(get_db)):
        try:
            return update_test_settings(db, test_id, payload.model_dump())
        except NotFound as e:
            raise HTTPException(404, str(e))

    @router.get("/search", response_model=SearchOut)
    def search(
        query: str = Query(default=""),
        sort: str = Query(default="modified"),
        page: int = Query(default=1, ge=1),
        limit: int = Query(default=10, ge=1, le=100),
        db: Session = Depends(get_db),
    ):
        return search_tests(db, query, sort, page, limit)

    # Questions
    @router.post("/{test_id}/questions", response_model=QuestionSavedOut)
    def create_question(test_id: int, payload: QuestionCreateIn, db: Session = Depends(get_db)):
        try:
            q = add_question(db, test_id, payload.model_dump())
        except NotFound as e:
            raise HTTPException(404, str(e))
        return {"status": "success", "message": "Question added successfully.", "question": question_dict(q)}

    @router.put("/{test_id}/questions/{question_id}", response_model=QuestionSavedOut)
    def edit_question(test_id: int, question_id: int, payload: QuestionUpdateIn, db: Session = Depends(get_db)):
        try:
            q = update_question(db, test_id, question_id, payload.model_dump())
        except NotFound as e:
            raise HTTPException(404, str(e))
        return {"status": "success", "message": "Question updated successfully.", "question": question_dict(q)}

    @router.delete("/{test_id}/questions/{question_id}", response_model=QuestionDeletedOut)
    def remove_question(test_id: int, question_id: int, db: Session = Depends(get_db)):
        try:
            deleted_id = delete_question(db, test_id, question_id)
        except NotFound as e:
            raise HTTPException(404, str(e))
        return {"status": "success", "message": "Question deleted successfully.", "question_id": deleted_id}

    @router.get("/{test_id}/questions", response_model=list[QuestionOut])
    def get_questions(test_id: int, db: Session = Depends(get_db)):
        return [question_dict(q) for q in list_questions(db, test_id)]

    return router
