"""
Free/published test catalog.

The folder forest is read with one recursive query from the roots down, the
free+published tests with a second query, and the tree is assembled here.
A folder survives only if it, or some folder below it, owns at least one
free+published test; each node embeds just the tests it owns directly.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from .models import Test

FOLDER_TREE_SQL = text("""
    WITH RECURSIVE folder_tree(id, name, parent_id, level) AS (
        SELECT id, name, parent_id, 0
        FROM test_folders
        WHERE parent_id IS NULL

        UNION ALL

        SELECT tf.id, tf.name, tf.parent_id, ft.level + 1
        FROM test_folders tf
        JOIN folder_tree ft ON tf.parent_id = ft.id
    )
    SELECT id, name, parent_id, level
    FROM folder_tree
    ORDER BY level, name, id
""")


@dataclass
class FolderNode:
    id: int
    name: str
    parent_id: Optional[int]
    level: int
    tests: List[dict] = field(default_factory=list)
    subfolders: List["FolderNode"] = field(default_factory=list)
    has_tests: bool = False

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "parent_id": self.parent_id,
            "level": self.level,
            "has_tests": self.has_tests,
            "tests": list(self.tests),
            "subfolders": [s.as_dict() for s in self.subfolders],
        }


def _catalog_test(t: Test) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "description": t.description,
        "category": t.category,
        "duration_minutes": t.duration_minutes,
        "instructions": t.instructions,
        "status": t.status,
    }


def _mark_and_prune(node: FolderNode) -> bool:
    node.subfolders = [s for s in node.subfolders if _mark_and_prune(s)]
    node.has_tests = bool(node.tests) or bool(node.subfolders)
    return node.has_tests


def build_catalog_tree(folder_rows: List[tuple], tests_by_folder: Dict[int, List[dict]]) -> List[FolderNode]:
    """
    `folder_rows` are (id, name, parent_id, level) tuples ordered so every
    parent precedes its children; siblings keep their (name) order.
    """
    nodes: Dict[int, FolderNode] = {}
    roots: List[FolderNode] = []

    for fid, name, parent_id, level in folder_rows:
        node = FolderNode(
            id=fid,
            name=name,
            parent_id=parent_id,
            level=level,
            tests=tests_by_folder.get(fid, []),
        )
        nodes[fid] = node
        if parent_id is None:
            roots.append(node)
        elif parent_id in nodes:
            nodes[parent_id].subfolders.append(node)

    return [r for r in roots if _mark_and_prune(r)]


def get_free_tests(db: Session) -> List[dict]:
    folder_rows = [tuple(r) for r in db.execute(FOLDER_TREE_SQL).fetchall()]

    free_tests = (
        db.query(Test)
        .filter(Test.folder_id.isnot(None), Test.is_free.is_(True), Test.status == "published")
        .order_by(Test.id.asc())
        .all()
    )
    tests_by_folder: Dict[int, List[dict]] = {}
    for t in free_tests:
        tests_by_folder.setdefault(t.folder_id, []).append(_catalog_test(t))

    return [n.as_dict() for n in build_catalog_tree(folder_rows, tests_by_folder)]
