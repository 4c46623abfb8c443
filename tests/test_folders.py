def test_create_root_and_child_folder(client, admin_headers):
    r = client.post("/api/admin/test/folders", json={"name": "Maths", "parent_id": None}, headers=admin_headers)
    assert r.status_code == 200
    root = r.json()
    assert root["name"] == "Maths"
    assert root["parent_id"] is None
    assert root["created_at"]

    r = client.post("/api/admin/test/folders", json={"name": "Algebra", "parent_id": root["id"]}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["parent_id"] == root["id"]


def test_null_string_parent_means_root(client, admin_headers):
    r = client.post("/api/admin/test/folders", json={"name": "Science", "parent_id": "null"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["parent_id"] is None


def test_create_folder_under_missing_parent_is_404(client, admin_headers):
    r = client.post("/api/admin/test/folders", json={"name": "Orphan", "parent_id": 999}, headers=admin_headers)
    assert r.status_code == 404
    assert r.json() == {"error": "Parent folder not found"}


def test_create_folder_requires_name(client, admin_headers):
    r = client.post("/api/admin/test/folders", json={"name": ""}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["error"] == "Invalid request."


def test_breadcrumbs_are_root_first_with_depth_plus_one_entries(client, admin_headers, make_folder):
    a = make_folder("A")
    b = make_folder("B", a)
    c = make_folder("C", b)
    d = make_folder("D", c)

    r = client.get(f"/api/admin/test/folders/{d}/contents", headers=admin_headers)
    assert r.status_code == 200
    body = r.json()
    assert body["folder"] == {"id": d, "name": "D"}
    assert body["breadcrumbs"] == [
        {"id": a, "name": "A"},
        {"id": b, "name": "B"},
        {"id": c, "name": "C"},
        {"id": d, "name": "D"},
    ]

    r = client.get(f"/api/admin/test/folders/{a}/contents", headers=admin_headers)
    assert r.json()["breadcrumbs"] == [{"id": a, "name": "A"}]


def test_contents_lists_direct_subfolders_by_name(client, admin_headers, make_folder):
    root = make_folder("Root")
    make_folder("Zeta", root)
    make_folder("Alpha", root)
    grandchild_parent = make_folder("Mid", root)
    make_folder("Deep", grandchild_parent)

    r = client.get(f"/api/admin/test/folders/{root}/contents", headers=admin_headers)
    assert [f["name"] for f in r.json()["folders"]] == ["Alpha", "Mid", "Zeta"]


def test_admin_contents_show_all_tests_public_only_free_published(client, admin_headers, make_folder, make_test):
    folder = make_folder("Mixed")
    draft = make_test(folder, title="Draft")
    paid = make_test(folder, title="Paid", publish=True)
    free_draft = make_test(folder, title="Free draft", is_free=True)
    free_pub = make_test(folder, title="Free published", publish=True, is_free=True)

    r = client.get(f"/api/admin/test/folders/{folder}/contents", headers=admin_headers)
    assert {t["id"] for t in r.json()["tests"]} == {draft["id"], paid["id"], free_draft["id"], free_pub["id"]}

    # public view needs no token
    r = client.get(f"/api/tests/folders/{folder}/contents/public")
    assert r.status_code == 200
    tests = r.json()["tests"]
    assert [t["id"] for t in tests] == [free_pub["id"]]
    assert tests[0] == {"id": free_pub["id"], "title": "Free published", "is_free": True, "status": "published"}


def test_contents_of_missing_folder_is_404(client, admin_headers):
    assert client.get("/api/admin/test/folders/12345/contents", headers=admin_headers).status_code == 404
    assert client.get("/api/tests/folders/12345/contents/public").status_code == 404


def test_delete_empty_folder(client, admin_headers, make_folder):
    folder = make_folder("Empty")

    r = client.delete(f"/api/admin/test/folders/{folder}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["id"] == folder
    assert r.json()["name"] == "Empty"

    assert client.get(f"/api/admin/test/folders/{folder}/contents", headers=admin_headers).status_code == 404


def test_delete_missing_folder_is_404(client, admin_headers):
    assert client.delete("/api/admin/test/folders/777", headers=admin_headers).status_code == 404


def test_delete_non_empty_folder_is_refused_without_cascade(client, admin_headers, make_folder, make_test):
    parent = make_folder("Parent")
    make_folder("Child", parent)
    holder = make_folder("Holder")
    make_test(holder)

    r = client.delete(f"/api/admin/test/folders/{parent}", headers=admin_headers)
    assert r.status_code == 409
    r = client.delete(f"/api/admin/test/folders/{holder}", headers=admin_headers)
    assert r.status_code == 409

    # nothing was removed
    assert client.get(f"/api/admin/test/folders/{parent}/contents", headers=admin_headers).status_code == 200


def test_cascade_delete_removes_subtree_and_tests(client, admin_headers, make_folder, make_test):
    top = make_folder("Top")
    mid = make_folder("Mid", top)
    leaf = make_folder("Leaf", mid)
    sibling = make_folder("Sibling")
    doomed = make_test(leaf, title="Doomed")
    survivor = make_test(sibling, title="Survivor")

    r = client.delete(f"/api/admin/test/folders/{top}?cascade=true", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["id"] == top

    for fid in (top, mid, leaf):
        assert client.get(f"/api/admin/test/folders/{fid}/contents", headers=admin_headers).status_code == 404

    r = client.get(f"/api/admin/test/{doomed['id']}/questions", headers=admin_headers)
    assert r.json() == []

    r = client.get(f"/api/admin/test/{survivor['id']}/questions", headers=admin_headers)
    assert len(r.json()) == 3

    r = client.get("/api/admin/test/search?query=doomed", headers=admin_headers)
    assert r.json()["pagination"]["total"] == 0


def test_root_folder_listing_has_counts(client, student_headers, make_folder, make_test):
    b = make_folder("Beta")
    a = make_folder("Alpha")
    make_folder("Alpha child", a)
    make_test(a)
    make_test(a)

    r = client.get("/api/tests/free/all", headers=student_headers)
    assert r.status_code == 200
    assert r.json() == [
        {"id": a, "name": "Alpha", "parent_id": None, "subfolder_count": 1, "test_count": 2},
        {"id": b, "name": "Beta", "parent_id": None, "subfolder_count": 0, "test_count": 0},
    ]
