# tests/api/test_board_routes.py
API = "/api/v0"


def test_sync_and_list_boards(client, core, statuses, w1, project):
    _, steps = w1
    core.boards.create_board(project.id, "Main")

    r = client.post(f"{API}/projects/{project.id}/boards/sync")
    assert r.status_code == 200, r.text
    assert r.json() == {"project_id": project.id, "boards_updated": 1, "errors": []}

    boards = client.get(f"{API}/projects/{project.id}/boards").json()
    assert len(boards) == 1
    columns = boards[0]["columns"]
    assert [c["name"] for c in columns] == ["To Do", "In Progress", "Done"]
    assert sorted(sid for c in columns for sid in c["status_ids"]) == sorted(steps)


def test_unknown_project(client):
    assert client.get(f"{API}/projects/prj_missing/boards").status_code == 404
    assert client.post(f"{API}/projects/prj_missing/boards/sync").status_code == 404


def test_statuses_catalog(client, statuses):
    r = client.get(f"{API}/statuses")
    assert r.status_code == 200
    assert [s["name"] for s in r.json()] == ["Backlog", "In Progress", "Review", "Done"]

    r = client.post(f"{API}/statuses", json={"name": "Blocked", "category": "in_progress"})
    assert r.status_code == 201
    assert r.json()["id"].startswith("st_")
