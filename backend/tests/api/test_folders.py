"""Tests for folder endpoints."""
from httpx import AsyncClient


class TestFolderEndpoints:
    """Tests for /folders."""

    async def test__list_folders__starts_with_general(
        self, client: AsyncClient, auth_headers: dict[str, str],
    ) -> None:
        response = await client.get("/folders/", headers=auth_headers)
        assert response.status_code == 200
        assert [f["name"] for f in response.json()] == ["General"]

    async def test__create_folder__201_and_listed(
        self, client: AsyncClient, auth_headers: dict[str, str],
    ) -> None:
        response = await client.post("/folders/", json={"name": "Work"}, headers=auth_headers)
        assert response.status_code == 201
        folder = response.json()
        assert folder["name"] == "Work"
        assert folder["sort_order"] == 0

        names = [f["name"] for f in (await client.get("/folders/", headers=auth_headers)).json()]
        assert names == ["General", "Work"]

    async def test__create_folder__duplicate_is_409(
        self, client: AsyncClient, auth_headers: dict[str, str],
    ) -> None:
        await client.post("/folders/", json={"name": "Work"}, headers=auth_headers)
        response = await client.post("/folders/", json={"name": "Work"}, headers=auth_headers)
        assert response.status_code == 409
        assert response.json()["detail"] == "Folder name already exists"

    async def test__create_folder__reserved_name_is_400(
        self, client: AsyncClient, auth_headers: dict[str, str],
    ) -> None:
        response = await client.post("/folders/", json={"name": "general"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot use 'General' as folder name - it's reserved"

    async def test__create_folder__blank_name_is_400(
        self, client: AsyncClient, auth_headers: dict[str, str],
    ) -> None:
        response = await client.post("/folders/", json={"name": "\x00\x01"}, headers=auth_headers)
        assert response.status_code == 400

    async def test__rename_folder(self, client: AsyncClient, auth_headers: dict[str, str]) -> None:
        folder = (await client.post("/folders/", json={"name": "Work"}, headers=auth_headers)).json()
        response = await client.put(f"/folders/{folder['id']}", json={"name": "Office"}, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Office"

    async def test__rename_general__is_400(self, client: AsyncClient, auth_headers: dict[str, str]) -> None:
        [general] = (await client.get("/folders/", headers=auth_headers)).json()
        response = await client.put(f"/folders/{general['id']}", json={"name": "Inbox"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot rename the 'General' folder"

    async def test__delete_general__is_400(self, client: AsyncClient, auth_headers: dict[str, str]) -> None:
        [general] = (await client.get("/folders/", headers=auth_headers)).json()
        response = await client.delete(f"/folders/{general['id']}", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot delete the 'General' folder"

    async def test__delete_folder__moves_snippets(
        self, client: AsyncClient, auth_headers: dict[str, str],
    ) -> None:
        folder = (await client.post("/folders/", json={"name": "Temp"}, headers=auth_headers)).json()
        for trigger in ("a", "b", "c"):
            await client.post(
                "/snippets/",
                json={"title": trigger, "content": trigger, "trigger": trigger, "folder_id": folder["id"]},
                headers=auth_headers,
            )

        response = await client.delete(f"/folders/{folder['id']}", headers=auth_headers)
        assert response.status_code == 204

        folders = (await client.get("/folders/", headers=auth_headers)).json()
        assert [f["name"] for f in folders] == ["General"]
        snippets = (await client.get("/snippets/", headers=auth_headers)).json()
        assert {s["folder_id"] for s in snippets} == {folders[0]["id"]}

    async def test__other_users_folder__is_404(
        self, client: AsyncClient, auth_headers: dict[str, str], other_auth_headers: dict[str, str],
    ) -> None:
        folder = (await client.post("/folders/", json={"name": "Work"}, headers=auth_headers)).json()

        assert (await client.get(f"/folders/{folder['id']}", headers=other_auth_headers)).status_code == 404
        response = await client.put(
            f"/folders/{folder['id']}", json={"name": "Stolen"}, headers=other_auth_headers,
        )
        assert response.status_code == 404
        assert (await client.delete(f"/folders/{folder['id']}", headers=other_auth_headers)).status_code == 404
