"""HTTP tests for the gallery API, run in-process through httpx."""

import io

import httpx
import pytest
from PIL import Image

from gallery_manager.database import get_db
from gallery_manager.main import app
from gallery_manager.routes.gallery import get_gallery_config
from gallery_manager.utils.auth import require_admin

HEADERS = {"X-Session-Id": "sess42", "X-CSRF-Token": "token-1"}


def jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (40, 30), color=(10, 120, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
async def client(session, gallery_config):
    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gallery_config] = lambda: gallery_config
    try:
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


async def upload(client, gallery_id: str = "temp-3-sess42", content: bytes = None) -> httpx.Response:
    return await client.post(
        f"/api/gallery/Post/{gallery_id}/images",
        files={"file": ("photo.jpg", content if content is not None else jpeg_bytes(), "image/jpeg")},
        headers=HEADERS,
    )


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestUploadAndList:
    async def test_upload_into_temporary_gallery_records_ticket(self, client):
        response = await upload(client)

        assert response.status_code == 201
        image = response.json()
        assert image["urls"]["original"].startswith(f"/media/gallery/temp-3-sess42/{image['id']}/original.jpg")

        tickets = await client.get("/api/gallery/tickets/3", headers=HEADERS)
        assert tickets.json() == {"temporary_index": "3", "image_ids": [image["id"]]}

    async def test_list_images(self, client):
        first = (await upload(client)).json()
        second = (await upload(client)).json()

        response = await client.get("/api/gallery/Post/temp-3-sess42/images", headers=HEADERS)

        body = response.json()
        assert response.status_code == 200
        assert body["temporary"] is True
        assert body["gallery_id"] == "temp-3-sess42"
        assert [image["id"] for image in body["images"]] == [first["id"], second["id"]]

    async def test_upload_into_permanent_gallery_has_no_ticket(self, client):
        response = await upload(client, gallery_id="17")

        assert response.status_code == 201
        listing = (await client.get("/api/gallery/Post/17/images", headers=HEADERS)).json()
        assert listing["temporary"] is False
        tickets = await client.get("/api/gallery/tickets/0", headers=HEADERS)
        assert tickets.json()["image_ids"] == []

    async def test_upload_rejects_non_image(self, client):
        response = await upload(client, content=b"plain text")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid file type"

    async def test_rotate_ticket_token(self, client):
        image = (await upload(client)).json()

        response = await client.put("/api/gallery/tickets/3/rotate", json={"new_token": "token-2"}, headers=HEADERS)

        assert response.json() == {"rotated": 1}
        rotated = {**HEADERS, "X-CSRF-Token": "token-2"}
        assert (await client.get("/api/gallery/tickets/3", headers=rotated)).json()["image_ids"] == [image["id"]]


class TestEditing:
    async def test_update_data_arrange_and_delete(self, client):
        ids = [(await upload(client, gallery_id="17")).json()["id"] for _ in range(3)]

        response = await client.put(
            "/api/gallery/Post/17/images",
            json={"images": {str(ids[0]): {"name": "cover"}}},
        )
        assert response.status_code == 200
        assert response.json()[0]["name"] == "cover"

        response = await client.put(
            "/api/gallery/Post/17/order",
            json={"order": {str(ids[2]): None, str(ids[0]): None, str(ids[1]): None}},
        )
        assert response.status_code == 200
        listing = (await client.get("/api/gallery/Post/17/images")).json()
        assert [image["id"] for image in listing["images"]] == [ids[2], ids[0], ids[1]]

        response = await client.request("DELETE", "/api/gallery/Post/17/images", json={"image_ids": ids})
        assert response.json()["deleted_ids"] == ids

    async def test_delete_unknown_images(self, client):
        response = await client.request("DELETE", "/api/gallery/Post/17/images", json={"image_ids": [999]})
        assert response.status_code == 404

    async def test_arrange_requires_ids(self, client):
        response = await client.put("/api/gallery/Post/17/order", json={"order": {}})
        assert response.status_code == 400

    @pytest.mark.parametrize("gallery_id", ["%2E", "%2E%2E", "a%5Cb", "a%00b"])
    async def test_path_like_gallery_ids_are_rejected(self, client, gallery_config, gallery_id):
        await upload(client, gallery_id="17")

        response = await client.request(
            "DELETE", f"/api/gallery/Post/{gallery_id}/images", json={"image_ids": [999]}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid gallery ID"
        assert (gallery_config.directory / "17").is_dir()


class TestMaintenance:
    async def test_admin_endpoints_require_password(self, client):
        assert (await client.post("/api/gallery/Post/regenerate", json={})).status_code == 401
        assert (await client.delete("/api/gallery/Post/orphans")).status_code == 401

    async def test_regenerate(self, client):
        await upload(client, gallery_id="17")
        app.dependency_overrides[require_admin] = lambda: True

        response = await client.post("/api/gallery/Post/regenerate", json={"only_versions": ["small"]})

        assert response.json() == {"succeeded": 1, "failed": 0}

    async def test_reap_orphans(self, client):
        await upload(client)
        await upload(client, gallery_id="17")
        app.dependency_overrides[require_admin] = lambda: True

        response = await client.delete("/api/gallery/Post/orphans", params={"min_age_hours": 0})

        assert response.json() == {"reaped": ["temp-3-sess42"], "count": 1}
