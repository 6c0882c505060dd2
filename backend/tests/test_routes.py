"""
Catalog Media Backend — API Endpoint Tests
===========================================

What:  HTTP-level tests for the upload, replace, reclaim, policy and health routes.
How:   HTTPX AsyncClient over ASGITransport against an app built per test
       with its own storage root.

What we test:
    ✅ Status codes and error bodies for every rejection
    ✅ Stored files are served back by the static mount
    ✅ Replace and reclaim round trips
    ✅ Request ID header
"""

import pytest

from conftest import path_on_disk


def jpeg_file(raw, name="photo.jpg", media_type="image/jpeg"):
    return {"file": (name, raw, media_type)}


class TestUpload:
    """POST /api/uploads/{namespace}"""

    @pytest.mark.asyncio
    async def test_upload_single_variant(self, test_client, temp_storage, sample_jpeg_bytes):
        response = await test_client.post(
            "/api/uploads/services", files=jpeg_file(sample_jpeg_bytes)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["namespace"] == "services"
        [variant] = body["variants"]
        assert variant["spec_name"] == "default"
        assert path_on_disk(temp_storage, variant["relative_path"]).is_file()

    @pytest.mark.asyncio
    async def test_upload_three_variants(self, test_client, sample_jpeg_bytes):
        response = await test_client.post("/api/uploads/works", files=jpeg_file(sample_jpeg_bytes))
        assert response.status_code == 201
        assert [v["spec_name"] for v in response.json()["variants"]] == ["large", "medium", "thumb"]

    @pytest.mark.asyncio
    async def test_stored_file_is_served(self, test_client, sample_jpeg_bytes):
        response = await test_client.post(
            "/api/uploads/masters", files=jpeg_file(sample_jpeg_bytes)
        )
        path = response.json()["variants"][0]["relative_path"]

        served = await test_client.get(path)

        assert served.status_code == 200
        assert served.content[:4] == b"RIFF"

    @pytest.mark.asyncio
    async def test_unsupported_type_415(self, test_client, temp_storage):
        response = await test_client.post(
            "/api/uploads/services", files=jpeg_file(b"%PDF-1.4", "doc.pdf", "application/pdf")
        )
        assert response.status_code == 415
        body = response.json()
        assert body["error"] == "unsupported_media_type"
        assert "image/jpeg" in body["details"]["allowed"]
        assert not any(temp_storage.iterdir())

    @pytest.mark.asyncio
    async def test_too_large_413(self, test_client):
        oversized = b"\xff\xd8" + b"\x00" * (5 * 1024 * 1024)
        response = await test_client.post("/api/uploads/services", files=jpeg_file(oversized))
        assert response.status_code == 413
        assert response.json()["error"] == "payload_too_large"

    @pytest.mark.asyncio
    async def test_empty_file_400(self, test_client):
        response = await test_client.post("/api/uploads/services", files=jpeg_file(b""))
        assert response.status_code == 400
        assert "empty" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_missing_file_400(self, test_client):
        response = await test_client.post(
            "/api/uploads/services", files={"other": ("a.txt", b"x", "text/plain")}
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_two_files_400(self, test_client, sample_jpeg_bytes):
        response = await test_client.post(
            "/api/uploads/services",
            files=[
                ("file", ("a.jpg", sample_jpeg_bytes, "image/jpeg")),
                ("file", ("b.jpg", sample_jpeg_bytes, "image/jpeg")),
            ],
        )
        assert response.status_code == 400
        assert "Exactly one" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_unknown_namespace_404(self, test_client, sample_jpeg_bytes):
        response = await test_client.post(
            "/api/uploads/gift-cards", files=jpeg_file(sample_jpeg_bytes)
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_corrupt_image_422(self, test_client, temp_storage):
        response = await test_client.post(
            "/api/uploads/works", files=jpeg_file(b"\xff\xd8\xff\xe0 broken")
        )
        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "processing_failed"
        assert "details" not in body
        assert not any(temp_storage.rglob("*.webp"))


class TestReplaceAndReclaim:
    """POST /api/uploads/{namespace}/replace and POST /api/uploads/reclaim"""

    @pytest.mark.asyncio
    async def test_replace_reclaims_previous_image(
        self, test_client, temp_storage, sample_jpeg_bytes
    ):
        first = await test_client.post("/api/uploads/services", files=jpeg_file(sample_jpeg_bytes))
        old_path = first.json()["variants"][0]["relative_path"]

        response = await test_client.post(
            "/api/uploads/services/replace",
            files=jpeg_file(sample_jpeg_bytes),
            data={"old_paths": [old_path]},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["reclaimed"]["deleted"] == 1
        assert not path_on_disk(temp_storage, old_path).exists()
        assert path_on_disk(temp_storage, body["variants"][0]["relative_path"]).is_file()

    @pytest.mark.asyncio
    async def test_replace_with_bad_file_keeps_old(
        self, test_client, temp_storage, sample_jpeg_bytes
    ):
        first = await test_client.post("/api/uploads/services", files=jpeg_file(sample_jpeg_bytes))
        old_path = first.json()["variants"][0]["relative_path"]

        response = await test_client.post(
            "/api/uploads/services/replace",
            files=jpeg_file(b"GIF89a", "a.gif", "image/gif"),
            data={"old_paths": [old_path]},
        )

        assert response.status_code == 415
        assert path_on_disk(temp_storage, old_path).is_file()

    @pytest.mark.asyncio
    async def test_reclaim_is_idempotent(self, test_client, sample_jpeg_bytes):
        upload = await test_client.post("/api/uploads/works", files=jpeg_file(sample_jpeg_bytes))
        paths = [v["relative_path"] for v in upload.json()["variants"]]

        first = await test_client.post("/api/uploads/reclaim", json={"paths": paths})
        second = await test_client.post("/api/uploads/reclaim", json={"paths": paths})

        assert first.status_code == 200
        assert first.json()["deleted"] == 3
        assert second.json()["already_absent"] == 3
        assert second.json()["ok"] is True

    @pytest.mark.asyncio
    async def test_reclaim_traversal_reported_not_raised(self, test_client):
        response = await test_client.post(
            "/api/uploads/reclaim", json={"paths": ["../../etc/passwd", None]}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["failed"] == 1
        assert body["ok"] is False
        assert body["results"][0]["reason"] == "outside storage root"

    @pytest.mark.asyncio
    async def test_replace_with_nul_old_path_still_201(
        self, test_client, temp_storage, sample_jpeg_bytes
    ):
        response = await test_client.post(
            "/api/uploads/services/replace",
            files=jpeg_file(sample_jpeg_bytes),
            data={"old_paths": ["/uploads/services/a\x00.webp"]},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["reclaimed"]["failed"] == 1
        assert path_on_disk(temp_storage, body["variants"][0]["relative_path"]).is_file()

    @pytest.mark.asyncio
    async def test_reclaim_nul_byte_reported_not_raised(self, test_client):
        response = await test_client.post(
            "/api/uploads/reclaim", json={"paths": ["/uploads/services/a\u0000.webp"]}
        )
        assert response.status_code == 200
        assert response.json()["failed"] == 1


class TestMetaRoutes:
    """GET /api/uploads/policies, GET /health, request IDs."""

    @pytest.mark.asyncio
    async def test_list_policies(self, test_client):
        response = await test_client.get("/api/uploads/policies")
        assert response.status_code == 200
        body = response.json()
        assert [p["namespace"] for p in body] == ["masters", "products", "services", "works"]
        assert [v["name"] for v in body[3]["variants"]] == ["large", "medium", "thumb"]

    @pytest.mark.asyncio
    async def test_health_healthy(self, test_client):
        response = await test_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["storage"] == "writable"
        assert body["version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_health_missing_root_503(self, test_client, temp_storage):
        temp_storage.rmdir()
        response = await test_client.get("/health")
        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_request_id_generated(self, test_client):
        response = await test_client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 8

    @pytest.mark.asyncio
    async def test_request_id_echoed_in_errors(self, test_client):
        response = await test_client.post(
            "/api/uploads/services",
            files=jpeg_file(b""),
            headers={"X-Request-ID": "trace-123"},
        )
        assert response.headers["X-Request-ID"] == "trace-123"
        assert response.json()["request_id"] == "trace-123"
