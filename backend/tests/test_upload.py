import pytest
from fastapi.testclient import TestClient

from conftest import PNG_BYTES, login, on_event_loop
from sharecdn.main import create_app
from sharecdn.routers.upload import MULTIPART_OVERHEAD
from sharecdn.utils.filesystem import resolve_inside


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def uploaded_files(settings):
    return sorted(p.name for p in settings.upload_dir.iterdir() if p.is_file())


class TestShareXUpload:
    def test_multipart_upload(self, client, upload_token, tmp_settings):
        r = client.post(
            "/upload",
            headers=bearer(upload_token),
            files={"file": ("shot one.png", PNG_BYTES, "image/png")},
        )
        assert r.status_code == 200, r.text
        body = r.json()
        assert body["success"] is True
        assert body["url"].startswith("http://testserver/i/")
        assert body["url"].endswith("-shot_one.png")
        assert body["delete_url"].startswith("http://testserver/api/images/")

        stored = uploaded_files(tmp_settings)
        assert len(stored) == 1
        assert (tmp_settings.upload_dir / stored[0]).read_bytes() == PNG_BYTES

    def test_raw_body_upload(self, client, upload_token, tmp_settings):
        r = client.post(
            "/upload",
            headers={**bearer(upload_token), "Content-Type": "image/png", "X-Filename": "raw.png"},
            content=PNG_BYTES,
        )
        assert r.status_code == 200, r.text
        assert r.json()["url"].endswith("-raw.png")
        assert len(uploaded_files(tmp_settings)) == 1

    def test_served_back(self, client, upload_token):
        r = client.post(
            "/upload", headers=bearer(upload_token), files={"file": ("a.png", PNG_BYTES, "image/png")}
        )
        path = r.json()["url"].removeprefix("http://testserver")
        served = client.get(path)
        assert served.status_code == 200
        assert served.content == PNG_BYTES
        assert "immutable" in served.headers["cache-control"]

    def test_missing_token(self, client, tmp_settings):
        r = client.post("/upload", files={"file": ("a.png", PNG_BYTES, "image/png")})
        assert r.status_code == 401
        assert r.json() == {"success": False, "error": "Missing Authorization header"}
        assert uploaded_files(tmp_settings) == []

    def test_wrong_token(self, client):
        r = client.post(
            "/upload", headers=bearer("not-the-token"), files={"file": ("a.png", PNG_BYTES, "image/png")}
        )
        assert r.status_code == 401
        assert r.json()["error"] == "Invalid upload token"

    def test_token_hash_check_runs_off_event_loop(self, client, ctx, upload_token, monkeypatch):
        calls = []
        verify = ctx.upload_tokens.verify

        def recording_verify(candidate):
            calls.append(on_event_loop())
            return verify(candidate)

        monkeypatch.setattr(ctx.upload_tokens, "verify", recording_verify)
        r = client.post(
            "/upload", headers=bearer(upload_token), files={"file": ("a.png", PNG_BYTES, "image/png")}
        )
        assert r.status_code == 200
        assert calls == [False]

    def test_non_image_rejected(self, client, upload_token, tmp_settings):
        r = client.post(
            "/upload", headers=bearer(upload_token), files={"file": ("notes.txt", b"hello", "text/plain")}
        )
        assert r.status_code == 400
        assert r.json()["error"] == "Only image/* allowed"
        assert uploaded_files(tmp_settings) == []

    def test_missing_file_field(self, client, upload_token):
        r = client.post(
            "/upload", headers=bearer(upload_token), files={"other": ("a.png", PNG_BYTES, "image/png")}
        )
        assert r.status_code == 400
        assert r.json()["error"] == "No file provided (field name: file)"

    def test_empty_file(self, client, upload_token, tmp_settings):
        r = client.post(
            "/upload", headers=bearer(upload_token), files={"file": ("a.png", b"", "image/png")}
        )
        assert r.status_code == 400
        assert uploaded_files(tmp_settings) == []

    def test_owner_from_email_header(self, client, upload_token, admin_password):
        r = client.post(
            "/upload",
            headers={**bearer(upload_token), "X-User-Email": "ADMIN@example.com"},
            files={"file": ("a.png", PNG_BYTES, "image/png")},
        )
        assert r.status_code == 200

        login(client, "admin", admin_password)
        images = client.get("/api/images").json()["images"]
        assert len(images) == 1
        assert images[0]["owner"] == "admin"
        assert images[0]["originalname"] == "a.png"
        assert images[0]["size"] == len(PNG_BYTES)

    def test_unowned_upload_is_managed_by_admin(self, client, upload_token, admin_password, tmp_settings):
        r = client.post(
            "/upload",
            headers={**bearer(upload_token), "X-User-Email": "nobody@example.com"},
            files={"file": ("a.png", PNG_BYTES, "image/png")},
        )
        delete_path = r.json()["delete_url"].removeprefix("http://testserver")

        login(client, "admin", admin_password)
        images = client.get("/api/images").json()["images"]
        assert [i["owner"] for i in images] == [None]

        assert client.delete(delete_path).status_code == 200
        assert client.get("/api/images").json()["images"] == []
        assert uploaded_files(tmp_settings) == []

    def test_unowned_upload_hidden_from_regular_users(self, client, upload_token, user_client):
        r = client.post(
            "/upload", headers=bearer(upload_token), files={"file": ("a.png", PNG_BYTES, "image/png")}
        )
        delete_path = r.json()["delete_url"].removeprefix("http://testserver")

        assert user_client.get("/api/images").json()["images"] == []
        assert user_client.delete(delete_path).status_code == 404

    def test_very_long_filename(self, client, upload_token, tmp_settings):
        r = client.post(
            "/upload",
            headers={**bearer(upload_token), "Content-Type": "image/png", "X-Filename": "a" * 300 + ".png"},
            content=PNG_BYTES,
        )
        assert r.status_code == 200, r.text
        stored = uploaded_files(tmp_settings)
        assert len(stored) == 1
        assert len(stored[0].encode()) < 255
        assert stored[0].endswith("a.png")

    def test_very_long_multipart_filename(self, client, upload_token, tmp_settings):
        r = client.post(
            "/upload",
            headers=bearer(upload_token),
            files={"file": ("b" * 400 + ".jpg", PNG_BYTES, "image/jpeg")},
        )
        assert r.status_code == 200, r.text
        assert uploaded_files(tmp_settings)[0].endswith("b.jpg")

    def test_forwarded_origin(self, client, upload_token):
        r = client.post(
            "/upload",
            headers={
                **bearer(upload_token),
                "X-Forwarded-Proto": "https",
                "X-Forwarded-Host": "cdn.example.com",
            },
            files={"file": ("a.png", PNG_BYTES, "image/png")},
        )
        assert r.json()["url"].startswith("https://cdn.example.com/i/")


class TestLimits:
    def test_too_large(self, tmp_settings):
        settings = tmp_settings.model_copy(update={"max_upload_bytes": 1024})
        with TestClient(create_app(settings)) as client:
            token = client.app.state.context.upload_tokens.current_plaintext
            r = client.post(
                "/upload", headers=bearer(token), files={"file": ("big.png", b"x" * 4096, "image/png")}
            )
        assert r.status_code == 413
        assert r.json()["success"] is False
        assert uploaded_files(settings) == []

    def test_declared_length_over_cap_rejected_up_front(self, tmp_settings):
        settings = tmp_settings.model_copy(update={"max_upload_bytes": 1024})
        with TestClient(create_app(settings)) as client:
            token = client.app.state.context.upload_tokens.current_plaintext
            big = b"x" * (1024 + MULTIPART_OVERHEAD + 1)
            multipart = client.post(
                "/upload", headers=bearer(token), files={"file": ("big.png", big, "image/png")}
            )
            raw = client.post(
                "/upload",
                headers={**bearer(token), "Content-Type": "image/png"},
                content=b"x" * 2048,
            )
        assert multipart.status_code == 413
        assert raw.status_code == 413
        assert uploaded_files(settings) == []

    def test_streamed_body_cut_off_without_length(self, tmp_settings):
        settings = tmp_settings.model_copy(update={"max_upload_bytes": 1024})
        boundary = "sharecdnboundary"
        head = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="file"; filename="big.png"\r\n'
            "Content-Type: image/png\r\n\r\n"
        ).encode()

        def body():
            yield head
            for _ in range(16):
                yield b"x" * (8 * 1024)
            yield f"\r\n--{boundary}--\r\n".encode()

        with TestClient(create_app(settings)) as client:
            token = client.app.state.context.upload_tokens.current_plaintext
            r = client.post(
                "/upload",
                headers={**bearer(token), "Content-Type": f"multipart/form-data; boundary={boundary}"},
                content=body(),
            )
        assert r.status_code == 413
        assert uploaded_files(settings) == []

    def test_rate_limit_before_token_check(self, tmp_settings):
        settings = tmp_settings.model_copy(update={"rate_limit_tokens": 2, "rate_limit_refill": 0.001})
        with TestClient(create_app(settings)) as client:
            codes = [
                client.post("/upload", files={"file": ("a.png", PNG_BYTES, "image/png")}).status_code
                for _ in range(3)
            ]
        assert codes == [401, 401, 429]


class TestDashboardUpload:
    def test_requires_session(self, client):
        r = client.post("/api/upload", files={"file": ("a.png", PNG_BYTES, "image/png")})
        assert r.status_code == 401

    def test_upload_list_delete(self, user_client, tmp_settings):
        r = user_client.post("/api/upload", files={"file": ("pic.png", PNG_BYTES, "image/png")})
        assert r.status_code == 200, r.text
        delete_url = r.json()["delete_url"]

        images = user_client.get("/api/images").json()["images"]
        assert [i["owner"] for i in images] == ["alice"]
        assert len(uploaded_files(tmp_settings)) == 1

        r = user_client.delete(delete_url.removeprefix("http://testserver"))
        assert r.status_code == 200
        assert user_client.get("/api/images").json()["images"] == []
        assert uploaded_files(tmp_settings) == []

    def test_delete_by_filename(self, user_client, tmp_settings):
        user_client.post("/api/upload", files={"file": ("pic.png", PNG_BYTES, "image/png")})
        filename = user_client.get("/api/images").json()["images"][0]["filename"]

        r = user_client.request("DELETE", "/api/images", json={"filename": f"../../{filename}"})
        assert r.status_code == 200
        assert uploaded_files(tmp_settings) == []

    def test_cannot_delete_others_images(self, user_client, admin_client, tmp_settings):
        user_client.post("/api/upload", files={"file": ("pic.png", PNG_BYTES, "image/png")})
        image = user_client.get("/api/images").json()["images"][0]

        r = admin_client.delete(f"/api/images/{image['id']}")
        assert r.status_code == 404
        r = admin_client.request("DELETE", "/api/images", json={"filename": image["filename"]})
        assert r.status_code == 404
        assert len(uploaded_files(tmp_settings)) == 1


class TestMedia:
    def test_missing_file(self, client):
        assert client.get("/i/does-not-exist.png").status_code == 404

    @pytest.mark.parametrize("name", ["../secret", "../../etc/passwd", "..", "."])
    def test_traversal_is_contained(self, tmp_path, name):
        base = tmp_path / "uploads"
        base.mkdir()
        assert resolve_inside(base, name) is None

    def test_plain_name_resolves(self, tmp_path):
        base = tmp_path / "uploads"
        base.mkdir()
        assert resolve_inside(base, "a.png") == (base / "a.png").resolve()
