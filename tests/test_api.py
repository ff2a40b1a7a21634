"""Tests for the HTTP routes."""

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from cardmaker.config.settings import settings
from cardmaker.delivery.api import cards
from cardmaker.domain.errors import StoreError
from cardmaker.domain.models import default_template
from cardmaker.infrastructure.database.store import InMemoryCardStore
from cardmaker.main import app

API = settings.API_V1_STR
ADMIN = (settings.BASIC_AUTH_USERNAME, settings.BASIC_AUTH_PASSWORD)


@pytest.fixture
def store():
    return InMemoryCardStore()


@pytest.fixture
def client(store, tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    monkeypatch.setattr(settings, "FONTS_DIR", str(tmp_path / "fonts"))
    app.dependency_overrides[cards.get_card_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _publish(client, slug="eid", template=None):
    body = (template or default_template()).to_json()
    return client.put(f"{API}/cards/{slug}", json=body, auth=ADMIN)


class TestHealth:
    """Tests for service metadata routes."""

    def test_root(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"


class TestCardRoutes:
    """Tests for publishing and viewing cards."""

    def test_publish_requires_auth(self, client):
        response = client.put(f"{API}/cards/eid", json=default_template().to_json())
        assert response.status_code == 401

    def test_publish_and_get(self, client):
        response = _publish(client, "Eid Card")

        assert response.status_code == 200
        assert response.json()["sharePath"] == "/eid-card"
        card = client.get(f"{API}/cards/eid-card").json()
        assert card["isPublished"] is True
        assert card["slug"] == "eid-card"

    def test_publish_rejects_invalid_template(self, client):
        body = default_template().to_json()
        body["layers"][0]["opacity"] = 3
        assert client.put(f"{API}/cards/eid", json=body, auth=ADMIN).status_code == 422

    def test_missing_card(self, client):
        assert client.get(f"{API}/cards/nope").status_code == 404

    def test_visibility_toggle(self, client):
        _publish(client, "eid")
        _publish(client, "new-year")

        response = client.patch(f"{API}/cards/eid/active", json={"isActive": False}, auth=ADMIN)

        assert response.status_code == 200
        assert [c["slug"] for c in client.get(f"{API}/cards").json()] == ["new-year"]
        assert [c["slug"] for c in client.get(f"{API}/cards/all", auth=ADMIN).json()] == ["eid", "new-year"]

    def test_publish_rejects_reserved_slug(self, client):
        assert _publish(client, "all").status_code == 422
        assert _publish(client, "All").status_code == 422
        assert client.get(f"{API}/cards/all", auth=ADMIN).json() == []

    def test_toggle_unknown_card(self, client):
        response = client.patch(f"{API}/cards/nope/active", json={"isActive": False}, auth=ADMIN)
        assert response.status_code == 404

    def test_delete(self, client):
        _publish(client, "eid")

        assert client.delete(f"{API}/cards/eid", auth=ADMIN).status_code == 200
        assert client.delete(f"{API}/cards/eid", auth=ADMIN).status_code == 404


class TestRenderRoutes:
    """Tests for export and preview."""

    def test_render_published_card(self, client):
        _publish(client, "eid")

        response = client.post(
            f"{API}/cards/eid/render",
            json={"inputs": {"layer-name": "Sara"}, "pixelRatio": 0.2, "quality": 0.9},
            headers={"X-Export-Session": "abc"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert Image.open(io.BytesIO(response.content)).size == (216, 216)

    def test_render_without_text(self, client):
        template = default_template()
        for layer in template.layers:
            layer.en.default_text = ""
        _publish(client, "blank", template)

        response = client.post(f"{API}/cards/blank/render", json={"pixelRatio": 0.2})

        assert response.status_code == 422

    def test_render_rejects_bad_ratio(self, client):
        _publish(client, "eid")
        assert client.post(f"{API}/cards/eid/render", json={"pixelRatio": 0}).status_code == 422

    def test_render_oversized(self, client):
        _publish(client, "eid")
        assert client.post(f"{API}/cards/eid/render", json={"pixelRatio": 50}).status_code == 500

    def test_render_legacy_draft(self, client):
        legacy = {"id": "old", "layers": [{"id": "l1", "x": 10, "y": 20, "defaultText": "Hello"}]}

        response = client.post(f"{API}/render", json={"template": legacy, "pixelRatio": 0.1})

        assert response.status_code == 200
        assert Image.open(io.BytesIO(response.content)).size == (108, 108)

    def test_preview(self, client):
        response = client.post(
            f"{API}/preview",
            json={
                "template": default_template().to_json(),
                "containerWidth": 572,
                "containerHeight": 572,
                "selectedLayerId": "layer-name",
                "interactive": True,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["scale"] == pytest.approx(0.5)
        assert data["layers"][0]["selected"] is True
        assert data["layers"][0]["anchorX"] == pytest.approx(380)

    def test_preview_requires_template_or_slug(self, client):
        response = client.post(f"{API}/preview", json={"containerWidth": 100, "containerHeight": 100})
        assert response.status_code == 422

    def test_share(self, client, monkeypatch):
        uploads = []

        def fake_upload(content, public_id):
            uploads.append((content[:2], public_id))
            return f"https://res.example.com/{public_id}.jpg"

        monkeypatch.setattr(cards, "upload_jpeg_bytes", fake_upload)
        _publish(client, "eid")

        response = client.post(f"{API}/cards/eid/share", json={"pixelRatio": 0.2})

        assert response.status_code == 200
        assert response.json()["url"].startswith("https://res.example.com/eid-")
        assert uploads[0][0] == b"\xff\xd8"


class TestSettingsRoutes:
    """Tests for global settings."""

    def test_defaults(self, client):
        assert client.get(f"{API}/settings").json()["appNameEn"] == "GC Maker"

    def test_update(self, client):
        response = client.put(f"{API}/settings", json={"primaryColor": "#000000"}, auth=ADMIN)

        assert response.status_code == 200
        assert response.json()["primaryColor"] == "#000000"
        assert client.get(f"{API}/settings").json()["primaryColor"] == "#000000"

    def test_update_requires_auth(self, client):
        assert client.put(f"{API}/settings", json={"primaryColor": "#000000"}).status_code == 401

    def test_update_store_failure(self, client):
        class OfflineSettingsStore(InMemoryCardStore):
            async def put_settings(self, app_settings):
                raise StoreError("down")

        app.dependency_overrides[cards.get_card_store] = lambda: OfflineSettingsStore()

        response = client.put(f"{API}/settings", json={"appNameEn": "X"}, auth=ADMIN)

        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to save settings."
