"""End-to-end lookup through the HTTP app with a real workflow and an in-memory portal.

Everything below the ``LookupPage`` seam is real: the retry loop, the
captcha resolver, the extractor, the artifact registry and the routes.
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from vrlookup.api.app import create_app
from vrlookup.evidence.artifacts import ArtifactRegistry
from vrlookup.lookup.workflow import LookupWorkflow

pytestmark = pytest.mark.integration

ENDPOINT = "/api/vehicle-lookup"
BODY = {"licensePlate": "29A-12345", "stickerNumber": "001234"}


@pytest.fixture()
def build_client(test_settings, fake_recognizer_cls, session_factory_cls):
    """Return ``(pages, recognizer=None) -> (client, factory, registry)``; clients are closed afterwards."""
    opened: list[TestClient] = []

    def _build(pages, recognizer=None):
        registry = ArtifactRegistry(test_settings.artifacts.output_dir, ttl_sec=60)
        factory = session_factory_cls(pages)
        workflow = LookupWorkflow.from_settings(
            test_settings,
            artifacts=registry,
            recognizer=recognizer or fake_recognizer_cls("A B-9?"),
            session_factory=factory,
        )
        client = TestClient(create_app(test_settings, artifacts=registry, workflow=workflow))
        client.__enter__()
        opened.append(client)
        return client, factory, registry

    yield _build
    for client in opened:
        client.__exit__(None, None, None)


class TestEndToEnd:
    """Full request through routes, workflow and registry."""

    def test_successful_lookup(self, build_client, fake_page_cls, sample_record) -> None:
        page = fake_page_cls()
        client, factory, registry = build_client([page])

        resp = client.post(ENDPOINT, json=BODY)

        assert resp.status_code == 200
        payload = resp.json()
        assert payload["success"] is True
        assert payload["data"] == sample_record
        assert payload["attempts"] == 1
        assert base64.b64decode(payload["screenshot"]["data"]).startswith(b"\x89PNG")
        assert page.typed == {"captcha": "AB9", "plate": "29A-12345", "sticker": "001234"}
        assert factory.sessions[0].close_count == 1

    def test_screenshot_exists_at_response_time(self, build_client, fake_page_cls) -> None:
        client, _, registry = build_client([fake_page_cls()])

        payload = client.post(ENDPOINT, json={**BODY, "returnBase64": False}).json()

        path = Path(payload["screenshot"]["path"])
        assert path.exists()
        assert path in registry.pending()
        assert client.get(payload["screenshotUrl"]).status_code == 200

    def test_no_captcha_images_left_behind(self, build_client, fake_page_cls, test_settings) -> None:
        page = fake_page_cls()
        client, _, _ = build_client([page])

        client.post(ENDPOINT, json=BODY)

        captcha_dir = Path(test_settings.artifacts.output_dir) / "captcha"
        assert list(captcha_dir.glob("*.png")) == []

    def test_not_found_is_not_retried(self, build_client, fake_page_cls, not_found_text) -> None:
        client, factory, _ = build_client([fake_page_cls(error=not_found_text)])

        resp = client.post(ENDPOINT, json=BODY)

        assert resp.status_code == 500
        assert resp.json()["error"] == "Vehicle not found"
        assert resp.json()["terminal"] is True
        assert len(factory.sessions) == 1

    def test_retry_then_success(self, build_client, fake_page_cls, fake_recognizer_cls) -> None:
        pages = [fake_page_cls(error="Mã xác nhận không đúng"), fake_page_cls()]
        client, factory, _ = build_client(pages)

        resp = client.post(ENDPOINT, json=BODY)

        assert resp.status_code == 200
        assert resp.json()["attempts"] == 2
        assert [s.close_count for s in factory.sessions] == [1, 1]

    def test_recognizer_down_exhausts_budget(self, build_client, fake_page_cls, fake_recognizer_cls) -> None:
        from vrlookup.exceptions import RecognitionError

        client, factory, _ = build_client(
            [fake_page_cls()], recognizer=fake_recognizer_cls(RecognitionError("Recognition request failed"))
        )

        resp = client.post(ENDPOINT, json=BODY)

        assert resp.status_code == 500
        payload = resp.json()
        assert payload["error"] == "Lookup failed"
        assert payload["attempts"] == 3
        assert "Captcha not resolved after 3 tries" in payload["details"]
        assert len(factory.sessions) == 3

    def test_validation_before_any_session(self, build_client, fake_page_cls) -> None:
        client, factory, _ = build_client([fake_page_cls()])

        resp = client.post(ENDPOINT, json={"licensePlate": "29A-12345"})

        assert resp.status_code == 400
        assert factory.sessions == []
