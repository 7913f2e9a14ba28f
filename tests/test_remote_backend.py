import json

import httpx
import pytest

from rubble_sync.services.remote_backend import AuthSession, RemoteBackend, RemoteBackendError


def _backend(handler, **kwargs):
    return RemoteBackend(
        base_url="https://backend.test",
        anon_key="anon-key",
        bucket="report-photos",
        timeout=5,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_insert_report_anonymous():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(201, json=[{"id": "r-123"}])

    backend = _backend(handler)
    remote_id = await backend.insert_report({"zone": "Gaza City", "status": "pending"})
    await backend.aclose()

    request = seen["request"]
    assert remote_id == "r-123"
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/reports"
    assert request.url.params["select"] == "id"
    assert request.headers["Prefer"] == "return=representation"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"
    assert json.loads(request.content) == {"zone": "Gaza City", "status": "pending"}


@pytest.mark.asyncio
async def test_session_token_replaces_anon_bearer():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(201, json=[{"id": 7}])

    backend = _backend(handler)
    backend.set_session(AuthSession(access_token="user-token", user_id="u-1"))
    assert await backend.insert_report({}) == "7"
    assert seen["auth"] == "Bearer user-token"
    await backend.aclose()


@pytest.mark.asyncio
async def test_insert_error_status_raises():
    backend = _backend(lambda request: httpx.Response(500, text="db down"))
    with pytest.raises(RemoteBackendError) as excinfo:
        await backend.insert_report({})
    assert excinfo.value.status_code == 500
    await backend.aclose()


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    backend = _backend(handler)
    with pytest.raises(RemoteBackendError):
        await backend.insert_report({})
    await backend.aclose()


@pytest.mark.asyncio
async def test_upload_object_does_not_overwrite():
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json={"Key": "report-photos/abc/1.jpg"})

    backend = _backend(handler)
    url = await backend.upload_object("abc/1.jpg", b"jpeg", "image/jpeg")
    await backend.aclose()

    request = seen["request"]
    assert request.url.path == "/storage/v1/object/report-photos/abc/1.jpg"
    assert request.headers["Content-Type"] == "image/jpeg"
    assert request.headers["x-upsert"] == "false"
    assert request.content == b"jpeg"
    assert url == "https://backend.test/storage/v1/object/public/report-photos/abc/1.jpg"


@pytest.mark.asyncio
async def test_sign_in_stores_session():
    def handler(request):
        assert request.url.path == "/auth/v1/token"
        assert request.url.params["grant_type"] == "password"
        return httpx.Response(200, json={
            "access_token": "tok",
            "user": {"id": "u-42", "email": "field@example.org"},
        })

    backend = _backend(handler)
    session = await backend.sign_in("field@example.org", "secret")
    assert session.user_id == "u-42"
    assert backend.current_session() is session
    backend.sign_out()
    assert backend.current_session() is None
    await backend.aclose()
