"""
Tests for the FastAPI signed URL dependencies (setup / verify / complete).
"""
import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from capurl.api.signed_urls import (
    CODE_BAD_DIGEST,
    CODE_TIMED_OUT,
    Completer,
    SignedUrls,
    UrlSigner,
    default_url_to_verify,
)
from capurl.core.signing import (
    CapabilityLifecycle,
    ConfigurationError,
    InMemorySaltStore,
    VerificationResult,
    format_url,
    parse_url,
)
from capurl.tests.helpers import TEST_SECRET, FakeClock


async def url_from_body(request: Request, scope_id: str) -> str:
    """Verify a signed URL posted in a JSON body instead of the request line."""
    body = await request.json()
    return body["url"]


def create_test_app(signed_urls: SignedUrls, body_signed_urls: SignedUrls) -> FastAPI:
    """Create a test app protecting a few routes with one fixed scope."""
    app = FastAPI()
    protect = signed_urls("change-email")
    protect_body = body_signed_urls("change-email")

    @app.get("/setup")
    async def setup(target: str, signer: UrlSigner = Depends(protect.setup)):
        return {"url": await signer.sign_url(target), "scope_id": signer.scope_id}

    @app.get("/protected")
    async def protected(result: VerificationResult = Depends(protect.verify)):
        return {"outcome": result.outcome.value, "scope_id": result.scope_id}

    @app.delete("/protected")
    async def finish(
        result: VerificationResult = Depends(protect.verify),
        done: Completer = Depends(protect.complete),
    ):
        await done()
        return {"completed": True}

    @app.get("/lazy-complete")
    async def lazy_complete(done: Completer = Depends(protect.complete)):
        # Dependency alone must not remove anything
        return {"scope_id": done.scope_id}

    @app.post("/confirm")
    async def confirm(result: VerificationResult = Depends(protect_body.verify)):
        return {"outcome": result.outcome.value}

    return app


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemorySaltStore()


@pytest.fixture
def client(store, clock):
    lifecycle = CapabilityLifecycle.from_store(TEST_SECRET, store, ttl=60, clock=clock)
    signed_urls = SignedUrls.from_lifecycle(lifecycle)
    body_signed_urls = SignedUrls.from_lifecycle(lifecycle, url_to_verify=url_from_body)
    return TestClient(create_test_app(signed_urls, body_signed_urls))


def issue(client: TestClient, target: str = "/protected?x=1") -> str:
    response = client.get("/setup", params={"target": target})
    assert response.status_code == 200
    return response.json()["url"]


class TestSetup:
    """Test the signing dependency."""

    def test_signer_bound_to_scope(self, client):
        response = client.get("/setup", params={"target": "/protected?x=1"})
        assert response.json()["scope_id"] == "change-email"

    def test_signed_url_shape(self, client):
        url = issue(client)
        parsed = parse_url(url)
        assert parsed.path == "/protected"
        assert parsed.get_first("x") == "1"
        assert parsed.get_first("expires")
        assert parsed.get_first("signature")


class TestVerify:
    """Test the verification dependency and its error mapping."""

    def test_valid_url_passes(self, client):
        url = issue(client)
        response = client.get(url)
        assert response.status_code == 200
        assert response.json() == {"outcome": "valid", "scope_id": "change-email"}

    def test_tampered_url_rejected(self, client):
        url = issue(client)
        parsed = parse_url(url)
        parsed.set("x", "2")

        response = client.get(format_url(parsed))
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == CODE_BAD_DIGEST

    def test_unsigned_request_rejected(self, client):
        issue(client)
        response = client.get("/protected", params={"x": "1"})
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == CODE_BAD_DIGEST

    def test_expired_url_rejected(self, client, clock):
        url = issue(client)
        clock.advance(61)

        response = client.get(url)
        assert response.status_code == 403
        assert response.json()["detail"] == {"code": CODE_TIMED_OUT, "message": "URL has timed out"}

    def test_reissue_invalidates_first_url(self, client):
        first = issue(client)
        second = issue(client)

        assert client.get(first).status_code == 403
        assert client.get(second).status_code == 200

    def test_custom_url_to_verify(self, client):
        url = issue(client, "/elsewhere?token=abc")

        assert client.post("/confirm", json={"url": url}).json() == {"outcome": "valid"}

        parsed = parse_url(url)
        parsed.set("token", "xyz")
        response = client.post("/confirm", json={"url": format_url(parsed)})
        assert response.status_code == 403


class TestComplete:
    """Test the completion dependency."""

    def test_complete_invalidates_url(self, client):
        url = issue(client)

        assert client.delete(url).json() == {"completed": True}
        response = client.get(url)
        assert response.status_code == 403
        assert response.json()["detail"]["code"] == CODE_BAD_DIGEST

    def test_complete_dependency_is_lazy(self, client, store):
        url = issue(client)
        assert client.get("/lazy-complete").json() == {"scope_id": "change-email"}
        assert client.get(url).status_code == 200


class TestConfiguration:
    """Test construction of SignedUrls."""

    def test_missing_secret(self, store):
        with pytest.raises(ConfigurationError, match="secret"):
            SignedUrls(store=store.store, retrieve=store.retrieve, complete=store.complete)

    def test_missing_hooks(self):
        with pytest.raises(ConfigurationError, match="store"):
            SignedUrls(secret=TEST_SECRET)

    def test_empty_scope(self, store):
        signed_urls = SignedUrls(TEST_SECRET, store.store, store.retrieve, store.complete)
        with pytest.raises(ConfigurationError):
            signed_urls("")

    def test_ttl_passed_to_lifecycle(self, store):
        signed_urls = SignedUrls(TEST_SECRET, store.store, store.retrieve, store.complete, ttl=90)
        assert signed_urls.lifecycle.ttl == 90

    def test_prebuilt_lifecycle(self, store, clock):
        lifecycle = CapabilityLifecycle.from_store(TEST_SECRET, store, clock=clock)
        signed_urls = SignedUrls(lifecycle=lifecycle, url_to_verify=url_from_body)
        assert signed_urls.lifecycle is lifecycle
        assert signed_urls.url_to_verify is url_from_body

        wrapped = SignedUrls.from_lifecycle(lifecycle)
        assert wrapped.lifecycle is lifecycle
        assert wrapped.url_to_verify is default_url_to_verify

    def test_default_url_to_verify(self, store):
        signed_urls = SignedUrls(TEST_SECRET, store.store, store.retrieve, store.complete)
        assert signed_urls.url_to_verify is default_url_to_verify


class TestScopeResolver:
    """Test scopes resolved per request."""

    def test_scope_from_header(self, store, clock):
        lifecycle = CapabilityLifecycle.from_store(TEST_SECRET, store, clock=clock)
        per_user = SignedUrls.from_lifecycle(lifecycle)(lambda request: request.headers.get("X-User", ""))

        app = FastAPI()

        @app.get("/sign")
        async def sign(signer: UrlSigner = Depends(per_user.setup)):
            return {"url": await signer.sign_url("/reset")}

        @app.get("/reset")
        async def reset(result: VerificationResult = Depends(per_user.verify)):
            return {"scope_id": result.scope_id}

        client = TestClient(app)
        alice_url = client.get("/sign", headers={"X-User": "alice"}).json()["url"]
        client.get("/sign", headers={"X-User": "bob"})

        assert client.get(alice_url, headers={"X-User": "alice"}).json() == {"scope_id": "alice"}
        assert client.get(alice_url, headers={"X-User": "bob"}).status_code == 403


def make_request(path: str, raw_path: bytes, query_string: bytes = b"") -> Request:
    return Request({
        "type": "http",
        "method": "GET",
        "path": path,
        "raw_path": raw_path,
        "query_string": query_string,
        "headers": [],
    })


class TestDefaultUrlToVerify:
    """Test that the URL is taken from the raw request target."""

    def test_keeps_percent_encoding(self):
        request = make_request("/files/a b", b"/files/a%20b", b"x=1&signature=abc%2B")
        assert default_url_to_verify(request, "scope") == "/files/a%20b?x=1&signature=abc%2B"

    def test_ignores_query_in_raw_path(self):
        request = make_request("/files/a b", b"/files/a%20b?x=1", b"x=1")
        assert default_url_to_verify(request, "scope") == "/files/a%20b?x=1"

    def test_without_raw_path(self):
        request = Request({"type": "http", "method": "GET", "path": "/files", "query_string": b"", "headers": []})
        assert default_url_to_verify(request, "scope") == "/files"

    def test_encoded_path_verifies_end_to_end(self, store, clock):
        lifecycle = CapabilityLifecycle.from_store(TEST_SECRET, store, clock=clock)
        protect = SignedUrls.from_lifecycle(lifecycle)("files")

        app = FastAPI()

        @app.get("/sign")
        async def sign(signer: UrlSigner = Depends(protect.setup)):
            return {"url": await signer.sign_url("/files/q3%20report.pdf?v=2")}

        @app.get("/files/{name}")
        async def download(name: str, result: VerificationResult = Depends(protect.verify)):
            return {"name": name}

        client = TestClient(app)
        url = client.get("/sign").json()["url"]

        assert client.get(url).json() == {"name": "q3 report.pdf"}
