import json

import pytest
import requests

from dependency_bot.docker import RegistryInspector, RegistryError

INDEX = {
    "schemaVersion": 2,
    "mediaType": "application/vnd.oci.image.index.v1+json",
    "manifests": [
        {"digest": "sha256:arm", "platform": {"os": "linux", "architecture": "arm64"}},
        {"digest": "sha256:amd", "platform": {"os": "linux", "architecture": "amd64"}},
    ],
}

IMAGE = {
    "schemaVersion": 2,
    "mediaType": "application/vnd.oci.image.manifest.v1+json",
    "annotations": {
        "org.opencontainers.image.base.digest": "sha256:base",
        "org.opencontainers.image.base.name": "docker.io/library/node:16",
    },
}


def response(status, payload=None, headers=None):
    r = requests.Response()
    r.status_code = status
    r._content = json.dumps(payload).encode() if payload is not None else b""
    r.headers.update(headers or {})
    return r


class FakeSession:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def request(self, method, url, headers=None, auth=None, timeout=None):
        self.calls.append((method, url, dict(headers or {})))
        return self.routes[(method, url)](headers or {})

    def get(self, url, params=None, auth=None, timeout=None):
        self.calls.append(("GET", url, params))
        return self.routes[("TOKEN", url)](params)


@pytest.fixture
def inspector():
    return RegistryInspector()


def test_resolve_reference_descends_into_amd64(inspector):
    base = "https://gcr.io/v2/p/app/manifests/"
    inspector.session = FakeSession({
        ("GET", base + "sha256:index"): lambda h: response(200, INDEX, {"Docker-Content-Digest": "sha256:index"}),
        ("GET", base + "sha256:amd"): lambda h: response(200, IMAGE, {"Docker-Content-Digest": "sha256:amd"}),
    })
    m = inspector.resolve_reference("gcr.io/p/app@sha256:index")
    assert m.digest == "sha256:index"
    assert m.base == ("docker.io/library/node:16", "sha256:base")


def test_resolve_reference_without_annotations(inspector):
    payload = dict(IMAGE, annotations=None)
    inspector.session = FakeSession({
        ("GET", "https://gcr.io/v2/p/app/manifests/v1"): lambda h: response(200, payload),
    })
    m = inspector.resolve_reference("gcr.io/p/app:v1")
    assert m.base is None
    assert m.digest.startswith("sha256:")


def test_bearer_token_challenge(inspector):
    url = "https://gcr.io/v2/p/app/manifests/latest"

    def manifest(headers):
        if headers.get("Authorization") != "Bearer t0k3n":
            return response(401, headers={
                "WWW-Authenticate": 'Bearer realm="https://gcr.io/v2/token",service="gcr.io"',
            })
        return response(200, headers={"Docker-Content-Digest": "sha256:cafe"})

    session = FakeSession({
        ("HEAD", url): manifest,
        ("TOKEN", "https://gcr.io/v2/token"): lambda params: response(200, {"token": "t0k3n"}),
    })
    inspector.session = session
    assert inspector.current_digest("gcr.io/p/app:latest") == "sha256:cafe"
    assert ("GET", "https://gcr.io/v2/token", {"service": "gcr.io", "scope": "repository:p/app:pull"}) in session.calls

    # the token is cached per repository
    session.calls.clear()
    assert inspector.current_digest("gcr.io/p/app:latest") == "sha256:cafe"
    assert len(session.calls) == 1


def test_not_found(inspector):
    inspector.session = FakeSession({
        ("HEAD", "https://gcr.io/v2/p/app/manifests/latest"): lambda h: response(404),
    })
    with pytest.raises(RegistryError):
        inspector.current_digest("gcr.io/p/app:latest")


def test_invalid_reference(inspector):
    with pytest.raises(RegistryError):
        inspector.resolve_reference("not a reference")
