from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
import hashlib
import logging
import re

import requests

from .reference import Reference, InvalidReference, parse_reference

__all__ = (
    "Manifest",
    "RegistryError",
    "RegistryInspector",
)


logger = logging.getLogger(__name__)

MEDIA_TYPES = [
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
    "application/vnd.docker.distribution.manifest.v2+json",
]

INDEX_MEDIA_TYPES = {
    "application/vnd.oci.image.index.v1+json",
    "application/vnd.docker.distribution.manifest.list.v2+json",
}

BASE_DIGEST_ANNOTATION = "org.opencontainers.image.base.digest"
BASE_NAME_ANNOTATION = "org.opencontainers.image.base.name"

_challenge_re = re.compile(r'(\w+)="([^"]*)"')


class RegistryError(Exception):
    pass


@dataclass
class Manifest:
    digest: str
    media_type: str
    annotations: Dict[str, str] = field(default_factory=dict)

    @property
    def base(self) -> Optional[Tuple[str, str]]:
        """The (name, digest) pair of the base image annotations, if both are present."""
        name = self.annotations.get(BASE_NAME_ANNOTATION)
        digest = self.annotations.get(BASE_DIGEST_ANNOTATION)
        if name and digest:
            return name, digest
        return None


class RegistryInspector:
    """Read-only Docker Registry HTTP API v2 client."""

    def __init__(self, credentials: Optional[Dict[str, Dict[str, str]]] = None, timeout: float = 30):
        self.credentials = credentials or {}
        self.timeout = timeout
        self.session = requests.Session()
        self._tokens: Dict[Tuple[str, str], str] = {}

    def _auth(self, registry: str) -> Optional[Tuple[str, str]]:
        c = self.credentials.get(registry)
        if c:
            return c["username"], c["password"]
        return None

    def get_token(self, ref: Reference, challenge: str) -> str:
        params = dict(_challenge_re.findall(challenge))
        realm = params.pop("realm", None)
        if not realm:
            raise RegistryError("Unsupported authentication challenge: {}".format(challenge))
        params["scope"] = "repository:{}:pull".format(ref.repository)
        try:
            r = self.session.get(realm, params=params, auth=self._auth(ref.registry), timeout=self.timeout)
            r.raise_for_status()
            j = r.json()
            return j.get("token") or j["access_token"]
        except Exception as e:
            raise RegistryError("Failed to get token for repository: {}".format(ref.name)) from e

    def _request(self, method: str, ref: Reference) -> requests.Response:
        url = f"{ref.registry_url}/v2/{ref.repository}/manifests/{ref.identifier}"
        headers = {"Accept": ",".join(MEDIA_TYPES)}
        key = (ref.registry, ref.repository)

        token = self._tokens.get(key)
        if token:
            headers["Authorization"] = "Bearer " + token
        r = self.session.request(method, url, headers=headers, timeout=self.timeout)

        if r.status_code == requests.codes.unauthorized:
            challenge = r.headers.get("WWW-Authenticate", "")
            if challenge.lower().startswith("bearer"):
                token = self.get_token(ref, challenge)
                self._tokens[key] = token
                headers["Authorization"] = "Bearer " + token
                r = self.session.request(method, url, headers=headers, timeout=self.timeout)
            elif challenge.lower().startswith("basic") and self._auth(ref.registry):
                r = self.session.request(method, url, headers=headers, auth=self._auth(ref.registry), timeout=self.timeout)

        r.raise_for_status()
        return r

    def _get_manifest(self, ref: Reference) -> Tuple[str, Dict]:
        r = self._request("GET", ref)
        digest = r.headers.get("Docker-Content-Digest") or "sha256:" + hashlib.sha256(r.content).hexdigest()
        return digest, r.json()

    def resolve_reference(self, ref: str) -> Manifest:
        """Fetch the manifest ``ref`` points at.

        A manifest list or OCI index that does not carry the base image
        annotations itself is resolved to its linux/amd64 image manifest.
        """
        try:
            reference = parse_reference(ref)
            digest, payload = self._get_manifest(reference)
            media_type = payload.get("mediaType", "")
            manifest = Manifest(digest=digest, media_type=media_type, annotations=payload.get("annotations") or {})

            if media_type in INDEX_MEDIA_TYPES and not manifest.base:
                for m in payload.get("manifests", []):
                    p = m.get("platform", {})
                    if p.get("os") == "linux" and p.get("architecture") == "amd64":
                        _, child = self._get_manifest(reference.with_digest(m["digest"]))
                        annotations = dict(manifest.annotations)
                        annotations.update(child.get("annotations") or {})
                        return Manifest(digest=digest, media_type=media_type, annotations=annotations)
            logger.debug("Resolved %s to %s", ref, digest)
            return manifest
        except RegistryError:
            raise
        except (InvalidReference, requests.RequestException, ValueError, KeyError) as e:
            raise RegistryError("Failed to get manifest: {}".format(ref)) from e

    def current_digest(self, tag_ref: str) -> str:
        try:
            reference = parse_reference(tag_ref)
            r = self._request("HEAD", reference)
            digest = r.headers.get("Docker-Content-Digest")
            if digest:
                return digest
            digest, _ = self._get_manifest(reference)
            return digest
        except RegistryError:
            raise
        except (InvalidReference, requests.RequestException, ValueError) as e:
            raise RegistryError("Failed to get digest: {}".format(tag_ref)) from e
