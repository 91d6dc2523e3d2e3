"""
Registry HTTP Client for the OCI Distribution API.

Implements the push side of the protocol: a one-time auth handshake, blob
existence probes, session-based blob uploads, and manifest pushes. Transient
failures are retried with exponential backoff; 4xx responses are permanent.
"""
from __future__ import annotations

import base64
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import BinaryIO, Dict, Optional, Tuple, Union
from urllib.parse import urlencode, urljoin

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..digest import sha256_digest
from ..settings import Settings
from .oci_errors import (
    OciAuthError,
    OciDigestMismatch,
    OciError,
    OciNotFound,
    OciRateLimited,
    OciTooLarge,
    OciTransientError,
    OciUnsupportedMediaType,
    PublishTimeout,
)

logger = logging.getLogger(__name__)

USER_AGENT = "oci-publish/0.1.0"


def _error_for_response(response: httpx.Response, operation: str, **context) -> OciError:
    """Map a non-success registry response to the error taxonomy."""
    status = response.status_code
    target = context.get("tag") or context.get("digest") or response.request.url.path
    detail = response.text[:500] if response.content else ""
    message = f"{operation} failed for {target}: HTTP {status}"
    if detail:
        message = f"{message}: {detail}"

    if status in (401, 403):
        cls = OciAuthError
    elif status == 404:
        cls = OciNotFound
    elif status == 413:
        cls = OciTooLarge
    elif status == 415:
        cls = OciUnsupportedMediaType
    elif status == 429:
        cls = OciRateLimited
    elif status >= 500:
        cls = OciTransientError
    else:
        cls = OciError
    return cls(message, operation=operation, status_code=status, **context)


class RegistryHTTP:
    """
    HTTP client for OCI Distribution API push operations.

    The Authorization header is resolved once by ``authenticate`` and shared
    read-only by every later request, including concurrent blob uploads.
    """

    def __init__(self, settings: Settings, deadline: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize registry HTTP client.

        Args:
            settings: Registry configuration
            deadline: ``time.monotonic()`` value after which requests are refused
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.settings = settings
        self.deadline = deadline

        registry = settings.registry_url
        if settings.registry_insecure and not registry.startswith("http"):
            self.base_url = f"http://{registry}"
        elif not registry.startswith("http"):
            self.base_url = f"https://{registry}"
        else:
            self.base_url = registry
        self.host = self.base_url.split("://", 1)[1].split("/", 1)[0]

        self.client = httpx.Client(
            timeout=httpx.Timeout(settings.http_timeout_s, connect=5.0),
            follow_redirects=True,
            verify=not settings.registry_insecure,
            headers={"User-Agent": USER_AGENT},
            transport=transport,
        )

        self._retrying = Retrying(
            stop=stop_after_attempt(settings.max_attempts),
            wait=wait_exponential(multiplier=settings.retry_backoff_s, max=10),
            retry=retry_if_exception_type(OciTransientError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

        self._auth_header: Optional[str] = None
        self._authenticated = False
        self._auth_repo: Optional[str] = None
        self._auth_lock = threading.Lock()

    # Auth

    def authenticate(self, repo: str) -> None:
        """
        Resolve registry credentials once for this run.

        Probes ``/v2/``. Anonymous access is used when the probe succeeds;
        a Bearer challenge is answered by exchanging the configured credential
        for a token scoped to ``repo``; a Basic challenge uses the credential
        directly. A registry that allows anonymous reads but challenges a
        push is answered the first time that challenge arrives.

        Raises:
            OciAuthError: If the registry requires auth and the exchange fails
        """
        with self._auth_lock:
            if self._authenticated:
                return

            self._auth_repo = repo
            response = self._retry(self._send, "GET", "/v2/", operation="authenticate",
                                   passthrough=(401,), use_auth=False)

            if response.status_code == 401:
                self._answer_challenge(response, repo)
            else:
                logger.debug(f"Registry {self.host} allows anonymous access")

            self._authenticated = True

    def _answer_challenge(self, response: httpx.Response, repo: str) -> None:
        challenge = response.headers.get("WWW-Authenticate", "")
        if challenge.startswith("Bearer "):
            self._auth_header = f"Bearer {self._exchange_token(challenge, repo)}"
        elif challenge.startswith("Basic "):
            self._auth_header = f"Basic {self._basic_credentials()}"
        else:
            raise OciAuthError(
                f"Unsupported auth challenge from {self.host}: {challenge!r}",
                operation="authenticate", status_code=401
            )
        logger.debug(f"Authenticated to {self.host} for {repo}")

    def _upgrade_anonymous(self, response: httpx.Response) -> bool:
        """
        Answer a push challenge after an anonymous ``/v2/`` probe.

        Runs at most once per client; an existing header is never replaced.
        Returns True when the request should be sent again with credentials.
        """
        with self._auth_lock:
            if self._auth_header is None:
                if "WWW-Authenticate" not in response.headers:
                    return False
                self._answer_challenge(response, self._auth_repo or "")
            return True

    def _basic_credentials(self) -> str:
        if not self.settings.token:
            raise OciAuthError(
                f"Registry {self.host} requires authentication but no credential is configured",
                operation="authenticate", status_code=401
            )
        raw = f"{self.settings.registry_user}:{self.settings.token}".encode()
        return base64.b64encode(raw).decode()

    def _exchange_token(self, challenge: str, repo: str) -> str:
        """Exchange the run credential for a bearer token at the challenge realm."""
        # Format: Bearer realm="...",service="...",scope="..."
        bearer_params = {}
        for match in re.finditer(r'(\w+)="([^"]*)"', challenge):
            bearer_params[match.group(1)] = match.group(2)

        realm = bearer_params.get("realm")
        if not realm:
            raise OciAuthError(f"Bearer challenge without realm: {challenge!r}",
                               operation="token_exchange", status_code=401)

        params = {"scope": f"repository:{repo}:pull,push"}
        if bearer_params.get("service"):
            params["service"] = bearer_params["service"]

        auth: Optional[Tuple[str, str]] = None
        if self.settings.token:
            auth = (self.settings.registry_user, self.settings.token)

        logger.debug(f"Exchanging credential at {realm} for scope {params['scope']}")
        response = self._retry(self._send, "GET", realm, operation="token_exchange",
                               params=params, auth=auth, use_auth=False)

        try:
            token_data = response.json()
        except ValueError as e:
            raise OciAuthError(f"Token endpoint returned invalid JSON: {e}",
                               operation="token_exchange") from e

        token = token_data.get("token") or token_data.get("access_token")
        if not token:
            raise OciAuthError("Token endpoint response did not contain a token",
                               operation="token_exchange")
        return token

    def _ensure_authenticated(self, repo: str) -> None:
        if not self._authenticated:
            self.authenticate(repo)

    # Blobs

    def blob_exists(self, repo: str, digest: str) -> bool:
        """HEAD the blob; 404 means absent, any other error propagates."""
        self._ensure_authenticated(repo)
        try:
            self._retry(self._send, "HEAD", f"/v2/{repo}/blobs/{digest}",
                        operation="blob_exists", digest=digest)
        except OciNotFound:
            return False
        return True

    def put_blob(self, repo: str, digest: str, data: Union[bytes, BinaryIO]) -> None:
        """
        Upload a blob: initiate a session, stream the content, commit by digest.

        The whole session is retried as one unit on transient failure.

        Raises:
            OciDigestMismatch: If the content does not hash to ``digest``
        """
        if hasattr(data, "read"):
            data = data.read()

        computed = sha256_digest(data)
        if computed != digest:
            raise OciDigestMismatch(
                f"Blob content does not match digest: expected {digest}, got {computed}",
                expected=digest, actual=computed, operation="put_blob", digest=digest
            )

        self._ensure_authenticated(repo)
        self._retry(self._upload_session, repo, digest, data)
        logger.debug(f"Uploaded blob {digest} ({len(data)} bytes) to {repo}")

    def _upload_session(self, repo: str, digest: str, data: bytes) -> None:
        response = self._send("POST", f"/v2/{repo}/blobs/uploads/",
                              operation="put_blob", digest=digest)
        location = self._location(response, digest)

        response = self._send("PATCH", location, operation="put_blob", digest=digest,
                              content=data,
                              headers={"Content-Type": "application/octet-stream"})
        location = self._location(response, digest)

        separator = "&" if "?" in location else "?"
        commit_url = f"{location}{separator}{urlencode({'digest': digest})}"
        self._send("PUT", commit_url, operation="put_blob", digest=digest, content=b"",
                   headers={"Content-Type": "application/octet-stream"})

    def _location(self, response: httpx.Response, digest: str) -> str:
        location = response.headers.get("Location")
        if not location:
            raise OciError(
                f"Registry did not return an upload Location for blob {digest}",
                operation="put_blob", digest=digest, status_code=response.status_code
            )
        return location

    def ensure_blob(self, repo: str, digest: str, data: Union[bytes, BinaryIO]) -> bool:
        """Upload blob only if it doesn't already exist."""
        if self.blob_exists(repo, digest):
            logger.debug(f"Blob {digest} already exists in {repo}, skipping upload")
            return False
        self.put_blob(repo, digest, data)
        return True

    def ensure_blobs(self, repo: str, files: Dict[str, bytes]) -> Dict[str, bool]:
        """
        Ensure every blob of a file set exists.

        Uploads run concurrently and all of them finish before this returns;
        the first failure is raised once the pool has drained.
        """
        self._ensure_authenticated(repo)
        items = sorted(files.items())
        workers = min(self.settings.upload_concurrency, len(items))

        if workers <= 1:
            return {digest: self.ensure_blob(repo, digest, data) for digest, data in items}

        results: Dict[str, bool] = {}
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="blob-upload") as pool:
            futures = {pool.submit(self.ensure_blob, repo, digest, data): digest
                       for digest, data in items}
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        return results

    # Manifests

    def put_manifest(self, repo: str, media_type: str, payload: bytes,
                     tag: Optional[str] = None) -> str:
        """
        PUT manifest and return the registry's Docker-Content-Digest unmodified.

        Raises:
            OciError: If the registry omits the digest header
        """
        self._ensure_authenticated(repo)
        local_digest = sha256_digest(payload)
        ref = tag or local_digest

        response = self._retry(
            self._send, "PUT", f"/v2/{repo}/manifests/{ref}",
            operation="put_manifest", digest=local_digest, tag=tag,
            content=payload, headers={"Content-Type": media_type},
        )

        canonical_digest = response.headers.get("Docker-Content-Digest")
        if not canonical_digest:
            raise OciError(
                f"Registry did not return Docker-Content-Digest header for {repo}:{ref}",
                operation="put_manifest", digest=local_digest, tag=tag,
                status_code=response.status_code
            )
        logger.debug(f"Pushed manifest {repo}:{ref} -> {canonical_digest}")
        return canonical_digest

    # Transport

    def _retry(self, fn, *args, **kwargs):
        """Run ``fn`` under the retry policy (transient errors only)."""
        return self._retrying.copy()(fn, *args, **kwargs)

    def _timeout(self, operation: str, **context) -> float:
        if self.deadline is None:
            return self.settings.http_timeout_s
        remaining = self.deadline - time.monotonic()
        if remaining <= 0:
            raise PublishTimeout(f"Run deadline exceeded before {operation}",
                                 operation=operation, **context)
        return min(self.settings.http_timeout_s, remaining)

    def _send(self, method: str, path: str, *, operation: str,
              digest: Optional[str] = None, tag: Optional[str] = None,
              headers: Optional[dict] = None, passthrough: Tuple[int, ...] = (),
              use_auth: bool = True, **kwargs) -> httpx.Response:
        """
        Make a single HTTP request and map failures to OCI errors.

        Statuses listed in ``passthrough`` are returned instead of raised.
        """
        context = {"digest": digest, "tag": tag}
        url = urljoin(self.base_url, path)
        request_headers = dict(headers or {})
        if use_auth and self._auth_header:
            request_headers["Authorization"] = self._auth_header

        timeout = self._timeout(operation, **context)
        try:
            response = self.client.request(method, url, headers=request_headers,
                                           timeout=timeout, **kwargs)
        except httpx.TransportError as e:
            if self.deadline is not None and time.monotonic() >= self.deadline:
                raise PublishTimeout(f"Run deadline exceeded during {operation}: {e}",
                                     operation=operation, **context) from e
            raise OciTransientError(f"Network error during {operation} ({method} {url}): {e}",
                                    operation=operation, **context) from e
        except httpx.RequestError as e:
            # Redirect loops and invalid URLs are permanent
            raise OciError(f"Request failed during {operation} ({method} {url}): {e}",
                           operation=operation, **context) from e

        if response.is_success or response.status_code in passthrough:
            return response
        if (response.status_code == 401 and use_auth and "Authorization" not in request_headers
                and self._upgrade_anonymous(response)):
            return self._send(method, path, operation=operation, digest=digest, tag=tag,
                              headers=headers, passthrough=passthrough, use_auth=use_auth, **kwargs)
        raise _error_for_response(response, operation, **context)

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


__all__ = ["RegistryHTTP", "USER_AGENT"]
