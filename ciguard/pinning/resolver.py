"""
ciguard Reference Resolver

Resolves a mutable action ref (tag or branch) to the commit SHA it points
at, using the GitHub REST API. A ref that already is a full SHA resolves to
itself without touching the network.

Results live in a run-scoped PinCache. Concurrent callers asking for the
same (owner, repo, ref) wait on the first caller's request instead of
issuing their own.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import quote

import requests

from ciguard import __version__
from ciguard.core.config import PinningConfig
from ciguard.core.errors import ResolutionError, ResolutionKind
from ciguard.pinning.parser import is_full_sha

logger = logging.getLogger(__name__)

SHA_MEDIA_TYPE = "application/vnd.github.sha"

CacheKey = tuple[str, str, str]


@dataclass(frozen=True)
class ResolvedPin:
    owner: str
    repo: str
    ref: str
    commit_sha: str
    resolved_at: datetime

    def to_dict(self) -> dict:
        return {
            "action": f"{self.owner}/{self.repo}",
            "ref": self.ref,
            "sha": self.commit_sha,
            "resolved_at": self.resolved_at.isoformat(),
        }


class PinCache:
    """Thread-safe memo of resolutions for a single run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, Future] = {}

    def get_or_resolve(self, key: CacheKey, resolve: Callable[[], ResolvedPin]) -> ResolvedPin:
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._entries[key] = future

        if owner:
            try:
                future.set_result(resolve())
            except ResolutionError as exc:
                # Failures are memoised too: one key, one attempt per run
                future.set_exception(exc)
            except BaseException as exc:
                with self._lock:
                    del self._entries[key]
                future.set_exception(exc)
                raise
        return future.result()

    def get(self, key: CacheKey) -> Optional[ResolvedPin]:
        with self._lock:
            future = self._entries.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def resolved(self) -> list[ResolvedPin]:
        with self._lock:
            futures = list(self._entries.values())
        return [f.result() for f in futures if f.done() and f.exception() is None]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def export(self, path: Path) -> None:
        """Write successful resolutions as JSON. Only done on request."""
        data = {
            f"{pin.owner}/{pin.repo}@{pin.ref}": pin.to_dict()
            for pin in sorted(self.resolved(), key=lambda p: (p.owner, p.repo, p.ref))
        }
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


class GitHubResolver:
    """Resolves action refs through the GitHub commits API."""

    def __init__(
        self,
        settings: PinningConfig,
        cache: Optional[PinCache] = None,
        session: Optional[requests.Session] = None,
        token: str = "",
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.cache = cache if cache is not None else PinCache()
        self.token = token
        self.api_url = settings.api_url.rstrip("/")
        self._sleep = sleep
        self._owns_session = session is None
        self._session = session
        self._lock = threading.Lock()
        self.requests_made = 0

    def __enter__(self) -> "GitHubResolver":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    @property
    def session(self) -> requests.Session:
        with self._lock:
            if self._session is None:
                self._session = requests.Session()
                self._session.headers.update({
                    "Accept": SHA_MEDIA_TYPE,
                    "X-GitHub-Api-Version": "2022-11-28",
                    "User-Agent": f"ciguard/{__version__}",
                })
                if self.token:
                    self._session.headers["Authorization"] = f"Bearer {self.token}"
            return self._session

    def resolve(self, owner: str, repo: str, ref: str) -> ResolvedPin:
        """
        Resolve owner/repo@ref to a commit SHA.

        Raises:
            ResolutionError: kind network, not-found or rate-limited.
        """
        if is_full_sha(ref):
            return ResolvedPin(owner, repo, ref, ref.lower(), _now())
        return self.cache.get_or_resolve((owner, repo, ref), lambda: self._fetch(owner, repo, ref))

    def _fetch(self, owner: str, repo: str, ref: str) -> ResolvedPin:
        url = (
            f"{self.api_url}/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"
            f"/commits/{quote(ref, safe='/')}"
        )
        attempts = self.settings.max_retries + 1
        last_error = ""

        for attempt in range(attempts):
            if attempt:
                delay = self.settings.backoff_base * (2 ** (attempt - 1))
                logger.info("retrying %s/%s@%s in %.1fs (%s)", owner, repo, ref, delay, last_error)
                self._sleep(delay)

            with self._lock:
                self.requests_made += 1
            try:
                resp = self.session.get(url, timeout=self.settings.request_timeout)
            except requests.Timeout as exc:
                last_error = f"timeout: {exc}"
                continue
            except requests.RequestException as exc:
                last_error = f"request failed: {exc}"
                continue

            if resp.status_code == 200:
                sha = resp.text.strip().lower()
                if not is_full_sha(sha):
                    raise ResolutionError(owner, repo, ref, ResolutionKind.NETWORK, "unexpected response body")
                logger.debug("resolved %s/%s@%s -> %s", owner, repo, ref, sha)
                return ResolvedPin(owner, repo, ref, sha, _now())
            if resp.status_code in (404, 422):
                raise ResolutionError(owner, repo, ref, ResolutionKind.NOT_FOUND, f"HTTP {resp.status_code}")
            if _is_rate_limited(resp):
                raise ResolutionError(owner, repo, ref, ResolutionKind.RATE_LIMITED, f"HTTP {resp.status_code}")
            if resp.status_code >= 500:
                last_error = f"HTTP {resp.status_code}"
                continue
            raise ResolutionError(owner, repo, ref, ResolutionKind.NETWORK, f"HTTP {resp.status_code}")

        logger.warning("giving up on %s/%s@%s after %d attempt(s): %s", owner, repo, ref, attempts, last_error)
        raise ResolutionError(owner, repo, ref, ResolutionKind.NETWORK, last_error)


def _is_rate_limited(resp: requests.Response) -> bool:
    if resp.status_code == 429:
        return True
    return resp.status_code == 403 and resp.headers.get("x-ratelimit-remaining") == "0"


def _now() -> datetime:
    return datetime.now(timezone.utc)
