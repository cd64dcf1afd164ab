"""
Embedding providers.

HttpEmbedder talks to an OpenAI-compatible ``/embeddings`` endpoint.
HashingEmbedder is a deterministic local fallback (signed feature
hashing over tokens) used for development and tests.
"""

import hashlib
import re
import time
from typing import Callable, List, Optional

import numpy as np
import requests

from .errors import CircuitOpenError, EmbeddingError
from .logger import get_logger
from .retry import CircuitBreaker, RetryError, exponential_backoff, should_retry_http_status
from .services import Embedder

logger = get_logger()

_TOKEN = re.compile(r"\w+", re.UNICODE)


class TransientEmbeddingError(Exception):
    """A failure worth retrying (timeout, connection reset, 429/5xx)."""
    pass


class HttpEmbedder(Embedder):
    def __init__(
        self,
        url: str,
        model: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        session: Optional[requests.Session] = None,
        breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.breaker = breaker or CircuitBreaker(
            "embeddings",
            failure_threshold=3,
            recovery_timeout=30,
            expected_exception=(TransientEmbeddingError, RetryError),
        )
        self._post = exponential_backoff(
            max_retries=max_retries,
            base_delay=0.5,
            exceptions=(TransientEmbeddingError,),
            on_retry=self._log_retry,
            sleep=sleep,
        )(self._post_once)

    def embed(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            EmbeddingError: On any failure, including an open circuit
        """
        try:
            data = self.breaker.call(self._post, text)
        except CircuitOpenError as e:
            logger.warning("Embedding circuit open", retry_after=round(e.retry_after))
            raise EmbeddingError(str(e)) from e
        except RetryError as e:
            logger.error("Embedding request failed after retries", url=self.url, error=str(e))
            raise EmbeddingError(str(e)) from e

        try:
            return [float(x) for x in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise EmbeddingError(f"Unexpected embeddings response shape: {e}") from e

    def _post_once(self, text: str) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            resp = self.session.post(
                self.url,
                json={"input": text, "model": self.model},
                headers=headers,
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            raise TransientEmbeddingError(str(e)) from e
        except requests.exceptions.RequestException as e:
            raise EmbeddingError(f"request error: {e}") from e

        if should_retry_http_status(resp.status_code):
            raise TransientEmbeddingError(f"HTTP {resp.status_code}")
        if resp.status_code >= 400:
            raise EmbeddingError(f"HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise EmbeddingError(f"invalid JSON: {e}") from e

    def _log_retry(self, attempt: int, error: Exception, delay: float):
        logger.warning("Retrying embedding request", attempt=attempt, delay=delay, error=str(error))


class HashingEmbedder(Embedder):
    """Signed feature hashing of lowercased word tokens, L2-normalized."""

    def __init__(self, dim: int = 256):
        self.dim = dim

    @staticmethod
    def _h64(token: str) -> int:
        digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
        return int.from_bytes(digest, "little", signed=False)

    def embed(self, text: str) -> List[float]:
        v = np.zeros((self.dim,), dtype=np.float64)
        for token in _TOKEN.findall((text or "").lower()):
            hv = self._h64(token)
            sign = 1.0 if ((hv >> 63) & 1) == 0 else -1.0
            v[hv % self.dim] += sign
        n = float(np.linalg.norm(v))
        if n > 0:
            v /= n
        return v.tolist()


def build_embedder(url: Optional[str], model: str, api_key: Optional[str]) -> Embedder:
    """HttpEmbedder when a URL is configured, otherwise the local hashing embedder."""
    if url:
        return HttpEmbedder(url, model=model, api_key=api_key)
    return HashingEmbedder()
