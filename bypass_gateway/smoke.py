"""End-to-end smoke check against a running gateway.

Embeds four words through the local route, checks the classic
``queen - female + male ~ king`` analogy, then asks a remotely routed chat
model to judge the similarity. Both routes are exercised in one run.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
import numpy as np

from .logging_utils import get_logger
from .time_utils import elapsed_ms, monotonic_now

DEFAULT_GATEWAY_URL = "http://localhost:11434"
DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"
DEFAULT_CHAT_MODEL = "google/gemini-2.0-flash-lite-001"


@dataclass(frozen=True)
class AnalogyResult:
    king: float
    male: float
    queen: float


def cosine_similarity(vec_a: np.ndarray, vec_b: np.ndarray) -> float:
    denom = float(np.linalg.norm(vec_a) * np.linalg.norm(vec_b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / denom)


def _embed(client: httpx.Client, model: str, prompt: str) -> np.ndarray:
    response = client.post("/api/embeddings", json={"model": model, "prompt": prompt})
    response.raise_for_status()
    embedding = response.json().get("embedding")
    if not embedding:
        raise RuntimeError(f"no embedding returned for {prompt!r}")
    return np.asarray(embedding, dtype=np.float64)


def run_analogy(client: httpx.Client, model: str) -> AnalogyResult:
    queen, female, male, king = (
        _embed(client, model, word) for word in ("queen", "female", "male", "king")
    )
    result = queen - female + male
    return AnalogyResult(
        king=cosine_similarity(result, king),
        male=cosine_similarity(result, male),
        queen=cosine_similarity(result, queen),
    )


def ask_assessment(client: httpx.Client, chat_model: str, embedding_model: str, score: float) -> str:
    prompt = (
        f'The word embedding model "{embedding_model}" produced a cosine similarity of {score} '
        "when performing the queen - female + male test against king. "
        "Is this a good result? Answer in 15 words or less."
    )
    response = client.post(
        "/api/chat",
        json={"model": chat_model, "messages": [{"role": "user", "content": prompt}]},
    )
    response.raise_for_status()
    content = (response.json().get("message") or {}).get("content")
    if not content:
        raise RuntimeError(f"empty assessment: {response.text}")
    return str(content)


def run_smoke(
    gateway_url: str = DEFAULT_GATEWAY_URL,
    *,
    embedding_model: str = DEFAULT_EMBEDDING_MODEL,
    chat_model: str = DEFAULT_CHAT_MODEL,
    timeout_s: float = 120.0,
) -> int:
    log = get_logger("smoke")
    started = monotonic_now()
    with httpx.Client(base_url=gateway_url, timeout=timeout_s) as client:
        try:
            analogy = run_analogy(client, embedding_model)
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            log.error("Embedding model ({}) check failed: {}", embedding_model, exc)
            log.warning("Skipping remote assessment check after embedding failure.")
            return 2
        log.info(
            "Embedding model ({}) check passed: king={:.4f} male={:.4f} queen={:.4f}",
            embedding_model,
            analogy.king,
            analogy.male,
            analogy.queen,
        )
        try:
            answer = ask_assessment(client, chat_model, embedding_model, analogy.king)
        except (httpx.HTTPError, RuntimeError, ValueError) as exc:
            log.error("Remote assessment ({}) check failed: {}", chat_model, exc)
            return 2
    elapsed = elapsed_ms(started)
    log.info("Remote assessment ({}): {}", chat_model, answer)
    log.info("Smoke passed in {:.0f}ms", elapsed)
    return 0


__all__ = ["AnalogyResult", "cosine_similarity", "run_analogy", "run_smoke"]
