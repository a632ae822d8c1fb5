"""Tests for the retrieval event sink and its metrics export."""

from __future__ import annotations

import json

import httpx

from contextengine.retrieval_logger import RetrievalLogger, RetrievalLoggerConfig


class _Recorder:
    """httpx MockTransport handler that records requests and answers with *status*."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json={})

    def payloads(self) -> list[dict[str, object]]:
        return [json.loads(r.content) for r in self.requests]


def _sink(recorder: _Recorder, batch_size: int = 2, api_key: str = "secret") -> RetrievalLogger:
    config = RetrievalLoggerConfig(api_endpoint="http://logs.test/ingest", api_key=api_key, api_batch_size=batch_size)
    return RetrievalLogger(config, client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)))


async def _run_once(sink: RetrievalLogger, query: str = "q") -> str:
    rid = sink.log_retrieval_start(query, 10, ["fts", "embeddings"])
    sink.log_source_start(rid, "fts")
    sink.log_source_complete(rid, "fts", 3, 12)
    sink.log_source_start(rid, "embeddings")
    sink.log_source_error(rid, "embeddings", RuntimeError("down"), 5)
    await sink.log_retrieval_complete(rid, 3)
    return rid


async def test_metrics_cover_every_finished_source() -> None:
    sink = RetrievalLogger()
    rid = sink.log_retrieval_start("find parser", 10, ["fts", "embeddings"])
    assert rid.startswith("retrieval_")
    sink.log_source_start(rid, "fts")
    sink.log_source_complete(rid, "fts", 3, 12)
    sink.log_source_error(rid, "embeddings", ValueError("bad"), 5)

    metrics = await sink.log_retrieval_complete(rid, 3)

    assert metrics is not None
    assert metrics.retrieval_id == rid
    assert metrics.query == "find parser"
    assert metrics.total_chunks == 3
    assert [(m.source, m.success, m.chunks_retrieved, m.duration_ms) for m in metrics.source_metrics] == [
        ("fts", True, 3, 12),
        ("embeddings", False, 0, 5),
    ]


async def test_retrieval_ids_are_unique() -> None:
    sink = RetrievalLogger()
    assert sink.log_retrieval_start("a", 1, []) != sink.log_retrieval_start("a", 1, [])


async def test_unknown_retrieval_id_returns_none() -> None:
    assert await RetrievalLogger().log_retrieval_complete("retrieval_missing", 0) is None


async def test_context_is_closed_after_completion() -> None:
    sink = RetrievalLogger()
    rid = sink.log_retrieval_start("q", 1, [])
    assert await sink.log_retrieval_complete(rid, 0) is not None
    assert await sink.log_retrieval_complete(rid, 0) is None


async def test_no_export_without_endpoint() -> None:
    sink = RetrievalLogger()
    await _run_once(sink)
    assert sink.pending == 0


async def test_batch_is_posted_when_full() -> None:
    recorder = _Recorder()
    sink = _sink(recorder, batch_size=2)

    await _run_once(sink)
    assert recorder.requests == []
    assert sink.pending == 1

    await _run_once(sink)
    assert sink.pending == 0
    (request,) = recorder.requests
    assert request.headers["Authorization"] == "Bearer secret"
    assert str(request.url) == "http://logs.test/ingest"
    (payload,) = recorder.payloads()
    assert len(payload["logs"]) == 2


async def test_no_auth_header_without_key() -> None:
    recorder = _Recorder()
    sink = _sink(recorder, batch_size=1, api_key="")
    await _run_once(sink)
    assert "Authorization" not in recorder.requests[0].headers


async def test_failed_flush_keeps_batch_for_retry() -> None:
    recorder = _Recorder(status=503)
    sink = _sink(recorder, batch_size=1)

    await _run_once(sink, query="first")
    assert sink.pending == 1

    recorder.status = 200
    await _run_once(sink, query="second")
    assert sink.pending == 0
    last = recorder.payloads()[-1]
    assert [entry["query"] for entry in last["logs"]] == ["first", "second"]


async def test_close_flushes_pending() -> None:
    recorder = _Recorder()
    sink = _sink(recorder, batch_size=10)
    await _run_once(sink)
    assert sink.pending == 1

    await sink.close()

    assert sink.pending == 0
    assert len(recorder.requests) == 1


async def test_disabled_logger_still_tracks_metrics() -> None:
    recorder = _Recorder()
    config = RetrievalLoggerConfig(enabled=False, api_endpoint="http://logs.test/ingest", api_batch_size=1)
    sink = RetrievalLogger(config, client=httpx.AsyncClient(transport=httpx.MockTransport(recorder)))
    rid = sink.log_retrieval_start("q", 1, ["fts"])
    sink.log_source_complete(rid, "fts", 1, 1)
    metrics = await sink.log_retrieval_complete(rid, 1)
    assert metrics is not None
    assert recorder.requests == []


async def test_transport_crash_keeps_batch_for_retry() -> None:
    def crash(request: httpx.Request) -> httpx.Response:
        msg = "connect(): port must be 0-65535"
        raise OverflowError(msg)

    config = RetrievalLoggerConfig(api_endpoint="http://logs.test/ingest", api_batch_size=1)
    sink = RetrievalLogger(config, client=httpx.AsyncClient(transport=httpx.MockTransport(crash)))

    await _run_once(sink)

    assert sink.pending == 1
    assert await sink.flush_batch() is False
    assert sink.pending == 1


async def test_discard_drops_open_context() -> None:
    sink = RetrievalLogger()
    rid = sink.log_retrieval_start("q", 1, ["fts"])
    sink.discard(rid)
    sink.discard(rid)
    assert await sink.log_retrieval_complete(rid, 0) is None
