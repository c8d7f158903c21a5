from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import httpx

from balloontrails.ingestion.errors import classify_fetch_error
from balloontrails.ingestion.hour_client import HourBucketClient
from balloontrails.ingestion.schemas import parse_hour_payload
from balloontrails.settings import AppConfig
from balloontrails.tracking.store import HourBucketStore

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


def _config(**ingestion_overrides) -> AppConfig:
    config = AppConfig()
    updates = {"base_url": "https://snapshots.test/treasure", "retry_backoff_seconds": 0.0}
    updates.update(ingestion_overrides)
    return config.model_copy(update={"ingestion": config.ingestion.model_copy(update=updates)})


def _client(config: AppConfig, handler) -> HourBucketClient:
    http_client = httpx.Client(
        base_url="https://snapshots.test/treasure/",
        transport=httpx.MockTransport(handler),
    )
    return HourBucketClient(config=config, http_client=http_client)


def test_parse_hour_payload_validates_and_deduplicates() -> None:
    payload = [
        [10.0, 20.0, 5.0],
        [10.0, 20.0, 5.0],
        [95.0, 0.0, 1.0],
        [1.0, 2.0, 50.0],
        [1.0, 200.0, 1.0],
        [math.nan, 0.0, 1.0],
        [-45.5, -120.25, 12],
    ]

    samples = parse_hour_payload(payload, hour=3, now=NOW)

    assert [(s.lat, s.lon, s.alt_km) for s in samples] == [(10.0, 20.0, 5.0), (-45.5, -120.25, 12.0)]
    assert all(s.hour == 3 for s in samples)
    assert samples[0].timestamp == NOW - timedelta(hours=3)


def test_parse_hour_payload_rejects_malformed_payload() -> None:
    assert parse_hour_payload({"error": "nope"}, hour=0, now=NOW) == []
    assert parse_hour_payload([[1.0, 2.0]], hour=0, now=NOW) == []


def test_fetch_hour_retries_rate_limit(monkeypatch) -> None:
    sleeps: list[float] = []
    monkeypatch.setattr("balloontrails.ingestion.hour_client.time.sleep", lambda s: sleeps.append(s))
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        assert request.url.path == "/treasure/07.json"
        if calls["count"] == 1:
            return httpx.Response(429, headers={"Retry-After": "2"})
        return httpx.Response(200, json=[[1.0, 2.0, 3.0]])

    client = _client(_config(max_retries=2), handler)
    try:
        samples = client.fetch_hour(7, now=NOW)
    finally:
        client.close()

    assert len(samples) == 1
    assert calls["count"] == 2
    assert sleeps and sleeps[0] >= 2.0


def test_missing_hour_is_empty_not_fatal(monkeypatch) -> None:
    monkeypatch.setattr("balloontrails.ingestion.hour_client.time.sleep", lambda s: None)
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(404)

    client = _client(_config(max_retries=3), handler)
    try:
        assert client.fetch_hour(0, now=NOW) == []
    finally:
        client.close()

    assert calls["count"] == 1


def test_corrupt_json_is_retried_then_skipped(monkeypatch) -> None:
    monkeypatch.setattr("balloontrails.ingestion.hour_client.time.sleep", lambda s: None)
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(200, content=b"[[1.0, 2.0,")

    client = _client(_config(max_retries=1), handler)
    try:
        assert client.fetch_hour(5, now=NOW) == []
    finally:
        client.close()

    assert calls["count"] == 2


def test_fill_store_skips_empty_hours(monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("01.json"):
            return httpx.Response(404)
        return httpx.Response(200, json=[[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])

    store = HourBucketStore()
    client = _client(_config(max_retries=0), handler)
    try:
        client.fill_store(store, hours=[0, 1, 2])
    finally:
        client.close()

    assert store.loaded_hours() == [0, 2]
    assert len(store[0]) == 2
    assert store[1] == ()


def test_classify_fetch_error_codes() -> None:
    request = httpx.Request("GET", "https://snapshots.test/00.json")
    rate_limited = httpx.HTTPStatusError("429", request=request, response=httpx.Response(429, request=request))
    assert classify_fetch_error(rate_limited).code == "rate_limited"
    assert classify_fetch_error(httpx.ReadTimeout("slow", request=request)).code == "timeout"
    assert classify_fetch_error(ValueError("bad json")).code == "bad_payload"
