import json

from trackcore.app.cli import main

D0 = 1_767_225_600_000  # 2026-01-01T00:00:00Z


def _write_config(tmp_path):
    cfg = tmp_path / "track.yaml"
    cfg.write_text(
        f"storage:\n  duckdb_path: {tmp_path / 'track.duckdb'}\n"
        "logging:\n  level: WARNING\n"
    )
    return cfg


def _wire(i: int) -> dict:
    return {
        "eventId": f"evt-{i}",
        "eventName": "page_view",
        "eventType": "page_view",
        "timestamp": D0 + i,
        "deviceId": f"device_{i % 2}",
        "sessionId": "session_1",
        "platform": "web",
        "appId": "app_a",
        "appVersion": "1.0.0",
        "sdkVersion": "0.1.0",
        "properties": {},
    }


def test_ingest_then_stats(tmp_path, capsys):
    cfg = _write_config(tmp_path)
    events = tmp_path / "events.jsonl"
    events.write_text("\n".join(json.dumps(_wire(i)) for i in range(3)) + "\n\n")

    assert main(["ingest", "--config", str(cfg), str(events)]) == 0
    assert main(["ingest", "--config", str(cfg), str(events)]) == 0
    out = capsys.readouterr().out
    assert "events=3 inserted=3" in out
    assert "events=3 inserted=0" in out

    argv = ["stats", "--config", str(cfg), "--start", "2026-01-01", "--end", "2026-01-01"]
    assert main(argv) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["daily"] == [{"date": "2026-01-01", "pv": 3, "uv": 2, "eventCount": 3}]
    assert set(report["today"]) == {"pv", "uv", "eventCount"}
