from __future__ import annotations

D0 = 1_767_225_600_000  # 2026-01-01T00:00:00Z
MIN = 60_000
DAY = 24 * 60 * MIN


def _mk_event(event_id: str, name: str, device_id: str, ts: int):
    from trackcore.features.events.schema import Event

    return Event(
        event_id=event_id,
        event_name=name,
        event_type="custom",
        timestamp=ts,
        device_id=device_id,
        session_id=f"s_{device_id}",
        platform="android",
        app_id="app_a",
    )


def _open_store(tmp_path):
    from trackcore.core.config import parse_config
    from trackcore.features.bootstrap.service import bootstrap_store

    cfg = parse_config(
        {
            "storage": {"duckdb_path": str(tmp_path / "track.duckdb"), "clean_slate": True},
            "logging": {"level": "INFO"},
        }
    )
    return bootstrap_store(cfg)


def _abc_events():
    return [
        _mk_event("a1", "A", "d1", D0 + 1 * MIN),
        _mk_event("a2", "A", "d2", D0 + 2 * MIN),
        _mk_event("a3", "A", "d3", D0 + 3 * MIN),
        _mk_event("b1", "B", "d1", D0 + 10 * MIN),
        _mk_event("b2", "B", "d2", D0 + 11 * MIN),
        _mk_event("c1", "C", "d1", D0 + 20 * MIN),
    ]


def test_funnel_worked_example(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_abc_events())

    res = store.get_funnel_analysis(["A", "B", "C"], "2026-01-01", "2026-01-01")

    assert [s.users for s in res.steps] == [3, 2, 1]
    assert [s.conversion_rate for s in res.steps] == [100.0, 66.67, 33.33]
    assert [s.dropoff_rate for s in res.steps] == [0.0, 33.33, 50.0]
    assert [s.step for s in res.steps] == [1, 2, 3]
    assert res.overall_conversion == 33.33
    store.close()


def test_out_of_order_completion_does_not_count(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(
        [
            # d1: B happens before A -> stops at step 1
            _mk_event("b1", "B", "d1", D0 + 1 * MIN),
            _mk_event("a1", "A", "d1", D0 + 5 * MIN),
            # d2: in order
            _mk_event("a2", "A", "d2", D0 + 1 * MIN),
            _mk_event("b2", "B", "d2", D0 + 5 * MIN),
        ]
    )

    res = store.get_funnel_analysis(["A", "B"], "2026-01-01", "2026-01-01")
    assert [s.users for s in res.steps] == [2, 1]
    store.close()


def test_step_time_carries_forward_from_earliest_qualifying_event(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(
        [
            _mk_event("a1", "A", "d1", D0 + 1 * MIN),
            _mk_event("c1", "C", "d1", D0 + 3 * MIN),  # before B, ignored
            _mk_event("b1", "B", "d1", D0 + 5 * MIN),
            _mk_event("b2", "B", "d1", D0 + 50 * MIN),
            _mk_event("c2", "C", "d1", D0 + 6 * MIN),  # after first B
        ]
    )

    res = store.get_funnel_analysis(["A", "B", "C"], "2026-01-01", "2026-01-01")
    assert [s.users for s in res.steps] == [1, 1, 1]
    store.close()


def test_same_timestamp_counts_as_at_or_after(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch([_mk_event("a1", "A", "d1", D0), _mk_event("b1", "B", "d1", D0)])

    res = store.get_funnel_analysis(["A", "B"], "2026-01-01", "2026-01-01")
    assert [s.users for s in res.steps] == [1, 1]
    store.close()


def test_events_outside_range_are_ignored(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(
        [
            _mk_event("a1", "A", "d1", D0 + MIN),
            _mk_event("b1", "B", "d1", D0 + DAY + MIN),
        ]
    )

    res = store.get_funnel_analysis(["A", "B"], "2026-01-01", "2026-01-01")
    assert [s.users for s in res.steps] == [1, 0]

    res = store.get_funnel_analysis(["A", "B"], "2026-01-01", "2026-01-02")
    assert [s.users for s in res.steps] == [1, 1]
    store.close()


def test_monotonic_users_across_steps(tmp_path):
    store = _open_store(tmp_path)
    names = ["A", "B", "C", "D"]
    events = []
    for i in range(40):
        events.append(_mk_event(f"e{i}", names[(i * 7) % 4], f"d{i % 6}", D0 + i * MIN))
    store.insert_batch(events)

    res = store.get_funnel_analysis(names, "2026-01-01", "2026-01-01")
    users = [s.users for s in res.steps]
    assert all(users[i] <= users[i - 1] for i in range(1, len(users)))
    store.close()


def test_zero_steps_and_zero_first_step(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_abc_events())

    empty = store.get_funnel_analysis([], "2026-01-01", "2026-01-01")
    assert empty.steps == []
    assert empty.overall_conversion == 0.0

    res = store.get_funnel_analysis(["missing", "B"], "2026-01-01", "2026-01-01")
    assert [s.users for s in res.steps] == [0, 0]
    assert [s.conversion_rate for s in res.steps] == [0.0, 0.0]
    assert [s.dropoff_rate for s in res.steps] == [0.0, 0.0]
    assert res.overall_conversion == 0.0

    inverted = store.get_funnel_analysis(["A"], "2026-01-02", "2026-01-01")
    assert [s.users for s in inverted.steps] == [0]
    store.close()


def test_as_dict_shape(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_abc_events())

    d = store.get_funnel_analysis(["A", "B"], "2026-01-01", "2026-01-01").as_dict()
    assert d["overallConversion"] == 66.67
    assert d["steps"][1] == {
        "step": 2,
        "eventName": "B",
        "users": 2,
        "conversionRate": 66.67,
        "dropoffRate": 33.33,
    }
    store.close()
