from __future__ import annotations

import pytest

D0 = 1_767_225_600_000  # 2026-01-01T00:00:00Z
HOUR = 3_600_000
DAY = 24 * HOUR


def _mk_event(event_id: str, device_id: str, ts: int):
    from trackcore.features.events.schema import Event

    return Event(
        event_id=event_id,
        event_name="app_open",
        event_type="custom",
        timestamp=ts,
        device_id=device_id,
        session_id=f"s_{device_id}_{ts // DAY}",
        platform="flutter",
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


def _three_device_cohort():
    return [
        _mk_event("d1_0", "d1", D0 + 1 * HOUR),
        _mk_event("d2_0", "d2", D0 + 2 * HOUR),
        _mk_event("d3_0", "d3", D0 + 3 * HOUR),
        _mk_event("d1_1", "d1", D0 + DAY + HOUR),
        _mk_event("d2_1", "d2", D0 + DAY + 5 * HOUR),
    ]


def test_retention_worked_example(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_three_device_cohort())

    res = store.get_retention_analysis("2026-01-01", "2026-01-01", days=3)

    [cohort] = res.cohorts
    assert cohort.cohort_date == "2026-01-01"
    assert cohort.cohort_size == 3
    assert cohort.retention == [100.0, 66.67, 0.0]
    # day 2 lies past the last day with data, so no cohort contributes to it
    assert res.average_retention == [100.0, 66.67, 0.0]
    store.close()


def test_empty_cohort_yields_zero_vector(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_three_device_cohort())

    res = store.get_retention_analysis("2026-01-01", "2026-01-02", days=2)

    assert [c.cohort_date for c in res.cohorts] == ["2026-01-01", "2026-01-02"]
    empty = res.cohorts[1]
    assert empty.cohort_size == 0
    assert empty.retention == [0.0, 0.0]
    # the empty cohort is left out of the average
    assert res.average_retention == [100.0, 66.67]
    store.close()


def test_average_over_several_cohorts(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(
        [
            # cohort 2026-01-01: 2 devices, 1 returns next day
            _mk_event("a1_0", "a1", D0 + HOUR),
            _mk_event("a2_0", "a2", D0 + HOUR),
            _mk_event("a1_1", "a1", D0 + DAY + 3 * HOUR),
            # cohort 2026-01-02: 4 devices, 1 returns next day
            _mk_event("b1_0", "b1", D0 + DAY + HOUR),
            _mk_event("b2_0", "b2", D0 + DAY + HOUR),
            _mk_event("b3_0", "b3", D0 + DAY + HOUR),
            _mk_event("b4_0", "b4", D0 + DAY + HOUR),
            _mk_event("b1_1", "b1", D0 + 2 * DAY + HOUR),
        ]
    )

    res = store.get_retention_analysis("2026-01-01", "2026-01-02", days=2)

    assert [c.cohort_size for c in res.cohorts] == [2, 4]
    assert [c.retention for c in res.cohorts] == [[100.0, 50.0], [100.0, 25.0]]
    assert res.average_retention == [100.0, 37.5]
    store.close()


def test_cohort_is_keyed_on_first_seen_not_activity(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_three_device_cohort())

    # d1, d2 are active on 2026-01-02 but were first seen the day before
    res = store.get_retention_analysis("2026-01-02", "2026-01-02", days=1)
    assert res.cohorts[0].cohort_size == 0
    assert res.average_retention == [0.0]
    store.close()


def test_no_data_and_degenerate_inputs(tmp_path):
    from trackcore.core.errors import InvalidQueryRange

    store = _open_store(tmp_path)

    res = store.get_retention_analysis("2026-01-01", "2026-01-03", days=2)
    assert len(res.cohorts) == 3
    assert all(c.retention == [0.0, 0.0] for c in res.cohorts)
    assert res.average_retention == [0.0, 0.0]

    inverted = store.get_retention_analysis("2026-01-03", "2026-01-01", days=2)
    assert inverted.cohorts == []
    assert inverted.average_retention == [0.0, 0.0]

    zero_days = store.get_retention_analysis("2026-01-01", "2026-01-01", days=0)
    assert zero_days.cohorts[0].retention == []

    with pytest.raises(InvalidQueryRange):
        store.get_retention_analysis("2026-01-01", "2026-01-01", days=-1)
    store.close()


def test_as_dict_shape(tmp_path):
    store = _open_store(tmp_path)
    store.insert_batch(_three_device_cohort())

    d = store.get_retention_analysis("2026-01-01", "2026-01-01", days=2).as_dict()
    assert d == {
        "cohorts": [{"cohortDate": "2026-01-01", "cohortSize": 3, "retention": [100.0, 66.67]}],
        "averageRetention": [100.0, 66.67],
    }
    store.close()


def test_oversized_inputs_rejected(tmp_path):
    from trackcore.core.errors import InvalidQueryRange

    store = _open_store(tmp_path)
    with pytest.raises(InvalidQueryRange):
        store.get_retention_analysis("0001-01-01", "9999-12-30", days=7)
    with pytest.raises(InvalidQueryRange):
        store.get_retention_analysis("2026-01-01", "2026-01-01", days=10_000_000)

    edge = store.get_retention_analysis("9999-12-31", "9999-12-31", days=2)
    assert [c.cohort_date for c in edge.cohorts] == ["9999-12-31"]
    assert edge.cohorts[0].retention == [0.0, 0.0]
    store.close()
