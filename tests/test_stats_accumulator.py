import threading

from banbridge.api.models import PlayerDelta, StatsBatch
from banbridge.stats.accumulator import StatsAccumulator, UNKNOWN_NAME


def by_subject(batch: StatsBatch) -> dict[str, PlayerDelta]:
    return {p.subject_id: p for p in batch.players}


def test_drain_collects_all_counters():
    stats = StatsAccumulator()
    stats.record_playtime("P1", "Alex", 60)
    stats.record_kill("P1", "Alex", 2)
    stats.record_death("P2", "Sam", 1)

    deltas = by_subject(stats.drain_batch())

    assert deltas["P1"] == PlayerDelta("P1", "Alex", 60, 2, 0)
    assert deltas["P2"] == PlayerDelta("P2", "Sam", 0, 0, 1)


def test_second_drain_is_empty():
    stats = StatsAccumulator()
    stats.record_kill("P1", "Alex", 1)

    stats.drain_batch()

    assert stats.drain_batch().is_empty()


def test_non_positive_deltas_and_missing_subject_are_ignored():
    stats = StatsAccumulator()
    stats.record_playtime("P1", "Alex", 0)
    stats.record_kill("P1", "Alex", -3)
    stats.record_death(None, "Ghost", 1)
    stats.record_death("", "Ghost", 1)

    assert stats.drain_batch().is_empty()


def test_unknown_name_placeholder():
    stats = StatsAccumulator()
    stats.record_kill("P1", "   ", 1)

    assert stats.drain_batch().players[0].name == UNKNOWN_NAME
    assert stats.last_known_name("P9") == UNKNOWN_NAME


def test_latest_non_blank_name_wins():
    stats = StatsAccumulator()
    stats.mark_online("P1", "OldName")
    stats.record_kill("P1", " NewName ", 1)
    stats.record_kill("P1", None, 1)

    assert stats.last_known_name("P1") == "NewName"
    assert stats.drain_batch().players[0].name == "NewName"


def test_mark_online_and_offline_do_not_create_deltas():
    stats = StatsAccumulator()
    stats.mark_online("P1", "Alex")
    stats.mark_offline("P1")

    assert stats.drain_batch().is_empty()
    assert stats.last_known_name("P1") == "Alex"


def test_requeue_is_additive():
    stats = StatsAccumulator()
    stats.record_playtime("P1", "Alex", 60)
    stats.record_kill("P1", "Alex", 1)
    failed = stats.drain_batch()

    stats.requeue(failed)
    stats.record_playtime("P1", "Alex", 60)
    stats.record_death("P1", "Alex", 1)

    assert by_subject(stats.drain_batch())["P1"] == PlayerDelta("P1", "Alex", 120, 1, 1)


def test_requeue_does_not_overwrite_known_name_with_placeholder():
    stats = StatsAccumulator()
    stats.requeue(StatsBatch(players=[PlayerDelta("P1", UNKNOWN_NAME, 60)]))

    assert stats.last_known_name("P1") == UNKNOWN_NAME
    stats.mark_online("P1", "Alex")
    stats.requeue(StatsBatch(players=[PlayerDelta("P1", UNKNOWN_NAME, 60)]))
    assert stats.last_known_name("P1") == "Alex"


def test_requeue_keeps_name_recorded_after_drain():
    stats = StatsAccumulator()
    stats.record_kill("P1", "OldName", 1)
    failed = stats.drain_batch()

    stats.record_kill("P1", "NewName", 1)
    stats.requeue(failed)

    assert stats.last_known_name("P1") == "NewName"
    assert stats.drain_batch() == StatsBatch(players=[PlayerDelta("P1", "NewName", 0, 2, 0)])


def test_requeue_fills_in_missing_name():
    stats = StatsAccumulator()
    stats.requeue(StatsBatch(players=[PlayerDelta("P1", "Alex", 60)]))

    assert stats.last_known_name("P1") == "Alex"
    assert stats.pending_subjects == 1


def test_concurrent_recording_and_draining_loses_nothing():
    stats = StatsAccumulator()
    writers, per_writer = 8, 2000
    drained: list[StatsBatch] = []
    done = threading.Event()

    def writer(index: int) -> None:
        for _ in range(per_writer):
            stats.record_kill(f"P{index % 3}", "Player", 1)

    def drainer() -> None:
        while not done.is_set():
            drained.append(stats.drain_batch())

    drain_thread = threading.Thread(target=drainer)
    drain_thread.start()
    threads = [threading.Thread(target=writer, args=(i,)) for i in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    done.set()
    drain_thread.join()
    drained.append(stats.drain_batch())

    total = sum(p.kills_delta for batch in drained for p in batch.players)
    assert total == writers * per_writer
