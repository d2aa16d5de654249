import threading

import pytest

from pingmap.models import Block, ProbeOutcome, RetryPolicy, SweepConfig
from pingmap.sweep.canvas import REACHABLE, UNREACHABLE
from pingmap.sweep.hilbert import hilbert_coordinates
from pingmap.sweep.icmp import ProbeTimeout
from pingmap.sweep import engine
from pingmap.sweep.aggregate import SweepStateError
from pingmap.sweep.engine import run_sweep


def _config(**kw):
    kw.setdefault("retry", RetryPolicy(max_attempts=3, backoff=0))
    return SweepConfig(**kw)


def test_slash_30_sweep(scripted_probe):
    block = Block.from_cidr("192.168.1.0/30")
    probe = scripted_probe()
    seen = []

    summary = run_sweep(block, _config(), probe=probe, on_result=seen.append)

    assert sorted(probe.calls) == ["192.168.1.1", "192.168.1.2", "192.168.1.3"]
    assert sorted(r.offset for r in seen) == [1, 2, 3]
    assert summary.canvas.side == 60
    assert summary.total == 3
    assert summary.outcomes == {ProbeOutcome.REPLY: 3}


def test_reply_and_silence_paint_their_colors(scripted_probe):
    block = Block.from_cidr("10.9.8.0/29")
    probe = scripted_probe({"10.9.8.5": ProbeTimeout})

    summary = run_sweep(block, _config(pool_size=4, queue_capacity=2), probe=probe)

    for offset in range(1, block.size):
        x, y = hilbert_coordinates(offset, block.size)
        expected = UNREACHABLE if offset == 5 else REACHABLE
        assert summary.canvas.get(x, y) == expected
    assert summary.outcomes[ProbeOutcome.NO_REPLY] == 1
    assert summary.reachable == 6


def test_silent_host_only_reports_after_retries_run_out(scripted_probe):
    block = Block.from_cidr("172.16.0.0/29")
    probe = scripted_probe({"172.16.0.3": ProbeTimeout})
    reported = []

    def on_result(result):
        if result.offset == 3:
            # by the time the aggregator sees it, every attempt has been spent
            reported.append((result.outcome, result.attempts, probe.count("172.16.0.3")))

    run_sweep(block, _config(retry=RetryPolicy(max_attempts=5, backoff=0)), probe=probe, on_result=on_result)

    assert reported == [(ProbeOutcome.NO_REPLY, 5, 5)]


def test_every_host_probed_exactly_once(scripted_probe):
    block = Block.from_cidr("10.0.0.0/22")
    probe = scripted_probe()

    summary = run_sweep(block, _config(pool_size=16, queue_capacity=3), probe=probe)

    assert len(probe.calls) == block.size - 1
    assert len(set(probe.calls)) == block.size - 1
    assert summary.total == block.size - 1
    assert "10.0.0.0" not in probe.calls


def test_fit_canvas_paints_every_host(scripted_probe):
    block = Block.from_cidr("10.0.0.0/24")
    summary = run_sweep(block, _config(fit_canvas=True), probe=scripted_probe())
    assert summary.canvas.side == 16
    assert summary.clipped == 0
    assert summary.canvas.count(REACHABLE) == block.size - 1


def test_fixed_canvas_clips_large_blocks(scripted_probe):
    block = Block.from_cidr("10.0.0.0/20")
    summary = run_sweep(block, _config(pool_size=8), probe=scripted_probe())
    assert summary.canvas.side == 40
    assert summary.clipped > 0
    assert summary.total == block.size - 1


def test_single_address_block_finishes_without_probing(scripted_probe):
    probe = scripted_probe()
    summary = run_sweep(Block.from_cidr("8.8.8.8/32"), _config(), probe=probe)
    assert probe.calls == []
    assert summary.total == 0


def test_sweeps_leave_no_workers_behind(scripted_probe):
    before = {t.name for t in threading.enumerate()}
    run_sweep(Block.from_cidr("10.0.0.0/28"), _config(pool_size=5), probe=scripted_probe())
    after = {t.name for t in threading.enumerate()}
    assert not {n for n in after - before if n.startswith(("probe-worker", "task-producer"))}


def test_config_validation():
    with pytest.raises(ValueError):
        SweepConfig(pool_size=0)
    with pytest.raises(ValueError):
        SweepConfig(queue_capacity=0)
    with pytest.raises(ValueError):
        SweepConfig(probe_timeout=0)


def _sweep_threads():
    return [t for t in threading.enumerate() if t.name.startswith(("probe-worker", "task-producer"))]


def test_failing_callback_stops_every_thread(scripted_probe):
    block = Block.from_cidr("10.0.0.0/26")

    def explode(result):
        raise RuntimeError("progress display broke")

    with pytest.raises(RuntimeError, match="progress display broke"):
        run_sweep(block, _config(pool_size=4, queue_capacity=2), probe=scripted_probe(), on_result=explode)

    assert _sweep_threads() == []


def test_rejected_result_stops_every_thread(scripted_probe, monkeypatch):
    class RejectingAggregator(engine.Aggregator):
        def add(self, result):
            if self.completed == 5:
                raise SweepStateError("rejected")
            return super().add(result)

    monkeypatch.setattr(engine, "Aggregator", RejectingAggregator)

    with pytest.raises(SweepStateError):
        run_sweep(Block.from_cidr("10.0.0.0/24"), _config(pool_size=3, queue_capacity=1), probe=scripted_probe())

    assert _sweep_threads() == []


def test_results_left_after_completion_are_an_error(scripted_probe, monkeypatch):
    real_aggregator = engine.Aggregator

    def short_aggregator(block, canvas):
        return real_aggregator(block, canvas, expected=block.host_count - 1)

    monkeypatch.setattr(engine, "Aggregator", short_aggregator)

    with pytest.raises(SweepStateError, match="after the sweep"):
        run_sweep(Block.from_cidr("10.0.0.0/29"), _config(pool_size=2), probe=scripted_probe())

    assert _sweep_threads() == []
