from __future__ import annotations

import threading
from typing import Any

import pytest
from release_orchestrator.core import ConfigurationError
from release_orchestrator.pipeline import (
    FunctionStage,
    PipelineGraph,
    RunContext,
    SingleStageGroup,
)


def _group(gid: str, *needs: str, fn=None, calls: list[str] | None = None) -> SingleStageGroup:
    def _run(ctx: RunContext) -> dict[str, Any]:
        if calls is not None:
            calls.append(gid)
        return fn(ctx) if fn else {}

    return SingleStageGroup(group_id=gid, stage=FunctionStage(gid, _run), needs=needs)


def test_order_respects_needs() -> None:
    g = PipelineGraph([_group("crates", "publish"), _group("publish", "release"), _group("release")])
    assert g.order() == ["release", "publish", "crates"]
    assert g.needs("publish") == ("release",)


@pytest.mark.parametrize(
    "groups, match",
    [
        ([_group("a"), _group("a")], "Duplicate"),
        ([_group("a", "ghost")], "undeclared"),
        ([_group("a", "a")], "needs itself"),
        ([_group("a", "b"), _group("b", "a")], "cycle"),
    ],
)
def test_invalid_graphs_are_rejected_before_running(groups, match: str) -> None:
    with pytest.raises(ConfigurationError, match=match):
        PipelineGraph(groups)


def test_failure_skips_every_downstream_group(run_ctx: RunContext) -> None:
    calls: list[str] = []

    def boom(ctx: RunContext) -> dict[str, Any]:
        raise RuntimeError("release API down")

    g = PipelineGraph(
        [
            _group("release", fn=boom, calls=calls),
            _group("publish", "release", calls=calls),
            _group("crates", "publish", calls=calls),
        ]
    )
    res = g.run(run_ctx)

    assert res.status == "failed"
    assert calls == ["release"]
    assert [r.status for r in res.groups] == ["failed", "skipped", "skipped"]
    assert "publish" in (res.group("crates").reason or "")

    failures = res.failures()
    assert failures[0]["group"] == "release"
    assert failures[0]["stage"] == "release"
    assert "release API down" in failures[0]["error"]
    assert {f["group"] for f in failures} == {"release", "publish", "crates"}


def test_independent_groups_run_concurrently(run_ctx: RunContext) -> None:
    barrier = threading.Barrier(2, timeout=5)

    def meet(ctx: RunContext) -> dict[str, Any]:
        barrier.wait()
        return {"met": True}

    g = PipelineGraph([_group("left", fn=meet), _group("right", fn=meet), _group("join", "left", "right")])
    res = g.run(run_ctx)

    assert res.status == "success"
    assert all(r.status == "success" for r in res.groups)


def test_cancel_before_run_abandons_all_groups(run_ctx: RunContext) -> None:
    calls: list[str] = []
    run_ctx.cancel.set()

    g = PipelineGraph([_group("release", calls=calls), _group("publish", "release", calls=calls)])
    res = g.run(run_ctx)

    assert calls == []
    assert res.status == "cancelled"
    assert res.group("release").status == "cancelled"
    # downstream of a non-successful group is skipped
    assert res.group("publish").status == "skipped"


def test_group_events_are_recorded(run_ctx: RunContext) -> None:
    PipelineGraph([_group("release")]).run(run_ctx)

    types = [e["type"] for e in run_ctx.events.read()]
    assert "group.start" in types
    assert "stage.success" in types
    assert types.index("group.start") < types.index("group.finish")
