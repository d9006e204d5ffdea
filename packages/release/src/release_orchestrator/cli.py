from __future__ import annotations

import argparse
import os
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from release_orchestrator.core import (
    ConfigurationError,
    ILogger,
    OrchestratorError,
    RunLayout,
    Settings,
    TriggerError,
    bind,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
)
from release_orchestrator.definition import PUBLISH_GROUP, PipelineDefinition, build_graph
from release_orchestrator.pipeline import (
    ArtifactStore,
    MatrixStageGroup,
    PipelineGraph,
    PipelineRunner,
    RunResult,
)
from release_orchestrator.remote import (
    GitHubReleaseService,
    RetryingReleaseService,
    make_timeout,
)
from release_orchestrator.stages import CELL_STAGES
from release_orchestrator.steps import cell_asset_name
from release_orchestrator.trigger import TagPush

console = Console()

_STATUS_STYLE = {
    "success": "[green]success[/green]",
    "failed": "[red]failed[/red]",
    "skipped": "[yellow]skipped[/yellow]",
    "cancelled": "[magenta]cancelled[/magenta]",
}


@dataclass(frozen=True, slots=True)
class _CommonArgs:
    cmd: str
    ref: str | None
    tag: str | None
    source_dir: Path
    definition: Path | None
    os: list[str] | None
    engines: list[str] | None
    no_engines: bool
    no_crates: bool
    repository: str | None


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--ref", default=None, help="Pushed ref, e.g. refs/tags/v1.2.3")
    p.add_argument(
        "--tag",
        default=None,
        help="Version tag, e.g. v1.2.3. If neither --ref nor --tag is given, GITHUB_REF is used.",
    )
    p.add_argument(
        "--source-dir", default=".", help="Checked-out source tree (default: current directory)"
    )
    p.add_argument(
        "--definition",
        default=None,
        help="JSON pipeline definition. If omitted, the built-in canonical definition is used.",
    )
    p.add_argument(
        "--os",
        action="append",
        dest="os",
        help="Restrict the matrix to this os (repeatable): linux, macos, windows or a runner image name.",
    )
    p.add_argument(
        "--engine",
        action="append",
        dest="engines",
        help="Restrict the matrix to this engine (repeatable).",
    )
    p.add_argument(
        "--no-engines", action="store_true", help="Build without an engine dimension."
    )
    p.add_argument(
        "--no-crates", action="store_true", help="Skip the crate registry publish stage."
    )
    p.add_argument(
        "--repository", default=None, help="owner/name of the hosting repository"
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="release-orchestrator")
    sub = p.add_subparsers(dest="cmd", required=True)

    commands: dict[str, str] = {
        "run": "Create the release, build and upload every matrix cell, publish the crate",
        "plan": "Print the stage graph and expanded matrix without running anything",
    }

    for cmd, help_text in commands.items():
        sp = sub.add_parser(cmd, help=help_text)
        _add_common_args(sp)

    return p


def _common(args: argparse.Namespace) -> _CommonArgs:
    return _CommonArgs(
        cmd=str(args.cmd),
        ref=args.ref,
        tag=args.tag,
        source_dir=Path(args.source_dir),
        definition=Path(args.definition) if args.definition else None,
        os=list(args.os) if args.os else None,
        engines=list(args.engines) if args.engines else None,
        no_engines=bool(args.no_engines),
        no_crates=bool(args.no_crates),
        repository=args.repository,
    )


def _resolve_trigger(common: _CommonArgs, pattern: str) -> TagPush:
    if common.ref:
        return TagPush.from_ref(common.ref, pattern=pattern)
    if common.tag:
        return TagPush.from_ref(common.tag, pattern=pattern)
    return TagPush.from_env(pattern=pattern)


def _load_definition(common: _CommonArgs) -> PipelineDefinition:
    base = (
        PipelineDefinition.load(common.definition)
        if common.definition
        else PipelineDefinition()
    )
    return base.with_overrides(
        os=common.os,
        engines=[] if common.no_engines else common.engines,
        publish_crate=False if common.no_crates else None,
    )


class _PlanOnlyService:
    """Stands in for the hosting platform when nothing will be executed."""

    def _refuse(self, *args: object, **kwargs: object) -> NoReturn:
        raise OrchestratorError("plan does not talk to the hosting platform")

    create_release = publish_artifact = fetch_artifact = upload_asset = _refuse


def _print_plan(graph: PipelineGraph, definition: PipelineDefinition, tag: str) -> None:
    tbl = Table(title="Stage groups", show_header=True)
    tbl.add_column("group")
    tbl.add_column("needs")
    tbl.add_column("stages")
    for gid in graph.order():
        group = graph.groups[gid]
        if isinstance(group, MatrixStageGroup):
            detail = f"{len(group.cells)} cells x ({' -> '.join(CELL_STAGES)})"
        else:
            detail = getattr(group, "stage").stage_id
        tbl.add_row(gid, ", ".join(graph.needs(gid)) or "-", detail)
    console.print(tbl)

    publish = graph.groups.get(PUBLISH_GROUP)
    if not isinstance(publish, MatrixStageGroup):
        return

    cells = Table(title="Matrix", show_header=True)
    cells.add_column("cell")
    cells.add_column("asset")
    for cell in publish.cells:
        cells.add_row(
            cell.cell_id,
            cell_asset_name(
                prefix=definition.asset_prefix, version=tag, cell=cell, arch=definition.arch
            ),
        )
    console.print(cells)


def _print_result(result: RunResult, report_path: Path) -> None:
    tbl = Table(title="Result", show_header=True)
    tbl.add_column("group")
    tbl.add_column("cell")
    tbl.add_column("status")
    tbl.add_column("failed stage / reason")
    for g in result.groups:
        if g.cells:
            for c in g.cells:
                tbl.add_row(g.group_id, c.cell_id, _STATUS_STYLE[c.status], c.failed_stage or "")
        else:
            failing = next((s for s in g.stages if s.status == "failed"), None)
            detail = failing.stage if failing else (g.reason or "")
            tbl.add_row(g.group_id, "-", _STATUS_STYLE[g.status], escape(detail))
    console.print(tbl)

    assets = result.assets()
    if assets:
        console.print(f"uploaded assets ({len(assets)}):")
        for a in assets:
            console.print(f"  {a.asset_name}")
    console.print(f"overall: {_STATUS_STYLE[result.status]}")
    console.print(f"report: {report_path}")


def _make_github(s: Settings, common: _CommonArgs, artifacts: ArtifactStore) -> GitHubReleaseService:
    repository = common.repository or s.repository or os.environ.get("GITHUB_REPOSITORY")
    if not repository:
        raise ConfigurationError(
            "No repository configured: pass --repository or set RELEASE_ORCHESTRATOR_REPOSITORY"
        )
    return GitHubReleaseService(
        repository=repository,
        artifacts=artifacts,
        token=s.token or os.environ.get("GITHUB_TOKEN"),
        api_url=s.api_url,
        timeout=make_timeout(connect=s.http_connect_timeout, read=s.http_read_timeout),
    )


def _plan(common: _CommonArgs, s: Settings, definition: PipelineDefinition, tag: str) -> int:
    graph = build_graph(
        definition,
        tag=tag,
        source_dir=common.source_dir,
        service=_PlanOnlyService(),
        settings=s,
    )
    _print_plan(graph, definition, tag)
    return 0


def _run(
    common: _CommonArgs,
    s: Settings,
    definition: PipelineDefinition,
    trigger: TagPush,
    run_id: str,
    log: ILogger,
) -> int:
    layout = RunLayout(run_root=Path(s.run_root), work_root=Path(s.work_root), run_id=run_id)
    artifacts = ArtifactStore(root=layout.artifacts_dir())

    with _make_github(s, common, artifacts) as github:
        service = RetryingReleaseService(
            github,
            max_attempts=s.max_attempts,
            backoff_base=s.backoff_base,
            backoff_cap=s.backoff_cap,
        )
        graph = build_graph(
            definition,
            tag=trigger.tag,
            source_dir=common.source_dir,
            service=service,
            settings=s,
        )
        runner = PipelineRunner(graph=graph, logger=log)

        def _on_signal(signum: int, frame: object) -> None:
            runner.cancel()

        previous = {sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            outcome = runner.run(
                run_root=Path(s.run_root),
                work_root=Path(s.work_root),
                run_id=run_id,
                artifacts=artifacts,
                meta={
                    "tag": trigger.tag,
                    "ref": trigger.ref,
                    "repository": github.repository,
                    "source_dir": str(common.source_dir),
                },
            )
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    _print_result(outcome.result, outcome.report_path)
    return int(outcome.exit_code)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    common = _common(args)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)
    log = get_logger("release_orchestrator")

    run_id = new_run_id()

    try:
        definition = _load_definition(common)
        trigger = _resolve_trigger(common, definition.tag_pattern)
        bind(run_id=run_id, command=common.cmd, tag=trigger.tag)

        console.print(
            Panel.fit(
                Text(
                    f"release-orchestrator - {common.cmd}\nrun_id={run_id}\ntag={trigger.tag}",
                    style="bold",
                ),
                title="Run",
            )
        )

        if common.cmd == "plan":
            return _plan(common, s, definition, trigger.tag)
        return _run(common, s, definition, trigger, run_id, log)
    except (ConfigurationError, TriggerError, ValueError) as e:
        log.error("Invalid invocation", error=str(e))
        console.print(f"[red]error:[/red] {escape(str(e))}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
