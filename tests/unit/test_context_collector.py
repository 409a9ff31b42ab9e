from __future__ import annotations

from pipeheal.context.collector import FailureContextCollector
from pipeheal.telemetry.diagnostics import FAILURE_CONTEXT_FILE, DiagnosticsStore


def test_collects_commits_status_and_log_tail(tmp_path, fake_vcs) -> None:
    log = tmp_path / "build.log"
    log.write_text("\n".join(f"line {i}" for i in range(1, 501)) + "\n", encoding="utf-8")

    ctx = FailureContextCollector(vcs=fake_vcs, build_log_path=str(log), tail_lines=200).collect(
        stage_name="Maven Build", message="compilation failed"
    )
    assert ctx.degraded == ()
    assert ctx.recent_commits[0].sha == "abc1234"
    assert ctx.working_tree_status == " M src/main/java/Foo.java"
    lines = ctx.build_log_tail.split("\n")
    assert len(lines) == 200
    assert lines[0] == "line 301" and lines[-1] == "line 500"


def test_short_log_is_returned_whole(tmp_path, fake_vcs) -> None:
    log = tmp_path / "build.log"
    log.write_text("[ERROR] cannot find symbol\n", encoding="utf-8")
    ctx = FailureContextCollector(vcs=fake_vcs, build_log_path=str(log)).collect(stage_name="Maven Build", message="")
    assert ctx.build_log_tail == "[ERROR] cannot find symbol"


def test_missing_log_degrades_without_raising(tmp_path, fake_vcs) -> None:
    ctx = FailureContextCollector(vcs=fake_vcs, build_log_path=str(tmp_path / "nope.log")).collect(
        stage_name="Docker Build", message="exit 1"
    )
    assert ctx.build_log_tail == ""
    assert len(ctx.degraded) == 1
    assert ctx.degraded[0].startswith("build_log_tail")
    assert "Build log (tail):\n(empty)" in ctx.render()


def test_vcs_query_failures_degrade(tmp_path, vcs_factory) -> None:
    vcs = vcs_factory(fail={"recent_commits", "status"})
    log = tmp_path / "build.log"
    log.write_text("x\n", encoding="utf-8")
    ctx = FailureContextCollector(vcs=vcs, build_log_path=str(log)).collect(stage_name="Deploy", message="m")
    assert ctx.recent_commits == ()
    assert ctx.working_tree_status == ""
    assert [d.split(":")[0] for d in ctx.degraded] == ["recent_commits", "working_tree_status"]


def test_context_is_written_to_diagnostics(tmp_path, fake_vcs) -> None:
    store = DiagnosticsStore(str(tmp_path / "ai"))
    ctx = FailureContextCollector(
        vcs=fake_vcs, build_log_path=str(tmp_path / "missing.log"), diagnostics=store
    ).collect(stage_name="Maven Build", message="boom")
    written = (tmp_path / "ai" / FAILURE_CONTEXT_FILE).read_text(encoding="utf-8")
    assert written == ctx.render() + "\n"
    assert "Stage: Maven Build" in written
    assert "Error: boom" in written
