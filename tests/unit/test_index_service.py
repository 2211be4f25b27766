from __future__ import annotations

import pytest

from dynscope.errors import (
    AlreadyUpdating,
    DynscopeError,
    NoFilesFound,
    NotInitialized,
    OutsideRoot,
    SubprocessFailed,
)
from dynscope.queries import QueryKind
from dynscope.services.index_service import Operation
from dynscope.state import Partition
from dynscope.text import Messages
from dynscope.utils import read_lines


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def _built(make_manager, project, **overrides):
    manager = make_manager(project, **overrides)
    result = manager.build().result(timeout=10)
    assert result.success, result.message
    return manager


def _result_keys(response):
    return {(r.display_path, r.line_number, r.matched_text) for r in response.results}


def test_build_fails_on_empty_project(make_manager, project, fake_indexer):
    manager = make_manager(project)

    result = manager.build().result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, NoFilesFound)
    assert manager.state.initialized is False
    assert manager.state.updating is False
    assert fake_indexer.builds == []


def test_build_then_query_single_file(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo(void)\n{\n    return 0;\n}\n")
    manager = make_manager(project)

    result = manager.build().result(timeout=10)

    assert result.success is True
    assert result.operation is Operation.BUILD
    assert result.files == 1
    assert manager.state.initialized is True
    assert manager.state.last_big_rebuild > 0
    assert read_lines(manager.paths.big_files) == ["a.c"]

    response = manager.query(QueryKind.SYMBOL, "foo")

    assert len(response.results) == 1
    hit = response.results[0]
    assert hit.display_path == "a.c"
    assert hit.absolute_path == f"{manager.root.as_posix()}/a.c"
    assert hit.line_number == 1
    assert hit.partition is Partition.BIG
    assert response.failures == {}


def test_build_invokes_indexer_with_file_list(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)

    build = fake_indexer.builds[0]
    assert build == [
        "cscope",
        "-b",
        "-i",
        str(manager.paths.staging_list()),
        "-f",
        str(manager.paths.big),
        "-q",
        "-k",
    ]
    assert not manager.paths.staging_list().exists()
    assert read_lines(manager.paths.big_files) == ["a.c"]


def test_build_skips_excluded_dirs_and_unmatched_files(make_manager, project):
    _write(project / "src" / "main.c", "int main;\n")
    _write(project / "include" / "api.h", "int api;\n")
    _write(project / "build" / "gen.c", "int gen;\n")
    _write(project / "README.md", "docs\n")
    manager = _built(make_manager, project)

    assert read_lines(manager.paths.big_files) == ["include/api.h", "src/main.c"]


def test_build_failure_leaves_state_uninitialized(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    fake_indexer.fail_builds.add(".cscope.big")
    manager = make_manager(project)

    result = manager.build().result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, SubprocessFailed)
    assert "cannot build" in result.message
    assert manager.state.initialized is False
    assert not manager.paths.big_files.exists()
    assert not manager.paths.staging_list().exists()


def test_failed_build_of_initialized_project_keeps_partitions_disjoint(
    make_manager, project, fake_indexer
):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)
    manager.paths.big.unlink()
    fake_indexer.fail_builds.add(".cscope.big")

    result = manager.initialize().result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, SubprocessFailed)
    assert manager.state.initialized is False
    small = manager.state.small_partition_files
    big = set(read_lines(manager.paths.big_files) or [])
    assert small == {"a.c"}
    assert big == {"b.c"}
    assert not (small & big)
    assert not manager.paths.staging_list().exists()

    fake_indexer.fail_builds.clear()
    assert manager.initialize().result(timeout=10).success is True
    assert manager.state.small_partition_files == set()
    assert read_lines(manager.paths.big_files) == ["a.c", "b.c"]


def test_query_before_build_raises_without_subprocess(make_manager, project, fake_indexer):
    manager = make_manager(project)

    with pytest.raises(NotInitialized):
        manager.query("symbol", "foo")

    assert fake_indexer.calls == []


def test_query_rejects_empty_term(make_manager, project):
    _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)

    with pytest.raises(ValueError, match="must not be empty"):
        manager.query("symbol", "   ")


def test_query_uses_line_oriented_interface(make_manager, project, fake_indexer):
    _write(project / "a.c", "int main;\n")
    manager = _built(make_manager, project)

    manager.query("g", "main")

    assert fake_indexer.queries == [
        ["cscope", "-d", "-f", str(manager.paths.big), "-L", "-1", "main"]
    ]


def test_update_moves_file_to_small_partition(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo(void);\n")
    _write(project / "b.c", "int other;\n")
    manager = _built(make_manager, project)

    source.write_text("int foo(void);\nint bar(void);\n", encoding="utf-8")
    result = manager.update_file(source).result(timeout=10)

    assert result.success is True
    assert manager.state.small_partition_files == {"a.c"}
    assert read_lines(manager.paths.big_files) == ["b.c"]
    assert read_lines(manager.paths.small_files) == ["a.c"]
    assert fake_indexer.builds[-1][:6] == [
        "cscope",
        "-b",
        "-i",
        str(manager.paths.small_files),
        "-f",
        str(manager.paths.small),
    ]

    response = manager.query("symbol", "bar")
    assert [(r.display_path, r.line_number, r.partition) for r in response.results] == [
        ("a.c", 2, Partition.SMALL)
    ]


def test_query_deduplicates_across_partitions(make_manager, project):
    source = _write(project / "a.c", "int foo(void);\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)

    response = manager.query("symbol", "foo")

    assert len(response.results) == 1
    assert response.results[0].partition is Partition.BIG


def test_update_is_idempotent(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    manager = _built(make_manager, project)

    manager.update_file(source).result(timeout=10)
    first = set(manager.state.small_partition_files)
    manager.update_file(source).result(timeout=10)

    assert manager.state.small_partition_files == first == {"a.c"}
    assert read_lines(manager.paths.big_files) == ["b.c"]
    small_builds = [call for call in fake_indexer.builds if str(manager.paths.small) in call]
    assert len(small_builds) == 2


def test_update_keeps_partitions_disjoint(make_manager, project):
    files = [_write(project / name, f"int {name[0]};\n") for name in ("a.c", "b.c", "c.h")]
    manager = _built(make_manager, project)

    for source in (files[2], files[0], files[2]):
        assert manager.update_file(source).result(timeout=10).success

    big = set(read_lines(manager.paths.big_files) or [])
    assert manager.state.small_partition_files == {"a.c", "c.h"}
    assert big == {"b.c"}
    assert big.isdisjoint(manager.state.small_partition_files)
    assert read_lines(manager.paths.small_files) == ["a.c", "c.h"]


def test_update_accepts_relative_path(make_manager, project):
    _write(project / "src" / "a.c", "int foo;\n")
    manager = _built(make_manager, project)

    result = manager.update_file("src/a.c").result(timeout=10)

    assert result.success is True
    assert manager.state.small_partition_files == {"src/a.c"}


def test_update_outside_root_fails(make_manager, project, tmp_path):
    _write(project / "a.c", "int foo;\n")
    outside = _write(tmp_path / "elsewhere" / "x.c", "int x;\n")
    manager = _built(make_manager, project)

    result = manager.update_file(outside).result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, OutsideRoot)
    assert manager.state.small_partition_files == set()


def test_update_skips_files_not_matching_patterns(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    notes = _write(project / "notes.txt", "foo\n")
    manager = _built(make_manager, project)
    builds_before = len(fake_indexer.builds)

    result = manager.update_file(notes).result(timeout=10)

    assert result.success is True
    assert result.message == Messages.INFO_UPDATE_SKIPPED.format(path="notes.txt")
    assert len(fake_indexer.builds) == builds_before
    assert manager.state.small_partition_files == set()


def test_update_before_build_reports_not_initialized(make_manager, project):
    source = _write(project / "a.c", "int foo;\n")
    manager = make_manager(project)

    result = manager.update_file(source).result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, NotInitialized)


def test_merge_with_empty_small_set_is_a_noop(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)
    calls_before = list(fake_indexer.calls)
    last_rebuild = manager.state.last_big_rebuild

    result = manager.merge_back().result(timeout=10)

    assert result.success is True
    assert result.message == Messages.INFO_MERGE_NOTHING
    assert fake_indexer.calls == calls_before
    assert manager.state.last_big_rebuild == last_rebuild
    assert manager.state.initialized is True


def test_merge_round_trip_preserves_visible_results(make_manager, project):
    now = [1000.0]
    source = _write(project / "a.c", "int foo(void);\n")
    _write(project / "b.c", "int foo_count;\n")
    manager = _built(make_manager, project, clock=lambda: now[0])
    source.write_text("int foo(void);\nint foo_bar(void);\n", encoding="utf-8")
    manager.update_file(source).result(timeout=10)
    before = _result_keys(manager.query("symbol", "foo"))

    now[0] = 2000.0
    result = manager.merge_back().result(timeout=10)

    assert result.success is True
    assert result.files == 1
    assert _result_keys(manager.query("symbol", "foo")) == before
    assert manager.state.small_partition_files == set()
    assert manager.state.last_big_rebuild == 2000.0
    assert sorted(read_lines(manager.paths.big_files) or []) == ["a.c", "b.c"]
    for artifact in manager.paths.small_artifacts():
        assert not artifact.exists()
    assert not manager.paths.staging_list().exists()


def test_merge_failure_keeps_small_tracking(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)
    fake_indexer.fail_builds.add(".cscope.big")

    result = manager.merge_back().result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, SubprocessFailed)
    assert manager.state.small_partition_files == {"a.c"}
    assert read_lines(manager.paths.big_files) == ["b.c"]
    assert read_lines(manager.paths.small_files) == ["a.c"]
    assert manager.paths.small.exists()
    assert not manager.paths.staging_list().exists()

    fake_indexer.fail_builds.clear()
    assert manager.merge_back().result(timeout=10).success is True
    assert manager.state.small_partition_files == set()


def test_maybe_merge_back_respects_interval(make_manager, project, fake_indexer):
    now = [1000.0]
    source = _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project, clock=lambda: now[0], big_update_interval=60)
    manager.update_file(source).result(timeout=10)
    builds_before = len(fake_indexer.builds)

    now[0] = 1030.0
    skipped = manager.maybe_merge_back().result(timeout=10)

    assert skipped.success is True
    assert skipped.message == Messages.INFO_MERGE_NOT_DUE.format(ago=30, interval=60)
    assert len(fake_indexer.builds) == builds_before
    assert manager.state.small_partition_files == {"a.c"}

    now[0] = 1100.0
    merged = manager.maybe_merge_back().result(timeout=10)

    assert merged.success is True
    assert manager.state.small_partition_files == set()
    assert len(fake_indexer.builds) == builds_before + 1


def test_mutating_requests_rejected_while_updating(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    manager = make_manager(project)
    fake_indexer.release.clear()

    pending = manager.build()
    assert fake_indexer.build_started.wait(timeout=10)
    assert manager.state.updating is True

    merge = manager.merge_back().result(timeout=10)
    rebuild = manager.rebuild_full().result(timeout=10)
    second_build = manager.build().result(timeout=10)

    for rejected in (merge, rebuild, second_build):
        assert rejected.success is False
        assert isinstance(rejected.error, AlreadyUpdating)

    fake_indexer.release.set()
    assert pending.result(timeout=10).success is True
    assert manager.state.updating is False


def test_update_requests_queue_behind_running_build(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    manager = make_manager(project)
    fake_indexer.release.clear()

    build = manager.build()
    assert fake_indexer.build_started.wait(timeout=10)
    update = manager.update_file(source)
    assert not update.done()

    fake_indexer.release.set()

    assert build.result(timeout=10).success is True
    assert update.result(timeout=10).success is True
    assert manager.state.small_partition_files == {"a.c"}
    assert manager.state.updating is False


def test_cancelled_request_releases_updating_flag(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)
    fake_indexer.release.clear()
    fake_indexer.build_started.clear()

    running = manager.update_file(source)
    assert fake_indexer.build_started.wait(timeout=10)
    queued = manager.update_file(source)
    assert queued.cancel() is True

    fake_indexer.release.set()
    assert running.result(timeout=10).success is True
    assert manager.state.updating is False


def test_query_reports_failed_partition(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int foo_b;\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)
    fake_indexer.fail_queries.add(".cscope.small")

    response = manager.query("symbol", "foo")

    assert response.partial is True
    assert set(response.failures) == {Partition.SMALL}
    assert "corrupt" in response.failures[Partition.SMALL]
    assert [r.display_path for r in response.results] == ["a.c", "b.c"]
    assert {r.partition for r in response.results} == {Partition.BIG}


def test_query_timeout_contributes_no_lines(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project, query_timeout=0.5)
    fake_indexer.timeout_queries.add(".cscope.big")

    response = manager.query("symbol", "foo")

    assert response.results == []
    assert Partition.BIG in response.failures


def test_query_drops_malformed_lines(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)
    fake_indexer.extra_query_lines[".cscope.big"] = ["garbage", "b.c:7 int foo_too;"]

    response = manager.query("symbol", "foo")

    assert [(r.display_path, r.line_number) for r in response.results] == [
        ("a.c", 1),
        ("b.c", 7),
    ]


def test_rebuild_full_starts_over(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)

    result = manager.rebuild_full().result(timeout=10)

    assert result.success is True
    assert result.operation is Operation.REBUILD
    assert result.message == Messages.INFO_DB_REBUILT.format(count=2)
    assert manager.state.small_partition_files == set()
    assert read_lines(manager.paths.big_files) == ["a.c", "b.c"]
    assert not manager.paths.small.exists()
    assert not manager.paths.small_files.exists()


def test_initialize_restores_small_set_from_disk(make_manager, project, fake_indexer):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    first = _built(make_manager, project)
    first.update_file(source).result(timeout=10)
    first.close()
    builds_before = len(fake_indexer.builds)

    second = make_manager(project)
    result = second.initialize().result(timeout=10)

    assert result.success is True
    assert result.operation is Operation.LOAD
    assert second.state.initialized is True
    assert second.state.small_partition_files == {"a.c"}
    assert len(fake_indexer.builds) == builds_before


def test_initialize_drops_small_entries_also_in_big_list(make_manager, project):
    _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    first = _built(make_manager, project)
    first.paths.small_files.write_text("a.c\nnew.c\n", encoding="utf-8")

    second = make_manager(project)
    second.initialize().result(timeout=10)

    assert second.state.small_partition_files == {"new.c"}
    assert read_lines(second.paths.small_files) == ["new.c"]


def test_initialize_builds_when_database_missing(make_manager, project, fake_indexer):
    _write(project / "a.c", "int foo;\n")
    manager = make_manager(project)

    result = manager.initialize().result(timeout=10)

    assert result.operation is Operation.BUILD
    assert result.success is True
    assert len(fake_indexer.builds) == 1


def test_remove_deletes_files_and_resets_state(make_manager, project):
    source = _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)

    result = manager.remove().result(timeout=10)

    assert result.success is True
    assert manager.state.initialized is False
    assert manager.state.small_partition_files == set()
    for path in (
        manager.paths.big,
        manager.paths.big_files,
        manager.paths.small,
        manager.paths.small_files,
    ):
        assert not path.exists()
    with pytest.raises(NotInitialized):
        manager.query("symbol", "foo")


def test_reset_only_clears_memory(make_manager, project):
    _write(project / "a.c", "int foo;\n")
    manager = _built(make_manager, project)

    manager.reset()

    assert manager.state.initialized is False
    assert manager.paths.big.exists()


def test_status_snapshot(make_manager, project):
    source = _write(project / "a.c", "int foo;\n")
    _write(project / "b.c", "int bar;\n")
    manager = _built(make_manager, project)
    manager.update_file(source).result(timeout=10)

    snapshot = manager.status()

    assert snapshot.initialized is True
    assert snapshot.updating is False
    assert snapshot.project_root == manager.root
    assert snapshot.big_partition_exists is True
    assert snapshot.small_partition_exists is True
    assert snapshot.big_files_count == 1
    assert snapshot.small_files_count == 1


def test_unavailable_finder_fails_build(make_manager, project, monkeypatch):
    _write(project / "a.c", "int foo;\n")
    monkeypatch.setattr("dynscope.services.discovery_service.shutil.which", lambda name: None)
    manager = make_manager(project, file_finder="fd")

    result = manager.build().result(timeout=10)

    assert result.success is False
    assert isinstance(result.error, DynscopeError)
    assert "fd" in result.message
    assert manager.state.initialized is False


def _linked_project(project, tmp_path):
    _write(project / "real.c", "int real;\n")
    (project / "link.c").symlink_to(project / "real.c")
    outside = _write(tmp_path / "vendor" / "ext.c", "int ext;\n")
    (project / "ext.c").symlink_to(outside)
    return outside.resolve().as_posix()


def test_build_canonicalizes_links_when_configured(make_manager, project, tmp_path):
    outside = _linked_project(project, tmp_path)

    manager = _built(make_manager, project)

    assert read_lines(manager.paths.big_files) == [outside, "real.c"]


def test_build_keeps_link_names_without_resolve_links(make_manager, project, tmp_path):
    _linked_project(project, tmp_path)

    manager = _built(make_manager, project, resolve_links=False)

    assert read_lines(manager.paths.big_files) == ["ext.c", "link.c", "real.c"]


def test_update_through_link_tracks_canonical_path(make_manager, project, tmp_path):
    outside = _linked_project(project, tmp_path)
    manager = _built(make_manager, project)

    manager.update_file(project / "link.c").result(timeout=10)
    manager.update_file(project / "ext.c").result(timeout=10)

    assert manager.state.small_partition_files == {"real.c", outside}
    assert read_lines(manager.paths.big_files) == []
    assert sorted(read_lines(manager.paths.small_files)) == sorted([outside, "real.c"])


def test_update_through_link_without_resolve_links(make_manager, project, tmp_path):
    _linked_project(project, tmp_path)
    manager = _built(make_manager, project, resolve_links=False)

    manager.update_file(project / "link.c").result(timeout=10)
    manager.update_file(project / "ext.c").result(timeout=10)

    assert manager.state.small_partition_files == {"link.c", "ext.c"}
    assert read_lines(manager.paths.big_files) == ["real.c"]


def test_update_removes_raw_and_canonical_forms(make_manager, project, tmp_path):
    outside = _linked_project(project, tmp_path)
    raw_built = _built(make_manager, project, resolve_links=False)
    assert read_lines(raw_built.paths.big_files) == ["ext.c", "link.c", "real.c"]
    raw_built.close()

    manager = make_manager(project)
    assert manager.initialize().result(timeout=10).success is True

    manager.update_file(project / "link.c").result(timeout=10)
    manager.update_file(project / "ext.c").result(timeout=10)

    assert manager.state.small_partition_files == {"real.c", outside}
    assert read_lines(manager.paths.big_files) == []
