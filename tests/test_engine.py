import logging

import pytest

from conftest import FlakyFileSystem, tree_listing, write
from replica_sync.engine import MirrorSync, SyncCounts, SyncOutcome, validate_roots
from replica_sync.errors import SetupError
from replica_sync.fs import IgnoreMatcher, LocalFileSystem
from replica_sync.remove import RemovalPolicy

T1 = 1_600_000_000.0


def make_engine(source, replica, logger, fs=None, **policy):
    return MirrorSync(
        source,
        replica,
        logger,
        policy=RemovalPolicy(**policy),
        fs=fs,
        sleep=lambda _: None,
    )


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------

def test_copies_file_and_empty_directory_into_empty_replica(roots, logger):
    source, replica = roots
    write(source / "A.txt", "x", mtime=T1)
    (source / "D").mkdir()

    outcome = make_engine(source, replica, logger).run()

    assert (replica / "A.txt").read_text() == "x"
    assert (replica / "D").is_dir()
    assert outcome.items_copied >= 2
    assert outcome.directories_copied == 1
    assert outcome.items_removed == 0
    assert outcome.failures == 0
    assert outcome.status == 0
    assert outcome.verification.ok


def test_removes_replica_only_file(roots, logger):
    source, replica = roots
    write(source / "A.txt", "a", mtime=T1)
    write(replica / "A.txt", "a", mtime=T1)
    write(replica / "B.txt", "b")

    outcome = make_engine(source, replica, logger).run()

    assert not (replica / "B.txt").exists()
    assert outcome.items_removed == 1
    assert outcome.items_copied == 0
    assert outcome.status == 0


def test_mirror_is_complete_for_nested_trees(roots, logger):
    source, replica = roots
    write(source / "top.txt", "top")
    write(source / "a" / "b" / "deep.bin", "0123456789")
    write(source / "a" / "side.txt", "side")
    (source / "a" / "empty" / "nested-empty").mkdir(parents=True)

    outcome = make_engine(source, replica, logger).run()

    assert tree_listing(replica) == tree_listing(source)
    for path in source.rglob("*"):
        if path.is_file():
            twin = replica / path.relative_to(source)
            assert twin.read_bytes() == path.read_bytes()
            assert twin.stat().st_size == path.stat().st_size
    assert outcome.status == 0
    assert outcome.verification.source == outcome.verification.replica


def test_second_run_is_a_no_op(roots, logger):
    source, replica = roots
    write(source / "a" / "one.txt", "1")
    write(source / "two.txt", "22")
    (source / "empty").mkdir()
    write(replica / "stale" / "old.txt", "old")

    first = make_engine(source, replica, logger).run()
    second = make_engine(source, replica, logger).run()

    assert first.items_removed == 2
    assert second.items_copied == 0
    assert second.items_removed == 0
    assert second.failures == 0
    assert second.status == 0


def test_only_older_replica_files_are_recopied(roots, logger):
    source, replica = roots
    write(source / "stale.txt", "new!", mtime=T1 + 100)
    write(replica / "stale.txt", "old!", mtime=T1)
    write(source / "tie.txt", "src!", mtime=T1)
    write(replica / "tie.txt", "rep!", mtime=T1)
    write(source / "ahead.txt", "src!", mtime=T1)
    write(replica / "ahead.txt", "rep!", mtime=T1 + 100)

    outcome = make_engine(source, replica, logger).run()

    assert (replica / "stale.txt").read_text() == "new!"
    assert (replica / "tie.txt").read_text() == "rep!"
    assert (replica / "ahead.txt").read_text() == "rep!"
    assert outcome.items_copied == 1
    assert outcome.status == 0


def test_mtime_tolerance_skips_small_drift(roots, logger):
    source, replica = roots
    write(source / "a.txt", "same", mtime=T1 + 1)
    write(replica / "a.txt", "same", mtime=T1)

    engine = MirrorSync(source, replica, logger, mtime_tolerance=2.0, sleep=lambda _: None)
    outcome = engine.run()

    assert outcome.items_copied == 0
    assert (replica / "a.txt").stat().st_mtime == T1


def test_replica_only_subtree_collapses_in_one_run(roots, logger):
    source, replica = roots
    write(source / "keep.txt", "k")
    write(replica / "A" / "B" / "C" / "leaf.txt", "leaf")
    write(replica / "A" / "mid.txt", "mid")

    outcome = make_engine(source, replica, logger).run()

    assert not (replica / "A").exists()
    # two files plus A, A/B and A/B/C
    assert outcome.items_removed == 5
    assert outcome.status == 0


def test_directory_with_source_counterpart_is_kept(roots, logger):
    source, replica = roots
    write(source / "keep" / "a.txt", "a")
    write(replica / "keep" / "extra" / "x.txt", "x")

    make_engine(source, replica, logger).run()

    assert (replica / "keep" / "a.txt").exists()
    assert not (replica / "keep" / "extra").exists()


def test_missing_replica_root_is_created(tmp_path, logger):
    source = tmp_path / "src"
    write(source / "a.txt", "a")
    replica = tmp_path / "not" / "yet" / "replica"

    outcome = make_engine(source, replica, logger).run()

    assert (replica / "a.txt").exists()
    assert outcome.status == 0


def test_type_change_replaces_replica_entry(roots, logger):
    source, replica = roots
    write(source / "was_dir", "now a file")
    write(source / "was_file" / "child.txt", "child")
    write(replica / "was_dir" / "old.txt", "old")
    write(replica / "was_file", "old file")

    outcome = make_engine(source, replica, logger).run()

    assert (replica / "was_dir").read_text() == "now a file"
    assert (replica / "was_file" / "child.txt").read_text() == "child"
    assert outcome.items_removed == 2
    assert outcome.status == 0


def test_excluded_entries_are_left_alone(roots, logger):
    source, replica = roots
    write(source / "a.txt", "a")
    write(source / "build" / "out.o", "obj")
    write(source / "debug.log", "log")
    write(replica / "keep-me.log", "replica log")

    engine = MirrorSync(
        source, replica, logger, ignore=IgnoreMatcher(["build/", "*.log"]), sleep=lambda _: None
    )
    outcome = engine.run()

    assert (replica / "a.txt").exists()
    assert not (replica / "build").exists()
    assert not (replica / "debug.log").exists()
    assert (replica / "keep-me.log").exists()
    assert outcome.status == 0


def test_directories_of_excluded_files_do_not_break_verification(roots, logger):
    source, replica = roots
    write(source / "a.txt", "a", mtime=T1)
    write(source / "logs" / "run.log", "log")
    write(replica / "a.txt", "a", mtime=T1)
    write(replica / "old" / "cache.log", "c")
    write(replica / "old" / "sub" / "x.log", "x")

    engine = MirrorSync(source, replica, logger, ignore=IgnoreMatcher(["*.log"]), sleep=lambda _: None)
    first = engine.run()
    second = engine.run()

    assert first.status == 0 and second.status == 0
    assert first.verification.ok and second.verification.ok
    assert (replica / "old" / "sub" / "x.log").exists()
    assert not (replica / "logs").exists()
    assert second.counts == SyncCounts()


def test_case_only_rename_is_not_copied_then_deleted(roots, logger, monkeypatch):
    source, replica = roots
    write(source / "A.txt", "a", mtime=T1)
    write(replica / "a.txt", "a", mtime=T1)
    monkeypatch.setattr(LocalFileSystem, "is_case_sensitive", lambda self, root: False)

    outcome = make_engine(source, replica, logger).run()

    assert (replica / "a.txt").read_text() == "a"
    assert outcome.counts == SyncCounts()
    assert outcome.status == 0


def test_case_sensitive_replica_treats_case_variants_as_distinct(roots, logger, monkeypatch):
    source, replica = roots
    write(source / "A.txt", "a", mtime=T1)
    write(replica / "a.txt", "a", mtime=T1)
    monkeypatch.setattr(LocalFileSystem, "is_case_sensitive", lambda self, root: True)

    outcome = make_engine(source, replica, logger).run()

    assert outcome.counts == SyncCounts(items_copied=1, items_removed=1)
    assert outcome.status == 0


# ---------------------------------------------------------------------------
# Dry run
# ---------------------------------------------------------------------------

def test_dry_run_keeps_extras_and_logs_intent(roots, logger, caplog):
    source, replica = roots
    write(source / "a.txt", "a")
    write(replica / "extra.txt", "e")
    write(replica / "X" / "Y" / "z.txt", "z")

    with caplog.at_level(logging.INFO):
        outcome = make_engine(source, replica, logger, dry_run=True).run()

    assert (replica / "a.txt").exists()
    assert (replica / "extra.txt").exists()
    assert (replica / "X" / "Y" / "z.txt").exists()
    assert outcome.items_removed == 0
    assert outcome.dry_run
    assert not outcome.verification.ok
    # the leftover extras make the trees differ, which is reported like any mismatch
    assert outcome.failures == 1
    assert outcome.status == 1
    verify_errors = [
        r for r in caplog.records if getattr(r, "action", None) == "VERIFY" and r.levelno == logging.ERROR
    ]
    assert len(verify_errors) == 1
    assert "dry_run=True" in verify_errors[0].getMessage()

    planned = [r.getMessage() for r in caplog.records if getattr(r, "action", None) == "DRY_RUN"]
    for name in ("extra.txt", "z.txt", "Y", "X"):
        assert any(line.rstrip().endswith(name) for line in planned), name


def test_dry_run_on_matching_trees_is_clean(roots, logger):
    source, replica = roots
    write(source / "a.txt", "a")

    outcome = make_engine(source, replica, logger, dry_run=True).run()

    assert outcome.verification.ok
    assert outcome.status == 0


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

def test_copy_failure_is_counted_and_the_run_continues(roots, logger):
    source, replica = roots
    write(source / "bad.txt", "bad")
    write(source / "good.txt", "good")

    fs = FlakyFileSystem(logger, fail_copy={"bad.txt"})
    outcome = make_engine(source, replica, logger, fs=fs).run()

    assert (replica / "good.txt").read_text() == "good"
    assert not (replica / "bad.txt").exists()
    # the copy itself plus the verification mismatch
    assert outcome.failures == 2
    assert outcome.status == 1
    assert not outcome.verification.files_match


def test_directory_creation_failure_is_counted(roots, logger):
    source, replica = roots
    (source / "nope").mkdir()
    (source / "fine").mkdir()

    fs = FlakyFileSystem(logger, fail_mkdir={"nope"})
    outcome = make_engine(source, replica, logger, fs=fs).run()

    assert (replica / "fine").is_dir()
    assert not (replica / "nope").exists()
    assert outcome.failures == 2
    assert outcome.status != 0


def test_parent_creation_failure_skips_the_copy(roots, logger):
    source, replica = roots
    write(source / "blocked" / "f.txt", "f")

    fs = FlakyFileSystem(logger, fail_mkdir={"blocked"})
    engine = make_engine(source, replica, logger, fs=fs)
    engine.source, engine.replica = validate_roots(source, replica)

    counts = engine.copy_files(engine._diff())

    assert counts == SyncCounts(failures=1)
    assert not (replica / "blocked").exists()


@pytest.mark.parametrize("throw", [True, False])
def test_failed_delete_counts_exactly_one_failure(roots, logger, throw):
    source, replica = roots
    write(replica / "locked.txt", "x")
    # sorts after the locked file, so it is reached only if the loop goes on
    write(replica / "z-free.txt", "z")

    fs = FlakyFileSystem(logger, fail_delete={"locked.txt"})
    engine = make_engine(source, replica, logger, fs=fs, retries=3, throw_on_failure=throw)
    engine.source, engine.replica = validate_roots(source, replica)

    counts = engine.delete_files(engine._diff())

    assert counts == SyncCounts(items_removed=1, failures=1)
    assert len(fs.delete_calls) == 4
    assert (replica / "locked.txt").exists()
    assert not (replica / "z-free.txt").exists()


def test_failed_child_delete_keeps_parent_and_fails_the_run(roots, logger):
    source, replica = roots
    write(replica / "P" / "locked.txt", "x")

    fs = FlakyFileSystem(logger, fail_delete={"locked.txt"})
    outcome = make_engine(source, replica, logger, fs=fs, retries=2, throw_on_failure=False).run()

    assert (replica / "P").is_dir()
    assert outcome.items_removed == 0
    assert outcome.failures == 2
    assert outcome.status == 1


def test_verification_mismatch_is_reported(roots, logger, caplog):
    source, replica = roots
    write(source / "a.txt", "short", mtime=T1)
    write(replica / "a.txt", "much longer text", mtime=T1 + 10)

    with caplog.at_level(logging.ERROR):
        outcome = make_engine(source, replica, logger).run()

    assert not outcome.verification.size_match
    assert outcome.verification.files_match
    assert outcome.failures == 1
    assert any("total size" in r.getMessage() for r in caplog.records if r.levelno == logging.ERROR)


# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

def test_missing_source_is_fatal(tmp_path, logger):
    replica = tmp_path / "replica"
    with pytest.raises(SetupError):
        make_engine(tmp_path / "nowhere", replica, logger).run()
    assert not replica.exists()


def test_same_or_nested_roots_are_rejected(tmp_path):
    source = tmp_path / "src"
    source.mkdir()
    with pytest.raises(SetupError):
        validate_roots(source, source)
    with pytest.raises(SetupError):
        validate_roots(source, source / "inner")
    inner = source / "x"
    inner.mkdir()
    with pytest.raises(SetupError):
        validate_roots(inner, source)


def test_uncreatable_replica_is_fatal(tmp_path):
    source = tmp_path / "src"
    source.mkdir()
    blocker = write(tmp_path / "file", "not a dir")
    with pytest.raises(SetupError):
        validate_roots(source, blocker / "replica")


def test_outcome_status_and_dict():
    clean = SyncOutcome(counts=SyncCounts(items_copied=3, directories_copied=1))
    dirty = SyncOutcome(counts=SyncCounts(failures=2))

    assert clean.status == 0
    assert dirty.status == 1
    data = clean.as_dict()
    assert data["items_copied"] == 3
    assert data["directories_copied"] == 1
    assert data["status"] == 0
    assert set(data["verification"]) >= {"files_match", "directories_match", "size_match"}


def test_counts_add_up():
    total = SyncCounts(items_copied=1) + SyncCounts(items_removed=2, failures=1) + SyncCounts(directories_copied=4)
    assert total == SyncCounts(items_copied=1, directories_copied=4, items_removed=2, failures=1)
