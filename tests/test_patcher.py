import os
import stat

import pytest

from shellstrap.core import patcher as patcher_module
from shellstrap.core.errors import PartialBlockError
from shellstrap.core.models import BlockSpec, PatchRequest, PatchResult
from shellstrap.core.patcher import MarkedBlockPatcher, patch

from conftest import START, END, block_text


def test_insert_into_existing_file_matches_example(tmp_path, patcher):
    rc = tmp_path / "rc"
    rc.write_text("# keep me\n", encoding="utf-8")

    res = patcher.patch(rc, "X", START, END, ["export FOO=1"])

    assert rc.read_text(encoding="utf-8") == "# keep me\n# >>> X >>>\nexport FOO=1\n# <<< X <<<\n"
    assert res.success
    assert res.changed
    assert res.action == PatchResult.ACTION_INSERTED
    # pre-existing file, first modification: backup of the original content
    backup = tmp_path / "rc.bak.test"
    assert res.backup_created
    assert res.backup_path == str(backup)
    assert backup.read_text(encoding="utf-8") == "# keep me\n"


def test_missing_file_is_created_with_parents_and_no_backup(tmp_path, patcher, spec):
    rc = tmp_path / "a" / "b" / "rc"

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert rc.read_text(encoding="utf-8") == block_text("export FOO=1")
    assert not res.existed
    assert not res.backup_created
    assert res.backup_path is None
    assert not patcher.backup_path_for(rc).exists()
    assert res.diff.startswith("--- /dev/null")


def test_second_identical_patch_is_a_noop(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("alias ll='ls -l'\n", encoding="utf-8")
    patcher.patch_block(rc, spec, ["export FOO=1"])
    after_first = rc.read_bytes()
    mtime = rc.stat().st_mtime_ns

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert rc.read_bytes() == after_first
    assert rc.stat().st_mtime_ns == mtime
    assert res.success
    assert not res.changed
    assert res.action == PatchResult.ACTION_UNCHANGED
    assert not res.backup_created
    assert res.diff == ""


def test_already_configured_file_gets_no_write_and_no_backup(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("x\n" + block_text("export FOO=1"), encoding="utf-8")
    mtime = rc.stat().st_mtime_ns

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert res.action == PatchResult.ACTION_UNCHANGED
    assert rc.stat().st_mtime_ns == mtime
    assert not patcher.backup_path_for(rc).exists()


def test_backup_is_taken_once_and_holds_original(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("original\n", encoding="utf-8")

    results = [patcher.patch_block(rc, spec, [f"export FOO={n}"]) for n in range(1, 4)]

    assert [r.changed for r in results] == [True, True, True]
    assert [r.backup_created for r in results] == [True, False, False]
    backups = sorted(p.name for p in tmp_path.iterdir() if ".bak." in p.name)
    assert backups == ["rc.bak.test"]
    assert (tmp_path / "rc.bak.test").read_text(encoding="utf-8") == "original\n"
    assert rc.read_text(encoding="utf-8") == "original\n" + block_text("export FOO=3")


def test_existing_backup_is_never_overwritten(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("current\n", encoding="utf-8")
    backup = tmp_path / "rc.bak.test"
    backup.write_text("older backup\n", encoding="utf-8")

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert not res.backup_created
    assert res.backup_path == str(backup)
    assert backup.read_text(encoding="utf-8") == "older backup\n"


def test_fresh_patcher_does_not_replace_backup(tmp_path, spec):
    rc = tmp_path / "rc"
    rc.write_text("first\n", encoding="utf-8")
    MarkedBlockPatcher(backup_namespace="test").patch_block(rc, spec, ["a"])
    MarkedBlockPatcher(backup_namespace="test").patch_block(rc, spec, ["b"])
    assert (tmp_path / "rc.bak.test").read_text(encoding="utf-8") == "first\n"


@pytest.mark.parametrize("text", [
    "a\n# >>> X >>>\nb\n",
    "a\nb\n# <<< X <<<\n",
    "# <<< X <<<\nb\n# >>> X >>>\n",
    "# >>> X >>>\n1\n# <<< X <<<\n# >>> X >>>\n2\n",
    "# >>> X >>>\n# >>> X >>>\n# <<< X <<<\n# <<< X <<<\n",
])
def test_partial_block_is_refused_and_file_untouched(tmp_path, patcher, spec, text):
    rc = tmp_path / "rc"
    rc.write_bytes(text.encode("utf-8"))

    with pytest.raises(PartialBlockError) as excinfo:
        patcher.patch_block(rc, spec, ["export FOO=1"])

    assert excinfo.value.path == str(rc)
    assert str(rc) in str(excinfo.value)
    assert rc.read_bytes() == text.encode("utf-8")
    assert not patcher.backup_path_for(rc).exists()


def test_partial_block_is_refused_in_dry_run(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("# >>> X >>>\n", encoding="utf-8")
    with pytest.raises(PartialBlockError):
        patcher.patch_block(rc, spec, ["export FOO=1"], dry_run=True)


def test_duplicate_blocks_collapse_to_one(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text(
        "top\n" + block_text("old 1") + "middle\n" + block_text("old 2") + block_text("old 3") + "bottom\n",
        encoding="utf-8",
    )

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    text = rc.read_text(encoding="utf-8")
    assert text == "top\nmiddle\nbottom\n" + block_text("export FOO=1")
    assert text.count(START) == 1 and text.count(END) == 1
    assert res.action == PatchResult.ACTION_COLLAPSED
    assert res.duplicates_found == 3
    assert any("3 existing" in entry["message"] for entry in res.logs)


def test_duplicate_identical_blocks_are_still_collapsed(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text(block_text("export FOO=1") * 2, encoding="utf-8")

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert res.changed
    assert rc.read_text(encoding="utf-8") == block_text("export FOO=1")


def test_stale_block_is_moved_to_end(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("a\n" + block_text("export FOO=0") + "b\n", encoding="utf-8")

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert res.action == PatchResult.ACTION_REPLACED
    assert rc.read_text(encoding="utf-8") == "a\nb\n" + block_text("export FOO=1")
    assert "-export FOO=0" in res.diff
    assert "+export FOO=1" in res.diff


def test_dry_run_reports_without_mutation(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    original = "keep\n" + block_text("export FOO=0")
    rc.write_text(original, encoding="utf-8")

    res = patcher.patch_block(rc, spec, ["export FOO=1"], dry_run=True)

    assert res.success
    assert res.dry_run
    assert res.changed
    assert res.action == PatchResult.ACTION_REPLACED
    assert rc.read_text(encoding="utf-8") == original
    assert not patcher.backup_path_for(rc).exists()
    assert res.backup_path == str(patcher.backup_path_for(rc))
    assert not res.backup_created
    assert "+export FOO=1" in res.diff
    assert res.overall_message.startswith("Would patch")


def test_dry_run_creates_no_directories(tmp_path, patcher, spec):
    rc = tmp_path / "missing" / "rc"
    res = patcher.patch_block(rc, spec, ["export FOO=1"], dry_run=True)
    assert res.changed
    assert not (tmp_path / "missing").exists()


def test_dry_run_does_not_consume_backup(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("orig\n", encoding="utf-8")
    patcher.patch_block(rc, spec, ["a"], dry_run=True)
    res = patcher.patch_block(rc, spec, ["a"])
    assert res.backup_created


def test_marker_substring_is_not_a_marker(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text(f"echo '{START}'\n", encoding="utf-8")

    res = patcher.patch_block(rc, spec, ["export FOO=1"])

    assert res.action == PatchResult.ACTION_INSERTED
    assert rc.read_text(encoding="utf-8") == f"echo '{START}'\n" + block_text("export FOO=1")


def test_missing_trailing_newline_is_terminated(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("no newline", encoding="utf-8")
    patcher.patch_block(rc, spec, ["x"])
    assert rc.read_text(encoding="utf-8") == "no newline\n" + block_text("x")


def test_crlf_line_endings_are_preserved(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_bytes(b"a\r\nb\r\n")

    patcher.patch_block(rc, spec, ["x"])
    assert rc.read_bytes() == b"a\r\nb\r\n# >>> X >>>\r\nx\r\n# <<< X <<<\r\n"

    res = patcher.patch_block(rc, spec, ["x"])
    assert res.action == PatchResult.ACTION_UNCHANGED


def test_lone_carriage_return_inside_a_line_is_kept(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_bytes(b"PS1='x\rY'\n")

    patcher.patch_block(rc, spec, ["x"])

    assert rc.read_bytes() == b"PS1='x\rY'\n# >>> X >>>\nx\n# <<< X <<<\n"


def test_mixed_line_endings_outside_block_are_untouched(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_bytes(b"a\r\nb\r\nc\n")

    patcher.patch_block(rc, spec, ["x"])
    assert rc.read_bytes() == b"a\r\nb\r\nc\n# >>> X >>>\r\nx\r\n# <<< X <<<\r\n"

    patcher.patch_block(rc, spec, ["y"])
    assert rc.read_bytes() == b"a\r\nb\r\nc\n# >>> X >>>\r\ny\r\n# <<< X <<<\r\n"


def test_stale_crlf_block_is_replaced_without_touching_lf_lines(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_bytes(b"top\n# >>> X >>>\r\nold\r\n# <<< X <<<\r\nbottom\n")

    res = patcher.patch_block(rc, spec, ["new"])

    assert res.action == PatchResult.ACTION_REPLACED
    # three CRLF lines against two LF lines: the new block follows CRLF
    assert rc.read_bytes() == b"top\nbottom\n# >>> X >>>\r\nnew\r\n# <<< X <<<\r\n"


def test_crlf_file_without_final_newline_gets_crlf_terminator(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_bytes(b"a\r\nb")

    patcher.patch_block(rc, spec, ["x"])

    assert rc.read_bytes() == b"a\r\nb\r\n# >>> X >>>\r\nx\r\n# <<< X <<<\r\n"


def test_undecodable_bytes_survive(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_bytes(b"caf\xe9\n")
    patcher.patch_block(rc, spec, ["x"])
    assert rc.read_bytes().startswith(b"caf\xe9\n")


def test_full_block_as_desired_lines_is_accepted(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    patcher.patch_block(rc, spec, [START, "x", END])
    assert rc.read_text(encoding="utf-8") == block_text("x")


def test_marker_inside_body_is_rejected(tmp_path, patcher, spec):
    with pytest.raises(ValueError):
        patcher.patch_block(tmp_path / "rc", spec, ["x", END])
    assert not (tmp_path / "rc").exists()


def test_multiline_body_entry_is_rejected(tmp_path, patcher, spec):
    with pytest.raises(ValueError):
        patcher.patch_block(tmp_path / "rc", spec, ["a\nb"])


@pytest.mark.parametrize("start,end", [("", END), (START, ""), (START, START), ("a\nb", END)])
def test_invalid_markers_are_rejected(tmp_path, patcher, start, end):
    with pytest.raises(ValueError):
        patcher.patch(tmp_path / "rc", "X", start, end, ["x"])


def test_symlinked_rc_is_written_through(tmp_path, patcher, spec):
    target = tmp_path / "dotfiles" / "bashrc"
    target.parent.mkdir()
    target.write_text("orig\n", encoding="utf-8")
    link = tmp_path / ".bashrc"
    link.symlink_to(target)

    patcher.patch_block(link, spec, ["x"])

    assert link.is_symlink()
    assert target.read_text(encoding="utf-8") == "orig\n" + block_text("x")
    assert (tmp_path / ".bashrc.bak.test").read_text(encoding="utf-8") == "orig\n"


def test_file_mode_is_preserved(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    rc.write_text("a\n", encoding="utf-8")
    os.chmod(rc, 0o600)
    patcher.patch_block(rc, spec, ["x"])
    assert stat.S_IMODE(rc.stat().st_mode) == 0o600


def test_no_temp_files_left_behind(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    patcher.patch_block(rc, spec, ["x"])
    patcher.patch_block(rc, spec, ["y"])
    assert sorted(p.name for p in tmp_path.iterdir()) == ["rc", "rc.bak.test"]


def test_failed_write_leaves_original_and_cleans_temp(tmp_path, patcher, spec, monkeypatch):
    rc = tmp_path / "rc"
    rc.write_text("orig\n", encoding="utf-8")

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(patcher_module.os, "replace", boom)
    with pytest.raises(OSError):
        patcher.patch_block(rc, spec, ["x"])
    monkeypatch.undo()

    assert rc.read_text(encoding="utf-8") == "orig\n"
    assert not [p for p in tmp_path.iterdir() if p.name.endswith(".shellstrap_tmp")]


def test_apply_and_preview_take_requests(tmp_path, patcher, spec):
    rc = tmp_path / "rc"
    req = PatchRequest(document_path=rc, spec=spec, desired_lines=["x"])

    assert patcher.preview(req).changed
    assert not rc.exists()
    assert patcher.apply(req).changed
    assert rc.exists()


def test_module_level_patch_uses_default_namespace(tmp_path):
    rc = tmp_path / "rc"
    rc.write_text("a\n", encoding="utf-8")
    res = patch(rc, "X", START, END, ["x"])
    assert res.backup_path == str(tmp_path / "rc.bak.shellstrap")


def test_blockspec_for_namespace():
    s = BlockSpec.for_namespace("MV-SAM3D", "micromamba")
    assert s.start_marker == "# >>> MV-SAM3D micromamba >>>"
    assert s.end_marker == "# <<< MV-SAM3D micromamba <<<"
    assert s.wrap(["a"]) == [s.start_marker, "a", s.end_marker]
