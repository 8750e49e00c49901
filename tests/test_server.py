"""Tests for the MCP tool layer."""

import threading

import pytest

from godot_mcp import server

PLAYER = (
    "extends CharacterBody2D\n"
    "\n"
    "signal died\n"
    "var speed = 10\n"
    "\n"
    "func run():\n"
    "\tspeed += 1\n"
    "\n"
    "func run_fast():\n"
    "\tspeed += 5\n"
)


@pytest.fixture
def project(tmp_path):
    root = tmp_path.resolve()
    (root / "scripts").mkdir()
    (root / "scripts" / "player.gd").write_text(PLAYER, encoding="utf-8")
    server.configure(root)
    yield root
    server._workspace = None


class TestModifyGDScript:

    def test_replace_writes_file(self, project):
        result = server.modify_gdscript(
            "scripts/player.gd", "run", "func run():\n\tspeed += 2"
        )
        assert result["action"] == "replaced"
        assert result["line"] == 6
        assert result["written"] is True
        assert "-\tspeed += 1\n" in result["diff"]
        assert "+\tspeed += 2\n" in result["diff"]
        text = (project / "scripts" / "player.gd").read_text(encoding="utf-8")
        assert text == PLAYER.replace("\tspeed += 1\n", "\tspeed += 2\n")

    def test_dry_run_leaves_file_alone(self, project):
        result = server.modify_gdscript(
            "res://scripts/player.gd", "jump", "func jump():\n\tpass", dry_run=True
        )
        assert result["action"] == "appended"
        assert result["changed"] is True
        assert result["written"] is False
        assert "+func jump():\n" in result["diff"]
        assert (project / "scripts" / "player.gd").read_text(encoding="utf-8") == PLAYER

    def test_insert_after_anchor(self, project):
        result = server.modify_gdscript(
            "scripts/player.gd", "jump", "func jump():\n\tpass", insert_after="var speed"
        )
        assert result["action"] == "inserted"
        assert result["anchor_found"] is True
        text = (project / "scripts" / "player.gd").read_text(encoding="utf-8")
        assert "var speed = 10\n\nfunc jump():\n\tpass\n\nfunc run():" in text

    def test_missing_anchor_reported(self, project):
        result = server.modify_gdscript(
            "scripts/player.gd", "jump", "func jump():\n\tpass", insert_after="var nope"
        )
        assert result["action"] == "appended"
        assert result["anchor_found"] is False

    def test_repeat_is_unchanged(self, project):
        body = "func run():\n\tspeed += 2"
        server.modify_gdscript("scripts/player.gd", "run", body)
        result = server.modify_gdscript("scripts/player.gd", "run", body)
        assert result["changed"] is False
        assert result["written"] is False
        assert result["diff"] == ""

    def test_ambiguous_target(self, project):
        (project / "dup.gd").write_text("func a():\n\tpass\nfunc a():\n\tpass\n", encoding="utf-8")
        result = server.modify_gdscript("dup.gd", "a", "func a():\n\treturn 1")
        assert result["kind"] == "AmbiguousTarget"
        assert result["lines"] == [1, 3]
        assert result["file_path"] == "dup.gd"

    def test_invalid_body(self, project):
        result = server.modify_gdscript("scripts/player.gd", "run", "func walk():\n\tpass")
        assert result["kind"] == "InvalidArgument"
        assert "expected 'run'" in result["error"]

    def test_missing_file(self, project):
        result = server.modify_gdscript("scripts/ghost.gd", "run", "func run():\n\tpass")
        assert result["kind"] == "IOFailure"

    def test_outside_root(self, project):
        result = server.modify_gdscript("../elsewhere.gd", "run", "func run():\n\tpass")
        assert result["kind"] == "InvalidArgument"

    def test_unencodable_body(self, project):
        result = server.modify_gdscript(
            "scripts/player.gd", "run", "func run():\n\tprint('\ud800')"
        )
        assert result["kind"] == "InvalidArgument"
        assert (project / "scripts" / "player.gd").read_text(encoding="utf-8") == PLAYER

    def test_concurrent_patches_do_not_lose_updates(self, project):
        names = [f"f{i}" for i in range(8)]
        threads = [
            threading.Thread(
                target=server.modify_gdscript,
                args=("scripts/player.gd", name, f"func {name}():\n\tpass"),
            )
            for name in names
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        text = (project / "scripts" / "player.gd").read_text(encoding="utf-8")
        for name in names:
            assert f"func {name}():\n" in text


class TestReadGDScript:

    def test_summary_and_content(self, project):
        result = server.read_gdscript("scripts/player.gd")
        assert result["path"] == "scripts/player.gd"
        assert result["language"] == "gdscript"
        assert result["content"] == PLAYER
        assert result["analysis"]["extends"] == "CharacterBody2D"
        assert result["analysis"]["signals"] == ["died"]
        assert result["functions"] == [
            {"name": "run", "start_line": 6, "end_line": 7},
            {"name": "run_fast", "start_line": 9, "end_line": 10},
        ]

    def test_malformed_file_still_returns_content(self, project):
        (project / "broken.gd").write_text("func a():\n\tprint(\n", encoding="utf-8")
        result = server.read_gdscript("broken.gd")
        assert result["content"] == "func a():\n\tprint(\n"
        assert "never closed" in result["analysis_error"]

    def test_shader_has_no_gdscript_analysis(self, project):
        (project / "water.gdshader").write_text("void fragment() {\n}\n", encoding="utf-8")
        result = server.read_gdscript("water.gdshader")
        assert result["language"] == "gdshader"
        assert "analysis" not in result
        assert result["functions"][0]["name"] == "fragment"

    def test_unsupported_file(self, project):
        result = server.read_gdscript("main.tscn")
        assert result["kind"] == "InvalidArgument"


class TestListFunctions:

    def test_lists_spans(self, project):
        result = server.list_functions("scripts/player.gd")
        assert [f["name"] for f in result["functions"]] == ["run", "run_fast"]


class TestCreateGDScript:

    def test_creates_with_preamble(self, project):
        result = server.create_gdscript(
            "scripts/enemy.gd", "func _ready():\n\tpass", class_name="Enemy", base="Node2D"
        )
        assert result["path"] == "scripts/enemy.gd"
        assert result["truncated"] is False
        text = (project / "scripts" / "enemy.gd").read_text(encoding="utf-8")
        assert text == "extends Node2D\nclass_name Enemy\n\nfunc _ready():\n\tpass\n"

    def test_refuses_to_overwrite(self, project):
        result = server.create_gdscript("scripts/player.gd", "pass")
        assert result["kind"] == "InvalidArgument"
        assert "already exists" in result["error"]
        assert (project / "scripts" / "player.gd").read_text(encoding="utf-8") == PLAYER

    def test_only_gdscript(self, project):
        result = server.create_gdscript("tools/build.py", "print(1)")
        assert result["kind"] == "InvalidArgument"


class TestUnconfigured:

    def test_tools_report_missing_root(self):
        server._workspace = None
        result = server.read_gdscript("a.gd")
        assert result["kind"] == "InvalidArgument"
        assert "no project root" in result["error"]
