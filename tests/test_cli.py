"""Tests for argument parsing and the kegplan command line."""

import json
import logging

import pytest
import yaml

from args import parse_args
from cellar import Cellar
from conftest import formula, make_tarball, register_keg
from constants import Constants, ExitCodes
from kegplan import build_options, format_plan, main
from resolution import ExecutionPlan


@pytest.fixture(autouse=True)
def isolated_constants(monkeypatch, tmp_path):
    """Keep CLI overrides from leaking between tests."""
    monkeypatch.setattr(Constants, "ROOT", str(tmp_path / "default-root"))
    monkeypatch.setattr(Constants, "FORMULA_PATHS", [])
    monkeypatch.setattr(Constants, "CONFIG_FILE", str(tmp_path / "no-config.yml"))
    monkeypatch.setattr(Constants, "INSTALL_LINK", True)
    monkeypatch.setattr(Constants, "FETCH_MAX_CONCURRENCY", 4)
    monkeypatch.setattr(Constants, "LOG_LEVEL", "INFO")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in [h for h in root.handlers if h not in handlers]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)


@pytest.fixture
def workspace(tmp_path):
    """Formula directory with local bottles and an empty installation root."""
    formulae = tmp_path / "formulae"
    bottles = tmp_path / "bottles"
    formulae.mkdir()
    bottles.mkdir()

    def add(name, *deps, version="1.0", **extra):
        archive = bottles / f"{name}-{version}.tar.gz"
        sha = make_tarball(archive, {f"{name}/{version}/bin/{name}": b"#!/bin/sh\n"})
        record = formula(name, *deps, version=version, **extra)
        record["bottles"] = {"all": {"url": f"file://{archive}", "sha256": sha}}
        (formulae / f"{name}.yml").write_text(yaml.safe_dump(record), encoding="utf-8")

    root = tmp_path / "root"
    return add, ["--root", str(root), "-F", str(formulae)], root


def run_cli(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


class TestArgs:
    """Parser destinations."""

    def test_plan_flags(self):
        args = parse_args(["-F", "a", "-F", "b", "--loglevel", "debug", "plan", "x", "y",
                           "--with", "ssl", "--without", "docs", "-s", "--keep-going", "-o", "plan.json"])
        assert args.COMMAND == "plan"
        assert args.FORMULA_PATH == ["a", "b"]
        assert args.LOG_LEVEL == "DEBUG"
        assert args.NAMES == ["x", "y"]
        assert args.WITH == ["ssl"]
        assert args.WITHOUT == ["docs"]
        assert args.BUILD_FROM_SOURCE
        assert args.KEEP_GOING
        assert args.OUTPUT == "plan.json"

    def test_install_flags(self):
        args = parse_args(["-j", "2", "install", "x", "--force", "--reinstall", "--no-link", "--HEAD"])
        assert args.JOBS == 2
        assert args.FORCE and args.REINSTALL and args.NO_LINK and args.HEAD

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_build_options(self):
        args = parse_args(["install", "a", "b", "--with", "ssl", "--with", "without-docs", "--reinstall"])
        options = build_options(args, reinstall=args.REINSTALL)
        assert options.force_options["a"] == frozenset({"with-ssl", "without-docs"})
        assert options.reinstall_names == frozenset({"a", "b"})


class TestPlanCommand:
    def test_plan_prints_and_exports(self, workspace, tmp_path, capsys):
        add, base, _ = workspace
        add("a", "b")
        add("b")
        out_file = tmp_path / "plan.json"
        assert run_cli(base + ["plan", "a", "-o", str(out_file)]) == ExitCodes.SUCCESS.value
        stdout = capsys.readouterr().out
        assert "==> Installing 2 formula(e):" in stdout
        assert stdout.index("  b 1.0 (bottle)") < stdout.index("  a 1.0 (bottle)")
        data = json.loads(out_file.read_text(encoding="utf-8"))
        assert data["to_install"] == ["b", "a"]

    def test_unknown_formula(self, workspace):
        add, base, _ = workspace
        add("a", "missing")
        assert run_cli(base + ["plan", "a"]) == ExitCodes.RESOLUTION_ERROR.value

    def test_invalid_formula_file(self, workspace, tmp_path):
        _, base, _ = workspace
        (tmp_path / "formulae" / "bad.yml").write_text("name: bad\n", encoding="utf-8")
        assert run_cli(base + ["plan", "bad"]) == ExitCodes.FILE_ERROR.value

    def test_error_on_warnings(self, workspace):
        add, base, root = workspace
        add("a", version="1.0")
        register_keg(Cellar(str(root)), "a", "2.0")
        assert run_cli(base + ["plan", "a"]) == ExitCodes.SUCCESS.value
        assert run_cli(base + ["plan", "a", "--error-on-warnings"]) == ExitCodes.EXIT_WARNINGS.value

    def test_quiet(self, workspace, capsys):
        add, base, _ = workspace
        add("a")
        assert run_cli(["-q"] + base + ["plan", "a"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out == ""


class TestInstallCommand:
    def test_install_then_nothing_to_do(self, workspace, capsys):
        add, base, root = workspace
        add("a", "b")
        add("b")
        assert run_cli(base + ["install", "a"]) == ExitCodes.SUCCESS.value
        cellar = Cellar(str(root))
        assert [k.name for k in cellar.all_installed()] == ["a", "b"]
        assert (root / "opt" / "a" / "bin" / "a").is_file()
        capsys.readouterr()
        assert run_cli(base + ["plan", "a"]) == ExitCodes.SUCCESS.value
        assert "==> Already installed: b, a" in capsys.readouterr().out

    def test_no_link(self, workspace):
        add, base, root = workspace
        add("a")
        assert run_cli(base + ["install", "a", "--no-link"]) == ExitCodes.SUCCESS.value
        assert not (root / "opt" / "a").exists()

    def test_conflicts_need_force(self, workspace):
        add, base, root = workspace
        add("a", conflicts=["legacy"])
        register_keg(Cellar(str(root)), "legacy")
        assert run_cli(base + ["install", "a"]) == ExitCodes.RESOLUTION_ERROR.value
        assert Cellar(str(root)).installed_keg("a") is None
        assert run_cli(base + ["install", "a", "--force"]) == ExitCodes.SUCCESS.value

    def test_missing_bottle_file_is_a_connection_error(self, workspace, tmp_path):
        add, base, _ = workspace
        add("a")
        (tmp_path / "bottles" / "a-1.0.tar.gz").unlink()
        assert run_cli(base + ["install", "a"]) == ExitCodes.CONNECTION_ERROR.value

    def test_checksum_mismatch_is_an_install_error(self, workspace, tmp_path):
        add, base, _ = workspace
        add("a")
        (tmp_path / "bottles" / "a-1.0.tar.gz").write_bytes(b"tampered")
        assert run_cli(base + ["install", "a"]) == ExitCodes.INSTALL_ERROR.value


class TestQueryCommands:
    def test_deps(self, workspace, capsys):
        add, base, _ = workspace
        add("a", "b", {"name": "cmake", "tag": "build"}, "c")
        add("b", "c")
        add("c")
        add("cmake")
        assert run_cli(base + ["deps", "a", "-s"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.split() == ["c", "b", "cmake"]
        assert run_cli(base + ["deps", "a", "-s", "--runtime"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.split() == ["c", "b"]

    def test_uses_missing_and_outdated(self, workspace, capsys):
        add, base, root = workspace
        add("a", "b", version="2.0")
        add("b")
        cellar = Cellar(str(root))
        register_keg(cellar, "a", "1.0", runtime=["b", "gone"])
        register_keg(cellar, "b", runtime=[])
        capsys.readouterr()

        assert run_cli(base + ["uses", "b"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.split() == ["a"]
        assert run_cli(base + ["missing"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.strip() == "a: gone"
        assert run_cli(base + ["outdated"]) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.strip() == "a (1.0) < 2.0"

    def test_pin_blocks_upgrade(self, workspace, capsys):
        add, base, root = workspace
        add("a", version="2.0")
        register_keg(Cellar(str(root)), "a", "1.0")
        assert run_cli(base + ["pin", "a"]) == ExitCodes.SUCCESS.value
        capsys.readouterr()
        assert run_cli(base + ["plan", "a"]) == ExitCodes.SUCCESS.value
        assert "==> Pinned (not upgraded): a" in capsys.readouterr().out
        assert run_cli(base + ["unpin", "a"]) == ExitCodes.SUCCESS.value
        assert run_cli(base + ["unpin", "a"]) == ExitCodes.INSTALL_ERROR.value


class TestFormatPlan:
    def test_empty_plan(self):
        assert format_plan(ExecutionPlan()) == ["==> Nothing to do"]
