"""Tests for the command-line interface.

Covers:
- ``bundle`` to stdout and to a file
- Type filtering, aliases and saved configuration
- ``batch-bundle`` output files
- Exit codes for clean runs, diagnostics and fatal errors
"""

from __future__ import annotations

import json
import logging

import pytest

from tests.core.conftest import (
    ADDRESS_TS,
    ALIASED_TS,
    COMMON_TS,
    INDEX_TS,
    TSCONFIG_JSON,
    USER_TS,
    count_declarations,
    write_project,
)
from tsbundler.main import APP_VERSION, EXIT_DIAGNOSTICS, EXIT_FATAL, EXIT_OK, build_parser, main


@pytest.fixture(autouse=True)
def restore_package_logger():
    """main() configures the package logger; undo it after each test."""
    logger = logging.getLogger("tsbundler")
    level, handlers = logger.level, list(logger.handlers)
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


@pytest.fixture
def project(tmp_path):
    return write_project(tmp_path, {
        "src/utils/user.ts": USER_TS,
        "src/utils/address.ts": ADDRESS_TS,
        "src/utils/common.ts": COMMON_TS,
        "src/index.ts": INDEX_TS,
        "src/aliased.ts": ALIASED_TS,
        "tsconfig.json": TSCONFIG_JSON,
    })


class TestParser:
    """Test argument parsing."""

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert APP_VERSION in capsys.readouterr().out

    def test_missing_command(self, capsys):
        assert main([]) == 2
        assert "usage" in capsys.readouterr().err

    def test_repeatable_options(self, tmp_path):
        args = build_parser().parse_args([
            "bundle", str(tmp_path / "index.ts"),
            "-t", "User", "-t", "Address",
            "--alias", "@utils/*=src/utils/*", "--alias", "@lib=lib",
            "--log-level", "debug",
        ])
        assert args.types == ["User", "Address"]
        assert args.alias == [("@utils/*", "src/utils/*"), ("@lib", "lib")]
        assert args.log_level == "DEBUG"

    @pytest.mark.parametrize("argv", [
        ["bundle", "index.ts", "--alias", "@utils"],
        ["bundle", "index.ts", "--workers", "0"],
        ["batch-bundle", "a.ts:A"],
    ])
    def test_invalid_arguments(self, argv, capsys):
        assert main(argv) == 2
        assert "error" in capsys.readouterr().err


class TestBundleCommand:
    """Test the ``bundle`` subcommand."""

    def test_bundle_to_stdout(self, project, capsys):
        code = main(["bundle", str(project / "src" / "index.ts"), "--workers", "2"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert out.startswith("// src/utils/user.ts\nexport interface User {")
        assert count_declarations(out, "UserProfile") == 1
        assert "export default" not in out

    def test_type_filter(self, project, capsys):
        code = main(["bundle", str(project / "src" / "index.ts"), "-t", "UserId"])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert out == (
            "// Define a type that uses namespace import\n"
            "export type UserId = CommonInterface['id'];\n"
            "\n"
            "export interface CommonInterface {\n"
            "  id: string;\n"
            "}\n"
        )

    def test_output_file(self, project, capsys):
        target = project / "dist" / "types.d.ts"

        code = main([
            "bundle", str(project / "src" / "index.ts"), "-o", str(target), "--preserve-default",
        ])

        assert code == EXIT_OK
        assert target.read_text(encoding="utf-8").endswith("export default UserProfile;\n")
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Bundle written to" in captured.err

    def test_tsconfig_paths_are_used(self, project, capsys):
        code = main(["bundle", str(project / "src" / "aliased.ts")])

        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert count_declarations(out, "AdminUser") == 1

    def test_alias_option(self, project, capsys):
        (project / "tsconfig.json").unlink()

        code = main([
            "bundle", str(project / "src" / "aliased.ts"),
            "-r", str(project), "--alias", "@utils/*=src/utils/*",
        ])

        assert code == EXIT_OK
        assert count_declarations(capsys.readouterr().out, "AdminUser") == 1

    def test_saved_config(self, project, capsys):
        config = project / "bundle.json"
        config.write_text(json.dumps({"root_names": ["Address"], "max_workers": 1}), encoding="utf-8")

        code = main(["bundle", str(project / "src" / "index.ts"), "--config", str(config)])

        assert code == EXIT_OK
        assert capsys.readouterr().out == (
            "export interface Address {\n  street: string;\n  city: string;\n}\n"
        )

    def test_invalid_saved_config(self, project, capsys):
        config = project / "bundle.json"
        config.write_text("{ broken", encoding="utf-8")

        code = main(["bundle", str(project / "src" / "index.ts"), "--config", str(config)])

        assert code == EXIT_FATAL
        assert "Invalid JSON" in capsys.readouterr().err

    def test_diagnostics_exit_code(self, project, capsys):
        code = main(["bundle", str(project / "src" / "index.ts"), "-t", "Nope"])

        assert code == EXIT_DIAGNOSTICS
        assert "error:" in capsys.readouterr().err

    def test_syntax_error_is_fatal(self, tmp_path, capsys):
        write_project(tmp_path, {"bad.ts": "export interface Broken {\n"})

        code = main(["bundle", str(tmp_path / "bad.ts")])

        captured = capsys.readouterr()
        assert code == EXIT_FATAL
        assert captured.out == ""
        assert "error:" in captured.err

    def test_log_file(self, project, tmp_path, capsys):
        log_file = tmp_path / "logs" / "bundle.log"

        code = main([
            "bundle", str(project / "src" / "index.ts"), "--log-level", "debug", "--log-file", str(log_file),
        ])

        assert code == EXIT_OK
        assert "running 'bundle'" in log_file.read_text(encoding="utf-8")


class TestBatchBundleCommand:
    """Test the ``batch-bundle`` subcommand."""

    def test_one_file_per_entry(self, project, capsys):
        out_dir = project / "dist"
        user_ts = project / "src" / "utils" / "user.ts"
        address_ts = project / "src" / "utils" / "address.ts"

        code = main([
            "batch-bundle", f"{user_ts}:User:UserDTO", f"{address_ts}:Address",
            "--output-dir", str(out_dir),
        ])

        assert code == EXIT_OK
        assert sorted(p.name for p in out_dir.iterdir()) == ["Address.d.ts", "UserDTO.d.ts"]
        assert (out_dir / "UserDTO.d.ts").read_text(encoding="utf-8") == (
            "// src/utils/user.ts\nexport interface UserDTO {\n  id: number;\n  name: string;\n}\n"
        )
        assert "UserDTO.d.ts" in capsys.readouterr().err

    def test_comma_separated_entries(self, project):
        user_ts = project / "src" / "utils" / "user.ts"
        out_dir = project / "dist"

        code = main([
            "batch-bundle", f"{user_ts}:User,{user_ts}:UserRole", "--output-dir", str(out_dir),
        ])

        assert code == EXIT_OK
        assert sorted(p.name for p in out_dir.iterdir()) == ["User.d.ts", "UserRole.d.ts"]

    def test_bad_entry(self, project, capsys):
        code = main(["batch-bundle", "no-type-here", "--output-dir", str(project / "dist")])

        assert code == EXIT_FATAL
        assert "file:type[:alias]" in capsys.readouterr().err

    def test_failed_entry_does_not_stop_batch(self, project, capsys):
        out_dir = project / "dist"
        user_ts = project / "src" / "utils" / "user.ts"

        code = main([
            "batch-bundle", f"{project / 'src' / 'missing.ts'}:Missing", f"{user_ts}:User",
            "--output-dir", str(out_dir),
        ])

        assert code == EXIT_FATAL
        assert [p.name for p in out_dir.iterdir()] == ["User.d.ts"]
        assert "missing.ts" in capsys.readouterr().err
