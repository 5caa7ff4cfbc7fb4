"""Tests for the command-line interface."""

import logging
import os
import subprocess
import sys
from pathlib import Path

import pytest

from appbundler import ENV_ICON, ENV_OUTPUT, ExitCode, __version__, main

ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo the root logger changes made by setup_logging()."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    """Run the test from an empty working directory without overrides."""
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    monkeypatch.delenv(ENV_ICON, raising=False)
    monkeypatch.delenv(ENV_OUTPUT, raising=False)
    return work


@pytest.fixture
def sample_executable(tmp_path):
    exe_path = tmp_path / "myapp"
    exe_path.write_text("#!/bin/sh\necho hello\n")
    exe_path.chmod(0o755)
    return exe_path


def run_cli(*args, cwd=None):
    """Run appbundler as a module in a subprocess."""
    env = dict(os.environ)
    env.pop(ENV_ICON, None)
    env.pop(ENV_OUTPUT, None)
    env["PYTHONPATH"] = os.pathsep.join(
        [str(ROOT), env.get("PYTHONPATH", "")]
    )
    return subprocess.run(
        [sys.executable, "-m", "appbundler", "--no-color", *args],
        capture_output=True,
        text=True,
        cwd=cwd,
        env=env,
    )


def run_main(*args):
    """Run main() in-process and return its exit status."""
    with pytest.raises(SystemExit) as excinfo:
        main(["--no-color", *args])
    return excinfo.value.code


class TestCLISubprocess:
    """Tests running the CLI as `python -m appbundler`."""

    def test_requires_binary(self, tmp_path):
        result = run_cli(cwd=tmp_path)
        assert result.returncode == 2
        assert "--binary" in result.stderr

    def test_help(self, tmp_path):
        result = run_cli("--help", cwd=tmp_path)
        assert result.returncode == 0
        assert "--binary" in result.stdout
        assert "--icon" in result.stdout
        assert "--output" in result.stdout

    def test_version(self, tmp_path):
        result = run_cli("--version", cwd=tmp_path)
        assert result.returncode == 0
        assert __version__ in result.stdout

    def test_creates_bundle(self, tmp_path, sample_executable):
        work = tmp_path / "work"
        work.mkdir()
        result = run_cli("-b", str(sample_executable), cwd=work)

        assert result.returncode == ExitCode.SUCCESS
        macos = work / "myapp.app" / "Contents" / "MacOS"
        assert (macos / "launcher").exists()
        assert "myapp.app" in result.stderr

    def test_missing_binary(self, tmp_path):
        result = run_cli("-b", str(tmp_path / "missing"), cwd=tmp_path)

        assert result.returncode == ExitCode.BINARY_NOT_FOUND
        assert "does not exist" in result.stderr

    def test_wrong_icon_format(self, tmp_path, sample_executable):
        png = tmp_path / "pic.png"
        png.write_bytes(b"png")
        result = run_cli(
            "-b", str(sample_executable), "-i", str(png), "-o", "Foo",
            cwd=tmp_path,
        )

        assert result.returncode == ExitCode.WRONG_FILE_FORMAT
        assert not (tmp_path / "Foo.app").exists()


class TestCLIMain:
    """Tests calling main() directly."""

    def test_success(self, workdir, sample_executable, tmp_path):
        icon = tmp_path / "pic.icns"
        icon.write_bytes(b"icns")

        code = run_main(
            "-b", str(sample_executable), "-i", str(icon), "-o", "Foo"
        )

        assert code == ExitCode.SUCCESS
        resources = workdir / "Foo.app" / "Contents" / "Resources"
        assert (resources / "pic.icns").exists()

    def test_wrong_format_checked_before_binary(self, workdir, tmp_path):
        """Test the icon format is rejected even if the binary is missing."""
        code = run_main("-b", str(tmp_path / "missing"), "-i", "pic.png")
        assert code == ExitCode.WRONG_FILE_FORMAT

    def test_icon_not_found(self, workdir, sample_executable, tmp_path):
        code = run_main(
            "-b", str(sample_executable), "-i", str(tmp_path / "none.icns")
        )
        assert code == ExitCode.ICON_NOT_FOUND
        assert os.listdir(workdir) == []

    def test_existing_destination(self, workdir, sample_executable):
        (workdir / "myapp.app").mkdir()
        code = run_main("-b", str(sample_executable))
        assert code == ExitCode.UNABLE_TO_CREATE

    def test_output_from_config(self, workdir, sample_executable):
        (workdir / ".appbundler.toml").write_text(
            '[bundle]\noutput = "dist/FromConfig"\n'
        )
        code = run_main("-b", str(sample_executable))

        assert code == ExitCode.SUCCESS
        assert (workdir / "dist" / "FromConfig.app").is_dir()

    def test_output_from_environment(
        self, workdir, sample_executable, monkeypatch
    ):
        (workdir / ".appbundler.toml").write_text(
            '[bundle]\noutput = "FromConfig"\n'
        )
        monkeypatch.setenv(ENV_OUTPUT, "FromEnv")
        code = run_main("-b", str(sample_executable))

        assert code == ExitCode.SUCCESS
        assert (workdir / "FromEnv.app").is_dir()
        assert not (workdir / "FromConfig.app").exists()

    def test_flag_overrides_environment(
        self, workdir, sample_executable, monkeypatch
    ):
        monkeypatch.setenv(ENV_OUTPUT, "FromEnv")
        code = run_main("-b", str(sample_executable), "-o", "FromFlag")

        assert code == ExitCode.SUCCESS
        assert (workdir / "FromFlag.app").is_dir()

    def test_empty_flags_ignore_environment(
        self, workdir, sample_executable, monkeypatch
    ):
        """Test empty -i and -o mean no icon and the default name."""
        monkeypatch.setenv(ENV_ICON, "env.png")
        monkeypatch.setenv(ENV_OUTPUT, "FromEnv")
        code = run_main("-b", str(sample_executable), "-i", "", "-o", "")

        assert code == ExitCode.SUCCESS
        assert os.listdir(workdir) == ["myapp.app"]
        resources = workdir / "myapp.app" / "Contents" / "Resources"
        assert os.listdir(resources) == []

    def test_icon_from_config_wrong_format(self, workdir, sample_executable):
        (workdir / "appbundler.toml").write_text('[bundle]\nicon = "a.png"\n')
        code = run_main("-b", str(sample_executable))
        assert code == ExitCode.WRONG_FILE_FORMAT

    def test_invalid_config(self, workdir, sample_executable):
        (workdir / ".appbundler.toml").write_text("not = [valid")
        code = run_main("-b", str(sample_executable))

        assert code == ExitCode.CONFIGURATION_ERROR
        assert os.listdir(workdir) == [".appbundler.toml"]
