from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path


def _env_with_pythonpath(tmp_path: Path) -> dict[str, str]:
    env = dict(os.environ)
    existing = env.get("PYTHONPATH", "")
    src_path = str(Path("src").resolve())
    env["PYTHONPATH"] = f"{src_path}{os.pathsep}{existing}" if existing else src_path
    env["HOME"] = str(tmp_path)
    return env


def test_cli_module_reports_invalid_args_via_exit_code(tmp_path: Path) -> None:
    completed = subprocess.run(
        [sys.executable, "-m", "coderelay", "--log-level", "loud", "languages"],
        capture_output=True,
        text=True,
        check=False,
        env=_env_with_pythonpath(tmp_path),
    )

    assert completed.returncode == 2
    assert "--log-level must be one of" in completed.stderr


def test_cli_module_prints_template(tmp_path: Path) -> None:
    completed = subprocess.run(
        [sys.executable, "-m", "coderelay", "--log-file", str(tmp_path / "cr.log"), "template", "python"],
        capture_output=True,
        text=True,
        check=False,
        env=_env_with_pythonpath(tmp_path),
    )

    assert completed.returncode == 0
    assert "input(" in completed.stdout


def test_cli_module_reports_unreachable_terminal(tmp_path: Path) -> None:
    source = tmp_path / "hello.py"
    source.write_text('print("hello")\n', encoding="utf-8")

    completed = subprocess.run(
        [
            sys.executable,
            "-m",
            "coderelay",
            "--terminal-url",
            "ws://127.0.0.1:9/python-terminal",
            "--log-file",
            str(tmp_path / "cr.log"),
            "run",
            str(source),
            "--timeout",
            "10",
        ],
        capture_output=True,
        text=True,
        check=False,
        env=_env_with_pythonpath(tmp_path),
        stdin=subprocess.DEVNULL,
    )

    assert completed.returncode == 4
    assert "[Connection error]" in completed.stdout
