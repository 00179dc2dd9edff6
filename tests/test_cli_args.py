from __future__ import annotations

import io
import json
import queue
from collections.abc import Iterator
from contextlib import redirect_stderr
from pathlib import Path

from coderelay import cli
from coderelay.config import AppConfig
from coderelay.errors import ExitCode
from coderelay.execution import ExecutionOrchestrator, build_transport_factory
from coderelay.languages import LanguageCatalog, default_catalog


class _EchoTerminal:
    """Fake terminal connection that greets whoever answers its prompt."""

    def __init__(self, *, respond: bool = True) -> None:
        self.respond = respond
        self.sent: list[dict[str, object]] = []
        self._frames: queue.Queue[str | None] = queue.Queue()

    def __iter__(self) -> Iterator[str]:
        while True:
            frame = self._frames.get()
            if frame is None:
                return
            yield frame

    def send(self, message: str) -> None:
        payload = json.loads(message)
        self.sent.append(payload)
        if not self.respond:
            return
        if "code" in payload:
            self._push({"type": "stdout", "data": "Name? "})
        else:
            self._push({"type": "stdout", "data": f"Hi {payload['input']}\n"})
            self._push({"type": "exit", "code": 0})
            self._frames.put(None)

    def close(self) -> None:
        self._frames.put(None)

    def _push(self, frame: dict[str, object]) -> None:
        self._frames.put(json.dumps(frame))


def _streaming_factory(terminal: _EchoTerminal):
    def factory(config: AppConfig, catalog: LanguageCatalog, language: str) -> ExecutionOrchestrator:
        transports = build_transport_factory(config, connector=lambda *_: terminal)
        return ExecutionOrchestrator(config=config, catalog=catalog, transport_factory=transports, language=language)

    return factory


def _oneshot_factory(status: int, payload: str):
    def factory(config: AppConfig, catalog: LanguageCatalog, language: str) -> ExecutionOrchestrator:
        transports = build_transport_factory(
            config,
            requester=lambda *_: (status, payload),
            spawn=lambda target: target(),
        )
        return ExecutionOrchestrator(config=config, catalog=catalog, transport_factory=transports, language=language)

    return factory


def _base_args(tmp_path: Path) -> list[str]:
    return ["--config", str(tmp_path / "config.toml"), "--log-file", str(tmp_path / "coderelay.log")]


def test_cli_help_includes_public_flags() -> None:
    help_text = cli.build_parser().format_help()

    assert "--config" in help_text
    assert "--api-url" in help_text
    assert "--terminal-url" in help_text
    assert "--log-level" in help_text
    assert "--log-file" in help_text
    assert "run" in help_text


def test_missing_command_returns_usage_error() -> None:
    with redirect_stderr(io.StringIO()):
        code = cli.main([])

    assert code == 2


def test_invalid_log_level_returns_usage_error(tmp_path: Path) -> None:
    with redirect_stderr(io.StringIO()):
        code = cli.main([*_base_args(tmp_path), "--log-level", "chatty", "languages"])

    assert code == 2


def test_warning_alias_for_log_level_is_accepted(tmp_path: Path) -> None:
    code = cli.main([*_base_args(tmp_path), "--log-level", "warning", "languages"], stdout=io.StringIO())

    assert code == 0


def test_languages_lists_catalog(tmp_path: Path) -> None:
    out = io.StringIO()

    code = cli.main([*_base_args(tmp_path), "languages"], stdout=out)

    lines = out.getvalue().splitlines()
    assert code == 0
    assert len(lines) == len(default_catalog())
    assert lines[0].split()[:2] == ["python", "71"]
    assert lines[0].endswith("interactive")
    assert any(line.startswith("javascript") and line.endswith("batch") for line in lines)


def test_template_prints_starter_source(tmp_path: Path) -> None:
    out = io.StringIO()

    code = cli.main([*_base_args(tmp_path), "template", "java"], stdout=out)

    assert code == 0
    assert out.getvalue() == default_catalog().get("java").default_source


def test_unknown_language_reports_validation_error(tmp_path: Path) -> None:
    err = io.StringIO()
    with redirect_stderr(err):
        code = cli.main([*_base_args(tmp_path), "template", "cobol"], stdout=io.StringIO())

    assert code == int(ExitCode.VALIDATION_ERROR)
    assert "Unknown language: cobol" in err.getvalue()
    assert "python" in err.getvalue()


def test_invalid_api_url_reports_config_error(tmp_path: Path) -> None:
    err = io.StringIO()
    with redirect_stderr(err):
        code = cli.main([*_base_args(tmp_path), "--api-url", "ftp://runner", "languages"], stdout=io.StringIO())

    assert code == int(ExitCode.CONFIG_ERROR)
    assert "Invalid runner address" in err.getvalue()


def test_missing_source_file_reports_invalid_args(tmp_path: Path) -> None:
    err = io.StringIO()
    with redirect_stderr(err):
        code = cli.main([*_base_args(tmp_path), "run", str(tmp_path / "missing.py")], stdout=io.StringIO())

    assert code == int(ExitCode.INVALID_ARGS)
    assert "Cannot read source file" in err.getvalue()


def test_run_batch_language_prints_aggregated_output(tmp_path: Path) -> None:
    source = tmp_path / "hello.js"
    source.write_text("console.log('hello')\n", encoding="utf-8")
    out = io.StringIO()

    code = cli.main(
        [*_base_args(tmp_path), "run", str(source)],
        stdin=io.StringIO(""),
        stdout=out,
        orchestrator_factory=_oneshot_factory(200, json.dumps({"stdout": "hello\n"})),
    )

    assert code == 0
    assert out.getvalue() == "Running...\nhello\n"


def test_run_failure_returns_runtime_error(tmp_path: Path) -> None:
    source = tmp_path / "main.go"
    source.write_text("package main\n", encoding="utf-8")
    out = io.StringIO()

    code = cli.main(
        [*_base_args(tmp_path), "run", str(source)],
        stdin=io.StringIO(""),
        stdout=out,
        orchestrator_factory=_oneshot_factory(502, ""),
    )

    assert code == int(ExitCode.RUNTIME_ERROR)
    assert "[Error] HTTP error! status: 502" in out.getvalue()


def test_run_interactive_language_forwards_stdin_lines(tmp_path: Path) -> None:
    source = tmp_path / "greet.py"
    source.write_text('name = input("Name? ")\nprint(f"Hi {name}")\n', encoding="utf-8")
    terminal = _EchoTerminal()
    out = io.StringIO()

    code = cli.main(
        [*_base_args(tmp_path), "run", str(source), "--timeout", "5"],
        stdin=io.StringIO("Ada\n"),
        stdout=out,
        orchestrator_factory=_streaming_factory(terminal),
    )

    assert code == 0
    assert terminal.sent[0] == {"code": source.read_text(encoding="utf-8"), "input": "", "language": "python"}
    assert terminal.sent[1] == {"input": "Ada"}
    assert "Hi Ada\n" in out.getvalue()
    assert out.getvalue().endswith("\n[Process exited with code 0]\n")


def test_run_timeout_stops_silent_program(tmp_path: Path) -> None:
    source = tmp_path / "wait.py"
    source.write_text("input()\n", encoding="utf-8")
    out = io.StringIO()

    code = cli.main(
        [*_base_args(tmp_path), "run", str(source), "--timeout", "0.2"],
        stdin=io.StringIO(""),
        stdout=out,
        orchestrator_factory=_streaming_factory(_EchoTerminal(respond=False)),
    )

    assert code == int(ExitCode.RUNTIME_ERROR)
    assert "[Run cancelled]" in out.getvalue()


def test_log_file_flag_writes_to_requested_path(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "custom.log"

    code = cli.main(
        ["--config", str(tmp_path / "config.toml"), "--log-file", str(log_path), "--log-level", "DEBUG", "languages"],
        stdout=io.StringIO(),
    )

    assert code == 0
    assert log_path.exists()
