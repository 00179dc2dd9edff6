"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import queue
import sys
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TextIO

from .config import AppConfig, load_config
from .errors import CodeRelayError, ExitCode, user_facing_error
from .execution.models import SessionState, TranscriptLine, TranscriptOrigin
from .execution.orchestrator import ExecutionOrchestrator
from .languages import LanguageCatalog, LanguageSpec, default_catalog
from .logging import configure_logging, default_log_path, normalize_level

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_POLL_INTERVAL = 0.05

OrchestratorFactory = Callable[[AppConfig, LanguageCatalog, str], ExecutionOrchestrator]


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _timeout_type(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--timeout must be a number") from exc
    if seconds <= 0:
        raise argparse.ArgumentTypeError("--timeout must be greater than zero")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="coderelay")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.toml")
    parser.add_argument("--api-url", default=None, help="Runner HTTP API base URL")
    parser.add_argument("--terminal-url", default=None, help="Runner interactive terminal websocket URL")
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("languages", help="List supported languages")

    template = commands.add_parser("template", help="Print the starter source for a language")
    template.add_argument("language")

    run = commands.add_parser("run", help="Run a source file on the remote runner")
    run.add_argument("source", help="Source file path, or - to read the program from stdin")
    run.add_argument("--language", default=None, help="Language key; inferred from the file extension by default")
    run.add_argument("--timeout", type=_timeout_type, default=None, help="Stop the run after this many seconds")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def resolve_config(namespace: argparse.Namespace) -> AppConfig:
    config = load_config(namespace.config)
    try:
        if namespace.api_url:
            config.api_url = namespace.api_url
        if namespace.terminal_url:
            config.terminal_url = namespace.terminal_url
        if namespace.log_level:
            config.log_level = namespace.log_level
    except ValueError as exc:
        raise CodeRelayError(
            "Invalid runner address.",
            code=ExitCode.CONFIG_ERROR,
            hint=str(exc).splitlines()[-1].strip() or "Check --api-url and --terminal-url.",
        ) from exc
    return config


def resolve_language(
    namespace: argparse.Namespace,
    catalog: LanguageCatalog,
    config: AppConfig,
) -> LanguageSpec:
    if namespace.language:
        return catalog.get(namespace.language)
    if namespace.source != "-":
        inferred = catalog.for_path(namespace.source)
        if inferred is not None:
            return inferred
    return catalog.get(config.default_language)


class TranscriptPrinter:
    """Writes transcript lines that have not been shown yet."""

    def __init__(self, stream: TextIO, *, echo_input: bool = False) -> None:
        self.stream = stream
        self.echo_input = echo_input
        self._printed = 0
        self._at_line_start = True

    def flush(self, lines: Sequence[TranscriptLine]) -> None:
        if len(lines) < self._printed:
            self._printed = 0
        for line in lines[self._printed :]:
            self._write_line(line)
        self._printed = len(lines)
        self.stream.flush()

    def finish(self) -> None:
        if not self._at_line_start:
            self._write("\n")
        self.stream.flush()

    def _write_line(self, line: TranscriptLine) -> None:
        if line.origin == TranscriptOrigin.USER:
            if self.echo_input:
                self._write(f"{line.text}\n")
            else:
                # The local terminal already echoed what was typed.
                self._at_line_start = True
            return
        if line.synthetic:
            if not self._at_line_start and not line.text.startswith("\n"):
                self._write("\n")
            self._write(f"{line.text}\n")
            return
        self._write(line.text)

    def _write(self, text: str) -> None:
        if not text:
            return
        self.stream.write(text)
        self._at_line_start = text.endswith("\n")


def _read_source(source: str, stdin: TextIO) -> str:
    if source == "-":
        return stdin.read()
    path = Path(source).expanduser()
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CodeRelayError(
            f"Cannot read source file: {path}",
            code=ExitCode.INVALID_ARGS,
            hint=exc.strerror or "Check the file path.",
        ) from exc


def _pump_stdin(stdin: TextIO, lines: queue.SimpleQueue[str | None]) -> None:
    try:
        for line in stdin:
            lines.put(line.rstrip("\r\n"))
    finally:
        lines.put(None)


def _default_orchestrator(config: AppConfig, catalog: LanguageCatalog, language: str) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(config=config, catalog=catalog, language=language)


def run_source(
    namespace: argparse.Namespace,
    config: AppConfig,
    *,
    catalog: LanguageCatalog,
    stdin: TextIO,
    stdout: TextIO,
    orchestrator_factory: OrchestratorFactory | None = None,
) -> int:
    logger = py_logging.getLogger("coderelay.cli")
    source_text = _read_source(namespace.source, stdin)
    language = resolve_language(namespace, catalog, config)
    factory = orchestrator_factory or _default_orchestrator
    printer = TranscriptPrinter(stdout, echo_input=not _is_tty(stdin))
    pending_lines: queue.SimpleQueue[str | None] = queue.SimpleQueue()
    deadline = None if namespace.timeout is None else time.monotonic() + namespace.timeout

    with factory(config, catalog, language.key) as orchestrator:
        orchestrator.run(source_text)
        if language.interactive and namespace.source != "-":
            reader = threading.Thread(
                target=_pump_stdin,
                args=(stdin, pending_lines),
                name="coderelay-stdin",
                daemon=True,
            )
            reader.start()
        try:
            while orchestrator.is_running:
                orchestrator.pump(timeout=_POLL_INTERVAL)
                _feed_pending_lines(orchestrator, pending_lines)
                printer.flush(orchestrator.transcript)
                if deadline is not None and time.monotonic() >= deadline and orchestrator.is_running:
                    logger.warning("Run timed out after %.1fs; stopping", namespace.timeout)
                    orchestrator.stop()
        except KeyboardInterrupt:
            orchestrator.stop()
        orchestrator.pump()
        printer.flush(orchestrator.transcript)
        printer.finish()
        state = orchestrator.state

    logger.debug("Run finished state=%s", state.value)
    if state == SessionState.COMPLETED:
        return int(ExitCode.SUCCESS)
    return int(ExitCode.RUNTIME_ERROR)


def _feed_pending_lines(orchestrator: ExecutionOrchestrator, lines: queue.SimpleQueue[str | None]) -> None:
    # Lines typed before the connection opens would never reach the program.
    while orchestrator.state == SessionState.STREAMING:
        try:
            line = lines.get_nowait()
        except queue.Empty:
            return
        if line is None:
            continue
        orchestrator.type_line(line)


def _is_tty(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except ValueError:
        return False


def list_languages(catalog: LanguageCatalog, stdout: TextIO) -> int:
    for spec in catalog.list_languages():
        mode = "interactive" if spec.interactive else "batch"
        stdout.write(f"{spec.key:<12} {spec.runner_id:>4}  {spec.name:<12} {mode}\n")
    return int(ExitCode.SUCCESS)


def print_template(language: str, catalog: LanguageCatalog, stdout: TextIO) -> int:
    spec = catalog.get(language)
    stdout.write(spec.default_source)
    return int(ExitCode.SUCCESS)


def main(
    argv: Sequence[str] | None = None,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    orchestrator_factory: OrchestratorFactory | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(level="WARN", log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()

    in_stream = stdin or sys.stdin
    out_stream = stdout or sys.stdout
    catalog = default_catalog()
    try:
        config = resolve_config(namespace)
        logger = configure_logging(level=config.log_level, log_file=log_path)
        if namespace.command == "languages":
            return list_languages(catalog, out_stream)
        if namespace.command == "template":
            return print_template(namespace.language, catalog, out_stream)
        logger.debug("Starting run flow source=%s", namespace.source)
        return run_source(
            namespace,
            config,
            catalog=catalog,
            stdin=in_stream,
            stdout=out_stream,
            orchestrator_factory=orchestrator_factory,
        )
    except CodeRelayError as exc:
        logger.error(
            "Handled CodeRelayError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
