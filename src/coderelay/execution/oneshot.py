"""Single request/response execution over the runner's HTTP API."""

from __future__ import annotations

import json
import logging as py_logging
from functools import partial
from typing import Any, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from typing_extensions import TypedDict

from coderelay.errors import CodeRelayError, ExitCode
from coderelay.execution.models import RunRequest, TransportKind
from coderelay.execution.protocol import encode_error, encode_result
from coderelay.execution.transport import CallbackTransport, Spawn, describe_exception

logger = py_logging.getLogger(__name__)

NO_OUTPUT = "No output"

HttpResponse = tuple[int, str]


class RunBody(TypedDict):
    source_code: str
    language_id: int
    stdin: str


class RunStatus(TypedDict, total=False):
    id: int
    description: str


class RunResponse(TypedDict, total=False):
    stdout: str | None
    stderr: str | None
    compile_output: str | None
    status: RunStatus


class HttpRequester(Protocol):
    def __call__(self, url: str, body: bytes, headers: dict[str, str]) -> HttpResponse: ...


def _validate_api_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise CodeRelayError(
            f"Invalid runner API address: {url}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use an http:// or https:// runner URL.",
        )


def _default_requester(url: str, body: bytes, headers: dict[str, str], *, timeout: float) -> HttpResponse:
    _validate_api_url(url)
    request = Request(url, data=body, headers=headers, method="POST")
    try:
        with urlopen(request, timeout=timeout) as response:  # nosec B310
            status = int(getattr(response, "status", response.getcode()))
            return status, response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        payload = ""
        if exc.fp is not None:
            payload = exc.read().decode("utf-8", errors="replace")
        return exc.code, payload
    except (URLError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        raise CodeRelayError(
            "Runner API connection could not be established.",
            code=ExitCode.TRANSPORT_ERROR,
            hint=str(reason) or "Make sure the runner backend is reachable.",
        ) from exc


def aggregate_run_output(result: RunResponse | dict[str, Any]) -> str:
    """Fold a runner response into the single block shown in the terminal."""
    output = ""
    stdout = result.get("stdout")
    if isinstance(stdout, str) and stdout:
        output += stdout
    stderr = result.get("stderr")
    if isinstance(stderr, str) and stderr:
        output += stderr
    compile_output = result.get("compile_output")
    if isinstance(compile_output, str) and compile_output:
        output += f"Compilation Output:\n{compile_output}"
    if not output:
        status = result.get("status")
        description = status.get("description") if isinstance(status, dict) else None
        if isinstance(description, str) and description:
            output = f"Status: {description}"
    return output or NO_OUTPUT


def build_run_body(request: RunRequest) -> RunBody:
    return RunBody(
        source_code=request.source,
        language_id=request.language.runner_id,
        stdin=request.stdin,
    )


class OneShotTransport(CallbackTransport):
    kind = TransportKind.ONESHOT

    def __init__(
        self,
        api_url: str,
        request: RunRequest,
        *,
        timeout_seconds: float = 30.0,
        requester: HttpRequester | None = None,
        spawn: Spawn | None = None,
    ) -> None:
        super().__init__(spawn=spawn)
        self.url = f"{api_url.rstrip('/')}/run"
        self.request = request
        self._requester = requester or partial(_default_requester, timeout=timeout_seconds)

    def _run(self) -> None:
        body = json.dumps(build_run_body(self.request)).encode("utf-8")
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        logger.debug(
            "Submitting one-shot run url=%s language=%s stdin_bytes=%s",
            self.url,
            self.request.language.key,
            len(self.request.stdin),
        )
        try:
            status, payload = self._requester(self.url, body, headers)
        except Exception as exc:
            logger.warning("One-shot request failed url=%s error=%s", self.url, exc)
            self._emit_close(describe_exception(exc))
            return

        if not 200 <= status < 300:
            logger.warning("One-shot request rejected url=%s status=%s", self.url, status)
            self._emit_message(encode_error(f"HTTP error! status: {status}"))
        else:
            self._emit_message(self._result_frame(payload))
        self._emit_close(None)

    def _result_frame(self, payload: str) -> str:
        try:
            result = json.loads(payload)
        except json.JSONDecodeError:
            logger.error("Runner response was not valid JSON")
            return encode_error("Runner returned an invalid JSON response.")
        if not isinstance(result, dict):
            return encode_error("Runner returned an unexpected response shape.")
        return encode_result(aggregate_run_output(result))
