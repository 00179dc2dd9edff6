"""Transport selection policy and construction."""

from __future__ import annotations

from typing import Protocol

from coderelay.config import AppConfig
from coderelay.execution.models import RunRequest, TransportKind
from coderelay.execution.oneshot import HttpRequester, OneShotTransport
from coderelay.execution.streaming import Connector, StreamingTransport
from coderelay.execution.transport import Spawn, Transport
from coderelay.languages import LanguageCatalog


def select_transport_kind(language_key: str, catalog: LanguageCatalog) -> TransportKind:
    """Interactive languages stream; everything else, unknown keys included, runs one-shot."""
    if catalog.is_interactive(language_key):
        return TransportKind.STREAMING
    return TransportKind.ONESHOT


class TransportFactory(Protocol):
    def __call__(self, kind: TransportKind, request: RunRequest) -> Transport: ...


def build_transport_factory(
    config: AppConfig,
    *,
    requester: HttpRequester | None = None,
    connector: Connector | None = None,
    spawn: Spawn | None = None,
) -> TransportFactory:
    def factory(kind: TransportKind, request: RunRequest) -> Transport:
        if kind == TransportKind.STREAMING:
            return StreamingTransport(
                config.terminal_url,
                open_timeout_seconds=config.open_timeout_seconds,
                connector=connector,
                spawn=spawn,
            )
        return OneShotTransport(
            config.api_url,
            request,
            timeout_seconds=config.request_timeout_seconds,
            requester=requester,
            spawn=spawn,
        )

    return factory
