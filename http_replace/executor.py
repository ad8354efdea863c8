"""Rule Executor - Runs one replace rule against one text.

Pipeline: validate -> resolve -> build -> send -> unwrap body -> extract.
Each stage reports to the diagnostic sink under a single trace id. Failures
never escape execute(): the result is either the replaced text or None.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Callable

from http_replace.diagnostics import DiagnosticSink, LoggingSink, Stage
from http_replace.extractor import extract_with_outcome
from http_replace.models import ProbeReport, ReplaceRule
from http_replace.request_builder import ConfigurationError, build_request
from http_replace.resolver import resolve
from http_replace.transport import Transport, TransportError


def new_trace_id() -> str:
    return uuid.uuid4().hex[:12]


class RuleExecutor:
    """Executes replace rules through a shared transport.

    Usage:
        with HttpxTransport(timeout=10.0) as transport:
            executor = RuleExecutor(transport)
            replaced = executor.execute(rule, "some text")
            if replaced is None:
                ...  # keep the original text

    A single executor may be used from several threads at once; every
    invocation keeps its own state.
    """

    def __init__(
        self,
        transport: Transport,
        sink: DiagnosticSink | None = None,
        trace_id_factory: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            transport: Performs HTTP requests (caller owns lifecycle).
            sink: Receives diagnostic entries; defaults to a LoggingSink.
            trace_id_factory: Produces per-invocation trace ids.
        """
        self._transport = transport
        self._sink = sink or LoggingSink()
        self._new_trace_id = trace_id_factory or new_trace_id

    def execute(self, rule: ReplaceRule, text: str) -> str | None:
        """Run rule against text.

        Returns:
            The extracted value, the raw body when there is no path or the
            path does not apply, or None if no response body was obtained.
        """
        return self.probe(rule, text).result

    def probe(self, rule: ReplaceRule, text: str) -> ProbeReport:
        """Run rule against text and return everything the invocation saw."""
        trace_id = self._new_trace_id()
        report = ProbeReport(trace_id=trace_id, rule=rule)

        def record(stage: Stage, details: str, error: BaseException | None = None) -> None:
            self._sink.record(trace_id, stage, details, error)

        if not rule.has_url:
            report.error = "Rule has no URL"
            record(Stage.VALIDATE, "rule has no URL, request not attempted")
            return report

        resolution = resolve(rule, text)
        record(Stage.RESOLVE, f"http replace request {rule.method.value} {rule.url}")
        for problem in resolution.problems:
            record(Stage.RESOLVE, f"{problem}; using empty mapping")
        if resolution.headers:
            record(Stage.RESOLVE, f"headers: {resolution.headers}")
        if resolution.params:
            record(Stage.RESOLVE, f"params: {resolution.params}")

        try:
            request = build_request(
                rule.method,
                rule.url,
                resolution.headers,
                resolution.params,
                rule.post_encoding,
            )
        except ConfigurationError as e:
            report.error = str(e)
            record(Stage.BUILD, "request could not be built", e)
            return report
        report.request = request

        try:
            response = self._transport.send(request)
        except TransportError as e:
            report.error = str(e)
            record(Stage.SEND, "http replace error", e)
            return report
        report.response = response

        if response.body is None:
            report.error = f"Response {response.status_code} has no body"
            record(Stage.RESPONSE, f"status {response.status_code}, no body")
            return report
        record(Stage.RESPONSE, f"status {response.status_code}, body: {response.body}")

        extraction = extract_with_outcome(response.body, rule.extraction_path)
        if extraction.reason is not None:
            record(Stage.EXTRACT, f"{extraction.reason}; using raw body")
        record(Stage.EXTRACT, f"http replace result {extraction.value}")

        report.result = extraction.value
        report.extracted = extraction.matched
        return report


async def execute_in_thread(
    executor: RuleExecutor, rule: ReplaceRule, text: str
) -> str | None:
    """Run executor.execute on a worker thread and await the result."""
    return await asyncio.to_thread(executor.execute, rule, text)
