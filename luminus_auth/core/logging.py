"""Protocol logging for the login and renewal flows.

Every HTTP exchange of a flow is recorded as an ``HTTPExchange`` and written
to the ``luminus_auth.protocol`` logger. Credentials, tokens and cookies are
redacted unless TRACE logging has been explicitly enabled.

Log levels:
- ERROR: Only log failed exchanges
- INFO: One line per exchange (method, URL, status, redirect target)
- DEBUG: Add request/response headers and timing
- TRACE: Add request/response bodies, unredacted (requires explicit enable)
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import httpx

# Custom log level for TRACE (below DEBUG)
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

logger = logging.getLogger("luminus_auth.protocol")


class LogLevel(IntEnum):
    """Protocol logging levels."""

    ERROR = logging.ERROR
    INFO = logging.INFO
    DEBUG = logging.DEBUG
    TRACE = TRACE


SENSITIVE_PATTERNS = [
    # Form bodies and URL fragments
    (re.compile(r"(password=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(__RequestVerificationToken=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(id_token=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(access_token=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"([#&?]code=)[^&\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # Headers, as "Name: value" lines or as bare header dict values
    (re.compile(r"(Authorization:\s*Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"^(Bearer\s+)[^\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(Cookie:\s*)[^\r\n]+", re.IGNORECASE), r"\1[REDACTED]"),
    (re.compile(r"(idsrv(?:\.[\w.]+)?=)[^;\s]+", re.IGNORECASE), r"\1[REDACTED]"),
    # Embedded login form JSON
    (re.compile(r'"(value)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
    (re.compile(r'"(password)"\s*:\s*"[^"]+"', re.IGNORECASE), r'"\1": "[REDACTED]"'),
]

SENSITIVE_HEADERS = {"cookie", "set-cookie", "authorization"}


def redact_sensitive(text: str) -> str:
    """Redact credentials, tokens and session cookies from text.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Text with sensitive data redacted.
    """
    result = text
    for pattern, replacement in SENSITIVE_PATTERNS:
        result = pattern.sub(replacement, result)
    return result


def _redact_header(name: str, value: str) -> str:
    if name.lower() in SENSITIVE_HEADERS:
        return "[REDACTED]"
    return redact_sensitive(value)


@dataclass
class HTTPExchange:
    """A single request/response pair. Redirects are never followed."""

    id: str
    timestamp: datetime
    method: str
    url: str
    request_headers: dict[str, str]
    request_body: str | None = None
    response_status: int | None = None
    response_headers: dict[str, str] = field(default_factory=dict)
    response_body: str | None = None
    duration_ms: float | None = None
    error: str | None = None

    @property
    def location(self) -> str | None:
        """Redirect target announced by the response, if any."""
        for name, value in self.response_headers.items():
            if name.lower() == "location":
                return value
        return None

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        """Convert to dictionary for serialization.

        Args:
            include_sensitive: If False, credentials, tokens and cookies are redacted.
        """

        def process(value: str | None) -> str | None:
            if value is None:
                return None
            return value if include_sensitive else redact_sensitive(value)

        def process_headers(headers: dict[str, str]) -> dict[str, str]:
            if include_sensitive:
                return dict(headers)
            return {k: _redact_header(k, v) for k, v in headers.items()}

        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "url": process(self.url),
            "request_headers": process_headers(self.request_headers),
            "request_body": process(self.request_body),
            "response_status": self.response_status,
            "response_headers": process_headers(self.response_headers),
            "response_body": process(self.response_body),
            "location": process(self.location),
            "duration_ms": self.duration_ms,
            "error": self.error,
        }

    def format_log(self, level: LogLevel, include_sensitive: bool = False) -> str:
        """Format the exchange for logging.

        Args:
            level: Log level determines how much detail to include.
            include_sensitive: If True, include raw sensitive data.
        """
        lines = []
        url = self.url if include_sensitive else redact_sensitive(self.url)

        status = self.response_status or "ERROR"
        summary = f"HTTP {self.method} {url} -> {status}"
        location = self.location
        if location:
            summary += f" (Location: {location if include_sensitive else redact_sensitive(location)})"
        lines.append(summary)

        if self.error:
            lines.append(f"  Error: {self.error}")

        if level <= LogLevel.DEBUG:
            if self.duration_ms is not None:
                lines.append(f"  Duration: {self.duration_ms:.1f}ms")

            lines.append("  Request Headers:")
            for name, value in self.request_headers.items():
                display_value = value if include_sensitive else _redact_header(name, value)
                lines.append(f"    {name}: {display_value}")

            if self.response_headers:
                lines.append("  Response Headers:")
                for name, value in self.response_headers.items():
                    display_value = value if include_sensitive else _redact_header(name, value)
                    lines.append(f"    {name}: {display_value}")

        if level <= LogLevel.TRACE:
            if self.request_body:
                body = self.request_body if include_sensitive else redact_sensitive(self.request_body)
                lines.append("  Request Body:")
                lines.append(f"    {body[:2000]}{'...' if len(body) > 2000 else ''}")

            if self.response_body:
                body = self.response_body if include_sensitive else redact_sensitive(self.response_body)
                lines.append("  Response Body:")
                lines.append(f"    {body[:2000]}{'...' if len(body) > 2000 else ''}")

        return "\n".join(lines)


@dataclass
class ProtocolLog:
    """Collects the exchanges of one login, renewal or discovery flow."""

    flow_id: str
    flow_type: str
    exchanges: list[HTTPExchange] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    def add_exchange(self, exchange: HTTPExchange) -> None:
        self.exchanges.append(exchange)

    def complete(self) -> None:
        self.completed_at = datetime.now(UTC)

    def to_dict(self, include_sensitive: bool = False) -> dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "flow_type": self.flow_type,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "exchanges": [e.to_dict(include_sensitive) for e in self.exchanges],
            "exchange_count": len(self.exchanges),
        }


class ProtocolLogger:
    """Configurable protocol logger for the authorization flows."""

    def __init__(
        self,
        level: LogLevel = LogLevel.INFO,
        trace_enabled: bool = False,
    ) -> None:
        """Initialize the protocol logger.

        Args:
            level: Minimum log level.
            trace_enabled: Whether TRACE level is enabled (for sensitive data).
        """
        self._level = level
        self._trace_enabled = trace_enabled
        self._current_log: ProtocolLog | None = None

    @property
    def level(self) -> LogLevel:
        return self._level

    @level.setter
    def level(self, value: LogLevel) -> None:
        self._level = value

    @property
    def trace_enabled(self) -> bool:
        return self._trace_enabled

    @trace_enabled.setter
    def trace_enabled(self, value: bool) -> None:
        self._trace_enabled = value

    @property
    def effective_level(self) -> LogLevel:
        """Get effective log level (TRACE only if explicitly enabled)."""
        if self._level == LogLevel.TRACE and not self._trace_enabled:
            return LogLevel.DEBUG
        return self._level

    @property
    def current_log(self) -> ProtocolLog | None:
        return self._current_log

    def start_flow(self, flow_id: str, flow_type: str) -> ProtocolLog:
        """Start collecting exchanges for a new flow.

        Args:
            flow_id: Unique identifier for the flow.
            flow_type: Type of flow ("login", "renew", ...).
        """
        self._current_log = ProtocolLog(flow_id=flow_id, flow_type=flow_type)
        logger.info(f"Started protocol logging for {flow_type} flow: {flow_id}")
        return self._current_log

    def end_flow(self) -> ProtocolLog | None:
        """End the current flow and return its log, or None if no flow was active."""
        if self._current_log:
            self._current_log.complete()
            log = self._current_log
            logger.info(
                f"Completed protocol logging for {log.flow_type} flow: {log.flow_id} "
                f"({len(log.exchanges)} exchanges)"
            )
            self._current_log = None
            return log
        return None

    def log_exchange(self, exchange: HTTPExchange) -> None:
        """Record an exchange in the current flow and emit it to the Python logger."""
        if self._current_log:
            self._current_log.add_exchange(exchange)

        effective = self.effective_level
        include_sensitive = self._trace_enabled and self._level <= LogLevel.TRACE

        if effective <= LogLevel.DEBUG:
            logger.debug(exchange.format_log(effective, include_sensitive))
        elif effective <= LogLevel.INFO:
            logger.info(exchange.format_log(effective, include_sensitive))

        if exchange.error:
            url = exchange.url if include_sensitive else redact_sensitive(exchange.url)
            logger.error(f"HTTP error: {exchange.method} {url}: {exchange.error}")


def _body_text(content: bytes) -> str | None:
    if not content:
        return None
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return "<binary content>"


class LoggingClient(httpx.Client):
    """HTTPX client that records every exchange and never follows redirects."""

    def __init__(
        self,
        protocol_logger: ProtocolLogger | None = None,
        **kwargs: Any,
    ) -> None:
        """Initialize the logging client.

        Args:
            protocol_logger: ProtocolLogger to use. Creates default if not provided.
            **kwargs: Additional arguments passed to httpx.Client.
        """
        self._protocol_logger = protocol_logger or ProtocolLogger()
        self._exchange_counter = 0
        kwargs["follow_redirects"] = False
        super().__init__(**kwargs)

    @property
    def protocol_logger(self) -> ProtocolLogger:
        return self._protocol_logger

    def request(self, method: str, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send a single request and log the exchange.

        Transport failures are logged and re-raised unchanged.
        """
        self._exchange_counter += 1
        start_time = time.perf_counter()
        kwargs.pop("follow_redirects", None)
        send_kwargs: dict[str, Any] = {}
        if "auth" in kwargs:
            send_kwargs["auth"] = kwargs.pop("auth")
        request = self.build_request(method, url, **kwargs)

        exchange = HTTPExchange(
            id=f"http_{self._exchange_counter:04d}",
            timestamp=datetime.now(UTC),
            method=request.method,
            url=str(request.url),
            request_headers=dict(request.headers),
            request_body=_body_text(request.content),
        )

        try:
            response = self.send(request, follow_redirects=False, **send_kwargs)
        except httpx.HTTPError as e:
            exchange.duration_ms = (time.perf_counter() - start_time) * 1000
            exchange.error = str(e) or type(e).__name__
            self._protocol_logger.log_exchange(exchange)
            raise

        exchange.duration_ms = (time.perf_counter() - start_time) * 1000
        exchange.response_status = response.status_code
        exchange.response_headers = dict(response.headers)
        try:
            exchange.response_body = response.text
        except (UnicodeDecodeError, LookupError):
            exchange.response_body = "<error reading body>"

        self._protocol_logger.log_exchange(exchange)
        return response


_global_logger: ProtocolLogger | None = None


def get_protocol_logger() -> ProtocolLogger:
    """Get the global protocol logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = ProtocolLogger()
    return _global_logger


def set_protocol_logger(logger_instance: ProtocolLogger) -> None:
    """Set the global protocol logger instance."""
    global _global_logger
    _global_logger = logger_instance


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    trace_enabled: bool = False,
    log_file: str | None = None,
) -> ProtocolLogger:
    """Configure protocol logging.

    Args:
        level: Log level (ERROR, INFO, DEBUG, TRACE) or string name.
        trace_enabled: Whether to enable TRACE level (includes passwords and tokens).
        log_file: Optional file path to write logs to.

    Returns:
        Configured ProtocolLogger, also installed as the global instance.
    """
    if isinstance(level, str):
        level_map = {
            "ERROR": LogLevel.ERROR,
            "INFO": LogLevel.INFO,
            "DEBUG": LogLevel.DEBUG,
            "TRACE": LogLevel.TRACE,
        }
        level = level_map.get(level.upper(), LogLevel.INFO)

    root = logging.getLogger("luminus_auth")
    root.setLevel(level)
    root.handlers.clear()

    # Console output goes to stderr so that printed tokens stay pipeable
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console_handler.setFormatter(formatter)
    root.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    protocol_logger = ProtocolLogger(level=level, trace_enabled=trace_enabled)
    set_protocol_logger(protocol_logger)

    if trace_enabled:
        logger.warning("TRACE logging enabled - passwords, tokens and cookies will be logged!")

    return protocol_logger
