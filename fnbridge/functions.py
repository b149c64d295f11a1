"""
Cloud Functions manager.

Adapts the Cloud Functions v1 API, the Cloud Logging v2 API and plain HTTP
into a small set of operations with stable, tool-facing result shapes:

  - list functions / get one function's details
  - resolve where a function's source lives
  - fetch recent logs and error logs
  - invoke an HTTP-triggered function
  - approximate execution metrics from log counts

Every Google API call is a literal, read-only client method call.  Failures
are logged once and re-raised as typed errors (see fnbridge.errors); the only
degradation is source download URL generation in ``get_function_source``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any, NoReturn

import requests
from google.cloud.functions_v1 import CloudFunctionsServiceClient
from google.cloud.logging_v2.services.logging_service_v2 import LoggingServiceV2Client
from google.logging.type import log_severity_pb2
from google.protobuf.json_format import MessageToDict

from fnbridge.config import BridgeConfig
from fnbridge.errors import LocalValidationError, wrap_upstream_error
from fnbridge.models import (
    ArchiveSource,
    DownloadSource,
    ErrorLogEntry,
    EventTrigger,
    FunctionDescriptor,
    LogEntry,
    Metrics,
    RepositorySource,
    SourceLocation,
    TimeRange,
    UnavailableSource,
)

logger = logging.getLogger("fn-bridge.functions")

DEFAULT_LOG_LIMIT = 50
DEFAULT_ERROR_LIMIT = 10
DEFAULT_METRICS_HOURS = 24

_SOURCE_UNAVAILABLE_MESSAGE = (
    "Source code retrieval is unavailable for this function. "
    "Check deployment method."
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Field normalization helpers
# ---------------------------------------------------------------------------

def _short_name(resource_name: str | None) -> str:
    """'projects/p/locations/r/functions/fn' -> 'fn'"""
    if not resource_name:
        return ""
    return resource_name.rsplit("/", 1)[-1]


def _optional(value: Any) -> Any:
    """Map proto3 zero values ("" / 0 / unset) to None."""
    if value is None or value == "" or value == 0:
        return None
    return value


def _enum_name(value: Any) -> str | None:
    """Render a proto enum by name; unspecified values become None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    name = getattr(value, "name", None)
    if name is None:
        return str(value) if value else None
    if not value or name.endswith("_UNSPECIFIED"):
        return None
    return name


def _format_duration(value: Any) -> str | None:
    """Render a Duration in protobuf JSON form, e.g. '60s' or '1.5s'."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    else:
        seconds = float(value)
    if not seconds:
        return None
    if seconds.is_integer():
        return f"{int(seconds)}s"
    return f"{seconds:.9f}".rstrip("0") + "s"


def _format_time(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _rfc3339(value: datetime) -> str:
    """UTC timestamp with millisecond precision, as Cloud Logging filters expect."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + (
        f"{value.microsecond // 1000:03d}Z"
    )


def _to_builtin(value: Any) -> Any:
    """Convert proto-plus map/repeated composites into dicts and lists."""
    if isinstance(value, Mapping):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_to_builtin(v) for v in value]
    return value


def _event_trigger(func: Any) -> EventTrigger | None:
    trigger = getattr(func, "event_trigger", None)
    if not trigger:
        return None
    event_type = _optional(getattr(trigger, "event_type", None))
    resource = _optional(getattr(trigger, "resource", None))
    service = _optional(getattr(trigger, "service", None))
    if event_type is None and resource is None and service is None:
        return None
    return EventTrigger(event_type=event_type, resource=resource, service=service)


def _https_url(func: Any) -> str | None:
    trigger = getattr(func, "https_trigger", None)
    if not trigger:
        return None
    return _optional(getattr(trigger, "url", None))


def build_descriptor(func: Any) -> FunctionDescriptor:
    """Map an upstream CloudFunction record to a FunctionDescriptor."""
    env_vars = getattr(func, "environment_variables", None)
    return FunctionDescriptor(
        name=_short_name(func.name),
        status=_enum_name(func.status),
        entry_point=_optional(func.entry_point),
        runtime=_optional(func.runtime),
        timeout=_format_duration(func.timeout),
        available_memory_mb=_optional(func.available_memory_mb),
        service_account_email=_optional(func.service_account_email),
        update_time=_format_time(func.update_time),
        version_id=_optional(func.version_id),
        environment_variables=dict(env_vars) if env_vars else {},
        build_id=_optional(func.build_id),
        ingress_settings=_enum_name(func.ingress_settings),
        uri=_https_url(func),
        event_trigger=_event_trigger(func),
    )


# ---------------------------------------------------------------------------
# Log entry helpers
# ---------------------------------------------------------------------------

def _entry_payload(entry: Any) -> Any:
    """Return the entry's payload as a str, a dict, or None."""
    text = getattr(entry, "text_payload", None)
    if text:
        return text
    json_payload = getattr(entry, "json_payload", None)
    if json_payload:
        return _to_builtin(json_payload)
    proto_payload = getattr(entry, "proto_payload", None)
    type_url = getattr(proto_payload, "type_url", "") if proto_payload is not None else ""
    if type_url:
        try:
            return MessageToDict(proto_payload)
        except (TypeError, KeyError):
            # Payload type is not in the local descriptor pool.
            return {"@type": type_url}
    return None


def _dump(payload: Any) -> str:
    return json.dumps(payload, default=str)


def _entry_message(payload: Any) -> str:
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload
    message = payload.get("message") if isinstance(payload, dict) else None
    if message:
        return message if isinstance(message, str) else _dump(message)
    return _dump(payload)


def _entry_fields(entry: Any) -> dict:
    timestamp = getattr(entry, "timestamp", None)
    severity = getattr(entry, "severity", None)
    return {
        "timestamp": _format_time(timestamp) or "",
        "severity": _severity_name(severity),
        "trace": getattr(entry, "trace", None) or "",
    }


def _severity_name(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    name = getattr(value, "name", None)
    if name is not None:
        return name
    # LogEntry.severity is the raw protobuf LogSeverity enum, i.e. a plain int.
    try:
        return log_severity_pb2.LogSeverity.Name(int(value))
    except (TypeError, ValueError):
        return str(value)


def build_log_entry(entry: Any) -> LogEntry:
    payload = _entry_payload(entry)
    return LogEntry(message=_entry_message(payload), **_entry_fields(entry))


def build_error_log_entry(entry: Any) -> ErrorLogEntry:
    payload = _entry_payload(entry)
    stack = ""
    if isinstance(payload, dict) and payload.get("stack"):
        stack = str(payload["stack"])
    return ErrorLogEntry(
        message=_entry_message(payload), stack=stack, **_entry_fields(entry)
    )


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def _check_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise LocalValidationError(f"{name} must be a positive integer, got {value!r}")
    return value


def _check_hours(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise LocalValidationError(f"hours must be a positive number, got {value!r}")
    return value


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------

class FunctionsManager:
    """Cloud Functions operations for one project and region.

    The Cloud Functions client, the Cloud Logging client and the HTTP
    session are created once and shared by all calls; they are safe for
    concurrent use, so no locking is done here.
    """

    def __init__(
        self,
        config: BridgeConfig,
        functions_client: Any = None,
        logging_client: Any = None,
        http_session: Any = None,
    ):
        self.config = config
        self.project_id = config.project_id
        self.region = config.region
        self.timeout = config.timeout
        self._functions = functions_client or CloudFunctionsServiceClient()
        self._logging = logging_client or LoggingServiceV2Client()
        self._http = http_session or requests.Session()

    # -- resource names ------------------------------------------------------

    @property
    def parent(self) -> str:
        return f"projects/{self.project_id}/locations/{self.region}"

    def function_path(self, function_name: str) -> str:
        return f"{self.parent}/functions/{function_name}"

    @staticmethod
    def log_filter(
        function_name: str,
        errors_only: bool = False,
        since: str | None = None,
    ) -> str:
        """Build the Cloud Logging filter for one function's log entries."""
        parts = [
            f'resource.labels.function_name="{function_name}"',
            'resource.type="cloud_function"',
        ]
        if errors_only:
            parts.append("severity>=ERROR")
        if since:
            parts.append(f'timestamp>="{since}"')
        return " AND ".join(parts)

    # -- failure reporting -----------------------------------------------------

    def _fail(self, operation: str, function_name: str | None, exc: Exception) -> NoReturn:
        error = wrap_upstream_error(exc)
        logger.error(
            "%s failed for %s: %s",
            operation,
            function_name or self.parent,
            error,
            extra={
                "operation": operation,
                "function": function_name,
                "project": self.project_id,
                "region": self.region,
                "error_kind": error.kind,
            },
        )
        if error is exc:
            raise error
        raise error from exc

    # -- functions API -------------------------------------------------------

    def _get_function(self, function_name: str) -> Any:
        # HARDCODED read-only call
        return self._functions.get_function(
            request={"name": self.function_path(function_name)}, timeout=self.timeout
        )

    def list_functions(self) -> list[FunctionDescriptor]:
        """List every function under the configured project and region."""
        try:
            # HARDCODED read-only call
            response = self._functions.list_functions(
                request={"parent": self.parent}, timeout=self.timeout
            )
            functions = [build_descriptor(func) for func in response]
        except Exception as exc:
            self._fail("list_functions", None, exc)
        logger.info("Listed %d functions in %s", len(functions), self.parent)
        return functions

    def get_function_details(self, function_name: str) -> FunctionDescriptor:
        try:
            func = self._get_function(function_name)
            return build_descriptor(func)
        except Exception as exc:
            self._fail("get_function_details", function_name, exc)

    def get_function_source(self, function_name: str) -> SourceLocation:
        """Resolve where the function's source code can be found.

        Repository beats archive, archive beats a generated download URL.
        If the download URL cannot be generated the result is an
        ``UnavailableSource`` instead of an error.
        """
        try:
            func = self._get_function(function_name)
        except Exception as exc:
            self._fail("get_function_source", function_name, exc)

        repository = getattr(func, "source_repository", None)
        repository_url = _optional(getattr(repository, "url", None)) if repository else None
        if repository_url:
            return RepositorySource(
                url=repository_url,
                deployed_url=_optional(getattr(repository, "deployed_url", None)),
            )

        archive_url = _optional(getattr(func, "source_archive_url", None))
        if archive_url:
            return ArchiveSource(source_archive_url=archive_url)

        full_name = func.name or self.function_path(function_name)
        try:
            # HARDCODED read-only call
            response = self._functions.generate_download_url(
                request={"name": self.function_path(function_name)},
                timeout=self.timeout,
            )
            download_url = _optional(response.download_url)
        except Exception as exc:
            error = wrap_upstream_error(exc)
            logger.warning(
                "Could not get direct source for %s: %s",
                function_name,
                error,
                extra={
                    "operation": "get_function_source",
                    "function": function_name,
                    "error_kind": error.kind,
                },
            )
            return UnavailableSource(message=_SOURCE_UNAVAILABLE_MESSAGE, function=full_name)

        if not download_url:
            return UnavailableSource(message=_SOURCE_UNAVAILABLE_MESSAGE, function=full_name)
        return DownloadSource(download_url=download_url)

    # -- logging API ---------------------------------------------------------

    def _list_entries(self, log_filter: str, limit: int | None = None) -> list:
        """Run one Cloud Logging query, newest first.

        With *limit* the result is capped; without it every matching entry
        is read.
        """
        request: dict[str, Any] = {
            "resource_names": [f"projects/{self.project_id}"],
            "filter": log_filter,
            "order_by": "timestamp desc",
        }
        if limit is not None:
            request["page_size"] = limit
        # HARDCODED read-only call
        pager = self._logging.list_log_entries(request=request, timeout=self.timeout)
        entries = []
        for entry in pager:
            entries.append(entry)
            if limit is not None and len(entries) >= limit:
                break
        return entries

    def get_function_logs(
        self, function_name: str, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[LogEntry]:
        try:
            _check_positive_int("limit", limit)
            entries = self._list_entries(self.log_filter(function_name), limit)
            return [build_log_entry(entry) for entry in entries]
        except Exception as exc:
            self._fail("get_function_logs", function_name, exc)

    def get_function_errors(
        self, function_name: str, limit: int = DEFAULT_ERROR_LIMIT
    ) -> list[ErrorLogEntry]:
        try:
            _check_positive_int("limit", limit)
            entries = self._list_entries(
                self.log_filter(function_name, errors_only=True), limit
            )
            return [build_error_log_entry(entry) for entry in entries]
        except Exception as exc:
            self._fail("get_function_errors", function_name, exc)

    def get_function_metrics(
        self, function_name: str, hours: float = DEFAULT_METRICS_HOURS
    ) -> Metrics:
        """Approximate execution metrics by counting log lines.

        This counts log entries, not invocations, so functions that log
        several lines per request are over-counted.
        """
        try:
            _check_hours(hours)
            end_time = _utcnow()
            start_time = end_time - timedelta(hours=hours)
            since = _rfc3339(start_time)

            error_entries = self._list_entries(
                self.log_filter(function_name, errors_only=True, since=since)
            )
            all_entries = self._list_entries(self.log_filter(function_name, since=since))
        except Exception as exc:
            self._fail("get_function_metrics", function_name, exc)

        return Metrics(
            total_executions=len(all_entries),
            total_errors=len(error_entries),
            time_range=TimeRange(start=since, end=_rfc3339(end_time), hours=hours),
        )

    # -- HTTP ----------------------------------------------------------------

    def test_http_function(self, function_name: str, payload: Any = None) -> dict:
        """POST *payload* as JSON to an HTTP-triggered function.

        Returns ``{"statusCode": int, "response": parsed JSON or raw text}``.
        Non-2xx responses are returned, not raised.
        """
        # Failures here are logged by get_function_details itself.
        details = self.get_function_details(function_name)
        try:
            if not details.uri:
                raise LocalValidationError(
                    f"Function {function_name} does not have an HTTP URL. "
                    "It might not be an HTTP-triggered function."
                )
            try:
                body = json.dumps({} if payload is None else payload)
            except (TypeError, ValueError) as exc:
                raise LocalValidationError(
                    f"payload is not JSON-serializable: {exc}"
                ) from exc

            response = self._http.post(
                details.uri,
                data=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except Exception as exc:
            self._fail("test_http_function", function_name, exc)

        text = response.text
        try:
            data = json.loads(text)
        except ValueError:
            data = text
        logger.info(
            "Invoked %s: HTTP %s", function_name, response.status_code
        )
        return {"statusCode": response.status_code, "response": data}
