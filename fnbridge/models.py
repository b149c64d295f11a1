"""
Tool-facing view models for Cloud Functions metadata, logs and metrics.

Every model is built fresh from an upstream response for a single request
and is never mutated afterwards.  ``to_dict()`` produces the camelCase shape
returned to the assistant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Dict, Optional, Union


@dataclass(frozen=True)
class EventTrigger:
    event_type: Optional[str] = None
    resource: Optional[str] = None
    service: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "eventType": self.event_type,
            "resource": self.resource,
            "service": self.service,
        }


@dataclass(frozen=True)
class FunctionDescriptor:
    """Normalized metadata for one deployed Cloud Function.

    ``name`` is the bare function name, i.e. the last ``/`` segment of the
    upstream resource name.  Fields the upstream record leaves unset are
    ``None``.
    """

    name: str
    status: Optional[str] = None
    entry_point: Optional[str] = None
    runtime: Optional[str] = None
    timeout: Optional[str] = None
    available_memory_mb: Optional[int] = None
    service_account_email: Optional[str] = None
    update_time: Optional[str] = None
    version_id: Optional[int] = None
    environment_variables: Dict[str, str] = field(default_factory=dict)
    build_id: Optional[str] = None
    ingress_settings: Optional[str] = None
    uri: Optional[str] = None
    event_trigger: Optional[EventTrigger] = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status,
            "entryPoint": self.entry_point,
            "runtime": self.runtime,
            "timeout": self.timeout,
            "availableMemoryMb": self.available_memory_mb,
            "serviceAccountEmail": self.service_account_email,
            "updateTime": self.update_time,
            "versionId": self.version_id,
            "environmentVariables": dict(self.environment_variables),
            "buildId": self.build_id,
            "ingressSettings": self.ingress_settings,
            "uri": self.uri,
            "eventTrigger": (
                self.event_trigger.to_dict() if self.event_trigger else None
            ),
        }


# ---------------------------------------------------------------------------
# Source location — exactly one of four variants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RepositorySource:
    type: ClassVar[str] = "repository"

    url: str
    deployed_url: Optional[str] = None

    def to_dict(self) -> dict:
        return {"type": self.type, "url": self.url, "deployedUrl": self.deployed_url}


@dataclass(frozen=True)
class ArchiveSource:
    type: ClassVar[str] = "archive"

    source_archive_url: str

    def to_dict(self) -> dict:
        return {"type": self.type, "sourceArchiveUrl": self.source_archive_url}


@dataclass(frozen=True)
class DownloadSource:
    type: ClassVar[str] = "download"

    download_url: str

    def to_dict(self) -> dict:
        return {"type": self.type, "downloadUrl": self.download_url}


@dataclass(frozen=True)
class UnavailableSource:
    type: ClassVar[str] = "unavailable"

    message: str
    function: str

    def to_dict(self) -> dict:
        return {"type": self.type, "message": self.message, "function": self.function}


SourceLocation = Union[RepositorySource, ArchiveSource, DownloadSource, UnavailableSource]


# ---------------------------------------------------------------------------
# Logs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogEntry:
    timestamp: str = ""
    severity: str = ""
    message: str = ""
    trace: str = ""

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "severity": self.severity,
            "message": self.message,
            "trace": self.trace,
        }


@dataclass(frozen=True)
class ErrorLogEntry(LogEntry):
    stack: str = ""

    def to_dict(self) -> dict:
        result = super().to_dict()
        result["stack"] = self.stack
        return result


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeRange:
    start: str
    end: str
    hours: float

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end, "hours": self.hours}


@dataclass(frozen=True)
class Metrics:
    total_executions: int
    total_errors: int
    time_range: TimeRange

    @property
    def success_rate(self) -> float:
        if not self.total_executions:
            return 100
        return (1 - self.total_errors / self.total_executions) * 100

    def to_dict(self) -> dict:
        return {
            "totalExecutions": self.total_executions,
            "totalErrors": self.total_errors,
            "successRate": self.success_rate,
            "timeRange": self.time_range.to_dict(),
        }

