from typing import Any, ClassVar


class PipelineError(Exception):
    """Base for every failure a pipeline invocation can surface to a caller."""

    kind: ClassVar[str] = "InternalError"
    status_code: ClassVar[int] = 500

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        stage: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.stage = stage

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class MissingInput(PipelineError):
    kind = "MissingInput"
    status_code = 400


class InvalidInput(PipelineError):
    kind = "InvalidInput"
    status_code = 422


class UnreadablePdf(PipelineError):
    kind = "UnreadablePdf"
    status_code = 400

    def __init__(self, message: str, *, filename: str | None = None) -> None:
        super().__init__(message, details={"file": filename} if filename else None)
        self.filename = filename


class FileTooLarge(PipelineError):
    kind = "FileTooLarge"
    status_code = 413


class StorageUnavailable(PipelineError):
    kind = "StorageUnavailable"
    status_code = 502


class ReportNotFound(PipelineError):
    kind = "ReportNotFound"
    status_code = 404


class ModelUnavailable(PipelineError):
    kind = "ModelUnavailable"
    status_code = 502


class InvalidModelOutput(PipelineError):
    kind = "InvalidModelOutput"
    status_code = 502

    def __init__(
        self, message: str, *, raw: str, errors: list[str] | None = None
    ) -> None:
        details: dict[str, Any] = {"raw": raw}
        if errors:
            details["errors"] = errors
        super().__init__(message, details=details)
        self.raw = raw


class InternalError(PipelineError):
    kind = "InternalError"
    status_code = 500

    def __init__(self, message: str = "Internal processing failure") -> None:
        super().__init__(message)
