from __future__ import annotations

from fastapi import HTTPException, status


class PunchEngineError(HTTPException):
    code = "PunchEngineError"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=self.http_status, detail=detail)


class AlreadyPunchedIn(PunchEngineError):
    code = "AlreadyPunchedIn"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = "You already have an active punch. Please clock out first.") -> None:
        super().__init__(detail)


class NoActivePunch(PunchEngineError):
    code = "NoActivePunch"
    http_status = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: str = "No active punch found") -> None:
        super().__init__(detail)


class InvalidInterval(PunchEngineError):
    code = "InvalidInterval"


class InvalidDuration(PunchEngineError):
    code = "InvalidDuration"


class InvalidRequest(PunchEngineError):
    code = "InvalidRequest"


class NotAuthenticated(PunchEngineError):
    code = "NotAuthenticated"
    http_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Not authenticated") -> None:
        super().__init__(detail)


class Forbidden(PunchEngineError):
    code = "Forbidden"
    http_status = status.HTTP_403_FORBIDDEN


class WorkOrderClosed(PunchEngineError):
    code = "WorkOrderClosed"
    http_status = status.HTTP_403_FORBIDDEN


class NotFound(PunchEngineError):
    code = "NotFound"
    http_status = status.HTTP_404_NOT_FOUND


class TaskHasPunches(PunchEngineError):
    code = "TaskHasPunches"
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = "Tasks with recorded punches cannot be deleted") -> None:
        super().__init__(detail)
