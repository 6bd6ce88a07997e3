from __future__ import annotations

from enum import Enum

from fastapi import HTTPException


class ErrorKind(str, Enum):
    UNKNOWN_FILTER_FIELD = "UnknownFilterField"
    FIELD_NOT_FILTERABLE = "FieldNotFilterable"
    INVALID_OPERATOR = "InvalidOperator"
    INVALID_FILTER_VALUE = "InvalidFilterValue"
    UNKNOWN_SORT_FIELD = "UnknownSortField"
    INVALID_TAG_FORMAT = "InvalidTagFormat"
    INVALID_PAGINATION = "InvalidPagination"
    UNSUPPORTED_CONTENT_TYPE = "UnsupportedContentType"
    QUERY_EXECUTION_FAILURE = "QueryExecutionFailure"
    NOT_FOUND = "NotFound"


class ListingError(HTTPException):
    kind: ErrorKind = ErrorKind.QUERY_EXECUTION_FAILURE
    status: int = 500

    def __init__(self, message: str):
        super().__init__(status_code=self.status, detail=message)
        self.message = message

    def payload(self) -> dict[str, str]:
        return {"detail": self.message, "kind": self.kind.value}


class UnknownFilterField(ListingError):
    kind = ErrorKind.UNKNOWN_FILTER_FIELD
    status = 400


class FieldNotFilterable(ListingError):
    kind = ErrorKind.FIELD_NOT_FILTERABLE
    status = 400


class InvalidOperator(ListingError):
    kind = ErrorKind.INVALID_OPERATOR
    status = 400


class InvalidFilterValue(ListingError):
    kind = ErrorKind.INVALID_FILTER_VALUE
    status = 400


class UnknownSortField(ListingError):
    kind = ErrorKind.UNKNOWN_SORT_FIELD
    status = 400


class InvalidTagFormat(ListingError):
    kind = ErrorKind.INVALID_TAG_FORMAT
    status = 400


class InvalidPagination(ListingError):
    kind = ErrorKind.INVALID_PAGINATION
    status = 400


class UnsupportedContentType(ListingError):
    kind = ErrorKind.UNSUPPORTED_CONTENT_TYPE
    status = 415


class QueryExecutionFailure(ListingError):
    kind = ErrorKind.QUERY_EXECUTION_FAILURE
    status = 500


class NotFound(ListingError):
    kind = ErrorKind.NOT_FOUND
    status = 404
