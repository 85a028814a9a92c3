"""Mapping of engine errors onto HTTP responses."""

from fastapi import HTTPException

from ...engine import ContactBusyError, SessionNotFoundError


def to_http_exception(error: Exception) -> HTTPException:
    """409 for a busy contact, 404 for an unknown one, 500 otherwise."""
    if isinstance(error, HTTPException):
        return error
    if isinstance(error, ContactBusyError):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))
