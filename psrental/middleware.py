"""
Middleware
----------
"""

from http import HTTPStatus

from aiohttp import web
from aiohttp.abc import Request
from aiohttp.web_middlewares import middleware

from psrental import logger
from psrental.errors import (
    SessionError, NotFoundError, ConflictError, UnauthorizedError, InsufficientFundsError, InvalidInputError
)
from psrental.serializer import JSendStatus, JSendSchema

response_schema = JSendSchema()

error_statuses = {
    NotFoundError: HTTPStatus.NOT_FOUND,
    ConflictError: HTTPStatus.CONFLICT,
    UnauthorizedError: HTTPStatus.UNAUTHORIZED,
    InsufficientFundsError: HTTPStatus.PAYMENT_REQUIRED,
    InvalidInputError: HTTPStatus.BAD_REQUEST,
}
"""Maps each rejection of the session engine to its HTTP status."""


@middleware
async def session_error_middleware(request: Request, handler):
    """
    Turns the errors raised by the session engine into JSend
    failures, so that the views only have to handle success.
    """
    try:
        return await handler(request)
    except SessionError as error:
        status = next(
            (code for error_type, code in error_statuses.items() if isinstance(error, error_type)),
            HTTPStatus.INTERNAL_SERVER_ERROR
        )
        logger.info("%s %s rejected: %s", request.method, request.rel_url, error.message)

        data = dict(error.data)
        data["message"] = error.message
        return web.json_response(response_schema.dump({
            "status": JSendStatus.FAIL,
            "data": data
        }), status=status)
