"""
Decorators
----------

Decorators that take care of the JSON going in and out of the views.
``@expects`` validates the request body before the view runs, and
``@returns`` dumps whatever the view returns through a schema, so the
views themselves only deal with plain dictionaries.
"""

from functools import wraps
from http import HTTPStatus
from json import JSONDecodeError
from typing import Optional, Tuple, Union

from aiohttp import web
from aiohttp.web_urldispatcher import View
from marshmallow import Schema, ValidationError
from marshmallow_jsonschema import JSONSchema

from psrental.serializer.jsend import JSendSchema, JSendStatus

_response_schema = JSendSchema()


def _fail(message: str, status: HTTPStatus = HTTPStatus.BAD_REQUEST, **data) -> web.Response:
    data["message"] = message
    return web.json_response(_response_schema.dump({
        "status": JSendStatus.FAIL,
        "data": data
    }), status=status)


def expects(schema: Optional[Schema], into="data"):
    """
    Validates the JSON body of the request against a schema and stores
    the loaded data on the request under ``into``.

    .. code:: python

        @expects(AddTimeSchema())
        async def post(self):
            minutes = self.request["data"]["minutes"]

    A body that is missing, malformed, or invalid is answered with a
    JSend failure that includes the JSON schema of the expected body.
    """

    if schema is None:
        return lambda x: x

    if not isinstance(schema, Schema):
        raise TypeError(f"Expected a Schema, got {type(schema)}")

    json_schema = JSONSchema().dump(schema)["definitions"][type(schema).__name__]

    def decorator(original_function):

        @wraps(original_function)
        async def new_func(self: View, **kwargs):

            if not self.request.body_exists or not self.request.content_type == "application/json":
                return _fail(
                    f"This route ({self.request.method}: {self.request.rel_url}) only accepts JSON.",
                    schema=json_schema
                )

            try:
                self.request[into] = schema.load(await self.request.json())
            except JSONDecodeError as err:
                return _fail("Could not parse supplied JSON.", errors=err.args)
            except ValidationError as err:
                return _fail("The request did not validate properly.", errors=err.messages, schema=json_schema)

            return await original_function(self, **kwargs)

        return new_func

    return decorator


def returns(
    schema: Optional[Schema] = None, return_code: HTTPStatus = HTTPStatus.OK,
    **named_schema: Union[Schema, Tuple[Schema, HTTPStatus]]
):
    """
    Dumps the data returned by a view through a schema.

    With a single schema, the view returns the data. With named schemas,
    the view returns a ``(name, data)`` tuple and the matching schema (and
    optionally status code) is used.

    .. code:: python

        @returns(JSendSchema.of(device=DeviceSchema()))
        async def get(self, device):
            return {"status": JSendStatus.SUCCESS, "data": {"device": device.serialize(...)}}
    """

    if schema is None and not named_schema:
        return lambda x: x

    named_schema[None] = (schema, return_code)

    def decorator(original_function):

        @wraps(original_function)
        async def new_func(self: View, **kwargs):

            if schema:
                schema_name, response_data = None, await original_function(self, **kwargs)
            else:
                schema_name, response_data = await original_function(self, **kwargs)

            try:
                matched_schema = named_schema[schema_name]
                if isinstance(matched_schema, tuple):
                    matched_schema, matched_return_code = matched_schema
                else:
                    matched_return_code = return_code
                return web.json_response(matched_schema.dump(response_data), status=matched_return_code)
            except (ValidationError, KeyError) as err:
                return web.json_response(_response_schema.dump({
                    "status": JSendStatus.ERROR,
                    "data": {"errors": err.messages if isinstance(err, ValidationError) else list(err.args)},
                    "message": "We tried to send you data back, but it came out wrong.",
                }), status=HTTPStatus.INTERNAL_SERVER_ERROR)

        return new_func

    return decorator
