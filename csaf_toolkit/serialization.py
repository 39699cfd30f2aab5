#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

import copy
import json
import types
from typing import Annotated
from typing import Union
from typing import get_args
from typing import get_origin

from pydantic import BaseModel
from pydantic import ValidationError

from csaf_toolkit import CSAFToolkitError
from csaf_toolkit import logger
from csaf_toolkit.csaf import CommonSecurityAdvisoryFramework
from csaf_toolkit.csaf import StructuralError
from csaf_toolkit.csaf import get_error_pointer
from csaf_toolkit.csaf import get_wire_fields
from csaf_toolkit.utils import join_pointer
from csaf_toolkit.utils import resolve_pointer


class ParseError(CSAFToolkitError):
    """
    The wire input cannot be turned into a document.
    `errors` is a list of {"path", "type", "message"} dicts, `cause` is the
    StructuralError when a document invariant is violated.
    """

    def __init__(self, message, errors=None, cause=None):
        self.errors = errors or []
        self.cause = cause
        super().__init__(message)


def reject_duplicate_keys(pairs):
    data = {}
    for key, value in pairs:
        if key in data:
            raise ValueError(f'Duplicate object key: "{key}"')
        data[key] = value
    return data


def reject_constant(constant):
    raise ValueError(f'Invalid JSON constant: "{constant}"')


def get_model_type(annotation):
    """
    Return a (model_class, is_list) tuple for a field `annotation`.
    `model_class` is None when the annotation does not hold a model.
    """
    origin = get_origin(annotation)

    if origin is Annotated:
        return get_model_type(get_args(annotation)[0])

    if origin in (Union, types.UnionType):
        for argument in get_args(annotation):
            if argument is not type(None):
                return get_model_type(argument)

    if origin is list:
        model_class, _ = get_model_type(get_args(annotation)[0])
        return model_class, True

    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation, False

    return None, False


def extract_extensions(data, model_class, pointer, extensions):
    """
    Return a copy of the `data` dict stripped from the fields unknown to
    `model_class`, recursively.
    The unknown fields are collected in the `extensions` dict, keyed by the
    JSON Pointer of the node they were attached to.
    """
    if not isinstance(data, dict):
        return data

    wire_fields = get_wire_fields(model_class)
    known_fields = {}
    unknown_fields = {}

    for field_name, value in data.items():
        field = wire_fields.get(field_name)
        if not field:
            unknown_fields[field_name] = value
            continue

        field_model, is_list = get_model_type(field.annotation)
        field_pointer = join_pointer(pointer, field_name)
        if field_model and is_list and isinstance(value, list):
            value = [
                extract_extensions(
                    item, field_model, join_pointer(field_pointer, index), extensions
                )
                for index, item in enumerate(value)
            ]
        elif field_model and not is_list:
            value = extract_extensions(value, field_model, field_pointer, extensions)

        known_fields[field_name] = value

    if unknown_fields:
        extensions[pointer] = unknown_fields

    return known_fields


def get_validation_errors(validation_error):
    return [
        {
            "path": get_error_pointer(error["loc"]),
            "type": error["type"],
            "message": error["msg"],
        }
        for error in validation_error.errors()
    ]


def deserialize(content):
    """
    Return a CommonSecurityAdvisoryFramework document from the JSON `content`
    bytes or string.
    The fields that the model does not know are kept in the document
    `extensions`.
    Raise a ParseError when the content is not a valid document.
    """
    try:
        data = json.loads(
            content,
            object_pairs_hook=reject_duplicate_keys,
            parse_constant=reject_constant,
        )
    except ValueError as error:
        raise ParseError(
            f"Invalid JSON: {error}",
            errors=[{"path": "", "type": "json_invalid", "message": str(error)}],
        ) from error

    if not isinstance(data, dict):
        message = "The JSON root must be an object."
        raise ParseError(message, errors=[{"path": "", "type": "model_type", "message": message}])

    extensions = {}
    known_data = extract_extensions(data, CommonSecurityAdvisoryFramework, "", extensions)
    if extensions:
        logger.debug(f"Extension fields kept at: {', '.join(repr(path) for path in extensions)}")

    known_data["extensions"] = extensions
    try:
        return CommonSecurityAdvisoryFramework.model_validate_json(
            json.dumps(known_data), strict=True
        )
    except ValidationError as error:
        errors = get_validation_errors(error)
        raise ParseError(
            f"{len(errors)} validation error(s) for CSAF document", errors=errors
        ) from error
    except StructuralError as error:
        errors = [{"path": error.path, "type": error.invariant, "message": str(error)}]
        raise ParseError(str(error), errors=errors, cause=error) from error


def to_dict(advisory):
    """Return the wire JSON data of the `advisory` document, extensions included."""
    data = advisory.model_dump(mode="json", exclude_none=True)

    for pointer, fields in advisory.extensions.items():
        node = resolve_pointer(data, pointer)
        node.update(copy.deepcopy(dict(fields)))

    return data


def serialize(advisory, indent=2):
    """Return the UTF-8 encoded JSON bytes of the `advisory` document."""
    data = to_dict(advisory)
    return json.dumps(data, indent=indent, ensure_ascii=False).encode("utf-8")


def load(location):
    """Return a CommonSecurityAdvisoryFramework document from the JSON file at `location`."""
    with open(location, "rb") as f:
        return deserialize(f.read())
