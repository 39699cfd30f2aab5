#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

import hashlib
import re

ARRAY_INDEX_PATTERN = re.compile(r"0|[1-9][0-9]*")


def sha1(content):
    """Return the sha1 hash of the given content."""
    return hashlib.sha1(content).hexdigest()  # nosec


def escape_pointer_token(token):
    """Escape a single JSON Pointer reference token, see RFC 6901."""
    return str(token).replace("~", "~0").replace("/", "~1")


def unescape_pointer_token(token):
    return token.replace("~1", "/").replace("~0", "~")


def is_array_index(token):
    """Return True if `token` is a RFC 6901 array index, without leading zeros."""
    return bool(ARRAY_INDEX_PATTERN.fullmatch(token))


def join_pointer(pointer, *tokens):
    """
    Return the JSON Pointer built from the base `pointer` and `tokens`.
    >>> join_pointer("", "vulnerabilities", 0)
    '/vulnerabilities/0'
    >>> join_pointer("/document", "publisher")
    '/document/publisher'
    """
    for token in tokens:
        pointer = f"{pointer}/{escape_pointer_token(token)}"
    return pointer


def split_pointer(pointer):
    """
    Return the list of reference tokens of a JSON Pointer.
    The empty string is the pointer to the whole document.
    Raise a ValueError for a non-empty pointer that does not start with "/".
    """
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise ValueError(f'Invalid JSON Pointer: "{pointer}"')
    return [unescape_pointer_token(token) for token in pointer[1:].split("/")]


def resolve_pointer(data, pointer):
    """
    Return the value of the JSON-like `data` located at `pointer`.
    Raise a KeyError when the pointer does not resolve.
    """
    node = data
    for token in split_pointer(pointer):
        if isinstance(node, dict) and token in node:
            node = node[token]
        elif isinstance(node, list) and is_array_index(token) and int(token) < len(node):
            node = node[int(token)]
        else:
            raise KeyError(pointer)
    return node


def is_json_value(value):
    """Return True if `value` is made only of JSON compatible types."""
    if value is None or isinstance(value, (str, bool, int)):
        return True
    if isinstance(value, float):
        return value == value and value not in (float("inf"), float("-inf"))
    if isinstance(value, list):
        return all(is_json_value(item) for item in value)
    if isinstance(value, dict):
        return all(isinstance(key, str) and is_json_value(item) for key, item in value.items())
    return False
