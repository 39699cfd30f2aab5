#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

from enum import Enum

from cvss import CVSS2
from cvss import CVSS3
from cvss import CVSSError


class SeverityClass(Enum):
    """Normalized severity shared by all the scoring systems."""

    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


GENERIC_SEVERITIES_VALUE = {
    "none": SeverityClass.NONE,
    "info": SeverityClass.NONE,
    "low": SeverityClass.LOW,
    "medium": SeverityClass.MEDIUM,
    "moderate": SeverityClass.MEDIUM,
    "high": SeverityClass.HIGH,
    "important": SeverityClass.HIGH,
    "critical": SeverityClass.CRITICAL,
}

# Lower bound of each class, highest first.
CVSS3_SEVERITY_SCALE = (
    (9.0, SeverityClass.CRITICAL),
    (7.0, SeverityClass.HIGH),
    (4.0, SeverityClass.MEDIUM),
    (0.1, SeverityClass.LOW),
    (0.0, SeverityClass.NONE),
)

# NVD scale, CVSS v2 has no "none" nor "critical" ratings.
CVSS2_SEVERITY_SCALE = (
    (7.0, SeverityClass.HIGH),
    (4.0, SeverityClass.MEDIUM),
    (0.0, SeverityClass.LOW),
)


def get_severity_from_score(score, scale=CVSS3_SEVERITY_SCALE):
    """
    Return the SeverityClass of a numeric `score` using the provided `scale`.
    >>> get_severity_from_score(7.5)
    <SeverityClass.HIGH: 'HIGH'>
    >>> get_severity_from_score(0.0)
    <SeverityClass.NONE: 'NONE'>
    """
    score = float(score)
    if not 0.0 <= score <= 10.0:
        raise ValueError(f"Score out of range: {score}")

    for lower_bound, severity in scale:
        if score >= lower_bound:
            return severity


def is_cvss3_vector(value):
    return value.upper().startswith("CVSS:3.")


def parse_cvss_vector(vector):
    """
    Return a cvss library object for the provided `vector`.
    CVSS v3 vectors are prefixed with their version, anything else is parsed
    as a CVSS v2 vector.
    Raise a ValueError if the vector is invalid.
    """
    cvss_class = CVSS3 if is_cvss3_vector(vector) else CVSS2
    try:
        return cvss_class(vector)
    except CVSSError as error:
        raise ValueError(f'Invalid CVSS vector "{vector}": {error}')


def get_severity_from_vector(vector):
    """Return the SeverityClass computed from a CVSS v2 or v3 `vector`."""
    cvss_object = parse_cvss_vector(vector)
    if isinstance(cvss_object, CVSS3):
        base_severity = cvss_object.severities()[0]
        return SeverityClass(base_severity.upper())
    return get_severity_from_score(cvss_object.base_score, scale=CVSS2_SEVERITY_SCALE)


def get_severity_class(value):
    """
    Return the SeverityClass for a qualitative label, a numeric score or a CVSS
    vector. Return None when the `value` is empty.
    Raise a ValueError when the `value` cannot be normalized.
    """
    if value is None or value == "":
        return None

    if isinstance(value, SeverityClass):
        return value

    if isinstance(value, (int, float)):
        return get_severity_from_score(value)

    value = str(value).strip()
    if generic_severity := GENERIC_SEVERITIES_VALUE.get(value.lower()):
        return generic_severity

    try:
        return get_severity_from_score(float(value))
    except ValueError:
        pass

    if "/" in value and ":" in value:
        return get_severity_from_vector(value)

    raise ValueError(f'Unknown severity: "{value}"')
