#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

"""
CSAF profiles conformance.

Each profile is an entry of the static ``PROFILES`` table: the document
category it applies to and the ordered list of rules a document of that
category must follow on top of the schema. The rules are evaluated in table
order and all the violations are reported.
"""

from typing import Callable
from typing import NamedTuple
from typing import Optional

from csaf_toolkit import CSAFToolkitError
from csaf_toolkit import logger
from csaf_toolkit.csaf import ReferenceCategory
from csaf_toolkit.utils import join_pointer


class ConfigurationError(CSAFToolkitError):
    """The provided profile tag is not known."""

    def __init__(self, tag):
        self.tag = tag
        available = ", ".join(PROFILES)
        super().__init__(f'Unknown profile "{tag}". Available profiles: {available}')


class ProfileViolation(CSAFToolkitError):
    """The document does not conform to a profile."""

    def __init__(self, violations):
        self.violations = list(violations)
        details = "; ".join(f"{v.rule} at {v.path}" for v in self.violations)
        super().__init__(f"{len(self.violations)} profile violation(s): {details}")


class Violation(NamedTuple):
    profile: str
    rule: str
    path: str
    message: str = ""


class Rule(NamedTuple):
    name: str
    check: Callable


class Profile(NamedTuple):
    tag: str
    category: Optional[str]
    rules: tuple


VEX_STATUS_CATEGORIES = (
    "fixed",
    "known_affected",
    "known_not_affected",
    "under_investigation",
)

DOCUMENT_NOTE_CATEGORIES = ("description", "details", "general", "summary")


def check_document_category(advisory, profile):
    if advisory.document.category != profile.category:
        yield "/document/category", (
            f'Document category "{advisory.document.category}" is not "{profile.category}".'
        )


def check_missing_document_notes(advisory, profile):
    notes = advisory.document.notes or []
    if not any(note.category.value in DOCUMENT_NOTE_CATEGORIES for note in notes):
        categories = ", ".join(DOCUMENT_NOTE_CATEGORIES)
        yield "/document/notes", f"At least one document note of category {categories} is required."


def check_missing_document_references(advisory, profile):
    references = advisory.document.references or []
    if not any(reference.category == ReferenceCategory.external for reference in references):
        yield "/document/references", "At least one external document reference is required."


def check_unexpected_vulnerabilities(advisory, profile):
    if advisory.vulnerabilities:
        yield "/vulnerabilities", "Vulnerabilities are not allowed."


def check_missing_product_tree(advisory, profile):
    if not advisory.product_tree:
        yield "/product_tree", "A product tree is required."


def check_missing_vulnerabilities(advisory, profile):
    if not advisory.vulnerabilities:
        yield "/vulnerabilities", "At least one vulnerability is required."


def iter_vulnerabilities(advisory):
    for index, vulnerability in enumerate(advisory.vulnerabilities or []):
        yield join_pointer("/vulnerabilities", index), vulnerability


def check_missing_vulnerability_notes(advisory, profile):
    for path, vulnerability in iter_vulnerabilities(advisory):
        if not vulnerability.notes:
            yield join_pointer(path, "notes"), "Vulnerability notes are required."


def check_missing_vulnerability_id(advisory, profile):
    for path, vulnerability in iter_vulnerabilities(advisory):
        if not (vulnerability.cve or vulnerability.ids):
            yield path, "Either a cve or ids are required."


def has_product_status(vulnerability):
    product_status = vulnerability.product_status
    return bool(product_status and next(product_status.iter_product_ids(), None))


def check_missing_product_status(advisory, profile):
    for path, vulnerability in iter_vulnerabilities(advisory):
        if not has_product_status(vulnerability):
            yield path, "Vulnerability has no product status."


def iter_product_status(advisory):
    """Yield (vulnerability, path, category, product_id) for each product status entry."""
    for path, vulnerability in iter_vulnerabilities(advisory):
        if not vulnerability.product_status:
            continue
        for category, index, product_id in vulnerability.product_status.iter_product_ids():
            entry_path = join_pointer(path, "product_status", category, index)
            yield vulnerability, entry_path, category, product_id


def check_status_category(advisory, profile):
    for _, path, category, product_id in iter_product_status(advisory):
        if category not in VEX_STATUS_CATEGORIES:
            yield path, f'Product "{product_id}" status "{category}" is not allowed.'


def check_ambiguous_product_status(advisory, profile):
    for path, vulnerability in iter_vulnerabilities(advisory):
        if not vulnerability.product_status:
            continue

        seen = {}
        for category, index, product_id in vulnerability.product_status.iter_product_ids():
            first_category = seen.setdefault(product_id, category)
            if first_category != category:
                yield join_pointer(path, "product_status", category, index), (
                    f'Product "{product_id}" is both "{first_category}" and "{category}".'
                )


def iter_referenced_product_ids(advisory, vulnerability):
    """
    Yield (tokens, product_id) for each product referenced by `vulnerability`,
    with the products of the referenced groups expanded.
    """
    for tokens, kind, identifier in vulnerability.iter_references():
        if tokens[0] == "product_status":
            continue
        if kind == "group_id":
            for product_id in advisory.get_group_product_ids(identifier) or []:
                yield tokens, product_id
        else:
            yield tokens, identifier


def check_unassigned_product(advisory, profile):
    for path, vulnerability in iter_vulnerabilities(advisory):
        if not vulnerability.product_status:
            continue

        product_status = vulnerability.product_status
        assigned = {product_id for _, _, product_id in product_status.iter_product_ids()}
        reported = set()
        for tokens, product_id in iter_referenced_product_ids(advisory, vulnerability):
            if product_id in assigned or product_id in reported:
                continue
            reported.add(product_id)
            yield join_pointer(path, *tokens), f'Product "{product_id}" has no product status.'


def get_covered_product_ids(advisory, items):
    product_ids = set()
    for item in items:
        product_ids.update(item.product_ids or [])
        for group_id in item.group_ids or []:
            product_ids.update(advisory.get_group_product_ids(group_id) or [])
    return product_ids


def check_missing_impact_statement(advisory, profile):
    for vulnerability, path, category, product_id in iter_product_status(advisory):
        if category != "known_not_affected":
            continue
        impact_threats = [
            threat for threat in vulnerability.threats or [] if threat.category.value == "impact"
        ]
        statements = [*(vulnerability.flags or []), *impact_threats]
        if product_id not in get_covered_product_ids(advisory, statements):
            yield path, f'Product "{product_id}" has no impact statement.'


def check_missing_action_statement(advisory, profile):
    for vulnerability, path, category, product_id in iter_product_status(advisory):
        if category != "known_affected":
            continue
        if product_id not in get_covered_product_ids(advisory, vulnerability.remediations or []):
            yield path, f'Product "{product_id}" has no action statement.'


PROFILES = {
    "BASE": Profile(tag="BASE", category=None, rules=()),
    "SECURITY_INCIDENT_RESPONSE": Profile(
        tag="SECURITY_INCIDENT_RESPONSE",
        category="csaf_security_incident_response",
        rules=(
            Rule("document_category", check_document_category),
            Rule("missing_document_notes", check_missing_document_notes),
            Rule("missing_document_references", check_missing_document_references),
        ),
    ),
    "INFORMATIONAL_ADVISORY": Profile(
        tag="INFORMATIONAL_ADVISORY",
        category="csaf_informational_advisory",
        rules=(
            Rule("document_category", check_document_category),
            Rule("missing_document_notes", check_missing_document_notes),
            Rule("missing_document_references", check_missing_document_references),
            Rule("unexpected_vulnerabilities", check_unexpected_vulnerabilities),
        ),
    ),
    "SECURITY_ADVISORY": Profile(
        tag="SECURITY_ADVISORY",
        category="csaf_security_advisory",
        rules=(
            Rule("document_category", check_document_category),
            Rule("missing_product_tree", check_missing_product_tree),
            Rule("missing_vulnerabilities", check_missing_vulnerabilities),
            Rule("missing_vulnerability_notes", check_missing_vulnerability_notes),
            Rule("missing_product_status", check_missing_product_status),
        ),
    ),
    "VEX": Profile(
        tag="VEX",
        category="csaf_vex",
        rules=(
            Rule("document_category", check_document_category),
            Rule("missing_product_tree", check_missing_product_tree),
            Rule("missing_vulnerabilities", check_missing_vulnerabilities),
            Rule("missing_vulnerability_notes", check_missing_vulnerability_notes),
            Rule("missing_vulnerability_id", check_missing_vulnerability_id),
            Rule("missing_product_status", check_missing_product_status),
            Rule("status_category", check_status_category),
            Rule("ambiguous_product_status", check_ambiguous_product_status),
            Rule("unassigned_product", check_unassigned_product),
            Rule("missing_impact_statement", check_missing_impact_statement),
            Rule("missing_action_statement", check_missing_action_statement),
        ),
    ),
}


def get_profile(tag):
    """
    Return the Profile for the provided `tag`, case insensitive.
    Raise a ConfigurationError if the tag is not known.
    """
    profile = PROFILES.get(str(tag).upper())
    if not profile:
        raise ConfigurationError(tag)
    return profile


def get_profile_for_category(category):
    """Return the Profile that applies to a document `category`, the BASE profile by default."""
    for profile in PROFILES.values():
        if profile.category and profile.category == category:
            return profile
    return PROFILES["BASE"]


def validate(advisory, tag):
    """
    Return the list of Violation of the `advisory` document for the profile
    `tag`, in rule order. An empty list means the document is conformant.
    """
    profile = get_profile(tag)

    violations = []
    for rule in profile.rules:
        for path, message in rule.check(advisory, profile):
            violations.append(Violation(profile.tag, rule.name, path, message))

    logger.debug(f"{profile.tag} profile: {len(violations)} violation(s)")
    return violations


def assert_conformant(advisory, tag):
    """Raise a ProfileViolation if the `advisory` does not conform to the profile `tag`."""
    if violations := validate(advisory, tag):
        raise ProfileViolation(violations)
