#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

"""
Synthesize CSAF VEX documents from external advisory records.

The record affected range is evaluated against all the versions known to a
package registry, and each version becomes a product of the document with a
known_affected, known_not_affected, or fixed status.
"""

import re
from datetime import datetime
from datetime import timezone
from typing import List
from typing import Optional
from typing import Union

from packageurl import PackageURL
from packaging.specifiers import SpecifierSet
from packaging.version import InvalidVersion
from packaging.version import Version
from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import constr
from pydantic import field_validator

from csaf_toolkit import VERSION
from csaf_toolkit import CSAFToolkitError
from csaf_toolkit import csaf
from csaf_toolkit import get_settings
from csaf_toolkit import logger
from csaf_toolkit.csaf import DateTimeT
from csaf_toolkit.csaf import StructuralError
from csaf_toolkit.csaf import UrlT
from csaf_toolkit.csaf import build_advisory
from csaf_toolkit.csaf import get_schema_error
from csaf_toolkit.profiles import ProfileViolation
from csaf_toolkit.profiles import assert_conformant
from csaf_toolkit.registry import PackageNotFound
from csaf_toolkit.registry import RegistryLookupError
from csaf_toolkit.registry import parse_package_identifier
from csaf_toolkit.severity import get_severity_class
from csaf_toolkit.severity import is_cvss3_vector
from csaf_toolkit.severity import parse_cvss_vector
from csaf_toolkit.utils import sha1

ALIAS_PREFIX_TO_CSAF_SYSTEM_NAME = {
    "CVE": "Common Vulnerabilities and Exposures",
    "GHSA": "GitHub Security Advisory",
    "PYSEC": "Python Packaging Advisory",
    "RUSTSEC": "RustSec Advisory Database",
    "USN": "Ubuntu Security Notice",
    "VCID": "VulnerableCode",
}

CVE_PATTERN = re.compile(r"^CVE-[0-9]{4}-[0-9]{4,}$")

# Release date of the records that do not provide one.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class ConversionError(CSAFToolkitError):
    """
    The advisory record cannot be converted to a VEX document.
    `cause` is one of PackageNotFound, RegistryLookupError, StructuralError, or
    ProfileViolation.
    """

    def __init__(self, cause):
        self.cause = cause
        super().__init__(f"{type(cause).__name__}: {cause}")


class VersionRange:
    """
    A set of versions described by PEP 440 specifier sets.
    Alternatives are separated by "||", for example ">=1.0,<1.4 || >=2.0,<2.1".
    Pre-releases are always included.
    """

    def __init__(self, value):
        self.value = value
        self.specifier_sets = []
        for alternative in value.split("||"):
            alternative = alternative.strip()
            if not alternative:
                raise ValueError(f'Empty alternative in version range "{value}"')
            self.specifier_sets.append(SpecifierSet(alternative))

    def __contains__(self, version):
        return any(
            specifier_set.contains(version, prereleases=True)
            for specifier_set in self.specifier_sets
        )

    def __str__(self):
        return self.value

    def __repr__(self):
        return f"VersionRange({self.value!r})"


class AdvisoryRecord(BaseModel):
    """An externally sourced advisory about a single package."""

    model_config = ConfigDict(frozen=True)

    id: constr(min_length=1)
    package: constr(min_length=1)
    affected: Optional[str] = None
    severity: Optional[Union[str, float]] = None
    title: Optional[constr(min_length=1)] = None
    description: Optional[constr(min_length=1)] = None
    aliases: List[constr(min_length=1)] = Field(default_factory=list)
    references: List[UrlT] = Field(default_factory=list)
    date: Optional[DateTimeT] = None
    patched: List[str] = Field(default_factory=list)
    unaffected: List[str] = Field(default_factory=list)
    affected_versions: List[str] = Field(default_factory=list)

    @field_validator("package")
    @classmethod
    def check_package(cls, value):
        parse_package_identifier(value)
        return value

    @field_validator("affected")
    @classmethod
    def check_affected(cls, value):
        if value is not None:
            VersionRange(value)
        return value

    @field_validator("patched", "unaffected")
    @classmethod
    def check_ranges(cls, value):
        for range_value in value:
            VersionRange(range_value)
        return value

    @field_validator("severity")
    @classmethod
    def check_severity(cls, value):
        get_severity_class(value)
        return value

    def get_affected_range(self):
        if self.affected:
            return VersionRange(self.affected)

    def get_patched_ranges(self):
        return [VersionRange(value) for value in self.patched]

    def get_unaffected_ranges(self):
        return [VersionRange(value) for value in self.unaffected]


def get_product_id(package, version):
    """Return a product_id derived from the `package` identifier and `version`."""
    digest = sha1(f"{package}@{version}".encode("utf-8"))
    return f"CSAFPID-{digest[:12].upper()}"


def partition_versions(record, versions):
    """
    Return a {status: [version, ...]} mapping of the registry `versions` for
    the advisory `record`, in registry order.
    """
    for label in record.affected_versions:
        if label not in versions:
            logger.warning(
                f"{record.id}: affected version {label} unknown to the registry, dropped"
            )

    affected_range = record.get_affected_range()
    patched_ranges = record.get_patched_ranges()
    unaffected_ranges = record.get_unaffected_ranges()

    partition = {"known_affected": [], "known_not_affected": [], "fixed": []}
    for label in versions:
        try:
            version = Version(label)
        except InvalidVersion:
            logger.warning(f"{record.id}: invalid version {label} for {record.package}, dropped")
            continue

        if any(version in version_range for version_range in unaffected_ranges):
            status = "known_not_affected"
        elif any(version in version_range for version_range in patched_ranges):
            status = "fixed"
        elif label in record.affected_versions:
            status = "known_affected"
        elif affected_range and version in affected_range:
            status = "known_affected"
        else:
            status = "known_not_affected"
        partition[status].append(label)

    return partition


def get_default_publisher():
    return csaf.Publisher(
        category=get_settings("CSAF_PUBLISHER_CATEGORY", "coordinator"),
        name=get_settings("CSAF_PUBLISHER_NAME"),
        namespace=get_settings("CSAF_PUBLISHER_NAMESPACE"),
    )


def get_csaf_document(record, publisher=None):
    """Return a csaf.Document object using the provided advisory `record`."""
    date = record.date
    if not date:
        logger.warning(f"{record.id}: no advisory date, using {EPOCH.isoformat()}")
        date = EPOCH

    revision_history = csaf.RevisionHistoryItem(
        date=date,
        number="1",
        summary="Initial version",
    )
    tracking = csaf.Tracking(
        aliases=record.aliases or None,
        current_release_date=date,
        generator=csaf.Generator(engine=csaf.Engine(name="csaf_toolkit", version=VERSION)),
        id=record.id,
        initial_release_date=date,
        revision_history=[revision_history],
        status="final",
        version="1",
    )

    aggregate_severity = None
    if severity_class := get_severity_class(record.severity):
        aggregate_severity = csaf.AggregateSeverity(text=severity_class.value)

    document = csaf.Document(
        aggregate_severity=aggregate_severity,
        category="csaf_vex",
        csaf_version="2.0",
        publisher=publisher or get_default_publisher(),
        title=record.title or f"{record.id} in {record.package}",
        tracking=tracking,
    )
    return document


def get_csaf_product_tree(record, registry_package, versions):
    purl = parse_package_identifier(record.package)
    name = registry_package.name

    product_version_branches = []
    for version in versions:
        identification_helper = None
        if purl:
            package_url = PackageURL(
                type=purl.type,
                namespace=purl.namespace,
                name=purl.name,
                version=version,
                qualifiers=purl.qualifiers,
                subpath=purl.subpath,
            )
            identification_helper = csaf.ProductIdentificationHelper(purl=str(package_url))

        product_version_branches.append(
            csaf.Branch(
                category="product_version",
                name=version,
                product=csaf.FullProductName(
                    name=f"{name} {version}",
                    product_id=get_product_id(record.package, version),
                    product_identification_helper=identification_helper,
                ),
            )
        )

    branch = csaf.Branch(
        category="product_name",
        name=name,
        branches=product_version_branches or None,
    )
    if purl and purl.namespace:
        branch = csaf.Branch(category="vendor", name=purl.namespace, branches=[branch])

    return csaf.ProductTree(branches=[branch])


def get_csaf_vulnerability_ids(record):
    ids = []
    for identifier in dict.fromkeys([record.id, *record.aliases]):
        prefix = identifier.split("-")[0]
        system_name = ALIAS_PREFIX_TO_CSAF_SYSTEM_NAME.get(prefix, prefix)
        ids.append(csaf.Id(system_name=system_name, text=identifier))
    return ids


def get_cve(record):
    for identifier in [record.id, *record.aliases]:
        if CVE_PATTERN.match(identifier):
            return identifier


def get_csaf_score(vector, product_ids):
    """Return a csaf.Score for a CVSS `vector` applied to `product_ids`."""
    cvss_object = parse_cvss_vector(vector)

    if is_cvss3_vector(vector):
        version = vector.split("/")[0].split(":")[1]
        cvss_v3 = csaf.CvssV3(
            version=version,
            vectorString=cvss_object.clean_vector(),
            baseScore=float(cvss_object.base_score),
            baseSeverity=cvss_object.severities()[0].upper(),
        )
        return csaf.Score(cvss_v3=cvss_v3, products=product_ids)

    cvss_v2 = csaf.CvssV2(
        version="2.0",
        vectorString=cvss_object.clean_vector(),
        baseScore=float(cvss_object.base_score),
    )
    return csaf.Score(cvss_v2=cvss_v2, products=product_ids)


def get_csaf_vulnerability(record, partition):
    product_ids = {
        status: [get_product_id(record.package, version) for version in versions]
        for status, versions in partition.items()
    }
    affected = product_ids["known_affected"]
    not_affected = product_ids["known_not_affected"]
    fixed_versions = partition["fixed"]

    product_status = None
    if any(product_ids.values()):
        product_status = csaf.ProductStatus(
            **{status: ids for status, ids in product_ids.items() if ids}
        )

    summary = record.description or record.title or "Not available"
    note = csaf.Note(category="summary", text=summary)

    references = [
        csaf.Reference(category="external", summary=url, url=url) for url in record.references
    ]

    scores = None
    severity = record.severity
    if affected and isinstance(severity, str) and "/" in severity and ":" in severity:
        scores = [get_csaf_score(severity, affected)]

    remediations = None
    if affected:
        if fixed_versions:
            category = "vendor_fix"
            details = f"Upgrade to a fixed version: {', '.join(fixed_versions)}"
        else:
            category = "none_available"
            details = "No fixed version available"
        remediations = [csaf.Remediation(category=category, details=details, product_ids=affected)]

    threats = None
    if not_affected:
        details = "The vulnerable code is not present in these versions"
        threats = [csaf.Threat(category="impact", details=details, product_ids=not_affected)]

    return csaf.Vulnerability(
        cve=get_cve(record),
        ids=get_csaf_vulnerability_ids(record),
        notes=[note],
        product_status=product_status,
        references=references or None,
        remediations=remediations,
        scores=scores,
        threats=threats,
    )


def lookup_package(package, registries):
    """
    Return the RegistryPackage of `package` from the first of the `registries`
    that knows it.
    A RegistryLookupError is not recovered, the remaining registries are not tried.
    """
    if not isinstance(registries, (list, tuple)):
        registries = [registries]

    for registry in registries:
        try:
            return registry.lookup(package)
        except PackageNotFound:
            logger.debug(f"{package} not found in {getattr(registry, 'label', registry)}")

    raise PackageNotFound(package)


def get_csaf_vex(record, registry_package, publisher=None):
    partition = partition_versions(record, registry_package.versions)
    kept_versions = {version for versions in partition.values() for version in versions}
    versions = [version for version in registry_package.versions if version in kept_versions]

    return build_advisory(
        document=get_csaf_document(record, publisher),
        product_tree=get_csaf_product_tree(record, registry_package, versions),
        vulnerabilities=[get_csaf_vulnerability(record, partition)],
    )


def convert_advisory(record, registries, publisher=None):
    """
    Return a VEX conformant CommonSecurityAdvisoryFramework document for the
    advisory `record` using the package versions of the `registries`.
    Raise a ConversionError when the package cannot be resolved, or when the
    document cannot be built or does not conform to the VEX profile.
    """
    try:
        registry_package = lookup_package(record.package, registries)
    except (PackageNotFound, RegistryLookupError) as error:
        raise ConversionError(error) from error

    try:
        advisory = get_csaf_vex(record, registry_package, publisher)
    except ValidationError as error:
        raise ConversionError(get_schema_error(error)) from error
    except StructuralError as error:
        raise ConversionError(error) from error

    try:
        assert_conformant(advisory, "VEX")
    except ProfileViolation as error:
        raise ConversionError(error) from error

    logger.info(f"{record.id}: VEX document for {record.package} built")
    return advisory
