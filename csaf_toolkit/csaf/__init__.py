#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

"""
Common Security Advisory Framework (CSAF) 2.0 document model.

The models follow the CSAF 2.0 JSON schema, field names and nesting included.
All the nodes are immutable once built, and the root node enforces the
structural invariants that the schema cannot express: unique product and group
identifiers, no dangling references, no contradicting product status, and a
consistent revision history.
"""

from __future__ import annotations

import copy
import re
from datetime import datetime
from datetime import timedelta
from enum import Enum
from types import MappingProxyType
from typing import Annotated
from typing import Any
from typing import Dict
from typing import List
from typing import NamedTuple
from typing import Optional

from pydantic import AfterValidator
from pydantic import AnyUrl
from pydantic import BaseModel
from pydantic import BeforeValidator
from pydantic import ConfigDict
from pydantic import Field
from pydantic import PlainSerializer
from pydantic import TypeAdapter
from pydantic import ValidationError
from pydantic import confloat
from pydantic import conlist
from pydantic import constr
from pydantic import field_validator
from pydantic import model_validator

from csaf_toolkit import CSAFToolkitError
from csaf_toolkit.severity import CVSS2_SEVERITY_SCALE
from csaf_toolkit.severity import SeverityClass
from csaf_toolkit.severity import get_severity_from_score
from csaf_toolkit.severity import parse_cvss_vector
from csaf_toolkit.utils import is_array_index
from csaf_toolkit.utils import is_json_value
from csaf_toolkit.utils import join_pointer
from csaf_toolkit.utils import split_pointer


class StructuralError(CSAFToolkitError):
    """
    A document invariant is violated.
    `invariant` names the violated invariant, `identifier` the offending value,
    and `path` the JSON Pointer of the offending node.
    """

    def __init__(self, invariant, identifier=None, path=None, message=None):
        self.invariant = invariant
        self.identifier = identifier
        self.path = path
        if not message:
            message = f'{invariant}: "{identifier}" at "{path}"'
        super().__init__(message)


RFC3339_DATETIME_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d{1,6})?(Z|[+-]\d{2}:\d{2})$"
)


def validate_datetime(value):
    """
    Return an aware datetime for a RFC 3339 date-time string or a datetime.
    Reject the encodings that RFC 3339 does not permit, more than microsecond
    precision, and UTC offsets that are not a whole number of minutes.
    """
    if isinstance(value, str):
        value = value.upper()
        if not RFC3339_DATETIME_PATTERN.match(value):
            raise ValueError(f'"{value}" is not a RFC 3339 date-time')
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))

    if isinstance(value, datetime):
        offset = value.utcoffset()
        if offset is None:
            raise ValueError(f'"{value}" date-time is missing a timezone')
        if offset % timedelta(minutes=1):
            raise ValueError(f'"{value}" UTC offset is not a whole number of minutes')

    return value


def format_datetime(value):
    """
    Return the canonical string of a date-time `value`.
    UTC is written as "Z" and fractional seconds only when not zero.
    """
    timespec = "microseconds" if value.microsecond else "seconds"
    formatted = value.isoformat(timespec=timespec)
    if value.utcoffset() == timedelta(0):
        formatted = f"{formatted[:-6]}Z"
    return formatted


url_adapter = TypeAdapter(AnyUrl)


def validate_url(value):
    """Validate the URL but keep the original string."""
    try:
        url_adapter.validate_python(value)
    except ValidationError:
        raise ValueError(f'"{value}" is not a valid URL')
    return value


def validate_cvss_vector(value):
    parse_cvss_vector(value)
    return value


DateTimeT = Annotated[
    datetime,
    BeforeValidator(validate_datetime),
    PlainSerializer(format_datetime, return_type=str, when_used="json"),
]
UrlT = Annotated[str, AfterValidator(validate_url)]
ProductIdT = constr(min_length=1)
ProductGroupIdT = constr(min_length=1)
ProductsT = conlist(ProductIdT, min_length=1)
ProductGroupsT = conlist(ProductGroupIdT, min_length=1)
LangT = constr(
    pattern=r"^(([A-Za-z]{2,3}(-[A-Za-z]{3}(-[A-Za-z]{3}){0,2})?|[A-Za-z]{4,8})(-[A-Za-z]{4})?(-([A-Za-z]{2}|[0-9]{3}))?(-([A-Za-z0-9]{5,8}|[0-9][A-Za-z0-9]{3}))*(-[0-9A-WY-Za-wy-z](-[A-Za-z0-9]{2,8})+)*(-[Xx](-[A-Za-z0-9]{1,8})+)?|[Xx](-[A-Za-z0-9]{1,8})+|[Ii]-[Dd][Ee][Ff][Aa][Uu][Ll][Tt]|[Ii]-[Mm][Ii][Nn][Gg][Oo])$"
)
VersionT = constr(
    pattern=r"^(0|[1-9][0-9]*)$|^((0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?)$"
)
ScoreT = confloat(ge=0.0, le=10.0)
CvssVectorT = Annotated[str, AfterValidator(validate_cvss_vector)]


class CSAFModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class CsafVersion(Enum):
    """
    Gives the version of the CSAF specification which the document was generated for.
    """

    field_2_0 = "2.0"


class DocumentStatus(Enum):
    """
    Defines the draft status of the document.
    """

    draft = "draft"
    final = "final"
    interim = "interim"


class PublisherCategory(Enum):
    """
    Provides information about the category of publisher releasing the document.
    """

    coordinator = "coordinator"
    discoverer = "discoverer"
    other = "other"
    translator = "translator"
    user = "user"
    vendor = "vendor"


class TlpLabel(Enum):
    AMBER = "AMBER"
    GREEN = "GREEN"
    RED = "RED"
    WHITE = "WHITE"


class NoteCategory(Enum):
    description = "description"
    details = "details"
    faq = "faq"
    general = "general"
    legal_disclaimer = "legal_disclaimer"
    other = "other"
    summary = "summary"


class ReferenceCategory(Enum):
    """
    Indicates whether the reference points to the same document or vulnerability in focus (depending on scope) or to an external resource.
    """

    external = "external"
    self = "self"


class BranchCategory(Enum):
    """
    Describes the characteristics of the labeled branch.
    """

    architecture = "architecture"
    host_name = "host_name"
    language = "language"
    legacy = "legacy"
    patch_level = "patch_level"
    product_family = "product_family"
    product_name = "product_name"
    product_version = "product_version"
    product_version_range = "product_version_range"
    service_pack = "service_pack"
    specification = "specification"
    vendor = "vendor"


class RelationshipCategory(Enum):
    default_component_of = "default_component_of"
    external_component_of = "external_component_of"
    installed_on = "installed_on"
    installed_with = "installed_with"
    optional_component_of = "optional_component_of"


class FlagLabel(Enum):
    component_not_present = "component_not_present"
    inline_mitigations_already_exist = "inline_mitigations_already_exist"
    vulnerable_code_cannot_be_controlled_by_adversary = (
        "vulnerable_code_cannot_be_controlled_by_adversary"
    )
    vulnerable_code_not_in_execute_path = "vulnerable_code_not_in_execute_path"
    vulnerable_code_not_present = "vulnerable_code_not_present"


class InvolvementParty(Enum):
    coordinator = "coordinator"
    discoverer = "discoverer"
    other = "other"
    user = "user"
    vendor = "vendor"


class InvolvementStatus(Enum):
    completed = "completed"
    contact_attempted = "contact_attempted"
    disputed = "disputed"
    in_progress = "in_progress"
    not_contacted = "not_contacted"
    open = "open"


class RemediationCategory(Enum):
    """
    Specifies the category which this remediation belongs to.
    """

    mitigation = "mitigation"
    no_fix_planned = "no_fix_planned"
    none_available = "none_available"
    vendor_fix = "vendor_fix"
    workaround = "workaround"


class RestartCategory(Enum):
    connected = "connected"
    dependencies = "dependencies"
    machine = "machine"
    none = "none"
    parent = "parent"
    service = "service"
    system = "system"
    vulnerable_component = "vulnerable_component"
    zone = "zone"


class ThreatCategory(Enum):
    """
    Categorizes the threat according to the rules of the specification.
    """

    exploit_status = "exploit_status"
    impact = "impact"
    target_set = "target_set"


class CvssV2Version(Enum):
    field_2_0 = "2.0"


class CvssV3Version(Enum):
    field_3_0 = "3.0"
    field_3_1 = "3.1"


class AccessVectorType(Enum):
    NETWORK = "NETWORK"
    ADJACENT_NETWORK = "ADJACENT_NETWORK"
    LOCAL = "LOCAL"


class AccessComplexityType(Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class AuthenticationType(Enum):
    MULTIPLE = "MULTIPLE"
    SINGLE = "SINGLE"
    NONE = "NONE"


class CiaType(Enum):
    NONE = "NONE"
    PARTIAL = "PARTIAL"
    COMPLETE = "COMPLETE"


class AttackVectorType(Enum):
    NETWORK = "NETWORK"
    ADJACENT_NETWORK = "ADJACENT_NETWORK"
    LOCAL = "LOCAL"
    PHYSICAL = "PHYSICAL"


class AttackComplexityType(Enum):
    HIGH = "HIGH"
    LOW = "LOW"


class PrivilegesRequiredType(Enum):
    HIGH = "HIGH"
    LOW = "LOW"
    NONE = "NONE"


class UserInteractionType(Enum):
    NONE = "NONE"
    REQUIRED = "REQUIRED"


class ScopeType(Enum):
    UNCHANGED = "UNCHANGED"
    CHANGED = "CHANGED"


class CiaTypeModel(Enum):
    NONE = "NONE"
    LOW = "LOW"
    HIGH = "HIGH"


class SeverityType(Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AggregateSeverity(CSAFModel):
    """
    Is a vehicle that is provided by the document producer to convey the urgency and criticality with which the one or more vulnerabilities reported should be addressed.
    """

    namespace: Optional[UrlT] = Field(
        default=None,
        description="Points to the namespace so referenced.",
        title="Namespace of aggregate severity",
    )
    text: constr(min_length=1) = Field(
        ...,
        description="Provides a severity which is independent of - and in addition to - any other standard metric for determining the impact or severity of a given vulnerability (such as CVSS).",
        examples=["Critical", "Important", "Moderate"],
        title="Text of aggregate severity",
    )


class Tlp(CSAFModel):
    label: TlpLabel = Field(
        ..., description="Provides the TLP label of the document.", title="Label of TLP"
    )
    url: Optional[UrlT] = Field(
        default=None,
        description="Provides a URL where to find the textual description of the TLP version which is used in this document.",
        title="URL of TLP version",
    )


class Distribution(CSAFModel):
    """
    Describe any constraints on how this document might be shared.
    """

    text: Optional[constr(min_length=1)] = None
    tlp: Optional[Tlp] = None


class Publisher(CSAFModel):
    """
    Provides information about the publisher of the document.
    """

    category: PublisherCategory = Field(
        ...,
        description="Provides information about the category of publisher releasing the document.",
        title="Category of publisher",
    )
    contact_details: Optional[constr(min_length=1)] = Field(
        default=None,
        description="Information on how to contact the publisher, possibly including details such as web sites, email addresses, phone numbers, and postal mail addresses.",
        title="Contact details",
    )
    issuing_authority: Optional[constr(min_length=1)] = Field(
        default=None,
        description="Provides information about the authority of the issuing party to release the document.",
        title="Issuing authority",
    )
    name: constr(min_length=1) = Field(
        ...,
        description="Contains the name of the issuing party.",
        examples=["BSI", "Cisco PSIRT", "Siemens ProductCERT"],
        title="Name of publisher",
    )
    namespace: UrlT = Field(
        ...,
        description="Contains a URL which is under control of the issuing party and can be used as a globally unique identifier for that issuing party.",
        examples=["https://csaf.io", "https://www.example.com"],
        title="Namespace of publisher",
    )


class Engine(CSAFModel):
    """
    Contains information about the engine that generated the CSAF document.
    """

    name: constr(min_length=1)
    version: Optional[constr(min_length=1)] = None


class Generator(CSAFModel):
    """
    Is a container to hold all elements related to the generation of the document.
    """

    date: Optional[DateTimeT] = Field(
        default=None,
        description="This SHOULD be the current date that the document was generated.",
        title="Date of document generation",
    )
    engine: Engine


class RevisionHistoryItem(CSAFModel):
    """
    Contains all the information elements required to track the evolution of a CSAF document.
    Entries are never modified once appended to the revision history.
    """

    date: DateTimeT = Field(
        ..., description="The date of the revision entry", title="Date of the revision"
    )
    legacy_version: Optional[constr(min_length=1)] = Field(
        default=None,
        description="Contains the version string used in an existing document with the same content.",
        title="Legacy version of the revision",
    )
    number: VersionT
    summary: constr(min_length=1) = Field(
        ...,
        description="Holds a single non-empty string representing a short description of the changes.",
        examples=["Initial version."],
        title="Summary of the revision",
    )


class Tracking(CSAFModel):
    """
    Is a container designated to hold all management attributes necessary to track a CSAF document as a whole.
    """

    aliases: Optional[List[constr(min_length=1)]] = Field(
        default=None,
        description="Contains a list of alternate names for the same document.",
        min_length=1,
        title="Aliases",
    )
    current_release_date: DateTimeT = Field(
        ...,
        description="The date when the current revision of this document was released",
        title="Current release date",
    )
    generator: Optional[Generator] = None
    id: constr(pattern=r"^[\S](.*[\S])?$", min_length=1) = Field(
        ...,
        description="The ID is a simple label that provides for a wide range of numbering values, types, and schemes.",
        examples=["Example Company - 2019-YH3234", "RHBA-2019:0024"],
        title="Unique identifier for the document",
    )
    initial_release_date: DateTimeT = Field(
        ...,
        description="The date when this document was first published.",
        title="Initial release date",
    )
    revision_history: List[RevisionHistoryItem] = Field(
        ...,
        description="Holds one revision item for each version of the CSAF document, including the initial one.",
        min_length=1,
        title="Revision history",
    )
    status: DocumentStatus
    version: VersionT


class Acknowledgment(CSAFModel):
    """
    Acknowledges contributions by describing those that contributed.
    """

    names: Optional[List[constr(min_length=1)]] = Field(default=None, min_length=1)
    organization: Optional[constr(min_length=1)] = None
    summary: Optional[constr(min_length=1)] = None
    urls: Optional[List[UrlT]] = Field(default=None, min_length=1)


class Note(CSAFModel):
    """
    Is a place to put all manner of text blobs related to the current context.
    """

    audience: Optional[constr(min_length=1)] = None
    category: NoteCategory = Field(
        ...,
        description="Choice of what kind of note this is.",
        title="Note category",
    )
    text: constr(min_length=1) = Field(
        ...,
        description="Holds the content of the note. Content varies depending on type.",
        title="Note content",
    )
    title: Optional[constr(min_length=1)] = None


class Reference(CSAFModel):
    """
    Holds any reference to conferences, papers, advisories, and other resources.
    """

    category: ReferenceCategory = Field(
        default=ReferenceCategory.external,
        description="Indicates whether the reference points to the same document or vulnerability in focus (depending on scope) or to an external resource.",
        title="Category of reference",
    )
    summary: constr(min_length=1) = Field(
        ...,
        description="Indicates what this reference refers to.",
        title="Summary of the reference",
    )
    url: UrlT = Field(..., description="Provides the URL for the reference.", title="URL of reference")


class Document(CSAFModel):
    """
    Captures the meta-data about this document describing a particular set of security advisories.
    """

    acknowledgments: Optional[List[Acknowledgment]] = Field(default=None, min_length=1)
    aggregate_severity: Optional[AggregateSeverity] = None
    category: constr(pattern=r"^[^\s\-_\.](.*[^\s\-_\.])?$", min_length=1) = Field(
        ...,
        description="Defines a short canonical name, chosen by the document producer, which will inform the end user as to the category of document.",
        examples=["csaf_base", "csaf_security_advisory", "csaf_vex"],
        title="Document category",
    )
    csaf_version: CsafVersion
    distribution: Optional[Distribution] = None
    lang: Optional[LangT] = None
    notes: Optional[List[Note]] = Field(default=None, min_length=1)
    publisher: Publisher
    references: Optional[List[Reference]] = Field(default=None, min_length=1)
    source_lang: Optional[LangT] = None
    title: constr(min_length=1) = Field(
        ...,
        description="This SHOULD be a canonical name for the document, and sufficiently unique to distinguish it from similar documents.",
        title="Title of this document",
    )
    tracking: Tracking


class FileHash(CSAFModel):
    algorithm: constr(min_length=1)
    value: constr(pattern=r"^[0-9a-fA-F]{32,}$", min_length=32)


class Hash(CSAFModel):
    """
    Contains all information to identify a file based on its cryptographic hash values.
    """

    file_hashes: List[FileHash] = Field(..., min_length=1)
    filename: constr(min_length=1)


class XGenericUri(CSAFModel):
    namespace: UrlT
    uri: UrlT


class ProductIdentificationHelper(CSAFModel):
    """
    Provides at least one method which aids in identifying the product in an asset database.
    """

    cpe: Optional[constr(pattern=r"^(cpe:2\.3:|[cC][pP][eE]:/)", min_length=5)] = Field(
        default=None,
        description="The Common Platform Enumeration (CPE) attribute refers to a method for naming platforms external to this specification.",
        title="Common Platform Enumeration representation",
    )
    hashes: Optional[List[Hash]] = Field(default=None, min_length=1)
    model_numbers: Optional[List[constr(min_length=1)]] = Field(default=None, min_length=1)
    purl: Optional[constr(pattern=r"^pkg:[A-Za-z\.\-\+][A-Za-z0-9\.\-\+]*/.+", min_length=7)] = (
        Field(
            default=None,
            description="The package URL (purl) attribute refers to a method for reliably identifying and locating software packages external to this specification.",
            title="package URL representation",
        )
    )
    sbom_urls: Optional[List[UrlT]] = Field(default=None, min_length=1)
    serial_numbers: Optional[List[constr(min_length=1)]] = Field(default=None, min_length=1)
    skus: Optional[List[constr(min_length=1)]] = Field(default=None, min_length=1)
    x_generic_uris: Optional[List[XGenericUri]] = Field(default=None, min_length=1)


class FullProductName(CSAFModel):
    """
    Specifies information about the product and assigns the product_id.
    """

    name: constr(min_length=1) = Field(
        ...,
        description="The value should be the product's full canonical name, including version number and other attributes, as it would be used in a human-friendly document.",
        title="Textual description of the product",
    )
    product_id: ProductIdT
    product_identification_helper: Optional[ProductIdentificationHelper] = None


class Branch(CSAFModel):
    """
    Is a part of the hierarchical structure of the product tree.
    The order of the children carries no meaning.
    """

    branches: Optional[List[Branch]] = Field(default=None, min_length=1)
    category: BranchCategory
    name: constr(min_length=1) = Field(
        ...,
        description="Contains the canonical descriptor or 'friendly name' of the branch.",
        examples=["10", "Microsoft", "Office", "PCS 7"],
        title="Name of the branch",
    )
    product: Optional[FullProductName] = None


class ProductGroup(CSAFModel):
    group_id: ProductGroupIdT
    product_ids: conlist(ProductIdT, min_length=2)
    summary: Optional[constr(min_length=1)] = None


class Relationship(CSAFModel):
    """
    Establishes a link between two existing full_product_name_t elements.
    """

    category: RelationshipCategory
    full_product_name: FullProductName
    product_reference: ProductIdT
    relates_to_product_reference: ProductIdT


class ProductReference(NamedTuple):
    """A product declared in the product tree and where it is declared."""

    product_id: str
    full_product_name: FullProductName
    branch_names: tuple
    path: str


def iter_branch_products(branches, path, branch_names=()):
    for index, branch in enumerate(branches or []):
        branch_path = join_pointer(path, index)
        names = (*branch_names, branch.name)
        if branch.product:
            yield ProductReference(
                product_id=branch.product.product_id,
                full_product_name=branch.product,
                branch_names=names,
                path=join_pointer(branch_path, "product"),
            )
        yield from iter_branch_products(
            branch.branches, join_pointer(branch_path, "branches"), names
        )


class ProductTree(CSAFModel):
    """
    Is a container for all fully qualified product names that can be referenced elsewhere in the document.
    """

    branches: Optional[List[Branch]] = Field(default=None, min_length=1)
    full_product_names: Optional[List[FullProductName]] = Field(default=None, min_length=1)
    product_groups: Optional[List[ProductGroup]] = Field(default=None, min_length=1)
    relationships: Optional[List[Relationship]] = Field(default=None, min_length=1)

    def iter_products(self, path="/product_tree"):
        """Yield a ProductReference for each product declared in this tree, in document order."""
        yield from iter_branch_products(self.branches, join_pointer(path, "branches"))

        for index, full_product_name in enumerate(self.full_product_names or []):
            yield ProductReference(
                product_id=full_product_name.product_id,
                full_product_name=full_product_name,
                branch_names=(),
                path=join_pointer(path, "full_product_names", index),
            )

        for index, relationship in enumerate(self.relationships or []):
            yield ProductReference(
                product_id=relationship.full_product_name.product_id,
                full_product_name=relationship.full_product_name,
                branch_names=(),
                path=join_pointer(path, "relationships", index, "full_product_name"),
            )

    def get_product_index(self):
        """Return a mapping of product_id to ProductReference."""
        index = {}
        for reference in self.iter_products():
            index.setdefault(reference.product_id, reference)
        return index

    def get_group_index(self):
        """Return a mapping of group_id to the list of product_ids of that group."""
        index = {}
        for group in self.product_groups or []:
            index.setdefault(group.group_id, list(group.product_ids))
        return index


class Cwe(CSAFModel):
    id: constr(pattern=r"^CWE-[1-9]\d{0,5}$")
    name: constr(min_length=1)


class Flag(CSAFModel):
    """
    Contains product specific information in regard to this vulnerability as a single machine readable flag.
    """

    date: Optional[DateTimeT] = None
    group_ids: Optional[ProductGroupsT] = None
    label: FlagLabel
    product_ids: Optional[ProductsT] = None


class Id(CSAFModel):
    """
    Contains a single unique label or tracking ID for the vulnerability.
    """

    system_name: constr(min_length=1) = Field(
        ...,
        description="Indicates the name of the vulnerability tracking or numbering system.",
        examples=["Cisco Bug ID", "GitHub Issue"],
        title="System name",
    )
    text: constr(min_length=1)


class Involvement(CSAFModel):
    date: Optional[DateTimeT] = None
    party: InvolvementParty
    status: InvolvementStatus
    summary: Optional[constr(min_length=1)] = None


# Product status categories in schema order.
STATUS_CATEGORIES = (
    "first_affected",
    "first_fixed",
    "fixed",
    "known_affected",
    "known_not_affected",
    "last_affected",
    "recommended",
    "under_investigation",
)

# A product cannot be in two of those groups for the same vulnerability.
# "recommended" is compatible with any status.
STATUS_CATEGORY_GROUPS = {
    "first_affected": "affected",
    "known_affected": "affected",
    "last_affected": "affected",
    "known_not_affected": "not_affected",
    "first_fixed": "fixed",
    "fixed": "fixed",
    "under_investigation": "under_investigation",
}


class ProductStatus(CSAFModel):
    """
    Contains different lists of product_ids which provide details on the status of the referenced product related to the current vulnerability.
    """

    first_affected: Optional[ProductsT] = Field(
        default=None,
        description="These are the first versions of the releases known to be affected by the vulnerability.",
        title="First affected",
    )
    first_fixed: Optional[ProductsT] = Field(
        default=None,
        description="These versions contain the first fix for the vulnerability but may not be the recommended fixed versions.",
        title="First fixed",
    )
    fixed: Optional[ProductsT] = Field(
        default=None,
        description="These versions contain a fix for the vulnerability but may not be the recommended fixed versions.",
        title="Fixed",
    )
    known_affected: Optional[ProductsT] = Field(
        default=None,
        description="These versions are known to be affected by the vulnerability.",
        title="Known affected",
    )
    known_not_affected: Optional[ProductsT] = Field(
        default=None,
        description="These versions are known not to be affected by the vulnerability.",
        title="Known not affected",
    )
    last_affected: Optional[ProductsT] = Field(
        default=None,
        description="These are the last versions in a release train known to be affected by the vulnerability.",
        title="Last affected",
    )
    recommended: Optional[ProductsT] = Field(
        default=None,
        description="These versions have a fix for the vulnerability and are the vendor-recommended versions for fixing the vulnerability.",
        title="Recommended",
    )
    under_investigation: Optional[ProductsT] = Field(
        default=None,
        description="It is not known yet whether these versions are or are not affected by the vulnerability.",
        title="Under investigation",
    )

    def iter_product_ids(self):
        """Yield (category, index, product_id) tuples in schema order."""
        for category in STATUS_CATEGORIES:
            for index, product_id in enumerate(getattr(self, category) or []):
                yield category, index, product_id

    def get_categories(self, product_id):
        """Return the list of status categories of the provided `product_id`."""
        categories = []
        for category, _, status_product_id in self.iter_product_ids():
            if status_product_id == product_id and category not in categories:
                categories.append(category)
        return categories


class RestartRequired(CSAFModel):
    category: RestartCategory
    details: Optional[constr(min_length=1)] = None


class Remediation(CSAFModel):
    """
    Specifies details on how to handle (and presumably, fix) a vulnerability.
    """

    category: RemediationCategory
    date: Optional[DateTimeT] = None
    details: constr(min_length=1) = Field(
        ...,
        description="Contains a thorough human-readable discussion of the remediation.",
        title="Details of the remediation",
    )
    entitlements: Optional[List[constr(min_length=1)]] = Field(default=None, min_length=1)
    group_ids: Optional[ProductGroupsT] = None
    product_ids: Optional[ProductsT] = None
    restart_required: Optional[RestartRequired] = None
    url: Optional[UrlT] = None


class Threat(CSAFModel):
    """
    Contains the vulnerability kinetic information.
    """

    category: ThreatCategory
    date: Optional[DateTimeT] = None
    details: constr(min_length=1)
    group_ids: Optional[ProductGroupsT] = None
    product_ids: Optional[ProductsT] = None


class CvssV2(CSAFModel):
    version: CvssV2Version
    vectorString: CvssVectorT
    accessVector: Optional[AccessVectorType] = None
    accessComplexity: Optional[AccessComplexityType] = None
    authentication: Optional[AuthenticationType] = None
    confidentialityImpact: Optional[CiaType] = None
    integrityImpact: Optional[CiaType] = None
    availabilityImpact: Optional[CiaType] = None
    baseScore: ScoreT
    temporalScore: Optional[ScoreT] = None
    environmentalScore: Optional[ScoreT] = None

    def get_severity_class(self):
        return get_severity_from_score(self.baseScore, scale=CVSS2_SEVERITY_SCALE)


class CvssV3(CSAFModel):
    version: CvssV3Version
    vectorString: CvssVectorT
    attackVector: Optional[AttackVectorType] = None
    attackComplexity: Optional[AttackComplexityType] = None
    privilegesRequired: Optional[PrivilegesRequiredType] = None
    userInteraction: Optional[UserInteractionType] = None
    scope: Optional[ScopeType] = None
    confidentialityImpact: Optional[CiaTypeModel] = None
    integrityImpact: Optional[CiaTypeModel] = None
    availabilityImpact: Optional[CiaTypeModel] = None
    baseScore: ScoreT
    baseSeverity: SeverityType
    temporalScore: Optional[ScoreT] = None
    temporalSeverity: Optional[SeverityType] = None
    environmentalScore: Optional[ScoreT] = None
    environmentalSeverity: Optional[SeverityType] = None

    def get_severity_class(self):
        return SeverityClass(self.baseSeverity.value)


class Score(CSAFModel):
    """
    Specifies information about (at least one) score of the vulnerability and for which products the given value applies.
    """

    cvss_v2: Optional[CvssV2] = None
    cvss_v3: Optional[CvssV3] = None
    products: ProductsT

    @model_validator(mode="after")
    def check_cvss(self):
        if not (self.cvss_v2 or self.cvss_v3):
            raise ValueError("A score requires at least one of cvss_v2 or cvss_v3.")
        return self

    def get_severity_classes(self):
        """Return the normalized severity class of each scoring system of this score."""
        return [cvss.get_severity_class() for cvss in (self.cvss_v3, self.cvss_v2) if cvss]


class Vulnerability(CSAFModel):
    """
    Is a container for the aggregation of all fields that are related to a single vulnerability in the document.
    """

    acknowledgments: Optional[List[Acknowledgment]] = Field(default=None, min_length=1)
    cve: Optional[constr(pattern=r"^CVE-[0-9]{4}-[0-9]{4,}$")] = Field(
        default=None,
        description="Holds the MITRE standard Common Vulnerabilities and Exposures (CVE) tracking number for the vulnerability.",
        title="CVE",
    )
    cwe: Optional[Cwe] = None
    discovery_date: Optional[DateTimeT] = None
    flags: Optional[List[Flag]] = Field(default=None, min_length=1)
    ids: Optional[List[Id]] = Field(default=None, min_length=1)
    involvements: Optional[List[Involvement]] = Field(default=None, min_length=1)
    notes: Optional[List[Note]] = Field(default=None, min_length=1)
    product_status: Optional[ProductStatus] = Field(
        default=None,
        description="Contains different lists of product_ids which provide details on the status of the referenced product related to the current vulnerability.",
        title="Product status",
    )
    references: Optional[List[Reference]] = Field(default=None, min_length=1)
    release_date: Optional[DateTimeT] = None
    remediations: Optional[List[Remediation]] = Field(default=None, min_length=1)
    scores: Optional[List[Score]] = Field(default=None, min_length=1)
    threats: Optional[List[Threat]] = Field(default=None, min_length=1)
    title: Optional[constr(min_length=1)] = None

    def iter_references(self):
        """
        Yield a (tokens, kind, identifier) tuple for each product or group
        reference of this vulnerability, where `tokens` locate the reference
        relative to the vulnerability and `kind` is "product_id" or "group_id".
        """
        if self.product_status:
            for category, index, product_id in self.product_status.iter_product_ids():
                yield ("product_status", category, index), "product_id", product_id

        for score_index, score in enumerate(self.scores or []):
            for index, product_id in enumerate(score.products):
                yield ("scores", score_index, "products", index), "product_id", product_id

        for field_name in ("remediations", "threats", "flags"):
            for item_index, item in enumerate(getattr(self, field_name) or []):
                for index, product_id in enumerate(item.product_ids or []):
                    tokens = (field_name, item_index, "product_ids", index)
                    yield tokens, "product_id", product_id
                for index, group_id in enumerate(item.group_ids or []):
                    tokens = (field_name, item_index, "group_ids", index)
                    yield tokens, "group_id", group_id

    def get_severity_classes(self):
        severity_classes = []
        for score in self.scores or []:
            severity_classes.extend(score.get_severity_classes())
        return severity_classes


class CommonSecurityAdvisoryFramework(CSAFModel):
    """
    Representation of security advisory information as a JSON document.

    `extensions` holds the fields that the model does not interpret, keyed by
    the JSON Pointer of the node they are attached to. It is not part of the
    wire document but is merged back on serialization. The side table is a
    read-only copy of the provided mapping.
    """

    document: Document = Field(
        ...,
        description="Captures the meta-data about this document describing a particular set of security advisories.",
        title="Document level meta-data",
    )
    product_tree: Optional[ProductTree] = None
    vulnerabilities: Optional[List[Vulnerability]] = Field(default=None, min_length=1)
    extensions: Dict[str, Dict[str, Any]] = Field(default_factory=dict, exclude=True)

    @field_validator("extensions")
    @classmethod
    def freeze_extensions(cls, value):
        return MappingProxyType(
            {
                pointer: MappingProxyType(copy.deepcopy(dict(fields)))
                for pointer, fields in value.items()
            }
        )

    @model_validator(mode="after")
    def check_structure(self):
        validate_structure(self)
        return self

    def get_product_index(self):
        if not self.product_tree:
            return {}
        return self.product_tree.get_product_index()

    def resolve_product(self, product_id):
        """Return the ProductReference of the provided `product_id`, None if not declared."""
        return self.get_product_index().get(product_id)

    def get_group_product_ids(self, group_id):
        """Return the product_ids of the provided `group_id`, None if not declared."""
        if not self.product_tree:
            return
        return self.product_tree.get_group_index().get(group_id)

    def get_vulnerabilities_for_product(self, product_id):
        """
        Return the list of (index, vulnerability) referencing the provided
        `product_id`, directly or through a product group.
        """
        group_index = self.product_tree.get_group_index() if self.product_tree else {}

        vulnerabilities = []
        for index, vulnerability in enumerate(self.vulnerabilities or []):
            for _, kind, identifier in vulnerability.iter_references():
                if kind == "group_id":
                    is_referenced = product_id in group_index.get(identifier, [])
                else:
                    is_referenced = product_id == identifier
                if is_referenced:
                    vulnerabilities.append((index, vulnerability))
                    break
        return vulnerabilities


Branch.model_rebuild()


def get_wire_fields(model_class):
    """Return the fields of `model_class` that are part of the wire document."""
    return {
        name: field for name, field in model_class.model_fields.items() if not field.exclude
    }


def get_error_pointer(loc):
    """Return the JSON Pointer of a pydantic error `loc` tuple."""
    return join_pointer("", *loc)


def get_schema_error(validation_error):
    """Return a StructuralError for the first error of a pydantic `validation_error`."""
    first_error = validation_error.errors()[0]
    return StructuralError(
        "schema",
        identifier=first_error["msg"],
        path=get_error_pointer(first_error["loc"]),
    )


def check_product_status(product_status, path):
    groups_by_product = {}
    for category, index, product_id in product_status.iter_product_ids():
        group = STATUS_CATEGORY_GROUPS.get(category)
        if not group:
            continue

        groups = groups_by_product.setdefault(product_id, set())
        groups.add(group)
        if len(groups) > 1:
            raise StructuralError(
                "contradicting_product_status",
                identifier=product_id,
                path=join_pointer(path, category, index),
            )


def check_revision_history(tracking):
    path = "/document/tracking/revision_history"
    previous_date = None
    for index, revision in enumerate(tracking.revision_history):
        if previous_date and revision.date < previous_date:
            raise StructuralError(
                "revision_history_order",
                identifier=revision.number,
                path=join_pointer(path, index, "date"),
            )
        previous_date = revision.date

    latest_revision = tracking.revision_history[-1]
    if latest_revision.number != tracking.version:
        raise StructuralError(
            "revision_history_version",
            identifier=tracking.version,
            path="/document/tracking/version",
        )


def get_model_node(advisory, pointer):
    """
    Return the model instance located at the JSON Pointer `pointer`.
    Raise a KeyError if the pointer does not resolve to a model instance.
    """
    node = advisory
    for token in split_pointer(pointer):
        if isinstance(node, BaseModel) and token in get_wire_fields(type(node)):
            node = getattr(node, token)
        elif isinstance(node, list) and is_array_index(token) and int(token) < len(node):
            node = node[int(token)]
        else:
            raise KeyError(pointer)

    if not isinstance(node, BaseModel):
        raise KeyError(pointer)
    return node


def check_extensions(advisory):
    for path, fields in advisory.extensions.items():
        try:
            node = get_model_node(advisory, path)
        except (KeyError, ValueError):
            raise StructuralError("dangling_extension_path", identifier=path, path=path)

        if not fields:
            raise StructuralError("extension_value", identifier=path, path=path)

        wire_fields = get_wire_fields(type(node))
        for field_name, value in fields.items():
            if field_name in wire_fields:
                raise StructuralError("extension_field_conflict", identifier=field_name, path=path)
            if not is_json_value(value):
                raise StructuralError("extension_value", identifier=field_name, path=path)


def validate_structure(advisory):
    """
    Check the structural invariants of a `advisory` document.
    Raise a StructuralError on the first violated invariant.
    """
    product_index = {}
    group_index = {}

    if product_tree := advisory.product_tree:
        for reference in product_tree.iter_products():
            if reference.product_id in product_index:
                raise StructuralError(
                    "duplicate_product_id", identifier=reference.product_id, path=reference.path
                )
            product_index[reference.product_id] = reference

        for index, group in enumerate(product_tree.product_groups or []):
            group_path = join_pointer("/product_tree/product_groups", index)
            if group.group_id in group_index:
                raise StructuralError(
                    "duplicate_group_id", identifier=group.group_id, path=group_path
                )
            group_index[group.group_id] = group
            for product_index_in_group, product_id in enumerate(group.product_ids):
                if product_id not in product_index:
                    raise StructuralError(
                        "dangling_product_id",
                        identifier=product_id,
                        path=join_pointer(group_path, "product_ids", product_index_in_group),
                    )

        for index, relationship in enumerate(product_tree.relationships or []):
            relationship_path = join_pointer("/product_tree/relationships", index)
            for field_name in ("product_reference", "relates_to_product_reference"):
                product_id = getattr(relationship, field_name)
                if product_id not in product_index:
                    raise StructuralError(
                        "dangling_product_id",
                        identifier=product_id,
                        path=join_pointer(relationship_path, field_name),
                    )

    for index, vulnerability in enumerate(advisory.vulnerabilities or []):
        vulnerability_path = join_pointer("/vulnerabilities", index)
        for tokens, kind, identifier in vulnerability.iter_references():
            known = product_index if kind == "product_id" else group_index
            if identifier not in known:
                raise StructuralError(
                    f"dangling_{kind}",
                    identifier=identifier,
                    path=join_pointer(vulnerability_path, *tokens),
                )
        if vulnerability.product_status:
            check_product_status(
                vulnerability.product_status,
                join_pointer(vulnerability_path, "product_status"),
            )

    check_revision_history(advisory.document.tracking)
    check_extensions(advisory)


def build_advisory(document, product_tree=None, vulnerabilities=None, extensions=None):
    """
    Return a new CommonSecurityAdvisoryFramework document.
    Raise a StructuralError if the document cannot be built, including when the
    provided values do not match the schema.
    """
    try:
        return CommonSecurityAdvisoryFramework(
            document=document,
            product_tree=product_tree,
            vulnerabilities=vulnerabilities,
            extensions=extensions or {},
        )
    except ValidationError as error:
        raise get_schema_error(error) from error
