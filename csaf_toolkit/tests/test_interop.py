#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

import hashlib
from datetime import datetime
from datetime import timezone
from unittest import TestCase
from unittest import mock

from packaging.version import Version
from pydantic import ValidationError

from csaf_toolkit import csaf
from csaf_toolkit import profiles
from csaf_toolkit.csaf import StructuralError
from csaf_toolkit.interop import EPOCH
from csaf_toolkit.interop import AdvisoryRecord
from csaf_toolkit.interop import ConversionError
from csaf_toolkit.interop import VersionRange
from csaf_toolkit.interop import convert_advisory
from csaf_toolkit.interop import get_product_id
from csaf_toolkit.interop import partition_versions
from csaf_toolkit.profiles import ProfileViolation
from csaf_toolkit.registry import InMemoryRegistry
from csaf_toolkit.registry import PackageNotFound
from csaf_toolkit.registry import RegistryLookupError
from csaf_toolkit.registry import RegistryPackage
from csaf_toolkit.serialization import deserialize
from csaf_toolkit.serialization import serialize
from csaf_toolkit.tests import make_vulnerability


class InteropTestCase(TestCase):
    def setUp(self):
        self.record = AdvisoryRecord(id="ADV-1", package="libfoo", affected="<2.0", severity="HIGH")
        self.registry = InMemoryRegistry({"libfoo": ["1.0", "1.5", "2.0", "2.1"]})

    def get_product_names(self, advisory, product_ids):
        return [
            advisory.resolve_product(product_id).full_product_name.name
            for product_id in product_ids or []
        ]

    def test_interop_version_range(self):
        version_range = VersionRange("<1.0 || >=2.0,<2.1")
        self.assertIn(Version("0.9"), version_range)
        self.assertIn(Version("2.0.5"), version_range)
        self.assertIn(Version("2.0.1rc1"), version_range)
        self.assertNotIn(Version("1.5"), version_range)
        self.assertNotIn(Version("2.1"), version_range)
        self.assertEqual("<1.0 || >=2.0,<2.1", str(version_range))

        with self.assertRaises(ValueError):
            VersionRange("<1.0 ||")
        with self.assertRaises(ValueError):
            VersionRange("<<1.0")

    def test_interop_advisory_record_validation(self):
        with self.assertRaises(ValidationError):
            AdvisoryRecord(id="ADV-1", package="libfoo", affected="<<2.0")
        with self.assertRaises(ValidationError):
            AdvisoryRecord(id="ADV-1", package="libfoo", severity="urgent")
        with self.assertRaises(ValidationError):
            AdvisoryRecord(id="ADV-1", package="pkg:invalid")
        with self.assertRaises(ValidationError):
            AdvisoryRecord(id="ADV-1", package="libfoo", date=datetime(2024, 1, 1))

        record = AdvisoryRecord(id="ADV-1", package="libfoo", severity=7.5)
        self.assertEqual(7.5, record.severity)

    def test_interop_get_product_id(self):
        digest = hashlib.sha1(b"libfoo@1.0").hexdigest()
        self.assertEqual(f"CSAFPID-{digest[:12].upper()}", get_product_id("libfoo", "1.0"))
        self.assertNotEqual(get_product_id("libfoo", "1.0"), get_product_id("libbar", "1.0"))

    def test_interop_partition_versions(self):
        record = AdvisoryRecord(
            id="ADV-2",
            package="libfoo",
            affected=">=1.0,<2.0",
            patched=[">=1.5,<2.0"],
            unaffected=["<1.1"],
            affected_versions=["2.1", "9.9"],
        )
        with self.assertLogs("csaf_toolkit", level="WARNING") as logs:
            partition = partition_versions(record, ("1.0", "1.2", "1.5", "2.0", "2.1", "dev"))

        expected = {
            "known_affected": ["1.2", "2.1"],
            "known_not_affected": ["1.0", "2.0"],
            "fixed": ["1.5"],
        }
        self.assertEqual(expected, partition)
        output = "\n".join(logs.output)
        self.assertIn("affected version 9.9 unknown to the registry", output)
        self.assertIn("invalid version dev", output)

    def test_interop_convert_advisory(self):
        with self.assertLogs("csaf_toolkit", level="WARNING") as logs:
            advisory = convert_advisory(self.record, self.registry)
        self.assertIn("no advisory date", "\n".join(logs.output))

        self.assertEqual(1, len(advisory.vulnerabilities))
        product_status = advisory.vulnerabilities[0].product_status
        self.assertEqual(
            ["libfoo 1.0", "libfoo 1.5"],
            self.get_product_names(advisory, product_status.known_affected),
        )
        self.assertEqual(
            ["libfoo 2.0", "libfoo 2.1"],
            self.get_product_names(advisory, product_status.known_not_affected),
        )
        self.assertIsNone(product_status.fixed)
        self.assertEqual([], profiles.validate(advisory, "VEX"))

        document = advisory.document
        self.assertEqual("csaf_vex", document.category)
        self.assertEqual("HIGH", document.aggregate_severity.text)
        self.assertEqual("ADV-1", document.tracking.id)
        self.assertEqual(EPOCH, document.tracking.initial_release_date)
        self.assertEqual("csaf_toolkit", document.tracking.generator.engine.name)
        self.assertIsNone(document.tracking.generator.date)

        vulnerability = advisory.vulnerabilities[0]
        self.assertIsNone(vulnerability.cve)
        self.assertEqual("ADV-1", vulnerability.ids[0].text)
        self.assertEqual("Not available", vulnerability.notes[0].text)
        self.assertEqual("none_available", vulnerability.remediations[0].category.value)
        self.assertEqual(product_status.known_affected, vulnerability.remediations[0].product_ids)
        self.assertEqual("impact", vulnerability.threats[0].category.value)
        self.assertEqual(product_status.known_not_affected, vulnerability.threats[0].product_ids)
        self.assertIsNone(vulnerability.scores)

        branch = advisory.product_tree.branches[0]
        self.assertEqual("product_name", branch.category.value)
        self.assertEqual("libfoo", branch.name)
        self.assertEqual(["1.0", "1.5", "2.0", "2.1"], [child.name for child in branch.branches])

    def test_interop_convert_advisory_is_idempotent(self):
        advisory1 = convert_advisory(self.record, self.registry)
        advisory2 = convert_advisory(self.record, self.registry)
        self.assertEqual(serialize(advisory1), serialize(advisory2))
        self.assertEqual(advisory1.get_product_index().keys(), advisory2.get_product_index().keys())

    def test_interop_convert_advisory_serialization_round_trip(self):
        advisory = convert_advisory(self.record, self.registry)
        self.assertEqual(advisory, deserialize(serialize(advisory)))

        record = AdvisoryRecord(
            id="RUSTSEC-2021-0003",
            package="pkg:cargo/smallvec",
            affected=">=0.6.10",
            patched=[">=1.6.1"],
            severity="CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
            aliases=["CVE-2021-25900"],
            references=["https://github.com/servo/rust-smallvec/issues/252"],
            date="2021-01-08T09:30:00.25+01:00",
        )
        registry = InMemoryRegistry({"pkg:cargo/smallvec": ["0.6.9", "0.6.10", "1.6.1"]})
        advisory = convert_advisory(record, registry)
        self.assertEqual(advisory, deserialize(serialize(advisory)))
        self.assertEqual([], profiles.validate(deserialize(serialize(advisory)), "VEX"))

    def test_interop_convert_advisory_purl_record(self):
        record = AdvisoryRecord(
            id="RUSTSEC-2021-0003",
            package="pkg:cargo/smallvec",
            affected=">=0.6.10",
            patched=[">=1.6.1"],
            unaffected=["<0.6.10"],
            severity="CVSS:3.1/AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H",
            title="Buffer overflow in SmallVec::insert_many",
            aliases=["CVE-2021-25900"],
            references=["https://github.com/servo/rust-smallvec/issues/252"],
            date="2021-01-08T00:00:00Z",
        )
        registry = InMemoryRegistry(
            {"pkg:cargo/smallvec": ["0.6.9", "0.6.10", "1.6.0", "1.6.1", "not-a-version"]}
        )
        advisory = convert_advisory(record, registry)
        self.assertEqual([], profiles.validate(advisory, "VEX"))

        document = advisory.document
        self.assertEqual("CRITICAL", document.aggregate_severity.text)
        self.assertEqual(["CVE-2021-25900"], document.tracking.aliases)
        date = datetime(2021, 1, 8, tzinfo=timezone.utc)
        self.assertEqual(date, document.tracking.current_release_date)
        self.assertEqual(date, document.tracking.revision_history[0].date)

        vulnerability = advisory.vulnerabilities[0]
        self.assertEqual("CVE-2021-25900", vulnerability.cve)
        expected_ids = [
            ("RustSec Advisory Database", "RUSTSEC-2021-0003"),
            ("Common Vulnerabilities and Exposures", "CVE-2021-25900"),
        ]
        ids = [(item.system_name, item.text) for item in vulnerability.ids]
        self.assertEqual(expected_ids, ids)
        self.assertEqual("Buffer overflow in SmallVec::insert_many", vulnerability.notes[0].text)
        self.assertEqual(
            "https://github.com/servo/rust-smallvec/issues/252", vulnerability.references[0].url
        )

        product_status = vulnerability.product_status
        self.assertEqual(
            ["smallvec 0.6.10", "smallvec 1.6.0"],
            self.get_product_names(advisory, product_status.known_affected),
        )
        self.assertEqual(
            ["smallvec 0.6.9"],
            self.get_product_names(advisory, product_status.known_not_affected),
        )
        self.assertEqual(["smallvec 1.6.1"], self.get_product_names(advisory, product_status.fixed))

        score = vulnerability.scores[0]
        self.assertEqual("CRITICAL", score.cvss_v3.baseSeverity.value)
        self.assertEqual(9.8, score.cvss_v3.baseScore)
        self.assertEqual(product_status.known_affected, score.products)

        remediation = vulnerability.remediations[0]
        self.assertEqual("vendor_fix", remediation.category.value)
        self.assertEqual("Upgrade to a fixed version: 1.6.1", remediation.details)

        reference = advisory.resolve_product(product_status.known_affected[0])
        helper = reference.full_product_name.product_identification_helper
        self.assertEqual("pkg:cargo/smallvec@0.6.10", helper.purl)
        self.assertEqual(4, len(advisory.get_product_index()))

    def test_interop_convert_advisory_purl_namespace(self):
        record = AdvisoryRecord(
            id="GHSA-xxxx-yyyy-zzzz", package="pkg:npm/%40angular/core", affected="<12.1"
        )
        registry = InMemoryRegistry({"pkg:npm/%40angular/core": ["12.0.0", "12.1.0"]})
        advisory = convert_advisory(record, registry)

        vendor_branch = advisory.product_tree.branches[0]
        self.assertEqual("vendor", vendor_branch.category.value)
        self.assertEqual("@angular", vendor_branch.name)
        self.assertEqual("core", vendor_branch.branches[0].name)
        reference = advisory.resolve_product(get_product_id("pkg:npm/%40angular/core", "12.0.0"))
        self.assertEqual(("@angular", "core", "12.0.0"), reference.branch_names)
        self.assertEqual("GitHub Security Advisory", advisory.vulnerabilities[0].ids[0].system_name)

    def test_interop_convert_advisory_affected_versions(self):
        record = AdvisoryRecord(id="ADV-3", package="libfoo", affected_versions=["2.0", "9.9"])
        advisory = convert_advisory(record, self.registry)
        product_status = advisory.vulnerabilities[0].product_status
        known_affected = self.get_product_names(advisory, product_status.known_affected)
        self.assertEqual(["libfoo 2.0"], known_affected)
        self.assertEqual(3, len(product_status.known_not_affected))
        self.assertIsNone(advisory.document.aggregate_severity)

    def test_interop_convert_advisory_publisher(self):
        publisher = csaf.Publisher(
            category="vendor", name="Example", namespace="https://example.com"
        )
        advisory = convert_advisory(self.record, self.registry, publisher=publisher)
        self.assertEqual(publisher, advisory.document.publisher)

        with mock.patch.dict("os.environ", {"CSAF_PUBLISHER_NAME": "Example PSIRT"}):
            advisory = convert_advisory(self.record, self.registry)
        self.assertEqual("Example PSIRT", advisory.document.publisher.name)
        self.assertEqual("coordinator", advisory.document.publisher.category.value)

    def test_interop_convert_advisory_registries(self):
        empty_registry = InMemoryRegistry()
        advisory = convert_advisory(self.record, [empty_registry, self.registry])
        self.assertEqual(4, len(advisory.get_product_index()))

        failing_registry = mock.Mock()
        failing_registry.lookup.side_effect = RegistryLookupError("libfoo", "timeout")
        with self.assertRaises(ConversionError) as context:
            convert_advisory(self.record, [failing_registry, self.registry])
        self.assertIsInstance(context.exception.cause, RegistryLookupError)
        self.assertIsInstance(context.exception.__cause__, RegistryLookupError)

    @mock.patch("csaf_toolkit.interop.build_advisory")
    def test_interop_convert_advisory_not_found(self, mock_build_advisory):
        with self.assertRaises(ConversionError) as context:
            convert_advisory(self.record, InMemoryRegistry({"libbar": ["1.0"]}))

        self.assertIsInstance(context.exception.cause, PackageNotFound)
        self.assertEqual("libfoo", context.exception.cause.package)
        mock_build_advisory.assert_not_called()

    def test_interop_convert_advisory_profile_violation(self):
        registry = InMemoryRegistry({"libfoo": RegistryPackage("libfoo", ())})
        with self.assertRaises(ConversionError) as context:
            convert_advisory(self.record, registry)

        cause = context.exception.cause
        self.assertIsInstance(cause, ProfileViolation)
        rules = [violation.rule for violation in cause.violations]
        self.assertEqual(["missing_product_status"], rules)

    @mock.patch("csaf_toolkit.interop.get_csaf_vulnerability")
    def test_interop_convert_advisory_structural_error(self, mock_get_csaf_vulnerability):
        mock_get_csaf_vulnerability.return_value = make_vulnerability(
            product_status={"known_affected": ["CSAFPID-UNKNOWN"]}
        )
        with self.assertRaises(ConversionError) as context:
            convert_advisory(self.record, self.registry)

        cause = context.exception.cause
        self.assertIsInstance(cause, StructuralError)
        self.assertEqual("dangling_product_id", cause.invariant)

    @mock.patch.dict("os.environ", {"CSAF_PUBLISHER_NAMESPACE": "not a url"})
    def test_interop_convert_advisory_schema_error(self):
        with self.assertRaises(ConversionError) as context:
            convert_advisory(self.record, self.registry)

        cause = context.exception.cause
        self.assertIsInstance(cause, StructuralError)
        self.assertEqual("schema", cause.invariant)
        self.assertEqual("/namespace", cause.path)
