#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

from pathlib import Path
from unittest import TestCase

from csaf_toolkit import csaf
from csaf_toolkit import profiles
from csaf_toolkit.profiles import ConfigurationError
from csaf_toolkit.profiles import ProfileViolation
from csaf_toolkit.profiles import Violation
from csaf_toolkit.serialization import load
from csaf_toolkit.tests import make_advisory
from csaf_toolkit.tests import make_document
from csaf_toolkit.tests import make_product_tree
from csaf_toolkit.tests import make_vulnerability


class ProfilesTestCase(TestCase):
    data = Path(__file__).parent / "testfiles"

    def test_profiles_validate_vex_conformant(self):
        advisory = load(self.data / "vex_extensions.csaf.json")
        self.assertEqual([], profiles.validate(advisory, "VEX"))
        self.assertEqual([], profiles.validate(advisory, "vex"))
        profiles.assert_conformant(advisory, "VEX")

    def test_profiles_validate_vex_missing_product_status(self):
        advisory = make_advisory(vulnerabilities=[make_vulnerability()])

        violations = profiles.validate(advisory, "VEX")
        self.assertEqual(1, len(violations))
        violation = violations[0]
        self.assertEqual("VEX", violation.profile)
        self.assertEqual("missing_product_status", violation.rule)
        self.assertEqual("/vulnerabilities/0", violation.path)

    def test_profiles_validate_vex_empty_product_status(self):
        vulnerability = make_vulnerability(product_status={})
        advisory = make_advisory(vulnerabilities=[vulnerability])
        expected = [("VEX", "missing_product_status", "/vulnerabilities/0")]
        violations = profiles.validate(advisory, "VEX")
        self.assertEqual(expected, [violation[:3] for violation in violations])

    def test_profiles_validate_vex_accumulates_violations(self):
        vulnerability1 = make_vulnerability(
            cve=None,
            notes=None,
            product_status={
                "first_affected": ["CSAFPID-0001"],
                "known_not_affected": ["CSAFPID-0002"],
            },
        )
        vulnerability2 = make_vulnerability(
            product_status={
                "fixed": ["CSAFPID-0001"],
                "recommended": ["CSAFPID-0001"],
                "known_affected": ["CSAFPID-0002"],
            },
            threats=[
                {"category": "exploit_status", "details": "PoC", "product_ids": ["CSAFPID-0003"]},
            ],
        )
        advisory = make_advisory(
            product_ids=["CSAFPID-0001", "CSAFPID-0002", "CSAFPID-0003"],
            vulnerabilities=[vulnerability1, vulnerability2],
            document=make_document(category="csaf_base"),
        )

        expected = [
            ("VEX", "document_category", "/document/category"),
            ("VEX", "missing_vulnerability_notes", "/vulnerabilities/0/notes"),
            ("VEX", "missing_vulnerability_id", "/vulnerabilities/0"),
            ("VEX", "status_category", "/vulnerabilities/0/product_status/first_affected/0"),
            ("VEX", "status_category", "/vulnerabilities/1/product_status/recommended/0"),
            ("VEX", "ambiguous_product_status", "/vulnerabilities/1/product_status/recommended/0"),
            ("VEX", "unassigned_product", "/vulnerabilities/1/threats/0/product_ids/0"),
            (
                "VEX",
                "missing_impact_statement",
                "/vulnerabilities/0/product_status/known_not_affected/0",
            ),
            (
                "VEX",
                "missing_action_statement",
                "/vulnerabilities/1/product_status/known_affected/0",
            ),
        ]
        violations = profiles.validate(advisory, "VEX")
        self.assertEqual(expected, [violation[:3] for violation in violations])
        for violation in violations:
            self.assertTrue(violation.message)

    def test_profiles_validate_is_deterministic(self):
        vulnerability = make_vulnerability(
            cve=None,
            product_status={
                "known_affected": ["CSAFPID-0001"],
                "known_not_affected": ["CSAFPID-0002"],
            },
        )
        advisory = make_advisory(vulnerabilities=[vulnerability])
        violations = profiles.validate(advisory, "VEX")
        self.assertEqual(3, len(violations))
        for _ in range(5):
            self.assertEqual(violations, profiles.validate(advisory, "VEX"))

    def test_profiles_validate_vex_statements_through_groups(self):
        product_tree = make_product_tree(
            "CSAFPID-0001",
            "CSAFPID-0002",
            product_groups=[
                {"group_id": "CSAFGID-0001", "product_ids": ["CSAFPID-0001", "CSAFPID-0002"]},
            ],
        )
        vulnerability = make_vulnerability(
            product_status={"known_not_affected": ["CSAFPID-0001", "CSAFPID-0002"]},
            flags=[{"label": "component_not_present", "group_ids": ["CSAFGID-0001"]}],
        )
        advisory = csaf.build_advisory(
            document=make_document(),
            product_tree=product_tree,
            vulnerabilities=[vulnerability],
        )
        self.assertEqual([], profiles.validate(advisory, "VEX"))

    def test_profiles_validate_vex_missing_product_tree_and_vulnerabilities(self):
        advisory = csaf.build_advisory(document=make_document())
        expected = [
            ("VEX", "missing_product_tree", "/product_tree"),
            ("VEX", "missing_vulnerabilities", "/vulnerabilities"),
        ]
        violations = profiles.validate(advisory, "VEX")
        self.assertEqual(expected, [violation[:3] for violation in violations])

    def test_profiles_validate_informational_advisory(self):
        advisory = make_advisory(
            document=make_document(category="csaf_informational_advisory"),
            vulnerabilities=[make_vulnerability()],
        )
        expected = [
            ("INFORMATIONAL_ADVISORY", "missing_document_notes", "/document/notes"),
            ("INFORMATIONAL_ADVISORY", "missing_document_references", "/document/references"),
            ("INFORMATIONAL_ADVISORY", "unexpected_vulnerabilities", "/vulnerabilities"),
        ]
        violations = profiles.validate(advisory, "INFORMATIONAL_ADVISORY")
        self.assertEqual(expected, [violation[:3] for violation in violations])

        document = make_document(
            category="csaf_informational_advisory",
            notes=[{"category": "other", "text": "Other"}, {"category": "general", "text": "Info"}],
            references=[{"summary": "Home", "url": "https://example.com"}],
        )
        advisory = make_advisory(document=document)
        self.assertEqual([], profiles.validate(advisory, "INFORMATIONAL_ADVISORY"))

    def test_profiles_validate_security_advisory(self):
        advisory = make_advisory(
            document=make_document(category="csaf_security_advisory"),
            vulnerabilities=[make_vulnerability(notes=None)],
        )
        expected = [
            Violation(
                "SECURITY_ADVISORY",
                "missing_vulnerability_notes",
                "/vulnerabilities/0/notes",
                "Vulnerability notes are required.",
            ),
            Violation(
                "SECURITY_ADVISORY",
                "missing_product_status",
                "/vulnerabilities/0",
                "Vulnerability has no product status.",
            ),
        ]
        self.assertEqual(expected, profiles.validate(advisory, "SECURITY_ADVISORY"))

    def test_profiles_validate_base(self):
        advisory = load(self.data / "generic_template.csaf.json")
        self.assertEqual([], profiles.validate(advisory, "BASE"))

    def test_profiles_assert_conformant(self):
        advisory = make_advisory(vulnerabilities=[make_vulnerability()])
        with self.assertRaises(ProfileViolation) as context:
            profiles.assert_conformant(advisory, "VEX")

        violations = context.exception.violations
        self.assertEqual(["missing_product_status"], [violation.rule for violation in violations])
        self.assertIn("missing_product_status at /vulnerabilities/0", str(context.exception))

    def test_profiles_get_profile(self):
        profile = profiles.get_profile("VEX")
        self.assertEqual("csaf_vex", profile.category)
        self.assertEqual("document_category", profile.rules[0].name)

        with self.assertRaises(ConfigurationError) as context:
            profiles.get_profile("UNKNOWN")
        self.assertEqual("UNKNOWN", context.exception.tag)

        advisory = make_advisory()
        with self.assertRaises(ConfigurationError):
            profiles.validate(advisory, "csaf_vex")

    def test_profiles_get_profile_for_category(self):
        self.assertEqual("VEX", profiles.get_profile_for_category("csaf_vex").tag)
        self.assertEqual(
            "SECURITY_ADVISORY",
            profiles.get_profile_for_category("csaf_security_advisory").tag,
        )
        self.assertEqual("BASE", profiles.get_profile_for_category("generic_csaf").tag)
