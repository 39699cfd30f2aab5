#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

from csaf_toolkit import csaf

DEFAULT_DATE = "2024-01-15T10:00:00Z"


def make_document(category="csaf_vex", **data):
    document_data = {
        "category": category,
        "csaf_version": "2.0",
        "publisher": {
            "category": "vendor",
            "name": "Example Company",
            "namespace": "https://example.com",
        },
        "title": "Example document",
        "tracking": {
            "current_release_date": DEFAULT_DATE,
            "id": "EX-2024-0001",
            "initial_release_date": DEFAULT_DATE,
            "revision_history": [
                {"date": DEFAULT_DATE, "number": "1", "summary": "Initial version."},
            ],
            "status": "final",
            "version": "1",
        },
    }
    document_data.update(data)
    return csaf.Document(**document_data)


def make_product_tree(*product_ids, **data):
    full_product_names = [
        csaf.FullProductName(name=f"Product {product_id}", product_id=product_id)
        for product_id in product_ids
    ]
    return csaf.ProductTree(full_product_names=full_product_names or None, **data)


def make_vulnerability(**data):
    vulnerability_data = {
        "cve": "CVE-2024-0001",
        "notes": [{"category": "summary", "text": "Not available"}],
    }
    vulnerability_data.update(data)
    return csaf.Vulnerability(**vulnerability_data)


def make_advisory(product_ids=("CSAFPID-0001", "CSAFPID-0002"), vulnerabilities=None, **data):
    return csaf.build_advisory(
        document=data.pop("document", None) or make_document(),
        product_tree=make_product_tree(*product_ids),
        vulnerabilities=vulnerabilities,
        **data,
    )
