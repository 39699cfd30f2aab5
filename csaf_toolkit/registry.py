#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

from typing import NamedTuple

from packageurl import PackageURL

from csaf_toolkit import BaseService
from csaf_toolkit import CSAFToolkitError
from csaf_toolkit import get_settings
from csaf_toolkit import logger


class PackageNotFound(CSAFToolkitError):
    """The package identifier is not known to the registry."""

    def __init__(self, package):
        self.package = package
        super().__init__(f'Package "{package}" not found.')


class RegistryLookupError(CSAFToolkitError):
    """The registry could not be queried."""

    def __init__(self, package, message):
        self.package = package
        super().__init__(f'Lookup of "{package}" failed: {message}')


class RegistryPackage(NamedTuple):
    name: str
    versions: tuple

    @classmethod
    def from_versions(cls, name, versions):
        """Return a RegistryPackage with duplicated versions removed, order kept."""
        return cls(name=name, versions=tuple(dict.fromkeys(versions)))


def parse_package_identifier(package):
    """
    Return a PackageURL for a purl `package` identifier, None for a plain name.
    >>> parse_package_identifier("pkg:pypi/django@4.2").name
    'django'
    >>> parse_package_identifier("libfoo") is None
    True
    """
    if not package.startswith("pkg:"):
        return
    return PackageURL.from_string(package)


class InMemoryRegistry:
    """
    Registry backed by a mapping of package identifier to either a
    RegistryPackage or a list of versions.
    """

    label = "InMemory"

    def __init__(self, packages=None):
        self.packages = dict(packages or {})

    def lookup(self, package):
        entry = self.packages.get(package)
        if entry is None:
            raise PackageNotFound(package)

        if isinstance(entry, RegistryPackage):
            return entry

        purl = parse_package_identifier(package)
        name = purl.name if purl else package
        return RegistryPackage.from_versions(name, entry)


class PurlDBRegistry(BaseService):
    """
    Registry backed by the packages API of a PurlDB instance.
    Plain package names are looked up with the `default_type` package type,
    the ``PURLDB_DEFAULT_TYPE`` setting by default.
    """

    label = "PurlDB"
    settings_prefix = "PURLDB"

    def __init__(self, *args, default_type=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.package_api_url = f"{self.api_url}packages/"
        self.default_type = default_type or get_settings("PURLDB_DEFAULT_TYPE")

    def get_package_list(self, payload):
        """
        Return all the PurlDB package entries matching the `payload` filters.
        Return None when a request fails or when the pagination loops.
        """
        results = []
        url = self.package_api_url
        params = dict(payload)
        visited_urls = set()

        while url:
            if url in visited_urls:
                logger.error(f"{self.label}: pagination loop on {url}")
                return
            visited_urls.add(url)

            response = self.request_get(url, params=params)
            if response is None:
                return
            results.extend(response.get("results", []))
            # The "next" URL already includes the query string.
            url = response.get("next")
            params = None

        return results

    def get_payload(self, package):
        purl = parse_package_identifier(package)
        if not purl:
            if not self.default_type:
                message = "a Package URL is required when no default type is configured."
                raise RegistryLookupError(package, message)
            return {"type": self.default_type, "name": package}

        payload = {"type": purl.type, "name": purl.name}
        if purl.namespace:
            payload["namespace"] = purl.namespace
        return payload

    def lookup(self, package):
        """
        Return the RegistryPackage for a purl or plain name `package`.
        Raise a PackageNotFound when PurlDB has no entry for the package, and a
        RegistryLookupError when PurlDB is not configured or cannot be reached.
        """
        if not self.is_configured():
            raise RegistryLookupError(package, f"{self.label} is not configured.")

        payload = self.get_payload(package)
        results = self.get_package_list(payload)
        if results is None:
            raise RegistryLookupError(package, f"{self.label} request failed.")

        if not results:
            raise PackageNotFound(package)

        name = results[0].get("name") or payload["name"]
        versions = [entry.get("version") for entry in results if entry.get("version")]
        logger.debug(f"{self.label}: {len(versions)} version(s) found for {package}")
        return RegistryPackage.from_versions(name, versions)
