#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

import logging
from os import getenv

import requests

from csaf_toolkit import settings

VERSION = "0.4.0"
__version__ = VERSION

logger = logging.getLogger("csaf_toolkit")


class CSAFToolkitError(Exception):
    """Base class for all the errors raised by the toolkit."""


def get_settings(var_name, default=None):
    """Return the settings value from the environment or the settings module."""
    return getenv(var_name) or getattr(settings, var_name, None) or default


class BaseService:
    label = None
    settings_prefix = None
    default_timeout = 5

    def __init__(self, service_url=None, api_key=None, timeout=None):
        self.service_url = service_url
        self.service_api_key = api_key
        self.basic_auth_user = None
        self.basic_auth_password = None

        # Fallback on the global application settings
        if not self.service_url:
            self.service_url = get_settings(f"{self.settings_prefix}_URL", default="")
            self.service_api_key = get_settings(f"{self.settings_prefix}_API_KEY")
            # Basic Authentication only available with configuration through settings
            self.basic_auth_user = get_settings(f"{self.settings_prefix}_USER")
            self.basic_auth_password = get_settings(f"{self.settings_prefix}_PASSWORD")

        self.timeout = timeout or int(get_settings("REGISTRY_TIMEOUT", self.default_timeout))
        self.api_url = f'{self.service_url.rstrip("/")}/api/'

    def get_session(self):
        session = requests.Session()

        if self.service_api_key:
            session.headers.update({"Authorization": f"Token {self.service_api_key}"})

        basic_auth_enabled = self.basic_auth_user and self.basic_auth_password
        if basic_auth_enabled:
            session.auth = (self.basic_auth_user, self.basic_auth_password)

        return session

    @property
    def session(self):
        return self.get_session()

    def is_configured(self):
        """Return True if the ``service_url`` is set."""
        if self.service_url:
            return True
        return False

    def request_get(self, url, **kwargs):
        """Wrap the HTTP request calls on the API."""
        if not url:
            return

        if "timeout" not in kwargs:
            kwargs["timeout"] = self.timeout

        params = kwargs.get("params")
        if params and "format" not in params:
            params["format"] = "json"

        logger.debug(f"{self.label}: url={url} params={params}")
        try:
            response = self.session.get(url, **kwargs)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError, TypeError) as exception:
            logger.error(f"{self.label} [Exception] {exception}")
