#
# Copyright (c) nexB Inc. and others. All rights reserved.
# DejaCode is a trademark of nexB Inc.
# SPDX-License-Identifier: AGPL-3.0-only
# See https://github.com/aboutcode-org/dejacode for support or download.
# See https://aboutcode.org for more information about AboutCode FOSS projects.
#

# Common settings for all the deployments of the CSAF toolkit

import logging.config
from pathlib import Path

import environ

PROJECT_DIR = environ.Path(__file__) - 1
ROOT_DIR = PROJECT_DIR - 1

env = environ.Env()

# Environment
ENV_FILE = env.str("CSAF_TOOLKIT_ENV_FILE", default=ROOT_DIR(".env"))
if Path(ENV_FILE).exists():
    environ.Env.read_env(ENV_FILE)  # Reading the .env file into os.environ

CSAF_TOOLKIT_LOG_LEVEL = env.str("CSAF_TOOLKIT_LOG_LEVEL", "INFO")

# Publisher of the documents synthesized from external advisories
CSAF_PUBLISHER_NAME = env.str("CSAF_PUBLISHER_NAME", default="AboutCode")
CSAF_PUBLISHER_NAMESPACE = env.str("CSAF_PUBLISHER_NAMESPACE", default="https://aboutcode.org")
CSAF_PUBLISHER_CATEGORY = env.str("CSAF_PUBLISHER_CATEGORY", default="coordinator")

# PurlDB package registry
PURLDB_URL = env.str("PURLDB_URL", default="")
PURLDB_API_KEY = env.str("PURLDB_API_KEY", default="")
PURLDB_USER = env.str("PURLDB_USER", default="")
PURLDB_PASSWORD = env.str("PURLDB_PASSWORD", default="")
PURLDB_DEFAULT_TYPE = env.str("PURLDB_DEFAULT_TYPE", default="")
REGISTRY_TIMEOUT = env.int("REGISTRY_TIMEOUT", default=5)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(levelname)s %(asctime)s %(module)s %(process)d %(thread)d %(message)s"
        },
        "simple": {"format": "%(levelname)s %(message)s"},
    },
    "handlers": {
        "null": {
            "class": "logging.NullHandler",
        },
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "csaf_toolkit": {
            "handlers": ["console"],
            "level": CSAF_TOOLKIT_LOG_LEVEL,
            "propagate": False,
        },
    },
}


def configure_logging(level=None):
    """
    Apply the ``LOGGING`` configuration.
    An optional `level` overrides the ``CSAF_TOOLKIT_LOG_LEVEL`` setting.
    """
    config = {**LOGGING, "loggers": {**LOGGING["loggers"]}}
    if level:
        config["loggers"]["csaf_toolkit"] = {
            **config["loggers"]["csaf_toolkit"],
            "level": level,
        }
    logging.config.dictConfig(config)
