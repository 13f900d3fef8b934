# Configuration settings should be set in app.config
# The NestedRest class attributes hold the defaults, environment variables are used as a last resort
import os
import logging
from flask import current_app
import nested_rest
from typing import Any


def get_config(option: str) -> Any:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        # RuntimeError: working outside of the application context
        result = getattr(nested_rest.NestedRest, option, os.environ.get(option, None))
    return result


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return nested_rest.log.getEffectiveLevel() < logging.INFO
