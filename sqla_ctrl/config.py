# Configuration settings should be set in app.config
# get_config falls back to the SQLACtrl class settings and then to the environment
import os
import logging
from flask import current_app
import sqla_ctrl
from typing import Optional, Union


def get_config(option: str) -> Optional[Union[bool, int, str]]:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        # RuntimeError is raised when working outside of the app context
        result = getattr(sqla_ctrl.SQLACtrl, option, os.environ.get(option, None))

    return result


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return sqla_ctrl.log.getEffectiveLevel() < logging.INFO
