"""
Logging configuration for applications that read SAS Transport files.

The library itself only creates loggers.  Callers can apply a
``logging.config.dictConfig`` mapping kept in a YAML file:

    >>> import xpt.config
    >>> config = xpt.config.configure_logging('logging.yml', level='debug')
"""

# Standard Library
import functools
import json
import logging
import logging.config

# Community Packages
import yaml

__all__ = [
    'configure_logging',
    'load_config',
]

try:
    load_yaml = functools.partial(yaml.load, Loader=yaml.CSafeLoader)
except AttributeError:
    load_yaml = functools.partial(yaml.load, Loader=yaml.SafeLoader)

LOG = logging.getLogger(__name__)
log_levels = [name for x, name in sorted(logging._levelToName.items()) if x]

DEFAULT_CONFIG = {'version': 1, 'disable_existing_loggers': False}


def load_config(path='logging.yml'):
    """
    Read a logging configuration mapping from a YAML file.
    """
    try:
        with open(path) as file:
            config = load_yaml(file)
    except FileNotFoundError:
        LOG.debug(f'No logging config at {path!r}, using defaults')
        return dict(DEFAULT_CONFIG)
    if not isinstance(config, dict):
        raise ValueError(f'Expected a mapping in {path!r}, got {type(config).__name__}')
    return config


def configure_logging(path='logging.yml', level=None):
    """
    Apply the logging configuration, optionally overriding logger levels.
    """
    config = load_config(path)
    if level:
        if level.upper() not in log_levels:
            raise ValueError(f'Invalid log level {level!r}, expected one of {log_levels}')
        for config_ in config.get('loggers', {}).values():
            config_['level'] = level.upper()
    logging.config.dictConfig(config)
    LOG.debug('Using logging config %s', json.dumps(config, indent=2))
    return config
