import os
import time
import logging

import coloredlogs
import yaml


logger_singleton = list()


def get_logger(log_level=logging.INFO):
    '''Create a custom logger

    Parameters
    ----------
    log_level: int
        the level of log from `logging` module

    Returns
    -------
    Logger
        a custom Logger object with custom format and logging level
    '''
    global logger_singleton
    if logger_singleton:
        return logger_singleton[0]

    logger = logging.getLogger("cloudprov")
    # machines start on worker threads, so every record names its thread
    log_format = "%(asctime)s [%(threadName)s] %(levelname)s: %(message)s"
    logger.setLevel(log_level)
    coloredlogs.install(level=log_level, logger=logger, fmt=log_format)
    logger_singleton.append(logger)
    return logger


logger = get_logger()


def parse_config_file(config_file_path):
    if config_file_path is None or config_file_path == "":
        raise IOError("Please enter the configuration file path.")
    elif not os.path.exists(config_file_path):
        raise IOError("Please enter an existing configuration file path.")
    else:
        with open(config_file_path, 'r') as f:
            content = yaml.full_load(f)
        if not isinstance(content, dict):
            raise IOError("The configuration file %s does not hold a mapping." % config_file_path)
        return content


def is_blank(value):
    return value is None or str(value).strip() == ''


class deadline(object):
    """An absolute point in time that bounds every blocking call of one operation.

    The same instance is handed down to every nested call so that a fleet
    start and the machines it starts all share a single bound.
    """

    def __init__(self, end):
        self.end = end

    @classmethod
    def from_duration(cls, seconds):
        return cls(time.monotonic() + seconds)

    def remaining(self):
        return max(0.0, self.end - time.monotonic())

    def expired(self):
        return time.monotonic() >= self.end

    def __repr__(self):
        return 'deadline(remaining=%.1fs)' % self.remaining()


class CloudProvisioningException(Exception):
    def __init__(self, message):
        self.message = message
        super(CloudProvisioningException, self).__init__(message)


class CreationFailedException(CloudProvisioningException):
    """A node could not be created, or failed after it was created."""


class ProvisioningTimeoutException(CloudProvisioningException):
    """The deadline passed before the operation completed.

    `node_id` names the node that was created but never became ready, if any.
    """

    def __init__(self, message, node_id=None):
        self.node_id = node_id
        super(ProvisioningTimeoutException, self).__init__(message)


class ServerNameExhaustedException(CloudProvisioningException):
    """Every candidate server name is already taken."""


class InvalidConfigurationException(CloudProvisioningException):
    """The cloud configuration does not match what the cloud offers."""


def raise_missing(category, missing):
    """Raise one error naming every missing identifier of a category

    Parameters
    ----------
    category: str
        the singular name of the identifier kind, e.g. `image ID`

    missing: set of str
        the identifiers that could not be found in the cloud
    """
    if not missing:
        return
    if len(missing) == 1:
        raise InvalidConfigurationException('Invalid %s: %s' % (category, next(iter(missing))))
    raise InvalidConfigurationException('Invalid %ss: [%s]' % (category, ', '.join(sorted(missing))))
