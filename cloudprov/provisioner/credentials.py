import base64
import os

import tenacity
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding

from cloudprov.utils import get_logger, CreationFailedException, ProvisioningTimeoutException

logger = get_logger()

DEFAULT_EC2_WINDOWS_USERNAME = 'Administrator'
EC2_WINDOWS_PASSWORD_POLLING_INTERVAL = 10


def resolve_username(node, template):
    # template configuration takes precedence
    if template.username is not None:
        return template.username
    if node.credentials is not None and node.credentials.identity is not None:
        return node.credentials.identity
    return None


def resolve_password(node, template):
    if template.password is not None:
        return template.password
    # some clouds return a generated password, an empty one is still a password
    if node.credentials is not None and node.credentials.password_present:
        return node.credentials.password
    return None


def resolve_credentials(node, template):
    """Pick the login identity of a new node

    Parameters
    ----------
    node: cloud_node
        the node as reported by the cloud

    template: compute_template
        the template the node was created from

    Returns
    -------
    tuple
        (username, password), each None when neither the template nor the
        node provides it
    """
    return resolve_username(node, template), resolve_password(node, template)


def key_file_path(template, management):
    if management:
        directory = template.absolute_upload_dir
    else:
        directory = template.local_directory
    return os.path.join(os.path.expanduser(directory or ''), template.key_file or '')


def _password_timeout(retry_state):
    raise ProvisioningTimeoutException('Timed out waiting for the EC2 Windows password to become available')


class ec2_windows_password_handler(object):
    """Fetches the administrator password AWS generates for Windows instances.

    The password is published encrypted with the instance's key pair some
    minutes after boot, so it is polled for until the deadline.
    """

    def __init__(self, control_plane, poll_interval=EC2_WINDOWS_PASSWORD_POLLING_INTERVAL):
        self.control_plane = control_plane
        self.poll_interval = poll_interval

    def _wait_for_password_data(self, node_id, end):
        # the last sleep is cut short so the final attempt lands on the deadline
        retrying = tenacity.Retrying(
            stop=lambda retry_state: end.expired(),
            wait=lambda retry_state: min(self.poll_interval, end.remaining()),
            retry=tenacity.retry_if_result(lambda password_data: not password_data),
            retry_error_callback=_password_timeout)
        return retrying(self.control_plane.get_password_data, node_id)

    def get_password(self, node_id, end, pem_file):
        if not os.path.isfile(pem_file):
            logger.error('Could not find pem file: %s' % pem_file)
            raise CreationFailedException('Could not find key file: %s' % pem_file)
        with open(pem_file, 'rb') as f:
            private_key = serialization.load_pem_private_key(f.read(), password=None)

        password_data = self._wait_for_password_data(node_id, end)
        return private_key.decrypt(base64.b64decode(password_data), padding.PKCS1v15()).decode('utf-8')
