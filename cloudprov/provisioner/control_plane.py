import re
import threading
import time
from collections import namedtuple

from urllib.parse import urlparse

from libcloud.compute.base import NodeImage
from libcloud.compute.providers import get_driver
from libcloud.compute.types import Provider, KeyPairDoesNotExistError

from cloudprov.provisioner.node_states import from_libcloud_state
from cloudprov.utils import get_logger

logger = get_logger()

EC2_API = 'aws-ec2'
EC2_GENERIC_API = 'ec2'
OPENSTACK_API = 'openstack-nova'
CLOUDSTACK_API = 'cloudstack'
VCLOUD_API = 'vcloud'

# provider name -> (libcloud provider, API id)
KNOWN_PROVIDERS = {
    'aws-ec2': (Provider.EC2, EC2_API),
    'rackspace': (Provider.RACKSPACE, OPENSTACK_API),
    'exoscale': (Provider.EXOSCALE, CLOUDSTACK_API),
}

# API id -> libcloud provider; these need an explicit endpoint
KNOWN_APIS = {
    EC2_GENERIC_API: Provider.EUCALYPTUS,
    OPENSTACK_API: Provider.OPENSTACK,
    CLOUDSTACK_API: Provider.CLOUDSTACK,
    VCLOUD_API: Provider.VCLOUD,
}

_EC2_ZONE = re.compile(r'^([a-z]{2}(-[a-z]+)+-\d)[a-z]$')
_DESTROY_POLLING_INTERVAL = 5

login_credentials = namedtuple('login_credentials', ['identity', 'password', 'password_present'])

cloud_node = namedtuple('cloud_node', ['id', 'name', 'group', 'status', 'private_ips', 'public_ips',
                                       'location_id', 'credentials', 'extra'])

node_template = namedtuple('node_template', ['image', 'size', 'location', 'location_id'])


def resolve_api(provider_name):
    """Find the libcloud provider and API id for a provider name

    Returns
    -------
    tuple
        (libcloud provider, API id, endpoint required); the last item is True
        when the name was only found among the APIs (private clouds)

    Raises
    ------
    KeyError
        if the name is neither a known provider nor a known API
    """
    if provider_name in KNOWN_PROVIDERS:
        provider, api_id = KNOWN_PROVIDERS[provider_name]
        return provider, api_id, False
    if provider_name in KNOWN_APIS:
        return KNOWN_APIS[provider_name], provider_name, True
    raise KeyError(provider_name)


def _endpoint_options(api_id, endpoint):
    if not endpoint:
        return dict()
    url = urlparse(endpoint)
    if api_id == OPENSTACK_API:
        return {'ex_force_auth_url': endpoint}
    if api_id == CLOUDSTACK_API:
        return {'url': endpoint}
    options = {'host': url.hostname}
    if url.port:
        options['port'] = url.port
    if api_id == EC2_GENERIC_API and url.path:
        options['path'] = url.path
    return options


def to_cloud_node(node, location_id=None):
    """Take a snapshot of a libcloud node"""
    extra = dict(node.extra or {})
    credentials = None
    if 'password' in extra or extra.get('username'):
        credentials = login_credentials(identity=extra.get('username'),
                                        password=extra.get('password'),
                                        password_present='password' in extra and extra['password'] is not None)
    group = extra.get('group') or node.name
    node_location = extra.get('availability') or extra.get('zone') or extra.get('location') or location_id
    if node_location is not None and not isinstance(node_location, str):
        node_location = getattr(node_location, 'id', None) or getattr(node_location, 'name', None)
    return cloud_node(id=node.id,
                      name=node.name,
                      group=group,
                      status=from_libcloud_state(node.state),
                      private_ips=list(node.private_ips or []),
                      public_ips=list(node.public_ips or []),
                      location_id=node_location,
                      credentials=credentials,
                      extra=extra)


class libcloud_control_plane(object):
    """Creates, finds and destroys nodes of one cloud through a libcloud driver.

    Regional lookups (security groups, key pairs) get their own driver per
    region, created on first use and kept until `close()`.
    """

    def __init__(self, provider_name, user, api_key, endpoint=None, template=None, driver=None, **options):
        self.provider_name = provider_name
        self.provider, self.api_id, _ = resolve_api(provider_name)
        self.user = user
        self.api_key = api_key
        self.endpoint = endpoint
        self.template = template
        self.options = options
        self._regional_drivers = dict()
        self._lock = threading.Lock()
        if driver is None:
            driver = self._get_driver()
        self.driver = driver

    def _get_driver(self, region=None):
        logger.info("Creating a Driver to connect to %s" % self.provider_name)
        kwargs = dict(self.options)
        kwargs.update(_endpoint_options(self.api_id, self.endpoint))
        if region:
            if self.api_id in (EC2_API, EC2_GENERIC_API):
                kwargs['region'] = region
            elif self.api_id == OPENSTACK_API:
                kwargs['ex_force_service_region'] = region
        Driver = get_driver(self.provider)
        return Driver(self.user, self.api_key, **kwargs)

    def _regional_driver(self, region):
        if not region:
            return self.driver
        region = self._region_of(region)
        with self._lock:
            if region not in self._regional_drivers:
                self._regional_drivers[region] = self._get_driver(region)
            return self._regional_drivers[region]

    def _region_of(self, location_id):
        if self.api_id in (EC2_API, EC2_GENERIC_API):
            match = _EC2_ZONE.match(location_id)
            if match:
                return match.group(1)
        return location_id

    def _find_location(self, location_id):
        if not location_id:
            return None
        for location in self.driver.list_locations():
            if location.id == location_id or location.name == location_id:
                return location
        raise ValueError('Location %s is not available' % location_id)

    def _find_size(self, hardware_id):
        for size in self.driver.list_sizes():
            if size.id == hardware_id:
                return size
        raise ValueError('Hardware profile %s is not available' % hardware_id)

    def _create_options(self):
        options = dict()
        if self.template is None:
            return options
        security_groups = self.template.security_group_names
        if security_groups:
            options['ex_security_groups'] = sorted(security_groups)
        if self.template.key_pair_name:
            options['ex_keyname'] = self.template.key_pair_name
        for key, value in self.template.options.items():
            if key.startswith('ex_'):
                options[key] = value
        return options

    def get_template(self, location_id=None, image_id=None, hardware_id=None):
        """Resolve image, hardware and location together

        Missing ids fall back to the template the client was built for; no
        location at all falls back to the first location the cloud offers.
        """
        if self.template is not None:
            image_id = image_id or self.template.image_id
            hardware_id = hardware_id or self.template.hardware_id
        location = self._find_location(location_id)
        if location is None:
            locations = self.driver.list_locations()
            if not locations:
                raise ValueError('The cloud does not report any location')
            location = locations[0]
        size = self._find_size(hardware_id) if hardware_id else None
        image = self.get_image(image_id) if image_id else None
        if image_id and image is None:
            raise ValueError('Image %s is not available' % image_id)
        return node_template(image=image, size=size, location=location, location_id=location.id)

    def create_node(self, name, location_id=None):
        template = self.get_template(location_id)
        node = self.driver.create_node(name=name,
                                       image=template.image,
                                       size=template.size,
                                       location=template.location,
                                       **self._create_options())
        return to_cloud_node(node, template.location_id)

    def _list_libcloud_nodes(self):
        return self.driver.list_nodes()

    def get_node_by_id(self, node_id):
        for node in self._list_libcloud_nodes():
            if node.id == node_id:
                return to_cloud_node(node)
        return None

    def get_node_by_name(self, name):
        for node in self._list_libcloud_nodes():
            if node.name == name:
                return to_cloud_node(node)
        return None

    def get_node_by_address(self, ip):
        for node in self._list_libcloud_nodes():
            if ip in (node.private_ips or []) or ip in (node.public_ips or []):
                return to_cloud_node(node)
        return None

    def list_nodes(self, predicate=None):
        nodes = [to_cloud_node(node) for node in self._list_libcloud_nodes()]
        if predicate is None:
            return nodes
        return [node for node in nodes if predicate(node)]

    def destroy_node(self, node_id):
        for node in self._list_libcloud_nodes():
            if node.id == node_id:
                logger.info('Destroying node %s' % node_id)
                return node.destroy()
        logger.warning('Node %s not found, nothing to destroy' % node_id)
        return False

    def destroy_nodes_by_address(self, ips):
        ips = set(ips)
        for node in self._list_libcloud_nodes():
            if ips.intersection(node.private_ips or []) or ips.intersection(node.public_ips or []):
                logger.info('Destroying node %s (%s)' % (node.id, node.name))
                node.destroy()

    def destroy_and_wait(self, node_id, timeout):
        end = time.monotonic() + timeout
        self.destroy_node(node_id)
        while time.monotonic() < end:
            node = self.get_node_by_id(node_id)
            if node is None or node.status.name == 'TERMINATED':
                return True
            time.sleep(max(0.0, min(_DESTROY_POLLING_INTERVAL, end - time.monotonic())))
        return False

    def get_image(self, image_id):
        try:
            return self.driver.get_image(image_id)
        except NotImplementedError:
            return NodeImage(id=image_id, name=None, driver=self.driver)
        except Exception as e:
            logger.debug('Image %s not found: %s' % (image_id, e))
            return None

    def list_sizes(self):
        return self.driver.list_sizes()

    def list_locations(self):
        return self.driver.list_locations()

    # EC2 family
    def describe_security_groups_in_region(self, region, name):
        try:
            return self._regional_driver(region).ex_get_security_groups(group_names=[name])
        except Exception as e:
            if 'InvalidGroup.NotFound' in str(e):
                return []
            raise

    def describe_key_pairs_in_region(self, region, name):
        try:
            return [self._regional_driver(region).get_key_pair(name)]
        except KeyPairDoesNotExistError:
            return []

    def get_password_data(self, node_id):
        """Return the encrypted administrator password of an EC2 Windows node, '' until it is ready"""
        params = {'Action': 'GetPasswordData', 'InstanceId': node_id}
        response = self.driver.connection.request(self.driver.path, params=params).object
        for element in response.iter():
            if element.tag.endswith('passwordData'):
                return (element.text or '').strip()
        return ''

    # OpenStack family
    def list_security_groups_in_zone(self, region):
        return self._regional_driver(region).ex_list_security_groups()

    def list_key_pairs_in_zone(self, region):
        return self._regional_driver(region).list_key_pairs()

    # CloudStack family
    def get_security_group(self, name):
        for group in self.driver.ex_list_security_groups():
            if group.get('name') == name:
                return group
        return None

    def get_ssh_key_pair(self, name):
        try:
            return self.driver.get_key_pair(name)
        except KeyPairDoesNotExistError:
            return None

    def close(self):
        with self._lock:
            self._regional_drivers.clear()
