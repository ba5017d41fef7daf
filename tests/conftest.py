import copy
import os
import threading
from collections import namedtuple

import pytest

from cloudprov.provisioner.control_plane import cloud_node, node_template
from cloudprov.provisioner.node_states import node_status
from cloudprov.utils import parse_config_file

TEST_DATA_DIR = os.path.join(os.path.dirname(os.path.realpath(__file__)), 'test_data')

resource = namedtuple('resource', ['id', 'name'])


class fake_control_plane(object):
    """An in-memory cloud: nodes, inventories and scripted status sequences"""

    def __init__(self):
        self.nodes = dict()
        self.statuses = [node_status.PENDING, node_status.RUNNING]
        self.status_by_name = dict()
        self.create_failures = dict()
        self.node_credentials = None
        self.node_location_id = 'us-east-1'
        self.create_calls = list()
        self.destroyed = list()
        self.destroyed_addresses = list()
        self.closed = False
        self.images = set()
        self.sizes = set()
        self.locations = set()
        self.template_error = None
        self.default_location_id = None
        self.ec2_security_groups = dict()
        self.ec2_key_pairs = dict()
        self.openstack_security_groups = dict()
        self.openstack_key_pairs = dict()
        self.global_security_groups = set()
        self.global_key_pairs = set()
        self.password_data = list()
        self.on_name_lookup = None
        self._scripts = dict()
        self._next_index = 0
        self._lock = threading.Lock()

    def add_node(self, name, status=node_status.RUNNING, private_ip=None, public_ip=None, group=None):
        with self._lock:
            self._next_index += 1
            index = self._next_index
            node = cloud_node(id='node-%s' % index,
                              name=name,
                              group=name if group is None else group,
                              status=status,
                              private_ips=[private_ip or '10.0.0.%s' % index],
                              public_ips=[public_ip or '54.0.0.%s' % index],
                              location_id=self.node_location_id,
                              credentials=self.node_credentials,
                              extra=dict())
            self.nodes[node.id] = node
            return node

    def create_node(self, name, location_id=None):
        with self._lock:
            self.create_calls.append((name, location_id))
            call_number = len(self.create_calls)
        failure = self.create_failures.get(call_number)
        if failure is not None:
            raise failure
        node = self.add_node(name, status=node_status.PENDING)
        self._scripts[node.id] = list(self.status_by_name.get(name, self.statuses))
        return node

    def get_node_by_id(self, node_id):
        with self._lock:
            node = self.nodes.get(node_id)
            if node is None:
                return None
            script = self._scripts.get(node_id)
            if script:
                status = script.pop(0) if len(script) > 1 else script[0]
                node = node._replace(status=status)
                self.nodes[node_id] = node
            return node

    def get_node_by_name(self, name):
        if self.on_name_lookup is not None:
            self.on_name_lookup(name)
        with self._lock:
            for node in self.nodes.values():
                if node.name == name:
                    return node
        return None

    def get_node_by_address(self, ip):
        with self._lock:
            for node in self.nodes.values():
                if ip in node.private_ips or ip in node.public_ips:
                    return node
        return None

    def list_nodes(self, predicate=None):
        with self._lock:
            nodes = list(self.nodes.values())
        return [node for node in nodes if predicate is None or predicate(node)]

    def destroy_node(self, node_id):
        with self._lock:
            self.destroyed.append(node_id)
            self.nodes.pop(node_id, None)

    def destroy_nodes_by_address(self, ips):
        self.destroyed_addresses.append(set(ips))
        for node in self.list_nodes():
            if set(ips).intersection(node.private_ips):
                self.destroy_node(node.id)

    def destroy_and_wait(self, node_id, timeout):
        self.destroy_node(node_id)
        return True

    def get_image(self, image_id):
        return resource(image_id, image_id) if image_id in self.images else None

    def list_sizes(self):
        return [resource(size, size) for size in self.sizes]

    def list_locations(self):
        return [resource(location, location) for location in self.locations]

    def get_template(self, location_id=None, image_id=None, hardware_id=None):
        if self.template_error is not None:
            raise self.template_error
        if location_id is None:
            if self.default_location_id is None:
                raise ValueError('no default location')
            location_id = self.default_location_id
        return node_template(image=image_id, size=hardware_id, location=location_id, location_id=location_id)

    def describe_security_groups_in_region(self, region, name):
        return [name] if name in self.ec2_security_groups.get(region, set()) else []

    def describe_key_pairs_in_region(self, region, name):
        return [name] if name in self.ec2_key_pairs.get(region, set()) else []

    def list_security_groups_in_zone(self, region):
        return [resource(name, name) for name in self.openstack_security_groups.get(region, set())]

    def list_key_pairs_in_zone(self, region):
        return [resource(name, name) for name in self.openstack_key_pairs.get(region, set())]

    def get_security_group(self, name):
        return {'name': name} if name in self.global_security_groups else None

    def get_ssh_key_pair(self, name):
        return resource(name, name) if name in self.global_key_pairs else None

    def get_password_data(self, node_id):
        if len(self.password_data) > 1:
            return self.password_data.pop(0)
        return self.password_data[0] if self.password_data else ''

    def close(self):
        self.closed = True


@pytest.fixture
def control_plane():
    return fake_control_plane()


@pytest.fixture
def ec2_configs():
    return copy.deepcopy(parse_config_file(os.path.join(TEST_DATA_DIR, 'cloud_ec2.yaml')))


@pytest.fixture
def openstack_configs():
    return copy.deepcopy(parse_config_file(os.path.join(TEST_DATA_DIR, 'cloud_openstack.yaml')))


@pytest.fixture
def test_data_dir():
    return TEST_DATA_DIR
