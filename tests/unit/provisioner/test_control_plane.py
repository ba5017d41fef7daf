from unittest import mock

import pytest
from libcloud.compute.base import Node, NodeLocation, NodeSize
from libcloud.compute.types import NodeState, Provider, KeyPairDoesNotExistError

from cloudprov.provisioner.cloud_config import compute_template
from cloudprov.provisioner.control_plane import (libcloud_control_plane, resolve_api, to_cloud_node,
                                                 EC2_API, OPENSTACK_API, CLOUDSTACK_API)
from cloudprov.provisioner.node_states import node_status


@pytest.mark.parametrize('name, expected', [
    ('aws-ec2', (Provider.EC2, EC2_API, False)),
    ('rackspace', (Provider.RACKSPACE, OPENSTACK_API, False)),
    ('openstack-nova', (Provider.OPENSTACK, OPENSTACK_API, True)),
    ('cloudstack', (Provider.CLOUDSTACK, CLOUDSTACK_API, True)),
])
def test_resolve_api(name, expected):
    assert resolve_api(name) == expected


def test_resolve_unknown_api():
    with pytest.raises(KeyError):
        resolve_api('acme-cloud')


def _node(driver, node_id, name, state=NodeState.RUNNING, private_ips=None, public_ips=None, extra=None):
    return Node(id=node_id, name=name, state=state, public_ips=public_ips or [], private_ips=private_ips or [],
                driver=driver, extra=extra or {})


@pytest.fixture
def driver():
    driver = mock.MagicMock()
    driver.list_nodes.return_value = [
        _node(driver, 'i-1', 'manager-1', private_ips=['10.0.0.1'], public_ips=['54.0.0.1'],
              extra={'availability': 'us-east-1a'}),
        _node(driver, 'i-2', 'agent-1', state=NodeState.PENDING, private_ips=['10.0.0.2'],
              extra={'password': 'generated', 'username': 'root'}),
    ]
    driver.list_locations.return_value = [NodeLocation('us-east-1a', 'us-east-1a', 'US', driver),
                                          NodeLocation('us-west-2a', 'us-west-2a', 'US', driver)]
    driver.list_sizes.return_value = [NodeSize('m1.small', 'small', 1740, 160, None, 0.06, driver)]
    return driver


@pytest.fixture
def control_plane(driver):
    template = compute_template.from_dict('SMALL', {'image_id': 'ami-1', 'hardware_id': 'm1.small',
                                                    'options': {'securityGroupNames': ['web'],
                                                                'keyPairName': 'ops'}})
    return libcloud_control_plane('aws-ec2', 'user', 'key', template=template, driver=driver)


def test_to_cloud_node(driver):
    node = to_cloud_node(driver.list_nodes()[1])
    assert node.status == node_status.PENDING
    assert node.group == 'agent-1'
    assert node.credentials.identity == 'root'
    assert node.credentials.password == 'generated'
    assert node.credentials.password_present


def test_to_cloud_node_without_credentials(driver):
    node = to_cloud_node(driver.list_nodes()[0])
    assert node.credentials is None
    assert node.location_id == 'us-east-1a'


def test_lookups(control_plane):
    assert control_plane.get_node_by_id('i-2').name == 'agent-1'
    assert control_plane.get_node_by_name('manager-1').id == 'i-1'
    assert control_plane.get_node_by_name('manager-9') is None
    assert control_plane.get_node_by_address('54.0.0.1').id == 'i-1'
    assert control_plane.get_node_by_address('10.9.9.9') is None
    assert [node.id for node in control_plane.list_nodes(lambda node: node.status == node_status.RUNNING)] == ['i-1']


def test_create_node(control_plane, driver):
    driver.create_node.return_value = _node(driver, 'i-3', 'agent-2', state=NodeState.PENDING)

    node = control_plane.create_node('agent-2', 'us-west-2a')

    assert node.id == 'i-3'
    assert node.location_id == 'us-west-2a'
    kwargs = driver.create_node.call_args[1]
    assert kwargs['name'] == 'agent-2'
    assert kwargs['location'].id == 'us-west-2a'
    assert kwargs['size'].id == 'm1.small'
    assert kwargs['ex_security_groups'] == ['web']
    assert kwargs['ex_keyname'] == 'ops'


def test_get_template_unknown_location(control_plane):
    with pytest.raises(ValueError) as exc_info:
        control_plane.get_template('ap-south-1a')
    assert 'Location ap-south-1a is not available' in str(exc_info.value)


def test_default_location(control_plane):
    assert control_plane.get_template(None).location_id == 'us-east-1a'


def test_destroy_nodes_by_address(control_plane, driver):
    control_plane.destroy_nodes_by_address({'10.0.0.2'})
    destroyed = [call[0][0].id for call in driver.destroy_node.call_args_list]
    assert destroyed == ['i-2']


def test_missing_key_pair(control_plane, driver):
    driver.get_key_pair.side_effect = KeyPairDoesNotExistError('ops', driver)
    assert control_plane.get_ssh_key_pair('ops') is None


def test_password_data(control_plane, driver):
    response = mock.MagicMock()
    response.object.iter.return_value = [mock.Mock(tag='{ns}instanceId', text='i-1'),
                                         mock.Mock(tag='{ns}passwordData', text=' c2VjcmV0 ')]
    driver.connection.request.return_value = response

    assert control_plane.get_password_data('i-1') == 'c2VjcmV0'
    params = driver.connection.request.call_args[1]['params']
    assert params == {'Action': 'GetPasswordData', 'InstanceId': 'i-1'}


def test_destroy_and_wait(control_plane, driver):
    nodes = driver.list_nodes.return_value
    driver.destroy_node.side_effect = lambda node: nodes.remove(node)

    assert control_plane.destroy_and_wait('i-2', 5) is True
    assert [node.id for node in nodes] == ['i-1']


def test_destroy_and_wait_timeout(control_plane, driver):
    assert control_plane.destroy_and_wait('i-2', 0) is False
    assert driver.destroy_node.call_count == 1
