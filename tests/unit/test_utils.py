import os
import time

import pytest

from cloudprov.utils import (parse_config_file, deadline, raise_missing, is_blank,
                             InvalidConfigurationException, CloudProvisioningException,
                             CreationFailedException, ProvisioningTimeoutException,
                             ServerNameExhaustedException)


@pytest.mark.parametrize('file_path, message', [
    (None, 'Please enter the configuration file path'),
    ('', 'Please enter the configuration file path'),
    ('a/b/c', 'Please enter an existing configuration file path')
])
def test_parse_config_file_wrong_input(file_path, message):
    with pytest.raises(IOError) as exc_info:
        parse_config_file(file_path)
    assert message in str(exc_info)


def test_parse_config_file_valid_input(test_data_dir):
    result = parse_config_file(os.path.join(test_data_dir, 'cloud_ec2.yaml'))
    assert result['provider'] == 'aws-ec2'
    assert result['number_of_management_machines'] == 2
    assert result['templates']['SMALL_LINUX']['options']['securityGroupNames'] == ['default', 'web']


def test_parse_config_file_not_a_mapping(tmp_path):
    config_file = tmp_path / 'list.yaml'
    config_file.write_text('- aws-ec2\n- openstack-nova\n')
    with pytest.raises(IOError) as exc_info:
        parse_config_file(str(config_file))
    assert 'does not hold a mapping' in str(exc_info.value)


def test_deadline_from_duration():
    end = deadline.from_duration(60)
    assert not end.expired()
    assert 59 < end.remaining() <= 60


def test_deadline_in_the_past():
    end = deadline.from_duration(-1)
    assert end.expired()
    assert end.remaining() == 0


def test_deadline_expires():
    end = deadline(time.monotonic() + 0.01)
    time.sleep(0.02)
    assert end.expired()


@pytest.mark.parametrize('value, expected', [
    (None, True),
    ('', True),
    ('   ', True),
    ('ami-1', False),
    (0, False),
])
def test_is_blank(value, expected):
    assert is_blank(value) == expected


def test_raise_missing_nothing_missing():
    raise_missing('image ID', set())


def test_raise_missing_singular():
    with pytest.raises(InvalidConfigurationException) as exc_info:
        raise_missing('image ID', {'img-missing-a'})
    assert exc_info.value.message == 'Invalid image ID: img-missing-a'


def test_raise_missing_plural():
    with pytest.raises(InvalidConfigurationException) as exc_info:
        raise_missing('key-pair name', {'b-key', 'a-key'})
    assert exc_info.value.message == 'Invalid key-pair names: [a-key, b-key]'


@pytest.mark.parametrize('exception_class', [
    CreationFailedException,
    ProvisioningTimeoutException,
    ServerNameExhaustedException,
    InvalidConfigurationException,
])
def test_exceptions_share_a_base(exception_class):
    error = exception_class('boom')
    assert isinstance(error, CloudProvisioningException)
    assert error.message == 'boom'
    assert str(error) == 'boom'
