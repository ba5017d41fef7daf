from collections import namedtuple
from types import MappingProxyType

from cloudprov.utils import InvalidConfigurationException, is_blank

FILE_TRANSFER_MODES = ('SFTP', 'SCP', 'CIFS')
REMOTE_EXECUTION_MODES = ('SSH', 'WINRM')
ENDPOINT_OVERRIDE = 'endpoint'
DEFAULT_MAX_SERVERS = 200


def _as_str(value):
    return None if value is None else str(value)


_TEMPLATE_FIELDS = ['name', 'image_id', 'hardware_id', 'location_id', 'username', 'password',
                    'file_transfer', 'remote_execution', 'key_file', 'local_directory',
                    'absolute_upload_dir', 'options', 'overrides']


class compute_template(namedtuple('compute_template', _TEMPLATE_FIELDS)):
    """One named class of machine: image, hardware, location, login and provider options."""
    __slots__ = ()

    @classmethod
    def from_dict(cls, name, values):
        if not isinstance(values, dict):
            raise InvalidConfigurationException('Template "%s" has to be a dictionary.' % name)

        file_transfer = str(values.get('file_transfer', 'SFTP')).upper()
        if file_transfer not in FILE_TRANSFER_MODES:
            raise InvalidConfigurationException('Template "%s": unknown file transfer mode %s' % (name, file_transfer))
        remote_execution = str(values.get('remote_execution', 'SSH')).upper()
        if remote_execution not in REMOTE_EXECUTION_MODES:
            raise InvalidConfigurationException(
                'Template "%s": unknown remote execution mode %s' % (name, remote_execution))

        return cls(name=name,
                   image_id=_as_str(values.get('image_id')),
                   hardware_id=_as_str(values.get('hardware_id')),
                   location_id=_as_str(values.get('location_id')),
                   username=values.get('username'),
                   password=values.get('password'),
                   file_transfer=file_transfer,
                   remote_execution=remote_execution,
                   key_file=values.get('key_file'),
                   local_directory=values.get('local_directory'),
                   absolute_upload_dir=values.get('absolute_upload_dir'),
                   options=MappingProxyType(dict(values.get('options') or {})),
                   overrides=MappingProxyType(dict(values.get('overrides') or {})))

    @property
    def security_group_names(self):
        groups = self.options.get('securityGroupNames')
        if groups is None:
            groups = self.options.get('securityGroups')
        if groups is None:
            return set()
        if isinstance(groups, str):
            groups = [groups]
        return set(str(group) for group in groups)

    @property
    def key_pair_name(self):
        key_pair = self.options.get('keyPairName')
        if key_pair is None:
            key_pair = self.options.get('keyPair')
        if is_blank(key_pair):
            return None
        return str(key_pair)

    @property
    def endpoint(self):
        return self.overrides.get(ENDPOINT_OVERRIDE)

    def has_client_overrides(self):
        """True when the overrides hold anything besides the endpoint."""
        return any(key != ENDPOINT_OVERRIDE for key in self.overrides)

    def driver_options(self):
        return dict((key, value) for key, value in self.overrides.items() if key != ENDPOINT_OVERRIDE)


_CLOUD_FIELDS = ['provider', 'user', 'api_key', 'management_group', 'machine_name_prefix',
                 'number_of_management_machines', 'download_url', 'management_template',
                 'max_servers', 'templates']


class cloud_config(namedtuple('cloud_config', _CLOUD_FIELDS)):
    __slots__ = ()

    @classmethod
    def from_dict(cls, configs):
        if not isinstance(configs, dict):
            raise InvalidConfigurationException('The cloud configuration has to be a dictionary.')
        if is_blank(configs.get('provider')):
            raise InvalidConfigurationException('Missing required configuration key: provider')
        if not configs.get('templates'):
            raise InvalidConfigurationException('Missing required configuration key: templates')

        templates = configs['templates']
        if not isinstance(templates, dict):
            raise InvalidConfigurationException('templates has to be a dictionary of named templates.')
        templates = dict((name, compute_template.from_dict(name, values))
                         for name, values in templates.items())

        management_template = configs.get('management_template') or sorted(templates)[0]
        if management_template not in templates:
            raise InvalidConfigurationException('Unknown management template: %s' % management_template)

        number_of_management_machines = int(configs.get('number_of_management_machines', 1))
        max_servers = int(configs.get('max_servers', DEFAULT_MAX_SERVERS))
        if number_of_management_machines < 1 or max_servers < 1:
            raise InvalidConfigurationException(
                'number_of_management_machines and max_servers have to be positive.')

        return cls(provider=configs['provider'],
                   user=configs.get('user'),
                   api_key=configs.get('api_key'),
                   management_group=configs.get('management_group'),
                   machine_name_prefix=configs.get('machine_name_prefix') or 'cloud-agent-',
                   number_of_management_machines=number_of_management_machines,
                   download_url=configs.get('download_url'),
                   management_template=management_template,
                   max_servers=max_servers,
                   templates=MappingProxyType(templates))

    def get_template(self, name):
        try:
            return self.templates[name]
        except KeyError:
            raise InvalidConfigurationException('Unknown template: %s' % name)
