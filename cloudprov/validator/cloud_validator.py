import requests

from cloudprov.provisioner.cloud_config import cloud_config
from cloudprov.provisioner.control_plane import libcloud_control_plane, resolve_api
from cloudprov.utils import (get_logger, parse_config_file, is_blank, raise_missing,
                             InvalidConfigurationException)
from cloudprov.validator.strategies import strategy_for

logger = get_logger()

ARCHIVE_EXTENSIONS = ('.zip', '.tar.gz')
DEFAULT_ARCHIVE_EXTENSION = '.zip'
URL_CHECK_TIMEOUT = 30

EVENTS = {
    'validating_provider_or_api_name': 'Validating provider or API name: %s',
    'validating_cloud_credentials': 'Validating cloud credentials',
    'validating_template': 'Validating template: %s',
    'validating_template_overrides': 'Validating template overrides',
    'validating_image_id': 'Validating image ID: %s',
    'validating_hardware_id': 'Validating hardware ID: %s',
    'validating_location_id': 'Validating location ID: %s',
    'validating_images': 'Validating image IDs',
    'validating_hardware_profiles': 'Validating hardware IDs',
    'validating_locations': 'Validating location IDs',
    'validating_download_url': 'Validating download URL: %s',
    'validating_security_groups': 'Validating security groups',
    'validating_key_pairs': 'Validating key-pairs',
}


def check_url(url):
    """Return the status code of a HEAD request to `url`"""
    response = requests.head(url, allow_redirects=True, timeout=URL_CHECK_TIMEOUT)
    return response.status_code


class cloud_validator(object):
    """Checks a cloud configuration against what the cloud really offers.

    Validation stops at the first stage that fails; each failure names the
    offending identifiers.
    """

    def __init__(self, **kwargs):
        configs = kwargs.get('configs')
        if not (configs and isinstance(configs, dict)):
            configs = parse_config_file(kwargs.get('config_file_path'))
        self.cloud = cloud_config.from_dict(configs)
        self.template_name = kwargs.get('template_name') or self.cloud.management_template
        self.control_plane_factory = kwargs.get('control_plane_factory', libcloud_control_plane)
        self.url_checker = kwargs.get('url_checker', check_url)

    def publish_event(self, name, *args):
        message = EVENTS.get(name, name)
        if args:
            message = message % args
        logger.info(message)

    def _get_endpoint(self):
        return self.cloud.get_template(self.template_name).endpoint

    def resolve_api_id(self):
        provider_name = self.cloud.provider
        self.publish_event('validating_provider_or_api_name', provider_name)
        try:
            _, api_id, endpoint_required = resolve_api(provider_name)
        except KeyError:
            raise InvalidConfigurationException('Provider not supported: %s' % provider_name)
        endpoint = None
        if endpoint_required:
            endpoint = self._get_endpoint()
            if is_blank(endpoint):
                raise InvalidConfigurationException('Endpoint is missing')
        return api_id, endpoint

    def _create_control_plane(self, endpoint=None, template=None, **options):
        try:
            return self.control_plane_factory(self.cloud.provider, self.cloud.user, self.cloud.api_key,
                                              endpoint=endpoint, template=template, **options)
        except Exception as e:
            # a failure here does not necessarily mean wrong credentials
            logger.debug('Failed to create the validation client: %s' % e)
            raise InvalidConfigurationException('Authentication to cloud failed') from e

    def validate(self):
        api_id, endpoint = self.resolve_api_id()

        self.publish_event('validating_cloud_credentials')
        control_plane = self._create_control_plane(endpoint=endpoint)
        try:
            self.perform_basic_validations(control_plane)
            self.validate_compute_templates(control_plane, endpoint)
            self.validate_download_url(self.cloud.download_url)
            strategy = strategy_for(api_id)
            if strategy.supported:
                default_location_id = self.get_default_location(control_plane)
                self.validate_security_groups(control_plane, strategy, default_location_id)
                self.validate_key_pairs(control_plane, strategy, default_location_id)
        finally:
            control_plane.close()
        logger.info('Cloud configuration of %s is valid' % self.cloud.provider)

    def collect_ids(self):
        image_ids, hardware_ids, location_ids = set(), set(), set()
        for name, template in self.cloud.templates.items():
            self.publish_event('validating_template', name)
            if not is_blank(template.image_id):
                image_ids.add(template.image_id)
            if not is_blank(template.hardware_id):
                hardware_ids.add(template.hardware_id)
            if not is_blank(template.location_id):
                location_ids.add(template.location_id)
        return image_ids, hardware_ids, location_ids

    def perform_basic_validations(self, control_plane):
        image_ids, hardware_ids, location_ids = self.collect_ids()

        self.publish_event('validating_images')
        missing = set(image_id for image_id in image_ids if control_plane.get_image(image_id) is None)
        raise_missing('image ID', missing)

        self.publish_event('validating_hardware_profiles')
        supported = set(size.id for size in control_plane.list_sizes())
        raise_missing('hardware ID', hardware_ids - supported)

        self.publish_event('validating_locations')
        supported = set(location.id for location in control_plane.list_locations())
        raise_missing('location ID', location_ids - supported)

    def validate_compute_templates(self, control_plane, endpoint=None):
        for name, template in self.cloud.templates.items():
            self.publish_event('validating_template', name)
            effective_control_plane = control_plane
            try:
                if template.has_client_overrides():
                    self.publish_event('validating_template_overrides')
                    effective_control_plane = self._create_control_plane(endpoint=template.endpoint or endpoint,
                                                                         template=template,
                                                                         **template.driver_options())
                self.publish_event('validating_image_id', template.image_id or '')
                self.publish_event('validating_hardware_id', template.hardware_id or '')
                self.publish_event('validating_location_id', template.location_id or '')
                effective_control_plane.get_template(template.location_id, template.image_id, template.hardware_id)
            except Exception as e:
                raise InvalidConfigurationException(
                    'Invalid configuration for template "%s", %s' % (name, e)) from e
            finally:
                if effective_control_plane is not control_plane:
                    effective_control_plane.close()

    def validate_download_url(self, download_url):
        if is_blank(download_url):
            logger.debug('No download URL configured, skipping the check')
            return
        effective_url = download_url
        if not effective_url.endswith(ARCHIVE_EXTENSIONS):
            effective_url += DEFAULT_ARCHIVE_EXTENSION
        self.publish_event('validating_download_url', effective_url)
        try:
            status_code = self.url_checker(effective_url)
        except requests.RequestException as e:
            raise InvalidConfigurationException('Invalid download URL: %s (%s)' % (effective_url, e)) from e
        if status_code != requests.codes.ok:
            raise InvalidConfigurationException('Invalid download URL: %s' % effective_url)

    def get_default_location(self, control_plane):
        try:
            return control_plane.get_template(None).location_id
        except Exception as e:
            # not every provider has a default location
            logger.warning('Default location id is not found for this provider: %s' % e)
            return ''

    def _names_by_region(self, default_location_id, names_of):
        names_by_region = dict()
        for template in self.cloud.templates.values():
            location_id = template.location_id
            if is_blank(location_id):
                location_id = default_location_id
            names = names_of(template)
            if names:
                names_by_region.setdefault(location_id, set()).update(names)
        return names_by_region

    def validate_security_groups(self, control_plane, strategy, default_location_id):
        self.publish_event('validating_security_groups')
        security_groups = self._names_by_region(default_location_id,
                                                lambda template: template.security_group_names)
        raise_missing('security group name', strategy.describe_security_groups(control_plane, security_groups))

    def validate_key_pairs(self, control_plane, strategy, default_location_id):
        self.publish_event('validating_key_pairs')
        key_pairs = self._names_by_region(default_location_id,
                                          lambda template: set([template.key_pair_name])
                                          if template.key_pair_name else set())
        raise_missing('key-pair name', strategy.describe_key_pairs(control_plane, key_pairs))
