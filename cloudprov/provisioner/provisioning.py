from concurrent.futures import ThreadPoolExecutor

from cloudprov.provisioner.cloud_config import cloud_config
from cloudprov.utils import (get_logger, parse_config_file, is_blank, deadline,
                             CloudProvisioningException, InvalidConfigurationException,
                             ProvisioningTimeoutException)

logger = get_logger()

EVENTS = {
    'connection_to_cloud_api_failed': 'Connection to the cloud API failed for provider %s',
    'attempt_start_mgmt_vms': 'Starting management machines',
    'mgmt_vms_started': 'Management machines started',
    'waiting_for_ec2_windows_password': 'Waiting for the Windows password of node %s',
    'ec2_windows_password_retrieved': 'Windows password of node %s retrieved',
}


class machine_details(object):
    """A provisioned machine as handed back to the caller"""

    def __init__(self, template=None):
        self.machine_id = None
        self.location_id = None
        self.private_address = None
        self.public_address = None
        self.remote_username = None
        self.remote_password = None
        self.file_transfer_mode = None
        self.remote_execution_mode = None
        self.key_file = None
        self.agent_installed = False
        if template is not None:
            self.file_transfer_mode = template.file_transfer
            self.remote_execution_mode = template.remote_execution
            self.key_file = template.key_file

    def describe(self):
        description = 'Machine ID: %s' % self.machine_id
        if self.public_address is not None:
            description += ', Public IP: %s' % self.public_address
        if self.private_address is not None:
            description += ', Private IP: %s' % self.private_address
        return description

    def __repr__(self):
        return ('machine_details(machine_id=%r, location_id=%r, private_address=%r, public_address=%r, '
                'remote_username=%r, file_transfer_mode=%r, remote_execution_mode=%r)'
                % (self.machine_id, self.location_id, self.private_address, self.public_address,
                   self.remote_username, self.file_transfer_mode, self.remote_execution_mode))


class cloud_provisioning(object):
    """This is a base class of cloudprov provisioners,
        and it manages the fleet of management machines on top of `start_management_machine`."""

    def __init__(self, **kwargs):
        self.config_file_path = kwargs.get('config_file_path')
        configs = kwargs.get('configs')

        if configs and isinstance(configs, dict):
            logger.debug("Use configs instead of config file")
        elif self.config_file_path is None:
            raise InvalidConfigurationException(
                "Please provide at least a provisioning config file or a custom configs.")
        else:
            configs = parse_config_file(self.config_file_path)
        self.configs = configs
        self.cloud = cloud_config.from_dict(configs)
        self.template_name = kwargs.get('template_name') or self.cloud.management_template
        self.template = self.cloud.get_template(self.template_name)
        self.management = kwargs.get('management', False)

    def publish_event(self, name, *args):
        message = EVENTS.get(name, name)
        if args and '%s' in message:
            message = message % args
        logger.info(message)

    def start_management_machine(self, end):
        """Start one management machine, bounded by `end`"""
        raise NotImplementedError

    def destroy_machine(self, machine_id):
        raise NotImplementedError

    def destroy_machines_by_address(self, ips):
        raise NotImplementedError

    def get_existing_management_servers(self):
        raise NotImplementedError

    def _existing_servers_description(self, prefix, servers):
        logger.info('Found existing servers matching the name: %s' % prefix)
        return ', '.join('[%s]' % server.describe() for server in servers)

    def start_management_machines(self, duration):
        """Start the management machines of this cloud

        Parameters
        ----------
        duration: int or float
            the number of seconds all machines have to be ready in

        Returns
        -------
        list of machine_details
            one entry per management machine, in start order
        """
        if duration < 0:
            raise ProvisioningTimeoutException('Starting a new machine timed out')
        end = deadline.from_duration(duration)

        prefix = self.cloud.management_group
        if is_blank(prefix):
            raise CloudProvisioningException(
                "The management group name is missing - can't locate existing servers!")

        existing_servers = self.get_existing_management_servers()
        if existing_servers:
            raise CloudProvisioningException('Found existing servers matching group %s: %s'
                                             % (prefix, self._existing_servers_description(prefix, existing_servers)))

        self.publish_event('attempt_start_mgmt_vms')
        created_machines = self.do_start_management_machines(end, self.cloud.number_of_management_machines)
        self.publish_event('mgmt_vms_started')
        return created_machines

    def do_start_management_machines(self, end, number_of_machines):
        with ThreadPoolExecutor(max_workers=number_of_machines,
                                thread_name_prefix='management-machine') as executor:
            futures = [executor.submit(self.start_management_machine, end) for _ in range(number_of_machines)]

        created_machines = list()
        rollback_actions = list()
        errors = list()
        for future in futures:
            try:
                machine = future.result()
            except Exception as e:
                logger.error('Failed to start a management machine: %s' % e)
                errors.append(e)
                # a node that never became ready still exists in the cloud
                if isinstance(e, ProvisioningTimeoutException) and e.node_id is not None:
                    pending_machine = machine_details()
                    pending_machine.machine_id = e.node_id
                    rollback_actions.append((pending_machine, self.destroy_machine))
                continue
            created_machines.append(machine)
            rollback_actions.append((machine, self.destroy_machine))

        if errors:
            self.handle_provisioning_failure(number_of_machines, errors, rollback_actions)
        return created_machines

    def handle_provisioning_failure(self, number_of_machines, errors, rollback_actions):
        """Destroy every machine that was created, newest first, then raise the first error"""
        logger.error('Of the required %s management machines, %s failed to start.'
                     % (number_of_machines, len(errors)))
        if rollback_actions:
            logger.error('Shutting down the other management machines')
        for machine, destroy in reversed(rollback_actions):
            logger.error('Shutting down machine: %s' % machine)
            try:
                destroy(machine.machine_id)
            except Exception as e:
                logger.error('Failed to shut down machine %s: %s' % (machine.machine_id, e), exc_info=True)
        raise errors[0]

    def stop_management_machines(self):
        management_servers = self.get_existing_management_servers()
        if not management_servers:
            raise CloudProvisioningException(
                'Could not find any management machines for this cloud (management machine prefix is: %s)'
                % self.cloud.management_group)

        machine_ips = set(server.private_address for server in management_servers
                          if server.private_address is not None)
        logger.info('Shutting down management machines: %s' % sorted(machine_ips))
        self.destroy_machines_by_address(machine_ips)
