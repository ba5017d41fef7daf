import threading

from cloudprov.provisioner.control_plane import libcloud_control_plane, EC2_API
from cloudprov.provisioner.credentials import (resolve_credentials, key_file_path, ec2_windows_password_handler,
                                               DEFAULT_EC2_WINDOWS_USERNAME)
from cloudprov.provisioner.node_states import wait_for_node_ready, node_status
from cloudprov.provisioner.provisioning import cloud_provisioning, machine_details
from cloudprov.provisioner.server_names import server_name_allocator
from cloudprov.utils import (get_logger, deadline, CloudProvisioningException, CreationFailedException,
                             ProvisioningTimeoutException, ServerNameExhaustedException)

logger = get_logger()


def is_management_node(node, prefix):
    """Only running or pending nodes whose group starts with the prefix count"""
    if not node.group:
        return False
    if node.status not in (node_status.RUNNING, node_status.PENDING):
        return False
    return node.group.lower().startswith(prefix.lower())


class libcloud_provisioner(cloud_provisioning):
    """Starts and stops machines of one template on any cloud libcloud supports.

    The provisioner owns its control-plane client and its server name
    counters; both live until `close()`.
    """

    def __init__(self, **kwargs):
        super(libcloud_provisioner, self).__init__(**kwargs)
        self.control_plane_factory = kwargs.get('control_plane_factory', libcloud_control_plane)
        self.polling_interval = kwargs.get('polling_interval')
        self.deployer = kwargs.get('control_plane')
        self.name_allocator = None
        self.management_name_allocator = None
        self._init_lock = threading.Lock()
        if self.management:
            self.server_name_prefix = self.cloud.management_group
        else:
            self.server_name_prefix = self.cloud.machine_name_prefix

    def init_deployer(self):
        with self._init_lock:
            if self.deployer is None:
                try:
                    self.deployer = self.control_plane_factory(self.cloud.provider,
                                                               self.cloud.user,
                                                               self.cloud.api_key,
                                                               endpoint=self.template.endpoint,
                                                               template=self.template,
                                                               **self.template.driver_options())
                except Exception as e:
                    self.publish_event('connection_to_cloud_api_failed', self.cloud.provider)
                    raise CloudProvisioningException('Failed to create cloud deployer: %s' % e) from e
            if self.name_allocator is None:
                self.name_allocator = server_name_allocator(self.deployer, self.server_name_prefix,
                                                            self.cloud.max_servers)
                self.management_name_allocator = server_name_allocator(self.deployer,
                                                                       self.cloud.management_group or '',
                                                                       self.cloud.max_servers)
        return self.deployer

    def start_machine(self, duration, location_id=None):
        """Start one machine from the provisioner's template

        Parameters
        ----------
        duration: int or float
            the number of seconds the machine has to be ready in

        location_id: str
            overrides the location of the template

        Returns
        -------
        machine_details
            the ready machine with its login credentials
        """
        end = deadline.from_duration(duration)
        if end.expired():
            raise ProvisioningTimeoutException('Starting a new machine timed out')
        logger.debug('start_machine, management mode: %s' % self.management)

        self.init_deployer()
        allocator = self.management_name_allocator if self.management else self.name_allocator
        return self._start_machine(end, location_id, allocator)

    def start_management_machine(self, end):
        if end.expired():
            raise ProvisioningTimeoutException('Starting a new machine timed out')
        self.init_deployer()
        return self._start_machine(end, None, self.management_name_allocator)

    def _start_machine(self, end, location_id, allocator):
        try:
            server_name = allocator.allocate()
            logger.debug('Starting a new cloud server with group: %s' % server_name)
            return self.create_server(end, server_name, location_id)
        except (ProvisioningTimeoutException, ServerNameExhaustedException, CreationFailedException):
            raise
        except Exception as e:
            raise CreationFailedException('Failed to start cloud machine: %s' % e) from e

    def create_server(self, end, server_name, location_id=None):
        if location_id is None:
            location_id = self.template.location_id

        try:
            logger.info('Creating a new server with tag: %s. This may take a few minutes' % server_name)
            node = self.deployer.create_node(server_name, location_id)
        except Exception as e:
            raise CreationFailedException('Failed to create cloud server: %s' % e) from e
        logger.info('New node is allocated, group name: %s' % server_name)

        # the node exists from here on, failures must not leak it
        node_id = node.id
        try:
            kwargs = dict()
            if self.polling_interval is not None:
                kwargs['interval'] = self.polling_interval
            node = wait_for_node_ready(self.deployer, node_id, end, **kwargs)
        except ProvisioningTimeoutException:
            logger.error('Node %s did not become ready in time, leaving it to the caller' % node_id)
            raise
        except Exception as e:
            self._rollback(node_id, e)
            raise CreationFailedException('Failed to allocate cloud server %s: %s' % (server_name, e)) from e

        try:
            machine = self.create_machine_details(node)
            if self._needs_ec2_windows_password(machine):
                self.handle_ec2_windows_credentials(end, node, machine)
        except ProvisioningTimeoutException as e:
            self._rollback(node_id, e)
            raise
        except Exception as e:
            self._rollback(node_id, e)
            raise CreationFailedException('Failed to initialize cloud server %s: %s' % (server_name, e)) from e
        logger.info('Server %s is ready: %s' % (server_name, machine.describe()))
        return machine

    def _rollback(self, node_id, cause):
        logger.error('Cloud machine was started but an error occurred during initialization. '
                     'Shutting down machine %s' % node_id, exc_info=cause)
        try:
            self.deployer.destroy_node(node_id)
        except Exception as e:
            logger.error('Failed to shut down machine %s: %s' % (node_id, e))

    def _needs_ec2_windows_password(self, machine):
        return (self.cloud.provider == EC2_API
                and self.template.file_transfer == 'CIFS'
                and machine.remote_password is None)

    def handle_ec2_windows_credentials(self, end, node, machine):
        pem_file = key_file_path(self.template, self.management)
        self.publish_event('waiting_for_ec2_windows_password', node.id)
        kwargs = dict()
        if self.polling_interval is not None:
            kwargs['poll_interval'] = self.polling_interval
        handler = ec2_windows_password_handler(self.deployer, **kwargs)
        machine.remote_password = handler.get_password(node.id, end, pem_file)
        self.publish_event('ec2_windows_password_retrieved', node.id)
        machine.remote_username = self.template.username or DEFAULT_EC2_WINDOWS_USERNAME

    def create_machine_details(self, node):
        machine = machine_details(self.template)
        machine.machine_id = node.id
        if node.private_ips:
            machine.private_address = node.private_ips[0]
        if node.public_ips:
            machine.public_address = node.public_ips[0]
        machine.remote_username, machine.remote_password = resolve_credentials(node, self.template)
        machine.location_id = node.location_id
        return machine

    def destroy_machine(self, machine_id):
        self.init_deployer()
        self.deployer.destroy_node(machine_id)

    def destroy_machines_by_address(self, ips):
        self.init_deployer()
        self.deployer.destroy_nodes_by_address(ips)

    def stop_machine(self, server_ip, duration):
        """Destroy the machine with the given IP and wait for it to be gone

        Returns
        -------
        bool
            True if a machine was found and shut down, False if no machine has the IP

        Raises
        ------
        ProvisioningTimeoutException
            the machine is still reported by the cloud after `duration` seconds
        """
        self.init_deployer()
        logger.info('Looking up cloud server with IP: %s' % server_ip)
        server = self.deployer.get_node_by_address(server_ip)
        if server is None:
            logger.error('Received scale in request for machine with ip %s '
                         'but this IP could not be found in the Cloud server list' % server_ip)
            return False
        logger.info('Found server: %s. Shutting it down and waiting for shutdown to complete' % server.id)
        if not self.deployer.destroy_and_wait(server.id, duration):
            raise ProvisioningTimeoutException('Server %s did not shut down within %s seconds' % (server.id, duration))
        logger.info('Server: %s shutdown has finished.' % server.id)
        return True

    def get_existing_management_servers(self):
        self.init_deployer()
        prefix = self.cloud.management_group or ''
        try:
            nodes = self.deployer.list_nodes(lambda node: is_management_node(node, prefix))
        except Exception as e:
            raise CloudProvisioningException('Failed to read existing management servers: %s' % e) from e
        return [self.create_machine_details(node) for node in nodes]

    def close(self):
        if self.deployer is not None:
            self.deployer.close()
