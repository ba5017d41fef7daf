from .cloud_config import cloud_config, compute_template
from .provisioning import cloud_provisioning, machine_details
from .libcloud_provisioner import libcloud_provisioner, is_management_node
