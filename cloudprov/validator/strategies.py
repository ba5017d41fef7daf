from cloudprov.provisioner.control_plane import (EC2_API, EC2_GENERIC_API, OPENSTACK_API,
                                                 CLOUDSTACK_API, VCLOUD_API)
from cloudprov.utils import get_logger

logger = get_logger()


def _name_of(item):
    if isinstance(item, dict):
        return item.get('name')
    return getattr(item, 'name', None)


class security_strategy(object):
    """Looks up security groups and key pairs of one provider family

    Both lookups take a mapping of region -> set of names and return the set
    of names the cloud does not know.
    """
    supported = True

    def describe_security_groups(self, control_plane, names_by_region):
        raise NotImplementedError

    def describe_key_pairs(self, control_plane, names_by_region):
        raise NotImplementedError


class ec2_strategy(security_strategy):

    def _missing(self, lookup, names_by_region):
        missing = set()
        for region, names in names_by_region.items():
            for name in names:
                found = lookup(region, name)
                if not found or found[0] is None:
                    missing.add(name)
        return missing

    def describe_security_groups(self, control_plane, names_by_region):
        return self._missing(control_plane.describe_security_groups_in_region, names_by_region)

    def describe_key_pairs(self, control_plane, names_by_region):
        return self._missing(control_plane.describe_key_pairs_in_region, names_by_region)


class openstack_strategy(security_strategy):

    def _missing(self, list_in_zone, names_by_region):
        missing = set()
        for region, names in names_by_region.items():
            available = set(_name_of(item) for item in list_in_zone(region))
            missing.update(name for name in names if name not in available)
        return missing

    def describe_security_groups(self, control_plane, names_by_region):
        return self._missing(control_plane.list_security_groups_in_zone, names_by_region)

    def describe_key_pairs(self, control_plane, names_by_region):
        return self._missing(control_plane.list_key_pairs_in_zone, names_by_region)


class cloudstack_strategy(security_strategy):
    """CloudStack names are global, regions are ignored"""

    def _missing(self, get_by_name, names_by_region):
        names = set()
        for region_names in names_by_region.values():
            names.update(region_names)
        return set(name for name in names if get_by_name(name) is None)

    def describe_security_groups(self, control_plane, names_by_region):
        return self._missing(control_plane.get_security_group, names_by_region)

    def describe_key_pairs(self, control_plane, names_by_region):
        return self._missing(control_plane.get_ssh_key_pair, names_by_region)


class unsupported_strategy(security_strategy):
    supported = False

    def describe_security_groups(self, control_plane, names_by_region):
        logger.debug('Security group validation is not supported for this cloud')
        return set()

    def describe_key_pairs(self, control_plane, names_by_region):
        logger.debug('Key pair validation is not supported for this cloud')
        return set()


STRATEGIES = {
    EC2_API: ec2_strategy(),
    EC2_GENERIC_API: ec2_strategy(),
    OPENSTACK_API: openstack_strategy(),
    CLOUDSTACK_API: cloudstack_strategy(),
    VCLOUD_API: unsupported_strategy(),
}


def strategy_for(api_id):
    return STRATEGIES.get((api_id or '').lower(), unsupported_strategy())
