from enum import Enum
from time import sleep

from libcloud.compute.types import NodeState

from cloudprov.utils import get_logger, CreationFailedException, ProvisioningTimeoutException

logger = get_logger()

CLOUD_NODE_STATE_POLLING_INTERVAL = 2


class node_status(Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    TERMINATED = 'terminated'
    ERROR = 'error'
    SUSPENDED = 'suspended'
    UNRECOGNIZED = 'unrecognized'


class poll_action(Enum):
    READY = 'ready'
    WAIT = 'wait'
    FAIL = 'fail'


_LIBCLOUD_STATES = {
    NodeState.PENDING: node_status.PENDING,
    NodeState.STARTING: node_status.PENDING,
    NodeState.RUNNING: node_status.RUNNING,
    NodeState.TERMINATED: node_status.TERMINATED,
    NodeState.ERROR: node_status.ERROR,
    NodeState.SUSPENDED: node_status.SUSPENDED,
    NodeState.PAUSED: node_status.SUSPENDED,
    NodeState.STOPPED: node_status.SUSPENDED,
}


def from_libcloud_state(state):
    return _LIBCLOUD_STATES.get(state, node_status.UNRECOGNIZED)


def transition(status):
    """Decide what the readiness loop does after observing `status`

    Only PENDING keeps the loop going; a status the cloud reports that is
    neither PENDING nor RUNNING ends it as a failure.
    """
    if status == node_status.RUNNING:
        return poll_action.READY
    if status == node_status.PENDING:
        return poll_action.WAIT
    return poll_action.FAIL


def wait_for_node_ready(control_plane, node_id, end, interval=CLOUD_NODE_STATE_POLLING_INTERVAL):
    """Poll a node until it is RUNNING

    Parameters
    ----------
    control_plane: libcloud_control_plane
        the client used to re-fetch the node

    node_id: str
        the ID of the created node

    end: deadline
        the bound of the whole wait

    interval: int
        the number of seconds to sleep between two polls while the node is PENDING

    Returns
    -------
    cloud_node
        the node snapshot in which RUNNING was observed
    """
    while not end.expired():
        node = control_plane.get_node_by_id(node_id)
        if node is None:
            raise CreationFailedException(
                'Failed to allocate server - node %s is no longer reported by the cloud' % node_id)

        action = transition(node.status)
        if action == poll_action.READY:
            return node
        if action == poll_action.FAIL:
            raise CreationFailedException(
                'Failed to allocate server - Cloud reported node in %s state. Node details: %s'
                % (node.status.name, node))
        logger.debug('Server status (%s) still PENDING, please wait...' % node_id)
        sleep(interval)
    raise ProvisioningTimeoutException('Node %s failed to reach RUNNING mode in time' % node_id, node_id=node_id)
