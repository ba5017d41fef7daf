import threading

from cloudprov.utils import get_logger, ServerNameExhaustedException

logger = get_logger()


class server_name_allocator(object):
    """Looks for a free server name by appending a counter to a fixed prefix.

    The counter cycles from 1 to `max_servers`, so names of servers that are
    gone get reused. A name is free when the cloud reports no node with it;
    nothing is reserved, so two allocators with the same prefix can still
    hand out the same name before either node exists.
    """

    def __init__(self, control_plane, prefix, max_servers):
        self.control_plane = control_plane
        self.prefix = prefix
        self.max_servers = max_servers
        self._counter = 0
        self._lock = threading.Lock()

    def _next_counter(self):
        with self._lock:
            self._counter = self._counter % self.max_servers + 1
            return self._counter

    def allocate(self):
        for _ in range(self.max_servers):
            server_name = '%s%s' % (self.prefix, self._next_counter())
            if self.control_plane.get_node_by_name(server_name) is None:
                logger.debug('Allocated server name %s' % server_name)
                return server_name
            logger.debug('Server name %s is already used' % server_name)
        raise ServerNameExhaustedException(
            'Number of servers has exceeded allowed server limit (%s)' % self.max_servers)
