import argparse

from cloudprov.utils import get_logger

logger = get_logger()

DEFAULT_DURATION = 900


class performing_actions(object):
    """This is a base class of cloudprov engine, that parses the command line
    and runs an action against the cloud described by a configuration file."""

    def __init__(self):
        super(performing_actions, self).__init__()
        self.args = None

        self.args_parser = argparse.ArgumentParser(description=self.__class__.__name__)
        self.args_parser.add_argument("--system_config_file",
                                      dest="config_file_path",
                                      help="the path to the cloud configuration file.",
                                      required=True,
                                      type=str)
        self.args_parser.add_argument("-t", "--template",
                                      dest="template_name",
                                      help="the template to use instead of the management template.",
                                      type=str)

    def start(self, argv=None):
        self.args = self.args_parser.parse_args(argv)
        return self.run()

    def run(self):
        raise NotImplementedError


class performing_actions_with_duration(performing_actions):
    def __init__(self):
        """ Add the time budget option
        """
        super(performing_actions_with_duration, self).__init__()

        self.args_parser.add_argument("-d", "--duration",
                                      dest="duration",
                                      help="the maximum number of seconds to wait for the machines.",
                                      default=DEFAULT_DURATION,
                                      type=float)
