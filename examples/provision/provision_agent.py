import traceback

from cloudprov.utils import get_logger
from cloudprov.action import performing_actions_with_duration
from cloudprov.provisioner import libcloud_provisioner

logger = get_logger()


class provision_agent(performing_actions_with_duration):
    def __init__(self):
        super(provision_agent, self).__init__()
        self.provisioner = None

        self.args_parser.add_argument("-l", "--location",
                                      dest="location_id",
                                      help="start the machine in this location instead of the template's one.",
                                      type=str)

    def run(self):
        logger.info("STARTING PROVISIONING AN AGENT MACHINE")
        self.provisioner = libcloud_provisioner(config_file_path=self.args.config_file_path,
                                                template_name=self.args.template_name)
        machine = self.provisioner.start_machine(location_id=self.args.location_id,
                                                 duration=self.args.duration)
        logger.info(machine.describe())
        logger.info("FINISH PROVISIONING AN AGENT MACHINE")
        return machine


if __name__ == "__main__":
    logger.info("Init engine in %s" % __file__)
    engine = provision_agent()

    try:
        logger.info("Start engine in %s" % __file__)
        engine.start()
    except Exception as e:
        logger.error(
            'Program is terminated by the following exception: %s' % e, exc_info=True)
        traceback.print_exc()
    except KeyboardInterrupt:
        logger.info('Program is terminated by keyboard interrupt.')
    finally:
        if engine.provisioner is not None:
            engine.provisioner.close()
