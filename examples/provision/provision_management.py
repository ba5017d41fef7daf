import traceback

from cloudprov.utils import get_logger
from cloudprov.action import performing_actions_with_duration
from cloudprov.provisioner import libcloud_provisioner

logger = get_logger()


class provision_management(performing_actions_with_duration):
    def __init__(self):
        super(provision_management, self).__init__()
        self.provisioner = None

    def run(self):
        logger.info("STARTING PROVISIONING MANAGEMENT MACHINES")
        logger.info("Init provisioner: libcloud_provisioner")
        self.provisioner = libcloud_provisioner(config_file_path=self.args.config_file_path,
                                                template_name=self.args.template_name,
                                                management=True)
        machines = self.provisioner.start_management_machines(self.args.duration)
        for machine in machines:
            logger.info(machine.describe())
        logger.info("FINISH PROVISIONING MANAGEMENT MACHINES")
        return machines


if __name__ == "__main__":
    logger.info("Init engine in %s" % __file__)
    engine = provision_management()

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
