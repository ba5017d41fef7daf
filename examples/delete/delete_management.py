import traceback

from cloudprov.utils import get_logger
from cloudprov.action import performing_actions
from cloudprov.provisioner import libcloud_provisioner

logger = get_logger()


class delete_management(performing_actions):
    def run(self):
        logger.info("Deleting the management machines")
        provisioner = libcloud_provisioner(config_file_path=self.args.config_file_path,
                                           template_name=self.args.template_name,
                                           management=True)
        try:
            provisioner.stop_management_machines()
        finally:
            provisioner.close()
        logger.info("Management machines deleted")


if __name__ == "__main__":
    engine = delete_management()

    try:
        engine.start()
    except Exception as e:
        logger.error(
            'Program is terminated by the following exception: %s' % e, exc_info=True)
        traceback.print_exc()
    except KeyboardInterrupt:
        logger.info('Program is terminated by keyboard interrupt.')
