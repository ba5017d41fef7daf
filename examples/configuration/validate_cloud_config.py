import sys
import traceback

from cloudprov.utils import get_logger, CloudProvisioningException
from cloudprov.action import performing_actions
from cloudprov.validator import cloud_validator

logger = get_logger()


class validate_cloud_config(performing_actions):
    def run(self):
        logger.info("Validating %s" % self.args.config_file_path)
        validator = cloud_validator(config_file_path=self.args.config_file_path,
                                    template_name=self.args.template_name)
        validator.validate()


if __name__ == "__main__":
    engine = validate_cloud_config()

    try:
        engine.start()
    except CloudProvisioningException as e:
        logger.error('The cloud configuration is not valid: %s' % e)
        sys.exit(1)
    except Exception as e:
        logger.error(
            'Program is terminated by the following exception: %s' % e, exc_info=True)
        traceback.print_exc()
        sys.exit(1)
