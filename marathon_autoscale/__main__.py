import logging
import sys

from .autoscaler import Autoscaler
from .config import parse_options
from .dashboard import start_dashboard
from .logger import setup_logging

logger = logging.getLogger("marathon_autoscale")


def main(argv=None):
    options = parse_options(argv)
    setup_logging(options.log_level)

    autoscaler = Autoscaler(options)
    if options.status_port:
        start_dashboard(autoscaler, options.status_port)

    try:
        autoscaler.run()
    except KeyboardInterrupt:
        autoscaler.stop()
        logger.info("Autoscaler stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
