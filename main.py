import asyncio
import logging
import sys

from registry_purge.config import LOG_FORMAT, Args, ConfigError, load_settings
from registry_purge.purger import RunFatalError, handle
from registry_purge.utils import init_logger, write_report


def cli(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    args = Args.from_args(argv)
    try:
        settings = load_settings(args)
    except ConfigError as err:
        logging.critical(f"Invalid config: {err}")
        return 2
    init_logger(settings.log_level, http_logs=args.http_logs, path=args.log_file)
    if settings.retention.dry_run:
        logging.warning("Running in dry run mode, found tags will not be deleted")

    try:
        stats = asyncio.run(handle(settings, deadline=args.deadline))
    except RunFatalError as err:
        logging.critical(f"Purge aborted: {err}")
        return 1
    except TimeoutError:
        logging.critical(f"Purge aborted: deadline of {args.deadline}s exceeded")
        return 1
    except KeyboardInterrupt:
        logging.critical("Purge interrupted")
        return 1

    if args.report:
        write_report(stats, args.report)
        logging.info(f"Run report written to {args.report}")
    return 0


if __name__ == "__main__":
    sys.exit(cli())
