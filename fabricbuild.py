#!/usr/bin/env python3
"""
fabricbuild - Main Entry Point
Parses arguments and dispatches actions to command handlers.
"""

import logging
import sys
import time
import uuid

from dotenv import load_dotenv

from logger.log_config import setup_logger, flush_run_logs
from arg_parser import create_parser, validate_args
from vcenter_utils import get_vcenter_instance
from managers.vcenter import InventoryNotFound
from managers.esxcli import EsxCliError
from managers.datastore_manager import DatastoreOperationError
from managers.reports import summarize

load_dotenv()
logger = logging.getLogger('fabricbuild')


def main(argv=None):
    """Main execution function. Returns the process exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.error("A command (connect, disconnect, datastore, adapter, network) is required.")
    validate_args(parser, args)

    run_id = uuid.uuid4().hex[:12]
    logger = setup_logger(run_id=run_id, verbose=args.verbose)
    args_dict = {k: v for k, v in vars(args).items() if k != 'func'}

    start_time = time.perf_counter()
    overall_status = "failed"
    counts = {"success": 0, "failed": 0, "skipped": 0}
    logger.info(f"Executing command: {args.command} (Run ID: {run_id})")
    try:
        vcenter = get_vcenter_instance(args.vcenter)
        if vcenter is None:
            logger.critical("No vCenter connection; nothing was changed.")
            return 1

        results = args.func(args_dict, vcenter)
        counts = summarize(results)
        if counts["failed"] > 0:
            overall_status = "completed_with_errors"
        elif results:
            overall_status = "completed"
        else:
            overall_status = "completed_no_tasks"
        logger.info(f"Summary: Success={counts['success']}, Failed={counts['failed']}, Skipped={counts['skipped']}")
    except (InventoryNotFound, ValueError, EsxCliError, DatastoreOperationError) as e:
        logger.error(f"{args.command} aborted: {e}")
        overall_status = "failed"
    except KeyboardInterrupt:
        print("\nTerminated by user.")
        overall_status = "terminated_by_user"
    except Exception as e:
        logger.critical(f"Unhandled error during command execution: {e}", exc_info=True)
        overall_status = "failed_exception"
    finally:
        duration_minutes = (time.perf_counter() - start_time) / 60
        logger.info(f"Cmd '{args.command}' finished in {duration_minutes:.2f} min. Final Status: {overall_status}")
        flush_run_logs(run_id)

    return 0 if overall_status in ("completed", "completed_no_tasks") else 1


if __name__ == "__main__":
    sys.exit(main())
