"""Entry point for the tasktree application.

This module allows running tasktree as a module:
    python -m tasktree

Or as an installed command:
    tasktree
"""

import argparse
import sys
from typing import Optional
from uuid import UUID

from tasktree.logging_config import setup_logging, get_logger

# Initialize logger for this module
logger = get_logger(__name__)


def _parse_args(args: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tasktree", description="Browse a workspace's task tree.")
    parser.add_argument("--workspace", help="Workspace name to open (default from [session] workspace_name)")
    parser.add_argument("--user", type=UUID, help="Acting user id (default from [session] user_id)")
    parser.add_argument("--log-level", help="Logging level (default from TASKTREE_LOG_LEVEL or INFO)")
    return parser.parse_args(args)


def main(args: Optional[list[str]] = None) -> int:
    """Main entry point for tasktree.

    Args:
        args: Command-line arguments (defaults to sys.argv)

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if args is None:
        args = sys.argv[1:]
    options = _parse_args(args)

    # Initialize logging before any other operations
    setup_logging(options.log_level)

    # Import here to avoid circular imports and improve startup time
    from tasktree.ui.app import TaskTreeApp

    try:
        app = TaskTreeApp(user_id=options.user, workspace_name=options.workspace)
        app.run()
        logger.info("tasktree application exited normally")
        return 0
    except KeyboardInterrupt:
        logger.info("tasktree closed by user (Ctrl+C)")
        return 0
    except Exception:
        logger.error("Error running tasktree", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
