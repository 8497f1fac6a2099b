import logging

from hostopt.apt import upgrade_system
from hostopt.tasks import Context

logger = logging.getLogger(__name__)


def system_update(ctx: Context) -> None:
    logger.info("Updating package lists and upgrading installed packages...")
    upgrade_system(dry_run=ctx.dry_run, lock_timeout=ctx.config.lock_timeout)


def base_packages(ctx: Context) -> bool:
    report = ctx.install(ctx.config.packages)
    if report.skipped:
        logger.info(f"{len(report.skipped)} package(s) not in the configured repositories.")
    # Only a list where nothing at all could be installed counts as a failure.
    return bool(report.installed) or not report.skipped
