import logging

from hostopt.sequencer import RunSummary
from hostopt.sysinfo import is_wsl
from hostopt.tasks import Context

logger = logging.getLogger(__name__)


def offer_reboot(ctx: Context, summary: RunSummary) -> bool:
    """
    Ask whether to reboot once the run is over.

    Kernel parameters, group membership and fstab changes only fully apply
    after a reboot. Unattended runs never reboot; an aborted run is not
    offered one. Returns True when a reboot was requested.
    """
    if not ctx.config.offer_reboot or summary.aborted or not summary.succeeded:
        return False
    if is_wsl():
        logger.info("Run 'wsl --shutdown' from Windows to restart this distribution.")
        return False
    if not ctx.selector.ask("Do you want to reboot now?", default_yes=False):
        logger.warning("Reboot skipped. Please reboot manually when ready: sudo reboot")
        return False
    logger.info("Rebooting...")
    ctx.run(["systemctl", "reboot"])
    return True
