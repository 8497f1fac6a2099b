import logging
import socket

from hostopt.tasks import Context
from hostopt.ui import print_notice

logger = logging.getLogger(__name__)


def wsl_conf(ctx: Context) -> None:
    cfg = ctx.config
    result = ctx.render(
        "wsl.conf",
        "/etc/wsl.conf",
        {
            "hostname": cfg.hostname or socket.gethostname(),
            "default_user": cfg.username or "root",
        },
    )
    if result.changed:
        print_notice(
            "Restart required",
            "Run [bold]wsl --shutdown[/] from Windows and reopen the distribution "
            "for /etc/wsl.conf to take effect.",
        )
    else:
        logger.info("/etc/wsl.conf already up to date")
