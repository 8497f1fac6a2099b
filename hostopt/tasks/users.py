import logging
import os
import pwd
from typing import Optional

from hostopt.errors import ProvisionError, StepSkipped
from hostopt.logs import SUCCESS
from hostopt.materialize import rollback
from hostopt.tasks import Context

logger = logging.getLogger(__name__)


def user_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
        return True
    except KeyError:
        return False


def user_home(username: str) -> str:
    if username == "root":
        return "/root"
    try:
        return pwd.getpwnam(username).pw_dir
    except KeyError:
        return f"/home/{username}"


def owner_of(username: str) -> Optional[str]:
    """``user:group`` for chown, or None when the account does not exist yet."""
    if not user_exists(username):
        return None
    return f"{username}:{username}"


def has_authorized_key(ctx: Context, username: str, public_key: str) -> bool:
    """True when ``username`` exists and ``public_key`` is in its authorized_keys."""
    if not user_exists(username):
        return False
    keys = ctx.path(os.path.join(user_home(username), ".ssh", "authorized_keys"))
    try:
        with open(keys, encoding="utf-8") as f:
            return any(line.strip() == public_key.strip() for line in f)
    except FileNotFoundError:
        return False


def create_user(ctx: Context, username: str) -> None:
    if user_exists(username):
        logger.info(f"User {username} already exists; skipping creation.")
    else:
        ctx.run(["useradd", "--create-home", "--shell", "/bin/bash", username])
        logger.log(SUCCESS, f"User {username} created.")
    ctx.run(["usermod", "-aG", "sudo", username])


def configure_sudoers(ctx: Context, username: str) -> None:
    result = ctx.render(
        "sudoers",
        f"/etc/sudoers.d/{username}",
        {"username": username},
        mode=0o440,
    )
    check = ctx.run(["visudo", "-cf", result.destination], check=False)
    if check.returncode != 0:
        rollback(result)
        raise ProvisionError(f"sudoers drop-in for {username} failed validation")
    if result.changed:
        logger.info(f"Passwordless sudo configured for {username}")


def install_ssh_key(ctx: Context, username: str, public_key: str) -> None:
    home = user_home(username)
    ssh_dir = ctx.path(os.path.join(home, ".ssh"))
    owner = owner_of(username)
    if not ctx.dry_run:
        os.makedirs(ssh_dir, mode=0o700, exist_ok=True)
        os.chmod(ssh_dir, 0o700)
    result = ctx.ensure_lines(os.path.join(home, ".ssh", "authorized_keys"), [public_key])
    if ctx.dry_run:
        return
    os.chmod(result.destination, 0o600)
    if owner:
        ctx.run(["chown", "-R", owner, ssh_dir])
    if result.changed:
        logger.log(SUCCESS, f"SSH key configured for {username}")


def user_account(ctx: Context) -> None:
    """Create the admin user with sudo rights and an SSH key."""
    cfg = ctx.config
    if not cfg.username:
        raise StepSkipped("no username configured")
    if cfg.username == "root":
        raise ProvisionError("refusing to manage the root account as the admin user")
    create_user(ctx, cfg.username)
    configure_sudoers(ctx, cfg.username)
    if cfg.ssh_public_key:
        install_ssh_key(ctx, cfg.username, cfg.ssh_public_key.strip())
    else:
        logger.warning(f"No SSH public key configured for {cfg.username}.")
