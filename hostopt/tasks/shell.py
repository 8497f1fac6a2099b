import logging
import os
import pwd
import shutil
import tempfile
from typing import List

from hostopt.command import command_exists
from hostopt.download import download_file
from hostopt.errors import DownloadError
from hostopt.logs import SUCCESS
from hostopt.tasks import Context
from hostopt.tasks.users import owner_of, user_exists, user_home

logger = logging.getLogger(__name__)

STARSHIP_INSTALLER = "https://starship.rs/install.sh"
ZSH_PLUGINS = {
    "zsh-autosuggestions": "https://github.com/zsh-users/zsh-autosuggestions.git",
    "zsh-syntax-highlighting": "https://github.com/zsh-users/zsh-syntax-highlighting.git",
    "zsh-completions": "https://github.com/zsh-users/zsh-completions.git",
}


def shell_users(ctx: Context) -> List[str]:
    users = ["root"]
    name = ctx.config.username
    if name and name != "root" and user_exists(name):
        users.append(name)
    return users


def install_starship(ctx: Context) -> None:
    if command_exists("starship"):
        logger.info("starship already installed")
        return
    if ctx.dry_run:
        logger.info("[dry-run] would install the starship prompt")
        return
    with tempfile.TemporaryDirectory(prefix="hostopt-starship.") as tmp:
        try:
            script = download_file(STARSHIP_INSTALLER, os.path.join(tmp, "install.sh"))
        except DownloadError as e:
            logger.warning(f"Skipping starship prompt: {e}")
            return
        ctx.try_run(["sh", script, "-y"], "starship installation failed")


def sync_plugins(ctx: Context, home: str) -> None:
    plugin_root = ctx.path(os.path.join(home, ".zsh", "plugins"))
    if not ctx.dry_run:
        os.makedirs(plugin_root, exist_ok=True)
    for name, url in ZSH_PLUGINS.items():
        target = os.path.join(plugin_root, name)
        if os.path.isdir(os.path.join(target, ".git")):
            ctx.try_run(["git", "-C", target, "pull", "--ff-only"], f"Could not update {name}")
        else:
            ctx.try_run(["git", "clone", "--depth", "1", url, target], f"Could not clone {name}")


def configure_user(ctx: Context, username: str) -> None:
    home = user_home(username)
    owner = None if username == "root" else owner_of(username)
    sync_plugins(ctx, home)
    ctx.render(
        "zshrc",
        os.path.join(home, ".zshrc"),
        {"locale": ctx.config.default_locale},
        owner=owner,
    )
    ctx.render("starship.toml", os.path.join(home, ".config", "starship.toml"), owner=owner)
    if owner and not ctx.dry_run:
        ctx.run(
            [
                "chown",
                "-R",
                owner,
                ctx.path(os.path.join(home, ".zsh")),
                ctx.path(os.path.join(home, ".config")),
            ]
        )


def set_login_shell(ctx: Context, username: str, zsh_path: str) -> None:
    try:
        current = pwd.getpwnam(username).pw_shell
    except KeyError:
        current = ""
    if current == zsh_path:
        return
    ctx.run(["chsh", "-s", zsh_path, username])
    logger.info(f"Login shell for {username} set to {zsh_path}")


def zsh(ctx: Context) -> None:
    """Zsh with plugins and the starship prompt for root and the admin user."""
    ctx.install(["zsh", "git", "curl"])
    install_starship(ctx)
    zsh_path = shutil.which("zsh") or "/usr/bin/zsh"
    ctx.ensure_lines("/etc/shells", [zsh_path])
    users = shell_users(ctx)
    for username in users:
        configure_user(ctx, username)
        set_login_shell(ctx, username, zsh_path)
    logger.log(SUCCESS, f"Zsh configured for {', '.join(users)}")
