"""Tests for the provisioning plan."""

from unittest.mock import patch

from hostopt.config import load_config
from hostopt.plan import TASKS, ask_identity, build_steps, select_steps, step_options
from hostopt.prompt import StepSelector
from hostopt.tasks import Context


def make_ctx(profile="vps", interactive=False):
    return Context(load_config(profile), StepSelector(interactive=interactive))


class TestBuildSteps:
    def test_steps_follow_the_task_order(self):
        steps = build_steps(make_ctx())
        assert [s.name for s in steps] == [t.name for t in TASKS]
        assert steps[0].name == "preflight"
        assert steps[-1].name == "io_scheduler"

    def test_critical_steps(self):
        steps = build_steps(make_ctx())
        assert [s.name for s in steps if s.critical] == ["preflight", "ssh_hardening"]
        assert [s.name for s in steps if s.interactive] == ["preflight"]

    def test_flags_drive_enablement(self):
        ctx = make_ctx("wsl2")
        enabled = {s.name: s.enabled for s in build_steps(ctx)}
        assert enabled["preflight"] is True
        assert enabled["wsl_conf"] is True
        assert enabled["ssh_hardening"] is False
        assert enabled["swap"] is False
        assert enabled["golang"] is False
        assert enabled["tmpfs"] is False
        assert enabled["ssd_trim"] is False

    def test_storage_steps_on_a_mini_pc(self):
        enabled = {s.name: s.enabled for s in build_steps(make_ctx("mini-pc"))}
        assert enabled["tmpfs"] is True
        assert enabled["ssd_trim"] is True

    def test_actions_are_bound_to_the_context(self):
        ctx = make_ctx()
        steps = build_steps(ctx)
        assert steps[0].action.func is TASKS[0].action
        assert steps[0].action.args == (ctx,)


class TestSelection:
    def test_every_flagged_task_has_a_question(self):
        fields = [o.field for o in step_options(make_ctx())]
        assert fields == [t.flag for t in TASKS if t.flag]
        assert "preflight" not in fields

    def test_probe_turns_off_satisfied_steps(self):
        ctx = make_ctx()
        with patch("hostopt.plan.docker_probe", return_value="Docker is already installed."), patch(
            "hostopt.plan.locales_probe", return_value=None
        ), patch("hostopt.plan.auto_updates_probe", return_value=None):
            select_steps(ctx)
        assert ctx.config.install_docker is False
        assert ctx.config.configure_locales is True

    def test_identity_questions(self):
        ctx = make_ctx(interactive=True)
        with patch.object(ctx.selector, "ask_text", side_effect=["ops", "ssh-ed25519 AAAA ops"]):
            ask_identity(ctx)
        assert ctx.config.username == "ops"
        assert ctx.config.ssh_public_key == "ssh-ed25519 AAAA ops"

    def test_identity_not_asked_when_configured(self):
        ctx = make_ctx(interactive=True)
        ctx.config.username = "ops"
        ctx.config.ssh_public_key = "ssh-ed25519 AAAA ops"
        with patch.object(ctx.selector, "ask_text") as mock_ask:
            ask_identity(ctx)
        mock_ask.assert_not_called()
