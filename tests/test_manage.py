"""
Entry point tests for dflow-manage and dflow-lifecycle.
"""

from unittest.mock import MagicMock, patch

import pytest

from dflow import manage
from dflow.deployment import manage as lifecycle
from dflow.app.core.controller.lifecycle_controller import BatchResult


class TestManageDispatch:
    def test_unknown_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            manage.main(["frobnicate"])

        assert exc_info.value.code == 1
        assert "Usage: dflow-manage" in capsys.readouterr().out

    def test_no_command(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            manage.main([])

        assert exc_info.value.code == 1
        assert "Usage" in capsys.readouterr().out

    def test_command_is_case_insensitive(self):
        platform = MagicMock()
        with patch.object(manage, "create_compose_platform", return_value=platform):
            manage.main(["START", "bcreg-agent", "LOG_LEVEL=DEBUG"])

        platform.up.assert_called_once_with(["bcreg-agent"])

    def test_overrides_reach_settings(self):
        platform = MagicMock()
        with patch.object(manage, "create_compose_platform", return_value=platform) as factory:
            manage.main(["up", "WEB_HTTP_PORT=8081"])

        settings = factory.call_args.args[0]
        assert settings.web_http_port == 8081

    def test_env_file_is_read(self, tmp_path):
        (tmp_path / ".env").write_text("PROJECT_NAME=demo\n")
        with patch.object(manage, "create_compose_platform", return_value=MagicMock()) as factory:
            manage.main(["stop"])

        assert factory.call_args.args[0].project_name == "demo"

    def test_rm_is_down(self):
        platform = MagicMock()
        with patch.object(manage, "create_compose_platform", return_value=platform):
            manage.main(["rm"])

        platform.down.assert_called_once_with()

    def test_build_without_s2i_exits(self):
        def which(tool):
            return None if tool == "s2i" else f"/usr/bin/{tool}"

        with patch("dflow.app.core.shell.shutil.which", side_effect=which), \
                patch("subprocess.run") as mock_run:
            with pytest.raises(SystemExit) as exc_info:
                manage.main(["build"])

        assert exc_info.value.code == 1
        mock_run.assert_not_called()

    def test_start_dev_builds_then_runs_dev_image(self):
        orchestrator = MagicMock()
        platform = MagicMock()
        platform.environment = {}
        with patch.object(manage, "create_build_orchestrator", return_value=orchestrator), \
                patch.object(manage, "create_compose_platform", return_value=platform):
            manage.main(["start-dev"])

        orchestrator.build_dev.assert_called_once_with()
        assert platform.environment == {"RUN_MODE": "development", "APP_IMAGE": "dflow-dev"}
        platform.up.assert_called_once_with([])

    def test_health_reports_unready_agents(self):
        platform = MagicMock()
        platform.check_service_ready.side_effect = lambda name, url: (name != "surrey-agent", "msg")
        with patch.object(manage, "create_compose_platform", return_value=platform):
            with pytest.raises(SystemExit) as exc_info:
                manage.main(["health"])

        assert exc_info.value.code == 1
        assert platform.check_service_ready.call_count == 6


class TestLifecycleDispatch:
    def test_missing_environment_makes_no_calls(self, capsys):
        with patch.object(lifecycle, "create_lifecycle_controller") as factory:
            with pytest.raises(SystemExit) as exc_info:
                lifecycle.main(["recycle", "bcreg-agent"])

        assert exc_info.value.code == 1
        factory.assert_not_called()
        out = capsys.readouterr().out
        assert "-e" in out
        assert "Usage: dflow-lifecycle" in out

    def test_unknown_command(self, capsys):
        with patch.object(lifecycle, "create_lifecycle_controller") as factory:
            with pytest.raises(SystemExit) as exc_info:
                lifecycle.main(["-e", "dev", "frobnicate"])

        assert exc_info.value.code == 1
        factory.assert_not_called()
        assert "Usage: dflow-lifecycle" in capsys.readouterr().out

    def test_help_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            lifecycle.main(["-h"])

        assert exc_info.value.code == 1
        assert "Usage" in capsys.readouterr().out

    def test_bad_flag_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            lifecycle.main(["-z", "-e", "dev", "getpods"])

        assert exc_info.value.code == 1

    def test_invalid_environment(self):
        with patch.object(lifecycle, "create_lifecycle_controller") as factory:
            with pytest.raises(SystemExit) as exc_info:
                lifecycle.main(["-e", "staging", "getpods"])

        assert exc_info.value.code == 1
        factory.assert_not_called()

    def test_reset_defaults_to_issuers(self):
        controller = MagicMock()
        controller.reset.return_value = BatchResult("reset")
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller) as factory:
            lifecycle.main(["-e", "dev", "reset"])

        targets = controller.reset.call_args.args[0]
        assert "wallet-db" not in targets
        assert "bcreg-agent" in targets
        assert factory.call_args.args[0].namespace == "dflow-dev"

    def test_recycle_explicit_targets(self):
        controller = MagicMock()
        controller.recycle.return_value = BatchResult("recycle")
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller):
            lifecycle.main(["-e", "test", "Recycle", "surrey-agent", "bcreg-agent"])

        controller.recycle.assert_called_once_with(["surrey-agent", "bcreg-agent"])

    def test_batch_failure_exits_1(self):
        result = BatchResult("scaleup")
        result.record("bcreg-agent", "scaleup", False, "not found")
        controller = MagicMock()
        controller.scale_up.return_value = result
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller):
            with pytest.raises(SystemExit) as exc_info:
                lifecycle.main(["-e", "dev", "scaleup", "bcreg-agent"])

        assert exc_info.value.code == 1

    def test_getpods(self, capsys):
        controller = MagicMock()
        controller.get_pods.return_value = ["bcreg-agent-1-abcde   1/1   Running"]
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller):
            lifecycle.main(["-e", "dev", "getpods"])

        assert "bcreg-agent-1-abcde" in capsys.readouterr().out

    def test_debug_flag(self):
        controller = MagicMock()
        controller.scale_down.return_value = BatchResult("scaledown")
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller) as factory:
            lifecycle.main(["-x", "-e", "dev", "scaledown", "bcreg-agent"])

        assert factory.call_args.args[0].log_level == "DEBUG"

    def test_compose_platform_override(self):
        controller = MagicMock()
        controller.recycle.return_value = BatchResult("recycle")
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller) as factory:
            lifecycle.main(["-e", "dev", "recycle", "bcreg-agent", "LIFECYCLE_PLATFORM=compose"])

        assert factory.call_args.args[0].lifecycle_platform == "compose"
        controller.recycle.assert_called_once_with(["bcreg-agent"])


class TestSettingsProfiles:
    def _args(self, *argv):
        return lifecycle.build_parser().parse_args(list(argv))

    def test_default(self):
        assert lifecycle.settings_files(self._args("-e", "dev")) == ["settings.env"]

    def test_profile_and_local(self):
        files = lifecycle.settings_files(self._args("-e", "dev", "-p", "demo", "-l"))

        assert files == ["settings.env", "settings.demo.env", "settings.local.env"]

    def test_default_profile_ignores_profile(self):
        files = lifecycle.settings_files(self._args("-e", "dev", "-p", "demo", "-P"))

        assert files == ["settings.env"]

    def test_profile_file_is_applied(self, tmp_path):
        (tmp_path / "settings.demo.env").write_text("PROJECT_NAMESPACE=devex\n")
        controller = MagicMock()
        with patch.object(lifecycle, "create_lifecycle_controller", return_value=controller) as factory:
            lifecycle.main(["-e", "dev", "-p", "demo", "getpods"])

        assert factory.call_args.args[0].namespace == "devex-dev"
