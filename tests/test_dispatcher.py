"""End-to-end tests for the in-process pipeline and its error boundary."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest

from forge.builtins import core
from forge.dispatcher import Dispatcher, Phase, builtin_descriptors, invoked_builtin, run
from forge.exit_codes import INTERNAL_ERROR, INTERRUPTED, RESTART, SUCCESS, USER_ERROR
from forge.infrastructure.pip import InstallResult

_BASIC_SRC = """\
import click

from forge.command import ForgeCommand, command, die, request_exit

__module__ = {"description": "Basic example commands"}

ping = ForgeCommand(description="Simple ping command", execute=lambda options, args, context: print("pong!"))


def _define_greet(cmd):
    cmd.params.append(click.Argument(["name"]))
    cmd.params.append(click.Option(["-l", "--loud"], is_flag=True))


@command("Greet someone", define_command=_define_greet)
def greet(options, args, context):
    text = f"hello {args[0]}"
    print(text.upper() if options["loud"] else text)


@command("Show a setting")
def region(options, args, context):
    print(f"region={context.settings.get('region', 'none')}")


@command("Fail on purpose")
def fail(options, args, context):
    die("deployment failed")


@command("Crash on purpose")
def crash(options, args, context):
    raise RuntimeError("kaboom")


@command("Exit with a code")
def leave(options, args, context):
    request_exit(5)


@command("Interrupt")
def interrupt(options, args, context):
    raise KeyboardInterrupt
"""


class FakeInstaller:
    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.calls: list[list[str]] = []

    def __call__(self, specifiers: Sequence[str]) -> InstallResult:
        self.calls.append(list(specifiers))
        return InstallResult(ok=self.ok, output="" if self.ok else "ERROR: no such package")


@pytest.fixture(autouse=True)
def _isolate(restore_sys_path: None) -> None:
    """Every test here may activate a shared site-packages directory."""


@pytest.fixture
def env(forge_home: Path) -> dict[str, str]:
    return {"FORGE_HOME": str(forge_home)}


@pytest.fixture
def in_project(project: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(project)
    return project


@pytest.fixture
def basic_project(
    in_project: Path, write_config: Callable[..., Path], write_module: Callable[..., Path]
) -> Path:
    write_module("basic.py", _BASIC_SRC)
    write_config("modules:\n  - ./basic\nsettings:\n  basic.region:\n    region: eu\n")
    return in_project


class TestInvokedBuiltin:
    def test_group_command(self) -> None:
        target = invoked_builtin(builtin_descriptors(True), ("module", "install"))
        assert target is not None
        assert target.manages_dependencies is True

    def test_top_level_command(self) -> None:
        assert invoked_builtin(builtin_descriptors(True), ("cd",)) is core.cd

    def test_group_alone_or_unknown(self) -> None:
        descriptors = builtin_descriptors(True)
        assert invoked_builtin(descriptors, ("module",)) is None
        assert invoked_builtin(descriptors, ("basic", "ping")) is None
        assert invoked_builtin(descriptors, ()) is None


class TestWithoutProject:
    @pytest.fixture(autouse=True)
    def _outside(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        monkeypatch.chdir(outside)

    def test_help_lists_builtins(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["--help"], env=env) == SUCCESS
        out = capsys.readouterr().out
        assert "cd" in out
        assert "module" in out

    def test_project_only_builtins_hidden(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["module", "--help"], env=env) == SUCCESS
        commands = [line.split()[0] for line in capsys.readouterr().out.splitlines() if line.startswith("  ") and line.strip()]
        assert "list" in commands
        assert "install" not in commands

    def test_version(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["--version"], env=env) == SUCCESS
        assert "forge, version" in capsys.readouterr().out

    def test_no_subcommand(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run([], env=env) == USER_ERROR
        captured = capsys.readouterr()
        assert "ERROR: subcommand required" in captured.err
        assert "Usage:" in captured.out

    def test_unknown_command(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["nope"], env=env) == USER_ERROR
        err = capsys.readouterr().err
        assert err.startswith("ERROR:")
        assert "Try 'forge --help' for more information." in err

    def test_invalid_global_value(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["--log-format", "xml", "cd"], env=env) == USER_ERROR
        assert "ERROR:" in capsys.readouterr().err

    def test_module_list_empty(self, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["module", "list"], env=env) == SUCCESS
        assert "No dependencies" in capsys.readouterr().out


class TestWithProject:
    def test_simple_command(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["basic", "ping"], env=env) == SUCCESS
        assert "pong!" in capsys.readouterr().out

    def test_rich_command(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["basic", "greet", "world", "--loud"], env=env) == SUCCESS
        assert "HELLO WORLD" in capsys.readouterr().out

    def test_subcommand_flags_are_not_globals(
        self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run(["basic", "greet", "world", "-l"], env=env) == SUCCESS
        assert "HELLO WORLD" in capsys.readouterr().out

    def test_command_settings(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["basic", "region"], env=env) == SUCCESS
        assert "region=eu" in capsys.readouterr().out

    def test_group_help(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["--help"], env=env) == SUCCESS
        out = capsys.readouterr().out
        assert "basic" in out
        assert "Basic example commands" in out

    def test_project_builtins_available(
        self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run(["module", "--help"], env=env) == SUCCESS
        commands = [line.split()[0] for line in capsys.readouterr().out.splitlines() if line.startswith("  ") and line.strip()]
        assert "install" in commands

    def test_usage_error(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["basic", "greet"], env=env) == USER_ERROR
        err = capsys.readouterr().err
        assert "ERROR:" in err
        assert "Try 'forge basic greet --help'" in err

    def test_die(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["basic", "fail"], env=env) == USER_ERROR
        err = capsys.readouterr().err
        assert "ERROR: deployment failed" in err
        assert "Traceback" not in err

    def test_internal_error(self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]) -> None:
        assert run(["basic", "crash"], env=env) == INTERNAL_ERROR
        err = capsys.readouterr().err
        assert "ERROR: Internal error: RuntimeError: kaboom" in err
        assert "--debug" in err
        assert "Traceback" not in err

    def test_internal_error_debug_shows_traceback(
        self, basic_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run(["--debug", "basic", "crash"], env=env) == INTERNAL_ERROR
        assert "Traceback" in capsys.readouterr().err

    def test_request_exit(self, basic_project: Path, env: dict[str, str]) -> None:
        assert run(["basic", "leave"], env=env) == 5

    def test_interrupt(self, basic_project: Path, env: dict[str, str]) -> None:
        dispatcher = Dispatcher(env)
        assert dispatcher.run(["basic", "interrupt"]) == INTERRUPTED
        assert dispatcher.phase is Phase.FAILED

    def test_phases_reach_done(self, basic_project: Path, env: dict[str, str]) -> None:
        dispatcher = Dispatcher(env)
        assert dispatcher.run(["basic", "ping"]) == SUCCESS
        assert dispatcher.phase is Phase.DONE
        assert dispatcher.tree is not None
        assert dispatcher.tree.find("basic.ping") is not None

    def test_failed_phase(self, in_project: Path, write_config: Callable[..., Path], env: dict[str, str]) -> None:
        write_config("modules:\n  - ./missing\n")
        dispatcher = Dispatcher(env)
        assert dispatcher.run(["--help"]) == USER_ERROR
        assert dispatcher.phase is Phase.FAILED


class TestConfigErrors:
    def test_parse_failure(
        self, in_project: Path, write_config: Callable[..., Path], env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        write_config("modules: [unclosed\n")
        assert run(["--help"], env=env) == USER_ERROR
        assert "ERROR: Failed to parse config" in capsys.readouterr().err

    def test_missing_module(
        self, in_project: Path, write_config: Callable[..., Path], env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        write_config("modules:\n  - ./missing\n")
        assert run(["--help"], env=env) == USER_ERROR
        err = capsys.readouterr().err
        assert "Module not found: ./missing (searched:" in err
        assert len(err.strip().splitlines()) == 1

    def test_debug_shows_hint(
        self, in_project: Path, write_config: Callable[..., Path], env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        write_config("modules:\n  - ./missing\n")
        assert run(["--debug", "--log-level", "warning", "--help"], env=env) == USER_ERROR
        assert "forge module install" in capsys.readouterr().err

    def test_explicit_root_without_marker(
        self, tmp_path: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run(["--root", str(tmp_path), "--help"], env=env) == USER_ERROR
        assert "Project not found" in capsys.readouterr().err

    def test_duplicate_commands(
        self,
        in_project: Path,
        write_config: Callable[..., Path],
        write_module: Callable[..., Path],
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        src = "from forge.command import ForgeCommand\n\nhi = ForgeCommand('Hi', lambda o, a, c: None)\n"
        write_module("one.py", '__module__ = {"group": "shared"}\n' + src)
        write_module("two.py", '__module__ = {"group": "shared"}\n' + src)
        write_config("modules:\n  - ./one\n  - ./two\n")
        assert run(["--help"], env=env) == USER_ERROR
        assert "Duplicate command 'hi'" in capsys.readouterr().err

    def test_missing_config_file_warns(
        self, in_project: Path, env: dict[str, str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert run(["--log-format", "json", "module", "list"], env=env) == SUCCESS
        assert "No config file found" in capsys.readouterr().err


class TestDependencies:
    def test_install_then_restart(
        self,
        basic_project: Path,
        write_config: Callable[..., Path],
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        write_config("modules:\n  - ./basic\ndependencies:\n  - left-pad\n")
        installer = FakeInstaller()

        assert run(["basic", "ping"], env=env, installer=installer) == RESTART
        assert installer.calls == [["left-pad"]]
        captured = capsys.readouterr()
        assert "Installing dependencies" in captured.err
        assert "pong!" not in captured.out

        assert run(["basic", "ping"], env={**env, "FORGE_RESTART_COUNT": "1"}, installer=installer) == SUCCESS
        assert installer.calls == [["left-pad"]]
        assert "pong!" in capsys.readouterr().out

    def test_install_failure(
        self,
        basic_project: Path,
        write_config: Callable[..., Path],
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        write_config("modules:\n  - ./basic\ndependencies:\n  - left-pad\n")
        assert run(["basic", "ping"], env=env, installer=FakeInstaller(ok=False)) == USER_ERROR
        assert "ERROR: Failed to install dependencies left-pad" in capsys.readouterr().err

    def test_shared_module_after_install(
        self,
        in_project: Path,
        write_config: Callable[..., Path],
        forge_home: Path,
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        pkg = forge_home / "site-packages" / "acme_forge_tools"
        pkg.mkdir()
        (pkg / "__init__.py").write_text(
            "from forge.command import ForgeCommand\n\n"
            "hello = ForgeCommand('Shared hello', lambda o, a, c: print('shared hello'))\n"
        )
        write_config("modules:\n  - acme_forge_tools\n")
        assert run(["acme_forge_tools", "hello"], env=env) == SUCCESS
        assert "shared hello" in capsys.readouterr().out

    def test_manual_mode_refuses_then_module_install_fixes_it(
        self,
        basic_project: Path,
        write_config: Callable[..., Path],
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        write_config("modules:\n  - ./basic\ninstall_mode: manual\ndependencies:\n  - left-pad\n")
        installer = FakeInstaller()

        assert run(["basic", "ping"], env=env, installer=installer) == USER_ERROR
        err = capsys.readouterr().err
        assert "Missing dependencies: left-pad" in err
        assert "forge module install" in err
        assert installer.calls == []

        assert run(["module", "install"], env=env, installer=installer) == SUCCESS
        assert "Installed: left-pad" in capsys.readouterr().out
        assert installer.calls == [["left-pad"]]

        assert run(["basic", "ping"], env=env, installer=installer) == SUCCESS
        assert "pong!" in capsys.readouterr().out
        assert installer.calls == [["left-pad"]]

    def test_module_install_in_auto_mode_does_not_restart(
        self,
        in_project: Path,
        write_config: Callable[..., Path],
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        write_config("dependencies:\n  - left-pad\n")
        installer = FakeInstaller()
        assert run(["--color", "never", "module", "install"], env=env, installer=installer) == SUCCESS
        assert installer.calls == [["left-pad"]]
        assert "Installed: left-pad" in capsys.readouterr().out

    def test_module_list_shows_missing_without_installing(
        self,
        in_project: Path,
        write_config: Callable[..., Path],
        env: dict[str, str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        write_config("dependencies:\n  - left-pad\n")
        installer = FakeInstaller()
        assert run(["module", "list"], env=env, installer=installer) == SUCCESS
        assert "missing" in capsys.readouterr().out
        assert installer.calls == []
