from __future__ import annotations

import logging
import re
import shlex
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import click
from click.shell_completion import get_completion_class

from sandbox_cli.services import ContainerService, ImageService, SessionService, StateService
from sandbox_core import logging as core_logging
from sandbox_core.config import SandboxConfig, load_sandbox_config
from sandbox_core.detector import ConversationDetector
from sandbox_core.engine import CommandRunner, ContainerEngine, run_command
from sandbox_core.errors import TypedSandboxError
from sandbox_core.orchestrator import RunOrchestrator, RunRequest
from sandbox_core.paths import SandboxPaths, resolve_sandbox_paths
from sandbox_core.resolver import TargetResolver
from sandbox_core.store import SandboxStore


LOGGER = logging.getLogger(core_logging.LOGGER_NAME)
PROG_NAME = "claude-sandbox"
COMPLETE_VAR = "_CLAUDE_SANDBOX_COMPLETE"
LOG_LEVEL_ENV = "CLAUDE_SANDBOX_LOG_LEVEL"
COMPLETION_SHELLS = ("bash", "zsh", "fish")
STOP_ALL_TARGET = "all"
_ENV_VAR_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

MAIN_EPILOG = """\b
Examples:
  claude-sandbox run .                    Start in the current folder
  claude-sandbox run -n feature ./app     Start a named session
  claude-sandbox continue -n feature      Resume the named session
  claude-sandbox shell ./app              Open a shell in the folder's container
  claude-sandbox stop all                 Remove every sandbox container
"""


@dataclass
class SandboxContext:
    paths: SandboxPaths
    config: SandboxConfig
    store: SandboxStore
    engine: ContainerEngine
    resolver: TargetResolver
    images: ImageService
    sessions: SessionService
    containers: ContainerService
    state: StateService
    orchestrator: RunOrchestrator


def _confirm(prompt: str) -> bool:
    return click.confirm(prompt, default=False)


def resolve_log_level(log_level: str | None, config: SandboxConfig | None) -> str:
    cli_value = str(log_level or "").strip()
    if cli_value:
        return core_logging.normalize_log_level(cli_value)

    config_value = ""
    if config is not None and isinstance(config.logging.values, dict):
        config_value = str(config.logging.values.get("level") or "").strip()
    if config_value:
        return core_logging.normalize_log_level(config_value)
    return core_logging.DEFAULT_LOG_LEVEL


def configure_logging(log_level: str | None, config: SandboxConfig) -> str:
    level = resolve_log_level(log_level, config)
    core_logging.configure_structured_logger(LOGGER, level=level)
    core_logging.configure_domain_log_levels(
        domains=config.logging.values.get("domains"),
        logger_prefix=core_logging.LOGGER_NAME,
        normalize_level=core_logging.normalize_log_level,
    )
    return level


def build_sandbox_context(
    config_root: str | Path | None = None,
    *,
    log_level: str | None = None,
    runner: CommandRunner = run_command,
) -> SandboxContext:
    paths = resolve_sandbox_paths(config_root)
    config = load_sandbox_config(paths.config_file)
    level = configure_logging(log_level, config)
    LOGGER.debug(
        "Using config root %s (log_level=%s)",
        paths.root,
        level,
        extra={"component": "cli", "operation": "startup", "result": "configured"},
    )

    store = SandboxStore(paths)
    engine = ContainerEngine(binary=config.engine.binary, image=config.engine.image, runner=runner)
    images = ImageService(engine=engine, paths=paths, click_echo=click.echo)
    detector = ConversationDetector(lister=engine, conversations_path=config.container.conversations_path)
    orchestrator = RunOrchestrator(
        engine=engine,
        store=store,
        config=config,
        detector=detector,
        confirm=_confirm,
        echo=click.echo,
        ensure_image=images.ensure_image,
    )
    return SandboxContext(
        paths=paths,
        config=config,
        store=store,
        engine=engine,
        resolver=TargetResolver(store=store),
        images=images,
        sessions=SessionService(engine=engine, store=store, config=config, click_echo=click.echo),
        containers=ContainerService(engine=engine, store=store, click_echo=click.echo),
        state=StateService(store=store, click_echo=click.echo, click_confirm=_confirm),
        orchestrator=orchestrator,
    )


def format_core_error(exc: TypedSandboxError) -> str:
    """Lead with the error's user message; keep the specific detail underneath."""
    payload = exc.payload()
    detail = payload["detail"].strip()
    headline = payload["user_message"]
    if not detail or detail == headline:
        return headline
    return f"{headline}\n  {detail}"


@contextmanager
def _surface_core_errors() -> Iterator[None]:
    try:
        yield
    except TypedSandboxError as exc:
        LOGGER.error(
            "%s (failure_class=%s)",
            exc,
            exc.failure_class,
            extra={"component": "cli", "operation": "command", "result": "failed", "error_class": exc.error_code},
        )
        raise click.ClickException(format_core_error(exc)) from exc


def _sandbox(ctx: click.Context) -> SandboxContext:
    options: dict[str, Any] = ctx.ensure_object(dict)
    sandbox = options.get("sandbox")
    if sandbox is None:
        with _surface_core_errors():
            sandbox = build_sandbox_context(options.get("config_root"), log_level=options.get("log_level"))
        options["sandbox"] = sandbox
    return sandbox


def _validate_env_vars(_ctx: click.Context, _param: click.Parameter, values: tuple[str, ...]) -> tuple[str, ...]:
    for value in values:
        name = value.partition("=")[0]
        if not _ENV_VAR_NAME_RE.match(name):
            raise click.BadParameter(f"Invalid environment variable {value!r}. Use KEY or KEY=VALUE.")
    return tuple(values)


def _read_prompt(prompt: str | None, prompt_file: Path | None) -> str | None:
    if prompt or prompt_file is None:
        return prompt
    try:
        return prompt_file.read_text(encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Unable to read prompt file {prompt_file}: {exc}") from exc


@click.group(help="Run Claude Code in isolated Docker containers.", epilog=MAIN_EPILOG)
@click.option(
    "--config-root",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="State directory (default: $CLAUDE_SANDBOX_CONFIG or ~/.claude-sandbox).",
)
@click.option(
    "--log-level",
    default=None,
    envvar=LOG_LEVEL_ENV,
    show_default="config logging.level or warning",
    type=click.Choice(core_logging.LOG_LEVEL_CHOICES, case_sensitive=False),
    help="Logging verbosity for diagnostics on stderr.",
)
@click.pass_context
def main(ctx: click.Context, config_root: Path | None, log_level: str | None) -> None:
    options = ctx.ensure_object(dict)
    options.setdefault("config_root", config_root)
    options.setdefault("log_level", log_level)


@main.command(help="Start Claude Code with mapped folders.")
@click.argument("folders", nargs=-1, required=True, type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("-n", "--name", "session_name", default=None, help="Save the conversation under this session name.")
@click.option("-m", "--prompt", default=None, help="Initial prompt to send to Claude.")
@click.option(
    "-f",
    "--prompt-file",
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Read the initial prompt from a file.",
)
@click.option("--container", "container_override", default=None, help="Use this container name instead of deriving one.")
@click.option("-p", "--port", "ports", multiple=True, help="Expose a port: PORT, HOST:CONTAINER or IP:HOST:CONTAINER.")
@click.option("-e", "--env", "env_vars", multiple=True, callback=_validate_env_vars, help="Extra environment variable (KEY or KEY=VALUE).")
@click.option("--memory", default=None, help="Container memory limit, e.g. 4g.")
@click.option("--cpus", default=None, help="Container CPU limit, e.g. 2.")
@click.option("--dangerously-skip-permissions", is_flag=True, default=False, help="Pass --dangerously-skip-permissions to Claude.")
@click.option("-c", "--continue", "continue_session", is_flag=True, default=False, help="Continue the most recent conversation.")
@click.option("-r", "--resume", default=None, help="Resume a conversation by ID.")
@click.pass_context
def run(
    ctx: click.Context,
    folders: tuple[Path, ...],
    session_name: str | None,
    prompt: str | None,
    prompt_file: Path | None,
    container_override: str | None,
    ports: tuple[str, ...],
    env_vars: tuple[str, ...],
    memory: str | None,
    cpus: str | None,
    dangerously_skip_permissions: bool,
    continue_session: bool,
    resume: str | None,
) -> None:
    if continue_session and resume:
        raise click.UsageError("--continue and --resume cannot be used together.")
    sandbox = _sandbox(ctx)
    request = RunRequest(
        folders=tuple(folders),
        container_override=container_override,
        session_name=session_name,
        ports=tuple(ports),
        env_vars=tuple(env_vars),
        memory=memory,
        cpus=cpus,
        prompt=_read_prompt(prompt, prompt_file),
        dangerously_skip_permissions=dangerously_skip_permissions,
        continue_session=continue_session,
        resume=resume,
    )
    with _surface_core_errors():
        outcome = sandbox.orchestrator.run(request)
    if outcome.aborted:
        return
    _echo_exit_banner(
        outcome.container_name,
        folder_hint=shlex.quote(str(folders[0])),
        session_name=shlex.quote(session_name) if session_name and outcome.conversation_id else None,
    )


def _echo_exit_banner(container_name: str, *, folder_hint: str, session_name: str | None = None) -> None:
    click.echo()
    click.echo(f"{click.style('✓', fg='green')} Exited Claude session")
    click.echo(f"Container '{click.style(container_name, fg='cyan')}' is still running")
    if session_name:
        click.echo(f"Resume this session with: {PROG_NAME} continue {folder_hint} -n {session_name}")
        return
    click.echo(f"Reconnect with: {PROG_NAME} continue {folder_hint}")


@main.command(name="continue", help="Continue the last conversation in a container.")
@click.argument("target", required=False)
@click.option("-n", "--name", "session_name", default=None, help="Resume a named session instead.")
@click.pass_context
def continue_(ctx: click.Context, target: str | None, session_name: str | None) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        container_name = sandbox.resolver.resolve(target)
        sandbox.sessions.continue_session(container_name, session_name)


@main.command(help="Resume a conversation by ID, or open the picker.")
@click.argument("conversation_id", required=False)
@click.option("-t", "--target", default=None, help="Folder path, folder name or container name.")
@click.pass_context
def resume(ctx: click.Context, conversation_id: str | None, target: str | None) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        container_name = sandbox.resolver.resolve(target)
        sandbox.sessions.resume_conversation(container_name, conversation_id)


@main.command(help="Open a shell in a running container.")
@click.argument("target", required=False)
@click.pass_context
def shell(ctx: click.Context, target: str | None) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        container_name = sandbox.resolver.resolve(target)
        sandbox.sessions.open_shell(container_name)


@main.command(help="Stop and remove a container ('all' removes every sandbox container).")
@click.argument("target", required=False)
@click.pass_context
def stop(ctx: click.Context, target: str | None) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        if target == STOP_ALL_TARGET:
            sandbox.containers.stop_all()
            return
        sandbox.containers.stop(sandbox.resolver.resolve(target))


@main.command(name="list", help="List containers, folder mappings and named sessions.")
@click.pass_context
def list_(ctx: click.Context) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        sandbox.containers.list_sessions()


@main.command(help="Build (or rebuild) the sandbox image.")
@click.option("--no-cache", is_flag=True, default=False, help="Build without the Docker layer cache.")
@click.pass_context
def build(ctx: click.Context, no_cache: bool) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        sandbox.engine.ensure_available()
        sandbox.images.build(no_cache=no_cache)


@main.command(help="Delete all sandbox state and memory.")
@click.option("-f", "--force", is_flag=True, default=False, help="Skip the confirmation prompt.")
@click.pass_context
def reset(ctx: click.Context, force: bool) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        sandbox.state.reset(force=force)


@main.command(help="Show container status.")
@click.argument("target", required=False)
@click.pass_context
def status(ctx: click.Context, target: str | None) -> None:
    sandbox = _sandbox(ctx)
    with _surface_core_errors():
        sandbox.containers.status(sandbox.resolver.resolve(target))


@main.command(help="Print a shell completion script.")
@click.argument("shell_name", metavar="SHELL", type=click.Choice(COMPLETION_SHELLS))
def completions(shell_name: str) -> None:
    completion_class = get_completion_class(shell_name)
    if completion_class is None:
        raise click.ClickException(f"Unsupported shell: {shell_name}")
    completion = completion_class(main, {}, PROG_NAME, COMPLETE_VAR)
    click.echo(completion.source())


if __name__ == "__main__":
    main()
