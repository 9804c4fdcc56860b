"""CLI entry point for gitpersona built with Typer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from pydantic import ValidationError

from gitpersona.cli.runtime import CliContext, build_cli_context, load_cli_config
from gitpersona.core.enforcer import EnforcementResult
from gitpersona.core.errors import GitPersonaError
from gitpersona.core.models import Direction, Enforcement, RecordKind
from gitpersona.core.service import ConfigBundle
from gitpersona.git.facade import GitCommandError

if TYPE_CHECKING:
    from collections.abc import Sequence


app = typer.Typer(add_completion=False, no_args_is_help=True)
hook_app = typer.Typer(no_args_is_help=True, help="Entry points invoked by the managed git hooks.")
project_app = typer.Typer(no_args_is_help=True, help="Register repositories.")
app.add_typer(hook_app, name="hook")
app.add_typer(project_app, name="project")


RepoOption = Annotated[Path | None, typer.Option(help="Path to the repository.")]
ConfigOption = Annotated[Path | None, typer.Option(help="Path to a configuration TOML.")]
JsonFlag = Annotated[
    bool,
    typer.Option("--json", "--json-output", help="Emit JSON instead of text."),
]
VerboseFlag = Annotated[bool, typer.Option("--verbose", "-v", help="Log debug output to stderr.")]


def _resolve_repo(repo: Path | None) -> Path:
    return repo.resolve() if repo is not None else Path.cwd()


def _emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False))


def _fail(message: str, code: int = 2) -> typer.Exit:
    typer.echo(message, err=True)
    return typer.Exit(code=code)


def _prepare_context(
    repo: Path | None,
    config_path: Path | None,
    *,
    json_logs: bool = False,
    verbose: bool = False,
) -> CliContext:
    repo_path = _resolve_repo(repo)
    try:
        config = load_cli_config(config_path)
    except FileNotFoundError as exc:
        raise _fail(f"Configuration file not found: {exc}") from exc
    except (ValueError, ValidationError) as exc:
        raise _fail(str(exc)) from exc

    return build_cli_context(
        repo_path,
        config,
        json_logs=json_logs,
        silence_logs=json_logs and not verbose,
        verbose=verbose,
    )


@app.callback()
def cli_root() -> None:
    """Per-repository git identity resolution and commit-time policy checks."""


def _run_hook(context: CliContext, *, remote_name: str | None, json_output: bool) -> None:
    try:
        project = context.current_project()
        state = context.observe()
    except GitCommandError as exc:
        raise _fail(f"gitpersona: not a git repository: {exc.stderr.strip() or exc}") from exc
    if project is None:
        typer.echo("gitpersona: repository is not registered; skipping identity check", err=True)
        return

    event = context.pre_commit_event(project, state, remote_name=remote_name, direction=Direction.push)
    result = context.service.pre_commit(
        event,
        settings=context.enforcement_settings(),
        writer=context.facade,
    )
    if json_output:
        _emit_json(_result_payload(result))
    for message in result.messages:
        typer.echo(f"gitpersona: {message}", err=True)
    if result.exit_code:
        typer.echo("gitpersona: blocked by identity policy", err=True)
        raise typer.Exit(code=result.exit_code)


def _result_payload(result: EnforcementResult) -> dict[str, Any]:
    return {
        "state": result.state.value,
        "exit_code": result.exit_code,
        "decision": result.decision.model_dump(mode="json"),
        "messages": result.messages,
        "corrected_account_id": result.corrected_account_id,
    }


@hook_app.command("pre-commit")
def hook_pre_commit(
    repo: RepoOption = None,
    config: ConfigOption = None,
    json_output: JsonFlag = False,
    verbose: VerboseFlag = False,
) -> None:
    """Validate the identity of the commit about to be created."""
    context = _prepare_context(repo, config, json_logs=json_output, verbose=verbose)
    _run_hook(context, remote_name=None, json_output=json_output)


@hook_app.command("pre-push")
def hook_pre_push(
    remote: Annotated[str, typer.Argument(help="Name of the remote being pushed to.")],
    url: Annotated[str | None, typer.Argument(help="URL of the remote.")] = None,
    repo: RepoOption = None,
    config: ConfigOption = None,
    json_output: JsonFlag = False,
    verbose: VerboseFlag = False,
) -> None:
    """Validate the identity used for a push to REMOTE."""
    del url  # passed by git; the remote name is authoritative
    context = _prepare_context(repo, config, json_logs=json_output, verbose=verbose)
    _run_hook(context, remote_name=remote, json_output=json_output)


@app.command("install-hooks")
def install_hooks_command(
    repo: RepoOption = None,
    config: ConfigOption = None,
    level: Annotated[Enforcement, typer.Option(help="Validation level: strict, warning or off.")] = Enforcement.strict,
    auto_fix: Annotated[bool, typer.Option(help="Rewrite the local identity when it is confidently wrong.")] = False,
) -> None:
    """Install the managed pre-commit and pre-push hooks."""
    if level is Enforcement.advisory:
        raise _fail("validation level must be strict, warning or off")
    context = _prepare_context(repo, config)
    try:
        installer = context.hook_installer()
    except GitCommandError as exc:
        raise _fail(f"not a git repository: {context.repo_path}") from exc
    written = installer.install(validation_level=level, auto_fix=auto_fix)
    typer.echo(f"Installed {', '.join(path.name for path in written)} (level={level.value}, auto_fix={auto_fix})")


@app.command("remove-hooks")
def remove_hooks_command(
    repo: RepoOption = None,
    config: ConfigOption = None,
) -> None:
    """Remove the managed hooks and restore any backed-up hooks."""
    context = _prepare_context(repo, config)
    try:
        installer = context.hook_installer()
    except GitCommandError as exc:
        raise _fail(f"not a git repository: {context.repo_path}") from exc
    removed = installer.remove()
    if not removed:
        typer.echo("No managed hooks found.")
        return
    typer.echo(f"Removed {', '.join(path.name for path in removed)}")


@project_app.command("add")
def project_add_command(
    repo: RepoOption = None,
    config: ConfigOption = None,
    name: Annotated[str | None, typer.Option(help="Display name for the project.")] = None,
    json_output: JsonFlag = False,
) -> None:
    """Register the repository and its remotes."""
    context = _prepare_context(repo, config, json_logs=json_output)
    try:
        root = context.facade.repository_root()
        remotes = context.observer.remotes()
    except GitCommandError as exc:
        raise _fail(f"not a git repository: {context.repo_path}") from exc
    try:
        project = context.service.add_project(str(root), name=name, remote_urls=remotes)
    except GitPersonaError as exc:
        raise _fail(f"{exc.kind.value}: {exc.message}", code=1) from exc
    if json_output:
        _emit_json(project.model_dump(mode="json"))
        return
    lines = [f"Registered project {project.id}", f"  path: {project.path}"]
    if project.organization:
        lines.append(f"  organization: {project.organization} ({project.platform.value})")
    lines.extend(f"  remote {remote}: {url}" for remote, url in project.remote_urls.items())
    typer.echo("\n".join(lines))


@app.command("suggest")
def suggest_command(
    repo: RepoOption = None,
    config: ConfigOption = None,
    json_output: JsonFlag = False,
) -> None:
    """Show which account should be active for the repository."""
    context = _prepare_context(repo, config, json_logs=json_output)
    try:
        project = context.current_project()
        remotes = context.observer.remotes() if project is None else {}
    except GitCommandError as exc:
        raise _fail(f"not a git repository: {context.repo_path}") from exc
    try:
        if project is not None:
            decision = context.service.resolve(project_id=project.id)
        else:
            primary = remotes.get("origin") or next(iter(remotes.values()), None)
            decision = context.service.resolve(path=str(context.repo_path), remote_url=primary)
    except GitPersonaError as exc:
        raise _fail(f"{exc.kind.value}: {exc.message}", code=1) from exc

    if json_output:
        _emit_json(decision.model_dump(mode="json"))
        return
    if decision.suggested_account_id is None:
        typer.echo("No account could be suggested.")
    else:
        typer.echo(f"Suggested account: {decision.suggested_account_id} (confidence {decision.confidence:.2f})")
    for reason in decision.reasons:
        typer.echo(f"  - {reason}")
    if decision.ambiguous:
        typer.echo("Warning: the suggestion is ambiguous; confirm the account before applying it.", err=True)


@app.command("request")
def request_command(
    operation: Annotated[str, typer.Argument(help="Operation name, e.g. resolve or add-account.")],
    payload: Annotated[str, typer.Option(help="JSON object with the operation payload.")] = "{}",
    config: ConfigOption = None,
) -> None:
    """Send one request to the identity service and print the JSON response."""
    try:
        body = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise _fail(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise _fail("payload must be a JSON object")
    context = _prepare_context(None, config, json_logs=True)
    response = context.service.handle({"operation": operation, "payload": body})
    typer.echo(response.model_dump_json())
    if not response.success:
        raise typer.Exit(code=1)


@app.command("export")
def export_command(
    output: Annotated[Path | None, typer.Option(help="File to write; stdout when omitted.")] = None,
    kind: Annotated[list[RecordKind] | None, typer.Option(help="Record kinds to export.")] = None,
    config: ConfigOption = None,
) -> None:
    """Export configuration records as a JSON bundle."""
    context = _prepare_context(None, config)
    bundle = context.service.export_config(kind or None)
    text = bundle.model_dump_json(indent=2)
    if output is None:
        typer.echo(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    typer.echo(f"Exported configuration to {output}")


@app.command("import")
def import_command(
    source: Annotated[Path, typer.Argument(help="Bundle produced by the export command.")],
    overwrite: Annotated[bool, typer.Option(help="Replace records whose ids already exist.")] = False,
    config: ConfigOption = None,
    json_output: JsonFlag = False,
) -> None:
    """Import a configuration bundle, validating every record."""
    try:
        bundle = ConfigBundle.model_validate_json(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise _fail(f"cannot read {source}: {exc}") from exc
    except ValidationError as exc:
        raise _fail(f"{source} is not a valid bundle: {exc}") from exc
    context = _prepare_context(None, config, json_logs=json_output)
    report = context.service.import_config(bundle, overwrite=overwrite)
    if json_output:
        _emit_json(report.model_dump(mode="json"))
    else:
        imported = ", ".join(f"{count} {kind}" for kind, count in sorted(report.imported.items())) or "nothing"
        typer.echo(f"Imported {imported}")
        for issue in report.rejected:
            typer.echo(f"Rejected {issue.kind.value} {issue.record_id}: {issue.message}", err=True)
    if report.rejected:
        raise typer.Exit(code=1)


def main(argv: Sequence[str] | None = None) -> int:
    """Execute the gitpersona CLI and return the exit status."""
    command = typer.main.get_command(app)
    try:
        result = command.main(args=list(argv or []), prog_name="gitpersona", standalone_mode=False)
    except SystemExit as exc:  # pragma: no cover - Typer propagates exit codes via SystemExit
        return int(exc.code or 0)
    return result if isinstance(result, int) else 0


def run() -> None:
    """Console script entry point."""
    app(prog_name="gitpersona")


if __name__ == "__main__":  # pragma: no cover - CLI invocation
    raise SystemExit(main())
