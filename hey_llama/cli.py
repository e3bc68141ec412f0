"""
Command-line interface for Hey Llama.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

app = typer.Typer(
    name="hey-llama",
    help="Continuously-listening voice assistant with skills",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Show or create the configuration file")
app.add_typer(config_app, name="config")

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _load_config(config_file: Optional[Path]):
    """Explicit --config > default config path > built-in defaults."""
    from hey_llama.config import AssistantConfig, get_default_config_path, set_config

    if config_file is not None:
        if not config_file.exists():
            console.print(f"[red]Error: Config file not found: {config_file}[/red]")
            raise typer.Exit(1)
        config = AssistantConfig.from_yaml(config_file)
        console.print(f"[dim]Loaded config: {config_file}[/dim]")
    elif get_default_config_path().exists():
        config = AssistantConfig.from_yaml(get_default_config_path())
        console.print(f"[dim]Loaded config: {get_default_config_path()}[/dim]")
    else:
        config = AssistantConfig()

    set_config(config)
    return config


def _apply_overrides(
    config,
    llm_backend: Optional[str],
    llm_model: Optional[str],
    base_url: Optional[str],
    enable_skills: Optional[list[str]],
):
    llm_changes = {}
    if llm_backend is not None:
        llm_changes["backend"] = llm_backend
    if llm_model is not None:
        llm_changes["model"] = llm_model
    if base_url is not None:
        llm_changes["base_url"] = base_url
    changes = {}
    if llm_changes:
        changes["llm"] = config.llm.model_copy(update=llm_changes)
    if enable_skills:
        ids = list(dict.fromkeys([*config.skills.enabled_skill_ids, *enable_skills]))
        changes["skills"] = config.skills.model_copy(update={"enabled_skill_ids": ids})
    return config.model_copy(update=changes) if changes else config


def _build_coordinator(config, memory_path: Optional[Path] = None):
    from hey_llama.assistant.builtin_skills import register_builtin_skills
    from hey_llama.assistant.core import PipelineCoordinator
    from hey_llama.assistant.skills import SkillRegistry

    registry = SkillRegistry()
    context = {"memory_path": memory_path} if memory_path is not None else {}
    register_builtin_skills(registry, context)
    return PipelineCoordinator(config=config, skills=registry)


@app.command()
def listen(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    llm_backend: Optional[str] = typer.Option(None, "--llm", "-l", help="LLM backend (openai, ollama, simple)"),
    llm_model: Optional[str] = typer.Option(None, "--llm-model", "-m", help="LLM model name"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="OpenAI-compatible server URL"),
    enable_skill: Optional[list[str]] = typer.Option(None, "--enable-skill", "-s", help="Enable a skill by id (repeatable)"),
    audio_device: Optional[int] = typer.Option(None, "--audio-device", help="Audio input device index (see 'python -m sounddevice')"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Listen on the microphone and answer commands.

    Example:
        hey-llama listen --llm-model llama3.2:3b --enable-skill clock.time
    """
    from hey_llama.assistant.audio_io import AudioInput, CaptureConfig

    _setup_logging(verbose)
    config = _apply_overrides(_load_config(config_file), llm_backend, llm_model, base_url, enable_skill)

    console.print("[bold]Hey Llama[/bold]\n")
    coordinator = _build_coordinator(config)

    def _on_status(status):
        if status.last_response and status.last_response != _on_status.last:
            _on_status.last = status.last_response
            console.print(f"[green]Llama:[/green] {status.last_response}")

    _on_status.last = None
    coordinator.add_status_listener(_on_status)

    if not coordinator.start():
        console.print(f"[red]{coordinator.status.status_text}[/red]")
        raise typer.Exit(1)

    device = audio_device if audio_device is not None else config.audio.input_device
    audio_input = AudioInput(
        config=CaptureConfig(
            sample_rate=config.audio.sample_rate,
            frame_duration_ms=config.audio.frame_duration_ms,
        ),
        device=device,
    )
    try:
        coordinator.run(audio_input)
    finally:
        coordinator.shutdown()


@app.command()
def ask(
    text: Optional[str] = typer.Argument(None, help="Command text (omit for an interactive prompt)"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
    llm_backend: Optional[str] = typer.Option(None, "--llm", "-l", help="LLM backend (openai, ollama, simple)"),
    llm_model: Optional[str] = typer.Option(None, "--llm-model", "-m", help="LLM model name"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="OpenAI-compatible server URL"),
    enable_skill: Optional[list[str]] = typer.Option(None, "--enable-skill", "-s", help="Enable a skill by id (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """
    Send typed commands through the same pipeline, without audio.

    Example:
        hey-llama ask "what time is it" --enable-skill clock.time
    """
    _setup_logging(verbose)
    config = _apply_overrides(_load_config(config_file), llm_backend, llm_model, base_url, enable_skill)
    coordinator = _build_coordinator(config)

    if text is not None:
        response = coordinator.ask(text)
        if response:
            console.print(response)
        return

    console.print("[dim]Type a command, or 'exit' to quit.[/dim]")
    while True:
        try:
            line = console.input("[bold]You:[/bold] ")
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if line.strip().lower() in ("exit", "quit"):
            break
        response = coordinator.ask(line)
        if response:
            console.print(f"[green]Llama:[/green] {response}")


@app.command()
def skills(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """List the builtin skills and whether they are enabled."""
    config = _load_config(config_file)
    coordinator = _build_coordinator(config)

    table = Table(title="Skills")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Description", style="dim")
    for skill in coordinator.skills.all_skills:
        enabled = "[green]yes[/green]" if coordinator.skills.is_enabled(skill.id) else "no"
        table.add_row(skill.id, skill.name, enabled, skill.description)
    console.print(table)


@app.command()
def info():
    """Show available recognizers and the active configuration file."""
    from hey_llama import __version__
    from hey_llama.config import get_default_config_path
    from hey_llama.stt import list_recognizers

    console.print(f"[bold]Hey Llama[/bold] v{__version__}")
    path = get_default_config_path()
    state = "[green]found[/green]" if path.exists() else "[dim]not found[/dim]"
    console.print(f"Config: {path} ({state})")

    console.print("\n[bold]Recognizers[/bold]")
    for r in list_recognizers():
        console.print(f"  - {r['name']}")
    console.print()


@config_app.command("show")
def config_show(
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML config file"),
):
    """Print the effective configuration as YAML."""
    import yaml

    config = _load_config(config_file)
    console.print(yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False), markup=False)


@config_app.command("init")
def config_init(
    path: Optional[Path] = typer.Argument(None, help="Where to write (default: ~/.config/hey-llama/config.yaml)"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write a config file with default values."""
    from hey_llama.config import AssistantConfig, get_default_config_path

    target = path or get_default_config_path()
    if target.exists() and not force:
        console.print(f"[red]Error: {target} already exists (use --force to overwrite)[/red]")
        raise typer.Exit(1)

    AssistantConfig().to_yaml(target)
    console.print(f"[green]Saved: {target}[/green]")


def main():
    """Entry point."""
    app()


if __name__ == "__main__":
    main()
