import click


@click.group()
def main() -> None:
    """Joe - SQL optimization assistant working on Database Lab thin clones."""


@main.command()
@click.option("--host", default=None, help="Bind host (default: JOE_HOST, then app.host from the config).")
@click.option("--port", default=None, type=int, help="Bind port (default: JOE_PORT, then app.port from the config).")
@click.option("--reload", is_flag=True, default=False, help="Enable auto-reload for development.")
def run(host: str | None, port: int | None, reload: bool) -> None:
    """Start the assistant server."""
    import uvicorn

    from joebot.assistant.config import load_config
    from joebot.assistant.settings import get_settings

    settings = get_settings()
    app_cfg = load_config(settings.config_path).app

    uvicorn.run(
        "joebot.assistant.app:app",
        host=host or settings.host or app_cfg.host,
        port=port or settings.port or app_cfg.port,
        reload=reload,
        log_level="warning",  # uvicorn's own logging is intercepted by loguru
    )


@main.command("check-config")
@click.option("--config", "config_path", default=None, help="Config file (default: JOE_CONFIG_PATH).")
def check_config(config_path: str | None) -> None:
    """Validate the YAML config and print the channel mapping."""
    from rich.console import Console
    from rich.table import Table

    from joebot.assistant.config import load_config
    from joebot.assistant.errors import FatalConfigError
    from joebot.assistant.features import get_pack
    from joebot.assistant.settings import get_settings

    settings = get_settings()
    pack = get_pack(settings.edition)
    path = config_path or settings.config_path

    try:
        cfg = pack.options.apply(load_config(path))
    except FatalConfigError as e:
        raise click.ClickException(str(e)) from None

    servers = cfg.channel_mapping.dblab_servers
    limit = cfg.enterprise.dblab.instance_limit
    if len(servers) > limit:
        msg = f"limit on Database Lab instances exceeded: {len(servers)} > {limit}"
        raise click.ClickException(msg)

    table = Table(title=f"{path} ({pack.entertainer.get_edition()})")
    table.add_column("Transport")
    table.add_column("Workspace")
    table.add_column("Channel")
    table.add_column("Database Lab")
    table.add_column("Database")

    for communication_type, workspaces in cfg.channel_mapping.communication_types.items():
        for workspace in workspaces:
            for channel in workspace.channels:
                if channel.dblab_id not in servers:
                    msg = f"channel {channel.channel_id}: unknown Database Lab server {channel.dblab_id!r}"
                    raise click.ClickException(msg)
                table.add_row(
                    str(communication_type),
                    workspace.name,
                    channel.channel_id,
                    channel.dblab_id,
                    channel.dblab_params.dbname or "-",
                )

    Console().print(table)


@main.command()
@click.argument("plan_file", type=click.File("r"))
@click.option("--no-costs", is_flag=True, default=False, help="Hide planner cost estimates.")
def explain(plan_file, no_costs: bool) -> None:
    """Render an EXPLAIN (FORMAT JSON) document the way the assistant shows it."""
    from joebot.assistant.pgexplain import ExplainError, parse_explain

    try:
        plan = parse_explain(plan_file.read())
    except ExplainError as e:
        raise click.ClickException(str(e)) from None

    click.echo(plan.render_plan_text(with_costs=not no_costs))
    click.echo(plan.render_stats())


if __name__ == "__main__":
    main()
