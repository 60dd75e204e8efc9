"""Command-line delegation to a remote A2A agent."""

import json
import sys

import click
import httpx

from .bridge import run_sync
from .client import A2AClient
from .config import Settings, configure_logging
from .dispatch import DelegationRequest, Dispatcher
from .errors import DelegationError


async def _stream(dispatcher: Dispatcher) -> None:
    async for chunk in dispatcher.stream():
        click.echo(chunk, nl=False)
    click.echo()


async def _fetch_card(agent_url: str, agent_name: str, token: str | None, timeout: float, region: str) -> dict:
    async with A2AClient(agent_url, agent_name, auth_token=token, timeout=timeout, region=region) as client:
        card = await client.get_agent_card()
    return card.to_dict()


@click.command()
@click.argument("problem", required=False)
@click.option("--agent-url", envvar="CALCULATOR_URL", help="Base URL or runtime ARN of the target agent")
@click.option("--agent-name", envvar="CALCULATOR_AGENT_NAME", default="calculator", help="Target agent name")
@click.option("--token", envvar="BEARER_TOKEN", help="Bearer token for the target agent")
@click.option("--timeout", type=float, default=None, help="Overall timeout in seconds")
@click.option("--stream", "stream_output", is_flag=True, help="Print text as it arrives")
@click.option("--card", "show_card", is_flag=True, help="Print the resolved agent card and exit")
def main(
    problem: str | None,
    agent_url: str | None,
    agent_name: str,
    token: str | None,
    timeout: float | None,
    stream_output: bool,
    show_card: bool,
):
    """Delegate PROBLEM to a remote A2A agent and print the answer."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    timeout = timeout if timeout is not None else settings.timeout_seconds

    if show_card:
        if not agent_url:
            raise click.UsageError("--card requires --agent-url")
        try:
            card = run_sync(_fetch_card(agent_url, agent_name, token, timeout, settings.aws_region))
        except (DelegationError, httpx.HTTPError) as e:
            click.echo(str(e), err=True)
            sys.exit(1)
        click.echo(json.dumps(card, indent=2))
        return

    if not problem:
        raise click.UsageError("PROBLEM is required unless --card is given")

    request = DelegationRequest(
        problem=problem,
        agent_name=agent_name,
        agent_url=agent_url,
        auth_token=token,
    )
    dispatcher = Dispatcher(
        request,
        timeout=timeout,
        retry_config=settings.retry_config,
        region=settings.aws_region,
    )

    if stream_output:
        run_sync(_stream(dispatcher))
        outcome = dispatcher.outcome
        if outcome is not None and not outcome.ok:
            click.echo(outcome.content, err=True)
    else:
        outcome = run_sync(dispatcher.run())
        click.echo(outcome.content, err=not outcome.ok)

    if outcome is None or not outcome.ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
