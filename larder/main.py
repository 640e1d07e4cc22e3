"""Larder - pantry assistant. Entry point."""

import asyncio
import sys

import click

from larder.config import AGENT_API_URL, DEFAULT_LOCALE, DEFAULT_MODEL, AgentConfig
from larder.i18n import Translator
from larder.logging_config import setup_logging


@click.command()
@click.option("--api-url", default=AGENT_API_URL, help="Agent completion endpoint (env: LARDER_AGENT_API_URL)")
@click.option("--ollama", "use_ollama", is_flag=True, help="Use a local Ollama model instead of the endpoint")
@click.option("-m", "--model", default=DEFAULT_MODEL, help="Ollama model to use with --ollama")
@click.option("--locale", default=DEFAULT_LOCALE, help="Language for messages (en, es)")
@click.option("-p", "--print", "print_mode", is_flag=True, help="Non-interactive print mode (output the reply, exit)")
@click.option("-v", "--verbose", is_flag=True, help="Echo warnings and errors to the console")
@click.argument("prompt", required=False, default=None)
def main(api_url: str, use_ollama: bool, model: str, locale: str, print_mode: bool,
         verbose: bool, prompt: str | None):
    """Larder - manage your pantry by chatting with an assistant."""
    setup_logging(verbose=verbose)

    config = AgentConfig(
        provider="ollama" if use_ollama else "http",
        api_url=api_url,
        model=model,
        locale=locale,
    )

    if not config.has_endpoint:
        click.echo(f"Error: {Translator(locale)('agent.messages.noEndpoint')}", err=True)
        click.echo("Set LARDER_AGENT_API_URL, pass --api-url, or use --ollama.", err=True)
        sys.exit(1)

    if use_ollama:
        import ollama
        try:
            ollama.Client(host=config.ollama_host).list()
        except Exception as e:
            click.echo(f"Error: Cannot connect to Ollama. Is it running?\n  {e}", err=True)
            click.echo("Start Ollama with: ollama serve", err=True)
            sys.exit(1)

    if print_mode and not prompt:
        click.echo("Error: --print mode requires a prompt", err=True)
        sys.exit(1)

    from larder.app import build_app
    from larder.repl import REPL

    repl = REPL(build_app(config))

    if print_mode:
        sys.exit(asyncio.run(repl.run_print(prompt)))
    asyncio.run(repl.run(initial_prompt=prompt))


cli = main


if __name__ == "__main__":
    main()
