"""Interactive REPL - connects input, the agent loop and display."""

import asyncio
import sys

from rich.console import Console

from larder.agent.messages import AgentMessage, Role
from larder.app import LarderApp
from larder.ui import renderer
from larder.ui.prompts import create_prompt_session, get_prompt_text

console = Console()


class REPL:
    """Interactive REPL that orchestrates input -> agent loop -> display."""

    def __init__(self, app: LarderApp):
        self.app = app
        self.loop = app.loop
        self.store = app.store
        self.prompt_session = None
        self._running = True

    def _new_messages(self) -> list[AgentMessage]:
        """Messages the last turn wrote after the user's message."""
        history = self.store.snapshot()
        return history[self.store.last_user_index() + 1:]

    async def _run_turn(self, send) -> AgentMessage | None:
        spinner = renderer.PhaseSpinner()
        unsubscribe = self.store.subscribe(spinner)
        try:
            reply = await send()
        except (KeyboardInterrupt, asyncio.CancelledError) as e:
            # asyncio.run delivers Ctrl+C as a cancellation of the main task.
            if isinstance(e, asyncio.CancelledError):
                asyncio.current_task().uncancel()
            self.loop.cancel()
            renderer.show_info("\n[cancelled]")
            return None
        finally:
            unsubscribe()
            spinner.stop()

        for message in self._new_messages():
            if message.role == Role.TOOL or message.is_visible:
                renderer.render_message(message)
        console.print()
        return reply

    async def _handle_slash_command(self, text: str) -> bool:
        """Handle slash commands. Returns True if handled."""
        cmd = text.strip().split(maxsplit=1)[0].lower()

        if cmd == "/help":
            renderer.show_help()
            return True

        elif cmd == "/retry":
            if not self.loop.can_retry():
                renderer.show_info("Nothing to retry.")
                return True
            await self._run_turn(self.loop.retry_last)
            return True

        elif cmd in ("/reset", "/clear"):
            self.loop.reset()
            renderer.show_info("Conversation cleared.")
            return True

        elif cmd in ("/exit", "/quit"):
            self._running = False
            return True

        return False

    async def run(self, initial_prompt: str | None = None):
        """Main REPL loop."""
        renderer.show_welcome(self._backend_label(), self.app.config.locale)
        self.prompt_session = create_prompt_session()

        if initial_prompt:
            renderer.show_info(f"> {initial_prompt[:200]}")
            await self._run_turn(lambda: self.loop.send_message(initial_prompt))

        while self._running:
            try:
                user_input = (
                    await self.prompt_session.prompt_async(get_prompt_text(self.app.config.locale))
                ).strip()

                if not user_input:
                    continue

                if user_input.startswith("/"):
                    if await self._handle_slash_command(user_input):
                        continue

                await self._run_turn(lambda: self.loop.send_message(user_input))

            except KeyboardInterrupt:
                console.print()
                continue
            except EOFError:
                break

        await self.app.aclose()
        console.print("[dim]Goodbye![/dim]")

    async def run_print(self, prompt: str) -> int:
        """Non-interactive print mode: send prompt, output the reply, exit."""
        try:
            reply = await self.loop.send_message(prompt)
            for message in self._new_messages():
                if message.role == Role.TOOL:
                    # Tool results go to stderr so stdout holds only the answer.
                    sys.stderr.write(f"[tool:{message.tool_name}] {message.content[:500]}\n")
        finally:
            await self.app.aclose()

        if reply is None:
            return 1
        sys.stdout.write(reply.content + "\n")
        sys.stdout.flush()
        return 1 if self.store.retry_available else 0

    def _backend_label(self) -> str:
        config = self.app.config
        if config.provider == "ollama":
            return f"ollama:{config.model}"
        return config.api_url
