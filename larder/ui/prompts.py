"""prompt_toolkit input configuration."""

from prompt_toolkit import PromptSession
from prompt_toolkit.auto_suggest import AutoSuggestFromHistory
from prompt_toolkit.history import FileHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import Validator

from larder.config import DATA_DIR, HISTORY_FILE, USER_PROMPT_MAX_LENGTH


def create_prompt_session() -> PromptSession:
    """Create a configured prompt_toolkit session."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)

    bindings = KeyBindings()

    @bindings.add("enter")
    def _(event):
        """Enter submits the input."""
        event.current_buffer.validate_and_handle()

    too_long = Validator.from_callable(
        lambda text: len(text) <= USER_PROMPT_MAX_LENGTH,
        error_message=f"Messages are limited to {USER_PROMPT_MAX_LENGTH} characters",
        move_cursor_to_end=True,
    )

    return PromptSession(
        history=FileHistory(str(HISTORY_FILE)),
        auto_suggest=AutoSuggestFromHistory(),
        multiline=False,
        key_bindings=bindings,
        validator=too_long,
        enable_history_search=True,
    )


def get_prompt_text(locale: str) -> str:
    """Build the prompt string showing the active locale."""
    return f"larder [{locale}] > "
