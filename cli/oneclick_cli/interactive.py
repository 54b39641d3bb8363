from __future__ import annotations

from enum import Enum
from typing import Callable, TypeVar

import questionary
import typer
from questionary import Choice, Style

from oneclick_core.errors import ConfigValidationError, ProvisioningInterrupted

from . import console

# Use questionary for inline, non-fullscreen selections.

_SELECT_STYLE = Style(
    [
        ("pointer", "ansiyellow bold"),
        ("selected", "ansicyan bold"),
        ("highlighted", "ansicyan bold"),
        ("instruction", "ansiblack"),
    ]
)

E = TypeVar("E", bound=Enum)


def confirm_choice(message: object, *, default: bool = True) -> bool:
    prompt = str(getattr(message, "plain", message))
    choices = [
        Choice(title="Yes", value=True),
        Choice(title="No", value=False),
    ]
    if not default:
        choices.reverse()
    try:
        result = questionary.select(
            prompt,
            choices=choices,
            default=None,
            use_shortcuts=False,
            pointer="▶",
            style=_SELECT_STYLE,
        ).ask()
    except KeyboardInterrupt:
        _abort_interactive()
    if result is None:
        _abort_interactive()
    return bool(result)


def select_item(message: str, choices: list[Choice]) -> str:
    try:
        result = questionary.select(
            message,
            choices=choices,
            default=None,
            use_shortcuts=False,
            pointer="▶",
            style=_SELECT_STYLE,
        ).ask()
    except KeyboardInterrupt:
        _abort_interactive()
    if result is None:
        _abort_interactive()
    return str(result)


def select_enum(message: str, options: dict[E, str]) -> E:
    """Pick one enum member; ``options`` maps members to their menu titles."""
    lookup = {member.value: member for member in options}
    choices = [Choice(title=title, value=member.value) for member, title in options.items()]
    return lookup[select_item(message, choices)]


def prompt_valid(
    message: str,
    validator: Callable[[str], str],
    *,
    secret: bool = False,
    default: str | None = None,
) -> str:
    """Re-prompt until ``validator`` accepts the answer; validation errors never escape."""
    while True:
        try:
            if default is None:
                raw = typer.prompt(message, hide_input=secret)
            else:
                raw = typer.prompt(message, hide_input=secret, default=default, show_default=bool(default))
        except (KeyboardInterrupt, EOFError, typer.Abort):
            _abort_interactive()
        try:
            return validator(str(raw))
        except ConfigValidationError as exc:
            console.err(exc.message)


def prompt_optional(message: str) -> str:
    try:
        raw = typer.prompt(message, default="", show_default=False)
    except (KeyboardInterrupt, EOFError, typer.Abort):
        _abort_interactive()
    return str(raw).strip()


def prompt_list(message: str, *, minimum: int = 1, secret: bool = False) -> list[str]:
    """Collect values one per prompt until an empty answer, requiring ``minimum`` entries."""
    items: list[str] = []
    while True:
        try:
            raw = typer.prompt(
                f"{message} #{len(items) + 1} (Enter to finish)",
                default="",
                show_default=False,
                hide_input=secret,
            )
        except (KeyboardInterrupt, EOFError, typer.Abort):
            _abort_interactive()
        value = str(raw).strip()
        if value:
            items.append(value)
            continue
        if len(items) >= minimum:
            return items
        console.err(f"At least {minimum} value(s) required.")


def pause(message: str = "Press Enter once the steps above are done") -> None:
    try:
        typer.prompt(message, default="", show_default=False)
    except (KeyboardInterrupt, EOFError, typer.Abort):
        _abort_interactive()


def _abort_interactive() -> None:
    console.err("Aborted by user.")
    raise ProvisioningInterrupted()
