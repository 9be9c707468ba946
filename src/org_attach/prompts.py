"""Terminal prompts for interactive decisions."""

from collections.abc import Iterator
from contextlib import contextmanager

import typer

from org_attach.exceptions import UserCancelled


@contextmanager
def _cancellable() -> Iterator[None]:
    try:
        yield
    except typer.Abort as e:
        raise UserCancelled from e


class TyperPrompter:
    """Ask the user on the terminal; Ctrl-C or end of input cancels."""

    def confirm(self, message: str) -> bool:
        with _cancellable():
            return typer.confirm(message)

    def input(self, message: str, default: str = "") -> str:
        with _cancellable():
            value: str = typer.prompt(message, default=default or None, show_default=bool(default))
        return value

    def select(self, title: str, choices: list[tuple[str, str]]) -> str:
        """Show numbered choices and return the value of the picked one."""
        if not choices:
            raise UserCancelled
        typer.echo(title)
        for i, (_value, label) in enumerate(choices, start=1):
            typer.echo(f"  {i}) {label}")
        while True:
            with _cancellable():
                picked: int = typer.prompt("Choice", type=int)
            if 1 <= picked <= len(choices):
                return choices[picked - 1][0]
            typer.echo(f"Enter a number between 1 and {len(choices)}")


class NoPrompter:
    """Answer every question without asking: confirmations are declined."""

    def confirm(self, message: str) -> bool:
        return False

    def input(self, message: str, default: str = "") -> str:
        if not default:
            raise UserCancelled(f"Cannot ask for input: {message}")
        return default

    def select(self, title: str, choices: list[tuple[str, str]]) -> str:
        raise UserCancelled(f"Cannot ask to choose: {title}")
