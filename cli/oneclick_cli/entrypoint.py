from __future__ import annotations

import sys

from questionary import Choice

from oneclick_core.errors import ProvisioningInterrupted

from . import console
from .interactive import select_item

MENU = (
    ("Deploy Gemini Balance", ["deploy", "gemini"]),
    ("Deploy Nextcloud", ["deploy", "nextcloud"]),
    ("Deploy Koishi + NapCat", ["deploy", "koishi"]),
    ("Deploy LiteyukiBot + NapCat", ["deploy", "liteyuki"]),
    ("Deploy PMail", ["deploy", "pmail"]),
    ("Deploy MaiBot + NapCat adapter", ["deploy", "maibot"]),
    ("Configure MaiBot", ["configure", "maibot"]),
    ("Check this host", ["doctor"]),
)


def pick_command() -> list[str]:
    choices = [Choice(title=title, value=str(i)) for i, (title, _) in enumerate(MENU)]
    choices.append(Choice(title="Quit", value="quit"))
    picked = select_item("What do you want to do?", choices)
    if picked == "quit":
        return []
    return list(MENU[int(picked)][1])


def main() -> None:
    from .main import app

    if len(sys.argv) == 1:
        try:
            tokens = pick_command()
        except ProvisioningInterrupted:
            console.warn("Cancelled.")
            raise SystemExit(130)
        if not tokens:
            raise SystemExit(0)
        sys.argv = [sys.argv[0], *tokens]
    app()


if __name__ == "__main__":
    main()
