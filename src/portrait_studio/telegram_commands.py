"""Bot command menu published to Telegram at startup."""

from portrait_studio.domain.updates import CommandName

COMMAND_DESCRIPTIONS: dict[CommandName, str] = {
    CommandName.START: "How to create a family portrait",
    CommandName.DONE: "Create the portrait from your photos",
    CommandName.CANCEL: "Discard the current photos",
    CommandName.HELP: "Quick guide and tips",
}

CHAT_MENU_BUTTON: dict[str, object] = {"type": "commands"}


def telegram_commands() -> list[dict[str, str]]:
    """Return the setMyCommands payload, one entry per handled command."""
    return [
        {"command": command.value, "description": COMMAND_DESCRIPTIONS[command]}
        for command in CommandName
    ]
