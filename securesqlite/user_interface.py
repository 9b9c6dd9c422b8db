"""
User Interface - blocking notices and confirmations shown during provisioning
"""

import asyncio
from abc import ABC, abstractmethod

from .logger import Logger, Colors


class UserInterface(ABC):
    """Surface used to tell the user about fatal conditions and ask for consent."""

    @abstractmethod
    async def alert(self, message: str) -> None:
        """Show a notice the user must acknowledge."""
        pass

    @abstractmethod
    async def confirm(self, message: str) -> bool:
        """
        Ask a yes/no question.

        Returns:
            True if the user agreed
        """
        pass


class ConsoleInterface(UserInterface):
    """Terminal implementation; answers are read from stdin in a worker thread."""

    async def alert(self, message: str) -> None:
        Logger.tagged("NOTICE", Colors.MAGENTA, message)

    async def confirm(self, message: str) -> bool:
        Logger.tagged("CONFIRM", Colors.MAGENTA, message)
        try:
            answer = await asyncio.to_thread(input, "   Continue? [y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes", "ok")
