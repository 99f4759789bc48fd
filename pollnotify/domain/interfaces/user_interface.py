"""Interface for presenting results to the operator.

Allows the CLI to be tested without a real terminal.
"""

import abc
from typing import Any, List

from ..models.farcaster import APIMessage, Userdata
from ..models.notification import DispatchResult


class UserInterface(abc.ABC):
    """Abstract Base Class for operator-facing output."""

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message."""
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message."""
        pass

    @abc.abstractmethod
    def display_userdata(self, userdata: Userdata) -> None:
        """Displays a resolved Farcaster profile."""
        pass

    @abc.abstractmethod
    def display_mentions(self, mentions: List[APIMessage], last_timestamp: int) -> None:
        """Displays a list of mentions and the cursor timestamp to resume from."""
        pass

    @abc.abstractmethod
    def display_dispatch_result(self, result: DispatchResult) -> None:
        """Displays the summary of one dispatch cycle."""
        pass
