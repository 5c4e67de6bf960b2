from collections.abc import Callable
from typing import Protocol


class AnalyzerClient(Protocol):
    """
    A connection to the analyzer.

    Notifications are delivered one at a time, in arrival order,
    on the same thread that the client's owner runs on.
    """
    def send_request(self, method: str, params: object) -> object:
        """
        Sends a request, returning the analyzer's acknowledgement.

        Raises:
        * Exception -- if the request could not be delivered or was rejected.
        """
        ...

    def on_notification(self, method: str, handler: Callable[[object], None]) -> None:
        """Registers the handler for every notification with the specified method."""
        ...
