"""Single-slot yes/no gate between flows and whatever presents the question.

A flow awaits ``request_confirmation``; the UI side calls ``resolve`` (or
``cancel``, which answers ``False``). Only one request may be outstanding.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

from .exceptions import ConfirmationBusy
from .models import PendingConfirmation

logger = logging.getLogger(__name__)

Presenter = Callable[[PendingConfirmation], Union[bool, Awaitable[bool]]]


class ConfirmationBridge:
    """Mailbox holding at most one pending confirmation.

    With a *presenter*, each request is shown immediately and resolved with
    the presenter's answer. Without one, some other party must call
    ``resolve``/``cancel`` while the requester is suspended.
    """

    def __init__(self, presenter: Presenter | None = None) -> None:
        self.presenter = presenter
        self._future: asyncio.Future[bool] | None = None
        self._prompt_text = ""

    @property
    def pending(self) -> PendingConfirmation:
        if self._future is None:
            return PendingConfirmation()
        return PendingConfirmation(active=True, prompt_text=self._prompt_text)

    async def request_confirmation(self, prompt_text: str) -> bool:
        """Suspend until the user answers *prompt_text*.

        Raises:
            ConfirmationBusy: another confirmation is still pending.
        """
        if self._future is not None:
            raise ConfirmationBusy(f"A confirmation is already pending: {self._prompt_text!r}")

        future: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._future = future
        self._prompt_text = prompt_text
        logger.debug("Confirmation requested: %s", prompt_text)

        try:
            if self.presenter is not None:
                answer = self.presenter(self.pending)
                if inspect.isawaitable(answer):
                    answer = await answer
                self.resolve(bool(answer))
            return await future
        finally:
            if self._future is future:
                self._clear()

    def _clear(self) -> None:
        self._future = None
        self._prompt_text = ""

    def resolve(self, value: bool) -> bool:
        """Answer the pending request. Returns False if nothing was pending."""
        future = self._future
        if future is None:
            return False
        self._clear()
        if not future.done():
            future.set_result(bool(value))
        logger.debug("Confirmation resolved: %s", value)
        return True

    def cancel(self) -> bool:
        """Dismiss the pending request; the requester receives ``False``."""
        return self.resolve(False)
