# pylint: disable=broad-except
"""
Message bus shared by the bounded contexts.

Each context builds one ``MessageBus`` from its own handler tables. Commands
are dispatched to exactly one handler and their errors reach the caller;
events fan out to every registered handler, and an event handler's failure
is logged without undoing the command that raised the event.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, Dict, List, Type

from shared.domain.commands import Command, Event, PrivilegedCommand
from shared.domain.exceptions import Unauthorized

logger = logging.getLogger(__name__)


class MessageBus:
    """Routes commands and the events they raise to handlers, through one unit of work."""

    def __init__(
        self,
        command_handlers: Dict[Type[Command], Callable],
        event_handlers: Dict[Type[Event], List[Callable]],
    ):
        self.command_handlers = command_handlers
        self.event_handlers = event_handlers

    def handle(self, message, uow, authorized: bool = False) -> List[Any]:
        """
        Handle ``message`` and every event it raises.

        ``authorized`` is the host's verdict on the caller's admin capability;
        privileged commands are refused without it.

        Returns:
            The command handler results, in order
        """
        results = []
        queue = [message]

        while queue:
            message = queue.pop(0)

            if isinstance(message, Event):
                self._handle_event(message, queue, uow)
            elif isinstance(message, Command):
                results.append(self._handle_command(message, queue, uow, authorized))
            else:
                raise TypeError(f"{message} was not an Event or Command")

        return results

    def _handle_event(self, event: Event, queue: List, uow):
        for handler in self.event_handlers.get(type(event), []):
            try:
                logger.debug(f"handling event {event} with handler {handler.__name__}")
                handler(event, uow=uow)
                queue.extend(uow.collect_new_events())
            except Exception:
                logger.exception("Exception handling event %s", event)
                continue

    def _handle_command(self, command: Command, queue: List, uow, authorized: bool):
        logger.debug(f"handling command {command}")
        if isinstance(command, PrivilegedCommand) and not authorized:
            logger.warning(f"Refusing unauthorized {type(command).__name__}")
            raise Unauthorized(f"{type(command).__name__} requires the admin capability")

        handler = self.command_handlers.get(type(command))
        if handler is None:
            raise ValueError(f"No handler registered for command {type(command).__name__}")

        try:
            result = handler(command, uow=uow)
            queue.extend(uow.collect_new_events())
            return result
        except Exception:
            logger.exception("Exception handling command %s", command)
            raise
