"""
=============================================================================
LIFECYCLE CONTROLLER
=============================================================================

Turns process signals into a server shutdown.

SIGINT (2):   Sent when user presses Ctrl+C
SIGTERM (15): Sent by docker stop, systemd stop, kill command

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       STATE MACHINE                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   RUNNING ──signal──► STOPPING ──handle.stop(force)──► STOPPED      │
    │                                                                      │
    │   A second signal while STOPPING or STOPPED is ignored.             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The controller is an ordinary object wrapping a ServerHandle: install()
registers handle_signal() with the signal module, and tests call
handle_signal() directly instead of sending real signals.

=============================================================================
"""

import logging
import signal
import threading
from enum import Enum
from typing import Optional, Sequence


logger = logging.getLogger(__name__)


DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleState(Enum):
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class LifecycleController:
    """
    Stops a server when the process is told to.

    Usage:
        handle = start(config)
        controller = LifecycleController(handle)
        controller.install()
        controller.wait()        # returns after SIGINT / SIGTERM
        controller.restore()
    """

    def __init__(
        self,
        handle,
        signals: Sequence[int] = DEFAULT_SIGNALS,
        force: bool = True,
    ):
        """
        Args:
            handle: Anything with stop(force), normally a ServerHandle.
            signals: Signals that trigger shutdown.
            force: Passed to handle.stop(). Signals abort open connections
                   by default.
        """
        self._handle = handle
        self._signals = tuple(signals)
        self._force = force

        self._state = LifecycleState.RUNNING
        self._stopped = threading.Event()
        self._original_handlers: dict = {}

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def installed(self) -> bool:
        return bool(self._original_handlers)

    def install(self) -> None:
        """
        Register handle_signal() for each signal.

        Must be called from the main thread (a restriction of the signal
        module). The handlers it replaces are kept for restore().
        """
        for signum in self._signals:
            self._original_handlers[signum] = signal.signal(signum, self.handle_signal)

    def restore(self) -> None:
        """Put back the handlers install() replaced."""
        for signum, handler in self._original_handlers.items():
            signal.signal(signum, handler)
        self._original_handlers.clear()

    def handle_signal(self, signum: int, frame=None) -> None:
        """
        Signal callback: stop the server once.

        Args:
            signum: The signal number (e.g., 15 for SIGTERM)
            frame: The interrupted stack frame (unused)
        """
        if self._state is not LifecycleState.RUNNING:
            logger.debug(f"Ignoring {signal_name(signum)}, already {self._state.value}")
            return

        self._state = LifecycleState.STOPPING
        logger.info(f"received {signal_name(signum)} signal shutting down http/1 server")

        try:
            self._handle.stop(self._force)
        finally:
            self._state = LifecycleState.STOPPED
            self._stopped.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the controller reaches STOPPED.

        Waits in short slices so the main thread keeps running Python code
        and signal handlers get their turn.

        Returns:
            True once stopped, False if `timeout` ran out first.
        """
        if timeout is not None:
            return self._stopped.wait(timeout)

        while not self._stopped.wait(0.5):
            pass
        return True


def signal_name(signum: int) -> str:
    """signal.SIGTERM → "SIGTERM"; unknown numbers are returned as digits."""
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)
