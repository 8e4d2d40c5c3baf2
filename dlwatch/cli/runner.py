"""CLI runner for dlwatch with exit code mapping.

WatchRunner builds the browser session and observation session from a
WatchConfiguration, wires SIGINT to a graceful stop, runs the observation,
writes the optional JSON output and maps the outcome to an exit code.
"""

import asyncio
import logging
import signal
from enum import IntEnum
from typing import Optional

from ..capture.browser_factory import BrowserFactory
from ..capture.browser_session import BrowserSession
from ..datalayer.error_handling import CaptureErrorHandler, LaunchError
from ..datalayer.reporting import EventReporter
from ..datalayer.session import ObservationResult, ObservationSession
from .config import WatchConfiguration

logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    """CLI exit codes.

    A run that completes without observing any live event still exits with
    SUCCESS; the report states that nothing was captured.
    """
    SUCCESS = 0        # Run completed
    CONFIG_ERROR = 3   # Configuration could not be loaded or validated
    LAUNCH_ERROR = 4   # Browser could not be started
    RUNTIME_ERROR = 5  # Observation failed after launch


class WatchRunner:
    """Runs one observation from a loaded configuration."""

    def __init__(
        self,
        config: WatchConfiguration,
        browser_session: Optional[BrowserSession] = None
    ):
        """Initialize runner.

        Args:
            config: Effective configuration
            browser_session: Browser session to use instead of launching one
                from the configuration
        """
        self.config = config
        self.browser_session = browser_session or BrowserSession(
            BrowserFactory(config.to_browser_config()),
            call_timeout_seconds=config.capture.call_timeout_seconds,
            enable_performance_log=config.browser.performance_log,
        )
        error_handler = CaptureErrorHandler()
        self.session = ObservationSession(
            config.to_observation_config(),
            self.browser_session,
            reporter=EventReporter(indent=config.output.indent, error_handler=error_handler),
            error_handler=error_handler,
        )
        self.result: Optional[ObservationResult] = None

    async def run(self) -> ExitCode:
        """Run the observation.

        Returns:
            Exit code for the process
        """
        loop = asyncio.get_running_loop()
        signal_installed = self._install_signal_handler(loop)

        try:
            self.result = await self.session.run()
        except LaunchError as e:
            logger.error(f"Could not launch browser: {e}")
            return ExitCode.LAUNCH_ERROR
        except Exception as e:
            logger.error(f"Error during dataLayer capture: {e}")
            if self.config.output.verbose:
                logger.exception("Capture failure details")
            return ExitCode.RUNTIME_ERROR
        finally:
            if signal_installed:
                loop.remove_signal_handler(signal.SIGINT)

        if self.config.output.output_file:
            try:
                self.session.reporter.write_json(self.result.events, self.config.output.output_file)
            except OSError as e:
                logger.error(f"Could not write events to {self.config.output.output_file}: {e}")
                return ExitCode.RUNTIME_ERROR

        if not self.result.has_observed_events:
            logger.info("Run completed without live dataLayer events")
        return ExitCode.SUCCESS

    def _install_signal_handler(self, loop: asyncio.AbstractEventLoop) -> bool:
        try:
            loop.add_signal_handler(signal.SIGINT, self.session.request_stop)
        except (NotImplementedError, RuntimeError, ValueError) as e:
            logger.debug(f"SIGINT handler not installed: {e}")
            return False
        return True
