#!/usr/bin/env python3
"""
LanWatch - Local Network Device Monitor

Main entry point for the application.

Architecture:
    1. **SweepCoordinator** (on demand)
       - One concurrent ping probe per address of the local /24
       - Live hosts get link address, reverse name and a device class
       - Results merged into the DeviceStore, snapshot broadcast

    2. **LivenessReconciler** (every 30 s by default)
       - Re-pings every known device
       - Flips online/offline and broadcasts each transition

    3. **ChangeNotifier**
       - WebSocket fan-out of initial / scan-complete / status-change events
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Optional

import uvicorn

from config import (
    APP_NAME,
    APP_VERSION,
    DEBUG_MODE,
    INTERFACE,
    LOG_BACKUP_COUNT,
    LOG_DATE_FORMAT,
    LOG_FILE,
    LOG_FORMAT,
    LOG_MAX_BYTES,
    RECHECK_INTERVAL,
    WEB_HOST,
    WEB_PORT,
)

from modules import (
    ChangeNotifier,
    DeviceStore,
    LanWatchError,
    LivenessReconciler,
    NoNetworkError,
    SweepCoordinator,
)

from dashboard import create_app

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """
    Setup application logging.

    Args:
        verbose: Enable debug logging
    """
    level = logging.DEBUG if verbose else logging.INFO

    formatter = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # File handler with rotation
    file_handler = RotatingFileHandler(
        LOG_FILE,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Suppress noisy libraries
    logging.getLogger('scapy.runtime').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

    logging.info("Logging initialized")


class LanWatch:
    """Main application class for LanWatch."""

    def __init__(
        self,
        host: str = WEB_HOST,
        port: int = WEB_PORT,
        interface: Optional[str] = INTERFACE or None,
        recheck_interval: int = RECHECK_INTERVAL,
        scan_on_start: bool = False,
        verbose: bool = DEBUG_MODE,
    ):
        """
        Initialize LanWatch application.

        Args:
            host: Web server bind address
            port: Web server port
            interface: Network interface to sweep (None for auto-detect)
            recheck_interval: Seconds between liveness re-checks
            scan_on_start: Run one sweep as soon as the server starts
            verbose: Enable verbose logging
        """
        self.host = host
        self.port = port
        self.scan_on_start = scan_on_start
        self.reconciler_task: Optional[asyncio.Task] = None
        self.initial_scan_task: Optional[asyncio.Task] = None

        setup_logging(verbose)

        logger.info("=" * 60)
        logger.info("%s - Local Network Device Monitor  v%s", APP_NAME, APP_VERSION)
        logger.info("=" * 60)

        self.store = DeviceStore()
        self.notifier = ChangeNotifier(self.store)
        self.coordinator = SweepCoordinator(
            self.store, self.notifier, interface=interface,
        )
        self.reconciler = LivenessReconciler(
            self.store, self.notifier, interval=recheck_interval,
        )
        logger.info("Components initialized")

        # --- Startup validation: network ---
        try:
            network = self.coordinator.get_network_info()
            logger.info("Network information: %s", network.to_dict())
            if not network.sweep_supported:
                logger.warning(
                    "Netmask %s is not /24 - scans will be refused "
                    "(set LANWATCH_FORCE_SLASH24=true to sweep the host's /24)",
                    network.netmask,
                )
        except NoNetworkError as e:
            logger.error("%s - scans will fail until a network is available", e)

        self.app = self._build_app()
        logger.info("Application initialized successfully")

    # ------------------------------------------------------------------
    # FastAPI app construction with lifespan
    # ------------------------------------------------------------------

    def _build_app(self):
        """Create the FastAPI app, wiring in the lifespan context manager."""

        @asynccontextmanager
        async def lifespan(app):
            """Manage startup and shutdown of background tasks."""
            logger.info("Lifespan startup: launching background tasks")

            self.reconciler_task = asyncio.create_task(self.reconciler.run())
            if self.scan_on_start:
                self.initial_scan_task = asyncio.create_task(self._initial_scan())

            yield

            logger.info("Lifespan shutdown: stopping background tasks")
            self.reconciler.stop()
            self.notifier.close()

            for task, name in [
                (self.reconciler_task, "liveness_reconciler"),
                (self.initial_scan_task, "initial_scan"),
            ]:
                if task is not None and not task.done():
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        logger.info(f"{name} cancelled cleanly")

            logger.info("All background tasks stopped")

        return create_app(
            store=self.store,
            coordinator=self.coordinator,
            notifier=self.notifier,
            reconciler=self.reconciler,
            lifespan=lifespan,
        )

    async def _initial_scan(self) -> None:
        try:
            await self.coordinator.sweep()
        except LanWatchError as e:
            logger.error(f"Initial scan failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error in initial scan: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Run the application."""
        logger.info(f"Starting web server on {self.host}:{self.port}")
        logger.info(f"API:       http://{self.host}:{self.port}/api")
        logger.info(f"WebSocket: ws://{self.host}:{self.port}/ws")

        try:
            uvicorn.run(
                self.app,
                host=self.host,
                port=self.port,
                log_level="info",
            )
        except Exception as e:
            logger.error(f"Server error: {e}", exc_info=True)
        finally:
            logger.info("LanWatch shut down")


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="LanWatch - Local Network Device Monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py
  python main.py --interface eth0 --port 8080
  python main.py --recheck-interval 60 --scan-on-start --verbose
        """
    )

    parser.add_argument(
        '--host',
        type=str,
        default=WEB_HOST,
        help=f'Bind address (default: {WEB_HOST})'
    )

    parser.add_argument(
        '-p', '--port',
        type=int,
        default=WEB_PORT,
        help=f'Web server port (default: {WEB_PORT})'
    )

    parser.add_argument(
        '-i', '--interface',
        type=str,
        default=INTERFACE or None,
        help='Network interface to sweep (default: auto-detect)'
    )

    parser.add_argument(
        '--recheck-interval',
        type=int,
        default=RECHECK_INTERVAL,
        help=f'Seconds between liveness re-checks (default: {RECHECK_INTERVAL})'
    )

    parser.add_argument(
        '--scan-on-start',
        action='store_true',
        help='Sweep the network once at startup'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        default=DEBUG_MODE,
        help='Enable verbose logging'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'{APP_NAME} {APP_VERSION}'
    )

    args = parser.parse_args()

    try:
        app = LanWatch(
            host=args.host,
            port=args.port,
            interface=args.interface,
            recheck_interval=args.recheck_interval,
            scan_on_start=args.scan_on_start,
            verbose=args.verbose,
        )

        app.run()

    except KeyboardInterrupt:
        logger.info("Application stopped by user")
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
