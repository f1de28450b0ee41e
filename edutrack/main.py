"""
Main application entry point for the EduTrack standing engine.

This module provides logging setup, application startup, signal handling,
and graceful shutdown. The services are built once and shared by whatever
transport layer embeds the application.
"""

import asyncio
import signal
import sys
from typing import Optional

from loguru import logger

from edutrack.config import settings
from edutrack.core.database import close_db, get_db, health_check, init_db
from edutrack.services.assignments import AssignmentService
from edutrack.services.attendance import AttendanceCounter
from edutrack.services.grade_ledger import GradeLedger
from edutrack.services.notifications import get_notification_sender
from edutrack.services.standing import StandingService
from edutrack.utils.repository import AssignmentStore, AttendanceStore, StudentRepository, TeacherRepository


def configure_logging(level: Optional[str] = None, log_file_path: Optional[str] = None) -> None:
    """Route loguru output to stdout and, when configured, a rotating file."""
    level = level or settings.log_level
    log_file_path = log_file_path or settings.log_file_path

    logger.remove()  # Remove default handler
    logger.add(
        sys.stdout,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level
    )

    if log_file_path:
        logger.add(
            log_file_path,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level,
            rotation="1 day",
            retention="30 days",
            compression="gz"
        )


class EduTrackApp:
    """
    Main application class for EduTrack.

    Owns the database lifecycle and the service instances.
    """

    def __init__(self, create_tables: bool = False):
        self.create_tables = create_tables
        self.is_shutting_down = False
        self._stopped = asyncio.Event()

        self.grade_ledger: Optional[GradeLedger] = None
        self.attendance: Optional[AttendanceCounter] = None
        self.standing: Optional[StandingService] = None
        self.assignments: Optional[AssignmentService] = None

        configure_logging()
        logger.info("EduTrack application initialized")

    async def startup(self) -> None:
        """Connect to the database and build the services."""
        logger.info("Starting EduTrack application...")

        await init_db(create_tables=self.create_tables)
        logger.info("Database initialization complete")

        repository = StudentRepository()
        store = AttendanceStore()
        self.grade_ledger = GradeLedger(repository)
        self.attendance = AttendanceCounter(repository, store)
        self.standing = StandingService(repository, get_notification_sender(), TeacherRepository(), store)
        self.assignments = AssignmentService(AssignmentStore(), repository)

        async with self.session() as db:
            _, registered = await repository.search(db, limit=1)
        logger.info(f"Services ready, {registered} students registered")

    def session(self):
        """
        Session scope for one caller request.

        Example:
            async with app.session() as db:
                await app.attendance.apply_attendance_batch(db, principal, entries)
        """
        return get_db()

    async def shutdown(self) -> None:
        """Gracefully shutdown the application."""
        if self.is_shutting_down:
            return

        self.is_shutting_down = True
        logger.info("Shutting down EduTrack application...")

        try:
            await close_db()
            logger.info("Application shutdown complete")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
        finally:
            self._stopped.set()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def signal_handler(sig: signal.Signals) -> None:
            logger.info(f"Received signal {sig.name}")
            asyncio.ensure_future(self.shutdown())

        # Handle SIGINT (Ctrl+C) and SIGTERM
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, signal_handler, sig)

        logger.debug("Signal handlers configured")

    async def health_check(self) -> bool:
        """
        Perform application health check.

        Returns:
            True if the services are built and the database answers, False otherwise
        """
        if self.standing is None or self.is_shutting_down:
            return False
        try:
            return await health_check()
        except RuntimeError as e:
            logger.error(f"Health check failed: {e}")
            return False

    async def run_forever(self) -> None:
        """Start the application and wait for a shutdown signal."""
        await self.startup()
        self._setup_signal_handlers()
        await self._stopped.wait()


async def main() -> None:
    """Main application entry point."""
    app = EduTrackApp(create_tables=settings.debug)

    try:
        await app.run_forever()
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Application failed: {e}")
        sys.exit(1)
    finally:
        await app.shutdown()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application terminated by user")


if __name__ == "__main__":
    run()
