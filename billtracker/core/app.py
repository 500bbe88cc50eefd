import logging
import sys
from typing import Optional, Sequence

from .cache_store import CacheStore
from .config import TrackerConfig
from .orchestrator import FetchOrchestrator, FetchReport, Origin


class BillTrackerApp:
    """Wires config, cache, orchestrator and providers; one instance per process."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[TrackerConfig] = None,
        use_database: Optional[bool] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config or TrackerConfig(config_path=config_path)
        self.cache_store = CacheStore(self.config.cache_dir, ttl=self.config.cache_ttl)
        self.orchestrator = FetchOrchestrator(self.cache_store, fetch_timeout=self.config.fetch_timeout)
        self.use_database = self.config.database_enabled if use_database is None else use_database

        if self.use_database:
            # Initialize database (before any run is saved so tables exist)
            from .db import init_db
            init_db(self.config)

    def setup_logging(self) -> None:
        """Configure root logging from config: level, stderr handler and optional file handler."""
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, self.config.logging_level.upper(), logging.INFO))

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

        if self.config.logging_file:
            file_handler = logging.FileHandler(self.config.logging_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        # Console handler on stderr so stdout stays clean for --format json/csv
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    def build_providers(self, only: Optional[Sequence[str]] = None):
        from billtracker.providers import build_providers
        return build_providers(self.config, only=only)

    async def refresh(self, only: Optional[Sequence[str]] = None, force: Optional[bool] = None) -> FetchReport:
        """Run every selected provider through the orchestrator; save the run when the DB is enabled."""
        force = self.config.force_refresh if force is None else force
        providers = self.build_providers(only)
        if not providers:
            self.logger.warning("No providers selected; check 'providers' in your config file")
        report = await self.orchestrator.run(providers, force_refresh=force)

        for outcome in report.outcomes:
            if outcome.origin == Origin.STALE:
                self.logger.warning(f"{outcome.source}: showing cached data, refresh failed ({outcome.error})")
            elif outcome.origin == Origin.EMPTY:
                self.logger.error(f"{outcome.source}: no data ({outcome.error})")

        if self.use_database:
            from .service import save_report
            try:
                saved = save_report(report)
                self.logger.info(f"Saved {saved} bill(s) to database")
            except Exception as e:
                self.logger.error(f"Failed to save bills to database: {e}", exc_info=True)
        return report
