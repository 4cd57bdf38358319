"""
Main entry point for the AgriAdvisor server
Initializes database and starts all services
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Dict, Any

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from agriadvisor.config.config_loader import load_config
from agriadvisor.core.database import db_service
from agriadvisor.core.models import isoformat_utc, utcnow
from agriadvisor.core.notification_engine import OutbreakAlertDispatcher, build_notification_engine
from agriadvisor.core.outbreaks import OutbreakService
from agriadvisor.core.providers import build_providers
from agriadvisor.core.security import TokenService
from agriadvisor.core.sync_service import SyncService

from agriadvisor.api import advisory, outbreaks, sync
from agriadvisor.api.dependencies import init_api_dependencies
from agriadvisor.api.error_handling import (
    api_error_handler, http_exception_handler, validation_exception_handler,
    general_exception_handler, APIError
)

__version__ = "1.0.0"


# Initialize basic console logging first
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)


def setup_file_logging():
    """Set up file logging after ensuring directories exist"""
    Path("logs").mkdir(exist_ok=True)

    file_handler = logging.FileHandler('logs/agriadvisor.log')
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    root_logger = logging.getLogger()
    root_logger.addHandler(file_handler)

    logger.info("File logging initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown"""
    agri_app = app.state.agri_app

    await agri_app.startup()
    yield
    await agri_app.shutdown()


class AgriAdvisorApp:
    """AgriAdvisor server application"""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

        database_config = config.get('database', {})
        database_url = database_config.get('url')
        if database_url and database_url != db_service.database_url:
            db_service.initialize(database_url, echo=database_config.get('echo', False))

        sync_config = config.get('sync', {})
        outbreak_config = config.get('outbreaks', {})
        auth_config = config.get('auth', {})

        self.token_service = TokenService(
            auth_config.get('secret', 'development-secret-change-in-production'),
            auth_config.get('token_ttl_hours', 24 * 30)
        )
        self.sync_service = SyncService(
            retention_days=sync_config.get('retention_days', 7),
            clear_windows=sync_config.get('clear_windows'),
            default_clear_window=sync_config.get('default_clear_window', '30d')
        )
        self.alert_dispatcher = OutbreakAlertDispatcher(
            engine=build_notification_engine(config),
            alert_radius_km=outbreak_config.get('alert_radius_km', 25),
            case_threshold=outbreak_config.get('alert_case_threshold', 10)
        )
        self.outbreak_service = OutbreakService(
            dispatcher=self.alert_dispatcher if config.get('notifications', {}).get('enabled', True) else None,
            cluster_radius_degrees=outbreak_config.get('cluster_radius_degrees', 0.09),
            default_list_limit=outbreak_config.get('default_list_limit', 50)
        )
        self.providers = build_providers(config)

        self.app = FastAPI(
            title="AgriAdvisor",
            description="Farmer advisory API with offline-first sync",
            version=__version__,
            lifespan=lifespan
        )
        self.app.state.agri_app = self

        # Configure CORS
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=config.get('api', {}).get('cors_origins', ["*"]),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"]
        )

        init_api_dependencies(self.token_service, self.sync_service, self.outbreak_service, self.providers)

        self.app.exception_handler(APIError)(api_error_handler)
        self.app.exception_handler(HTTPException)(http_exception_handler)
        self.app.exception_handler(RequestValidationError)(validation_exception_handler)
        self.app.exception_handler(Exception)(general_exception_handler)

        # Register API routes with versioning
        self.app.include_router(sync.router, prefix="/api/v1/sync", tags=["Synchronization"])
        self.app.include_router(outbreaks.router, prefix="/api/v1/outbreaks", tags=["Disease Outbreaks"])
        self.app.include_router(advisory.router, prefix="/api/v1", tags=["Advisory"])

        @self.app.get("/health")
        async def health_check():
            """Health check endpoint, also used by clients as a reachability probe"""
            database_ok = await db_service.health_check()
            if not database_ok:
                raise HTTPException(status_code=503, detail="Service degraded: database unavailable")

            return {
                "status": "healthy",
                "version": __version__,
                "database": "connected",
                "timestamp": isoformat_utc(utcnow())
            }

    async def startup(self):
        """Application startup"""
        logger.info(f"Starting AgriAdvisor v{__version__}...")

        Path("data").mkdir(exist_ok=True)
        setup_file_logging()

        await db_service.create_tables()
        logger.info("Database initialized")

        logger.info("AgriAdvisor started successfully")

    async def shutdown(self):
        """Application shutdown"""
        logger.info("Shutting down AgriAdvisor...")

        await self.alert_dispatcher.close()
        logger.info("Pending alerts stopped")

        await db_service.close()
        logger.info("Database closed")

        logger.info("AgriAdvisor shutdown complete")


def create_app(config: Dict[str, Any] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    if config is None:
        config = load_config()

    return AgriAdvisorApp(config).app


def main():
    """Main entry point"""
    try:
        config = load_config()
        app = create_app(config)

        api_config = config.get('api', {})
        host = api_config.get('host', '0.0.0.0')
        port = api_config.get('port', 8080)

        logger.info(f"Starting AgriAdvisor on {host}:{port}")

        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level="info",
            access_log=True
        )

    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.error(f"Failed to start AgriAdvisor: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
