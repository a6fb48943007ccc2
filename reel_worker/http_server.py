import logging
from threading import Thread
from typing import Optional, TYPE_CHECKING

import uvicorn
from fastapi import FastAPI, HTTPException, Query

if TYPE_CHECKING:
    from .service import WorkerService

logger = logging.getLogger("reel_worker")


class HealthServer:
    """Development-only API exposing liveness, worker stats and job views"""

    def __init__(self, service: 'WorkerService', port: int = 8000):
        self.service = service
        self.port = port
        self.app = FastAPI(title="Reel Worker Health API")
        self.setup_routes()
        self.server: Optional[uvicorn.Server] = None
        self.server_thread = None
        self.running = False

    def setup_routes(self):
        """Register the dev routes on the FastAPI app"""

        @self.app.get("/healthz")
        async def health_check():
            """Liveness plus a round trip to the job store"""
            try:
                self.service.check_health()
            except Exception as e:
                logger.error(f"Health check failed: {str(e)}")
                raise HTTPException(status_code=503, detail=f"Job store unavailable: {str(e)}")
            return {"ok": True, "status": "healthy"}

        @self.app.get("/stats")
        async def get_stats():
            try:
                return self.service.get_stats()
            except Exception as e:
                logger.error(f"Could not collect worker stats: {str(e)}")
                raise HTTPException(status_code=500, detail=f"Error fetching stats: {str(e)}")

        @self.app.get("/jobs/{job_id}")
        async def peek_job(job_id: str):
            view = self.service.get_job(job_id)
            if view is None:
                raise HTTPException(status_code=404, detail=f"Job {job_id} not found")
            return view

        @self.app.get("/owners/{owner_id}/jobs")
        async def owner_jobs(owner_id: str, limit: int = Query(20, ge=1, le=100)):
            """Recent jobs and counters for one owner"""
            return {
                "jobs": self.service.list_jobs(owner_id, limit),
                "stats": self.service.get_job_stats(owner_id),
            }

    def start(self):
        """Run uvicorn on a daemon thread so the worker loop keeps the main thread"""
        if self.running:
            return

        self.server = uvicorn.Server(uvicorn.Config(
            self.app,
            host="0.0.0.0",
            port=self.port,
            log_level="warning",
            access_log=False
        ))

        def serve():
            try:
                self.server.run()
            except Exception as e:
                logger.error(f"HTTP server error: {str(e)}")

        self.server_thread = Thread(target=serve, name="health-server", daemon=True)
        self.server_thread.start()
        self.running = True
        logger.info(f"Health server listening on port {self.port}")

    def stop(self):
        if self.server:
            self.server.should_exit = True
        self.running = False
        logger.info("Health server stopped")


def start_health_server(service: 'WorkerService') -> Optional[HealthServer]:
    """Start the dev server when WORKER_DEV_HTTP is enabled"""
    if not service.config.ENABLE_HTTP_SERVER:
        return None
    server = HealthServer(service, service.config.HTTP_PORT)
    server.start()
    return server
