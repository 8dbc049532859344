#!/usr/bin/env python3
"""
Accident Dispatch Service: runs the simulation in real time.

Drives the engine's scheduler from the asyncio loop and exposes it via:
  1. REST API (for dashboards / consumers to poll and send commands)
  2. rosbridge (mirrors incidents and notifications to ROS topics)

The service holds no incident logic of its own; everything goes through
DispatchEngine.
"""

import asyncio
import logging
import sys

from aiohttp import web

from .clock import Scheduler
from .config import (
    API_HOST,
    API_PORT,
    LOG_LEVEL,
    MONITORING_ON_START,
    ROSBRIDGE_ENABLED,
    RUNNER_POLL_INTERVAL,
    load_timing,
)
from .detector import AccidentDetector
from .engine import DispatchEngine
from .errors import DispatchError, SchedulingFailure
from .models import IncidentStatus
from .publisher import RosbridgePublisher

logger = logging.getLogger("dispatch.service")

ERROR_STATUS = {
    "unknown_incident": 404,
    "unknown_unit": 404,
    "invalid_transition": 409,
    "scheduling_failure": 503,
}


class SchedulerRunner:
    """Runs due timers, then sleeps until the next one (at most `poll_interval`)."""

    def __init__(self, scheduler: Scheduler, poll_interval: float = RUNNER_POLL_INTERVAL):
        self.scheduler = scheduler
        self.poll_interval = poll_interval
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self):
        self._running = True
        try:
            while self._running and not self.scheduler.closed:
                self.scheduler.run_due()
                due = self.scheduler.next_due()
                delay = self.poll_interval
                if due is not None:
                    delay = min(delay, max(0.0, due - self.scheduler.now()))
                await asyncio.sleep(delay)
        finally:
            self._running = False

    def stop(self):
        self._running = False


class DispatchService:
    """Engine + detector + runner + optional rosbridge mirror."""

    def __init__(self, engine: DispatchEngine = None, detector: AccidentDetector = None,
                 publisher: RosbridgePublisher = None):
        self.engine = engine or DispatchEngine(timing=load_timing())
        self.detector = detector or AccidentDetector(self.engine)
        self.publisher = publisher
        self.runner = SchedulerRunner(self.engine.scheduler)

    def get_status(self) -> dict:
        return {
            "monitoring": self.detector.monitoring,
            "running": self.runner.running and self.engine.running,
            "rosbridge": bool(self.publisher and self.publisher.connected),
            **self.engine.stats(),
        }

    def pause(self):
        self.detector.pause()

    def resume(self):
        self.detector.start()

    async def run(self):
        logger.info("Starting accident dispatch service...")
        if self.publisher is not None:
            await asyncio.to_thread(self.publisher.connect)
        if MONITORING_ON_START:
            self.detector.start()
        await self.runner.run()

    def stop(self):
        self.runner.stop()
        self.engine.stop()
        if self.publisher is not None:
            self.publisher.close()
        logger.info("Stopped.")


# --- REST API ---

def create_api(service: DispatchService) -> web.Application:
    """Create the REST API for the dispatch service."""
    engine = service.engine

    def cors_response(data, status=200):
        resp = web.json_response(data, status=status)
        resp.headers["Access-Control-Allow-Origin"] = "*"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return resp

    def error_response(exc: DispatchError):
        return cors_response({"ok": False, "error": exc.message, "code": exc.code},
                             status=ERROR_STATUS.get(exc.code, 400))

    def not_found(what: str):
        return cors_response({"ok": False, "error": f"{what} not found"}, status=404)

    def dump(items):
        return [item.model_dump(mode="json") for item in items]

    async def read_json(request):
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def get_incidents(request):
        return cors_response(dump(engine.incidents()))

    async def get_active_incidents(request):
        return cors_response(dump(engine.active_incidents()))

    async def get_queue(request):
        return cors_response([
            {**incident.model_dump(mode="json"), "priority": score}
            for incident, score in engine.priority_queue()
        ])

    async def update_incident(request):
        incident_id = request.match_info["id"]
        if engine.get_incident(incident_id) is None:
            return not_found("incident")
        data = await read_json(request)
        status = data.get("status", "")
        if status not in {s.value for s in IncidentStatus}:
            return cors_response({"ok": False, "error": f"unknown status {status!r}"}, status=400)
        if not engine.running:
            return error_response(SchedulingFailure("engine is stopped"))
        if not engine.advance_incident(incident_id, status):
            current = engine.get_incident(incident_id)
            return cors_response({
                "ok": False,
                "error": f"cannot move {current.status.value} -> {status}",
                "code": "invalid_transition",
            }, status=409)
        return cors_response({"ok": True, "incident": engine.get_incident(incident_id).model_dump(mode="json")})

    async def get_units(request):
        incident_id = request.match_info["id"]
        if engine.get_incident(incident_id) is None:
            return not_found("incident")
        return cors_response(dump(engine.units(incident_id)))

    async def dispatch_unit(request):
        incident_id = request.match_info["id"]
        unit_id = request.match_info["unit_id"]
        if engine.get_incident(incident_id) is None:
            return not_found("incident")
        if engine.get_unit(incident_id, unit_id) is None:
            return not_found("unit")
        try:
            dispatched = engine.dispatch_unit(incident_id, unit_id)
        except SchedulingFailure as e:
            return error_response(e)
        unit = engine.get_unit(incident_id, unit_id)
        return cors_response({"ok": True, "dispatched": dispatched, "unit": unit.model_dump(mode="json")})

    async def dispatch_all(request):
        incident_id = request.match_info["id"]
        if engine.get_incident(incident_id) is None:
            return not_found("incident")
        try:
            sent = engine.dispatch_all_units(incident_id)
        except SchedulingFailure as e:
            return error_response(e)
        return cors_response({"ok": True, "dispatched": sent, "units": dump(engine.units(incident_id))})

    async def get_notifications(request):
        return cors_response(dump(engine.notifications()))

    async def mark_all_read(request):
        return cors_response({"ok": True, "updated": engine.mark_all_notifications_read()})

    async def mark_read(request):
        if not engine.mark_notification_read(request.match_info["notification_id"]):
            return not_found("notification")
        return cors_response({"ok": True})

    async def dismiss(request):
        if not engine.dismiss_notification(request.match_info["notification_id"]):
            return not_found("notification")
        return cors_response({"ok": True})

    async def get_status(request):
        return cors_response(service.get_status())

    async def pause_dispatch(request):
        service.pause()
        return cors_response(service.get_status())

    async def resume_dispatch(request):
        try:
            service.resume()
        except SchedulingFailure as e:
            return error_response(e)
        return cors_response(service.get_status())

    async def trigger_incident(request):
        try:
            incident = service.detector.trigger()
        except SchedulingFailure as e:
            return error_response(e)
        return cors_response(incident.model_dump(mode="json"))

    async def clear_incidents(request):
        engine.clear_incidents()
        return cors_response(service.get_status())

    async def handle_options(request):
        return cors_response({})

    app = web.Application()
    app.router.add_get("/api/incidents", get_incidents)
    app.router.add_get("/api/incidents/active", get_active_incidents)
    app.router.add_get("/api/incidents/queue", get_queue)
    app.router.add_patch("/api/incidents/{id}", update_incident)
    app.router.add_get("/api/incidents/{id}/units", get_units)
    app.router.add_post("/api/incidents/{id}/units/dispatch", dispatch_all)
    app.router.add_post("/api/incidents/{id}/units/{unit_id}/dispatch", dispatch_unit)
    app.router.add_get("/api/notifications", get_notifications)
    app.router.add_post("/api/notifications/read", mark_all_read)
    app.router.add_post("/api/notifications/{notification_id}/read", mark_read)
    app.router.add_delete("/api/notifications/{notification_id}", dismiss)
    app.router.add_get("/api/dispatch/status", get_status)
    app.router.add_post("/api/dispatch/pause", pause_dispatch)
    app.router.add_post("/api/dispatch/resume", resume_dispatch)
    app.router.add_post("/api/dispatch/trigger", trigger_incident)
    app.router.add_post("/api/dispatch/clear", clear_incidents)
    app.router.add_route("OPTIONS", "/api/{path:.*}", handle_options)
    return app


async def main():
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    engine = DispatchEngine(timing=load_timing())
    publisher = RosbridgePublisher(engine) if ROSBRIDGE_ENABLED else None
    service = DispatchService(engine, publisher=publisher)

    # Start REST API
    app = create_api(service)
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, API_HOST, API_PORT)
    await site.start()
    logger.info(f"REST API running on :{API_PORT}")

    # Start simulation loop
    try:
        await service.run()
    finally:
        service.stop()
        await runner.cleanup()


def cli():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
