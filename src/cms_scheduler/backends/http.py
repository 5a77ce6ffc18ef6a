import hmac
import logging
import uuid

from aiohttp import web

from .base import SchedulerBackend

logger = logging.getLogger(__name__)

CRON_RUN_PATH = "/api/cron/run"


def _bearer_token(request: web.Request) -> str:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return ""
    return auth[len("Bearer "):].strip()


def create_cron_app(backend: SchedulerBackend, token: str, tick_limit: int = 50) -> web.Application:
    """
    Build an aiohttp application exposing ``POST|GET /api/cron/run`` for an
    external timer. Requests must carry ``Authorization: Bearer <token>``; an
    empty ``token`` rejects every request.
    """
    configured = (token or "").strip()

    def is_authorized(request: web.Request) -> bool:
        supplied = _bearer_token(request)
        return bool(configured) and bool(supplied) and hmac.compare_digest(supplied, configured)

    async def run_cron(request: web.Request) -> web.Response:
        trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
        if not is_authorized(request):
            logger.warning("cron run unauthorized trace_id=%s", trace_id)
            return web.json_response({"error": "Unauthorized"}, status=401)

        try:
            result = await backend.run_locked_tick(tick_limit)
        except Exception as e:
            logger.exception("cron run failed trace_id=%s", trace_id)
            return web.json_response({"error": str(e)}, status=500)

        if result.busy:
            logger.info("cron run skipped: lock busy trace_id=%s", trace_id)
            return web.json_response({"ok": True, "busy": True, "message": result.message}, status=202)

        logger.info("cron run completed trace_id=%s ran=%d errors=%d", trace_id, result.ran, result.errors)
        return web.json_response({"ok": True, **result.model_dump(exclude={"busy"})})

    app = web.Application()
    app.router.add_post(CRON_RUN_PATH, run_cron)
    app.router.add_get(CRON_RUN_PATH, run_cron)
    return app
