import asyncio
import logging
import os
import time

import aiohttp_cors
from aiohttp import web

from .config import Settings, load_settings
from .errors import GatewayError, ValidationError
from .gateway import Gateway
from .notifier import END_OF_STREAM, EventNotifier
from .store import MongoStore
from .utils import json_dumps, utc_now

logger = logging.getLogger("bgmi")
http_logger = logging.getLogger("bgmi.http")

GATEWAY = web.AppKey("gateway", Gateway)
CONNECT_TASK = web.AppKey("connect_task", asyncio.Task)

SSE_PATH = "/events"


LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _file_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_dir: str = ".") -> None:
    """Send the service log to ``bgmi_app.log`` and stderr.

    Request lines go to ``bgmi_http.log`` (and stderr) through ``bgmi.http``,
    which does not propagate so they stay out of the service log.
    """
    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)

    logging.basicConfig(
        level=logging.INFO,
        handlers=[_file_handler(os.path.join(log_dir, "bgmi_app.log"), formatter), console],
    )

    http_logger.setLevel(logging.INFO)
    http_logger.propagate = False
    http_logger.addHandler(_file_handler(os.path.join(log_dir, "bgmi_http.log"), formatter))
    http_logger.addHandler(console)


def json_response(data, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=json_dumps)


async def read_json(request: web.Request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        # Malformed JSON and bodies that are not valid UTF-8.
        raise ValidationError("Request body must be valid JSON.") from None
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data


def client_address(request: web.Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    return forwarded or request.headers.get("X-Real-IP") or request.remote or "unknown"


# ============================================================================
# MIDDLEWARE
# ============================================================================

@web.middleware
async def logging_middleware(request: web.Request, handler):
    """One access line per finished request: method, path, status, time taken"""
    if request.method == "OPTIONS" or request.path == SSE_PATH:
        return await handler(request)

    started = time.monotonic()
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as ex:
        status = ex.status
        raise
    finally:
        elapsed = (time.monotonic() - started) * 1000
        level = logging.WARNING if status >= 400 else logging.INFO
        http_logger.log(level, f"{request.method} {request.path_qs} -> {status} "
                               f"in {elapsed:.1f}ms ({client_address(request)})")


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn gateway errors into ``{success, message}`` JSON responses"""
    try:
        return await handler(request)
    except GatewayError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        return json_response({"success": False, "message": e.message}, status=e.status)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return json_response(
            {"success": False, "message": "Something went wrong. Please try again later."},
            status=500,
        )


# ============================================================================
# HEALTH & EVENT STREAM
# ============================================================================

async def health_check(request: web.Request) -> web.Response:
    """Liveness probe, also reporting whether the database is usable"""
    gateway = request.app[GATEWAY]
    return json_response({
        "status": "healthy",
        "database": "connected" if gateway.ready else "connecting",
        "listeners": len(gateway.notifier.listeners),
        "timestamp": utc_now().isoformat(),
    })


async def sse_handler(request: web.Request) -> web.StreamResponse:
    """Server-Sent Events stream of ``db-update`` messages"""
    gateway = request.app[GATEWAY]
    keepalive = gateway.settings.sse_keepalive

    response = web.StreamResponse()
    response.headers['Content-Type'] = 'text/event-stream'
    response.headers['Cache-Control'] = 'no-cache'
    response.headers['Connection'] = 'keep-alive'
    response.headers['X-Accel-Buffering'] = 'no'  # Disable nginx buffering

    await response.prepare(request)

    listener = gateway.notifier.connect()
    try:
        await response.write(b'event: connected\ndata: {"message":"SSE connection established"}\n\n')

        while True:
            try:
                message = await asyncio.wait_for(listener.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                await response.write(b': ping\n\n')
                continue
            if message is END_OF_STREAM:
                break
            await response.write(f'event: db-update\ndata: {message}\n\n'.encode('utf-8'))
    except ConnectionResetError:
        pass
    finally:
        gateway.notifier.disconnect(listener)

    return response


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

async def register_admin(request: web.Request) -> web.Response:
    admin = await request.app[GATEWAY].register_admin(await read_json(request))
    return json_response(
        {"success": True, "message": "Admin registered successfully.", "admin": admin},
        status=201,
    )


async def login_admin(request: web.Request) -> web.Response:
    admin = await request.app[GATEWAY].login_admin(await read_json(request))
    return json_response({"success": True, "message": "Login successful", "admin": admin})


async def logout_admin(request: web.Request) -> web.Response:
    await request.app[GATEWAY].logout_admin(await read_json(request))
    return json_response({"success": True, "message": "Admin logged out successfully."})


# ============================================================================
# MATCH REGISTRATION & DATA ENDPOINTS
# ============================================================================

async def join_match(request: web.Request) -> web.Response:
    await request.app[GATEWAY].join_match(await read_json(request))
    return json_response({"success": True, "message": "Joined successfully."}, status=201)


async def write_collection(request: web.Request) -> web.Response:
    """Admin upload: ``{collection, data}`` where data is one object or a list"""
    body = await read_json(request)
    documents = await request.app[GATEWAY].write_collection(body.get("collection"), body.get("data"))
    return json_response({
        "success": True,
        "message": "Data saved successfully.",
        "collection": body["collection"].strip(),
        "count": len(documents),
    })


async def read_collection(request: web.Request) -> web.Response:
    documents = await request.app[GATEWAY].read_collection(request.match_info["collection"])
    return json_response(documents)


async def read_one(request: web.Request) -> web.Response:
    document = await request.app[GATEWAY].read_one(
        request.match_info["collection"], request.match_info["key"]
    )
    return json_response(document)


# ============================================================================
# APPLICATION SETUP
# ============================================================================

async def start_store(app: web.Application):
    """Connect to the database in the background; requests get 503 until then"""
    gateway = app[GATEWAY]
    if not gateway.ready:
        logger.info("Connecting to MongoDB...")
        app[CONNECT_TASK] = asyncio.create_task(
            gateway.store.connect_forever(gateway.settings.store_retry_delay)
        )


async def stop_listeners(app: web.Application):
    app[GATEWAY].notifier.close()


async def stop_store(app: web.Application):
    task = app.get(CONNECT_TASK)
    if task is not None and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    app[GATEWAY].store.close()
    logger.info("Database connection closed")


def create_app(settings: Settings = None, store=None, notifier: EventNotifier = None) -> web.Application:
    """Create and configure the aiohttp application"""
    settings = settings or load_settings()
    if store is None:
        store = MongoStore(settings.mongo_url, settings.db_name)
    if notifier is None:
        notifier = EventNotifier(queue_size=settings.sse_queue_size)

    app = web.Application(middlewares=[logging_middleware, error_middleware])
    app[GATEWAY] = Gateway(settings, store, notifier)

    cors = aiohttp_cors.setup(app, defaults={
        "*": aiohttp_cors.ResourceOptions(
            allow_credentials=True,
            expose_headers="*",
            allow_headers="*",
            allow_methods="*"
        )
    })

    app.router.add_get('/', health_check)
    app.router.add_get('/health', health_check)
    app.router.add_get(SSE_PATH, sse_handler)

    # Specific POST routes first so CORS preflights resolve to them rather
    # than to the catch-all read routes below.
    app.router.add_post('/admins', register_admin)
    app.router.add_post('/adminlogin', login_admin)
    app.router.add_post('/logoutadmin', logout_admin)
    app.router.add_post('/joinmatches', join_match)
    app.router.add_post('/tournament', write_collection)

    app.router.add_get('/{collection}', read_collection)
    app.router.add_get('/{collection}/{key}', read_one)

    for route in list(app.router.routes()):
        cors.add(route)

    logger.info(f"Total routes configured: {len(app.router.routes())}")

    app.on_startup.append(start_store)
    app.on_shutdown.append(stop_listeners)
    app.on_cleanup.append(stop_store)

    return app


def main():
    settings = load_settings()
    setup_logging(settings.log_dir)

    logger.info("=" * 80)
    logger.info("BGMI Tournament Gateway - Starting Up")
    logger.info("=" * 80)
    logger.info(f"  Host: {settings.host}")
    logger.info(f"  Port: {settings.port}")
    logger.info(f"  Database: {settings.db_name} (async with motor)")
    if not settings.admin_id:
        logger.warning("  ADMIN_ID is not set: admin registration will be refused")

    app = create_app(settings)
    try:
        web.run_app(app, host=settings.host, port=settings.port, access_log=None)
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
    finally:
        logger.info("Server stopped")


if __name__ == '__main__':
    main()
