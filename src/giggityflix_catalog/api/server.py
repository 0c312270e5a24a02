import json
import logging
from typing import Any, Awaitable, Callable, Optional

from aiohttp import WSMsgType, web

from giggityflix_catalog.errors import (
    CatalogError, ConfigError, ConflictError, InvalidArgumentError, RangeNotSatisfiableError
)
from giggityflix_catalog.models.media import ReconcileResult
from giggityflix_catalog.services.catalog_store import CatalogStore
from giggityflix_catalog.services.config_service import CatalogConfigStore
from giggityflix_catalog.services.stream_service import StreamService
from giggityflix_catalog.services.thumbnail_service import ThumbnailService

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_COUNT = 10


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Map catalog errors to JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except RangeNotSatisfiableError as e:
        return web.json_response(
            {"error": str(e)}, status=e.http_status,
            headers={"Content-Range": f"bytes */{e.size}"}
        )
    except CatalogError as e:
        return web.json_response({"error": str(e)}, status=e.http_status)
    except Exception as e:
        logger.error(f"Error handling {request.method} {request.path}: {e}", exc_info=True)
        return web.json_response({"error": "internal server error"}, status=500)


def _positive_int(request: web.Request, name: str, default: int) -> int:
    raw = request.query.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        value = 0
    if value < 1:
        raise InvalidArgumentError(f"Invalid {name} parameter")
    return value


class ApiServer:
    """REST API server for the media catalog."""

    def __init__(self, store: CatalogStore, stream_service: StreamService,
                 thumbnail_service: ThumbnailService, config_store: CatalogConfigStore,
                 reconcile: Callable[[], Awaitable[ReconcileResult]],
                 host: str = "0.0.0.0", port: int = 8080):
        """Initialize the API server."""
        self.store = store
        self.stream_service = stream_service
        self.thumbnail_service = thumbnail_service
        self.config_store = config_store
        self.reconcile = reconcile

        self.app = web.Application(middlewares=[error_middleware])
        self.host = host
        self.port = port
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up the API routes."""
        # Catalog routes
        self.app.router.add_get("/media/all", self.handle_get_all)
        self.app.router.add_get("/media/paginated", self.handle_get_paginated)
        self.app.router.add_delete("/media", self.handle_delete_all)
        self.app.router.add_get("/media/{id}", self.handle_get_by_id)
        self.app.router.add_delete("/media/{id}", self.handle_delete_by_id)

        # Streaming routes
        self.app.router.add_get("/media/{id}/stream", self.handle_stream)
        self.app.router.add_get("/media/{id}/thumbnail", self.handle_thumbnail)

        # Maintenance routes
        self.app.router.add_post("/api/scan", self.handle_scan)
        self.app.router.add_get("/api/config", self.handle_get_config)
        self.app.router.add_get("/ws/config", self.handle_config_ws)

    async def start(self) -> None:
        """Start the API server."""
        logger.info(f"Starting API server on port {self.port}")

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"API server running on http://{self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the API server."""
        logger.info("Stopping API server")

        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("API server stopped")

    # Catalog route handlers

    async def handle_get_all(self, request: web.Request) -> web.Response:
        """Handle a request to get all media items."""
        records = await self.store.list_all()
        return web.json_response([record.to_dict() for record in records])

    async def handle_get_paginated(self, request: web.Request) -> web.Response:
        """Handle a request for one page of media items."""
        page = _positive_int(request, "page", DEFAULT_PAGE)
        count = _positive_int(request, "count", DEFAULT_COUNT)

        result = await self.store.list_paginated(page, count)
        return web.json_response(result.to_dict())

    async def handle_get_by_id(self, request: web.Request) -> web.Response:
        """Handle a request to get a media item by ID."""
        record = await self.store.get_by_id(request.match_info["id"])
        return web.json_response(record.to_dict())

    async def handle_delete_by_id(self, request: web.Request) -> web.Response:
        """Handle a request to delete a media item."""
        media_id = request.match_info["id"]

        await self.store.delete_by_id(media_id)
        await self.thumbnail_service.evict(media_id)

        return web.json_response({"status": "ok"})

    async def handle_delete_all(self, request: web.Request) -> web.Response:
        """Handle a request to clear the catalog."""
        deleted = await self.store.delete_all()
        await self.thumbnail_service.clear()

        return web.json_response({"status": "ok", "deleted": deleted})

    # Streaming route handlers

    async def handle_stream(self, request: web.Request) -> web.StreamResponse:
        """Stream a media file, honoring single byte-range requests."""
        stream = await self.stream_service.open_range_stream(
            request.match_info["id"], request.headers.get("Range")
        )

        try:
            response = web.StreamResponse(status=stream.status, headers=stream.headers())
            await response.prepare(request)

            async for chunk in stream.iter_chunks():
                await response.write(chunk)

            await response.write_eof()
            return response

        except ConnectionResetError:
            logger.info(f"Client disconnected while streaming {stream.record.id}")
            return response

        finally:
            await stream.close()

    async def handle_thumbnail(self, request: web.Request) -> web.Response:
        """Return a JPEG frame taken from the media file."""
        image = await self.thumbnail_service.extract_frame(request.match_info["id"])
        return web.Response(body=image, content_type="image/jpeg")

    # Maintenance route handlers

    async def handle_scan(self, request: web.Request) -> web.Response:
        """Run a reconciliation cycle and report its outcome."""
        result = await self.reconcile()
        return web.json_response(result.to_dict())

    async def handle_get_config(self, request: web.Request) -> web.Response:
        """Handle a request to get the catalog configuration."""
        catalog_config = await self.config_store.fetch()
        return web.json_response(catalog_config.model_dump())

    async def handle_config_ws(self, request: web.Request) -> web.WebSocketResponse:
        """Edit the catalog configuration over a websocket."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        async def send(event: str, data: Any) -> None:
            await ws.send_json({"event": event, "data": data})

        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket closed with exception {ws.exception()}")
                break
            if msg.type != WSMsgType.TEXT:
                continue

            try:
                message = json.loads(msg.data)
                event = message["event"]
                payload = message.get("data") or {}
            except (ValueError, KeyError, TypeError, AttributeError):
                await send("error", "invalid message")
                continue

            try:
                if event == "fetch_config":
                    catalog_config = await self.config_store.fetch()
                    await send("config_data", catalog_config.model_dump())
                    continue

                if event == "add_folder":
                    catalog_config = await self.config_store.add_media_dir(self._folder(payload))
                elif event == "remove_folder":
                    catalog_config = await self.config_store.remove_media_dir(self._folder(payload))
                elif event == "toggle_stream":
                    catalog_config = await self.config_store.toggle_stream_on_demand()
                else:
                    await send("error", "unknown event")
                    continue

                await send("config_updated", catalog_config.model_dump())

            except (ConfigError, ConflictError) as e:
                await send("error", str(e))

        return ws

    @staticmethod
    def _folder(payload: Any) -> str:
        folder = payload.get("folder") if isinstance(payload, dict) else None
        if not isinstance(folder, str) or not folder:
            raise ConfigError("invalid payload")
        return folder
