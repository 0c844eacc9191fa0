from __future__ import annotations

from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from common.logging_setup import get_logger
from staticmap.config import Settings, load_settings
from staticmap.params import parse_params
from staticmap.renderer import StaticMapRenderer


log = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, renderer: Optional[StaticMapRenderer] = None) -> FastAPI:
    """
    Build the HTTP app. `renderer` wins over `settings`; with neither, settings
    are loaded from STATICMAP_CONFIG / config/staticmap.yaml.
    """
    if renderer is None:
        renderer = StaticMapRenderer(settings or load_settings())
    S = renderer.settings

    app = FastAPI(title="Static Map API", version="0.4.0")
    app.state.renderer = renderer

    # (Optional) CORS so maps can be embedded by browser tools
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
        expose_headers=["ETag", "Last-Modified"],
    )

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "maptypes": list(S.map_sources),
            "cache": {
                "http": S.use_http_cache,
                "tile": S.use_tile_cache,
                "map": S.use_map_cache,
            },
            "autozoom": {"min": S.min_zoom, "max": S.max_zoom, "enabled": S.autozoom_enabled},
        }

    @app.get("/stats")
    def stats():
        return renderer.stats()

    @app.get("/staticmap")
    def staticmap(request: Request):
        """
        Static map image.

        Query: center, zoom, size, maptype, markers (repeatable), scale, format.
        Honors If-None-Match (ETag = cache key) and If-Modified-Since (map cache mtime).
        """
        req = parse_params(request.query_params.multi_items(), S)
        resp = renderer.show_map(
            req,
            if_none_match=request.headers.get("if-none-match"),
            if_modified_since=request.headers.get("if-modified-since"),
        )
        if resp.not_modified:
            return Response(status_code=304, headers=resp.headers)
        return Response(content=resp.body, media_type=resp.content_type, headers=resp.headers)

    return app


app = create_app()


# -------- local dev entrypoint --------
if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
