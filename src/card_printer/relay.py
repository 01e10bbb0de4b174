"""Same-origin image relay: ``GET /img?url=<absolute URL>``.

Fetches the remote bytes server side and returns them verbatim so clients
blocked by cross-origin rules can still load card art.
"""
from __future__ import annotations

from typing import Optional

import requests
from flask import Flask, Response, request, stream_with_context


DEFAULT_PORT = 3000
UPSTREAM_TIMEOUT = 30.0
CHUNK_SIZE = 64 * 1024


def create_app(timeout: float = UPSTREAM_TIMEOUT, session: Optional[requests.Session] = None) -> Flask:
    app = Flask(__name__)
    http = session or requests.Session()

    @app.after_request
    def allow_cross_origin(response: Response) -> Response:
        response.headers["Access-Control-Allow-Origin"] = "*"
        return response

    @app.get("/img")
    def relay_image():
        url = request.args.get("url")
        if not url:
            return Response("Missing url", status=400, mimetype="text/plain")
        try:
            upstream = http.get(url, timeout=timeout, allow_redirects=True, stream=True)
        except requests.exceptions.RequestException:
            return Response("Proxy error", status=500, mimetype="text/plain")

        if not upstream.ok:
            status = upstream.status_code
            upstream.close()
            return Response("Upstream error", status=status, mimetype="text/plain")

        content_type = upstream.headers.get("Content-Type") or "application/octet-stream"

        def generate():
            try:
                for chunk in upstream.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        yield chunk
            finally:
                upstream.close()

        response = Response(stream_with_context(generate()), status=200, content_type=content_type)
        response.headers["Cache-Control"] = "public, max-age=3600"
        return response

    @app.get("/")
    def index():
        return Response("Server running. Use /img?url=...", mimetype="text/plain")

    return app


def serve(host: str = "127.0.0.1", port: int = DEFAULT_PORT) -> None:
    create_app().run(host=host, port=port)
