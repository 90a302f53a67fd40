"""
Dashboard JSON API: stdlib HTTP server over ``TraceQueries``.

Serves:
  - /api/health                       health check
  - /api/stats?from=&to=              contribution summary over a commit range
  - /api/commits                      annotated commits with trace counts
  - /api/commits/<sha>/traces         stored records of one commit
  - /api/commits/<sha>/analysis       diff attribution of one commit
  - /api/files/<path>/attribution     recorded ranges of one file per commit

Bind: 127.0.0.1, port from ``TRACENOTES_PORT`` / config (default 3000).
``DashboardApi.route()`` does the work and never touches the socket, so the
handler class only encodes its result.
"""

from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, unquote, urlparse

from .environment import Environment
from .errors import TraceNotesError
from .queries import TraceQueries

logger = logging.getLogger(__name__)

BIND_HOST = "127.0.0.1"

ENDPOINTS = [
    "/api/health",
    "/api/stats",
    "/api/commits",
    "/api/commits/<sha>/traces",
    "/api/commits/<sha>/analysis",
    "/api/files/<path>/attribution",
]


def _param(query: dict, name: str) -> str | None:
    values = query.get(name) or []
    if isinstance(values, str):
        return values or None
    return values[0] if values and values[0] else None


class DashboardApi:
    def __init__(self, queries: TraceQueries):
        self.queries = queries

    def route(self, path: str, query: dict | None = None) -> tuple[int, object]:
        """Dispatch one GET request.  Returns ``(status, json_payload)``."""
        query = query or {}
        path = path.rstrip("/") or "/"
        try:
            return self._dispatch(path, query)
        except TraceNotesError as exc:
            logger.error("%s failed: %s", path, exc)
            return 500, {"error": str(exc)}
        except (KeyError, TypeError, ValueError) as exc:
            logger.exception("%s failed on malformed trace data", path)
            return 500, {"error": f"malformed trace data: {exc!r}"}

    def _dispatch(self, path: str, query: dict) -> tuple[int, object]:
        if path == "/api/health":
            return 200, {"status": "ok"}

        if path == "/api/stats":
            to_rev = _param(query, "to") or "HEAD"
            return 200, self.queries.dashboard_stats(_param(query, "from"), to_rev)

        if path == "/api/commits":
            return 200, {"commits": self.queries.commit_list()}

        if path.startswith("/api/commits/"):
            parts = path[len("/api/commits/"):].split("/")
            if len(parts) == 2 and parts[0]:
                sha, action = parts
                if action == "traces":
                    return 200, {"commit": sha, "traces": self.queries.read_all(sha)}
                if action == "analysis":
                    return self._analysis(sha)

        if path.startswith("/api/files/") and path.endswith("/attribution"):
            file_path = unquote(path[len("/api/files/"):-len("/attribution")])
            if not file_path:
                return 400, {"error": "path required"}
            to_rev = _param(query, "to") or "HEAD"
            return 200, {
                "path": file_path,
                "commits": self.queries.file_attribution(file_path, _param(query, "from"), to_rev),
            }

        if path == "/":
            return 200, {"endpoints": ENDPOINTS}
        return 404, {"error": "not found"}

    def _analysis(self, sha: str) -> tuple[int, object]:
        if not self.queries.git.succeeds("rev-parse", "--verify", "--quiet", f"{sha}^{{commit}}"):
            return 404, {"error": f"unknown commit: {sha}"}
        return 200, self.queries.analyze_commit(sha)


class DashboardServer(HTTPServer):
    def __init__(self, address, api: DashboardApi):
        self.api = api
        super().__init__(address, DashboardHandler)


class DashboardHandler(BaseHTTPRequestHandler):
    server: DashboardServer

    def _send_json(self, data, status: int = 200):
        body = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Access-Control-Allow-Origin", "*")
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        parsed = urlparse(self.path)
        status, payload = self.server.api.route(parsed.path, parse_qs(parsed.query))
        self._send_json(payload, status=status)

    def do_OPTIONS(self):
        self.send_response(204)
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "GET, OPTIONS")
        self.end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def create_server(env: Environment, port: int | None = None) -> DashboardServer:
    queries = TraceQueries(env)
    queries.ensure_ready()
    if port is None:
        port = env.dashboard_port
    return DashboardServer((BIND_HOST, port), DashboardApi(queries))


def serve(env: Environment, port: int | None = None) -> None:
    """Run the dashboard API until interrupted."""
    server = create_server(env, port)
    host, bound_port = server.server_address[:2]
    print(f"Dashboard API: http://{host}:{bound_port} (project: {env.root})")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
