"""
Health check HTTP server for liveness and readiness checks.

Exposes the state of the event log and, when a ClinicTeams instance is
registered, the dashboard statistics.
"""

import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify

from clinic_teams.kernel.logging import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "clinic-teams"

app = Flask(__name__)

# Global state - set by initialize_health_server()
_db_path: Path | None = None
_clinic_instance: Any = None  # ClinicTeams instance for statistics


def initialize_health_server(db_path: str | Path, clinic_instance: Any = None) -> None:
    """
    Initialize the health server with the database path and an optional facade.

    Args:
        db_path: Path to SQLite database
        clinic_instance: Optional ClinicTeams instance for detailed health
    """
    global _db_path, _clinic_instance
    _db_path = Path(db_path)
    _clinic_instance = clinic_instance
    logger.info("Health server initialized", db_path=str(_db_path))


@app.after_request
def add_security_headers(response: Response) -> Response:
    """Harden every response (the endpoints only ever serve JSON)"""
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["X-XSS-Protection"] = "1; mode=block"
    response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    response.headers["Cache-Control"] = "no-store"
    return response


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Response, int]:
    """Liveness check - the process is up."""
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Response, int]:
    """
    Readiness check - the event log can be queried.

    Returns:
        200 with the event count when ready, 503 with a reason otherwise
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return (
            jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}),
            503,
        )

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_operational_error",
                    "error": str(e),
                }
            ),
            503,
        )

    logger.debug("Readiness check passed", event_count=event_count)
    return (
        jsonify({"status": "ready", "database": "accessible", "event_count": event_count}),
        200,
    )


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Response, int]:
    """
    Detailed health - database figures plus team/delegation statistics.

    Returns:
        200 when healthy, 503 when degraded
    """
    from clinic_teams import __version__

    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            conn = sqlite3.connect(str(_db_path), timeout=1.0)
            try:
                event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
                stream_count = conn.execute(
                    "SELECT COUNT(DISTINCT stream_id) FROM events"
                ).fetchone()[0]
                page_count = conn.execute("PRAGMA page_count").fetchone()[0]
                page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            finally:
                conn.close()

            health_data["database"] = {
                "status": "healthy",
                "path": str(_db_path),
                "event_count": event_count,
                "stream_count": stream_count,
                "size_mb": round(page_count * page_size / (1024 * 1024), 2),
            }

        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _clinic_instance is not None:
        stats = _clinic_instance.statistics()
        health_data["statistics"] = stats.model_dump(mode="json", by_alias=True)

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    """
    Run the health check server.

    Args:
        port: Port to listen on (default: 8080)
        debug: Enable Flask debug mode (default: False)
    """
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)
