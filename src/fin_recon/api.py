"""Report API: read-only access to stored statements.

Endpoints:
  GET /api/ping                       liveness probe
  GET /api/report/{period}/{company}  stored statement + metrics
                                      (x-api-key header required,
                                       ?formatted=true for display labels)

Run:  python -m fin_recon.api
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

from fastapi import FastAPI, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fin_recon.config import get_config
from fin_recon.db import get_report
from fin_recon.formatting import format_report
from fin_recon.ratios import compute_report

log = logging.getLogger(__name__)

app = FastAPI(title="fin-recon reports")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _authorized(token: str | None) -> bool:
    expected = get_config().api_key
    if not expected or token is None:
        return False
    # compare_digest rejects non-ASCII str; headers arrive latin-1 decoded
    return secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


@app.get("/api/ping")
async def ping():
    log.debug("Ping endpoint called")
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


@app.get("/api/report/{period}/{company}")
def report(
    period: str,
    company: str,
    formatted: bool = False,
    x_api_key: str | None = Header(default=None),
):
    if not _authorized(x_api_key):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        data = get_report(period, company)
    except Exception:
        log.exception("Report lookup failed for %s/%s", period, company)
        return JSONResponse(status_code=500, content={"error": "Server error"})

    if not data:
        return JSONResponse(status_code=404, content={"error": "Not found"})
    if formatted:
        return {"data": format_report(compute_report(data))}
    return {"data": data}


if __name__ == "__main__":
    import uvicorn

    config = get_config()
    logging.basicConfig(level=config.log_level.upper())
    print(f"\n  fin-recon reports → http://localhost:{config.port}\n")
    uvicorn.run(app, host="0.0.0.0", port=config.port, log_level="info")
