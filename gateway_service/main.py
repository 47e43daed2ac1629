"""Gateway for the task portal. Single entry point: gates page navigations and proxies to the internal services."""

import os
import httpx
import logging
import time
from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse, RedirectResponse, Response
from dotenv import load_dotenv
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from gateway_service.gate import AUTH_COOKIE_NAME, evaluate, is_gated

load_dotenv()

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Internal service URLs ---
AUTH_URL = os.getenv("AUTH_SERVICE_URL")
FRONTEND_URL = os.getenv("FRONTEND_URL")

if not AUTH_URL:
    logger.warning("AUTH_SERVICE_URL is not set, defaulting to http://localhost:8001")
    AUTH_URL = "http://localhost:8001"
if not FRONTEND_URL:
    logger.warning("FRONTEND_URL is not set, defaulting to http://localhost:3000")
    FRONTEND_URL = "http://localhost:3000"

AUTH_URL = AUTH_URL.rstrip("/")
FRONTEND_URL = FRONTEND_URL.rstrip("/")

app = FastAPI(
    title="Gateway - Task Portal",
    description="Protects page navigations and forwards API calls to the auth service.",
    version="1.0.0"
)

# --- CORS ---
origins = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Headers relayed in each direction
FORWARD_REQUEST_HEADERS = ("content-type", "cookie", "accept", "accept-language", "user-agent")
FORWARD_RESPONSE_HEADERS = ("location", "cache-control")

client = httpx.AsyncClient(timeout=15.0)

# --- Prometheus metrics ---
REQUEST_COUNT = Counter(
    "gateway_requests_total",
    "Total requests processed by the Gateway",
    ["method", "endpoint", "status_code"]
)
REQUEST_LATENCY = Histogram(
    "gateway_request_latency_seconds",
    "Request latency in seconds for the Gateway",
    ["endpoint"]
)
GATE_REDIRECTS = Counter(
    "gateway_gate_redirects_total",
    "Navigations redirected by the route gate",
    ["target"]
)


@app.middleware("http")
async def combined_middleware(request: Request, call_next):
    """Route gate plus metrics."""
    start_time = time.time()
    response = None
    status_code = 500
    endpoint = request.url.path

    try:
        if request.method == "OPTIONS" or not is_gated(endpoint):
            response = await call_next(request)
            status_code = response.status_code
            return response

        # --- Gate ---
        decision = evaluate(endpoint, request.cookies.get(AUTH_COOKIE_NAME))

        if not decision.passes:
            logger.info(f"Gate redirect: {endpoint} -> {decision.redirect_to} (authenticated={decision.is_authenticated})")
            GATE_REDIRECTS.labels(target=decision.redirect_to).inc()
            target = request.url.replace(path=decision.redirect_to, query="", fragment="")
            response = RedirectResponse(url=str(target), status_code=status.HTTP_307_TEMPORARY_REDIRECT)
        else:
            response = await call_next(request)
        status_code = response.status_code

    except Exception as exc:
        logger.error(f"Unexpected middleware error on {endpoint}: {exc}", exc_info=True)
        response = JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
        status_code = 500
    finally:
        latency = time.time() - start_time
        final_status_code = getattr(response, 'status_code', status_code)
        REQUEST_LATENCY.labels(endpoint=endpoint).observe(latency)
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=final_status_code
        ).inc()

    return response


# --- Health and metrics endpoints ---
@app.get("/metrics", tags=["Monitoring"])
def metrics():
    """Exposes application metrics for Prometheus."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", tags=["Monitoring"])
def health_check():
    """Basic liveness check of the gateway."""
    return {"status": "ok", "service": "gateway_service"}


# --- Proxy helpers ---
async def forward_request(request: Request, target_url: str) -> Response:
    """Forwards the request as-is to an internal service and relays its answer, cookies included."""
    headers_to_forward = {}
    for header_name in FORWARD_REQUEST_HEADERS:
        header_value = request.headers.get(header_name)
        if header_value:
            headers_to_forward[header_name] = header_value

    if request.url.query:
        target_url = f"{target_url}?{request.url.query}"

    try:
        upstream = await client.request(
            request.method,
            target_url,
            content=await request.body(),
            headers=headers_to_forward,
        )
    except httpx.RequestError as e:
        logger.error(f"Connection error forwarding to {target_url}: {e}", exc_info=True)
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Internal service unavailable")

    response = Response(
        content=upstream.content,
        status_code=upstream.status_code,
        media_type=upstream.headers.get("content-type"),
    )
    for header_name in FORWARD_RESPONSE_HEADERS:
        header_value = upstream.headers.get(header_name)
        if header_value:
            response.headers[header_name] = header_value
    for cookie in upstream.headers.get_list("set-cookie"):
        response.headers.append("set-cookie", cookie)
    return response


# --- API proxy (not gated) ---
@app.api_route("/api/auth/{path:path}", methods=["GET", "POST", "PATCH"], tags=["Authentication"])
async def proxy_auth(path: str, request: Request):
    """Forwards every /api/auth call to the auth service."""
    logger.info(f"Proxying {request.method} /api/auth/{path}")
    return await forward_request(request, f"{AUTH_URL}/api/auth/{path}")


# --- Pages (gated by the middleware) ---
@app.api_route("/{path:path}", methods=["GET", "HEAD", "POST"], tags=["Pages"])
async def proxy_page(path: str, request: Request):
    """Forwards a navigation that passed the gate to the frontend server."""
    return await forward_request(request, f"{FRONTEND_URL}/{path}")


@app.on_event("shutdown")
async def shutdown_event():
    """Closes the HTTP client when the application stops."""
    await client.aclose()
