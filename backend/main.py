import sys
import logging
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi.errors import RateLimitExceeded
from chartsense.api.routes import router
from chartsense.api.analysis import router as analysis_router
from chartsense.api.metrics import router as metrics_router
from chartsense.core.config import get_settings
from chartsense.core.errors import ErrorCodes, error_json_response
from chartsense.core.middleware import CorrelationIDMiddleware, TimeoutMiddleware
from chartsense.core.security import SecurityHeadersMiddleware, validate_production_security
from chartsense.core.logging import configure_logging
from chartsense.core.rate_limit import limiter

# Load environment variables
load_dotenv()

# Load and validate configuration
try:
    settings = get_settings()
except Exception as e:
    # Basic logger for startup errors
    logging.basicConfig(level=logging.ERROR)
    logging.getLogger(__name__).error(f"Failed to load configuration: {e}")
    sys.exit(1)

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="ChartSense API",
    description="Schema inference and chart recommendations for tabular uploads",
    version="1.0.0"
)

# Store limiter and settings in app state for use in routes
app.state.limiter = limiter
app.state.settings = settings


def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """429 with the standard error body and a Retry-After of one limit window."""
    retry_after = exc.limit.limit.get_expiry() if getattr(exc, 'limit', None) else 60
    return error_json_response(
        429,
        ErrorCodes.RATE_LIMIT_EXCEEDED,
        getattr(request.state, 'correlation_id', 'unknown'),
        headers={"Retry-After": str(retry_after)}
    )


app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

# Add middleware in order (last added is first executed)
# 1. Compression middleware
app.add_middleware(GZipMiddleware, minimum_size=1000)

# 2. Request timeout middleware
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.request_timeout_seconds)

# 3. Security headers middleware
app.add_middleware(SecurityHeadersMiddleware)

# 4. CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization", "X-Correlation-ID"],
    expose_headers=["X-Correlation-ID", "X-Response-Time"]
)

# 5. Correlation ID middleware (outermost, so every response carries the id)
app.add_middleware(CorrelationIDMiddleware)

# Validate production security settings
validate_production_security(settings)

logger.info(f"CORS allowed origins: {settings.allowed_origins_list}")

app.include_router(router, prefix="/api")
app.include_router(analysis_router, prefix="/api")
app.include_router(metrics_router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "ChartSense API is running"}


logger.info("Application started successfully")
