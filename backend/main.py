from fastapi import FastAPI, Request
from dotenv import load_dotenv

load_dotenv()
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from database import Base, SessionLocal, engine
from datetime import datetime
import os
import logging
from fastapi.openapi.utils import get_openapi

import models  # noqa: F401  registers every table on its metadata
import routers.chart_of_accounts as chart_of_accounts
import routers.bank_accounts as bank_accounts
import routers.journal_entry as journal_entry
import routers.balance_history as balance_history
import routers.taxes as taxes
import routers.tax_groups as tax_groups
import routers.tax_exemptions as tax_exemptions
import routers.tenants as tenants
from crud.tenant import ensure_default_roles
from utils.auth_utils import TokenCache
from utils.errors import ApiError


LOG_DIR = os.getenv("LOG_DIR", "logs")
os.makedirs(LOG_DIR, exist_ok=True) # Create 'logs' directory if it doesn't exist

# Create a unique log file name based on current date/time
current_time_str = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
LOG_FILE = os.path.join(LOG_DIR, f"app_{current_time_str}.log")

# Configure the root logger
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    filename=LOG_FILE, # Log to a file
    filemode='a' # Append to the file if it exists
)

# Also log to the console
console_handler = logging.StreamHandler()
console_handler.setLevel(logging.INFO)
console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
logging.getLogger().addHandler(console_handler) # Add to the root logger

logger = logging.getLogger(__name__)
logger.info("Application starting up...")
# --- End Logging Configuration ---


# Shared tables only; tenant tables are created per schema at onboarding
Base.metadata.create_all(bind=engine)
with SessionLocal() as db:
    ensure_default_roles(db)


app = FastAPI()
app.state.token_cache = TokenCache()


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected with {exc.status_code}: {exc.code}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


allowed_origins_str = os.getenv(
    "CORS_ALLOWED_ORIGINS",
    "http://localhost:5173,http://127.0.0.1:5173"
)

# Split the string into a list, stripping any whitespace
allowed_origins = [origin.strip() for origin in allowed_origins_str.split(',')]

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title="Ledger API",
        version="1.0.0",
        description="Multi-tenant double-entry bookkeeping API",
        routes=app.routes,
    )
    openapi_schema["components"]["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    # Apply security globally to all endpoints
    openapi_schema["security"] = [{"BearerAuth": []}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi


app.include_router(tenants.router)
app.include_router(chart_of_accounts.router)
app.include_router(bank_accounts.router)
app.include_router(journal_entry.router)
app.include_router(balance_history.router)
app.include_router(taxes.router)
app.include_router(tax_groups.router)
app.include_router(tax_exemptions.router)

@app.get("/")
async def health_check():
    return {"message": "Ledger API is running"}
