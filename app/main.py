from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from dotenv import load_dotenv

from app.core.config import settings
from app.core.exceptions import EntitlementError
from app.core.kill_switch import kill_switch
from app.routers import admin, billing, diagnostics, properties

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(name)s - %(message)s',
    handlers=[logging.StreamHandler()]
)

app = FastAPI(
    title="Appliance Diagnostics API",
    description="Entitlements, usage quotas and diagnostics for the appliance diagnostic service",
    version="1.0.0",
    redirect_slashes=False
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
    allow_credentials=False if settings.environment == "development" else True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(EntitlementError)
async def entitlement_error_handler(request: Request, exc: EntitlementError):
    # Clients branch on the top-level "error" key
    return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)


# Health check endpoint
@app.get("/health")
async def health_check():
    return JSONResponse(content={
        "status": "healthy",
        "service": "Appliance Diagnostics API",
        "version": "1.0.0",
        "diagnostics_enabled": not kill_switch.is_active()
    })


# Include routers
app.include_router(diagnostics.router, prefix="/api/diagnostics", tags=["Diagnostics"])
app.include_router(billing.router, prefix="/api/billing", tags=["Billing"])
app.include_router(properties.router, prefix="/api/properties", tags=["Properties"])
app.include_router(admin.router, prefix="/api/admin", tags=["Admin"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
