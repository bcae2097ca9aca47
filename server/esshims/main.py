from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from esshims.routers import polyfills, transform

app = FastAPI(
    title="es-shims Polyfill Server",
    description="API for injecting es-shims polyfills into JavaScript and TypeScript sources.",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins for local development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include Routers
app.include_router(polyfills.router)
app.include_router(transform.router)

@app.get("/api-status")
async def root():
    return {"message": "es-shims polyfill server is running. Visit /docs for API documentation."}
