# app.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wallet_portfolio.dashboard import Dashboard
from wallet_portfolio.routers import api_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def create_app(dashboard: Optional[Dashboard] = None, start_background: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.dashboard = dashboard or Dashboard()
        if start_background:
            app.state.dashboard.start()
        try:
            yield
        finally:
            await app.state.dashboard.close()

    app = FastAPI(title="Wallet Portfolio API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Allows all origins (change to specific URLs in prod, e.g., ["http://localhost:4200"])
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
