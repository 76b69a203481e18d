from fastapi import FastAPI

from datapanel.api.datatables import router as datatables_router
from datapanel.errors import register_error_handlers
from datapanel.logging import configure_logging


def create_app(*, prefix: str = "") -> FastAPI:
    """Standalone app around the datatables router.

    Hosts that already own a FastAPI app include ``datatables_router`` and
    call ``register_error_handlers`` themselves.
    """
    configure_logging()
    app = FastAPI(title="datapanel")
    register_error_handlers(app)
    app.include_router(datatables_router, prefix=prefix)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


app = create_app()
