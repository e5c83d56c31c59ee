"""
ASGI entry point for the E-Commerce Metrics API.

    uvicorn ecommerce_metrics.main:app
"""

from ecommerce_metrics.serving.api.main import create_api_app

app = create_api_app()


if __name__ == "__main__":
    import uvicorn

    from ecommerce_metrics.config import get_settings

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
