"""
Bridge Gateway

FastAPI service exposing the stream coordinator over HTTP.

HTTP Endpoints:
- GET  /               - Health check
- GET  /health         - Detailed health status
- POST /subscribe      - Subscribe to an exchange stream (alias: /connect)
- POST /unsubscribe    - Drop a subscription (alias: /disconnect)
- GET  /connections    - Active upstream connections and subscriber counts
- POST /proxy/binance  - Raw pass-through request proxy
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional

import aiohttp
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dataflow.adapters.nats_client import NatsClient, NatsConfig
from dataflow.delivery.dispatcher import DeliveryDispatcher
from dataflow.delivery.sinks import HttpCandleSink, NatsCandleSink
from dataflow.errors import InvalidArgument
from engine.config.loader import BridgeConfig, ConfigLoader
from engine.runtime.coordinator import StreamCoordinator

logger = logging.getLogger(__name__)


class SubscriptionRequest(BaseModel):
    """Subscribe/unsubscribe request body; missing fields are rejected with 400"""
    exchange: Optional[str] = None
    symbol: Optional[str] = None
    timeframe: Optional[str] = None
    subscriber: Optional[str] = None


class ProxyRequest(BaseModel):
    """Request to forward verbatim"""
    url: str
    method: str = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)


async def build_coordinator(config: BridgeConfig) -> StreamCoordinator:
    """Create the coordinator and its delivery sink from config"""
    if config.sink == "nats":
        nats_client = NatsClient(NatsConfig.from_env())
        await nats_client.connect()
        sink = NatsCandleSink(nats_client, subscriber_header=config.subscriber_header)
    else:
        sink = HttpCandleSink(
            config.worker_url,
            path=config.delivery_path,
            subscriber_header=config.subscriber_header,
            timeout=config.delivery_timeout,
        )

    return StreamCoordinator(
        DeliveryDispatcher(sink),
        base_interval=config.base_interval,
        reconnect_delay=config.reconnect_delay,
        heartbeat_interval=config.heartbeat_interval,
    )


async def apply_startup_subscriptions(coordinator: StreamCoordinator, config: BridgeConfig) -> None:
    if config.subscriptions_file is None:
        return

    for sub in ConfigLoader(config.subscriptions_file).load_subscriptions():
        try:
            await coordinator.subscribe(sub.exchange, sub.symbol, sub.timeframe, sub.subscriber)
        except InvalidArgument as e:
            logger.warning(f"Skipping startup subscription {sub}: {e}")


def create_app(
    config: Optional[BridgeConfig] = None,
    coordinator: Optional[StreamCoordinator] = None,
) -> FastAPI:
    """
    Build the gateway app.

    Args:
        config: Bridge settings (defaults to BridgeConfig.from_env())
        coordinator: Pre-built coordinator; built from config on startup if omitted
    """
    config = config or BridgeConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Bridge Gateway...")
        app.state.started_at = time.monotonic()
        app.state.coordinator = coordinator or await build_coordinator(config)
        await apply_startup_subscriptions(app.state.coordinator, config)

        yield

        await app.state.coordinator.close()
        logger.info("Bridge Gateway shutdown complete")

    app = FastAPI(
        title="Candle Bridge - Gateway",
        description="Multiplexes exchange candle streams to subscribers",
        version="1.0.0",
        lifespan=lifespan,
    )

    def get_coordinator(request: Request) -> StreamCoordinator:
        return request.app.state.coordinator

    @app.get("/")
    async def root():
        """Health check endpoint"""
        return {
            "status": "running",
            "service": "candle-bridge",
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/health")
    async def health(request: Request):
        """Detailed health status"""
        bridge = get_coordinator(request)
        return {
            "status": "ok",
            "connections": len(bridge.connections),
            "uptime": time.monotonic() - request.app.state.started_at,
            "metrics": bridge.get_metrics(),
            "timestamp": datetime.now().isoformat(),
        }

    @app.post("/subscribe")
    @app.post("/connect")
    async def subscribe(data: SubscriptionRequest, request: Request):
        """Subscribe a consumer to an exchange stream at a timeframe"""
        bridge = get_coordinator(request)
        try:
            count = await bridge.subscribe(data.exchange, data.symbol, data.timeframe, data.subscriber)
        except InvalidArgument as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

        return {
            "success": True,
            "message": f"Connected to {data.exchange} {data.symbol} {data.timeframe}",
            "subscribers": count,
            "total_connections": len(bridge.connections),
        }

    @app.post("/unsubscribe")
    @app.post("/disconnect")
    async def unsubscribe(data: SubscriptionRequest, request: Request):
        """Remove a consumer's subscription"""
        bridge = get_coordinator(request)
        try:
            await bridge.unsubscribe(data.exchange, data.symbol, data.timeframe, data.subscriber)
        except InvalidArgument as e:
            return JSONResponse(status_code=400, content={"error": str(e)})

        return {
            "success": True,
            "message": f"Unsubscribed {data.subscriber} from {data.exchange} {data.symbol} {data.timeframe}",
        }

    @app.get("/connections")
    async def connections(request: Request):
        """Active connections and subscriber counts"""
        status = get_coordinator(request).status()
        status["total"] = len(status["active_connections"])
        return status

    @app.post("/proxy/binance")
    async def proxy_binance(data: ProxyRequest):
        """Forward a request verbatim and relay the upstream response"""
        logger.info(f"Proxying: {data.method} {data.url}")
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(data.method, data.url, headers=data.headers) as resp:
                    body = await resp.read()
                    logger.info(f"Proxy response: {resp.status}")
                    return Response(
                        content=body,
                        status_code=resp.status,
                        media_type=resp.headers.get("Content-Type"),
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            # TimeoutError carries no message
            error = str(e) or type(e).__name__
            logger.error(f"Proxy error: {error}")
            return JSONResponse(status_code=500, content={"error": error})

    return app


def run() -> None:
    """Console entry point"""
    config = BridgeConfig.from_env()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    logger.info(f"Starting Bridge Gateway on {config.host}:{config.port}")
    logger.info(f"Delivery sink: {config.sink} ({config.worker_url if config.sink == 'http' else 'NATS'})")

    uvicorn.run(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    run()
