"""
Live tick simulation with WebSocket streaming and an HTTP control API.
"""
import asyncio
import logging
import argparse
from pathlib import Path

import uvicorn

from .api.server import create_app
from .core.config import EnginesConfig, load_config
from .core.types import RiskLimits
from .ledger.account import DEFAULT_SYMBOL, TradingAccount
from .simulation import MarketSimulation
from .streaming.data_stream import BoundedTickStream
from .streaming.journal import JsonFileBlobStore, SnapshotJournal
from .streaming.websocket import AsyncWebSocketServer

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Synthetic tick simulation with WebSocket streaming",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Engines
    parser.add_argument(
        '--config',
        type=Path,
        default=None,
        help='Engine configuration JSON file (built-in defaults if omitted)'
    )
    parser.add_argument(
        '--seed',
        default='1337',
        help='Random seed (integer or any string)'
    )
    parser.add_argument(
        '--tf',
        type=int,
        default=1,
        help='Candle width in seconds'
    )

    # Clock
    parser.add_argument(
        '--tick-ms',
        type=int,
        default=100,
        help='Wall-clock milliseconds between ticks'
    )
    parser.add_argument(
        '--speed',
        type=float,
        default=1.0,
        help='Simulation speed multiplier (1.0 = real-time, floored at 0.1)'
    )
    parser.add_argument(
        '--duration',
        type=float,
        default=None,
        help='Run time in seconds (runs until interrupted if omitted)'
    )

    # Account
    parser.add_argument(
        '--symbol',
        default=DEFAULT_SYMBOL,
        help='Traded symbol'
    )
    parser.add_argument(
        '--fee-bps',
        type=float,
        default=0.03,
        help='Fee in basis points of quantity'
    )
    parser.add_argument(
        '--slippage-pct',
        type=float,
        default=0.05,
        help='Default market order slippage in percent'
    )
    parser.add_argument(
        '--max-risk-usd',
        type=float,
        default=200.0,
        help='Maximum estimated risk per order'
    )
    parser.add_argument(
        '--max-orders-per-minute',
        type=int,
        default=20,
        help='Order submission limit per 60 second window'
    )
    parser.add_argument(
        '--max-leverage',
        type=float,
        default=3.0,
        help='Isolated-margin leverage used for margin and liquidation price'
    )

    # Persistence
    parser.add_argument(
        '--state-dir',
        type=Path,
        default=None,
        help='Directory for the order/trade journal (no persistence if omitted)'
    )

    # Servers
    parser.add_argument(
        '--host',
        default='localhost',
        help='Server host'
    )
    parser.add_argument(
        '--port',
        type=int,
        default=8765,
        help='WebSocket server port'
    )
    parser.add_argument(
        '--http-port',
        type=int,
        default=8000,
        help='HTTP API port (0 disables the API)'
    )
    parser.add_argument(
        '--stream-buffer-size',
        type=int,
        default=1000,
        help='Per-subscriber tick buffer size'
    )

    # Logging
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level'
    )

    return parser.parse_args(argv)


def build_simulation(args) -> MarketSimulation:
    """Wire config, journal, account and streams from parsed arguments"""
    config = load_config(args.config) if args.config else EnginesConfig.default()

    journal = None
    if args.state_dir:
        journal = SnapshotJournal(JsonFileBlobStore(args.state_dir))

    account = TradingAccount(
        symbol=args.symbol,
        fee_bps=args.fee_bps,
        slippage_pct=args.slippage_pct,
        risk_limits=RiskLimits(
            max_risk_usd=args.max_risk_usd,
            max_orders_per_minute=args.max_orders_per_minute,
            max_leverage=args.max_leverage
        ),
        journal=journal
    )

    seed = int(args.seed) if args.seed.lstrip('-').isdigit() else args.seed
    simulation = MarketSimulation(
        config=config,
        seed=seed,
        tf_sec=args.tf,
        tick_ms=args.tick_ms,
        speed_multiplier=args.speed,
        account=account,
        output_stream=BoundedTickStream(maxsize=args.stream_buffer_size)
    )
    simulation.hydrate()
    return simulation


async def run_live_simulation(args):
    """Run the simulation, the WebSocket server and the HTTP API together"""
    simulation = build_simulation(args)

    websocket_server = AsyncWebSocketServer(
        tick_stream=simulation.output_stream,
        simulation=simulation,
        host=args.host,
        port=args.port
    )

    tasks = [
        asyncio.create_task(simulation.run(duration_seconds=args.duration)),
        asyncio.create_task(websocket_server.start()),
    ]

    if args.http_port:
        http_server = uvicorn.Server(uvicorn.Config(
            create_app(simulation),
            host=args.host,
            port=args.http_port,
            log_level=args.log_level.lower()
        ))
        tasks.append(asyncio.create_task(http_server.serve()))
        logger.info(f"HTTP API: http://{args.host}:{args.http_port}/docs")

    logger.info(f"WebSocket server: ws://{args.host}:{args.port}")
    logger.info(f"Speed: {args.speed}x, tick: {args.tick_ms}ms, candles: {args.tf}s")
    logger.info("Press Ctrl+C to stop")

    try:
        # The first task to finish (normally the timed simulation) ends the run
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            if task.exception() is not None:
                logger.error(f"Fatal error: {task.exception()}", exc_info=task.exception())
    except asyncio.CancelledError:
        logger.info("Shutdown requested...")
    finally:
        logger.info("Cleaning up...")
        for task in tasks:
            task.cancel()
        await simulation.shutdown()
        await websocket_server.shutdown()
        logger.info("Simulation shutdown complete")


def main(argv=None):
    """Entry point"""
    args = parse_arguments(argv)
    logging.getLogger().setLevel(getattr(logging, args.log_level))

    try:
        asyncio.run(run_live_simulation(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
