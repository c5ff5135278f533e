"""
Pure asyncio WebSocket server (no threading).
Each client gets an independent buffered subscription to the tick stream
and may send control commands back.
"""
import asyncio
import json
import websockets
from typing import Dict, Optional, Set
import logging

from .data_stream import BoundedTickStream
from .serialization import (
    serialize_candle, serialize_event, serialize_order, serialize_position,
    serialize_tick_result
)

logger = logging.getLogger(__name__)

# ============================================================================
# SERVER
# ============================================================================

class AsyncWebSocketServer:
    """
    WebSocket server for streaming simulation steps.

    Architecture:
    - Each client gets its own subscription to the shared tick stream
    - Every step is sent as one 'tick' message (price, candle, events, account)
    - Clients may send JSON commands, answered with 'command_response'
    """

    def __init__(
        self,
        tick_stream: BoundedTickStream,
        simulation: Optional['MarketSimulation'] = None,
        host: str = 'localhost',
        port: int = 8765,
        ledger_limit: int = 100
    ):
        self.tick_stream = tick_stream
        self.simulation = simulation
        self.host = host
        self.port = port
        self.ledger_limit = ledger_limit

        # Client management
        self.clients: Set = set()
        self.client_tasks: Dict = {}

        # Stats
        self.total_connections = 0
        self.messages_sent = 0

        logger.info(f"WebSocket server initialized on {host}:{port}")

    # ========================================================================
    # CONNECTION HANDLER
    # ========================================================================

    async def handler(self, websocket):
        """Handle individual client connection"""
        client_id = f"{websocket.remote_address[0]}:{websocket.remote_address[1]}"
        logger.info(f"Client connected: {client_id}")

        self.clients.add(websocket)
        self.total_connections += 1

        message_task = asyncio.create_task(self._handle_client_messages(websocket, client_id))
        bridge_task = asyncio.create_task(self._bridge_tick_stream(websocket, client_id))
        self.client_tasks[websocket] = bridge_task

        try:
            await asyncio.gather(message_task, bridge_task, return_exceptions=True)
        except asyncio.CancelledError:
            logger.info(f"Client handler cancelled: {client_id}")
        finally:
            message_task.cancel()
            bridge_task.cancel()
            self.clients.discard(websocket)
            self.client_tasks.pop(websocket, None)
            logger.info(f"Client cleaned up: {client_id}")

    async def _handle_client_messages(self, websocket, client_id: str):
        """Handle incoming commands from client"""
        try:
            async for message in websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    logger.error(f"Invalid JSON from client {client_id}")
                    continue
                try:
                    response = self.process_command(data)
                except Exception as e:
                    logger.error(f"Error processing message from {client_id}: {e}", exc_info=True)
                    response = {'type': 'command_response', 'action': data.get('action'),
                                'success': False, 'error': str(e)}
                await websocket.send(json.dumps(response))
        except websockets.ConnectionClosed:
            logger.info(f"Client {client_id} disconnected")
        finally:
            # Closing the socket ends the stream bridge too
            bridge_task = self.client_tasks.get(websocket)
            if bridge_task is not None:
                bridge_task.cancel()

    def process_command(self, data: dict) -> dict:
        """Apply one control command to the simulation"""
        action = data.get('action')
        response = {'type': 'command_response', 'action': action, 'success': False}
        sim = self.simulation
        if sim is None:
            response['error'] = 'no simulation attached'
            return response

        if action == 'place_order':
            result = sim.account.place_order(
                side=data['side'],
                order_type=data.get('type', 'market'),
                qty=float(data['qty']),
                price=data.get('price'),
                trigger=data.get('trigger'),
                sl_pct=data.get('sl_pct'),
                tp_pct=data.get('tp_pct'),
                slippage_pct=data.get('slippage_pct'),
                reduce_only=data.get('reduce_only')
            )
            response['success'] = not result.rejected
            if result.rejected:
                response['error'] = result.rejection_reason
            else:
                response['order'] = serialize_order(result.order)

        elif action == 'cancel_order':
            cancelled = sim.account.cancel_order(data['order_id'])
            response['success'] = cancelled is not None

        elif action == 'set_sltp':
            position = sim.account.set_stop_loss_take_profit(
                stop_loss=data.get('stop_loss'),
                take_profit=data.get('take_profit')
            )
            response['success'] = position is not None
            if position is not None:
                response['position'] = serialize_position(position, sim.account.risk_limits.max_leverage)

        elif action == 'close_pct':
            order = sim.account.close_pct(float(data.get('pct', 1.0)))
            response['success'] = order is not None
            if order is not None:
                response['order'] = serialize_order(order)

        elif action == 'reverse':
            result = sim.account.reverse_position()
            if result is None:
                response['error'] = 'no open position'
            elif result.rejected:
                response['error'] = result.rejection_reason
            else:
                response['success'] = True
                response['order'] = serialize_order(result.order)

        elif action == 'inject_event':
            event = sim.inject_event(data['event_type'])
            response['success'] = True
            response['event'] = serialize_event(event)

        elif action == 'set_timeframe':
            candles = sim.set_timeframe(int(data['tf_sec']))
            response['success'] = True
            response['candles'] = [serialize_candle(c) for c in candles]

        elif action in ('set_speed', 'set_volatility', 'set_volume_scale', 'set_event_rate'):
            getattr(sim, action)(float(data['value']))
            response['success'] = True

        else:
            response['error'] = f"unknown action: {action}"

        return response

    async def _bridge_tick_stream(self, websocket, client_id: str):
        """Bridge tick stream directly to WebSocket client"""
        try:
            logger.info(f"Starting tick bridge for client {client_id}")
            async for result in self.tick_stream.subscribe():
                try:
                    await websocket.send(json.dumps(serialize_tick_result(result, self.ledger_limit)))
                    self.messages_sent += 1
                except websockets.ConnectionClosed:
                    logger.info(f"Client {client_id} disconnected during tick bridge")
                    break
        except asyncio.CancelledError:
            logger.debug(f"Tick bridge cancelled for client {client_id}")
        except Exception as e:
            logger.error(f"Tick bridge error for client {client_id}: {e}", exc_info=True)

    # ========================================================================
    # SERVER CONTROL
    # ========================================================================

    async def start(self):
        """Start WebSocket server"""
        logger.info(f"Starting WebSocket server on {self.host}:{self.port}")

        async with websockets.serve(self.handler, self.host, self.port):
            logger.info("WebSocket server running")
            await asyncio.Future()  # Run forever

    async def shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down WebSocket server...")

        for task in self.client_tasks.values():
            task.cancel()

        close_tasks = [ws.close() for ws in self.clients]
        await asyncio.gather(*close_tasks, return_exceptions=True)

        self.clients.clear()
        self.client_tasks.clear()

        logger.info("WebSocket server shutdown complete")

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def get_stats(self) -> dict:
        return {
            'active_clients': len(self.clients),
            'total_connections': self.total_connections,
            'messages_sent': self.messages_sent,
            'stream_stats': self.tick_stream.get_stats().__dict__
        }
