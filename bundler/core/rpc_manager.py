"""
Multi-RPC HTTP Manager for Solana
JSON-RPC calls over HTTP with priority-ordered failover
"""

import asyncio
import itertools
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from bundler.core.config import RPCConfig, RPCEndpoint
from bundler.core.logger import get_logger
from bundler.core.metrics import LatencyTimer, get_metrics


logger = get_logger(__name__)
metrics = get_metrics()


class RPCError(Exception):
    """JSON-RPC call failed on every configured endpoint"""


@dataclass
class EndpointState:
    """Failure tracking for one endpoint"""
    endpoint: RPCEndpoint
    consecutive_failures: int = 0
    total_requests: int = 0
    total_errors: int = 0

    @property
    def is_healthy(self) -> bool:
        return self.consecutive_failures == 0


class RPCManager:
    """
    Sends JSON-RPC requests to the highest priority endpoint that answers

    Endpoints that keep failing are moved behind healthy ones until they
    answer again.

    Usage:
        async with RPCManager(config.rpc_config) as rpc:
            response = await rpc.call_http_rpc("getBalance", [address])
    """

    def __init__(self, config: RPCConfig):
        """
        Initialize RPC manager

        Args:
            config: RPC configuration
        """
        self.config = config
        self.endpoints: Dict[str, EndpointState] = {
            endpoint.label: EndpointState(endpoint=endpoint)
            for endpoint in config.endpoints
        }
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._request_ids = itertools.count(1)

        logger.info(
            "rpc_manager_initialized",
            endpoint_count=len(self.endpoints),
            endpoints=[ep.label for ep in config.endpoints]
        )

    async def start(self) -> None:
        """Open the shared HTTP session"""
        if self._http_session is not None:
            logger.warning("rpc_manager_already_running")
            return

        self._http_session = aiohttp.ClientSession(
            headers={"Content-Type": "application/json"}
        )
        logger.info("rpc_manager_started")

    async def stop(self) -> None:
        """Close the shared HTTP session"""
        if self._http_session is None:
            return

        await self._http_session.close()
        self._http_session = None
        logger.info("rpc_manager_stopped")

    async def __aenter__(self) -> "RPCManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def _ordered_endpoints(self) -> List[EndpointState]:
        """Endpoints under the failure threshold first, then by priority"""
        threshold = self.config.failover_threshold_errors
        return sorted(
            self.endpoints.values(),
            key=lambda s: (s.consecutive_failures >= threshold, s.endpoint.priority)
        )

    async def call_http_rpc(
        self,
        method: str,
        params: List[Any],
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Make an HTTP RPC call with automatic failover

        Args:
            method: JSON-RPC method name
            params: Method parameters
            timeout: Request timeout in seconds (defaults to the endpoint's)

        Returns:
            Full JSON-RPC response dict (with "result")

        Raises:
            RPCError: If all endpoints fail
        """
        if self._http_session is None:
            raise RuntimeError("HTTP session not initialized. Call start() first.")

        last_error: Optional[Exception] = None

        for state in self._ordered_endpoints():
            endpoint = state.endpoint
            state.total_requests += 1
            request_timeout = timeout or endpoint.timeout_ms / 1000

            try:
                with LatencyTimer(metrics, f"rpc_{method}"):
                    result = await asyncio.wait_for(
                        self._post(endpoint.url, method, params),
                        timeout=request_timeout
                    )

                if "error" in result:
                    error = result["error"]
                    message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
                    raise RPCError(f"RPC error: {message}")

                state.consecutive_failures = 0
                metrics.increment_counter("rpc_success", labels={"endpoint": endpoint.label})
                return result

            except (aiohttp.ClientError, asyncio.TimeoutError, RPCError, ValueError) as e:
                state.consecutive_failures += 1
                state.total_errors += 1
                metrics.increment_counter("rpc_errors", labels={"endpoint": endpoint.label})
                last_error = e

                logger.warning(
                    "http_rpc_call_failed",
                    endpoint=endpoint.label,
                    method=method,
                    error=str(e) or type(e).__name__,
                    consecutive_failures=state.consecutive_failures
                )

                if state.consecutive_failures == self.config.failover_threshold_errors:
                    logger.error(
                        "http_rpc_endpoint_failing_over",
                        endpoint=endpoint.label,
                        failures=state.consecutive_failures
                    )

        raise RPCError(f"All HTTP RPC endpoints failed for {method}. Last error: {last_error}")

    async def _post(self, url: str, method: str, params: List[Any]) -> Dict[str, Any]:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params
        }
        async with self._http_session.post(url, json=payload) as response:
            if response.status != 200:
                text = await response.text()
                raise RPCError(f"HTTP {response.status}: {text[:200]}")
            return await response.json(content_type=None)

    def get_health_stats(self) -> Dict[str, Dict[str, Any]]:
        """Per-endpoint request and failure counts"""
        return {
            label: {
                "url": state.endpoint.url,
                "priority": state.endpoint.priority,
                "is_healthy": state.is_healthy,
                "consecutive_failures": state.consecutive_failures,
                "total_requests": state.total_requests,
                "total_errors": state.total_errors
            }
            for label, state in self.endpoints.items()
        }
