"""Concurrent latency probe for candidate RPC endpoints."""

from __future__ import annotations

import concurrent.futures
import csv
import io
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Sequence

from .config import RPCConfig
from .rpc_client import EVMRPCClient, RPCError, RPCTransportError

logger = logging.getLogger(__name__)

DEFAULT_BSC_NODES = (
    "https://bsc-dataseed.binance.org/",
    "https://bsc-dataseed1.defibit.io/",
    "https://bsc-dataseed1.ninicoin.io/",
    "https://bsc-dataseed2.defibit.io/",
    "https://bsc-dataseed3.defibit.io/",
    "https://bsc-dataseed4.defibit.io/",
    "https://bsc-dataseed2.ninicoin.io/",
    "https://bsc-dataseed3.ninicoin.io/",
    "https://bsc-dataseed4.ninicoin.io/",
    "https://bsc-dataseed1.binance.org/",
    "https://bsc-dataseed2.binance.org/",
    "https://bsc-dataseed3.binance.org/",
    "https://bsc-dataseed4.binance.org/",
)
OUTPUT_FORMATS = ("text", "json", "csv")
RECOMMENDED_NODES = 3


@dataclass(frozen=True)
class NodeResult:
    url: str
    response_time: float | None = None
    block_height: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def response_ms(self) -> float:
        return (self.response_time or 0.0) * 1000


def check_node(
    url: str, timeout: float, *, clock: Callable[[], float] = time.perf_counter
) -> NodeResult:
    """Fetch the block height from ``url`` and time the round trip."""

    client = EVMRPCClient(RPCConfig(endpoint=url, timeout=timeout))
    start = clock()
    try:
        height = client.eth_block_number(timeout=timeout)
        elapsed = clock() - start
    except (RPCError, RPCTransportError) as exc:
        logger.debug("Node %s failed: %s", url, exc)
        return NodeResult(url=url, error=str(exc))
    finally:
        client.close()
    return NodeResult(url=url, response_time=elapsed, block_height=height)


def probe_nodes(
    urls: Sequence[str],
    timeout: float = 5.0,
    *,
    checker: Callable[[str, float], NodeResult] = check_node,
) -> List[NodeResult]:
    """Probe every URL in parallel and return the reachable ones, fastest first."""

    if not urls:
        return []
    results: List[NodeResult] = []
    with concurrent.futures.ThreadPoolExecutor(max_workers=len(urls)) as pool:
        futures = [pool.submit(checker, url, timeout) for url in urls]
        for future in concurrent.futures.as_completed(futures):
            results.append(future.result())

    reachable = [result for result in results if result.ok]
    logger.info("%d of %d nodes responded", len(reachable), len(urls))
    return sorted(reachable, key=lambda result: result.response_time or 0.0)


def format_json(results: Sequence[NodeResult]) -> str:
    payload = [
        {
            "url": result.url,
            "response_time_ms": round(result.response_ms, 2),
            "block_height": result.block_height,
        }
        for result in results
    ]
    return json.dumps(payload, indent=2)


def format_csv(results: Sequence[NodeResult]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(["URL", "Response Time (ms)", "Block Height"])
    for result in results:
        writer.writerow([result.url, f"{result.response_ms:.2f}", result.block_height])
    return buffer.getvalue()


def format_text(results: Sequence[NodeResult], *, show_stats: bool = False) -> str:
    lines = [f"Node check results ({len(results)} reachable):", ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"{index}. {result.url}")
        lines.append(f"   response time: {result.response_ms:.2f} ms")
        lines.append(f"   block height: {result.block_height}")
        lines.append("")

    if not results:
        lines.append("No node responded.")
        return "\n".join(lines)

    if show_stats:
        average = sum(result.response_ms for result in results) / len(results)
        fastest, slowest = results[0], results[-1]
        lines.append("Statistics:")
        lines.append(f"- average response time: {average:.2f} ms")
        lines.append(f"- fastest: {fastest.url} ({fastest.response_ms:.2f} ms)")
        lines.append(f"- slowest: {slowest.url} ({slowest.response_ms:.2f} ms)")
        lines.append("")

    lines.append("Recommended nodes:")
    for index, result in enumerate(results[:RECOMMENDED_NODES], start=1):
        lines.append(f"{index}. {result.url} ({result.response_ms:.2f} ms)")
    return "\n".join(lines)


def format_results(results: Sequence[NodeResult], output_format: str, *, show_stats: bool = False) -> str:
    if output_format == "json":
        return format_json(results)
    if output_format == "csv":
        return format_csv(results)
    return format_text(results, show_stats=show_stats)
