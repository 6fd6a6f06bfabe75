#!/usr/bin/env python3
"""
Price Feed Telemetry - Command Line Client

Terminal front end for the price feed client layer: prints live (or
fallback) quotes and cache statistics, runs latency benchmarks, watches the
stats stream into the history buffer, and probes upstream status.

Usage examples:
  pricefeed prices
  pricefeed prices --symbol AAPL
  pricefeed stats
  pricefeed benchmark --symbols AAPL,MSFT --export json
  pricefeed watch --duration 60 --export csv
  pricefeed status
  pricefeed breaker-reset
  pricefeed --base-url http://prices.internal:8000 prices
"""

import argparse
import asyncio
import sys
from typing import Dict, List, Optional

from core.config import settings, validate_configuration
from core.errors import InvalidArgumentError
from core.logging import logger, set_log_level
from core.schemas import PriceQuote, StreamEvent
from feeds.api_client import PriceFeedClient
from feeds.ws_client import create_stats_stream
from services.api_status import ApiStatusMonitor
from services.benchmark import BenchmarkRunner
from services.stats_engine import latency_distribution
from storage.export import EXPORT_FORMATS, export_benchmark_results, export_metrics_history
from storage.metrics_history import MetricsHistoryBuffer


# ============================================
# Output Helpers
# ============================================

def _print_quotes(quotes: Dict[str, PriceQuote]) -> None:
    print(f"{'SYMBOL':<8}{'PRICE':>12}{'BID':>12}{'ASK':>12}{'VOLUME':>14}{'LAT(us)':>10}  SOURCE")
    for symbol in sorted(quotes):
        q = quotes[symbol]
        print(
            f"{symbol:<8}{q.price:>12.2f}{q.bid:>12.2f}{q.ask:>12.2f}"
            f"{q.volume:>14,.0f}{q.latency_us:>10.3f}  {q.source}"
        )


def _describe(event: StreamEvent) -> str:
    if event.kind == "snapshot" and event.snapshot is not None:
        s = event.snapshot
        return (
            f"hits={s.cache_hits} misses={s.cache_misses} stale={s.stale_hits} "
            f"hit_rate={s.hit_rate_percent:.2f}% avg={s.avg_latency_us:.3f}us "
            f"p95={s.p95_latency_us:.3f}us p99={s.p99_latency_us:.3f}us size={s.cache_size}"
        )
    if event.kind == "reconnect_scheduled":
        return f"reconnecting in {event.delay_ms}ms (attempt {event.attempt})"
    return event.error or event.state.value


# ============================================
# Commands
# ============================================

async def cmd_prices(args: argparse.Namespace) -> int:
    async with PriceFeedClient(base_url=args.base_url) as client:
        if args.symbol:
            quote = await client.fetch_price(args.symbol)
            if quote is None:
                print(f"No data for {args.symbol.upper()}")
                return 1
            _print_quotes({quote.symbol: quote})
        else:
            _print_quotes(await client.fetch_all_prices())
    return 0


async def cmd_stats(args: argparse.Namespace) -> int:
    async with PriceFeedClient(base_url=args.base_url) as client:
        stats = await client.fetch_stats()
    print(f"Cache hits:     {stats.cache_hits:,}")
    print(f"Cache misses:   {stats.cache_misses:,}")
    print(f"Total requests: {stats.total_requests:,}")
    print(f"Hit rate:       {stats.hit_rate_percent:.2f}%")
    print(f"Avg latency:    {stats.avg_latency_us:.3f}us")
    return 0


async def cmd_benchmark(args: argparse.Namespace) -> int:
    symbols = _parse_symbols(args.symbols)
    async with PriceFeedClient(base_url=args.base_url) as client:
        runner = BenchmarkRunner(
            client,
            cached_iterations=args.iterations,
            uncached_iterations=args.uncached_iterations,
        )
        results = []
        for symbol in symbols:
            result = await runner.run(symbol)
            results.append(result)
            for bucket in latency_distribution(runner.cached_samples[result.symbol]):
                print(f"[{result.symbol}] {bucket.label:>10}: {bucket.count:>5} ({bucket.percentage:.1f}%)")

    print(f"\n{'SYMBOL':<8}{'CACHED(us)':>14}{'UNCACHED(us)':>16}{'SPEEDUP':>10}{'P95':>12}{'P99':>12}")
    for r in results:
        print(
            f"{r.symbol:<8}{r.cached_latency_us:>14.3f}{r.uncached_latency_us:>16.3f}"
            f"{r.speedup_factor:>9.2f}x{r.p95_latency_us:>12.3f}{r.p99_latency_us:>12.3f}"
        )

    if args.export:
        path = export_benchmark_results(results, args.export, directory=args.export_dir)
        print(f"\nExported {path}")
    return 0


async def cmd_watch(args: argparse.Namespace) -> int:
    history = MetricsHistoryBuffer(args.capacity)
    stream = create_stats_stream(args.base_url, history=history)
    events = await stream.events.subscribe(stream.TOPIC)

    async def printer() -> None:
        while True:
            event = await events.get()
            print(f"[{event.timestamp:%H:%M:%S}] {event.kind:<20} {_describe(event)}")

    printer_task = asyncio.create_task(printer(), name="stream_printer")
    await stream.connect()
    try:
        if args.duration > 0:
            try:
                await asyncio.wait_for(stream.wait_closed(), timeout=args.duration)
            except asyncio.TimeoutError:
                print("Duration reached; stopping.")
        else:
            await stream.wait_closed()
    finally:
        await stream.disconnect()
        printer_task.cancel()
        await stream.events.unsubscribe(stream.TOPIC, events)

    print(f"Collected {len(history)} snapshots")
    if stream.last_error:
        print(f"Last error: {stream.last_error}")

    if args.export:
        path = export_metrics_history(history.snapshots(), args.export, directory=args.export_dir)
        print(f"Exported {path}")
    return 0


async def cmd_status(args: argparse.Namespace) -> int:
    monitor = ApiStatusMonitor(base_url=args.base_url)
    health, source, breaker = await asyncio.gather(
        monitor.check_health(),
        monitor.check_data_source(),
        monitor.fetch_circuit_breaker_status(),
    )

    print(f"Health:      {health.status if health else 'unreachable'}")
    print(f"Data source: {source.status} - {source.message}")
    if breaker is None:
        print("Breaker:     unavailable")
    else:
        print(f"Breaker:     {breaker.state} ({breaker.name})")
        print(
            f"  calls={breaker.total_calls} ok={breaker.successful_calls} "
            f"failed={breaker.failed_calls} rejected={breaker.rejected_calls} "
            f"success_rate={breaker.success_rate_percent:.1f}%"
        )
        cfg = breaker.config
        print(
            f"  failure_threshold={cfg.failure_threshold} success_threshold={cfg.success_threshold} "
            f"timeout={cfg.timeout_seconds:.0f}s half_open_max_calls={cfg.half_open_max_calls}"
        )
    return 0 if health else 1


async def cmd_breaker_reset(args: argparse.Namespace) -> int:
    ok = await ApiStatusMonitor(base_url=args.base_url).reset_circuit_breaker()
    print("Circuit breaker reset" if ok else "Circuit breaker reset failed")
    return 0 if ok else 1


# ============================================
# Entry Point
# ============================================

def _parse_symbols(raw: Optional[str]) -> List[str]:
    if not raw:
        return settings.symbols_list
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pricefeed", description="Price feed telemetry client")
    parser.add_argument("--base-url", default=None, help=f"Upstream base URL (default: {settings.api_base_url})")
    parser.add_argument("--log-level", default=None, help="Logging level (default: from LOG_LEVEL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("prices", help="Print current quotes")
    p.add_argument("--symbol", default=None, help="Single symbol (default: all)")
    p.set_defaults(handler=cmd_prices)

    p = sub.add_parser("stats", help="Print cache statistics")
    p.set_defaults(handler=cmd_stats)

    p = sub.add_parser("benchmark", help="Compare cached and uncached latency")
    p.add_argument("--symbols", default=None, help="Comma-separated symbols (default: SUPPORTED_SYMBOLS)")
    p.add_argument("--iterations", type=int, default=None, help="Cached samples per symbol")
    p.add_argument("--uncached-iterations", type=int, default=None, help="Uncached samples per symbol")
    p.add_argument("--export", choices=EXPORT_FORMATS, default=None, help="Write results to a file")
    p.add_argument("--export-dir", default=None, help=f"Export directory (default: {settings.export_dir})")
    p.set_defaults(handler=cmd_benchmark)

    p = sub.add_parser("watch", help="Stream cache metrics into the history buffer")
    p.add_argument("--duration", type=int, default=0, help="Seconds to run (0 = until the stream gives up)")
    p.add_argument("--capacity", type=int, default=None, help="History capacity (default: HISTORY_CAPACITY)")
    p.add_argument("--export", choices=EXPORT_FORMATS, default=None, help="Write history to a file on exit")
    p.add_argument("--export-dir", default=None, help=f"Export directory (default: {settings.export_dir})")
    p.set_defaults(handler=cmd_watch)

    p = sub.add_parser("status", help="Probe health, data source and circuit breaker")
    p.set_defaults(handler=cmd_status)

    p = sub.add_parser("breaker-reset", help="Ask the upstream to reset its circuit breaker")
    p.set_defaults(handler=cmd_breaker_reset)

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        set_log_level(args.log_level)
    validate_configuration()
    try:
        return await args.handler(args)
    except InvalidArgumentError as e:
        logger.error(str(e))
        return 2


def run() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n[Info] Interrupted. Bye.")
        sys.exit(0)


if __name__ == "__main__":
    run()
