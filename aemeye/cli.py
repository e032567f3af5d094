"""aem-eye command line.

Reads hosts from a file (or stdin), probes them concurrently and prints every
target whose body matches one of the detection patterns.

Usage:
  aem-eye -u hosts.txt
  cat hosts.txt | aem-eye -r 200 -c 50 -t 8
  aem-eye -u hosts.txt -p login='id="login-box"' -p dam='href="/content/dam'
Options:
  -u / --hosts        File with one host or URL per line ('-' or omitted: stdin)
  -r / --rate         Maximum new requests per second (default 1000)
  -c / --concurrency  Number of probe workers, each with one request in flight (default 100)
  -t / --timeout      Per-request timeout in seconds (default 5)
  -w / --workers      Scheduler threads for output and loop helpers (default 10)
  --max-runtime       Stop the whole run after this many seconds (0 = never)
  -p / --pattern      NAME=REGEX detection pattern, repeatable (default: AEM)
  --metrics-port      Serve Prometheus metrics on this port (0 = off)
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from . import __version__, configure_logging
from .config import ProbeConfig
from .exceptions import AemEyeError, InputSourceError, InvalidPatternError
from .metrics import serve_metrics
from .patterns import parse_pattern_args
from .pipeline import Pipeline, StdoutSink, install_scheduler_executor
from .utils.hostfile import read_hosts

logger = logging.getLogger('aemeye.cli')

EXIT_OK = 0
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    # numeric options stay strings; aemeye.config parses them with fallbacks
    ap = argparse.ArgumentParser(prog='aem-eye', description='Fast concurrent Adobe Experience Manager detection')
    ap.add_argument('-u', '--hosts', default=None, help='File with one host per line (default: stdin)')
    ap.add_argument('-r', '--rate', default=None, help='Maximum requests per second (default 1000)')
    ap.add_argument('-c', '--concurrency', default=None, help='Number of concurrent probe workers (default 100)')
    ap.add_argument('-t', '--timeout', default=None, help='Per-request timeout in seconds (default 5)')
    ap.add_argument('-w', '--workers', default=None, help='Scheduler threads for output and loop helpers (default 10)')
    ap.add_argument('--max-runtime', default=None, help='Stop after this many seconds (default: no limit)')
    ap.add_argument('-p', '--pattern', action='append', default=None, metavar='NAME=REGEX',
                    help='Detection pattern; repeat for several (default: AEM fingerprints)')
    ap.add_argument('--metrics-port', default=None, help='Expose Prometheus metrics on this port (default: off)')
    ap.add_argument('-v', '--verbose', action='count', default=0, help='-v for INFO, -vv for DEBUG on stderr')
    ap.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return ap


def _install_signal_handlers(pipeline: Pipeline) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, pipeline.cancel)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops / non-main threads: KeyboardInterrupt still ends the run
            pass


async def _run(pipeline: Pipeline, hosts: List[str]) -> int:
    install_scheduler_executor(pipeline.config.thread_count)
    _install_signal_handlers(pipeline)
    stats = await pipeline.run(hosts)
    # hitting --max-runtime is a normal end of run
    return EXIT_INTERRUPTED if stats.stop_reason == 'cancelled' else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    level = None
    if args.verbose >= 2:
        level = 'DEBUG'
    elif args.verbose == 1:
        level = 'INFO'
    configure_logging(level)

    config = ProbeConfig.from_values(
        rate=args.rate,
        concurrency=args.concurrency,
        timeout=args.timeout,
        thread_count=args.workers,
        max_runtime=args.max_runtime,
        metrics_port=args.metrics_port,
    )
    try:
        patterns = parse_pattern_args(args.pattern)
        hosts = read_hosts(args.hosts)
    except (InputSourceError, InvalidPatternError) as exc:
        logger.error('%s', exc.message)
        logger.debug('error details: %s', exc.to_dict())
        return exc.exit_code

    if config.metrics_port:
        try:
            serve_metrics(config.metrics_port)
            logger.info('metrics available on 127.0.0.1:%d', config.metrics_port)
        except OSError as exc:
            logger.warning('could not start metrics server on port %d: %s', config.metrics_port, exc)

    pipeline = Pipeline(config, patterns, StdoutSink())
    try:
        return asyncio.run(_run(pipeline, hosts))
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except AemEyeError as exc:
        logger.error('%s', exc.message)
        logger.debug('error details: %s', exc.to_dict())
        return exc.exit_code


if __name__ == '__main__':
    sys.exit(main())
