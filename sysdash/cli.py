import argparse
import logging
import sys

from sysdash import __version__
from sysdash.config import DEFAULT_INTERVAL, DEFAULT_SAMPLE_DURATION, load_config, load_env
from sysdash.errors import ConfigError
from sysdash.monitor.logfile import ReportLog
from sysdash.monitor.monitor_ui import MonitorUI
from sysdash.monitor.sampler import ReportSampler

logger = logging.getLogger(__name__)


class SysdashArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = SysdashArgumentParser(
        prog="sysdash",
        description="Color-coded health report for a single Linux host",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sysdash                     # one report
  sysdash -w -i 10            # refresh every 10 seconds
  sysdash -w -l               # refresh and append each cycle to the log file
  sysdash -t 80 -n eth0       # CPU critical at 80%, report eth0 bandwidth

Environment Variables:
  SYSDASH_CONFIG           YAML config file
  SYSDASH_INTERVAL         refresh interval in seconds
  SYSDASH_SAMPLE_DURATION  sample window in seconds
  SYSDASH_INTERFACE        network interface
  SYSDASH_LOG_FILE         log file path
  SYSDASH_CPU_CRITICAL     CPU critical threshold
  SYSDASH_NO_TOOLS         set to 1 to skip iostat/mpstat/ifstat/ss/iotop
        """,
    )
    parser.add_argument("-w", "--watch", action="store_true", help="Refresh continuously")
    parser.add_argument(
        "-i",
        "--interval",
        type=float,
        metavar="SECONDS",
        help=f"Refresh interval in watch mode (default: {DEFAULT_INTERVAL:g})",
    )
    parser.add_argument(
        "-l", "--log", action="store_true", help="Append each report to the log file"
    )
    parser.add_argument(
        "-t",
        "--threshold",
        type=float,
        metavar="PERCENT",
        help="CPU critical threshold (default: 90)",
    )
    parser.add_argument(
        "-n", "--interface", metavar="IFACE", help="Network interface (default: auto-detect)"
    )
    parser.add_argument(
        "-s",
        "--sample",
        type=float,
        metavar="SECONDS",
        help=f"Sample window for rate metrics (default: {DEFAULT_SAMPLE_DURATION:g})",
    )
    parser.add_argument("-c", "--config", metavar="PATH", help="YAML config file")
    parser.add_argument("--log-file", metavar="PATH", help="Log file used with -l")
    parser.add_argument(
        "--no-tools", action="store_true", help="Never run iostat, mpstat, ifstat, ss or iotop"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug diagnostics")
    parser.add_argument("--version", "-V", action="version", version=f"sysdash {__version__}")
    return parser


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    # .env values must be visible before the config is built
    load_env()
    try:
        config = load_config(args)
    except ConfigError as e:
        parser.print_usage(sys.stderr)
        print(f"sysdash: error: {e}", file=sys.stderr)
        return 1

    logger.debug(f"Configuration: {config}")
    sampler = ReportSampler(config)
    report_log = ReportLog(config.log_file) if config.log_enabled else None
    ui = MonitorUI(sampler, report_log=report_log)

    try:
        if config.watch:
            return ui.run_watch(config.interval)
        return ui.run_once()
    except KeyboardInterrupt:
        print("\n❌ Operation cancelled", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
