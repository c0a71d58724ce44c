"""
Command-line interface for dtn_social.

Provides commands for running a routing policy over a trace, comparing
policies on the same input, and generating synthetic traces.
"""

import argparse
import logging
import os
import sys
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from .analysis.metrics import MetricsCollector, SimulationMetrics
from .routing.buffer import QueueMode
from .routing.policy import POLICY_NAMES
from .simulation.engine import SimulationEngine, SimulationConfig
from .simulation.generator import GeneratorConfig, MessageCreator, LAST_CONN_TIMESTAMP
from .simulation.trace import TraceEvent, format_event, read_trace, write_trace
from .social.parser import DATASETS, DatasetProfile, SocialProfile, load_social_profile
from .visualization.plots import SimulationPlotter

logger = logging.getLogger(__name__)


def resolve_profile(args) -> DatasetProfile:
    """Dataset preset, optionally overriding its population."""
    profile = DATASETS[args.dataset]
    if args.population is not None:
        profile = DatasetProfile(profile.name, args.population, profile.interest_count)
    return profile


def build_config(args, policy: str) -> SimulationConfig:
    return SimulationConfig(
        duration=args.duration,
        update_interval=args.interval,
        policy=policy,
        queue_mode=QueueMode(args.queue_mode),
        buffer_size=args.buffer_size,
        transmit_speed=args.speed,
        message_ttl=args.ttl,
        seed=args.seed,
    )


def simulate(
    social: SocialProfile,
    events: List[TraceEvent],
    config: SimulationConfig,
) -> Tuple[MetricsCollector, SimulationMetrics]:
    """Run one policy over a trace and return its collector and final metrics."""
    engine = SimulationEngine(social.contacts, config)
    collector = MetricsCollector(policy=config.policy)
    collector.attach(engine)

    for address in range(social.profile.population):
        engine.add_node(address)

    # Events are mutated by the scheduler, give each run its own copies
    engine.schedule(replace(event) for event in events)
    engine.run()

    metrics = collector.finalize(len(engine.nodes), engine.transfers_by_tier())
    return collector, metrics


def load_events(path: str) -> Optional[List[TraceEvent]]:
    try:
        return read_trace(path)
    except OSError as e:
        logger.error("Cannot read trace %s: %s", path, e)
        print(f"Cannot read trace: {e}", file=sys.stderr)
        return None


def run_simulation(args) -> int:
    """Run a single routing policy over a trace."""
    profile = resolve_profile(args)
    social = load_social_profile(profile, args.social, args.interests)
    events = load_events(args.trace)
    if events is None:
        return 1

    print(f"Running {args.policy} policy on {len(events)} trace events "
          f"({profile.population} users, {social.contacts.edge_count} contact edges)...")

    collector, metrics = simulate(social, events, build_config(args, args.policy))

    plotter = SimulationPlotter(args.output_dir)
    report = plotter.create_summary_report(metrics.to_dict())
    print("\n" + report)

    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)

        report_path = os.path.join(args.output_dir, "simulation_report.txt")
        with open(report_path, 'w') as f:
            f.write(report)
        print(f"\nReport saved to: {report_path}")

        metrics_path = os.path.join(args.output_dir, "metrics.json")
        with open(metrics_path, 'w') as f:
            f.write(metrics.to_json())
        print(f"Metrics saved to: {metrics_path}")

        timeline_path = os.path.join(args.output_dir, "timeline.csv")
        collector.export_to_csv(timeline_path)

        if args.plot:
            plot_path = os.path.join(args.output_dir, "deliveries.png")
            plotter.plot_delivery_curve(collector.get_timeline(), save_path=plot_path)

    return 0


def run_comparison(args) -> int:
    """Run several routing policies over the same trace."""
    profile = resolve_profile(args)
    social = load_social_profile(profile, args.social, args.interests)
    events = load_events(args.trace)
    if events is None:
        return 1

    results: Dict[str, dict] = {}
    for policy in args.policies:
        print(f"Running {policy} policy...")
        _, metrics = simulate(social, events, build_config(args, policy))
        results[policy] = metrics.to_dict()

    plotter = SimulationPlotter(args.output_dir)
    print()
    print(plotter.create_comparison_table(results))

    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        data_path = os.path.join(args.output_dir, "comparison.json")
        plotter.export_plot_data(results, data_path)
        print(f"\nComparison saved to: {data_path}")

        if args.plot:
            plot_path = os.path.join(args.output_dir, "comparison.png")
            plotter.plot_policy_comparison(results, save_path=plot_path)

    return 0


def parse_size_range(value: str):
    try:
        low, high = (int(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected '<min>,<max>', got {value!r}")
    return low, high


def run_generate(args) -> int:
    """Write a synthetic trace for a social network."""
    profile = resolve_profile(args)
    social = load_social_profile(profile, args.social)

    config = GeneratorConfig(
        seed=args.seed,
        num_hybrid_nodes=args.hybrid,
        num_mailboxes=args.mailboxes,
        msg_size_range=args.msg_size,
        daily_msgs_per_host=args.daily_msgs,
        only_nodes_with_contacts_send=args.only_contacts,
        end_time=args.end_time,
    )

    try:
        events = MessageCreator(social.contacts, config).generate()
    except ValueError as e:
        print(f"Cannot generate trace: {e}", file=sys.stderr)
        return 1

    if args.output:
        count = write_trace(events, args.output)
        print(f"Wrote {count} events to {args.output}")
    else:
        for event in events:
            print(format_event(event))

    return 0


def _add_dataset_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-d", "--dataset",
        choices=sorted(DATASETS),
        default="hyccups",
        help="Dataset preset for user and interest counts (default: hyccups)",
    )
    parser.add_argument(
        "--population",
        type=int,
        default=None,
        help="Override the number of users of the dataset",
    )
    parser.add_argument(
        "--social",
        type=str,
        default=None,
        help="Social network listing (one line per user, comma separated, 1-based)",
    )


def _add_simulation_arguments(parser: argparse.ArgumentParser) -> None:
    _add_dataset_arguments(parser)
    parser.add_argument("trace", help="Trace file of CONN and C events")
    parser.add_argument(
        "--interests",
        type=str,
        default=None,
        help="Users and interests listing",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Simulated time to run (default: until the last trace event)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Simulated time per step (default: 1)",
    )
    parser.add_argument(
        "--buffer-size",
        type=int,
        default=None,
        help="Buffer capacity per node in bytes (default: unbounded)",
    )
    parser.add_argument(
        "--speed",
        type=float,
        default=None,
        help="Transmit speed in bytes per time unit (default: instant)",
    )
    parser.add_argument(
        "--ttl",
        type=float,
        default=None,
        help="Message time-to-live (default: none)",
    )
    parser.add_argument(
        "--queue-mode",
        choices=[mode.value for mode in QueueMode],
        default=QueueMode.FIFO.value,
        help="Order in which buffered messages are offered (default: fifo)",
    )
    parser.add_argument(
        "-s", "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility",
    )
    parser.add_argument(
        "-o", "--output-dir",
        type=str,
        default=None,
        help="Directory for output files",
    )
    parser.add_argument(
        "--plot",
        action="store_true",
        help="Save plots to the output directory (requires matplotlib)",
    )


def main(argv: Optional[List[str]] = None):
    """Main entry point for CLI."""
    parser = argparse.ArgumentParser(
        prog="dtn-social",
        description="""
dtn_social - Social-aware routing for delay-tolerant networks

Replays contact traces against routing policies that prefer messages
originated or relayed by a node's social contacts, and compares them
with an epidemic baseline.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run one routing policy over a trace")
    _add_simulation_arguments(run_parser)
    run_parser.add_argument(
        "-p", "--policy",
        choices=POLICY_NAMES,
        default="tiered",
        help="Routing policy (default: tiered)",
    )

    # Compare command
    compare_parser = subparsers.add_parser("compare", help="Compare routing policies on one trace")
    _add_simulation_arguments(compare_parser)
    compare_parser.add_argument(
        "-p", "--policies",
        nargs="+",
        choices=POLICY_NAMES,
        default=list(POLICY_NAMES),
        help="Policies to compare (default: all)",
    )

    # Generate command
    generate_parser = subparsers.add_parser("generate", help="Generate a synthetic trace")
    _add_dataset_arguments(generate_parser)
    generate_parser.add_argument("--hybrid", type=int, default=0, help="Number of hybrid nodes")
    generate_parser.add_argument("--mailboxes", type=int, default=0, help="Number of mailboxes")
    generate_parser.add_argument("-s", "--seed", type=int, default=0, help="Random seed")
    generate_parser.add_argument(
        "--msg-size",
        type=parse_size_range,
        default=(100, 1000),
        help="Message size range as '<min>,<max>' (default: 100,1000)",
    )
    generate_parser.add_argument(
        "--daily-msgs",
        type=int,
        default=1,
        help="Messages per user per day (default: 1)",
    )
    generate_parser.add_argument(
        "--only-contacts",
        action="store_true",
        help="Only users with contacts send messages",
    )
    generate_parser.add_argument(
        "--end-time",
        type=int,
        default=LAST_CONN_TIMESTAMP,
        help=f"Last timestamp of the trace (default: {LAST_CONN_TIMESTAMP})",
    )
    generate_parser.add_argument("-o", "--output", type=str, default=None, help="Output trace file")

    # Version and logging
    parser.add_argument(
        "-v", "--version",
        action="store_true",
        help="Show version information",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging verbosity (default: WARNING)",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.version:
        from . import __version__
        print(f"dtn_social v{__version__}")
        return 0

    if args.command == "run":
        return run_simulation(args)
    elif args.command == "compare":
        return run_comparison(args)
    elif args.command == "generate":
        return run_generate(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
