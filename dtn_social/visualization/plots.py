"""
Charts and text reports for routing runs.

Covers cumulative deliveries over simulated time, delivery and overhead
per routing policy, and a plain-text report of a single run.
"""

from typing import Any, Dict, List, Optional
import json


class SimulationPlotter:
    """
    Renders run metrics as charts or text.

    matplotlib is optional. Without it the plot methods return the series
    they would have drawn.
    """

    def __init__(self, output_dir: Optional[str] = None):
        """
        Args:
            output_dir: Where plots and data files go. Defaults to the
                working directory.
        """
        self.output_dir = output_dir or "."
        self._has_matplotlib = self._check_matplotlib()

    def _check_matplotlib(self) -> bool:
        """Select the headless backend if matplotlib is installed."""
        try:
            import matplotlib
            matplotlib.use("Agg")
            return True
        except ImportError:
            return False

    def plot_delivery_curve(
        self,
        timeline: List[Dict[str, Any]],
        save_path: Optional[str] = None,
    ) -> Optional[Any]:
        """Plot created and delivered message totals over time.

        Args:
            timeline: Step metrics dicts with 'time', 'total_created' and
                'total_delivered' keys.
            save_path: Optional file path to save the plot image.

        Returns:
            The figure, or the plotted series when matplotlib is missing.
            An error dict when the timeline is empty.
        """
        if not timeline:
            return {"error": "No timeline data"}

        times = [t["time"] for t in timeline]
        created = [t.get("total_created", 0) for t in timeline]
        delivered = [t.get("total_delivered", 0) for t in timeline]

        data = {
            "times": times,
            "total_created": created,
            "total_delivered": delivered,
        }

        if not self._has_matplotlib:
            return data

        import matplotlib.pyplot as plt

        fig, ax = plt.subplots(figsize=(12, 5))

        ax.step(times, created, 'b-', where='post', label='Created', linewidth=2)
        ax.step(times, delivered, 'g-', where='post', label='Delivered', linewidth=2)

        ax.set_xlabel('Simulated Time')
        ax.set_ylabel('Messages')
        ax.set_title('Message Delivery Over Time')
        ax.legend()
        ax.grid(True, alpha=0.3)

        plt.tight_layout()

        if save_path:
            plt.savefig(save_path, dpi=150, bbox_inches='tight')

        return fig

    def plot_policy_comparison(
        self,
        metrics_by_policy: Dict[str, Dict[str, Any]],
        save_path: Optional[str] = None,
    ) -> Optional[Any]:
        """Plot delivery probability and overhead per routing policy.

        Args:
            metrics_by_policy: Mapping of policy name to its metrics dict.
            save_path: Optional file path to save the plot image.

        Returns:
            The figure, or the plotted series when matplotlib is missing.
        """
        policies = list(metrics_by_policy.keys())
        data = {
            "policies": policies,
            "delivery_probability": [
                metrics_by_policy[p].get("delivery_probability", 0.0) for p in policies
            ],
            "overhead_ratio": [
                metrics_by_policy[p].get("overhead_ratio") or 0.0 for p in policies
            ],
        }

        if not self._has_matplotlib:
            return data

        import matplotlib.pyplot as plt

        fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 5))

        ax1.bar(policies, data["delivery_probability"], color='steelblue')
        ax1.set_ylabel('Delivery Probability')
        ax1.set_title('Delivery by Policy')
        ax1.set_ylim(0, 1)

        ax2.bar(policies, data["overhead_ratio"], color='orange')
        ax2.set_ylabel('Overhead Ratio')
        ax2.set_title('Overhead by Policy')

        plt.tight_layout()

        if save_path:
            plt.savefig(save_path, dpi=150, bbox_inches='tight')

        return fig

    def export_plot_data(
        self,
        data: Dict[str, Any],
        filepath: str,
    ) -> None:
        """Dump metrics or plot series as JSON."""
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2, default=str)

    def create_summary_report(
        self,
        metrics: Dict[str, Any],
        save_path: Optional[str] = None,
    ) -> str:
        """
        Format one run's metrics as a text report.

        Args:
            metrics: Output of ``SimulationMetrics.to_dict``.
            save_path: Also write the report to this file.
        """
        overhead = metrics.get('overhead_ratio')
        lines = [
            "=" * 60,
            "DTN ROUTING SIMULATION REPORT",
            "=" * 60,
            "",
            "SIMULATION OVERVIEW",
            "-" * 40,
            f"Simulation ID: {metrics.get('simulation_id', 'N/A')}",
            f"Routing Policy: {metrics.get('policy', 'N/A')}",
            f"Total Steps: {metrics.get('total_steps', 0)}",
            f"Simulated Time: {metrics.get('sim_time', 0)}",
            f"Nodes: {metrics.get('node_count', 0)}",
            "",
            "MESSAGES",
            "-" * 40,
            f"Created: {metrics.get('created', 0)}",
            f"Transfers Started: {metrics.get('started', 0)}",
            f"Relayed: {metrics.get('relayed', 0)}",
            f"Aborted: {metrics.get('aborted', 0)}",
            f"Dropped: {metrics.get('dropped', 0)}",
            f"Evicted: {metrics.get('evicted', 0)}",
            f"Expired: {metrics.get('expired', 0)}",
            f"Delivered: {metrics.get('delivered', 0)}",
            "",
            "DELIVERY",
            "-" * 40,
            f"Delivery Probability: {metrics.get('delivery_probability', 0):.4f}",
            f"Overhead Ratio: {overhead:.4f}" if overhead is not None else "Overhead Ratio: N/A",
            f"Latency (avg / median): {metrics.get('latency_avg', 0):.2f} / "
            f"{metrics.get('latency_median', 0):.2f}",
            f"Hop Count (avg / median): {metrics.get('hop_count_avg', 0):.2f} / "
            f"{metrics.get('hop_count_median', 0):.2f}",
        ]

        tiers = metrics.get('transfers_by_tier', {})
        if tiers:
            lines.extend(["", "Transfers by Tier:"])
            for tier, count in tiers.items():
                lines.append(f"  - {tier}: {count}")

        lines.extend([
            "",
            "=" * 60,
            "END OF REPORT",
            "=" * 60,
        ])

        report = "\n".join(lines)

        if save_path:
            with open(save_path, 'w') as f:
                f.write(report)

        return report

    def create_comparison_table(self, metrics_by_policy: Dict[str, Dict[str, Any]]) -> str:
        """Side by side delivery statistics, one row per policy."""
        header = f"{'policy':<10}{'created':>9}{'delivered':>11}{'prob':>8}{'overhead':>10}{'latency':>10}"
        lines = [header, "-" * len(header)]
        for policy, metrics in metrics_by_policy.items():
            overhead = metrics.get('overhead_ratio')
            overhead_text = f"{overhead:.2f}" if overhead is not None else "N/A"
            lines.append(
                f"{policy:<10}{metrics.get('created', 0):>9}{metrics.get('delivered', 0):>11}"
                f"{metrics.get('delivery_probability', 0):>8.3f}{overhead_text:>10}"
                f"{metrics.get('latency_avg', 0):>10.1f}"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"SimulationPlotter(matplotlib={'available' if self._has_matplotlib else 'not available'})"
