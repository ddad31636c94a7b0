"""Chart generation for load test runs."""

import matplotlib.pyplot as plt
from datetime import datetime
from typing import List, Optional

from ..core.models import ResourceSample


def generate_charts(
    response_times: List[float],
    samples: Optional[List[ResourceSample]] = None,
    output_path: Optional[str] = None,
    show: bool = False,
) -> Optional[str]:
    """
    Generate response time and resource charts for one run.

    Args:
        response_times: Elapsed seconds per request, in arrival order
        samples: Resource samples taken between bursts
        output_path: Path to save the chart (auto-generated if None)
        show: Whether to display the chart

    Returns:
        Path to saved chart file, or None if there was nothing to chart
    """
    if not response_times:
        print("No results to chart.")
        return None

    samples = samples or []
    fig, ((ax1, ax2), (ax3, ax4)) = plt.subplots(2, 2, figsize=(15, 12))
    fig.suptitle("Load Test Results", fontsize=16, fontweight="bold")

    # Per-request response times
    ax1.plot(range(1, len(response_times) + 1), response_times, "b-", linewidth=1)
    ax1.set_xlabel("Request")
    ax1.set_ylabel("Response Time (s)")
    ax1.set_title("Response Time per Request")
    ax1.grid(True, alpha=0.3)

    # Distribution
    ax2.hist(response_times, bins=5, color="g", alpha=0.7, edgecolor="black")
    ax2.set_xlabel("Response Time (s)")
    ax2.set_ylabel("Requests")
    ax2.set_title("Response Time Distribution")
    ax2.grid(True, alpha=0.3)

    if samples:
        x_values = [
            s.elapsed if s.elapsed is not None else i for i, s in enumerate(samples)
        ]
        x_label = "Elapsed (s)" if samples[0].elapsed is not None else "Sample"

        ax3.plot(x_values, [s.memory_usage for s in samples], "r-o", label="Memory", linewidth=2, markersize=4)
        ax3.plot(x_values, [s.peak_memory for s in samples], "m--", label="Peak Memory", linewidth=2)
        ax3.set_xlabel(x_label)
        ax3.set_ylabel("Memory (MB)")
        ax3.set_title("Memory Usage")
        ax3.legend()
        ax3.grid(True, alpha=0.3)

        ax4.plot(x_values, [s.user_time for s in samples], "c-o", label="User", linewidth=2, markersize=4)
        ax4.plot(x_values, [s.system_time for s in samples], "y-o", label="System", linewidth=2, markersize=4)
        ax4.set_xlabel(x_label)
        ax4.set_ylabel("CPU Time (s)")
        ax4.set_title("CPU Time")
        ax4.legend()
        ax4.grid(True, alpha=0.3)
    else:
        for ax in (ax3, ax4):
            ax.text(0.5, 0.5, "Resource logging disabled", ha="center", va="center")
            ax.set_axis_off()

    plt.tight_layout()

    if output_path is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_path = f"loadtest_results_{timestamp}.png"

    plt.savefig(output_path, dpi=300, bbox_inches="tight")
    print(f"\nChart saved to: {output_path}")

    if show:
        plt.show()
    plt.close(fig)

    return output_path
