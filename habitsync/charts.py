from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import List

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

from .stats import Bucket  # noqa: E402


@dataclass(frozen=True)
class StatsCard:
    habit_name: str
    period_label: str
    total_due: int
    total_complete: int
    completion_percent: float
    streak: int


def render_stats_card_png(card: StatsCard) -> bytes:
    fig = plt.figure(figsize=(9, 5), dpi=160)
    ax = fig.add_subplot(111)
    ax.axis("off")

    title = f"{card.habit_name}: {card.period_label}"
    lines = [
        f"Due: {card.total_due}",
        f"Completed: {card.total_complete}",
        f"Completion: {card.completion_percent:.2f}%",
        f"Current streak: {card.streak}",
    ]

    ax.text(0.03, 0.92, title, fontsize=18, fontweight="bold", va="top")
    y = 0.80
    for ln in lines:
        ax.text(0.05, y, ln, fontsize=14, va="top")
        y -= 0.10

    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight", pad_inches=0.3)
    plt.close(fig)
    return buf.getvalue()


def render_completion_png(buckets: List[Bucket], title: str = "Completion") -> bytes:
    fig = plt.figure(figsize=(9, 4.5), dpi=160)
    ax = fig.add_subplot(111)

    xs = [b.period_start for b in buckets]
    ax.bar(xs, [b.due for b in buckets], label="Due", color="#d0d7de")
    ax.bar(xs, [b.complete for b in buckets], label="Completed", color="#2da44e")
    ax.set_title(title)
    ax.set_xlabel("Period")
    ax.set_ylabel("Occurrences")
    ax.legend(loc="upper right")

    fig.autofmt_xdate()

    buf = BytesIO()
    fig.savefig(buf, format="png", bbox_inches="tight", pad_inches=0.3)
    plt.close(fig)
    return buf.getvalue()
