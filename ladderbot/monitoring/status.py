"""
In-memory status board for lightweight dashboards, plus a console renderer.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ladderbot.core.utils import format_duration


class StatusBoard:
    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def update(self, symbol: str, payload: Dict[str, Any]) -> None:
        async with self._lock:
            self._data[symbol] = payload

    async def snapshot(self) -> Dict[str, Dict[str, Any]]:
        async with self._lock:
            return dict(self._data)


@dataclass
class StatusSnapshot:
    symbol: str
    phase: str
    running: bool
    cycle_id: int
    runtime_sec: float
    price: Optional[float] = None
    price_source: Optional[str] = None
    price_age_sec: Optional[float] = None
    average_price: Optional[float] = None
    increase_pct: Optional[float] = None
    take_profit_pct: float = 0.0
    progress_pct: float = 0.0
    total_orders: int = 0
    filled_orders: int = 0
    filled_quantity: float = 0.0
    filled_amount: float = 0.0
    unrealized_pnl: Optional[float] = None
    open_order_ids: List[str] = field(default_factory=list)
    no_fill_remaining_sec: Optional[float] = None
    feed_live: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _fmt(value: Optional[float], fmt: str = ".6g") -> str:
    if value is None:
        return "-"
    return format(value, fmt)


class StatusRenderer:
    """Prints a status panel to the console (stderr keeps stdout clean for pipes)."""

    def __init__(self, console: Optional[Console] = None) -> None:
        self.console = console or Console(stderr=True)

    def build(self, snap: StatusSnapshot) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style="bold cyan")
        table.add_column()
        table.add_row("Phase", f"{snap.phase} (cycle {snap.cycle_id})")
        table.add_row("Runtime", format_duration(snap.runtime_sec))
        price = _fmt(snap.price)
        if snap.price_source:
            price += f"  [dim]{snap.price_source}, {_fmt(snap.price_age_sec, '.1f')}s old[/dim]"
        table.add_row("Price", price)
        table.add_row("Feed", "[green]live[/green]" if snap.feed_live else "[red]stale[/red]")
        table.add_row("Average cost", _fmt(snap.average_price))
        if snap.increase_pct is not None:
            color = "green" if snap.increase_pct >= 0 else "red"
            table.add_row("Change", f"[{color}]{snap.increase_pct:+.3f}%[/{color}]")
        table.add_row(
            "Take-profit",
            f"{snap.progress_pct:.1f}% of {snap.take_profit_pct:g}%",
        )
        table.add_row("Orders", f"{snap.filled_orders}/{snap.total_orders} filled, {len(snap.open_order_ids)} open")
        table.add_row("Position", f"{_fmt(snap.filled_quantity)} for {_fmt(snap.filled_amount, '.2f')}")
        table.add_row("Unrealized PnL", _fmt(snap.unrealized_pnl, "+.4f"))
        if snap.no_fill_remaining_sec is not None:
            table.add_row("No-fill restart in", format_duration(snap.no_fill_remaining_sec))
        style = "green" if snap.running else "yellow"
        return Panel(table, title=f"[bold]{snap.symbol}[/bold]", border_style=style, expand=False)

    def render(self, snap: StatusSnapshot) -> None:
        self.console.print(self.build(snap))
