from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from netbattle.application.services.event_bus import EventBus
from netbattle.domain.events import (
    ActionQueued,
    BattleEnded,
    BattleForfeited,
    BattleStarted,
    RoundExtended,
    RoundResolved,
)
from netbattle.domain.models.round_report import BattleOutcome, RoundReport, SideRoundReport


_BORDER_START = "cyan"
_BORDER_ROUND = "yellow"
_BORDER_END = "green"
_BORDER_FORFEIT = "red"


def describe_side(side: SideRoundReport, opponent: SideRoundReport) -> list[str]:
    """Plain-language lines for one side's half of a resolved round."""
    lines: list[str] = []
    used = " + ".join(side.used) if side.used else "nothing"
    lines.append(f"{side.actor_id} used {used}.")
    if side.cancelled_by_barrier:
        lines.append(f"{opponent.actor_id}'s barrier cancelled the attack.")
    elif side.dodged:
        lines.append(f"{opponent.actor_id} dodged!")
    elif side.damage_dealt or side.absorbed:
        crit = " Critical hit!" if side.crit else ""
        absorbed = f" ({side.absorbed} absorbed)" if side.absorbed else ""
        lines.append(f"Dealt {side.damage_dealt} damage{absorbed}.{crit}")
    if side.recovery:
        lines.append(f"Recovered {side.recovery} HP.")
    if side.holy_tick:
        lines.append(f"Holy panel restored {side.holy_tick} HP.")
    if side.poison_tick:
        lines.append(f"Poison dealt {side.poison_tick} damage.")
    if side.stunned_next_round:
        lines.append("Stunned for the next round.")
    return lines


def _outcome_line(report: RoundReport) -> str:
    if report.outcome == BattleOutcome.DRAW:
        return "Both combatants were deleted. Draw."
    if report.winner_id:
        return f"{report.winner_id} wins!"
    return ""


class BattleConsoleRenderer:
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def attach(self, event_bus: EventBus) -> None:
        event_bus.subscribe(BattleStarted, self.on_started, priority=200)
        event_bus.subscribe(ActionQueued, self.on_queued, priority=200)
        event_bus.subscribe(RoundExtended, self.on_extended, priority=200)
        event_bus.subscribe(RoundResolved, self.on_round, priority=200)
        event_bus.subscribe(BattleEnded, self.on_ended, priority=200)
        event_bus.subscribe(BattleForfeited, self.on_forfeited, priority=200)

    def on_started(self, event: BattleStarted) -> None:
        self.console.print(
            Panel.fit(
                f"{event.first_actor_id} vs {event.second_actor_id}",
                title=f"[bold cyan]{event.kind.value.title()}[/bold cyan]",
                border_style=_BORDER_START,
            )
        )

    def on_queued(self, event: ActionQueued) -> None:
        self.console.print(f"[dim]{event.actor_id} queued {' + '.join(event.chip_names)}.[/dim]")

    def on_extended(self, event: RoundExtended) -> None:
        self.console.print(f"[dim]Nobody acted in round {event.round_number}; the round was extended.[/dim]")

    def on_round(self, event: RoundResolved) -> None:
        self.render_report(event.report)

    def on_ended(self, event: BattleEnded) -> None:
        self.render_report(event.report)
        body = Table.grid(padding=(0, 1))
        body.add_column(style="bold yellow", justify="right")
        body.add_column(style="white")
        body.add_row("Result", _outcome_line(event.report))
        body.add_row("Rounds", str(event.report.round_number))
        if event.records_updated:
            body.add_row("Records", "updated")
        if event.rewards is not None:
            body.add_row("Zenny", f"+{event.rewards.zenny}")
            if event.rewards.dropped_chip:
                body.add_row("Drop", event.rewards.dropped_chip)
            if event.rewards.completed_task:
                body.add_row("Task", f"{event.rewards.completed_task} (+{event.rewards.task_reward} zenny)")
        self.console.print(
            Panel.fit(body, title="[bold green]Battle Over[/bold green]", border_style=_BORDER_END)
        )

    def on_forfeited(self, event: BattleForfeited) -> None:
        self.console.print(
            Panel.fit(
                f"{event.forfeiting_actor_id} forfeited to {event.opponent_actor_id}.",
                title="[bold red]Forfeit[/bold red]",
                border_style=_BORDER_FORFEIT,
            )
        )

    def render_report(self, report: RoundReport) -> None:
        table = Table(show_header=True, header_style="bold yellow")
        table.add_column("Side")
        table.add_column("HP", justify="right")
        table.add_column("Round")
        for side, opponent in ((report.first, report.second), (report.second, report.first)):
            table.add_row(side.actor_id, f"{side.hp}/{side.max_hp}", "\n".join(describe_side(side, opponent)))
        self.console.print(
            Panel.fit(
                table,
                title=f"[bold yellow]Round {report.round_number}[/bold yellow]",
                border_style=_BORDER_ROUND,
            )
        )
