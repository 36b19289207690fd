from __future__ import annotations

from netbattle.domain.models.status import STATUS_TICKS, HolyStack, PoisonStack


def replace_poison(amount: int) -> PoisonStack | None:
    """Return the single poison stack that replaces whatever was there."""
    amount = int(amount)
    if amount <= 0:
        return None
    return PoisonStack(tick_damage=amount, ticks_left=STATUS_TICKS)


def replace_holy(amount: int) -> HolyStack | None:
    amount = int(amount)
    if amount <= 0:
        return None
    return HolyStack(tick_heal=amount, ticks_left=STATUS_TICKS)


def tick_poison(stack: PoisonStack | None) -> tuple[int, PoisonStack | None]:
    if stack is None or stack.ticks_left <= 0:
        return 0, None
    remaining = stack.ticks_left - 1
    next_stack = PoisonStack(stack.tick_damage, remaining) if remaining > 0 else None
    return stack.tick_damage, next_stack


def tick_holy(stack: HolyStack | None) -> tuple[int, HolyStack | None]:
    if stack is None or stack.ticks_left <= 0:
        return 0, None
    remaining = stack.ticks_left - 1
    next_stack = HolyStack(stack.tick_heal, remaining) if remaining > 0 else None
    return stack.tick_heal, next_stack


def clamp_hp(hp: int, max_hp: int) -> int:
    return max(0, min(int(max_hp), int(hp)))
