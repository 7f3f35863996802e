"""Option navigation. Each step is saved at once and never triggers generation."""

from tavern_play.models import Turn
from tavern_play.storage import Storage


def prev_option(storage: Storage, turn_id: str) -> Turn:
    """Select the previous variant; stays put on the first one."""
    turn = storage.get_turn(turn_id)
    turn.prev_option()
    storage.save_turn(turn)
    return turn


def next_option(storage: Storage, turn_id: str) -> Turn:
    """Select the next variant; stays put on the last one."""
    turn = storage.get_turn(turn_id)
    turn.next_option()
    storage.save_turn(turn)
    return turn


def select_option(storage: Storage, turn_id: str, index: int) -> Turn:
    turn = storage.get_turn(turn_id)
    if not 0 <= index < len(turn.options):
        raise ValueError(f"Option index {index} out of range")
    turn.selected_option_index = index
    storage.save_turn(turn)
    return turn
