"""Rows × cols selection grid with a scroll window, used by every grid screen."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import TypeVar

from mal_cli.widgets.frame import Region

T = TypeVar("T")


class Navigatable:
    def __init__(self, rows: int, cols: int) -> None:
        self.rows = max(1, rows)
        self.cols = max(1, cols)
        self.selected = 0
        self.scroll = 0
        self._cells: list[tuple[int, Region]] = []

    def visible_elements(self) -> int:
        return self.rows * self.cols

    def change_size(self, rows: int, cols: int) -> None:
        self.rows = max(1, rows)
        self.cols = max(1, cols)
        self.update_scroll()

    def back_to_start(self) -> None:
        self.selected = 0
        self.scroll = 0

    def update_scroll(self) -> None:
        """Keep the selected index inside the window, scrolling by whole rows."""
        selected_row = self.selected // self.cols
        first_row = self.scroll // self.cols
        if selected_row < first_row:
            first_row = selected_row
        elif selected_row >= first_row + self.rows:
            first_row = selected_row - self.rows + 1
        self.scroll = first_row * self.cols

    def move_up(self) -> None:
        self.selected = max(0, self.selected - self.cols)
        self.update_scroll()

    def move_left(self) -> None:
        self.selected = max(0, self.selected - 1)
        self.update_scroll()

    def move_down(self, total_items: int) -> None:
        last = max(0, total_items - 1)
        self.selected = min(self.selected + self.cols, last)
        self.update_scroll()

    def move_right(self, total_items: int) -> None:
        if self.selected < total_items - 1:
            self.selected += 1
        self.update_scroll()

    def select(self, index: int, total_items: int) -> None:
        self.selected = max(0, min(index, total_items - 1))
        self.update_scroll()

    def visible_indices(self, total_items: int) -> range:
        start = self.scroll
        return range(start, min(start + self.visible_elements(), total_items))

    def get_selected_item(self, items: Sequence[T]) -> T | None:
        if 0 <= self.selected < len(items):
            return items[self.selected]
        return None

    def construct(
        self,
        items: Sequence[T],
        area: Region,
        callback: Callable[[T, Region, bool], None],
    ) -> None:
        """Lay the visible window out over ``area`` and call ``callback`` per cell."""
        self._cells = []
        if not items:
            return
        rows = area.split_even(self.rows, horizontal=False)
        grid = [row.split_even(self.cols) for row in rows]
        for visible_idx, absolute_idx in enumerate(self.visible_indices(len(items))):
            row, col = divmod(visible_idx, self.cols)
            if row >= len(grid) or col >= len(grid[row]):
                break
            cell = grid[row][col]
            self._cells.append((absolute_idx, cell))
            callback(items[absolute_idx], cell, absolute_idx == self.selected)

    def index_at(self, x: int, y: int) -> int | None:
        """Item index drawn at screen position (x, y) on the last ``construct``."""
        for index, cell in self._cells:
            if cell.contains(x, y):
                return index
        return None


__all__ = ["Navigatable"]
