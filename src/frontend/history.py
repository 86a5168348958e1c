"""Textual viewer for the detected address history."""

from __future__ import annotations

from typing import Any

from rich.text import Text
from textual import on
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, DataTable, Footer, Static

from core.history import AddressHistory

from .constants import EXPORTS_DIR, TELEGRAM_BLUE
from .export import export_records, newest_first


class ClearConfirmScreen(ModalScreen[bool]):
    """Confirm before wiping the stored history."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Clear history?", classes="modal-title"),
            Static("All stored addresses will be removed.", classes="modal-body"),
            Horizontal(
                Button("Clear", id="clear-confirm", variant="error"),
                Button("Cancel", id="clear-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "clear-confirm")


class HistoryApp(App):
    """Browse, copy, export and clear detected addresses."""

    CSS = f"""
    Screen {{
        background: #0f1a21;
        color: #e8eef5;
    }}

    #title {{
        color: {TELEGRAM_BLUE};
        text-style: bold;
        padding: 1 2;
    }}

    #history-table {{
        height: 1fr;
    }}

    #history-actions {{
        height: 3;
    }}

    .modal-dialog {{
        width: 50;
        height: auto;
        padding: 1 2;
        border: round {TELEGRAM_BLUE};
        background: #14232d;
    }}
    """

    BINDINGS = [
        ("c", "copy_address", "Copy"),
        ("r", "reload", "Reload"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, history: AddressHistory, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._history = history
        self._rows: list[dict[str, Any]] = []

    def compose(self) -> ComposeResult:
        with Vertical():
            yield Static(Text("mintscope / address history"), id="title")
            yield DataTable(id="history-table", cursor_type="row")
            with Horizontal(id="history-actions"):
                yield Button("Copy all", id="copy-all", variant="primary")
                yield Button("Export JSON", id="export-json", variant="success")
                yield Button("Export CSV", id="export-csv")
                yield Button("Clear", id="clear", variant="error")
            yield Static("", id="history-output")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#history-table", DataTable)
        table.add_column("found", key="timestamp", width=19)
        table.add_column("address", key="address", width=46)
        table.add_column("status", key="status", width=12)
        table.add_column("channel", key="channel", width=24)
        table.add_column("message", key="message", width=40)
        table.zebra_stripes = True
        self.action_reload()

    def action_reload(self) -> None:
        table = self.query_one("#history-table", DataTable)
        table.clear()
        self._rows = newest_first(self._history.records())
        for index, record in enumerate(self._rows):
            table.add_row(
                str(record.get("timestamp", "")).replace("T", " ")[:19],
                record.get("address", ""),
                self._status(record),
                record.get("channel", ""),
                self._clip(record.get("message", "")),
                key=str(index),
            )
        self._set_output(f"{len(self._rows)} addresses")

    def action_copy_address(self) -> None:
        table = self.query_one("#history-table", DataTable)
        if not self._rows or table.cursor_row is None:
            return
        address = self._rows[table.cursor_row].get("address", "")
        self.copy_to_clipboard(address)
        self._set_output(f"copied {address}")

    @on(Button.Pressed, "#copy-all")
    def _on_copy_all(self) -> None:
        if not self._rows:
            return
        self.copy_to_clipboard("\n".join(record.get("address", "") for record in self._rows))
        self._set_output(f"copied {len(self._rows)} addresses")

    @on(Button.Pressed, "#export-json")
    def _on_export_json(self) -> None:
        self._export("json")

    @on(Button.Pressed, "#export-csv")
    def _on_export_csv(self) -> None:
        self._export("csv")

    @on(Button.Pressed, "#clear")
    def _on_clear(self) -> None:
        self.push_screen(ClearConfirmScreen(), self._handle_clear_choice)

    def _handle_clear_choice(self, confirmed: bool | None) -> None:
        if not confirmed:
            return
        self._history.clear()
        self.action_reload()

    def _export(self, fmt: str) -> None:
        if not self._rows:
            self._set_output("No addresses to export.")
            return
        try:
            path = export_records(self._rows, fmt, EXPORTS_DIR)
        except OSError as exc:
            self._set_output(f"export failed: {exc.strerror or exc}")
            return
        self._set_output(f"exported {len(self._rows)} addresses to {path}")

    def _set_output(self, message: str) -> None:
        self.query_one("#history-output", Static).update(message)

    @staticmethod
    def _status(record: dict[str, Any]) -> str:
        if "verified" not in record:
            return "pending"
        if record["verified"]:
            name = (record.get("token_info") or {}).get("name")
            return name or "verified"
        return "unverified"

    @staticmethod
    def _clip(value: str, limit: int = 50) -> str:
        if len(value) <= limit:
            return value
        return value[: limit - 3] + "..."
