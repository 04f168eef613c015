"""Internal UI constants for the MalApp host."""

from __future__ import annotations

from textual.binding import Binding, BindingType

from mal_cli.widgets.frame import LAYERS

APP_CSS = f"""
Screen {{
    layers: {" ".join(LAYERS)};
    background: $background;
    color: $th-text;
    overflow: hidden hidden;
}}

.layer {{
    position: absolute;
    width: auto;
    height: auto;
    background: $background;
}}

#layer-body {{
    layer: body;
}}

#layer-navbar {{
    layer: navbar;
}}

#layer-menu {{
    layer: menu;
}}

#layer-overlay {{
    layer: overlay;
}}

#layer-overlay_menu {{
    layer: overlay_menu;
}}

#layer-error {{
    layer: error;
}}
"""

# Keys Textual would otherwise consume for itself; forwarded to the app loop
APP_BINDINGS: list[BindingType] = [
    Binding("ctrl+c", "forward_key('ctrl+c')", "Quit", show=False, priority=True),
    Binding("ctrl+q", "forward_key('ctrl+c')", "Quit", show=False, priority=True),
    Binding("tab", "forward_key('tab')", "List", show=False, priority=True),
    Binding("shift+tab", "forward_key('shift+tab')", show=False, priority=True),
    Binding("ctrl+p", "forward_key('ctrl+p')", "Profile", show=False, priority=True),
]

__all__ = [
    "APP_BINDINGS",
    "APP_CSS",
]
