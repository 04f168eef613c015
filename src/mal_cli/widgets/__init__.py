"""Drawing primitives and reusable widgets for the screen runtime."""

from mal_cli.widgets.anime_box import anime_card, long_anime_box
from mal_cli.widgets.button import ButtonColumn, button
from mal_cli.widgets.canvas import LayerCanvas, bounding_box
from mal_cli.widgets.dropdown import Arrows, SelectionPopup
from mal_cli.widgets.frame import LAYERS, NAVBAR_HEIGHT, Frame, Placement, Region, body_region
from mal_cli.widgets.navbar import NavBar
from mal_cli.widgets.navigatable import Navigatable
from mal_cli.widgets.popup import POPUP_ID, AnimePopup, ErrorPopup, PopupFocus
from mal_cli.widgets.text_input import TextInput

__all__ = [
    "LAYERS",
    "NAVBAR_HEIGHT",
    "POPUP_ID",
    "AnimePopup",
    "Arrows",
    "ButtonColumn",
    "ErrorPopup",
    "Frame",
    "LayerCanvas",
    "Navigatable",
    "NavBar",
    "Placement",
    "PopupFocus",
    "Region",
    "SelectionPopup",
    "TextInput",
    "anime_card",
    "body_region",
    "bounding_box",
    "button",
    "long_anime_box",
]
