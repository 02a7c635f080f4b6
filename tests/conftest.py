"""Shared fixtures for the niri-settings test suite."""

from pathlib import Path

import pytest

SAMPLE_CONFIG = """\
// My niri config
input {
    keyboard {
        xkb {
            layout "us"
        }
    }
    touchpad { tap; natural-scroll; }
}

output "eDP-1" {
    scale 1.5
}

layout {
    gaps 16
    focus-ring {
        width 4
        active-color "#7fc8ff"
    }
}

spawn-at-startup "waybar"

window-rule {
    match app-id=r#"^org\\.wezfurlong\\.wezterm$"#
    default-column-width {}
}

binds {
    Mod+T { spawn "alacritty"; }
    Mod+Shift+E allow-when-locked=true { quit; }
}

my-custom-node "value" key=1
include "extra/colors.kdl"
/-disabled-node "ignored"
"""


@pytest.fixture
def sample_config_text() -> str:
    return SAMPLE_CONFIG


@pytest.fixture
def config_env(tmp_path: Path) -> tuple[Path, Path]:
    """A config path and backup dir inside a temporary niri directory."""
    niri_dir = tmp_path / "niri"
    niri_dir.mkdir()
    return niri_dir / "config.kdl", niri_dir / "backups"


@pytest.fixture(scope="session")
def qapp():
    from PySide6.QtCore import QCoreApplication

    app = QCoreApplication.instance() or QCoreApplication([])
    yield app
